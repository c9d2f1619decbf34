"""Taichi kernels for the bulk geometry tests.

The kd-tree itself is walked on the host, but two steps test one query
against many triangles at once and run as parallel Taichi kernels:

- Mesh-aware construction assigns triangles to nodes with the 13-axis
  triangle/box SAT test (``classify_triangles``).
- The closest-hit query tests a ray against every candidate triangle of a
  leaf with Möller–Trumbore (``intersect_ray_triangles``).

All kernel arithmetic is float64 so that the results agree with the host
implementations in ``kdray.geometry.aabb`` and ``kdray.core.ray``.

Callers normally run ``ti.init`` themselves. If no Taichi runtime exists at
the first launch, one is created on the CPU backend with float64 defaults.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64)
    >>> mask = classify_triangles(vertices, triangles, candidates, lower, upper)
"""

import logging

import numpy as np
import numpy.typing as npt
import taichi as ti
from taichi.lang import impl

from kdray.core.vector import ZERO_LENGTH_SQUARED

logger = logging.getLogger(__name__)


@ti.func
def _normalize_or_zero(v):
    """Normalize a vector, returning zero for a zero-length input."""
    result = ti.Vector([0.0, 0.0, 0.0], dt=ti.f64)
    len_sq = v.dot(v)
    if len_sq > ZERO_LENGTH_SQUARED:
        result = v / ti.sqrt(len_sq)
    return result


@ti.func
def _edge_separates(edge, r0, r1, r2, half) -> ti.i32:
    """Test the three axes ``edge x box_axis`` for separation.

    Args:
        edge: A triangle edge vector.
        r0: First vertex relative to the box center.
        r1: Second vertex relative to the box center.
        r2: Third vertex relative to the box center.
        half: Box half extents.

    Returns:
        1 if one of the three axes separates the triangle from the box.
    """
    separated = 0
    for k in ti.static(range(3)):
        box_axis = ti.Vector([0.0, 0.0, 0.0], dt=ti.f64)
        box_axis[k] = 1.0
        axis = _normalize_or_zero(edge.cross(box_axis))
        p0 = axis.dot(r0)
        p1 = axis.dot(r1)
        p2 = axis.dot(r2)
        radius = half.dot(ti.abs(axis))
        if ti.min(ti.min(p0, p1), p2) > radius or ti.max(ti.max(p0, p1), p2) < -radius:
            separated = 1
    return separated


@ti.func
def triangle_box_overlap(lower, upper, v0, v1, v2) -> ti.i32:
    """Separating-axis triangle/box test.

    Same axes and order as AxisAlignedBoundingBox.intersect_triangle: box
    axes, triangle normal, then the nine edge cross products. Later groups
    are skipped once a separating axis is found.

    Returns:
        1 if the triangle and the box overlap, 0 otherwise.
    """
    separated = 0

    # Box axes
    for i in ti.static(range(3)):
        tri_min = ti.min(ti.min(v0[i], v1[i]), v2[i])
        tri_max = ti.max(ti.max(v0[i], v1[i]), v2[i])
        if tri_min > upper[i] or tri_max < lower[i]:
            separated = 1

    center = (lower + upper) * 0.5
    half = (upper - lower) * 0.5
    e0 = v1 - v0
    e1 = v2 - v1
    e2 = v0 - v2
    r0 = v0 - center
    r1 = v1 - center
    r2 = v2 - center

    # Triangle normal
    if separated == 0:
        n = _normalize_or_zero(e0.cross(e1))
        if ti.abs(n.dot(r0)) > half.dot(ti.abs(n)):
            separated = 1

    # Edge x box-axis
    if separated == 0:
        separated = _edge_separates(e0, r0, r1, r2, half)
    if separated == 0:
        separated = _edge_separates(e1, r0, r1, r2, half)
    if separated == 0:
        separated = _edge_separates(e2, r0, r1, r2, half)

    return 1 - separated


@ti.func
def ray_triangle_hit(origin, direction, v0, v1, v2):
    """Single-sided Möller–Trumbore test.

    Returns:
        A 4-vector ``(hit, t, u, v)``; hit is 1.0 on a hit and 0.0 otherwise.
    """
    result = ti.Vector([0.0, 0.0, 0.0, 0.0], dt=ti.f64)
    edge_u = v1 - v0
    edge_v = v2 - v0
    p = direction.cross(edge_v)
    determinant = edge_u.dot(p)
    if determinant > 0.0:
        inv_determinant = 1.0 / determinant
        w = origin - v0
        u = w.dot(p) * inv_determinant
        if u >= 0.0 and u <= 1.0:
            q = w.cross(edge_u)
            v = direction.dot(q) * inv_determinant
            if v >= 0.0 and u + v <= 1.0:
                t = edge_v.dot(q) * inv_determinant
                if t >= 0.0:
                    result = ti.Vector([1.0, t, u, v], dt=ti.f64)
    return result


@ti.kernel
def _classify_triangles_kernel(
    vertices: ti.types.ndarray(dtype=ti.f64, ndim=2),
    triangles: ti.types.ndarray(dtype=ti.i64, ndim=2),
    candidates: ti.types.ndarray(dtype=ti.i64, ndim=1),
    lower: ti.types.ndarray(dtype=ti.f64, ndim=1),
    upper: ti.types.ndarray(dtype=ti.f64, ndim=1),
    out: ti.types.ndarray(dtype=ti.i32, ndim=1),
):
    lo = ti.Vector([lower[0], lower[1], lower[2]], dt=ti.f64)
    hi = ti.Vector([upper[0], upper[1], upper[2]], dt=ti.f64)
    for k in range(candidates.shape[0]):
        tri = candidates[k]
        i0 = triangles[tri, 0]
        i1 = triangles[tri, 1]
        i2 = triangles[tri, 2]
        v0 = ti.Vector([vertices[i0, 0], vertices[i0, 1], vertices[i0, 2]], dt=ti.f64)
        v1 = ti.Vector([vertices[i1, 0], vertices[i1, 1], vertices[i1, 2]], dt=ti.f64)
        v2 = ti.Vector([vertices[i2, 0], vertices[i2, 1], vertices[i2, 2]], dt=ti.f64)
        out[k] = triangle_box_overlap(lo, hi, v0, v1, v2)


@ti.kernel
def _intersect_ray_triangles_kernel(
    origin: ti.types.ndarray(dtype=ti.f64, ndim=1),
    direction: ti.types.ndarray(dtype=ti.f64, ndim=1),
    vertices: ti.types.ndarray(dtype=ti.f64, ndim=2),
    triangles: ti.types.ndarray(dtype=ti.i64, ndim=2),
    candidates: ti.types.ndarray(dtype=ti.i64, ndim=1),
    out: ti.types.ndarray(dtype=ti.f64, ndim=2),
):
    o = ti.Vector([origin[0], origin[1], origin[2]], dt=ti.f64)
    d = ti.Vector([direction[0], direction[1], direction[2]], dt=ti.f64)
    for k in range(candidates.shape[0]):
        tri = candidates[k]
        i0 = triangles[tri, 0]
        i1 = triangles[tri, 1]
        i2 = triangles[tri, 2]
        v0 = ti.Vector([vertices[i0, 0], vertices[i0, 1], vertices[i0, 2]], dt=ti.f64)
        v1 = ti.Vector([vertices[i1, 0], vertices[i1, 1], vertices[i1, 2]], dt=ti.f64)
        v2 = ti.Vector([vertices[i2, 0], vertices[i2, 1], vertices[i2, 2]], dt=ti.f64)
        hit = ray_triangle_hit(o, d, v0, v1, v2)
        for c in ti.static(range(4)):
            out[k, c] = hit[c]


def ensure_runtime() -> None:
    """Initialize Taichi on the CPU backend if no runtime exists yet."""
    if impl.get_runtime().prog is None:
        logger.info("No Taichi runtime; initializing the CPU backend with float64 defaults")
        ti.init(arch=ti.cpu, default_fp=ti.f64)


def classify_triangles(
    vertices: npt.NDArray[np.float64],
    triangles: npt.NDArray[np.int64],
    candidates: npt.NDArray[np.int64],
    lower: npt.NDArray[np.float64],
    upper: npt.NDArray[np.float64],
) -> npt.NDArray[np.bool_]:
    """Test candidate triangles against a box.

    Args:
        vertices: Writable, contiguous float64 array of shape (N, 3).
        triangles: Writable, contiguous int64 array of shape (M, 3).
        candidates: Indices into ``triangles`` to test.
        lower: Box min corner.
        upper: Box max corner.

    Returns:
        Boolean mask aligned with ``candidates``; True where the triangle
        overlaps the box.
    """
    count = int(candidates.shape[0])
    if count == 0:
        return np.zeros(0, dtype=bool)
    ensure_runtime()
    out = np.zeros(count, dtype=np.int32)
    _classify_triangles_kernel(
        vertices,
        triangles,
        np.ascontiguousarray(candidates, dtype=np.int64),
        np.array(lower, dtype=np.float64),
        np.array(upper, dtype=np.float64),
        out,
    )
    return out.astype(bool)


def intersect_ray_triangles(
    origin: npt.NDArray[np.float64],
    direction: npt.NDArray[np.float64],
    vertices: npt.NDArray[np.float64],
    triangles: npt.NDArray[np.int64],
    candidates: npt.NDArray[np.int64],
) -> tuple[npt.NDArray[np.bool_], npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Test one ray against candidate triangles.

    Args:
        origin: Ray origin.
        direction: Unit ray direction.
        vertices: Writable, contiguous float64 array of shape (N, 3).
        triangles: Writable, contiguous int64 array of shape (M, 3).
        candidates: Indices into ``triangles`` to test.

    Returns:
        ``(hit, t, uv)`` aligned with ``candidates``: a boolean hit mask, the
        distance along the ray and the (u, v) barycentric pair per candidate.
        Entries where ``hit`` is False are zero.
    """
    count = int(candidates.shape[0])
    if count == 0:
        return np.zeros(0, dtype=bool), np.zeros(0), np.zeros((0, 2))
    ensure_runtime()
    out = np.zeros((count, 4), dtype=np.float64)
    _intersect_ray_triangles_kernel(
        np.array(origin, dtype=np.float64),
        np.array(direction, dtype=np.float64),
        vertices,
        triangles,
        np.ascontiguousarray(candidates, dtype=np.int64),
        out,
    )
    return out[:, 0] > 0.5, out[:, 1].copy(), out[:, 2:4].copy()
