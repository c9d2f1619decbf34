"""Spatial index interface for the rendering side.

This module is the in-process boundary between the kd-tree and its
consumers (camera-ray generation, shading). A caller builds the index once
and then issues per-ray or per-triangle queries:

- ``build_index(vertices, triangles=None)``: point-only index when
  triangles are omitted, mesh-aware otherwise.
- ``query_ray(index, ray)``: lazy sequence of node hits, nearest first, with
  ``.leaves_only()`` and ``.first_branch_only()`` views.
- ``query_triangle(index, t0, t1, t2, normal=None)``: nodes whose box
  overlaps a triangle.
- ``closest_hit(index, ray)``: nearest triangle hit, resolved leaf by leaf.

Every node hit exposes ``is_leaf``, ``bounding_box`` and, for leaves, the
``vertex_indices`` and ``triangle_indices`` to resolve against the mesh
arrays.

Example:
    >>> from kdray.core.ray import Ray
    >>> from kdray.scene.index import build_index, closest_hit, query_ray
    >>> index = build_index(vertices, triangles)
    >>> ray = Ray((0.0, 0.0, -5.0), (0.0, 0.0, 1.0))
    >>> for hit in query_ray(index, ray).leaves_only():
    ...     print(hit.distance, hit.triangle_indices)
    >>> record = closest_hit(index, ray)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from kdray.core.config import KdTreeConfig
from kdray.core.errors import InvalidInputError
from kdray.core.ray import Ray
from kdray.core.vector import Position
from kdray.geometry.kdtree import KdNode, KdTree
from kdray.geometry.kernels import intersect_ray_triangles
from kdray.geometry.mesh import Mesh
from kdray.geometry.traversal import NodeHitSequence, iter_leaves

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriangleHit:
    """Nearest ray/triangle intersection.

    Attributes:
        triangle_index: Index of the triangle in the mesh.
        point: Intersection point.
        barycentric: ``(u, v)`` weights of the second and third vertex.
        distance: Distance along the (unit) ray direction.
    """

    triangle_index: int
    point: Position
    barycentric: tuple[float, float]
    distance: float


@dataclass(frozen=True)
class SubtreeGeometry:
    """Geometry stored under a node.

    Attributes:
        vertex_indices: Sorted unique vertex indices.
        triangle_indices: Sorted unique triangle indices, or None for
            vertex-only trees.
    """

    vertex_indices: npt.NDArray[np.int64]
    triangle_indices: npt.NDArray[np.int64] | None


class SpatialIndex:
    """A built kd-tree together with the geometry it indexes."""

    def __init__(self, tree: KdTree) -> None:
        self.tree = tree

    @property
    def mesh(self) -> Mesh | None:
        return self.tree.mesh

    @property
    def vertices(self) -> npt.NDArray[np.float64]:
        return self.tree.vertices

    @property
    def root(self) -> KdNode:
        return self.tree.root

    def query_ray(self, ray: Ray) -> NodeHitSequence:
        return self.tree.intersect_ray(ray)

    def query_triangle(
        self,
        t0: npt.ArrayLike,
        t1: npt.ArrayLike,
        t2: npt.ArrayLike,
        normal: npt.ArrayLike | None = None,
    ) -> NodeHitSequence:
        return self.tree.intersect_triangle(t0, t1, t2, normal)

    def closest_hit(self, ray: Ray) -> TriangleHit | None:
        """Nearest triangle hit along a ray.

        Leaves are visited in ascending entry distance. Every triangle
        touching a leaf is stored in it, so the walk stops as soon as the
        next leaf starts beyond the best hit found so far.

        Raises:
            InvalidInputError: If the index has no triangles.
        """
        if self.mesh is None:
            raise InvalidInputError("closest_hit needs an index built with triangles")
        vertices, triangles = self.mesh.kernel_arrays

        best: TriangleHit | None = None
        for hit in self.tree.intersect_ray(ray).leaves():
            if best is not None and hit.distance > best.distance:
                break
            candidates = hit.triangle_indices
            if candidates is None or len(candidates) == 0:
                continue

            mask, t, uv = intersect_ray_triangles(
                ray.position, ray.direction, vertices, triangles, candidates
            )
            if not mask.any():
                continue
            hit_rows = np.flatnonzero(mask)
            k = hit_rows[np.argmin(t[hit_rows])]
            if best is None or t[k] < best.distance:
                best = TriangleHit(
                    triangle_index=int(candidates[k]),
                    point=ray.at(float(t[k])),
                    barycentric=(float(uv[k, 0]), float(uv[k, 1])),
                    distance=float(t[k]),
                )
        return best

    def subtree_geometry(self, node: KdNode | None = None) -> SubtreeGeometry:
        return subtree_geometry(self.root if node is None else node)


def build_index(
    vertices: npt.ArrayLike,
    triangles: npt.ArrayLike | None = None,
    config: KdTreeConfig | None = None,
) -> SpatialIndex:
    """Build a spatial index.

    Args:
        vertices: Array-like of shape (N, 3), N >= 1.
        triangles: Optional array-like of shape (M, 3) of vertex indices.
            Omitting it yields a point-only index.
        config: Construction settings; defaults to DEFAULT_CONFIG.

    Raises:
        InvalidInputError: If the geometry is empty or malformed.
        SplitOutOfRangeError: On an inconsistent split in strict mode.
    """
    if triangles is None:
        tree = KdTree.from_vertices(vertices, config)
    else:
        mesh = Mesh.from_vertices_and_triangles(vertices, triangles)
        tree = KdTree.from_mesh(mesh, config)
    logger.info(
        "Spatial index ready: %d vertices, %d leaves, depth %d",
        tree.vertices.shape[0],
        tree.leaf_count,
        tree.depth,
    )
    return SpatialIndex(tree)


def query_ray(index: SpatialIndex, ray: Ray) -> NodeHitSequence:
    """Nodes hit by a ray in ascending distance order."""
    return index.query_ray(ray)


def query_triangle(
    index: SpatialIndex,
    t0: npt.ArrayLike,
    t1: npt.ArrayLike,
    t2: npt.ArrayLike,
    normal: npt.ArrayLike | None = None,
) -> NodeHitSequence:
    """Nodes whose box overlaps a triangle."""
    return index.query_triangle(t0, t1, t2, normal)


def closest_hit(index: SpatialIndex, ray: Ray) -> TriangleHit | None:
    """Nearest triangle hit along a ray, or None."""
    return index.closest_hit(ray)


def subtree_geometry(node: KdNode) -> SubtreeGeometry:
    """Collect the vertex and triangle indices stored under a node."""
    leaves = list(iter_leaves(node))
    vertex_indices = np.unique(np.concatenate([leaf.vertex_indices for leaf in leaves]))
    triangle_indices = None
    if leaves[0].triangle_indices is not None:
        triangle_indices = np.unique(
            np.concatenate([leaf.triangle_indices for leaf in leaves])
        ).astype(np.int64)
    return SubtreeGeometry(vertex_indices.astype(np.int64), triangle_indices)
