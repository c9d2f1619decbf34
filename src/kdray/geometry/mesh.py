"""Immutable triangle mesh snapshot.

The spatial index is built over a ``Mesh``: a vertex array and a triangle
array holding three vertex indices per row. Both arrays are validated and
marked read-only, so a kd-tree built from the mesh can keep referring to
them.

Example:
    >>> from kdray.geometry.mesh import Mesh
    >>> mesh = Mesh.from_vertices_and_triangles(
    ...     [(0, 0, 0), (1, 0, 0), (0, 1, 0)], [(0, 1, 2)]
    ... )
    >>> mesh.vertex_triangles[1]
    (0,)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property

import numpy as np
import numpy.typing as npt

from kdray.core.errors import InvalidInputError
from kdray.core.vector import Position


def as_vertex_array(vertices: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Validate and copy a vertex array to float64 of shape (N, 3).

    Raises:
        InvalidInputError: If the array is empty, mis-shaped or not finite.
    """
    arr = np.array(vertices, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise InvalidInputError(f"Vertices must have shape (N, 3), got {arr.shape}")
    if arr.shape[0] == 0:
        raise InvalidInputError("Vertex array is empty")
    if not np.all(np.isfinite(arr)):
        raise InvalidInputError("Vertex coordinates must be finite")
    arr.setflags(write=False)
    return arr


def as_triangle_array(triangles: npt.ArrayLike, vertex_count: int) -> npt.NDArray[np.int64]:
    """Validate and copy a triangle array to int64 of shape (M, 3).

    Raises:
        InvalidInputError: If the array is mis-shaped or references a vertex
            outside ``[0, vertex_count)``.
    """
    arr = np.array(triangles, dtype=np.int64)
    if arr.size == 0:
        arr = arr.reshape(0, 3)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise InvalidInputError(f"Triangles must have shape (M, 3), got {arr.shape}")
    if arr.size and (arr.min() < 0 or arr.max() >= vertex_count):
        raise InvalidInputError(
            f"Triangle indices must lie in [0, {vertex_count}), "
            f"got range [{arr.min()}, {arr.max()}]"
        )
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Mesh:
    """Vertices and index triangles.

    Attributes:
        vertices: Read-only float64 array of shape (N, 3).
        triangles: Read-only int64 array of shape (M, 3).
        vertex_triangles: For each vertex, the indices of the triangles
            using it.
    """

    vertices: npt.NDArray[np.float64]
    triangles: npt.NDArray[np.int64]
    vertex_triangles: tuple[tuple[int, ...], ...] = field(repr=False)

    @classmethod
    def from_vertices_and_triangles(
        cls,
        vertices: npt.ArrayLike,
        triangles: npt.ArrayLike,
    ) -> Mesh:
        """Build a validated mesh and its vertex-to-triangle map."""
        verts = as_vertex_array(vertices)
        tris = as_triangle_array(triangles, verts.shape[0])

        adjacency: list[list[int]] = [[] for _ in range(verts.shape[0])]
        for triangle_index, triangle in enumerate(tris.tolist()):
            for vertex_index in triangle:
                adjacency[vertex_index].append(triangle_index)

        return cls(
            vertices=verts,
            triangles=tris,
            vertex_triangles=tuple(tuple(entry) for entry in adjacency),
        )

    @classmethod
    def uv_sphere(
        cls,
        radius: float = 1.0,
        center: tuple[float, float, float] = (0.0, 0.0, 0.0),
        stacks: int = 16,
        slices: int = 32,
    ) -> Mesh:
        """Tessellate a sphere into a closed, outward-facing triangle mesh.

        The poles lie on the z axis. Triangles wind counter-clockwise when
        seen from outside, so rays coming from outside hit their front face.

        Args:
            radius: Sphere radius.
            center: Sphere center.
            stacks: Number of latitude bands (>= 2).
            slices: Number of longitude segments (>= 3).

        Raises:
            InvalidInputError: If stacks or slices are too small.
        """
        if stacks < 2 or slices < 3:
            raise InvalidInputError(
                f"uv_sphere needs stacks >= 2 and slices >= 3, got {stacks} and {slices}"
            )
        cx, cy, cz = center

        vertices = [(cx, cy, cz + radius)]
        for i in range(1, stacks):
            theta = np.pi * i / stacks
            for j in range(slices):
                phi = 2.0 * np.pi * j / slices
                vertices.append(
                    (
                        cx + radius * np.sin(theta) * np.cos(phi),
                        cy + radius * np.sin(theta) * np.sin(phi),
                        cz + radius * np.cos(theta),
                    )
                )
        vertices.append((cx, cy, cz - radius))
        south_pole = len(vertices) - 1

        def ring(i: int, j: int) -> int:
            return 1 + (i - 1) * slices + j % slices

        triangles = []
        for j in range(slices):
            triangles.append((0, ring(1, j), ring(1, j + 1)))
        for i in range(1, stacks - 1):
            for j in range(slices):
                triangles.append((ring(i, j), ring(i + 1, j), ring(i, j + 1)))
                triangles.append((ring(i + 1, j), ring(i + 1, j + 1), ring(i, j + 1)))
        for j in range(slices):
            triangles.append((ring(stacks - 1, j), south_pole, ring(stacks - 1, j + 1)))

        return cls.from_vertices_and_triangles(vertices, triangles)

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def triangle_count(self) -> int:
        return int(self.triangles.shape[0])

    @cached_property
    def kernel_arrays(self) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.int64]]:
        """Writable contiguous copies of vertices and triangles for Taichi kernels."""
        return (
            np.ascontiguousarray(self.vertices.copy()),
            np.ascontiguousarray(self.triangles.copy()),
        )

    def triangle_vertices(self, triangle_index: int) -> tuple[Position, Position, Position]:
        """The three corner positions of a triangle."""
        i0, i1, i2 = self.triangles[triangle_index]
        return self.vertices[i0], self.vertices[i1], self.vertices[i2]
