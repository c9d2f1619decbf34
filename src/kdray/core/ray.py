"""Ray data structure with box and triangle intersection.

A Ray stores an origin and a normalized direction, and precomputes the
per-axis inverse direction and the sign of each inverse component. The sign
selects which of the two box corners is the "near" one on that axis, so the
slab test never has to compare the two slab distances to order them.

Example:
    >>> from kdray.core.ray import Ray
    >>> ray = Ray((0.5, 0.5, -2.0), (0.0, 0.0, 1.0))
    >>> ray.intersect_box([(0, 0, 0), (1, 1, 1)])
    2.0
"""

from __future__ import annotations

import math

import numpy as np
import numpy.typing as npt

from kdray.core.errors import InvalidInputError
from kdray.core.vector import Direction, Position, as_vec3, cross, dot, length_squared

# Interval along the ray as (t_near, t_far).
Interval = tuple[float, float]


class Ray:
    """A parametric ray ``position + t * direction``.

    Attributes:
        position: The ray origin (float64 array).
        direction: The unit direction (float64 array).
        inv_direction: Per-axis ``1 / direction``; +/-inf on axes where the
            direction component is zero.
        direction_sign: Per-axis 0/1 index of the near box corner. 1 when the
            inverse direction is negative (the near corner is the max corner).
    """

    __slots__ = ("position", "direction", "inv_direction", "direction_sign", "_pos", "_inv")

    def __init__(self, position: npt.ArrayLike, direction: npt.ArrayLike) -> None:
        self.position: Position = as_vec3(position)
        direction_vec = as_vec3(direction)
        if not np.all(np.isfinite(self.position)) or not np.all(np.isfinite(direction_vec)):
            raise InvalidInputError("Ray origin and direction must be finite")
        len_sq = length_squared(direction_vec)
        if len_sq == 0.0:
            raise InvalidInputError("Ray direction must be non-zero")
        self.direction: Direction = direction_vec / math.sqrt(len_sq)

        with np.errstate(divide="ignore"):
            self.inv_direction: Direction = np.divide(1.0, self.direction)
        self.direction_sign: tuple[int, int, int] = tuple(
            int(c < 0.0) for c in self.inv_direction
        )

        # Plain floats for the per-node slab test
        self._pos = tuple(float(c) for c in self.position)
        self._inv = tuple(float(c) for c in self.inv_direction)

    def __repr__(self) -> str:
        return f"Ray(position={self.position.tolist()}, direction={self.direction.tolist()})"

    def at(self, t: float) -> Position:
        """Compute the point along the ray at parameter t."""
        return self.position + t * self.direction

    def box_interval(self, bounds: npt.ArrayLike) -> Interval | None:
        """Intersect the ray's supporting line with a box (slab method).

        The three per-axis intervals are intersected in order, keeping the
        running max of the near distances and min of the far distances. An
        axis where the direction component is zero contributes an unbounded
        interval if the origin lies within that slab and an empty one
        otherwise, so flat boxes never divide by zero.

        Args:
            bounds: The box as ``[min_corner, max_corner]``.

        Returns:
            ``(t_near, t_far)`` or None if the interval is empty. Either value
            may be negative.
        """
        t_near = -math.inf
        t_far = math.inf
        for axis in range(3):
            pos = self._pos[axis]
            lower = float(bounds[0][axis])
            upper = float(bounds[1][axis])

            if self.direction[axis] == 0.0:
                # Parallel to this slab
                if pos < lower or pos > upper:
                    return None
                continue

            inv = self._inv[axis]
            if self.direction_sign[axis]:
                axis_near = (upper - pos) * inv
                axis_far = (lower - pos) * inv
            else:
                axis_near = (lower - pos) * inv
                axis_far = (upper - pos) * inv

            if axis_near > t_near:
                t_near = axis_near
            if axis_far < t_far:
                t_far = axis_far
            if t_near > t_far:
                return None

        return t_near, t_far

    def intersect_box(self, bounds: npt.ArrayLike) -> float | None:
        """Distance along the ray to a box.

        Args:
            bounds: The box as ``[min_corner, max_corner]``.

        Returns:
            The entry distance if it is non-negative (origin outside the box,
            moving toward it), otherwise the exit distance if that is
            non-negative (origin inside the box), otherwise None (the box is
            behind the ray or missed).
        """
        interval = self.box_interval(bounds)
        if interval is None:
            return None
        t_near, t_far = interval
        if t_near >= 0.0:
            return t_near
        if t_far >= 0.0:
            return t_far
        return None

    def intersect_triangle(
        self,
        t0: npt.ArrayLike,
        t1: npt.ArrayLike,
        t2: npt.ArrayLike,
    ) -> tuple[Position, tuple[float, float]] | None:
        """Intersect the ray with a triangle (Möller–Trumbore).

        The test is single-sided: triangles seen from their back face
        (counter-clockwise winding away from the ray) and degenerate or
        parallel triangles, where the determinant is not positive, are
        misses.

        Args:
            t0: First triangle vertex.
            t1: Second triangle vertex.
            t2: Third triangle vertex.

        Returns:
            ``(point, (u, v))`` where u weights t1 and v weights t2, or None
            if there is no hit in front of the ray origin.
        """
        v0 = np.asarray(t0, dtype=np.float64)
        edge_u = np.asarray(t1, dtype=np.float64) - v0
        edge_v = np.asarray(t2, dtype=np.float64) - v0

        p = cross(self.direction, edge_v)
        determinant = dot(edge_u, p)
        if determinant <= 0.0:
            return None
        inv_determinant = 1.0 / determinant

        w = self.position - v0
        u = dot(w, p) * inv_determinant
        if u < 0.0 or u > 1.0:
            return None

        q = cross(w, edge_u)
        v = dot(self.direction, q) * inv_determinant
        if v < 0.0 or u + v > 1.0:
            return None

        t = dot(edge_v, q) * inv_determinant
        if t < 0.0:
            return None

        return self.at(t), (u, v)
