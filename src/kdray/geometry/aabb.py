"""Axis-aligned bounding box with splitting and triangle overlap tests.

The box is stored as ``bounds[0]`` (min corner) and ``bounds[1]`` (max
corner). A box may have zero extent on any axis; every test below handles
such flat boxes without dividing by zero.

Triangle/box overlap uses the Separating Axis Theorem with all 13 candidate
axes:
1. The three box axes (triangle AABB against the box).
2. The triangle normal.
3. The nine cross products of a triangle edge with a box axis.

Example:
    >>> from kdray.geometry.aabb import AxisAlignedBoundingBox
    >>> box = AxisAlignedBoundingBox.from_points([(0, 0, 0), (2, 1, 1)])
    >>> left, right = box.split(box.largest_dim(), 1.0)
    >>> left.bounds[1][0], right.bounds[0][0]
    (1.0, 1.0)
"""

from __future__ import annotations

import numpy as np
import numpy.typing as npt

from kdray.core.errors import InvalidInputError, SplitOutOfRangeError
from kdray.core.vector import Direction, Position, cross, dot, normalize, vabs

# Box axes used for the edge-cross tests
_BOX_AXES = np.eye(3, dtype=np.float64)


class AxisAlignedBoundingBox:
    """An axis-aligned box.

    Attributes:
        bounds: Array of shape (2, 3), ``[min_corner, max_corner]``.
        dim: Extent per axis (``max - min``).
        center: Box center.
    """

    __slots__ = ("bounds", "dim", "center")

    def __init__(self, bounds: npt.ArrayLike) -> None:
        arr = np.array(bounds, dtype=np.float64)
        if arr.shape != (2, 3):
            raise InvalidInputError(f"Box bounds must have shape (2, 3), got {arr.shape}")
        if np.any(arr[0] > arr[1]):
            raise InvalidInputError(f"Box min corner exceeds max corner: {arr.tolist()}")
        self.bounds: npt.NDArray[np.float64] = arr
        self.dim: Direction = arr[1] - arr[0]
        self.center: Position = (arr[0] + arr[1]) * 0.5

    @classmethod
    def from_points(cls, points: npt.ArrayLike) -> AxisAlignedBoundingBox:
        """Tightest box enclosing a point set.

        Args:
            points: Array-like of shape (N, 3) with N >= 1.

        Raises:
            InvalidInputError: If the point set is empty or mis-shaped.
        """
        pts = np.asarray(points, dtype=np.float64)
        if pts.ndim != 2 or pts.shape[1] != 3:
            raise InvalidInputError(f"Points must have shape (N, 3), got {pts.shape}")
        if pts.shape[0] == 0:
            raise InvalidInputError("Cannot bound an empty point set")
        return cls((pts.min(axis=0), pts.max(axis=0)))

    @classmethod
    def from_bounds(cls, lower: npt.ArrayLike, upper: npt.ArrayLike) -> AxisAlignedBoundingBox:
        """Box from explicit min and max corners."""
        return cls((lower, upper))

    def __repr__(self) -> str:
        return f"AxisAlignedBoundingBox({self.bounds[0].tolist()}, {self.bounds[1].tolist()})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AxisAlignedBoundingBox):
            return NotImplemented
        return bool(np.array_equal(self.bounds, other.bounds))

    __hash__ = None  # type: ignore[assignment]

    @property
    def width(self) -> float:
        return float(self.dim[0])

    @property
    def height(self) -> float:
        return float(self.dim[1])

    @property
    def length(self) -> float:
        return float(self.dim[2])

    def largest_dim(self) -> int:
        """Axis with the greatest extent.

        Ties prefer x over y and y over z. The split axis, and therefore
        the shape of the kd-tree, depends on this order.
        """
        width, height, length = self.width, self.height, self.length
        if width >= height and width >= length:
            return 0
        if height >= length:
            return 1
        return 2

    def split(self, axis: int, coordinate: float) -> tuple[AxisAlignedBoundingBox, AxisAlignedBoundingBox]:
        """Split the box by a plane perpendicular to an axis.

        Args:
            axis: Axis index (0, 1 or 2).
            coordinate: Plane position; must lie in the box extent on that
                axis, inclusive.

        Returns:
            ``(left, right)``: left keeps the min corner and has its max
            clamped to ``coordinate``; right has its min clamped to
            ``coordinate`` and keeps the max corner.

        Raises:
            InvalidInputError: If the axis is not 0, 1 or 2.
            SplitOutOfRangeError: If the coordinate lies outside the box.
        """
        if axis not in (0, 1, 2):
            raise InvalidInputError(f"Split axis must be 0, 1 or 2, got {axis}")
        lower = float(self.bounds[0][axis])
        upper = float(self.bounds[1][axis])
        at = float(coordinate)
        if not lower <= at <= upper:
            raise SplitOutOfRangeError(axis, at, lower, upper)

        left_max = self.bounds[1].copy()
        left_max[axis] = at
        right_min = self.bounds[0].copy()
        right_min[axis] = at
        left = AxisAlignedBoundingBox((self.bounds[0], left_max))
        right = AxisAlignedBoundingBox((right_min, self.bounds[1]))
        return left, right

    def contains_point(self, point: npt.ArrayLike) -> bool:
        """Whether a point lies in the box (boundary included)."""
        p = np.asarray(point, dtype=np.float64)
        return bool(np.all(p >= self.bounds[0]) and np.all(p <= self.bounds[1]))

    def contains_box(self, other: AxisAlignedBoundingBox) -> bool:
        """Whether another box lies entirely in this one (boundary included)."""
        return bool(
            np.all(other.bounds[0] >= self.bounds[0]) and np.all(other.bounds[1] <= self.bounds[1])
        )

    def projected_radius(self, axis: npt.ArrayLike) -> float:
        """Half-width of the box projected on an arbitrary axis."""
        return dot(self.dim * 0.5, vabs(np.asarray(axis, dtype=np.float64)))

    def intersect_triangle(
        self,
        t0: npt.ArrayLike,
        t1: npt.ArrayLike,
        t2: npt.ArrayLike,
        normal: npt.ArrayLike | None = None,
    ) -> bool:
        """Separating-axis overlap test between the box and a triangle.

        Stops at the first separating axis found. Touching counts as
        overlapping.

        Args:
            t0: First triangle vertex.
            t1: Second triangle vertex.
            t2: Third triangle vertex.
            normal: Optional precomputed triangle normal. Computed from the
                edges when omitted.

        Returns:
            True if no separating axis exists among the 13 candidates.
        """
        v0 = np.asarray(t0, dtype=np.float64)
        v1 = np.asarray(t1, dtype=np.float64)
        v2 = np.asarray(t2, dtype=np.float64)
        lower, upper = self.bounds

        # Box axes
        for i in range(3):
            if min(v0[i], v1[i], v2[i]) > upper[i] or max(v0[i], v1[i], v2[i]) < lower[i]:
                return False

        edges = (v1 - v0, v2 - v1, v0 - v2)

        # Triangle normal, box projected about its center
        if normal is None:
            n = normalize(cross(edges[0], edges[1]))
        else:
            n = normalize(np.asarray(normal, dtype=np.float64))
        if abs(dot(n, v0 - self.center)) > self.projected_radius(n):
            return False

        # Edge x box-axis cross products
        rel = (v0 - self.center, v1 - self.center, v2 - self.center)
        for edge in edges:
            for box_axis in _BOX_AXES:
                axis = normalize(cross(edge, box_axis))
                p0 = dot(axis, rel[0])
                p1 = dot(axis, rel[1])
                p2 = dot(axis, rel[2])
                radius = self.projected_radius(axis)
                if min(p0, p1, p2) > radius or max(p0, p1, p2) < -radius:
                    return False

        return True
