"""Kd-tree over mesh vertices and triangles.

Construction recursively splits the point set at the median coordinate of
the box's largest dimension:

1. The root box bounds all vertices; children get the halves of their
   parent's box.
2. A node with fewer than ``leaf_size`` points becomes a leaf holding the
   indices of its vertices and, for mesh-aware trees, of the triangles that
   overlap its box (13-axis SAT, so a triangle straddling a split plane is
   stored in several leaves).
3. Otherwise points with ``coordinate < median`` go left and the rest go
   right.

When every point of a node shares the median coordinate on the chosen axis
the left side would be empty. The remaining axes are then tried in order of
decreasing extent, and if none of them separates the points the node
becomes a leaf.

Example:
    >>> import numpy as np
    >>> from kdray.geometry.kdtree import KdTree
    >>> tree = KdTree.from_vertices(np.random.default_rng(0).random((100, 3)))
    >>> tree.leaf_count > 1
    True
"""

from __future__ import annotations

import logging
from typing import Iterator

import numpy as np
import numpy.typing as npt

from kdray.core.config import DEFAULT_CONFIG, KdTreeConfig
from kdray.core.errors import SplitOutOfRangeError
from kdray.core.ray import Ray
from kdray.geometry.aabb import AxisAlignedBoundingBox
from kdray.geometry.kernels import classify_triangles
from kdray.geometry.mesh import Mesh, as_vertex_array
from kdray.geometry.traversal import (
    NodeHitSequence,
    iter_leaves,
    ray_probe,
    triangle_probe,
)

logger = logging.getLogger(__name__)


class KdNode:
    """A kd-tree node.

    A node is a leaf iff ``vertex_indices`` is set; leaves have no
    children and internal nodes have exactly two.

    Attributes:
        bounding_box: The region this node covers.
        left: Child below the split plane (internal nodes only).
        right: Child at or above the split plane (internal nodes only).
        vertex_indices: Read-only vertex indices in this leaf.
        triangle_indices: Read-only triangle indices overlapping this leaf,
            or None for vertex-only trees.
        split_axis: Axis of the split plane (internal nodes only).
        split_value: Coordinate of the split plane (internal nodes only).
        node_id: Pre-order index of the node in its tree.
        depth: Distance from the root.
    """

    __slots__ = (
        "bounding_box",
        "left",
        "right",
        "vertex_indices",
        "triangle_indices",
        "split_axis",
        "split_value",
        "node_id",
        "depth",
    )

    def __init__(
        self,
        bounding_box: AxisAlignedBoundingBox,
        node_id: int,
        depth: int,
        *,
        vertex_indices: npt.NDArray[np.int64] | None = None,
        triangle_indices: npt.NDArray[np.int64] | None = None,
    ) -> None:
        self.bounding_box = bounding_box
        self.node_id = node_id
        self.depth = depth
        self.left: KdNode | None = None
        self.right: KdNode | None = None
        self.split_axis: int | None = None
        self.split_value: float | None = None
        self.vertex_indices = vertex_indices
        self.triangle_indices = triangle_indices

    def __repr__(self) -> str:
        kind = "leaf" if self.is_leaf else "internal"
        return f"KdNode(id={self.node_id}, {kind}, box={self.bounding_box!r})"

    @property
    def is_leaf(self) -> bool:
        return self.vertex_indices is not None

    @property
    def children(self) -> tuple[KdNode, ...]:
        if self.is_leaf:
            return ()
        return (self.left, self.right)

    @property
    def debug_color(self) -> tuple[int, int, int]:
        """Stable pseudo-random RGB color for visual debugging, seeded by node id."""
        rng = np.random.default_rng(self.node_id)
        r, g, b = rng.integers(0, 256, size=3)
        return int(r), int(g), int(b)


def _readonly(indices: npt.NDArray[np.int64]) -> npt.NDArray[np.int64]:
    arr = np.array(indices, dtype=np.int64)
    arr.setflags(write=False)
    return arr


class _Builder:
    """Recursive median-split construction state for one tree."""

    def __init__(
        self,
        vertices: npt.NDArray[np.float64],
        mesh: Mesh | None,
        config: KdTreeConfig,
    ) -> None:
        self.vertices = vertices
        self.mesh = mesh
        self.config = config
        self.node_count = 0
        self.leaf_count = 0
        self.max_depth = 0
        if mesh is not None:
            self.kernel_vertices, self.kernel_triangles = mesh.kernel_arrays

    def build(self) -> KdNode:
        indices = np.arange(self.vertices.shape[0], dtype=np.int64)
        box = AxisAlignedBoundingBox.from_points(self.vertices)
        triangles = None
        if self.mesh is not None:
            triangles = np.arange(self.mesh.triangle_count, dtype=np.int64)
        return self._build(box, indices, triangles, 0)

    def _build(
        self,
        box: AxisAlignedBoundingBox,
        indices: npt.NDArray[np.int64],
        triangles: npt.NDArray[np.int64] | None,
        depth: int,
    ) -> KdNode:
        node_id = self.node_count
        self.node_count += 1
        self.max_depth = max(self.max_depth, depth)

        if len(indices) < self.config.leaf_size:
            return self._leaf(box, indices, triangles, node_id, depth)
        if depth >= self.config.max_depth:
            logger.warning(
                "Node %d reached max depth %d with %d points; forcing a leaf",
                node_id,
                depth,
                len(indices),
            )
            return self._leaf(box, indices, triangles, node_id, depth)

        split = self._choose_split(box, indices)
        if split is None:
            logger.debug("Node %d: no axis separates %d points; leaf", node_id, len(indices))
            return self._leaf(box, indices, triangles, node_id, depth)
        axis, median, left_mask = split

        try:
            left_box, right_box = box.split(axis, median)
        except SplitOutOfRangeError:
            if self.config.strict:
                raise
            logger.error(
                "Node %d: median %r outside box on axis %d; forcing a leaf",
                node_id,
                median,
                axis,
                exc_info=True,
            )
            return self._leaf(box, indices, triangles, node_id, depth)

        left_triangles = right_triangles = None
        if triangles is not None:
            left_triangles = self._overlapping(triangles, left_box)
            right_triangles = self._overlapping(triangles, right_box)

        node = KdNode(box, node_id, depth)
        node.split_axis = axis
        node.split_value = median
        node.left = self._build(left_box, indices[left_mask], left_triangles, depth + 1)
        node.right = self._build(right_box, indices[~left_mask], right_triangles, depth + 1)
        return node

    def _leaf(
        self,
        box: AxisAlignedBoundingBox,
        indices: npt.NDArray[np.int64],
        triangles: npt.NDArray[np.int64] | None,
        node_id: int,
        depth: int,
    ) -> KdNode:
        self.leaf_count += 1
        return KdNode(
            box,
            node_id,
            depth,
            vertex_indices=_readonly(indices),
            triangle_indices=None if triangles is None else _readonly(triangles),
        )

    def _choose_split(
        self,
        box: AxisAlignedBoundingBox,
        indices: npt.NDArray[np.int64],
    ) -> tuple[int, float, npt.NDArray[np.bool_]] | None:
        """Pick the split axis, median and left-side mask.

        The largest dimension is tried first; the other axes follow in order
        of decreasing extent (ties keep x, y, z order).
        """
        first = box.largest_dim()
        others = sorted((a for a in range(3) if a != first), key=lambda a: -box.dim[a])
        points = self.vertices[indices]

        for axis in (first, *others):
            values = points[:, axis]
            median = float(np.sort(values)[len(values) // 2])
            left_mask = values < median
            if left_mask.any():
                if axis != first:
                    logger.debug(
                        "Median on axis %d leaves one side empty; using axis %d", first, axis
                    )
                return axis, median, left_mask
        return None

    def _overlapping(
        self,
        triangles: npt.NDArray[np.int64],
        box: AxisAlignedBoundingBox,
    ) -> npt.NDArray[np.int64]:
        mask = classify_triangles(
            self.kernel_vertices,
            self.kernel_triangles,
            triangles,
            box.bounds[0],
            box.bounds[1],
        )
        return triangles[mask]


class KdTree:
    """Immutable kd-tree built once from vertices or a mesh.

    Attributes:
        root: The root node.
        vertices: The indexed vertex array.
        mesh: The indexed mesh, or None for vertex-only trees.
        config: Construction settings used.
        node_count: Number of nodes.
        leaf_count: Number of leaves.
        depth: Depth of the deepest node (root is 0).
    """

    def __init__(
        self,
        root: KdNode,
        vertices: npt.NDArray[np.float64],
        mesh: Mesh | None,
        config: KdTreeConfig,
        node_count: int,
        leaf_count: int,
        depth: int,
    ) -> None:
        self.root = root
        self.vertices = vertices
        self.mesh = mesh
        self.config = config
        self.node_count = node_count
        self.leaf_count = leaf_count
        self.depth = depth

    @classmethod
    def from_vertices(
        cls,
        vertices: npt.ArrayLike,
        config: KdTreeConfig | None = None,
    ) -> KdTree:
        """Build a point-only tree.

        Raises:
            InvalidInputError: If the vertex array is empty or malformed.
            SplitOutOfRangeError: On a split outside the node box in strict mode.
        """
        return cls._build(as_vertex_array(vertices), None, config or DEFAULT_CONFIG)

    @classmethod
    def from_mesh(cls, mesh: Mesh, config: KdTreeConfig | None = None) -> KdTree:
        """Build a tree whose leaves also hold the triangles overlapping them."""
        return cls._build(mesh.vertices, mesh, config or DEFAULT_CONFIG)

    @classmethod
    def _build(
        cls,
        vertices: npt.NDArray[np.float64],
        mesh: Mesh | None,
        config: KdTreeConfig,
    ) -> KdTree:
        builder = _Builder(vertices, mesh, config)
        root = builder.build()
        logger.debug(
            "Built kd-tree: %d nodes, %d leaves, depth %d over %d vertices",
            builder.node_count,
            builder.leaf_count,
            builder.max_depth,
            vertices.shape[0],
        )
        return cls(
            root,
            vertices,
            mesh,
            config,
            builder.node_count,
            builder.leaf_count,
            builder.max_depth,
        )

    @property
    def has_triangles(self) -> bool:
        return self.mesh is not None

    def nodes(self) -> Iterator[KdNode]:
        """All nodes in pre-order (node_id order)."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            if not node.is_leaf:
                stack.append(node.right)
                stack.append(node.left)

    def leaves(self, node: KdNode | None = None) -> Iterator[KdNode]:
        """Depth-first enumeration of the leaves under a node (default: root)."""
        return iter_leaves(self.root if node is None else node)

    def intersect_ray(self, ray: Ray) -> NodeHitSequence:
        """Nodes hit by a ray, nearest first."""
        return NodeHitSequence(self.root, ray_probe(ray))

    def intersect_triangle(
        self,
        t0: npt.ArrayLike,
        t1: npt.ArrayLike,
        t2: npt.ArrayLike,
        normal: npt.ArrayLike | None = None,
    ) -> NodeHitSequence:
        """Nodes whose box overlaps a triangle."""
        return NodeHitSequence(self.root, triangle_probe(t0, t1, t2, normal))
