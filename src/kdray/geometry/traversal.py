"""Lazy traversals over a kd-tree.

Two flavors are provided:

- ``NodeHitSequence``: the nodes whose box a query (ray or triangle) hits,
  produced in ascending distance order from a min-priority queue. Only the
  children of nodes actually hit are ever tested. Each ``iter()`` starts an
  independent traversal with its own queue, so one sequence can be iterated
  many times and from several threads.
- ``iter_leaves``: every leaf under a node, depth-first with a LIFO stack,
  with no query and no ordering guarantee.

``closest_branch()`` does not use the queue. It descends from the root,
stepping at each internal node into the nearer child that the query hits
(the left child on ties), and stops at the leaf it reaches.

Example:
    >>> hits = tree.intersect_ray(ray)
    >>> nearest_leaf = next(iter(hits.leaves()), None)
    >>> for hit in hits.closest_branch():
    ...     print(hit.node.node_id, hit.distance)
"""

from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterator

import numpy as np
import numpy.typing as npt

from kdray.core.ray import Ray

if TYPE_CHECKING:
    from kdray.geometry.aabb import AxisAlignedBoundingBox
    from kdray.geometry.kdtree import KdNode

logger = logging.getLogger(__name__)

# Maps a node box to a traversal distance, or None when the query misses it.
BoxProbe = Callable[["AxisAlignedBoundingBox"], "float | None"]


@dataclass(frozen=True, order=True)
class NodeHit:
    """A node hit by a query, ordered by distance then discovery order.

    Attributes:
        distance: Traversal distance. For rays this is the entry distance
            along the ray, clamped to 0 when the origin is inside the box.
            Triangle queries use 0.0 for every hit.
        sequence: Discovery counter breaking distance ties.
        node: The tree node hit.
    """

    distance: float
    sequence: int
    node: KdNode = field(compare=False)

    @property
    def is_leaf(self) -> bool:
        return self.node.is_leaf

    @property
    def bounding_box(self) -> AxisAlignedBoundingBox:
        return self.node.bounding_box

    @property
    def vertex_indices(self) -> npt.NDArray[np.int64] | None:
        return self.node.vertex_indices

    @property
    def triangle_indices(self) -> npt.NDArray[np.int64] | None:
        return self.node.triangle_indices


def ray_probe(ray: Ray) -> BoxProbe:
    """Box probe for a ray: clamped entry distance, None if missed or behind."""

    def probe(box: AxisAlignedBoundingBox) -> float | None:
        interval = ray.box_interval(box.bounds)
        if interval is None:
            return None
        t_near, t_far = interval
        if t_far < 0.0:
            return None
        return max(t_near, 0.0)

    return probe


def triangle_probe(
    t0: npt.ArrayLike,
    t1: npt.ArrayLike,
    t2: npt.ArrayLike,
    normal: npt.ArrayLike | None = None,
) -> BoxProbe:
    """Box probe for a triangle: 0.0 on overlap, None otherwise."""
    v0 = np.asarray(t0, dtype=np.float64)
    v1 = np.asarray(t1, dtype=np.float64)
    v2 = np.asarray(t2, dtype=np.float64)
    n = None if normal is None else np.asarray(normal, dtype=np.float64)

    def probe(box: AxisAlignedBoundingBox) -> float | None:
        return 0.0 if box.intersect_triangle(v0, v1, v2, n) else None

    return probe


class NodeHitSequence:
    """Lazily evaluated, re-iterable sequence of NodeHit.

    The full sequence contains internal nodes and leaves in non-decreasing
    distance order. ``leaves()`` keeps only leaves; ``closest_branch()``
    yields the single root-to-leaf path through the nearest child.
    """

    def __init__(
        self,
        root: KdNode | None,
        probe: BoxProbe,
        *,
        leaves_only: bool = False,
        first_branch: bool = False,
    ) -> None:
        self._root = root
        self._probe = probe
        self._leaves_only = leaves_only
        self._first_branch = first_branch

    def __iter__(self) -> Iterator[NodeHit]:
        hits = self._descend() if self._first_branch else self._traverse()
        if self._leaves_only:
            hits = (hit for hit in hits if hit.is_leaf)
        return hits

    def leaves(self) -> NodeHitSequence:
        """View yielding only leaf nodes."""
        return NodeHitSequence(
            self._root, self._probe, leaves_only=True, first_branch=self._first_branch
        )

    def closest_branch(self) -> NodeHitSequence:
        """View following only the nearest branch down to one leaf."""
        return NodeHitSequence(
            self._root, self._probe, leaves_only=self._leaves_only, first_branch=True
        )

    leaves_only = leaves
    first_branch_only = closest_branch

    def _traverse(self) -> Iterator[NodeHit]:
        if self._root is None:
            return
        distance = self._probe(self._root.bounding_box)
        if distance is None:
            return

        counter = itertools.count()
        frontier = [NodeHit(distance, next(counter), self._root)]
        while frontier:
            hit = heapq.heappop(frontier)
            node = hit.node
            if node.is_leaf:
                yield hit
                continue

            found = False
            for child in (node.left, node.right):
                child_distance = self._probe(child.bounding_box)
                if child_distance is None:
                    continue
                found = True
                # Never sort a child ahead of its parent under rounding
                heapq.heappush(
                    frontier, NodeHit(max(child_distance, hit.distance), next(counter), child)
                )
            if not found:
                _warn_inconsistent(node)
            yield hit

    def _descend(self) -> Iterator[NodeHit]:
        if self._root is None:
            return
        distance = self._probe(self._root.bounding_box)
        if distance is None:
            return

        counter = itertools.count()
        hit = NodeHit(distance, next(counter), self._root)
        while True:
            yield hit
            node = hit.node
            if node.is_leaf:
                return

            nearest = None
            nearest_distance = 0.0
            for child in (node.left, node.right):
                child_distance = self._probe(child.bounding_box)
                if child_distance is None:
                    continue
                # Strict comparison keeps the left child on ties
                if nearest is None or child_distance < nearest_distance:
                    nearest = child
                    nearest_distance = child_distance
            if nearest is None:
                _warn_inconsistent(node)
                return
            hit = NodeHit(max(nearest_distance, hit.distance), next(counter), nearest)


def _warn_inconsistent(node: KdNode) -> None:
    logger.warning("Node %d is hit but neither child is; split is inconsistent", node.node_id)


def iter_leaves(node: KdNode) -> Iterator[KdNode]:
    """Yield every leaf under a node, depth-first, left before right."""
    stack = [node]
    while stack:
        current = stack.pop()
        if current.is_leaf:
            yield current
        else:
            stack.append(current.right)
            stack.append(current.left)
