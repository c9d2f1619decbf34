"""Geometry module for bounding volumes and spatial acceleration.

Components:
    aabb: Axis-aligned bounding box with splitting and SAT triangle test
    mesh: Validated vertex/triangle snapshot
    kernels: Taichi kernels for batched triangle/box and ray/triangle tests
    kdtree: Median-split kd-tree over vertices and triangles
    traversal: Distance-ordered and depth-first tree traversals

Queries walk the tree on the host and only expand children whose box the
query actually hits; the per-triangle work inside a node runs in Taichi.
"""

from .aabb import AxisAlignedBoundingBox
from .kdtree import KdNode, KdTree
from .mesh import Mesh
from .traversal import NodeHit, NodeHitSequence, iter_leaves

__all__ = [
    "AxisAlignedBoundingBox",
    "Mesh",
    "KdNode",
    "KdTree",
    "NodeHit",
    "NodeHitSequence",
    "iter_leaves",
]
