"""Scene module: the query interface consumed by renderers.

Components:
    index: SpatialIndex, build_index and the ray/triangle queries
"""

from .index import (
    SpatialIndex,
    SubtreeGeometry,
    TriangleHit,
    build_index,
    closest_hit,
    query_ray,
    query_triangle,
    subtree_geometry,
)

__all__ = [
    "SpatialIndex",
    "SubtreeGeometry",
    "TriangleHit",
    "build_index",
    "query_ray",
    "query_triangle",
    "closest_hit",
    "subtree_geometry",
]
