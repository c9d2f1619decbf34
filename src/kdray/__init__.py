"""Kd-tree spatial index for ray tracing triangle meshes.

This package builds a binary space-partitioning tree over mesh geometry and
answers ray, box and triangle proximity queries against it:
- Median-split kd-tree construction over vertices and triangles
- Lazy traversal ordered by distance along a ray
- Ray/box slab test, Möller–Trumbore ray/triangle test and
  separating-axis triangle/box test
- Batched triangle tests as Taichi kernels

Subpackages:
    core: Vectors, rays, errors and configuration
    geometry: Bounding boxes, meshes, kernels, kd-tree and traversal
    scene: The query interface used by renderers
"""

__version__ = "0.1.0"
