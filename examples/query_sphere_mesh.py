#!/usr/bin/env python3
"""Query a kd-tree built over a tessellated sphere.

This script builds a mesh-aware spatial index over a UV sphere, casts a fan
of rays at it and reports, per ray, how many leaves the traversal visits,
the first branch it descends and the closest triangle hit.

Usage:
    python -m examples.query_sphere_mesh [options]

Options:
    --stacks STACKS     Latitude bands of the sphere (default: 32)
    --slices SLICES     Longitude segments of the sphere (default: 64)
    --rays RAYS         Number of rays to cast (default: 8)
    --leaf-size SIZE    Leaf size threshold (default: 10)
    --log-level LEVEL   Log level for the kdray logger (default: INFO)

Example:
    python -m examples.query_sphere_mesh --stacks 16 --slices 32 --rays 4
"""

from __future__ import annotations

import argparse
import sys
import time

import numpy as np
import taichi as ti


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Query a kd-tree built over a tessellated sphere.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--stacks",
        type=int,
        default=32,
        help="Latitude bands of the sphere (default: 32)",
    )
    parser.add_argument(
        "--slices",
        type=int,
        default=64,
        help="Longitude segments of the sphere (default: 64)",
    )
    parser.add_argument(
        "--rays",
        type=int,
        default=8,
        help="Number of rays to cast (default: 8)",
    )
    parser.add_argument(
        "--leaf-size",
        type=int,
        default=10,
        help="Leaf size threshold (default: 10)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Log level for the kdray logger (default: INFO)",
    )
    return parser.parse_args()


def query_sphere_mesh(
    stacks: int = 32,
    slices: int = 64,
    num_rays: int = 8,
    leaf_size: int = 10,
) -> int:
    """Build the index and print one line per ray.

    Args:
        stacks: Latitude bands of the sphere.
        slices: Longitude segments of the sphere.
        num_rays: Number of rays to cast from a ring around the sphere.
        leaf_size: Leaf size threshold for construction.

    Returns:
        Number of rays that hit the sphere.
    """
    # Lazy imports to allow Taichi initialization first
    from kdray.core.config import KdTreeConfig
    from kdray.core.ray import Ray
    from kdray.geometry.mesh import Mesh
    from kdray.scene.index import build_index, closest_hit, query_ray

    mesh = Mesh.uv_sphere(radius=1.0, stacks=stacks, slices=slices)
    print(f"Sphere mesh: {mesh.vertex_count} vertices, {mesh.triangle_count} triangles")

    start_time = time.time()
    index = build_index(mesh.vertices, mesh.triangles, KdTreeConfig(leaf_size=leaf_size))
    print(
        f"Built index in {time.time() - start_time:.2f}s: "
        f"{index.tree.node_count} nodes, {index.tree.leaf_count} leaves, "
        f"depth {index.tree.depth}"
    )

    hits = 0
    for k in range(num_rays):
        # Rays start on a ring of radius 3 and aim slightly off the center
        angle = 2.0 * np.pi * k / num_rays
        origin = (3.0 * np.cos(angle), 3.0 * np.sin(angle), 0.4 * np.sin(3.0 * angle))
        target = (0.0, 0.0, 0.6 * np.cos(angle))
        ray = Ray(origin, np.subtract(target, origin))

        sequence = query_ray(index, ray)
        leaves = sum(1 for _ in sequence.leaves_only())
        branch = [hit.node.node_id for hit in sequence.first_branch_only()]
        record = closest_hit(index, ray)

        if record is None:
            print(f"  ray {k}: miss ({leaves} leaves)")
            continue
        hits += 1
        x, y, z = record.point
        print(
            f"  ray {k}: triangle {record.triangle_index} at t={record.distance:.4f} "
            f"({x:.3f}, {y:.3f}, {z:.3f}); {leaves} leaves, first branch {branch}"
        )

    return hits


def main() -> int:
    """Main entry point."""
    args = parse_args()

    # Kernels use float64, which the CPU backend supports everywhere
    ti.init(arch=ti.cpu, default_fp=ti.f64)

    from kdray.core.config import setup_logging

    setup_logging(args.log_level)

    try:
        hits = query_sphere_mesh(
            stacks=args.stacks,
            slices=args.slices,
            num_rays=args.rays,
            leaf_size=args.leaf_size,
        )
        print(f"{hits}/{args.rays} rays hit the sphere")
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
