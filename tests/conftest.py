"""Pytest configuration for kdray tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import numpy as np
import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts. Kernels work in
    float64 so their results match the host-side geometry exactly.
    """
    ti.init(arch=ti.cpu, random_seed=42, default_fp=ti.f64)
    yield


@pytest.fixture
def unit_box():
    """The box (0, 0, 0)-(1, 1, 1)."""
    from kdray.geometry.aabb import AxisAlignedBoundingBox

    return AxisAlignedBoundingBox.from_bounds((0.0, 0.0, 0.0), (1.0, 1.0, 1.0))


@pytest.fixture
def square_and_scatter_points():
    """Unit square at z=0 plus 20 random points in a 10x10x10 cube."""
    rng = np.random.default_rng(7)
    square = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [1.0, 1.0, 0.0],
            [0.0, 1.0, 0.0],
        ]
    )
    scatter = rng.uniform(0.0, 10.0, size=(20, 3))
    return np.vstack([square, scatter])


@pytest.fixture
def random_points():
    """500 random points in the unit cube."""
    rng = np.random.default_rng(1234)
    return rng.random((500, 3))


@pytest.fixture
def sphere_mesh():
    """Unit sphere at the origin, coarse enough to build quickly."""
    from kdray.geometry.mesh import Mesh

    return Mesh.uv_sphere(radius=1.0, stacks=8, slices=12)
