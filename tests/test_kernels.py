"""Unit tests for the Taichi geometry kernels.

Tests cover:
- Batched triangle/box classification against the host SAT test
- Batched ray/triangle intersection against the host Möller–Trumbore test
- Empty candidate lists
- Runtime initialization on first launch
"""

import os
import subprocess
import sys
from pathlib import Path

import numpy as np
import pytest
import taichi as ti

from kdray.core.ray import Ray
from kdray.geometry.aabb import AxisAlignedBoundingBox
from kdray.geometry.kernels import classify_triangles, ensure_runtime, intersect_ray_triangles

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


def random_soup(seed, count=300, spread=4.0, size=1.0):
    """Random triangle soup as kernel-ready vertex and triangle arrays."""
    rng = np.random.default_rng(seed)
    anchors = rng.uniform(-spread, spread, size=(count, 1, 3))
    corners = anchors + rng.uniform(-size, size, size=(count, 3, 3))
    vertices = np.ascontiguousarray(corners.reshape(-1, 3))
    triangles = np.ascontiguousarray(np.arange(count * 3, dtype=np.int64).reshape(count, 3))
    return vertices, triangles


class TestClassifyTriangles:
    """Tests for classify_triangles."""

    def test_matches_host_sat(self):
        """Test the kernel agrees with AxisAlignedBoundingBox.intersect_triangle."""
        vertices, triangles = random_soup(seed=21)
        box = AxisAlignedBoundingBox.from_bounds((-1.0, -0.5, -2.0), (1.5, 1.0, 0.5))
        candidates = np.arange(len(triangles), dtype=np.int64)

        mask = classify_triangles(vertices, triangles, candidates, box.bounds[0], box.bounds[1])

        expected = [box.intersect_triangle(*vertices[tri]) for tri in triangles]
        assert mask.tolist() == expected
        assert 0 < mask.sum() < len(triangles)

    def test_candidate_subset(self):
        """Test the mask is aligned with the candidate list, not the mesh."""
        vertices = np.array(
            [[0.2, 0.2, 0.2], [0.8, 0.2, 0.2], [0.2, 0.8, 0.2],
             [5.0, 5.0, 5.0], [6.0, 5.0, 5.0], [5.0, 6.0, 5.0]]
        )
        triangles = np.array([[0, 1, 2], [3, 4, 5]], dtype=np.int64)
        mask = classify_triangles(
            vertices, triangles, np.array([1, 0, 1], dtype=np.int64),
            np.zeros(3), np.ones(3),
        )
        assert mask.tolist() == [False, True, False]

    def test_flat_box(self):
        """Test classification against a zero-thickness box."""
        vertices, triangles = random_soup(seed=22, count=200, spread=2.0)
        box = AxisAlignedBoundingBox.from_bounds((-2.0, -2.0, 0.0), (2.0, 2.0, 0.0))
        candidates = np.arange(len(triangles), dtype=np.int64)

        mask = classify_triangles(vertices, triangles, candidates, box.bounds[0], box.bounds[1])

        expected = [box.intersect_triangle(*vertices[tri]) for tri in triangles]
        assert mask.tolist() == expected

    def test_empty_candidates(self):
        """Test no candidates gives an empty mask without launching."""
        vertices, triangles = random_soup(seed=23, count=4)
        mask = classify_triangles(
            vertices, triangles, np.zeros(0, dtype=np.int64), np.zeros(3), np.ones(3)
        )
        assert mask.shape == (0,)


class TestIntersectRayTriangles:
    """Tests for intersect_ray_triangles."""

    def test_single_triangle(self):
        """Test distance and barycentrics for a known hit."""
        vertices = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        triangles = np.array([[0, 1, 2]], dtype=np.int64)
        ray = Ray((0.7, 0.1, 2.0), (0.0, 0.0, -1.0))

        hit, t, uv = intersect_ray_triangles(
            ray.position, ray.direction, vertices, triangles, np.array([0], dtype=np.int64)
        )

        assert hit.tolist() == [True]
        assert t[0] == pytest.approx(2.0)
        np.testing.assert_allclose(uv[0], [0.7, 0.1])

    def test_back_face_rejected(self):
        """Test the kernel is single-sided like the host test."""
        vertices = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        triangles = np.array([[0, 1, 2]], dtype=np.int64)
        ray = Ray((0.25, 0.25, -1.0), (0.0, 0.0, 1.0))

        hit, t, _ = intersect_ray_triangles(
            ray.position, ray.direction, vertices, triangles, np.array([0], dtype=np.int64)
        )

        assert hit.tolist() == [False]
        assert t[0] == 0.0

    def test_matches_host(self):
        """Test the kernel agrees with Ray.intersect_triangle on random rays."""
        vertices, triangles = random_soup(seed=24, count=200, spread=2.0, size=1.5)
        candidates = np.arange(len(triangles), dtype=np.int64)
        rng = np.random.default_rng(25)

        for _ in range(10):
            origin = rng.uniform(-6.0, 6.0, size=3)
            ray = Ray(origin, -origin + rng.normal(scale=0.5, size=3))
            hit, t, uv = intersect_ray_triangles(
                ray.position, ray.direction, vertices, triangles, candidates
            )
            for k, tri in enumerate(triangles):
                expected = ray.intersect_triangle(*vertices[tri])
                assert hit[k] == (expected is not None)
                if expected is not None:
                    point, (u, v) = expected
                    np.testing.assert_allclose(ray.at(t[k]), point, atol=1e-9)
                    assert uv[k, 0] == pytest.approx(u, abs=1e-9)
                    assert uv[k, 1] == pytest.approx(v, abs=1e-9)

    def test_empty_candidates(self):
        """Test no candidates gives empty outputs."""
        vertices, triangles = random_soup(seed=26, count=4)
        hit, t, uv = intersect_ray_triangles(
            np.zeros(3), np.array([0.0, 0.0, 1.0]), vertices, triangles,
            np.zeros(0, dtype=np.int64),
        )
        assert hit.shape == (0,)
        assert t.shape == (0,)
        assert uv.shape == (0, 2)


class TestRuntimeInitialization:
    """Tests for launching kernels without calling ti.init first."""

    def test_existing_runtime_kept(self, monkeypatch):
        """Test ensure_runtime does not re-initialize a live runtime."""
        def fail(*args, **kwargs):
            raise AssertionError("ti.init called with a runtime present")

        monkeypatch.setattr(ti, "init", fail)
        ensure_runtime()

    def test_query_without_init(self):
        """Test a fresh interpreter can build and query a mesh index directly."""
        script = (
            "from kdray.core.ray import Ray\n"
            "from kdray.geometry.mesh import Mesh\n"
            "from kdray.scene.index import build_index, closest_hit\n"
            "mesh = Mesh.uv_sphere(radius=1.0, stacks=6, slices=8)\n"
            "index = build_index(mesh.vertices, mesh.triangles)\n"
            "record = closest_hit(index, Ray((-5.0, 0.05, 0.1), (1.0, 0.0, 0.0)))\n"
            "print(record.distance)\n"
        )
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(
            [str(SRC_DIR)] + ([env["PYTHONPATH"]] if env.get("PYTHONPATH") else [])
        )

        result = subprocess.run(
            [sys.executable, "-c", script],
            env=env,
            capture_output=True,
            text=True,
            timeout=300,
        )

        assert result.returncode == 0, result.stderr
        # Taichi prints its banner first; the distance is the last line
        distance = float(result.stdout.strip().splitlines()[-1])
        assert 4.0 < distance < 4.2
