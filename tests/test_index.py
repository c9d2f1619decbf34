"""Integration tests for the spatial index interface.

Tests cover:
- build_index for point-only and mesh-aware geometry
- query_ray and query_triangle views
- closest_hit against the analytic sphere and a brute-force scan
- subtree_geometry
"""

import logging
import math

import numpy as np
import pytest

from kdray.core.config import KdTreeConfig
from kdray.core.errors import InvalidInputError
from kdray.core.ray import Ray
from kdray.geometry.mesh import Mesh
from kdray.scene.index import (
    SpatialIndex,
    build_index,
    closest_hit,
    query_ray,
    query_triangle,
    subtree_geometry,
)


@pytest.fixture
def fine_sphere():
    """Unit sphere fine enough to approximate the analytic surface."""
    return Mesh.uv_sphere(radius=1.0, stacks=16, slices=32)


@pytest.fixture
def sphere_index(fine_sphere):
    return build_index(fine_sphere.vertices, fine_sphere.triangles)


def brute_force_closest(mesh, ray):
    best = None
    for i in range(mesh.triangle_count):
        result = ray.intersect_triangle(*mesh.triangle_vertices(i))
        if result is None:
            continue
        point, _ = result
        t = float(np.dot(point - ray.position, ray.direction))
        if best is None or t < best[1]:
            best = (i, t)
    return best


class TestBuildIndex:
    """Tests for build_index."""

    def test_point_only(self, random_points):
        """Test omitting triangles gives an index without a mesh."""
        index = build_index(random_points)
        assert isinstance(index, SpatialIndex)
        assert index.mesh is None
        assert index.vertices.shape == (500, 3)
        assert index.root is index.tree.root

    def test_mesh_aware(self, sphere_mesh):
        """Test passing triangles keeps the mesh and fills leaf triangles."""
        index = build_index(sphere_mesh.vertices, sphere_mesh.triangles)
        assert index.mesh is not None
        assert index.mesh.triangle_count == sphere_mesh.triangle_count
        assert all(leaf.triangle_indices is not None for leaf in index.tree.leaves())

    def test_config_passed_through(self, random_points):
        """Test the construction settings reach the tree."""
        config = KdTreeConfig(leaf_size=4)
        index = build_index(random_points, config=config)
        assert index.tree.config is config
        assert all(len(leaf.vertex_indices) < 4 for leaf in index.tree.leaves())

    def test_invalid_geometry(self):
        """Test malformed inputs raise InvalidInputError."""
        with pytest.raises(InvalidInputError):
            build_index([])
        with pytest.raises(InvalidInputError):
            build_index([(0, 0, 0), (1, 0, 0), (0, 1, 0)], [(0, 1, 5)])

    def test_logs_summary(self, random_points, caplog):
        """Test a one-line summary is logged at INFO."""
        with caplog.at_level(logging.INFO, logger="kdray"):
            build_index(random_points)
        assert "Spatial index ready" in caplog.text


class TestQueries:
    """Tests for query_ray and query_triangle."""

    def test_query_ray_views(self, sphere_index):
        """Test the leaf and first-branch views of a ray query."""
        ray = Ray((-5.0, 0.05, 0.1), (1.0, 0.0, 0.0))
        hits = query_ray(sphere_index, ray)
        leaves = list(hits.leaves_only())
        branch = list(hits.first_branch_only())

        assert leaves
        assert all(hit.is_leaf for hit in leaves)
        assert all(hit.triangle_indices is not None for hit in leaves)
        assert branch[0].node is sphere_index.root
        assert branch[-1].is_leaf
        assert len(branch) == branch[-1].node.depth + 1
        assert any(hit.node is branch[-1].node for hit in leaves)

    def test_query_ray_miss(self, sphere_index):
        """Test a ray missing the mesh yields nothing."""
        ray = Ray((-5.0, 3.0, 0.0), (1.0, 0.0, 0.0))
        assert list(query_ray(sphere_index, ray)) == []

    def test_query_triangle_finds_its_own_leaves(self, sphere_index, fine_sphere):
        """Test a mesh triangle's query returns the leaves holding its centroid."""
        for tri in (0, 100, 500, fine_sphere.triangle_count - 1):
            corners = fine_sphere.triangle_vertices(tri)
            centroid = np.mean(corners, axis=0)
            leaves = list(query_triangle(sphere_index, *corners).leaves_only())
            holding = [hit for hit in leaves if hit.bounding_box.contains_point(centroid)]
            assert holding
            assert all(tri in hit.triangle_indices for hit in holding)
            assert all(hit.distance == 0.0 for hit in leaves)


class TestClosestHit:
    """Tests for closest_hit."""

    def test_matches_analytic_sphere(self, sphere_index):
        """Test the hit lies on the tessellated sphere near the analytic distance."""
        ray = Ray((-5.0, 0.05, 0.1), (1.0, 0.0, 0.0))
        analytic = 5.0 - math.sqrt(1.0 - 0.05**2 - 0.1**2)

        record = closest_hit(sphere_index, ray)

        assert record is not None
        assert analytic - 1e-9 <= record.distance <= analytic + 0.05
        np.testing.assert_allclose(record.point, ray.at(record.distance))
        u, v = record.barycentric
        assert u >= 0.0 and v >= 0.0 and u + v <= 1.0

    def test_matches_brute_force(self, sphere_index, fine_sphere):
        """Test the index agrees with scanning every triangle."""
        rng = np.random.default_rng(51)
        for _ in range(20):
            origin = rng.normal(size=3)
            origin = 4.0 * origin / np.linalg.norm(origin)
            ray = Ray(origin, rng.uniform(-0.4, 0.4, size=3) - origin)

            record = closest_hit(sphere_index, ray)
            expected = brute_force_closest(fine_sphere, ray)

            if expected is None:
                assert record is None
            else:
                assert record is not None
                assert record.distance == pytest.approx(expected[1], abs=1e-9)

    def test_from_inside_sees_only_back_faces(self, sphere_index):
        """Test a ray from the center misses the outward-facing shell."""
        ray = Ray((0.0, 0.0, 0.0), (0.3, 0.2, 1.0))
        assert closest_hit(sphere_index, ray) is None

    def test_miss(self, sphere_index):
        """Test a ray missing the sphere returns None."""
        ray = Ray((-5.0, 3.0, 0.0), (1.0, 0.0, 0.0))
        assert closest_hit(sphere_index, ray) is None

    def test_requires_triangles(self, random_points):
        """Test closest_hit on a point-only index raises InvalidInputError."""
        index = build_index(random_points)
        with pytest.raises(InvalidInputError):
            closest_hit(index, Ray((0.0, 0.0, 0.0), (1.0, 0.0, 0.0)))


class TestSubtreeGeometry:
    """Tests for subtree_geometry."""

    def test_root_covers_everything(self, sphere_index, fine_sphere):
        """Test the root subtree holds every vertex and triangle."""
        geometry = subtree_geometry(sphere_index.root)
        assert geometry.vertex_indices.tolist() == list(range(fine_sphere.vertex_count))
        assert geometry.triangle_indices.tolist() == list(range(fine_sphere.triangle_count))

    def test_point_only(self, random_points):
        """Test point-only subtrees have no triangle indices."""
        index = build_index(random_points)
        geometry = index.subtree_geometry(index.root.left)
        assert geometry.triangle_indices is None
        assert len(geometry.vertex_indices) < len(random_points)
        assert np.all(np.diff(geometry.vertex_indices) > 0)

    def test_leaf(self, sphere_index):
        """Test a leaf's subtree is its own geometry."""
        leaf = next(sphere_index.tree.leaves())
        geometry = sphere_index.subtree_geometry(leaf)
        assert geometry.vertex_indices.tolist() == sorted(leaf.vertex_indices.tolist())
        assert geometry.triangle_indices.tolist() == sorted(leaf.triangle_indices.tolist())
