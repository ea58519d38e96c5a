"""Tests for sphere, plane and triangle mesh primitives.

Covers intersection distances, normals, bounding boxes, self-intersection
avoidance and the shared-edge acceptance of adjacent triangles.
"""

from __future__ import annotations

import numpy as np
import pytest

from tracer_core.constants import SMALL_T
from tracer_core.geometry import Ray, normalize, vec3
from tracer_core.primitives import (
    Mesh,
    Plane,
    Sphere,
    intersect_sphere,
    intersect_triangle,
)


# ===================================================================
# FIXTURES
# ===================================================================


@pytest.fixture
def unit_sphere() -> Sphere:
    """Unit sphere at the origin."""
    return Sphere(vec3(0.0, 0.0, 0.0), 1.0, name="ball")


@pytest.fixture
def ground() -> Plane:
    """Plane z = 0 facing +z."""
    return Plane(vec3(0.0, 0.0, 0.0), vec3(0.0, 0.0, 5.0), name="ground")


@pytest.fixture
def square_mesh() -> Mesh:
    """Unit square in z = 0 split along its diagonal into two triangles."""
    vertices = np.array(
        [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0]]
    )
    triangles = np.array([[0, 1, 2], [0, 2, 3]])
    uvs = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
    return Mesh(vertices, triangles, uvs=uvs, name="square")


# ===================================================================
# SPHERE
# ===================================================================


class TestSphere:
    """Test suite for the sphere."""

    def test_head_on_distance_and_normal(self, unit_sphere: Sphere) -> None:
        """Ray from (0,0,-5) along +z hits at dist 4 with normal (0,0,-1)."""
        ray = Ray(vec3(0.0, 0.0, -5.0), vec3(0.0, 0.0, 1.0))
        hit = unit_sphere.intersection(ray)

        assert hit.valid
        assert hit.dist == pytest.approx(4.0)
        assert hit.obj is unit_sphere
        np.testing.assert_allclose(unit_sphere.normal(ray, hit), [0.0, 0.0, -1.0], atol=1e-12)

    def test_origin_inside_returns_far_root(self, unit_sphere: Sphere) -> None:
        """From inside, the near root is negative and the far root is used."""
        ray = Ray(vec3(0.0, 0.0, 0.0), vec3(1.0, 0.0, 0.0))
        hit = unit_sphere.intersection(ray)

        assert hit.dist == pytest.approx(1.0)

    def test_miss(self, unit_sphere: Sphere) -> None:
        ray = Ray(vec3(0.0, 2.0, -5.0), vec3(0.0, 0.0, 1.0))

        assert not unit_sphere.intersection(ray).valid

    def test_sphere_behind(self, unit_sphere: Sphere) -> None:
        ray = Ray(vec3(0.0, 0.0, -5.0), vec3(0.0, 0.0, -1.0))

        assert not unit_sphere.intersection(ray).valid

    def test_self_intersection_avoided(self, unit_sphere: Sphere) -> None:
        """A ray leaving the surface along its normal never hits the sphere."""
        rng = np.random.default_rng(7)
        for _ in range(50):
            n = normalize(rng.normal(size=3))
            ray = Ray(n * 1.0, n)
            hit = unit_sphere.intersection(ray)
            assert not hit.valid, f"Self hit at dist {hit.dist}"

    def test_kernel_respects_small_t(self) -> None:
        """Roots below small_t are rejected by the compiled kernel."""
        # Just inside the surface, heading out: the only forward root is tiny
        t = intersect_sphere(
            vec3(0.0, 0.0, -1.0 + 0.5 * SMALL_T), vec3(0.0, 0.0, -1.0),
            vec3(0.0, 0.0, 0.0), 1.0, SMALL_T,
        )

        assert t == -1.0

    def test_bounding_box(self) -> None:
        sphere = Sphere(vec3(1.0, 2.0, 3.0), 0.5)
        box, infinite = sphere.bounding_box(0)

        assert not infinite
        np.testing.assert_allclose(box.lo, [0.5, 1.5, 2.5])
        np.testing.assert_allclose(box.hi, [1.5, 2.5, 3.5])


# ===================================================================
# PLANE
# ===================================================================


class TestPlane:
    """Test suite for the infinite plane."""

    def test_hit_distance(self, ground: Plane) -> None:
        ray = Ray(vec3(0.3, -2.0, 2.0), vec3(0.0, 0.0, -1.0))
        hit = ground.intersection(ray)

        assert hit.dist == pytest.approx(2.0)

    def test_normal_normalized(self, ground: Plane) -> None:
        """The normal is stored with unit length."""
        ray = Ray(vec3(0.0, 0.0, 1.0), vec3(0.0, 0.0, -1.0))
        normal = ground.normal(ray, ground.intersection(ray))

        np.testing.assert_allclose(normal, [0.0, 0.0, 1.0])

    @pytest.mark.parametrize("height", [-3.0, 0.0, 1e-9, 4.0])
    def test_parallel_ray_never_hits(self, ground: Plane, height: float) -> None:
        """dot(direction, normal) = 0 gives no hit regardless of origin."""
        ray = Ray(vec3(0.0, 0.0, height), vec3(1.0, 2.0, 0.0))

        assert not ground.intersection(ray).valid

    def test_hit_below_small_t_rejected(self, ground: Plane) -> None:
        """A ray leaving the plane's surface does not hit the plane again."""
        ray = Ray(vec3(0.0, 0.0, 0.0), normalize(vec3(0.0, 1.0, -1.0)))

        assert not ground.intersection(ray).valid

    def test_bounding_box_is_infinite(self, ground: Plane) -> None:
        box, infinite = ground.bounding_box(0)

        assert infinite
        assert box.is_full()


# ===================================================================
# MESH
# ===================================================================


class TestMesh:
    """Test suite for triangle meshes."""

    def test_parts_and_normals(self, square_mesh: Mesh) -> None:
        """Each triangle is a part; normals follow the winding order."""
        assert square_mesh.num_parts == 2
        ray = Ray(vec3(0.75, 0.25, 1.0), vec3(0.0, 0.0, -1.0))
        hit = square_mesh.intersection(ray)

        assert hit.part == 0
        assert hit.dist == pytest.approx(1.0)
        np.testing.assert_allclose(square_mesh.normal(ray, hit), [0.0, 0.0, 1.0])

    def test_single_part_query(self, square_mesh: Mesh) -> None:
        """part >= 0 tests only that triangle."""
        ray = Ray(vec3(0.75, 0.25, 1.0), vec3(0.0, 0.0, -1.0))

        assert square_mesh.intersection(ray, 0).valid
        assert not square_mesh.intersection(ray, 1).valid

    def test_nearest_triangle_wins(self) -> None:
        """With two stacked triangles the closer one is reported."""
        vertices = np.array(
            [
                [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0],
                [0.0, 0.0, 0.5], [1.0, 0.0, 0.5], [0.0, 1.0, 0.5],
            ]
        )
        mesh = Mesh(vertices, [[0, 1, 2], [3, 4, 5]])
        hit = mesh.intersection(Ray(vec3(0.2, 0.2, 2.0), vec3(0.0, 0.0, -1.0)))

        assert hit.part == 1
        assert hit.dist == pytest.approx(1.5)

    def test_shared_edge_accepted(self, square_mesh: Mesh) -> None:
        """A ray exactly on the shared diagonal is caught by a triangle."""
        ray = Ray(vec3(0.5, 0.5, 1.0), vec3(0.0, 0.0, -1.0))

        hits = [square_mesh.intersection(ray, part).valid for part in range(2)]

        assert any(hits), "Shared edge must not leak rays"
        assert square_mesh.intersection(ray).valid

    def test_outside_edge_rejected(self) -> None:
        """Points past an edge are rejected even when far from the vertices."""
        a, b, c = vec3(0.0, 0.0, 0.0), vec3(1.0, 0.0, 0.0), vec3(0.0, 1.0, 0.0)
        t, _, _ = intersect_triangle(
            vec3(0.6, 0.6, 1.0), vec3(0.0, 0.0, -1.0), a, b, c, SMALL_T, 1e-12, 1e-4
        )

        assert t == -1.0, "Point (0.6, 0.6) lies outside the triangle"

    def test_parallel_ray_misses(self, square_mesh: Mesh) -> None:
        ray = Ray(vec3(-1.0, 0.5, 0.0), vec3(1.0, 0.0, 0.0))

        assert not square_mesh.intersection(ray).valid

    def test_uv_interpolation(self, square_mesh: Mesh) -> None:
        """Per-vertex uvs are interpolated barycentrically."""
        ray = Ray(vec3(0.75, 0.25, 1.0), vec3(0.0, 0.0, -1.0))
        hit = square_mesh.intersection(ray)

        np.testing.assert_allclose(hit.uv, [0.75, 0.25], atol=1e-12)

    def test_bounding_boxes(self, square_mesh: Mesh) -> None:
        """Per-part boxes are triangle AABBs; part -1 covers all vertices."""
        tri_box, infinite = square_mesh.bounding_box(1)
        all_box, _ = square_mesh.bounding_box(-1)

        assert not infinite
        np.testing.assert_allclose(tri_box.lo, [0.0, 0.0, 0.0])
        np.testing.assert_allclose(tri_box.hi, [1.0, 1.0, 0.0])
        np.testing.assert_allclose(all_box.hi, [1.0, 1.0, 0.0])

    def test_degenerate_triangle_never_hit(self) -> None:
        mesh = Mesh(
            np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.5, 0.0, 0.0]]), [[0, 1, 2]]
        )
        ray = Ray(vec3(0.25, 0.0, 1.0), vec3(0.0, 0.0, -1.0))

        assert not mesh.intersection(ray).valid
        assert mesh.face_areas[0] == 0.0
