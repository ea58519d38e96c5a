"""Tests for the geometry kernel.

Validates the box slab test (inside, miss, behind, parallel axes), box
set operations, rays and hit records.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from tracer_core.geometry import (
    Box,
    Hit,
    Ray,
    magnitude,
    normalize,
    ray_box_interval,
    reflect,
    vec3,
)


# ===================================================================
# FIXTURES
# ===================================================================


@pytest.fixture
def unit_box() -> Box:
    """The box [0, 1]^3."""
    return Box(vec3(0.0, 0.0, 0.0), vec3(1.0, 1.0, 1.0))


# ===================================================================
# SLAB TEST
# ===================================================================


class TestBoxIntersection:
    """Test suite for the ray-box slab test."""

    def test_hit_from_outside(self, unit_box: Box) -> None:
        """Ray entering the box reports the entry distance."""
        ray = Ray(vec3(0.5, 0.5, 3.0), vec3(0.0, 0.0, -1.0))
        hit, t = unit_box.intersect_ray(ray)

        assert hit
        assert t == pytest.approx(2.0)

    def test_origin_inside_reports_exit(self, unit_box: Box) -> None:
        """Ray starting inside the box reports tmax (the exit point)."""
        ray = Ray(vec3(0.5, 0.5, 0.25), vec3(0.0, 0.0, 1.0))
        hit, t = unit_box.intersect_ray(ray)

        assert hit
        assert t == pytest.approx(0.75), f"Expected exit distance 0.75, got {t}"

    def test_miss_on_one_axis(self, unit_box: Box) -> None:
        """Ray passing beside the box misses."""
        ray = Ray(vec3(2.0, 0.5, 3.0), vec3(0.0, 0.0, -1.0))
        hit, t = unit_box.intersect_ray(ray)

        assert not hit
        assert t == -1.0

    def test_box_behind_ray(self, unit_box: Box) -> None:
        """Box entirely behind the ray (tmax < 0) is not hit."""
        ray = Ray(vec3(0.5, 0.5, 3.0), vec3(0.0, 0.0, 1.0))
        hit, _ = unit_box.intersect_ray(ray)

        assert not hit, "Box behind the origin must not register"

    def test_parallel_axis_outside_slab(self, unit_box: Box) -> None:
        """Direction component zero with origin outside that slab misses."""
        ray = Ray(vec3(-1.0, 2.0, 0.5), vec3(1.0, 0.0, 0.0))
        hit, _ = unit_box.intersect_ray(ray)

        assert not hit

    def test_parallel_axis_inside_slab(self, unit_box: Box) -> None:
        """Direction component zero with origin inside that slab can hit."""
        ray = Ray(vec3(-1.0, 0.5, 0.5), vec3(1.0, 0.0, 0.0))
        hit, t = unit_box.intersect_ray(ray)

        assert hit
        assert t == pytest.approx(1.0)

    def test_interval_kernel_miss_sentinel(self, unit_box: Box) -> None:
        """The compiled kernel returns (inf, -inf) on a miss."""
        tmin, tmax = ray_box_interval(
            vec3(5.0, 5.0, 5.0), vec3(1.0, 0.0, 0.0), unit_box.lo, unit_box.hi, 1e-12
        )

        assert tmin == math.inf and tmax == -math.inf

    def test_interval_kernel_not_clipped(self, unit_box: Box) -> None:
        """The interval keeps a negative entry for origins inside the box."""
        tmin, tmax = ray_box_interval(
            vec3(0.5, 0.5, 0.5), vec3(0.0, 0.0, 1.0), unit_box.lo, unit_box.hi, 1e-12
        )

        assert tmin == pytest.approx(-0.5)
        assert tmax == pytest.approx(0.5)

    def test_diagonal_ray(self, unit_box: Box) -> None:
        """Diagonal ray enters through the corner region."""
        ray = Ray(vec3(-1.0, -1.0, -1.0), normalize(vec3(1.0, 1.0, 1.0)))
        hit, t = unit_box.intersect_ray(ray)

        assert hit
        assert t == pytest.approx(math.sqrt(3.0))


# ===================================================================
# BOX SET OPERATIONS
# ===================================================================


class TestBoxOperations:
    """Test empty/full boxes, growth, union and intersection."""

    def test_empty_box_grows_to_point(self) -> None:
        """Including one point in an empty box gives a degenerate box."""
        box = Box.empty()
        assert box.is_empty()

        box.include_point(vec3(1.0, 2.0, 3.0))

        assert not box.is_empty()
        np.testing.assert_array_equal(box.lo, [1.0, 2.0, 3.0])
        np.testing.assert_array_equal(box.hi, [1.0, 2.0, 3.0])

    def test_include_point_is_monotonic(self) -> None:
        """Growing never shrinks the box."""
        box = Box.empty()
        box.include_point(vec3(0.0, 0.0, 0.0))
        box.include_point(vec3(2.0, -1.0, 1.0))
        box.include_point(vec3(1.0, 0.0, 0.5))

        np.testing.assert_array_equal(box.lo, [0.0, -1.0, 0.0])
        np.testing.assert_array_equal(box.hi, [2.0, 0.0, 1.0])

    def test_full_box(self) -> None:
        """The full box contains everything."""
        box = Box.full()

        assert box.is_full()
        assert box.test_inside(vec3(1e300, -1e300, 0.0))

    def test_union_and_intersection(self, unit_box: Box) -> None:
        """Union covers both boxes; intersection is the overlap."""
        other = Box(vec3(0.5, 0.5, 0.5), vec3(2.0, 2.0, 2.0))

        union = unit_box.union(other)
        overlap = unit_box.intersection(other)

        np.testing.assert_array_equal(union.lo, [0.0, 0.0, 0.0])
        np.testing.assert_array_equal(union.hi, [2.0, 2.0, 2.0])
        np.testing.assert_array_equal(overlap.lo, [0.5, 0.5, 0.5])
        np.testing.assert_array_equal(overlap.hi, [1.0, 1.0, 1.0])

    def test_disjoint_intersection_is_empty(self, unit_box: Box) -> None:
        """Boxes separated on one axis have an empty intersection."""
        other = Box(vec3(0.0, 0.0, 5.0), vec3(1.0, 1.0, 6.0))

        assert unit_box.intersection(other).is_empty()

    def test_test_inside(self, unit_box: Box) -> None:
        assert unit_box.test_inside(vec3(0.5, 1.0, 0.0))
        assert not unit_box.test_inside(vec3(0.5, 1.5, 0.0))


# ===================================================================
# RAYS, HITS, VECTORS
# ===================================================================


class TestRayAndHit:
    """Test ray evaluation and hit records."""

    def test_ray_point(self) -> None:
        ray = Ray(vec3(1.0, 0.0, 0.0), vec3(0.0, 2.0, 0.0))

        np.testing.assert_allclose(ray.point(1.5), [1.0, 3.0, 0.0])

    def test_ray_direction_not_normalized(self) -> None:
        """Construction keeps the direction as given."""
        ray = Ray(vec3(0.0, 0.0, 0.0), vec3(0.0, 0.0, 4.0))

        assert magnitude(ray.direction) == pytest.approx(4.0)
        assert magnitude(ray.normalized().direction) == pytest.approx(1.0)

    def test_bad_vector_shape(self) -> None:
        with pytest.raises(ValueError):
            Ray([0.0, 0.0], [1.0, 0.0, 0.0])

    def test_hit_validity_and_ordering(self) -> None:
        """Hits compare only by distance; negative distance is no hit."""
        near = Hit(dist=1.0, obj="a", part=3)
        far = Hit(dist=2.0, obj="b")

        assert near.valid and far.valid
        assert not Hit.none().valid
        assert near < far
        assert Hit(dist=1.0, obj="x") == near

    def test_reflect(self) -> None:
        """Mirror reflection about +z flips the z component."""
        r = reflect(vec3(1.0, 0.0, -1.0), vec3(0.0, 0.0, 1.0))

        np.testing.assert_allclose(r, [1.0, 0.0, 1.0])
