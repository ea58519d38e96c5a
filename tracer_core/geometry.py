"""Geometry kernel: vectors, axis-aligned boxes, rays, and hit records.

Vectors are plain ``numpy.ndarray`` values of shape (3,) (or (2,) for
texture coordinates) with dtype float64. Boxes use the slab method for
ray intersection; the inner loop is compiled with Numba ``@njit`` and is
shared with the uniform grid traversal.

Design Notes
------------
- **Empty box**: ``lo = +inf``, ``hi = -inf`` on every axis, so
  ``include_point`` grows it monotonically from nothing.
- **Full box**: ``lo = -inf``, ``hi = +inf``; the bounding box of an object
  with no finite extent (planes).
- **Hit validity**: encoded as ``dist < 0`` meaning "no hit".
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from numba import njit

from tracer_core.constants import PARALLEL_EPSILON

_INF: float = math.inf


# ===================================================================
# VECTOR HELPERS
# ===================================================================


def vec3(x: float, y: float, z: float) -> np.ndarray:
    """Build a float64 3-vector."""
    return np.array([x, y, z], dtype=np.float64)


def vec2(u: float, v: float) -> np.ndarray:
    """Build a float64 2-vector."""
    return np.array([u, v], dtype=np.float64)


def as_vec3(value: Any) -> np.ndarray:
    """Coerce a sequence of three numbers to a contiguous float64 vector."""
    arr = np.ascontiguousarray(value, dtype=np.float64)
    if arr.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {arr.shape}")
    return arr


def magnitude(v: np.ndarray) -> float:
    return float(math.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2]))


def normalize(v: np.ndarray) -> np.ndarray:
    """Return ``v / |v|``. The caller guarantees ``|v| > 0``."""
    return v / magnitude(v)


def reflect(v: np.ndarray, n: np.ndarray) -> np.ndarray:
    """Mirror ``v`` about the unit normal ``n``: ``v - 2 (v . n) n``."""
    return v - 2.0 * float(np.dot(v, n)) * n


# ===================================================================
# RAY-AABB INTERSECTION — Slab Method (Numba JIT)
# ===================================================================


@njit(cache=True, fastmath=False)
def ray_box_interval(
    origin: np.ndarray,
    direction: np.ndarray,
    lo: np.ndarray,
    hi: np.ndarray,
    epsilon: float,
) -> tuple[float, float]:
    """Parametric interval over which a ray lies inside a box.

    Parameters
    ----------
    origin, direction : np.ndarray
        Ray endpoint and direction. Shape: (3,).
    lo, hi : np.ndarray
        Box corners. Shape: (3,).
    epsilon : float
        Direction components with ``|d| < epsilon`` are treated as parallel
        to that pair of slabs.

    Returns
    -------
    (tmin, tmax) : tuple[float, float]
        The interval, or ``(inf, -inf)`` if the ray's line misses the box.
        The interval is not clipped to ``t >= 0``.
    """
    tmin = -_INF
    tmax = _INF

    for axis in range(3):
        d = direction[axis]
        if d > -epsilon and d < epsilon:
            # Parallel: the origin must already lie inside this slab
            if origin[axis] < lo[axis] or origin[axis] > hi[axis]:
                return _INF, -_INF
            continue

        inv_d = 1.0 / d
        t1 = (lo[axis] - origin[axis]) * inv_d
        t2 = (hi[axis] - origin[axis]) * inv_d

        # Swap so t1 <= t2
        if t1 > t2:
            t1, t2 = t2, t1

        if t1 > tmin:
            tmin = t1
        if t2 < tmax:
            tmax = t2

        if tmax < tmin:
            return _INF, -_INF

    return tmin, tmax


# ===================================================================
# RAY
# ===================================================================


class Ray:
    """A ray ``endpoint + t * direction``.

    The direction is stored as given. Code that interprets ``t`` as a
    physical distance must build the ray from a unit direction.
    """

    __slots__ = ("endpoint", "direction")

    def __init__(self, endpoint: Any, direction: Any) -> None:
        self.endpoint = as_vec3(endpoint)
        self.direction = as_vec3(direction)

    def point(self, t: float) -> np.ndarray:
        """Point at parameter ``t`` along the ray."""
        return self.endpoint + self.direction * t

    def normalized(self) -> Ray:
        """Copy of this ray with a unit-length direction."""
        return Ray(self.endpoint, normalize(self.direction))

    def __repr__(self) -> str:
        return f"Ray(endpoint={self.endpoint.tolist()}, direction={self.direction.tolist()})"


# ===================================================================
# HIT RECORD
# ===================================================================


@dataclass(frozen=True, order=True)
class Hit:
    """Result of a single intersection test.

    Attributes
    ----------
    dist : float
        Parametric distance along the ray. Negative means no hit.
    obj : SceneObject or None
        Object that was hit.
    part : int
        Sub-part that was hit (triangle index), or -1 for the whole object.
    uv : np.ndarray
        Texture coordinates at the hit. Shape: (2,).
    """

    dist: float
    obj: Any = field(default=None, compare=False)
    part: int = field(default=-1, compare=False)
    uv: np.ndarray = field(default_factory=lambda: np.zeros(2), compare=False, repr=False)

    @property
    def valid(self) -> bool:
        return self.dist >= 0.0

    @staticmethod
    def none() -> Hit:
        """The invalid hit."""
        return Hit(dist=-1.0)


# ===================================================================
# AXIS-ALIGNED BOX
# ===================================================================


class Box:
    """Axis-aligned bounding box with ``lo`` and ``hi`` corners."""

    __slots__ = ("lo", "hi")

    def __init__(self, lo: Any, hi: Any) -> None:
        self.lo = as_vec3(lo)
        self.hi = as_vec3(hi)

    @classmethod
    def empty(cls) -> Box:
        """Box containing nothing; grows with ``include_point``."""
        return cls(np.full(3, _INF), np.full(3, -_INF))

    @classmethod
    def full(cls) -> Box:
        """Box containing everything."""
        return cls(np.full(3, -_INF), np.full(3, _INF))

    def is_empty(self) -> bool:
        return bool(np.any(self.lo > self.hi))

    def is_full(self) -> bool:
        return bool(np.all(self.lo == -_INF) and np.all(self.hi == _INF))

    def include_point(self, pt: Any) -> None:
        """Enlarge the box (in place) so that it contains ``pt``."""
        pt = np.asarray(pt, dtype=np.float64)
        np.minimum(self.lo, pt, out=self.lo)
        np.maximum(self.hi, pt, out=self.hi)

    def union(self, other: Box) -> Box:
        """Smallest box containing both boxes."""
        return Box(np.minimum(self.lo, other.lo), np.maximum(self.hi, other.hi))

    def intersection(self, other: Box) -> Box:
        """Overlap of both boxes, or an empty box if they are disjoint."""
        lo = np.maximum(self.lo, other.lo)
        hi = np.minimum(self.hi, other.hi)
        if np.any(lo > hi):
            return Box.empty()
        return Box(lo, hi)

    def test_inside(self, pt: Any) -> bool:
        pt = np.asarray(pt, dtype=np.float64)
        return bool(np.all(pt >= self.lo) and np.all(pt <= self.hi))

    def extent(self) -> np.ndarray:
        return self.hi - self.lo

    def intersect_ray(
        self, ray: Ray, epsilon: float = PARALLEL_EPSILON
    ) -> tuple[bool, float]:
        """Slab test against a ray.

        Returns
        -------
        (hit, t) : tuple[bool, float]
            ``t`` is the nearest forward crossing. If the ray starts inside
            the box the exit distance is reported instead of the (negative)
            entry distance. ``(False, -1.0)`` on a miss, including boxes that
            lie entirely behind the ray.
        """
        tmin, tmax = ray_box_interval(ray.endpoint, ray.direction, self.lo, self.hi, epsilon)
        if tmax < tmin or tmax < 0.0:
            return False, -1.0
        return True, (tmax if tmin < 0.0 else tmin)

    def __repr__(self) -> str:
        return f"Box(lo={self.lo.tolist()}, hi={self.hi.tolist()})"
