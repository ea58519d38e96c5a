"""Intersectable scene objects: spheres, planes, and triangle meshes.

Every object exposes the same three queries:

- ``intersection(ray, part)`` → :class:`Hit` (``part = -1`` tests every
  sub-part and keeps the nearest; ``part >= 0`` tests just that one),
- ``normal(ray, hit)`` → unit surface normal at the hit,
- ``bounding_box(part)`` → ``(Box, is_infinite)``.

The arithmetic inner loops are compiled with Numba ``@njit(cache=True)``
and follow the convention of returning ``-1.0`` for "no intersection".
``fastmath=False`` keeps the epsilon comparisons in source order.

Mesh Notes
----------
Triangle hits are accepted when every barycentric weight is at least
``-weight_tolerance``. The weights are signed sub-triangle area ratios::

    alpha = ((B - P) x (C - P)) . N / |N|^2
    beta  = ((C - P) x (A - P)) . N / |N|^2
    gamma = 1 - alpha - beta

where ``N = (B - A) x (C - A)``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import numpy as np
from numba import njit

from tracer_core.constants import PARALLEL_EPSILON, SMALL_T, WEIGHT_TOLERANCE
from tracer_core.geometry import Box, Hit, Ray, as_vec3, normalize

logger = logging.getLogger(__name__)


# ===================================================================
# INTERSECTION KERNELS — Numba JIT
# ===================================================================


@njit(cache=True, fastmath=False)
def intersect_sphere(
    origin: np.ndarray,
    direction: np.ndarray,
    center: np.ndarray,
    radius: float,
    small_t: float,
) -> float:
    """Nearest root ``t >= small_t`` of ``|o + t d - c| = r``, or -1.0."""
    oc_x = origin[0] - center[0]
    oc_y = origin[1] - center[1]
    oc_z = origin[2] - center[2]

    a = direction[0] * direction[0] + direction[1] * direction[1] + direction[2] * direction[2]
    if a == 0.0:
        return -1.0
    b = 2.0 * (direction[0] * oc_x + direction[1] * oc_y + direction[2] * oc_z)
    c = oc_x * oc_x + oc_y * oc_y + oc_z * oc_z - radius * radius

    discriminant = b * b - 4.0 * a * c
    if discriminant < 0.0:
        return -1.0

    sqrt_d = np.sqrt(discriminant)
    t1 = (-b - sqrt_d) / (2.0 * a)
    t2 = (-b + sqrt_d) / (2.0 * a)

    # t1 <= t2 since a > 0
    if t1 >= small_t:
        return t1
    if t2 >= small_t:
        return t2
    return -1.0


@njit(cache=True, fastmath=False)
def intersect_plane(
    origin: np.ndarray,
    direction: np.ndarray,
    point: np.ndarray,
    normal: np.ndarray,
    small_t: float,
    epsilon: float,
) -> float:
    """Distance to the plane through ``point`` with ``normal``, or -1.0."""
    u_dot_n = direction[0] * normal[0] + direction[1] * normal[1] + direction[2] * normal[2]

    # Ray parallel to the plane
    if u_dot_n > -epsilon and u_dot_n < epsilon:
        return -1.0

    t = (
        (point[0] - origin[0]) * normal[0]
        + (point[1] - origin[1]) * normal[1]
        + (point[2] - origin[2]) * normal[2]
    ) / u_dot_n

    if t > small_t:
        return t
    return -1.0


@njit(cache=True, fastmath=False)
def intersect_triangle(
    origin: np.ndarray,
    direction: np.ndarray,
    a: np.ndarray,
    b: np.ndarray,
    c: np.ndarray,
    small_t: float,
    epsilon: float,
    weight_tolerance: float,
) -> tuple[float, float, float]:
    """Plane + barycentric ray/triangle test.

    Returns
    -------
    (t, alpha, beta) : tuple[float, float, float]
        Hit distance and the barycentric weights of vertices ``a`` and
        ``b`` (the weight of ``c`` is ``1 - alpha - beta``). ``t = -1.0``
        on a miss.
    """
    # Edge vectors
    e1_x = b[0] - a[0]
    e1_y = b[1] - a[1]
    e1_z = b[2] - a[2]

    e2_x = c[0] - a[0]
    e2_y = c[1] - a[1]
    e2_z = c[2] - a[2]

    # N = e1 × e2 (magnitude = 2 * area)
    n_x = e1_y * e2_z - e1_z * e2_y
    n_y = e1_z * e2_x - e1_x * e2_z
    n_z = e1_x * e2_y - e1_y * e2_x

    denominator = n_x * direction[0] + n_y * direction[1] + n_z * direction[2]
    if denominator > -epsilon and denominator < epsilon:
        return -1.0, 0.0, 0.0

    t = (
        (a[0] - origin[0]) * n_x + (a[1] - origin[1]) * n_y + (a[2] - origin[2]) * n_z
    ) / denominator
    if t < small_t:
        return -1.0, 0.0, 0.0

    # Intersection point
    p_x = origin[0] + direction[0] * t
    p_y = origin[1] + direction[1] * t
    p_z = origin[2] + direction[2] * t

    n_len2 = n_x * n_x + n_y * n_y + n_z * n_z

    # alpha: signed area of (P, B, C)
    bp_x = b[0] - p_x
    bp_y = b[1] - p_y
    bp_z = b[2] - p_z
    cp_x = c[0] - p_x
    cp_y = c[1] - p_y
    cp_z = c[2] - p_z
    alpha = (
        (bp_y * cp_z - bp_z * cp_y) * n_x
        + (bp_z * cp_x - bp_x * cp_z) * n_y
        + (bp_x * cp_y - bp_y * cp_x) * n_z
    ) / n_len2

    # beta: signed area of (P, C, A)
    ap_x = a[0] - p_x
    ap_y = a[1] - p_y
    ap_z = a[2] - p_z
    beta = (
        (cp_y * ap_z - cp_z * ap_y) * n_x
        + (cp_z * ap_x - cp_x * ap_z) * n_y
        + (cp_x * ap_y - cp_y * ap_x) * n_z
    ) / n_len2

    gamma = 1.0 - alpha - beta

    if alpha < -weight_tolerance or beta < -weight_tolerance or gamma < -weight_tolerance:
        return -1.0, 0.0, 0.0

    return t, alpha, beta


@njit(cache=True, fastmath=False)
def intersect_triangles(
    origin: np.ndarray,
    direction: np.ndarray,
    tri_verts: np.ndarray,
    small_t: float,
    epsilon: float,
    weight_tolerance: float,
) -> tuple[float, int, float, float]:
    """Nearest hit over all triangles of a mesh.

    Parameters
    ----------
    tri_verts : np.ndarray
        Triangle vertex positions. Shape: (num_triangles, 3, 3).

    Returns
    -------
    (t, triangle, alpha, beta) : tuple[float, int, float, float]
        ``t = -1.0`` and ``triangle = -1`` if nothing is hit.
    """
    best_t = -1.0
    best_tri = -1
    best_alpha = 0.0
    best_beta = 0.0

    for i in range(tri_verts.shape[0]):
        t, alpha, beta = intersect_triangle(
            origin, direction, tri_verts[i, 0], tri_verts[i, 1], tri_verts[i, 2],
            small_t, epsilon, weight_tolerance,
        )
        if t >= small_t and (best_t < 0.0 or t < best_t):
            best_t = t
            best_tri = i
            best_alpha = alpha
            best_beta = beta

    return best_t, best_tri, best_alpha, best_beta


# ===================================================================
# OBJECT INTERFACE
# ===================================================================


class SceneObject(ABC):
    """Base class of everything a ray can hit.

    Parameters
    ----------
    name : str
        Name used by scene descriptions.
    small_t : float
        Minimum valid hit distance.
    """

    num_parts: int = 1

    def __init__(self, name: str = "", small_t: float = SMALL_T) -> None:
        self.name = name
        self.small_t = small_t

    @abstractmethod
    def intersection(self, ray: Ray, part: int = -1) -> Hit:
        """Nearest valid hit of ``ray`` with this object (or one part of it)."""

    @abstractmethod
    def normal(self, ray: Ray, hit: Hit) -> np.ndarray:
        """Unit surface normal at ``hit``."""

    @abstractmethod
    def bounding_box(self, part: int = -1) -> tuple[Box, bool]:
        """Bounding box of the object (or one part) and an is-infinite flag."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


# ===================================================================
# SPHERE
# ===================================================================


class Sphere(SceneObject):
    """Sphere defined by center point and radius."""

    def __init__(
        self,
        center,
        radius: float,
        name: str = "",
        small_t: float = SMALL_T,
    ) -> None:
        super().__init__(name, small_t)
        self.center = as_vec3(center)
        self.radius = float(radius)

    def intersection(self, ray: Ray, part: int = -1) -> Hit:
        t = intersect_sphere(ray.endpoint, ray.direction, self.center, self.radius, self.small_t)
        if t < 0.0:
            return Hit.none()
        return Hit(dist=t, obj=self, part=part)

    def normal(self, ray: Ray, hit: Hit) -> np.ndarray:
        return normalize(ray.point(hit.dist) - self.center)

    def bounding_box(self, part: int = -1) -> tuple[Box, bool]:
        r = np.full(3, self.radius)
        return Box(self.center - r, self.center + r), False


# ===================================================================
# PLANE
# ===================================================================


class Plane(SceneObject):
    """Infinite plane through ``point`` with a normal pointing outside."""

    def __init__(
        self,
        point,
        normal,
        name: str = "",
        small_t: float = SMALL_T,
        parallel_epsilon: float = PARALLEL_EPSILON,
    ) -> None:
        super().__init__(name, small_t)
        self.point = as_vec3(point)
        self.plane_normal = normalize(as_vec3(normal))
        self.parallel_epsilon = parallel_epsilon

    def intersection(self, ray: Ray, part: int = -1) -> Hit:
        t = intersect_plane(
            ray.endpoint, ray.direction, self.point, self.plane_normal,
            self.small_t, self.parallel_epsilon,
        )
        if t < 0.0:
            return Hit.none()
        return Hit(dist=t, obj=self, part=part)

    def normal(self, ray: Ray, hit: Hit) -> np.ndarray:
        return self.plane_normal

    def bounding_box(self, part: int = -1) -> tuple[Box, bool]:
        return Box.full(), True


# ===================================================================
# TRIANGLE MESH
# ===================================================================


class Mesh(SceneObject):
    """Triangle mesh; each triangle is one part.

    Parameters
    ----------
    vertices : array-like
        Vertex positions. Shape: (num_vertices, 3).
    triangles : array-like
        Vertex indices per triangle (0-based). Shape: (num_triangles, 3).
    uvs : array-like, optional
        Texture coordinates. Shape: (num_uvs, 2).
    triangle_uv_indices : array-like, optional
        Indices into ``uvs`` per triangle corner. Shape: (num_triangles, 3).
        If omitted and ``uvs`` has one entry per vertex, the vertex indices
        are reused.
    """

    def __init__(
        self,
        vertices,
        triangles,
        uvs=None,
        triangle_uv_indices=None,
        name: str = "",
        small_t: float = SMALL_T,
        parallel_epsilon: float = PARALLEL_EPSILON,
        weight_tolerance: float = WEIGHT_TOLERANCE,
    ) -> None:
        super().__init__(name, small_t)
        self.vertices = np.ascontiguousarray(vertices, dtype=np.float64).reshape(-1, 3)
        self.triangles = np.ascontiguousarray(triangles, dtype=np.int64).reshape(-1, 3)
        self.parallel_epsilon = parallel_epsilon
        self.weight_tolerance = weight_tolerance
        self.num_parts = self.triangles.shape[0]

        self.uvs = None if uvs is None else np.asarray(uvs, dtype=np.float64).reshape(-1, 2)
        if triangle_uv_indices is not None:
            self.triangle_uv_indices = np.asarray(triangle_uv_indices, dtype=np.int64).reshape(-1, 3)
        elif self.uvs is not None and self.uvs.shape[0] == self.vertices.shape[0]:
            self.triangle_uv_indices = self.triangles
        else:
            self.triangle_uv_indices = None

        # Pre-extract all triangle vertex positions: (N, 3, 3)
        self.tri_verts = np.empty((self.num_parts, 3, 3), dtype=np.float64)
        for k in range(3):
            self.tri_verts[:, k, :] = self.vertices[self.triangles[:, k]]

        # Per-triangle AABBs
        self.tri_lo = self.tri_verts.min(axis=1)
        self.tri_hi = self.tri_verts.max(axis=1)

        self.face_normals, self.face_areas = _compute_face_properties(self.tri_verts)

        degenerate_count = int(np.sum(self.face_areas < 1e-20))
        if degenerate_count > 0:
            logger.warning(
                "Mesh %r: %d degenerate triangles (area < 1e-20)", name, degenerate_count
            )
        logger.debug(
            "Mesh %r: %d vertices, %d triangles", name, self.vertices.shape[0], self.num_parts
        )

    def intersection(self, ray: Ray, part: int = -1) -> Hit:
        if part >= 0:
            t, alpha, beta = intersect_triangle(
                ray.endpoint, ray.direction,
                self.tri_verts[part, 0], self.tri_verts[part, 1], self.tri_verts[part, 2],
                self.small_t, self.parallel_epsilon, self.weight_tolerance,
            )
            tri = part
        else:
            t, tri, alpha, beta = intersect_triangles(
                ray.endpoint, ray.direction, self.tri_verts,
                self.small_t, self.parallel_epsilon, self.weight_tolerance,
            )

        if t < 0.0:
            return Hit.none()
        return Hit(dist=t, obj=self, part=int(tri), uv=self._interpolate_uv(int(tri), alpha, beta))

    def normal(self, ray: Ray, hit: Hit) -> np.ndarray:
        if hit.part < 0:
            raise ValueError("Mesh normal requires the triangle index of the hit")
        return self.face_normals[hit.part]

    def bounding_box(self, part: int = -1) -> tuple[Box, bool]:
        if part < 0:
            return Box(self.vertices.min(axis=0), self.vertices.max(axis=0)), False
        return Box(self.tri_lo[part], self.tri_hi[part]), False

    def _interpolate_uv(self, tri: int, alpha: float, beta: float) -> np.ndarray:
        if self.triangle_uv_indices is None:
            return np.zeros(2)
        ia, ib, ic = self.triangle_uv_indices[tri]
        gamma = 1.0 - alpha - beta
        return alpha * self.uvs[ia] + beta * self.uvs[ib] + gamma * self.uvs[ic]


def _compute_face_properties(tri_verts: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Compute unit face normals (winding order) and areas for all triangles.

    Parameters
    ----------
    tri_verts : np.ndarray
        Triangle vertex positions, shape (num_triangles, 3, 3).

    Returns
    -------
    normals : np.ndarray
        Unit normals, shape (num_triangles, 3).
    areas : np.ndarray
        Triangle areas, shape (num_triangles,).
    """
    e1 = tri_verts[:, 1, :] - tri_verts[:, 0, :]
    e2 = tri_verts[:, 2, :] - tri_verts[:, 0, :]

    # Cross product gives normal direction with magnitude = 2 * area
    cross = np.cross(e1, e2)
    norms = np.linalg.norm(cross, axis=1, keepdims=True)

    # Avoid division by zero for degenerate triangles
    safe_norms = np.where(norms > 1e-30, norms, 1.0)
    normals = cross / safe_norms

    # Degenerate triangles never produce hits; give them a placeholder normal
    degenerate_mask = norms.ravel() < 1e-30
    normals[degenerate_mask] = np.array([0.0, 0.0, 1.0])

    return normals, 0.5 * norms.ravel()
