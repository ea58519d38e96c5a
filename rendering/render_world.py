"""Render world: scene contents, nearest-hit resolution and ray casting.

The world owns the shaded objects, lights, background shader and global
policy (shadows, recursion limit). Nearest-hit queries go through a
:class:`UniformGrid` when acceleration is enabled and through exhaustive
testing otherwise; both paths must return identical results.

Notes
-----
Recursion depth starts at 1 for a primary ray and every secondary ray is
cast at ``depth + 1``. :meth:`RenderWorld.cast_ray` returns black once
``depth > recursion_depth_limit`` without testing the scene, which bounds
the recursion tree for any scene, including facing mirrors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from rendering.camera import Camera
from shading.colors import Color
from shading.lights import Light
from shading.shaders import Shader
from tracer_core.acceleration import UniformGrid
from tracer_core.constants import (
    DEFAULT_RECURSION_DEPTH_LIMIT,
    AccelerationConfig,
    TolerancesConfig,
)
from tracer_core.geometry import Hit, Ray, normalize
from tracer_core.primitives import SceneObject

logger = logging.getLogger(__name__)


@dataclass
class ShadedObject:
    """A scene object paired with the shader that colors it."""

    obj: SceneObject
    shader: Shader


@dataclass
class RenderWorld:
    """Scene description consumed read-only by the render loop.

    Attributes
    ----------
    objects : list[ShadedObject]
        Objects in scene order; the index is the id used by the grid.
    lights : list[Light]
        Light sources.
    background_shader : Shader or None
        Shader for rays that hit nothing (black when None).
    ambient_color : Color or None
        Ambient light color.
    ambient_intensity : float
        Ambient light scale.
    enable_shadows : bool
        Cast shadow rays from the Phong shader.
    recursion_depth_limit : int
        Maximum depth of rays that are still traced.
    acceleration : AccelerationConfig
        Grid toggle and resolution.
    tolerances : TolerancesConfig
        Numerical tolerances.
    """

    objects: list[ShadedObject] = field(default_factory=list)
    lights: list[Light] = field(default_factory=list)
    background_shader: Shader | None = None
    ambient_color: Color | None = None
    ambient_intensity: float = 0.0
    enable_shadows: bool = True
    recursion_depth_limit: int = DEFAULT_RECURSION_DEPTH_LIMIT
    camera: Camera = field(default_factory=Camera)
    acceleration: AccelerationConfig = field(default_factory=AccelerationConfig)
    tolerances: TolerancesConfig = field(default_factory=TolerancesConfig)
    grid: UniformGrid | None = field(default=None, repr=False)

    @property
    def shadow_offset(self) -> float:
        return self.tolerances.shadow_offset

    def add_object(self, obj: SceneObject, shader: Shader) -> ShadedObject:
        shaded = ShadedObject(obj, shader)
        self.objects.append(shaded)
        # Any cached grid no longer matches the scene
        self.grid = None
        return shaded

    # ---------------------------------------------------------------
    # Nearest hit
    # ---------------------------------------------------------------

    def initialize_acceleration(self) -> UniformGrid:
        """Build a fresh grid over the current objects."""
        grid = UniformGrid(
            self.acceleration.grid_size,
            small_t=self.tolerances.small_t,
            parallel_epsilon=self.tolerances.parallel_epsilon,
        )
        for index, shaded in enumerate(self.objects):
            grid.add_object(shaded.obj, index)
        grid.initialize()
        self.grid = grid
        return grid

    def closest_intersection(self, ray: Ray) -> tuple[ShadedObject | None, Hit]:
        """Nearest valid hit and the shaded object that owns it."""
        if self.acceleration.enabled:
            if self.grid is None:
                self.initialize_acceleration()
            index, hit = self.grid.closest_intersection(ray)
            if index < 0:
                return None, hit
            return self.objects[index], hit

        # Scene order with a strict comparison: equal distances keep the lower index
        best: ShadedObject | None = None
        best_hit = Hit.none()
        for shaded in self.objects:
            hit = shaded.obj.intersection(ray, -1)
            if hit.valid and (best is None or hit.dist < best_hit.dist):
                best, best_hit = shaded, hit
        return best, best_hit

    # ---------------------------------------------------------------
    # Ray casting
    # ---------------------------------------------------------------

    def cast_ray(self, ray: Ray, depth: int) -> np.ndarray:
        """Color seen along ``ray`` at recursion ``depth``."""
        if depth > self.recursion_depth_limit:
            logger.debug("depth %d exceeds limit %d: black", depth, self.recursion_depth_limit)
            return np.zeros(3)

        shaded, hit = self.closest_intersection(ray)
        if shaded is None:
            logger.debug("depth %d: no hit, background", depth)
            if self.background_shader is None:
                return np.zeros(3)
            return self.background_shader.shade_surface(
                self, ray, hit, ray.direction, ray.direction, depth
            )

        point = ray.point(hit.dist)
        normal = shaded.obj.normal(ray, hit)
        logger.debug(
            "depth %d: hit %r part %d at dist %.6g, point=%s normal=%s",
            depth, shaded.obj.name, hit.part, hit.dist, point, normal,
        )
        color = shaded.shader.shade_surface(self, ray, hit, point, normal, depth)
        logger.debug("depth %d: color %s", depth, color)
        return color

    def render_pixel(self, pixel: tuple[int, int]) -> np.ndarray:
        """Trace the primary ray of ``pixel`` and store its color."""
        origin = self.camera.position
        direction = normalize(self.camera.world_position(pixel) - origin)
        color = self.cast_ray(Ray(origin, direction), 1)
        self.camera.set_pixel(pixel, color)
        return color

    def render(self) -> np.ndarray:
        """Render every pixel sequentially into ``camera.colors``."""
        if self.acceleration.enabled:
            self.initialize_acceleration()
        width, height = self.camera.number_pixels
        for j in range(height):
            for i in range(width):
                self.render_pixel((i, j))
        return self.camera.colors
