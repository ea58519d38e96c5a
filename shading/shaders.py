"""Surface shading strategies.

A shader turns a hit (or the absence of one, for the background) into an
RGB color. Shaders compose: reflective and transparent shaders wrap a base
shader and recursively call :meth:`RenderWorld.cast_ray` for secondary rays
at ``depth + 1``. The recursion limit is enforced centrally by
``cast_ray``, so no shader checks the depth itself.

Notes
-----
- Secondary rays always carry unit directions so that hit distances are
  physical distances.
- Reflection and refraction rays start ``SECONDARY_RAY_OFFSET`` off the
  surface (outside for reflection, inside for refraction).
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np

from shading.colors import Color
from tracer_core.constants import SECONDARY_RAY_OFFSET
from tracer_core.geometry import Hit, Ray, magnitude, normalize, reflect

if TYPE_CHECKING:
    from rendering.render_world import RenderWorld

logger = logging.getLogger(__name__)

_BLACK = np.zeros(3)


class Shader(ABC):
    """Base class of all shading strategies."""

    def __init__(self, name: str = "") -> None:
        self.name = name

    @abstractmethod
    def shade_surface(
        self,
        world: RenderWorld,
        ray: Ray,
        hit: Hit,
        point: np.ndarray,
        normal: np.ndarray,
        depth: int,
    ) -> np.ndarray:
        """Color seen along ``ray`` at ``point``.

        Parameters
        ----------
        world : RenderWorld
            Scene used to cast secondary rays.
        ray : Ray
            Incoming ray.
        hit : Hit
            Hit record (``Hit.none()`` for the background).
        point : np.ndarray
            Intersection point. Shape: (3,).
        normal : np.ndarray
            Unit surface normal at ``point``. Shape: (3,).
        depth : int
            Recursion depth of ``ray`` (1 for primary rays).

        Returns
        -------
        np.ndarray
            RGB color. Shape: (3,).
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


# ===================================================================
# FLAT
# ===================================================================


class FlatShader(Shader):
    """Returns its color unchanged; also used as the background shader."""

    def __init__(self, color: Color, name: str = "") -> None:
        super().__init__(name)
        self.color = color

    def shade_surface(self, world, ray, hit, point, normal, depth):
        return self.color.get_color(hit.uv)


# ===================================================================
# PHONG
# ===================================================================


class PhongShader(Shader):
    """Ambient + per-light diffuse and specular terms with hard shadows.

    Parameters
    ----------
    ambient, diffuse, specular : Color
        Material colors of the three terms.
    specular_power : float
        Phong exponent.
    """

    def __init__(
        self,
        ambient: Color,
        diffuse: Color,
        specular: Color,
        specular_power: float,
        name: str = "",
    ) -> None:
        super().__init__(name)
        self.ambient = ambient
        self.diffuse = diffuse
        self.specular = specular
        self.specular_power = float(specular_power)

    def shade_surface(self, world, ray, hit, point, normal, depth):
        color_ambient = self.ambient.get_color(hit.uv)
        color_diffuse = self.diffuse.get_color(hit.uv)
        color_specular = self.specular.get_color(hit.uv)

        color = np.zeros(3)
        if world.ambient_color is not None:
            color += (
                world.ambient_intensity
                * world.ambient_color.get_color(np.zeros(2))
                * color_ambient
            )

        view_dir = -normalize(ray.direction)
        shadow_origin = point + normal * world.shadow_offset

        for light in world.lights:
            to_light = light.position - point
            dist_to_light = magnitude(to_light)
            if dist_to_light == 0.0:
                continue
            light_dir = to_light / dist_to_light

            if world.enable_shadows:
                occluder, shadow_hit = world.closest_intersection(Ray(shadow_origin, light_dir))
                if occluder is not None and shadow_hit.dist < dist_to_light:
                    logger.debug(
                        "light %r blocked by %r at dist %.6g",
                        light.name, occluder.obj.name, shadow_hit.dist,
                    )
                    continue

            intensity = light.emitted_light(to_light)

            diffuse_factor = max(float(np.dot(normal, light_dir)), 0.0)
            color += color_diffuse * intensity * diffuse_factor

            # Mirror the light direction about the normal
            r = 2.0 * float(np.dot(light_dir, normal)) * normal - light_dir
            specular_factor = max(float(np.dot(view_dir, normalize(r))), 0.0) ** self.specular_power
            color += color_specular * intensity * specular_factor

            logger.debug(
                "light %r: diffuse=%.6g specular=%.6g intensity=%s",
                light.name, diffuse_factor, specular_factor, intensity,
            )

        return color


# ===================================================================
# REFLECTIVE
# ===================================================================


class ReflectiveShader(Shader):
    """Blends a base shader with a mirror reflection.

    Parameters
    ----------
    shader : Shader
        Base shader.
    reflectivity : float
        Weight of the reflected color, clamped to ``[0, 1]``.
    """

    def __init__(self, shader: Shader, reflectivity: float, name: str = "") -> None:
        super().__init__(name)
        self.shader = shader
        self.reflectivity = min(max(float(reflectivity), 0.0), 1.0)

    def shade_surface(self, world, ray, hit, point, normal, depth):
        color = self.shader.shade_surface(world, ray, hit, point, normal, depth)

        reflected_dir = normalize(reflect(normalize(ray.direction), normal))
        reflected_ray = Ray(point + normal * SECONDARY_RAY_OFFSET, reflected_dir)
        reflected = world.cast_ray(reflected_ray, depth + 1)

        logger.debug("depth %d reflected color %s", depth, reflected)
        return (1.0 - self.reflectivity) * color + self.reflectivity * reflected


# ===================================================================
# TRANSPARENT
# ===================================================================


class TransparentShader(Shader):
    """Dielectric with Snell refraction and Schlick-weighted reflection.

    Parameters
    ----------
    index_of_refraction : float
        Refractive index of the object's interior (outside is 1.0).
    opacity : float
        Weight of the reflection/refraction mix against the base color.
    shader : Shader
        Base shader.

    Raises
    ------
    ValueError
        If ``index_of_refraction < 1``.
    """

    def __init__(
        self,
        index_of_refraction: float,
        opacity: float,
        shader: Shader,
        name: str = "",
    ) -> None:
        super().__init__(name)
        if index_of_refraction < 1.0:
            raise ValueError(
                f"index_of_refraction must be >= 1, got {index_of_refraction}"
            )
        self.index_of_refraction = float(index_of_refraction)
        self.opacity = float(opacity)
        self.shader = shader

    def shade_surface(self, world, ray, hit, point, normal, depth):
        base = self.shader.shade_surface(world, ray, hit, point, normal, depth)

        d = normalize(ray.direction)
        n1, n2 = 1.0, self.index_of_refraction
        n = normal
        if float(np.dot(d, normal)) > 0.0:
            # Leaving the object
            n1, n2 = n2, n1
            n = -normal

        ratio = n1 / n2
        cos_i = -float(np.dot(n, d))
        sin2_t = ratio * ratio * (1.0 - cos_i * cos_i)
        total_internal_reflection = sin2_t > 1.0

        r0 = ((n1 - n2) / (n1 + n2)) ** 2
        reflectance = r0 + (1.0 - r0) * (1.0 - abs(cos_i)) ** 5

        reflected_ray = Ray(point + n * SECONDARY_RAY_OFFSET, normalize(reflect(d, n)))
        reflected = world.cast_ray(reflected_ray, depth + 1)

        refracted = _BLACK
        if not total_internal_reflection:
            cos_t = math.sqrt(1.0 - sin2_t)
            refracted_dir = normalize(ratio * d + (ratio * cos_i - cos_t) * n)
            refracted_ray = Ray(point - n * SECONDARY_RAY_OFFSET, refracted_dir)
            refracted = world.cast_ray(refracted_ray, depth + 1)

        logger.debug(
            "depth %d: n1=%.3g n2=%.3g schlick=%.6g tir=%s",
            depth, n1, n2, reflectance, total_internal_reflection,
        )
        mix = reflectance * reflected + (1.0 - reflectance) * refracted
        return (1.0 - self.opacity) * base + self.opacity * mix
