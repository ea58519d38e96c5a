"""Light sources."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any

import numpy as np

from shading.colors import Color
from tracer_core.geometry import as_vec3


class Light(ABC):
    """A light with a position, a color and a brightness scale."""

    def __init__(self, name: str, position: Any, color: Color, brightness: float) -> None:
        self.name = name
        self.position = as_vec3(position)
        self.color = color
        self.brightness = float(brightness)

    @abstractmethod
    def emitted_light(self, vector_to_light: np.ndarray) -> np.ndarray:
        """Intensity arriving at a point displaced by ``-vector_to_light``."""


class PointLight(Light):
    """Isotropic point light with inverse-square falloff."""

    def emitted_light(self, vector_to_light: np.ndarray) -> np.ndarray:
        rgb = self.color.get_color(np.zeros(2)) * self.brightness
        dist2 = float(np.dot(vector_to_light, vector_to_light))
        if dist2 < 1e-16:
            # Point coincides with the light
            return rgb
        return rgb / (4.0 * math.pi * dist2)
