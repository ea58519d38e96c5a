"""Color sources sampled by shaders: constant colors and image textures."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Any

import numpy as np

from tracer_core.geometry import as_vec3

logger = logging.getLogger(__name__)


class Color(ABC):
    """A color that may vary with texture coordinates."""

    def __init__(self, name: str = "") -> None:
        self.name = name

    @abstractmethod
    def get_color(self, uv: np.ndarray) -> np.ndarray:
        """RGB at texture coordinates ``uv``. Shape: (3,)."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class FlatColor(Color):
    """Same RGB everywhere."""

    def __init__(self, name: str, rgb: Any) -> None:
        super().__init__(name)
        self.rgb = as_vec3(rgb)

    def get_color(self, uv: np.ndarray) -> np.ndarray:
        return self.rgb


class Texture(Color):
    """Image texture addressed by wrapped ``(u, v)`` coordinates.

    Parameters
    ----------
    name : str
        Name used by scene descriptions.
    image : np.ndarray
        RGB(A) texels in ``[0, 1]``, shape (height, width, 3 or 4). Row 0 is
        ``v = 0`` (bottom of the picture).
    use_bilinear_interpolation : bool
        Blend the four texels around the sample point instead of taking the
        nearest one.
    """

    def __init__(self, name: str, image: np.ndarray, use_bilinear_interpolation: bool = False) -> None:
        super().__init__(name)
        image = np.asarray(image, dtype=np.float64)
        if image.ndim != 3 or image.shape[2] < 3:
            raise ValueError(f"Texture {name!r}: expected an RGB image, got shape {image.shape}")
        self.texels = np.ascontiguousarray(image[:, :, :3])
        self.height, self.width = self.texels.shape[:2]
        self.use_bilinear_interpolation = bool(use_bilinear_interpolation)
        logger.debug("Texture %r: %d x %d texels", name, self.width, self.height)

    def get_color(self, uv: np.ndarray) -> np.ndarray:
        # Wrap into [0, 1)
        u = float(uv[0]) % 1.0
        v = float(uv[1]) % 1.0

        if not self.use_bilinear_interpolation:
            i = min(int(u * self.width), self.width - 1)
            j = min(int(v * self.height), self.height - 1)
            return self.texels[j, i]

        # Texel centres sit at (i + 0.5) / width; neighbours wrap around
        x = u * self.width - 0.5
        y = v * self.height - 0.5
        i0 = math.floor(x)
        j0 = math.floor(y)
        fx = x - i0
        fy = y - j0
        i0 %= self.width
        j0 %= self.height
        i1 = (i0 + 1) % self.width
        j1 = (j0 + 1) % self.height

        bottom = (1.0 - fx) * self.texels[j0, i0] + fx * self.texels[j0, i1]
        top = (1.0 - fx) * self.texels[j1, i0] + fx * self.texels[j1, i1]
        return (1.0 - fy) * bottom + fy * top
