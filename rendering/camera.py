"""Pinhole camera with a film plane and an RGB pixel buffer.

The film plane sits at ``focal_distance`` in front of the camera, spanned by
the ``horizontal`` and ``vertical`` unit vectors. Pixel ``(i, j)`` maps to
the centre of its cell on the film; ``j = 0`` is the bottom row.
"""

from __future__ import annotations

import logging
import math
from typing import Any

import numpy as np

from tracer_core.geometry import as_vec3, normalize

logger = logging.getLogger(__name__)


class Camera:
    """Camera pose, film geometry and the rendered color buffer."""

    def __init__(self) -> None:
        self.position = np.zeros(3)
        self.film_position = np.zeros(3)
        self.look_vector = np.array([0.0, 0.0, -1.0])
        self.vertical_vector = np.array([0.0, 1.0, 0.0])
        self.horizontal_vector = np.array([1.0, 0.0, 0.0])
        self.focal_distance = 1.0
        self.aspect_ratio = 1.0
        self.field_of_view = math.pi / 2.0

        self.min = np.zeros(2)
        self.max = np.zeros(2)
        self.image_size = np.zeros(2)
        self.pixel_size = np.zeros(2)
        self.number_pixels = (0, 0)
        self.colors = np.zeros((0, 0, 3))

    def position_and_aim(self, position: Any, look_at: Any, pseudo_up_vector: Any) -> None:
        """Place the camera and build an orthonormal viewing frame."""
        self.position = as_vec3(position)
        self.look_vector = normalize(as_vec3(look_at) - self.position)
        self.horizontal_vector = normalize(np.cross(self.look_vector, as_vec3(pseudo_up_vector)))
        self.vertical_vector = normalize(np.cross(self.horizontal_vector, self.look_vector))

    def focus(self, focal_distance: float, aspect_ratio: float, field_of_view: float) -> None:
        """Size the film plane.

        Parameters
        ----------
        focal_distance : float
            Distance from the camera to the film plane.
        aspect_ratio : float
            Film width / height.
        field_of_view : float
            Horizontal field of view [rad].
        """
        self.focal_distance = float(focal_distance)
        self.aspect_ratio = float(aspect_ratio)
        self.field_of_view = float(field_of_view)

        self.film_position = self.position + self.look_vector * self.focal_distance
        width = 2.0 * self.focal_distance * math.tan(0.5 * self.field_of_view)
        height = width / self.aspect_ratio
        self.image_size = np.array([width, height])
        self._update_pixel_grid()

    def set_resolution(self, width: int, height: int) -> None:
        """Allocate a black ``(height, width, 3)`` buffer."""
        if width < 1 or height < 1:
            raise ValueError(f"Resolution must be positive, got {width} x {height}")
        self.number_pixels = (int(width), int(height))
        self.colors = np.zeros((int(height), int(width), 3))
        self._update_pixel_grid()

    def _update_pixel_grid(self) -> None:
        self.min = -0.5 * self.image_size
        self.max = 0.5 * self.image_size
        if self.number_pixels[0] > 0:
            self.pixel_size = self.image_size / np.array(self.number_pixels, dtype=np.float64)

    def cell_center(self, pixel: tuple[int, int]) -> np.ndarray:
        """Film-plane 2-D coordinates of the centre of ``pixel``."""
        return self.min + (np.asarray(pixel, dtype=np.float64) + 0.5) * self.pixel_size

    def world_position(self, pixel: tuple[int, int]) -> np.ndarray:
        """World-space position of the centre of ``pixel`` on the film."""
        c = self.cell_center(pixel)
        return self.film_position + self.horizontal_vector * c[0] + self.vertical_vector * c[1]

    def set_pixel(self, pixel: tuple[int, int], color: Any) -> None:
        i, j = pixel
        self.colors[j, i] = color
