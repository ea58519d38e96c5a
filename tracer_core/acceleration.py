"""Uniform grid spatial index with 3-D DDA traversal.

Finite primitives are rasterized (by bounding box) into a regular grid over
their joint bounding domain; infinite primitives (planes) are kept in a
separate list and tested exhaustively on every query.

Design Notes
------------
- **Cell storage**: a flat list of primitive lists addressed by
  ``x + nx * (y + ny * z)``.
- **Conservative rasterization**: a primitive is referenced from every cell
  its bounding box touches, so it may appear in several cells. The cell
  range is widened by a relative slack of ``1e-9`` so boxes that end exactly
  on a cell boundary are also stored in the neighbouring cell.
- **Degenerate axes**: an axis along which the domain has zero extent
  collapses to a single cell of infinite size (no boundary is ever crossed
  along it).
- **Traversal**: Amanatides & Woo incremental stepping. Cells are visited in
  non-decreasing ray parameter order, so the search stops as soon as the
  best hit lies strictly before the next boundary crossing.
- **Ties**: hits at equal distance go to the lower scene index, then the
  lower part, so the grid picks the same primitive as a scan of the objects
  in scene order.

References
----------
- Amanatides, J. & Woo, A. (1987). "A Fast Voxel Traversal Algorithm for
  Ray Tracing." Proc. Eurographics '87, pp. 3-10.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from tracer_core.constants import (
    DEFAULT_GRID_SIZE,
    PARALLEL_EPSILON,
    SMALL_T,
    parse_grid_size,
)
from tracer_core.geometry import Box, Hit, Ray, ray_box_interval
from tracer_core.primitives import SceneObject

logger = logging.getLogger(__name__)

_RASTER_SLACK: float = 1e-9


@dataclass(frozen=True)
class Primitive:
    """One intersectable unit: an object part plus the owning scene index."""

    obj: SceneObject
    part: int
    id: int


def _nearer(hit: Hit, id: int, best_hit: Hit, best_id: int) -> bool:
    """Whether ``hit`` on scene index ``id`` replaces the current best."""
    if not hit.valid:
        return False
    if best_id < 0 or hit.dist < best_hit.dist:
        return True
    return hit.dist == best_hit.dist and (id, hit.part) < (best_id, best_hit.part)


class UniformGrid:
    """Nearest-hit acceleration structure over a uniform cell grid.

    Parameters
    ----------
    grid_size : int or sequence of 3 ints
        Cells per axis. A scalar is broadcast to all axes.
    small_t : float
        Minimum valid hit distance (entry parameter clamp).
    parallel_epsilon : float
        Direction components below this magnitude are treated as zero.

    Raises
    ------
    ValueError
        If any grid resolution is < 1.
    """

    def __init__(
        self,
        grid_size: Any = DEFAULT_GRID_SIZE,
        small_t: float = SMALL_T,
        parallel_epsilon: float = PARALLEL_EPSILON,
    ) -> None:
        self.requested_cells = np.array(parse_grid_size(grid_size), dtype=np.int64)
        self.num_cells = self.requested_cells.copy()
        self.small_t = small_t
        self.parallel_epsilon = parallel_epsilon

        self.domain = Box.empty()
        self.cell_size = np.zeros(3)
        self.cells: list[list[Primitive]] = []
        self.infinite_objects: list[Primitive] = []
        self.finite_objects: list[tuple[Primitive, Box]] = []

    # ---------------------------------------------------------------
    # Build
    # ---------------------------------------------------------------

    def add_object(self, obj: SceneObject, id: int) -> None:
        """Register every part of ``obj`` under scene index ``id``."""
        for part in range(obj.num_parts):
            box, is_infinite = obj.bounding_box(part)
            prim = Primitive(obj=obj, part=part, id=id)
            if is_infinite:
                self.infinite_objects.append(prim)
            else:
                self.finite_objects.append((prim, box))
                self.domain.include_point(box.lo)
                self.domain.include_point(box.hi)

    def initialize(self) -> None:
        """Allocate cells and rasterize all finite primitives into them."""
        if not self.finite_objects:
            self.cells = []
            logger.info(
                "Uniform grid empty: %d infinite primitives tested exhaustively",
                len(self.infinite_objects),
            )
            return

        extent = self.domain.extent()
        degenerate = extent <= 0.0
        self.num_cells = np.where(degenerate, 1, self.requested_cells).astype(np.int64)
        self.cell_size = np.where(
            degenerate, math.inf, extent / np.maximum(self.num_cells, 1)
        )

        nx, ny, nz = (int(n) for n in self.num_cells)
        logger.info(
            "Building uniform grid for %d primitives (%d x %d x %d cells)...",
            len(self.finite_objects), nx, ny, nz,
        )

        self.cells = [[] for _ in range(nx * ny * nz)]
        references = 0
        for prim, box in self.finite_objects:
            lo_idx, hi_idx = self._cell_range(box)
            for z in range(lo_idx[2], hi_idx[2] + 1):
                for y in range(lo_idx[1], hi_idx[1] + 1):
                    for x in range(lo_idx[0], hi_idx[0] + 1):
                        self.cells[self.flat_index((x, y, z))].append(prim)
                        references += 1

        occupancy = np.array([len(c) for c in self.cells], dtype=np.int64)
        non_empty = int(np.count_nonzero(occupancy))
        logger.info(
            "Uniform grid built: %d/%d cells occupied, %d references "
            "(%.2f per occupied cell, max %d), %d infinite primitives",
            non_empty,
            occupancy.size,
            references,
            references / max(non_empty, 1),
            int(occupancy.max()),
            len(self.infinite_objects),
        )

    def _cell_range(self, box: Box) -> tuple[list[int], list[int]]:
        """Clamped inclusive cell index range covered by ``box``."""
        rel_lo = (box.lo - self.domain.lo) / self.cell_size
        rel_hi = (box.hi - self.domain.lo) / self.cell_size
        lo_idx = np.floor(rel_lo - _RASTER_SLACK * np.maximum(1.0, np.abs(rel_lo)))
        hi_idx = np.floor(rel_hi + _RASTER_SLACK * np.maximum(1.0, np.abs(rel_hi)))
        upper = self.num_cells - 1
        lo_idx = np.clip(lo_idx, 0, upper).astype(np.int64)
        hi_idx = np.clip(hi_idx, 0, upper).astype(np.int64)
        return lo_idx.tolist(), hi_idx.tolist()

    # ---------------------------------------------------------------
    # Indexing
    # ---------------------------------------------------------------

    def cell_index(self, point: np.ndarray) -> np.ndarray:
        """Integer cell coordinates of ``point``, clamped into the grid."""
        rel = (np.asarray(point, dtype=np.float64) - self.domain.lo) / self.cell_size
        return np.clip(np.floor(rel), 0, self.num_cells - 1).astype(np.int64)

    def flat_index(self, ijk: Any) -> int:
        """Position of cell ``(i, j, k)`` in :attr:`cells`."""
        nx, ny = int(self.num_cells[0]), int(self.num_cells[1])
        return int(ijk[0]) + nx * (int(ijk[1]) + ny * int(ijk[2]))

    # ---------------------------------------------------------------
    # Query
    # ---------------------------------------------------------------

    def closest_intersection(self, ray: Ray) -> tuple[int, Hit]:
        """Nearest valid hit along ``ray``.

        Returns
        -------
        (id, hit) : tuple[int, Hit]
            Scene index of the primitive hit and the hit record, or
            ``(-1, Hit.none())`` if nothing is hit.
        """
        best_id = -1
        best_hit = Hit.none()

        for prim in self.infinite_objects:
            hit = prim.obj.intersection(ray, prim.part)
            if _nearer(hit, prim.id, best_hit, best_id):
                best_id, best_hit = prim.id, hit

        if not self.cells:
            return best_id, best_hit

        t_enter, t_exit = ray_box_interval(
            ray.endpoint, ray.direction, self.domain.lo, self.domain.hi, self.parallel_epsilon
        )
        t_enter = max(t_enter, self.small_t)
        if t_enter > t_exit:
            return best_id, best_hit
        if best_id >= 0 and best_hit.dist < t_enter:
            return best_id, best_hit

        limits = [int(n) for n in self.num_cells]
        cell = self.cell_index(ray.point(t_enter)).tolist()
        step = [0, 0, 0]
        t_delta = [math.inf, math.inf, math.inf]
        t_next = [math.inf, math.inf, math.inf]

        for axis in range(3):
            d = float(ray.direction[axis])
            size = float(self.cell_size[axis])
            if math.isinf(size) or abs(d) < self.parallel_epsilon:
                continue
            lo = float(self.domain.lo[axis])
            o = float(ray.endpoint[axis])
            if d > 0.0:
                step[axis] = 1
                boundary = lo + (cell[axis] + 1) * size
            else:
                step[axis] = -1
                boundary = lo + cell[axis] * size
            t_delta[axis] = size / abs(d)
            t_next[axis] = (boundary - o) / d
            # Rounding can place the entry point one cell short of a boundary
            # it has already crossed
            while t_next[axis] < t_enter:
                t_next[axis] += t_delta[axis]
                if 0 <= cell[axis] + step[axis] < limits[axis]:
                    cell[axis] += step[axis]

        while True:
            for prim in self.cells[self.flat_index(cell)]:
                hit = prim.obj.intersection(ray, prim.part)
                if _nearer(hit, prim.id, best_hit, best_id):
                    best_id, best_hit = prim.id, hit

            axis = min(range(3), key=t_next.__getitem__)
            t_cross = t_next[axis]
            if best_id >= 0 and best_hit.dist < t_cross:
                break
            if t_cross > t_exit or step[axis] == 0:
                break
            cell[axis] += step[axis]
            if cell[axis] < 0 or cell[axis] >= limits[axis]:
                break
            t_next[axis] += t_delta[axis]

        return best_id, best_hit

    def __repr__(self) -> str:
        return (
            f"UniformGrid(cells={self.num_cells.tolist()}, "
            f"finite={len(self.finite_objects)}, infinite={len(self.infinite_objects)})"
        )
