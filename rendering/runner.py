"""Render runner: parallel per-pixel rendering and single-pixel debugging.

Orchestrates a full render:
1. Build the acceleration structure once (the scene is read-only afterwards)
2. Split the image rows into blocks (about ``chunks_per_worker`` per worker)
3. Trace every block in a ``multiprocessing`` pool; each worker returns a
   disjoint row block that is copied into the final buffer
4. Return the image with timing metadata

Notes
-----
Pixels are independent, so no locking is needed. Each worker receives its
own copy of the world once, through the pool initializer, rather than with
every task.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import os
import time
from dataclasses import dataclass, field

import numpy as np

from rendering.render_world import RenderWorld

logger = logging.getLogger(__name__)

_TRACE_LOGGERS = ("rendering", "shading", "tracer_core")
_DEBUG_PIXEL_COLOR = np.array([0.0, 1.0, 0.0])

# Per-process world installed by the pool initializer
_worker_world: RenderWorld | None = None


# ---------------------------------------------------------------------------
# Result Container
# ---------------------------------------------------------------------------


@dataclass
class RenderResult:
    """Container for render output.

    Attributes
    ----------
    image : np.ndarray
        RGB buffer, shape (height, width, 3); row 0 is the bottom row.
    wall_time_s : float
        Wall-clock render time [s].
    metadata : dict
        Render metadata (resolution, workers, grid, etc.).
    """

    image: np.ndarray
    wall_time_s: float = 0.0
    metadata: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Worker functions
# ---------------------------------------------------------------------------


def _init_worker(world: RenderWorld) -> None:
    global _worker_world
    _worker_world = world


def _render_row_block(rows: tuple[int, int]) -> tuple[int, int, np.ndarray]:
    """Render rows ``[j_start, j_end)`` with the worker's world."""
    j_start, j_end = rows
    block = render_rows(_worker_world, j_start, j_end)
    return j_start, j_end, block


def render_rows(world: RenderWorld, j_start: int, j_end: int) -> np.ndarray:
    """Trace every pixel of rows ``[j_start, j_end)``.

    Returns
    -------
    np.ndarray
        Colors, shape (j_end - j_start, width, 3).
    """
    width = world.camera.number_pixels[0]
    block = np.zeros((j_end - j_start, width, 3))
    for j in range(j_start, j_end):
        for i in range(width):
            block[j - j_start, i] = world.render_pixel((i, j))
    return block


def split_rows(height: int, workers: int, chunks_per_worker: int = 4) -> list[tuple[int, int]]:
    """Partition ``range(height)`` into contiguous ``(start, end)`` blocks."""
    rows_per_chunk = max(1, height // (workers * chunks_per_worker))
    return [
        (j_start, min(j_start + rows_per_chunk, height))
        for j_start in range(0, height, rows_per_chunk)
    ]


# ---------------------------------------------------------------------------
# Render Runner
# ---------------------------------------------------------------------------


class RenderRunner:
    """Render a :class:`RenderWorld` on a pool of worker processes.

    Parameters
    ----------
    world : RenderWorld
        Fully built scene.
    workers : int
        Worker processes. 0 = one per CPU core, 1 = render synchronously.
    chunks_per_worker : int
        Row blocks per worker (load balancing).
    """

    def __init__(self, world: RenderWorld, workers: int = 0, chunks_per_worker: int = 4) -> None:
        if workers < 0:
            raise ValueError(f"workers cannot be negative, got {workers}")
        self._world = world
        self._workers = workers if workers > 0 else (os.cpu_count() or 1)
        self._chunks_per_worker = max(1, chunks_per_worker)

    @property
    def workers(self) -> int:
        return self._workers

    def render(self) -> RenderResult:
        """Render the full image.

        Returns
        -------
        RenderResult
            Image buffer (also stored in ``world.camera.colors``) and timing.
        """
        world = self._world
        width, height = world.camera.number_pixels
        wall_start = time.perf_counter()

        if world.acceleration.enabled:
            world.initialize_acceleration()
        elif not world.objects:
            logger.warning("Scene has no objects; every pixel shows the background")

        logger.info(
            "Rendering %d x %d pixels (%d objects, %d lights, workers=%d, grid=%s)",
            width, height, len(world.objects), len(world.lights), self._workers,
            world.acceleration.grid_size if world.acceleration.enabled else "off",
        )

        if self._workers == 1 or height <= 1:
            image = render_rows(world, 0, height)
        else:
            chunks = split_rows(height, self._workers, self._chunks_per_worker)
            logger.info("Divided into %d row blocks of ~%d rows", len(chunks), chunks[0][1] - chunks[0][0])
            image = np.zeros((height, width, 3))
            with mp.Pool(self._workers, initializer=_init_worker, initargs=(world,)) as pool:
                for j_start, j_end, block in pool.imap_unordered(_render_row_block, chunks):
                    image[j_start:j_end] = block

        world.camera.colors[:] = image
        wall_elapsed = time.perf_counter() - wall_start

        logger.info(
            "Render complete: %.2f seconds wall time (%.0f pixels/s)",
            wall_elapsed,
            width * height / wall_elapsed if wall_elapsed > 0 else 0.0,
        )

        return RenderResult(
            image=world.camera.colors,
            wall_time_s=wall_elapsed,
            metadata={
                "width": width,
                "height": height,
                "workers": self._workers,
                "num_objects": len(world.objects),
                "num_lights": len(world.lights),
                "acceleration": world.acceleration.enabled,
                "grid_size": list(world.acceleration.grid_size),
                "recursion_depth_limit": world.recursion_depth_limit,
                "enable_shadows": world.enable_shadows,
                "wall_time_s": wall_elapsed,
            },
        )

    def render_debug_pixel(self, x: int, y: int) -> np.ndarray:
        """Trace one pixel with DEBUG logging, then mark it green.

        Returns
        -------
        np.ndarray
            The traced color (before the pixel is marked).
        """
        world = self._world
        width, height = world.camera.number_pixels
        if not (0 <= x < width and 0 <= y < height):
            raise ValueError(f"Debug pixel ({x}, {y}) outside {width} x {height} image")
        if world.acceleration.enabled and world.grid is None:
            world.initialize_acceleration()

        trace_loggers = [logging.getLogger(name) for name in _TRACE_LOGGERS]
        previous = [lg.level for lg in trace_loggers]
        for lg in trace_loggers:
            lg.setLevel(logging.DEBUG)
        # Handlers configured for INFO would drop the trace records
        root_handlers = logging.getLogger().handlers
        handler_levels = [h.level for h in root_handlers]
        for h in root_handlers:
            h.setLevel(logging.DEBUG)

        try:
            logger.info("debug pixel: -x %d -y %d", x, y)
            color = world.render_pixel((x, y))
            logger.info("debug pixel color: %s", color)
        finally:
            for lg, level in zip(trace_loggers, previous):
                lg.setLevel(level)
            for h, level in zip(root_handlers, handler_levels):
                h.setLevel(level)

        world.camera.set_pixel((x, y), _DEBUG_PIXEL_COLOR)
        return color
