"""Numerical tolerances, render configuration, and configuration loader.

Tolerances have module-level defaults (used as compile-time defaults by the
Numba kernels) and can be overridden from a YAML configuration file. This
module provides a typed, validated interface to that configuration.

Tolerances
----------
- ``SMALL_T``: minimum valid intersection distance. Suppresses
  self-intersection ("shadow acne") of rays leaving a surface.
- ``PARALLEL_EPSILON``: near-zero threshold for denominators (ray parallel
  to a slab, plane or triangle).
- ``WEIGHT_TOLERANCE``: negative slack allowed on barycentric weights so a
  ray through a shared edge is never lost between two triangles.
- ``SHADOW_OFFSET``: distance a shadow ray origin is pushed along the normal.
"""

from __future__ import annotations

import logging
import os
import platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numba
import numpy as np
import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Default tolerances
# ---------------------------------------------------------------------------

SMALL_T: float = 1e-4
PARALLEL_EPSILON: float = 1e-12
WEIGHT_TOLERANCE: float = 1e-4
SHADOW_OFFSET: float = 1e-4
SECONDARY_RAY_OFFSET: float = 1e-6

DEFAULT_GRID_SIZE: int = 40
DEFAULT_RECURSION_DEPTH_LIMIT: int = 3


# ---------------------------------------------------------------------------
# Configuration Data Classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccelerationConfig:
    """Uniform grid configuration.

    Attributes
    ----------
    enabled : bool
        If False, nearest-hit queries fall back to brute force over every
        object (useful for checking the grid against exhaustive testing).
    grid_size : tuple[int, int, int]
        Number of cells along x, y, z. Each must be >= 1.
    """

    enabled: bool = True
    grid_size: tuple[int, int, int] = (DEFAULT_GRID_SIZE,) * 3


@dataclass(frozen=True)
class TolerancesConfig:
    """Numerical tolerances shared by intersection and shading code.

    Attributes
    ----------
    small_t : float
        Minimum valid hit distance.
    parallel_epsilon : float
        Near-zero threshold for denominators.
    weight_tolerance : float
        Slack on barycentric weights.
    shadow_offset : float
        Offset of shadow ray origins along the surface normal.
    """

    small_t: float = SMALL_T
    parallel_epsilon: float = PARALLEL_EPSILON
    weight_tolerance: float = WEIGHT_TOLERANCE
    shadow_offset: float = SHADOW_OFFSET


@dataclass(frozen=True)
class RenderConfig:
    """Render loop settings.

    Attributes
    ----------
    workers : int
        Worker processes for the pixel loop. 0 = one per CPU core,
        1 = render synchronously in the calling process.
    chunks_per_worker : int
        Number of row blocks handed to each worker (load balancing).
    output : str
        Default output PNG path.
    log_level : str
        Default logging level for the CLI.
    """

    workers: int = 0
    chunks_per_worker: int = 4
    output: str = "output.png"
    log_level: str = "INFO"


@dataclass
class TracerConfig:
    """Top-level configuration loaded from YAML.

    Attributes
    ----------
    acceleration : AccelerationConfig
        Uniform grid settings.
    tolerances : TolerancesConfig
        Numerical tolerances.
    render : RenderConfig
        Render loop settings.
    recursion_depth_limit : int
        Default recursion limit when the scene file does not set one.
    enable_shadows : bool
        Default shadow toggle when the scene file does not set one.
    """

    acceleration: AccelerationConfig = field(default_factory=AccelerationConfig)
    tolerances: TolerancesConfig = field(default_factory=TolerancesConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    recursion_depth_limit: int = DEFAULT_RECURSION_DEPTH_LIMIT
    enable_shadows: bool = True


# ---------------------------------------------------------------------------
# Configuration Loader
# ---------------------------------------------------------------------------


def parse_grid_size(value: Any) -> tuple[int, int, int]:
    """Normalize a grid resolution to three integers.

    Parameters
    ----------
    value : int or sequence of 3 ints
        A scalar is broadcast to all three axes.

    Returns
    -------
    tuple[int, int, int]

    Raises
    ------
    ValueError
        If the value does not describe three resolutions >= 1.
    """
    if np.ndim(value) == 0:
        sizes = (int(value),) * 3
    else:
        sizes = tuple(int(v) for v in value)
        if len(sizes) != 3:
            raise ValueError(f"Grid size needs 1 or 3 values, got {len(sizes)}")
    if min(sizes) < 1:
        raise ValueError(f"Grid size must be >= 1 on every axis, got {sizes}")
    return sizes  # type: ignore[return-value]


def default_config() -> TracerConfig:
    """Return the built-in configuration."""
    return TracerConfig()


def load_config(config_path: str | Path) -> TracerConfig:
    """Load and validate a tracer configuration from a YAML file.

    Missing sections fall back to the built-in defaults.

    Parameters
    ----------
    config_path : str or Path
        Path to the YAML configuration file.

    Returns
    -------
    TracerConfig
        Fully populated, typed configuration object.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If values are invalid.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    logger.info("Loading configuration from: %s", config_path)

    defaults = TracerConfig()

    # --- Acceleration ---
    acc = raw.get("acceleration", {})
    acceleration = AccelerationConfig(
        enabled=bool(acc.get("enabled", defaults.acceleration.enabled)),
        grid_size=parse_grid_size(acc.get("grid_size", defaults.acceleration.grid_size)),
    )

    # --- Tolerances ---
    tol = raw.get("tolerances", {})
    tolerances = TolerancesConfig(
        small_t=float(tol.get("small_t", SMALL_T)),
        parallel_epsilon=float(tol.get("parallel_epsilon", PARALLEL_EPSILON)),
        weight_tolerance=float(tol.get("weight_tolerance", WEIGHT_TOLERANCE)),
        shadow_offset=float(tol.get("shadow_offset", SHADOW_OFFSET)),
    )

    # --- Render loop ---
    rnd = raw.get("render", {})
    render = RenderConfig(
        workers=int(rnd.get("workers", defaults.render.workers)),
        chunks_per_worker=int(rnd.get("chunks_per_worker", defaults.render.chunks_per_worker)),
        output=str(rnd.get("output", defaults.render.output)),
        log_level=str(rnd.get("log_level", defaults.render.log_level)),
    )

    # --- Scene defaults ---
    scn = raw.get("scene_defaults", {})
    config = TracerConfig(
        acceleration=acceleration,
        tolerances=tolerances,
        render=render,
        recursion_depth_limit=int(
            scn.get("recursion_depth_limit", defaults.recursion_depth_limit)
        ),
        enable_shadows=bool(scn.get("enable_shadows", defaults.enable_shadows)),
    )

    _validate_config(config)
    logger.info(
        "Configuration loaded: grid=%s, acceleration=%s, workers=%d",
        config.acceleration.grid_size,
        "on" if config.acceleration.enabled else "off",
        config.render.workers,
    )
    return config


def _validate_config(config: TracerConfig) -> None:
    """Validate constraints on configuration values.

    Raises
    ------
    ValueError
        If any value is invalid.
    """
    tol = config.tolerances
    if tol.small_t <= 0:
        raise ValueError(f"small_t must be positive, got {tol.small_t}")
    if tol.parallel_epsilon <= 0:
        raise ValueError("parallel_epsilon must be positive.")
    if tol.weight_tolerance < 0:
        raise ValueError("weight_tolerance cannot be negative.")
    if tol.shadow_offset < 0:
        raise ValueError("shadow_offset cannot be negative.")
    if config.render.workers < 0:
        raise ValueError(f"workers cannot be negative, got {config.render.workers}")
    if config.render.chunks_per_worker < 1:
        raise ValueError("chunks_per_worker must be >= 1.")
    if config.recursion_depth_limit < 0:
        raise ValueError(
            f"recursion_depth_limit must be >= 0, got {config.recursion_depth_limit}"
        )

    logger.debug("Configuration validation passed.")


def log_platform_info() -> None:
    """Log platform and library version information for reproducibility."""
    logger.info("=" * 70)
    logger.info("PLATFORM INFORMATION")
    logger.info("=" * 70)
    logger.info("  Python:    %s", sys.version)
    logger.info("  Platform:  %s", platform.platform())
    logger.info("  CPUs:      %s", os.cpu_count())
    logger.info("  NumPy:     %s", np.__version__)
    logger.info("  Numba:     %s", numba.__version__)
    logger.info("=" * 70)
