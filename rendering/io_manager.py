"""Image I/O manager: PNG files, solution comparison and render metadata.

Render buffers are float RGB arrays of shape (height, width, 3) whose row 0
is the bottom of the picture. PNG files store the top row first, so rows
are flipped on save and on load.

Files written by the CLI:
    output.png      Rendered image
    diff.png        Per-channel absolute error against a solution image
    <name>.json     Render metadata (optional)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.image as mpimg  # noqa: E402
import numpy as np  # noqa: E402

logger = logging.getLogger(__name__)


def save_png(image: np.ndarray, path: Path | str) -> Path:
    """Write a render buffer as an 8-bit RGB PNG.

    Parameters
    ----------
    image : np.ndarray
        Colors, shape (height, width, 3). Clamped to ``[0, 1]``.
    path : Path or str
        Output file (parent directories are created).

    Returns
    -------
    Path
        The written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    pixels = np.clip(np.asarray(image, dtype=np.float64), 0.0, 1.0)
    # Quantize exactly as an 8-bit PNG stores it
    pixels = np.round(pixels * 255.0).astype(np.uint8)
    mpimg.imsave(path, np.flipud(pixels), format="png")

    logger.info("Saved %s (%d x %d)", path, pixels.shape[1], pixels.shape[0])
    return path


def load_png(path: Path | str) -> np.ndarray:
    """Read a PNG as a float RGB buffer in ``[0, 1]`` (row 0 = bottom).

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file cannot be decoded as a PNG.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    try:
        data = mpimg.imread(path, format="png")
    except OSError as exc:
        raise ValueError(f"Cannot decode image {path}: {exc}") from exc
    if data.dtype == np.uint8:
        data = data / 255.0
    data = np.asarray(data, dtype=np.float64)
    if data.ndim == 2:
        data = np.repeat(data[:, :, None], 3, axis=2)

    image = np.ascontiguousarray(np.flipud(data[:, :, :3]))
    logger.debug("Loaded %s: shape=%s", path, image.shape)
    return image


def compare_images(image: np.ndarray, solution: np.ndarray) -> tuple[float, np.ndarray]:
    """Mean absolute per-channel error between a render and a solution.

    Both images are quantized to 8 bits first, as they would be on disk.

    Returns
    -------
    error_pct : float
        Mean absolute error × 100.
    diff : np.ndarray
        Per-channel absolute error image, shape (height, width, 3).

    Raises
    ------
    ValueError
        If the image sizes differ.
    """
    if image.shape[:2] != solution.shape[:2]:
        raise ValueError(
            f"Image size {image.shape[1]} x {image.shape[0]} does not match "
            f"solution {solution.shape[1]} x {solution.shape[0]}"
        )
    a = np.round(np.clip(image[:, :, :3], 0.0, 1.0) * 255.0) / 255.0
    b = np.round(np.clip(solution[:, :, :3], 0.0, 1.0) * 255.0) / 255.0
    diff = np.abs(a - b)
    return float(diff.mean() * 100.0), diff


def save_metadata(path: Path | str, metadata: dict) -> Path:
    """Write render metadata as JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(_sanitize_for_json(metadata), f, indent=2, ensure_ascii=False)
    logger.info("Saved metadata to %s", path)
    return path


def _sanitize_for_json(obj: object) -> object:
    """Recursively convert NumPy types to Python natives."""
    if isinstance(obj, dict):
        return {k: _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(v) for v in obj]
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    return obj
