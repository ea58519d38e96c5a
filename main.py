"""gridtracer — CLI entry point.

Renders a scene description with the grid-accelerated recursive ray tracer.

Usage
-----
    python main.py -i scenes/00.txt
    python main.py -i scenes/00.txt -s scenes/00.png      # compare to a solution
    python main.py -i scenes/00.txt -x 123 -y 234         # trace one pixel
    python main.py -i scenes/00.txt --no-accel            # brute-force nearest hit
    python main.py -i scenes/00.txt -z 16 --workers 4
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config" / "default_config.yaml"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging."""
    fmt = "%(name)s [%(levelname)s] %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        stream=sys.stdout,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="gridtracer",
        description="gridtracer — grid-accelerated recursive ray tracer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python main.py -i 00.txt\n"
            "  python main.py -i 00.txt -s 00.png -f stats.txt\n"
            "  python main.py -i 00.txt -x 123 -y 234\n"
            "  python main.py -i 00.txt --no-accel\n"
            "  python main.py -i 00.txt -z 16 --workers 4\n"
        ),
    )
    parser.add_argument("-i", "--input", required=True, help="Scene description file")
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Output PNG (default: from config, output.png)",
    )
    parser.add_argument(
        "-s",
        "--solution",
        type=str,
        default=None,
        help="Solution PNG to compare against; writes diff.png next to the output",
    )
    parser.add_argument(
        "-f",
        "--stats-file",
        type=str,
        default=None,
        help="Write the comparison result to this file instead of stdout",
    )
    parser.add_argument("-x", type=int, default=-1, help="Debug pixel x coordinate")
    parser.add_argument("-y", type=int, default=-1, help="Debug pixel y coordinate")
    parser.add_argument(
        "--no-accel",
        action="store_true",
        default=False,
        help="Disable the uniform grid (brute-force nearest hit)",
    )
    parser.add_argument(
        "-z",
        "--grid-size",
        type=int,
        nargs="+",
        default=None,
        help="Grid resolution: one value for all axes or three values (default: from config)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker processes (0 = all cores, 1 = synchronous; default: from config)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help=f"Render config YAML (default: {DEFAULT_CONFIG_PATH.name} if present)",
    )
    parser.add_argument(
        "--metadata",
        type=str,
        default=None,
        help="Write render metadata JSON to this path",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: from config, INFO)",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace):
    """Load the YAML config and apply command-line overrides."""
    from tracer_core.constants import (
        default_config,
        load_config,
        parse_grid_size,
    )

    if args.config is not None:
        config = load_config(args.config)
    elif DEFAULT_CONFIG_PATH.exists():
        config = load_config(DEFAULT_CONFIG_PATH)
    else:
        config = default_config()

    acceleration = config.acceleration
    if args.grid_size is not None:
        sizes = args.grid_size[0] if len(args.grid_size) == 1 else args.grid_size
        acceleration = dataclasses.replace(acceleration, grid_size=parse_grid_size(sizes))
    if args.no_accel:
        acceleration = dataclasses.replace(acceleration, enabled=False)
    config.acceleration = acceleration

    if args.workers is not None:
        if args.workers < 0:
            raise ValueError(f"workers cannot be negative, got {args.workers}")
        config.render = dataclasses.replace(config.render, workers=args.workers)
    return config


def main(argv: list[str] | None = None) -> int:
    """Main render entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level or "INFO")

    logger = logging.getLogger("gridtracer")

    from rendering.io_manager import compare_images, load_png, save_metadata, save_png
    from rendering.runner import RenderRunner
    from scene_ingestion.scene_parser import parse_scene
    from tracer_core.constants import log_platform_info

    try:
        config = build_config(args)
        if args.log_level is None:
            logging.getLogger().setLevel(config.render.log_level.upper())

        logger.info("=" * 60)
        logger.info("  gridtracer — Render %s", args.input)
        logger.info("=" * 60)
        log_platform_info()

        world = parse_scene(args.input, config)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    # Render the image
    runner = RenderRunner(
        world,
        workers=config.render.workers,
        chunks_per_worker=config.render.chunks_per_worker,
    )
    result = runner.render()

    # Trace one pixel verbosely and mark it in the output
    if args.x >= 0 and args.y >= 0:
        try:
            runner.render_debug_pixel(args.x, args.y)
        except ValueError as exc:
            logger.error("%s", exc)
            return 1

    output_path = Path(args.output or config.render.output)
    save_png(world.camera.colors, output_path)
    saved = [output_path]

    # Compare against a solution image
    if args.solution:
        try:
            solution = load_png(args.solution)
            error_pct, diff = compare_images(world.camera.colors, solution)
        except (FileNotFoundError, ValueError) as exc:
            logger.error("%s", exc)
            return 1

        line = f"diff: {error_pct:.2f}\n"
        if args.stats_file:
            Path(args.stats_file).write_text(line, encoding="utf-8")
            saved.append(Path(args.stats_file))
        else:
            sys.stdout.write(line)
        diff_path = output_path.parent / "diff.png"
        save_png(diff, diff_path)
        saved.append(diff_path)
        result.metadata["diff"] = error_pct

    if args.metadata:
        saved.append(save_metadata(args.metadata, result.metadata))

    # Summary
    logger.info("=" * 60)
    logger.info("  RENDER COMPLETE")
    logger.info("=" * 60)
    logger.info("  Wall time: %.2f s", result.wall_time_s)
    logger.info("  Output files (%d):", len(saved))
    for p in saved:
        logger.info("    → %s", p)
    logger.info("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
