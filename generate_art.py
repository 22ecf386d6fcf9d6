#!/usr/bin/env python3
"""
Script to composite the final PNG images of a generative art collection.

Reads the layer configuration (`order`, `width`, `height`) and a JSON list of
randomized trait sets, then writes `{id-1}.png` for each set into the assets
directory using a pool of workers.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Sequence

from art_generator import create_generative_art
from estratos.logging_config import get_logger
from generation_errors import ConfigError
from paths import ASSETS_DIR, TRAITS_DIR
from png_optimizer import DEFAULT_QUALITY


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate layered art images from randomized trait sets.")
    parser.add_argument("config", type=Path, help="JSON config with order, width and height")
    parser.add_argument("sets", type=Path, help="JSON list of trait sets, each with an 'id'")
    parser.add_argument("--traits-dir", type=Path, default=TRAITS_DIR,
                        help=f"Trait library root (default: {TRAITS_DIR})")
    parser.add_argument("--assets-dir", type=Path, default=ASSETS_DIR,
                        help=f"Output directory (default: {ASSETS_DIR})")
    parser.add_argument("--workers", type=int, default=None,
                        help="Number of workers (default: available CPUs)")
    parser.add_argument("--quality-min", type=float, default=DEFAULT_QUALITY[0])
    parser.add_argument("--quality-max", type=float, default=DEFAULT_QUALITY[1])
    parser.add_argument("--progress", action="store_true", help="Show a progress bar")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logger = get_logger("estratos.cli")

    try:
        with args.sets.open("r", encoding="utf-8") as stream:
            randomized_sets = json.load(stream)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not read trait sets from %s: %s", args.sets, exc)
        return 1
    if not isinstance(randomized_sets, list):
        logger.error("%s must contain a JSON list of trait sets", args.sets)
        return 1

    try:
        report = create_generative_art(
            args.config,
            randomized_sets,
            traits_dir=args.traits_dir,
            assets_dir=args.assets_dir,
            max_workers=args.workers,
            quality=(args.quality_min, args.quality_max),
            show_progress=args.progress,
        )
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    print(report.summary())
    for failure in report.failures:
        print(f"  - {failure.output_name}: {failure.error_type}: {failure.message}")
    return 1 if report.failures else 0


if __name__ == "__main__":
    sys.exit(main())
