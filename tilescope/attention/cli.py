#!/usr/bin/env python3
"""CLI entry point for the tile attention pipeline.

Run via:

    uv run python -m tilescope.attention --help
"""

import argparse
import sys
from pathlib import Path

from tilescope.attention.config import AttentionSelectorConfig, load_attention_config
from tilescope.attention.overlap import GroundTruthBox
from tilescope.attention.reference import ReferenceHistogramBuilder
from tilescope.attention.report import summarize_selection, write_tile_report
from tilescope.attention.scoring import AttentionMode
from tilescope.attention.tiles import AttentionResult
from tilescope.attention.utils.io import (
    compute_report_path,
    list_image_files,
    load_normalized_image,
    load_reference_histogram,
    save_reference_histogram,
)
from tilescope.attention.visualize import render_overlay, save_overlay, save_selected_tiles
from tilescope.logging import get_logger, setup_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Attention-guided tile selection",
        allow_abbrev=False,
    )
    parser.add_argument(
        "--build-reference",
        nargs="*",
        default=None,
        metavar="IMAGE",
        help=(
            "Build the healthy reference histogram from the given images. "
            "Without arguments, config.reference_images under config.image_dir are used."
        ),
    )
    parser.add_argument(
        "--reference",
        type=Path,
        default=None,
        help="Reference histogram (.npy) to write or read. Defaults to config.reference_histogram_path.",
    )
    parser.add_argument(
        "--images",
        nargs="+",
        type=Path,
        default=None,
        help="Images (or directories of images) to score and select tiles from.",
    )
    parser.add_argument(
        "--gt-box",
        nargs=4,
        type=float,
        default=None,
        metavar=("X", "Y", "W", "H"),
        help="Ground-truth box in the original image's pixel space (applied to every image).",
    )
    parser.add_argument("--mode", choices=[mode.value for mode in AttentionMode], default=None)
    parser.add_argument("--epsilon", type=float, default=None)
    parser.add_argument("--lambda", dest="lambda_weights", nargs=3, type=float, default=None, metavar=("L0", "L1", "L2"))
    parser.add_argument("--selection-size", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument(
        "--repeat",
        type=int,
        default=1,
        help="Evaluate each image this many times so the smoothed scores accumulate (default: 1).",
    )
    parser.add_argument("--visualize", action="store_true", help="Write an overlay image per processed image.")
    parser.add_argument("--save-tiles", action="store_true", help="Save the selected tile patches.")
    parser.add_argument("--report", action="store_true", help="Write a CSV report of all tiles.")
    return parser


def apply_overrides(config: AttentionSelectorConfig, args: argparse.Namespace) -> AttentionSelectorConfig:
    """Apply command-line overrides to a loaded configuration."""

    updates: dict[str, object] = {}
    if args.mode is not None:
        updates["mode"] = AttentionMode(args.mode)
    if args.epsilon is not None:
        if not 0.0 <= args.epsilon <= 1.0:
            raise ValueError(f"--epsilon must be in [0, 1], got {args.epsilon}")
        updates["epsilon"] = float(args.epsilon)
    if args.lambda_weights is not None:
        updates["lambda_weights"] = tuple(float(v) for v in args.lambda_weights)
    if args.selection_size is not None:
        if args.selection_size < 0:
            raise ValueError(f"--selection-size must be non-negative, got {args.selection_size}")
        updates["selection_size"] = int(args.selection_size)
    if args.seed is not None:
        updates["seed"] = int(args.seed)
    if args.save_tiles:
        updates["save_tiles"] = True
    if args.reference is not None:
        updates["reference_histogram_path"] = args.reference
    return config.model_copy(update=updates) if updates else config


def _resolve_images(paths: list[Path], config: AttentionSelectorConfig) -> list[Path]:
    extensions = {ext.lower() for ext in config.image_extensions}
    resolved: list[Path] = []
    for path in paths:
        if path.is_dir():
            resolved.extend(list_image_files(path, extensions))
        else:
            resolved.append(path)
    if config.max_images is not None:
        resolved = resolved[: config.max_images]
    return resolved


def build_reference(config: AttentionSelectorConfig, images: list[str]) -> Path:
    """Build and persist the reference histogram."""

    if images:
        paths = [Path(image) for image in images]
    else:
        paths = [config.image_dir / name for name in config.reference_images]
    histogram = ReferenceHistogramBuilder(config).build(paths)
    return save_reference_histogram(histogram, config.reference_histogram_path)


def run_images(config: AttentionSelectorConfig, images: list[Path], args: argparse.Namespace) -> list[AttentionResult]:
    """Score and select tiles for every image, writing optional artifacts."""

    from tilescope.attention.classifier import load_torch_patch_classifier
    from tilescope.attention.inference import TileAttentionEngine

    logger = get_logger("cli")
    if not images:
        raise FileNotFoundError("No images found to process.")

    reference = load_reference_histogram(config.reference_histogram_path)
    classifier = load_torch_patch_classifier(
        config.model_path,
        input_size=config.model_input_size,
        device=config.device,
    )
    engine = TileAttentionEngine(config, classifier, reference)
    box = GroundTruthBox(*args.gt_box) if args.gt_box else None

    results: list[AttentionResult] = []
    for image_path in images:
        decoded = load_normalized_image(image_path, config.image_size)
        scaled_box = box.scaled(*decoded.scale) if box is not None else None

        result = None
        for _ in range(max(1, int(args.repeat))):
            result = engine.process_image(decoded.array, image_path.name, ground_truth=scaled_box)
        results.append(result)

        summary = summarize_selection(result)
        if summary is not None:
            logger.info(
                "%s: precision=%.3f recall=%.3f (%d/%d positive tiles selected)",
                image_path.name,
                summary.precision,
                summary.recall,
                summary.selected_positive_count,
                summary.positive_count,
            )

        if args.visualize:
            canvas = render_overlay(
                decoded.array,
                result.selected,
                config.patch_size,
                ground_truth=scaled_box,
                top_k=config.visualize_top_k,
            )
            save_overlay(canvas, config.output_dir, image_path.stem, config.lambda_weights, config.epsilon)

        if config.save_tiles:
            save_selected_tiles(decoded.array, result.selected, config.output_dir / "tiles", image_path.stem)

    if args.report:
        report_path = write_tile_report(results, compute_report_path(config.output_dir, "tile_attention.csv"))
        logger.info("Tile report written to %s", report_path)
    return results


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(args=argv)

    logger = setup_logger()

    try:
        config = apply_overrides(load_attention_config(), args)
        logger.info("Configuration loaded successfully.")
    except Exception as exc:
        logger.error("Failed to load configuration: %s", exc)
        sys.exit(1)

    if args.build_reference is None and not args.images:
        logger.warning("No action specified. Use --build-reference or --images.")
        parser.print_help()
        sys.exit(0)

    if args.build_reference is not None:
        logger.info("=== Building Reference Histogram ===")
        try:
            path = build_reference(config, args.build_reference)
            logger.info("Reference histogram saved to %s", path)
        except Exception as exc:
            logger.error("Reference build failed: %s", exc, exc_info=True)
            sys.exit(1)

    if args.images:
        logger.info("=== Scoring Tiles ===")
        try:
            results = run_images(config, _resolve_images(args.images, config), args)
            logger.info("Processed %d images.", len(results))
        except Exception as exc:
            logger.error("Tile scoring failed: %s", exc, exc_info=True)
            sys.exit(1)


if __name__ == "__main__":
    main()
