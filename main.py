"""Project entry point for end-to-end tile attention runs."""

from __future__ import annotations

from tilescope.attention.classifier import load_torch_patch_classifier
from tilescope.attention.config import load_attention_config
from tilescope.attention.inference import TileAttentionEngine
from tilescope.attention.reference import ReferenceHistogramBuilder
from tilescope.attention.report import write_tile_report
from tilescope.attention.utils.io import (
    compute_report_path,
    list_image_files,
    load_normalized_image,
    load_reference_histogram,
    save_reference_histogram,
)
from tilescope.attention.visualize import render_overlay, save_overlay
from tilescope.logging import setup_logger


def main() -> None:
    """Main entry point: reference histogram, tile scoring, overlays and report."""
    logger = setup_logger()
    logger.info("Starting tile attention pipeline.")
    config = load_attention_config()

    # --- Stage 1: Healthy reference ---
    logger.info("--- Stage 1: Reference Histogram ---")
    if not config.reference_histogram_path.exists():
        logger.info(f"Reference histogram not found at {config.reference_histogram_path}. Building...")
        paths = [config.image_dir / name for name in config.reference_images]
        histogram = ReferenceHistogramBuilder(config).build(paths)
        save_reference_histogram(histogram, config.reference_histogram_path)
    else:
        logger.info(f"Reference histogram found at {config.reference_histogram_path}. Skipping build.")
    reference = load_reference_histogram(config.reference_histogram_path)

    # --- Stage 2: Scoring and selection ---
    logger.info("--- Stage 2: Tile Scoring ---")
    try:
        classifier = load_torch_patch_classifier(config.model_path, input_size=config.model_input_size, device=config.device)
    except Exception as e:
        logger.error(f"Failed to load patch classifier: {e}")
        logger.info("Place a checkpoint at model/patch_classifier.pt or set TILESCOPE_ATTN_MODEL_PATH.")
        return

    engine = TileAttentionEngine(config, classifier, reference)
    reference_names = set(config.reference_images)
    images = [
        path
        for path in list_image_files(config.image_dir, {ext.lower() for ext in config.image_extensions})
        if path.name not in reference_names
    ]
    if config.max_images is not None:
        logger.info(f"Limiting to {config.max_images} images.")
        images = images[: config.max_images]

    results = []
    for image_path in images:
        decoded = load_normalized_image(image_path, config.image_size)
        result = engine.process_image(decoded.array, image_path.name)
        results.append(result)

        # --- Stage 3: Visualization ---
        canvas = render_overlay(decoded.array, result.selected, config.patch_size, top_k=config.visualize_top_k)
        save_overlay(canvas, config.output_dir, image_path.stem, config.lambda_weights, config.epsilon)

    report_path = write_tile_report(results, compute_report_path(config.output_dir, "tile_attention.csv"))
    logger.info(f"Processed {len(results)} images. Report: {report_path}")
    logger.info("End-to-end pipeline execution finished successfully.")


if __name__ == "__main__":
    main()
