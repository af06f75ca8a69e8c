"""Evaluation summaries and CSV reports for attention results."""

from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from tilescope.attention.tiles import AttentionResult

TILE_REPORT_COLUMNS = (
    "image",
    "x",
    "y",
    "divergence",
    "unhealthy_prob",
    "entropy",
    "combined_score",
    "smoothed_score",
    "overlap_ratio",
    "label",
    "selected_rank",
    "reason",
    "excluded",
)


@dataclass(frozen=True)
class SelectionSummary:
    """Overlap statistics of a selection against the ground-truth labels.

    Attributes:
        selected_count: Number of selected tiles.
        positive_count: Number of labelled-positive tiles among all scored tiles.
        selected_positive_count: Number of selected tiles labelled positive.
        precision: Fraction of selected tiles labelled positive.
        recall: Fraction of positive tiles that were selected.
    """

    selected_count: int
    positive_count: int
    selected_positive_count: int
    precision: float
    recall: float


def summarize_selection(result: AttentionResult) -> SelectionSummary | None:
    """Compare the selection with the ground-truth labels.

    Returns:
        SelectionSummary, or None when the result carries no labels.
    """

    labelled = [tile for tile in result.tiles if tile.label is not None and not tile.excluded]
    if not labelled:
        return None

    positive_count = sum(1 for tile in labelled if tile.label == 1)
    selected_positive = sum(1 for item in result.selected if item.tile.label == 1)
    selected_count = len(result.selected)
    precision = selected_positive / selected_count if selected_count else 0.0
    recall = selected_positive / positive_count if positive_count else 0.0
    return SelectionSummary(
        selected_count=selected_count,
        positive_count=positive_count,
        selected_positive_count=selected_positive,
        precision=float(precision),
        recall=float(recall),
    )


def write_tile_report(results: Iterable[AttentionResult], report_path: Path) -> Path:
    """Write every tile of the given results to a CSV file.

    Args:
        results: Attention results.
        report_path: Output CSV path.

    Returns:
        The report path.
    """

    report_path = Path(report_path)
    report_path.parent.mkdir(parents=True, exist_ok=True)

    with report_path.open("w", encoding="utf-8", newline="") as file_handle:
        writer = csv.writer(file_handle)
        writer.writerow(TILE_REPORT_COLUMNS)
        for result in results:
            ranks = {(item.tile.x, item.tile.y): (rank, item.reason.value) for rank, item in enumerate(result.selected, start=1)}
            for tile in result.tiles:
                rank, reason = ranks.get((tile.x, tile.y), ("", ""))
                writer.writerow(
                    [
                        result.image_id,
                        tile.x,
                        tile.y,
                        f"{tile.divergence:.6f}",
                        _fmt(tile.unhealthy_prob),
                        _fmt(tile.entropy),
                        _fmt(tile.combined_score),
                        _fmt(tile.smoothed_score),
                        _fmt(tile.overlap_ratio),
                        "" if tile.label is None else tile.label,
                        rank,
                        reason,
                        int(tile.excluded),
                    ]
                )
    return report_path


def _fmt(value: float | None) -> str:
    return "" if value is None else f"{value:.6f}"
