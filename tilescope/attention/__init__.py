"""Attention-guided tile selection.

Exports the main config and engine entrypoints for convenient imports.
"""

from .config import AttentionSelectorConfig, TileFeatureConfig, load_attention_config
from .inference import TileAttentionEngine
from .reference import ReferenceHistogramBuilder
from .scoring import AttentionMode, AttentionScorer
from .selection import EpsilonGreedySelector
from .state import TileKey, TileStateTracker
from .tiles import AttentionResult, ScoredTile, SelectedTile, SelectionReason

__all__ = [
    "AttentionSelectorConfig",
    "TileFeatureConfig",
    "load_attention_config",
    "TileAttentionEngine",
    "ReferenceHistogramBuilder",
    "AttentionMode",
    "AttentionScorer",
    "EpsilonGreedySelector",
    "TileKey",
    "TileStateTracker",
    "AttentionResult",
    "ScoredTile",
    "SelectedTile",
    "SelectionReason",
]
