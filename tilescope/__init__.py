"""Core package for the tilescope attention-guided tile selection engine.

Keep imports lightweight to avoid pulling in heavy dependencies (e.g., torch)
for workflows that only need histogram scoring or tile selection.
"""

from __future__ import annotations

__all__ = ["TileAttentionEngine"]


def __getattr__(name: str):
	if name == "TileAttentionEngine":
		from tilescope.attention.inference import TileAttentionEngine  # local import (lazy)

		return TileAttentionEngine
	raise AttributeError(name)
