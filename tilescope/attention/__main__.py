"""Run the tile attention CLI as a module."""

from __future__ import annotations

from tilescope.attention.cli import main


if __name__ == "__main__":
    main()
