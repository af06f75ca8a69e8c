"""Exception types raised by the tile selection engine."""

from __future__ import annotations


class TilescopeError(Exception):
    """Base class for all tilescope errors."""


class InvalidDimensionsError(TilescopeError, ValueError):
    """Patch geometry is incompatible with the image size."""


class ShapeMismatchError(TilescopeError, ValueError):
    """Two histograms that must be compared have different lengths."""


class EmptyReferenceSetError(TilescopeError, ValueError):
    """A reference histogram was requested from an empty image set."""


class ClassifierFailureError(TilescopeError, RuntimeError):
    """The patch classifier raised or returned a malformed probability vector."""


class ProcessingCancelledError(TilescopeError, RuntimeError):
    """Processing was interrupted through the cancellation token."""
