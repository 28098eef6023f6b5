"""
Errors raised by track generation.

Geometric rejections of a candidate section are recovered internally and
never surface here. Everything below reaches the caller.
"""

from collections import Counter
from typing import Optional


class RaceGenError(Exception):
    """Base class for all racegen errors."""


class InvalidConfigurationError(RaceGenError, ValueError):
    """A section count, width range or domain is unusable."""


class DegenerateVectorError(RaceGenError, ValueError):
    """A zero-length vector cannot be rescaled to a new length."""


class CurveDegenerateError(RaceGenError):
    """The geometry kernel cannot offset or scale a curve."""


class OutlineStructureError(RaceGenError):
    """An outline does not start with an end cap.

    The edge splitting relies on the first end cap sitting at index 0 of
    the outline. Retrying cannot fix a broken convention, so generation
    stops.
    """


class GenerationExhaustedError(RaceGenError):
    """A retry budget ran out before a valid track section was found."""

    def __init__(self, message: str, rejections: Optional[Counter] = None):
        super().__init__(message)
        self.rejections = rejections if rejections is not None else Counter()


class GenerationCancelledError(RaceGenError):
    """The caller cancelled a running generation."""
