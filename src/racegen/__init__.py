"""
racegen - Constrained procedural racetrack generation.

This package builds a racetrack as a chain of cubic Bezier sections:
- Random center curves continuing smoothly from section to section
- Offset outlines split into left and right track edges
- Validation against self-intersection, overlap, outline gaps and enclosure
- Backtracking when a section proves too hard to extend
- Progress snapshots of every attempt for live display
"""

__version__ = "0.1.0"

from racegen.geometry.curve import CubicCurve
from racegen.geometry.vector import Point
from racegen.track.section import Track, TrackSection
from racegen.track.builder import BuilderConfig, TrackBuilder, make_track

__all__ = [
    "CubicCurve",
    "Point",
    "Track",
    "TrackSection",
    "BuilderConfig",
    "TrackBuilder",
    "make_track",
    "__version__",
]
