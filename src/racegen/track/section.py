"""
Track section - One piece of track: a center curve and its two edges.

Defines:
- TrackSection: center curve plus left and right edge chains
- Track: ordered list of sections joined end to start
- Helpers to flatten curves and export plain-dict state
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from racegen.geometry.curve import CubicCurve
from racegen.geometry.vector import Point, distance


@dataclass(frozen=True)
class TrackSection:
    """A single validated piece of track.

    The edges are contiguous chains of offset curves. Together with the
    two end caps (not stored) they form a closed loop around the center.
    """
    center: CubicCurve
    left_edge: Tuple[CubicCurve, ...]
    right_edge: Tuple[CubicCurve, ...]

    @property
    def start(self) -> Point:
        return self.center.evaluate(0)

    @property
    def end(self) -> Point:
        return self.center.evaluate(1)

    @property
    def end_tangent(self) -> Point:
        return self.center.derivative(1)

    @property
    def curves(self) -> List[CubicCurve]:
        """All curves of the section: center first, then left, then right."""
        return [self.center, *self.left_edge, *self.right_edge]

    def get_state(self) -> dict:
        """Get section state as plain data.

        Returns:
            Dictionary of control point lists
        """
        return {
            "center": _curve_state(self.center),
            "left_edge": [_curve_state(curve) for curve in self.left_edge],
            "right_edge": [_curve_state(curve) for curve in self.right_edge],
        }


Track = List[TrackSection]


def _curve_state(curve: CubicCurve) -> List[List[float]]:
    return [[point.x, point.y] for point in curve.points]


def all_curves(track: Sequence[TrackSection]) -> List[CubicCurve]:
    """Flatten every center and edge curve of a track."""
    return [curve for section in track for curve in section.curves]


def is_continuous(track: Sequence[TrackSection], tolerance: float = 1e-9) -> bool:
    """Check that each section starts where the previous one ends."""
    return all(
        distance(previous.end, section.start) <= tolerance
        for previous, section in zip(track, track[1:])
    )


def track_state(track: Sequence[TrackSection]) -> dict:
    """Get complete track state for an external renderer."""
    return {
        "num_sections": len(track),
        "sections": [section.get_state() for section in track],
    }
