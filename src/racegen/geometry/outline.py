"""
Outline - Offset boundary around a cubic curve.

The outline is a closed loop of curves:
- a start cap joining the backward offset to the forward offset
- the forward offset chain (one curve per reduced sub-curve)
- an end cap joining the forward offset to the backward offset
- the backward offset chain, reversed so the loop runs one way
"""

from typing import List

from racegen.errors import CurveDegenerateError
from racegen.geometry.curve import CubicCurve
from racegen.geometry.vector import Point


def outline(curve: CubicCurve, half_width: float) -> List[CubicCurve]:
    """Offset a curve by half_width on both sides.

    The reduction step can silently drop pieces of the curve that cannot
    be reduced, so the result may have gaps between consecutive curves or
    stop short of an end of the original curve. Callers should check.

    Args:
        curve: Center curve
        half_width: Perpendicular offset distance on each side

    Returns:
        Ordered outline curves forming a loop

    Raises:
        CurveDegenerateError: If the curve cannot be offset
    """
    if curve.is_linear:
        return _linear_outline(curve, half_width)

    reduced = curve.reduce()
    if not reduced:
        raise CurveDegenerateError("Curve cannot be reduced into simple sub-curves")

    forward = [segment.scale(half_width) for segment in reduced]
    backward = [segment.scale(-half_width).reversed() for segment in reduced][::-1]

    start_cap = CubicCurve.line(backward[-1].end, forward[0].start)
    end_cap = CubicCurve.line(forward[-1].end, backward[0].start)

    return [start_cap, *forward, end_cap, *backward]


def _linear_outline(curve: CubicCurve, half_width: float) -> List[CubicCurve]:
    n = curve.normal(0)
    start, end = curve.start, curve.end

    forward = CubicCurve.line(
        Point(start.x + n.x * half_width, start.y + n.y * half_width),
        Point(end.x + n.x * half_width, end.y + n.y * half_width),
    )
    backward = CubicCurve.line(
        Point(end.x - n.x * half_width, end.y - n.y * half_width),
        Point(start.x - n.x * half_width, start.y - n.y * half_width),
    )

    return [
        CubicCurve.line(backward.end, forward.start),
        forward,
        CubicCurve.line(forward.end, backward.start),
        backward,
    ]


def outline_length(curves: List[CubicCurve]) -> float:
    """Total arc length of an outline."""
    return sum(curve.length() for curve in curves)
