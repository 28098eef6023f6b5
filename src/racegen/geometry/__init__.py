"""
Geometry module - Point math and the cubic Bezier kernel.

This module contains:
- Point and vector helpers
- CubicCurve: evaluation, projection, reduction, intersections
- outline: offset boundary of a curve at a given half-width
"""

from racegen.geometry.vector import Point
from racegen.geometry.curve import BoundingBox, CubicCurve, Projection, bounding_box
from racegen.geometry.outline import outline, outline_length

__all__ = [
    "Point",
    "BoundingBox",
    "CubicCurve",
    "Projection",
    "bounding_box",
    "outline",
    "outline_length",
]
