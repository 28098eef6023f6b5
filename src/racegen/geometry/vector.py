"""
Vector math - Point arithmetic in the unit-normalised track domain.

Points double as vectors from the origin. All functions are pure.
"""

from typing import NamedTuple
import numpy as np

from racegen.errors import DegenerateVectorError


class Point(NamedTuple):
    """2D point (or vector from the origin)."""
    x: float
    y: float


ORIGIN = Point(0.0, 0.0)


def add(point1: Point, point2: Point) -> Point:
    return Point(point1.x + point2.x, point1.y + point2.y)


def invert(point: Point) -> Point:
    return Point(-point.x, -point.y)


def multiply(point: Point, multiple: float) -> Point:
    return Point(point.x * multiple, point.y * multiple)


def length(point: Point) -> float:
    """Euclidean magnitude of a vector."""
    return float(np.sqrt(point.x ** 2 + point.y ** 2))


def scale_to_length(vector: Point, new_length: float) -> Point:
    """Rescale a vector to a new length, keeping its direction.

    Args:
        vector: Vector to rescale
        new_length: Desired magnitude

    Returns:
        Rescaled vector

    Raises:
        DegenerateVectorError: If the vector has zero length
    """
    current_length = length(vector)
    if current_length == 0.0:
        raise DegenerateVectorError(
            f"Cannot scale zero-length vector {tuple(vector)} to length {new_length}"
        )

    scale_factor = new_length / current_length
    return Point(scale_factor * vector.x, scale_factor * vector.y)


def distance(point1: Point, point2: Point) -> float:
    return length(add(point1, invert(point2)))
