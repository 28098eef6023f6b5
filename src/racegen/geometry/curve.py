"""
Cubic Bezier curve kernel.

Provides:
- Point and derivative evaluation, arc length, bounding boxes
- Projection of a point onto a curve
- Splitting and reduction into "simple" sub-curves
- Curve/curve, self and line intersections

Intersection and offsetting work on reduced curves: a curve is cut at its
extrema, then each piece is cut further until every sub-curve is simple
(control points on one side of the chord, end normals less than 60 degrees
apart). Simple curves can be offset by scaling about a single origin.
"""

from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import List, NamedTuple, Optional, Sequence, Tuple
import math

import numpy as np

from racegen.errors import CurveDegenerateError
from racegen.geometry.vector import Point


# Gauss-Legendre abscissae and weights for arc length integration
_GAUSS_T, _GAUSS_C = np.polynomial.legendre.leggauss(24)

LINEAR_TOLERANCE = 0.0001
APPROXIMATE_EPSILON = 0.000001
REDUCTION_STEP = 0.01
LUT_STEPS = 100
INTERSECTION_ROUNDING = 100000


class BoundingBox(NamedTuple):
    """Axis-aligned bounding box."""
    x_min: float
    x_max: float
    y_min: float
    y_max: float

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def height(self) -> float:
        return self.y_max - self.y_min

    @property
    def center(self) -> Point:
        return Point((self.x_min + self.x_max) / 2, (self.y_min + self.y_max) / 2)

    def overlaps(self, other: "BoundingBox") -> bool:
        """Check whether two boxes overlap (touching does not count)."""
        for mid, other_mid, size, other_size in (
            (self.center.x, other.center.x, self.width, other.width),
            (self.center.y, other.center.y, self.height, other.height),
        ):
            if abs(mid - other_mid) >= (size + other_size) / 2:
                return False
        return True


class Projection(NamedTuple):
    """Closest point on a curve to some other point."""
    t: float
    distance: float
    point: Point


def _lerp(r: float, v1: Point, v2: Point) -> Point:
    return Point(v1.x + r * (v2.x - v1.x), v1.y + r * (v2.y - v1.y))


def _map(v: float, ds: float, de: float, ts: float, te: float) -> float:
    """Map v from range [ds, de] onto [ts, te]."""
    return ts + (te - ts) * ((v - ds) / (de - ds))


def _angle(o: Point, v1: Point, v2: Point) -> float:
    dx1, dy1 = v1.x - o.x, v1.y - o.y
    dx2, dy2 = v2.x - o.x, v2.y - o.y
    return math.atan2(dx1 * dy2 - dy1 * dx2, dx1 * dx2 + dy1 * dy2)


def _approximately(a: float, b: float, precision: float = APPROXIMATE_EPSILON) -> bool:
    return abs(a - b) <= precision


def _between(v: float, lower: float, upper: float) -> bool:
    return lower <= v <= upper or _approximately(v, lower) or _approximately(v, upper)


def line_line_intersection(p1: Point, p2: Point, p3: Point, p4: Point) -> Optional[Point]:
    """Intersection of the infinite lines p1-p2 and p3-p4, None if parallel."""
    x1, y1, x2, y2 = p1.x, p1.y, p2.x, p2.y
    x3, y3, x4, y4 = p3.x, p3.y, p4.x, p4.y
    nx = (x1 * y2 - y1 * x2) * (x3 - x4) - (x1 - x2) * (x3 * y4 - y3 * x4)
    ny = (x1 * y2 - y1 * x2) * (y3 - y4) - (y1 - y2) * (x3 * y4 - y3 * x4)
    d = (x1 - x2) * (y3 - y4) - (y1 - y2) * (x3 - x4)
    if d == 0:
        return None
    return Point(nx / d, ny / d)


def align(points: Sequence[Point], p1: Point, p2: Point) -> List[Point]:
    """Translate and rotate points so that the line p1-p2 lies on the x axis."""
    a = -math.atan2(p2.y - p1.y, p2.x - p1.x)
    cos_a, sin_a = math.cos(a), math.sin(a)
    return [
        Point(
            (p.x - p1.x) * cos_a - (p.y - p1.y) * sin_a,
            (p.x - p1.x) * sin_a + (p.y - p1.y) * cos_a,
        )
        for p in points
    ]


def _derivative_roots(values: Sequence[float]) -> List[float]:
    """Roots of a quadratic or linear Bezier polynomial given its weights."""
    if len(values) == 3:
        a, b, c = values
        d = a - 2 * b + c
        if d != 0:
            discriminant = b * b - a * c
            if discriminant < 0:
                return []
            m1 = -math.sqrt(discriminant)
            m2 = -a + b
            return [-(m1 + m2) / d, -(-m1 + m2) / d]
        if b != c:
            return [(2 * b - c) / (2 * (b - c))]
        return []

    if len(values) == 2:
        a, b = values
        if a != b:
            return [a / (a - b)]
    return []


@dataclass(frozen=True)
class CubicCurve:
    """Cubic Bezier curve defined by four control points.

    Curves are immutable. A curve split from a parent remembers the parent
    parameter range it covers in ``t1``/``t2``, so intersections found on
    sub-curves can be reported in the parent's parameter space.
    """
    start: Point
    control1: Point
    control2: Point
    end: Point

    # Parent parameter range
    t1: float = field(default=0.0, compare=False)
    t2: float = field(default=1.0, compare=False)

    @classmethod
    def from_points(cls, points: Sequence[Sequence[float]]) -> "CubicCurve":
        """Create a curve from four (x, y) pairs."""
        if len(points) != 4:
            raise ValueError(f"A cubic curve needs 4 control points, got {len(points)}")
        return cls(*(Point(float(x), float(y)) for x, y in points))

    @classmethod
    def line(cls, p1: Point, p2: Point) -> "CubicCurve":
        """Straight segment as a cubic with evenly spaced control points."""
        dx = (p2.x - p1.x) / 3
        dy = (p2.y - p1.y) / 3
        return cls(
            p1,
            Point(p1.x + dx, p1.y + dy),
            Point(p1.x + 2 * dx, p1.y + 2 * dy),
            p2,
        )

    @property
    def points(self) -> Tuple[Point, Point, Point, Point]:
        return (self.start, self.control1, self.control2, self.end)

    @cached_property
    def _derivative_points(self) -> Tuple[Point, Point, Point]:
        p = self.points
        return tuple(
            Point(3 * (p[j + 1].x - p[j].x), 3 * (p[j + 1].y - p[j].y))
            for j in range(3)
        )

    @cached_property
    def _second_derivative_points(self) -> Tuple[Point, Point]:
        p = self._derivative_points
        return tuple(
            Point(2 * (p[j + 1].x - p[j].x), 2 * (p[j + 1].y - p[j].y))
            for j in range(2)
        )

    @property
    def is_linear(self) -> bool:
        """True if every control point lies on the start-end chord."""
        aligned = align(self.points, self.start, self.end)
        return all(abs(p.y) <= LINEAR_TOLERANCE for p in aligned)

    def evaluate(self, t: float) -> Point:
        """Point on the curve at parameter t."""
        if t == 0:
            return self.start
        if t == 1:
            return self.end

        p0, p1, p2, p3 = self.points
        mt = 1 - t
        mt2 = mt * mt
        t2 = t * t
        a = mt2 * mt
        b = mt2 * t * 3
        c = mt * t2 * 3
        d = t * t2
        return Point(
            a * p0.x + b * p1.x + c * p2.x + d * p3.x,
            a * p0.y + b * p1.y + c * p2.y + d * p3.y,
        )

    def derivative(self, t: float) -> Point:
        """Tangent vector (not normalised) at parameter t."""
        p0, p1, p2 = self._derivative_points
        if t == 0:
            return p0
        if t == 1:
            return p2

        mt = 1 - t
        a = mt * mt
        b = mt * t * 2
        c = t * t
        return Point(
            a * p0.x + b * p1.x + c * p2.x,
            a * p0.y + b * p1.y + c * p2.y,
        )

    def normal(self, t: float) -> Point:
        """Unit normal (tangent rotated a quarter turn) at parameter t.

        Raises:
            CurveDegenerateError: If the tangent vanishes at t
        """
        d = self.derivative(t)
        q = math.sqrt(d.x * d.x + d.y * d.y)
        if q == 0:
            raise CurveDegenerateError(f"Curve has no tangent at t={t}")
        return Point(-d.y / q, d.x / q)

    def points_at(self, ts: np.ndarray) -> np.ndarray:
        """Vectorised evaluation.

        Args:
            ts: Array of parameters

        Returns:
            (N, 2) array of points
        """
        ts = np.asarray(ts, dtype=float)[:, None]
        mt = 1 - ts
        control = np.array(self.points)
        return (
            mt ** 3 * control[0]
            + 3 * mt ** 2 * ts * control[1]
            + 3 * mt * ts ** 2 * control[2]
            + ts ** 3 * control[3]
        )

    def _derivatives_at(self, ts: np.ndarray) -> np.ndarray:
        ts = np.asarray(ts, dtype=float)[:, None]
        mt = 1 - ts
        control = np.array(self._derivative_points)
        return mt ** 2 * control[0] + 2 * mt * ts * control[1] + ts ** 2 * control[2]

    @cached_property
    def _length(self) -> float:
        ts = 0.5 * _GAUSS_T + 0.5
        d = self._derivatives_at(ts)
        return float(0.5 * np.sum(_GAUSS_C * np.hypot(d[:, 0], d[:, 1])))

    def length(self) -> float:
        """Arc length."""
        return self._length

    @cached_property
    def _extrema_by_axis(self) -> Tuple[Tuple[float, ...], Tuple[float, ...]]:
        result = []
        for axis in (0, 1):
            roots = _derivative_roots([p[axis] for p in self._derivative_points])
            roots += _derivative_roots([p[axis] for p in self._second_derivative_points])
            result.append(tuple(sorted(t for t in roots if 0 <= t <= 1)))
        return result[0], result[1]

    def extrema(self) -> List[float]:
        """Sorted parameters of axis extrema and inflection candidates in [0, 1]."""
        x_roots, y_roots = self._extrema_by_axis
        return sorted(set(x_roots + y_roots))

    @cached_property
    def _bounding_box(self) -> BoundingBox:
        limits = []
        for axis, roots in enumerate(self._extrema_by_axis):
            ts = [0.0, *roots, 1.0]
            values = [self.evaluate(t)[axis] for t in ts]
            limits.append((min(values), max(values)))
        (x_min, x_max), (y_min, y_max) = limits
        return BoundingBox(x_min, x_max, y_min, y_max)

    def bounding_box(self) -> BoundingBox:
        return self._bounding_box

    def overlaps(self, other: "CubicCurve") -> bool:
        """Broad-phase check: do the bounding boxes overlap?"""
        return self.bounding_box().overlaps(other.bounding_box())

    def split_at(self, t: float) -> Tuple["CubicCurve", "CubicCurve"]:
        """Split at t using de Casteljau's algorithm.

        Returns:
            Tuple of (left, right) curves
        """
        p0, p1, p2, p3 = self.points
        l01 = _lerp(t, p0, p1)
        l12 = _lerp(t, p1, p2)
        l23 = _lerp(t, p2, p3)
        l012 = _lerp(t, l01, l12)
        l123 = _lerp(t, l12, l23)
        l0123 = _lerp(t, l012, l123)

        mid_t = _map(t, 0, 1, self.t1, self.t2)
        left = CubicCurve(p0, l01, l012, l0123, t1=self.t1, t2=mid_t)
        right = CubicCurve(l0123, l123, l23, p3, t1=mid_t, t2=self.t2)
        return left, right

    def split(self, t1: float, t2: float) -> "CubicCurve":
        """Sub-curve between t1 and t2."""
        if t1 == 0 and t2:
            return self.split_at(t2)[0]
        if t2 == 1:
            return self.split_at(t1)[1]

        right = self.split_at(t1)[1]
        return right.split_at(_map(t2, t1, 1, 0, 1))[0]

    def with_range(self, t1: float, t2: float) -> "CubicCurve":
        return replace(self, t1=t1, t2=t2)

    def reversed(self) -> "CubicCurve":
        return CubicCurve(self.end, self.control2, self.control1, self.start)

    def is_simple(self) -> bool:
        """Check whether the curve can be offset by scaling.

        Both control points must be on the same side of the chord, and the
        end normals must be less than 60 degrees apart.
        """
        a1 = _angle(self.start, self.end, self.control1)
        a2 = _angle(self.start, self.end, self.control2)
        if (a1 > 0 and a2 < 0) or (a1 < 0 and a2 > 0):
            return False

        try:
            n1 = self.normal(0)
            n2 = self.normal(1)
        except CurveDegenerateError:
            return False

        s = min(1.0, max(-1.0, n1.x * n2.x + n1.y * n2.y))
        return abs(math.acos(s)) < math.pi / 3

    @cached_property
    def _reduced(self) -> Tuple["CubicCurve", ...]:
        extrema = self.extrema()
        if 0 not in extrema:
            extrema = [0.0] + extrema
        if 1 not in extrema:
            extrema.append(1.0)

        # First pass: cut at extrema
        first_pass = []
        t1 = extrema[0]
        for t2 in extrema[1:]:
            first_pass.append(self.split(t1, t2).with_range(t1, t2))
            t1 = t2

        # Second pass: walk each piece in fixed steps until it stops being simple
        step = REDUCTION_STEP
        second_pass = []
        for piece in first_pass:
            t1 = 0.0
            t2 = 0.0
            reducible = True
            while reducible and t2 <= 1:
                t2 = t1 + step
                while t2 <= 1 + step:
                    if not piece.split(t1, t2).is_simple():
                        t2 -= step
                        if abs(t1 - t2) < step:
                            # No simple sub-curve starts at t1; drop the rest of this piece
                            reducible = False
                            break
                        second_pass.append(piece.split(t1, t2).with_range(
                            _map(t1, 0, 1, piece.t1, piece.t2),
                            _map(t2, 0, 1, piece.t1, piece.t2),
                        ))
                        t1 = t2
                        break
                    t2 += step

            if reducible and t1 < 1:
                second_pass.append(piece.split(t1, 1).with_range(
                    _map(t1, 0, 1, piece.t1, piece.t2),
                    piece.t2,
                ))

        return tuple(second_pass)

    def reduce(self) -> List["CubicCurve"]:
        """Cut the curve into simple sub-curves.

        A piece that cannot be reduced further is dropped, so the result
        may not cover the whole curve.
        """
        return list(self._reduced)

    def scale(self, d: float) -> "CubicCurve":
        """Offset a simple curve by distance d along its normal.

        Raises:
            CurveDegenerateError: If the curve's end normals are parallel
                or a control point cannot be placed
        """
        c0, c1 = self.start, self.end
        n0, n1 = self.normal(0), self.normal(1)
        origin = line_line_intersection(
            Point(c0.x + n0.x * 10, c0.y + n0.y * 10), c0,
            Point(c1.x + n1.x * 10, c1.y + n1.y * 10), c1,
        )
        if origin is None:
            raise CurveDegenerateError("Cannot scale this curve. Try reducing it first.")

        new_start = Point(c0.x + d * n0.x, c0.y + d * n0.y)
        new_end = Point(c1.x + d * n1.x, c1.y + d * n1.y)

        d0 = self.derivative(0)
        d1 = self.derivative(1)
        new_control1 = line_line_intersection(
            new_start, Point(new_start.x + d0.x, new_start.y + d0.y), origin, self.control1,
        )
        new_control2 = line_line_intersection(
            new_end, Point(new_end.x + d1.x, new_end.y + d1.y), origin, self.control2,
        )
        if new_control1 is None or new_control2 is None:
            raise CurveDegenerateError("Cannot place offset control points for this curve")

        return CubicCurve(new_start, new_control1, new_control2, new_end)

    def project(self, point: Point) -> Projection:
        """Find the closest point on the curve to an arbitrary point."""
        target = np.array(point, dtype=float)
        lut = self.points_at(np.linspace(0.0, 1.0, LUT_STEPS + 1))
        closest = int(np.argmin(np.linalg.norm(lut - target, axis=1)))

        # Refine around the closest lookup entry
        step = 0.1 / LUT_STEPS
        lower = max((closest - 1) / LUT_STEPS, 0.0)
        upper = min((closest + 1) / LUT_STEPS, 1.0)
        ts = np.clip(np.arange(lower, upper + step, step), 0.0, 1.0)
        distances = np.linalg.norm(self.points_at(ts) - target, axis=1)
        best = int(np.argmin(distances))

        t = float(ts[best])
        return Projection(t=t, distance=float(distances[best]), point=self.evaluate(t))

    def intersections(
        self,
        other: "CubicCurve",
        threshold: float = 0.5,
    ) -> List[Tuple[float, float]]:
        """Intersections with another curve.

        Args:
            other: Curve to intersect with
            threshold: Bounding box size (width + height) at which a
                candidate pair is accepted as an intersection

        Returns:
            List of (t on self, t on other) pairs
        """
        return curve_intersections(self.reduce(), other.reduce(), threshold)

    def self_intersections(self, threshold: float = 0.5) -> List[Tuple[float, float]]:
        """Points where the curve crosses itself, as (t, t) pairs."""
        reduced = self.reduce()
        results = []
        for i in range(len(reduced) - 2):
            results.extend(curve_intersections(reduced[i:i + 1], reduced[i + 2:], threshold))
        return results

    def line_intersects(self, p1: Point, p2: Point) -> List[float]:
        """Parameters where the curve crosses the line segment p1-p2."""
        x_min, x_max = min(p1.x, p2.x), max(p1.x, p2.x)
        y_min, y_max = min(p1.y, p2.y), max(p1.y, p2.y)

        hits = []
        for t in _roots_along_line(self.points, p1, p2):
            p = self.evaluate(t)
            if _between(p.x, x_min, x_max) and _between(p.y, y_min, y_max):
                hits.append(t)
        return hits


def _roots_along_line(points: Sequence[Point], p1: Point, p2: Point) -> List[float]:
    """Parameters in [0, 1] where a cubic crosses the infinite line p1-p2."""
    pa, pb, pc, pd = (p.y for p in align(points, p1, p2))
    coefficients = [
        -pa + 3 * pb - 3 * pc + pd,
        3 * pa - 6 * pb + 3 * pc,
        -3 * pa + 3 * pb,
        pa,
    ]

    # Drop vanishing leading terms so lower-order curves are solved exactly
    while len(coefficients) > 1 and _approximately(coefficients[0], 0):
        coefficients = coefficients[1:]
    if len(coefficients) == 1:
        return []

    roots = np.roots(coefficients)
    real = roots[np.abs(roots.imag) < 1e-9].real
    return sorted(float(t) for t in real if 0 <= t <= 1)


def _pair_iteration(
    c1: CubicCurve,
    c2: CubicCurve,
    threshold: float,
) -> List[Tuple[float, float]]:
    b1 = c1.bounding_box()
    b2 = c2.bounding_box()
    r = INTERSECTION_ROUNDING
    if b1.width + b1.height < threshold and b2.width + b2.height < threshold:
        return [(
            int(r * (c1.t1 + c1.t2) / 2) / r,
            int(r * (c2.t1 + c2.t2) / 2) / r,
        )]

    left1, right1 = c1.split_at(0.5)
    left2, right2 = c2.split_at(0.5)
    pairs = [
        (left1, left2),
        (left1, right2),
        (right1, right2),
        (right1, left2),
    ]

    results = []
    for a, b in pairs:
        if a.bounding_box().overlaps(b.bounding_box()):
            for hit in _pair_iteration(a, b, threshold):
                if hit not in results:
                    results.append(hit)
    return results


def curve_intersections(
    curves1: Sequence[CubicCurve],
    curves2: Sequence[CubicCurve],
    threshold: float,
) -> List[Tuple[float, float]]:
    """Intersections between two sets of simple curves."""
    results = []
    for left in curves1:
        for right in curves2:
            if left.overlaps(right):
                results.extend(_pair_iteration(left, right, threshold))
    return results


def bounding_box(curves: Sequence[CubicCurve]) -> BoundingBox:
    """Bounding box enclosing a set of curves."""
    if not curves:
        raise ValueError("Cannot compute the bounding box of no curves")
    boxes = [curve.bounding_box() for curve in curves]
    return BoundingBox(
        x_min=min(b.x_min for b in boxes),
        x_max=max(b.x_max for b in boxes),
        y_min=min(b.y_min for b in boxes),
        y_max=max(b.y_max for b in boxes),
    )
