"""
Validation - Geometric acceptance tests for track sections.

Checks:
- Self and pairwise curve intersections away from shared joints
- End cap identification and proximity to the center curve
- Outline continuity (gaps between consecutive outline curves)
- Outlines that stop short of the curve ends
- Points mostly enclosed by existing track
"""

from dataclasses import dataclass
from typing import List, Sequence
import logging

import numpy as np

from racegen.errors import InvalidConfigurationError
from racegen.geometry.curve import CubicCurve
from racegen.geometry.outline import outline_length
from racegen.geometry.vector import Point, add, distance
from racegen.track.section import TrackSection


logger = logging.getLogger(__name__)


@dataclass
class ValidationConfig:
    """Tolerances for the validation predicates."""
    # Intersections
    intersection_threshold: float = 0.001   # Box size at which a hit is accepted
    endpoint_margin: float = 0.01           # Hits within this of t=0/1 are joints

    # Outline
    max_outline_gap: float = 0.0001
    short_outline_ratio: float = 0.95       # Outline vs. twice the curve length

    # End caps
    end_cap_length_tolerance: float = 0.05  # +/- fraction of track width
    end_cap_proximity_factor: float = 0.99  # Fraction of half-width

    # Enclosure
    enclosure_ray_count: int = 10
    enclosure_ray_length: float = 50.0      # Much longer than the domain
    enclosure_ratio: float = 0.6            # Blocked fraction above which a point is enclosed

    def validate(self) -> None:
        """Raise InvalidConfigurationError on unusable tolerances."""
        if self.intersection_threshold <= 0:
            raise InvalidConfigurationError("intersection_threshold must be positive")
        if not 0 <= self.endpoint_margin < 0.5:
            raise InvalidConfigurationError("endpoint_margin must be in [0, 0.5)")
        if self.max_outline_gap < 0:
            raise InvalidConfigurationError("max_outline_gap must not be negative")
        if self.enclosure_ray_count < 1:
            raise InvalidConfigurationError("enclosure_ray_count must be at least 1")
        if self.enclosure_ray_length <= 0:
            raise InvalidConfigurationError("enclosure_ray_length must be positive")
        if not 0 <= self.enclosure_ratio <= 1:
            raise InvalidConfigurationError("enclosure_ratio must be in [0, 1]")


class TrackValidator:
    """Geometric predicates used to accept or reject track sections.

    Usage:
        validator = TrackValidator()
        if validator.has_gaps_in_outline(curves):
            ...
    """

    def __init__(self, config: ValidationConfig | None = None):
        """Initialize validator with optional configuration.

        Args:
            config: Validation tolerances. Uses defaults if None.
        """
        self.config = config or ValidationConfig()
        self.config.validate()

        angles = 2 * np.pi * np.arange(self.config.enclosure_ray_count) / self.config.enclosure_ray_count
        self._ray_offsets = [
            Point(float(np.cos(a)) * self.config.enclosure_ray_length,
                  float(np.sin(a)) * self.config.enclosure_ray_length)
            for a in angles
        ]

    # Intersections

    def _is_away_from_ends(self, t: float) -> bool:
        margin = self.config.endpoint_margin
        return margin < t < 1 - margin

    def has_intersection_other_than_at_curve_ends(
        self,
        curve1: CubicCurve,
        curve2: CubicCurve,
    ) -> bool:
        """Check two curves for a crossing that is not a shared joint.

        Passing the same curve twice checks for true self-intersection.
        """
        threshold = self.config.intersection_threshold

        if curve1 is curve2:
            return len(curve1.self_intersections(threshold)) > 0

        if not curve1.overlaps(curve2):
            return False

        return any(
            self._is_away_from_ends(t1) or self._is_away_from_ends(t2)
            for t1, t2 in curve1.intersections(curve2, threshold)
        )

    def has_any_self_intersections(
        self,
        curves: Sequence[CubicCurve],
        existing_curves: Sequence[CubicCurve] = (),
    ) -> bool:
        """Check new curves against each other and against existing curves.

        Existing curves are not checked among themselves.

        Args:
            curves: Newly generated curves
            existing_curves: Curves already accepted

        Returns:
            True if any illegal intersection exists
        """
        for first_index, curve in enumerate(curves):
            # Start from the same index so each curve is checked against itself
            for other in curves[first_index:]:
                if self.has_intersection_other_than_at_curve_ends(curve, other):
                    return True

            for existing in existing_curves:
                if self.has_intersection_other_than_at_curve_ends(curve, existing):
                    return True

        return False

    # End caps

    def is_probably_end_cap(self, curve: CubicCurve, track_width: float) -> bool:
        """A straight outline curve about one track width long."""
        tolerance = self.config.end_cap_length_tolerance
        curve_length = curve.length()
        return (
            curve.is_linear
            and (1 - tolerance) * track_width < curve_length < (1 + tolerance) * track_width
        )

    def find_end_cap_indexes(
        self,
        outline_curves: Sequence[CubicCurve],
        track_width: float,
    ) -> List[int]:
        return [
            index for index, curve in enumerate(outline_curves)
            if self.is_probably_end_cap(curve, track_width)
        ]

    def endpoint_is_too_close_to_curve(
        self,
        curve_to_check: CubicCurve,
        curve_to_stay_away_from: CubicCurve,
        track_width: float,
    ) -> bool:
        """Check whether either end of a curve comes too near another curve.

        An end cap whose end projects onto the center closer than about
        half a track width indicates tight curvature pinching the outline.
        """
        minimum_distance = self.config.end_cap_proximity_factor * (track_width / 2)

        for endpoint in (curve_to_check.start, curve_to_check.end):
            if curve_to_stay_away_from.project(endpoint).distance < minimum_distance:
                return True

        return False

    # Outline

    @staticmethod
    def outline_gaps(curves: Sequence[CubicCurve]) -> List[float]:
        """Distances between each curve's end and the next curve's start.

        The last entry is the wraparound gap from the last curve back to
        the first.
        """
        if not curves:
            return []

        gaps = [
            distance(previous.end, curve.start)
            for previous, curve in zip(curves, curves[1:])
        ]
        gaps.append(distance(curves[0].start, curves[-1].end))
        return gaps

    def has_gaps_in_outline(self, curves: Sequence[CubicCurve]) -> bool:
        """Assumes the outline curves are sequential and loop around the center."""
        return any(gap > self.config.max_outline_gap for gap in self.outline_gaps(curves))

    def has_short_outline(self, curve: CubicCurve, outline_curves: Sequence[CubicCurve]) -> bool:
        """Check whether the outline stopped short of an end of the curve.

        A complete outline runs along both sides of the curve, so it should
        be at least about twice as long as the curve itself.
        """
        expected = 2 * curve.length()
        return outline_length(list(outline_curves)) < self.config.short_outline_ratio * expected

    # Enclosure

    def is_mostly_enclosed(self, point: Point, existing_sections: Sequence[TrackSection]) -> bool:
        """Check whether most rays cast from a point hit existing center curves.

        Args:
            point: Candidate point
            existing_sections: Sections already accepted

        Returns:
            True if the blocked ray fraction exceeds the enclosure ratio
        """
        if not existing_sections:
            return False

        ray_count = self.config.enclosure_ray_count
        center_lines = [section.center for section in existing_sections]
        blocked = 0

        for offset in self._ray_offsets:
            ray_end = add(point, offset)

            # Newest sections are the likeliest to enclose the point
            for center_line in reversed(center_lines):
                if center_line.line_intersects(point, ray_end):
                    blocked += 1
                    if blocked / ray_count > self.config.enclosure_ratio:
                        logger.debug(f"Point {tuple(point)} blocked in {blocked}/{ray_count} directions")
                        return True
                    break

        return False
