"""
Section generator - Random track sections that pass every geometric check.

Generates:
- A random center curve, continuing smoothly from the previous section
- Its offset outline, split into left and right edges
- Retries with fresh randomness until the section is valid
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple
import logging

import numpy as np

from racegen.errors import (
    CurveDegenerateError,
    GenerationExhaustedError,
    InvalidConfigurationError,
    OutlineStructureError,
)
from racegen.geometry.curve import CubicCurve
from racegen.geometry.outline import outline
from racegen.geometry.vector import Point, add, invert, multiply, scale_to_length
from racegen.track.section import TrackSection
from racegen.track.validation import TrackValidator, ValidationConfig


logger = logging.getLogger(__name__)


class RejectionReason(Enum):
    """Why a candidate section was thrown away."""
    END_POINT_ENCLOSED = "end_point_enclosed"
    CENTER_SELF_INTERSECTS = "center_self_intersects"
    OUTLINE_FAILED = "outline_failed"
    END_CAP_COUNT = "end_cap_count"
    END_CAP_TOO_CLOSE = "end_cap_too_close"
    OUTLINE_GAPS = "outline_gaps"
    OUTLINE_SHORT = "outline_short"
    EDGES_INTERSECT = "edges_intersect"


_REJECTION_MESSAGES = {
    RejectionReason.END_POINT_ENCLOSED:
        "End point of random section is mostly enclosed, so it'll be difficult to find a way out... retrying",
    RejectionReason.CENTER_SELF_INTERSECTS: "Center line intersects itself... retrying",
    RejectionReason.OUTLINE_FAILED: "Center line could not be outlined... retrying",
    RejectionReason.END_CAP_COUNT: "Did not find exactly 2 probable end caps... retrying",
    RejectionReason.END_CAP_TOO_CLOSE:
        "End cap endpoint is too close to the center line, which indicates tight curvature at an end... retrying",
    RejectionReason.OUTLINE_GAPS: "There are gaps in the outline... retrying",
    RejectionReason.OUTLINE_SHORT: "The outline stops short of the center line ends... retrying",
    RejectionReason.EDGES_INTERSECT: "Found self-intersections in the outline curves... retrying",
}


@dataclass
class GeneratorConfig:
    """Configuration for random section generation."""
    # Domain bounds (unit square)
    x_min: float = 0.0
    x_max: float = 1.0
    y_min: float = 0.0
    y_max: float = 1.0

    # Random points are scaled by a factor from this range (None to disable)
    spread_range: Optional[Tuple[float, float]] = (0.5, 3.0)

    # Retry ceiling for a single section
    max_attempts_per_section: int = 1000

    # Optional checks
    check_enclosure: bool = True
    reject_short_outlines: bool = True

    validation: ValidationConfig = field(default_factory=ValidationConfig)

    @property
    def domain_diagonal(self) -> float:
        """Largest distance between two points of the domain."""
        return float(np.hypot(self.x_max - self.x_min, self.y_max - self.y_min))

    def validate(self) -> None:
        """Raise InvalidConfigurationError on an unusable configuration."""
        if not (self.x_max > self.x_min and self.y_max > self.y_min):
            raise InvalidConfigurationError(
                f"Empty domain [{self.x_min}, {self.x_max}] x [{self.y_min}, {self.y_max}]"
            )
        if self.spread_range is not None:
            low, high = self.spread_range
            if not 0 < low <= high:
                raise InvalidConfigurationError(f"Invalid spread range {self.spread_range}")
        if self.max_attempts_per_section < 1:
            raise InvalidConfigurationError("max_attempts_per_section must be at least 1")
        self.validation.validate()


class SectionGenerator:
    """Generator of single, geometrically valid track sections.

    Stateless between calls apart from its random number generator. Every
    rejected candidate is discarded and a new one is drawn from scratch.

    Usage:
        generator = SectionGenerator()
        first = generator.generate(track_width=0.1)
        second = generator.generate(first, track_width=0.1, all_previous=[first])
    """

    def __init__(
        self,
        config: GeneratorConfig | None = None,
        rng: np.random.Generator | None = None,
    ):
        """Initialize generator.

        Args:
            config: Generator configuration. Uses defaults if None.
            rng: Random number generator. A fresh unseeded one if None.
        """
        self.config = config or GeneratorConfig()
        self.config.validate()

        self.validator = TrackValidator(self.config.validation)
        self._rng = rng if rng is not None else np.random.default_rng()

    def random_point(self, relative_to: Point | None = None) -> Point:
        """Uniform random point in the domain, offset from an origin.

        Args:
            relative_to: Origin the sample is added to. Domain minimum if None.

        Returns:
            Random point
        """
        cfg = self.config
        origin = relative_to if relative_to is not None else Point(cfg.x_min, cfg.y_min)
        sample = Point(
            float(self._rng.uniform(0.0, cfg.x_max - cfg.x_min)),
            float(self._rng.uniform(0.0, cfg.y_max - cfg.y_min)),
        )

        if cfg.spread_range is not None:
            sample = multiply(sample, float(self._rng.uniform(*cfg.spread_range)))

        return add(origin, sample)

    def random_point_along_end_tangent(self, section: TrackSection) -> Point:
        """Point on the tangent line leaving the end of a section."""
        walk = float(self._rng.uniform(0.0, self.config.domain_diagonal))
        return add(section.end, scale_to_length(section.end_tangent, walk))

    def generate(
        self,
        previous_section: TrackSection | None = None,
        track_width: float = 0.1,
        all_previous: Sequence[TrackSection] = (),
    ) -> TrackSection:
        """Generate one valid track section.

        Args:
            previous_section: Section to continue from, if any
            track_width: Full track width
            all_previous: Every section accepted so far

        Returns:
            New track section

        Raises:
            GenerationExhaustedError: If no valid section is found within
                the configured number of attempts
            OutlineStructureError: If an outline does not start with an end cap
        """
        if not track_width > 0:
            raise InvalidConfigurationError(f"Track width must be positive, got {track_width}")

        rejections: Counter = Counter()

        for attempt in range(1, self.config.max_attempts_per_section + 1):
            section, reason = self._attempt(previous_section, track_width, all_previous)

            if section is not None:
                logger.debug(f"Generated section after {attempt} attempt(s)")
                return section

            rejections[reason] += 1
            logger.debug(_REJECTION_MESSAGES[reason])

        summary = ", ".join(f"{reason.value}={count}" for reason, count in rejections.most_common())
        logger.error(f"Gave up on section after {self.config.max_attempts_per_section} attempts ({summary})")
        raise GenerationExhaustedError(
            f"No valid section found in {self.config.max_attempts_per_section} attempts",
            rejections=rejections,
        )

    def _attempt(
        self,
        previous_section: TrackSection | None,
        track_width: float,
        all_previous: Sequence[TrackSection],
    ) -> Tuple[Optional[TrackSection], Optional[RejectionReason]]:
        """Build and check a single candidate section.

        Returns:
            Tuple of (section, None) on success or (None, reason) on rejection
        """
        cfg = self.config
        validator = self.validator

        if previous_section is not None:
            bounding_box_origin = add(invert(self.random_point()), previous_section.end)
            starting_point = previous_section.end
            first_control_point = self.random_point_along_end_tangent(previous_section)
        else:
            bounding_box_origin = Point(cfg.x_min, cfg.y_min)
            starting_point = self.random_point(bounding_box_origin)
            first_control_point = self.random_point(bounding_box_origin)

        second_control_point = self.random_point(bounding_box_origin)
        ending_point = self.random_point(bounding_box_origin)

        logger.debug(
            f"Candidate section with bounding box origin {tuple(bounding_box_origin)}, "
            f"starting point {tuple(starting_point)}, first control point {tuple(first_control_point)}"
        )

        if cfg.check_enclosure and all_previous and validator.is_mostly_enclosed(ending_point, all_previous):
            return None, RejectionReason.END_POINT_ENCLOSED

        center_line = CubicCurve(starting_point, first_control_point, second_control_point, ending_point)

        threshold = cfg.validation.intersection_threshold
        if center_line.self_intersections(threshold):
            return None, RejectionReason.CENTER_SELF_INTERSECTS

        try:
            outline_curves = outline(center_line, track_width / 2)
        except CurveDegenerateError as e:
            logger.debug(f"Outline failed: {e}")
            return None, RejectionReason.OUTLINE_FAILED

        end_cap_indexes = validator.find_end_cap_indexes(outline_curves, track_width)
        if len(end_cap_indexes) != 2:
            return None, RejectionReason.END_CAP_COUNT

        # Outline order: end cap, right edge, end cap, left edge
        if end_cap_indexes[0] != 0:
            logger.error(f"First end cap found at outline index {end_cap_indexes[0]} instead of 0")
            raise OutlineStructureError(
                "The assumptions about end cap indexes are incorrect and the code needs to be updated"
            )

        end_caps = [outline_curves[index] for index in end_cap_indexes]
        if any(validator.endpoint_is_too_close_to_curve(cap, center_line, track_width) for cap in end_caps):
            return None, RejectionReason.END_CAP_TOO_CLOSE

        if validator.has_gaps_in_outline(outline_curves):
            return None, RejectionReason.OUTLINE_GAPS

        if cfg.reject_short_outlines and validator.has_short_outline(center_line, outline_curves):
            return None, RejectionReason.OUTLINE_SHORT

        right_edge = tuple(outline_curves[end_cap_indexes[0] + 1:end_cap_indexes[1]])
        left_edge = tuple(outline_curves[end_cap_indexes[1] + 1:])

        if validator.has_any_self_intersections([center_line, *left_edge, *right_edge]):
            return None, RejectionReason.EDGES_INTERSECT

        return TrackSection(center=center_line, left_edge=left_edge, right_edge=right_edge), None
