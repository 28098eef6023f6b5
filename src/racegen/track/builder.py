"""
Track builder - Sequential section generation with backtracking.

Builds a track section by section:
- Each new section continues from the end of the last one
- Candidates that cross accepted sections are discarded
- A section that cannot be extended after a few tries is discarded too
- Every attempt is published as a progress snapshot
"""

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generator, List, Optional, Protocol, Tuple
import asyncio
import logging

import numpy as np

from racegen.errors import (
    GenerationCancelledError,
    GenerationExhaustedError,
    InvalidConfigurationError,
)
from racegen.track.generator import GeneratorConfig, SectionGenerator
from racegen.track.section import Track, TrackSection, all_curves
from racegen.track.validation import TrackValidator


logger = logging.getLogger(__name__)


class CancelToken(Protocol):
    """Anything with an ``is_set()`` method, e.g. ``threading.Event``."""

    def is_set(self) -> bool:
        ...


class SnapshotKind(Enum):
    """What happened in the step that produced a snapshot."""
    INITIAL = "initial"        # First section generated
    PREVIEW = "preview"        # Candidate shown before it is checked
    BACKTRACK = "backtrack"    # Last accepted section discarded


@dataclass(frozen=True)
class TrackSnapshot:
    """Full copy of the track at one step of generation."""
    sections: Tuple[TrackSection, ...]
    kind: SnapshotKind
    attempt: int
    tries_by_section: Tuple[int, ...]
    track_width: float

    @property
    def num_sections(self) -> int:
        return len(self.sections)


ProgressCallback = Callable[[TrackSnapshot], None]


@dataclass
class BuilderConfig:
    """Configuration for track building."""
    requested_sections: int = 5

    # Track width: fixed if set, otherwise drawn once per track from the range
    track_width: Optional[float] = None
    min_track_width: float = 0.05
    max_track_width: float = 0.5

    # Attempts at one index before its predecessor is discarded
    max_tries_per_section: int = 3

    # Section attempts across the whole build
    max_total_attempts: int = 500

    # Random seed (None for random)
    seed: int | None = None

    generator: GeneratorConfig = field(default_factory=GeneratorConfig)

    def validate(self) -> None:
        """Raise InvalidConfigurationError on an unusable configuration."""
        validate_section_count(self.requested_sections)
        if self.track_width is not None and not self.track_width > 0:
            raise InvalidConfigurationError(f"Track width must be positive, got {self.track_width}")
        if not 0 < self.min_track_width <= self.max_track_width:
            raise InvalidConfigurationError(
                f"Invalid track width range [{self.min_track_width}, {self.max_track_width}]"
            )
        if self.max_tries_per_section < 1:
            raise InvalidConfigurationError("max_tries_per_section must be at least 1")
        if self.max_total_attempts < 1:
            raise InvalidConfigurationError("max_total_attempts must be at least 1")
        self.generator.validate()


def validate_section_count(requested_sections) -> int:
    """Check that a requested section count is a positive integer."""
    if (
        isinstance(requested_sections, bool)
        or not isinstance(requested_sections, (int, np.integer))
        or requested_sections < 1
    ):
        raise InvalidConfigurationError(
            f"Requested section count must be a positive integer, got {requested_sections!r}"
        )
    return int(requested_sections)


class TrackBuilder:
    """Procedural track builder.

    Owns the track under construction for the duration of one build and
    publishes a snapshot of it after every attempt.

    Usage:
        builder = TrackBuilder(BuilderConfig(seed=7))
        builder.subscribe(lambda snapshot: print(snapshot.num_sections))
        track = builder.make_track(5)
    """

    def __init__(self, config: BuilderConfig | None = None):
        """Initialize builder with optional configuration.

        Args:
            config: Builder configuration. Uses defaults if None.
        """
        self.config = config or BuilderConfig()
        self.config.validate()

        self._rng = np.random.default_rng(self.config.seed)
        self.section_generator = SectionGenerator(self.config.generator, self._rng)
        self.validator = TrackValidator(self.config.generator.validation)

        self._progress_callbacks: List[ProgressCallback] = []

    def subscribe(self, callback: ProgressCallback) -> None:
        """Add callback called with every progress snapshot.

        Args:
            callback: Function taking a TrackSnapshot
        """
        self._progress_callbacks.append(callback)

    def unsubscribe(self, callback: ProgressCallback) -> None:
        """Remove a previously subscribed callback."""
        self._progress_callbacks.remove(callback)

    def _notify(self, snapshot: TrackSnapshot) -> None:
        for callback in list(self._progress_callbacks):
            callback(snapshot)

    def pick_track_width(self) -> float:
        """Fixed track width, or one drawn from the configured range."""
        if self.config.track_width is not None:
            return self.config.track_width
        return float(self._rng.uniform(self.config.min_track_width, self.config.max_track_width))

    def iter_track(
        self,
        requested_sections: int | None = None,
        track_width: float | None = None,
        cancel: CancelToken | None = None,
    ) -> Generator[TrackSnapshot, None, Track]:
        """Build a track step by step.

        Yields a snapshot after every section attempt. The finished track
        is the generator's return value. Arguments are checked before the
        generator is returned. Subscribers are not notified; use make_track
        for that.

        Args:
            requested_sections: Number of sections. Config value if None.
            track_width: Full track width. Picked from config if None.
            cancel: Token checked before every extension step

        Raises:
            InvalidConfigurationError: On a bad section count or width
            GenerationExhaustedError: If the attempt budget runs out
            GenerationCancelledError: If the cancel token is set
        """
        requested = validate_section_count(
            self.config.requested_sections if requested_sections is None else requested_sections
        )
        width = self.pick_track_width() if track_width is None else track_width
        if not width > 0:
            raise InvalidConfigurationError(f"Track width must be positive, got {width}")
        return self._build_steps(requested, width, cancel)

    def _build_steps(
        self,
        requested: int,
        width: float,
        cancel: CancelToken | None,
    ) -> Generator[TrackSnapshot, None, Track]:
        logger.info(f"Building {requested} section(s) with track width {width:.4f}")

        max_tries = self.config.max_tries_per_section
        sections: Track = [self.section_generator.generate(track_width=width)]
        tries_by_section = defaultdict(int)
        tries_by_section[0] = 1
        attempts = 1

        def snapshot(shown: Track, kind: SnapshotKind) -> TrackSnapshot:
            return TrackSnapshot(
                sections=tuple(shown),
                kind=kind,
                attempt=attempts,
                tries_by_section=tuple(tries_by_section[i] for i in range(requested)),
                track_width=width,
            )

        yield snapshot(sections, SnapshotKind.INITIAL)

        while len(sections) < requested:
            if cancel is not None and cancel.is_set():
                logger.info(f"Generation cancelled with {len(sections)}/{requested} section(s)")
                raise GenerationCancelledError(f"Cancelled after {attempts} attempt(s)")

            index = len(sections)

            if index > 0 and tries_by_section[index] > max_tries:
                logger.info("The previous section is difficult to build off of. Removing it and trying again")
                sections.pop()
                tries_by_section[index] = 0
                tries_by_section[index - 1] += 1
                yield snapshot(sections, SnapshotKind.BACKTRACK)
                continue

            if attempts >= self.config.max_total_attempts:
                logger.error(f"Gave up after {attempts} section attempts with {len(sections)}/{requested} built")
                raise GenerationExhaustedError(
                    f"No track with {requested} sections found in {attempts} attempts"
                )

            previous = sections[-1] if sections else None
            candidate = self.section_generator.generate(previous, width, sections)
            attempts += 1
            tries_by_section[index] += 1
            logger.debug(f"tries_by_section: {dict(tries_by_section)}")

            yield snapshot([*sections, candidate], SnapshotKind.PREVIEW)

            if self.validator.has_any_self_intersections(candidate.curves, all_curves(sections)):
                logger.debug("The next track section intersects the previous ones... retrying")
                continue

            sections.append(candidate)

        logger.info(f"Built {requested} section(s) in {attempts} attempt(s)")
        return sections

    def make_track(
        self,
        requested_sections: int | None = None,
        track_width: float | None = None,
        cancel: CancelToken | None = None,
    ) -> Track:
        """Build a complete track, notifying subscribers of every step.

        Returns:
            List of validated track sections
        """
        steps = self.iter_track(requested_sections, track_width, cancel)
        while True:
            try:
                snapshot = next(steps)
            except StopIteration as done:
                return done.value
            self._notify(snapshot)

    async def make_track_async(
        self,
        requested_sections: int | None = None,
        track_width: float | None = None,
        cancel: CancelToken | None = None,
    ) -> Track:
        """Build a track, yielding to the event loop after every step.

        Lets subscribers running on the same loop (e.g. a redraw task)
        react to each snapshot before the next attempt.
        """
        steps = self.iter_track(requested_sections, track_width, cancel)
        while True:
            try:
                snapshot = next(steps)
            except StopIteration as done:
                return done.value
            self._notify(snapshot)
            await asyncio.sleep(0)


def make_track(
    requested_sections: int = 5,
    track_width: float | None = None,
    seed: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> Track:
    """Build a track with default settings.

    Args:
        requested_sections: Number of sections
        track_width: Full track width. Random if None.
        seed: Random seed
        on_progress: Optional callback for progress snapshots

    Returns:
        List of validated track sections
    """
    builder = TrackBuilder(BuilderConfig(seed=seed))
    if on_progress is not None:
        builder.subscribe(on_progress)
    return builder.make_track(requested_sections, track_width)
