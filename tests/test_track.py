"""Tests for section generation and track building."""

import asyncio
import threading

import pytest
import numpy as np

from racegen.errors import (
    CurveDegenerateError,
    GenerationCancelledError,
    GenerationExhaustedError,
    InvalidConfigurationError,
    OutlineStructureError,
)
from racegen.geometry.outline import outline
from racegen.geometry.vector import distance
from racegen.track import generator as generator_module
from racegen.track.builder import (
    BuilderConfig,
    SnapshotKind,
    TrackBuilder,
    make_track,
)
from racegen.track.generator import GeneratorConfig, RejectionReason, SectionGenerator
from racegen.track.section import all_curves, is_continuous, track_state
from racegen.track.validation import TrackValidator


TRACK_WIDTH = 0.05


def seeded_generator(seed: int = 1, **overrides) -> SectionGenerator:
    return SectionGenerator(GeneratorConfig(**overrides), np.random.default_rng(seed))


def seeded_builder(seed: int = 1, **overrides) -> TrackBuilder:
    return TrackBuilder(BuilderConfig(seed=seed, track_width=TRACK_WIDTH, **overrides))


def edges_are_contiguous(edge) -> bool:
    return all(distance(a.end, b.start) < 1e-4 for a, b in zip(edge, edge[1:]))


class TestSectionGenerator:
    """Test single section generation."""

    def test_first_section_is_valid(self):
        """Test a first section passes its own checks."""
        generator = seeded_generator()
        section = generator.generate(track_width=TRACK_WIDTH)
        validator = TrackValidator()

        assert section.left_edge
        assert section.right_edge
        assert edges_are_contiguous(section.left_edge)
        assert edges_are_contiguous(section.right_edge)
        assert not validator.has_any_self_intersections(section.curves)

    def test_raw_outline_has_two_caps_and_no_gaps(self):
        """Test the accepted center re-outlines cleanly."""
        section = seeded_generator(2).generate(track_width=TRACK_WIDTH)
        validator = TrackValidator()
        curves = outline(section.center, TRACK_WIDTH / 2)

        assert len(validator.find_end_cap_indexes(curves, TRACK_WIDTH)) == 2
        assert not validator.has_gaps_in_outline(curves)

    def test_edges_run_along_both_sides(self):
        """Test edges start half a width from the center start."""
        section = seeded_generator(3).generate(track_width=TRACK_WIDTH)

        assert distance(section.right_edge[0].start, section.start) == pytest.approx(TRACK_WIDTH / 2)
        assert distance(section.left_edge[-1].end, section.start) == pytest.approx(TRACK_WIDTH / 2)

    def test_continuation_follows_tangent(self):
        """Test a following section starts at the previous end along its tangent."""
        generator = seeded_generator(4)
        first = generator.generate(track_width=TRACK_WIDTH)
        second = generator.generate(first, TRACK_WIDTH, [first])

        assert second.start == first.end

        tangent = first.end_tangent
        lead = second.center.control1
        offset = (lead.x - first.end.x, lead.y - first.end.y)
        cross = tangent.x * offset[1] - tangent.y * offset[0]
        dot = tangent.x * offset[0] + tangent.y * offset[1]
        assert abs(cross) < 1e-9 * max(1.0, np.hypot(*offset) * np.hypot(*tangent))
        assert dot > 0

    def test_random_point_in_domain(self):
        """Test random points without spread stay in the domain."""
        generator = seeded_generator(spread_range=None)

        for _ in range(50):
            p = generator.random_point()
            assert 0 <= p.x <= 1
            assert 0 <= p.y <= 1

    def test_random_point_in_offset_domain(self):
        """Test random points respect a domain not anchored at zero."""
        generator = seeded_generator(x_min=0.5, x_max=1.0, y_min=0.25, y_max=0.75, spread_range=None)

        for _ in range(200):
            p = generator.random_point()
            assert 0.5 <= p.x <= 1.0
            assert 0.25 <= p.y <= 0.75

    def test_random_point_with_spread(self):
        """Test the spread factor widens the sample range."""
        generator = seeded_generator(spread_range=(0.5, 3.0))
        points = [generator.random_point() for _ in range(200)]

        assert all(0 <= p.x <= 3 and 0 <= p.y <= 3 for p in points)
        assert any(p.x > 1 or p.y > 1 for p in points)

    def test_degenerate_outline_is_retried(self, monkeypatch):
        """Test kernel failures count as rejections, not crashes."""
        def failing_outline(curve, half_width):
            raise CurveDegenerateError("cannot scale")

        monkeypatch.setattr(generator_module, "outline", failing_outline)
        generator = seeded_generator(max_attempts_per_section=20)

        with pytest.raises(GenerationExhaustedError) as excinfo:
            generator.generate(track_width=TRACK_WIDTH)

        rejections = excinfo.value.rejections
        assert rejections[RejectionReason.OUTLINE_FAILED] > 0
        assert sum(rejections.values()) == 20

    def test_misplaced_first_cap_is_fatal(self, monkeypatch):
        """Test an outline not starting with a cap aborts generation."""
        def rotated_outline(curve, half_width):
            curves = outline(curve, half_width)
            return curves[1:] + curves[:1]

        monkeypatch.setattr(generator_module, "outline", rotated_outline)

        with pytest.raises(OutlineStructureError):
            seeded_generator().generate(track_width=TRACK_WIDTH)

    def test_enclosed_end_points_are_rejected(self, monkeypatch):
        """Test the enclosure check runs when there are previous sections."""
        generator = seeded_generator(5, max_attempts_per_section=5)
        first = generator.generate(track_width=TRACK_WIDTH)
        monkeypatch.setattr(generator.validator, "is_mostly_enclosed", lambda point, sections: True)

        with pytest.raises(GenerationExhaustedError) as excinfo:
            generator.generate(first, TRACK_WIDTH, [first])

        assert excinfo.value.rejections[RejectionReason.END_POINT_ENCLOSED] == 5

    def test_invalid_width(self):
        """Test a non-positive width is a configuration error."""
        with pytest.raises(InvalidConfigurationError):
            seeded_generator().generate(track_width=0.0)

    def test_nan_width(self):
        """Test a NaN width is a configuration error."""
        with pytest.raises(InvalidConfigurationError):
            seeded_generator().generate(track_width=float("nan"))

    def test_invalid_domain(self):
        """Test an empty domain fails at construction."""
        with pytest.raises(InvalidConfigurationError):
            SectionGenerator(GeneratorConfig(x_min=1.0, x_max=1.0))


class TestTrackBuilder:
    """Test multi-section track building."""

    @pytest.mark.parametrize("count", [1, 3])
    def test_builds_requested_sections(self, count):
        """Test the builder returns exactly the requested number of sections."""
        track = seeded_builder().make_track(count)

        assert len(track) == count

    def test_track_is_continuous(self):
        """Test each section starts where the previous one ends."""
        track = seeded_builder(7).make_track(3)

        assert is_continuous(track)
        for previous, section in zip(track, track[1:]):
            assert previous.center.evaluate(1) == section.center.evaluate(0)

    def test_accepted_track_revalidates(self):
        """Test no illegal intersections across the whole track."""
        track = seeded_builder(11).make_track(3)
        validator = TrackValidator()

        assert not validator.has_any_self_intersections(all_curves(track))
        for section in track:
            curves = outline(section.center, TRACK_WIDTH / 2)
            assert not validator.has_gaps_in_outline(curves)

    def test_seed_is_reproducible(self):
        """Test the same seed builds the same track."""
        first = seeded_builder(42).make_track(2)
        second = seeded_builder(42).make_track(2)

        assert first == second

    def test_random_width_in_range(self):
        """Test the track width is drawn from the configured range."""
        builder = TrackBuilder(BuilderConfig(seed=3, min_track_width=0.05, max_track_width=0.08))
        widths = []
        builder.subscribe(lambda snapshot: widths.append(snapshot.track_width))

        builder.make_track(1)

        assert len(set(widths)) == 1
        assert 0.05 <= widths[0] <= 0.08

    def test_progress_snapshots(self):
        """Test every attempt is published and the last one is the result."""
        builder = seeded_builder(5)
        snapshots = []
        builder.subscribe(snapshots.append)

        track = builder.make_track(3)

        assert snapshots[0].kind == SnapshotKind.INITIAL
        assert snapshots[0].num_sections == 1
        assert snapshots[-1].sections == tuple(track)
        assert [s.attempt for s in snapshots] == sorted(s.attempt for s in snapshots)

    def test_unsubscribe(self):
        """Test removed callbacks stop receiving snapshots."""
        builder = seeded_builder()
        received = []
        builder.subscribe(received.append)
        builder.unsubscribe(received.append)

        builder.make_track(1)

        assert received == []

    def test_iter_track_returns_track(self):
        """Test the step generator hands back the finished track."""
        steps = seeded_builder(9).iter_track(2)
        snapshots = []
        while True:
            try:
                snapshots.append(next(steps))
            except StopIteration as done:
                track = done.value
                break

        assert len(track) == 2
        assert snapshots[-1].sections == tuple(track)

    def test_backtracking(self, monkeypatch):
        """Test a section that cannot be extended is discarded."""
        builder = seeded_builder(6)
        calls = {"count": 0}

        def reject_first_four(curves, existing_curves=()):
            calls["count"] += 1
            return calls["count"] <= 4

        monkeypatch.setattr(builder.validator, "has_any_self_intersections", reject_first_four)
        snapshots = []
        builder.subscribe(snapshots.append)

        track = builder.make_track(2)

        kinds = [s.kind for s in snapshots]
        backtrack = kinds.index(SnapshotKind.BACKTRACK)
        assert kinds[1:backtrack] == [SnapshotKind.PREVIEW] * 4
        assert snapshots[backtrack].num_sections == 0
        assert snapshots[backtrack].tries_by_section == (2, 0)
        assert len(track) == 2

    def test_backtracking_without_stubs(self):
        """Test a wide track with one try per index backtracks and still finishes."""
        config = BuilderConfig(
            seed=1,
            track_width=0.3,
            max_tries_per_section=1,
            generator=GeneratorConfig(spread_range=None),
        )
        builder = TrackBuilder(config)
        snapshots = []
        builder.subscribe(snapshots.append)

        track = builder.make_track(5)

        assert SnapshotKind.BACKTRACK in [s.kind for s in snapshots]
        assert len(track) == 5
        assert is_continuous(track)
        assert snapshots[-1].sections == tuple(track)

    def test_total_attempt_budget(self, monkeypatch):
        """Test a build that never succeeds gives up."""
        builder = seeded_builder(8, max_total_attempts=6)
        monkeypatch.setattr(builder.validator, "has_any_self_intersections", lambda curves, existing_curves=(): True)

        with pytest.raises(GenerationExhaustedError):
            builder.make_track(3)

    def test_cancel_before_extension(self):
        """Test a set cancel token stops the build."""
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(GenerationCancelledError):
            seeded_builder().make_track(3, cancel=cancel)

    def test_cancel_from_observer(self):
        """Test an observer can cancel a running build."""
        cancel = threading.Event()
        builder = seeded_builder()
        builder.subscribe(lambda snapshot: cancel.set())

        with pytest.raises(GenerationCancelledError):
            builder.make_track(3, cancel=cancel)

    def test_async_build_yields_to_loop(self):
        """Test the async build lets other tasks run between steps."""
        builder = seeded_builder(12)
        ticks = []

        async def ticker(stop: asyncio.Event):
            while not stop.is_set():
                ticks.append(1)
                await asyncio.sleep(0)

        async def run():
            stop = asyncio.Event()
            task = asyncio.create_task(ticker(stop))
            track = await builder.make_track_async(2)
            stop.set()
            await task
            return track

        track = asyncio.run(run())

        assert len(track) == 2
        assert ticks

    @pytest.mark.parametrize("count", [0, -1, 2.5, True, "3"])
    def test_invalid_section_count(self, count):
        """Test bad section counts fail before any work."""
        with pytest.raises(InvalidConfigurationError):
            seeded_builder().make_track(count)

    @pytest.mark.parametrize("count", [0, -1])
    def test_iter_track_checks_arguments_eagerly(self, count):
        """Test bad arguments fail when the step generator is created."""
        with pytest.raises(InvalidConfigurationError):
            seeded_builder().iter_track(count)

    @pytest.mark.parametrize("width", [0.0, -0.1, float("nan")])
    def test_iter_track_rejects_bad_width(self, width):
        """Test non-positive and NaN widths fail before any work."""
        with pytest.raises(InvalidConfigurationError):
            seeded_builder().iter_track(2, track_width=width)

    def test_nan_configured_width(self):
        """Test a NaN fixed width is rejected at construction."""
        with pytest.raises(InvalidConfigurationError):
            TrackBuilder(BuilderConfig(track_width=float("nan")))

    def test_invalid_width_range(self):
        """Test an inverted width range is rejected."""
        with pytest.raises(InvalidConfigurationError):
            TrackBuilder(BuilderConfig(min_track_width=0.5, max_track_width=0.1))

    def test_make_track_helper(self):
        """Test the module-level helper."""
        snapshots = []
        track = make_track(2, track_width=TRACK_WIDTH, seed=13, on_progress=snapshots.append)

        assert len(track) == 2
        assert snapshots

    def test_track_state(self):
        """Test track export as plain data."""
        track = seeded_builder().make_track(1)
        state = track_state(track)

        assert state["num_sections"] == 1
        assert len(state["sections"][0]["center"]) == 4
        assert state["sections"][0]["left_edge"]
