#!/usr/bin/env python3
"""
Track Generation Example

This example demonstrates how to:
1. Generate a track with default settings
2. Use seeds for reproducible tracks
3. Watch generation progress through snapshots
4. Tighten the configuration and handle failures

Run with: python generate_tracks.py
"""

import logging

from racegen.errors import RaceGenError
from racegen.geometry.vector import distance
from racegen.track import (
    BuilderConfig,
    GeneratorConfig,
    SnapshotKind,
    TrackBuilder,
    ValidationConfig,
    make_track,
)


def describe(track):
    """Print a short summary of each section."""
    for index, section in enumerate(track):
        print(
            f"  Section {index}: start ({section.start.x:.3f}, {section.start.y:.3f}) "
            f"-> end ({section.end.x:.3f}, {section.end.y:.3f}), "
            f"length {section.center.length():.3f}, "
            f"{len(section.left_edge)} left / {len(section.right_edge)} right edge curves"
        )


def generate_default_track():
    """Generate a track with default settings."""
    print("=" * 60)
    print("1. Default Track Generation")
    print("=" * 60)

    track = make_track(4)

    print(f"\nSections: {len(track)}")
    describe(track)

    return track


def generate_seeded_tracks():
    """Generate reproducible tracks using seeds."""
    print("\n" + "=" * 60)
    print("2. Seeded Track Generation (Reproducible)")
    print("=" * 60)

    track1 = make_track(3, track_width=0.08, seed=12345)
    track2 = make_track(3, track_width=0.08, seed=12345)

    print(f"\nTrack A end: {tuple(round(v, 4) for v in track1[-1].end)}")
    print(f"Track B end: {tuple(round(v, 4) for v in track2[-1].end)}")
    print(f"Same layout: {track1 == track2}")


def watch_progress():
    """Follow generation through progress snapshots."""
    print("\n" + "=" * 60)
    print("3. Watching Progress")
    print("=" * 60)

    builder = TrackBuilder(BuilderConfig(seed=7, track_width=0.06))
    counts = {kind: 0 for kind in SnapshotKind}

    def on_snapshot(snapshot):
        counts[snapshot.kind] += 1
        print(f"  attempt {snapshot.attempt:3d}: {snapshot.kind.value:9s} {snapshot.num_sections} section(s)")

    builder.subscribe(on_snapshot)
    track = builder.make_track(5)

    print(f"\nPreviews: {counts[SnapshotKind.PREVIEW]}, backtracks: {counts[SnapshotKind.BACKTRACK]}")
    gaps = [distance(a.end, b.start) for a, b in zip(track, track[1:])]
    print(f"Largest joint gap: {max(gaps, default=0.0):.2e}")


def generate_constrained_track():
    """Generate in a small domain with a tight attempt budget."""
    print("\n" + "=" * 60)
    print("4. Constrained Generation")
    print("=" * 60)

    config = BuilderConfig(
        seed=99,
        track_width=0.04,
        max_total_attempts=40,
        generator=GeneratorConfig(
            x_max=0.5,
            y_max=0.5,
            spread_range=None,
            max_attempts_per_section=200,
            validation=ValidationConfig(enclosure_ratio=0.5),
        ),
    )

    try:
        track = TrackBuilder(config).make_track(5)
    except RaceGenError as e:
        print(f"\nGeneration failed: {type(e).__name__}: {e}")
        return None

    print(f"\nSections: {len(track)}")
    describe(track)
    return track


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    generate_default_track()
    generate_seeded_tracks()
    watch_progress()
    generate_constrained_track()


if __name__ == "__main__":
    main()
