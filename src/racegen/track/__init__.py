"""
Track module - Constrained procedural track generation.

This module contains:
- TrackSection: Center curve with left and right edges
- TrackValidator: Geometric acceptance tests
- SectionGenerator: Random valid sections with internal retries
- TrackBuilder: Sequential assembly with backtracking and progress snapshots
"""

from racegen.track.section import Track, TrackSection, all_curves, track_state
from racegen.track.validation import TrackValidator, ValidationConfig
from racegen.track.generator import GeneratorConfig, RejectionReason, SectionGenerator
from racegen.track.builder import (
    BuilderConfig,
    SnapshotKind,
    TrackBuilder,
    TrackSnapshot,
    make_track,
)

__all__ = [
    "Track",
    "TrackSection",
    "all_curves",
    "track_state",
    "TrackValidator",
    "ValidationConfig",
    "GeneratorConfig",
    "RejectionReason",
    "SectionGenerator",
    "BuilderConfig",
    "SnapshotKind",
    "TrackBuilder",
    "TrackSnapshot",
    "make_track",
]
