"""Ordered edit sequences: validation, resolved durations and transition offsets."""

import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from dramagen.exceptions import (
    EmptySegmentListError,
    InvalidDurationError,
    InvalidTimeRangeError,
    InvalidTransitionError,
    MissingFileError,
)
from dramagen.schemas.envelope import ErrorLocation
from dramagen.schemas.timeline import NO_TRANSITION, Segment, TransitionSpec
from dramagen.utils.media_info import get_media_duration

logger = logging.getLogger(__name__)

DurationProbe = Callable[[str], float]


def validate_segments(segments: Sequence[Segment]) -> None:
    """Check a segment list before any process is spawned.

    Raises:
        EmptySegmentListError: If the list is empty
        MissingFileError: If a segment path does not exist
        InvalidTimeRangeError: If a start offset is negative
        InvalidDurationError: If a declared duration is <= 0
    """
    if not segments:
        raise EmptySegmentListError()

    for index, segment in enumerate(segments):
        if not os.path.isfile(segment.path):
            raise MissingFileError(segment.path, field="segments", index=index)
        if segment.start_ms is not None and segment.start_ms < 0:
            raise InvalidTimeRangeError(
                f"Segment {index} start must be >= 0 (got {segment.start_ms}ms)",
                location=ErrorLocation(field="start_ms", index=index),
            )
        if segment.duration_ms is not None and segment.duration_ms <= 0:
            raise InvalidDurationError(segment.duration_ms, index=index)


def validate_transition(transition: TransitionSpec, durations_ms: Sequence[float]) -> None:
    """A transition must be positive and shorter than every segment it joins."""
    if transition.kind == "none" or len(durations_ms) < 2:
        return
    if transition.duration_ms <= 0:
        raise InvalidTransitionError(
            f"Transition duration must be > 0 (got {transition.duration_ms}ms)",
            location=ErrorLocation(field="transition.duration_ms"),
        )
    for index, duration in enumerate(durations_ms):
        if transition.duration_ms >= duration:
            raise InvalidTransitionError(
                f"Transition ({transition.duration_ms}ms) must be shorter than segment {index} ({duration}ms)",
                location=ErrorLocation(field="transition.duration_ms", index=index),
            )


def resolve_duration_ms(segment: Segment, index: int, probe: DurationProbe = get_media_duration) -> float:
    """Declared duration, otherwise the probed media length after ``start_ms``."""
    if segment.duration_ms is not None:
        return float(segment.duration_ms)
    remaining = probe(segment.path) - (segment.start_ms or 0)
    if remaining <= 0:
        raise InvalidDurationError(remaining, index=index)
    return float(remaining)


@dataclass
class Timeline:
    """A validated, ordered sequence of segments joined by one transition kind."""

    segments: list[Segment]
    durations_ms: list[float]
    transition: TransitionSpec = NO_TRANSITION

    @classmethod
    def build(
        cls,
        segments: Sequence[Segment],
        transition: TransitionSpec = NO_TRANSITION,
        probe: DurationProbe = get_media_duration,
    ) -> "Timeline":
        validate_segments(segments)
        durations = [resolve_duration_ms(s, i, probe) for i, s in enumerate(segments)]
        validate_transition(transition, durations)
        timeline = cls(segments=list(segments), durations_ms=durations, transition=transition)
        logger.info(
            f"[TIMELINE] {len(segments)} segments, transition={transition.kind}, "
            f"expected duration={timeline.expected_duration_ms:.0f}ms"
        )
        return timeline

    @property
    def uses_graph(self) -> bool:
        return self.transition.kind != "none"

    @property
    def transition_ms(self) -> float:
        return float(self.transition.duration_ms) if self.uses_graph else 0.0

    def transition_offsets_sec(self) -> list[float]:
        """Start of each transition on the output clock.

        Entry ``i - 1`` belongs to the join of segment ``i`` and is
        ``sum(durations[:i]) - i * transition``.
        """
        offsets = []
        elapsed = 0.0
        for i in range(1, len(self.durations_ms)):
            elapsed += self.durations_ms[i - 1]
            offsets.append((elapsed - i * self.transition_ms) / 1000)
        return offsets

    @property
    def expected_duration_ms(self) -> float:
        joins = max(0, len(self.durations_ms) - 1)
        return sum(self.durations_ms) - joins * self.transition_ms
