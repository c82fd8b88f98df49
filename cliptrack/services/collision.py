"""Collision checks for clip placement on a track.

Intervals are half-open ``[start, start + duration)``: a clip ending exactly
where another starts does not overlap it.
"""

import math
from typing import Iterable, Sequence

from cliptrack.schemas.timeline import Clip, ClipPlacement

OVERLAP_TIME_EPSILON = 1e-6
FRAME_INDEX_EPSILON = 1e-6


def ranges_overlap(
    start_a: float,
    duration_a: float,
    start_b: float,
    duration_b: float,
    epsilon: float = OVERLAP_TIME_EPSILON,
) -> bool:
    end_a = start_a + duration_a
    end_b = start_b + duration_b
    return start_a < end_b - epsilon and end_a > start_b + epsilon


def _normalize_frame_rate(frame_rate: float | None) -> int | None:
    if frame_rate is None or not math.isfinite(frame_rate) or frame_rate <= 0:
        return None
    return max(1, round(frame_rate))


def _start_frame(time: float, frame_rate: int) -> int:
    safe_time = max(0.0, time) if math.isfinite(time) else 0.0
    return math.floor(safe_time * frame_rate + FRAME_INDEX_EPSILON)


def _end_frame(start_time: float, duration: float, frame_rate: int) -> int:
    end_time = start_time + duration
    safe_time = max(0.0, end_time) if math.isfinite(end_time) else 0.0
    start = _start_frame(start_time, frame_rate)
    return max(start, math.ceil(safe_time * frame_rate - FRAME_INDEX_EPSILON))


def find_overlapping_clips(
    clips: Iterable[Clip],
    candidate: ClipPlacement,
    exclude_ids: Iterable[str] = (),
    *,
    frame_rate: float | None = None,
    epsilon: float = OVERLAP_TIME_EPSILON,
) -> list[Clip]:
    """Clips on the candidate's track whose interval intersects it.

    With a positive ``frame_rate`` both intervals are first quantised to frame
    indices so sub-frame slivers between neighbours count as overlap.
    """
    excluded = exclude_ids if isinstance(exclude_ids, (set, frozenset)) else set(exclude_ids)
    fps = _normalize_frame_rate(frame_rate)
    if fps is not None:
        cand_start = _start_frame(candidate.start_time, fps)
        cand_end = _end_frame(candidate.start_time, candidate.duration, fps)

    overlapping = []
    for clip in clips:
        if clip.track_id != candidate.track_id or clip.id in excluded:
            continue
        if fps is not None:
            clip_start = _start_frame(clip.start_time, fps)
            clip_end = _end_frame(clip.start_time, clip.duration, fps)
            if cand_start < clip_end and cand_end > clip_start:
                overlapping.append(clip)
            continue
        if ranges_overlap(
            candidate.start_time, candidate.duration, clip.start_time, clip.duration, epsilon
        ):
            overlapping.append(clip)
    return overlapping


def has_overlap(
    clips: Iterable[Clip],
    candidate: ClipPlacement,
    exclude_ids: Iterable[str] = (),
    *,
    frame_rate: float | None = None,
    epsilon: float = OVERLAP_TIME_EPSILON,
) -> bool:
    """True if the candidate interval intersects any other clip on its track."""
    return bool(
        find_overlapping_clips(
            clips, candidate, exclude_ids, frame_rate=frame_rate, epsilon=epsilon
        )
    )


def find_next_non_overlapping_start(
    clips: Sequence[Clip],
    track_id: str,
    start_time: float,
    duration: float,
    exclude_ids: Iterable[str] = (),
    *,
    epsilon: float = OVERLAP_TIME_EPSILON,
) -> float:
    """Earliest start >= ``max(0, start_time)`` where the interval fits.

    Pushes the start past every clip it collides with until stable, so this
    always succeeds (at worst after the track's last clip).
    """
    excluded = set(exclude_ids)
    track_clips = sorted(
        (c for c in clips if c.track_id == track_id and c.id not in excluded),
        key=lambda c: c.start_time,
    )

    next_start = max(0.0, start_time)
    changed = True
    while changed:
        changed = False
        for clip in track_clips:
            if ranges_overlap(next_start, duration, clip.start_time, clip.duration, epsilon):
                next_start = clip.start_time + clip.duration
                changed = True
    return next_start


def with_safe_clip_start(
    clips: Sequence[Clip],
    clip: Clip,
    start_time: float | None = None,
    exclude_ids: Iterable[str] = (),
) -> Clip:
    """Copy of ``clip`` moved to the first collision-free start on its track."""
    safe_start = find_next_non_overlapping_start(
        clips,
        clip.track_id,
        clip.start_time if start_time is None else start_time,
        clip.duration,
        exclude_ids,
    )
    return clip.model_copy(update={"start_time": safe_start})
