"""Clip placement operators.

Each operator is a pure function of the current clip (and track) lists: it
returns new lists and never mutates its inputs. An operator that would break
an arrangement invariant raises a ``PlacementError`` (or a not-found error)
instead of returning a partial result; ``TimelineStore`` turns those into
silent no-ops for interactive callers.
"""

import bisect
import logging
from dataclasses import dataclass
from typing import Any, Collection, Iterable, Sequence
from uuid import uuid4

from pydantic import ValidationError

from cliptrack.exceptions import (
    ClipNotFoundError,
    ClipOverlapError,
    ClipTooShortError,
    InvalidUpdateError,
    SourceBoundsError,
    TrackNotFoundError,
    TrackTypeMismatchError,
)
from cliptrack.schemas.timeline import (
    Clip,
    ClipPlacement,
    ClipType,
    Point,
    Size,
    Track,
    TrimmedMedia,
    clip_adapter,
    fits_track_type,
    resolve_field_updates,
    track_type_for_clip,
)
from cliptrack.services.collision import (
    OVERLAP_TIME_EPSILON,
    find_next_non_overlapping_start,
    find_overlapping_clips,
)
from cliptrack.services.keyframes import (
    normalize_position_keyframes,
    position_from_keyframes,
    slice_position_keyframes,
)
from cliptrack.services.snapping import snap
from cliptrack.services.track_manager import add_track, find_track

logger = logging.getLogger(__name__)

CLIP_MIN_DURATION = 0.1
DUPLICATE_OFFSET = 0.25

# Fields that move a clip in time or between tracks; updates touching them
# are checked against the arrangement invariants.
PLACEMENT_FIELDS = frozenset({"track_id", "start_time", "duration", "trim_in", "trim_out"})
PROTECTED_CLIP_FIELDS = frozenset({"id", "type"})


@dataclass(frozen=True)
class ClipMove:
    """One item of a coordinated multi-clip drag."""

    clip_id: str
    track_id: str
    start_time: float


# =============================================================================
# Lookup helpers
# =============================================================================


def find_clip(clips: Sequence[Clip], clip_id: str) -> Clip | None:
    for clip in clips:
        if clip.id == clip_id:
            return clip
    return None


def get_clip_or_raise(clips: Sequence[Clip], clip_id: str) -> Clip:
    clip = find_clip(clips, clip_id)
    if clip is None:
        raise ClipNotFoundError(clip_id)
    return clip


def _replace(clips: Sequence[Clip], clip_id: str, *replacements: Clip) -> list[Clip]:
    """Swap one clip for zero or more clips at the same list position."""
    result: list[Clip] = []
    for clip in clips:
        if clip.id == clip_id:
            result.extend(replacements)
        else:
            result.append(clip)
    return result


def get_clips_in_track(clips: Iterable[Clip], track_id: str) -> list[Clip]:
    """Clips on a track ordered by start time."""
    return sorted((c for c in clips if c.track_id == track_id), key=lambda c: c.start_time)


def find_clip_at_time(track_clips: Sequence[Clip], time: float) -> Clip | None:
    """Clip covering ``time`` in a start-sorted single-track list.

    Binary-searches the right-most clip starting at or before ``time``, then
    walks back in case legacy data contains overlapping clips.
    """
    index = bisect.bisect_right(track_clips, time, key=lambda c: c.start_time) - 1
    if index < 0:
        return None

    for clip in reversed(track_clips[: index + 1]):
        if clip.start_time <= time < clip.start_time + clip.duration:
            return clip
    return None


# =============================================================================
# Track resolution
# =============================================================================


def resolve_track_id_for_clip_type(
    track_id: str, clip_type: ClipType, tracks: Sequence[Track]
) -> str | None:
    """Hinted track if it fits the clip type, else the first track that does."""
    hinted = find_track(list(tracks), track_id)
    if fits_track_type(hinted, clip_type):
        return track_id
    for track in tracks:
        if fits_track_type(track, clip_type):
            return track.id
    return None


def resolve_target_track(
    tracks: list[Track],
    track_id: str | None,
    clip_type: ClipType,
    *,
    track_height: int = 60,
) -> tuple[list[Track], str]:
    """Track id a new clip of ``clip_type`` should land on.

    Creates a compatible track when neither the hint nor any existing track
    fits.
    """
    resolved = resolve_track_id_for_clip_type(track_id or "", clip_type, tracks)
    if resolved is not None:
        return tracks, resolved

    updated, track = add_track(
        tracks, track_type=track_type_for_clip(clip_type), height=track_height
    )
    logger.debug(f"Created {track.type} track {track.id} for new {clip_type} clip")
    return updated, track.id


def get_fitted_visual_transform(source_size: Size, canvas_size: Size) -> tuple[Point, float]:
    """Contain-fit scale and the top-left position that centres the media."""
    if (
        source_size.width <= 0
        or source_size.height <= 0
        or canvas_size.width <= 0
        or canvas_size.height <= 0
    ):
        return Point(x=0, y=0), 1.0

    scale = min(canvas_size.width / source_size.width, canvas_size.height / source_size.height)
    fitted_width = source_size.width * scale
    fitted_height = source_size.height * scale
    position = Point(
        x=(canvas_size.width - fitted_width) / 2,
        y=(canvas_size.height - fitted_height) / 2,
    )
    return position, scale


# =============================================================================
# Validation
# =============================================================================


def _check_overlap(
    clips: Sequence[Clip],
    clip: Clip,
    candidate: ClipPlacement,
    exclude_ids: Iterable[str],
    *,
    frame_rate: float | None = None,
    epsilon: float = OVERLAP_TIME_EPSILON,
) -> None:
    overlapping = find_overlapping_clips(
        clips, candidate, exclude_ids, frame_rate=frame_rate, epsilon=epsilon
    )
    if overlapping:
        raise ClipOverlapError(
            clip_id=clip.id,
            track_id=candidate.track_id,
            start_time=candidate.start_time,
            duration=candidate.duration,
        )


def _check_min_duration(clip: Clip, duration: float, min_duration: float) -> None:
    if duration < min_duration:
        raise ClipTooShortError(clip_id=clip.id, duration=duration, min_duration=min_duration)


def _check_track_fit(tracks: Sequence[Track], clip: Clip, track_id: str) -> None:
    track = find_track(list(tracks), track_id)
    if track is None:
        raise TrackNotFoundError(track_id)
    if not fits_track_type(track, clip.type):
        raise TrackTypeMismatchError(
            clip_id=clip.id, clip_type=clip.type, track_id=track_id, track_type=track.type
        )


def _check_source_bounds(clip: Clip) -> None:
    if not isinstance(clip, TrimmedMedia):
        return
    if clip.trim_in < 0:
        raise SourceBoundsError(clip_id=clip.id, field="trim_in", value=clip.trim_in)
    if clip.trim_out > clip.source_duration:
        raise SourceBoundsError(clip_id=clip.id, field="trim_out", value=clip.trim_out)


# =============================================================================
# Operators
# =============================================================================


def add_clip(
    clips: list[Clip],
    tracks: list[Track],
    clip: Clip,
    *,
    track_height: int = 60,
) -> tuple[list[Clip], list[Track], Clip]:
    """Place a new clip, nudging it forward until it no longer collides.

    The clip's ``track_id`` is treated as a hint: an absent or incompatible
    track is replaced by a compatible one (created if necessary). Never fails.
    """
    tracks, track_id = resolve_target_track(
        tracks, clip.track_id, clip.type, track_height=track_height
    )
    safe_start = find_next_non_overlapping_start(clips, track_id, clip.start_time, clip.duration)
    placed = clip.model_copy(update={"track_id": track_id, "start_time": safe_start})
    return [*clips, placed], tracks, placed


def add_clips(
    clips: list[Clip],
    tracks: list[Track],
    new_clips: Sequence[Clip],
    *,
    track_height: int = 60,
) -> tuple[list[Clip], list[Track], list[Clip]]:
    """Paste pre-formed clips; each is nudged against the clips placed before it."""
    placed: list[Clip] = []
    for clip in new_clips:
        clips, tracks, added = add_clip(
            clips, tracks, clip.model_copy(deep=True), track_height=track_height
        )
        placed.append(added)
    return clips, tracks, placed


def remove_clip(clips: list[Clip], clip_id: str) -> list[Clip]:
    get_clip_or_raise(clips, clip_id)
    return [clip for clip in clips if clip.id != clip_id]


def update_clip(
    clips: list[Clip],
    tracks: list[Track],
    clip_id: str,
    updates: dict[str, Any],
    *,
    min_duration: float = CLIP_MIN_DURATION,
    frame_rate: float | None = None,
) -> list[Clip]:
    """Apply partial field updates to a clip.

    Keys may be snake_case field names or their camelCase aliases. ``id`` and
    ``type`` cannot be changed. When a placement field changes the result is
    checked against the arrangement invariants; keyframes are re-normalised
    to the (possibly new) duration.

    Raises:
        ClipNotFoundError, InvalidUpdateError, and the placement errors of
        ``move_clip`` and ``trim_clip_end``
    """
    clip = get_clip_or_raise(clips, clip_id)
    changes = resolve_field_updates(type(clip), updates, PROTECTED_CLIP_FIELDS)
    try:
        updated: Clip = clip_adapter.validate_python({**clip.model_dump(), **changes})
    except ValidationError as exc:
        raise InvalidUpdateError.from_validation_error(exc, clip_id=clip_id) from exc

    if isinstance(updated, TrimmedMedia):
        updated = _sync_trim_span(updated, changes.keys())

    keyframes = normalize_position_keyframes(updated.position_keyframes, updated.duration)
    updated = updated.model_copy(update={"position_keyframes": keyframes})

    if any(getattr(updated, f, None) != getattr(clip, f, None) for f in PLACEMENT_FIELDS):
        _check_track_fit(tracks, updated, updated.track_id)
        _check_min_duration(updated, updated.duration, min_duration)
        _check_source_bounds(updated)
        _check_overlap(
            clips,
            updated,
            ClipPlacement(
                track_id=updated.track_id,
                start_time=updated.start_time,
                duration=updated.duration,
            ),
            {clip_id},
            frame_rate=frame_rate,
        )

    return _replace(clips, clip_id, updated)


def _sync_trim_span(clip: TrimmedMedia, changed: Collection[str]) -> TrimmedMedia:
    """Keep ``trim_out - trim_in == duration`` after a partial update.

    Whichever of ``trim_out`` and ``duration`` the update left alone follows
    the other; setting both inconsistently is rejected.
    """
    span = clip.trim_out - clip.trim_in
    if abs(span - clip.duration) <= OVERLAP_TIME_EPSILON:
        return clip
    if "trim_out" not in changed:
        return clip.model_copy(update={"trim_out": clip.trim_in + clip.duration})
    if "duration" not in changed:
        return clip.model_copy(update={"duration": span})
    raise SourceBoundsError(clip_id=clip.id, field="trim_out", value=clip.trim_out)


def move_clip(
    clips: list[Clip],
    tracks: list[Track],
    clip_id: str,
    target_track_id: str,
    start_time: float,
    ignore_ids: Iterable[str] = (),
    *,
    frame_rate: float | None = None,
) -> list[Clip]:
    """Move a clip to ``max(0, start_time)`` on ``target_track_id``.

    ``ignore_ids`` lists clips moving together with this one in the same
    gesture; they are left out of the collision check.

    Raises:
        ClipNotFoundError, TrackNotFoundError, TrackTypeMismatchError,
        ClipOverlapError
    """
    clip = get_clip_or_raise(clips, clip_id)
    _check_track_fit(tracks, clip, target_track_id)

    candidate_start = max(0.0, start_time)
    _check_overlap(
        clips,
        clip,
        ClipPlacement(
            track_id=target_track_id, start_time=candidate_start, duration=clip.duration
        ),
        {clip_id, *ignore_ids},
        frame_rate=frame_rate,
    )
    moved = clip.model_copy(update={"track_id": target_track_id, "start_time": candidate_start})
    return _replace(clips, clip_id, moved)


def move_clips(
    clips: list[Clip],
    tracks: list[Track],
    moves: Sequence[ClipMove],
    ignore_ids: Iterable[str] = (),
    *,
    frame_rate: float | None = None,
) -> list[Clip]:
    """Move several clips as one all-or-nothing batch.

    Every item is checked against the clips that stay put and against the
    new positions of the other items, so a batch can never collide with
    itself. Any failure rejects the whole batch.
    """
    moving_ids = {move.clip_id for move in moves}
    excluded = moving_ids | set(ignore_ids)
    planned: list[Clip] = []

    for move in moves:
        clip = get_clip_or_raise(clips, move.clip_id)
        _check_track_fit(tracks, clip, move.track_id)
        candidate = ClipPlacement(
            track_id=move.track_id, start_time=max(0.0, move.start_time), duration=clip.duration
        )
        _check_overlap(clips, clip, candidate, excluded, frame_rate=frame_rate)
        _check_overlap(planned, clip, candidate, (), frame_rate=frame_rate)
        planned.append(
            clip.model_copy(
                update={"track_id": candidate.track_id, "start_time": candidate.start_time}
            )
        )

    moved = {clip.id: clip for clip in planned}
    return [moved.get(clip.id, clip) for clip in clips]


def trim_clip_start(
    clips: list[Clip],
    clip_id: str,
    new_start_time: float,
    *,
    min_duration: float = CLIP_MIN_DURATION,
    frame_rate: float | None = None,
) -> list[Clip]:
    """Move a clip's left edge, keeping its right edge fixed.

    Media clips cannot reach before their source start (``trim_in >= 0``);
    image clips cannot reach before the timeline origin.
    """
    clip = get_clip_or_raise(clips, clip_id)
    delta = new_start_time - clip.start_time
    new_duration = clip.duration - delta

    if isinstance(clip, TrimmedMedia):
        new_trim_in = clip.trim_in + delta
        if new_trim_in < 0:
            raise SourceBoundsError(clip_id=clip_id, field="trim_in", value=new_trim_in)
    elif new_start_time < 0:
        raise SourceBoundsError(clip_id=clip_id, field="start_time", value=new_start_time)
    _check_min_duration(clip, new_duration, min_duration)
    _check_overlap(
        clips,
        clip,
        ClipPlacement(track_id=clip.track_id, start_time=new_start_time, duration=new_duration),
        {clip_id},
        frame_rate=frame_rate,
    )

    keyframes = slice_position_keyframes(
        clip, delta, new_duration, include_start=True, include_end=False
    )
    update: dict[str, Any] = {
        "start_time": new_start_time,
        "duration": new_duration,
        "position": position_from_keyframes(keyframes, clip.position),
        "position_keyframes": keyframes,
    }
    if isinstance(clip, TrimmedMedia):
        update["trim_in"] = clip.trim_in + delta
    return _replace(clips, clip_id, clip.model_copy(update=update))


def trim_clip_end(
    clips: list[Clip],
    clip_id: str,
    new_end_time: float,
    *,
    min_duration: float = CLIP_MIN_DURATION,
    frame_rate: float | None = None,
) -> list[Clip]:
    """Move a clip's right edge, keeping its start fixed.

    Media clips cannot extend past the end of their source; image clips have
    no ceiling.
    """
    clip = get_clip_or_raise(clips, clip_id)
    new_duration = new_end_time - clip.start_time

    _check_min_duration(clip, new_duration, min_duration)
    if isinstance(clip, TrimmedMedia):
        new_trim_out = clip.trim_in + new_duration
        if new_trim_out > clip.source_duration:
            raise SourceBoundsError(clip_id=clip_id, field="trim_out", value=new_trim_out)
    _check_overlap(
        clips,
        clip,
        ClipPlacement(track_id=clip.track_id, start_time=clip.start_time, duration=new_duration),
        {clip_id},
        frame_rate=frame_rate,
    )

    keyframes = slice_position_keyframes(
        clip, 0.0, new_duration, include_start=True, include_end=True
    )
    update: dict[str, Any] = {
        "duration": new_duration,
        "position": position_from_keyframes(keyframes, clip.position),
        "position_keyframes": keyframes,
    }
    if isinstance(clip, TrimmedMedia):
        update["trim_out"] = clip.trim_in + new_duration
    return _replace(clips, clip_id, clip.model_copy(update=update))


def split_clip_at_time(
    clips: list[Clip],
    clip_id: str,
    cursor_time: float,
    *,
    snap_points: Sequence[float] = (),
    snap_threshold: float = 0.0,
    min_duration: float = CLIP_MIN_DURATION,
) -> tuple[list[Clip], Clip, Clip]:
    """Razor: cut a clip in two at ``cursor_time``.

    The cursor is clamped into the clip, snapped against ``snap_points`` and
    clamped again. Both halves get fresh ids, reference the same media and
    replace the original at its position in the clip list.

    Returns:
        (clips', first_half, second_half)
    """
    clip = get_clip_or_raise(clips, clip_id)
    clip_end = clip.start_time + clip.duration

    raw_time = max(clip.start_time, min(cursor_time, clip_end))
    split_time = max(clip.start_time, min(snap(raw_time, snap_points, snap_threshold), clip_end))
    offset = split_time - clip.start_time

    if offset <= min_duration:
        raise ClipTooShortError(clip_id=clip_id, duration=offset, min_duration=min_duration)
    if clip.duration - offset <= min_duration:
        raise ClipTooShortError(
            clip_id=clip_id, duration=clip.duration - offset, min_duration=min_duration
        )

    first_duration = offset
    second_duration = clip.duration - offset
    first_keyframes = slice_position_keyframes(
        clip, 0.0, first_duration, include_start=True, include_end=True
    )
    second_keyframes = slice_position_keyframes(
        clip, offset, second_duration, include_start=True, include_end=False
    )

    first_update: dict[str, Any] = {
        "id": str(uuid4()),
        "duration": first_duration,
        "position": position_from_keyframes(first_keyframes, clip.position),
        "position_keyframes": first_keyframes,
    }
    second_update: dict[str, Any] = {
        "id": str(uuid4()),
        "name": f"{clip.name} (2)",
        "start_time": split_time,
        "duration": second_duration,
        "position": position_from_keyframes(second_keyframes, clip.position),
        "position_keyframes": second_keyframes,
    }
    if isinstance(clip, TrimmedMedia):
        first_update["trim_out"] = clip.trim_in + first_duration
        second_update["trim_in"] = clip.trim_in + offset

    first = clip.model_copy(deep=True, update=first_update)
    second = clip.model_copy(deep=True, update=second_update)
    return _replace(clips, clip_id, first, second), first, second


def duplicate_clip(
    clips: list[Clip],
    tracks: list[Track],
    clip_id: str,
    target_track_id: str | None = None,
    *,
    offset: float = DUPLICATE_OFFSET,
    track_height: int = 60,
) -> tuple[list[Clip], list[Track], Clip]:
    """Clone a clip with a fresh id.

    Without a target the copy goes to a new track of the clip's kind at the
    source's start time. With a target it lands ``offset`` after the source's
    start. Either way it is nudged forward until collision-free.
    """
    source = get_clip_or_raise(clips, clip_id)

    if target_track_id is None:
        tracks, new_track = add_track(
            tracks, track_type=track_type_for_clip(source.type), height=track_height
        )
        track_id = new_track.id
        start_time = source.start_time
    else:
        _check_track_fit(tracks, source, target_track_id)
        track_id = target_track_id
        start_time = source.start_time + offset

    safe_start = find_next_non_overlapping_start(clips, track_id, start_time, source.duration)
    copy = source.model_copy(
        deep=True,
        update={
            "id": str(uuid4()),
            "track_id": track_id,
            "name": f"{source.name} (Copy)",
            "start_time": safe_start,
            "position_keyframes": normalize_position_keyframes(
                source.position_keyframes, source.duration
            ),
        },
    )
    return [*clips, copy], tracks, copy