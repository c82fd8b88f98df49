"""Track list operations.

Every structural change (insert, remove, reorder) ends with
``reindex_tracks_for_z_order`` so ``order`` stays dense: the first track in
the list is the top (foreground) track and carries the highest order.
"""

import logging
from typing import Any, Iterable
from uuid import uuid4

from pydantic import ValidationError

from cliptrack.exceptions import (
    InvalidUpdateError,
    LastTrackError,
    TrackIndexError,
    TrackNotFoundError,
    TrackTypeMismatchError,
)
from cliptrack.schemas.timeline import (
    Clip,
    Track,
    TrackType,
    create_track,
    fits_track_type,
    resolve_field_updates,
)

logger = logging.getLogger(__name__)

# Fields a caller may not change through update_track
PROTECTED_TRACK_FIELDS = frozenset({"id", "order"})


def reindex_tracks_for_z_order(tracks: list[Track]) -> list[Track]:
    count = len(tracks)
    return [
        track if track.order == count - 1 - index
        else track.model_copy(update={"order": count - 1 - index})
        for index, track in enumerate(tracks)
    ]


def find_track(tracks: list[Track], track_id: str) -> Track | None:
    for track in tracks:
        if track.id == track_id:
            return track
    return None


def get_default_track_name(tracks: list[Track], track_type: TrackType) -> str:
    count_for_type = sum(1 for track in tracks if track.type == track_type) + 1
    return f"Audio {count_for_type}" if track_type == "audio" else f"Video {count_for_type}"


def get_duplicate_track_name(source_name: str, tracks: list[Track]) -> str:
    existing = {track.name for track in tracks}
    base = f"{source_name} (Copy)"
    if base not in existing:
        return base

    suffix = 2
    while f"{base} {suffix}" in existing:
        suffix += 1
    return f"{base} {suffix}"


def add_track(
    tracks: list[Track],
    name: str | None = None,
    track_type: TrackType = "video",
    *,
    height: int = 60,
) -> tuple[list[Track], Track]:
    """Append a new track at the bottom of the stack."""
    track = create_track(
        name or get_default_track_name(tracks, track_type),
        track_type=track_type,
        height=height,
    )
    updated = reindex_tracks_for_z_order([*tracks, track])
    return updated, updated[-1]


def duplicate_track(
    tracks: list[Track],
    clips: list[Clip],
    track_id: str,
) -> tuple[list[Track], list[Clip], Track, list[tuple[str, str]]]:
    """Clone a track and all of its clips directly below the source.

    Clips keep their start times; each gets a fresh id. Returns the
    ``(source_clip_id, new_clip_id)`` pairs so backing media can be copied.

    Raises:
        TrackNotFoundError: If ``track_id`` is unknown
    """
    index = next((i for i, track in enumerate(tracks) if track.id == track_id), -1)
    if index < 0:
        raise TrackNotFoundError(track_id)

    source = tracks[index]
    copy = source.model_copy(
        update={"id": str(uuid4()), "name": get_duplicate_track_name(source.name, tracks)}
    )
    updated_tracks = reindex_tracks_for_z_order([*tracks[: index + 1], copy, *tracks[index + 1:]])

    source_clips = sorted((c for c in clips if c.track_id == track_id), key=lambda c: c.start_time)
    new_clips: list[Clip] = []
    pairs: list[tuple[str, str]] = []
    for clip in source_clips:
        new_clip = clip.model_copy(deep=True, update={"id": str(uuid4()), "track_id": copy.id})
        new_clips.append(new_clip)
        pairs.append((clip.id, new_clip.id))

    return updated_tracks, [*clips, *new_clips], updated_tracks[index + 1], pairs


def remove_track(
    tracks: list[Track],
    clips: list[Clip],
    track_id: str,
) -> tuple[list[Track], list[Clip]]:
    """Remove a track and every clip on it.

    Raises:
        LastTrackError: If it is the only remaining track
        TrackNotFoundError: If ``track_id`` is unknown
    """
    if len(tracks) <= 1:
        raise LastTrackError(track_id)
    if find_track(tracks, track_id) is None:
        raise TrackNotFoundError(track_id)

    remaining_clips = [clip for clip in clips if clip.track_id != track_id]
    remaining_tracks = reindex_tracks_for_z_order([t for t in tracks if t.id != track_id])
    logger.debug(f"Removed track {track_id} with {len(clips) - len(remaining_clips)} clips")
    return remaining_tracks, remaining_clips


def update_track(
    tracks: list[Track],
    track_id: str,
    updates: dict[str, Any],
    *,
    clips: Iterable[Clip] = (),
) -> list[Track]:
    """Apply field updates to one track; ``id`` and ``order`` are ignored.

    Keys may be snake_case field names or camelCase aliases. Changing
    ``type`` is rejected while any of ``clips`` on the track would no longer
    fit it.

    Raises:
        TrackNotFoundError: If ``track_id`` is unknown
        InvalidUpdateError: If the updated track fails validation
        TrackTypeMismatchError: If a clip on the track does not fit the new type
    """
    track = find_track(tracks, track_id)
    if track is None:
        raise TrackNotFoundError(track_id)

    changes = resolve_field_updates(Track, updates, PROTECTED_TRACK_FIELDS)
    try:
        updated = Track.model_validate({**track.model_dump(), **changes})
    except ValidationError as exc:
        raise InvalidUpdateError.from_validation_error(exc, track_id=track_id) from exc

    if updated.type != track.type:
        for clip in clips:
            if clip.track_id == track_id and not fits_track_type(updated, clip.type):
                raise TrackTypeMismatchError(
                    clip_id=clip.id,
                    clip_type=clip.type,
                    track_id=track_id,
                    track_type=updated.type,
                )

    return [updated if t.id == track_id else t for t in tracks]


def reorder_tracks(tracks: list[Track], from_index: int, to_index: int) -> list[Track]:
    """Move the track at ``from_index`` to ``to_index``.

    Raises:
        TrackIndexError: If either index is outside the track list
    """
    for index in (from_index, to_index):
        if not 0 <= index < len(tracks):
            raise TrackIndexError(index, len(tracks))

    reordered = list(tracks)
    moved = reordered.pop(from_index)
    reordered.insert(to_index, moved)
    return reindex_tracks_for_z_order(reordered)
