"""The authoritative in-memory timeline.

``TimelineStore`` owns the track and clip lists and is the only place they
change. Every editing method is a silent no-op when the edit would break an
arrangement invariant or names an unknown id: the state (down to the list
objects) is left untouched and ``last_rejection`` says why.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Callable, Sequence, TypeVar
from uuid import uuid4

from pydantic import ValidationError

from cliptrack.config import Settings, get_settings
from cliptrack.exceptions import (
    CliptrackError,
    InvalidSnapshotError,
    PlacementError,
    ResourceNotFoundError,
)
from cliptrack.schemas.envelope import ErrorInfo
from cliptrack.schemas.timeline import (
    Clip,
    Point,
    Size,
    TimelineSnapshot,
    Track,
    TrackType,
    create_audio_clip,
    create_image_clip,
    create_track,
    create_video_clip,
)
from cliptrack.services import keyframes as keyframe_ops
from cliptrack.services import placement
from cliptrack.services import track_manager
from cliptrack.services.duration import calculate_clips_duration, project_duration
from cliptrack.services.event_manager import (
    CLIPS_CHANGED,
    HISTORY_CHANGED,
    TIMELINE_RESTORED,
    TRACKS_CHANGED,
    TimelineEventManager,
)
from cliptrack.services.gesture_context import GestureContext, create_gesture_context, elapsed_ms
from cliptrack.services.history import HistoryManager, take_snapshot
from cliptrack.services.media_store import BlobCopyScheduler, MediaBlobStore
from cliptrack.services.placement import ClipMove
from cliptrack.services.snapping import collect_snap_points, pixels_to_time, snap, snap_move_start

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that turn an editing call into a no-op
REJECTIONS = (PlacementError, ResourceNotFoundError)


def load_snapshot(data: str | bytes | dict[str, Any]) -> TimelineSnapshot:
    """Parse a persisted snapshot (camelCase JSON or a decoded dict).

    Raises:
        InvalidSnapshotError: If the data does not describe a valid timeline
    """
    try:
        if isinstance(data, dict):
            return TimelineSnapshot.model_validate(data)
        return TimelineSnapshot.from_json(data)
    except ValidationError as exc:
        raise InvalidSnapshotError(error_count=exc.error_count()) from exc


class TimelineStore:
    """Tracks, clips and their undo history.

    Undo steps are recorded by ``save_to_history`` before an edit, or once per
    ``gesture()``. With ``auto_history`` every committed edit records its own
    step instead.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        blob_store: MediaBlobStore | None = None,
        events: TimelineEventManager | None = None,
        auto_history: bool | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.events = events or TimelineEventManager()
        self.auto_history = (
            self.settings.auto_history if auto_history is None else auto_history
        )
        self.snap_enabled = self.settings.snap_enabled
        self.last_rejection: ErrorInfo | None = None

        self._tracks: list[Track] = [
            create_track("Video 1", order=0, height=self.settings.default_track_height)
        ]
        self._clips: list[Clip] = []
        self._zoom = self.settings.default_zoom
        self._history = HistoryManager(self.settings.max_history)
        self._blob_copies = BlobCopyScheduler(blob_store)
        self._gesture: GestureContext | None = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def tracks(self) -> list[Track]:
        return [track.model_copy(deep=True) for track in self._tracks]

    @property
    def clips(self) -> list[Clip]:
        return [clip.model_copy(deep=True) for clip in self._clips]

    @property
    def duration(self) -> float:
        return calculate_clips_duration(self._clips)

    @property
    def project_duration(self) -> float:
        return project_duration(self._clips, self.settings.duration_floor)

    @property
    def blob_copies(self) -> BlobCopyScheduler:
        return self._blob_copies

    def _commit(
        self,
        operation: str,
        *,
        tracks: list[Track] | None = None,
        clips: list[Clip] | None = None,
        record: bool = True,
    ) -> None:
        """Swap in new state and notify subscribers.

        A fresh edit invalidates the redo branch. The undo step itself is the
        caller's ``save_to_history`` (or the enclosing gesture), unless
        ``auto_history`` records one per commit.
        """
        history_changed = False
        if record:
            if self._gesture is not None:
                self._gesture.committed += 1
            elif self.auto_history:
                self._history.save(self._tracks, self._clips)
                history_changed = True
            else:
                history_changed = self._history.discard_redo()

        if tracks is not None:
            self._tracks = tracks
        if clips is not None:
            self._clips = clips
        self.last_rejection = None
        logger.debug(f"Committed {operation}")

        if tracks is not None:
            self.events.publish(TRACKS_CHANGED, {"operation": operation})
        if clips is not None:
            self.events.publish(CLIPS_CHANGED, {"operation": operation})
        if history_changed:
            self.events.publish(HISTORY_CHANGED, {"operation": operation})

    def _reject(self, operation: str, exc: CliptrackError) -> None:
        info = exc.to_error_info()
        self.last_rejection = info
        if self._gesture is not None:
            self._gesture.rejections.append(info)
        logger.debug(f"Rejected {operation}: [{info.code}] {info.message}")

    def _attempt(self, operation: str, action: Callable[[], T]) -> T | None:
        try:
            return action()
        except REJECTIONS as exc:
            self._reject(operation, exc)
            return None

    # =========================================================================
    # Clips
    # =========================================================================

    def _canvas_size(self, canvas_size: Size | None) -> Size:
        return canvas_size or Size(
            width=self.settings.canvas_width, height=self.settings.canvas_height
        )

    def _media_duration(self, source_duration: float, source_url: str) -> float:
        """Source duration raised to the minimum clip length."""
        if source_duration < self.settings.clip_min_duration:
            logger.warning(
                f"Source {source_url} is {source_duration:.3f}s long; "
                f"using the minimum clip duration {self.settings.clip_min_duration:.3f}s"
            )
            return self.settings.clip_min_duration
        return source_duration

    def _add(self, operation: str, clip: Clip) -> str:
        clips, tracks, placed = placement.add_clip(
            self._clips,
            self._tracks,
            clip,
            track_height=self.settings.default_track_height,
        )
        self._commit(operation, tracks=tracks if tracks is not self._tracks else None, clips=clips)
        return placed.id

    def add_video_clip(
        self,
        track_id: str,
        source_url: str,
        source_duration: float,
        source_size: Size,
        start_time: float = 0,
        canvas_size: Size | None = None,
    ) -> str:
        clip = create_video_clip(
            track_id,
            source_url,
            self._media_duration(source_duration, source_url),
            source_size,
            start_time,
        )
        position, scale = placement.get_fitted_visual_transform(
            source_size, self._canvas_size(canvas_size)
        )
        fitted = clip.model_copy(update={"position": position, "scale": scale})
        return self._add("add_video_clip", fitted)

    def add_audio_clip(
        self,
        track_id: str,
        source_url: str,
        source_duration: float,
        start_time: float = 0,
        source_size: Size | None = None,
    ) -> str:
        clip = create_audio_clip(
            track_id,
            source_url,
            self._media_duration(source_duration, source_url),
            start_time,
            source_size,
        )
        return self._add("add_audio_clip", clip)

    def add_image_clip(
        self,
        track_id: str,
        source_url: str,
        source_size: Size,
        start_time: float = 0,
        duration: float | None = None,
        canvas_size: Size | None = None,
    ) -> str:
        clip = create_image_clip(
            track_id,
            source_url,
            source_size,
            start_time,
            self._media_duration(duration or self.settings.default_image_duration, source_url),
        )
        position, scale = placement.get_fitted_visual_transform(
            source_size, self._canvas_size(canvas_size)
        )
        fitted = clip.model_copy(update={"position": position, "scale": scale})
        return self._add("add_image_clip", fitted)

    def add_clips(self, clips: Sequence[Clip]) -> list[str]:
        """Paste pre-formed clips. Ids already on the timeline are replaced."""
        if not clips:
            return []

        existing = {clip.id for clip in self._clips}
        incoming: list[Clip] = []
        for clip in clips:
            if clip.id in existing:
                clip = clip.model_copy(update={"id": str(uuid4())})
            existing.add(clip.id)
            incoming.append(clip)

        new_clips, tracks, placed = placement.add_clips(
            self._clips,
            self._tracks,
            incoming,
            track_height=self.settings.default_track_height,
        )
        self._commit(
            "add_clips",
            tracks=tracks if tracks is not self._tracks else None,
            clips=new_clips,
        )
        return [clip.id for clip in placed]

    def remove_clip(self, clip_id: str) -> bool:
        clips = self._attempt("remove_clip", lambda: placement.remove_clip(self._clips, clip_id))
        if clips is None:
            return False
        self._commit("remove_clip", clips=clips)
        return True

    def update_clip(self, clip_id: str, updates: dict[str, Any]) -> bool:
        clips = self._attempt(
            "update_clip",
            lambda: placement.update_clip(
                self._clips,
                self._tracks,
                clip_id,
                updates,
                min_duration=self.settings.clip_min_duration,
                frame_rate=self.settings.collision_frame_rate,
            ),
        )
        if clips is None:
            return False
        self._commit("update_clip", clips=clips)
        return True

    def move_clip(
        self,
        clip_id: str,
        track_id: str,
        start_time: float,
        ignore_ids: Sequence[str] = (),
    ) -> bool:
        clips = self._attempt(
            "move_clip",
            lambda: placement.move_clip(
                self._clips,
                self._tracks,
                clip_id,
                track_id,
                start_time,
                ignore_ids,
                frame_rate=self.settings.collision_frame_rate,
            ),
        )
        if clips is None:
            return False
        self._commit("move_clip", clips=clips)
        return True

    def move_clips(self, moves: Sequence[ClipMove], ignore_ids: Sequence[str] = ()) -> bool:
        """Move several clips at once; rejected as a whole if any item fails."""
        if not moves:
            return False
        clips = self._attempt(
            "move_clips",
            lambda: placement.move_clips(
                self._clips,
                self._tracks,
                moves,
                ignore_ids,
                frame_rate=self.settings.collision_frame_rate,
            ),
        )
        if clips is None:
            return False
        self._commit("move_clips", clips=clips)
        return True

    def trim_clip_start(self, clip_id: str, new_start_time: float) -> bool:
        clips = self._attempt(
            "trim_clip_start",
            lambda: placement.trim_clip_start(
                self._clips,
                clip_id,
                new_start_time,
                min_duration=self.settings.clip_min_duration,
                frame_rate=self.settings.collision_frame_rate,
            ),
        )
        if clips is None:
            return False
        self._commit("trim_clip_start", clips=clips)
        return True

    def trim_clip_end(self, clip_id: str, new_end_time: float) -> bool:
        clips = self._attempt(
            "trim_clip_end",
            lambda: placement.trim_clip_end(
                self._clips,
                clip_id,
                new_end_time,
                min_duration=self.settings.clip_min_duration,
                frame_rate=self.settings.collision_frame_rate,
            ),
        )
        if clips is None:
            return False
        self._commit("trim_clip_end", clips=clips)
        return True

    def split_clip_at_time(
        self,
        clip_id: str,
        time: float,
        snap_track_ids: Sequence[str] | None = None,
    ) -> str | None:
        """Razor-split a clip; returns the id of the second half.

        When snapping is on the cut snaps to the edges of other clips on
        ``snap_track_ids`` (every track by default).
        """
        snap_points: list[float] = []
        if self.snap_enabled:
            snap_points = collect_snap_points(self._clips, snap_track_ids, [clip_id])

        result = self._attempt(
            "split_clip_at_time",
            lambda: placement.split_clip_at_time(
                self._clips,
                clip_id,
                time,
                snap_points=snap_points,
                snap_threshold=self.snap_threshold if self.snap_enabled else 0.0,
                min_duration=self.settings.clip_min_duration,
            ),
        )
        if result is None:
            return None

        clips, first, second = result
        self._commit("split_clip_at_time", clips=clips)
        self._blob_copies.schedule_many([(clip_id, first.id), (clip_id, second.id)])
        return second.id

    def duplicate_clip(self, clip_id: str, target_track_id: str | None = None) -> str | None:
        result = self._attempt(
            "duplicate_clip",
            lambda: placement.duplicate_clip(
                self._clips,
                self._tracks,
                clip_id,
                target_track_id,
                offset=self.settings.duplicate_offset,
                track_height=self.settings.default_track_height,
            ),
        )
        if result is None:
            return None

        clips, tracks, copy = result
        self._commit(
            "duplicate_clip",
            tracks=tracks if tracks is not self._tracks else None,
            clips=clips,
        )
        self._blob_copies.schedule(clip_id, copy.id)
        return copy.id

    # =========================================================================
    # Keyframes
    # =========================================================================

    def _apply_clip_updates(self, operation: str, clip: Clip, updates: dict[str, Any]) -> None:
        updated = clip.model_copy(update=updates)
        self._commit(
            operation,
            clips=[updated if c.id == clip.id else c for c in self._clips],
        )

    def set_position_keyframe(
        self,
        clip_id: str,
        timeline_time: float,
        value: Point,
        interpolation: str | None = None,
    ) -> bool:
        clip = self._attempt(
            "set_position_keyframe", lambda: placement.get_clip_or_raise(self._clips, clip_id)
        )
        if clip is None:
            return False
        updates = keyframe_ops.upsert_position_keyframe(
            clip, timeline_time, value, interpolation=interpolation
        )
        self._apply_clip_updates("set_position_keyframe", clip, updates)
        return True

    def remove_position_keyframe(self, clip_id: str, timeline_time: float) -> bool:
        clip = self._attempt(
            "remove_position_keyframe", lambda: placement.get_clip_or_raise(self._clips, clip_id)
        )
        if clip is None:
            return False
        removed, updates = keyframe_ops.remove_position_keyframe(clip, timeline_time)
        if not removed:
            return False
        self._apply_clip_updates("remove_position_keyframe", clip, updates)
        return True

    def offset_clip_position(self, clip_id: str, dx: float, dy: float) -> bool:
        clip = self._attempt(
            "offset_clip_position", lambda: placement.get_clip_or_raise(self._clips, clip_id)
        )
        if clip is None:
            return False
        self._apply_clip_updates(
            "offset_clip_position", clip, keyframe_ops.offset_clip_position(clip, dx, dy)
        )
        return True

    # =========================================================================
    # Tracks
    # =========================================================================

    def add_track(self, name: str | None = None, track_type: TrackType = "video") -> str:
        tracks, track = track_manager.add_track(
            self._tracks, name, track_type, height=self.settings.default_track_height
        )
        self._commit("add_track", tracks=tracks)
        return track.id

    def duplicate_track(self, track_id: str) -> str | None:
        result = self._attempt(
            "duplicate_track",
            lambda: track_manager.duplicate_track(self._tracks, self._clips, track_id),
        )
        if result is None:
            return None

        tracks, clips, new_track, pairs = result
        self._commit("duplicate_track", tracks=tracks, clips=clips)
        self._blob_copies.schedule_many(pairs)
        return new_track.id

    def remove_track(self, track_id: str) -> bool:
        result = self._attempt(
            "remove_track",
            lambda: track_manager.remove_track(self._tracks, self._clips, track_id),
        )
        if result is None:
            return False
        tracks, clips = result
        self._commit("remove_track", tracks=tracks, clips=clips)
        return True

    def update_track(self, track_id: str, updates: dict[str, Any]) -> bool:
        tracks = self._attempt(
            "update_track",
            lambda: track_manager.update_track(
                self._tracks, track_id, updates, clips=self._clips
            ),
        )
        if tracks is None:
            return False
        self._commit("update_track", tracks=tracks)
        return True

    def reorder_tracks(self, from_index: int, to_index: int) -> bool:
        tracks = self._attempt(
            "reorder_tracks",
            lambda: track_manager.reorder_tracks(self._tracks, from_index, to_index),
        )
        if tracks is None:
            return False
        self._commit("reorder_tracks", tracks=tracks)
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def get_clip(self, clip_id: str) -> Clip | None:
        clip = placement.find_clip(self._clips, clip_id)
        return clip.model_copy(deep=True) if clip else None

    def get_track_by_id(self, track_id: str) -> Track | None:
        track = track_manager.find_track(self._tracks, track_id)
        return track.model_copy(deep=True) if track else None

    def get_clips_in_track(self, track_id: str) -> list[Clip]:
        return [
            clip.model_copy(deep=True)
            for clip in placement.get_clips_in_track(self._clips, track_id)
        ]

    def get_clip_at_time(self, track_id: str, time: float) -> Clip | None:
        track_clips = placement.get_clips_in_track(self._clips, track_id)
        clip = placement.find_clip_at_time(track_clips, time)
        return clip.model_copy(deep=True) if clip else None

    # =========================================================================
    # Snapping
    # =========================================================================

    @property
    def zoom(self) -> float:
        return self._zoom

    @zoom.setter
    def zoom(self, value: float) -> None:
        self._zoom = max(self.settings.min_zoom, min(self.settings.max_zoom, value))

    @property
    def snap_threshold(self) -> float:
        """Snap threshold in seconds at the current zoom."""
        return pixels_to_time(
            self.settings.snap_threshold_px,
            self._zoom,
            min_zoom=self.settings.min_zoom,
            max_zoom=self.settings.max_zoom,
        )

    def snap_to_points(
        self,
        time: float,
        track_id: str | None = None,
        exclude_ids: Sequence[str] = (),
    ) -> float:
        if not self.snap_enabled:
            return time
        points = collect_snap_points(
            self._clips, [track_id] if track_id else None, exclude_ids
        )
        return snap(time, points, self.snap_threshold)

    def snap_clip_start(
        self,
        clip_id: str,
        raw_start: float,
        track_ids: Sequence[str] | None = None,
    ) -> float:
        """Snapped start for a clip being dragged, using both of its edges."""
        clip = placement.find_clip(self._clips, clip_id)
        if clip is None or not self.snap_enabled:
            return max(0.0, raw_start)
        points = collect_snap_points(self._clips, track_ids, [clip_id])
        return snap_move_start(raw_start, clip.duration, points, self.snap_threshold)

    # =========================================================================
    # History
    # =========================================================================

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    def save_to_history(self) -> None:
        """Record the current state as an undo step."""
        self._history.save(self._tracks, self._clips)
        self.events.publish(HISTORY_CHANGED, {"operation": "save_to_history"})

    def clear_history(self) -> None:
        self._history.clear()
        self.events.publish(HISTORY_CHANGED, {"operation": "clear_history"})

    def _apply_snapshot(self, operation: str, snapshot: TimelineSnapshot) -> None:
        self._tracks = list(snapshot.tracks)
        self._clips = list(snapshot.clips)
        self.events.publish(TRACKS_CHANGED, {"operation": operation})
        self.events.publish(CLIPS_CHANGED, {"operation": operation})
        self.events.publish(HISTORY_CHANGED, {"operation": operation})

    def undo(self) -> bool:
        previous = self._history.undo(take_snapshot(self._tracks, self._clips))
        if previous is None:
            return False
        self._apply_snapshot("undo", previous)
        return True

    def redo(self) -> bool:
        following = self._history.redo(take_snapshot(self._tracks, self._clips))
        if following is None:
            return False
        self._apply_snapshot("redo", following)
        return True

    @contextmanager
    def gesture(self) -> Iterator[GestureContext]:
        """Group every commit made inside the block into one undo step.

        The pre-gesture state is recorded on exit, and only if something was
        committed. Nested gestures join the outer one.
        """
        if self._gesture is not None:
            yield self._gesture
            return

        before = take_snapshot(self._tracks, self._clips)
        context = create_gesture_context()
        self._gesture = context
        try:
            yield context
        finally:
            self._gesture = None
            if context.committed:
                self._history.save(before.tracks, before.clips)
                self.events.publish(HISTORY_CHANGED, {"operation": "gesture"})
            logger.debug(
                f"Gesture {context.gesture_id}: {context.committed} commits, "
                f"{len(context.rejections)} rejections in {elapsed_ms(context)}ms"
            )

    # =========================================================================
    # Persistence
    # =========================================================================

    def export_snapshot(self) -> TimelineSnapshot:
        return take_snapshot(self._tracks, self._clips)

    def restore_snapshot(self, snapshot: TimelineSnapshot) -> None:
        """Replace the whole timeline (trusted input) and forget history."""
        restored = take_snapshot(snapshot.tracks, snapshot.clips)
        self._tracks = restored.tracks
        self._clips = restored.clips
        self._history.clear()
        self.last_rejection = None
        self.events.publish(
            TIMELINE_RESTORED,
            {"tracks": len(self._tracks), "clips": len(self._clips)},
        )

    def restore_tracks(self, tracks: Sequence[Track]) -> None:
        self._commit(
            "restore_tracks",
            tracks=[track.model_copy(deep=True) for track in tracks],
            record=False,
        )

    def restore_clips(self, clips: Sequence[Clip]) -> None:
        self._commit(
            "restore_clips",
            clips=[clip.model_copy(deep=True) for clip in clips],
            record=False,
        )
