"""Tests for the timeline store: the public editing surface.

Rejected edits must leave the state untouched (down to the list objects) and
record why in ``last_rejection``.
"""

import json

import pytest
from conftest import HD, make_video

from cliptrack.config import Settings
from cliptrack.exceptions import InvalidSnapshotError
from cliptrack.schemas.timeline import Point, Size
from cliptrack.services.placement import ClipMove
from cliptrack.store import TimelineStore, load_snapshot


def assert_no_overlap(store: TimelineStore) -> None:
    for track in store.tracks:
        track_clips = store.get_clips_in_track(track.id)
        for current, following in zip(track_clips, track_clips[1:]):
            assert current.start_time + current.duration <= following.start_time + 1e-6


class TestInitialState:
    """Tests for a fresh store."""

    def test_starts_with_one_video_track(self, store):
        assert [(t.name, t.type) for t in store.tracks] == [("Video 1", "video")]
        assert store.clips == []
        assert store.duration == 0
        assert store.project_duration == pytest.approx(0.001)
        assert store.can_undo is False


class TestAddClips:
    """Tests for adding media."""

    def test_add_video_clip_fits_canvas(self, store):
        track_id = store.tracks[0].id
        clip_id = store.add_video_clip(track_id, "blob:v", 12, Size(width=960, height=540))
        clip = store.get_clip(clip_id)
        assert (clip.duration, clip.trim_in, clip.trim_out) == (12, 0, 12)
        assert clip.scale == pytest.approx(2.0)
        assert clip.position == Point(x=0, y=0)
        assert store.duration == 12

    def test_add_audio_clip_creates_audio_track(self, store):
        video_track = store.tracks[0].id
        clip_id = store.add_audio_clip(video_track, "blob:a", 4)
        clip = store.get_clip(clip_id)
        track = store.get_track_by_id(clip.track_id)
        assert track.type == "audio"
        assert track.name == "Audio 1"
        assert len(store.tracks) == 2

    def test_add_image_clip_uses_default_duration(self, store):
        clip_id = store.add_image_clip(store.tracks[0].id, "blob:i", HD)
        assert store.get_clip(clip_id).duration == 5

    def test_adds_never_overlap(self, store):
        track_id = store.tracks[0].id
        for _ in range(4):
            store.add_video_clip(track_id, "blob:v", 3, HD, start_time=1)
        assert_no_overlap(store)
        assert store.duration == 13

    def test_paste_gets_fresh_ids_for_existing_clips(self, loaded_store):
        pasted = loaded_store.add_clips([make_video("A", "v1", 0, 2)])
        assert pasted[0] != "A"
        assert loaded_store.get_clip(pasted[0]).start_time == 8

    def test_short_source_is_raised_to_minimum(self, store, caplog):
        clip_id = store.add_video_clip(store.tracks[0].id, "blob:v", 0.02, HD)
        clip = store.get_clip(clip_id)
        assert clip.duration == clip.trim_out == clip.source_duration == 0.1
        assert "minimum clip duration" in caplog.text


class TestRejections:
    """Tests for silent no-op behaviour."""

    def test_collision_rejected_leaves_state(self, loaded_store):
        clips_before = loaded_store._clips
        assert loaded_store.move_clip("B", "v1", 2) is False
        assert loaded_store._clips is clips_before
        assert loaded_store.get_clip("B").start_time == 5
        assert loaded_store.last_rejection.code == "CLIP_OVERLAP"
        assert loaded_store.can_undo is False

    def test_unknown_clip(self, loaded_store):
        assert loaded_store.remove_clip("nope") is False
        assert loaded_store.last_rejection.code == "CLIP_NOT_FOUND"
        assert loaded_store.last_rejection.location.clip_id == "nope"

    def test_type_mismatch(self, loaded_store):
        assert loaded_store.move_clip("M", "v1", 20) is False
        assert loaded_store.last_rejection.code == "TRACK_TYPE_MISMATCH"

    def test_success_clears_last_rejection(self, loaded_store):
        loaded_store.move_clip("B", "v1", 2)
        assert loaded_store.move_clip("B", "v1", 10) is True
        assert loaded_store.last_rejection is None

    def test_last_track_cannot_be_removed(self, store):
        assert store.remove_track(store.tracks[0].id) is False
        assert store.last_rejection.code == "LAST_TRACK"
        assert len(store.tracks) == 1

    def test_reorder_out_of_range(self, loaded_store):
        assert loaded_store.reorder_tracks(0, 7) is False
        assert loaded_store.last_rejection.code == "TRACK_INDEX_OUT_OF_RANGE"


class TestEditing:
    """Tests for editing operations through the store."""

    def test_move_clips_batch(self, loaded_store):
        assert loaded_store.move_clips([ClipMove("A", "v1", 10), ClipMove("B", "v1", 15)]) is True
        assert loaded_store.get_clip("A").start_time == 10
        assert loaded_store.get_clip("B").start_time == 15

    def test_trim_round_trip(self, loaded_store):
        original = loaded_store.get_clip("B")
        assert loaded_store.trim_clip_end("B", 6) is True
        assert loaded_store.trim_clip_end("B", 8) is True
        restored = loaded_store.get_clip("B")
        assert (restored.start_time, restored.duration) == (original.start_time, original.duration)
        assert (restored.trim_in, restored.trim_out) == (original.trim_in, original.trim_out)

    def test_split_returns_second_half(self, loaded_store):
        second_id = loaded_store.split_clip_at_time("M", 4)
        second = loaded_store.get_clip(second_id)
        assert second.start_time == pytest.approx(4)
        assert loaded_store.get_clip("M") is None
        assert len(loaded_store.get_clips_in_track("a1")) == 2

    def test_split_snaps_to_sibling_edge(self, loaded_store):
        loaded_store.zoom = 50  # 5px -> 0.1s
        second_id = loaded_store.split_clip_at_time("M", 4.97)
        assert loaded_store.get_clip(second_id).start_time == 5.0

    def test_rejected_split_returns_none(self, loaded_store):
        assert loaded_store.split_clip_at_time("A", 0.08) is None
        assert loaded_store.last_rejection.code == "CLIP_TOO_SHORT"

    def test_duplicate_clip(self, loaded_store):
        copy_id = loaded_store.duplicate_clip("A", "v1")
        assert loaded_store.get_clip(copy_id).start_time == 8
        assert_no_overlap(loaded_store)

    def test_duplicate_track(self, loaded_store):
        track_id = loaded_store.duplicate_track("v1")
        assert [t.id for t in loaded_store.tracks][1] == track_id
        assert len(loaded_store.get_clips_in_track(track_id)) == 2

    def test_remove_track_cascades(self, loaded_store):
        assert loaded_store.remove_track("v1") is True
        assert [clip.id for clip in loaded_store.clips] == ["M"]

    def test_update_track(self, loaded_store):
        assert loaded_store.update_track("a1", {"muted": True}) is True
        assert loaded_store.get_track_by_id("a1").muted is True

    def test_update_clip(self, loaded_store):
        assert loaded_store.update_clip("A", {"opacity": 40}) is True
        assert loaded_store.get_clip("A").opacity == 40

    def test_update_clip_camel_case_is_validated(self, loaded_store):
        assert loaded_store.update_clip("B", {"startTime": 2}) is False
        assert loaded_store.last_rejection.code == "CLIP_OVERLAP"
        assert loaded_store.get_clip("B").start_time == 5

    def test_update_clip_duration_keeps_trim_span(self, loaded_store):
        assert loaded_store.update_clip("A", {"duration": 3}) is True
        clip = loaded_store.get_clip("A")
        assert clip.trim_out - clip.trim_in == clip.duration == 3

    def test_update_track_type_with_clips_rejected(self, loaded_store):
        assert loaded_store.update_track("v1", {"type": "audio"}) is False
        assert loaded_store.last_rejection.code == "TRACK_TYPE_MISMATCH"
        assert loaded_store.get_track_by_id("v1").type == "video"

    def test_update_track_invalid_value(self, loaded_store):
        assert loaded_store.update_track("v1", {"type": "banana"}) is False
        assert loaded_store.last_rejection.code == "INVALID_UPDATE"

    def test_get_clip_at_time(self, loaded_store):
        assert loaded_store.get_clip_at_time("v1", 5).id == "B"
        assert loaded_store.get_clip_at_time("v1", 8) is None

    def test_returned_clips_are_copies(self, loaded_store):
        loaded_store.get_clip("A").start_time = 99
        loaded_store.clips[0].start_time = 99
        assert loaded_store.get_clip("A").start_time == 0


class TestFrameQuantisedCollisions:
    """Tests for collision checks at the configured frame rate."""

    def build(self, settings, tracks):
        store = TimelineStore(settings)
        store.restore_tracks(tracks)
        store.restore_clips(
            [
                make_video("A", "v1", 0, 5.01, source_duration=20),
                make_video("B", "v1", 6, 2, source_duration=20),
            ]
        )
        return store

    def test_sub_frame_gap_collides(self, tracks):
        store = self.build(Settings(_env_file=None, collision_frame_rate=30), tracks)
        assert store.move_clip("B", "v1", 5.02) is False
        assert store.last_rejection.code == "CLIP_OVERLAP"

    def test_continuous_time_by_default(self, settings, tracks):
        store = self.build(settings, tracks)
        assert store.move_clip("B", "v1", 5.02) is True


class TestKeyframes:
    """Tests for keyframe editing through the store."""

    def test_set_and_remove_keyframe(self, loaded_store):
        assert loaded_store.set_position_keyframe("A", 2, Point(x=10, y=10)) is True
        assert [k.time for k in loaded_store.get_clip("A").position_keyframes] == [0, 2]
        assert loaded_store.remove_position_keyframe("A", 2) is True
        assert loaded_store.remove_position_keyframe("A", 2) is False

    def test_offset_clip_position(self, loaded_store):
        assert loaded_store.offset_clip_position("A", 5, 5) is True
        assert loaded_store.get_clip("A").position == Point(x=5, y=5)

    def test_unknown_clip(self, loaded_store):
        assert loaded_store.set_position_keyframe("nope", 0, Point()) is False


class TestSnapping:
    """Tests for store-level snapping."""

    def test_threshold_follows_zoom(self, store):
        store.zoom = 100
        assert store.snap_threshold == pytest.approx(0.05)
        store.zoom = 1  # clamped to min zoom 10
        assert store.zoom == 10
        assert store.snap_threshold == pytest.approx(0.5)

    def test_snap_to_points(self, loaded_store):
        loaded_store.zoom = 50
        assert loaded_store.snap_to_points(4.97) == 5.0
        loaded_store.zoom = 500
        assert loaded_store.snap_to_points(4.97) == 4.97

    def test_snapping_disabled(self, loaded_store):
        loaded_store.zoom = 50
        loaded_store.snap_enabled = False
        assert loaded_store.snap_to_points(4.97) == 4.97

    def test_snap_clip_start_uses_end_edge(self, loaded_store):
        loaded_store.zoom = 50
        assert loaded_store.snap_clip_start("B", 7.02, ["v1"]) == pytest.approx(7.02)
        assert loaded_store.snap_clip_start("A", 4.96, ["v1"]) == pytest.approx(5.0)


class TestHistory:
    """Tests for undo/redo through the store."""

    def test_save_move_save_trim_then_undo_twice(self, store):
        track_id = store.tracks[0].id
        clip_id = store.add_video_clip(track_id, "blob:v", 10, HD)
        store.clear_history()

        store.save_to_history()
        assert store.move_clip(clip_id, track_id, 3) is True
        store.save_to_history()
        assert store.trim_clip_end(clip_id, 8) is True

        assert store.undo() is True
        assert store.undo() is True
        restored = store.get_clip(clip_id)
        assert (restored.start_time, restored.duration) == (0, 10)
        assert store.can_undo is False

        assert store.redo() is True
        assert (store.get_clip(clip_id).start_time, store.get_clip(clip_id).duration) == (3, 10)
        assert store.redo() is True
        assert store.get_clip(clip_id).duration == 5

    def test_edits_without_save_record_nothing(self, loaded_store):
        loaded_store.move_clip("B", "v1", 10)
        loaded_store.move_clip("B", "v1", 20)
        assert loaded_store.can_undo is False
        assert loaded_store.undo() is False

    def test_new_edit_invalidates_redo(self, loaded_store):
        loaded_store.save_to_history()
        loaded_store.move_clip("B", "v1", 10)
        loaded_store.undo()
        assert loaded_store.can_redo is True

        loaded_store.move_clip("B", "v1", 12)
        assert loaded_store.can_redo is False
        assert loaded_store.undo() is False

    def test_rejected_edit_keeps_redo(self, loaded_store):
        loaded_store.save_to_history()
        loaded_store.move_clip("B", "v1", 10)
        loaded_store.undo()

        assert loaded_store.move_clip("B", "v1", 2) is False
        assert loaded_store.can_redo is True

    def test_auto_history_records_each_commit(self, settings):
        store = TimelineStore(settings, auto_history=True)
        track_id = store.tracks[0].id
        clip_id = store.add_video_clip(track_id, "blob:v", 4, HD)
        store.move_clip(clip_id, track_id, 10)

        assert store.undo() is True
        assert store.get_clip(clip_id).start_time == 0
        assert store.undo() is True
        assert store.get_clip(clip_id) is None

    def test_auto_history_from_settings(self):
        store = TimelineStore(Settings(_env_file=None, auto_history=True))
        store.add_track()
        assert store.can_undo is True

    def test_gesture_is_one_undo_step(self, loaded_store):
        with loaded_store.gesture() as gesture:
            for start in (9, 10, 11, 2, 12):
                loaded_store.move_clip("B", "v1", start)

        assert gesture.committed == 4
        assert [r.code for r in gesture.rejections] == ["CLIP_OVERLAP"]
        assert loaded_store.get_clip("B").start_time == 12

        assert loaded_store.undo() is True
        assert loaded_store.get_clip("B").start_time == 5
        assert loaded_store.can_undo is False

    def test_gesture_is_one_step_with_auto_history(self, settings, tracks):
        store = TimelineStore(settings, auto_history=True)
        store.restore_tracks(tracks)
        store.restore_clips([make_video("B", "v1", 5, 3, source_duration=20)])

        with store.gesture():
            store.move_clip("B", "v1", 9)
            store.move_clip("B", "v1", 10)

        assert store.undo() is True
        assert store.get_clip("B").start_time == 5
        assert store.can_undo is False

    def test_gesture_without_commits_records_nothing(self, loaded_store):
        with loaded_store.gesture():
            loaded_store.move_clip("B", "v1", 2)
        assert loaded_store.can_undo is False

    def test_undo_restores_keyframes(self, loaded_store):
        loaded_store.save_to_history()
        loaded_store.set_position_keyframe("A", 2, Point(x=10, y=10))
        loaded_store.undo()
        assert loaded_store.get_clip("A").position_keyframes == []


class TestDuration:
    """Tests for duration aggregation."""

    def test_duration_tracks_furthest_end(self, loaded_store):
        assert loaded_store.duration == 10
        loaded_store.move_clip("B", "v1", 20)
        assert loaded_store.duration == 23

    def test_empty_timeline_gets_floor(self, store):
        assert store.duration == 0
        assert store.project_duration == pytest.approx(store.settings.duration_floor)


class TestPersistence:
    """Tests for snapshot export and restore."""

    def test_restore_clears_history(self, loaded_store):
        loaded_store.save_to_history()
        loaded_store.move_clip("B", "v1", 10)
        snapshot = loaded_store.export_snapshot()
        loaded_store.restore_snapshot(snapshot)
        assert loaded_store.can_undo is False
        assert loaded_store.get_clip("B").start_time == 10

    def test_snapshot_json_is_camel_case(self, loaded_store):
        data = json.loads(loaded_store.export_snapshot().to_json())
        clip = next(c for c in data["clips"] if c["id"] == "A")
        assert clip["trackId"] == "v1"
        assert clip["startTime"] == 0
        assert "trimIn" in clip

    def test_load_snapshot_round_trip(self, loaded_store):
        restored = load_snapshot(loaded_store.export_snapshot().to_json())
        assert [c.id for c in restored.clips] == ["A", "B", "M"]
        assert restored.clips[2].type == "audio"

    def test_load_snapshot_rejects_bad_data(self):
        with pytest.raises(InvalidSnapshotError) as exc_info:
            load_snapshot({"tracks": [{"id": "t"}], "clips": [{"type": "nope"}]})
        assert exc_info.value.code == "INVALID_SNAPSHOT"
