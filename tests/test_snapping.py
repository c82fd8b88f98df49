"""Tests for snap resolution."""

import pytest
from conftest import make_video

from cliptrack.services.snapping import (
    collect_snap_points,
    pixels_to_time,
    snap,
    snap_move_start,
)


class TestSnap:
    """Tests for the single-value snap."""

    def test_snaps_within_threshold(self):
        assert snap(4.97, [0.0, 5.0], 0.1) == 5.0

    def test_unchanged_outside_threshold(self):
        assert snap(4.97, [0.0, 5.0], 0.01) == 4.97

    def test_threshold_is_strict(self):
        assert snap(4.5, [5.0], 0.5) == 4.5

    def test_first_listed_point_wins(self):
        """Candidate order decides, not distance."""
        assert snap(5.0, [5.08, 5.01], 0.1) == 5.08

    def test_non_positive_threshold_disables_snapping(self):
        assert snap(4.99, [5.0], 0) == 4.99
        assert snap(4.99, [5.0], -1) == 4.99


class TestPixelsToTime:
    """Tests for converting the on-screen threshold."""

    def test_divides_by_zoom(self):
        assert pixels_to_time(5, 100) == pytest.approx(0.05)

    def test_zoom_is_clamped(self):
        assert pixels_to_time(5, 1, min_zoom=10, max_zoom=500) == pytest.approx(0.5)
        assert pixels_to_time(5, 1000, min_zoom=10, max_zoom=500) == pytest.approx(0.01)

    def test_zero_zoom_yields_zero(self):
        assert pixels_to_time(5, 0) == 0.0


class TestCollectSnapPoints:
    """Tests for snap candidate collection."""

    def test_origin_then_clip_edges(self):
        clips = [make_video("A", "v1", 0, 5), make_video("B", "v2", 6, 2)]
        assert collect_snap_points(clips) == [0.0, 0, 5, 6, 8]

    def test_filters_tracks_and_excluded_clips(self):
        clips = [
            make_video("A", "v1", 0, 5),
            make_video("B", "v2", 6, 2),
            make_video("C", "v1", 10, 1),
        ]
        assert collect_snap_points(clips, ["v1"], ["C"]) == [0.0, 0, 5]


class TestSnapMoveStart:
    """Tests for snapping a dragged clip by either edge."""

    def test_start_edge_snaps(self):
        assert snap_move_start(4.97, 2, [0.0, 5.0], 0.1) == 5.0

    def test_end_edge_snaps(self):
        """Dragging a 2s clip so its end lands near 5 pulls the start to 3."""
        assert snap_move_start(2.98, 2, [0.0, 5.0], 0.1) == pytest.approx(3.0)

    def test_closer_edge_wins(self):
        assert snap_move_start(4.96, 1, [5.0, 6.05], 0.1) == 5.0

    def test_no_snap_keeps_clamped_start(self):
        assert snap_move_start(-1, 2, [10.0], 0.1) == 0.0
        assert snap_move_start(7.5, 2, [0.0, 5.0], 0.1) == 7.5
