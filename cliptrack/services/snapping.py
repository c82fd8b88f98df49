"""Snap resolution for timeline edits.

The resolver works purely in time units. Callers express the threshold in
screen pixels and convert it with ``pixels_to_time`` for the current zoom.
"""

from typing import Iterable, Sequence

from cliptrack.schemas.timeline import Clip


def snap(time: float, points: Iterable[float], threshold: float) -> float:
    """Return the first point within ``threshold`` of ``time``, else ``time``.

    Points are tried in the order given, so the earliest listed point wins
    when several are in range.
    """
    if threshold <= 0:
        return time
    for point in points:
        if abs(time - point) < threshold:
            return point
    return time


def pixels_to_time(
    pixels: float,
    zoom: float,
    *,
    min_zoom: float | None = None,
    max_zoom: float | None = None,
) -> float:
    """Convert a pixel distance to seconds at ``zoom`` pixels per second."""
    if min_zoom is not None:
        zoom = max(min_zoom, zoom)
    if max_zoom is not None:
        zoom = min(max_zoom, zoom)
    if zoom <= 0:
        return 0.0
    return pixels / zoom


def collect_snap_points(
    clips: Iterable[Clip],
    track_ids: Sequence[str] | None = None,
    exclude_ids: Iterable[str] = (),
) -> list[float]:
    """Timeline origin plus the start and end of every eligible clip.

    ``track_ids=None`` takes clips from every track; cross-track drags pass
    the source track and the track under the pointer.
    """
    excluded = set(exclude_ids)
    wanted = set(track_ids) if track_ids is not None else None
    points = [0.0]
    for clip in clips:
        if wanted is not None and clip.track_id not in wanted:
            continue
        if clip.id in excluded:
            continue
        points.append(clip.start_time)
        points.append(clip.start_time + clip.duration)
    return points


def snap_move_start(
    raw_start: float,
    duration: float,
    points: Sequence[float],
    threshold: float,
) -> float:
    """Snap a moving clip by whichever of its edges lands closer to a point.

    Both the start and the end edge are snapped; the edge whose snap moved it
    the least decides the final start (the start edge wins ties).
    """
    raw_start = max(0.0, raw_start)
    snapped_start = snap(raw_start, points, threshold)
    raw_end = raw_start + duration
    snapped_end = snap(raw_end, points, threshold)
    end_adjusted_start = max(0.0, snapped_end - duration)

    start_delta = abs(snapped_start - raw_start)
    end_delta = abs(snapped_end - raw_end)
    if start_delta == 0 and end_delta == 0:
        return raw_start
    if start_delta == 0:
        return end_adjusted_start
    if end_delta == 0:
        return snapped_start
    return snapped_start if start_delta <= end_delta else end_adjusted_start
