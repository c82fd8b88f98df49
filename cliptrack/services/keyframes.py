"""Position keyframes: resolution, slicing and editing.

Keyframe times are clip-local seconds in ``[0, duration]``. Slicing keeps the
rendered position at a clip's new visible boundaries unchanged when a trim or
split moves those boundaries.
"""

import math
from typing import Any, Iterable

from cliptrack.schemas.timeline import Clip, Point, PositionKeyframe
from cliptrack.utils.interpolation import ease_between, get_easing_function

POSITION_KEYFRAME_EPSILON = 0.0001


def _is_finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


def _clamp_local_time(time: float, duration: float) -> float:
    if not _is_finite(time):
        return 0.0
    return max(0.0, min(time, max(0.0, duration)))


def _keyframe(time: float, value: Point, *, keyframe_id: str | None = None,
              interpolation: str = "linear") -> PositionKeyframe:
    data: dict[str, Any] = {
        "time": time,
        "value": Point(x=value.x, y=value.y),
        "interpolation": interpolation,
    }
    if keyframe_id:
        data["id"] = keyframe_id
    return PositionKeyframe(**data)


def normalize_position_keyframes(
    keyframes: Iterable[PositionKeyframe] | None,
    duration: float,
    epsilon: float = POSITION_KEYFRAME_EPSILON,
) -> list[PositionKeyframe]:
    """Clamp, sort and de-duplicate keyframes so times strictly increase.

    Keyframes closer than ``epsilon`` collapse into one: the earlier time is
    kept and the later value wins.
    """
    if not keyframes:
        return []

    valid = [
        _keyframe(
            _clamp_local_time(kf.time, duration),
            kf.value,
            keyframe_id=kf.id,
            interpolation=kf.interpolation,
        )
        for kf in keyframes
        if _is_finite(kf.time) and _is_finite(kf.value.x) and _is_finite(kf.value.y)
    ]
    valid.sort(key=lambda kf: kf.time)

    deduped: list[PositionKeyframe] = []
    for current in valid:
        if deduped and abs(current.time - deduped[-1].time) <= epsilon:
            deduped[-1] = _keyframe(
                deduped[-1].time,
                current.value,
                keyframe_id=current.id,
                interpolation=current.interpolation,
            )
        else:
            deduped.append(current)
    return deduped


def resolve_position(
    keyframes: list[PositionKeyframe],
    local_time: float,
    fallback: Point,
    epsilon: float = POSITION_KEYFRAME_EPSILON,
) -> Point:
    """Position at a clip-local time.

    No keyframes: the static ``fallback``. Outside the keyframed range the
    first/last value is held. Between two keyframes the value is eased with
    the earlier keyframe's interpolation.
    """
    if not keyframes:
        return Point(x=fallback.x, y=fallback.y)

    first = keyframes[0]
    if local_time <= first.time + epsilon:
        return Point(x=first.value.x, y=first.value.y)

    last = keyframes[-1]
    if local_time >= last.time - epsilon:
        return Point(x=last.value.x, y=last.value.y)

    for start, end in zip(keyframes, keyframes[1:]):
        if local_time > end.time + epsilon:
            continue
        span = max(epsilon, end.time - start.time)
        ratio = (local_time - start.time) / span
        easing = get_easing_function(start.interpolation)
        return Point(
            x=ease_between(start.value.x, end.value.x, ratio, easing),
            y=ease_between(start.value.y, end.value.y, ratio, easing),
        )

    return Point(x=last.value.x, y=last.value.y)


def get_clip_local_time(clip: Clip, timeline_time: float) -> float:
    if not _is_finite(timeline_time):
        return 0.0
    return _clamp_local_time(timeline_time - clip.start_time, clip.duration)


def resolve_clip_position_at_local_time(clip: Clip, local_time: float) -> Point:
    keyframes = normalize_position_keyframes(clip.position_keyframes, clip.duration)
    return resolve_position(keyframes, _clamp_local_time(local_time, clip.duration), clip.position)


def resolve_clip_position_at_timeline_time(clip: Clip, timeline_time: float) -> Point:
    return resolve_clip_position_at_local_time(clip, get_clip_local_time(clip, timeline_time))


def slice_position_keyframes(
    clip: Clip,
    offset: float,
    new_duration: float,
    *,
    include_start: bool = True,
    include_end: bool = False,
    epsilon: float = POSITION_KEYFRAME_EPSILON,
) -> list[PositionKeyframe]:
    """Window a clip's keyframes to ``[offset, offset + new_duration]``.

    ``offset`` may be negative when a trim extends the clip's start; the
    kept keyframes are rebased by ``-offset`` either way. Boundary keyframes
    are synthesised from the interpolated position so the rendered position
    at the new visible start/end does not jump.
    """
    current = normalize_position_keyframes(clip.position_keyframes, clip.duration, epsilon)
    if not current:
        return []

    new_duration = max(0.0, new_duration)
    window_end = offset + new_duration

    kept = [
        _keyframe(
            kf.time - offset,
            kf.value,
            keyframe_id=kf.id,
            interpolation=kf.interpolation,
        )
        for kf in current
        if offset - epsilon <= kf.time <= window_end + epsilon
    ]

    if include_start and not any(abs(kf.time) <= epsilon for kf in kept):
        start_value = resolve_position(current, offset, clip.position, epsilon)
        kept.insert(0, _keyframe(0.0, start_value))

    if (
        include_end
        and new_duration > epsilon
        and not any(abs(kf.time - new_duration) <= epsilon for kf in kept)
    ):
        end_value = resolve_position(current, window_end, clip.position, epsilon)
        kept.append(_keyframe(new_duration, end_value))

    return normalize_position_keyframes(kept, new_duration, epsilon)


def position_from_keyframes(keyframes: list[PositionKeyframe], fallback: Point) -> Point:
    """Static position that mirrors the first keyframe, if any."""
    source = keyframes[0].value if keyframes else fallback
    return Point(x=source.x, y=source.y)


def _find_keyframe_index(
    keyframes: list[PositionKeyframe],
    local_time: float,
    epsilon: float = POSITION_KEYFRAME_EPSILON,
) -> int:
    for index, kf in enumerate(keyframes):
        if abs(kf.time - local_time) <= epsilon:
            return index
    return -1


def has_position_keyframe_at(clip: Clip, timeline_time: float) -> bool:
    keyframes = normalize_position_keyframes(clip.position_keyframes, clip.duration)
    return _find_keyframe_index(keyframes, get_clip_local_time(clip, timeline_time)) >= 0


def upsert_position_keyframe(
    clip: Clip,
    timeline_time: float,
    value: Point,
    *,
    ensure_initial: bool = True,
    interpolation: str | None = None,
) -> dict[str, Any]:
    """Insert or replace the keyframe at a timeline time.

    With ``ensure_initial`` a keyframe at local time 0 is added first (holding
    the current start position) so animating a static clip does not move its
    start. Returns the clip field updates.
    """
    local_time = get_clip_local_time(clip, timeline_time)
    keyframes = normalize_position_keyframes(clip.position_keyframes, clip.duration)

    if ensure_initial and local_time > POSITION_KEYFRAME_EPSILON:
        if not any(kf.time <= POSITION_KEYFRAME_EPSILON for kf in keyframes):
            initial = resolve_position(keyframes, 0.0, clip.position)
            keyframes.insert(0, _keyframe(0.0, initial))

    index = _find_keyframe_index(keyframes, local_time)
    if index >= 0:
        existing = keyframes[index]
        keyframes[index] = _keyframe(
            existing.time,
            value,
            keyframe_id=existing.id,
            interpolation=interpolation or existing.interpolation,
        )
    else:
        keyframes.append(_keyframe(local_time, value, interpolation=interpolation or "linear"))

    normalized = normalize_position_keyframes(keyframes, clip.duration)
    return {
        "position": position_from_keyframes(normalized, clip.position),
        "position_keyframes": normalized,
    }


def remove_position_keyframe(clip: Clip, timeline_time: float) -> tuple[bool, dict[str, Any]]:
    """Remove the keyframe at a timeline time.

    When the last keyframe goes away the clip keeps the removed value as its
    static position.
    """
    local_time = get_clip_local_time(clip, timeline_time)
    keyframes = normalize_position_keyframes(clip.position_keyframes, clip.duration)
    index = _find_keyframe_index(keyframes, local_time)
    if index < 0:
        return False, {}

    removed = keyframes.pop(index)
    if keyframes:
        position = resolve_position(keyframes, local_time, clip.position)
    else:
        position = Point(x=removed.value.x, y=removed.value.y)
    return True, {"position": position, "position_keyframes": keyframes}


def offset_clip_position(clip: Clip, dx: float, dy: float) -> dict[str, Any]:
    """Translate the static position and every keyframe by (dx, dy)."""
    position = Point(x=clip.position.x + dx, y=clip.position.y + dy)
    keyframes = normalize_position_keyframes(clip.position_keyframes, clip.duration)
    if not keyframes:
        return {"position": position}

    shifted = [
        _keyframe(
            kf.time,
            Point(x=kf.value.x + dx, y=kf.value.y + dy),
            keyframe_id=kf.id,
            interpolation=kf.interpolation,
        )
        for kf in keyframes
    ]
    return {"position": position, "position_keyframes": shifted}
