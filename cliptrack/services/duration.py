from typing import Iterable

from cliptrack.schemas.timeline import Clip


def calculate_clips_duration(clips: Iterable[Clip]) -> float:
    """Furthest clip end across all tracks, 0 when there are no clips."""
    return max((clip.start_time + clip.duration for clip in clips), default=0.0)


def project_duration(clips: Iterable[Clip], floor: float = 0.0) -> float:
    """Timeline length with a caller floor so an empty timeline is never zero."""
    return max(calculate_clips_duration(clips), floor)
