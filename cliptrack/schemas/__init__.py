from cliptrack.schemas.envelope import ErrorInfo, ErrorLocation
from cliptrack.schemas.timeline import (
    AudioClip,
    Clip,
    ClipPlacement,
    ImageClip,
    Point,
    PositionKeyframe,
    Size,
    TimelineSnapshot,
    Track,
    VideoClip,
)

__all__ = [
    "ErrorInfo",
    "ErrorLocation",
    "Point",
    "Size",
    "PositionKeyframe",
    "Track",
    "ClipPlacement",
    "Clip",
    "VideoClip",
    "AudioClip",
    "ImageClip",
    "TimelineSnapshot",
]
