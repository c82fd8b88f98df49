"""Timeline data types: tracks, clips and position keyframes.

Attributes are snake_case in Python and camelCase when serialised, so a
dumped ``TimelineSnapshot`` is the plain nested record the persistence layer
stores (``{"tracks": [...], "clips": [{"trackId": ..., "startTime": ...}]}``).
"""

from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

TrackType = Literal["video", "audio"]
ClipType = Literal["video", "audio", "image"]


def _new_id() -> str:
    return str(uuid4())


class TimelineModel(BaseModel):
    """Base for all timeline records (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Point(TimelineModel):
    x: float = 0
    y: float = 0


class Size(TimelineModel):
    width: float = 0
    height: float = 0


class PositionKeyframe(TimelineModel):
    """Clip-local position keyframe.

    ``interpolation`` names the easing used from this keyframe to the next one.
    """

    id: str = Field(default_factory=_new_id)
    time: float  # seconds from clip start
    value: Point
    interpolation: str = "linear"


class Track(TimelineModel):
    id: str = Field(default_factory=_new_id)
    name: str
    type: TrackType = "video"
    order: int = 0  # z-index, top track is highest
    height: int = 60
    visible: bool = True
    locked: bool = False
    muted: bool = False


class ClipPlacement(TimelineModel):
    """Candidate interval for collision checks."""

    track_id: str
    start_time: float
    duration: float


# =============================================================================
# Clip variants
# =============================================================================


class BaseClip(TimelineModel):
    id: str = Field(default_factory=_new_id)
    name: str = "Clip"
    track_id: str

    # Timeline position
    start_time: float = 0  # seconds
    duration: float  # seconds

    # Visual properties
    position: Point = Field(default_factory=Point)
    scale: float = 1.0
    rotation: float = 0
    opacity: float = 100  # 0-100
    visible: bool = True
    locked: bool = False

    position_keyframes: list[PositionKeyframe] = Field(default_factory=list)

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


class TrimmedMedia(BaseClip):
    """Fields shared by clips backed by time-based source media."""

    source_url: str
    source_id: str = Field(default_factory=_new_id)
    source_duration: float
    source_size: Size = Field(default_factory=Size)

    # Source trimming, trim_out - trim_in == duration
    trim_in: float = 0
    trim_out: float

    audio_muted: bool = False
    audio_volume: float = 100  # 0-100


class VideoClip(TrimmedMedia):
    type: Literal["video"] = "video"
    name: str = "Video Clip"
    has_audio: bool = True


class AudioClip(TrimmedMedia):
    type: Literal["audio"] = "audio"
    name: str = "Audio Clip"


class ImageClip(BaseClip):
    type: Literal["image"] = "image"
    name: str = "Image Clip"
    source_url: str
    source_id: str = Field(default_factory=_new_id)
    source_size: Size = Field(default_factory=Size)


Clip = Annotated[VideoClip | AudioClip | ImageClip, Field(discriminator="type")]
MediaClip = VideoClip | AudioClip

clip_adapter: TypeAdapter[Clip] = TypeAdapter(Clip)


class TimelineSnapshot(TimelineModel):
    """Full, restorable track + clip state."""

    tracks: list[Track] = Field(default_factory=list)
    clips: list[Clip] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str | bytes) -> "TimelineSnapshot":
        return cls.model_validate_json(data)


# =============================================================================
# Factories
# =============================================================================


def create_track(
    name: str,
    order: int = 0,
    track_type: TrackType = "video",
    height: int = 60,
) -> Track:
    return Track(name=name, type=track_type, order=order, height=height)


def create_video_clip(
    track_id: str,
    source_url: str,
    source_duration: float,
    source_size: Size,
    start_time: float = 0,
) -> VideoClip:
    return VideoClip(
        track_id=track_id,
        start_time=start_time,
        duration=source_duration,
        trim_in=0,
        trim_out=source_duration,
        source_url=source_url,
        source_duration=source_duration,
        source_size=source_size.model_copy(),
    )


def create_audio_clip(
    track_id: str,
    source_url: str,
    source_duration: float,
    start_time: float = 0,
    source_size: Size | None = None,
) -> AudioClip:
    return AudioClip(
        track_id=track_id,
        start_time=start_time,
        duration=source_duration,
        trim_in=0,
        trim_out=source_duration,
        source_url=source_url,
        source_duration=source_duration,
        source_size=source_size.model_copy() if source_size else Size(),
    )


def create_image_clip(
    track_id: str,
    source_url: str,
    source_size: Size,
    start_time: float = 0,
    duration: float = 5,
) -> ImageClip:
    return ImageClip(
        track_id=track_id,
        start_time=start_time,
        duration=duration,
        source_url=source_url,
        source_size=source_size.model_copy(),
    )


# =============================================================================
# Helpers
# =============================================================================


def is_media_clip(clip: Clip) -> bool:
    return isinstance(clip, TrimmedMedia)


def clip_end(clip: Clip) -> float:
    return clip.start_time + clip.duration


def is_time_in_clip(clip: Clip, time: float) -> bool:
    """Half-open containment: the clip's end time belongs to the next clip."""
    return clip.start_time <= time < clip.start_time + clip.duration


def get_source_time(clip: Clip, timeline_time: float) -> float:
    """Map a timeline time to a time in the clip's source media."""
    clip_time = timeline_time - clip.start_time
    trim_in = clip.trim_in if isinstance(clip, TrimmedMedia) else 0
    return trim_in + clip_time


def fits_track_type(track: Track | None, clip_type: ClipType) -> bool:
    if track is None:
        return False
    if track.type == "audio":
        return clip_type == "audio"
    return clip_type != "audio"


def track_type_for_clip(clip_type: ClipType) -> TrackType:
    return "audio" if clip_type == "audio" else "video"


def resolve_field_updates(
    model: type[BaseModel],
    updates: dict[str, Any],
    protected: frozenset[str] = frozenset(),
) -> dict[str, Any]:
    """Key partial updates by field name.

    Accepts snake_case names and their camelCase wire aliases; unknown and
    protected fields are dropped.
    """
    names = {to_camel(name): name for name in model.model_fields}
    names.update({name: name for name in model.model_fields})

    resolved: dict[str, Any] = {}
    for key, value in updates.items():
        name = names.get(key)
        if name is not None and name not in protected:
            resolved[name] = value
    return resolved
