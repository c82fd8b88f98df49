"""
Pytest fixtures for cliptrack tests.

Clip builders take explicit ids so assertions can name clips directly.
Settings are built without reading ``.env`` so a developer's local overrides
never leak into the suite.
"""

import pytest

from cliptrack.config import Settings
from cliptrack.schemas.timeline import (
    AudioClip,
    ImageClip,
    Point,
    PositionKeyframe,
    Size,
    Track,
    VideoClip,
)
from cliptrack.services.media_store import InMemoryMediaBlobStore
from cliptrack.store import TimelineStore

HD = Size(width=1920, height=1080)


def make_track(track_id: str, track_type: str = "video", name: str | None = None) -> Track:
    return Track(id=track_id, name=name or track_id, type=track_type)


def make_video(
    clip_id: str,
    track_id: str = "v1",
    start: float = 0.0,
    duration: float = 5.0,
    *,
    trim_in: float = 0.0,
    source_duration: float | None = None,
    keyframes: list[tuple[float, float, float]] | None = None,
    position: Point | None = None,
) -> VideoClip:
    """Video clip; ``keyframes`` are ``(time, x, y)`` tuples."""
    return VideoClip(
        id=clip_id,
        name=clip_id,
        track_id=track_id,
        start_time=start,
        duration=duration,
        trim_in=trim_in,
        trim_out=trim_in + duration,
        source_url=f"blob:{clip_id}",
        source_duration=source_duration if source_duration is not None else trim_in + duration,
        source_size=HD,
        position=position or Point(),
        position_keyframes=[
            PositionKeyframe(time=t, value=Point(x=x, y=y)) for t, x, y in keyframes or []
        ],
    )


def make_audio(
    clip_id: str,
    track_id: str = "a1",
    start: float = 0.0,
    duration: float = 5.0,
) -> AudioClip:
    return AudioClip(
        id=clip_id,
        name=clip_id,
        track_id=track_id,
        start_time=start,
        duration=duration,
        trim_in=0,
        trim_out=duration,
        source_url=f"blob:{clip_id}",
        source_duration=duration,
    )


def make_image(
    clip_id: str,
    track_id: str = "v1",
    start: float = 0.0,
    duration: float = 5.0,
) -> ImageClip:
    return ImageClip(
        id=clip_id,
        name=clip_id,
        track_id=track_id,
        start_time=start,
        duration=duration,
        source_url=f"blob:{clip_id}",
        source_size=HD,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def tracks() -> list[Track]:
    """One video track above one audio track."""
    return [make_track("v1", "video"), make_track("a1", "audio")]


@pytest.fixture
def blob_store() -> InMemoryMediaBlobStore:
    return InMemoryMediaBlobStore()


@pytest.fixture
def store(settings: Settings, blob_store: InMemoryMediaBlobStore) -> TimelineStore:
    return TimelineStore(settings, blob_store=blob_store)


@pytest.fixture
def loaded_store(store: TimelineStore, tracks: list[Track]) -> TimelineStore:
    """Store with two video clips A [0, 5) and B [5, 8) and one audio clip."""
    store.restore_tracks(tracks)
    store.restore_clips(
        [
            make_video("A", "v1", 0, 5, source_duration=20),
            make_video("B", "v1", 5, 3, source_duration=20),
            make_audio("M", "a1", 0, 10),
        ]
    )
    return store
