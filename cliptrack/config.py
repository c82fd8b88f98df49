from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CLIPTRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Clip placement
    clip_min_duration: float = Field(default=0.1, gt=0)  # seconds
    default_image_duration: float = Field(default=5.0, gt=0)
    duplicate_offset: float = Field(default=0.25, ge=0)
    # Quantise collision checks to this frame rate; unset checks in continuous time
    collision_frame_rate: float | None = Field(default=None, gt=0)

    # Snapping (threshold is in screen pixels, converted with zoom)
    snap_enabled: bool = True
    snap_threshold_px: float = Field(default=5.0, ge=0)

    # Timeline zoom, pixels per second
    default_zoom: float = 100.0
    min_zoom: float = 10.0
    max_zoom: float = 500.0

    # Tracks
    default_track_height: int = 60

    # History
    max_history: int = Field(default=100, ge=1)
    # Record an undo step on every committed edit instead of only on save_to_history
    auto_history: bool = False

    # Project
    # Callers floor the project duration so an empty timeline is never zero-length
    duration_floor: float = Field(default=0.001, ge=0)
    canvas_width: int = 1920
    canvas_height: int = 1080


@lru_cache
def get_settings() -> Settings:
    return Settings()
