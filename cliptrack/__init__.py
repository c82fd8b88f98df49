"""Clip arrangement engine: tracks, clips, snapping, keyframes and undo."""

from cliptrack.store import TimelineStore, load_snapshot

__version__ = "0.1.0"

__all__ = ["TimelineStore", "load_snapshot"]
