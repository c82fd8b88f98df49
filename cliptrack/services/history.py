"""Snapshot-based undo/redo history.

Each entry is a deep copy of the full track and clip lists taken *before* a
mutation. Both stacks are capped; the oldest undo entry is dropped once the
cap is reached.
"""

import logging

from cliptrack.schemas.timeline import Clip, TimelineSnapshot, Track

logger = logging.getLogger(__name__)

MAX_HISTORY = 100


def take_snapshot(tracks: list[Track], clips: list[Clip]) -> TimelineSnapshot:
    """Deep copy of the current state; later edits never alias into it."""
    return TimelineSnapshot(
        tracks=[track.model_copy(deep=True) for track in tracks],
        clips=[clip.model_copy(deep=True) for clip in clips],
    )


class HistoryManager:
    """Undo/redo stacks of timeline snapshots.

    Driven from a single editing thread; it does no locking of its own.
    """

    def __init__(self, max_history: int = MAX_HISTORY) -> None:
        self._undo: list[TimelineSnapshot] = []
        self._redo: list[TimelineSnapshot] = []
        self._max_history = max_history

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    def save(self, tracks: list[Track], clips: list[Clip]) -> None:
        """Push the pre-mutation state and invalidate the redo branch."""
        self._push_capped(self._undo, take_snapshot(tracks, clips))
        self._redo.clear()

    def discard_redo(self) -> bool:
        """Drop the redo branch after a fresh edit; True if anything was dropped."""
        if not self._redo:
            return False
        self._redo.clear()
        return True

    def undo(self, current: TimelineSnapshot) -> TimelineSnapshot | None:
        """Pop the latest undo entry, stashing ``current`` for redo.

        Returns None (and changes nothing) when there is nothing to undo.
        """
        if not self._undo:
            return None
        previous = self._undo.pop()
        self._push_capped(self._redo, current)
        logger.debug(f"Undo: {len(self._undo)} left, {len(self._redo)} redoable")
        return previous

    def redo(self, current: TimelineSnapshot) -> TimelineSnapshot | None:
        """Inverse of ``undo``."""
        if not self._redo:
            return None
        following = self._redo.pop()
        self._push_capped(self._undo, current)
        logger.debug(f"Redo: {len(self._redo)} left, {len(self._undo)} undoable")
        return following

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def _push_capped(self, stack: list[TimelineSnapshot], snapshot: TimelineSnapshot) -> None:
        stack.append(snapshot)
        if len(stack) > self._max_history:
            del stack[: len(stack) - self._max_history]
