"""Change notifications for timeline state.

A synchronous pub/sub: the store publishes after every committed change and
subscribers (renderers, autosave, preview) are called in subscription order.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable

logger = logging.getLogger(__name__)

CLIPS_CHANGED = "clips_changed"
TRACKS_CHANGED = "tracks_changed"
HISTORY_CHANGED = "history_changed"
TIMELINE_RESTORED = "timeline_restored"


@dataclass
class TimelineEvent:
    """Event data for timeline changes."""

    event_type: str  # e.g., "clips_changed", "tracks_changed"
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        event_data: dict[str, Any] = {
            "type": self.event_type,
            "timestamp": self.timestamp,
        }
        if self.data:
            event_data["data"] = self.data
        return event_data


Subscriber = Callable[[TimelineEvent], None]


class TimelineEventManager:
    """Manages subscriptions and event publishing for one timeline."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback.

        Returns:
            A function that removes the subscription (safe to call twice)
        """
        self._subscribers.append(callback)
        logger.debug(f"New timeline subscriber. Total: {len(self._subscribers)}")

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
                logger.debug(f"Subscriber removed. Remaining: {len(self._subscribers)}")

        return unsubscribe

    def publish(self, event_type: str, data: dict[str, Any] | None = None) -> int:
        """Publish an event to every subscriber.

        A failing subscriber is logged and skipped; it never affects the
        others or the state that was already committed.

        Returns:
            Number of subscribers notified successfully
        """
        event = TimelineEvent(event_type=event_type, data=data)
        notified = 0
        for callback in list(self._subscribers):
            try:
                callback(event)
                notified += 1
            except Exception:
                logger.exception(f"Timeline subscriber failed on {event_type}")
        return notified

    def get_subscriber_count(self) -> int:
        return len(self._subscribers)
