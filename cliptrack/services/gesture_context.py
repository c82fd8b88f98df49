from dataclasses import dataclass, field
from time import perf_counter
from uuid import uuid4

from cliptrack.schemas.envelope import ErrorInfo


@dataclass
class GestureContext:
    """One interactive gesture (a drag, a trim, a batch paste).

    All commits made while the gesture is open share a single undo step.
    """

    gesture_id: str
    start_time: float
    committed: int = 0
    rejections: list[ErrorInfo] = field(default_factory=list)


def create_gesture_context() -> GestureContext:
    return GestureContext(gesture_id=str(uuid4()), start_time=perf_counter())


def elapsed_ms(context: GestureContext) -> int:
    return int((perf_counter() - context.start_time) * 1000)
