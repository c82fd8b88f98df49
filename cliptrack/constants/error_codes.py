"""Error codes dictionary for the timeline engine.

This is the single source of truth for all error codes, their retryability,
and suggested fixes. Interactive operations never surface these as raised
exceptions; they are recorded as the reason an operation was a no-op.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


# Error codes dictionary - single source of truth
ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Resource errors (retryable after refreshing ids)
    # ==========================================================================
    "CLIP_NOT_FOUND": {
        "retryable": True,
        "suggested_fix": "Refresh the clip list; the clip may have been removed or split",
    },
    "TRACK_NOT_FOUND": {
        "retryable": True,
        "suggested_fix": "Refresh the track list; the track may have been removed",
    },
    # ==========================================================================
    # Placement errors (not retryable with the same arguments)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "CLIP_OVERLAP": {
        "retryable": False,
        "suggested_fix": "Choose a start time in a gap on the target track",
    },
    "CLIP_TOO_SHORT": {
        "retryable": False,
        "suggested_fix": "Keep the clip at least the minimum clip duration long",
    },
    "OUT_OF_SOURCE_BOUNDS": {
        "retryable": False,
        "suggested_fix": "Stay within the source media's duration",
    },
    "TRACK_TYPE_MISMATCH": {
        "retryable": False,
        "suggested_fix": "Audio clips go on audio tracks; video and image clips on video tracks",
    },
    "LAST_TRACK": {
        "retryable": False,
        "suggested_fix": "Add another track before removing this one",
    },
    "TRACK_INDEX_OUT_OF_RANGE": {
        "retryable": False,
    },
    "INVALID_UPDATE": {
        "retryable": False,
        "suggested_fix": "Send field values of the right type and range",
    },
    # ==========================================================================
    # Snapshot errors
    # ==========================================================================
    "INVALID_SNAPSHOT": {
        "retryable": False,
        "suggested_fix": "Discard the snapshot or repair it before restoring",
    },
    "INTERNAL_ERROR": {
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested fix
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    spec = get_error_spec(code)
    return spec.get("retryable", False)
