"""Custom exceptions for the cliptrack timeline engine.

Interactive editing operations convert these into silent no-ops at the
public boundary; the exception still carries a machine-readable code so the
caller can find out why nothing happened (see ``TimelineStore.last_rejection``).
"""

from pydantic import ValidationError as PydanticValidationError

from cliptrack.constants.error_codes import get_error_spec
from cliptrack.schemas.envelope import ErrorInfo, ErrorLocation


class CliptrackError(Exception):
    """Base exception for all cliptrack errors.

    Provides structured error information via ``to_error_info``.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo."""
        spec = get_error_spec(self.code)

        # Use suggested_fix from spec, or explicit override from exception
        suggested_fix = self.suggested_fix or spec.get("suggested_fix")

        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=spec.get("retryable", False),
            suggested_fix=suggested_fix,
        )


# =============================================================================
# Resource Not Found Errors
# =============================================================================


class ResourceNotFoundError(CliptrackError):
    """Base class for resource not found errors."""


class ClipNotFoundError(ResourceNotFoundError):
    """Clip not found."""

    code = "CLIP_NOT_FOUND"
    message = "Clip not found"

    def __init__(self, clip_id: str | None = None):
        message = f"Clip not found: {clip_id}" if clip_id else self.message
        location = ErrorLocation(clip_id=clip_id) if clip_id else None
        super().__init__(message, location=location)


class TrackNotFoundError(ResourceNotFoundError):
    """Track not found."""

    code = "TRACK_NOT_FOUND"
    message = "Track not found"

    def __init__(self, track_id: str | None = None):
        message = f"Track not found: {track_id}" if track_id else self.message
        location = ErrorLocation(track_id=track_id) if track_id else None
        super().__init__(message, location=location)


# =============================================================================
# Placement Errors
# =============================================================================


class PlacementError(CliptrackError):
    """Base class for operations that would break an arrangement invariant."""

    code = "VALIDATION_ERROR"


class ClipOverlapError(PlacementError):
    """Clips would overlap."""

    code = "CLIP_OVERLAP"
    message = "Clips would overlap"

    def __init__(
        self,
        *,
        clip_id: str | None = None,
        track_id: str | None = None,
        start_time: float | None = None,
        duration: float | None = None,
    ):
        msg = self.message
        if start_time is not None and duration is not None:
            msg = (
                f"Clip would overlap on track {track_id} "
                f"at {start_time:.3f}s-{start_time + duration:.3f}s"
            )
        location = ErrorLocation(clip_id=clip_id, track_id=track_id)
        super().__init__(msg, location=location)


class ClipTooShortError(PlacementError):
    """Clip would shrink below the minimum duration."""

    code = "CLIP_TOO_SHORT"
    message = "Clip would be shorter than the minimum duration"

    def __init__(
        self,
        *,
        clip_id: str | None = None,
        duration: float | None = None,
        min_duration: float | None = None,
    ):
        msg = self.message
        if duration is not None and min_duration is not None:
            msg = f"Duration {duration:.3f}s is below minimum {min_duration:.3f}s"
        location = ErrorLocation(clip_id=clip_id, field="duration")
        super().__init__(msg, location=location)


class SourceBoundsError(PlacementError):
    """Trim would reach outside the source media."""

    code = "OUT_OF_SOURCE_BOUNDS"
    message = "Trim exceeds source media bounds"

    def __init__(
        self,
        *,
        clip_id: str | None = None,
        field: str | None = None,
        value: float | None = None,
    ):
        msg = self.message
        if field and value is not None:
            msg = f"{field} {value:.3f}s is outside the source media"
        location = ErrorLocation(clip_id=clip_id, field=field)
        super().__init__(msg, location=location)


class TrackTypeMismatchError(PlacementError):
    """Clip type is not allowed on the target track."""

    code = "TRACK_TYPE_MISMATCH"
    message = "Clip type does not fit the target track"

    def __init__(
        self,
        *,
        clip_id: str | None = None,
        clip_type: str | None = None,
        track_id: str | None = None,
        track_type: str | None = None,
    ):
        msg = self.message
        if clip_type and track_type:
            msg = f"A {clip_type} clip cannot be placed on a {track_type} track"
        location = ErrorLocation(clip_id=clip_id, track_id=track_id)
        super().__init__(msg, location=location)


class LastTrackError(PlacementError):
    """The last remaining track cannot be removed."""

    code = "LAST_TRACK"
    message = "Cannot remove the last track"

    def __init__(self, track_id: str | None = None):
        location = ErrorLocation(track_id=track_id) if track_id else None
        super().__init__(self.message, location=location)


class TrackIndexError(PlacementError):
    """Track index is outside the track list."""

    code = "TRACK_INDEX_OUT_OF_RANGE"
    message = "Track index out of range"

    def __init__(self, index: int | None = None, track_count: int | None = None):
        msg = self.message
        if index is not None and track_count is not None:
            msg = f"Track index {index} out of range (0 to {track_count - 1})"
        location = ErrorLocation(index=index) if index is not None else None
        super().__init__(msg, location=location)


class InvalidUpdateError(PlacementError):
    """Partial update produced an invalid record."""

    code = "INVALID_UPDATE"
    message = "Update does not produce a valid record"

    def __init__(
        self,
        *,
        clip_id: str | None = None,
        track_id: str | None = None,
        field: str | None = None,
        detail: str | None = None,
    ):
        msg = f"{field}: {detail}" if field and detail else self.message
        location = ErrorLocation(clip_id=clip_id, track_id=track_id, field=field)
        super().__init__(msg, location=location)

    @classmethod
    def from_validation_error(
        cls,
        exc: PydanticValidationError,
        *,
        clip_id: str | None = None,
        track_id: str | None = None,
    ) -> "InvalidUpdateError":
        """Describe the first failing field of a pydantic validation error."""
        errors = exc.errors()
        if not errors:
            return cls(clip_id=clip_id, track_id=track_id)
        first_error = errors[0]
        loc = first_error.get("loc", ())
        return cls(
            clip_id=clip_id,
            track_id=track_id,
            field=str(loc[-1]) if loc else None,
            detail=first_error.get("msg", "Validation error"),
        )


# =============================================================================
# Snapshot Errors
# =============================================================================


class InvalidSnapshotError(CliptrackError):
    """A serialised snapshot failed validation."""

    code = "INVALID_SNAPSHOT"
    message = "Invalid timeline snapshot"

    def __init__(self, message: str | None = None, *, error_count: int | None = None):
        msg = message or self.message
        if error_count:
            msg = f"{msg} ({error_count} validation errors)"
        super().__init__(msg)
