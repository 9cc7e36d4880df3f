"""Error taxonomy for the rollup engine.

Every error carries the HTTP status it maps to and a message that is safe to
show to the caller. The exception handler in `georollup.main` turns them into
the standard error envelope.
"""

from typing import Any

from fastapi import status


class RollupError(Exception):
    """Base class for errors raised by the aggregation engine."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "message": self.message, "data": None, "errors": None}


class MalformedPathError(RollupError):
    """The client sent a structurally invalid location path."""

    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Malformed location path"


class NotFoundError(RollupError):
    """The resolved path has no node in the aggregation tree."""

    status_code = status.HTTP_404_NOT_FOUND
    public_message = "Location not found"


class PathNotFoundError(NotFoundError):
    """A flat identifier could not be matched against the tree."""


class ScopeDeniedError(RollupError):
    """The caller is not allowed to view the requested location."""

    status_code = status.HTTP_403_FORBIDDEN
    public_message = "Access denied"

    def __init__(
        self,
        message: str | None = None,
        *,
        assigned: dict[str, Any] | None = None,
        requested: str = "",
        reason: str = "",
        user_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.assigned = assigned or {}
        self.requested = requested
        self.reason = reason
        self.user_id = user_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "data": None,
            "errors": {"assigned_scope": self.assigned, "requested_scope": self.requested},
        }


class DataSourceError(RollupError):
    """The upstream grouped-row fetch failed. Safe to retry with backoff."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    public_message = "Location data is temporarily unavailable"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "message": self.public_message,
            "data": None,
            "errors": {"retryable": True},
        }


class MergeInvariantViolation(RollupError):
    """A built tree failed its consistency check. Indicates a builder bug."""

    def to_dict(self) -> dict[str, Any]:
        # Never expose the internal detail to the caller
        return {"success": False, "message": self.public_message, "data": None, "errors": None}
