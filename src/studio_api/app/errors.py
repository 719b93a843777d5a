"""Error taxonomy translated into JSON error bodies by the app's handlers.

Beginner terms:
- Status code: the HTTP status returned with the error body.
- Body: the JSON object the client receives (always carries an ``error`` key).
"""

from __future__ import annotations

from typing import Any


class StudioError(Exception):
    """Base class for errors that map to a JSON response."""

    status_code = 500

    def __init__(self, error: str, **extra: Any) -> None:
        super().__init__(error)
        self.error = error
        self.extra = extra

    def to_body(self) -> dict[str, Any]:
        return {"error": self.error, **self.extra}


class InvalidFormatError(StudioError):
    """Uploaded JSONL failed line validation; carries every line error."""

    status_code = 400

    def __init__(self, errors: list[str], total_lines: int | None = None) -> None:
        extra: dict[str, Any] = {"details": list(errors)}
        if total_lines is not None:
            extra["totalLines"] = total_lines
        super().__init__("Invalid JSONL format", **extra)
        self.errors = list(errors)
        self.total_lines = total_lines


class MissingInputError(StudioError):
    """A required field or file was absent or unacceptable."""

    status_code = 400


class UpstreamError(StudioError):
    """The upstream generative API failed; its message is passed through verbatim."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        error: str = "Upstream request failed",
        message_key: str = "message",
    ) -> None:
        super().__init__(error, **{message_key: message})
        self.message = message

    def labelled(self, error: str, *, message_key: str = "message") -> UpstreamError:
        """Copy of this error carrying a route-specific label."""
        return UpstreamError(self.message, error=error, message_key=message_key)


class InternalError(StudioError):
    """Unexpected local failure (unreadable log, broken scratch file)."""

    status_code = 500
