"""Exception hierarchy for responses-stream."""

from __future__ import annotations


class ResponsesStreamError(Exception):
    """Base exception for all responses-stream errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ResponsesStreamError):
    """Required configuration (e.g. the API key) is missing."""


class TransportError(ResponsesStreamError):
    """The HTTP exchange failed before or while streaming.

    Raised for non-2xx statuses and connection-level failures.  Never
    raised for problems inside a single SSE frame.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.body = body


class FrameParseError(ResponsesStreamError):
    """One SSE frame carried data that is not valid JSON.

    Delivered through ``on_error``; processing continues with the next
    frame.
    """

    def __init__(self, message: str, *, data: str = "") -> None:
        super().__init__(message)
        self.data = data
