"""
Error handling for generation calls.

Only transport problems are errors:
- Connection failures
- Non-success HTTP status
- Read failures mid-stream

Malformed lines and a stream that ends without a terminal record are
recovered from locally by the decoder and never surface here.
"""

from __future__ import annotations


class DecodeError(Exception):
    """Base error for a generation call."""

    def __init__(
        self,
        message: str,
        model: str = "unknown",
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.model = model
        self.status_code = status_code


class TransportFailure(DecodeError):
    """The request could not be sent, was rejected, or broke mid-stream.

    Any text streamed to the listener before the failure is not a usable
    result.
    """

    def __init__(
        self,
        detail: str,
        model: str = "unknown",
        status_code: int | None = None,
        category: str = "unknown_error",
    ):
        super().__init__(detail, model=model, status_code=status_code)
        self.detail = detail
        self.category = category
