"""
Domain exceptions for the GPAI relay service layer.

The service layer raises these without knowing about HTTP.
main.py maps each one to a status code and response body:

    InvalidRequestError -> 400 {"error": ...}
    UpstreamError       -> 500 {"error": "AI service error", "details": ...}
    InternalError       -> 500 {"error": "Internal server error"}
"""

from typing import Optional


class RelayError(Exception):
    """Base exception for all relay domain errors."""
    pass


class InvalidRequestError(RelayError):
    """
    Caller sent a malformed conversation (missing, empty or non-list `messages`,
    or a turn without a valid role/content).

    Raised before any cache lookup or upstream call.
    """
    pass


class UpstreamError(RelayError):
    """
    The completion provider failed: transport error, timeout, non-2xx status
    or a payload without a usable choice.

    Never cached and never retried. `details` carries the provider's own
    message when it sent one.
    """

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.details = details or message


class InternalError(RelayError):
    """
    Unexpected fault inside the relay itself (e.g. a serialization fault).

    Logged for operators; the caller only sees a generic failure.
    """
    pass
