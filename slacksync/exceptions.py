"""
Exception hierarchy for synchronization errors.

Every error carries the HTTP status the API layer answers with.
"""

from typing import Optional


class SlackSyncError(Exception):
    """Base exception for all synchronization errors."""

    status_code = 500


class BadRequestError(SlackSyncError):
    """Raised when a required field or header is missing or malformed."""

    status_code = 400


class UnauthenticatedError(SlackSyncError):
    """Raised when a request signature is stale or does not match."""

    status_code = 401


class NotFoundError(SlackSyncError):
    """Raised when a tenant, user or conversation cannot be found."""

    status_code = 404


class UpstreamError(SlackSyncError):
    """Raised when a call to the Slack platform fails."""

    status_code = 502


class SlackApiError(UpstreamError):
    """Raised when the Slack Web API answers with ok=false."""

    def __init__(self, method: str, error: str, response: Optional[dict] = None):
        super().__init__(f"Slack API error calling {method}: {error}")
        self.method = method
        self.error = error
        self.response = response or {}


class SlackTransportError(UpstreamError):
    """Raised when the Slack Web API cannot be reached."""

    def __init__(self, method: str, message: str):
        super().__init__(f"Transport error calling {method}: {message}")
        self.method = method
