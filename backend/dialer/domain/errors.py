"""
Queue Domain Errors
Exception taxonomy shared by the queue runner, dispatcher and API layer
"""
from typing import Any, Optional


class QueueError(Exception):
    """Base error for the outbound call queue. Carries the HTTP status it maps to."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class Unauthorized(QueueError):
    """No valid caller identity."""
    status_code = 401


class InvalidInput(QueueError):
    """Malformed enqueue payload."""
    status_code = 400


class NotFound(QueueError):
    """Job absent or owned by someone else. The two cases are not distinguished."""
    status_code = 404


class SignatureInvalid(QueueError):
    """Webhook signature missing, malformed or wrong."""
    status_code = 401


class InvalidTransition(QueueError):
    """Requested status change is not in the transition table."""
    status_code = 409


class ProviderError(QueueError):
    """Base class for voice/telephony gateway failures."""
    status_code = 502

    # Whether the failure aborts the remaining leads of the job
    fatal: bool = False


class ProviderRejected(ProviderError):
    """
    Gateway refused this particular call (malformed number, quota, ...).
    The lead is marked failed and the job moves on.
    """
    fatal = False


class ProviderUnavailable(ProviderError):
    """Network failure or provider outage. Fatal once the bounded retry is exhausted."""
    status_code = 503
    fatal = True


class ProviderNotConfigured(ProviderError):
    """
    The owner has no usable agent/number, or the provider refuses the account.
    The user must finish provider setup before calls can be placed.
    """
    status_code = 400
    fatal = True
