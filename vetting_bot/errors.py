"""Error taxonomy shared by the store, the services and the command layer.

Every error carries a short ``user_message`` that is safe to show to the
person who triggered the interaction; the exception text itself may hold
internal detail and only goes to the log.
"""

from __future__ import annotations


class BotError(Exception):
    """Base class for failures the command layer knows how to report."""

    default_message = "Something went wrong. Please try again later."

    def __init__(self, message: str | None = None, *, user_message: str | None = None):
        super().__init__(message or user_message or self.default_message)
        self.user_message = user_message or self.default_message


class ValidationError(BotError):
    default_message = "That request is not valid."


class DuplicateActiveRequest(ValidationError):
    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id
        super().__init__(
            user_message=f"You already have an active vetting request in <#{channel_id}>."
        )


class AlreadyVerified(ValidationError):
    def __init__(self, ckey: str) -> None:
        self.ckey = ckey
        super().__init__(user_message=f'The ckey "{ckey}" is already age-vetted.')


class DuplicateActiveCommission(ValidationError):
    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id
        super().__init__(
            user_message=f"You already have an active commission channel: <#{channel_id}>."
        )


class AlreadyRep(ValidationError):
    default_message = "You are already registered as a rep for this artist."


class NotRep(ValidationError):
    default_message = "You are not registered as a rep for this artist."


class PermissionDenied(BotError):
    default_message = "You don't have permission to do that."


class NotFound(BotError):
    default_message = "That request no longer exists."


class AlreadyProcessed(BotError):
    default_message = "This request has already been processed."

    def __init__(self, status: str | None = None, *, user_message: str | None = None):
        self.status = status
        if user_message is None and status:
            user_message = f"This request has already been processed ({status})."
        super().__init__(user_message=user_message)


class UpstreamFailure(BotError):
    default_message = "The verification service is unavailable. Please try again later."

    def __init__(self, message: str | None = None, *, status: int | None = None):
        self.status = status
        super().__init__(message, user_message=self.default_message)


class AuthenticationFailure(UpstreamFailure):
    """Raised when the verification service rejects our credentials."""


class PersistenceFailure(BotError):
    default_message = "An error occurred while saving. Please try again."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, user_message=self.default_message)


class NotificationFailure(BotError):
    """A best-effort message could not be delivered; never surfaced to users."""


__all__ = [
    "AlreadyProcessed",
    "AlreadyRep",
    "AlreadyVerified",
    "AuthenticationFailure",
    "BotError",
    "DuplicateActiveCommission",
    "DuplicateActiveRequest",
    "NotFound",
    "NotRep",
    "NotificationFailure",
    "PermissionDenied",
    "PersistenceFailure",
    "UpstreamFailure",
    "ValidationError",
]
