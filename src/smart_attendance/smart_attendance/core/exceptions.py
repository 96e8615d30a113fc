from __future__ import annotations

USER_MESSAGE_ALREADY_CHECKED_IN = "already checked in"
USER_MESSAGE_NOT_CHECKED_IN = "not checked in yet"
USER_MESSAGE_LOCATION_UNAVAILABLE = "location unavailable"


class DomainError(Exception):
    """Base exception for business rule violations."""

    user_message: str | None = None


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class InvalidCoordinate(ValidationError):
    """Latitude/longitude outside [-90, 90] / [-180, 180]."""

    user_message = USER_MESSAGE_LOCATION_UNAVAILABLE


class LocationUnavailable(ValidationError):
    """No usable coordinate was supplied for a location-bound action."""

    user_message = USER_MESSAGE_LOCATION_UNAVAILABLE


class AttendanceNotFound(ValidationError):
    """Raised when an attendance id does not resolve to a record."""


class AttendanceTransitionError(DomainError):
    """A check-in/check-out guard rejected the transition."""


class AlreadyCheckedIn(AttendanceTransitionError):
    user_message = USER_MESSAGE_ALREADY_CHECKED_IN


class AlreadyCheckedOut(AlreadyCheckedIn):
    """Second check-in on a day that is already closed; only an override may reopen it."""


class NotCheckedIn(AttendanceTransitionError):
    user_message = USER_MESSAGE_NOT_CHECKED_IN


class RemoteUnavailable(DomainError):
    """Transient failure of the remote document store."""


class StorageCorrupt(DomainError):
    """A local storage key could not be read or parsed."""

    def __init__(self, namespace: str, key: str, reason: str = ""):
        self.namespace = namespace
        self.key = key
        super().__init__(f"{namespace}/{key} is unreadable" + (f": {reason}" if reason else ""))
