"""Monitoring engine exceptions."""


class MonitoringError(Exception):
    """Base exception for monitoring engine errors."""


class ValidationError(MonitoringError, ValueError):
    """Caller supplied a value the engine rejects (never retried)."""


class InvalidStatusTransition(ValidationError):
    """Requested alert or incident status change is not allowed."""


class NotFoundError(MonitoringError, LookupError):
    """A directly requested record does not exist."""


class TransportError(MonitoringError):
    """The HTTP request never produced a response (timeout, refused, DNS...)."""
