"""Enumerations shared by the monitoring models."""
import enum


class HttpMethod(str, enum.Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"


class AlertType(str, enum.Enum):
    """Kinds of findings an alert can represent."""
    # Performance
    RESPONSE_TIME = "RESPONSE_TIME"
    ERROR_RATE = "ERROR_RATE"
    AVAILABILITY = "AVAILABILITY"
    STATUS_CODE = "STATUS_CODE"
    OTHER = "OTHER"
    # Security
    VULNERABILITY = "VULNERABILITY"
    RATE_LIMIT = "RATE_LIMIT"
    AUTH_FAILURE = "AUTH_FAILURE"
    SENSITIVE_DATA = "SENSITIVE_DATA"

    @property
    def is_security(self) -> bool:
        return self in SECURITY_ALERT_TYPES


SECURITY_ALERT_TYPES = frozenset({
    AlertType.VULNERABILITY,
    AlertType.RATE_LIMIT,
    AlertType.AUTH_FAILURE,
    AlertType.SENSITIVE_DATA,
})


class AlertStatus(str, enum.Enum):
    NEW = "NEW"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    FALSE_POSITIVE = "FALSE_POSITIVE"


class IncidentStatus(str, enum.Enum):
    OPEN = "OPEN"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"


class Severity(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
