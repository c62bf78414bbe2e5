# src/apiwatch/repositories/__init__.py
from .endpoint_repository import EndpointRepository
from .metric_repository import MetricRepository
from .alert_repository import AlertRepository
from .incident_repository import IncidentRepository
from .system_status_repository import SystemStatusRepository

__all__ = [
    "EndpointRepository",
    "MetricRepository",
    "AlertRepository",
    "IncidentRepository",
    "SystemStatusRepository",
]
