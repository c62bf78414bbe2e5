"""
Typed value objects passed between the monitoring components.

ORM rows stay inside repository/session scopes; everything that crosses a
cycle boundary (the endpoint registry, probe results, alert requests) is one
of these pydantic models.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from apiwatch.models.enums import AlertType, Severity


class EndpointSnapshot(BaseModel):
    """Read-only copy of an active endpoint definition."""
    id: UUID
    path: str
    method: str = "GET"
    base_url: Optional[str] = None
    is_active: bool = True
    response_time_threshold: int = 500
    error_rate_threshold: float = 1.0
    availability_threshold: float = 99.9
    tags: List[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}" if self.base_url else self.path


class ResponseMetadata(BaseModel):
    """What a probe kept from the response besides status and latency."""
    headers: Dict[str, str] = Field(default_factory=dict)
    content_length: Optional[int] = None
    content_type: Optional[str] = None
    response_body_sample: Optional[str] = None


class AlertData(BaseModel):
    """Request to raise an alert (subject to dedup)."""
    endpoint_id: UUID
    type: AlertType
    message: str
    value: Optional[float] = None
    threshold: Optional[float] = None
    severity: Optional[Severity] = None
    details: Optional[Dict[str, Any]] = None


class IncidentData(BaseModel):
    """Request to open an incident (subject to the one-open-per-endpoint rule)."""
    endpoint_id: UUID
    title: str
    message: str
    severity: Severity = Severity.MEDIUM
    status_code: Optional[int] = None
    # Type of the alert linked to the new incident
    alert_type: AlertType = AlertType.OTHER
    alert_value: Optional[float] = None
    alert_threshold: Optional[float] = None


class HealthScoreBreakdown(BaseModel):
    availability: int  # percent
    response_time: int  # average ms
    error_rate: float  # percent, one decimal
    stability: int  # percent
    metrics: int  # sample count


class HealthScore(BaseModel):
    endpoint_id: UUID
    score: Optional[int] = None
    details: Optional[HealthScoreBreakdown] = None
    message: Optional[str] = None
    calculated_at: datetime


# ----------------------------------------------------------------------
# Records and reports returned to callers
# ----------------------------------------------------------------------
class AlertRecord(BaseModel):
    id: UUID
    endpoint_id: UUID
    incident_id: Optional[UUID] = None
    type: str
    message: str
    value: Optional[float] = None
    threshold: Optional[float] = None
    severity: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    status: str
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class IncidentRecord(BaseModel):
    id: UUID
    endpoint_id: UUID
    title: str
    message: str
    severity: str
    status: str
    status_code: Optional[int] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AlertListItem(AlertRecord):
    endpoint_path: str
    endpoint_method: str


class AlertPage(BaseModel):
    """One page of alerts plus the total number matching the filters."""
    count: int
    data: List[AlertListItem] = Field(default_factory=list)


class IncidentListItem(IncidentRecord):
    endpoint_path: str
    endpoint_method: str


class IncidentPage(BaseModel):
    count: int
    data: List[IncidentListItem] = Field(default_factory=list)


class SystemStatusRecord(BaseModel):
    timestamp: datetime
    cpu_usage: Optional[float] = None
    memory_usage: Optional[float] = None
    disk_usage: Optional[float] = None
    network_usage: Optional[float] = None
    active_connections: Optional[int] = None
    uptime: Optional[int] = None
    additional_metrics: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class EndpointUptime(BaseModel):
    endpoint_id: UUID
    path: str
    uptime: float  # percent, two decimals
    total: int


class UptimeSummary(BaseModel):
    overall: float
    by_endpoint: List[EndpointUptime] = Field(default_factory=list)


class MonitoringOverview(BaseModel):
    total_endpoints: int
    active_endpoints: int
    open_incidents: int
    new_alerts: int
    system_status: Optional[SystemStatusRecord] = None
    uptime: UptimeSummary
    status: str  # "running" | "stopped"
    last_updated: datetime


class EndpointSummary(BaseModel):
    id: UUID
    path: str
    method: str
    description: Optional[str] = None
    response_time_threshold: int
    error_rate_threshold: float
    availability_threshold: float

    model_config = ConfigDict(from_attributes=True)


class EndpointMetricSeries(BaseModel):
    """Hourly series plus totals for one endpoint over a time range."""
    total_requests: int
    hours: List[str] = Field(default_factory=list)  # "YYYY-MM-DD HH:00"
    time_points: List[str] = Field(default_factory=list)  # "HH:mm"
    response_time_series: List[int] = Field(default_factory=list)
    success_rate_series: List[float] = Field(default_factory=list)
    status_code_percentages: Dict[str, float] = Field(default_factory=dict)
    avg_response_time: int
    success_rate: float


class EndpointMetricsReport(BaseModel):
    endpoint: EndpointSummary
    time_range: str
    metrics: EndpointMetricSeries
    incidents: List[IncidentRecord] = Field(default_factory=list)
    alerts: List[AlertRecord] = Field(default_factory=list)


class EndpointSecuritySummary(BaseModel):
    endpoint_id: UUID
    path: str
    method: str
    alert_count: int


class SecurityOverview(BaseModel):
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_severity: Dict[str, int] = Field(default_factory=dict)
    total_24h: int
    unresolved: int
    top_endpoints: List[EndpointSecuritySummary] = Field(default_factory=list)
