"""
Read side of the monitoring engine: dashboard overview, per-endpoint time
series and the security overview.
"""

import logging
from collections import Counter, OrderedDict
from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session
from opentelemetry import trace

from apiwatch.clock import SystemClock
from apiwatch.exceptions import NotFoundError, ValidationError
from apiwatch.models.enums import AlertStatus, AlertType, IncidentStatus
from apiwatch.repositories import (
    AlertRepository,
    EndpointRepository,
    IncidentRepository,
    MetricRepository,
    SystemStatusRepository,
)
from apiwatch.schemas import (
    AlertListItem,
    AlertPage,
    AlertRecord,
    EndpointMetricSeries,
    EndpointMetricsReport,
    EndpointSecuritySummary,
    EndpointSummary,
    EndpointUptime,
    IncidentListItem,
    IncidentPage,
    IncidentRecord,
    MonitoringOverview,
    SecurityOverview,
    SystemStatusRecord,
    UptimeSummary,
)
from apiwatch.services.alert_service import parse_status
from apiwatch.utils.time_range import parse_time_range

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

OVERVIEW_WINDOW = timedelta(hours=24)
TOP_SECURITY_ENDPOINTS = 5
MAX_PAGE_SIZE = 500


class ReportingService:
    def __init__(self, db: Session, clock=None):
        self.db = db
        self.clock = clock or SystemClock()

    def monitoring_overview(self, running: bool) -> MonitoringOverview:
        with tracer.start_as_current_span("reporting.monitoring_overview"):
            now = self.clock.now()
            latest_status = SystemStatusRepository.latest(self.db)

            rows = MetricRepository.uptime_by_endpoint(self.db, now - OVERVIEW_WINDOW)
            by_endpoint = [
                EndpointUptime(
                    endpoint_id=endpoint_id,
                    path=path,
                    uptime=round(ok / total * 100, 2),
                    total=total,
                )
                for endpoint_id, path, total, ok in rows
                if total
            ]
            total_requests = sum(row[2] for row in rows)
            successful = sum(row[3] for row in rows)
            overall = round(successful / total_requests * 100, 2) if total_requests else 100.0

            return MonitoringOverview(
                total_endpoints=EndpointRepository.count(self.db),
                active_endpoints=EndpointRepository.count(self.db, active_only=True),
                open_incidents=IncidentRepository.count_open(self.db),
                new_alerts=AlertRepository.count_with_status(self.db, AlertStatus.NEW),
                system_status=SystemStatusRecord.model_validate(latest_status) if latest_status else None,
                uptime=UptimeSummary(overall=overall, by_endpoint=by_endpoint),
                status="running" if running else "stopped",
                last_updated=now,
            )

    def endpoint_metrics(self, endpoint_id: UUID, time_range: str = "24h") -> EndpointMetricsReport:
        """
        Hourly series, status code distribution and related incidents/alerts
        for one endpoint.

        Raises:
            ValidationError: malformed time range.
            NotFoundError: unknown endpoint.
        """
        now = self.clock.now()
        start = parse_time_range(time_range, now)

        with tracer.start_as_current_span("reporting.endpoint_metrics") as span:
            span.set_attribute("endpoint.id", str(endpoint_id))
            span.set_attribute("time_range", time_range)

            endpoint = EndpointRepository.get(self.db, endpoint_id)
            if endpoint is None:
                raise NotFoundError(f"Endpoint {endpoint_id} not found")

            metrics = MetricRepository.list_for_endpoint(self.db, endpoint_id, start)

            # Metrics arrive oldest first, so buckets come out in time order
            hourly = OrderedDict()
            for metric in metrics:
                hour = metric.timestamp.replace(minute=0, second=0, microsecond=0)
                bucket = hourly.setdefault(hour, {"total": 0, "success": 0, "latencies": []})
                bucket["total"] += 1
                if metric.success:
                    bucket["success"] += 1
                if metric.response_time:
                    bucket["latencies"].append(metric.response_time)

            series = EndpointMetricSeries(
                total_requests=len(metrics),
                avg_response_time=0,
                success_rate=100.0,
            )
            for hour, bucket in hourly.items():
                latencies = bucket["latencies"]
                series.hours.append(hour.strftime("%Y-%m-%d %H:00"))
                series.time_points.append(hour.strftime("%H:%M"))
                series.response_time_series.append(
                    round(sum(latencies) / len(latencies)) if latencies else 0
                )
                series.success_rate_series.append(round(bucket["success"] / bucket["total"] * 100, 2))

            if metrics:
                status_codes = Counter(m.status_code for m in metrics if m.status_code)
                series.status_code_percentages = {
                    str(code): round(count / len(metrics) * 100, 1)
                    for code, count in sorted(status_codes.items())
                }
                successful = sum(1 for m in metrics if m.success)
                series.avg_response_time = round(sum(m.response_time or 0 for m in metrics) / len(metrics))
                series.success_rate = round(successful / len(metrics) * 100, 2)

            incidents = IncidentRepository.list_for_endpoint(self.db, endpoint_id, start)
            alerts = AlertRepository.list_for_endpoint(self.db, endpoint_id, start)

            return EndpointMetricsReport(
                endpoint=EndpointSummary.model_validate(endpoint),
                time_range=time_range,
                metrics=series,
                incidents=[IncidentRecord.model_validate(i) for i in incidents],
                alerts=[AlertRecord.model_validate(a) for a in alerts],
            )

    def security_overview(self) -> SecurityOverview:
        with tracer.start_as_current_span("reporting.security_overview"):
            since = self.clock.now() - OVERVIEW_WINDOW
            top = AlertRepository.top_endpoints_with_security_issues(self.db, limit=TOP_SECURITY_ENDPOINTS)
            return SecurityOverview(
                by_type=AlertRepository.security_counts_by(self.db, "type", since),
                by_severity=AlertRepository.security_counts_by(self.db, "severity", since),
                total_24h=AlertRepository.count_security(self.db, since=since),
                unresolved=AlertRepository.count_security(self.db, unresolved_only=True),
                top_endpoints=[
                    EndpointSecuritySummary(endpoint_id=eid, path=path, method=method, alert_count=count)
                    for eid, path, method, count in top
                ],
            )

    def list_alerts(
        self,
        endpoint_id: Optional[UUID] = None,
        alert_type: Optional[str] = None,
        status: Optional[str] = None,
        security_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> AlertPage:
        """
        Filtered page of alerts, newest first.

        Raises:
            ValidationError: unknown type or status, or a bad limit/offset.
        """
        _check_page(limit, offset)
        type_value = parse_status(AlertType, alert_type, label="alert type").value if alert_type else None
        if type_value and security_only and not AlertType(type_value).is_security:
            raise ValidationError(f"{type_value} is not a security alert type")
        status_value = parse_status(AlertStatus, status).value if status else None

        total, rows = AlertRepository.list_filtered(
            self.db,
            endpoint_id=endpoint_id,
            alert_type=type_value,
            status=status_value,
            security_only=security_only,
            limit=limit,
            offset=offset,
        )
        return AlertPage(
            count=total,
            data=[
                AlertListItem(
                    **AlertRecord.model_validate(alert).model_dump(),
                    endpoint_path=path,
                    endpoint_method=method,
                )
                for alert, path, method in rows
            ],
        )

    def list_incidents(
        self,
        endpoint_id: Optional[UUID] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> IncidentPage:
        _check_page(limit, offset)
        status_value = parse_status(IncidentStatus, status).value if status else None

        total, rows = IncidentRepository.list_filtered(
            self.db, endpoint_id=endpoint_id, status=status_value, limit=limit, offset=offset
        )
        return IncidentPage(
            count=total,
            data=[
                IncidentListItem(
                    **IncidentRecord.model_validate(incident).model_dump(),
                    endpoint_path=path,
                    endpoint_method=method,
                )
                for incident, path, method in rows
            ],
        )


def _check_page(limit: int, offset: int) -> None:
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError("offset must not be negative")
