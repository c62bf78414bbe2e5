"""
Security heuristics over recorded metric history.

Four independent checks run per endpoint per scan:
- rate-limit abuse: more than 100 requests in any minute of the last 5
- auth-failure bursts: 5+ responses with 401/403 in the last 24 hours
- sensitive data: PII/secret patterns in captured response metadata
- missing security headers: 3+ of the standard headers absent
Each check deduplicates against open alerts of its own type inside its own
window, and a failing check never stops the others.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from opentelemetry import trace

from apiwatch.clock import SystemClock
from apiwatch.models.alert import Alert
from apiwatch.models.enums import AlertType, Severity
from apiwatch.repositories.metric_repository import MetricRepository
from apiwatch.schemas import AlertData, EndpointSnapshot, ResponseMetadata
from apiwatch.services.alert_service import AlertService
from apiwatch.services.sensitive_data import metadata_text, scan_text

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

RATE_LIMIT_WINDOW = timedelta(minutes=5)
RATE_LIMIT_PER_MINUTE = 100
RATE_LIMIT_DEDUP = timedelta(hours=1)

AUTH_FAILURE_WINDOW = timedelta(hours=24)
AUTH_FAILURE_MIN_COUNT = 5
AUTH_FAILURE_HIGH_COUNT = 20
AUTH_FAILURE_DEDUP = timedelta(hours=24)

SENSITIVE_DATA_WINDOW = timedelta(hours=1)
SENSITIVE_DATA_SAMPLE = 100
SENSITIVE_DATA_DEDUP = timedelta(hours=1)

HEADER_SCAN_WINDOW = timedelta(hours=1)
HEADER_SCAN_SAMPLE = 10
HEADER_SCAN_MIN_MISSING = 3
HEADER_SCAN_DEDUP = timedelta(hours=1)

SECURITY_HEADERS = (
    "Content-Security-Policy",
    "X-Content-Type-Options",
    "X-Frame-Options",
    "X-XSS-Protection",
    "Strict-Transport-Security",
)


@dataclass
class ScanReport:
    """Outcome of one security scan across all endpoints."""
    endpoints_scanned: int = 0
    alerts: List[Alert] = field(default_factory=list)
    failed_checks: int = 0


class SecurityScanner:
    def __init__(self, db: Session, alert_service: AlertService, clock=None):
        self.db = db
        self.alert_service = alert_service
        self.clock = clock or SystemClock()

    def scan(self, endpoints: List[EndpointSnapshot]) -> ScanReport:
        report = ScanReport()
        with tracer.start_as_current_span("security.scan") as span:
            span.set_attribute("endpoints.count", len(endpoints))
            for endpoint in endpoints:
                self.scan_endpoint(endpoint, report)
                report.endpoints_scanned += 1
        return report

    def scan_endpoint(self, endpoint: EndpointSnapshot, report: Optional[ScanReport] = None) -> ScanReport:
        report = report if report is not None else ScanReport()
        checks: List[tuple[str, Callable[[EndpointSnapshot], Optional[Alert]]]] = [
            ("rate_limit", self.detect_rate_limiting),
            ("auth_failures", self.monitor_auth_failures),
            ("sensitive_data", self.scan_sensitive_data),
            ("security_headers", self.scan_security_headers),
        ]
        for name, check in checks:
            with tracer.start_as_current_span(f"security.{name}") as span:
                span.set_attribute("endpoint.id", str(endpoint.id))
                try:
                    alert = check(endpoint)
                except SQLAlchemyError:
                    self.db.rollback()
                    report.failed_checks += 1
                    logger.exception("Security check %s failed for endpoint %s", name, endpoint.id)
                    continue
            if alert is not None:
                report.alerts.append(alert)
        return report

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------
    def detect_rate_limiting(self, endpoint: EndpointSnapshot) -> Optional[Alert]:
        now = self.clock.now()
        per_minute = MetricRepository.counts_per_minute(self.db, endpoint.id, now - RATE_LIMIT_WINDOW)
        offending = {minute: count for minute, count in per_minute.items() if count > RATE_LIMIT_PER_MINUTE}
        if not offending:
            return None

        minute, count = max(offending.items(), key=lambda item: item[1])
        severity = Severity.HIGH if count > RATE_LIMIT_PER_MINUTE * 2 else Severity.MEDIUM
        return self.alert_service.create_alert(AlertData(
            endpoint_id=endpoint.id,
            type=AlertType.RATE_LIMIT,
            severity=severity,
            message=f"Potential rate limiting or DDoS attempt detected: {count} requests in one minute",
            value=count,
            threshold=RATE_LIMIT_PER_MINUTE,
            details={
                "requestCount": count,
                "threshold": RATE_LIMIT_PER_MINUTE,
                "minute": minute.strftime("%Y-%m-%d %H:%M"),
            },
        ), dedup_window=RATE_LIMIT_DEDUP)

    def monitor_auth_failures(self, endpoint: EndpointSnapshot) -> Optional[Alert]:
        now = self.clock.now()
        codes = MetricRepository.auth_failure_codes(self.db, endpoint.id, now - AUTH_FAILURE_WINDOW)
        if len(codes) < AUTH_FAILURE_MIN_COUNT:
            return None

        count = len(codes)
        severity = Severity.HIGH if count > AUTH_FAILURE_HIGH_COUNT else Severity.MEDIUM
        return self.alert_service.create_alert(AlertData(
            endpoint_id=endpoint.id,
            type=AlertType.AUTH_FAILURE,
            severity=severity,
            message=f"Unusual number of authentication failures: {count} in the last 24 hours",
            value=count,
            threshold=AUTH_FAILURE_MIN_COUNT,
            details={
                "failureCount": count,
                "statusCodes": {
                    "unauthorized": codes.count(401),
                    "forbidden": codes.count(403),
                },
            },
        ), dedup_window=AUTH_FAILURE_DEDUP)

    def scan_sensitive_data(self, endpoint: EndpointSnapshot) -> Optional[Alert]:
        now = self.clock.now()
        metrics = MetricRepository.recent_with_metadata(
            self.db, endpoint.id, now - SENSITIVE_DATA_WINDOW, SENSITIVE_DATA_SAMPLE
        )
        for metric in metrics:
            metadata = _load_metadata(metric.response_metadata)
            if metadata is None:
                continue
            text = metadata_text(metadata)
            if not text:
                continue

            found = scan_text(text)
            if not found:
                continue

            # One alert per endpoint per window, whatever the match volume
            return self.alert_service.create_alert(AlertData(
                endpoint_id=endpoint.id,
                type=AlertType.SENSITIVE_DATA,
                severity=Severity.HIGH,
                message="Sensitive data exposure detected in API response: "
                        + ", ".join(f"{m.type} ({m.count})" for m in found),
                details={
                    "detectedTypes": [m.as_dict() for m in found],
                    "metricId": str(metric.id),
                    "timestamp": metric.timestamp.isoformat(),
                },
            ), dedup_window=SENSITIVE_DATA_DEDUP)
        return None

    def scan_security_headers(self, endpoint: EndpointSnapshot) -> Optional[Alert]:
        now = self.clock.now()
        metrics = MetricRepository.recent_with_metadata(
            self.db, endpoint.id, now - HEADER_SCAN_WINDOW, HEADER_SCAN_SAMPLE
        )
        for metric in metrics:
            metadata = _load_metadata(metric.response_metadata)
            if metadata is None or not metadata.headers:
                continue

            present = {name.lower() for name in metadata.headers}
            missing = [h for h in SECURITY_HEADERS if h.lower() not in present]
            if len(missing) < HEADER_SCAN_MIN_MISSING:
                continue

            # First offending sample decides for this endpoint
            return self.alert_service.create_alert(AlertData(
                endpoint_id=endpoint.id,
                type=AlertType.VULNERABILITY,
                severity=Severity.MEDIUM,
                message=f"Missing important security headers: {', '.join(missing)}",
                value=len(missing),
                threshold=HEADER_SCAN_MIN_MISSING,
                details={
                    "missingHeaders": missing,
                    "presentHeaders": sorted(metadata.headers),
                    "metricId": str(metric.id),
                },
            ), dedup_window=HEADER_SCAN_DEDUP)
        return None


def _load_metadata(raw) -> Optional[ResponseMetadata]:
    if not raw:
        return None
    try:
        return ResponseMetadata.model_validate(raw)
    except PydanticValidationError:
        logger.warning("Skipping metric with malformed response metadata")
        return None
