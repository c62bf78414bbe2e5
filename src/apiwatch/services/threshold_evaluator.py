"""
Threshold evaluation for freshly recorded metrics.

Four independent checks run per metric, in order:
response time, status code, trailing-hour error rate, trailing-hour
availability. The windowed checks escalate to a HIGH incident when the breach
is severe.
"""

import logging
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from opentelemetry import trace

from apiwatch.clock import SystemClock
from apiwatch.models.alert import Alert
from apiwatch.models.enums import AlertType, Severity
from apiwatch.repositories.metric_repository import MetricRepository
from apiwatch.schemas import AlertData, EndpointSnapshot, IncidentData
from apiwatch.services.alert_service import AlertService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

STATUS_CODE_THRESHOLD = 400
EVALUATION_WINDOW = timedelta(hours=1)
AVAILABILITY_ESCALATION_MARGIN = 10.0
ERROR_RATE_ESCALATION_FACTOR = 2.0


class ThresholdEvaluator:
    """Checks one endpoint's newest metric against its configured thresholds."""

    def __init__(self, db: Session, alert_service: AlertService, clock=None, window: timedelta = EVALUATION_WINDOW):
        self.db = db
        self.alert_service = alert_service
        self.clock = clock or SystemClock()
        self.window = window

    def evaluate(
        self,
        endpoint: EndpointSnapshot,
        response_time: Optional[int],
        status_code: Optional[int],
        success: bool,
    ) -> List[Alert]:
        """Run every check; a failing check is logged and does not stop the rest."""
        raised: List[Alert] = []
        with tracer.start_as_current_span("thresholds.evaluate") as span:
            span.set_attribute("endpoint.id", str(endpoint.id))
            checks: List[tuple[str, Callable[[], Optional[Alert]]]] = [
                ("response_time", lambda: self.check_response_time(endpoint, response_time)),
                ("status_code", lambda: self.check_status_code(endpoint, status_code, success)),
                ("error_rate", lambda: self.check_error_rate(endpoint)),
                ("availability", lambda: self.check_availability(endpoint)),
            ]
            for name, check in checks:
                try:
                    alert = check()
                except SQLAlchemyError:
                    self.db.rollback()
                    logger.exception("Threshold check %s failed for endpoint %s", name, endpoint.id)
                    continue
                if alert is not None:
                    raised.append(alert)
        return raised

    def check_response_time(self, endpoint: EndpointSnapshot, response_time: Optional[int]) -> Optional[Alert]:
        if response_time is None or response_time <= endpoint.response_time_threshold:
            return None
        return self.alert_service.create_alert(AlertData(
            endpoint_id=endpoint.id,
            type=AlertType.RESPONSE_TIME,
            message=(
                f"Response time ({response_time}ms) exceeds threshold "
                f"({endpoint.response_time_threshold}ms)"
            ),
            value=response_time,
            threshold=endpoint.response_time_threshold,
        ))

    def check_status_code(self, endpoint: EndpointSnapshot, status_code: Optional[int], success: bool) -> Optional[Alert]:
        if success:
            return None
        return self.alert_service.create_alert(AlertData(
            endpoint_id=endpoint.id,
            type=AlertType.STATUS_CODE,
            message=f"Received error status code: {status_code}",
            value=status_code,
            threshold=STATUS_CODE_THRESHOLD,
        ))

    def check_error_rate(self, endpoint: EndpointSnapshot) -> Optional[Alert]:
        total, succeeded = MetricRepository.window_counts(
            self.db, endpoint.id, self.clock.now() - self.window
        )
        if total == 0:
            return None

        error_rate = (total - succeeded) / total * 100
        threshold = endpoint.error_rate_threshold
        if error_rate <= threshold:
            return None

        alert = self.alert_service.create_alert(AlertData(
            endpoint_id=endpoint.id,
            type=AlertType.ERROR_RATE,
            message=f"Error rate ({error_rate:.2f}%) exceeds threshold ({threshold:g}%)",
            value=error_rate,
            threshold=threshold,
        ))

        if error_rate > threshold * ERROR_RATE_ESCALATION_FACTOR:
            self.alert_service.create_incident(IncidentData(
                endpoint_id=endpoint.id,
                title=f"High Error Rate for {endpoint.path}",
                message=f"Error rate of {error_rate:.2f}% exceeds twice the threshold of {threshold:g}%",
                severity=Severity.HIGH,
                alert_type=AlertType.ERROR_RATE,
                alert_value=error_rate,
                alert_threshold=threshold,
            ))
        return alert

    def check_availability(self, endpoint: EndpointSnapshot) -> Optional[Alert]:
        total, succeeded = MetricRepository.window_counts(
            self.db, endpoint.id, self.clock.now() - self.window
        )
        if total == 0:
            return None

        availability = succeeded / total * 100
        threshold = endpoint.availability_threshold
        if availability >= threshold:
            return None

        alert = self.alert_service.create_alert(AlertData(
            endpoint_id=endpoint.id,
            type=AlertType.AVAILABILITY,
            message=f"Availability ({availability:.2f}%) is below threshold ({threshold:g}%)",
            value=availability,
            threshold=threshold,
        ))

        if availability < threshold - AVAILABILITY_ESCALATION_MARGIN:
            self.alert_service.create_incident(IncidentData(
                endpoint_id=endpoint.id,
                title=f"Low Availability for {endpoint.path}",
                message=(
                    f"Availability of {availability:.2f}% is significantly below "
                    f"threshold of {threshold:g}%"
                ),
                severity=Severity.HIGH,
                alert_type=AlertType.AVAILABILITY,
                alert_value=availability,
                alert_threshold=threshold,
            ))
        return alert
