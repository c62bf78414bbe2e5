"""
Alert and incident service.

Owns the two-tier escalation model:
- Alerts are deduplicated per (endpoint, type) inside a trailing window.
- Incidents are deduplicated per endpoint: at most one non-resolved incident
  exists at a time, and it links the alerts that escalated into it.

Dedup is read-then-write without locking. Two evaluations racing on the same
(endpoint, type) can both miss the other's insert; the engine runs cycles
sequentially per job, so this only happens when callers outside the
scheduler create alerts concurrently.
"""

import logging
from datetime import timedelta
from typing import Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session
from opentelemetry import trace

from apiwatch.clock import SystemClock
from apiwatch.exceptions import InvalidStatusTransition, NotFoundError, ValidationError
from apiwatch.metrics import alerts_created_total, alerts_suppressed_total, incidents_opened_total
from apiwatch.models.alert import Alert
from apiwatch.models.incident import Incident
from apiwatch.models.enums import AlertStatus, AlertType, IncidentStatus, Severity
from apiwatch.repositories.alert_repository import AlertRepository
from apiwatch.repositories.incident_repository import IncidentRepository
from apiwatch.schemas import AlertData, EndpointSnapshot, IncidentData

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_DEDUP_WINDOW = timedelta(hours=1)
DEFAULT_ACTOR = "System"
DEFAULT_RESOLUTION = "Resolved without details"

_ALERT_TRANSITIONS = {
    AlertStatus.NEW: {AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED},
    AlertStatus.ACKNOWLEDGED: {AlertStatus.RESOLVED},
}

# Alerts an incident resolution may still close; the rest are terminal
_OPEN_ALERT_STATUSES = frozenset({AlertStatus.NEW.value, AlertStatus.ACKNOWLEDGED.value})

_INCIDENT_TRANSITIONS = {
    IncidentStatus.OPEN: {IncidentStatus.ACKNOWLEDGED, IncidentStatus.RESOLVED},
    IncidentStatus.ACKNOWLEDGED: {IncidentStatus.RESOLVED},
}

E = TypeVar("E", AlertStatus, IncidentStatus, AlertType)


def parse_status(enum_cls: Type[E], value, label: str = "status") -> E:
    """Parse an enum name case-insensitively, raising ValidationError on junk."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in enum_cls)
        raise ValidationError(f"Invalid {label} {value!r}. Must be one of: {allowed}")


class AlertService:
    """Dedup, escalation and status transitions for alerts and incidents."""

    def __init__(self, db: Session, clock=None, dedup_window: timedelta = DEFAULT_DEDUP_WINDOW):
        self.db = db
        self.clock = clock or SystemClock()
        self.dedup_window = dedup_window

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create_alert(self, data: AlertData, dedup_window: Optional[timedelta] = None) -> Alert:
        """
        Return the open alert for (endpoint, type) created inside the dedup
        window, or insert a new NEW alert when there is none.
        """
        window = dedup_window or self.dedup_window
        now = self.clock.now()

        with tracer.start_as_current_span("alerts.create_alert") as span:
            span.set_attribute("endpoint_id", str(data.endpoint_id))
            span.set_attribute("alert.type", data.type.value)

            existing = AlertRepository.find_open(
                self.db, data.endpoint_id, data.type.value, now - window
            )
            if existing:
                span.set_attribute("alert.suppressed", True)
                alerts_suppressed_total.labels(alert_type=data.type.value).inc()
                logger.debug(
                    "Suppressed %s alert for endpoint %s (existing %s)",
                    data.type.value, data.endpoint_id, existing.id,
                )
                return existing

            alert = AlertRepository.create(
                self.db,
                endpoint_id=data.endpoint_id,
                type=data.type.value,
                message=data.message,
                value=data.value,
                threshold=data.threshold,
                severity=data.severity.value if data.severity else None,
                details=data.details,
                status=AlertStatus.NEW.value,
                created_at=now,
            )

        alerts_created_total.labels(alert_type=data.type.value).inc()
        logger.warning("Alert %s raised for endpoint %s: %s", data.type.value, data.endpoint_id, data.message)
        return alert

    def create_incident(self, data: IncidentData) -> Incident:
        """
        Return the endpoint's open incident, or open a new one together with
        its linked alert.

        When an open alert of the linked type already exists inside the dedup
        window it is attached to the new incident instead of inserting a
        second one.
        """
        now = self.clock.now()

        with tracer.start_as_current_span("alerts.create_incident") as span:
            span.set_attribute("endpoint_id", str(data.endpoint_id))

            existing = IncidentRepository.find_open(self.db, data.endpoint_id)
            if existing:
                span.set_attribute("incident.suppressed", True)
                return existing

            try:
                incident = IncidentRepository.create(
                    self.db,
                    commit=False,
                    endpoint_id=data.endpoint_id,
                    title=data.title,
                    message=data.message,
                    severity=data.severity.value,
                    status=IncidentStatus.OPEN.value,
                    status_code=data.status_code,
                    start_time=now,
                    created_at=now,
                )

                linked = AlertRepository.find_open(
                    self.db, data.endpoint_id, data.alert_type.value, now - self.dedup_window
                )
                if linked is not None:
                    linked.incident_id = incident.id
                else:
                    AlertRepository.create(
                        self.db,
                        commit=False,
                        endpoint_id=data.endpoint_id,
                        incident_id=incident.id,
                        type=data.alert_type.value,
                        message=data.message,
                        value=data.alert_value,
                        threshold=data.alert_threshold,
                        status=AlertStatus.NEW.value,
                        created_at=now,
                    )
                    alerts_created_total.labels(alert_type=data.alert_type.value).inc()

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(incident)

        incidents_opened_total.labels(severity=data.severity.value).inc()
        logger.warning(
            "Incident opened for endpoint %s [%s]: %s",
            data.endpoint_id, data.severity.value, data.title,
        )
        return incident

    def create_incident_from_error(
        self,
        endpoint: EndpointSnapshot,
        error_message: str,
        status_code: Optional[int] = None,
    ) -> Incident:
        """Escalate a transport failure straight to a MEDIUM incident."""
        message = error_message or "Unknown error"
        return self.create_incident(IncidentData(
            endpoint_id=endpoint.id,
            title=f"Error detected for {endpoint.path}",
            message=message,
            severity=Severity.MEDIUM,
            status_code=status_code,
            alert_type=AlertType.STATUS_CODE,
        ))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def update_alert_status(self, alert_id: UUID, status, actor: Optional[str] = None) -> Alert:
        """
        Move an alert through NEW -> ACKNOWLEDGED -> RESOLVED.

        Security alerts may also be marked FALSE_POSITIVE from any
        non-terminal state.

        Raises:
            ValidationError: unknown status or an illegal transition.
            NotFoundError: no alert with this id.
        """
        new_status = parse_status(AlertStatus, status)
        actor = actor or DEFAULT_ACTOR

        alert = AlertRepository.get(self.db, alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found")

        current = AlertStatus(alert.status)
        if current == new_status:
            return alert

        if new_status == AlertStatus.FALSE_POSITIVE:
            if not alert.is_security:
                raise InvalidStatusTransition(
                    f"Only security alerts can be marked {AlertStatus.FALSE_POSITIVE.value}"
                )
            allowed = current in _ALERT_TRANSITIONS
        else:
            allowed = new_status in _ALERT_TRANSITIONS.get(current, set())

        if not allowed:
            raise InvalidStatusTransition(
                f"Alert {alert_id} cannot move from {current.value} to {new_status.value}"
            )

        now = self.clock.now()
        alert.status = new_status.value
        if new_status == AlertStatus.ACKNOWLEDGED:
            alert.acknowledged_at = now
            alert.acknowledged_by = actor
        elif new_status in (AlertStatus.RESOLVED, AlertStatus.FALSE_POSITIVE):
            alert.resolved_at = now
            alert.resolved_by = actor

        self.db.commit()
        self.db.refresh(alert)

        logger.info("Alert %s moved %s -> %s by %s", alert_id, current.value, new_status.value, actor)
        return alert

    def update_incident_status(
        self,
        incident_id: UUID,
        status,
        actor: Optional[str] = None,
        resolution: Optional[str] = None,
    ) -> Incident:
        """
        Move an incident through OPEN -> ACKNOWLEDGED -> RESOLVED.

        Resolving records the resolver, resolution and end time, and resolves
        every still-open linked alert in the same transaction. Alerts already
        marked FALSE_POSITIVE keep that status.
        """
        new_status = parse_status(IncidentStatus, status)
        actor = actor or DEFAULT_ACTOR

        incident = IncidentRepository.get(self.db, incident_id)
        if incident is None:
            raise NotFoundError(f"Incident {incident_id} not found")

        current = IncidentStatus(incident.status)
        if current == new_status:
            return incident
        if new_status not in _INCIDENT_TRANSITIONS.get(current, set()):
            raise InvalidStatusTransition(
                f"Incident {incident_id} cannot move from {current.value} to {new_status.value}"
            )

        now = self.clock.now()
        incident.status = new_status.value
        cascaded = 0
        if new_status == IncidentStatus.RESOLVED:
            incident.resolution = resolution or DEFAULT_RESOLUTION
            incident.resolved_by = actor
            incident.end_time = now
            for alert in AlertRepository.list_for_incident(self.db, incident.id):
                if alert.status in _OPEN_ALERT_STATUSES:
                    alert.status = AlertStatus.RESOLVED.value
                    alert.resolved_at = now
                    alert.resolved_by = actor
                    cascaded += 1

        self.db.commit()
        self.db.refresh(incident)

        logger.info(
            "Incident %s moved %s -> %s by %s (%d linked alerts resolved)",
            incident_id, current.value, new_status.value, actor, cascaded,
        )
        return incident
