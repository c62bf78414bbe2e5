# src/apiwatch/repositories/alert_repository.py
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session
from apiwatch.models.alert import Alert
from apiwatch.models.endpoint import Endpoint
from apiwatch.models.enums import AlertStatus, SECURITY_ALERT_TYPES
import logging
from opentelemetry import trace

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_SECURITY_TYPE_VALUES = [t.value for t in SECURITY_ALERT_TYPES]


class AlertRepository:
    @staticmethod
    def find_open(
        db: Session,
        endpoint_id: UUID,
        alert_type: str,
        since: datetime,
    ) -> Optional[Alert]:
        """Newest non-resolved alert of this type created at or after `since`."""
        with tracer.start_as_current_span("db.find_open_alert") as span:
            span.set_attribute("endpoint_id", str(endpoint_id))
            span.set_attribute("alert.type", alert_type)
            return (
                db.query(Alert)
                .filter(
                    Alert.endpoint_id == endpoint_id,
                    Alert.type == alert_type,
                    Alert.status != AlertStatus.RESOLVED.value,
                    Alert.created_at >= since,
                )
                .order_by(Alert.created_at.desc())
                .first()
            )

    @staticmethod
    def create(db: Session, *, commit: bool = True, **fields: Any) -> Alert:
        alert = Alert(**fields)
        db.add(alert)
        if commit:
            db.commit()
            db.refresh(alert)
        else:
            db.flush()
        return alert

    @staticmethod
    def get(db: Session, alert_id: UUID) -> Optional[Alert]:
        return db.query(Alert).filter(Alert.id == alert_id).first()

    @staticmethod
    def list_for_endpoint(db: Session, endpoint_id: UUID, since: datetime) -> list[Alert]:
        return (
            db.query(Alert)
            .filter(Alert.endpoint_id == endpoint_id, Alert.created_at >= since)
            .order_by(Alert.created_at.desc())
            .all()
        )

    @staticmethod
    def list_for_incident(db: Session, incident_id: UUID) -> list[Alert]:
        return db.query(Alert).filter(Alert.incident_id == incident_id).all()

    @staticmethod
    def count_with_status(db: Session, status: AlertStatus) -> int:
        return db.query(Alert).filter(Alert.status == status.value).count()

    # ------------------------------------------------------------------
    # Security aggregates
    # ------------------------------------------------------------------
    @staticmethod
    def security_counts_by(db: Session, column_name: str, since: datetime) -> dict[str, int]:
        """Count security alerts created since `since`, grouped by `type` or `severity`."""
        column = getattr(Alert, column_name)
        rows = (
            db.query(column, func.count(Alert.id))
            .filter(Alert.type.in_(_SECURITY_TYPE_VALUES), Alert.created_at >= since)
            .group_by(column)
            .all()
        )
        return {key: int(count) for key, count in rows if key is not None}

    @staticmethod
    def count_security(db: Session, *, since: Optional[datetime] = None, unresolved_only: bool = False) -> int:
        query = db.query(Alert).filter(Alert.type.in_(_SECURITY_TYPE_VALUES))
        if since is not None:
            query = query.filter(Alert.created_at >= since)
        if unresolved_only:
            query = query.filter(Alert.status != AlertStatus.RESOLVED.value)
        return query.count()

    @staticmethod
    def top_endpoints_with_security_issues(db: Session, limit: int = 5) -> list[tuple[UUID, str, str, int]]:
        """Return (endpoint_id, path, method, unresolved_count), busiest first."""
        alert_count = func.count(Alert.id).label("alert_count")
        rows = (
            db.query(Alert.endpoint_id, Endpoint.path, Endpoint.method, alert_count)
            .join(Endpoint, Alert.endpoint_id == Endpoint.id)
            .filter(
                Alert.type.in_(_SECURITY_TYPE_VALUES),
                Alert.status != AlertStatus.RESOLVED.value,
            )
            .group_by(Alert.endpoint_id, Endpoint.path, Endpoint.method)
            .order_by(alert_count.desc())
            .limit(limit)
            .all()
        )
        return [(eid, path, method, int(count)) for eid, path, method, count in rows]

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------
    @staticmethod
    def list_filtered(
        db: Session,
        *,
        endpoint_id: Optional[UUID] = None,
        alert_type: Optional[str] = None,
        status: Optional[str] = None,
        security_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[int, list[tuple[Alert, str, str]]]:
        """
        One page of alerts, newest first, with the owning endpoint's path and
        method. Returns (total matching count, [(alert, path, method), ...]).
        """
        with tracer.start_as_current_span("db.list_alerts") as span:
            query = db.query(Alert)
            if endpoint_id is not None:
                query = query.filter(Alert.endpoint_id == endpoint_id)
            if alert_type is not None:
                query = query.filter(Alert.type == alert_type)
            if status is not None:
                query = query.filter(Alert.status == status)
            if security_only:
                query = query.filter(Alert.type.in_(_SECURITY_TYPE_VALUES))

            total = query.count()
            rows = (
                query.join(Endpoint, Alert.endpoint_id == Endpoint.id)
                .add_columns(Endpoint.path, Endpoint.method)
                .order_by(Alert.created_at.desc(), Alert.id)
                .offset(offset)
                .limit(limit)
                .all()
            )
            span.set_attribute("alerts.total", total)
            return total, [(alert, path, method) for alert, path, method in rows]
