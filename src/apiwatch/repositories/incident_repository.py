# src/apiwatch/repositories/incident_repository.py
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session
from apiwatch.models.endpoint import Endpoint
from apiwatch.models.incident import Incident
from apiwatch.models.enums import IncidentStatus
import logging
from opentelemetry import trace

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class IncidentRepository:
    @staticmethod
    def find_open(db: Session, endpoint_id: UUID) -> Optional[Incident]:
        """The endpoint's non-resolved incident, if any."""
        with tracer.start_as_current_span("db.find_open_incident") as span:
            span.set_attribute("endpoint_id", str(endpoint_id))
            return (
                db.query(Incident)
                .filter(
                    Incident.endpoint_id == endpoint_id,
                    Incident.status != IncidentStatus.RESOLVED.value,
                )
                .order_by(Incident.start_time.desc())
                .first()
            )

    @staticmethod
    def create(db: Session, *, commit: bool = True, **fields: Any) -> Incident:
        incident = Incident(**fields)
        db.add(incident)
        if commit:
            db.commit()
            db.refresh(incident)
        else:
            db.flush()
        return incident

    @staticmethod
    def get(db: Session, incident_id: UUID) -> Optional[Incident]:
        return db.query(Incident).filter(Incident.id == incident_id).first()

    @staticmethod
    def list_for_endpoint(db: Session, endpoint_id: UUID, since: datetime) -> list[Incident]:
        return (
            db.query(Incident)
            .filter(Incident.endpoint_id == endpoint_id, Incident.start_time >= since)
            .order_by(Incident.start_time.desc())
            .all()
        )

    @staticmethod
    def count_open(db: Session) -> int:
        return db.query(Incident).filter(Incident.status != IncidentStatus.RESOLVED.value).count()

    @staticmethod
    def list_filtered(
        db: Session,
        *,
        endpoint_id: Optional[UUID] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[int, list[tuple[Incident, str, str]]]:
        """One page of incidents, most recently started first, with endpoint path and method."""
        query = db.query(Incident)
        if endpoint_id is not None:
            query = query.filter(Incident.endpoint_id == endpoint_id)
        if status is not None:
            query = query.filter(Incident.status == status)

        total = query.count()
        rows = (
            query.join(Endpoint, Incident.endpoint_id == Endpoint.id)
            .add_columns(Endpoint.path, Endpoint.method)
            .order_by(Incident.start_time.desc(), Incident.id)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return total, [(incident, path, method) for incident, path, method in rows]
