# src/apiwatch/repositories/endpoint_repository.py
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session
from apiwatch.models.endpoint import Endpoint
import logging
from opentelemetry import trace

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class EndpointRepository:
    @staticmethod
    def list_active(db: Session) -> list[Endpoint]:
        with tracer.start_as_current_span("db.list_active_endpoints"):
            results = (
                db.query(Endpoint)
                .filter(Endpoint.is_active.is_(True))
                .order_by(Endpoint.created_at.asc())
                .all()
            )
        logger.debug("Loaded %d active endpoints", len(results))
        return results

    @staticmethod
    def get(db: Session, endpoint_id: UUID) -> Optional[Endpoint]:
        with tracer.start_as_current_span("db.get_endpoint") as span:
            span.set_attribute("endpoint_id", str(endpoint_id))
            return db.query(Endpoint).filter(Endpoint.id == endpoint_id).first()

    @staticmethod
    def count(db: Session, *, active_only: bool = False) -> int:
        query = db.query(Endpoint)
        if active_only:
            query = query.filter(Endpoint.is_active.is_(True))
        return query.count()
