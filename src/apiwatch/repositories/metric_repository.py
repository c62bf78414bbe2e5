# src/apiwatch/repositories/metric_repository.py
from collections import Counter
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session
from apiwatch.models.endpoint import Endpoint
from apiwatch.models.metric import Metric
import logging
from opentelemetry import trace

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

AUTH_FAILURE_STATUS_CODES = (401, 403)


class MetricRepository:
    @staticmethod
    def create(
        db: Session,
        *,
        endpoint_id: UUID,
        timestamp: datetime,
        response_time: Optional[int],
        status_code: Optional[int],
        success: bool,
        error_message: Optional[str] = None,
        response_metadata: Optional[dict[str, Any]] = None,
    ) -> Metric:
        with tracer.start_as_current_span("db.create_metric") as span:
            span.set_attribute("endpoint_id", str(endpoint_id))

            metric = Metric(
                endpoint_id=endpoint_id,
                timestamp=timestamp,
                response_time=response_time,
                status_code=status_code,
                success=success,
                error_message=error_message,
                request_count=1,
                response_metadata=response_metadata,
            )
            db.add(metric)
            db.commit()
            db.refresh(metric)

        return metric

    @staticmethod
    def list_for_endpoint(
        db: Session,
        endpoint_id: UUID,
        since: datetime,
        until: Optional[datetime] = None,
    ) -> list[Metric]:
        """Metrics for one endpoint in [since, until], oldest first."""
        with tracer.start_as_current_span("db.list_metrics") as span:
            span.set_attribute("endpoint_id", str(endpoint_id))
            query = db.query(Metric).filter(
                Metric.endpoint_id == endpoint_id,
                Metric.timestamp >= since,
            )
            if until is not None:
                query = query.filter(Metric.timestamp <= until)
            return query.order_by(Metric.timestamp.asc()).all()

    @staticmethod
    def window_counts(db: Session, endpoint_id: UUID, since: datetime) -> tuple[int, int]:
        """Return (total, succeeded) for one endpoint since `since`."""
        row = db.query(
            func.count(Metric.id),
            func.sum(case((Metric.success.is_(True), 1), else_=0)),
        ).filter(
            Metric.endpoint_id == endpoint_id,
            Metric.timestamp >= since,
        ).one()
        return int(row[0] or 0), int(row[1] or 0)

    @staticmethod
    def recent_with_metadata(
        db: Session,
        endpoint_id: UUID,
        since: datetime,
        limit: int,
    ) -> list[Metric]:
        """Most recent metrics that captured response metadata, newest first."""
        return (
            db.query(Metric)
            .filter(
                Metric.endpoint_id == endpoint_id,
                Metric.timestamp >= since,
                Metric.response_metadata.isnot(None),
            )
            .order_by(Metric.timestamp.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def auth_failure_codes(db: Session, endpoint_id: UUID, since: datetime) -> list[int]:
        rows = (
            db.query(Metric.status_code)
            .filter(
                Metric.endpoint_id == endpoint_id,
                Metric.timestamp >= since,
                Metric.status_code.in_(AUTH_FAILURE_STATUS_CODES),
            )
            .all()
        )
        return [code for (code,) in rows]

    @staticmethod
    def counts_per_minute(db: Session, endpoint_id: UUID, since: datetime) -> dict[datetime, int]:
        """
        Request counts bucketed by calendar minute.

        Bucketing happens in Python so the query stays portable between
        PostgreSQL and SQLite.
        """
        rows = (
            db.query(Metric.timestamp)
            .filter(
                Metric.endpoint_id == endpoint_id,
                Metric.timestamp >= since,
            )
            .all()
        )
        buckets = Counter(ts.replace(second=0, microsecond=0) for (ts,) in rows)
        return dict(sorted(buckets.items()))

    @staticmethod
    def uptime_by_endpoint(db: Session, since: datetime) -> list[tuple[UUID, str, int, int]]:
        """Return (endpoint_id, path, total, succeeded) per endpoint with data since `since`."""
        rows = (
            db.query(
                Metric.endpoint_id,
                Endpoint.path,
                func.count(Metric.id),
                func.sum(case((Metric.success.is_(True), 1), else_=0)),
            )
            .join(Endpoint, Metric.endpoint_id == Endpoint.id)
            .filter(Metric.timestamp >= since)
            .group_by(Metric.endpoint_id, Endpoint.path)
            .order_by(Endpoint.path.asc())
            .all()
        )
        return [(eid, path, int(total or 0), int(ok or 0)) for eid, path, total, ok in rows]

    @staticmethod
    def delete_older_than(db: Session, cutoff: datetime) -> int:
        with tracer.start_as_current_span("db.purge_metrics") as span:
            deleted = (
                db.query(Metric)
                .filter(Metric.timestamp < cutoff)
                .delete(synchronize_session=False)
            )
            db.commit()
            span.set_attribute("metrics.deleted", deleted)

        logger.info("Deleted %d metrics older than %s", deleted, cutoff.isoformat())
        return deleted
