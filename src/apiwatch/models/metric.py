"""
Metric model: one immutable probe fact per endpoint per cycle.
"""

from sqlalchemy import Column, Integer, Boolean, DateTime, Text, JSON, Index
from sqlalchemy.orm import relationship
from apiwatch.clock import utcnow
from apiwatch.db.database import Base
from apiwatch.models.base_model import uuid_pk, uuid_fk


class Metric(Base):
    """
    Result of a single probe.

    `success` is true iff a response arrived with a status in [200, 400).
    `response_metadata` holds a serialized ResponseMetadata, or NULL when the
    probe never got a response.
    """
    __tablename__ = "metrics"
    __table_args__ = (
        Index("ix_metrics_endpoint_timestamp", "endpoint_id", "timestamp"),
    )

    id = uuid_pk()
    endpoint_id = uuid_fk("endpoints", nullable=False)

    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
    response_time = Column(Integer, nullable=True)  # ms
    status_code = Column(Integer, nullable=True)
    success = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)
    request_count = Column(Integer, nullable=False, default=1)

    response_metadata = Column(JSON(none_as_null=True), nullable=True)

    endpoint = relationship("Endpoint", back_populates="metrics")

    def __repr__(self):
        status = "ok" if self.success else "failed"
        return f"<Metric(endpoint={self.endpoint_id}, status={self.status_code}, {status})>"
