"""
Incident model: a longer-lived problem on an endpoint that links one or more
alerts.
"""

from sqlalchemy import Column, String, Integer, DateTime, Text
from sqlalchemy.orm import relationship
from apiwatch.db.database import Base
from apiwatch.models.base_model import uuid_pk, uuid_fk, timestamp_created
from apiwatch.models.enums import IncidentStatus, Severity


class Incident(Base):
    """
    At most one non-resolved incident exists per endpoint at any time.
    """
    __tablename__ = "incidents"

    id = uuid_pk()
    endpoint_id = uuid_fk("endpoints", nullable=False)

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(String(16), nullable=False, default=Severity.MEDIUM.value)
    status = Column(String(16), nullable=False, default=IncidentStatus.OPEN.value, index=True)
    status_code = Column(Integer, nullable=True)

    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    resolution = Column(Text, nullable=True)
    resolved_by = Column(String(100), nullable=True)

    created_at = timestamp_created()

    endpoint = relationship("Endpoint", back_populates="incidents")
    alerts = relationship("Alert", back_populates="incident")

    def __repr__(self):
        return f"<Incident(id={self.id}, title={self.title!r}, status={self.status})>"
