"""
Alert model: a point-in-time notification of a threshold breach or a
security finding.
"""

from sqlalchemy import Column, String, Float, DateTime, Text, JSON, Index
from sqlalchemy.orm import relationship
from apiwatch.db.database import Base
from apiwatch.models.base_model import uuid_pk, uuid_fk, timestamp_created
from apiwatch.models.enums import AlertType, AlertStatus


class Alert(Base):
    """
    Performance and security alerts share this table; `type` tells them apart.

    Security alerts carry a severity and a JSON `details` payload with the
    evidence that triggered them.
    """
    __tablename__ = "alerts"
    __table_args__ = (
        Index("ix_alerts_dedup", "endpoint_id", "type", "status", "created_at"),
    )

    id = uuid_pk()
    endpoint_id = uuid_fk("endpoints", nullable=False)
    incident_id = uuid_fk("incidents", nullable=True, ondelete="SET NULL")

    type = Column(String(32), nullable=False)
    message = Column(Text, nullable=False)
    value = Column(Float, nullable=True)
    threshold = Column(Float, nullable=True)
    severity = Column(String(16), nullable=True)
    details = Column(JSON(none_as_null=True), nullable=True)

    status = Column(String(32), nullable=False, default=AlertStatus.NEW.value)
    acknowledged_at = Column(DateTime, nullable=True)
    acknowledged_by = Column(String(100), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(String(100), nullable=True)

    created_at = timestamp_created()

    endpoint = relationship("Endpoint", back_populates="alerts")
    incident = relationship("Incident", back_populates="alerts")

    @property
    def is_security(self) -> bool:
        return AlertType(self.type).is_security

    def __repr__(self):
        return f"<Alert(id={self.id}, type={self.type}, status={self.status})>"
