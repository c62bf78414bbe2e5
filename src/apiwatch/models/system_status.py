"""
SystemStatus model: periodic snapshot of the monitoring process's host
resources. Independent of endpoint metrics.
"""

from sqlalchemy import Column, Integer, Float, DateTime, JSON
from apiwatch.clock import utcnow
from apiwatch.db.database import Base
from apiwatch.models.base_model import uuid_pk


class SystemStatus(Base):
    __tablename__ = "system_status"

    id = uuid_pk()
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)

    cpu_usage = Column(Float, nullable=True)  # process CPU seconds
    memory_usage = Column(Float, nullable=True)  # percent
    disk_usage = Column(Float, nullable=True)  # percent
    network_usage = Column(Float, nullable=True)  # bytes sent + received
    active_connections = Column(Integer, nullable=True)
    uptime = Column(Integer, nullable=True)  # seconds

    additional_metrics = Column(JSON(none_as_null=True), nullable=True)

    def __repr__(self):
        return f"<SystemStatus(timestamp={self.timestamp}, cpu={self.cpu_usage}, mem={self.memory_usage})>"
