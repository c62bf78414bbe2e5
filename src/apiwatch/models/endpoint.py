"""
Endpoint model for the monitored API surface.

Endpoints are managed by the configuration API; the monitoring engine only
reads them.
"""

from sqlalchemy import Column, String, Boolean, Integer, Float, Text
from sqlalchemy.orm import relationship, validates
from apiwatch.db.database import Base
from apiwatch.exceptions import ValidationError
from apiwatch.models.enums import HttpMethod
from apiwatch.models.base_model import uuid_pk, timestamp_created, timestamp_updated


class Endpoint(Base):
    """
    A single monitored HTTP endpoint and its alerting thresholds.
    """
    __tablename__ = "endpoints"

    id = uuid_pk()

    path = Column(String(255), nullable=False)
    method = Column(String(16), nullable=False, default="GET")
    description = Column(Text, nullable=True)
    base_url = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    response_time_threshold = Column(Integer, nullable=False, default=500)  # ms
    error_rate_threshold = Column(Float, nullable=False, default=1.0)  # percent
    availability_threshold = Column(Float, nullable=False, default=99.9)  # percent

    # Stored comma-joined, exposed as a list
    _tags = Column("tags", String(255), nullable=True)

    created_at = timestamp_created()
    updated_at = timestamp_updated()

    metrics = relationship("Metric", back_populates="endpoint", cascade="all, delete-orphan", passive_deletes=True)
    alerts = relationship("Alert", back_populates="endpoint", cascade="all, delete-orphan", passive_deletes=True)
    incidents = relationship("Incident", back_populates="endpoint", cascade="all, delete-orphan", passive_deletes=True)

    @validates("method")
    def _validate_method(self, key, value):
        try:
            return HttpMethod((value or "").strip().upper()).value
        except ValueError:
            raise ValidationError(f"Unsupported HTTP method: {value!r}")

    @property
    def tags(self) -> list[str]:
        return [t for t in (self._tags or "").split(",") if t]

    @tags.setter
    def tags(self, value):
        if isinstance(value, (list, tuple)):
            value = ",".join(value)
        self._tags = value or None

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}" if self.base_url else self.path

    def __repr__(self):
        return f"<Endpoint({self.method} {self.path}, active={self.is_active})>"
