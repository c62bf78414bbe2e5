"""
API routes for alert and incident status changes.

Endpoints:
- GET /alerts - Filtered, paginated alerts (newest first)
- GET /incidents - Filtered, paginated incidents (newest first)
- PATCH /alerts/{id}/status - Acknowledge, resolve or mark false positive
- PATCH /incidents/{id}/status - Acknowledge or resolve (resolving cascades to alerts)
"""

from fastapi import APIRouter, Depends, HTTPException, status, Query
from pydantic import BaseModel
from typing import Optional
from uuid import UUID

from apiwatch.api.dependencies import get_engine
from apiwatch.exceptions import NotFoundError, ValidationError
from apiwatch.schemas import AlertPage, AlertRecord, IncidentPage, IncidentRecord
from apiwatch.services.monitoring_engine import MonitoringEngine
from opentelemetry import trace

router = APIRouter(tags=["alerts"])
tracer = trace.get_tracer(__name__)


class AlertStatusUpdate(BaseModel):
    status: str
    actor: Optional[str] = None


class IncidentStatusUpdate(BaseModel):
    status: str
    actor: Optional[str] = None
    resolution: Optional[str] = None


@router.get("/alerts", response_model=AlertPage)
def list_alerts(
    endpoint_id: Optional[UUID] = None,
    alert_type: Optional[str] = Query(None, alias="type"),
    alert_status: Optional[str] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    engine: MonitoringEngine = Depends(get_engine),
):
    with tracer.start_as_current_span("list_alerts"):
        try:
            return engine.get_alerts(
                endpoint_id=endpoint_id,
                alert_type=alert_type,
                status=alert_status,
                limit=limit,
                offset=offset,
            )
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/incidents", response_model=IncidentPage)
def list_incidents(
    endpoint_id: Optional[UUID] = None,
    incident_status: Optional[str] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    engine: MonitoringEngine = Depends(get_engine),
):
    with tracer.start_as_current_span("list_incidents"):
        try:
            return engine.get_incidents(
                endpoint_id=endpoint_id, status=incident_status, limit=limit, offset=offset
            )
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.patch("/alerts/{alert_id}/status", response_model=AlertRecord)
def update_alert_status(
    alert_id: UUID,
    request: AlertStatusUpdate,
    engine: MonitoringEngine = Depends(get_engine),
):
    with tracer.start_as_current_span("update_alert_status"):
        try:
            return engine.update_alert_status(alert_id, request.status, request.actor)
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.patch("/incidents/{incident_id}/status", response_model=IncidentRecord)
def update_incident_status(
    incident_id: UUID,
    request: IncidentStatusUpdate,
    engine: MonitoringEngine = Depends(get_engine),
):
    with tracer.start_as_current_span("update_incident_status"):
        try:
            return engine.update_incident_status(
                incident_id, request.status, request.actor, request.resolution
            )
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
