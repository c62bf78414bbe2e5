"""
API routes for the monitoring engine.

Endpoints:
- POST /monitoring/start - Start the scheduled cycles
- POST /monitoring/stop - Stop the scheduled cycles
- GET /monitoring/status - Engine status
- GET /monitoring/overview - Dashboard overview
- GET /monitoring/security/overview - Security alert summary (last 24h)
- GET /monitoring/security/alerts - Filtered, paginated security alerts
- GET /monitoring/endpoints/{id}/metrics - Hourly metrics for one endpoint
- GET /monitoring/endpoints/{id}/health-score - Composite health score
"""

from fastapi import APIRouter, Depends, HTTPException, status, Query
from pydantic import BaseModel
from typing import Optional
from uuid import UUID

from apiwatch.api.dependencies import get_engine
from apiwatch.exceptions import NotFoundError, ValidationError
from apiwatch.schemas import AlertPage, EndpointMetricsReport, HealthScore, MonitoringOverview, SecurityOverview
from apiwatch.services.monitoring_engine import MonitoringEngine
from opentelemetry import trace

router = APIRouter(prefix="/monitoring", tags=["monitoring"])
tracer = trace.get_tracer(__name__)


class EngineStatusResponse(BaseModel):
    """Response model for start/stop/status."""
    status: str
    changed: bool = False
    active_endpoints: int


def _status(engine: MonitoringEngine, changed: bool = False) -> EngineStatusResponse:
    return EngineStatusResponse(
        status="running" if engine.is_running else "stopped",
        changed=changed,
        active_endpoints=engine.active_endpoint_count,
    )


@router.post("/start", response_model=EngineStatusResponse)
async def start_monitoring(engine: MonitoringEngine = Depends(get_engine)):
    """
    Start monitoring. `changed` is false when the engine was already running,
    has no active endpoints, or could not reach the database.
    """
    with tracer.start_as_current_span("start_monitoring"):
        started = await engine.start()
        return _status(engine, changed=started)


@router.post("/stop", response_model=EngineStatusResponse)
async def stop_monitoring(engine: MonitoringEngine = Depends(get_engine)):
    with tracer.start_as_current_span("stop_monitoring"):
        stopped = engine.stop()
        return _status(engine, changed=stopped)


@router.get("/status", response_model=EngineStatusResponse)
def monitoring_status(engine: MonitoringEngine = Depends(get_engine)):
    return _status(engine)


@router.get("/overview", response_model=MonitoringOverview)
def monitoring_overview(engine: MonitoringEngine = Depends(get_engine)):
    with tracer.start_as_current_span("monitoring_overview"):
        return engine.get_monitoring_overview()


@router.get("/security/overview", response_model=SecurityOverview)
def security_overview(engine: MonitoringEngine = Depends(get_engine)):
    with tracer.start_as_current_span("security_overview"):
        return engine.get_security_overview()


@router.get("/security/alerts", response_model=AlertPage)
def security_alerts(
    endpoint_id: Optional[UUID] = None,
    alert_type: Optional[str] = Query(None, alias="type"),
    alert_status: Optional[str] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    engine: MonitoringEngine = Depends(get_engine),
):
    """Security alerts only (vulnerability, rate limit, auth failure, sensitive data)."""
    with tracer.start_as_current_span("security_alerts"):
        try:
            return engine.get_alerts(
                endpoint_id=endpoint_id,
                alert_type=alert_type,
                status=alert_status,
                security_only=True,
                limit=limit,
                offset=offset,
            )
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/endpoints/{endpoint_id}/metrics", response_model=EndpointMetricsReport)
def endpoint_metrics(
    endpoint_id: UUID,
    time_range: str = Query("24h", description="Range like 1h, 24h, 7d, 1m, 1y"),
    engine: MonitoringEngine = Depends(get_engine),
):
    with tracer.start_as_current_span("endpoint_metrics"):
        try:
            return engine.get_endpoint_metrics(endpoint_id, time_range)
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/endpoints/{endpoint_id}/health-score", response_model=HealthScore)
def endpoint_health_score(endpoint_id: UUID, engine: MonitoringEngine = Depends(get_engine)):
    with tracer.start_as_current_span("endpoint_health_score"):
        try:
            return engine.calculate_endpoint_health_score(endpoint_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
