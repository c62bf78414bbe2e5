from fastapi import Request

from apiwatch.services.monitoring_engine import MonitoringEngine


def get_engine(request: Request) -> MonitoringEngine:
    """The process-wide engine created in the app lifespan."""
    return request.app.state.engine
