"""
Monitoring engine: wires the endpoint registry, prober, threshold evaluator,
security scanner and housekeeping jobs onto a scheduler.

Database work is synchronous SQLAlchemy inside short session scopes; no
session is held across an await. Each probe gets its own session so
concurrent probes never share one.
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from opentelemetry import trace

from apiwatch.clock import SystemClock
from apiwatch.config import Settings, get_settings
from apiwatch.db.database import SessionLocal
from apiwatch.repositories.metric_repository import MetricRepository
from apiwatch.scheduler import Scheduler
from apiwatch.schemas import (
    AlertPage,
    AlertRecord,
    EndpointMetricsReport,
    EndpointSnapshot,
    HealthScore,
    IncidentPage,
    IncidentRecord,
    MonitoringOverview,
    SecurityOverview,
    SystemStatusRecord,
)
from apiwatch.services.alert_service import AlertService
from apiwatch.services.endpoint_registry import EndpointRegistry
from apiwatch.services.health_score_service import HealthScoreService
from apiwatch.services.housekeeping_service import HousekeepingService
from apiwatch.services.http_transport import HttpTransport
from apiwatch.services.prober import Prober, ProbeResult
from apiwatch.services.reporting_service import ReportingService
from apiwatch.services.security_scanner import ScanReport, SecurityScanner
from apiwatch.services.threshold_evaluator import ThresholdEvaluator

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PERFORMANCE_JOB = "performance"
SECURITY_JOB = "security"
SYSTEM_STATUS_JOB = "system_status"
RETENTION_JOB = "metric_retention"


class MonitoringEngine:
    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        transport: Optional[HttpTransport] = None,
        clock=None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory or SessionLocal
        self.clock = clock or SystemClock()
        self.transport = transport or HttpTransport(
            timeout=self.settings.probe_timeout_seconds,
            body_sample_size=(
                self.settings.response_body_sample_size if self.settings.capture_response_body else 0
            ),
        )
        self.prober = Prober(self.transport, clock=self.clock, capture_body=self.settings.capture_response_body)
        self.registry = EndpointRegistry()

        self.scheduler = Scheduler(clock=self.clock)
        self.scheduler.add_job(PERFORMANCE_JOB, self.settings.performance_interval_seconds, self.run_performance_cycle)
        self.scheduler.add_job(SECURITY_JOB, self.settings.security_interval_seconds, self.run_security_cycle)
        self.scheduler.add_job(
            SYSTEM_STATUS_JOB, self.settings.system_status_interval_seconds, self._system_status_job
        )
        self.scheduler.add_job(
            RETENTION_JOB, self.settings.retention_interval_seconds, self._retention_job,
            run_immediately=False,
        )

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> bool:
        """
        Start every periodic job.

        Returns False when already running, when there are no active
        endpoints, or when the store cannot be reached.
        """
        if self.scheduler.is_running:
            logger.info("Monitoring engine is already running")
            return False

        try:
            with self._session() as db:
                endpoints = self.registry.refresh(db)
        except SQLAlchemyError:
            logger.exception("Failed to start monitoring engine: could not load endpoints")
            return False

        if not endpoints:
            logger.warning("No active endpoints to monitor")
            return False

        self.scheduler.start()
        logger.info(
            "Monitoring engine started: %d endpoints, performance every %gs, security every %gs",
            len(endpoints),
            self.settings.performance_interval_seconds,
            self.settings.security_interval_seconds,
        )
        return True

    def stop(self) -> bool:
        """Stop future cycles. Returns False when already stopped; never raises."""
        try:
            stopped = self.scheduler.stop()
        except Exception:
            logger.exception("Error while stopping monitoring engine")
            return False
        if not stopped:
            logger.info("Monitoring engine is not running")
        return stopped

    async def aclose(self) -> None:
        """Stop, release the scheduler backend and close the shared HTTP client."""
        self.scheduler.shutdown()
        await self.transport.aclose()

    @property
    def is_running(self) -> bool:
        return self.scheduler.is_running

    @property
    def active_endpoint_count(self) -> int:
        return len(self.registry)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------
    async def run_performance_cycle(self) -> List[ProbeResult]:
        """Probe every active endpoint concurrently; one metric per endpoint."""
        with tracer.start_as_current_span("cycle.performance") as span:
            with self._session() as db:
                endpoints = self.registry.refresh(db)
            span.set_attribute("endpoints.count", len(endpoints))

            if not endpoints:
                logger.info("Performance cycle skipped: no active endpoints")
                return []

            outcomes = await asyncio.gather(
                *(self._process_endpoint(endpoint) for endpoint in endpoints),
                return_exceptions=True,
            )

        results: List[ProbeResult] = []
        for endpoint, outcome in zip(endpoints, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Processing endpoint %s failed: %s", endpoint.id, outcome,
                    exc_info=(type(outcome), outcome, outcome.__traceback__),
                )
                continue
            results.append(outcome)

        logger.info("Performance cycle complete: %d/%d endpoints processed", len(results), len(endpoints))
        return results

    async def _process_endpoint(self, endpoint: EndpointSnapshot) -> ProbeResult:
        result = await self.prober.probe(endpoint)

        with self._session() as db:
            try:
                MetricRepository.create(db, **result.metric_fields())
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Failed to store metric for endpoint %s", endpoint.id)
                return result

            alert_service = AlertService(db, clock=self.clock)
            if result.transport_failed:
                try:
                    alert_service.create_incident_from_error(endpoint, result.error_message)
                except SQLAlchemyError:
                    db.rollback()
                    logger.exception("Failed to open incident for endpoint %s", endpoint.id)
            else:
                ThresholdEvaluator(db, alert_service, clock=self.clock).evaluate(
                    endpoint,
                    response_time=result.response_time,
                    status_code=result.status_code,
                    success=result.success,
                )
        return result

    async def run_security_cycle(self) -> ScanReport:
        with tracer.start_as_current_span("cycle.security"):
            with self._session() as db:
                endpoints = self.registry.refresh(db)
                scanner = SecurityScanner(db, AlertService(db, clock=self.clock), clock=self.clock)
                report = scanner.scan(endpoints)

        logger.info(
            "Security cycle complete: %d endpoints scanned, %d alerts, %d failed checks",
            report.endpoints_scanned, len(report.alerts), report.failed_checks,
        )
        return report

    def collect_system_status(self) -> SystemStatusRecord:
        with self._session() as db:
            snapshot = HousekeepingService(db, clock=self.clock).collect_system_status()
            return SystemStatusRecord.model_validate(snapshot)

    def cleanup_old_metrics(self) -> int:
        with self._session() as db:
            return HousekeepingService(db, clock=self.clock).cleanup_old_metrics(
                self.settings.metric_retention_days
            )

    async def _system_status_job(self) -> None:
        self.collect_system_status()

    async def _retention_job(self) -> None:
        self.cleanup_old_metrics()

    # ------------------------------------------------------------------
    # Reporting and status changes
    # ------------------------------------------------------------------
    def get_monitoring_overview(self) -> MonitoringOverview:
        with self._session() as db:
            return ReportingService(db, clock=self.clock).monitoring_overview(running=self.is_running)

    def get_endpoint_metrics(self, endpoint_id: UUID, time_range: str = "24h") -> EndpointMetricsReport:
        with self._session() as db:
            return ReportingService(db, clock=self.clock).endpoint_metrics(endpoint_id, time_range)

    def get_security_overview(self) -> SecurityOverview:
        with self._session() as db:
            return ReportingService(db, clock=self.clock).security_overview()

    def get_alerts(
        self,
        endpoint_id: Optional[UUID] = None,
        alert_type: Optional[str] = None,
        status: Optional[str] = None,
        security_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> AlertPage:
        with self._session() as db:
            return ReportingService(db, clock=self.clock).list_alerts(
                endpoint_id=endpoint_id,
                alert_type=alert_type,
                status=status,
                security_only=security_only,
                limit=limit,
                offset=offset,
            )

    def get_incidents(
        self,
        endpoint_id: Optional[UUID] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> IncidentPage:
        with self._session() as db:
            return ReportingService(db, clock=self.clock).list_incidents(
                endpoint_id=endpoint_id, status=status, limit=limit, offset=offset
            )

    def calculate_endpoint_health_score(self, endpoint_id: UUID) -> HealthScore:
        with self._session() as db:
            return HealthScoreService(db, clock=self.clock).calculate(endpoint_id)

    def update_alert_status(self, alert_id: UUID, status: str, actor: Optional[str] = None) -> AlertRecord:
        with self._session() as db:
            alert = AlertService(db, clock=self.clock).update_alert_status(alert_id, status, actor)
            return AlertRecord.model_validate(alert)

    def update_incident_status(
        self,
        incident_id: UUID,
        status: str,
        actor: Optional[str] = None,
        resolution: Optional[str] = None,
    ) -> IncidentRecord:
        with self._session() as db:
            incident = AlertService(db, clock=self.clock).update_incident_status(
                incident_id, status, actor, resolution
            )
            return IncidentRecord.model_validate(incident)
