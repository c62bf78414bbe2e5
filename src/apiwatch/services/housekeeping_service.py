"""
Housekeeping jobs: host resource snapshots and metric retention.
"""

import logging
import time
from datetime import timedelta
from typing import Optional

import psutil
from sqlalchemy.orm import Session
from opentelemetry import trace

from apiwatch.clock import SystemClock
from apiwatch.metrics import metrics_purged_total
from apiwatch.models.system_status import SystemStatus
from apiwatch.repositories.metric_repository import MetricRepository
from apiwatch.repositories.system_status_repository import SystemStatusRepository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_RETENTION_DAYS = 30


def _active_connections() -> Optional[int]:
    try:
        return len(psutil.net_connections(kind="inet"))
    except (psutil.AccessDenied, PermissionError):
        # macOS and unprivileged containers refuse the system-wide listing
        return None


class HousekeepingService:
    def __init__(self, db: Session, clock=None):
        self.db = db
        self.clock = clock or SystemClock()

    def collect_system_status(self) -> SystemStatus:
        """Snapshot this process's host resources and persist it."""
        with tracer.start_as_current_span("housekeeping.collect_system_status"):
            process = psutil.Process()
            cpu_times = process.cpu_times()
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage("/")
            net = psutil.net_io_counters()

            snapshot = SystemStatusRepository.create(
                self.db,
                timestamp=self.clock.now(),
                cpu_usage=cpu_times.user + cpu_times.system,
                memory_usage=memory.percent,
                disk_usage=disk.percent,
                network_usage=float(net.bytes_sent + net.bytes_recv) if net else None,
                active_connections=_active_connections(),
                uptime=int(time.time() - process.create_time()),
                additional_metrics={
                    "totalMemory": memory.total,
                    "freeMemory": memory.available,
                    "loadAverage": list(psutil.getloadavg()),
                    "cpuCount": psutil.cpu_count(),
                },
            )

        logger.debug(
            "System status recorded: cpu=%.2fs mem=%.1f%% disk=%.1f%%",
            snapshot.cpu_usage, snapshot.memory_usage, snapshot.disk_usage,
        )
        return snapshot

    def cleanup_old_metrics(self, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Delete metrics older than the retention period; returns the count."""
        cutoff = self.clock.now() - timedelta(days=retention_days)
        deleted = MetricRepository.delete_older_than(self.db, cutoff)
        metrics_purged_total.inc(deleted)
        return deleted
