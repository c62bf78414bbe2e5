"""
Endpoint prober.

Issues one request per endpoint and turns the outcome, response or
transport failure, into a ProbeResult ready to be stored as a Metric.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from opentelemetry import trace

from apiwatch.clock import SystemClock
from apiwatch.exceptions import TransportError
from apiwatch.metrics import probes_total, probe_response_time_seconds
from apiwatch.schemas import EndpointSnapshot, ResponseMetadata
from apiwatch.services.http_transport import HttpTransport, TransportResponse

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def is_success_status(status_code: Optional[int]) -> bool:
    return status_code is not None and 200 <= status_code < 400


@dataclass
class ProbeResult:
    endpoint: EndpointSnapshot
    timestamp: datetime
    elapsed_ms: int
    response_time: Optional[int]
    status_code: Optional[int]
    success: bool
    error_message: Optional[str] = None
    metadata: Optional[ResponseMetadata] = None

    @property
    def transport_failed(self) -> bool:
        return self.error_message is not None and self.status_code is None

    def metric_fields(self) -> dict:
        return {
            "endpoint_id": self.endpoint.id,
            "timestamp": self.timestamp,
            "response_time": self.response_time,
            "status_code": self.status_code,
            "success": self.success,
            "error_message": self.error_message,
            "response_metadata": self.metadata.model_dump() if self.metadata else None,
        }


class Prober:
    """Measures one endpoint per call; never raises on transport failure."""

    def __init__(self, transport: HttpTransport, clock=None, capture_body: bool = True):
        self.transport = transport
        self.clock = clock or SystemClock()
        self.capture_body = capture_body

    async def probe(self, endpoint: EndpointSnapshot) -> ProbeResult:
        with tracer.start_as_current_span("probe.endpoint") as span:
            span.set_attribute("endpoint.id", str(endpoint.id))
            span.set_attribute("endpoint.method", endpoint.method)
            span.set_attribute("endpoint.url", endpoint.url)

            timestamp = self.clock.now()
            started = self.clock.monotonic()
            logger.debug("Probing %s %s", endpoint.method, endpoint.url)

            try:
                response = await self.transport.perform(endpoint.method, endpoint.url)
            except TransportError as e:
                elapsed_ms = self._elapsed_ms(started)
                span.set_attribute("probe.error", str(e))
                logger.warning(
                    "Probe of %s %s failed after %dms: %s",
                    endpoint.method, endpoint.url, elapsed_ms, e,
                )
                probes_total.labels(endpoint_id=str(endpoint.id), outcome="error").inc()
                return ProbeResult(
                    endpoint=endpoint,
                    timestamp=timestamp,
                    elapsed_ms=elapsed_ms,
                    response_time=None,
                    status_code=None,
                    success=False,
                    error_message=str(e),
                )

            elapsed_ms = self._elapsed_ms(started)
            success = is_success_status(response.status_code)
            span.set_attribute("http.status_code", response.status_code)

            probes_total.labels(
                endpoint_id=str(endpoint.id),
                outcome="success" if success else "failure",
            ).inc()
            probe_response_time_seconds.labels(endpoint_id=str(endpoint.id)).observe(elapsed_ms / 1000.0)

            logger.debug(
                "%s %s returned %s in %dms",
                endpoint.method, endpoint.url, response.status_code, elapsed_ms,
            )

            return ProbeResult(
                endpoint=endpoint,
                timestamp=timestamp,
                elapsed_ms=elapsed_ms,
                response_time=elapsed_ms,
                status_code=response.status_code,
                success=success,
                metadata=self._metadata(response),
            )

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int(round((self.clock.monotonic() - started) * 1000)))

    def _metadata(self, response: TransportResponse) -> ResponseMetadata:
        headers = response.headers or {}
        raw_length = headers.get("content-length")
        return ResponseMetadata(
            headers=headers,
            content_length=int(raw_length) if raw_length and raw_length.isdigit() else None,
            content_type=headers.get("content-type"),
            response_body_sample=response.body if self.capture_body else None,
        )
