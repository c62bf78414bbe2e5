"""
Composite endpoint health score.

Score (0-100) over the trailing 24 hours of metrics:

    availability   40  success / total
    response time  30  min(1, threshold / avg response time)
    error rate     20  min(1, error-rate threshold / observed error rate)
    stability      10  min(1, 100 / std deviation of response times)
"""

import logging
import statistics
from datetime import timedelta
from typing import List, Sequence
from uuid import UUID

from sqlalchemy.orm import Session
from opentelemetry import trace

from apiwatch.clock import SystemClock
from apiwatch.exceptions import NotFoundError
from apiwatch.models.metric import Metric
from apiwatch.repositories.endpoint_repository import EndpointRepository
from apiwatch.repositories.metric_repository import MetricRepository
from apiwatch.schemas import HealthScore, HealthScoreBreakdown

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SCORE_WINDOW = timedelta(hours=24)

AVAILABILITY_WEIGHT = 40
RESPONSE_TIME_WEIGHT = 30
ERROR_RATE_WEIGHT = 20
STABILITY_WEIGHT = 10

# Floors that keep the ratios finite
MIN_AVG_RESPONSE_TIME = 1.0
MIN_ERROR_RATE = 0.1
MIN_STD_DEVIATION = 1.0
STABILITY_REFERENCE_MS = 100.0


def population_std_deviation(values: Sequence[float]) -> float:
    """Population standard deviation; 1 for fewer than two samples or zero spread."""
    if len(values) <= 1:
        return MIN_STD_DEVIATION
    return statistics.pstdev(values) or MIN_STD_DEVIATION


class HealthScoreService:
    def __init__(self, db: Session, clock=None):
        self.db = db
        self.clock = clock or SystemClock()

    def calculate(self, endpoint_id: UUID) -> HealthScore:
        """
        Calculate the health score for an endpoint.

        Returns a HealthScore with score=None when the endpoint has no metrics
        in the window.

        Raises:
            NotFoundError: unknown endpoint.
        """
        with tracer.start_as_current_span("health.calculate_score") as span:
            span.set_attribute("endpoint.id", str(endpoint_id))

            endpoint = EndpointRepository.get(self.db, endpoint_id)
            if endpoint is None:
                raise NotFoundError(f"Endpoint {endpoint_id} not found")

            now = self.clock.now()
            metrics = MetricRepository.list_for_endpoint(self.db, endpoint_id, now - SCORE_WINDOW)
            if not metrics:
                return HealthScore(
                    endpoint_id=endpoint_id,
                    message="No data available",
                    calculated_at=now,
                )

            score, breakdown = self.score_metrics(
                metrics,
                response_time_threshold=endpoint.response_time_threshold,
                error_rate_threshold=endpoint.error_rate_threshold,
            )
            span.set_attribute("health.score", score)

        logger.debug("Health score for endpoint %s: %d", endpoint_id, score)
        return HealthScore(
            endpoint_id=endpoint_id,
            score=score,
            details=breakdown,
            calculated_at=now,
        )

    @staticmethod
    def score_metrics(
        metrics: List[Metric],
        response_time_threshold: float,
        error_rate_threshold: float,
    ) -> tuple[int, HealthScoreBreakdown]:
        total = len(metrics)
        succeeded = sum(1 for m in metrics if m.success)

        availability_score = succeeded / total * AVAILABILITY_WEIGHT

        avg_response_time = sum(m.response_time or 0 for m in metrics) / total
        response_ratio = min(1.0, response_time_threshold / (avg_response_time or MIN_AVG_RESPONSE_TIME))
        response_time_score = response_ratio * RESPONSE_TIME_WEIGHT

        error_rate = (total - succeeded) / total * 100
        error_ratio = min(1.0, error_rate_threshold / (error_rate or MIN_ERROR_RATE))
        error_rate_score = error_ratio * ERROR_RATE_WEIGHT

        latencies = [m.response_time for m in metrics if m.response_time]
        std_deviation = population_std_deviation(latencies)
        stability_ratio = min(1.0, STABILITY_REFERENCE_MS / std_deviation)
        stability_score = stability_ratio * STABILITY_WEIGHT

        score = round(availability_score + response_time_score + error_rate_score + stability_score)

        if avg_response_time:
            stability_pct = round(100 - (std_deviation / avg_response_time) * 100)
        else:
            stability_pct = 100

        breakdown = HealthScoreBreakdown(
            availability=round(succeeded / total * 100),
            response_time=round(avg_response_time),
            error_rate=round(error_rate * 10) / 10,
            stability=stability_pct,
            metrics=total,
        )
        return max(0, min(100, score)), breakdown
