from prometheus_client import Counter, Gauge, Histogram

probes_total = Counter(
    "apiwatch_probes_total",
    "Number of endpoint probes performed",
    ["endpoint_id", "outcome"]
)

probe_response_time_seconds = Histogram(
    "apiwatch_probe_response_time_seconds",
    "Response time of probed endpoints in seconds",
    ["endpoint_id"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0]
)

alerts_created_total = Counter(
    "apiwatch_alerts_created_total",
    "Number of alerts created (suppressed duplicates excluded)",
    ["alert_type"]
)

alerts_suppressed_total = Counter(
    "apiwatch_alerts_suppressed_total",
    "Number of alerts suppressed by the dedup window",
    ["alert_type"]
)

incidents_opened_total = Counter(
    "apiwatch_incidents_opened_total",
    "Number of incidents opened",
    ["severity"]
)

cycle_duration_seconds = Histogram(
    "apiwatch_cycle_duration_seconds",
    "Duration of scheduled monitoring jobs in seconds",
    ["job"]
)

cycle_failures_total = Counter(
    "apiwatch_cycle_failures_total",
    "Number of scheduled job runs that raised",
    ["job"]
)

scheduler_running = Gauge(
    "apiwatch_scheduler_running",
    "Whether the monitoring scheduler is running (1) or stopped (0)"
)

metrics_purged_total = Counter(
    "apiwatch_metrics_purged_total",
    "Number of metrics deleted by the retention purge"
)
