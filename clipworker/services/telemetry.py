"""Prometheus metrics for the polling worker."""

from __future__ import annotations

import structlog
from prometheus_client import Counter, Histogram, start_http_server

logger = structlog.get_logger(__name__)

JOBS_CLAIMED = Counter(
    "clipworker_jobs_claimed_total",
    "Jobs claimed from the queue",
    labelnames=("job_type",),
)
JOBS_FINISHED = Counter(
    "clipworker_jobs_finished_total",
    "Job executions grouped by outcome (completed, retry, failed, lease_lost)",
    labelnames=("job_type", "outcome"),
)
JOBS_RECOVERED = Counter(
    "clipworker_jobs_recovered_total",
    "Expired leases recovered by the timeout scan",
    labelnames=("job_type", "outcome"),
)
JOB_DURATION = Histogram(
    "clipworker_job_duration_seconds",
    "Wall time of a single job execution",
    labelnames=("job_type",),
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1200),
)

_server_started = False


def start_metrics_server(settings) -> bool:
    """Expose metrics over HTTP when a port is configured."""

    global _server_started
    if _server_started or settings.worker_prometheus_port is None:
        return False
    start_http_server(port=settings.worker_prometheus_port, addr=settings.worker_prometheus_host)
    _server_started = True
    logger.info(
        "worker.metrics_server",
        host=settings.worker_prometheus_host,
        port=settings.worker_prometheus_port,
    )
    return True
