"""
Prometheus metrics for the provisioning core.

Module-level singletons registered on the default registry; a Celery
worker exposes them with ``prometheus_client.start_http_server``.
"""

from __future__ import annotations

from prometheus_client import REGISTRY, Counter, Histogram


provisioning_step_runs_total = Counter(
    "provisioning_step_runs_total",
    "Provisioning step executions by final status",
    labelnames=["step_name", "status"],
    registry=REGISTRY,
)

provisioning_step_duration_seconds = Histogram(
    "provisioning_step_duration_seconds",
    "Wall-clock duration of a provisioning step run",
    labelnames=["step_name"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=REGISTRY,
)

provisioning_step_retries_total = Counter(
    "provisioning_step_retries_total",
    "Retry attempts by outcome",
    labelnames=["step_name", "outcome"],
    registry=REGISTRY,
)

project_status_transitions_total = Counter(
    "project_status_transitions_total",
    "Automatic project status transitions",
    labelnames=["from_status", "to_status"],
    registry=REGISTRY,
)

service_health_checks_total = Counter(
    "service_health_checks_total",
    "Health probes by service and result",
    labelnames=["service", "healthy"],
    registry=REGISTRY,
)


def record_step_run(step_name: str, status: str, duration_seconds: float) -> None:
    provisioning_step_runs_total.labels(step_name=step_name, status=status).inc()
    provisioning_step_duration_seconds.labels(step_name=step_name).observe(duration_seconds)


def record_retry(step_name: str, outcome: str) -> None:
    provisioning_step_retries_total.labels(step_name=step_name, outcome=outcome).inc()


def record_status_transition(from_status: str, to_status: str) -> None:
    project_status_transitions_total.labels(from_status=from_status, to_status=to_status).inc()


def record_health_check(service: str, healthy: bool) -> None:
    service_health_checks_total.labels(service=service, healthy=str(healthy).lower()).inc()
