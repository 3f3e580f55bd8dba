"""Celery application configuration for the provisioning control plane.

Sets up the broker (Redis), result backend, serialisation, task routing,
retry policies and the periodic auto status transition sweep.
"""

from __future__ import annotations

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from infrastructure.observability.logging_config import setup_logging
from infrastructure.settings import get_settings

_settings = get_settings()

app = Celery("provisioning_core")

# ---------------------------------------------------------------------------
# Broker and result backend
# ---------------------------------------------------------------------------

app.conf.broker_url = _settings.celery_broker_url
app.conf.result_backend = _settings.celery_result_backend

# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

app.conf.accept_content = ["json"]
app.conf.task_serializer = "json"
app.conf.result_serializer = "json"

# ---------------------------------------------------------------------------
# Task routing
# ---------------------------------------------------------------------------

app.conf.task_routes = {
    "application.tasks.provisioning_tasks.run_auto_status_transitions": {"queue": "maintenance"},
    "application.tasks.provisioning_tasks.*": {"queue": "provisioning"},
}

# ---------------------------------------------------------------------------
# Default retry policy
# ---------------------------------------------------------------------------

app.conf.task_annotations = {
    "*": {
        "max_retries": 3,
        "default_retry_delay": 60,
        "retry_backoff": True,
        "retry_backoff_max": 600,
        "retry_jitter": True,
    },
}

# ---------------------------------------------------------------------------
# Periodic jobs
# ---------------------------------------------------------------------------

app.conf.beat_schedule = {
    "auto-status-transitions": {
        "task": "application.tasks.provisioning_tasks.run_auto_status_transitions",
        "schedule": _settings.auto_status_transition_interval_seconds,
    },
}

# ---------------------------------------------------------------------------
# Miscellaneous
# ---------------------------------------------------------------------------

app.conf.task_acks_late = True
app.conf.worker_prefetch_multiplier = 1
app.conf.task_track_started = True
app.conf.task_time_limit = 900
app.conf.task_soft_time_limit = 840
app.conf.timezone = "UTC"

# ---------------------------------------------------------------------------
# Autodiscovery
# ---------------------------------------------------------------------------

app.autodiscover_tasks(["application.tasks.provisioning_tasks"])


@celery_setup_logging.connect
def _configure_logging(**_kwargs: object) -> None:
    """Replace Celery's logging setup with the structlog JSON bridge."""
    setup_logging(_settings.log_level)
