"""
Celery application configuration.
"""

from celery import Celery
from celery.signals import setup_logging

from authz.core.config import get_settings
from authz.core.logging import configure_logging

settings = get_settings()

app = Celery(
    "authz-worker",
    broker=settings.worker.broker_url,
    backend=settings.worker.result_backend,
    include=[
        "authz.worker.tasks.maintenance",
    ],
)

# Celery configuration
app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task routing
    task_routes={
        "authz.worker.tasks.maintenance.*": {"queue": "maintenance"},
    },

    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=3,

    # Result backend settings
    result_expires=3600,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_hijack_root_logger=False,

    # Beat schedule (periodic tasks)
    beat_schedule={
        "sweep-expired-grants": {
            "task": "authz.worker.tasks.maintenance.sweep_expired_grants",
            "schedule": settings.worker.sweep_interval,  # Hourly by default
        },
    },
)


@setup_logging.connect
def _setup_logging(**kwargs) -> None:
    """Use the application log format instead of Celery's."""
    configure_logging(settings)


if __name__ == "__main__":
    app.start()
