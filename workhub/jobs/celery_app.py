"""Celery wiring for background jobs.

The app is created lazily so importing this module never needs a broker.
Workers load the module-level app from ``workhub.worker``.
"""

import logging

from workhub.core.config import settings as default_settings
from workhub.core.logging import configure_logging
from workhub.jobs.runner import job_adapter

logger = logging.getLogger(__name__)

TASK_NAMES = {
    "notify_workspace_members": "workhub.notify_workspace_members",
    "send_welcome_email": "workhub.send_welcome_email",
}

_celery_app = None
_worker_runner = None


def get_celery_app(settings=default_settings):
    """Get or create the Celery application."""
    global _celery_app
    if _celery_app is None:
        from celery import Celery

        configure_logging(settings)
        broker_url = settings.CELERY_BROKER_URL or settings.REDIS_URL
        _celery_app = Celery("workhub", broker=broker_url)
        _celery_app.conf.task_serializer = "json"
        _celery_app.conf.accept_content = ["json"]
        register_tasks(_celery_app, settings)
    return _celery_app


def _runner(settings):
    global _worker_runner
    if _worker_runner is None:
        from workhub.container import build_job_runner

        _worker_runner = build_job_runner(settings)
    return _worker_runner


def register_tasks(app, settings=default_settings):
    """Register one task per job type; each delivery attempt is one task run.

    Returns the registered tasks keyed by job type.
    """

    def run_attempt(task, payload: dict) -> str:
        job = job_adapter.validate_python(payload)
        runner = _runner(settings)
        try:
            runner.handle(job)
        except Exception as exc:
            if task.request.retries >= task.max_retries:
                runner.record_failure(job, exc, task.request.retries + 1)
                return "failed"
            logger.warning(f"Job {job.job_id} attempt {task.request.retries + 1} failed: {exc}")
            raise task.retry(exc=exc, countdown=2 ** task.request.retries)
        return "delivered"

    options = dict(
        bind=True,
        max_retries=max(settings.NOTIFY_MAX_TRIES - 1, 0),
        time_limit=settings.NOTIFY_TIMEOUT_SECONDS,
        acks_late=True,
    )

    @app.task(name=TASK_NAMES["notify_workspace_members"], **options)
    def notify_workspace_members(self, payload: dict):
        return run_attempt(self, payload)

    @app.task(name=TASK_NAMES["send_welcome_email"], **options)
    def send_welcome_email(self, payload: dict):
        return run_attempt(self, payload)

    return {
        "notify_workspace_members": notify_workspace_members,
        "send_welcome_email": send_welcome_email,
    }


def celery_tasks(settings=default_settings) -> dict:
    app = get_celery_app(settings)
    return {job_type: app.tasks[name] for job_type, name in TASK_NAMES.items()}
