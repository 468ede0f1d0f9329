"""Celery worker entry point.

    celery -A workhub.worker worker --loglevel=info
"""

from workhub.jobs.celery_app import get_celery_app

celery_app = get_celery_app()

__all__ = ["celery_app"]
