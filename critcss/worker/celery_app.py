"""Celery application configuration."""

from celery import Celery

from critcss.core.config import settings

celery_app = Celery("critcss")

broker_url = settings.celery_broker_url or settings.redis_url
result_backend = settings.celery_result_backend or settings.redis_url

# Extraction is CPU-bound; one job per worker process at a time.
celery_app.conf.update(
    broker_url=broker_url,
    result_backend=result_backend,
    task_default_queue="critcss",
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_soft_time_limit=60,
    task_time_limit=90,
    worker_max_tasks_per_child=200,
    task_track_started=True,
    task_always_eager=settings.debug,
)

celery_app.autodiscover_tasks(["critcss.tasks"])
