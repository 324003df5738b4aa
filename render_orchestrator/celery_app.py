"""Celery application configuration."""

from celery import Celery

from render_orchestrator.config import get_settings

settings = get_settings()

celery_app = Celery(
    "render_orchestrator",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["render_orchestrator.tasks.render_watch_task"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=120,  # A single poll never takes this long
    task_soft_time_limit=90,
    worker_prefetch_multiplier=1,
    task_acks_late=True,  # Acknowledge after task completion
    task_reject_on_worker_lost=True,  # Requeue if worker dies
)
