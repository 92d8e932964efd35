"""
Celery application configuration for the Framework Analyzer
Runs analysis executions in background workers with Redis as broker
"""

import logging

from celery import Celery
from celery.signals import (
    task_prerun,
    task_postrun,
    task_failure,
    task_revoked,
    worker_ready,
    worker_shutdown,
)
from kombu import Queue

from config import settings

logger = logging.getLogger(__name__)

# Create Celery application
celery_app = Celery(
    "framework_analyzer",
    broker=settings.celery_broker,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["tasks.analysis"],  # Auto-discover tasks from tasks/analysis.py
)

# Celery Configuration
celery_app.conf.update(
    # Task Settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task Execution
    task_acks_late=True,  # Acknowledge task after completion (ensures no lost tasks)
    task_reject_on_worker_lost=True,  # Re-queue if worker crashes
    task_track_started=True,
    # Task Time Limits
    task_time_limit=settings.TASK_TIME_LIMIT,  # Hard limit (kills task)
    task_soft_time_limit=settings.TASK_SOFT_TIME_LIMIT,  # Soft limit (raises exception)
    # Result Backend Settings
    result_expires=settings.CELERY_RESULT_EXPIRES,
    # Worker Settings
    worker_prefetch_multiplier=settings.WORKER_PREFETCH_MULTIPLIER,
    worker_max_tasks_per_child=settings.WORKER_MAX_TASKS_PER_CHILD,  # Restart worker after N tasks
    # Queue Configuration
    task_default_queue="analysis",
    task_queues=(Queue("analysis", routing_key="task.analysis"),),
    # Optimization
    broker_connection_retry_on_startup=True,
)

# Task Routing
celery_app.conf.task_routes = {
    "tasks.run_analysis": {"queue": "analysis"},
}


# Celery Signals for Logging
@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    """Called when worker starts"""
    logger.info("🚀 Celery worker is ready and waiting for analyses")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    """Called when worker shuts down"""
    logger.info("🛑 Celery worker is shutting down")


@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, args=None, **kwargs):
    """Called before task execution"""
    logger.info(f"⏳ Starting task: {task.name} [ID: {task_id}] [Args: {args}]")


@task_postrun.connect
def task_postrun_handler(
    sender=None, task_id=None, task=None, retval=None, state=None, **kwargs
):
    """Called after task execution"""
    logger.info(f"✅ Completed task: {task.name} [ID: {task_id}] [State: {state}]")


@task_failure.connect
def task_failure_handler(
    sender=None, task_id=None, exception=None, traceback=None, **kwargs
):
    """Called when task fails"""
    logger.error(
        f"❌ Task failed: {sender.name} [ID: {task_id}] [Error: {str(exception)}]"
    )


@task_revoked.connect
def task_revoked_handler(sender=None, request=None, terminated=None, **kwargs):
    """Called when an analysis is cancelled"""
    task_id = getattr(request, "id", None)
    logger.warning(f"🛑 Task revoked: [ID: {task_id}] [Terminated: {terminated}]")


def dispatch_analysis(run_id: str) -> str:
    """Queue a run for execution on a worker; returns the Celery task id"""
    from tasks.analysis import run_analysis

    result = run_analysis.delay(run_id)
    return result.id


def revoke_analysis(task_id: str) -> None:
    """Stop a queued or running analysis task"""
    celery_app.control.revoke(task_id, terminate=True)
