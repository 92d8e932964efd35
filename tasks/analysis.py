"""
Celery background tasks for the Framework Analyzer
Executes analysis runs created by the API process
"""

import asyncio
import logging
from typing import Optional

from celery import Task
from celery.exceptions import SoftTimeLimitExceeded

from core.celery import celery_app
from analyzer.orchestrator import AnalysisOrchestrator
from analyzer.pipeline import build_orchestrator

logger = logging.getLogger(__name__)

# One orchestrator per worker process
_worker_orchestrator: Optional[AnalysisOrchestrator] = None


def get_worker_orchestrator() -> AnalysisOrchestrator:
    global _worker_orchestrator
    if _worker_orchestrator is None:
        _worker_orchestrator = build_orchestrator(dispatch=False)
    return _worker_orchestrator


class CallbackTask(Task):
    """
    Custom Celery task class with logging callbacks.
    """

    def on_success(self, retval, task_id, args, kwargs):
        """Called when task succeeds"""
        logger.info(f"✅ Task {task_id} completed successfully")

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Called when task fails"""
        logger.error(f"❌ Task {task_id} failed: {str(exc)}")


@celery_app.task(
    bind=True,
    base=CallbackTask,
    name="tasks.run_analysis",
    autoretry_for=(),  # Step retries are explicit, through the API
)
def run_analysis(self, run_id: str) -> dict:
    """
    Celery task executing every pending step of an analysis run.

    Args:
        run_id: Run created by AnalysisOrchestrator.start()

    Returns:
        Dictionary with the final run status and progress
    """
    logger.info(f"🚀 Worker task {self.request.id} executing run {run_id}")
    orchestrator = get_worker_orchestrator()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        run = loop.run_until_complete(orchestrator.execute(run_id))
    except SoftTimeLimitExceeded:
        logger.error(f"⏱️ Run {run_id} exceeded the worker time limit")
        orchestrator.abort(run_id, "Worker time limit exceeded")
        raise
    except Exception as e:
        logger.exception(f"❌ Run {run_id} crashed on worker: {str(e)}")
        orchestrator.abort(run_id, f"Execution error: {str(e)}")
        raise
    finally:
        loop.close()

    return {"run_id": run.id, "status": run.status.value, "overall_progress": run.overall_progress}
