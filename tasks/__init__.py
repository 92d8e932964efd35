# Tasks package - Celery background tasks
from .analysis import run_analysis, CallbackTask

__all__ = [
    "run_analysis",
    "CallbackTask",
]
