# Analyzer package - framework analysis orchestration engine
from .errors import (
    AnalysisServiceError,
    ErrorKind,
    InvalidTransitionError,
    InvalidUrlError,
    NotFoundError,
    TrackerUnavailableError,
)
from .fallback import build_fallback_document
from .frameworks import FRAMEWORKS, FrameworkId
from .orchestrator import AnalysisOrchestrator
from .runner import ParallelFrameworkRunner
from .store import InMemoryRunStore, RedisRunStore
from .tracker import ProgressTracker, compute_overall_progress

__all__ = [
    # Errors
    "AnalysisServiceError",
    "ErrorKind",
    "InvalidTransitionError",
    "InvalidUrlError",
    "NotFoundError",
    "TrackerUnavailableError",
    # Engine
    "AnalysisOrchestrator",
    "ParallelFrameworkRunner",
    "ProgressTracker",
    "compute_overall_progress",
    "build_fallback_document",
    # Frameworks
    "FRAMEWORKS",
    "FrameworkId",
    # Stores
    "InMemoryRunStore",
    "RedisRunStore",
]
