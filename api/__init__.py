# API package - FastAPI components
from .models import (
    StartAnalysisRequest,
    StartAnalysisResponse,
    RunStatusResponse,
    RunResponse,
    RunSummary,
    FallbackSummary,
)
from .routes import router

__all__ = [
    # Models
    "StartAnalysisRequest",
    "StartAnalysisResponse",
    "RunStatusResponse",
    "RunResponse",
    "RunSummary",
    "FallbackSummary",
    # Router
    "router",
]
