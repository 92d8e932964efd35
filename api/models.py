from typing import Dict, List, Optional
from pydantic import BaseModel, HttpUrl

from analyzer.models import AnalysisError, Step


# Requests
class StartAnalysisRequest(BaseModel):
    url: HttpUrl


# Responses
class StartAnalysisResponse(BaseModel):
    run_id: str
    status: str
    message: str
    poll_url: str


class RunStatusResponse(BaseModel):
    run_id: str
    status: str
    overall_progress: int


class RunResponse(RunStatusResponse):
    url: str
    started_at: str
    completed_at: Optional[str] = None
    steps: List[Step]
    errors: List[AnalysisError]


class RunSummary(BaseModel):
    run_id: str
    url: str
    status: str
    overall_progress: int
    started_at: str


class FallbackSummary(BaseModel):
    framework_id: str
    framework_label: str
    generated_at: str
    error_message: str
    collected_data_summary: Dict[str, str]
    download_url: str
