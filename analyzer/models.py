"""
Domain models for analysis runs.

Runs and steps are what the tracker persists; content, framework tasks,
outcomes and reports are what flows between the orchestrator phases.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from analyzer.errors import ErrorKind
from analyzer.frameworks import FrameworkId


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


# Step / run lifecycle
class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED)


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


SCRAPE_STEP = "scrape_content"
REPORT_STEP = "generate_report"


class Step(BaseModel):
    id: str
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration: Optional[float] = None  # seconds
    score: Optional[float] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    retry_count: int = 0


class AnalysisError(BaseModel):
    step: str
    message: str
    kind: Optional[ErrorKind] = None
    timestamp: str = Field(default_factory=utc_now)
    resolved: bool = False


class AnalysisRun(BaseModel):
    id: str
    url: str
    started_at: str = Field(default_factory=utc_now)
    completed_at: Optional[str] = None
    status: RunStatus = RunStatus.PENDING
    steps: List[Step] = Field(default_factory=list)
    errors: List[AnalysisError] = Field(default_factory=list)
    overall_progress: int = 0

    def get_step(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]


class AnalysisMetrics(BaseModel):
    total_analyses: int = 0
    successful_analyses: int = 0
    failed_analyses: int = 0
    average_score: float = 0.0
    average_duration: float = 0.0  # seconds
    step_success_rates: Dict[str, float] = Field(default_factory=dict)


# Content acquisition
class Headings(BaseModel):
    h1: List[str] = Field(default_factory=list)
    h2: List[str] = Field(default_factory=list)
    h3: List[str] = Field(default_factory=list)


class ScrapedContent(BaseModel):
    url: str
    title: Optional[str] = None
    meta_description: Optional[str] = None
    word_count: int = 0
    clean_text: str = ""
    extracted_keywords: List[str] = Field(default_factory=list)
    headings: Headings = Field(default_factory=Headings)
    image_count: int = 0
    link_count: int = 0
    load_time: Optional[float] = None
    has_ssl: bool = False
    extracted_at: str = Field(default_factory=utc_now)


# Framework evaluation units
class FrameworkTask(BaseModel):
    framework_id: FrameworkId
    url: str
    content: ScrapedContent
    deadline: float = Field(gt=0)  # seconds


class FallbackDocument(BaseModel):
    framework_id: str
    framework_label: str
    url: str
    generated_at: str = Field(default_factory=utc_now)
    collected_data_summary: Dict[str, str]
    replayable_instructions: str
    error_message: str

    model_config = {"frozen": True}

    def to_markdown(self) -> str:
        """Render the self-contained manual replay document"""
        lines = [
            f"# {self.framework_label} - Analysis Prompt",
            "",
            f"> **Generated:** {self.generated_at}  ",
            f"> **URL:** {self.url}  ",
            "> **Reason:** AI analysis could not be completed automatically.  ",
            f"> **Error:** {self.error_message}  ",
            "",
            "---",
            "",
            "## How to Use This Document",
            "",
            "1. Copy the **entire prompt** below.",
            "2. Paste it into any AI assistant (ChatGPT, Claude, Gemini, etc.).",
            f"3. The assistant will return a complete {self.framework_label} analysis.",
            "4. Attach the result to the report for this URL.",
            "",
            "---",
            "",
            "## Collected Website Data",
            "",
            "| Field | Value |",
            "|-------|-------|",
        ]
        for field, value in self.collected_data_summary.items():
            cell = str(value).replace("|", "\\|").replace("\n", " ")
            lines.append(f"| **{field}** | {cell} |")
        lines += [
            "",
            "---",
            "",
            "## AI Analysis Prompt",
            "",
            "Copy everything below the line and paste into your AI assistant:",
            "",
            "---",
            "",
            self.replayable_instructions,
            "",
        ]
        return "\n".join(lines)


class FrameworkResult(BaseModel):
    framework_id: FrameworkId
    data: Dict[str, Any]
    score: Optional[float] = None  # normalized 0-100
    duration: Optional[float] = None


class FrameworkFailure(BaseModel):
    framework_id: FrameworkId
    error: str
    kind: ErrorKind = ErrorKind.FRAMEWORK
    fallback: Optional[FallbackDocument] = None
    duration: Optional[float] = None


class BatchResult(BaseModel):
    succeeded: List[FrameworkResult] = Field(default_factory=list)
    failed: List[FrameworkFailure] = Field(default_factory=list)


# Synthesis
class FrameworkSummary(BaseModel):
    framework_id: FrameworkId
    label: str
    score: Optional[float] = None
    summary: str = ""
    strengths: List[str] = Field(default_factory=list)
    gaps: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class AnalysisReport(BaseModel):
    url: str
    generated_at: str = Field(default_factory=utc_now)
    title: Optional[str] = None
    frameworks: List[FrameworkSummary] = Field(default_factory=list)
    overall_score: Optional[float] = None
    missing_frameworks: List[str] = Field(default_factory=list)
    fallback_documents: List[str] = Field(default_factory=list)
    executive_summary: Optional[str] = None
    partial: bool = False
    # Set on read when framework steps finished differently after generation
    stale: bool = False
