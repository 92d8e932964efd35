"""
Framework registry.

The set of frameworks is closed: each FrameworkId has exactly one validated
FrameworkConfig describing its label, score range, the content fields the
rubric relies on, and the rubric text sent to the evaluator.
"""

import math
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from analyzer.prompts import (
    B2B_ELEMENTS_RUBRIC,
    B2C_ELEMENTS_RUBRIC,
    CLIFTON_STRENGTHS_RUBRIC,
    GOLDEN_CIRCLE_RUBRIC,
)


class FrameworkId(str, Enum):
    GOLDEN_CIRCLE = "golden_circle"
    B2C_ELEMENTS = "b2c_elements"
    B2B_ELEMENTS = "b2b_elements"
    CLIFTON_STRENGTHS = "clifton_strengths"


STEP_PREFIX = "framework_eval."

# Fields of ScrapedContent a rubric can reference
CONTENT_FIELDS = {
    "title",
    "meta_description",
    "word_count",
    "clean_text",
    "extracted_keywords",
    "headings",
}


class FrameworkConfig(BaseModel):
    framework_id: FrameworkId
    label: str
    max_score: int = Field(gt=0)
    required_fields: Tuple[str, ...]
    task_description: str = Field(min_length=1)

    model_config = {"frozen": True}

    @field_validator("required_fields")
    @classmethod
    def _known_fields(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        unknown = set(value) - CONTENT_FIELDS
        if unknown:
            raise ValueError(f"Unknown content fields: {sorted(unknown)}")
        return value

    @property
    def step_id(self) -> str:
        return step_id_for(self.framework_id)

    def extract_score(self, data: Dict[str, Any]) -> Optional[float]:
        """
        Normalize the evaluator's overall score to 0-100.

        Claude is asked for ``overall_score`` on the framework's own scale;
        anything missing or non-numeric yields None rather than a fake score.
        """
        raw = data.get("overall_score") if isinstance(data, dict) else None
        if raw is None and isinstance(data, dict):
            raw = data.get("overallScore")
        try:
            value = float(raw)
        except (TypeError, ValueError, OverflowError):
            return None
        if not math.isfinite(value):
            return None
        value = max(0.0, min(value, float(self.max_score)))
        return round(100 * value / self.max_score, 1)


FRAMEWORKS: Dict[FrameworkId, FrameworkConfig] = {
    FrameworkId.GOLDEN_CIRCLE: FrameworkConfig(
        framework_id=FrameworkId.GOLDEN_CIRCLE,
        label="Golden Circle (Simon Sinek)",
        max_score=40,
        required_fields=("title", "meta_description", "clean_text", "headings"),
        task_description=GOLDEN_CIRCLE_RUBRIC,
    ),
    FrameworkId.B2C_ELEMENTS: FrameworkConfig(
        framework_id=FrameworkId.B2C_ELEMENTS,
        label="B2C Elements of Value (Bain & Company)",
        max_score=30,
        required_fields=("title", "clean_text", "extracted_keywords"),
        task_description=B2C_ELEMENTS_RUBRIC,
    ),
    FrameworkId.B2B_ELEMENTS: FrameworkConfig(
        framework_id=FrameworkId.B2B_ELEMENTS,
        label="B2B Elements of Value (Bain & Company)",
        max_score=42,
        required_fields=("title", "clean_text", "extracted_keywords"),
        task_description=B2B_ELEMENTS_RUBRIC,
    ),
    FrameworkId.CLIFTON_STRENGTHS: FrameworkConfig(
        framework_id=FrameworkId.CLIFTON_STRENGTHS,
        label="CliftonStrengths (Gallup)",
        max_score=34,
        required_fields=("title", "clean_text", "headings"),
        task_description=CLIFTON_STRENGTHS_RUBRIC,
    ),
}


def get_framework(framework_id) -> FrameworkConfig:
    """Look up a framework config; raises ValueError for an unknown id"""
    return FRAMEWORKS[FrameworkId(framework_id)]


def step_id_for(framework_id) -> str:
    return f"{STEP_PREFIX}{FrameworkId(framework_id).value}"


def framework_for_step(step_id: str) -> Optional[FrameworkId]:
    """Inverse of step_id_for; None when the step is not a framework step"""
    if not step_id.startswith(STEP_PREFIX):
        return None
    try:
        return FrameworkId(step_id[len(STEP_PREFIX):])
    except ValueError:
        return None


def resolve_frameworks(names: List[str]) -> List[FrameworkId]:
    """Map configured names to ids, dropping duplicates but keeping order"""
    resolved: List[FrameworkId] = []
    for name in names:
        framework_id = FrameworkId(name)
        if framework_id not in resolved:
            resolved.append(framework_id)
    return resolved
