"""
Report synthesis (phase 3).

Combines the succeeded framework results into one AnalysisReport. The
report body is deterministic; an optional AI executive summary is added on
top and dropped (report marked partial) when that call fails.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from analyzer.errors import SynthesisFailure
from analyzer.frameworks import get_framework
from analyzer.models import (
    AnalysisReport,
    FrameworkFailure,
    FrameworkResult,
    FrameworkSummary,
    ScrapedContent,
)
from analyzer.prompts import get_summary_prompt

logger = logging.getLogger(__name__)

SummaryFn = Callable[[str], Awaitable[str]]


def _text_list(value: Any, limit: int = 5) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if str(v).strip()][:limit]
    return []


def summarize_result(result: FrameworkResult) -> FrameworkSummary:
    data: Dict[str, Any] = result.data
    return FrameworkSummary(
        framework_id=result.framework_id,
        label=get_framework(result.framework_id).label,
        score=result.score,
        summary=str(data.get("summary") or ""),
        strengths=_text_list(data.get("strengths")),
        gaps=_text_list(data.get("gaps")),
        recommendations=_text_list(data.get("recommendations"), limit=3),
    )


class ReportSynthesizer:
    """
    Builds the final report from the succeeded subset of framework results.

    Args:
        summarize: Optional async text completion used for the executive
            summary (None disables it)
    """

    def __init__(self, summarize: Optional[SummaryFn] = None):
        self.summarize = summarize

    async def synthesize(
        self,
        url: str,
        content: Optional[ScrapedContent],
        succeeded: List[FrameworkResult],
        failed: List[FrameworkFailure],
    ) -> AnalysisReport:
        """
        Raises:
            SynthesisFailure: when there is no framework result to report on
        """
        if not succeeded:
            raise SynthesisFailure("No framework evaluation succeeded; nothing to synthesize")

        frameworks = [summarize_result(r) for r in succeeded]
        scores = [f.score for f in frameworks if f.score is not None]
        missing = [f.framework_id.value for f in failed]

        report = AnalysisReport(
            url=url,
            title=content.title if content else None,
            frameworks=frameworks,
            overall_score=round(sum(scores) / len(scores), 1) if scores else None,
            missing_frameworks=missing,
            fallback_documents=[f.framework_id.value for f in failed if f.fallback is not None],
            partial=bool(missing),
        )

        if self.summarize is not None:
            lines = [
                f"- {f.label}: {f.score if f.score is not None else 'unscored'} - {f.summary}"
                for f in frameworks
            ]
            try:
                summary = await self.summarize(get_summary_prompt(url, lines, missing))
                report.executive_summary = summary.strip() or None
            except Exception as e:
                logger.warning(f"⚠️ Executive summary failed, returning partial report: {str(e)}")
                report.partial = True

        logger.info(
            f"📊 Report for {url}: {len(frameworks)} frameworks, "
            f"overall score {report.overall_score}, partial={report.partial}"
        )
        return report
