"""
Composition root: builds the orchestrator and its collaborators from settings.
"""

import logging
from typing import Optional

from config import Settings, settings as default_settings
from analyzer.evaluator import ClaudeFrameworkEvaluator
from analyzer.frameworks import resolve_frameworks
from analyzer.orchestrator import AnalysisOrchestrator
from analyzer.report import ReportSynthesizer
from analyzer.runner import ParallelFrameworkRunner
from analyzer.scraper import PlaywrightContentScraper
from analyzer.store import InMemoryRunStore, RedisRunStore, RunStore
from analyzer.tracker import ProgressTracker

logger = logging.getLogger(__name__)


def build_store(config: Settings) -> RunStore:
    if config.RUN_STORE == "memory":
        logger.info("🗂️ Using in-memory run store")
        return InMemoryRunStore()

    from core.cache import get_redis_client

    return RedisRunStore(get_redis_client().client, retention_seconds=config.RUN_RETENTION_SECONDS)


def build_orchestrator(config: Optional[Settings] = None, dispatch: bool = True) -> AnalysisOrchestrator:
    """
    Wire the orchestrator from settings.

    Args:
        config: Settings (defaults to the global instance)
        dispatch: Hand executions to Celery when EXECUTION_MODE is 'celery'.
            Workers build their own orchestrator with dispatch=False.
    """
    config = config or default_settings
    tracker = ProgressTracker(build_store(config))

    evaluator = ClaudeFrameworkEvaluator(
        model=config.ANTHROPIC_MODEL,
        max_tokens=config.MAX_TOKENS,
        excerpt_chars=config.FALLBACK_EXCERPT_CHARS,
    )
    runner = ParallelFrameworkRunner(
        evaluator,
        max_concurrency=config.FRAMEWORK_MAX_CONCURRENCY,
        excerpt_chars=config.FALLBACK_EXCERPT_CHARS,
    )

    summarize = None
    if config.REPORT_AI_SUMMARY:
        from utils.clients.anthropic import call_anthropic_api_with_retry

        summarize = call_anthropic_api_with_retry

    dispatcher = revoker = None
    if dispatch and config.EXECUTION_MODE == "celery":
        from core.celery import dispatch_analysis, revoke_analysis

        dispatcher, revoker = dispatch_analysis, revoke_analysis

    return AnalysisOrchestrator(
        tracker=tracker,
        scraper=PlaywrightContentScraper(),
        runner=runner,
        synthesizer=ReportSynthesizer(summarize=summarize),
        frameworks=resolve_frameworks(config.enabled_frameworks),
        scrape_timeout=config.SCRAPE_TIMEOUT,
        framework_timeout=config.FRAMEWORK_TIMEOUT,
        synthesis_timeout=config.SYNTHESIS_TIMEOUT,
        dispatcher=dispatcher,
        revoker=revoker,
    )


# Global orchestrator instance
_orchestrator: Optional[AnalysisOrchestrator] = None


def get_orchestrator() -> AnalysisOrchestrator:
    """Get or create the process-wide orchestrator"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


async def close_orchestrator() -> None:
    """Cancel in-flight analyses and drop the global orchestrator"""
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.shutdown()
        _orchestrator = None
