"""
Analysis orchestrator.

Drives one run through Acquire -> Evaluate -> Synthesize, writing every step
transition to the ProgressTracker as it happens:

- Phase 1 (scrape_content): fatal on failure, no framework step starts
- Phase 2 (framework_eval.*): parallel, failures isolated, each failure
  yields a fallback document
- Phase 3 (generate_report): synthesis from the succeeded subset

Only steps that are still pending are executed, so re-running execute()
after a retry resumes the run without touching finished steps. Intermediate
results live in the run store as artifacts for that reason.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from analyzer.errors import (
    AcquisitionFailure,
    ErrorKind,
    InvalidTransitionError,
    InvalidUrlError,
    NotFoundError,
    SynthesisFailure,
)
from analyzer.frameworks import FrameworkId, framework_for_step, step_id_for
from analyzer.models import (
    AnalysisMetrics,
    AnalysisReport,
    AnalysisRun,
    FallbackDocument,
    FrameworkFailure,
    FrameworkResult,
    FrameworkTask,
    REPORT_STEP,
    RunStatus,
    SCRAPE_STEP,
    ScrapedContent,
    StepStatus,
)
from analyzer.report import ReportSynthesizer
from analyzer.runner import FrameworkOutcome, ParallelFrameworkRunner
from analyzer.scraper import ContentScraper
from analyzer.tracker import ProgressTracker

logger = logging.getLogger(__name__)

# Artifact names in the run store
CONTENT_ARTIFACT = "content"
REPORT_ARTIFACT = "report"
WORKER_TASK_ARTIFACT = "worker_task_id"
RESULT_PREFIX = "result:"
FALLBACK_PREFIX = "fallback:"

CANCELLED_MESSAGE = "Analysis cancelled"


def _phase_kind(step_id: str) -> ErrorKind:
    if step_id == SCRAPE_STEP:
        return ErrorKind.ACQUISITION
    if step_id == REPORT_STEP:
        return ErrorKind.SYNTHESIS
    return ErrorKind.FRAMEWORK


def validate_url(url: str) -> str:
    """Return the stripped URL or raise InvalidUrlError"""
    candidate = (url or "").strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidUrlError(f"Invalid URL (expected http(s)://host/...): {url!r}")
    return candidate


class AnalysisOrchestrator:
    """
    Coordinates the three analysis phases for every run.

    Args:
        tracker: ProgressTracker (the only writer of step state)
        scraper: Anything implementing ContentScraper
        runner: ParallelFrameworkRunner for phase 2
        synthesizer: ReportSynthesizer for phase 3
        frameworks: Enabled frameworks, in step order
        scrape_timeout / framework_timeout / synthesis_timeout: deadlines in seconds
        dispatcher: Optional callable(run_id) -> worker task id. When set,
            execution is handed off (Celery) instead of run as an asyncio task.
        revoker: Optional callable(worker task id) used by cancel() for
            dispatched executions
    """

    def __init__(
        self,
        tracker: ProgressTracker,
        scraper: ContentScraper,
        runner: ParallelFrameworkRunner,
        synthesizer: ReportSynthesizer,
        frameworks: List[FrameworkId],
        scrape_timeout: float = 60.0,
        framework_timeout: float = 120.0,
        synthesis_timeout: float = 90.0,
        dispatcher: Optional[Callable[[str], Optional[str]]] = None,
        revoker: Optional[Callable[[str], None]] = None,
    ):
        if not frameworks:
            raise ValueError("At least one framework must be enabled")
        self.tracker = tracker
        self.store = tracker.store
        self.scraper = scraper
        self.runner = runner
        self.synthesizer = synthesizer
        self.frameworks = list(frameworks)
        self.scrape_timeout = scrape_timeout
        self.framework_timeout = framework_timeout
        self.synthesis_timeout = synthesis_timeout
        self.dispatcher = dispatcher
        self.revoker = revoker
        self._tasks: Dict[str, asyncio.Task] = {}

    # ======================
    # Commands
    # ======================
    def step_ids(self) -> List[str]:
        return [SCRAPE_STEP] + [step_id_for(f) for f in self.frameworks] + [REPORT_STEP]

    async def start(self, url: str) -> str:
        """
        Create a run for `url` and launch it in the background.

        Returns:
            The new run id (execution continues after this returns)

        Raises:
            InvalidUrlError: before anything is created
        """
        url = validate_url(url)
        run = self.tracker.create_run(url, self.step_ids())
        logger.info(f"🚀 Starting analysis {run.id} for {url}")
        self._launch(run.id)
        return run.id

    async def retry_step(self, run_id: str, step_id: str) -> AnalysisRun:
        """
        Reset a failed step and re-launch execution of the pending steps.

        Raises:
            NotFoundError: unknown run or step
            InvalidTransitionError: step not failed, or the run is still executing
        """
        run = self.tracker.get_progress(run_id)
        if run.get_step(step_id) is None:
            raise NotFoundError(f"Step '{step_id}' not found in run {run_id}")
        if self.is_executing(run_id) or any(s.status == StepStatus.RUNNING for s in run.steps):
            raise InvalidTransitionError(f"Run {run_id} is still executing; retry after it settles")

        self.tracker.retry_step(run_id, step_id)
        self._launch(run_id)
        return self.tracker.get_progress(run_id)

    async def cancel(self, run_id: str) -> AnalysisRun:
        """
        Stop an in-flight run: running steps become failed (Cancelled) and the
        run becomes failed.

        Raises:
            NotFoundError: unknown run
            InvalidTransitionError: the run already finished
        """
        run = self.tracker.get_progress(run_id)
        task = self._tasks.get(run_id)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            run = self.tracker.get_progress(run_id)
            if run.status not in (RunStatus.COMPLETED, RunStatus.FAILED):
                # Cancelled before its first step started
                self._mark_cancelled(run_id)
            return self.tracker.get_progress(run_id)

        if run.status in (RunStatus.COMPLETED, RunStatus.FAILED):
            raise InvalidTransitionError(f"Run {run_id} already finished ({run.status.value})")

        worker_task_id = self.store.get_artifact(run_id, WORKER_TASK_ARTIFACT)
        if worker_task_id and self.revoker is not None:
            self.revoker(worker_task_id)
        self._mark_cancelled(run_id)
        return self.tracker.get_progress(run_id)

    async def delete(self, run_id: str) -> None:
        """Cancel if needed, then delete the run and everything stored with it"""
        task = self._tasks.get(run_id)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self.tracker.delete_run(run_id)

    def is_executing(self, run_id: str) -> bool:
        task = self._tasks.get(run_id)
        return task is not None and not task.done()

    async def wait(self, run_id: str) -> None:
        """Wait for the in-process execution of a run (no-op when none)"""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every in-process execution and wait for them to settle"""
        tasks = [t for t in self._tasks.values() if not t.done()]
        if not tasks:
            return
        logger.info(f"🛑 Cancelling {len(tasks)} in-flight analyses")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ======================
    # Queries
    # ======================
    def get_progress(self, run_id: str) -> AnalysisRun:
        return self.tracker.get_progress(run_id)

    def get_status(self, run_id: str) -> Dict[str, object]:
        return self.tracker.get_status(run_id)

    def list_runs(self) -> List[AnalysisRun]:
        return self.tracker.list_runs()

    def metrics(self) -> AnalysisMetrics:
        return self.tracker.metrics()

    def get_report(self, run_id: str) -> AnalysisReport:
        """
        Stored report of a run.

        The report is not rebuilt when a framework step is retried later, so it
        is flagged stale when the completed framework steps no longer match
        the frameworks it covers.
        """
        run = self.tracker.get_progress(run_id)
        raw = self.store.get_artifact(run_id, REPORT_ARTIFACT)
        if raw is None:
            raise NotFoundError(f"No report available for run {run_id}")
        report = AnalysisReport.model_validate_json(raw)
        covered = {summary.framework_id for summary in report.frameworks}
        for step in run.steps:
            framework_id = framework_for_step(step.id)
            if framework_id is None:
                continue
            if (step.status == StepStatus.COMPLETED) != (framework_id in covered):
                report.stale = True
        return report

    def list_fallbacks(self, run_id: str) -> List[FallbackDocument]:
        """Fallback documents of the framework steps that are currently failed"""
        run = self.tracker.get_progress(run_id)
        documents = []
        for step in run.steps:
            framework_id = framework_for_step(step.id)
            if framework_id is None or step.status != StepStatus.FAILED:
                continue
            raw = self.store.get_artifact(run_id, f"{FALLBACK_PREFIX}{framework_id.value}")
            if raw:
                documents.append(FallbackDocument.model_validate_json(raw))
        return documents

    def get_fallback(self, run_id: str, framework_id: str) -> FallbackDocument:
        for document in self.list_fallbacks(run_id):
            if document.framework_id == framework_id:
                return document
        raise NotFoundError(f"No fallback document for '{framework_id}' in run {run_id}")

    # ======================
    # Execution
    # ======================
    def _launch(self, run_id: str) -> None:
        if self.dispatcher is not None:
            worker_task_id = self.dispatcher(run_id)
            if worker_task_id:
                self.store.put_artifact(run_id, WORKER_TASK_ARTIFACT, worker_task_id)
            logger.info(f"📤 Dispatched run {run_id} to worker (task: {worker_task_id})")
            return

        task = asyncio.create_task(self._execute_in_background(run_id), name=f"analysis:{run_id}")
        self._tasks[run_id] = task

        def _forget(finished: asyncio.Task) -> None:
            if self._tasks.get(run_id) is finished:
                del self._tasks[run_id]

        task.add_done_callback(_forget)

    async def _execute_in_background(self, run_id: str) -> None:
        try:
            await self.execute(run_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Nothing awaits a background task; record the crash on the run
            logger.exception(f"❌ Analysis {run_id} crashed: {str(e)}")
            self.abort(run_id, f"Execution error: {str(e)}")

    def fail_execution(self, run_id: str, message: str, kind: Optional[ErrorKind] = None) -> None:
        """
        Drive an interrupted execution to a terminal run status: every running
        step becomes failed, then the run is failed.

        Args:
            run_id: Run whose execution stopped
            message: Recorded on each failed step and in the run error log
            kind: ErrorKind for the failed steps (defaults to the kind of each
                step's phase)
        """
        run = self.tracker.get_progress(run_id)
        for step in run.steps:
            if step.status == StepStatus.RUNNING:
                self.tracker.update_step(
                    run_id,
                    step.id,
                    StepStatus.FAILED,
                    error=message,
                    error_kind=kind or _phase_kind(step.id),
                )
        self.tracker.fail_run(run_id, message)

    def abort(self, run_id: str, message: str) -> None:
        """fail_execution() for crash paths; a tracker error is logged, not raised"""
        try:
            self.fail_execution(run_id, message)
        except Exception as tracker_error:
            logger.error(f"❌ Could not mark run {run_id} failed: {str(tracker_error)}")

    async def execute(self, run_id: str) -> AnalysisRun:
        """
        Execute every pending step of a run, in phase order.

        Safe to call again after retry_step(): finished steps are skipped and
        their persisted artifacts are reused.
        """
        run = self.tracker.get_progress(run_id)
        try:
            content = await self._acquire(run)
            if content is not None:
                succeeded, failed = await self._evaluate(run, content)
                await self._synthesize(run, content, succeeded, failed)
        except asyncio.CancelledError:
            logger.warning(f"🛑 Analysis {run_id} cancelled")
            self._mark_cancelled(run_id)
            raise

        final = self.tracker.get_progress(run_id)
        logger.info(
            f"🏁 Analysis {run_id} finished: {final.status.value} ({final.overall_progress}%)"
        )
        return final

    async def _acquire(self, run: AnalysisRun) -> Optional[ScrapedContent]:
        """Phase 1; returns None when the run cannot continue"""
        step = run.get_step(SCRAPE_STEP)

        if step.status == StepStatus.COMPLETED:
            raw = self.store.get_artifact(run.id, CONTENT_ARTIFACT)
            if raw is None:
                self.tracker.fail_run(run.id, "Scraped content is no longer available")
                return None
            return ScrapedContent.model_validate_json(raw)

        if step.status != StepStatus.PENDING:
            self.tracker.fail_run(run.id, f"Content acquisition is {step.status.value}")
            return None

        self.tracker.update_step(run.id, SCRAPE_STEP, StepStatus.RUNNING)
        logger.info(f"📄 Phase 1: scraping {run.url}")
        try:
            content = await asyncio.wait_for(
                self.scraper.scrape(run.url, self.scrape_timeout),
                timeout=self.scrape_timeout,
            )
        except asyncio.TimeoutError:
            return self._acquisition_failed(
                run, f"Content acquisition exceeded {self.scrape_timeout:g}s"
            )
        except AcquisitionFailure as e:
            return self._acquisition_failed(run, str(e))
        except Exception as e:
            return self._acquisition_failed(run, f"{e.__class__.__name__}: {str(e)}")

        self.store.put_artifact(run.id, CONTENT_ARTIFACT, content.model_dump_json())
        self.tracker.update_step(run.id, SCRAPE_STEP, StepStatus.COMPLETED)
        return content

    def _acquisition_failed(self, run: AnalysisRun, message: str) -> None:
        logger.error(f"❌ Phase 1 failed for {run.url}: {message}")
        self.tracker.update_step(
            run.id, SCRAPE_STEP, StepStatus.FAILED, error=message, error_kind=ErrorKind.ACQUISITION
        )
        self.tracker.fail_run(run.id, f"Content acquisition failed: {message}")
        return None

    async def _evaluate(
        self, run: AnalysisRun, content: ScrapedContent
    ) -> Tuple[List[FrameworkResult], List[FrameworkFailure]]:
        """Phase 2; returns every framework outcome known for the run"""
        tasks = []
        for step in run.steps:
            framework_id = framework_for_step(step.id)
            if framework_id is not None and step.status == StepStatus.PENDING:
                tasks.append(
                    FrameworkTask(
                        framework_id=framework_id,
                        url=run.url,
                        content=content,
                        deadline=self.framework_timeout,
                    )
                )

        if tasks:
            logger.info(f"🧠 Phase 2: {len(tasks)} framework evaluations for {run.url}")

            def on_start(task: FrameworkTask) -> None:
                self.tracker.update_step(run.id, step_id_for(task.framework_id), StepStatus.RUNNING)

            def on_settle(task: FrameworkTask, outcome: FrameworkOutcome) -> None:
                self._record_outcome(run.id, outcome)

            await self.runner.run_batch(tasks, on_start=on_start, on_settle=on_settle)

        return self._collect_outcomes(run.id)

    def _record_outcome(self, run_id: str, outcome: FrameworkOutcome) -> None:
        framework = outcome.framework_id.value
        step_id = step_id_for(outcome.framework_id)
        if isinstance(outcome, FrameworkResult):
            self.store.put_artifact(run_id, f"{RESULT_PREFIX}{framework}", outcome.model_dump_json())
            self.tracker.update_step(run_id, step_id, StepStatus.COMPLETED, score=outcome.score)
        else:
            if outcome.fallback is not None:
                self.store.put_artifact(
                    run_id, f"{FALLBACK_PREFIX}{framework}", outcome.fallback.model_dump_json()
                )
            self.tracker.update_step(
                run_id, step_id, StepStatus.FAILED, error=outcome.error, error_kind=outcome.kind
            )

    def _collect_outcomes(self, run_id: str) -> Tuple[List[FrameworkResult], List[FrameworkFailure]]:
        run = self.tracker.get_progress(run_id)
        succeeded: List[FrameworkResult] = []
        failed: List[FrameworkFailure] = []
        for step in run.steps:
            framework_id = framework_for_step(step.id)
            if framework_id is None:
                continue
            if step.status == StepStatus.COMPLETED:
                raw = self.store.get_artifact(run_id, f"{RESULT_PREFIX}{framework_id.value}")
                if raw:
                    succeeded.append(FrameworkResult.model_validate_json(raw))
            elif step.status == StepStatus.FAILED:
                raw = self.store.get_artifact(run_id, f"{FALLBACK_PREFIX}{framework_id.value}")
                failed.append(
                    FrameworkFailure(
                        framework_id=framework_id,
                        error=step.error or "Unknown error",
                        kind=step.error_kind or ErrorKind.FRAMEWORK,
                        fallback=FallbackDocument.model_validate_json(raw) if raw else None,
                    )
                )
        return succeeded, failed

    async def _synthesize(
        self,
        run: AnalysisRun,
        content: ScrapedContent,
        succeeded: List[FrameworkResult],
        failed: List[FrameworkFailure],
    ) -> None:
        """Phase 3"""
        step = self.tracker.get_progress(run.id).get_step(REPORT_STEP)
        if step.status != StepStatus.PENDING:
            return

        self.tracker.update_step(run.id, REPORT_STEP, StepStatus.RUNNING)
        logger.info(f"📊 Phase 3: synthesizing report from {len(succeeded)} frameworks")
        try:
            report = await asyncio.wait_for(
                self.synthesizer.synthesize(run.url, content, succeeded, failed),
                timeout=self.synthesis_timeout,
            )
        except asyncio.TimeoutError:
            self._synthesis_failed(run.id, f"Report synthesis exceeded {self.synthesis_timeout:g}s")
            return
        except SynthesisFailure as e:
            self._synthesis_failed(run.id, str(e))
            return
        except Exception as e:
            self._synthesis_failed(run.id, f"{e.__class__.__name__}: {str(e)}")
            return

        self.store.put_artifact(run.id, REPORT_ARTIFACT, report.model_dump_json())
        self.tracker.update_step(run.id, REPORT_STEP, StepStatus.COMPLETED)

    def _synthesis_failed(self, run_id: str, message: str) -> None:
        logger.error(f"❌ Phase 3 failed for run {run_id}: {message}")
        self.tracker.update_step(
            run_id, REPORT_STEP, StepStatus.FAILED, error=message, error_kind=ErrorKind.SYNTHESIS
        )

    def _mark_cancelled(self, run_id: str) -> None:
        self.fail_execution(run_id, CANCELLED_MESSAGE, ErrorKind.CANCELLED)
