"""
Analysis progress tracker.

Owns the lifecycle record of every analysis run: per-step status, timings,
scores and the error log. Every write is one atomic step-level update against
the run store, and the run status / overall progress are recomputed from the
steps on each write.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional, Tuple

from analyzer.errors import ErrorKind, InvalidTransitionError, NotFoundError
from analyzer.models import (
    AnalysisError,
    AnalysisMetrics,
    AnalysisRun,
    REPORT_STEP,
    RunStatus,
    SCRAPE_STEP,
    Step,
    StepStatus,
    parse_timestamp,
    utc_now,
)
from analyzer.store import RunStore

logger = logging.getLogger(__name__)

# Core steps without which a run cannot be called completed
REQUIRED_STEPS = (SCRAPE_STEP, REPORT_STEP)

_ALLOWED = {
    StepStatus.PENDING: {StepStatus.RUNNING, StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED},
    StepStatus.RUNNING: {StepStatus.RUNNING, StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED},
    StepStatus.COMPLETED: {StepStatus.COMPLETED},
    StepStatus.FAILED: {StepStatus.FAILED},
    StepStatus.SKIPPED: {StepStatus.SKIPPED},
}


def generate_run_id() -> str:
    return f"analysis_{uuid.uuid4().hex[:16]}"


def compute_overall_progress(steps: Iterable[Step]) -> int:
    """Percentage of steps that are completed or skipped, rounded"""
    steps = list(steps)
    if not steps:
        return 0
    done = sum(1 for s in steps if s.status in (StepStatus.COMPLETED, StepStatus.SKIPPED))
    return round(100 * done / len(steps))


def derive_run_status(run: AnalysisRun) -> RunStatus:
    """
    Run status as a function of its steps.

    A run in which every step is terminal is completed when the scrape and
    report steps completed (framework failures make it partial, not failed),
    otherwise failed. An explicitly failed run stays failed until a step runs
    again.
    """
    statuses = [s.status for s in run.steps]
    if StepStatus.RUNNING in statuses:
        return RunStatus.RUNNING
    if statuses and all(s.is_terminal for s in statuses):
        for step_id in REQUIRED_STEPS:
            step = run.get_step(step_id)
            if step is not None and step.status != StepStatus.COMPLETED:
                return RunStatus.FAILED
        return RunStatus.COMPLETED
    if run.status == RunStatus.FAILED:
        return RunStatus.FAILED
    if any(s != StepStatus.PENDING for s in statuses):
        return RunStatus.RUNNING
    return RunStatus.PENDING


def _refresh(run: AnalysisRun) -> None:
    """Recompute the derived header fields in place"""
    run.status = derive_run_status(run)
    # A completed run is done even when some framework steps failed
    run.overall_progress = 100 if run.status == RunStatus.COMPLETED else compute_overall_progress(run.steps)
    if run.status in (RunStatus.COMPLETED, RunStatus.FAILED):
        run.completed_at = run.completed_at or utc_now()
    else:
        run.completed_at = None


def _duration(started_at: Optional[str], completed_at: str) -> Optional[float]:
    start = parse_timestamp(started_at)
    end = parse_timestamp(completed_at)
    if start is None or end is None:
        return None
    return round(max((end - start).total_seconds(), 0.0), 3)


class ProgressTracker:
    """
    Tracks analysis runs in a RunStore.

    All mutating methods raise NotFoundError for an unknown run id,
    InvalidTransitionError for an illegal step transition, and
    TrackerUnavailableError when the store cannot be reached.
    """

    def __init__(self, store: RunStore):
        self.store = store

    # Run lifecycle --------------------------------------------------------
    def create_run(self, url: str, step_ids: List[str], run_id: Optional[str] = None) -> AnalysisRun:
        """
        Create a new run with every step pending.

        Args:
            url: URL being analyzed
            step_ids: Ordered, unique step ids
            run_id: Optional explicit id (generated when omitted)

        Returns:
            The stored AnalysisRun
        """
        if len(set(step_ids)) != len(step_ids):
            raise ValueError("Step ids must be unique within a run")
        run = AnalysisRun(
            id=run_id or generate_run_id(),
            url=url,
            steps=[Step(id=sid) for sid in step_ids],
        )
        self.store.create(run)
        logger.info(f"📋 Created analysis run {run.id} for {url} ({len(step_ids)} steps)")
        return run

    def update_step(
        self,
        run_id: str,
        step_id: str,
        status: StepStatus,
        score: Optional[float] = None,
        error: Optional[str] = None,
        error_kind: Optional[ErrorKind] = None,
    ) -> Step:
        """
        Apply one step status update atomically.

        - running stamps started_at and clears completed_at / duration
        - completed / failed / skipped stamp completed_at and duration
        - failed increments retry_count
        - an error message is appended to the run's error log
        - repeating completed or skipped is a no-op apart from the score

        Returns:
            Copy of the updated step
        """
        status = StepStatus(status)

        def mutate(run: AnalysisRun) -> Tuple[List[str], Step]:
            step = self._require_step(run, step_id)
            previous = step.status
            if status not in _ALLOWED[previous]:
                raise InvalidTransitionError(
                    f"Step '{step_id}' cannot move from {previous.value} to {status.value}"
                )

            now = utc_now()
            repeat = previous == status and status in (StepStatus.COMPLETED, StepStatus.SKIPPED)
            if status == StepStatus.RUNNING:
                if previous != StepStatus.RUNNING or not step.started_at:
                    step.started_at = now
                step.completed_at = None
                step.duration = None
            elif not repeat:
                step.completed_at = now
                step.duration = _duration(step.started_at, now) if step.started_at else None

            if score is not None:
                step.score = score

            if status == StepStatus.FAILED:
                step.retry_count += 1
                step.error = error or step.error or "Unknown error"
                step.error_kind = error_kind or step.error_kind
                run.errors.append(
                    AnalysisError(step=step_id, message=step.error, kind=step.error_kind, timestamp=now)
                )
            elif error:
                step.error = error
                step.error_kind = error_kind
                run.errors.append(
                    AnalysisError(step=step_id, message=error, kind=error_kind, timestamp=now)
                )

            step.status = status
            _refresh(run)
            return [step_id], step.model_copy()

        step = self.store.apply(run_id, mutate)
        logger.debug(f"🔄 {run_id}/{step_id} -> {status.value}")
        return step

    def retry_step(self, run_id: str, step_id: str) -> Step:
        """Reset a failed step to pending and reopen the run"""

        def mutate(run: AnalysisRun) -> Tuple[List[str], Step]:
            step = self._require_step(run, step_id)
            if step.status != StepStatus.FAILED:
                raise InvalidTransitionError(
                    f"Only failed steps can be retried; '{step_id}' is {step.status.value}"
                )
            step.status = StepStatus.PENDING
            step.error = None
            step.error_kind = None
            step.started_at = None
            step.completed_at = None
            step.duration = None
            # Reopen: any pending step makes the run resumable
            run.status = RunStatus.RUNNING
            run.completed_at = None
            run.overall_progress = compute_overall_progress(run.steps)
            return [step_id], step.model_copy()

        step = self.store.apply(run_id, mutate)
        logger.info(f"🔁 Step {step_id} of run {run_id} reset for retry")
        return step

    def skip_step(self, run_id: str, step_id: str) -> Step:
        return self.update_step(run_id, step_id, StepStatus.SKIPPED)

    def fail_run(self, run_id: str, reason: Optional[str] = None) -> AnalysisRun:
        """Mark the run failed; steps that never started stay pending"""

        def mutate(run: AnalysisRun) -> Tuple[List[str], AnalysisRun]:
            run.status = RunStatus.FAILED
            run.completed_at = run.completed_at or utc_now()
            run.overall_progress = compute_overall_progress(run.steps)
            if reason:
                run.errors.append(AnalysisError(step="run", message=reason))
            return [], run

        run = self.store.apply(run_id, mutate)
        logger.warning(f"❌ Run {run_id} failed: {reason or 'no reason given'}")
        return run

    def resolve_error(self, run_id: str, index: int) -> AnalysisRun:
        """Mark the error at position `index` of the run's error log resolved"""

        def mutate(run: AnalysisRun) -> Tuple[List[str], AnalysisRun]:
            if index < 0 or index >= len(run.errors):
                raise NotFoundError(f"Error #{index} not found in run {run_id}")
            run.errors[index].resolved = True
            return [], run

        return self.store.apply(run_id, mutate)

    # Reads ----------------------------------------------------------------
    def get_progress(self, run_id: str) -> AnalysisRun:
        run = self.store.load(run_id)
        if run is None:
            raise NotFoundError(f"Analysis run not found: {run_id}")
        return run

    def get_status(self, run_id: str) -> Dict[str, object]:
        """Cheap status poll: status and overall progress only"""
        status = self.store.load_status(run_id)
        if status is None:
            raise NotFoundError(f"Analysis run not found: {run_id}")
        return {"id": run_id, **status}

    def list_runs(self) -> List[AnalysisRun]:
        """All known runs, most recently started first"""
        runs = [run for run in (self.store.load(rid) for rid in self.store.list_ids()) if run]
        return sorted(runs, key=lambda r: r.started_at, reverse=True)

    def delete_run(self, run_id: str) -> None:
        if not self.store.delete(run_id):
            raise NotFoundError(f"Analysis run not found: {run_id}")
        logger.info(f"🗑️ Deleted analysis run {run_id}")

    def metrics(self) -> AnalysisMetrics:
        """
        Aggregate metrics over every stored run.

        average_score: mean over runs that have scored steps of each run's
            mean step score
        average_duration: mean wall time in seconds of finished runs
        step_success_rates: completed / (completed + failed) per step id
        """
        runs = self.list_runs()
        metrics = AnalysisMetrics(total_analyses=len(runs))

        run_scores: List[float] = []
        durations: List[float] = []
        outcomes: Dict[str, List[int]] = {}

        for run in runs:
            if run.status == RunStatus.COMPLETED:
                metrics.successful_analyses += 1
            elif run.status == RunStatus.FAILED:
                metrics.failed_analyses += 1

            scores = [s.score for s in run.steps if s.score is not None]
            if scores:
                run_scores.append(sum(scores) / len(scores))

            if run.completed_at:
                elapsed = _duration(run.started_at, run.completed_at)
                if elapsed is not None:
                    durations.append(elapsed)

            for step in run.steps:
                counts = outcomes.setdefault(step.id, [0, 0])
                if step.status == StepStatus.COMPLETED:
                    counts[0] += 1
                elif step.status == StepStatus.FAILED:
                    counts[1] += 1

        if run_scores:
            metrics.average_score = round(sum(run_scores) / len(run_scores), 2)
        if durations:
            metrics.average_duration = round(sum(durations) / len(durations), 3)
        metrics.step_success_rates = {
            step_id: round(ok / (ok + failed), 4)
            for step_id, (ok, failed) in outcomes.items()
            if ok + failed > 0
        }
        return metrics

    @staticmethod
    def _require_step(run: AnalysisRun, step_id: str) -> Step:
        step = run.get_step(step_id)
        if step is None:
            raise NotFoundError(f"Step '{step_id}' not found in run {run.id}")
        return step
