from unittest.mock import MagicMock

import pytest
import redis

from analyzer.errors import ErrorKind, InvalidTransitionError, NotFoundError, TrackerUnavailableError
from analyzer.models import RunStatus, Step, StepStatus
from analyzer.store import InMemoryRunStore, RedisRunStore
from analyzer.tracker import ProgressTracker, compute_overall_progress

SCRAPE = "scrape_content"
GOLDEN = "framework_eval.golden_circle"
B2C = "framework_eval.b2c_elements"
REPORT = "generate_report"
STEPS = [SCRAPE, GOLDEN, B2C, REPORT]


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker(InMemoryRunStore())


@pytest.fixture
def run_id(tracker: ProgressTracker) -> str:
    return tracker.create_run("https://acme.example", STEPS).id


def finish(tracker, run_id, step_id, score=None):
    tracker.update_step(run_id, step_id, StepStatus.RUNNING)
    return tracker.update_step(run_id, step_id, StepStatus.COMPLETED, score=score)


def test_new_run_is_pending_with_all_steps_pending(tracker, run_id):
    run = tracker.get_progress(run_id)

    assert run_id.startswith("analysis_")
    assert run.status == RunStatus.PENDING
    assert run.overall_progress == 0
    assert run.step_ids == STEPS
    assert all(s.status == StepStatus.PENDING for s in run.steps)


def test_duplicate_step_ids_are_rejected(tracker):
    with pytest.raises(ValueError):
        tracker.create_run("https://acme.example", [SCRAPE, SCRAPE])


def test_running_stamps_start_and_moves_run_to_running(tracker, run_id):
    step = tracker.update_step(run_id, SCRAPE, StepStatus.RUNNING)

    assert step.started_at is not None
    assert step.completed_at is None
    assert tracker.get_status(run_id)["status"] == "running"


def test_terminal_update_stamps_completion_and_duration(tracker, run_id):
    step = finish(tracker, run_id, SCRAPE)

    assert step.completed_at is not None
    assert step.duration is not None and step.duration >= 0


def test_repeated_completed_is_idempotent_except_score(tracker, run_id):
    first = finish(tracker, run_id, GOLDEN, score=50.0)
    second = tracker.update_step(run_id, GOLDEN, StepStatus.COMPLETED, score=75.0)

    assert second.status == StepStatus.COMPLETED
    assert second.completed_at == first.completed_at
    assert second.duration == first.duration
    assert second.score == 75.0
    assert second.retry_count == 0


def test_each_failure_increments_retry_count_and_logs_error(tracker, run_id):
    tracker.update_step(run_id, GOLDEN, StepStatus.RUNNING)
    tracker.update_step(run_id, GOLDEN, StepStatus.FAILED, error="quota", error_kind=ErrorKind.FRAMEWORK)
    step = tracker.update_step(run_id, GOLDEN, StepStatus.FAILED, error="quota again")

    run = tracker.get_progress(run_id)
    assert step.retry_count == 2
    assert step.error == "quota again"
    assert [e.message for e in run.errors] == ["quota", "quota again"]
    assert run.errors[0].kind == ErrorKind.FRAMEWORK


@pytest.mark.parametrize(
    "terminal, target",
    [
        (StepStatus.COMPLETED, StepStatus.RUNNING),
        (StepStatus.COMPLETED, StepStatus.FAILED),
        (StepStatus.FAILED, StepStatus.RUNNING),
        (StepStatus.FAILED, StepStatus.COMPLETED),
        (StepStatus.SKIPPED, StepStatus.COMPLETED),
        (StepStatus.COMPLETED, StepStatus.PENDING),
    ],
)
def test_illegal_transitions_leave_state_unchanged(tracker, run_id, terminal, target):
    tracker.update_step(run_id, GOLDEN, terminal, error="x" if terminal == StepStatus.FAILED else None)
    before = tracker.get_progress(run_id)

    with pytest.raises(InvalidTransitionError):
        tracker.update_step(run_id, GOLDEN, target)

    assert tracker.get_progress(run_id) == before


def test_retry_only_allowed_on_failed_step(tracker, run_id):
    finish(tracker, run_id, GOLDEN)
    before = tracker.get_progress(run_id)

    with pytest.raises(InvalidTransitionError):
        tracker.retry_step(run_id, GOLDEN)
    assert tracker.get_progress(run_id) == before


def test_retry_resets_failed_step_and_reopens_run(tracker, run_id):
    finish(tracker, run_id, SCRAPE)
    finish(tracker, run_id, GOLDEN, score=60.0)
    tracker.update_step(run_id, B2C, StepStatus.FAILED, error="timeout", error_kind=ErrorKind.TIMEOUT)
    finish(tracker, run_id, REPORT)
    assert tracker.get_progress(run_id).status == RunStatus.COMPLETED

    step = tracker.retry_step(run_id, B2C)

    run = tracker.get_progress(run_id)
    assert step.status == StepStatus.PENDING
    assert step.error is None and step.error_kind is None
    assert step.retry_count == 1
    assert run.status == RunStatus.RUNNING
    assert run.completed_at is None
    # the error log is append-only
    assert len(run.errors) == 1


def test_partial_framework_failure_still_completes_run(tracker, run_id):
    finish(tracker, run_id, SCRAPE)
    finish(tracker, run_id, GOLDEN, score=80.0)
    tracker.update_step(run_id, B2C, StepStatus.RUNNING)
    tracker.update_step(run_id, B2C, StepStatus.FAILED, error="Evaluation exceeded deadline", error_kind=ErrorKind.TIMEOUT)
    finish(tracker, run_id, REPORT)

    run = tracker.get_progress(run_id)
    assert run.status == RunStatus.COMPLETED
    assert run.completed_at is not None
    assert run.overall_progress == 100


def test_failed_report_fails_run(tracker, run_id):
    finish(tracker, run_id, SCRAPE)
    tracker.update_step(run_id, GOLDEN, StepStatus.FAILED, error="down")
    tracker.update_step(run_id, B2C, StepStatus.FAILED, error="down")
    tracker.update_step(run_id, REPORT, StepStatus.FAILED, error="nothing to synthesize", error_kind=ErrorKind.SYNTHESIS)

    run = tracker.get_progress(run_id)
    assert run.status == RunStatus.FAILED
    assert run.completed_at is not None


def test_fail_run_keeps_unstarted_steps_pending(tracker, run_id):
    tracker.update_step(run_id, SCRAPE, StepStatus.RUNNING)
    tracker.update_step(run_id, SCRAPE, StepStatus.FAILED, error="DNS", error_kind=ErrorKind.ACQUISITION)
    tracker.fail_run(run_id, "Content acquisition failed")

    run = tracker.get_progress(run_id)
    assert run.status == RunStatus.FAILED
    assert run.completed_at is not None
    assert [s.status for s in run.steps[1:]] == [StepStatus.PENDING] * 3
    assert run.errors[-1].message == "Content acquisition failed"


def test_progress_never_decreases_during_execution(tracker, run_id):
    seen = []
    for step_id, outcome in [(SCRAPE, "ok"), (GOLDEN, "fail"), (B2C, "ok"), (REPORT, "ok")]:
        tracker.update_step(run_id, step_id, StepStatus.RUNNING)
        seen.append(tracker.get_status(run_id)["overall_progress"])
        if outcome == "ok":
            tracker.update_step(run_id, step_id, StepStatus.COMPLETED)
        else:
            tracker.update_step(run_id, step_id, StepStatus.FAILED, error="boom")
        seen.append(tracker.get_status(run_id)["overall_progress"])

    assert seen == sorted(seen)
    assert seen[-1] == 100


def test_skipped_steps_count_towards_progress(tracker, run_id):
    finish(tracker, run_id, SCRAPE)
    tracker.skip_step(run_id, GOLDEN)

    assert tracker.get_status(run_id)["overall_progress"] == 50


def test_compute_overall_progress_is_pure():
    steps = [
        Step(id="a", status=StepStatus.COMPLETED),
        Step(id="b", status=StepStatus.SKIPPED),
        Step(id="c", status=StepStatus.FAILED),
    ]

    assert compute_overall_progress(steps) == 67
    assert compute_overall_progress([]) == 0
    assert [s.status for s in steps] == [StepStatus.COMPLETED, StepStatus.SKIPPED, StepStatus.FAILED]


def test_resolve_error(tracker, run_id):
    tracker.update_step(run_id, GOLDEN, StepStatus.FAILED, error="quota")

    run = tracker.resolve_error(run_id, 0)

    assert run.errors[0].resolved is True
    with pytest.raises(NotFoundError):
        tracker.resolve_error(run_id, 5)


def test_unknown_run_and_step_raise_not_found(tracker, run_id):
    with pytest.raises(NotFoundError):
        tracker.get_progress("analysis_missing")
    with pytest.raises(NotFoundError):
        tracker.get_status("analysis_missing")
    with pytest.raises(NotFoundError):
        tracker.update_step("analysis_missing", SCRAPE, StepStatus.RUNNING)
    with pytest.raises(NotFoundError):
        tracker.update_step(run_id, "framework_eval.unknown", StepStatus.RUNNING)
    with pytest.raises(NotFoundError):
        tracker.delete_run("analysis_missing")


def test_list_runs_newest_first(tracker):
    old = tracker.create_run("https://old.example", STEPS).id
    new = tracker.create_run("https://new.example", STEPS).id

    def backdate(run):
        run.started_at = "2020-01-01T00:00:00+00:00"
        return [], None

    tracker.store.apply(old, backdate)

    assert [r.id for r in tracker.list_runs()] == [new, old]


def test_delete_run_removes_everything(tracker, run_id):
    tracker.store.put_artifact(run_id, "content", "{}")

    tracker.delete_run(run_id)

    assert tracker.list_runs() == []
    assert tracker.store.get_artifact(run_id, "content") is None


def test_metrics_aggregate_over_runs(tracker):
    steps = [SCRAPE, GOLDEN, REPORT]

    first = tracker.create_run("https://a.example", steps).id
    finish(tracker, first, SCRAPE)
    finish(tracker, first, GOLDEN, score=80.0)
    finish(tracker, first, REPORT)

    second = tracker.create_run("https://b.example", steps).id
    tracker.update_step(second, SCRAPE, StepStatus.FAILED, error="DNS")
    tracker.fail_run(second, "Content acquisition failed")

    third = tracker.create_run("https://c.example", steps).id
    finish(tracker, third, SCRAPE)
    finish(tracker, third, GOLDEN, score=40.0)
    finish(tracker, third, REPORT)

    metrics = tracker.metrics()

    assert metrics.total_analyses == 3
    assert metrics.successful_analyses == 2
    assert metrics.failed_analyses == 1
    assert metrics.average_score == 60.0
    assert metrics.average_duration >= 0
    assert metrics.step_success_rates[SCRAPE] == pytest.approx(0.6667)
    assert metrics.step_success_rates[GOLDEN] == 1.0
    assert REPORT in metrics.step_success_rates


def test_metrics_on_empty_store(tracker):
    metrics = tracker.metrics()

    assert metrics.total_analyses == 0
    assert metrics.average_score == 0.0
    assert metrics.step_success_rates == {}


class TestRedisUnavailable:
    @pytest.fixture
    def tracker(self) -> ProgressTracker:
        client = MagicMock()
        down = redis.ConnectionError("Connection refused")
        client.pipeline.return_value.execute.side_effect = down
        client.transaction.side_effect = down
        client.hmget.side_effect = down
        client.smembers.side_effect = down
        return ProgressTracker(RedisRunStore(client))

    def test_create_run_fails_loudly(self, tracker):
        with pytest.raises(TrackerUnavailableError):
            tracker.create_run("https://acme.example", STEPS)

    def test_update_step_fails_loudly(self, tracker):
        with pytest.raises(TrackerUnavailableError):
            tracker.update_step("analysis_1", SCRAPE, StepStatus.RUNNING)

    def test_reads_fail_loudly(self, tracker):
        with pytest.raises(TrackerUnavailableError):
            tracker.get_status("analysis_1")
        with pytest.raises(TrackerUnavailableError):
            tracker.get_progress("analysis_1")
        with pytest.raises(TrackerUnavailableError):
            tracker.list_runs()
