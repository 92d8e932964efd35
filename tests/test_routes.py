"""
API tests with a dispatching orchestrator: runs are created and handed to a
recording dispatcher, and step state is driven through the tracker directly.
"""
import pytest
from fastapi.testclient import TestClient

from analyzer.fallback import build_fallback_document
from analyzer.frameworks import FrameworkId, step_id_for
from analyzer.models import REPORT_STEP, SCRAPE_STEP, StepStatus
from analyzer.orchestrator import FALLBACK_PREFIX
from analyzer.pipeline import get_orchestrator
from doubles import make_content, make_orchestrator
from main import app

FRAMEWORKS = [FrameworkId.GOLDEN_CIRCLE, FrameworkId.B2C_ELEMENTS]
GOLDEN_STEP = step_id_for(FrameworkId.GOLDEN_CIRCLE)
B2C_STEP = step_id_for(FrameworkId.B2C_ELEMENTS)


class RecordingDispatcher:
    def __init__(self):
        self.run_ids = []

    def __call__(self, run_id):
        self.run_ids.append(run_id)
        return f"celery-{len(self.run_ids)}"


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def orchestrator(dispatcher):
    return make_orchestrator(frameworks=FRAMEWORKS, dispatcher=dispatcher)


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def start(client, url="https://acme.example"):
    response = client.post("/analysis", json={"url": url})
    assert response.status_code == 202
    return response.json()["run_id"]


def finish_run(orchestrator, run_id):
    tracker = orchestrator.tracker
    for step_id in (SCRAPE_STEP, GOLDEN_STEP, B2C_STEP, REPORT_STEP):
        tracker.update_step(run_id, step_id, StepStatus.COMPLETED, score=50.0 if "framework" in step_id else None)


def test_start_returns_run_id_and_dispatches(client, dispatcher):
    response = client.post("/analysis", json={"url": "https://acme.example"})

    assert response.status_code == 202
    body = response.json()
    assert body["run_id"].startswith("analysis_")
    assert body["status"] == "pending"
    assert body["poll_url"] == f"/analysis/{body['run_id']}/status"
    assert dispatcher.run_ids == [body["run_id"]]


def test_invalid_url_is_rejected(client, dispatcher):
    response = client.post("/analysis", json={"url": "not a url"})

    assert response.status_code == 422
    assert dispatcher.run_ids == []


def test_status_poll(client):
    run_id = start(client)

    response = client.get(f"/analysis/{run_id}/status")

    assert response.status_code == 200
    assert response.json() == {"run_id": run_id, "status": "pending", "overall_progress": 0}


def test_full_progress_lists_steps_in_order(client):
    run_id = start(client)

    body = client.get(f"/analysis/{run_id}").json()

    assert [s["id"] for s in body["steps"]] == [SCRAPE_STEP, GOLDEN_STEP, B2C_STEP, REPORT_STEP]
    assert body["url"] == "https://acme.example/"


def test_unknown_run_is_404(client):
    for path in ("/analysis/analysis_missing", "/analysis/analysis_missing/status"):
        response = client.get(path)
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"


def test_list_runs(client):
    first = start(client, "https://one.example")
    second = start(client, "https://two.example")

    run_ids = {r["run_id"] for r in client.get("/analysis").json()}

    assert run_ids == {first, second}


def test_retry_of_completed_step_conflicts(client, orchestrator):
    run_id = start(client)
    finish_run(orchestrator, run_id)

    response = client.post(f"/analysis/{run_id}/steps/{GOLDEN_STEP}/retry")

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "invalid_transition"


def test_retry_of_failed_step_relaunches(client, orchestrator, dispatcher):
    run_id = start(client)
    tracker = orchestrator.tracker
    tracker.update_step(run_id, SCRAPE_STEP, StepStatus.COMPLETED)
    tracker.update_step(run_id, GOLDEN_STEP, StepStatus.FAILED, error="timeout")

    response = client.post(f"/analysis/{run_id}/steps/{GOLDEN_STEP}/retry")

    assert response.status_code == 202
    steps = {s["id"]: s for s in response.json()["steps"]}
    assert steps[GOLDEN_STEP]["status"] == "pending"
    assert steps[GOLDEN_STEP]["retry_count"] == 1
    assert dispatcher.run_ids == [run_id, run_id]


def test_retry_of_unknown_step_is_404(client):
    run_id = start(client)

    response = client.post(f"/analysis/{run_id}/steps/framework_eval.nope/retry")

    assert response.status_code == 404


def test_fallback_download_is_markdown(client, orchestrator):
    run_id = start(client)
    content = make_content()
    document = build_fallback_document(FrameworkId.GOLDEN_CIRCLE, content.url, content, "credit balance too low")
    orchestrator.store.put_artifact(run_id, f"{FALLBACK_PREFIX}golden_circle", document.model_dump_json())
    orchestrator.tracker.update_step(run_id, GOLDEN_STEP, StepStatus.FAILED, error="credit balance too low")

    listing = client.get(f"/analysis/{run_id}/fallbacks").json()
    assert [d["framework_id"] for d in listing] == ["golden_circle"]
    assert listing[0]["download_url"] == f"/analysis/{run_id}/fallbacks/golden_circle"

    response = client.get(f"/analysis/{run_id}/fallbacks/golden_circle")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/markdown")
    assert response.text.startswith("# Golden Circle (Simon Sinek) - Analysis Prompt")

    assert client.get(f"/analysis/{run_id}/fallbacks/b2c_elements").status_code == 404


def test_report_missing_is_404(client):
    run_id = start(client)

    assert client.get(f"/analysis/{run_id}/report").status_code == 404


def test_cancel_and_cancel_again(client):
    run_id = start(client)

    response = client.post(f"/analysis/{run_id}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "failed"

    assert client.post(f"/analysis/{run_id}/cancel").status_code == 409


def test_delete_then_gone(client):
    run_id = start(client)

    response = client.delete(f"/analysis/{run_id}")

    assert response.status_code == 200
    assert response.json() == {"run_id": run_id, "deleted": True}
    assert client.get(f"/analysis/{run_id}").status_code == 404
    assert client.delete(f"/analysis/{run_id}").status_code == 404


def test_metrics(client, orchestrator):
    run_id = start(client)
    finish_run(orchestrator, run_id)

    body = client.get("/metrics").json()

    assert body["total_analyses"] == 1
    assert body["successful_analyses"] == 1
    assert body["average_score"] == 50.0
    assert body["step_success_rates"][SCRAPE_STEP] == 1.0


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
