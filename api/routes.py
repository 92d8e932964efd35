import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from config import settings
from analyzer.errors import (
    AnalysisServiceError,
    InvalidTransitionError,
    InvalidUrlError,
    NotFoundError,
    TrackerUnavailableError,
)
from analyzer.models import AnalysisMetrics, AnalysisReport, AnalysisRun
from analyzer.orchestrator import AnalysisOrchestrator
from analyzer.pipeline import get_orchestrator
from api.models import (
    FallbackSummary,
    RunResponse,
    RunStatusResponse,
    RunSummary,
    StartAnalysisRequest,
    StartAnalysisResponse,
)

logger = logging.getLogger(__name__)

# Create router
router = APIRouter()


def _http_error(e: AnalysisServiceError) -> HTTPException:
    """Map engine errors to HTTP responses"""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail={"error": "not_found", "message": str(e)})
    if isinstance(e, InvalidTransitionError):
        return HTTPException(status_code=409, detail={"error": "invalid_transition", "message": str(e)})
    if isinstance(e, InvalidUrlError):
        return HTTPException(status_code=422, detail={"error": "invalid_url", "message": str(e)})
    if isinstance(e, TrackerUnavailableError):
        logger.error(f"❌ Progress store unavailable: {str(e)}")
        return HTTPException(status_code=503, detail={"error": "tracker_unavailable", "message": str(e)})
    logger.error(f"❌ Analysis service error: {str(e)}")
    return HTTPException(status_code=500, detail={"error": "internal", "message": str(e)})


def _run_response(run: AnalysisRun) -> RunResponse:
    return RunResponse(
        run_id=run.id,
        url=run.url,
        status=run.status.value,
        overall_progress=run.overall_progress,
        started_at=run.started_at,
        completed_at=run.completed_at,
        steps=run.steps,
        errors=run.errors,
    )


@router.get("/")
async def root():
    return {
        "service": "Framework Analyzer",
        "status": "running",
        "endpoints": {"start": "/analysis (POST)", "status": "/analysis/{run_id}/status"},
    }


@router.post("/analysis", status_code=202, response_model=StartAnalysisResponse)
async def start_analysis(
    request: StartAnalysisRequest,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """
    Start a framework analysis for a URL.
    Returns immediately with a run_id for progress polling.
    """
    try:
        run_id = await orchestrator.start(str(request.url))
    except AnalysisServiceError as e:
        raise _http_error(e)

    return StartAnalysisResponse(
        run_id=run_id,
        status="pending",
        message="Analysis started",
        poll_url=f"/analysis/{run_id}/status",
    )


@router.get("/analysis", response_model=List[RunSummary])
async def list_analyses(orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """All analysis runs, most recent first"""
    try:
        runs = orchestrator.list_runs()
    except AnalysisServiceError as e:
        raise _http_error(e)
    return [
        RunSummary(
            run_id=run.id,
            url=run.url,
            status=run.status.value,
            overall_progress=run.overall_progress,
            started_at=run.started_at,
        )
        for run in runs
    ]


@router.get("/analysis/{run_id}", response_model=RunResponse)
async def get_analysis(run_id: str, orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Full progress record: every step with timings, scores and errors"""
    try:
        return _run_response(orchestrator.get_progress(run_id))
    except AnalysisServiceError as e:
        raise _http_error(e)


@router.get("/analysis/{run_id}/status", response_model=RunStatusResponse)
async def get_analysis_status(
    run_id: str, orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)
):
    """Cheap status poll (run status and overall progress only)"""
    try:
        status = orchestrator.get_status(run_id)
    except AnalysisServiceError as e:
        raise _http_error(e)
    return RunStatusResponse(
        run_id=run_id, status=str(status["status"]), overall_progress=int(status["overall_progress"])
    )


@router.post("/analysis/{run_id}/steps/{step_id}/retry", status_code=202, response_model=RunResponse)
async def retry_analysis_step(
    run_id: str, step_id: str, orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)
):
    """
    Retry a failed step. Only that step (and any steps still pending) run again.

    Returns 409 when the step is not failed or the run is still executing.
    """
    try:
        return _run_response(await orchestrator.retry_step(run_id, step_id))
    except AnalysisServiceError as e:
        raise _http_error(e)


@router.post("/analysis/{run_id}/cancel", response_model=RunResponse)
async def cancel_analysis(run_id: str, orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    try:
        return _run_response(await orchestrator.cancel(run_id))
    except AnalysisServiceError as e:
        raise _http_error(e)


@router.delete("/analysis/{run_id}")
async def delete_analysis(run_id: str, orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Delete a run and everything stored with it (cancels it first if running)"""
    try:
        await orchestrator.delete(run_id)
    except AnalysisServiceError as e:
        raise _http_error(e)
    return {"run_id": run_id, "deleted": True}


@router.get("/analysis/{run_id}/report", response_model=AnalysisReport)
async def get_analysis_report(
    run_id: str, orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)
):
    """
    Strategic report of a run. `stale` is true when a framework step was
    retried after the report was generated; the report itself is not rebuilt.
    """
    try:
        return orchestrator.get_report(run_id)
    except AnalysisServiceError as e:
        raise _http_error(e)


@router.get("/analysis/{run_id}/fallbacks", response_model=List[FallbackSummary])
async def list_analysis_fallbacks(
    run_id: str, orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)
):
    """Manual-retry documents for every framework that could not be evaluated"""
    try:
        documents = orchestrator.list_fallbacks(run_id)
    except AnalysisServiceError as e:
        raise _http_error(e)
    return [
        FallbackSummary(
            framework_id=doc.framework_id,
            framework_label=doc.framework_label,
            generated_at=doc.generated_at,
            error_message=doc.error_message,
            collected_data_summary=doc.collected_data_summary,
            download_url=f"/analysis/{run_id}/fallbacks/{doc.framework_id}",
        )
        for doc in documents
    ]


@router.get("/analysis/{run_id}/fallbacks/{framework_id}", response_class=PlainTextResponse)
async def get_analysis_fallback(
    run_id: str, framework_id: str, orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)
):
    """Fallback document as Markdown, ready to paste into any AI assistant"""
    try:
        document = orchestrator.get_fallback(run_id, framework_id)
    except AnalysisServiceError as e:
        raise _http_error(e)
    return PlainTextResponse(document.to_markdown(), media_type="text/markdown")


@router.get("/metrics", response_model=AnalysisMetrics)
async def get_metrics(orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Aggregate success rates, scores and durations over all stored runs"""
    try:
        return orchestrator.metrics()
    except AnalysisServiceError as e:
        raise _http_error(e)


@router.get("/health")
async def health_check():
    return {"status": "healthy"}


@router.get("/status/detailed")
async def detailed_status_check(orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """
    Enhanced status check with run store, Celery and Anthropic configuration.

    Returns comprehensive system health information for monitoring.
    """
    status_info = {
        "api": "healthy",
        "run_store": settings.RUN_STORE,
        "store": "connected" if orchestrator.store.ping() else "disconnected",
        "execution_mode": settings.EXECUTION_MODE,
        "celery": "not_used",
        "anthropic_api": "configured" if settings.ANTHROPIC_API_KEY else "missing",
        "frameworks": [f.value for f in orchestrator.frameworks],
    }

    # Check Redis stats
    if settings.RUN_STORE == "redis":
        try:
            from core.cache import get_redis_client

            status_info["redis_stats"] = get_redis_client().get_stats()
        except RuntimeError as e:
            status_info["store"] = f"error: {str(e)}"

    # Check Celery workers
    if settings.EXECUTION_MODE == "celery":
        try:
            from core.celery import celery_app

            active_workers = celery_app.control.inspect().active()
            if active_workers:
                status_info["celery"] = "workers_active"
                status_info["celery_workers"] = list(active_workers.keys())
            else:
                status_info["celery"] = "no_workers"
        except Exception as e:
            status_info["celery"] = f"error: {str(e)}"

    # Determine overall health
    critical_components = [status_info["store"], status_info["anthropic_api"], status_info["celery"]]
    if any(
        "error" in str(c) or "missing" in str(c) or "disconnected" in str(c) or c == "no_workers"
        for c in critical_components
    ):
        status_info["overall_status"] = "degraded"
    else:
        status_info["overall_status"] = "healthy"

    return status_info
