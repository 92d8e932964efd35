"""
Parallel framework runner.

Runs a batch of independent FrameworkTasks concurrently with settle-all
semantics: every task reaches an outcome, one task's failure never affects
another, and evaluator errors come back as FrameworkFailure data carrying a
ready-made FallbackDocument.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

from analyzer.errors import ErrorKind
from analyzer.fallback import DEFAULT_EXCERPT_CHARS, build_fallback_document
from analyzer.frameworks import FRAMEWORKS, FrameworkId
from analyzer.models import (
    BatchResult,
    FrameworkFailure,
    FrameworkResult,
    FrameworkTask,
    ScrapedContent,
)

logger = logging.getLogger(__name__)

FrameworkOutcome = Union[FrameworkResult, FrameworkFailure]


class FrameworkEvaluator(Protocol):
    """Opaque AI capability: Evaluate(framework, content, deadline) -> data"""

    async def evaluate(
        self, framework_id: FrameworkId, content: ScrapedContent, deadline: float
    ) -> Dict[str, Any]:
        ...


class ParallelFrameworkRunner:
    """
    Executes framework evaluations concurrently.

    Args:
        evaluator: Anything implementing FrameworkEvaluator
        max_concurrency: Bound on evaluations in flight (None = unbounded)
        fallback_builder: Called exactly once per failure
        excerpt_chars: Page text bound passed to the fallback builder
    """

    def __init__(
        self,
        evaluator: FrameworkEvaluator,
        max_concurrency: Optional[int] = None,
        fallback_builder: Callable[..., Any] = build_fallback_document,
        excerpt_chars: int = DEFAULT_EXCERPT_CHARS,
    ):
        self.evaluator = evaluator
        self.max_concurrency = max_concurrency if max_concurrency and max_concurrency > 0 else None
        self.fallback_builder = fallback_builder
        self.excerpt_chars = excerpt_chars

    async def run_batch(
        self,
        tasks: List[FrameworkTask],
        on_start: Optional[Callable[[FrameworkTask], Any]] = None,
        on_settle: Optional[Callable[[FrameworkTask, FrameworkOutcome], Any]] = None,
    ) -> BatchResult:
        """
        Run every task to completion and partition the outcomes.

        on_start / on_settle are progress hooks (sync or async). An exception
        raised by a hook is not a framework failure: it is re-raised once the
        whole batch has settled so the caller fails loudly.
        """
        if not tasks:
            return BatchResult()

        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
        logger.info(f"🚀 Running {len(tasks)} framework evaluations in parallel")

        async def _guarded(task: FrameworkTask) -> FrameworkOutcome:
            if semaphore is None:
                return await self._run_with_hooks(task, on_start, on_settle)
            async with semaphore:
                return await self._run_with_hooks(task, on_start, on_settle)

        settled = await asyncio.gather(*(_guarded(t) for t in tasks), return_exceptions=True)

        result = BatchResult()
        hook_errors: List[BaseException] = []
        for outcome in settled:
            if isinstance(outcome, FrameworkResult):
                result.succeeded.append(outcome)
            elif isinstance(outcome, FrameworkFailure):
                result.failed.append(outcome)
            else:
                hook_errors.append(outcome)

        logger.info(
            f"✅ Batch settled: {len(result.succeeded)} succeeded, {len(result.failed)} failed"
        )
        if hook_errors:
            raise hook_errors[0]
        return result

    async def _run_with_hooks(self, task, on_start, on_settle) -> FrameworkOutcome:
        if on_start is not None:
            await _maybe_await(on_start(task))
        outcome = await self.run_one(task)
        if on_settle is not None:
            await _maybe_await(on_settle(task, outcome))
        return outcome

    async def run_one(self, task: FrameworkTask) -> FrameworkOutcome:
        """Evaluate a single task; only cancellation escapes as an exception"""
        framework_id = task.framework_id
        started = time.monotonic()
        try:
            data = await asyncio.wait_for(
                self.evaluator.evaluate(framework_id, task.content, task.deadline),
                timeout=task.deadline,
            )
        except asyncio.TimeoutError:
            message = f"Evaluation exceeded deadline of {task.deadline:g}s"
            logger.error(f"⏱️ {framework_id.value} timed out for {task.url}")
            return self._failure(task, message, ErrorKind.TIMEOUT, started)
        except asyncio.CancelledError:
            logger.warning(f"🛑 {framework_id.value} cancelled for {task.url}")
            raise
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"❌ {framework_id.value} failed for {task.url}: {message}")
            return self._failure(task, message, ErrorKind.FRAMEWORK, started)

        duration = round(time.monotonic() - started, 3)
        if not isinstance(data, dict):
            return self._failure(
                task,
                f"Evaluator returned {type(data).__name__} instead of a JSON object",
                ErrorKind.FRAMEWORK,
                started,
            )

        try:
            score = FRAMEWORKS[framework_id].extract_score(data)
            result = FrameworkResult(framework_id=framework_id, data=data, score=score, duration=duration)
        except Exception as e:
            message = f"Unusable evaluation result: {str(e) or e.__class__.__name__}"
            logger.error(f"❌ {framework_id.value} result rejected for {task.url}: {message}")
            return self._failure(task, message, ErrorKind.FRAMEWORK, started)

        logger.info(f"✅ {framework_id.value} evaluated in {duration:.2f}s (score: {score})")
        return result

    def _failure(self, task: FrameworkTask, message: str, kind: ErrorKind, started: float) -> FrameworkFailure:
        fallback = self.fallback_builder(
            task.framework_id, task.url, task.content, message, excerpt_chars=self.excerpt_chars
        )
        return FrameworkFailure(
            framework_id=task.framework_id,
            error=message,
            kind=kind,
            fallback=fallback,
            duration=round(time.monotonic() - started, 3),
        )


async def _maybe_await(value: Union[Any, Awaitable[Any]]) -> Any:
    if asyncio.iscoroutine(value) or isinstance(value, asyncio.Future):
        return await value
    return value
