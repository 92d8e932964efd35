"""
Durable run storage keyed by run id.

Two backends share one contract:

- RedisRunStore: production store. One hash per run holding the header
  fields and one ``step:<id>`` field per step, an append-only error list, and
  an artifacts hash (scraped content, framework results, fallbacks, report).
- InMemoryRunStore: thread-safe dict arena for tests and single-process dev.

All step state changes go through ``apply()``, which loads the run, lets the
caller mutate a private copy, and writes back only the header, the touched
step fields and the new/changed error entries in one atomic unit.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

import redis

from analyzer.errors import NotFoundError, TrackerUnavailableError
from analyzer.models import AnalysisError, AnalysisRun, Step

logger = logging.getLogger(__name__)

T = TypeVar("T")

# fn(run) mutates the run copy in place and returns (touched step ids, value)
Mutation = Callable[[AnalysisRun], "tuple[Iterable[str], T]"]


class RunStore(ABC):
    """Keyed store: run id -> run record; each step addressed by its id"""

    @abstractmethod
    def create(self, run: AnalysisRun) -> None: ...

    @abstractmethod
    def load(self, run_id: str) -> Optional[AnalysisRun]: ...

    @abstractmethod
    def load_status(self, run_id: str) -> Optional[Dict[str, object]]: ...

    @abstractmethod
    def apply(self, run_id: str, fn: Mutation) -> T: ...

    @abstractmethod
    def delete(self, run_id: str) -> bool: ...

    @abstractmethod
    def list_ids(self) -> List[str]: ...

    @abstractmethod
    def put_artifact(self, run_id: str, name: str, value: str) -> None: ...

    @abstractmethod
    def get_artifact(self, run_id: str, name: str) -> Optional[str]: ...

    def ping(self) -> bool:
        return True


class InMemoryRunStore(RunStore):
    """Thread-safe in-memory run store."""

    def __init__(self) -> None:
        self._runs: Dict[str, AnalysisRun] = {}
        self._artifacts: Dict[str, Dict[str, str]] = {}
        self._lock = threading.Lock()

    def create(self, run: AnalysisRun) -> None:
        with self._lock:
            self._runs[run.id] = run.model_copy(deep=True)
            self._artifacts[run.id] = {}

    def load(self, run_id: str) -> Optional[AnalysisRun]:
        with self._lock:
            run = self._runs.get(run_id)
            return run.model_copy(deep=True) if run else None

    def load_status(self, run_id: str) -> Optional[Dict[str, object]]:
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                return None
            return {"status": run.status.value, "overall_progress": run.overall_progress}

    def apply(self, run_id: str, fn: Mutation) -> T:
        with self._lock:
            current = self._runs.get(run_id)
            if current is None:
                raise NotFoundError(f"Analysis run not found: {run_id}")
            draft = current.model_copy(deep=True)
            _touched, value = fn(draft)
            self._runs[run_id] = draft
            return value

    def delete(self, run_id: str) -> bool:
        with self._lock:
            self._artifacts.pop(run_id, None)
            return self._runs.pop(run_id, None) is not None

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self._runs.keys())

    def put_artifact(self, run_id: str, name: str, value: str) -> None:
        with self._lock:
            if run_id not in self._runs:
                raise NotFoundError(f"Analysis run not found: {run_id}")
            self._artifacts.setdefault(run_id, {})[name] = value

    def get_artifact(self, run_id: str, name: str) -> Optional[str]:
        with self._lock:
            return self._artifacts.get(run_id, {}).get(name)


class RedisRunStore(RunStore):
    """
    Redis-backed run store.

    Any redis error is re-raised as TrackerUnavailableError: the orchestrator
    relies on durable writes, so nothing is dropped silently.
    """

    INDEX_KEY = "analysis:runs"

    def __init__(self, client: "redis.Redis", retention_seconds: int = 0):
        self.client = client
        self.retention_seconds = retention_seconds

    # Key layout -----------------------------------------------------------
    @staticmethod
    def run_key(run_id: str) -> str:
        return f"analysis:run:{run_id}"

    @classmethod
    def errors_key(cls, run_id: str) -> str:
        return f"{cls.run_key(run_id)}:errors"

    @classmethod
    def artifacts_key(cls, run_id: str) -> str:
        return f"{cls.run_key(run_id)}:artifacts"

    # Encoding -------------------------------------------------------------
    @staticmethod
    def _header_mapping(run: AnalysisRun) -> Dict[str, str]:
        return {
            "id": run.id,
            "url": run.url,
            "started_at": run.started_at,
            "completed_at": run.completed_at or "",
            "status": run.status.value,
            "overall_progress": str(run.overall_progress),
            "step_ids": json.dumps(run.step_ids),
        }

    @staticmethod
    def _decode(raw: Dict[str, str], raw_errors: List[str]) -> AnalysisRun:
        step_ids = json.loads(raw.get("step_ids") or "[]")
        steps = [
            Step.model_validate_json(raw[f"step:{sid}"]) if raw.get(f"step:{sid}") else Step(id=sid)
            for sid in step_ids
        ]
        return AnalysisRun(
            id=raw["id"],
            url=raw["url"],
            started_at=raw["started_at"],
            completed_at=raw.get("completed_at") or None,
            status=raw["status"],
            overall_progress=int(raw.get("overall_progress") or 0),
            steps=steps,
            errors=[AnalysisError.model_validate_json(e) for e in raw_errors],
        )

    def _expire(self, pipe, run_id: str) -> None:
        if self.retention_seconds > 0:
            for key in (self.run_key(run_id), self.errors_key(run_id), self.artifacts_key(run_id)):
                pipe.expire(key, self.retention_seconds)

    # Contract -------------------------------------------------------------
    def create(self, run: AnalysisRun) -> None:
        mapping = self._header_mapping(run)
        for step in run.steps:
            mapping[f"step:{step.id}"] = step.model_dump_json()
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.hset(self.run_key(run.id), mapping=mapping)
            for error in run.errors:
                pipe.rpush(self.errors_key(run.id), error.model_dump_json())
            pipe.sadd(self.INDEX_KEY, run.id)
            self._expire(pipe, run.id)
            pipe.execute()
        except redis.RedisError as e:
            logger.error(f"❌ Redis create failed for run '{run.id}': {str(e)}")
            raise TrackerUnavailableError(f"Progress store unavailable: {str(e)}") from e

    def load(self, run_id: str) -> Optional[AnalysisRun]:
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.hgetall(self.run_key(run_id))
            pipe.lrange(self.errors_key(run_id), 0, -1)
            raw, raw_errors = pipe.execute()
        except redis.RedisError as e:
            logger.error(f"❌ Redis load failed for run '{run_id}': {str(e)}")
            raise TrackerUnavailableError(f"Progress store unavailable: {str(e)}") from e
        if not raw:
            return None
        return self._decode(raw, raw_errors)

    def load_status(self, run_id: str) -> Optional[Dict[str, object]]:
        try:
            status, progress = self.client.hmget(self.run_key(run_id), "status", "overall_progress")
        except redis.RedisError as e:
            raise TrackerUnavailableError(f"Progress store unavailable: {str(e)}") from e
        if status is None:
            return None
        return {"status": status, "overall_progress": int(progress or 0)}

    def apply(self, run_id: str, fn: Mutation) -> T:
        run_key = self.run_key(run_id)
        errors_key = self.errors_key(run_id)

        def _transaction(pipe) -> T:
            # Immediate-mode reads while WATCHing both keys
            raw = pipe.hgetall(run_key)
            if not raw:
                raise NotFoundError(f"Analysis run not found: {run_id}")
            raw_errors = pipe.lrange(errors_key, 0, -1)
            draft = self._decode(raw, raw_errors)
            known_errors = [e.model_copy() for e in draft.errors]

            touched, value = fn(draft)

            mapping = self._header_mapping(draft)
            for step_id in set(touched):
                step = draft.get_step(step_id)
                if step is not None:
                    mapping[f"step:{step_id}"] = step.model_dump_json()

            pipe.multi()
            pipe.hset(run_key, mapping=mapping)
            for index, before in enumerate(known_errors):
                after = draft.errors[index]
                if after != before:
                    pipe.lset(errors_key, index, after.model_dump_json())
            for error in draft.errors[len(known_errors):]:
                pipe.rpush(errors_key, error.model_dump_json())
            return value

        try:
            return self.client.transaction(_transaction, run_key, errors_key, value_from_callable=True)
        except redis.RedisError as e:
            logger.error(f"❌ Redis update failed for run '{run_id}': {str(e)}")
            raise TrackerUnavailableError(f"Progress store unavailable: {str(e)}") from e

    def delete(self, run_id: str) -> bool:
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.delete(self.run_key(run_id), self.errors_key(run_id), self.artifacts_key(run_id))
            pipe.srem(self.INDEX_KEY, run_id)
            deleted, _ = pipe.execute()
        except redis.RedisError as e:
            raise TrackerUnavailableError(f"Progress store unavailable: {str(e)}") from e
        return bool(deleted)

    def list_ids(self) -> List[str]:
        try:
            return sorted(self.client.smembers(self.INDEX_KEY))
        except redis.RedisError as e:
            raise TrackerUnavailableError(f"Progress store unavailable: {str(e)}") from e

    def put_artifact(self, run_id: str, name: str, value: str) -> None:
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.hset(self.artifacts_key(run_id), name, value)
            self._expire(pipe, run_id)
            pipe.execute()
        except redis.RedisError as e:
            raise TrackerUnavailableError(f"Progress store unavailable: {str(e)}") from e

    def get_artifact(self, run_id: str, name: str) -> Optional[str]:
        try:
            return self.client.hget(self.artifacts_key(run_id), name)
        except redis.RedisError as e:
            raise TrackerUnavailableError(f"Progress store unavailable: {str(e)}") from e

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False
