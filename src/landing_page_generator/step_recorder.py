from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, Sequence

from pydantic import TypeAdapter
from tenacity import Retrying, stop_after_attempt, wait_exponential

from .models.run import PipelineRun, RunStage, StageRecord, utcnow
from .run_store import RunStore
from .settings import STORE_MAX_ATTEMPTS

logger = logging.getLogger(__name__)

_json_value = TypeAdapter(Any)


def to_json(value: Any) -> Any:
    return _json_value.dump_python(value, mode="json")


class StepStateRecorder:
    """Persists per-stage snapshots of a run.

    Each stage is written as one multi-field update. A store that keeps
    failing is reported with a False return value and never aborts the run.
    """

    def __init__(
        self,
        store: RunStore,
        *,
        max_attempts: int = STORE_MAX_ATTEMPTS,
        wait_multiplier: float = 0.2,
        wait_max: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._max_attempts = max(1, max_attempts)
        self._wait_multiplier = wait_multiplier
        self._wait_max = wait_max
        self._sleep = sleep

    @property
    def store(self) -> RunStore:
        return self._store

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._wait_multiplier, max=self._wait_max),
            sleep=self._sleep,
            reraise=True,
        )

    def create_run(self, run: PipelineRun) -> str:
        """Persist the initial run document. Failures propagate."""
        payload = run.model_dump(mode="json")
        run_id = self._retrying()(self._store.create_run, payload)
        logger.info("Run record created", extra={"run_id": run_id})
        return run_id

    def load_run(self, run_id: str) -> PipelineRun | None:
        data = self._store.get_run(run_id)
        if data is None:
            return None
        return PipelineRun.model_validate(data)

    def record_stage(
        self,
        run_id: str,
        stage: RunStage,
        data: Mapping[str, Any],
        completed: bool,
        next_stage: RunStage | None = None,
        fields: Mapping[str, Any] | None = None,
    ) -> bool:
        now = utcnow()
        record = StageRecord(
            completed=completed,
            completed_at=now if completed else None,
            data=dict(data),
        )
        updates: dict[str, Any] = {
            f"stage_records.{stage.value}": record.model_dump(mode="json"),
            "current_stage": (next_stage or stage).value,
            "updated_at": to_json(now),
        }
        for path, value in (fields or {}).items():
            updates[path] = to_json(value)

        try:
            self._retrying()(self._store.update_run_fields, run_id, updates)
        except Exception:
            logger.error(
                "Failed to record stage",
                exc_info=True,
                extra={"run_id": run_id, "stage": stage.value, "completed": completed},
            )
            return False

        logger.info(
            "Stage recorded",
            extra={
                "run_id": run_id,
                "stage": stage.value,
                "completed": completed,
                "next_stage": (next_stage or stage).value,
            },
        )
        return True

    def record_failure(self, run_id: str, stage: RunStage, errors: Sequence[str]) -> bool:
        return self.record_stage(
            run_id,
            stage,
            {"errors": list(errors)},
            completed=False,
            next_stage=RunStage.failed,
            fields={"errors": list(errors), "completed_at": utcnow()},
        )

    def mark_complete(self, run_id: str, fields: Mapping[str, Any] | None = None) -> bool:
        now = utcnow()
        updates: dict[str, Any] = {
            "current_stage": RunStage.complete.value,
            "completed_at": to_json(now),
            "updated_at": to_json(now),
        }
        for path, value in (fields or {}).items():
            updates[path] = to_json(value)
        try:
            self._retrying()(self._store.update_run_fields, run_id, updates)
        except Exception:
            logger.error("Failed to mark run complete", exc_info=True, extra={"run_id": run_id})
            return False
        return True

    def request_cancel(self, run_id: str) -> bool:
        try:
            self._retrying()(
                self._store.update_run_fields,
                run_id,
                {"cancel_requested": True, "updated_at": to_json(utcnow())},
            )
        except Exception:
            logger.error("Failed to store cancellation", exc_info=True, extra={"run_id": run_id})
            return False
        return True

    def cancel_requested(self, run_id: str) -> bool:
        try:
            data = self._store.get_run(run_id)
        except Exception:
            logger.warning("Could not read cancellation flag", exc_info=True, extra={"run_id": run_id})
            return False
        return bool(data and data.get("cancel_requested"))


__all__ = ["StepStateRecorder", "to_json"]
