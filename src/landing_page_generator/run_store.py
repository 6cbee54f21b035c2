from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Protocol


class RunStore(Protocol):
    def create_run(self, payload: Mapping[str, Any]) -> str:
        ...

    def update_run_field(self, run_id: str, path: str, value: Any) -> None:
        ...

    def update_run_fields(self, run_id: str, updates: Mapping[str, Any]) -> None:
        ...

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        ...


class RunNotFoundError(KeyError):
    def __init__(self, run_id: str) -> None:
        super().__init__(run_id)
        self.run_id = run_id

    def __str__(self) -> str:
        return f"run not found: {self.run_id}"


class InMemoryRunStore:
    """Process-local run store for development and tests.

    Updates address nested fields with dotted paths and are applied under a
    single lock, so a multi-field update is observed all at once.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def create_run(self, payload: Mapping[str, Any]) -> str:
        with self._lock:
            run_id = str(payload.get("id") or "") or generate_run_id()
            document = copy.deepcopy(dict(payload))
            document["id"] = run_id
            self._runs[run_id] = document
            return run_id

    def update_run_field(self, run_id: str, path: str, value: Any) -> None:
        self.update_run_fields(run_id, {path: value})

    def update_run_fields(self, run_id: str, updates: Mapping[str, Any]) -> None:
        with self._lock:
            document = self._runs.get(run_id)
            if document is None:
                raise RunNotFoundError(run_id)
            staged = copy.deepcopy(document)
            for path, value in updates.items():
                set_path(staged, path, copy.deepcopy(value))
            self._runs[run_id] = staged

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        with self._lock:
            document = self._runs.get(run_id)
            return copy.deepcopy(document) if document is not None else None

    def list_runs(self, *, stage: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
        with self._lock:
            documents = [
                copy.deepcopy(document)
                for document in self._runs.values()
                if stage is None or document.get("current_stage") == stage
            ]
        return documents[:limit]


def set_path(document: dict[str, Any], path: str, value: Any) -> None:
    keys = path.split(".")
    target = document
    for key in keys[:-1]:
        child = target.get(key)
        if not isinstance(child, dict):
            child = {}
            target[key] = child
        target = child
    target[keys[-1]] = value


def generate_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    suffix = uuid.uuid4().hex[:6]
    return f"run_{ts}_{suffix}"


__all__ = ["RunStore", "RunNotFoundError", "InMemoryRunStore", "set_path", "generate_run_id"]
