from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

from landing_page_generator.models.run import BusinessContext
from landing_page_generator.orchestrator import StageOrchestrator
from landing_page_generator.run_store import InMemoryRunStore
from landing_page_generator.settings import OrchestratorSettings
from landing_page_generator.step_recorder import StepStateRecorder

DATA_DIR = Path(__file__).parent / "data"


class FakeModel:
    """Replays scripted responses; exceptions in the script are raised."""

    def __init__(self, responses: list[Any] | None = None, default: str = "") -> None:
        self.responses = list(responses or [])
        self.default = default
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(prompt)
        return response


class FlakyStore(InMemoryRunStore):
    """In-memory store whose updates fail while ``failing`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.failing = False
        self.update_calls = 0

    def update_run_fields(self, run_id, updates):
        self.update_calls += 1
        if self.failing:
            raise ConnectionError("store unavailable")
        super().update_run_fields(run_id, updates)


def load_json(name: str) -> dict[str, Any]:
    return json.loads((DATA_DIR / name).read_text(encoding="utf-8"))


@pytest.fixture
def design_tree() -> dict[str, Any]:
    return load_json("landing_design.json")


@pytest.fixture
def business() -> BusinessContext:
    return BusinessContext(
        business_name="Acme Analytics",
        business_overview="Analytics dashboards for growing retailers",
        target_audience="independent retail owners",
        brand_tone="friendly",
        website_url="https://acme.example.com",
    )


@pytest.fixture
def store() -> InMemoryRunStore:
    return InMemoryRunStore()


@pytest.fixture
def recorder(store: InMemoryRunStore) -> StepStateRecorder:
    return StepStateRecorder(store, sleep=lambda _: None)


@pytest.fixture
def fast_settings() -> OrchestratorSettings:
    return OrchestratorSettings(
        stage_timeout=5.0,
        max_attempts=2,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        executor_workers=2,
        public_base_url="https://pages.example.com",
    )


@pytest.fixture
def make_orchestrator(recorder, fast_settings) -> Iterator[Callable[..., StageOrchestrator]]:
    created: list[StageOrchestrator] = []

    def factory(model=None, **overrides) -> StageOrchestrator:
        orchestrator = StageOrchestrator(
            model=model,
            recorder=overrides.pop("recorder", recorder),
            settings=overrides.pop("settings", fast_settings),
            sleep=lambda _: None,
        )
        created.append(orchestrator)
        return orchestrator

    yield factory
    for orchestrator in created:
        orchestrator.close()
