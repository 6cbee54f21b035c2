from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from landing_page_generator.errors import ModelError
from landing_page_generator.firestore_run_store import FirestoreRunStore
from landing_page_generator.logging_config import setup_logging
from landing_page_generator.models.design import DesignExtraction
from landing_page_generator.models.run import (
    AssembledPage,
    BusinessContext,
    ContentLengthPolicy,
    ContentPlan,
    DesignAnalysis,
    GeneratedPage,
    LandingPageDocument,
    PipelineRun,
    RunStage,
    ValidationReport,
)
from landing_page_generator.orchestrator import StageOrchestrator
from landing_page_generator.page_assembly import download_filename, render_download
from landing_page_generator.pubsub_client import PubSubClient
from landing_page_generator.run_store import InMemoryRunStore
from landing_page_generator.segmenter import extract_design
from landing_page_generator.settings import ENVIRONMENT, PROJECT_ID, OrchestratorSettings
from landing_page_generator.step_recorder import StepStateRecorder
from landing_page_generator.vertex_ai_adapter import VertexAIAdapter

setup_logging(environment=ENVIRONMENT, project_id=PROJECT_ID)
logger = logging.getLogger(__name__)


class RunRequest(BaseModel):
    business_context: BusinessContext = Field(alias="businessContext")
    design_extraction: DesignExtraction | None = Field(default=None, alias="designExtraction")
    design_tree: dict[str, Any] | None = Field(
        default=None,
        alias="designTree",
        description="Raw design document tree, segmented when no extraction is given",
    )
    content_length_policy: ContentLengthPolicy = Field(
        default_factory=ContentLengthPolicy, alias="contentLengthPolicy"
    )

    model_config = {"populate_by_name": True}

    def extraction(self) -> DesignExtraction:
        if self.design_extraction is not None:
            return self.design_extraction
        if self.design_tree is not None:
            return extract_design(self.design_tree)
        return DesignExtraction()


class StageRequest(RunRequest):
    content_plan: ContentPlan | None = Field(default=None, alias="contentPlan")
    design_analysis: DesignAnalysis | None = Field(default=None, alias="designAnalysis")
    generated_page: GeneratedPage | None = Field(default=None, alias="generatedPage")


class SegmentRequest(BaseModel):
    design_tree: dict[str, Any] = Field(alias="designTree")

    model_config = {"populate_by_name": True}


class EnqueueResponse(BaseModel):
    run_id: str
    current_stage: RunStage


settings = OrchestratorSettings.from_env()

# Use Firestore outside dev, in-memory for dev
if ENVIRONMENT == "dev":
    run_store = InMemoryRunStore()
else:
    run_store = FirestoreRunStore(project_id=PROJECT_ID)

model = VertexAIAdapter(project_id=PROJECT_ID, model_name=settings.model_name) if PROJECT_ID else None
pubsub_client = PubSubClient(project_id=PROJECT_ID) if PROJECT_ID else None

recorder = StepStateRecorder(run_store)
orchestrator = StageOrchestrator(model=model, recorder=recorder, settings=settings)

app = FastAPI(title="Landing Page Generator API", version="0.1.0")

MODEL_STAGES = {"plan-content", "analyze-design", "generate-content"}


@app.on_event("shutdown")
def _shutdown() -> None:
    orchestrator.close()


@app.post("/v1/runs", response_model=PipelineRun)
async def create_and_run(request: RunRequest) -> PipelineRun:
    extraction = request.extraction()
    return await asyncio.to_thread(
        orchestrator.run,
        request.business_context,
        extraction,
        request.content_length_policy,
    )


@app.post("/v1/runs:enqueue", response_model=EnqueueResponse)
async def enqueue_run(request: RunRequest, background_tasks: BackgroundTasks) -> EnqueueResponse:
    run = orchestrator.create_run(
        request.business_context,
        request.extraction(),
        request.content_length_policy,
    )

    # Outside dev, publish to Pub/Sub; in dev, use a background task
    if pubsub_client and ENVIRONMENT != "dev":
        pubsub_client.publish_run_requested(run_id=run.id)
    else:
        background_tasks.add_task(orchestrator.execute, run)

    logger.info("Run enqueued", extra={"run_id": run.id, "section_count": len(run.design_extraction.sections)})
    return EnqueueResponse(run_id=run.id, current_stage=run.current_stage)


@app.get("/v1/runs/{run_id}", response_model=PipelineRun)
async def get_run(run_id: str) -> PipelineRun:
    run = recorder.load_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return run


@app.get("/v1/runs/{run_id}/preview", response_model=LandingPageDocument)
async def preview_run(run_id: str) -> LandingPageDocument:
    return _assembled_page(run_id)


@app.get("/v1/runs/{run_id}/download")
async def download_run(
    run_id: str,
    download_format: Literal["html", "zip"] = Query(default="html", alias="format"),
) -> Response:
    document = _assembled_page(run_id)
    media_type = "application/zip" if download_format == "zip" else "text/html; charset=utf-8"
    filename = download_filename(document, download_format)
    return Response(
        content=render_download(document, download_format),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _assembled_page(run_id: str) -> LandingPageDocument:
    run = recorder.load_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    if run.landing_page is None:
        raise HTTPException(status_code=409, detail="Run has no assembled page yet")
    return run.landing_page


@app.post("/v1/runs/{run_id}:cancel")
async def cancel_run(run_id: str) -> JSONResponse:
    run = recorder.load_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    if run.current_stage.is_terminal:
        raise HTTPException(status_code=409, detail=f"Run already {run.current_stage.value}")
    orchestrator.cancel(run_id)
    return JSONResponse({"run_id": run_id, "cancel_requested": True})


@app.post("/v1/design:segment", response_model=DesignExtraction)
async def segment_design(request: SegmentRequest) -> DesignExtraction:
    return extract_design(request.design_tree)


@app.post("/v1/stages/{stage}")
async def run_stage(stage: str, request: StageRequest) -> JSONResponse:
    """Invoke one stage operation in isolation, without creating a run."""
    if stage in MODEL_STAGES and model is None:
        raise HTTPException(status_code=503, detail="Generative model is not configured")

    business = request.business_context
    extraction = request.extraction()
    try:
        result = await asyncio.to_thread(_dispatch_stage, stage, request, business, extraction)
    except ModelError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return JSONResponse(result.model_dump(mode="json", by_alias=True))


def _dispatch_stage(
    stage: str,
    request: StageRequest,
    business: BusinessContext,
    extraction: DesignExtraction,
) -> ValidationReport | ContentPlan | DesignAnalysis | GeneratedPage | AssembledPage:
    if stage == "validate":
        return orchestrator.validate(business, extraction)
    if stage == "plan-content":
        return orchestrator.plan_content(business, extraction)
    if stage == "analyze-design":
        return orchestrator.analyze_design(business, extraction)
    if stage == "generate-content":
        return orchestrator.generate_content(
            business,
            extraction,
            request.content_length_policy,
            plan=request.content_plan,
            analysis=request.design_analysis,
        )
    if stage == "assemble-page":
        if request.generated_page is None:
            raise HTTPException(status_code=422, detail="generatedPage is required")
        return orchestrator.assemble_page(
            request.generated_page, business, extraction, request.content_length_policy
        )
    raise HTTPException(status_code=404, detail=f"Unknown stage: {stage}")


@app.get("/health")
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok", "model_configured": model is not None})
