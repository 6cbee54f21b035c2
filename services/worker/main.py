from __future__ import annotations

import asyncio
import base64
import json
import logging
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from landing_page_generator.firestore_run_store import FirestoreRunStore
from landing_page_generator.logging_config import set_trace_id, setup_logging
from landing_page_generator.models.run import PipelineRun
from landing_page_generator.orchestrator import StageOrchestrator
from landing_page_generator.pubsub_client import PubSubClient
from landing_page_generator.settings import ENVIRONMENT, PROJECT_ID, OrchestratorSettings
from landing_page_generator.step_recorder import StepStateRecorder
from landing_page_generator.vertex_ai_adapter import VertexAIAdapter

setup_logging(environment=ENVIRONMENT, project_id=PROJECT_ID)
logger = logging.getLogger(__name__)

settings = OrchestratorSettings.from_env()
recorder = StepStateRecorder(FirestoreRunStore(project_id=PROJECT_ID))
orchestrator = StageOrchestrator(
    model=VertexAIAdapter(project_id=PROJECT_ID, model_name=settings.model_name),
    recorder=recorder,
    settings=settings,
)
pubsub_client = PubSubClient(project_id=PROJECT_ID)

app = FastAPI(title="Landing Page Generator Worker", version="0.1.0")


class PubSubMessage(BaseModel):
    """Pub/Sub push message format."""

    message: dict[str, Any]
    subscription: str


@app.post("/v1/worker/process")
async def process_run_request(request: Request) -> JSONResponse:
    """Execute a queued run. Called by the Pub/Sub push subscription."""
    trace_id = str(uuid.uuid4())
    set_trace_id(trace_id)

    body = await request.json()
    pubsub_message = PubSubMessage.model_validate(body)

    message_data = pubsub_message.message.get("data", "")
    if not message_data:
        raise HTTPException(status_code=400, detail="No message data")
    payload = json.loads(base64.b64decode(message_data).decode("utf-8"))

    run_id = payload.get("run_id")
    if not run_id:
        raise HTTPException(status_code=400, detail="Missing required field: run_id")

    run = recorder.load_run(run_id)
    if run is None:
        # Missing runs are acked
        logger.warning("Run not found for queued request", extra={"run_id": run_id, "trace_id": trace_id})
        return JSONResponse({"status": "skipped", "run_id": run_id})

    if run.current_stage.is_terminal:
        logger.info(
            "Run already finished, skipping redelivery",
            extra={"run_id": run_id, "stage": run.current_stage.value},
        )
        return JSONResponse({"status": "skipped", "run_id": run_id})

    logger.info("Processing run request", extra={"run_id": run_id, "trace_id": trace_id})
    try:
        result = await asyncio.to_thread(orchestrator.execute, run)
        _publish_completion(result)
    except Exception as exc:
        logger.error(
            "Failed to process run request",
            exc_info=True,
            extra={"run_id": run_id, "trace_id": trace_id, "error": str(exc)},
        )
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return JSONResponse({"status": "success", "run_id": run_id, "stage": result.current_stage.value})


def _publish_completion(run: PipelineRun) -> None:
    pubsub_client.publish_run_completed(
        run_id=run.id,
        stage=run.current_stage.value,
        quality_score=run.quality_score,
        errors=run.errors,
    )
    logger.info(
        "Run finished",
        extra={"run_id": run.id, "stage": run.current_stage.value, "quality_score": run.quality_score},
    )


@app.get("/health")
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok"})
