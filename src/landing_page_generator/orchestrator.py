from __future__ import annotations

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Mapping, Protocol

from pydantic import ValidationError as PydanticValidationError
from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from .content_validator import apply_length_policy, clean_html, last_resort_content
from .errors import (
    InvariantViolation,
    ModelError,
    ParseError,
    PersistenceWarning,
    RunCancelled,
    ValidationError,
)
from .models.design import DesignExtraction
from .models.run import (
    STAGE_SEQUENCE,
    AssembledPage,
    BrandTone,
    BusinessContext,
    ContentLengthPolicy,
    ContentPlan,
    DesignAnalysis,
    DownloadInfo,
    GeneratedPage,
    LandingPageDocument,
    PageMeta,
    PipelineRun,
    PreviewInfo,
    RunStage,
    StageRecord,
    ValidationReport,
    next_stage,
    utcnow,
)
from .models.section import ComponentKey, Section, TextValue, coerce_components, component_fragments
from .page_assembly import (
    assemble_document,
    default_meta,
    download_info,
    fill_meta,
    preview_info,
    quality_score,
)
from .prompts import build_design_prompt, build_generation_prompt, build_planning_prompt
from .response_parser import parse_model_response
from .settings import OrchestratorSettings
from .step_recorder import StepStateRecorder, to_json

logger = logging.getLogger(__name__)

WEBSITE_URL = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)


class TextModel(Protocol):
    def generate(self, prompt: str) -> str:
        ...


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ModelError) and exc.transient


class StageOrchestrator:
    """Runs the landing page pipeline one stage at a time.

    Stages: Validation, ContentPlanning, DesignAnalysis, ContentGeneration,
    PageAssembly, Preview, Download. Each stage is recorded before the next
    one starts. Only validation errors, exhausted model retries in the
    planning and analysis stages, cancellation and unexpected errors end a
    run in Failed; everything else is replaced by deterministic content.
    """

    def __init__(
        self,
        *,
        model: TextModel | None,
        recorder: StepStateRecorder,
        settings: OrchestratorSettings | None = None,
        executor: ThreadPoolExecutor | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._model = model
        self._recorder = recorder
        self._settings = settings or OrchestratorSettings()
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self._settings.executor_workers,
            thread_name_prefix="model-call",
        )
        self._owns_executor = executor is None
        self._executor_lock = threading.Lock()
        self._sleep = sleep
        self._cancel_requests: set[str] = set()
        self._cancel_lock = threading.Lock()

    def close(self) -> None:
        if self._owns_executor:
            with self._executor_lock:
                self._executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Run operations
    # ------------------------------------------------------------------

    def create_run(
        self,
        business: BusinessContext,
        extraction: DesignExtraction,
        policy: ContentLengthPolicy | None = None,
    ) -> PipelineRun:
        run = PipelineRun(
            business_context=business,
            design_extraction=extraction,
            content_length_policy=policy or ContentLengthPolicy(),
        )
        run_id = self._recorder.create_run(run)
        return run.model_copy(update={"id": run_id})

    def run(
        self,
        business: BusinessContext,
        extraction: DesignExtraction,
        policy: ContentLengthPolicy | None = None,
    ) -> PipelineRun:
        return self.execute(self.create_run(business, extraction, policy))

    def cancel(self, run_id: str) -> bool:
        """Request cooperative cancellation; observed before the next stage."""
        with self._cancel_lock:
            self._cancel_requests.add(run_id)
        stored = self._recorder.request_cancel(run_id)
        logger.info("Cancellation requested", extra={"run_id": run_id, "stored": stored})
        return True

    def execute(self, run: PipelineRun) -> PipelineRun:
        stage = RunStage.validation
        logger.info("Pipeline run started", extra={"run_id": run.id})
        try:
            for stage in STAGE_SEQUENCE:
                self._check_cancelled(run.id)
                run = self._run_stage(stage, run)
            return self._complete(run)
        except ValidationError as exc:
            return self._fail(run, stage, exc.errors)
        except ModelError as exc:
            return self._fail(run, stage, [f"{stage.value}: {exc}"])
        except RunCancelled:
            return self._fail(run, stage, ["run cancelled"])
        except Exception as exc:
            logger.error(
                "Unexpected pipeline failure",
                exc_info=True,
                extra={"run_id": run.id, "stage": stage.value},
            )
            return self._fail(run, stage, [f"{stage.value}: {exc}"])
        finally:
            with self._cancel_lock:
                self._cancel_requests.discard(run.id)

    def _run_stage(self, stage: RunStage, run: PipelineRun) -> PipelineRun:
        business = run.business_context
        extraction = run.design_extraction

        if stage is RunStage.validation:
            report = self.validate(business, extraction)
            if not report.ok:
                raise ValidationError(report.errors)
            run = run.model_copy(update={"warnings": [*run.warnings, *report.warnings]})
            return self._record(run, stage, {"output": report.model_dump()})

        if stage is RunStage.content_planning:
            plan = self.plan_content(business, extraction)
            run = run.model_copy(update={"content_plan": plan})
            return self._record(run, stage, {"output": plan.model_dump()}, {"content_plan": plan})

        if stage is RunStage.design_analysis:
            analysis = self.analyze_design(business, extraction)
            run = run.model_copy(update={"design_analysis": analysis})
            return self._record(
                run, stage, {"output": analysis.model_dump()}, {"design_analysis": analysis}
            )

        if stage is RunStage.content_generation:
            page = self.generate_content(
                business,
                extraction,
                run.content_length_policy,
                plan=run.content_plan,
                analysis=run.design_analysis,
            )
            run = run.model_copy(update={"generated_sections": page.sections, "page_meta": page.meta})
            data = {
                "input": {"section_count": len(extraction.sections)},
                "output": page.model_dump(exclude={"sections"}),
            }
            fields = {
                "generated_sections": [section.model_dump() for section in page.sections],
                "page_meta": page.meta,
            }
            return self._record(run, stage, data, fields)

        if stage is RunStage.page_assembly:
            generation = run.stage_record(RunStage.content_generation)
            output = generation.data.get("output", {}) if generation else {}
            page = GeneratedPage(
                sections=run.generated_sections,
                meta=run.page_meta or default_meta(business),
                fallback_used=bool(output.get("fallback_used")),
            )
            assembled = self.assemble_page(page, business, extraction, run.content_length_policy)
            run = run.model_copy(
                update={"landing_page": assembled.document, "quality_score": assembled.quality_score}
            )
            data = {"output": assembled.model_dump(exclude={"document"})}
            fields = {"landing_page": assembled.document, "quality_score": assembled.quality_score}
            return self._record(run, stage, data, fields)

        if stage is RunStage.preview:
            preview = self.preview(run.id, self._document(run))
            run = run.model_copy(update={"preview": preview})
            return self._record(run, stage, {"output": preview.model_dump()}, {"preview": preview})

        if stage is RunStage.download:
            download = self.prepare_download(run.id, self._document(run))
            run = run.model_copy(update={"download": download})
            return self._record(run, stage, {"output": download.model_dump()}, {"download": download})

        raise ValueError(f"not a working stage: {stage.value}")

    def _document(self, run: PipelineRun) -> LandingPageDocument:
        if run.landing_page is None:
            raise RuntimeError("page assembly did not produce a document")
        return run.landing_page

    def _check_cancelled(self, run_id: str) -> None:
        with self._cancel_lock:
            requested = run_id in self._cancel_requests
        if requested or self._recorder.cancel_requested(run_id):
            logger.info("Run cancelled", extra={"run_id": run_id})
            raise RunCancelled(run_id)

    def _record(
        self,
        run: PipelineRun,
        stage: RunStage,
        data: Mapping[str, Any],
        fields: Mapping[str, Any] | None = None,
    ) -> PipelineRun:
        upcoming = next_stage(stage)
        snapshot = to_json(dict(data))
        persisted = self._recorder.record_stage(
            run.id,
            stage,
            snapshot,
            completed=True,
            next_stage=upcoming,
            fields={**(fields or {}), "warnings": run.warnings},
        )

        warnings = list(run.warnings)
        if not persisted:
            warning = PersistenceWarning(f"{stage.value} record was not persisted")
            logger.warning(str(warning), extra={"run_id": run.id, "stage": stage.value})
            warnings.append(str(warning))

        now = utcnow()
        records = dict(run.stage_records)
        records[stage.value] = StageRecord(completed=True, completed_at=now, data=snapshot)
        return run.model_copy(
            update={
                "stage_records": records,
                "current_stage": upcoming,
                "updated_at": now,
                "warnings": warnings,
            }
        )

    def _complete(self, run: PipelineRun) -> PipelineRun:
        warnings = list(run.warnings)
        if not self._recorder.mark_complete(run.id, {"warnings": warnings}):
            warnings.append(str(PersistenceWarning("completion was not persisted")))
        now = utcnow()
        logger.info(
            "Pipeline run completed",
            extra={"run_id": run.id, "quality_score": run.quality_score},
        )
        return run.model_copy(
            update={
                "current_stage": RunStage.complete,
                "completed_at": now,
                "updated_at": now,
                "warnings": warnings,
            }
        )

    def _fail(self, run: PipelineRun, stage: RunStage, errors: list[str]) -> PipelineRun:
        all_errors = [*run.errors, *errors]
        warnings = list(run.warnings)
        if not self._recorder.record_failure(run.id, stage, all_errors):
            warnings.append(str(PersistenceWarning("failure was not persisted")))

        logger.warning(
            "Pipeline run failed",
            extra={"run_id": run.id, "stage": stage.value, "errors": all_errors},
        )
        now = utcnow()
        records = dict(run.stage_records)
        records[stage.value] = StageRecord(completed=False, data={"errors": all_errors})
        return run.model_copy(
            update={
                "current_stage": RunStage.failed,
                "stage_records": records,
                "errors": all_errors,
                "warnings": warnings,
                "completed_at": now,
                "updated_at": now,
            }
        )

    # ------------------------------------------------------------------
    # Model calls
    # ------------------------------------------------------------------

    def _call_model(self, stage: RunStage, prompt: str) -> str:
        """Model call with a per-attempt timeout and backoff on transient errors."""
        retrying = Retrying(
            stop=stop_after_attempt(max(1, self._settings.max_attempts)),
            wait=wait_exponential(
                multiplier=self._settings.retry_base_delay,
                max=self._settings.retry_max_delay,
            ),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        started = time.monotonic()
        text = retrying(self._generate_once, prompt)
        logger.info(
            "Model call finished",
            extra={
                "stage": stage.value,
                "elapsed_ms": round((time.monotonic() - started) * 1000),
                "output_length": len(text),
            },
        )
        return text

    def _generate_once(self, prompt: str) -> str:
        if self._model is None:
            raise ModelError("generative model is not configured", transient=False)

        with self._executor_lock:
            executor = self._executor
            future = executor.submit(self._model.generate, prompt)
        try:
            text = future.result(timeout=self._settings.stage_timeout)
        except FutureTimeout as exc:
            if not future.cancel():
                self._retire_executor(executor)
            raise ModelError(
                f"model call timed out after {self._settings.stage_timeout:g}s", transient=True
            ) from exc
        except ModelError:
            raise
        except Exception as exc:
            raise ModelError(f"model call failed: {exc}", transient=False) from exc

        if not isinstance(text, str):
            raise ModelError("model returned no text", transient=False)
        return text

    def _retire_executor(self, stale: ThreadPoolExecutor) -> None:
        """Replace a pool whose worker is stuck in a timed-out call.

        A running call cannot be interrupted, so its thread stays busy until
        the model returns. Later calls go to a fresh pool instead of queueing
        behind it. Injected executors are left alone.
        """
        if not self._owns_executor:
            logger.warning("Timed-out model call is still holding an executor thread")
            return
        with self._executor_lock:
            if self._executor is not stale:
                return
            self._executor = ThreadPoolExecutor(
                max_workers=self._settings.executor_workers,
                thread_name_prefix="model-call",
            )
        stale.shutdown(wait=False)
        logger.warning(
            "Replaced model executor after a call timed out",
            extra={"timeout_s": self._settings.stage_timeout},
        )

    # ------------------------------------------------------------------
    # Stage operations
    # ------------------------------------------------------------------

    def validate(self, business: BusinessContext, extraction: DesignExtraction) -> ValidationReport:
        errors: list[str] = []
        warnings: list[str] = []

        if not business.business_name.strip():
            errors.append("Business name is required")
        if not business.business_overview.strip():
            errors.append("Business overview is required")
        if not business.target_audience.strip():
            errors.append("Target audience is required")

        tone = business.brand_tone.strip().lower()
        if tone and tone not in {member.value for member in BrandTone}:
            errors.append(f"Invalid brand tone: {business.brand_tone}")

        url = (business.website_url or "").strip()
        if url and not WEBSITE_URL.match(url):
            errors.append(f"Invalid website URL: {business.website_url}")

        business_valid = not errors

        if not extraction.sections:
            warnings.append("Design extraction contains no sections")

        report = ValidationReport(
            business_context_valid=business_valid,
            design_extraction_valid=bool(extraction.sections),
            errors=errors,
            warnings=warnings,
        )
        logger.info(
            "Validation finished",
            extra={"error_count": len(errors), "section_count": len(extraction.sections)},
        )
        return report

    def plan_content(self, business: BusinessContext, extraction: DesignExtraction) -> ContentPlan:
        """Content strategy from the model; ModelError propagates once retries run out."""
        raw = self._call_model(RunStage.content_planning, build_planning_prompt(business, extraction))
        try:
            plan = ContentPlan.model_validate(parse_model_response(raw).unwrap())
            if not plan.target_sections and not plan.content_strategy:
                raise ParseError("content plan is empty")
        except (ParseError, PydanticValidationError) as exc:
            logger.info("Using fallback content plan", extra={"reason": str(exc)[:200]})
            return fallback_plan(business, extraction)
        return plan.model_copy(update={"fallback_used": False})

    def analyze_design(self, business: BusinessContext, extraction: DesignExtraction) -> DesignAnalysis:
        """Design analysis from the model; ModelError propagates once retries run out."""
        raw = self._call_model(RunStage.design_analysis, build_design_prompt(business, extraction))
        try:
            analysis = DesignAnalysis.model_validate(parse_model_response(raw).unwrap())
            if not analysis.layout_structure:
                raise ParseError("design analysis has no layout structure")
        except (ParseError, PydanticValidationError) as exc:
            logger.info("Using fallback design analysis", extra={"reason": str(exc)[:200]})
            return fallback_analysis(extraction)
        return analysis.model_copy(
            update={
                "section_count": len(extraction.sections),
                "section_types": extraction.section_types,
                "fallback_used": False,
            }
        )

    def generate_content(
        self,
        business: BusinessContext,
        extraction: DesignExtraction,
        policy: ContentLengthPolicy | None = None,
        plan: ContentPlan | None = None,
        analysis: DesignAnalysis | None = None,
    ) -> GeneratedPage:
        """Business copy for exactly the extracted sections, in extraction order."""
        policy = policy or ContentLengthPolicy()
        slots = extraction.sections
        if not slots:
            return GeneratedPage(sections=[], meta=default_meta(business))

        entries: list[Any] | None = None
        meta: PageMeta | None = None
        truncated = 0
        prompt = build_generation_prompt(business, slots, policy, plan, analysis)
        try:
            payload = parse_model_response(self._call_model(RunStage.content_generation, prompt)).payload
        except ModelError as exc:
            logger.warning(
                "Content generation model call failed, synthesizing sections",
                extra={"error": str(exc), "transient": exc.transient},
            )
            payload = None

        if payload is not None:
            meta = _parse_meta(payload.get("meta"))
            raw_sections = payload.get("sections")
            if isinstance(raw_sections, list):
                entries = raw_sections

        if entries is not None and len(entries) != len(slots):
            violation = InvariantViolation(expected=len(slots), actual=len(entries))
            if len(entries) > len(slots):
                truncated = len(entries) - len(slots)
                entries = entries[: len(slots)]
                action = "truncated"
            else:
                entries = None
                action = "rejected"
            logger.warning(
                "Generated section count mismatch",
                extra={
                    "expected": violation.expected,
                    "actual": violation.actual,
                    "action": action,
                },
            )

        fallback_used = entries is None
        template_ids: list[str] = []
        drafts: list[Section] = []
        for index, slot in enumerate(slots):
            draft = None if entries is None else _merge_entry(slot, entries[index])
            if draft is None:
                draft = synthesize_section(slot, business, policy)
                template_ids.append(slot.id)
            drafts.append(draft)

        sections: list[Section] = []
        expanded_ids: list[str] = []
        over_limit_ids: list[str] = []
        for draft in drafts:
            outcome = apply_length_policy(draft, business, policy)
            sections.append(outcome.section)
            if outcome.status == "expanded":
                expanded_ids.append(draft.id)
            elif outcome.status == "template" and draft.id not in template_ids:
                template_ids.append(draft.id)
            elif outcome.status == "over_limit":
                over_limit_ids.append(draft.id)

        logger.info(
            "Content generation finished",
            extra={
                "section_count": len(sections),
                "fallback_used": fallback_used,
                "truncated": truncated,
                "expanded": len(expanded_ids),
                "templated": len(template_ids),
            },
        )
        return GeneratedPage(
            sections=sections,
            meta=fill_meta(meta, business),
            fallback_used=fallback_used,
            truncated_count=truncated,
            expanded_section_ids=expanded_ids,
            template_section_ids=template_ids,
            over_limit_section_ids=over_limit_ids,
        )

    def assemble_page(
        self,
        page: GeneratedPage,
        business: BusinessContext,
        extraction: DesignExtraction,
        policy: ContentLengthPolicy | None = None,
    ) -> AssembledPage:
        fallback_used = page.fallback_used
        try:
            document = assemble_document(page, business, extraction.tokens)
        except Exception:
            logger.error("Page assembly failed, synthesizing page", exc_info=True)
            policy = policy or ContentLengthPolicy()
            synthesized = GeneratedPage(
                sections=[synthesize_section(slot, business, policy) for slot in extraction.sections],
                meta=default_meta(business),
                fallback_used=True,
            )
            document = assemble_document(synthesized, business, extraction.tokens)
            fallback_used = True

        score = quality_score(document, business)
        logger.info(
            "Page assembled",
            extra={"section_count": len(document.sections), "quality_score": score},
        )
        return AssembledPage(
            document=document,
            quality_score=score,
            sections_generated=len(document.sections),
            fallback_used=fallback_used,
        )

    def preview(self, run_id: str, document: LandingPageDocument) -> PreviewInfo:
        return preview_info(run_id, document, self._settings.public_base_url)

    def prepare_download(
        self,
        run_id: str,
        document: LandingPageDocument,
        download_format: str = "html",
    ) -> DownloadInfo:
        return download_info(run_id, document, self._settings.public_base_url, download_format)


# ----------------------------------------------------------------------
# Deterministic substitutes
# ----------------------------------------------------------------------


def fallback_plan(business: BusinessContext, extraction: DesignExtraction) -> ContentPlan:
    tone = business.brand_tone or BrandTone.professional.value
    return ContentPlan(
        target_sections=extraction.section_types or ["content"],
        content_strategy=(
            f"Create compelling content for {business.business_name} that speaks "
            f"directly to {business.target_audience}"
        ),
        tone_analysis=f"Use a {tone} tone throughout while maintaining authenticity",
        audience_insights=(
            f"Target audience: {business.target_audience}. Focus on their pain points "
            f"and how {business.business_name} can solve them."
        ),
        fallback_used=True,
    )


def fallback_analysis(extraction: DesignExtraction) -> DesignAnalysis:
    count = len(extraction.sections)
    types = extraction.section_types
    colors = [token.value for token in extraction.tokens if token.category == "color"]
    fonts = [token.value for token in extraction.tokens if token.category == "typography"]
    layout = extraction.layout.layout_type if extraction.layout else "simple"

    if count:
        structure = f"{layout.capitalize()} layout with {count} sections in reading order: {', '.join(types)}"
    else:
        structure = "Clean, modern layout with clear visual hierarchy and ample white space"
    return DesignAnalysis(
        layout_structure=structure,
        color_scheme=(
            f"Palette taken from the design: {', '.join(colors[:5])}"
            if colors
            else "Professional blue and white color scheme with accent colors"
        ),
        typography=(
            f"Font families from the design: {', '.join(fonts[:3])}"
            if fonts
            else "Modern sans-serif fonts with clear hierarchy (headings, body, captions)"
        ),
        responsive_design="Mobile-first approach with breakpoints at 768px and 1024px",
        accessibility_notes=(
            "Ensure proper contrast ratios, alt text for images, and keyboard navigation"
        ),
        section_count=count,
        section_types=types,
        fallback_used=True,
    )


def synthesize_section(slot: Section, business: BusinessContext, policy: ContentLengthPolicy) -> Section:
    """Business-specific section built only from the extraction slot."""
    return slot.model_copy(
        update={
            "components": {
                ComponentKey.title: TextValue(value=slot.display_name),
                ComponentKey.content: TextValue(value=last_resort_content(slot, business, policy)),
            },
            "content": None,
            "extracted_elements": None,
        }
    )


def _merge_entry(slot: Section, entry: Any) -> Section | None:
    """Model entry mapped onto its slot; None when the entry is unusable.

    id, order and type always come from the slot.
    """
    if not isinstance(entry, Mapping):
        return None
    try:
        components = coerce_components(entry.get("components"))
    except ValueError as exc:
        logger.info(
            "Discarding malformed section entry",
            extra={"section_id": slot.id, "reason": str(exc)},
        )
        return None

    raw_content = entry.get("content")
    content = clean_html(raw_content) if isinstance(raw_content, str) else None
    raw_body = components.get(ComponentKey.content)
    if raw_body is not None:
        cleaned = clean_html(" ".join(component_fragments(raw_body)))
        if cleaned is None:
            components.pop(ComponentKey.content)
        else:
            components[ComponentKey.content] = TextValue(value=cleaned)

    title = entry.get("title")
    if not isinstance(title, str) or not title.strip():
        title = slot.title

    return slot.model_copy(
        update={
            "title": title.strip(),
            "components": components,
            "content": content,
            "extracted_elements": None,
        }
    )


def _parse_meta(raw: Any) -> PageMeta | None:
    if not isinstance(raw, Mapping):
        return None
    try:
        return PageMeta.model_validate(raw)
    except PydanticValidationError:
        return None


__all__ = [
    "TextModel",
    "StageOrchestrator",
    "fallback_plan",
    "fallback_analysis",
    "synthesize_section",
]
