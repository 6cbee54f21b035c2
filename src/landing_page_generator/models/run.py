from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .design import DesignExtraction
from .section import Section


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BrandTone(str, Enum):
    professional = "professional"
    friendly = "friendly"
    playful = "playful"
    authoritative = "authoritative"
    casual = "casual"


class BusinessContext(BaseModel):
    """Business facts that ground every generated sentence.

    Fields are plain strings; blank or unknown values are reported by the
    Validation stage.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    business_name: str = ""
    business_overview: str = ""
    target_audience: str = ""
    brand_tone: str = BrandTone.professional.value
    website_url: str | None = None


class LengthPolicyKind(str, Enum):
    short = "short"
    medium = "medium"
    long = "long"
    custom = "custom"


LENGTH_BOUNDS: dict[LengthPolicyKind, tuple[int, int]] = {
    LengthPolicyKind.short: (50, 100),
    LengthPolicyKind.medium: (100, 200),
    LengthPolicyKind.long: (200, 400),
}

CUSTOM_TOLERANCE = 10


class ContentLengthPolicy(BaseModel):
    kind: LengthPolicyKind = LengthPolicyKind.medium
    custom_target: int = Field(default=150, ge=20)

    @property
    def bounds(self) -> tuple[int, int]:
        if self.kind is LengthPolicyKind.custom:
            return self.custom_target - CUSTOM_TOLERANCE, self.custom_target + CUSTOM_TOLERANCE
        return LENGTH_BOUNDS[self.kind]

    @property
    def minimum(self) -> int:
        return self.bounds[0]

    @property
    def maximum(self) -> int:
        return self.bounds[1]

    def accepts(self, word_count: int) -> bool:
        low, high = self.bounds
        return low <= word_count <= high


class RunStage(str, Enum):
    validation = "Validation"
    content_planning = "ContentPlanning"
    design_analysis = "DesignAnalysis"
    content_generation = "ContentGeneration"
    page_assembly = "PageAssembly"
    preview = "Preview"
    download = "Download"
    complete = "Complete"
    failed = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStage.complete, RunStage.failed)


STAGE_SEQUENCE: tuple[RunStage, ...] = (
    RunStage.validation,
    RunStage.content_planning,
    RunStage.design_analysis,
    RunStage.content_generation,
    RunStage.page_assembly,
    RunStage.preview,
    RunStage.download,
)


def next_stage(stage: RunStage) -> RunStage:
    """Successor of a working stage; the last one leads to Complete."""
    if stage.is_terminal:
        return stage
    index = STAGE_SEQUENCE.index(stage)
    if index + 1 < len(STAGE_SEQUENCE):
        return STAGE_SEQUENCE[index + 1]
    return RunStage.complete


class StageRecord(BaseModel):
    completed: bool = False
    completed_at: datetime | None = None
    data: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------
# Stage outputs
# ---------------------------------------------------------------------


class ValidationReport(BaseModel):
    business_context_valid: bool = False
    design_extraction_valid: bool = False
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class ContentPlan(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    target_sections: list[str] = Field(default_factory=list)
    content_strategy: str = ""
    tone_analysis: str = ""
    audience_insights: str = ""
    fallback_used: bool = False


class DesignAnalysis(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    layout_structure: str = ""
    color_scheme: str = ""
    typography: str = ""
    responsive_design: str = ""
    accessibility_notes: str = ""
    section_count: int = 0
    section_types: list[str] = Field(default_factory=list)
    fallback_used: bool = False


class PageMeta(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = ""
    description: str = ""
    keywords: str = ""
    og_title: str = ""
    og_description: str = ""
    og_image: str = "/images/og-image.jpg"


class GeneratedPage(BaseModel):
    sections: list[Section] = Field(default_factory=list)
    meta: PageMeta = Field(default_factory=PageMeta)
    fallback_used: bool = False
    truncated_count: int = 0
    expanded_section_ids: list[str] = Field(default_factory=list)
    template_section_ids: list[str] = Field(default_factory=list)
    over_limit_section_ids: list[str] = Field(default_factory=list)


class PageSection(BaseModel):
    id: str
    type: str = "content"
    title: str = ""
    name: str = ""
    content: str = ""
    components: dict[str, Any] = Field(default_factory=dict)
    order: int = 1


class LandingPageDocument(BaseModel):
    title: str
    business_name: str
    sections: list[PageSection] = Field(default_factory=list)
    meta: PageMeta = Field(default_factory=PageMeta)
    custom_css: str = ""
    custom_js: str = ""
    tags: list[str] = Field(default_factory=lambda: ["ai-generated"])


class AssembledPage(BaseModel):
    document: LandingPageDocument
    quality_score: int = Field(ge=0, le=100)
    sections_generated: int = 0
    fallback_used: bool = False


class PreviewInfo(BaseModel):
    preview_url: str
    sections_previewed: int = 0
    preview_generated: bool = True


class DownloadInfo(BaseModel):
    download_url: str
    download_format: Literal["html", "zip"] = "html"
    file_size: int = 0
    download_prepared: bool = True


class PipelineRun(BaseModel):
    id: str = ""
    business_context: BusinessContext = Field(default_factory=BusinessContext)
    design_extraction: DesignExtraction = Field(default_factory=DesignExtraction)
    content_length_policy: ContentLengthPolicy = Field(default_factory=ContentLengthPolicy)
    content_plan: ContentPlan | None = None
    design_analysis: DesignAnalysis | None = None
    generated_sections: list[Section] = Field(default_factory=list)
    page_meta: PageMeta | None = None
    current_stage: RunStage = RunStage.validation
    stage_records: dict[str, StageRecord] = Field(default_factory=dict)
    landing_page: LandingPageDocument | None = None
    quality_score: int | None = None
    preview: PreviewInfo | None = None
    download: DownloadInfo | None = None
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    cancel_requested: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    def stage_record(self, stage: RunStage) -> StageRecord | None:
        return self.stage_records.get(stage.value)


__all__ = [
    "utcnow",
    "BrandTone",
    "BusinessContext",
    "LengthPolicyKind",
    "LENGTH_BOUNDS",
    "CUSTOM_TOLERANCE",
    "ContentLengthPolicy",
    "RunStage",
    "STAGE_SEQUENCE",
    "next_stage",
    "StageRecord",
    "ValidationReport",
    "ContentPlan",
    "DesignAnalysis",
    "PageMeta",
    "GeneratedPage",
    "PageSection",
    "LandingPageDocument",
    "AssembledPage",
    "PreviewInfo",
    "DownloadInfo",
    "PipelineRun",
]
