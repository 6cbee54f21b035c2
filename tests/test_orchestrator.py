import json
import threading
from concurrent.futures import ThreadPoolExecutor

from conftest import FakeModel, FlakyStore
from landing_page_generator.content_validator import count_words
from landing_page_generator.errors import ModelError
from landing_page_generator.models.design import DesignExtraction
from landing_page_generator.models.run import (
    STAGE_SEQUENCE,
    BusinessContext,
    ContentLengthPolicy,
    LengthPolicyKind,
    RunStage,
)
from landing_page_generator.models.section import ComponentKey, Section
from landing_page_generator.segmenter import extract_design
from landing_page_generator.settings import OrchestratorSettings
from landing_page_generator.step_recorder import StepStateRecorder

PLAN = json.dumps(
    {
        "targetSections": ["header", "hero", "footer"],
        "contentStrategy": "Lead with measurable outcomes",
        "toneAnalysis": "Warm and direct",
        "audienceInsights": "Owners have little time for reporting",
    }
)

ANALYSIS = json.dumps(
    {
        "layoutStructure": "Single column with a full-width hero",
        "colorScheme": "Blue accents on white",
        "typography": "Inter for headings and body",
        "responsiveDesign": "Stack columns below 768px",
        "accessibilityNotes": "Keep contrast above 4.5:1",
    }
)


def body(count):
    return "Acme Analytics " + " ".join(["insight"] * (count - 2))


def generation(*entries):
    return "```json\n" + json.dumps(list(entries)) + "\n```"


def two_sections():
    return DesignExtraction(
        sections=[
            Section(id="section-1", name="Hero Banner", title="Hero Banner", type="hero", order=1,
                    components={"title": "Build faster"}),
            Section(id="section-2", name="Footer", title="Footer", type="footer", order=2,
                    components={"title": "Acme"}),
        ]
    )


def test_full_run_completes_every_stage(make_orchestrator, business, design_tree, recorder):
    model = FakeModel(
        [
            PLAN,
            ANALYSIS,
            generation(
                {"id": "section-1", "components": {"title": "Acme", "content": body(120)}},
                {
                    "id": "section-2",
                    "title": "Dashboards that pay for themselves",
                    "components": {"title": "Know your numbers", "content": body(130), "buttons": ["Start free trial"]},
                },
                {"id": "section-3", "components": {"title": "Acme Analytics", "content": body(110)}},
            ),
        ]
    )
    orchestrator = make_orchestrator(model)

    run = orchestrator.run(business, extract_design(design_tree))

    assert run.current_stage is RunStage.complete
    assert run.errors == []
    assert list(run.stage_records) == [stage.value for stage in STAGE_SEQUENCE]
    assert all(record.completed for record in run.stage_records.values())
    assert [section.type for section in run.generated_sections] == ["header", "hero", "footer"]
    assert run.content_plan.content_strategy == "Lead with measurable outcomes"
    assert run.design_analysis.section_count == 3
    assert run.quality_score == 92
    assert run.preview.preview_url == f"https://pages.example.com/v1/runs/{run.id}/preview"
    assert run.preview.sections_previewed == 3
    assert run.download.download_format == "html"
    assert run.download.file_size > 0
    assert "exactly 3 sections" in model.prompts[2]

    stored = recorder.load_run(run.id)
    assert stored.current_stage is RunStage.complete
    assert stored.landing_page.business_name == "Acme Analytics"
    assert [section.id for section in stored.generated_sections] == ["section-1", "section-2", "section-3"]


def test_extra_generated_sections_are_truncated(make_orchestrator, business):
    model = FakeModel(
        [
            generation(
                {"id": "other", "type": "banner", "order": 7, "components": {"content": body(120)}},
                {"components": {"content": body(150)}},
                {"components": {"content": body(160)}},
            )
        ]
    )
    orchestrator = make_orchestrator(model)

    page = orchestrator.generate_content(business, two_sections(), ContentLengthPolicy())

    assert [section.id for section in page.sections] == ["section-1", "section-2"]
    assert [section.type for section in page.sections] == ["hero", "footer"]
    assert [section.order for section in page.sections] == [1, 2]
    assert page.truncated_count == 1
    assert page.fallback_used is False
    assert page.sections[0].body_text() == body(120)


def test_too_few_generated_sections_are_replaced_by_synthesis(make_orchestrator, business):
    model = FakeModel(['[{"name":"Hero","components":{"title":"x"}}]'])
    orchestrator = make_orchestrator(model)

    page = orchestrator.generate_content(business, two_sections(), ContentLengthPolicy())

    assert len(page.sections) == 2
    assert [section.type for section in page.sections] == ["hero", "footer"]
    assert page.fallback_used is True
    assert page.template_section_ids == ["section-1", "section-2"]
    assert [section.component_text(ComponentKey.title) for section in page.sections] == ["Hero Banner", "Footer"]
    for section in page.sections:
        assert "Acme Analytics" in section.body_text()
        assert 100 <= count_words(section.body_text()) <= 200


def test_unparseable_generation_is_synthesized(make_orchestrator, business):
    orchestrator = make_orchestrator(FakeModel(["I'm sorry, I can't produce that."]))

    page = orchestrator.generate_content(business, two_sections())

    assert page.fallback_used is True
    assert [section.id for section in page.sections] == ["section-1", "section-2"]
    assert page.meta.title == "Acme Analytics - Professional Services"


def test_unknown_component_keys_only_replace_their_slot(make_orchestrator, business):
    model = FakeModel(
        [
            generation(
                {"components": {"title": "Grow", "content": body(120)}},
                {"components": {"title": "Bye", "video": "https://example.com/v.mp4"}},
            )
        ]
    )
    orchestrator = make_orchestrator(model)

    page = orchestrator.generate_content(business, two_sections())

    assert page.fallback_used is False
    assert page.template_section_ids == ["section-2"]
    assert page.sections[0].component_text(ComponentKey.title) == "Grow"
    assert "video" not in page.sections[1].plain_components()


def test_short_generated_body_is_expanded(make_orchestrator, business):
    short = body(40)
    model = FakeModel(
        [
            generation(
                {"components": {"title": "Grow", "content": short}},
                {"content": "<p>" + body(120) + "</p>", "components": {"title": "Acme"}},
            )
        ]
    )
    orchestrator = make_orchestrator(model)

    page = orchestrator.generate_content(business, two_sections())

    assert page.expanded_section_ids == ["section-1"]
    assert page.sections[0].body_text().startswith(short + " ")
    assert count_words(page.sections[0].body_text()) >= 100
    assert page.sections[1].content == body(120)


def test_paragraph_list_content_is_kept_as_the_body_prefix(make_orchestrator, business):
    paragraphs = ["Model paragraph one about retail dashboards.", "Model paragraph two with pricing detail."]
    model = FakeModel(
        [
            generation(
                {"components": {"title": "Grow", "content": paragraphs}},
                {"components": {"title": "Acme", "content": body(120)}},
            )
        ]
    )
    orchestrator = make_orchestrator(model)

    page = orchestrator.generate_content(business, two_sections())

    text = page.sections[0].body_text()
    assert page.expanded_section_ids == ["section-1"]
    assert page.template_section_ids == []
    assert text.startswith(" ".join(paragraphs) + " ")
    assert 100 <= count_words(text) <= 200


def test_model_meta_is_kept_and_blanks_are_filled(make_orchestrator, business):
    payload = json.dumps(
        {
            "sections": [
                {"components": {"content": body(120)}},
                {"components": {"content": body(120)}},
            ],
            "meta": {"title": "Acme Analytics | Retail dashboards", "keywords": "retail, dashboards"},
        }
    )
    orchestrator = make_orchestrator(FakeModel([payload]))

    page = orchestrator.generate_content(business, two_sections())

    assert page.meta.title == "Acme Analytics | Retail dashboards"
    assert page.meta.keywords == "retail, dashboards"
    assert page.meta.description == business.business_overview


def test_empty_extraction_skips_the_generation_call(make_orchestrator, business):
    model = FakeModel()
    orchestrator = make_orchestrator(model)

    page = orchestrator.generate_content(business, DesignExtraction())

    assert page.sections == []
    assert model.prompts == []


def test_run_with_no_sections_still_completes(make_orchestrator, business):
    model = FakeModel([PLAN, ANALYSIS])
    orchestrator = make_orchestrator(model)

    run = orchestrator.run(business, DesignExtraction())

    assert run.current_stage is RunStage.complete
    assert "Design extraction contains no sections" in run.warnings
    assert run.generated_sections == []
    assert run.quality_score == 15
    assert len(model.prompts) == 2


def test_validation_errors_fail_the_run(make_orchestrator, design_tree, store):
    model = FakeModel()
    orchestrator = make_orchestrator(model)
    business = BusinessContext(
        business_name=" ",
        business_overview="Bakery",
        target_audience="Locals",
        brand_tone="grumpy",
        website_url="ftp://bakery",
    )

    run = orchestrator.run(business, extract_design(design_tree))

    assert run.current_stage is RunStage.failed
    assert run.errors == [
        "Business name is required",
        "Invalid brand tone: grumpy",
        "Invalid website URL: ftp://bakery",
    ]
    assert model.prompts == []
    document = store.get_run(run.id)
    assert document["current_stage"] == "Failed"
    assert document["stage_records"]["Validation"]["completed"] is False


def test_validate_accepts_tone_case_and_missing_url(make_orchestrator, design_tree):
    orchestrator = make_orchestrator()
    business = BusinessContext(
        business_name="Acme", business_overview="Dashboards", target_audience="Retailers", brand_tone="Friendly"
    )

    report = orchestrator.validate(business, extract_design(design_tree))

    assert report.ok
    assert report.business_context_valid and report.design_extraction_valid


def test_planning_failure_after_retries_fails_the_run(make_orchestrator, business, design_tree):
    model = FakeModel([ModelError("quota exceeded"), ModelError("quota exceeded")])
    orchestrator = make_orchestrator(model)

    run = orchestrator.run(business, extract_design(design_tree))

    assert run.current_stage is RunStage.failed
    assert run.errors == ["ContentPlanning: quota exceeded"]
    assert len(model.prompts) == 2
    assert run.stage_record(RunStage.validation).completed is True
    assert run.stage_record(RunStage.content_planning).completed is False


def test_non_transient_model_errors_are_not_retried(make_orchestrator, business, design_tree):
    model = FakeModel([ModelError("response was blocked", transient=False)])
    orchestrator = make_orchestrator(model)

    run = orchestrator.run(business, extract_design(design_tree))

    assert run.current_stage is RunStage.failed
    assert len(model.prompts) == 1


def test_missing_model_fails_at_planning(make_orchestrator, business, design_tree):
    run = make_orchestrator(None).run(business, extract_design(design_tree))

    assert run.current_stage is RunStage.failed
    assert run.errors == ["ContentPlanning: generative model is not configured"]


def test_model_call_timeout_is_transient(make_orchestrator, business, design_tree):
    release = threading.Event()

    def stalled(prompt):
        release.wait(2)
        return PLAN

    settings = OrchestratorSettings(stage_timeout=0.05, max_attempts=1, retry_base_delay=0, retry_max_delay=0)
    orchestrator = make_orchestrator(FakeModel([stalled]), settings=settings)
    try:
        run = orchestrator.run(business, extract_design(design_tree))
    finally:
        release.set()

    assert run.current_stage is RunStage.failed
    assert run.errors == ["ContentPlanning: model call timed out after 0.05s"]


def test_retry_after_timeout_does_not_wait_for_the_hung_call(make_orchestrator, business, design_tree):
    release = threading.Event()

    def hung(prompt):
        release.wait(5)
        return "{}"

    settings = OrchestratorSettings(
        stage_timeout=0.2, max_attempts=2, retry_base_delay=0, retry_max_delay=0, executor_workers=1
    )
    model = FakeModel([hung, PLAN])
    orchestrator = make_orchestrator(model, settings=settings)
    try:
        plan = orchestrator.plan_content(business, extract_design(design_tree))
    finally:
        release.set()

    assert len(model.prompts) == 2
    assert plan.fallback_used is False
    assert plan.content_strategy == "Lead with measurable outcomes"


def test_generation_failure_falls_back_to_synthesis(make_orchestrator, business, design_tree):
    model = FakeModel([PLAN, ANALYSIS, ModelError("unavailable"), ModelError("unavailable")])
    orchestrator = make_orchestrator(model)

    run = orchestrator.run(business, extract_design(design_tree))

    assert run.current_stage is RunStage.complete
    assert len(run.generated_sections) == 3
    assert "fallback" in run.landing_page.tags
    assert run.stage_record(RunStage.content_generation).data["output"]["fallback_used"] is True


def test_planning_parse_failure_uses_fallback_plan(make_orchestrator, business, design_tree):
    extraction = extract_design(design_tree)
    orchestrator = make_orchestrator(FakeModel(["Here is my plan: be great."]))

    plan = orchestrator.plan_content(business, extraction)

    assert plan.fallback_used is True
    assert plan.target_sections == ["header", "hero", "footer"]
    assert "independent retail owners" in plan.content_strategy


def test_fallback_plan_without_sections_targets_generic_content(make_orchestrator, business):
    plan = make_orchestrator(FakeModel(["[]"])).plan_content(business, DesignExtraction())

    assert plan.target_sections == ["content"]


def test_analysis_fallback_uses_extracted_tokens(make_orchestrator, business, design_tree):
    orchestrator = make_orchestrator(FakeModel(["no json here"]))

    analysis = orchestrator.analyze_design(business, extract_design(design_tree))

    assert analysis.fallback_used is True
    assert analysis.section_count == 3
    assert "#3366ff" in analysis.color_scheme
    assert "header, hero, footer" in analysis.layout_structure


def test_analysis_counts_come_from_the_extraction(make_orchestrator, business, design_tree):
    model = FakeModel([json.dumps({"layoutStructure": "Grid", "sectionCount": 9, "sectionTypes": ["x"]})])

    analysis = make_orchestrator(model).analyze_design(business, extract_design(design_tree))

    assert analysis.fallback_used is False
    assert analysis.layout_structure == "Grid"
    assert analysis.section_count == 3
    assert analysis.section_types == ["header", "hero", "footer"]


def test_cancel_before_start(make_orchestrator, business, design_tree, store):
    model = FakeModel()
    orchestrator = make_orchestrator(model)
    run = orchestrator.create_run(business, extract_design(design_tree))

    orchestrator.cancel(run.id)
    result = orchestrator.execute(run)

    assert result.current_stage is RunStage.failed
    assert result.errors == ["run cancelled"]
    assert model.prompts == []
    assert store.get_run(run.id)["cancel_requested"] is True


def test_cancel_is_observed_before_the_next_stage(make_orchestrator, business, design_tree):
    model = FakeModel()
    orchestrator = make_orchestrator(model)
    run = orchestrator.create_run(business, extract_design(design_tree))

    def plan_then_cancel(prompt):
        orchestrator.cancel(run.id)
        return PLAN

    model.responses = [plan_then_cancel, ANALYSIS]

    result = orchestrator.execute(run)

    assert result.current_stage is RunStage.failed
    assert result.errors == ["run cancelled"]
    assert result.stage_record(RunStage.content_planning).completed is True
    assert result.stage_record(RunStage.design_analysis).completed is False
    assert len(model.prompts) == 1


def test_persistence_failures_do_not_abort_the_run(make_orchestrator, business, design_tree):
    flaky = FlakyStore()
    recorder = StepStateRecorder(flaky, sleep=lambda _: None)
    orchestrator = make_orchestrator(FakeModel(default="not json"), recorder=recorder)
    run = orchestrator.create_run(business, extract_design(design_tree))
    flaky.failing = True

    result = orchestrator.execute(run)

    assert result.current_stage is RunStage.complete
    assert "Validation record was not persisted" in result.warnings
    assert "completion was not persisted" in result.warnings
    assert flaky.get_run(run.id)["current_stage"] == "Validation"


def test_concurrent_runs_do_not_share_content(make_orchestrator):
    orchestrator = make_orchestrator(FakeModel(default="no structured output"))
    extraction = two_sections()
    businesses = [
        BusinessContext(business_name=name, business_overview="Local services", target_audience="Neighbours")
        for name in ("Northwind Bakery", "Harbor Cycles")
    ]

    with ThreadPoolExecutor(max_workers=2) as pool:
        runs = list(pool.map(lambda business: orchestrator.run(business, extraction), businesses))

    for business, run in zip(businesses, runs):
        other = next(b.business_name for b in businesses if b is not business)
        text = " ".join(section.body_text() for section in run.generated_sections)
        assert run.current_stage is RunStage.complete
        assert business.business_name in text
        assert other not in text


def test_short_policy_bounds_apply_to_synthesized_sections(make_orchestrator, business):
    orchestrator = make_orchestrator(FakeModel(["[]"]))
    policy = ContentLengthPolicy(kind=LengthPolicyKind.short)

    page = orchestrator.generate_content(business, two_sections(), policy)

    for section in page.sections:
        assert 50 <= count_words(section.body_text()) <= 100
