import io
import zipfile

from landing_page_generator.models.design import DesignToken
from landing_page_generator.models.run import (
    GeneratedPage,
    LandingPageDocument,
    PageMeta,
    PageSection,
)
from landing_page_generator.models.section import Section
from landing_page_generator.page_assembly import (
    assemble_document,
    build_script,
    build_stylesheet,
    default_meta,
    download_filename,
    download_info,
    fill_meta,
    preview_info,
    quality_score,
    render_download,
    render_html,
)

TOKENS = [
    DesignToken(category="color", name="color-1", value="#3366ff"),
    DesignToken(category="typography", name="font-1", value="Inter"),
    DesignToken(category="spacing", name="spacing-1", value="40px"),
]


def page_section(section_type, content="", order=1, **components):
    return PageSection(id=f"section-{order}", type=section_type, content=content, components=components, order=order)


def test_stylesheet_comes_from_design_tokens():
    css = build_stylesheet(TOKENS)

    assert "--color-1: #3366ff;" in css
    assert '--font-1: "Inter";' in css
    assert "font-family: var(--font-1), sans-serif;" in css
    assert build_stylesheet([]) == ""


def test_script_only_for_interactive_pages():
    static = Section(id="section-1", type="content", order=1, components={"title": "About"})
    interactive = Section(id="section-2", type="cta", order=2, components={"buttons": ["Book a demo"]})

    assert build_script([static]) == ""
    assert "scrollIntoView" in build_script([static, interactive])


def test_fill_meta_keeps_model_values(business):
    meta = fill_meta(PageMeta(title="Custom title"), business)

    assert meta.title == "Custom title"
    assert meta.description == business.business_overview
    assert meta.og_image == "/images/og-image.jpg"
    assert fill_meta(None, business) == default_meta(business)


def test_assembled_document_shape(business):
    sections = [
        Section(id="section-1", name="Hero", title="Hero", type="hero", order=1,
                components={"title": "Grow with Acme", "content": "Acme Analytics dashboards", "buttons": ["Start"]}),
    ]

    document = assemble_document(GeneratedPage(sections=sections, fallback_used=True), business, TOKENS)

    assert document.title == "Acme Analytics - Landing Page"
    assert document.sections[0].title == "Grow with Acme"
    assert document.sections[0].content == "Acme Analytics dashboards"
    assert document.sections[0].components["buttons"] == ["Start"]
    assert document.tags == ["ai-generated", "extracted-data", "fallback"]


def test_quality_score_full_marks(business):
    document = LandingPageDocument(
        title="Acme",
        business_name="Acme Analytics",
        sections=[
            page_section("header", order=1, title="Acme Analytics"),
            page_section("hero", order=2),
            page_section("features", order=3),
            page_section("cta", order=4),
            page_section("footer", order=5),
        ],
        meta=default_meta(business),
        custom_css="x" * 51,
        custom_js="y" * 51,
    )

    assert quality_score(document, business) == 100


def test_quality_score_weights(business):
    document = LandingPageDocument(
        title="Acme",
        business_name="Acme Analytics",
        sections=[page_section("hero", content="Plain copy"), page_section("gallery", order=2)],
        meta=PageMeta(title="Acme"),
        custom_css="x" * 50,
    )

    # sections 30 + one canonical type of five 4
    assert quality_score(document, business) == 34


def test_quality_score_of_an_empty_page(business):
    document = LandingPageDocument(title="Acme", business_name="Acme", meta=default_meta(business))

    assert quality_score(document, business) == 15


def test_preview_and_download_references(business):
    document = LandingPageDocument(title="Acme", business_name="Acme", sections=[page_section("hero")])

    preview = preview_info("run_1", document, "https://pages.example.com/")
    download = download_info("run_1", document, "https://pages.example.com", "zip")

    assert preview.preview_url == "https://pages.example.com/v1/runs/run_1/preview"
    assert preview.sections_previewed == 1
    assert download.download_url == "https://pages.example.com/v1/runs/run_1/download?format=zip"
    assert download.download_format == "zip"
    assert download.file_size == len(render_download(document, "zip"))


def test_rendered_html_escapes_text_and_inlines_assets(business):
    document = LandingPageDocument(
        title="Acme",
        business_name="Acme Analytics",
        sections=[
            page_section("footer", content="Bye", order=2),
            page_section("hero", content="Fast <and> simple", order=1, title="Grow", buttons=["Start"]),
        ],
        meta=default_meta(business),
        custom_css="body { margin: 0; }",
        custom_js="console.log('hi');",
    )

    html = render_html(document)

    assert html.startswith("<!DOCTYPE html>")
    assert "<title>Acme Analytics - Professional Services</title>" in html
    assert "<p>Fast &lt;and&gt; simple</p>" in html
    assert '<a class="button" href="#">Start</a>' in html
    assert html.index('id="section-1"') < html.index('id="section-2"')
    assert "<style>" in html and "console.log('hi');" in html
    assert 'href="styles.css"' in render_html(document, inline_assets=False)


def test_zip_download_bundles_page_and_assets():
    document = LandingPageDocument(
        title="Acme",
        business_name="Acme Analytics",
        sections=[page_section("hero", content="Copy")],
        custom_css="body { margin: 0; }",
    )

    data = render_download(document, "zip")

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert archive.namelist() == ["index.html", "styles.css"]
        assert '<script src="script.js">' not in archive.read("index.html").decode("utf-8")
    assert render_download(document, "zip") == data
    assert download_filename(document, "zip") == "acme-analytics-landing-page.zip"
