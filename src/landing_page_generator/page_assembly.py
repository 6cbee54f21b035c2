from __future__ import annotations

import io
import json
import re
import zipfile
from html import escape
from typing import Any, Sequence

from .dictionaries import CANONICAL_SECTION_TYPES
from .models.design import DesignToken
from .models.run import (
    BusinessContext,
    DownloadInfo,
    GeneratedPage,
    LandingPageDocument,
    PageMeta,
    PageSection,
    PreviewInfo,
)
from .models.section import ComponentKey, Section

# Quality score weights
SECTIONS_WEIGHT = 30
COVERAGE_WEIGHT = 20
STYLESHEET_WEIGHT = 15
SCRIPT_WEIGHT = 10
META_WEIGHT = 15
BUSINESS_NAME_WEIGHT = 10
ASSET_MIN_LENGTH = 50
MAX_SCORE = 100

INTERACTIVE_COMPONENTS = (ComponentKey.buttons, ComponentKey.links, ComponentKey.forms, ComponentKey.ctas)

# Zip entry timestamp
ARCHIVE_DATE = (1980, 1, 1, 0, 0, 0)


def default_meta(business: BusinessContext) -> PageMeta:
    title = f"{business.business_name} - Professional Services"[:100]
    return PageMeta(
        title=title,
        description=business.business_overview,
        keywords=f"{business.business_name}, services, {business.target_audience}",
        og_title=title,
        og_description=business.business_overview,
    )


def fill_meta(meta: PageMeta | None, business: BusinessContext) -> PageMeta:
    """Keep model-provided meta values and fill blanks from the business context."""
    defaults = default_meta(business)
    if meta is None:
        return defaults
    updates = {
        name: getattr(defaults, name)
        for name in PageMeta.model_fields
        if not getattr(meta, name)
    }
    return meta.model_copy(update=updates)


def to_page_section(section: Section) -> PageSection:
    return PageSection(
        id=section.id,
        type=section.type,
        title=section.component_text(ComponentKey.title) or section.display_name,
        name=section.name,
        content=section.body_text(),
        components=section.plain_components(),
        order=section.order,
    )


def build_stylesheet(tokens: Sequence[DesignToken]) -> str:
    """CSS custom properties derived from the design tokens, or "" without tokens."""
    if not tokens:
        return ""
    variables = [f"  --{token.name}: {_css_value(token)};" for token in tokens]
    rules = [":root {", *variables, "}"]

    font = next((token for token in tokens if token.category == "typography"), None)
    color = next((token for token in tokens if token.category == "color"), None)
    body = ["body {"]
    if font is not None:
        body.append(f"  font-family: var(--{font.name}), sans-serif;")
    if color is not None:
        body.append(f"  color: var(--{color.name});")
    body.append("  margin: 0;")
    body.append("}")
    rules.extend(body)
    rules.append("section { padding: 64px 24px; max-width: 1200px; margin: 0 auto; }")
    return "\n".join(rules)


def _css_value(token: DesignToken) -> str:
    if token.category == "typography":
        return json.dumps(token.value)
    return token.value


def build_script(sections: Sequence[Section]) -> str:
    """Smooth in-page navigation, only for pages with interactive elements."""
    interactive = any(
        key in section.components for section in sections for key in INTERACTIVE_COMPONENTS
    )
    if not interactive:
        return ""
    return (
        "document.querySelectorAll('a[href^=\"#\"]').forEach(function (link) {\n"
        "  link.addEventListener('click', function (event) {\n"
        "    var target = document.querySelector(link.getAttribute('href'));\n"
        "    if (target) { event.preventDefault(); target.scrollIntoView({ behavior: 'smooth' }); }\n"
        "  });\n"
        "});"
    )


def assemble_document(
    page: GeneratedPage,
    business: BusinessContext,
    tokens: Sequence[DesignToken] = (),
) -> LandingPageDocument:
    tags = ["ai-generated", "extracted-data"]
    if page.fallback_used:
        tags.append("fallback")
    return LandingPageDocument(
        title=f"{business.business_name} - Landing Page"[:100],
        business_name=business.business_name,
        sections=[to_page_section(section) for section in page.sections],
        meta=fill_meta(page.meta, business),
        custom_css=build_stylesheet(tokens),
        custom_js=build_script(page.sections),
        tags=tags,
    )


def quality_score(document: LandingPageDocument, business: BusinessContext) -> int:
    score = 0.0

    if document.sections:
        score += SECTIONS_WEIGHT
        present = {section.type for section in document.sections}
        covered = sum(1 for section_type in CANONICAL_SECTION_TYPES if section_type in present)
        score += covered / len(CANONICAL_SECTION_TYPES) * COVERAGE_WEIGHT

    if len(document.custom_css) > ASSET_MIN_LENGTH:
        score += STYLESHEET_WEIGHT
    if len(document.custom_js) > ASSET_MIN_LENGTH:
        score += SCRIPT_WEIGHT

    if document.meta.title and document.meta.description:
        score += META_WEIGHT

    name = business.business_name.strip().lower()
    if name and any(_mentions(section, name) for section in document.sections):
        score += BUSINESS_NAME_WEIGHT

    return min(round(score), MAX_SCORE)


def _mentions(section: PageSection, name: str) -> bool:
    texts = [section.content, section.title]
    for value in section.components.values():
        if isinstance(value, str):
            texts.append(value)
        elif isinstance(value, list):
            texts.extend(item for item in value if isinstance(item, str))
    return any(name in text.lower() for text in texts if text)


def render_html(document: LandingPageDocument, *, inline_assets: bool = True) -> str:
    """Standalone HTML page for an assembled document.

    With ``inline_assets=False`` the stylesheet and script are referenced as
    ``styles.css`` and ``script.js`` next to the page.
    """
    meta = document.meta
    lines = [
        "<!DOCTYPE html>",
        '<html lang="en">',
        "<head>",
        '  <meta charset="utf-8">',
        '  <meta name="viewport" content="width=device-width, initial-scale=1">',
        f"  <title>{escape(meta.title or document.title)}</title>",
    ]
    for name, value in (("description", meta.description), ("keywords", meta.keywords)):
        if value:
            lines.append(f'  <meta name="{name}" content="{escape(value)}">')
    for prop, value in (
        ("og:title", meta.og_title),
        ("og:description", meta.og_description),
        ("og:image", meta.og_image),
    ):
        if value:
            lines.append(f'  <meta property="{prop}" content="{escape(value)}">')
    if document.custom_css:
        if inline_assets:
            lines.extend(["  <style>", document.custom_css, "  </style>"])
        else:
            lines.append('  <link rel="stylesheet" href="styles.css">')
    lines.extend(["</head>", "<body>"])

    for section in sorted(document.sections, key=lambda item: item.order):
        lines.extend(_render_section(section))

    if document.custom_js:
        if inline_assets:
            lines.extend(["<script>", document.custom_js, "</script>"])
        else:
            lines.append('<script src="script.js"></script>')
    lines.extend(["</body>", "</html>"])
    return "\n".join(lines) + "\n"


def _render_section(section: PageSection) -> list[str]:
    components = section.components
    lines = [f'<section id="{escape(section.id)}" class="section-{escape(section.type)}">']
    if section.title:
        lines.append(f"  <h2>{escape(section.title)}</h2>")
    subtitle = components.get(ComponentKey.subtitle.value)
    if isinstance(subtitle, str) and subtitle:
        lines.append(f'  <p class="subtitle">{escape(subtitle)}</p>')
    if section.content:
        lines.append(f"  <p>{escape(section.content)}</p>")

    items = _labels(components.get(ComponentKey.items.value))
    if items:
        lines.append("  <ul>")
        lines.extend(f"    <li>{escape(item)}</li>" for item in items)
        lines.append("  </ul>")
    for key, css_class in (
        (ComponentKey.buttons, "button"),
        (ComponentKey.ctas, "button"),
        (ComponentKey.links, "link"),
    ):
        for label in _labels(components.get(key.value)):
            lines.append(f'  <a class="{css_class}" href="#">{escape(label)}</a>')
    lines.append("</section>")
    return lines


def _labels(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value else []
    if not isinstance(value, list):
        return []
    labels: list[str] = []
    for item in value:
        if isinstance(item, str) and item:
            labels.append(item)
        elif isinstance(item, dict):
            text = next(
                (item[key] for key in ("title", "text", "label") if isinstance(item.get(key), str)),
                None,
            )
            if text:
                labels.append(text)
    return labels


def build_archive(document: LandingPageDocument) -> bytes:
    """Zip with index.html plus styles.css and script.js when the page has them."""
    files = {"index.html": render_html(document, inline_assets=False)}
    if document.custom_css:
        files["styles.css"] = document.custom_css + "\n"
    if document.custom_js:
        files["script.js"] = document.custom_js + "\n"

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, text in files.items():
            info = zipfile.ZipInfo(name, date_time=ARCHIVE_DATE)
            info.compress_type = zipfile.ZIP_DEFLATED
            archive.writestr(info, text.encode("utf-8"))
    return buffer.getvalue()


def render_download(document: LandingPageDocument, download_format: str = "html") -> bytes:
    if download_format == "zip":
        return build_archive(document)
    if download_format == "html":
        return render_html(document).encode("utf-8")
    raise ValueError(f"unsupported download format: {download_format}")


def download_filename(document: LandingPageDocument, download_format: str = "html") -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", document.business_name.lower()).strip("-") or "landing"
    return f"{slug}-landing-page.{download_format}"


def estimated_size(document: LandingPageDocument, download_format: str = "html") -> int:
    return len(render_download(document, download_format))


def preview_info(run_id: str, document: LandingPageDocument, base_url: str) -> PreviewInfo:
    return PreviewInfo(
        preview_url=f"{base_url.rstrip('/')}/v1/runs/{run_id}/preview",
        sections_previewed=len(document.sections),
    )


def download_info(
    run_id: str,
    document: LandingPageDocument,
    base_url: str,
    download_format: str = "html",
) -> DownloadInfo:
    return DownloadInfo(
        download_url=f"{base_url.rstrip('/')}/v1/runs/{run_id}/download?format={download_format}",
        download_format=download_format,
        file_size=estimated_size(document, download_format),
    )


__all__ = [
    "default_meta",
    "fill_meta",
    "to_page_section",
    "build_stylesheet",
    "build_script",
    "assemble_document",
    "quality_score",
    "render_html",
    "build_archive",
    "render_download",
    "download_filename",
    "estimated_size",
    "preview_info",
    "download_info",
]
