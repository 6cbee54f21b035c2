from __future__ import annotations

import logging
import re
from functools import cmp_to_key
from typing import Any, Iterable, Mapping, Sequence

from .dictionaries import (
    DEFAULT_IMAGE_DESCRIPTION,
    DEFAULT_SECTION_TYPE,
    FORM_FIELD_KEYWORDS,
    FORM_FIELD_TYPES,
    GENERIC_NAME_PATTERN,
    IMAGE_DESCRIPTIONS,
    IMAGE_NAME_KEYWORDS,
    PAGE_WRAPPER_KEYWORDS,
    SECTION_NAME_KEYWORDS,
    SECTION_TYPE_RULES,
    TypeRule,
)
from .models.design import (
    DesignExtraction,
    DesignNode,
    DesignToken,
    LayoutSummary,
    NodeKind,
    Paint,
)
from .models.section import (
    ButtonStyle,
    ComponentKey,
    ExtractedButton,
    ExtractedElements,
    ExtractedFormField,
    ExtractedImage,
    ExtractedLink,
    ExtractedText,
    Section,
)

logger = logging.getLogger(__name__)

MAX_SECTION_DEPTH = 3
MIN_SECTION_WIDTH = 100
MIN_SECTION_HEIGHT = 50
ROW_TOLERANCE = 50

BUTTON_KINDS = frozenset({NodeKind.frame, NodeKind.group, NodeKind.component, NodeKind.instance})
BUTTON_NAME_KEYWORDS = ("button", "btn", "cta")
BUTTON_WIDTH_RANGE = (60, 400)
BUTTON_HEIGHT_RANGE = (25, 80)
FORM_FIELD_MAX_HEIGHT = 60

DEFAULT_TEXT_COLOR = "#000000"


class DesignSegmenter:
    """Turns a design tree into ordered landing-page sections.

    The segmenter never raises for structurally unusual input: malformed
    nodes are skipped and a tree without qualifying nodes yields no sections.
    """

    def __init__(
        self,
        *,
        type_rules: Sequence[TypeRule] = SECTION_TYPE_RULES,
        name_keywords: Sequence[str] = SECTION_NAME_KEYWORDS,
        wrapper_keywords: Sequence[str] = PAGE_WRAPPER_KEYWORDS,
        max_depth: int = MAX_SECTION_DEPTH,
    ) -> None:
        self._type_rules = tuple(type_rules)
        self._name_keywords = tuple(name_keywords)
        self._wrapper_keywords = tuple(wrapper_keywords)
        self._max_depth = max_depth

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def segment(self, tree: DesignNode | Mapping[str, Any] | None) -> list[Section]:
        root = load_tree(tree)
        if root is None:
            return []

        candidates = self._find_sections(root)
        ordered = sorted(candidates, key=cmp_to_key(_reading_order))

        sections = [self._build_section(node, order) for order, node in enumerate(ordered, start=1)]
        logger.info(
            "Segmented design tree",
            extra={"root_id": root.id, "section_count": len(sections)},
        )
        return sections

    def extract(self, tree: DesignNode | Mapping[str, Any] | None) -> DesignExtraction:
        root = load_tree(tree)
        if root is None:
            return DesignExtraction()
        return DesignExtraction(
            sections=self.segment(root),
            tokens=extract_design_tokens(root),
            layout=analyze_layout(root),
        )

    # ------------------------------------------------------------------
    # Qualification
    # ------------------------------------------------------------------

    def has_meaningful_name(self, name: str | None) -> bool:
        if not name:
            return False
        cleaned = name.strip()
        if len(cleaned) <= 2:
            return False
        lowered = cleaned.lower()
        has_keyword = any(keyword in lowered for keyword in self._name_keywords)
        return has_keyword or not GENERIC_NAME_PATTERN.match(cleaned)

    def is_main_section(self, node: DesignNode) -> bool:
        if not node.visible or not node.is_container:
            return False
        box = node.bounding_box
        if box is None or box.width < MIN_SECTION_WIDTH or box.height < MIN_SECTION_HEIGHT:
            return False
        if not node.children:
            return False
        return self.has_meaningful_name(node.name)

    def is_page_wrapper(self, node: DesignNode) -> bool:
        lowered = node.name.lower()
        return any(keyword in lowered for keyword in self._wrapper_keywords)

    def infer_section_type(self, name: str | None) -> str:
        lowered = (name or "").lower()
        for rule in self._type_rules:
            if any(keyword in lowered for keyword in rule.keywords):
                return rule.section_type
        return DEFAULT_SECTION_TYPE

    def _find_sections(self, root: DesignNode) -> list[DesignNode]:
        found: list[DesignNode] = []

        def visit(node: DesignNode, depth: int) -> None:
            if self.is_main_section(node):
                descend = self.is_page_wrapper(node) and self._has_section_below(node, depth)
                if not descend:
                    found.append(node)
                    return
            if depth < self._max_depth:
                for child in node.children:
                    visit(child, depth + 1)

        for child in root.children:
            visit(child, 1)
        return found

    def _has_section_below(self, node: DesignNode, depth: int) -> bool:
        if depth >= self._max_depth:
            return False
        for child in node.children:
            if self.is_main_section(child) or self._has_section_below(child, depth + 1):
                return True
        return False

    # ------------------------------------------------------------------
    # Section building
    # ------------------------------------------------------------------

    def _build_section(self, node: DesignNode, order: int) -> Section:
        elements = extract_elements(node)
        return Section(
            id=f"section-{order}",
            name=node.name,
            title=section_title(node),
            type=self.infer_section_type(node.name),
            order=order,
            bounding_box=node.bounding_box,
            components=components_from_elements(elements),
            extracted_elements=elements,
            node_id=node.id or None,
            auto_layout=bool(node.layout_mode) and node.layout_mode != "NONE",
            is_component=node.kind in (NodeKind.component, NodeKind.instance),
        )


def load_tree(tree: DesignNode | Mapping[str, Any] | None) -> DesignNode | None:
    """Accept a node, a raw node mapping or a full file export with a document key."""
    if isinstance(tree, Mapping) and "children" not in tree and isinstance(tree.get("document"), Mapping):
        tree = tree["document"]
    return DesignNode.from_raw(tree)


def _reading_order(a: DesignNode, b: DesignNode) -> int:
    box_a, box_b = a.bounding_box, b.bounding_box
    if box_a is None or box_b is None:
        return 0
    if abs(box_a.y - box_b.y) < ROW_TOLERANCE:
        return _sign(box_a.x - box_b.x)
    return _sign(box_a.y - box_b.y)


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def section_title(node: DesignNode) -> str:
    if not node.name.strip():
        return f"Section {node.id[-4:]}" if node.id else "Section"
    spaced = re.sub(r"\s+", " ", re.sub(r"[_-]", " ", node.name)).strip()
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), spaced)


# ----------------------------------------------------------------------
# Element extraction
# ----------------------------------------------------------------------


def extract_elements(node: DesignNode) -> ExtractedElements:
    """Collect texts, buttons, images, links and form fields below a section.

    Labels of buttons, links and form fields are claimed by those elements
    and not repeated as free texts.
    """
    elements = ExtractedElements()

    def visit(current: DesignNode, is_root: bool) -> None:
        if not current.visible:
            return

        if current.kind is NodeKind.text:
            text = (current.characters or "").strip()
            if text:
                elements.texts.append(_extracted_text(current, text))
            return

        if not is_root:
            if _is_image_like(current):
                elements.images.append(
                    ExtractedImage(
                        name=current.name or "Image",
                        url=_image_ref(current.fills),
                        description=image_description(current.name),
                        position=current.bounding_box,
                    )
                )

            label = find_text(current)
            if label and _is_button_like(current):
                elements.buttons.append(
                    ExtractedButton(
                        text=label,
                        style=ButtonStyle(
                            background_color=node_color(current),
                            border_radius=current.corner_radius or 0,
                            width=current.bounding_box.width if current.bounding_box else None,
                            height=current.bounding_box.height if current.bounding_box else None,
                        ),
                        position=current.bounding_box,
                    )
                )
                return
            if label and "link" in current.name.lower():
                elements.links.append(ExtractedLink(text=label, position=current.bounding_box))
                return
            if _is_form_field(current):
                elements.forms.append(
                    ExtractedFormField(
                        type=form_field_type(current.name),
                        placeholder=label or "Input field",
                        position=current.bounding_box,
                    )
                )
                return

        for child in current.children:
            visit(child, False)

    visit(node, True)
    return elements


def components_from_elements(elements: ExtractedElements) -> dict[str, Any]:
    components: dict[str, Any] = {}

    ranked = sorted(
        range(len(elements.texts)),
        key=lambda index: -elements.texts[index].font_size,
    )
    if ranked:
        components[ComponentKey.title.value] = elements.texts[ranked[0]].content
    if len(ranked) > 1:
        components[ComponentKey.subtitle.value] = elements.texts[ranked[1]].content
    remaining = sorted(ranked[2:])
    if remaining:
        components[ComponentKey.content.value] = " ".join(
            elements.texts[index].content for index in remaining
        )

    if elements.buttons:
        components[ComponentKey.buttons.value] = [button.text for button in elements.buttons]
    if elements.images:
        components[ComponentKey.images.value] = [image.description for image in elements.images]
    if elements.links:
        components[ComponentKey.links.value] = [link.text for link in elements.links]
    if elements.forms:
        components[ComponentKey.forms.value] = [
            {"type": field.type, "placeholder": field.placeholder} for field in elements.forms
        ]
    return components


def _extracted_text(node: DesignNode, text: str) -> ExtractedText:
    style = node.style
    return ExtractedText(
        content=text,
        font_size=style.font_size if style and style.font_size else 16,
        font_family=style.font_family if style and style.font_family else "Arial",
        font_weight=style.font_weight if style and style.font_weight is not None else "normal",
        color=node_color(node),
        position=node.bounding_box,
    )


def find_text(node: DesignNode) -> str | None:
    """First non-empty text run in the subtree, depth first."""
    for current in node.iter_nodes():
        if current.kind is NodeKind.text and current.characters and current.characters.strip():
            return current.characters.strip()
    return None


def node_color(node: DesignNode) -> str:
    for paint in _visible(node.fills):
        if paint.color is not None:
            return paint.color.to_hex()
    return DEFAULT_TEXT_COLOR


def _visible(paints: Iterable[Paint]) -> list[Paint]:
    return [paint for paint in paints if paint.visible]


def _image_ref(paints: Iterable[Paint]) -> str | None:
    for paint in paints:
        if paint.image_ref:
            return paint.image_ref
    return None


def _is_button_like(node: DesignNode) -> bool:
    if node.kind not in BUTTON_KINDS:
        return False
    lowered = node.name.lower()
    box = node.bounding_box
    if any(keyword in lowered for keyword in BUTTON_NAME_KEYWORDS):
        return box is None or box.height <= BUTTON_HEIGHT_RANGE[1]
    if box is None:
        return False
    sized = (
        BUTTON_WIDTH_RANGE[0] <= box.width <= BUTTON_WIDTH_RANGE[1]
        and BUTTON_HEIGHT_RANGE[0] <= box.height <= BUTTON_HEIGHT_RANGE[1]
    )
    styled = bool(_visible(node.fills) or _visible(node.strokes))
    return sized and styled


def _is_image_like(node: DesignNode) -> bool:
    if any(paint.type == "IMAGE" for paint in _visible(node.fills)):
        return True
    lowered = node.name.lower()
    return any(keyword in lowered for keyword in IMAGE_NAME_KEYWORDS)


def _is_form_field(node: DesignNode) -> bool:
    box = node.bounding_box
    if box is None or box.height >= FORM_FIELD_MAX_HEIGHT:
        return False
    lowered = node.name.lower()
    return any(keyword in lowered for keyword in FORM_FIELD_KEYWORDS)


def image_description(name: str | None) -> str:
    lowered = (name or "").lower()
    for keywords, description in IMAGE_DESCRIPTIONS:
        if any(keyword in lowered for keyword in keywords):
            return description
    return DEFAULT_IMAGE_DESCRIPTION


def form_field_type(name: str | None) -> str:
    lowered = (name or "").lower()
    for keyword, field_type in FORM_FIELD_TYPES:
        if keyword in lowered:
            return field_type
    return "text"


# ----------------------------------------------------------------------
# Tokens and layout
# ----------------------------------------------------------------------


def extract_design_tokens(tree: DesignNode | Mapping[str, Any] | None) -> list[DesignToken]:
    """Flat, de-duplicated colour, typography and spacing tokens."""
    root = load_tree(tree)
    if root is None:
        return []

    tokens: list[DesignToken] = []
    seen: set[tuple[str, str]] = set()
    counters = {"color": 0, "typography": 0, "spacing": 0}
    prefixes = {"color": "color", "typography": "font", "spacing": "spacing"}

    def add(category: str, value: str) -> None:
        if (category, value) in seen:
            return
        seen.add((category, value))
        counters[category] += 1
        tokens.append(
            DesignToken(category=category, name=f"{prefixes[category]}-{counters[category]}", value=value)
        )

    for node in root.iter_nodes():
        for paint in node.fills:
            if paint.type == "SOLID" and paint.color is not None:
                add("color", paint.color.to_hex())
        if node.style is not None and node.style.font_family:
            add("typography", node.style.font_family)
        if node.bounding_box is not None:
            offset = round(node.bounding_box.x)
            if offset > 0:
                add("spacing", f"{offset}px")
    return tokens


def analyze_layout(tree: DesignNode | Mapping[str, Any] | None) -> LayoutSummary:
    root = load_tree(tree)
    if root is None:
        return LayoutSummary()

    containers = 0
    components = 0
    for node in root.iter_nodes():
        if node.kind in (NodeKind.frame, NodeKind.group):
            containers += 1
        elif node.kind in (NodeKind.component, NodeKind.instance):
            components += 1

    if containers <= 2:
        layout_type = "simple"
    elif containers <= 5:
        layout_type = "standard"
    else:
        layout_type = "multi-section"

    return LayoutSummary(
        layout_type=layout_type,
        grid_system=containers > 2,
        responsive=components > 5,
        containers=containers,
        components=components,
    )


_default_segmenter = DesignSegmenter()


def segment_design(tree: DesignNode | Mapping[str, Any] | None) -> list[Section]:
    return _default_segmenter.segment(tree)


def extract_design(tree: DesignNode | Mapping[str, Any] | None) -> DesignExtraction:
    return _default_segmenter.extract(tree)


def infer_section_type(name: str | None) -> str:
    return _default_segmenter.infer_section_type(name)


def has_meaningful_name(name: str | None) -> bool:
    return _default_segmenter.has_meaningful_name(name)


__all__ = [
    "DesignSegmenter",
    "segment_design",
    "extract_design",
    "extract_design_tokens",
    "analyze_layout",
    "extract_elements",
    "components_from_elements",
    "infer_section_type",
    "has_meaningful_name",
    "section_title",
    "find_text",
    "node_color",
    "image_description",
    "form_field_type",
    "load_tree",
]
