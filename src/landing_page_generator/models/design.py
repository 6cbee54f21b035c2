from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterator, Literal, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .section import BoundingBox, Section

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    frame = "frame"
    group = "group"
    component = "component"
    instance = "instance"
    text = "text"
    image = "image"
    other = "other"


# Figma node types → closed kind set
RAW_NODE_KINDS: Mapping[str, NodeKind] = {
    "FRAME": NodeKind.frame,
    "SECTION": NodeKind.frame,
    "GROUP": NodeKind.group,
    "COMPONENT": NodeKind.component,
    "COMPONENT_SET": NodeKind.component,
    "INSTANCE": NodeKind.instance,
    "TEXT": NodeKind.text,
    "RECTANGLE": NodeKind.image,
    "ELLIPSE": NodeKind.image,
    "VECTOR": NodeKind.image,
    "IMAGE": NodeKind.image,
}

SECTION_CONTAINER_KINDS = frozenset({NodeKind.frame, NodeKind.component, NodeKind.instance})


class Color(BaseModel):
    r: float = 0.0
    g: float = 0.0
    b: float = 0.0
    a: float = 1.0

    def to_hex(self) -> str:
        return "#" + "".join(f"{_channel(value):02x}" for value in (self.r, self.g, self.b))


def _channel(value: float) -> int:
    return max(0, min(255, round(value * 255)))


class Paint(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str = "SOLID"
    color: Color | None = None
    image_ref: str | None = Field(default=None, alias="imageRef")
    visible: bool = True


class TextStyle(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    font_size: float | None = Field(default=None, alias="fontSize")
    font_family: str | None = Field(default=None, alias="fontFamily")
    font_weight: int | str | None = Field(default=None, alias="fontWeight")


class DesignNode(BaseModel):
    """A node of an exported design tree. Read-only once built."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    kind: NodeKind = NodeKind.other
    name: str = ""
    bounding_box: BoundingBox | None = Field(default=None, alias="absoluteBoundingBox")
    children: list[DesignNode] = Field(default_factory=list)
    characters: str | None = None
    style: TextStyle | None = None
    fills: list[Paint] = Field(default_factory=list)
    strokes: list[Paint] = Field(default_factory=list)
    effects: list[dict[str, Any]] = Field(default_factory=list)
    corner_radius: float | None = Field(default=None, alias="cornerRadius")
    layout_mode: str | None = Field(default=None, alias="layoutMode")
    visible: bool = True

    @classmethod
    def from_raw(cls, data: Any) -> DesignNode | None:
        """Build a node from exported JSON.

        Returns None for null or malformed nodes; malformed children are
        dropped so one bad leaf does not discard the whole tree.
        """
        if isinstance(data, DesignNode):
            return data
        if not isinstance(data, Mapping):
            return None

        children: list[DesignNode] = []
        raw_children = data.get("children")
        if isinstance(raw_children, Sequence) and not isinstance(raw_children, (str, bytes)):
            for raw_child in raw_children:
                child = cls.from_raw(raw_child)
                if child is not None:
                    children.append(child)

        payload = {
            key: value
            for key, value in data.items()
            if value is not None and key not in {"children", "type", "kind", "boundingBox"}
        }
        if "absoluteBoundingBox" not in payload and data.get("boundingBox") is not None:
            payload["absoluteBoundingBox"] = data["boundingBox"]
        if "id" in payload:
            payload["id"] = str(payload["id"])
        payload["kind"] = _resolve_kind(data)
        payload["children"] = children

        try:
            return cls.model_validate(payload)
        except PydanticValidationError as exc:
            logger.debug(
                "Skipping malformed design node",
                extra={"node_id": data.get("id"), "error_count": exc.error_count()},
            )
            return None

    @property
    def is_container(self) -> bool:
        return self.kind in SECTION_CONTAINER_KINDS

    def iter_nodes(self) -> Iterator[DesignNode]:
        """Depth-first walk including this node."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()


def _resolve_kind(data: Mapping[str, Any]) -> NodeKind:
    kind = data.get("kind")
    if isinstance(kind, str):
        try:
            return NodeKind(kind.lower())
        except ValueError:
            pass
    raw_type = data.get("type")
    if isinstance(raw_type, str):
        return RAW_NODE_KINDS.get(raw_type.upper(), NodeKind.other)
    return NodeKind.other


class DesignToken(BaseModel):
    category: Literal["color", "typography", "spacing"]
    name: str
    value: str


class LayoutSummary(BaseModel):
    layout_type: Literal["simple", "standard", "multi-section"] = "simple"
    grid_system: bool = False
    responsive: bool = False
    containers: int = 0
    components: int = 0


class DesignExtraction(BaseModel):
    sections: list[Section] = Field(default_factory=list)
    tokens: list[DesignToken] = Field(default_factory=list)
    layout: LayoutSummary | None = None

    @property
    def section_types(self) -> list[str]:
        return [section.type for section in self.sections]


__all__ = [
    "NodeKind",
    "RAW_NODE_KINDS",
    "SECTION_CONTAINER_KINDS",
    "BoundingBox",
    "Color",
    "Paint",
    "TextStyle",
    "DesignNode",
    "DesignToken",
    "LayoutSummary",
    "DesignExtraction",
]
