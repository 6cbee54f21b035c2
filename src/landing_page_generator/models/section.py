from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, Field, field_serializer, field_validator


class BoundingBox(BaseModel):
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


class ComponentKey(str, Enum):
    title = "title"
    subtitle = "subtitle"
    content = "content"
    buttons = "buttons"
    images = "images"
    links = "links"
    messages = "messages"
    items = "items"
    forms = "forms"
    ctas = "ctas"


class TextValue(BaseModel):
    kind: Literal["string"] = "string"
    value: str


class TextListValue(BaseModel):
    kind: Literal["string_list"] = "string_list"
    value: list[str]


class ObjectListValue(BaseModel):
    kind: Literal["object_list"] = "object_list"
    value: list[dict[str, Any]]


ComponentValue = Annotated[
    Union[TextValue, TextListValue, ObjectListValue],
    Field(discriminator="kind"),
]

# Object keys that carry human-readable text inside ObjectListValue items
OBJECT_TEXT_KEYS = ("text", "content", "label", "title", "placeholder", "description")


def component_fragments(component: TextValue | TextListValue | ObjectListValue) -> list[str]:
    """Human-readable strings carried by a component value, in order."""
    if isinstance(component, TextValue):
        return [component.value]
    if isinstance(component, TextListValue):
        return list(component.value)
    return [
        str(item[key])
        for item in component.value
        for key in OBJECT_TEXT_KEYS
        if isinstance(item.get(key), str)
    ]


class UnknownComponentError(ValueError):
    def __init__(self, keys: list[str]) -> None:
        self.keys = keys
        super().__init__(f"unknown section component(s): {', '.join(keys)}")


def coerce_component_value(raw: Any) -> TextValue | TextListValue | ObjectListValue | None:
    """Map a raw JSON value onto the component variant, or None when empty."""
    if isinstance(raw, (TextValue, TextListValue, ObjectListValue)):
        return raw if raw.value else None
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return TextValue(value=str(raw))
    if isinstance(raw, str):
        text = raw.strip()
        return TextValue(value=text) if text else None
    if isinstance(raw, Mapping):
        return ObjectListValue(value=[dict(raw)]) if raw else None
    if isinstance(raw, (list, tuple)):
        strings: list[str] = []
        objects: list[dict[str, Any]] = []
        has_objects = False
        for item in raw:
            if isinstance(item, Mapping):
                if item:
                    has_objects = True
                    objects.append(dict(item))
            elif isinstance(item, (str, int, float)) and not isinstance(item, bool):
                text = str(item).strip()
                if text:
                    strings.append(text)
                    objects.append({"text": text})
        if has_objects:
            return ObjectListValue(value=objects)
        if strings:
            return TextListValue(value=strings)
    return None


def coerce_components(raw: Any) -> dict[ComponentKey, TextValue | TextListValue | ObjectListValue]:
    """Validate a raw component mapping at the boundary.

    Keys outside ComponentKey are rejected; empty values are dropped.
    """
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError("components must be an object")

    unknown = [str(key) for key in raw if _component_key(key) is None]
    if unknown:
        raise UnknownComponentError(unknown)

    components: dict[ComponentKey, TextValue | TextListValue | ObjectListValue] = {}
    for key, value in raw.items():
        coerced = coerce_component_value(value)
        if coerced is not None:
            components[_component_key(key)] = coerced
    return components


def _component_key(key: Any) -> ComponentKey | None:
    if isinstance(key, ComponentKey):
        return key
    try:
        return ComponentKey(str(key).strip().lower())
    except ValueError:
        return None


class ExtractedText(BaseModel):
    content: str
    font_size: float = 16
    font_family: str = "Arial"
    font_weight: int | str = "normal"
    color: str = "#000000"
    position: BoundingBox | None = None


class ButtonStyle(BaseModel):
    background_color: str = "#000000"
    border_radius: float = 0
    width: float | None = None
    height: float | None = None


class ExtractedButton(BaseModel):
    text: str
    style: ButtonStyle = Field(default_factory=ButtonStyle)
    position: BoundingBox | None = None


class ExtractedImage(BaseModel):
    name: str = "Image"
    url: str | None = None
    description: str = "Design image element"
    position: BoundingBox | None = None


class ExtractedLink(BaseModel):
    text: str
    position: BoundingBox | None = None


class ExtractedFormField(BaseModel):
    type: str = "text"
    placeholder: str = "Input field"
    position: BoundingBox | None = None


class ExtractedElements(BaseModel):
    texts: list[ExtractedText] = Field(default_factory=list)
    buttons: list[ExtractedButton] = Field(default_factory=list)
    images: list[ExtractedImage] = Field(default_factory=list)
    links: list[ExtractedLink] = Field(default_factory=list)
    forms: list[ExtractedFormField] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.texts or self.buttons or self.images or self.links or self.forms)


class Section(BaseModel):
    """A meaningful region of a design or of a generated page."""

    id: str
    name: str = ""
    title: str = ""
    type: str = "content"
    order: int = Field(ge=1)
    bounding_box: BoundingBox | None = None
    components: dict[ComponentKey, ComponentValue] = Field(default_factory=dict)
    content: str | None = None
    extracted_elements: ExtractedElements | None = None
    node_id: str | None = None
    auto_layout: bool = False
    is_component: bool = False

    @field_validator("components", mode="before")
    @classmethod
    def _validate_components(cls, value: Any) -> Any:
        return coerce_components(value)

    @field_serializer("components")
    def _serialize_components(self, components: dict[ComponentKey, Any]) -> dict[str, Any]:
        return {key.value: component.value for key, component in components.items()}

    @property
    def display_name(self) -> str:
        return self.title or self.name or f"Section {self.order}"

    def component_text(self, key: ComponentKey) -> str | None:
        component = self.components.get(key)
        if isinstance(component, TextValue):
            return component.value
        return None

    def plain_components(self) -> dict[str, Any]:
        return self._serialize_components(self.components)

    def body_text(self) -> str:
        """Main copy of the section: flat content, else the content component.

        List-shaped content is joined into one paragraph.
        """
        if self.content and self.content.strip():
            return self.content
        component = self.components.get(ComponentKey.content)
        if component is None:
            return ""
        return " ".join(fragment.strip() for fragment in component_fragments(component) if fragment.strip())

    def with_body_text(self, text: str) -> Section:
        """Copy of the section with its body replaced in the field it came from."""
        uses_components = bool(self.components) and not (self.content and self.content.strip())
        if uses_components:
            components = dict(self.components)
            components[ComponentKey.content] = TextValue(value=text)
            return self.model_copy(update={"components": components})
        return self.model_copy(update={"content": text})

    def text_fragments(self) -> list[str]:
        fragments: list[str] = []
        if self.content:
            fragments.append(self.content)
        for component in self.components.values():
            fragments.extend(component_fragments(component))
        return fragments


__all__ = [
    "BoundingBox",
    "ComponentKey",
    "ComponentValue",
    "TextValue",
    "TextListValue",
    "ObjectListValue",
    "UnknownComponentError",
    "coerce_component_value",
    "component_fragments",
    "coerce_components",
    "ExtractedText",
    "ButtonStyle",
    "ExtractedButton",
    "ExtractedImage",
    "ExtractedLink",
    "ExtractedFormField",
    "ExtractedElements",
    "Section",
]
