"""Element model - one visual primitive on a template canvas.

Elements are persisted as camelCase JSON (``zIndex``, ``fontFamily``,
``imageUrl``...). Attributes here are snake_case; ``from_dict``/``to_dict``
translate between the two. Keys this model does not know are kept in
``extra`` so nothing is lost on a load/store round trip.
"""

import copy
import re
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar

from ..errors import ConfigurationError

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def camel_to_snake(name: str) -> str:
    """fontFamily -> font_family, shadowOffsetX -> shadow_offset_x"""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    """font_family -> fontFamily"""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


@dataclass
class CharacterStyle:
    """Style override for an inclusive range [start, end] of the logical text."""
    start: int
    end: int
    id: str | None = None
    fill: str | None = None
    font_weight: int | str | None = None
    font_style: str | None = None
    font_family: str | None = None
    font_size: float | None = None
    underline: bool | None = None
    linethrough: bool | None = None

    STYLE_KEYS: ClassVar[tuple[str, ...]] = (
        "fill", "font_weight", "font_style", "font_family",
        "font_size", "underline", "linethrough",
    )

    def properties(self) -> dict[str, Any]:
        """Set style properties, without id and range."""
        return {
            key: getattr(self, key)
            for key in self.STYLE_KEYS
            if getattr(self, key) is not None
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CharacterStyle":
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = camel_to_snake(key)
            if name in known:
                kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"start": self.start, "end": self.end}
        if self.id is not None:
            result["id"] = self.id
        for key, value in self.properties().items():
            result[snake_to_camel(key)] = value
        return result


INTERNAL_FIELDS = {"extra", "explicit_nulls"}


@dataclass
class Element:
    """Fields shared by every element kind."""
    id: str = ""
    name: str = ""
    x: float = 0
    y: float = 0
    width: float = 100
    height: float = 100
    rotation: float = 0
    opacity: float = 1
    locked: bool = False
    visible: bool = True
    z_index: int = 0
    extra: dict[str, Any] = field(default_factory=dict)
    # known fields the JSON carried as an explicit null
    explicit_nulls: set[str] = field(default_factory=set, repr=False, compare=False)

    type: ClassVar[str] = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Element":
        """Build an element of this class from its persisted JSON shape."""
        known = {f.name: f for f in fields(cls) if f.name not in INTERNAL_FIELDS}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        nulls: set[str] = set()

        for key, value in data.items():
            if key == "type":
                continue
            name = camel_to_snake(key)
            if name not in known:
                extra[key] = copy.deepcopy(value)
            elif value is None:
                kwargs[name] = None
                nulls.add(name)
            elif name == "character_styles":
                kwargs[name] = [CharacterStyle.from_dict(s) for s in value]
            else:
                kwargs[name] = copy.deepcopy(value)

        element = cls(**kwargs)
        element.extra = extra
        element.explicit_nulls = nulls
        return element

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted JSON shape. None-valued fields are omitted unless they arrived as null."""
        result: dict[str, Any] = {"type": self.type}
        for f in fields(self):
            if f.name in INTERNAL_FIELDS:
                continue
            value = getattr(self, f.name)
            if value is None:
                if f.name in self.explicit_nulls:
                    result[snake_to_camel(f.name)] = None
                continue
            if f.name == "character_styles":
                value = [s.to_dict() for s in value]
            else:
                value = copy.deepcopy(value)
            result[snake_to_camel(f.name)] = value
        result.update(copy.deepcopy(self.extra))
        return result

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


@dataclass
class TextElement(Element):
    """Text box, optionally bound to a data column and auto-fitted."""
    text: str = ""
    font_family: str = "Arial"
    font_size: float = 24
    font_weight: int | str | None = None
    font_style: str = "normal"
    font_provider: str | None = None
    font_url: str | None = None
    fill: str = "#000000"
    align: str = "left"
    vertical_align: str | None = None
    line_height: float | None = None
    letter_spacing: float | None = None
    text_decoration: str | None = None
    text_transform: str | None = None
    stroke: str | None = None
    stroke_width: float | None = None
    hollow_text: bool | None = None
    shadow_color: str | None = None
    shadow_blur: float | None = None
    shadow_offset_x: float | None = None
    shadow_offset_y: float | None = None
    shadow_opacity: float | None = None
    background_enabled: bool | None = None
    background_color: str | None = None
    background_corner_radius: float | None = None
    background_padding: float | None = None
    is_dynamic: bool | None = None
    dynamic_field: str | None = None
    preview_text: str | None = None
    auto_fit_text: bool | None = None
    min_font_size: float | None = None
    max_font_size: float | None = None
    auto_fit_padding: float | None = None
    max_lines: int | None = None
    character_styles: list[CharacterStyle] | None = None

    type: ClassVar[str] = "text"

    @property
    def is_bold(self) -> bool:
        weight = self.font_weight
        if weight is not None:
            if weight == "bold":
                return True
            try:
                return int(weight) >= 600
            except (TypeError, ValueError):
                return False
        return "bold" in (self.font_style or "")

    @property
    def is_italic(self) -> bool:
        return "italic" in (self.font_style or "")


@dataclass
class ImageElement(Element):
    """Raster image from a static URL or a data column."""
    image_url: str | None = None
    is_dynamic: bool | None = None
    dynamic_source: str | None = None
    fit_mode: str | None = None
    corner_radius: float | None = None

    type: ClassVar[str] = "image"

    @property
    def effective_fit_mode(self) -> str:
        """Stored fit mode, else contain for dynamic images and fill otherwise."""
        if self.fit_mode in ("fill", "cover", "contain"):
            return self.fit_mode
        return "contain" if self.is_dynamic else "fill"


@dataclass
class ShapeElement(Element):
    """Rectangle, circle, line, arrow or SVG path."""
    shape_type: str = "rect"
    fill: str | None = "#cccccc"
    stroke: str | None = None
    stroke_width: float | None = None
    corner_radius: float | None = None
    points: list[float] | None = None
    path_data: str | None = None
    stroke_dash_array: list[float] | None = None

    type: ClassVar[str] = "shape"


@dataclass
class FrameElement(Element):
    """Layout guide/group boundary. Painted as an outline only."""
    fill: str | None = None
    stroke: str | None = None
    stroke_width: float | None = None
    corner_radius: float | None = None
    child_ids: list[str] | None = None
    layout_direction: str | None = None
    layout_gap: float | None = None
    layout_padding: float | None = None

    type: ClassVar[str] = "frame"


AnyElement = TextElement | ImageElement | ShapeElement | FrameElement

ELEMENT_TYPES: dict[str, type[Element]] = {
    cls.type: cls for cls in (TextElement, ImageElement, ShapeElement, FrameElement)
}


def element_from_dict(data: dict[str, Any]) -> AnyElement:
    """Build the right element variant from its ``type`` tag."""
    kind = data.get("type")
    if kind not in ELEMENT_TYPES:
        raise ConfigurationError(f"Unknown element type: {kind!r}")
    return ELEMENT_TYPES[kind].from_dict(data)


def elements_from_list(items: list[dict[str, Any]]) -> list[AnyElement]:
    return [element_from_dict(item) for item in items]


def clone_element(element: AnyElement) -> AnyElement:
    """Deep copy, so per-row changes never touch the template's instance."""
    return copy.deepcopy(element)
