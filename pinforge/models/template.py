"""Template - canvas plus an ordered list of elements."""

from dataclasses import dataclass, field
from typing import Any

from .element import AnyElement, element_from_dict

DEFAULT_CANVAS_WIDTH = 1000
DEFAULT_CANVAS_HEIGHT = 1500


@dataclass
class Template:
    """Authored once, read-only to the rendering engine."""
    id: str
    name: str = ""
    width: int = DEFAULT_CANVAS_WIDTH
    height: int = DEFAULT_CANVAS_HEIGHT
    background_color: str = "#ffffff"
    elements: list[AnyElement] = field(default_factory=list)
    short_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Template":
        canvas = data.get("canvas_size") or {}
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            width=canvas.get("width", DEFAULT_CANVAS_WIDTH),
            height=canvas.get("height", DEFAULT_CANVAS_HEIGHT),
            background_color=data.get("background_color") or "#ffffff",
            elements=[element_from_dict(e) for e in data.get("elements") or []],
            short_id=data.get("short_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "canvas_size": {"width": self.width, "height": self.height},
            "background_color": self.background_color,
            "elements": [e.to_dict() for e in self.elements],
        }
        if self.short_id is not None:
            result["short_id"] = self.short_id
        return result

    def paint_order(self) -> list[AnyElement]:
        """Visible elements, bottom to top."""
        from ..render.parity import paint_order

        return paint_order(self.elements)

    def get_element(self, element_id: str) -> AnyElement | None:
        for element in self.elements:
            if element.id == element_id:
                return element
        return None
