"""Axis-aligned bounding boxes in canvas coordinates."""

from dataclasses import dataclass, replace

from ..models.element import AnyElement


@dataclass(frozen=True)
class Box:
    left: float
    top: float
    width: float
    height: float
    id: str = ""

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center_x(self) -> float:
        return self.left + self.width / 2

    @property
    def center_y(self) -> float:
        return self.top + self.height / 2

    def moved_to(self, left: float, top: float) -> "Box":
        return replace(self, left=left, top=top)

    def overlaps_x(self, other: "Box") -> bool:
        return min(self.right, other.right) - max(self.left, other.left) > 0

    def overlaps_y(self, other: "Box") -> bool:
        return min(self.bottom, other.bottom) - max(self.top, other.top) > 0

    @classmethod
    def from_element(cls, element: AnyElement) -> "Box":
        return cls(element.x, element.y, element.width, element.height, element.id)
