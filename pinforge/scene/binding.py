"""Canvas binding seam: what the scene adapter needs from a drawing library."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

EventCallback = Callable[[Any], None]


@dataclass
class SceneObject:
    """Live primitive owned by the adapter and mirrored into the binding."""
    id: str
    kind: str
    props: dict[str, Any] = field(default_factory=dict)


class CanvasBinding(Protocol):
    def create_surface(self, width: float, height: float) -> None: ...

    def destroy_surface(self) -> None: ...

    def resize(self, width: float, height: float) -> None: ...

    def add(self, obj: SceneObject) -> None: ...

    def remove(self, obj: SceneObject) -> None: ...

    def move_to(self, obj: SceneObject, index: int) -> None: ...

    def set_background(self, color: str) -> None: ...

    def request_render(self) -> None: ...

    def on(self, event: str, callback: EventCallback) -> None: ...


class InMemoryCanvas:
    """Complete in-process binding: ordered objects, events and a render counter."""

    def __init__(self):
        self.width = 0.0
        self.height = 0.0
        self.background: str | None = None
        self.objects: list[SceneObject] = []
        self.render_count = 0
        self.alive = False
        self._handlers: dict[str, list[EventCallback]] = {}

    def create_surface(self, width: float, height: float):
        self.width, self.height = width, height
        self.objects = []
        self.alive = True

    def destroy_surface(self):
        self.objects = []
        self._handlers.clear()
        self.alive = False

    def resize(self, width: float, height: float):
        self.width, self.height = width, height

    def add(self, obj: SceneObject):
        self.objects.append(obj)

    def remove(self, obj: SceneObject):
        self.objects = [o for o in self.objects if o.id != obj.id]

    def move_to(self, obj: SceneObject, index: int):
        self.objects = [o for o in self.objects if o.id != obj.id]
        self.objects.insert(max(0, min(index, len(self.objects))), obj)

    def set_background(self, color: str):
        self.background = color

    def request_render(self):
        if not self.alive:
            logger.warning("Render requested on a destroyed surface")
            return
        self.render_count += 1

    def on(self, event: str, callback: EventCallback):
        self._handlers.setdefault(event, []).append(callback)

    def emit(self, event: str, payload: Any = None):
        for callback in list(self._handlers.get(event, [])):
            callback(payload)

    def object_ids(self) -> list[str]:
        """Ids bottom to top."""
        return [o.id for o in self.objects]

    def get(self, object_id: str) -> SceneObject | None:
        for obj in self.objects:
            if obj.id == object_id:
                return obj
        return None
