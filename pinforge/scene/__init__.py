"""Interactive editing scene kept in step with a canvas binding."""

from .adapter import SceneAdapter
from .binding import CanvasBinding, InMemoryCanvas, SceneObject
from .changes import ElementChange, changed_properties, detect_element_change
from .images import ImageLoadRequest, ImageSlot, ImageSlots, SlotState
from .scheduler import RepaintScheduler

__all__ = [
    "CanvasBinding",
    "ElementChange",
    "ImageLoadRequest",
    "ImageSlot",
    "ImageSlots",
    "InMemoryCanvas",
    "RepaintScheduler",
    "SceneAdapter",
    "SceneObject",
    "SlotState",
    "changed_properties",
    "detect_element_change",
]
