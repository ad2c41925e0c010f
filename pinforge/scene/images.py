"""Per-element image loading state.

placeholder -> loading -> resolved | failed

Every slot carries a generation token. A load completion is applied only when
its token matches the slot currently held for the element id, so a load that
finishes after the element was removed or re-pointed is dropped.
"""

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class SlotState(Enum):
    PLACEHOLDER = "placeholder"
    LOADING = "loading"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class ImageLoadRequest:
    element_id: str
    token: int
    src: str


# Starts a load; the result arrives later via SceneAdapter.complete_image_load
ImageLoader = Callable[[ImageLoadRequest], None]


@dataclass
class ImageSlot:
    element_id: str
    src: str
    token: int
    state: SlotState = SlotState.PLACEHOLDER
    natural_size: tuple[int, int] | None = None
    error: str | None = None

    def start(self):
        if self.state is not SlotState.PLACEHOLDER:
            raise ValueError(f"Cannot start loading from {self.state.value}")
        self.state = SlotState.LOADING

    def resolve(self, natural_size: tuple[int, int]):
        if self.state is not SlotState.LOADING:
            raise ValueError(f"Cannot resolve from {self.state.value}")
        self.state = SlotState.RESOLVED
        self.natural_size = natural_size

    def fail(self, error: str):
        if self.state is not SlotState.LOADING:
            raise ValueError(f"Cannot fail from {self.state.value}")
        self.state = SlotState.FAILED
        self.error = error


class ImageSlots:
    """Slot table keyed by element id."""

    def __init__(self):
        self._slots: dict[str, ImageSlot] = {}
        self._tokens = itertools.count(1)

    def get(self, element_id: str) -> ImageSlot | None:
        return self._slots.get(element_id)

    def open(self, element_id: str, src: str) -> ImageSlot:
        """Fresh slot for an element; any earlier slot for the id becomes stale."""
        slot = ImageSlot(element_id, src, next(self._tokens))
        self._slots[element_id] = slot
        return slot

    def discard(self, element_id: str):
        self._slots.pop(element_id, None)

    def clear(self):
        self._slots.clear()

    def current(self, element_id: str, token: int) -> ImageSlot | None:
        """The slot for the id if the token is still current, else None."""
        slot = self._slots.get(element_id)
        if slot is None or slot.token != token:
            logger.debug(f"Dropping stale image load for {element_id} (token {token})")
            return None
        if slot.state is not SlotState.LOADING:
            return None
        return slot


def natural_size_of(result: Any) -> tuple[int, int]:
    """(width, height) of a loaded image: a PIL image, or any (w, h) pair."""
    if hasattr(result, "size"):
        width, height = result.size
    else:
        width, height = result
    return int(width), int(height)
