"""SceneAdapter - the imperative core of the interactive editor.

Owns the canvas binding and is the only thing that mutates it. State changes
made on the canvas are reported through callbacks; it never calls back into
the caller during a caller-initiated mutation.
"""

import logging
from typing import Any, Callable

from ..alignment import AlignmentEngine, Box, SnappingSettings, SnapResult, SpatialHashGrid
from ..alignment.collision import CollisionReport, find_all_collisions
from ..fonts import FontRegistry
from ..models.element import AnyElement, ImageElement, TextElement, camel_to_snake, clone_element
from ..models.template import Template
from ..render import parity
from ..text.autofit import FitCache
from ..text.substitution import resolve_element
from .binding import CanvasBinding, SceneObject
from .changes import changed_properties, detect_element_change
from .images import ImageLoader, ImageLoadRequest, ImageSlot, ImageSlots, natural_size_of
from .objects import build_scene_object
from .scheduler import DEFAULT_FRAME_MS, RepaintScheduler, TimerFactory

logger = logging.getLogger(__name__)

GRID_CELL_SIZE = 100
GEOMETRY_FIELDS = {"x", "y", "width", "height"}

# canvas object props -> element fields
OBJECT_TO_ELEMENT = {"left": "x", "top": "y", "angle": "rotation"}

ElementsChangedCallback = Callable[[list[AnyElement]], None]
SelectionChangedCallback = Callable[[list[str]], None]


class SceneAdapter:
    """Keeps a canvas binding in step with a template's elements."""

    def __init__(
        self,
        binding: CanvasBinding,
        settings: SnappingSettings | None = None,
        font_registry: FontRegistry | None = None,
        image_loader: ImageLoader | None = None,
        fit_cache: FitCache | None = None,
        frame_ms: float = DEFAULT_FRAME_MS,
        clock: Callable[[], float] | None = None,
        timer_factory: TimerFactory | None = None,
    ):
        self.binding = binding
        self.fonts = font_registry or FontRegistry(allow_downloads=False)
        self.image_loader = image_loader
        self.fit_cache = fit_cache if fit_cache is not None else FitCache()
        self.engine = AlignmentEngine(settings)
        self._scheduler_options: dict[str, Any] = {"frame_ms": frame_ms, "timer_factory": timer_factory}
        if clock is not None:
            self._scheduler_options["clock"] = clock

        self.width = 0.0
        self.height = 0.0
        self.background_color = "#ffffff"
        self.zoom = 1.0
        self.preview_row: dict[str, Any] = {}
        self.field_mapping: dict[str, str] = {}

        self.scheduler: RepaintScheduler | None = None
        self.grid: SpatialHashGrid | None = None
        self._elements: dict[str, AnyElement] = {}
        self._order: list[str] = []
        self._objects: dict[str, SceneObject] = {}
        self._painted: list[str] = []
        self._slots = ImageSlots()
        self._selection: list[str] = []
        self._dragging: str | None = None

        self._on_elements_changed: ElementsChangedCallback | None = None
        self._on_selection_changed: SelectionChangedCallback | None = None

    # ------------------------------------------------------------------
    # Lifecycle

    @property
    def initialized(self) -> bool:
        return self.scheduler is not None

    def _require_initialized(self, operation: str) -> bool:
        if not self.initialized:
            logger.error(f"Cannot {operation}: scene not initialized")
            return False
        return True

    def initialize(
        self,
        template: Template,
        preview_row: dict[str, Any] | None = None,
        field_mapping: dict[str, str] | None = None,
    ):
        if self.initialized:
            logger.warning("Scene already initialized, destroying previous instance")
            self.destroy()

        self.width, self.height = template.width, template.height
        self.background_color = template.background_color
        self.preview_row = dict(preview_row or {})
        self.field_mapping = dict(field_mapping or {})

        self.binding.create_surface(self.width * self.zoom, self.height * self.zoom)
        self.binding.set_background(self.background_color)
        self.binding.on("object:modified", self._handle_object_modified)
        self.binding.on("selection:changed", self._handle_selection_changed)

        self.scheduler = RepaintScheduler(self.binding.request_render, **self._scheduler_options)
        self.grid = SpatialHashGrid(self.width, self.height, GRID_CELL_SIZE)

        for element in template.elements:
            self._insert(clone_element(element))
        self._sync_stack()
        self.scheduler.request()
        logger.info(f"Scene initialized: {len(self._order)} elements, {self.width}x{self.height}")

    def destroy(self):
        """Tear down. No repaint or image completion is applied afterwards."""
        if self.scheduler is not None:
            self.scheduler.close()
        self.scheduler = None
        if self.grid is not None:
            self.grid.clear()
        self.grid = None
        self._slots.clear()
        self._elements.clear()
        self._order.clear()
        self._objects.clear()
        self._painted = []
        self._selection = []
        self._dragging = None
        self.engine.end()
        self.binding.destroy_surface()

    def __enter__(self) -> "SceneAdapter":
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.initialized:
            self.destroy()

    # ------------------------------------------------------------------
    # Element operations

    def add_element(self, element: AnyElement) -> SceneObject | None:
        if not self._require_initialized("add element"):
            return None
        if element.id in self._elements:
            logger.warning(f"Element {element.id} already exists, updating instead")
            self.update_element(element.id, element.to_dict())
            return self._objects[element.id]
        obj = self._insert(clone_element(element))
        self._sync_stack()
        self._request_repaint()
        return obj

    def update_element(self, element_id: str, patch: dict[str, Any]) -> AnyElement | None:
        """
        Apply a partial update (snake_case or camelCase keys).

        Returns:
            The updated element, or None when the id is unknown
        """
        if not self._require_initialized("update element"):
            return None
        current = self._elements.get(element_id)
        if current is None:
            logger.warning(f"Element not found for update: {element_id}")
            return None

        data = current.to_dict()
        for key, value in patch.items():
            if key in ("id", "type"):
                continue
            snake = camel_to_snake(key)
            camel_key = next((k for k in data if camel_to_snake(k) == snake), None)
            data[camel_key or key] = value
        updated = type(current).from_dict(data)
        self._replace(current, updated)
        self._request_repaint()
        return clone_element(updated)

    def remove_element(self, element_id: str) -> bool:
        if not self._require_initialized("remove element"):
            return False
        if element_id not in self._elements:
            logger.warning(f"Element not found for removal: {element_id}")
            return False
        self._discard(element_id)
        self._sync_stack()
        if element_id in self._selection:
            self._set_selection([i for i in self._selection if i != element_id])
        self._request_repaint()
        return True

    def replace_all_elements(self, elements: list[AnyElement]):
        """Reconcile with a full element list (undo/redo, external load)."""
        if not self._require_initialized("replace elements"):
            return
        change = detect_element_change(self.get_elements(), elements)
        if change.type == "none":
            return

        keep = {e.id for e in elements}
        for element_id in [i for i in self._order if i not in keep]:
            self._discard(element_id)

        for element in elements:
            existing = self._elements.get(element.id)
            if existing is None:
                self._insert(clone_element(element))
            elif type(existing) is not type(element):
                self._discard(element.id)
                self._insert(clone_element(element))
            else:
                self._replace(existing, clone_element(element), restack=False)
        self._order = [e.id for e in elements]
        self._sync_stack()
        self._request_repaint()
        logger.debug(f"Replaced elements ({change.type}): {len(elements)} total")

    def reorder(self, element_id: str, z_index: int) -> AnyElement | None:
        return self.update_element(element_id, {"z_index": z_index})

    # ------------------------------------------------------------------
    # Canvas-level operations

    def set_canvas_size(self, width: float, height: float):
        if not self._require_initialized("set canvas size"):
            return
        self.width, self.height = width, height
        self.binding.resize(width * self.zoom, height * self.zoom)
        self.grid.rebuild(width, height, boxes=[Box.from_element(e) for e in self._elements.values()])
        self._request_repaint()

    def set_background_color(self, color: str):
        if not self._require_initialized("set background color"):
            return
        self.background_color = color
        self.binding.set_background(color)
        self._request_repaint()

    def set_zoom(self, zoom: float):
        if zoom <= 0:
            raise ValueError(f"Zoom must be positive, got {zoom}")
        self.zoom = zoom
        if not self._require_initialized("set zoom"):
            return
        self.binding.resize(self.width * zoom, self.height * zoom)
        self._request_repaint()

    def set_preview_row(self, row: dict[str, Any], field_mapping: dict[str, str] | None = None):
        """Re-resolve dynamic text and images against another data row."""
        self.preview_row = dict(row or {})
        if field_mapping is not None:
            self.field_mapping = dict(field_mapping)
        if not self._require_initialized("set preview row"):
            return
        for element in list(self._elements.values()):
            self._replace(element, element, restack=False)
        self._request_repaint()

    def update_snapping_settings(self, settings: SnappingSettings | None = None, **changes: Any):
        base = settings or self.engine.settings
        self.engine.settings = base.updated(**changes) if changes else base

    # ------------------------------------------------------------------
    # Queries

    def get_element_state(self, element_id: str) -> AnyElement | None:
        element = self._elements.get(element_id)
        return clone_element(element) if element else None

    def get_elements(self) -> list[AnyElement]:
        return [clone_element(self._elements[i]) for i in self._order]

    def get_object(self, element_id: str) -> SceneObject | None:
        return self._objects.get(element_id)

    def image_slot(self, element_id: str) -> ImageSlot | None:
        return self._slots.get(element_id)

    def nearby_collisions(self, element_id: str, min_spacing: float = 0) -> list[CollisionReport]:
        """Overlaps and too-close neighbors, narrowed through the spatial grid."""
        element = self._elements.get(element_id)
        if element is None or self.grid is None:
            return []
        active = Box.from_element(element)
        nearby = self.grid.get_nearby(active)
        boxes = [Box.from_element(self._elements[i]) for i in self._order if i in nearby]
        return find_all_collisions(active, boxes, min_spacing)

    # ------------------------------------------------------------------
    # Selection

    def select(self, element_ids: list[str]) -> list[str]:
        """Select existing, unlocked elements. Returns the effective selection."""
        selection = [
            i for i in dict.fromkeys(element_ids)
            if i in self._elements and not self._elements[i].locked
        ]
        self._set_selection(selection)
        return list(self._selection)

    def get_selection(self) -> list[str]:
        return list(self._selection)

    def _set_selection(self, selection: list[str]):
        if selection == self._selection:
            return
        self._selection = selection
        if self._on_selection_changed:
            self._on_selection_changed(list(selection))

    # ------------------------------------------------------------------
    # Drag gestures

    def begin_drag(self, element_id: str) -> bool:
        element = self._elements.get(element_id)
        if element is None or element.locked or not self.initialized:
            return False
        self._dragging = element_id
        self.engine.begin()
        return True

    def drag_to(self, element_id: str, x: float, y: float) -> SnapResult | None:
        """Pointer move: snap the raw position and move the element there."""
        if self._dragging != element_id:
            logger.warning(f"drag_to for {element_id} without begin_drag")
            return None
        element = self._elements[element_id]
        active = Box(x, y, element.width, element.height, element_id)
        result = self.engine.move(active, self.snap_neighbors(active), self.width, self.height, self.zoom)
        self._move(element, result.x, result.y)
        self._request_repaint()
        return result

    def snap_neighbors(self, active: Box) -> list[Box]:
        """
        Visible siblings that can line up with the active box.

        A sibling only produces a guide, badge or spacing hint when it shares
        a column or a row band with the active box, so the grid is queried
        for those two bands instead of scanning every element.
        """
        if self.grid is None:
            return []
        s = self.engine.settings
        margin = 3 * s.threshold + (s.grid_size if s.grid_snapping else 0)
        column = Box(active.left - margin, 0, active.width + 2 * margin, self.height, active.id)
        row = Box(0, active.top - margin, self.width, active.height + 2 * margin, active.id)
        nearby = self.grid.get_nearby(column) | self.grid.get_nearby(row)
        return [
            Box.from_element(self._elements[i])
            for i in self._order
            if i in nearby and i != active.id and self._elements[i].visible is not False
        ]

    def end_drag(self, element_id: str) -> AnyElement | None:
        """Release: guides clear and the moved element is reported."""
        if self._dragging != element_id:
            return None
        self._dragging = None
        self.engine.end()
        element = clone_element(self._elements[element_id])
        self._request_repaint()
        if self._on_elements_changed:
            self._on_elements_changed([element])
        return element

    @property
    def guides(self):
        return self.engine.guides

    # ------------------------------------------------------------------
    # Callbacks

    def on_elements_changed(self, callback: ElementsChangedCallback):
        self._on_elements_changed = callback

    def on_selection_changed(self, callback: SelectionChangedCallback):
        self._on_selection_changed = callback

    def _handle_object_modified(self, payload: dict[str, Any]):
        """Transform finished on the canvas: sync back and report."""
        if not self.initialized or not payload:
            return
        updated = []
        for change in payload.get("objects") or [payload]:
            element_id = change.get("id")
            if element_id not in self._elements:
                continue
            patch = {OBJECT_TO_ELEMENT.get(k, k): v for k, v in change.items() if k != "id"}
            element = self.update_element(element_id, patch)
            if element is not None:
                updated.append(element)
        if updated and self._on_elements_changed:
            self._on_elements_changed(updated)

    def _handle_selection_changed(self, payload: Any):
        ids = payload.get("ids", []) if isinstance(payload, dict) else list(payload or [])
        self.select(ids)

    # ------------------------------------------------------------------
    # Images

    def complete_image_load(
        self,
        element_id: str,
        token: int,
        result: Any = None,
        error: str | None = None,
    ) -> bool:
        """
        Apply a finished image load. Returns False for stale or late results
        (element removed, re-pointed, or the scene destroyed).
        """
        if not self.initialized:
            return False
        slot = self._slots.current(element_id, token)
        if slot is None:
            return False
        if error is not None or result is None:
            slot.fail(error or "Image failed to load")
            logger.warning(f"Image for {element_id} failed: {slot.error}")
        else:
            slot.resolve(natural_size_of(result))
        self._refresh_object(self._elements[element_id])
        self._request_repaint()
        return True

    def _open_image_slot(self, element: ImageElement, src: str):
        if not src:
            self._slots.discard(element.id)
            return
        slot = self._slots.open(element.id, src)
        if self.image_loader is None:
            return
        slot.start()
        self.image_loader(ImageLoadRequest(element.id, slot.token, src))

    # ------------------------------------------------------------------
    # Internals

    def _resolve(self, element: AnyElement) -> AnyElement:
        return resolve_element(element, self.preview_row, self.field_mapping)

    def _font_size(self, element: TextElement) -> int:
        handle = self.fonts.resolve(
            element.font_family,
            element.font_weight or ("bold" if element.is_bold else None),
            element.font_style,
            element.font_url,
        )
        font_key = (handle.family, handle.weight, handle.style, handle.path)
        return parity.fitted_font_size(element, handle.font, self.fit_cache, font_key)

    def _build(self, element: AnyElement) -> SceneObject:
        return build_scene_object(self._resolve(element), self._font_size, self._slots.get(element.id))

    def _refresh_object(self, element: AnyElement):
        obj = self._objects.get(element.id)
        fresh = self._build(element)
        if obj is None:
            self._objects[element.id] = fresh
        else:
            obj.kind, obj.props = fresh.kind, fresh.props

    def _insert(self, element: AnyElement) -> SceneObject:
        self._elements[element.id] = element
        if element.id not in self._order:
            self._order.append(element.id)
        if isinstance(element, ImageElement):
            self._open_image_slot(element, self._resolve(element).image_url or "")
        self._refresh_object(element)
        self.grid.insert(Box.from_element(element))
        return self._objects[element.id]

    def _discard(self, element_id: str):
        self._elements.pop(element_id, None)
        self._slots.discard(element_id)
        obj = self._objects.pop(element_id, None)
        if obj is not None and element_id in self._painted:
            self.binding.remove(obj)
            self._painted.remove(element_id)
        if element_id in self._order:
            self._order.remove(element_id)
        self.grid.remove(element_id)

    def _replace(self, current: AnyElement, updated: AnyElement, restack: bool = True):
        changed = changed_properties(current, updated) if current is not updated else set()
        self._elements[updated.id] = updated
        if isinstance(updated, ImageElement):
            src = self._resolve(updated).image_url or ""
            slot = self._slots.get(updated.id)
            if slot is None or slot.src != src:
                self._open_image_slot(updated, src)
        self._refresh_object(updated)
        if changed & GEOMETRY_FIELDS:
            self.grid.update(Box.from_element(updated))
        if restack and changed & {"z_index", "visible"}:
            self._sync_stack()

    def _move(self, element: AnyElement, x: float, y: float):
        element.x, element.y = x, y
        obj = self._objects[element.id]
        obj.props["left"], obj.props["top"] = x, y
        if isinstance(element, ImageElement):
            self._refresh_object(element)
        self.grid.update(Box.from_element(element))

    def _sync_stack(self):
        """Mirror paint order (visible only, ascending z_index) into the binding."""
        desired = [e.id for e in parity.paint_order([self._elements[i] for i in self._order])]
        for element_id in [i for i in self._painted if i not in desired]:
            obj = self._objects.get(element_id)
            if obj is not None:
                self.binding.remove(obj)
        painted = [i for i in self._painted if i in desired]
        for index, element_id in enumerate(desired):
            obj = self._objects[element_id]
            if element_id not in painted:
                self.binding.add(obj)
                painted.append(element_id)
            if painted.index(element_id) != index:
                self.binding.move_to(obj, index)
                painted.remove(element_id)
                painted.insert(index, element_id)
        self._painted = painted

    def _request_repaint(self):
        if self.scheduler is not None:
            self.scheduler.request()
