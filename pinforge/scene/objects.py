"""Element -> SceneObject props, through the shared parity rules."""

from dataclasses import asdict
from typing import Any, Callable

from ..models.element import AnyElement, FrameElement, ImageElement, ShapeElement, TextElement
from ..render import parity
from .binding import SceneObject
from .images import ImageSlot, SlotState

FontSizer = Callable[[TextElement], int]


def _common(element: AnyElement) -> dict[str, Any]:
    return {
        "left": element.x,
        "top": element.y,
        "width": element.width,
        "height": element.height,
        "angle": element.rotation or 0,
        "opacity": element.opacity if element.opacity is not None else 1,
        "selectable": not element.locked,
        "evented": not element.locked,
        "z_index": element.z_index or 0,
    }


def _placeholder(style: parity.PlaceholderStyle) -> dict[str, Any]:
    return {
        "placeholder": True,
        "fill": style.fill,
        "stroke": style.stroke,
        "stroke_width": style.stroke_width,
        "stroke_dash_array": list(style.dash) if style.dash else None,
        "label": style.label,
    }


def text_props(element: TextElement, font_size: int) -> dict[str, Any]:
    style = parity.text_paint_style(element)
    return {
        "text": element.text or "",
        "font_family": element.font_family,
        "font_weight": element.font_weight,
        "font_style": element.font_style,
        "font_size": font_size,
        "fill": style.fill,
        "stroke": style.stroke,
        "stroke_width": style.stroke_width,
        "char_spacing": style.char_spacing,
        "line_height": style.line_height,
        "underline": style.underline,
        "linethrough": style.linethrough,
        "text_align": element.align,
        "vertical_align": element.vertical_align or "top",
        "shadow": asdict(style.shadow) if style.shadow else None,
        "background": asdict(style.background) if style.background else None,
        "styles": [s.to_dict() for s in element.character_styles or []],
    }


def image_props(element: ImageElement, slot: ImageSlot | None) -> dict[str, Any]:
    if not element.image_url:
        return _placeholder(parity.IMAGE_MISSING)
    if slot is None or slot.state in (SlotState.PLACEHOLDER, SlotState.LOADING):
        return {**_placeholder(parity.IMAGE_LOADING), "src": element.image_url}
    if slot.state is SlotState.FAILED:
        return {**_placeholder(parity.IMAGE_FAILED), "src": element.image_url, "error": slot.error}

    width, height = slot.natural_size
    geometry = parity.fit_geometry(
        element.effective_fit_mode, width, height, (element.x, element.y, element.width, element.height)
    )
    return {
        "placeholder": False,
        "src": element.image_url,
        "fit_mode": element.effective_fit_mode,
        "scale_x": geometry.scale_x,
        "scale_y": geometry.scale_y,
        "image_left": geometry.left,
        "image_top": geometry.top,
        "clip": geometry.clip,
        "corner_radius": element.corner_radius or 0,
    }


def shape_props(element: ShapeElement) -> dict[str, Any]:
    style = parity.shape_paint_style(element)
    props: dict[str, Any] = {
        "shape_type": element.shape_type,
        "fill": style.fill,
        "stroke": style.stroke,
        "stroke_width": style.stroke_width,
        "stroke_dash_array": list(style.dash) if style.dash else None,
        "radius": style.radius,
    }
    if element.shape_type in ("line", "arrow"):
        props["points"] = list(element.points or [0, 0, element.width, 0])
    if element.shape_type == "path":
        props["path_data"] = element.path_data or ""
    return props


def frame_props(element: FrameElement) -> dict[str, Any]:
    defaults = parity.FRAME_DEFAULT
    return {
        "fill": element.fill or defaults.fill,
        "stroke": element.stroke or defaults.stroke,
        "stroke_width": element.stroke_width if element.stroke_width is not None else defaults.stroke_width,
        "stroke_dash_array": None if element.stroke else list(defaults.dash),
        "corner_radius": element.corner_radius or 0,
    }


def build_scene_object(
    element: AnyElement,
    font_sizer: FontSizer,
    slot: ImageSlot | None = None,
) -> SceneObject:
    """Scene object for an already-resolved element."""
    props = _common(element)
    if isinstance(element, TextElement):
        props.update(text_props(element, font_sizer(element)))
    elif isinstance(element, ImageElement):
        props.update(image_props(element, slot))
    elif isinstance(element, ShapeElement):
        props.update(shape_props(element))
    elif isinstance(element, FrameElement):
        props.update(frame_props(element))
    return SceneObject(id=element.id, kind=element.type, props=props)
