"""Visual rules shared by the headless renderer and the scene adapter.

Both targets call these functions instead of re-deriving paint order, fit
geometry, or text decoration rules, so their output stays in step.
"""

import re
from dataclasses import dataclass
from typing import Callable, Hashable

from PIL import ImageColor, ImageFont

from ..models.element import AnyElement, ShapeElement, TextElement
from ..text.autofit import FitCache, FitConstraints, Measure, best_fit_font_size
from ..text.layout import PillowTextMeasurer

DEFAULT_LINE_HEIGHT = 1.2

# Auto-fit defaults when the element leaves them unset
AUTO_FIT_MIN_FONT_SIZE = 8
AUTO_FIT_MAX_FONT_SIZE = 48
AUTO_FIT_PADDING = 15

Color = tuple[int, int, int, int]

_RGBA_FUNC = re.compile(
    r"rgba?\(\s*([\d.]+)\s*,\s*([\d.]+)\s*,\s*([\d.]+)\s*(?:,\s*([\d.]+%?)\s*)?\)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class PlaceholderStyle:
    fill: str
    stroke: str
    stroke_width: float
    dash: tuple[int, ...] | None = None
    label: str | None = None


IMAGE_FAILED = PlaceholderStyle("#fee2e2", "#dc2626", 2, label="Image Failed")
IMAGE_MISSING = PlaceholderStyle("#f3f4f6", "#d1d5db", 2, dash=(8, 4))
IMAGE_LOADING = PlaceholderStyle("#e5e7eb", "#d1d5db", 1)
ELEMENT_ERROR = PlaceholderStyle("#fee2e2", "#dc2626", 3, label="Render Error")
FRAME_DEFAULT = PlaceholderStyle("rgba(0,0,0,0.05)", "#cccccc", 1, dash=(5, 5))


def parse_color(value: str | None, default: Color | None = None) -> Color | None:
    """
    CSS-ish color to an RGBA tuple.

    Handles hex (3/4/6/8 digits), rgb()/rgba() with a 0..1 alpha, named colors,
    and 'transparent'/'none' (returns None). Unparseable values return default.
    """
    if value is None:
        return default
    value = value.strip()
    if not value or value.lower() in ("transparent", "none"):
        return None

    match = _RGBA_FUNC.fullmatch(value)
    if match:
        r, g, b = (int(float(c)) for c in match.group(1, 2, 3))
        alpha = match.group(4)
        if alpha is None:
            a = 255
        elif alpha.endswith("%"):
            a = round(float(alpha[:-1]) * 2.55)
        else:
            a = round(float(alpha) * 255) if float(alpha) <= 1 else int(float(alpha))
        return (r, g, b, max(0, min(255, a)))

    try:
        return ImageColor.getcolor(value, "RGBA")
    except ValueError:
        return default


def with_alpha(color: Color, factor: float) -> Color:
    r, g, b, a = color
    return (r, g, b, max(0, min(255, round(a * factor))))


def paint_order(elements: list[AnyElement]) -> list[AnyElement]:
    """Visible elements sorted ascending by z_index; ties keep list order."""
    return sorted(
        (e for e in elements if e.visible is not False),
        key=lambda e: e.z_index or 0,
    )


@dataclass(frozen=True)
class FitGeometry:
    """Where a natural-size image lands for a target box.

    left/top/draw_width/draw_height are in canvas coordinates. When clip is
    set, only the (x, y, width, height) region is painted.
    """
    scale_x: float
    scale_y: float
    left: float
    top: float
    draw_width: float
    draw_height: float
    clip: tuple[float, float, float, float] | None = None


def fit_geometry(
    mode: str,
    natural_width: float,
    natural_height: float,
    box: tuple[float, float, float, float],
) -> FitGeometry:
    """
    Compute placement for fill / cover / contain.

    Args:
        mode: fill | cover | contain
        natural_width: Source image width
        natural_height: Source image height
        box: (x, y, width, height) target box

    Returns:
        FitGeometry. Cover clips to the box at the box's own origin; contain
        centers the scaled image inside the box.
    """
    x, y, width, height = box
    if natural_width <= 0 or natural_height <= 0:
        raise ValueError(f"Invalid image size {natural_width}x{natural_height}")

    if mode == "cover":
        scale = max(width / natural_width, height / natural_height)
        draw_w, draw_h = natural_width * scale, natural_height * scale
        return FitGeometry(
            scale, scale,
            x - (draw_w - width) / 2,
            y - (draw_h - height) / 2,
            draw_w, draw_h,
            clip=(x, y, width, height),
        )

    if mode == "contain":
        scale = min(width / natural_width, height / natural_height)
        draw_w, draw_h = natural_width * scale, natural_height * scale
        return FitGeometry(
            scale, scale,
            x + (width - draw_w) / 2,
            y + (height - draw_h) / 2,
            draw_w, draw_h,
        )

    # fill: independent axes
    return FitGeometry(width / natural_width, height / natural_height, x, y, width, height)


@dataclass(frozen=True)
class Shadow:
    color: str
    blur: float
    offset_x: float
    offset_y: float
    opacity: float = 1.0


@dataclass(frozen=True)
class BackgroundChip:
    """Rectangle behind a text box, relative to the text box origin."""
    color: str
    left: float
    top: float
    width: float
    height: float
    radius: float


@dataclass(frozen=True)
class TextPaintStyle:
    fill: str | None
    stroke: str | None
    stroke_width: float
    char_spacing: float
    line_height: float
    underline: bool
    linethrough: bool
    shadow: Shadow | None
    background: BackgroundChip | None


def text_paint_style(element: TextElement) -> TextPaintStyle:
    """Resolve fill/stroke/shadow/background rules for a text element."""
    hollow = bool(element.hollow_text)
    fill = None if hollow else (element.fill or "#000000")

    stroke = None
    stroke_width = 0.0
    if hollow or element.stroke:
        stroke = element.stroke or element.fill or "#000000"
        stroke_width = element.stroke_width or (2 if hollow else 1)

    shadow = None
    if element.shadow_color:
        opacity = element.shadow_opacity if element.shadow_opacity is not None else 1.0
        shadow = Shadow(
            element.shadow_color,
            element.shadow_blur or 0,
            element.shadow_offset_x or 0,
            element.shadow_offset_y or 0,
            opacity,
        )

    background = None
    if element.background_enabled and element.background_color:
        background = background_chip_box(element)

    decoration = element.text_decoration or ""
    return TextPaintStyle(
        fill=fill,
        stroke=stroke,
        stroke_width=stroke_width,
        char_spacing=(element.letter_spacing or 0) * 10,
        line_height=element.line_height or DEFAULT_LINE_HEIGHT,
        underline="underline" in decoration,
        linethrough="line-through" in decoration,
        shadow=shadow,
        background=background,
    )


def background_chip_box(element: TextElement) -> BackgroundChip:
    """Text box grown by padding on every side."""
    padding = element.background_padding or 0
    return BackgroundChip(
        color=element.background_color or "#ffffff",
        left=-padding,
        top=-padding,
        width=element.width + 2 * padding,
        height=element.height + 2 * padding,
        radius=element.background_corner_radius or 0,
    )


def auto_fit_constraints(element: TextElement) -> FitConstraints:
    min_size = element.min_font_size or AUTO_FIT_MIN_FONT_SIZE
    max_size = element.max_font_size or AUTO_FIT_MAX_FONT_SIZE
    padding = element.auto_fit_padding if element.auto_fit_padding is not None else AUTO_FIT_PADDING
    return FitConstraints(
        min_font_size=int(min_size),
        max_font_size=int(max_size),
        padding=padding,
        max_lines=element.max_lines or None,
    )


@dataclass(frozen=True)
class ShapePaintStyle:
    fill: str | None
    stroke: str | None
    stroke_width: float
    dash: tuple[float, ...] | None
    radius: float


def shape_paint_style(element: ShapeElement) -> ShapePaintStyle:
    """Fill/stroke rules for shapes. Paths with neither fill nor stroke paint black."""
    fill = element.fill
    stroke = element.stroke
    if fill in ("none", ""):
        fill = None
    if element.shape_type == "path" and fill is None and not stroke:
        fill = "#000000"

    stroke_width = element.stroke_width or 0
    if element.shape_type in ("line", "arrow") and not stroke_width:
        stroke_width = 2
    if element.shape_type in ("line", "arrow") and not stroke:
        stroke = fill or "#000000"

    if element.shape_type == "circle":
        radius = element.width / 2
    else:
        radius = element.corner_radius or 0

    dash = tuple(element.stroke_dash_array) if element.stroke_dash_array else None
    return ShapePaintStyle(fill, stroke, stroke_width, dash, radius)


def resolve_font_size(
    element: TextElement,
    text: str,
    measure: Measure,
    cache: FitCache | None = None,
    font_key: Hashable = None,
) -> int | float:
    """Auto-fitted size when auto_fit_text is on, else the stored font size."""
    if not element.auto_fit_text:
        return element.font_size or 24
    constraints = auto_fit_constraints(element)
    if cache is not None:
        return cache.get_or_compute(text, element.width, element.height, constraints, measure, font_key)
    return best_fit_font_size(text, element.width, element.height, constraints, measure)


def fitted_font_size(
    element: TextElement,
    font_loader: Callable[[int], ImageFont.ImageFont],
    cache: FitCache | None = None,
    font_key: Hashable = None,
) -> int:
    """Integer pixel size both targets paint a resolved text element with."""
    measurer = PillowTextMeasurer(font_loader, element.line_height or DEFAULT_LINE_HEIGHT, element.letter_spacing)
    size = resolve_font_size(element, element.text or "", measurer, cache, font_key)
    return max(1, int(round(size)))
