"""Headless Pillow renderer for batch generation.

Each element is painted on its own transparent layer in element-local
coordinates, rotated about the element center, multiplied by opacity and
composited onto the canvas in paint order.
"""

import logging
import math
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any

from PIL import Image, ImageChops, ImageDraw, ImageFont

from ..clients.images import ImageFetcher
from ..config import IMAGE_FAILURE_FAILS_ROW, JPEG_QUALITY
from ..errors import ElementRenderError, RowRenderError
from ..fonts import FontHandle, FontRegistry
from ..models.element import AnyElement, FrameElement, ImageElement, ShapeElement, TextElement
from ..models.template import Template
from ..text.autofit import FitCache
from ..text.character_styles import style_runs
from ..text.layout import char_spacing_px, line_width, wrap_words
from ..text.substitution import resolve_element
from . import parity
from .draw import (
    apply_opacity,
    composite,
    dashed_polyline,
    drop_shadow,
    outline_box,
    place_rotated,
    placeholder_layer,
    rounded_mask,
)
from .path import flatten_path, path_bounds

logger = logging.getLogger(__name__)

TRANSPARENT = (0, 0, 0, 0)


@dataclass
class RenderOutput:
    """One rendered row plus what went wrong along the way."""
    image: Image.Image
    warnings: list[str] = field(default_factory=list)
    image_failures: int = 0


@dataclass
class _Layer:
    """Element layer whose local origin sits `margin` px in from the top-left."""
    image: Image.Image
    margin: int = 0


def encode_jpeg(image: Image.Image, quality: int = JPEG_QUALITY) -> bytes:
    buffer = BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def _box_size(element: AnyElement) -> tuple[int, int]:
    return max(1, int(round(element.width))), max(1, int(round(element.height)))


def _empty_layer(element: AnyElement, margin: int) -> _Layer:
    width, height = _box_size(element)
    return _Layer(Image.new("RGBA", (width + 2 * margin, height + 2 * margin), TRANSPARENT), margin)


class HeadlessRenderer:
    """Renders templates against data rows without a display."""

    def __init__(
        self,
        font_registry: FontRegistry | None = None,
        image_fetcher: ImageFetcher | None = None,
        fit_cache: FitCache | None = None,
        image_failure_fails_row: bool = IMAGE_FAILURE_FAILS_ROW,
    ):
        self.fonts = font_registry or FontRegistry()
        self.images = image_fetcher or ImageFetcher()
        self.fit_cache = fit_cache if fit_cache is not None else FitCache()
        self.image_failure_fails_row = image_failure_fails_row

    # ------------------------------------------------------------------
    # Public API

    def render(
        self,
        template: Template,
        row: dict[str, Any] | None = None,
        field_mapping: dict[str, str] | None = None,
    ) -> Image.Image:
        return self.render_row(template, row, field_mapping).image

    def render_jpeg(
        self,
        template: Template,
        row: dict[str, Any] | None = None,
        field_mapping: dict[str, str] | None = None,
        quality: int = JPEG_QUALITY,
    ) -> bytes:
        return encode_jpeg(self.render(template, row, field_mapping), quality)

    def render_row(
        self,
        template: Template,
        row: dict[str, Any] | None = None,
        field_mapping: dict[str, str] | None = None,
        row_index: int = 0,
    ) -> RenderOutput:
        """
        Render one row.

        Args:
            template: Template to paint
            row: Data row (column -> value)
            field_mapping: Template field name -> column name
            row_index: Index used in errors and log lines

        Returns:
            RenderOutput with the RGBA image and per-element warnings

        Raises:
            RowRenderError: the canvas could not be produced, or an image
                failed to load while image_failure_fails_row is set
        """
        row = row or {}
        field_mapping = field_mapping or {}
        try:
            background = parity.parse_color(template.background_color, (255, 255, 255, 255))
            canvas = Image.new(
                "RGBA",
                (max(1, int(template.width)), max(1, int(template.height))),
                background or TRANSPARENT,
            )
        except (ValueError, TypeError, MemoryError) as e:
            raise RowRenderError(row_index, f"Canvas setup failed: {e}")

        output = RenderOutput(image=canvas)
        for element in template.paint_order():
            self._paint_element(canvas, element, row, field_mapping, output)

        if self.image_failure_fails_row and output.image_failures:
            raise RowRenderError(row_index, "; ".join(output.warnings) or "Image failed to load")
        return output

    # ------------------------------------------------------------------
    # Element dispatch

    def _paint_element(
        self,
        canvas: Image.Image,
        element: AnyElement,
        row: dict[str, Any],
        field_mapping: dict[str, str],
        output: RenderOutput,
    ):
        try:
            resolved = resolve_element(element, row, field_mapping)
            layer = self._element_layer(resolved, output)
        except Exception as e:
            message = f"Element {element.id} ({element.type}) failed: {e}"
            logger.warning(message)
            output.warnings.append(message)
            resolved = element
            layer = _Layer(placeholder_layer(_box_size(element), parity.ELEMENT_ERROR))

        if layer is None:
            return
        image = apply_opacity(layer.image, element.opacity if element.opacity is not None else 1)
        place_rotated(canvas, image, resolved.center, resolved.rotation or 0)

    def _element_layer(self, element: AnyElement, output: RenderOutput) -> _Layer | None:
        if isinstance(element, TextElement):
            return self._text_layer(element)
        if isinstance(element, ImageElement):
            return self._image_layer(element, output)
        if isinstance(element, ShapeElement):
            return self._shape_layer(element, output)
        if isinstance(element, FrameElement):
            return self._frame_layer(element)
        raise ElementRenderError(element.id, f"Unsupported element type {type(element).__name__}")

    # ------------------------------------------------------------------
    # Text

    def _font_for(self, element: TextElement, overrides: dict[str, Any] | None = None) -> FontHandle:
        overrides = overrides or {}
        return self.fonts.resolve(
            overrides.get("font_family") or element.font_family,
            overrides.get("font_weight") or element.font_weight or ("bold" if element.is_bold else None),
            overrides.get("font_style") or element.font_style,
            element.font_url,
        )

    def _text_layer(self, element: TextElement) -> _Layer | None:
        text = element.text or ""
        style = parity.text_paint_style(element)
        if not text.strip() and not style.background:
            return None

        handle = self._font_for(element)
        font_key = (handle.family, handle.weight, handle.style, handle.path)
        size = parity.fitted_font_size(element, handle.font, self.fit_cache, font_key)

        shadow = style.shadow
        shadow_extent = 0.0
        if shadow:
            shadow_extent = shadow.blur * 2 + max(abs(shadow.offset_x), abs(shadow.offset_y))
        chip_pad = (element.background_padding or 0) if style.background else 0
        margin = int(math.ceil(size + style.stroke_width + shadow_extent + chip_pad))

        layer = _empty_layer(element, margin)
        text_layer = Image.new("RGBA", layer.image.size, TRANSPARENT)
        self._draw_text(text_layer, element, text, size, style, handle, margin)
        if shadow:
            text_layer = drop_shadow(
                text_layer, shadow.color, shadow.blur, (shadow.offset_x, shadow.offset_y), shadow.opacity
            )

        if style.background:
            chip = style.background
            color = parity.parse_color(chip.color)
            if color:
                ImageDraw.Draw(layer.image).rounded_rectangle(
                    (
                        margin + chip.left,
                        margin + chip.top,
                        margin + chip.left + chip.width,
                        margin + chip.top + chip.height,
                    ),
                    radius=chip.radius,
                    fill=color,
                )
        layer.image.alpha_composite(text_layer)
        return layer

    def _draw_text(
        self,
        target: Image.Image,
        element: TextElement,
        text: str,
        size: int,
        style: parity.TextPaintStyle,
        handle: FontHandle,
        margin: int,
    ):
        draw = ImageDraw.Draw(target)
        font = handle.font(size)
        spacing = char_spacing_px(element.letter_spacing, size)
        line_px = size * style.line_height
        box_width = element.width

        # wrap per paragraph so justify knows which lines end a paragraph
        lines: list[tuple[str, bool]] = []
        for paragraph in text.split("\n"):
            wrapped = wrap_words(paragraph, box_width, lambda s: line_width(s, font, spacing))
            lines += [(line, i == len(wrapped) - 1) for i, line in enumerate(wrapped)]

        total_height = len(lines) * line_px
        if element.vertical_align == "middle":
            top = (element.height - total_height) / 2
        elif element.vertical_align == "bottom":
            top = element.height - total_height
        else:
            top = 0

        fill = parity.parse_color(style.fill) if style.fill else None
        stroke = parity.parse_color(style.stroke) if style.stroke else None
        stroke_width = int(round(style.stroke_width)) if stroke else 0
        if fill is None:
            # hollow: transparent ink over the stroke leaves only the outline
            fill = TRANSPARENT
        if element.is_bold and handle.weight != "bold" and not stroke:
            # faux bold when no bold face resolved
            stroke, stroke_width = fill, max(1, size // 25)

        cursor = 0
        for index, (line, paragraph_end) in enumerate(lines):
            offset = text.find(line, cursor) if line else -1
            if offset < 0:
                offset = cursor
            cursor = offset + len(line)

            y = margin + top + index * line_px + (line_px - size) / 2
            runs = style_runs(line, element.character_styles, offset) or [("", {})]
            run_fonts = [self._run_font(element, props, font, size) for _, props in runs]
            natural = sum(line_width(run, f, spacing) for (run, _), f in zip(runs, run_fonts))
            natural += spacing * max(0, len(runs) - 1)

            extra_space = 0.0
            if element.align == "center":
                x = margin + (box_width - natural) / 2
            elif element.align == "right":
                x = margin + box_width - natural
            else:
                x = margin
                gaps = line.count(" ")
                if element.align == "justify" and not paragraph_end and gaps:
                    extra_space = max(0.0, (box_width - natural) / gaps)

            for (run, props), run_font in zip(runs, run_fonts):
                run_fill = parity.parse_color(props["fill"]) if props.get("fill") and style.fill else fill
                start_x = x
                x = self._draw_run(
                    draw, x, y, run, run_font, run_fill, stroke, stroke_width, spacing, extra_space
                )
                decoration_color = run_fill if run_fill != TRANSPARENT else stroke
                thickness = max(1, size // 15)
                if (props.get("underline") or style.underline) and decoration_color:
                    underline_y = y + size * 0.95
                    draw.line([(start_x, underline_y), (x, underline_y)], fill=decoration_color, width=thickness)
                if (props.get("linethrough") or style.linethrough) and decoration_color:
                    strike_y = y + size * 0.55
                    draw.line([(start_x, strike_y), (x, strike_y)], fill=decoration_color, width=thickness)
                x += spacing

    def _run_font(
        self,
        element: TextElement,
        props: dict[str, Any],
        base_font: ImageFont.ImageFont,
        size: int,
    ) -> ImageFont.ImageFont:
        if not any(props.get(k) for k in ("font_family", "font_weight", "font_style", "font_size")):
            return base_font
        handle = self._font_for(element, props)
        return handle.font(int(round(props.get("font_size") or size)))

    @staticmethod
    def _draw_run(
        draw: ImageDraw.ImageDraw,
        x: float,
        y: float,
        run: str,
        font: ImageFont.ImageFont,
        fill: parity.Color,
        stroke: parity.Color | None,
        stroke_width: int,
        spacing: float,
        extra_space: float,
    ) -> float:
        """Draw one run starting at x. Returns x after its last glyph."""
        if not run:
            return x
        kwargs: dict[str, Any] = {"font": font, "fill": fill}
        if stroke and stroke_width:
            kwargs.update(stroke_width=stroke_width, stroke_fill=stroke)

        if not spacing and not extra_space:
            draw.text((x, y), run, **kwargs)
            return x + draw.textlength(run, font=font)

        for i, char in enumerate(run):
            draw.text((x, y), char, **kwargs)
            x += draw.textlength(char, font=font)
            if i < len(run) - 1:
                x += spacing
            if char == " ":
                x += extra_space
        return x

    # ------------------------------------------------------------------
    # Images

    def _image_layer(self, element: ImageElement, output: RenderOutput) -> _Layer:
        size = _box_size(element)
        src = element.image_url
        if not src:
            output.warnings.append(f"Image {element.id} has no source")
            return _Layer(placeholder_layer(size, parity.IMAGE_MISSING))

        try:
            source = self.images.fetch(src)
        except RuntimeError as e:
            message = f"Image {element.id} failed: {e}"
            logger.warning(message)
            output.warnings.append(message)
            output.image_failures += 1
            return _Layer(placeholder_layer(size, parity.IMAGE_FAILED))

        geometry = parity.fit_geometry(element.effective_fit_mode, source.width, source.height, (0, 0) + size)
        scaled = source.resize(
            (max(1, int(round(geometry.draw_width))), max(1, int(round(geometry.draw_height)))),
            Image.LANCZOS,
        )
        layer = Image.new("RGBA", size, TRANSPARENT)
        # the layer itself is the clip box for cover
        composite(layer, scaled, geometry.left, geometry.top)

        if element.corner_radius:
            alpha = ImageChops.multiply(layer.getchannel("A"), rounded_mask(size, element.corner_radius))
            layer.putalpha(alpha)
        return _Layer(layer)

    # ------------------------------------------------------------------
    # Shapes and frames

    def _shape_layer(self, element: ShapeElement, output: RenderOutput) -> _Layer | None:
        style = parity.shape_paint_style(element)
        fill = parity.parse_color(style.fill) if style.fill else None
        stroke = parity.parse_color(style.stroke) if style.stroke else None
        stroke_width = int(round(style.stroke_width)) if stroke else 0
        kind = element.shape_type

        if kind == "path":
            return self._path_layer(element, fill, stroke, stroke_width, style.dash, output)
        if kind in ("line", "arrow"):
            return self._line_layer(element, stroke, stroke_width, style.dash, arrow=kind == "arrow")

        margin = int(math.ceil(stroke_width / 2)) + 1
        layer = _empty_layer(element, margin)
        draw = ImageDraw.Draw(layer.image)
        box = (margin, margin, margin + element.width, margin + element.height)
        if kind == "circle":
            draw.ellipse(box, fill=fill, outline=stroke if stroke_width else None, width=stroke_width or 1)
        elif kind == "rect":
            outline_box(draw, box, fill, stroke, stroke_width, style.radius, style.dash)
        else:
            raise ElementRenderError(element.id, f"Unknown shape type {kind!r}")
        return layer

    def _line_layer(
        self,
        element: ShapeElement,
        stroke: parity.Color | None,
        stroke_width: int,
        dash: tuple[float, ...] | None,
        arrow: bool,
    ) -> _Layer | None:
        raw = element.points or [0, 0, element.width, 0]
        points = list(zip(raw[::2], raw[1::2]))
        if len(points) < 2 or not stroke:
            return None

        head = max(10, stroke_width * 4) if arrow else 0
        overflow = max(
            0,
            -min(p[0] for p in points),
            -min(p[1] for p in points),
            max(p[0] for p in points) - element.width,
            max(p[1] for p in points) - element.height,
        )
        margin = int(math.ceil(overflow + stroke_width + head)) + 1
        layer = _empty_layer(element, margin)
        draw = ImageDraw.Draw(layer.image)
        shifted = [(px + margin, py + margin) for px, py in points]

        if dash:
            dashed_polyline(draw, shifted, dash, stroke, stroke_width)
        else:
            draw.line(shifted, fill=stroke, width=stroke_width, joint="curve")

        if arrow:
            (x0, y0), (x1, y1) = shifted[-2], shifted[-1]
            angle = math.atan2(y1 - y0, x1 - x0)
            spread = math.radians(28)
            draw.polygon(
                [
                    (x1, y1),
                    (x1 - head * math.cos(angle - spread), y1 - head * math.sin(angle - spread)),
                    (x1 - head * math.cos(angle + spread), y1 - head * math.sin(angle + spread)),
                ],
                fill=stroke,
            )
        return layer

    def _path_layer(
        self,
        element: ShapeElement,
        fill: parity.Color | None,
        stroke: parity.Color | None,
        stroke_width: int,
        dash: tuple[float, ...] | None,
        output: RenderOutput,
    ) -> _Layer | None:
        if not (element.path_data or "").strip():
            message = f"Path {element.id} has no path data, skipped"
            logger.warning(message)
            output.warnings.append(message)
            return None

        try:
            subpaths = flatten_path(element.path_data)
        except ValueError as e:
            raise ElementRenderError(element.id, f"Invalid path data: {e}")

        min_x, min_y, max_x, max_y = path_bounds(subpaths)
        # positioned by its bounding box at x, y; no scaling to width/height
        overflow = max(0, (max_x - min_x) - element.width, (max_y - min_y) - element.height)
        margin = int(math.ceil(overflow + stroke_width)) + 1
        layer = _empty_layer(element, margin)
        shifted = [
            ([(px - min_x + margin, py - min_y + margin) for px, py in points], closed)
            for points, closed in subpaths
        ]

        if fill:
            # even-odd: XOR of the subpath polygons
            mask = Image.new("L", layer.image.size, 0)
            for points, _ in shifted:
                if len(points) < 3:
                    continue
                polygon = Image.new("L", layer.image.size, 0)
                ImageDraw.Draw(polygon).polygon(points, fill=255)
                mask = ImageChops.difference(mask, polygon)
            paint = Image.new("RGBA", layer.image.size, fill[:3] + (0,))
            paint.putalpha(mask.point(lambda a: round(a * fill[3] / 255)))
            layer.image.alpha_composite(paint)

        if stroke and stroke_width:
            draw = ImageDraw.Draw(layer.image)
            for points, _ in shifted:
                if dash:
                    dashed_polyline(draw, points, dash, stroke, stroke_width)
                else:
                    draw.line(points, fill=stroke, width=stroke_width, joint="curve")
        return layer

    def _frame_layer(self, element: FrameElement) -> _Layer:
        defaults = parity.FRAME_DEFAULT
        stroke_width = element.stroke_width if element.stroke_width is not None else defaults.stroke_width
        margin = int(math.ceil(stroke_width / 2)) + 1
        layer = _empty_layer(element, margin)
        outline_box(
            ImageDraw.Draw(layer.image),
            (margin, margin, margin + element.width, margin + element.height),
            parity.parse_color(element.fill or defaults.fill),
            parity.parse_color(element.stroke or defaults.stroke),
            stroke_width,
            element.corner_radius or 0,
            None if element.stroke else defaults.dash,
        )
        return layer
