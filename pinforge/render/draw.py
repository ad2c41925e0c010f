"""Pillow drawing helpers shared by the element painters."""

import math

from PIL import Image, ImageDraw, ImageFilter

from .parity import Color, PlaceholderStyle, parse_color


def dashed_line(
    draw: ImageDraw.ImageDraw,
    start: tuple[float, float],
    end: tuple[float, float],
    dash: tuple[float, ...],
    fill: Color,
    width: int,
    phase: float = 0.0,
) -> float:
    """Draw a dashed segment. Returns the dash phase to continue with."""
    length = math.dist(start, end)
    if length == 0 or not dash or sum(dash) <= 0:
        draw.line([start, end], fill=fill, width=width)
        return phase
    ux, uy = (end[0] - start[0]) / length, (end[1] - start[1]) / length
    pattern = sum(dash)
    pos = 0.0
    offset = phase % pattern
    while pos < length:
        # locate the dash index at the current offset
        acc = 0.0
        for index, size in enumerate(dash):
            if offset < acc + size:
                break
            acc += size
        remaining = acc + size - offset
        step = min(remaining, length - pos)
        if index % 2 == 0:
            a = (start[0] + ux * pos, start[1] + uy * pos)
            b = (start[0] + ux * (pos + step), start[1] + uy * (pos + step))
            draw.line([a, b], fill=fill, width=width)
        pos += step
        offset = (offset + step) % pattern
    return offset


def dashed_polyline(
    draw: ImageDraw.ImageDraw,
    points: list[tuple[float, float]],
    dash: tuple[float, ...],
    fill: Color,
    width: int,
):
    phase = 0.0
    for a, b in zip(points, points[1:]):
        phase = dashed_line(draw, a, b, dash, fill, width, phase)


def outline_box(
    draw: ImageDraw.ImageDraw,
    box: tuple[float, float, float, float],
    fill: Color | None,
    stroke: Color | None,
    stroke_width: float,
    radius: float = 0,
    dash: tuple[float, ...] | None = None,
):
    """Filled and/or stroked rectangle. Dashes apply to square corners only."""
    x0, y0, x1, y1 = box
    width = max(0, int(round(stroke_width)))
    if dash and stroke and width:
        if fill:
            draw.rounded_rectangle(box, radius=radius, fill=fill)
        corners = [(x0, y0), (x1, y0), (x1, y1), (x0, y1), (x0, y0)]
        dashed_polyline(draw, corners, dash, stroke, width)
        return
    draw.rounded_rectangle(
        box,
        radius=radius,
        fill=fill,
        outline=stroke if width else None,
        width=width or 1,
    )


def rounded_mask(size: tuple[int, int], radius: float) -> Image.Image:
    mask = Image.new("L", size, 0)
    ImageDraw.Draw(mask).rounded_rectangle((0, 0, size[0] - 1, size[1] - 1), radius=radius, fill=255)
    return mask


def apply_opacity(layer: Image.Image, opacity: float) -> Image.Image:
    if opacity >= 1:
        return layer
    alpha = layer.getchannel("A").point(lambda a: round(a * max(0.0, opacity)))
    layer.putalpha(alpha)
    return layer


def drop_shadow(
    layer: Image.Image,
    color: str,
    blur: float,
    offset: tuple[float, float],
    opacity: float = 1.0,
) -> Image.Image:
    """Layer with a blurred, offset silhouette composited underneath it."""
    rgba = parse_color(color, (0, 0, 0, 255))
    if rgba is None:
        return layer
    alpha = layer.getchannel("A").point(lambda a: round(a * rgba[3] / 255 * opacity))
    shadow = Image.new("RGBA", layer.size, rgba[:3] + (0,))
    shadow.putalpha(alpha)
    if blur:
        shadow = shadow.filter(ImageFilter.GaussianBlur(blur / 2))
    result = Image.new("RGBA", layer.size, (0, 0, 0, 0))
    composite(result, shadow, offset[0], offset[1])
    result.alpha_composite(layer)
    return result


def composite(canvas: Image.Image, layer: Image.Image, left: float, top: float):
    """alpha_composite at a possibly negative or overflowing offset."""
    left, top = int(round(left)), int(round(top))
    src_x, src_y = max(0, -left), max(0, -top)
    dest_x, dest_y = max(0, left), max(0, top)
    width = min(layer.width - src_x, canvas.width - dest_x)
    height = min(layer.height - src_y, canvas.height - dest_y)
    if width <= 0 or height <= 0:
        return
    canvas.alpha_composite(layer, dest=(dest_x, dest_y), source=(src_x, src_y, src_x + width, src_y + height))


def place_rotated(canvas: Image.Image, layer: Image.Image, center: tuple[float, float], rotation: float):
    """Rotate a layer clockwise about its own center and composite it at `center`."""
    if rotation % 360:
        layer = layer.rotate(-rotation, resample=Image.BICUBIC, expand=True)
    composite(canvas, layer, center[0] - layer.width / 2, center[1] - layer.height / 2)


def placeholder_layer(size: tuple[int, int], style: PlaceholderStyle) -> Image.Image:
    """Marked box used in place of an image or element that could not render."""
    layer = Image.new("RGBA", (max(1, size[0]), max(1, size[1])), (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    inset = style.stroke_width / 2
    outline_box(
        draw,
        (inset, inset, layer.width - 1 - inset, layer.height - 1 - inset),
        parse_color(style.fill),
        parse_color(style.stroke),
        style.stroke_width,
        dash=style.dash,
    )
    if style.label and layer.width > 40 and layer.height > 20:
        left, top, right, bottom = draw.textbbox((0, 0), style.label)
        draw.text(
            ((layer.width - (right - left)) / 2, (layer.height - (bottom - top)) / 2),
            style.label,
            fill=parse_color(style.stroke),
        )
    return layer
