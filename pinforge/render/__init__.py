"""Rendering: shared parity rules and the headless Pillow renderer."""

from .headless import HeadlessRenderer, RenderOutput, encode_jpeg
from .parity import fit_geometry, paint_order, parse_color, text_paint_style

__all__ = [
    "HeadlessRenderer",
    "RenderOutput",
    "encode_jpeg",
    "fit_geometry",
    "paint_order",
    "parse_color",
    "text_paint_style",
]
