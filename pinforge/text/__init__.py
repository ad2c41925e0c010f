"""Text resolution, layout and auto-fit."""

from .autofit import FitCache, FitConstraints, best_fit_font_size
from .layout import PillowTextMeasurer, TextMetrics, wrap_words
from .substitution import (
    apply_text_transform,
    extract_dynamic_fields,
    resolve_element,
    resolve_image_url,
    resolve_text,
)

__all__ = [
    "FitCache",
    "FitConstraints",
    "PillowTextMeasurer",
    "TextMetrics",
    "apply_text_transform",
    "best_fit_font_size",
    "extract_dynamic_fields",
    "resolve_element",
    "resolve_image_url",
    "resolve_text",
    "wrap_words",
]
