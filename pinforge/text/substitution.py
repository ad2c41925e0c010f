"""Dynamic field substitution and text-case transforms.

Both renderers resolve text and image sources through these functions, so a
preview and a batch render of the same row always see the same strings.
"""

import re
from typing import Any

from ..models.element import AnyElement, ImageElement, TextElement, clone_element

FIELD_TOKEN = re.compile(r"\{\{([^}]+)\}\}")
_WORD_START = re.compile(r"\b\w")

TRANSFORMS = ("none", "uppercase", "lowercase", "capitalize")


def _lookup(name: str, row: dict[str, Any], field_mapping: dict[str, str]) -> str | None:
    """Mapped column first, then the field name used directly as a column."""
    column = field_mapping.get(name)
    if column is not None and row.get(column) is not None:
        return str(row[column])
    if row.get(name) is not None:
        return str(row[name])
    return None


def replace_fields(raw: str, row: dict[str, Any], field_mapping: dict[str, str]) -> str:
    """Replace every {{name}} token. Unresolved tokens become empty strings."""
    if not raw:
        return ""

    def _sub(match: re.Match) -> str:
        value = _lookup(match.group(1).strip(), row, field_mapping)
        return value if value is not None else ""

    return FIELD_TOKEN.sub(_sub, raw)


def apply_text_transform(text: str, transform: str | None) -> str:
    """Apply uppercase/lowercase/capitalize. Anything else returns text unchanged."""
    if not text or not transform or transform == "none":
        return text
    if transform == "uppercase":
        return text.upper()
    if transform == "lowercase":
        return text.lower()
    if transform == "capitalize":
        return _WORD_START.sub(lambda m: m.group(0).upper(), text)
    return text


def resolve_text(
    raw: str,
    row: dict[str, Any],
    field_mapping: dict[str, str],
    transform: str | None = "none",
) -> str:
    """
    Resolve {{field}} tokens against a data row, then apply the case transform.

    Args:
        raw: Template text, e.g. "Hello {{name}}!"
        row: Data row (column -> value)
        field_mapping: Template field name -> column name
        transform: none | uppercase | lowercase | capitalize

    Returns:
        Fully resolved text; never contains a literal token.
    """
    return apply_text_transform(replace_fields(raw, row or {}, field_mapping or {}), transform)


def looks_like_image_source(value: str) -> bool:
    """True for http(s), protocol-relative, root-relative URLs and data URIs."""
    value = value.strip()
    return value.startswith(("http://", "https://", "//", "/", "data:"))


def resolve_image_url(
    element: ImageElement,
    row: dict[str, Any],
    field_mapping: dict[str, str],
) -> str:
    """
    Resolve the source URL for an image element.

    Priority:
        1. Dynamic element with a source field: mapped column, then raw column,
           used only when the value looks like a URL or data URI.
        2. Static URL containing {{...}}: field substitution.
        3. Static URL unchanged.
    """
    row = row or {}
    field_mapping = field_mapping or {}
    src = element.image_url or ""

    if element.is_dynamic and element.dynamic_source:
        column = field_mapping.get(element.dynamic_source)
        for key in (column, element.dynamic_source):
            if not key:
                continue
            value = row.get(key)
            if value and looks_like_image_source(str(value)):
                return str(value).strip()

    if "{{" in src:
        return replace_fields(src, row, field_mapping)
    return src


def resolve_element_text(element: TextElement, row: dict[str, Any], field_mapping: dict[str, str]) -> str:
    """Display text for a text element under one row, transform included."""
    raw = element.text or ""
    if element.is_dynamic and element.dynamic_field and not FIELD_TOKEN.search(raw):
        value = _lookup(element.dynamic_field, row or {}, field_mapping or {})
        if value is not None:
            raw = value
    return resolve_text(raw, row, field_mapping, element.text_transform)


def resolve_element(element: AnyElement, row: dict[str, Any], field_mapping: dict[str, str]) -> AnyElement:
    """Fresh per-row copy with text and image source resolved."""
    resolved = clone_element(element)
    if isinstance(resolved, TextElement):
        resolved.text = resolve_element_text(element, row, field_mapping)
        # transform already applied; character styles index the logical text
        resolved.text_transform = None
    elif isinstance(resolved, ImageElement):
        resolved.image_url = resolve_image_url(element, row, field_mapping)
        resolved.is_dynamic = False
    return resolved


def extract_dynamic_fields(elements: list[AnyElement]) -> list[str]:
    """Ordered unique field names that the elements read from a row."""
    names: list[str] = []

    def _add(name: str | None):
        if name and name not in names:
            names.append(name)

    for element in elements:
        if isinstance(element, TextElement):
            for match in FIELD_TOKEN.finditer(element.text or ""):
                _add(match.group(1).strip())
            if element.is_dynamic:
                _add(element.dynamic_field)
        elif isinstance(element, ImageElement):
            if element.is_dynamic:
                _add(element.dynamic_source)
            for match in FIELD_TOKEN.finditer(element.image_url or ""):
                _add(match.group(1).strip())
    return names
