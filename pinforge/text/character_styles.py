"""Per-character style ranges over a text element's logical text.

Ranges use inclusive end indices. After normalization a style list is sorted,
non-overlapping, and adjacent ranges with identical properties are merged.
"""

import itertools
import logging
from typing import Any

from ..models.element import CharacterStyle

logger = logging.getLogger(__name__)

# warn when a single text element carries more ranges than this
MAX_RECOMMENDED_STYLES = 50

_style_ids = itertools.count(1)


def generate_style_id() -> str:
    return f"style-{next(_style_ids)}"


def _paint(styles: list[CharacterStyle], length: int) -> tuple[list[dict[str, Any]], list[str | None]]:
    """Flatten styles into one property dict per character. Later styles win per key."""
    props: list[dict[str, Any]] = [{} for _ in range(length)]
    owners: list[str | None] = [None] * length
    for style in styles:
        start = max(0, style.start)
        end = min(length - 1, style.end)
        for i in range(start, end + 1):
            props[i].update(style.properties())
            if owners[i] is None:
                owners[i] = style.id
    return props, owners


def _collect(props: list[dict[str, Any]], owners: list[str | None]) -> list[CharacterStyle]:
    """Compress per-character properties back into ranges."""
    result: list[CharacterStyle] = []
    used_ids: set[str] = set()
    run_start = None
    for i in range(len(props) + 1):
        current = props[i] if i < len(props) else None
        if run_start is not None and current != props[run_start]:
            style_id = owners[run_start]
            if not style_id or style_id in used_ids:
                style_id = generate_style_id()
            used_ids.add(style_id)
            result.append(CharacterStyle(start=run_start, end=i - 1, id=style_id, **props[run_start]))
            run_start = None
        if run_start is None and current:
            run_start = i
    return result


def normalize_styles(styles: list[CharacterStyle], text_length: int) -> list[CharacterStyle]:
    """Clamp to the text, drop empty ranges, resolve overlaps and merge neighbours."""
    if text_length <= 0 or not styles:
        return []
    valid = [s for s in styles if s.start <= s.end and s.properties()]
    if len(valid) < len(styles):
        logger.debug(f"Dropped {len(styles) - len(valid)} empty or inverted style ranges")
    props, owners = _paint(valid, text_length)
    return _collect(props, owners)


def apply_style_to_range(
    styles: list[CharacterStyle],
    start: int,
    end: int,
    text_length: int | None = None,
    **properties: Any,
) -> list[CharacterStyle]:
    """
    Apply properties to [start, end], splitting and merging existing ranges.

    Example:
        existing [0..10 fill=red] + apply 5..15 font_weight=700 ->
        [0..4 red], [5..10 red/700], [11..15 700]
    """
    if start > end:
        logger.warning(f"Invalid style range {start}..{end}")
        return list(styles)
    length = text_length if text_length is not None else max([end] + [s.end for s in styles]) + 1
    new_style = CharacterStyle(start=start, end=end, id=generate_style_id(), **properties)
    return normalize_styles(list(styles) + [new_style], length)


def remove_style_from_range(
    styles: list[CharacterStyle],
    start: int,
    end: int,
    keys: list[str] | None = None,
    text_length: int | None = None,
) -> list[CharacterStyle]:
    """Clear the given keys (all style keys when None) inside [start, end]."""
    if not styles or start > end:
        return list(styles)
    length = text_length if text_length is not None else max(s.end for s in styles) + 1
    props, owners = _paint(styles, length)
    for i in range(max(0, start), min(length - 1, end) + 1):
        for key in keys or CharacterStyle.STYLE_KEYS:
            props[i].pop(key, None)
    return _collect(props, owners)


def _shift_index(index: int, position: int, removed: int) -> int:
    if index < position:
        return index
    if index >= position + removed:
        return index - removed
    return position


def adjust_styles_after_text_change(
    styles: list[CharacterStyle],
    position: int,
    delta: int,
) -> list[CharacterStyle]:
    """
    Keep ranges attached to their characters after an edit at `position`.

    delta > 0 inserts that many characters (a range containing the insertion
    point grows); delta < 0 deletes -delta characters starting at position.
    """
    result: list[CharacterStyle] = []
    for style in styles:
        start, end = style.start, style.end
        if delta >= 0:
            if start >= position:
                start += delta
                end += delta
            elif end >= position:
                end += delta
        else:
            removed = -delta
            new_start = _shift_index(start, position, removed)
            if position <= end < position + removed:
                new_end = position - 1
            else:
                new_end = _shift_index(end, position, removed)
            start, end = new_start, new_end
        if start <= end:
            result.append(CharacterStyle(start=start, end=end, id=style.id, **style.properties()))
    return result


def styles_at(styles: list[CharacterStyle], index: int) -> dict[str, Any]:
    """Effective override properties for one character."""
    merged: dict[str, Any] = {}
    for style in styles:
        if style.start <= index <= style.end:
            merged.update(style.properties())
    return merged


def style_runs(text: str, styles: list[CharacterStyle] | None, offset: int = 0) -> list[tuple[str, dict[str, Any]]]:
    """
    Split text into (segment, overrides) runs.

    `offset` is the index of text[0] in the full logical text, so a wrapped
    line can be split with the styles of the whole element.
    """
    if not text:
        return []
    if not styles:
        return [(text, {})]
    runs: list[tuple[str, dict[str, Any]]] = []
    current = ""
    current_props: dict[str, Any] | None = None
    for i, char in enumerate(text):
        props = styles_at(styles, offset + i)
        if current_props is not None and props != current_props:
            runs.append((current, current_props))
            current = ""
        current += char
        current_props = props
    runs.append((current, current_props or {}))
    return runs


def is_style_count_excessive(styles: list[CharacterStyle]) -> bool:
    return len(styles) > MAX_RECOMMENDED_STYLES
