"""Element list diffing: list changes vs. property changes."""

from dataclasses import dataclass, field
from typing import Any

from ..models.element import AnyElement, camel_to_snake


@dataclass
class ElementChange:
    type: str  # none | list | properties
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)


def changed_properties(old: AnyElement, new: AnyElement) -> set[str]:
    """snake_case names of fields whose persisted values differ."""
    before: dict[str, Any] = old.to_dict()
    after: dict[str, Any] = new.to_dict()
    return {camel_to_snake(key) for key in before.keys() | after.keys() if before.get(key) != after.get(key)}


def detect_element_change(previous: list[AnyElement], current: list[AnyElement]) -> ElementChange:
    """
    Classify the difference between two element lists.

    Additions, removals or reordering are a 'list' change; otherwise any
    field difference is a 'properties' change listing the modified ids.
    """
    if previous is current:
        return ElementChange("none")

    previous_ids = [e.id for e in previous]
    current_ids = [e.id for e in current]
    previous_set, current_set = set(previous_ids), set(current_ids)
    added = [i for i in current_ids if i not in previous_set]
    removed = [i for i in previous_ids if i not in current_set]
    if added or removed:
        return ElementChange("list", added=added, removed=removed)
    if previous_ids != current_ids:
        return ElementChange("list")

    by_id = {e.id: e for e in previous}
    modified = [e.id for e in current if changed_properties(by_id[e.id], e)]
    if modified:
        return ElementChange("properties", modified=modified)
    return ElementChange("none")
