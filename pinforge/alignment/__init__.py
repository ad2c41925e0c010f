"""Editing-time alignment: snapping, guides, spatial index, collisions."""

from .box import Box
from .collision import (
    calculate_push_vector,
    calculate_spacing,
    clamp_to_avoid_collision,
    detect_overlap,
    find_all_collisions,
    get_proximity_info,
)
from .engine import AlignmentEngine, GestureState, Guide, SnapResult, get_zone
from .settings import PRESETS, SnappingSettings, apply_preset
from .spatial_grid import SpatialHashGrid

__all__ = [
    "AlignmentEngine",
    "Box",
    "GestureState",
    "Guide",
    "PRESETS",
    "SnapResult",
    "SnappingSettings",
    "SpatialHashGrid",
    "apply_preset",
    "calculate_push_vector",
    "calculate_spacing",
    "clamp_to_avoid_collision",
    "detect_overlap",
    "find_all_collisions",
    "get_proximity_info",
    "get_zone",
]
