"""Box overlap, spacing and push-away helpers.

Directions name the side of the active box where the other box sits.
"""

from dataclasses import dataclass

from .box import Box


@dataclass(frozen=True)
class CollisionResult:
    collides: bool
    distance: float  # negative = overlap depth, positive = gap
    direction: str  # left | right | top | bottom | none
    overlap_area: float = 0.0


@dataclass(frozen=True)
class ProximityInfo:
    zone: str  # safe | warning | danger | collision
    horizontal_gap: float
    vertical_gap: float
    closest_direction: str


@dataclass(frozen=True)
class CollisionReport:
    id: str
    collision: CollisionResult
    proximity: ProximityInfo


def detect_overlap(a: Box, b: Box) -> bool:
    return a.overlaps_x(b) and a.overlaps_y(b)


def calculate_spacing(a: Box, b: Box) -> CollisionResult:
    """
    Minimum spacing between two boxes.

    Overlapping boxes report the smallest penetration as a negative distance;
    separate boxes report the smallest non-negative gap.
    """
    if detect_overlap(a, b):
        width = min(a.right, b.right) - max(a.left, b.left)
        height = min(a.bottom, b.bottom) - max(a.top, b.top)
        penetrations = [
            ("right", a.right - b.left),
            ("left", b.right - a.left),
            ("bottom", a.bottom - b.top),
            ("top", b.bottom - a.top),
        ]
        direction, depth = min((p for p in penetrations if p[1] > 0), key=lambda p: p[1])
        return CollisionResult(True, -depth, direction, width * height)

    gaps = [
        ("right", b.left - a.right),
        ("left", a.left - b.right),
        ("bottom", b.top - a.bottom),
        ("top", a.top - b.bottom),
    ]
    candidates = [g for g in gaps if g[1] >= 0]
    if not candidates:
        return CollisionResult(False, 0.0, "none")
    direction, gap = min(candidates, key=lambda g: g[1])
    return CollisionResult(False, gap, direction)


def get_proximity_info(a: Box, b: Box, min_spacing: float) -> ProximityInfo:
    collision = calculate_spacing(a, b)
    if collision.collides:
        zone = "collision"
    elif collision.distance < min_spacing * 0.5:
        zone = "danger"
    elif collision.distance < min_spacing:
        zone = "warning"
    else:
        zone = "safe"
    return ProximityInfo(
        zone=zone,
        horizontal_gap=max(b.left - a.right, a.left - b.right),
        vertical_gap=max(b.top - a.bottom, a.top - b.bottom),
        closest_direction=collision.direction,
    )


def calculate_push_vector(active: Box, target: Box, min_spacing: float) -> tuple[float, float] | None:
    """(dx, dy) that moves the active box min_spacing away from target, or None."""
    collision = calculate_spacing(active, target)
    if not collision.collides and collision.distance >= min_spacing:
        return None

    amount = abs(collision.distance) + min_spacing if collision.collides else min_spacing - collision.distance
    vectors = {
        "right": (-amount, 0.0),
        "left": (amount, 0.0),
        "bottom": (0.0, -amount),
        "top": (0.0, amount),
    }
    return vectors.get(collision.direction)


def find_all_collisions(active: Box, boxes: list[Box], min_spacing: float) -> list[CollisionReport]:
    """Boxes that overlap the active box or sit closer than min_spacing."""
    reports = []
    for box in boxes:
        if box.id and box.id == active.id:
            continue
        collision = calculate_spacing(active, box)
        if collision.collides or collision.distance < min_spacing:
            reports.append(CollisionReport(box.id, collision, get_proximity_info(active, box, min_spacing)))
    return reports


def clamp_to_avoid_collision(
    active: Box,
    target: Box,
    min_spacing: float,
    dx: float,
    dy: float,
) -> tuple[float, float, bool]:
    """
    Apply a movement, stopping min_spacing short of the target.

    Returns:
        (left, top, blocked)
    """
    moved = active.moved_to(active.left + dx, active.top + dy)
    collision = calculate_spacing(moved, target)
    if not collision.collides and collision.distance >= min_spacing:
        return moved.left, moved.top, False

    left, top = moved.left, moved.top
    if collision.direction == "right":
        left = target.left - active.width - min_spacing
    elif collision.direction == "left":
        left = target.right + min_spacing
    elif collision.direction == "bottom":
        top = target.top - active.height - min_spacing
    elif collision.direction == "top":
        top = target.bottom + min_spacing
    return left, top, True
