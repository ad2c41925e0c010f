"""Magnetic snapping, guides and distance badges for drag gestures.

Candidate snap lines come from the canvas (boundaries, center lines), from
sibling edges and centers, and from a uniform grid. Each of the active box's
edge/center points is classified into a magnetic zone against each
candidate. Only a `lock` match moves the box; `near` and `far` matches draw a
guide and nothing else.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from .box import Box
from .settings import SnappingSettings

logger = logging.getLogger(__name__)

BOUNDARY_BONUS = 1.2
BADGE_RANGE = 500
GUIDE_EXTENT = 5000

ZONE_PRIORITY = {"lock": 3, "near": 2, "far": 1, "none": 0}


def get_zone(distance: float, threshold: float, is_boundary: bool = False) -> str:
    """lock <= t, near <= 2t, far <= 3t, else none. Boundaries get t * 1.2."""
    adjusted = threshold * (BOUNDARY_BONUS if is_boundary else 1)
    if distance <= adjusted:
        return "lock"
    if distance <= adjusted * 2:
        return "near"
    if distance <= adjusted * 3:
        return "far"
    return "none"


class GestureState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    RELEASED = "released"


@dataclass(frozen=True)
class SnapCandidate:
    value: float
    kind: str  # edge | center
    is_boundary: bool = False


@dataclass(frozen=True)
class SnapMatch:
    diff: float
    target: float
    zone: str
    is_boundary: bool = False


@dataclass(frozen=True)
class Guide:
    """Vertical (axis 'x') or horizontal (axis 'y') guide line."""
    axis: str
    position: float
    zone: str
    is_boundary: bool = False
    start: float = -GUIDE_EXTENT
    end: float = GUIDE_EXTENT


@dataclass(frozen=True)
class DistanceBadge:
    x: float
    y: float
    text: str
    axis: str
    zone: str


@dataclass(frozen=True)
class SpacingHint:
    """Equal-spacing match: the active gap reproduces an existing sibling gap."""
    axis: str
    gap: float
    reference: tuple[str, str]
    neighbor: str


@dataclass
class SnapResult:
    x: float
    y: float
    guides: list[Guide] = field(default_factory=list)
    badges: list[DistanceBadge] = field(default_factory=list)
    spacing_hints: list[SpacingHint] = field(default_factory=list)
    snapped_x: bool = False
    snapped_y: bool = False


def _best_match(candidates: list[SnapCandidate], points: list[float], threshold: float) -> SnapMatch | None:
    """Highest zone priority wins, then the smallest distance."""
    best: SnapMatch | None = None
    for candidate in candidates:
        for point in points:
            distance = abs(candidate.value - point)
            zone = get_zone(distance, threshold, candidate.is_boundary)
            if zone == "none":
                continue
            current = ZONE_PRIORITY[best.zone] if best else 0
            priority = ZONE_PRIORITY[zone]
            if priority > current or (priority == current and distance < abs(best.diff)):
                best = SnapMatch(candidate.value - point, candidate.value, zone, candidate.is_boundary)
    return best


class AlignmentEngine:
    """Per-gesture snapping state: idle -> active -> released."""

    def __init__(self, settings: SnappingSettings | None = None):
        self.settings = settings or SnappingSettings()
        self.state = GestureState.IDLE
        self.last_result: SnapResult | None = None

    # ------------------------------------------------------------------
    # Gesture lifecycle

    def begin(self):
        self.state = GestureState.ACTIVE
        self.last_result = None

    def move(
        self,
        active: Box,
        others: list[Box],
        canvas_width: float,
        canvas_height: float,
        zoom: float = 1.0,
    ) -> SnapResult:
        """Snap for one pointer move. Starts a gesture if none is active."""
        if self.state is not GestureState.ACTIVE:
            self.begin()
        self.last_result = self.compute(active, others, canvas_width, canvas_height, zoom)
        return self.last_result

    def end(self) -> SnapResult | None:
        """Release the gesture and clear its guides. Returns the final position."""
        final = self.last_result
        if final is not None:
            final = SnapResult(final.x, final.y, snapped_x=final.snapped_x, snapped_y=final.snapped_y)
        self.state = GestureState.RELEASED
        self.last_result = None
        return final

    @property
    def guides(self) -> list[Guide]:
        return list(self.last_result.guides) if self.last_result else []

    # ------------------------------------------------------------------
    # Snapping

    def candidates(
        self,
        others: list[Box],
        canvas_width: float,
        canvas_height: float,
    ) -> tuple[list[SnapCandidate], list[SnapCandidate]]:
        """(vertical-line candidates, horizontal-line candidates)"""
        s = self.settings
        vertical: list[SnapCandidate] = []
        horizontal: list[SnapCandidate] = []

        if s.canvas_center_lines:
            vertical.append(SnapCandidate(canvas_width / 2, "center"))
            horizontal.append(SnapCandidate(canvas_height / 2, "center"))

        if s.snap_to_boundaries:
            vertical += [SnapCandidate(0, "edge", True), SnapCandidate(canvas_width, "edge", True)]
            horizontal += [SnapCandidate(0, "edge", True), SnapCandidate(canvas_height, "edge", True)]

        if s.snap_to_objects:
            for box in others:
                if s.object_edges:
                    vertical += [SnapCandidate(box.left, "edge"), SnapCandidate(box.right, "edge")]
                    horizontal += [SnapCandidate(box.top, "edge"), SnapCandidate(box.bottom, "edge")]
                if s.object_centers:
                    vertical.append(SnapCandidate(box.center_x, "center"))
                    horizontal.append(SnapCandidate(box.center_y, "center"))
        return vertical, horizontal

    def compute(
        self,
        active: Box,
        others: list[Box],
        canvas_width: float,
        canvas_height: float,
        zoom: float = 1.0,
    ) -> SnapResult:
        """
        Snapped position for the active box.

        Args:
            active: Box being dragged, at its raw pointer position
            others: Visible sibling boxes (the active box excluded)
            canvas_width: Logical canvas width
            canvas_height: Logical canvas height
            zoom: Viewport zoom, scales the badge measurement range

        Returns:
            SnapResult with the final top-left corner, guides and badges.
            Off-canvas clamping is applied last.
        """
        s = self.settings
        result = SnapResult(active.left, active.top)
        if not s.magnetic_snapping and not s.show_guide_lines:
            return result

        others = [b for b in others if b.id != active.id or not active.id]
        threshold = s.threshold
        vertical, horizontal = self.candidates(others, canvas_width, canvas_height)

        best_x = _best_match(vertical, [active.left, active.center_x, active.right], threshold)
        best_y = _best_match(horizontal, [active.top, active.center_y, active.bottom], threshold)

        if best_x:
            if s.magnetic_snapping and best_x.zone == "lock":
                result.x += best_x.diff
                result.snapped_x = True
            if s.show_guide_lines:
                result.guides.append(Guide("x", best_x.target, best_x.zone, best_x.is_boundary))
        if best_y:
            if s.magnetic_snapping and best_y.zone == "lock":
                result.y += best_y.diff
                result.snapped_y = True
            if s.show_guide_lines:
                result.guides.append(Guide("y", best_y.target, best_y.zone, best_y.is_boundary))

        if s.magnetic_snapping and s.equal_spacing and s.snap_to_objects:
            self._apply_equal_spacing(active, others, result, threshold)

        if s.magnetic_snapping and s.grid_snapping and s.grid_size > 0:
            if not result.snapped_x:
                result.x = round(result.x / s.grid_size) * s.grid_size
            if not result.snapped_y:
                result.y = round(result.y / s.grid_size) * s.grid_size

        if s.distance_indicators:
            moved = active.moved_to(result.x, result.y)
            result.badges = self.distance_badges(moved, others, zoom)

        if s.prevent_off_canvas:
            result.x = max(0.0, min(result.x, canvas_width - active.width))
            result.y = max(0.0, min(result.y, canvas_height - active.height))

        if result.snapped_x or result.snapped_y:
            logger.debug(f"Snapped {active.id or 'box'} to ({result.x}, {result.y})")
        return result

    def _apply_equal_spacing(self, active: Box, others: list[Box], result: SnapResult, threshold: float):
        if not result.snapped_x:
            row = sorted((b for b in others if b.overlaps_y(active)), key=lambda b: b.left)
            hint = _equal_gap(active, row, threshold, "x")
            if hint:
                position, spacing = hint
                result.x = position
                result.snapped_x = True
                result.spacing_hints.append(spacing)
        if not result.snapped_y:
            column = sorted((b for b in others if b.overlaps_x(active)), key=lambda b: b.top)
            hint = _equal_gap(active, column, threshold, "y")
            if hint:
                position, spacing = hint
                result.y = position
                result.snapped_y = True
                result.spacing_hints.append(spacing)

    def distance_badges(self, active: Box, others: list[Box], zoom: float = 1.0) -> list[DistanceBadge]:
        """Gap badges to siblings that overlap on the other axis and sit within 500/zoom."""
        limit = BADGE_RANGE / max(zoom, 0.01)
        threshold = self.settings.threshold
        badges: list[DistanceBadge] = []

        for box in others:
            if active.overlaps_y(box):
                for gap, x in (
                    (box.left - active.right, active.right),
                    (active.left - box.right, box.right),
                ):
                    if 0 < gap < limit:
                        badges.append(DistanceBadge(
                            x + gap / 2, active.center_y, str(round(gap)), "x", get_zone(gap, threshold)
                        ))
            if active.overlaps_x(box):
                for gap, y in (
                    (box.top - active.bottom, active.bottom),
                    (active.top - box.bottom, box.bottom),
                ):
                    if 0 < gap < limit:
                        badges.append(DistanceBadge(
                            active.center_x, y + gap / 2, str(round(gap)), "y", get_zone(gap, threshold)
                        ))
        return badges


def _equal_gap(
    active: Box,
    line: list[Box],
    threshold: float,
    axis: str,
) -> tuple[float, SpacingHint] | None:
    """
    Position that makes the active box's gap to its nearest neighbor equal to
    a gap already present between two siblings on the same row/column.
    """
    def start(b: Box) -> float:
        return b.left if axis == "x" else b.top

    def end(b: Box) -> float:
        return b.right if axis == "x" else b.bottom

    def size(b: Box) -> float:
        return b.width if axis == "x" else b.height

    gaps: list[tuple[float, tuple[str, str]]] = []
    for a, b in zip(line, line[1:]):
        gap = start(b) - end(a)
        if gap > 0:
            gaps.append((gap, (a.id, b.id)))
    if not gaps:
        return None

    before = [b for b in line if end(b) <= start(active) + threshold and b.id != active.id]
    after = [b for b in line if start(b) >= end(active) - threshold and b.id != active.id]
    best: tuple[float, float, SpacingHint] | None = None

    if before:
        neighbor = max(before, key=end)
        current = start(active) - end(neighbor)
        for gap, pair in gaps:
            delta = abs(current - gap)
            if delta <= threshold and (best is None or delta < best[0]):
                best = (delta, end(neighbor) + gap, SpacingHint(axis, gap, pair, neighbor.id))
    if after:
        neighbor = min(after, key=start)
        current = start(neighbor) - end(active)
        for gap, pair in gaps:
            delta = abs(current - gap)
            if delta <= threshold and (best is None or delta < best[0]):
                best = (delta, start(neighbor) - gap - size(active), SpacingHint(axis, gap, pair, neighbor.id))

    if best is None:
        return None
    return best[1], best[2]
