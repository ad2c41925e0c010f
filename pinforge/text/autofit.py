"""Auto-fit: largest integer font size whose wrapped text fits a box."""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Hashable

from .layout import TextMetrics

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 30

Measure = Callable[[str, float, float], TextMetrics]


@dataclass(frozen=True)
class FitConstraints:
    min_font_size: int = 8
    max_font_size: int = 48
    padding: float = 15
    max_lines: int | None = None
    safety_margin: float = 5


def _search(
    text: str,
    low: int,
    high: int,
    max_width: float,
    max_height: float,
    measure: Measure,
    max_lines: int | None,
) -> int | None:
    """Binary search for the largest fitting size, or None if nothing fits."""
    best = None
    for _ in range(MAX_ITERATIONS):
        if low > high:
            break
        mid = (low + high) // 2
        metrics = measure(text, mid, max_width)
        fits = metrics.height <= max_height
        if max_lines is not None:
            fits = fits and metrics.line_count <= max_lines
        if fits:
            best = mid
            low = mid + 1
        else:
            high = mid - 1
    return best


def best_fit_font_size(
    text: str,
    box_width: float,
    box_height: float,
    constraints: FitConstraints,
    measure: Measure,
) -> int:
    """
    Find the largest font size that fits text inside a box.

    Args:
        text: Resolved display text
        box_width: Element width
        box_height: Element height
        constraints: min/max size, padding, optional soft max_lines
        measure: (text, font_size, max_width) -> TextMetrics

    Returns:
        Integer size in [min_font_size, max_font_size]. Falls back to
        min_font_size when nothing fits.
    """
    min_size = int(constraints.min_font_size)
    max_size = max(min_size, int(constraints.max_font_size))
    padded_width = box_width - 2 * constraints.padding
    padded_height = box_height - 2 * constraints.padding

    if not text or not text.strip() or padded_width <= 0 or padded_height <= 0:
        return min_size

    safe_height = padded_height - constraints.safety_margin

    # Pass 1: height and preferred line count
    best = _search(text, min_size, max_size, padded_width, safe_height, measure, constraints.max_lines)

    # Pass 2: max_lines is soft, retry on height alone
    if best is None and constraints.max_lines is not None:
        logger.debug(f"No size fits {constraints.max_lines} lines, retrying on height only")
        best = _search(text, min_size, max_size, padded_width, safe_height, measure, None)

    if best is None:
        return min_size
    return max(min_size, min(max_size, best))


class FitCache:
    """Bounded LRU of auto-fit results."""

    def __init__(self, max_entries: int = 500):
        self.max_entries = max_entries
        self._entries: OrderedDict[Hashable, int] = OrderedDict()
        self._lock = threading.Lock()

    def get_or_compute(
        self,
        text: str,
        box_width: float,
        box_height: float,
        constraints: FitConstraints,
        measure: Measure,
        font_key: Hashable = None,
    ) -> int:
        key = (text, box_width, box_height, constraints, font_key)
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                return self._entries[key]

        size = best_fit_font_size(text, box_width, box_height, constraints, measure)
        with self._lock:
            self._entries[key] = size
            if len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return size

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
