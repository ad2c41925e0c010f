"""Template assignment for multi-template campaigns."""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any

from ..errors import ConfigurationError
from ..models import DistributionMode, Template

logger = logging.getLogger(__name__)

TEMPLATE_COLUMNS = ("template", "Template", "TEMPLATE", "template_id", "templateId")

_LCG_MULTIPLIER = 1664525
_LCG_INCREMENT = 1013904223
_LCG_MODULUS = 2 ** 32


class SeededRandom:
    """Linear congruential generator, reproducible for a given seed."""

    def __init__(self, seed: int):
        self.state = int(seed) % _LCG_MODULUS

    def __call__(self) -> float:
        self.state = (self.state * _LCG_MULTIPLIER + _LCG_INCREMENT) % _LCG_MODULUS
        return self.state / _LCG_MODULUS


@dataclass
class Assignment:
    template: Template
    template_index: int
    warning: str | None = None


class TemplateDistributor:
    """
    Picks the template for each row.

    sequential: row i -> templates[i % n]
    random:     seeded LCG draw per call
    equal:      consecutive chunks of ceil(total / n) rows
    csv_column: a "template" column matched against short_id, then name,
                then a partial name; falls back to the first template
    """

    def __init__(
        self,
        templates: list[Template],
        mode: DistributionMode = DistributionMode.SEQUENTIAL,
        total_rows: int = 0,
        seed: int | None = None,
    ):
        if not templates:
            raise ConfigurationError("At least one template is required for distribution")
        self.templates = templates
        self.mode = mode
        self.total_rows = total_rows
        self.random = SeededRandom(seed if seed is not None else int(time.time() * 1000))

    def assign(self, row_index: int, row: dict[str, Any] | None = None) -> Assignment:
        if len(self.templates) == 1:
            return Assignment(self.templates[0], 0)

        if self.mode is DistributionMode.RANDOM:
            return self._pick(math.floor(self.random() * len(self.templates)))
        if self.mode is DistributionMode.EQUAL:
            chunk = max(1, math.ceil(self.total_rows / len(self.templates)))
            return self._pick(min(row_index // chunk, len(self.templates) - 1))
        if self.mode is DistributionMode.CSV_COLUMN:
            return self._from_column(row or {})
        return self._pick(row_index % len(self.templates))

    def preview(self, sample_size: int = 10, seed: int = 12345) -> list[dict[str, Any]]:
        """First rows' assignments; random mode uses a fixed seed and leaves the live sequence alone."""
        distributor = TemplateDistributor(self.templates, self.mode, self.total_rows, seed)
        preview = []
        for i in range(min(sample_size, self.total_rows)):
            assignment = distributor.assign(i)
            preview.append({
                "row_index": i,
                "template_name": assignment.template.name,
                "template_index": assignment.template_index,
            })
        return preview

    def expected_counts(self) -> dict[str, int]:
        """Expected rows per template id; -1 where the data decides (csv_column)."""
        n = len(self.templates)
        counts: dict[str, int] = {}
        if self.mode is DistributionMode.SEQUENTIAL:
            base, remainder = divmod(self.total_rows, n)
            for i, template in enumerate(self.templates):
                counts[template.id] = base + (1 if i < remainder else 0)
        elif self.mode is DistributionMode.RANDOM:
            for template in self.templates:
                counts[template.id] = round(self.total_rows / n)
        elif self.mode is DistributionMode.EQUAL:
            chunk = math.ceil(self.total_rows / n)
            remaining = self.total_rows
            for i, template in enumerate(self.templates):
                counts[template.id] = remaining if i == n - 1 else min(chunk, remaining)
                remaining -= counts[template.id]
        else:
            for template in self.templates:
                counts[template.id] = -1
        return counts

    def _pick(self, index: int) -> Assignment:
        return Assignment(self.templates[index], index)

    def _from_column(self, row: dict[str, Any]) -> Assignment:
        value = next((row[k] for k in TEMPLATE_COLUMNS if row.get(k)), None)
        if not value:
            return Assignment(self.templates[0], 0, 'No "template" column in row, using first template')

        search = str(value).strip().lower()
        for matches in (
            lambda t: (t.short_id or "").lower() == search,
            lambda t: t.name.lower() == search,
            lambda t: search in t.name.lower(),
        ):
            for index, template in enumerate(self.templates):
                if matches(template):
                    return Assignment(template, index)

        warning = f'Template "{value}" not found, using first template'
        logger.warning(warning)
        return Assignment(self.templates[0], 0, warning)
