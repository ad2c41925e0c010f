"""Per-row render outcome."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class RenderResult:
    """Either an image (success) or an error, always with its row index."""
    row_index: int
    row: dict[str, Any] = field(default_factory=dict)
    image: bytes | None = None
    image_url: str | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None
