"""Progress record kept in the cache service for a running campaign."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ProgressRecord:
    """Counters for one campaign run. Stored as a hash at progress:{campaign_id}."""
    campaign_id: str
    total: int = 0
    completed: int = 0
    failed: int = 0
    status: str = "processing"
    started_at: str | None = None
    completed_at: str | None = None
    next_index: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.completed + self.failed

    @property
    def percentage(self) -> int:
        if not self.total:
            return 0
        return round(self.processed / self.total * 100)

    @property
    def is_done(self) -> bool:
        return self.total > 0 and self.processed >= self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaignId": self.campaign_id,
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "status": self.status,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "nextIndex": self.next_index,
            "percentage": self.percentage,
            "errors": self.errors,
        }
