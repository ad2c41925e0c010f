from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RowStatus(Enum):
    PENDING = "pending"
    RENDERING = "rendering"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RowJob:
    index: int
    row: dict[str, Any]
    template_id: str = ""
    status: RowStatus = RowStatus.PENDING
    image_url: str | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


class RowTracker:
    def __init__(self):
        self.jobs: dict[int, RowJob] = {}  # row index -> RowJob

    def add_row(self, index: int, row: dict[str, Any], template_id: str = "") -> RowJob:
        """Add a pending row."""
        job = RowJob(index=index, row=row, template_id=template_id)
        self.jobs[index] = job
        return job

    def mark_rendering(self, index: int):
        self.jobs[index].status = RowStatus.RENDERING

    def mark_completed(self, index: int, image_url: str, warnings: list[str] | None = None):
        """Mark row as uploaded, store its URL."""
        job = self.jobs[index]
        job.status = RowStatus.COMPLETED
        job.image_url = image_url
        job.warnings = list(warnings or [])

    def mark_failed(self, index: int, error: str):
        job = self.jobs[index]
        job.status = RowStatus.FAILED
        job.error = error

    def get_pending(self) -> list[RowJob]:
        return [job for job in self.get_results() if job.status == RowStatus.PENDING]

    def get_completed(self) -> list[RowJob]:
        return [job for job in self.get_results() if job.status == RowStatus.COMPLETED]

    def get_results(self) -> list[RowJob]:
        """All rows in index order."""
        return [self.jobs[i] for i in sorted(self.jobs)]

    def errors(self) -> list[dict[str, Any]]:
        """Per-row errors, for a failed campaign's error list."""
        return [
            {"row": job.index, "error": job.error}
            for job in self.get_results()
            if job.status == RowStatus.FAILED
        ]

    def get_stats(self) -> dict[str, int]:
        """Get counts by status."""
        stats = {status.value: 0 for status in RowStatus}
        for job in self.jobs.values():
            stats[job.status.value] += 1
        return stats
