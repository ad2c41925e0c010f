"""Campaign - a template (or several) paired with a table of rows."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .template import Template


class CampaignStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CampaignStatus.COMPLETED, CampaignStatus.FAILED)


class DistributionMode(Enum):
    SEQUENTIAL = "sequential"
    RANDOM = "random"
    EQUAL = "equal"
    CSV_COLUMN = "csv_column"


@dataclass
class Campaign:
    """One generation run. Rows are string-keyed dicts, in table order."""
    id: str
    user_id: str = ""
    name: str = ""
    templates: list[Template] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    field_mapping: dict[str, str] = field(default_factory=dict)
    distribution_mode: DistributionMode = DistributionMode.SEQUENTIAL
    status: CampaignStatus = CampaignStatus.PENDING
    csv_url: str | None = None

    @property
    def total(self) -> int:
        return len(self.rows)

    @property
    def template(self) -> Template | None:
        """First template, for single-template campaigns."""
        return self.templates[0] if self.templates else None

    @classmethod
    def from_record(cls, record: dict[str, Any], templates: list[Template]) -> "Campaign":
        """Build from a campaigns-table row plus its resolved templates."""
        mode = record.get("distribution_mode") or DistributionMode.SEQUENTIAL.value
        status = record.get("status") or CampaignStatus.PENDING.value
        return cls(
            id=str(record["id"]),
            user_id=str(record.get("user_id") or ""),
            name=record.get("name") or "",
            templates=templates,
            rows=list(record.get("csv_data") or []),
            field_mapping=dict(record.get("field_mapping") or {}),
            distribution_mode=DistributionMode(mode),
            status=CampaignStatus(status),
            csv_url=record.get("csv_url"),
        )
