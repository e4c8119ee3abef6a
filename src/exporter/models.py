"""
Data Model for the Row Count Exporter
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List


@dataclass(frozen=True, order=True)
class TableRef:
    """Schema-qualified table identifier."""

    schema: str
    table: str

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.table}"

    def __str__(self) -> str:
        return self.qualified_name


@dataclass(frozen=True)
class TableCount:
    """Row count observed for one table during a scrape cycle."""

    ref: TableRef
    count: float
    observed_at: datetime


@dataclass
class MetricEntry:
    """
    A row count series tracked by the metric registry.

    Attributes:
        ref: Table the series belongs to
        count: Currently published value
        last_updated: When the value was last written
    """

    ref: TableRef
    count: float
    last_updated: datetime


@dataclass
class ScrapeResult:
    """
    Outcome of one scrape cycle.

    Attributes:
        cycle_id: Correlation ID of the cycle
        success: False when table discovery failed
        published: Row counts published after the cycle
        errors: Number of errors seen in the cycle, by error code
        duration_seconds: Wall-clock duration of the cycle
    """

    cycle_id: str
    success: bool
    published: List[TableCount] = field(default_factory=list)
    errors: Dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def as_dict(self) -> Dict:
        """Return a JSON-serializable representation."""
        return {
            "cycle_id": self.cycle_id,
            "success": self.success,
            "duration_seconds": round(self.duration_seconds, 3),
            "errors": dict(self.errors),
            "tables": [
                {
                    "schema": c.ref.schema,
                    "table": c.ref.table,
                    "count": c.count,
                    "observed_at": c.observed_at.isoformat(),
                }
                for c in self.published
            ],
        }
