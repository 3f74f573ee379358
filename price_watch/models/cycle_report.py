# price_watch/models/cycle_report.py

"""Outcome records produced by one price-check cycle."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class CheckStatus(str, Enum):
    """Per-product / per-alert outcome of a check."""

    FAILED = "failed"
    ALERT_SENT = "alert_sent"
    ALERT_RECENTLY_NOTIFIED = "alert_recently_notified"
    CHECKED = "checked"
    CHECKED_NO_ALERTS = "checked_no_alerts"
    ERROR = "error"


@dataclass
class CheckResult:
    """One line of the cycle report."""

    product_id: int
    asin: str
    status: CheckStatus
    alert_id: int | None = None
    current_price: float | None = None
    target_price: float | None = None
    delivered: bool | None = None
    message: str = ""

    def to_dict(self) -> dict[str, object]:
        """Serialise to a plain dict for JSON output."""
        data: dict[str, object] = {
            "product_id": self.product_id,
            "asin": self.asin,
            "status": self.status.value,
        }
        if self.alert_id is not None:
            data["alert_id"] = self.alert_id
        if self.current_price is not None:
            data["current_price"] = self.current_price
        if self.target_price is not None:
            data["target_price"] = round(self.target_price, 2)
        if self.delivered is not None:
            data["delivered"] = self.delivered
        if self.message:
            data["message"] = self.message
        return data


@dataclass
class CycleReport:
    """Everything a caller can observe about a completed cycle."""

    started_at: datetime
    finished_at: datetime | None = None
    total_products: int = 0
    results: list[CheckResult] = field(
        default_factory=lambda: list[CheckResult]()
    )
    cancelled: bool = False
    error: str | None = None

    @property
    def processed_products(self) -> int:
        """Number of distinct products that produced a result."""
        return len({r.product_id for r in self.results})

    def count(self, status: CheckStatus) -> int:
        """Number of results carrying *status*."""
        return sum(1 for r in self.results if r.status == status)

    def to_dict(self) -> dict[str, object]:
        """Serialise to a plain dict for JSON output."""
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": (
                self.finished_at.isoformat()
                if self.finished_at
                else None
            ),
            "checked": self.total_products,
            "processed": self.processed_products,
            "cancelled": self.cancelled,
            "error": self.error,
            "results": [r.to_dict() for r in self.results],
        }
