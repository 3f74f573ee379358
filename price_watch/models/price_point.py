# price_watch/models/price_point.py

"""Temporal price observation model for price history tracking."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PricePoint:
    """A single price observation for a product at a point in time."""

    product_id: int
    price: float
    checked_at: datetime
    id: int | None = None
