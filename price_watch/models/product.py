# price_watch/models/product.py

"""Tracked product model."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Product:
    """A product page being tracked for price changes."""

    id: int
    asin: str
    url: str
    title: str
    current_price: float | None = None
    image_url: str | None = None
    is_active: bool = True
    last_checked_at: datetime | None = None
    created_at: datetime | None = None
