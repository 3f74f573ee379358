# price_watch/models/alert.py

"""Price alert subscription model."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Alert:
    """A subscriber's request to be notified when a price drops.

    ``target_price`` wins when set; otherwise the alert follows the
    predicted price cached in ``predicted_price``.
    """

    id: int
    product_id: int
    user_email: str
    target_price: float | None = None
    use_prediction: bool = False
    predicted_price: float | None = None
    is_active: bool = True
    notified_at: datetime | None = None
    created_at: datetime | None = None
