# price_watch/storage/datastore.py

"""Datastore interface consumed by the engine and the tracking service."""

from abc import ABC, abstractmethod
from datetime import datetime

from price_watch.models.alert import Alert
from price_watch.models.price_point import PricePoint
from price_watch.models.product import Product


class Datastore(ABC):
    """Persistent home of products, their price history and alerts.

    Every write is a single-row operation committed on its own.
    Implementations raise :class:`~price_watch.errors.DatastoreError`
    for storage failures and ``KeyError`` for unknown ids.
    """

    # ── Check-cycle operations ───────────────────────────

    @abstractmethod
    def list_active_products(self) -> list[Product]:
        """Return active products ordered by id."""

    @abstractmethod
    def append_price_point(
        self, product_id: int, price: float, when: datetime,
    ) -> PricePoint:
        """Append one observation to a product's history."""

    @abstractmethod
    def update_product(
        self,
        product_id: int,
        current_price: float,
        last_checked_at: datetime,
    ) -> None:
        """Record the latest price and check time of a product."""

    @abstractmethod
    def list_price_history(self, product_id: int) -> list[PricePoint]:
        """Return a product's history, oldest first."""

    @abstractmethod
    def list_active_alerts(self, product_id: int) -> list[Alert]:
        """Return a product's active alerts ordered by id."""

    @abstractmethod
    def update_alert(
        self,
        alert_id: int,
        predicted_price: float | None = None,
        notified_at: datetime | None = None,
    ) -> None:
        """Set whichever of the two engine-owned alert fields is given."""

    # ── Registration / read side ─────────────────────────

    @abstractmethod
    def add_product(
        self,
        asin: str,
        url: str,
        title: str,
        current_price: float | None,
        image_url: str | None,
        last_checked_at: datetime | None,
    ) -> Product:
        """Insert a new product."""

    @abstractmethod
    def add_alert(
        self,
        product_id: int,
        user_email: str,
        target_price: float | None,
        use_prediction: bool,
    ) -> Alert:
        """Insert a new alert for a product."""

    @abstractmethod
    def get_product(self, product_id: int) -> Product | None:
        """Return one product or ``None``."""

    @abstractmethod
    def get_product_by_asin(self, asin: str) -> Product | None:
        """Return the product with this catalog id or ``None``."""

    @abstractmethod
    def list_products(self) -> list[Product]:
        """Return every product, newest first."""

    @abstractmethod
    def list_alerts(self, product_id: int) -> list[Alert]:
        """Return every alert of a product, active or not."""

    @abstractmethod
    def set_product_active(self, product_id: int, active: bool) -> None:
        """Activate or deactivate a product."""

    @abstractmethod
    def set_alert_active(self, alert_id: int, active: bool) -> None:
        """Activate or deactivate an alert."""

    def close(self) -> None:
        """Release any held resources."""
