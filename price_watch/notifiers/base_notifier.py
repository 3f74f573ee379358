# price_watch/notifiers/base_notifier.py

"""Notifier capability shared by every delivery channel."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from price_watch.models.alert import Alert
from price_watch.models.product import Product


@dataclass
class NotificationResult:
    """Result of a confirmed notification."""

    destination: str
    message_id: str | None = None


class Notifier(ABC):
    """Deliver a price alert to its subscriber."""

    @abstractmethod
    def notify(
        self,
        destination: str,
        product: Product,
        alert: Alert,
        current_price: float,
    ) -> NotificationResult:
        """Send one alert.

        Raises:
            DeliveryFailure: When delivery cannot be confirmed.
        """
        ...
