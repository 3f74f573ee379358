# price_watch/services/tracking_service.py

"""Product registration, alert subscription and read-side queries."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from price_watch.analysis.trend_analyzer import TrendAnalyzer, TrendPrediction
from price_watch.errors import InvalidProductURL, ProductUnavailable
from price_watch.fetchers.base_fetcher import PriceFetcher
from price_watch.models.alert import Alert
from price_watch.models.price_point import PricePoint
from price_watch.models.product import Product
from price_watch.storage.datastore import Datastore

logger = logging.getLogger("price_watch.tracking")


@dataclass
class RegistrationResult:
    """Outcome of :meth:`TrackingService.add_product`."""

    product: Product
    created: bool
    alert: Alert | None = None

    @property
    def message(self) -> str:
        """Human-readable summary of what happened."""
        if self.created:
            return "Product added successfully"
        if self.alert is not None:
            return "Product already tracked. Alert added."
        return "Product already tracked."


@dataclass
class ProductWithAlerts:
    """A product together with all of its alerts."""

    product: Product
    alerts: list[Alert] = field(default_factory=lambda: list[Alert]())


@dataclass
class ProductDetailsView:
    """A product with its full history, alerts and trend summary."""

    product: Product
    price_history: list[PricePoint]
    alerts: list[Alert]
    prediction: TrendPrediction | None
    summary: dict[str, float | int] | None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackingService:
    """Register products and alerts; read tracked data back.

    Only :meth:`add_product` touches the marketplace, so read-only
    callers can leave *fetcher* out.
    """

    def __init__(
        self,
        datastore: Datastore,
        fetcher: PriceFetcher | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.datastore = datastore
        self.fetcher = fetcher
        self._clock = clock

    def add_product(
        self,
        url: str,
        user_email: str | None = None,
        target_price: float | None = None,
    ) -> RegistrationResult:
        """Start tracking the product at *url*.

        An already-tracked product (same catalog id) is not scraped
        again; only the alert is added.  Alerts without an explicit
        target follow the predicted price.

        Raises:
            InvalidProductURL: No catalog id in *url*.
            ProductUnavailable: The page has no product title.
            FetchFailure: The page could not be fetched at all.
        """
        url = url.strip()
        if not url:
            raise InvalidProductURL("Product URL is required")
        if target_price is not None and target_price <= 0:
            raise ValueError("Target price must be positive")

        if self.fetcher is None:
            raise ValueError("Registering a product needs a fetcher")

        asin = self.fetcher.extract_catalog_id(url)
        if not asin:
            raise InvalidProductURL(
                "Invalid Amazon URL. Could not extract ASIN."
            )

        existing = self.datastore.get_product_by_asin(asin)
        if existing is not None:
            alert = self._subscribe(existing, user_email, target_price)
            return RegistrationResult(
                product=existing, created=False, alert=alert,
            )

        details = self.fetcher.fetch_details(url)
        if not details.title:
            raise ProductUnavailable(
                "Could not extract product details. The product may "
                "be unavailable or URL is invalid."
            )

        now = self._clock()
        product = self.datastore.add_product(
            asin=asin,
            url=url,
            title=details.title,
            current_price=details.price,
            image_url=details.image_url,
            last_checked_at=now,
        )
        if details.price is not None:
            self.datastore.append_price_point(product.id, details.price, now)
        else:
            logger.warning(
                "Registered %s without a price; the next cycle will retry",
                asin,
            )

        alert = self._subscribe(product, user_email, target_price)
        return RegistrationResult(product=product, created=True, alert=alert)

    def _subscribe(
        self,
        product: Product,
        user_email: str | None,
        target_price: float | None,
    ) -> Alert | None:
        if not user_email:
            return None
        return self.datastore.add_alert(
            product_id=product.id,
            user_email=user_email.strip(),
            target_price=target_price,
            use_prediction=target_price is None,
        )

    def list_products(self) -> list[ProductWithAlerts]:
        """Every product (newest first) with its alerts."""
        return [
            ProductWithAlerts(
                product=p, alerts=self.datastore.list_alerts(p.id),
            )
            for p in self.datastore.list_products()
        ]

    def get_product_details(self, product_id: int) -> ProductDetailsView:
        """Product, ascending history, alerts and trend summary.

        Raises:
            KeyError: Unknown product id.
        """
        product = self.datastore.get_product(product_id)
        if product is None:
            raise KeyError(product_id)

        history = self.datastore.list_price_history(product_id)
        prices = [p.price for p in history]
        prediction = (
            TrendAnalyzer.analyze(prices, prices[-1]) if prices else None
        )
        return ProductDetailsView(
            product=product,
            price_history=history,
            alerts=self.datastore.list_alerts(product_id),
            prediction=prediction,
            summary=TrendAnalyzer.summarize(prices),
        )

    def deactivate_product(self, product_id: int) -> None:
        """Stop checking a product; its history is kept."""
        self.datastore.set_product_active(product_id, False)
        logger.info("Deactivated product %d", product_id)

    def deactivate_alert(self, alert_id: int) -> None:
        """Stop notifying through one alert."""
        self.datastore.set_alert_active(alert_id, False)
        logger.info("Deactivated alert %d", alert_id)
