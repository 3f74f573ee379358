# price_watch/services/price_check_engine.py

"""Orchestrates price-check cycles across all tracked products."""

import asyncio
import importlib
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from price_watch.analysis.alert_evaluator import AlertDecision, AlertEvaluator
from price_watch.analysis.trend_analyzer import TrendAnalyzer, TrendPrediction
from price_watch.config.settings import Settings
from price_watch.errors import (
    CycleInProgressError,
    DatastoreError,
    DeliveryFailure,
    FetchFailure,
)
from price_watch.fetchers.base_fetcher import PriceFetcher
from price_watch.models.alert import Alert
from price_watch.models.cycle_report import CheckResult, CheckStatus, CycleReport
from price_watch.models.product import Product
from price_watch.notifiers.base_notifier import Notifier
from price_watch.storage.datastore import Datastore

logger = logging.getLogger("price_watch.engine")


def load_fetcher_class(dotted_path: str) -> type[Any]:
    """Dynamically import a fetcher class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


def create_fetcher(fetcher_id: str | None = None) -> PriceFetcher:
    """Instantiate a registered fetcher by id (default: Amazon)."""
    wanted = fetcher_id or Settings.DEFAULT_FETCHER
    for entry in Settings.AVAILABLE_FETCHERS:
        if entry["id"] == wanted:
            fetcher: PriceFetcher = load_fetcher_class(entry["fetcher"])()
            return fetcher
    valid = ", ".join(e["id"] for e in Settings.AVAILABLE_FETCHERS)
    msg = f"Unknown fetcher '{wanted}' (available: {valid})"
    raise ValueError(msg)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriceCheckEngine:
    """Runs check cycles: fetch, record, predict, evaluate, notify.

    Products are processed strictly one after another with a pause in
    between.  Each product (and each alert) is isolated: a failure is
    recorded in the report and the cycle moves on.  Only a failure to
    load the product list ends a cycle early.

    Fetcher, notifier and datastore calls are blocking and run in worker
    threads so the event loop stays free to react to cancellation.
    """

    def __init__(
        self,
        datastore: Datastore,
        fetcher: PriceFetcher,
        notifier: Notifier,
        item_delay: float | None = None,
        fetch_timeout: float | None = None,
        evaluator: AlertEvaluator | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.datastore = datastore
        self.fetcher = fetcher
        self.notifier = notifier
        self.item_delay = (
            Settings.CHECK_ITEM_DELAY if item_delay is None else item_delay
        )
        self.fetch_timeout = (
            Settings.REQUEST_TIMEOUT
            if fetch_timeout is None
            else fetch_timeout
        )
        self.evaluator = evaluator or AlertEvaluator()
        self._clock = clock
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether a cycle is in progress on this engine."""
        return self._running

    # ── Cycle entry point ────────────────────────────────

    async def run_check_cycle(
        self,
        cancel_event: asyncio.Event | None = None,
    ) -> CycleReport:
        """Check every active product once and report the outcomes.

        Setting *cancel_event* stops the cycle before the next product;
        products already processed keep their updates.

        Raises:
            CycleInProgressError: If this engine is already running.
        """
        if self._running:
            raise CycleInProgressError("A check cycle is already running")
        self._running = True
        try:
            return await self._run(cancel_event)
        finally:
            self._running = False

    async def _run(
        self, cancel_event: asyncio.Event | None,
    ) -> CycleReport:
        report = CycleReport(started_at=self._clock())

        try:
            products = await asyncio.to_thread(
                self.datastore.list_active_products,
            )
        except DatastoreError as exc:
            logger.error("Could not load active products: %s", exc)
            report.error = str(exc)
            report.finished_at = self._clock()
            return report

        report.total_products = len(products)
        if not products:
            logger.info("No active products to check")

        for index, product in enumerate(products):
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                logger.warning(
                    "Cycle cancelled after %d of %d products",
                    index,
                    len(products),
                )
                break

            report.results.extend(await self.check_product(product))

            if index < len(products) - 1:
                await self._pause(cancel_event)

        report.finished_at = self._clock()
        logger.info(
            "Price check completed: %d products, %d alerts sent, "
            "%d failed, %d errors",
            report.processed_products,
            report.count(CheckStatus.ALERT_SENT),
            report.count(CheckStatus.FAILED),
            report.count(CheckStatus.ERROR),
        )
        return report

    async def _pause(self, cancel_event: asyncio.Event | None) -> None:
        """Wait out the inter-item delay, waking early on cancel."""
        if self.item_delay <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(self.item_delay)
            return
        try:
            await asyncio.wait_for(
                cancel_event.wait(), timeout=self.item_delay,
            )
        except asyncio.TimeoutError:
            pass

    # ── Per-product pipeline ─────────────────────────────

    async def check_product(self, product: Product) -> list[CheckResult]:
        """Run the full pipeline for one product; never raises."""
        try:
            current_price = await asyncio.to_thread(
                self.fetcher.fetch, product.url, self.fetch_timeout,
            )
        except FetchFailure as exc:
            logger.warning(
                "Fetch failed for %s: %s", product.asin, exc.reason,
            )
            return [
                CheckResult(
                    product_id=product.id,
                    asin=product.asin,
                    status=CheckStatus.FAILED,
                    message=exc.reason,
                )
            ]
        except Exception as exc:
            return [self._error_result(product, exc)]

        try:
            return await self._record_and_evaluate(product, current_price)
        except Exception as exc:
            return [self._error_result(product, exc)]

    async def _record_and_evaluate(
        self, product: Product, current_price: float,
    ) -> list[CheckResult]:
        now = self._clock()
        await asyncio.to_thread(
            self.datastore.append_price_point, product.id, current_price, now,
        )
        await asyncio.to_thread(
            self.datastore.update_product, product.id, current_price, now,
        )

        history = await asyncio.to_thread(
            self.datastore.list_price_history, product.id,
        )
        prediction = TrendAnalyzer.analyze(
            [p.price for p in history], current_price,
        )
        logger.info(
            "%s at %.2f (%s, predicted %.2f)",
            product.asin,
            current_price,
            prediction.trend.value,
            prediction.predicted_price,
        )

        alerts = await asyncio.to_thread(
            self.datastore.list_active_alerts, product.id,
        )
        if not alerts:
            return [
                CheckResult(
                    product_id=product.id,
                    asin=product.asin,
                    status=CheckStatus.CHECKED_NO_ALERTS,
                    current_price=current_price,
                )
            ]

        results: list[CheckResult] = []
        for alert in alerts:
            try:
                results.append(
                    await self._process_alert(
                        product, alert, current_price, prediction, now,
                    )
                )
            except (DatastoreError, KeyError) as exc:
                logger.error(
                    "Alert %d of %s failed: %r",
                    alert.id,
                    product.asin,
                    exc,
                )
                results.append(
                    self._alert_error_result(
                        product,
                        alert,
                        current_price,
                        (
                            f"Alert {alert.id} no longer exists"
                            if isinstance(exc, KeyError)
                            else str(exc)
                        ),
                    )
                )
            except Exception as exc:
                # Earlier alerts may already be delivered and stamped
                logger.error(
                    "Unexpected error on alert %d of %s: %s",
                    alert.id,
                    product.asin,
                    exc,
                    exc_info=True,
                )
                results.append(
                    self._alert_error_result(
                        product,
                        alert,
                        current_price,
                        str(exc) or type(exc).__name__,
                    )
                )
        return results

    @staticmethod
    def _alert_error_result(
        product: Product,
        alert: Alert,
        current_price: float,
        message: str,
    ) -> CheckResult:
        return CheckResult(
            product_id=product.id,
            asin=product.asin,
            status=CheckStatus.ERROR,
            alert_id=alert.id,
            current_price=current_price,
            message=message,
        )

    async def _process_alert(
        self,
        product: Product,
        alert: Alert,
        current_price: float,
        prediction: TrendPrediction,
        now: datetime,
    ) -> CheckResult:
        if alert.use_prediction:
            await asyncio.to_thread(
                self.datastore.update_alert,
                alert.id,
                predicted_price=prediction.predicted_price,
            )
            alert.predicted_price = prediction.predicted_price

        target = AlertEvaluator.effective_target(
            alert, prediction.predicted_price,
        )
        decision = self.evaluator.evaluate(
            current_price, target, alert.notified_at, now,
        )
        result = CheckResult(
            product_id=product.id,
            asin=product.asin,
            status=CheckStatus.CHECKED,
            alert_id=alert.id,
            current_price=current_price,
            target_price=target,
        )

        if decision is AlertDecision.SUPPRESS_RECENT:
            result.status = CheckStatus.ALERT_RECENTLY_NOTIFIED
        elif decision is AlertDecision.FIRE:
            result.delivered = await self._deliver(
                product, alert, current_price,
            )
            # Stamped on the decision, not on delivery
            await asyncio.to_thread(
                self.datastore.update_alert, alert.id, notified_at=now,
            )
            alert.notified_at = now
            result.status = CheckStatus.ALERT_SENT
        return result

    async def _deliver(
        self, product: Product, alert: Alert, current_price: float,
    ) -> bool:
        """Best-effort notification; returns whether it was confirmed."""
        try:
            await asyncio.to_thread(
                self.notifier.notify,
                alert.user_email,
                product,
                alert,
                current_price,
            )
        except DeliveryFailure as exc:
            logger.warning(
                "Notification for %s to %s not delivered: %s",
                product.asin,
                alert.user_email,
                exc.reason,
            )
            return False
        except Exception as exc:
            logger.error(
                "Notifier crashed for %s: %s",
                product.asin,
                exc,
                exc_info=True,
            )
            return False
        return True

    @staticmethod
    def _error_result(product: Product, exc: Exception) -> CheckResult:
        logger.error(
            "Error checking product %s: %s",
            product.asin,
            exc,
            exc_info=True,
        )
        return CheckResult(
            product_id=product.id,
            asin=product.asin,
            status=CheckStatus.ERROR,
            message=str(exc) or type(exc).__name__,
        )
