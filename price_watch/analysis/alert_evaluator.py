# price_watch/analysis/alert_evaluator.py

"""Alert trigger and cooldown decisions."""

from datetime import datetime, timedelta
from enum import Enum

from price_watch.config.settings import Settings
from price_watch.models.alert import Alert


class AlertDecision(str, Enum):
    """What to do with an alert after a price check."""

    FIRE = "fire"
    SUPPRESS_RECENT = "suppress_recent"
    NOT_TRIGGERED = "not_triggered"


class AlertEvaluator:
    """Decide whether an alert should notify its subscriber.

    An alert triggers when the current price is at or below its
    effective target.  A triggered alert is suppressed while the last
    notification is within the cooldown window; the boundary itself
    still counts as inside the window.
    """

    def __init__(self, cooldown: timedelta | None = None) -> None:
        self.cooldown = cooldown or timedelta(
            hours=Settings.NOTIFY_COOLDOWN_HOURS
        )

    @staticmethod
    def effective_target(alert: Alert, predicted_price: float) -> float:
        """Pick the threshold that governs *alert*.

        Explicit target first.  Prediction-mode alerts use the fresh
        *predicted_price*; other alerts use their cached prediction and
        fall back to the fresh one when nothing is cached.
        """
        if alert.target_price is not None:
            return alert.target_price
        if alert.use_prediction:
            return predicted_price
        # Cached prediction outranks the fresh one unless the alert follows it
        if alert.predicted_price is not None:
            return alert.predicted_price
        return predicted_price

    def evaluate(
        self,
        current_price: float,
        target_price: float,
        notified_at: datetime | None,
        now: datetime,
    ) -> AlertDecision:
        """Return fire / suppress_recent / not_triggered."""
        if current_price > target_price:
            return AlertDecision.NOT_TRIGGERED
        if notified_at is not None and now - notified_at <= self.cooldown:
            return AlertDecision.SUPPRESS_RECENT
        return AlertDecision.FIRE
