# price_watch/analysis/trend_analyzer.py

"""Moving-average trend detection and buy-price prediction."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("price_watch.analysis")


class Trend(str, Enum):
    """Coarse direction of recent prices."""

    DECLINING = "declining"
    STABLE = "stable"
    RISING = "rising"


@dataclass(frozen=True)
class TrendPrediction:
    """Trend classification plus the predicted target price."""

    trend: Trend
    predicted_price: float


class TrendAnalyzer:
    """Classify a price series and predict a good price to buy at.

    A deliberately simple heuristic, not a forecast: compare a 3-point
    moving average against a 5-point one and derive the target from the
    series minimum and mean.  Pure and deterministic.
    """

    MIN_POINTS: int = 3
    SHORT_WINDOW: int = 3
    LONG_WINDOW: int = 5
    DECLINE_RATIO: float = 0.95
    RISE_RATIO: float = 1.05
    COLD_START_DISCOUNT: float = 0.9

    @staticmethod
    def moving_average(prices: Sequence[float], window: int) -> float:
        """Mean of the last *window* prices (all of them if fewer)."""
        if not prices:
            msg = "moving_average() needs at least one price"
            raise ValueError(msg)
        recent = prices[-window:]
        return sum(recent) / len(recent)

    @staticmethod
    def detect_trend(prices: Sequence[float]) -> Trend:
        """Classify *prices* (oldest first) as declining/stable/rising."""
        if len(prices) < TrendAnalyzer.MIN_POINTS:
            return Trend.STABLE

        short_ma = TrendAnalyzer.moving_average(
            prices, TrendAnalyzer.SHORT_WINDOW
        )
        long_ma = TrendAnalyzer.moving_average(
            prices, TrendAnalyzer.LONG_WINDOW
        )

        if short_ma < long_ma * TrendAnalyzer.DECLINE_RATIO:
            return Trend.DECLINING
        if short_ma > long_ma * TrendAnalyzer.RISE_RATIO:
            return Trend.RISING
        return Trend.STABLE

    @staticmethod
    def analyze(
        prices: Sequence[float],
        current_price: float,
    ) -> TrendPrediction:
        """Return the trend and predicted target price for a series.

        Series shorter than ``MIN_POINTS`` fall back to 10% below the
        current price.
        """
        if len(prices) < TrendAnalyzer.MIN_POINTS:
            return TrendPrediction(
                trend=Trend.STABLE,
                predicted_price=(
                    current_price * TrendAnalyzer.COLD_START_DISCOUNT
                ),
            )

        trend = TrendAnalyzer.detect_trend(prices)
        min_price = min(prices)
        avg_price = sum(prices) / len(prices)
        midpoint = (min_price + avg_price) / 2

        if trend is Trend.DECLINING:
            predicted = min(
                current_price * TrendAnalyzer.DECLINE_RATIO, midpoint
            )
        elif trend is Trend.RISING:
            predicted = min_price * TrendAnalyzer.RISE_RATIO
        else:
            predicted = midpoint

        logger.debug(
            "Trend %s over %d points (min=%.2f, avg=%.2f) -> %.2f",
            trend.value,
            len(prices),
            min_price,
            avg_price,
            predicted,
        )
        return TrendPrediction(trend=trend, predicted_price=predicted)

    @staticmethod
    def summarize(
        prices: Sequence[float],
    ) -> dict[str, float | int] | None:
        """Compute min / max / avg / latest / count for a series."""
        if not prices:
            return None
        return {
            "min": min(prices),
            "max": max(prices),
            "avg": round(sum(prices) / len(prices), 2),
            "latest": prices[-1],
            "count": len(prices),
        }
