# tests/test_base_fetcher.py

"""Tests for BaseFetcher resilience features and price extraction."""

import time
import unittest
from typing import Any
from unittest.mock import MagicMock, patch

from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests

from price_watch.errors import FetchFailure
from price_watch.fetchers.base_fetcher import BaseFetcher, ProductDetails


class _StubFetcher(BaseFetcher):
    """Concrete fetcher exposing protected members for testing."""

    parse_result: float | None = 42.0

    def _get_homepage(self) -> str:
        return "https://example.com"

    @staticmethod
    def extract_catalog_id(url: str) -> str | None:
        return None

    def _parse_price(self, soup: BeautifulSoup) -> float | None:
        return self.parse_result

    def _parse_details(self, soup: BeautifulSoup) -> ProductDetails:
        title_el = soup.select_one("h1")
        return ProductDetails(
            title=title_el.get_text(strip=True) if title_el else None,
            price=self.parse_result,
        )

    # --- Public accessors for protected state ---

    @property
    def circuit_open(self) -> bool:
        """Expose circuit breaker flag."""
        return self._circuit_open

    @circuit_open.setter
    def circuit_open(self, value: bool) -> None:
        self._circuit_open = value

    @property
    def circuit_opened_at(self) -> float:
        """Expose circuit breaker timestamp."""
        return self._circuit_opened_at

    @circuit_opened_at.setter
    def circuit_opened_at(self, value: float) -> None:
        self._circuit_opened_at = value

    @property
    def consecutive_failures(self) -> int:
        """Expose failure counter."""
        return self._consecutive_failures

    @consecutive_failures.setter
    def consecutive_failures(self, value: int) -> None:
        self._consecutive_failures = value

    @property
    def current_delay(self) -> float:
        """Expose adaptive delay."""
        return self._current_delay

    @current_delay.setter
    def current_delay(self, value: float) -> None:
        self._current_delay = value

    def fetch_get(
        self, url: str, headers: dict[str, str],
    ) -> curl_requests.Response | None:
        """Public wrapper for _fetch_get."""
        return self._fetch_get(url, headers, 5.0)

    def get_page(self, url: str) -> BeautifulSoup | None:
        """Public wrapper for _get_page."""
        return self._get_page(url)

    def escalate_delay(self) -> None:
        """Public wrapper for _escalate_delay."""
        self._escalate_delay()


def _response(status: int, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    return resp


_PAGE = "<html><body><h1>Kettle</h1>" + ("<p>filler</p>" * 500) + "</body></html>"


@patch("price_watch.fetchers.base_fetcher.curl_requests.Session")
class TestCircuitBreaker(unittest.TestCase):
    """Circuit breaker opens after consecutive failures."""

    def test_circuit_opens_after_threshold(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """After CIRCUIT_BREAKER_THRESHOLD failures, returns None."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _response(500)

        fetcher = _StubFetcher("test")
        threshold = fetcher.settings.CIRCUIT_BREAKER_THRESHOLD

        for _ in range(threshold):
            self.assertIsNone(fetcher.fetch_get("https://example.com", {}))

        self.assertTrue(fetcher.circuit_open)

        # Subsequent calls short-circuit immediately
        mock_session.get.reset_mock()
        self.assertIsNone(fetcher.fetch_get("https://example.com", {}))
        mock_session.get.assert_not_called()

    def test_success_resets_counter(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """A successful fetch resets the failure counter."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        retries = 3
        side_effects: list[Any] = (
            [_response(500)] * retries + [_response(200, _PAGE)]
        )
        mock_session.get.side_effect = side_effects

        fetcher = _StubFetcher("test")
        fetcher.fetch_get("https://example.com", {})
        self.assertEqual(fetcher.consecutive_failures, 1)

        self.assertIsNotNone(fetcher.fetch_get("https://example.com", {}))
        self.assertEqual(fetcher.consecutive_failures, 0)

    def test_404_is_not_retried(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """A missing page fails on the first attempt."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _response(404)

        fetcher = _StubFetcher("test")
        self.assertIsNone(fetcher.fetch_get("https://example.com", {}))
        self.assertEqual(mock_session.get.call_count, 1)

    def test_circuit_resets_after_cooldown(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """After the cooldown a trial request goes through and resets on success."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _response(200, _PAGE)

        fetcher = _StubFetcher("test")
        fetcher.circuit_open = True
        cooldown = fetcher.settings.CIRCUIT_BREAKER_COOLDOWN
        fetcher.circuit_opened_at = time.time() - cooldown - 1

        self.assertIsNotNone(fetcher.fetch_get("https://example.com", {}))
        self.assertFalse(fetcher.circuit_open)

    def test_circuit_affects_get_page(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """An open circuit skips _get_page entirely."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session

        fetcher = _StubFetcher("test")
        fetcher.circuit_open = True
        fetcher.circuit_opened_at = time.time()

        self.assertIsNone(fetcher.get_page("https://example.com"))
        mock_session.get.assert_not_called()


@patch("price_watch.fetchers.base_fetcher.curl_requests.Session")
class TestAdaptiveDelay(unittest.TestCase):
    """Rate-limiting detection escalates the delay."""

    def test_429_escalates_delay(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """A 429 response doubles the current delay."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _response(429)

        fetcher = _StubFetcher("test")
        original = fetcher.current_delay
        fetcher.fetch_get("https://example.com", {})
        self.assertGreater(fetcher.current_delay, original)

    def test_delay_capped_at_max(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Delay never exceeds REQUEST_DELAY * MAX_DELAY_MULTIPLIER."""
        fetcher = _StubFetcher("test")
        max_delay = (
            fetcher.settings.REQUEST_DELAY
            * fetcher.settings.MAX_DELAY_MULTIPLIER
        )
        for _ in range(20):
            fetcher.escalate_delay()
        self.assertLessEqual(fetcher.current_delay, max_delay)

    def test_captcha_page_triggers_retry(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """A short page with CAPTCHA wording fails validation."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.side_effect = [
            _response(200, "<html>Enter the characters you see below</html>"),
            _response(200, _PAGE),
        ]

        fetcher = _StubFetcher("test")
        self.assertIsNotNone(fetcher.fetch_get("https://example.com", {}))
        self.assertEqual(mock_session.get.call_count, 2)


class TestExtractPrice(unittest.TestCase):
    """BaseFetcher.extract_price parsing."""

    def test_formats(self) -> None:
        """Currency symbols and thousands separators are ignored."""
        cases = {
            "$1,299.00": 1299.0,
            "79.99": 79.99,
            "  $5 ": 5.0,
            "USD 12.50 each": 12.5,
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertEqual(BaseFetcher.extract_price(text), expected)

    def test_no_price(self) -> None:
        """Empty, missing and zero prices yield None."""
        for text in (None, "", "Currently unavailable", "$0.00"):
            with self.subTest(text=text):
                self.assertIsNone(BaseFetcher.extract_price(text))


@patch("price_watch.fetchers.base_fetcher.cloudscraper.create_scraper")
@patch("price_watch.fetchers.base_fetcher.curl_requests.Session")
class TestFetch(unittest.TestCase):
    """fetch() maps every non-price outcome to FetchFailure."""

    def test_returns_parsed_price(
        self, mock_session_cls: MagicMock, mock_cs: MagicMock,
    ) -> None:
        """A good page yields the parsed price."""
        mock_session_cls.return_value.get.return_value = _response(200, _PAGE)
        fetcher = _StubFetcher("test")
        self.assertEqual(fetcher.fetch("https://example.com/item"), 42.0)
        mock_cs.assert_not_called()

    def test_unreachable_page_raises(
        self, mock_session_cls: MagicMock, mock_cs: MagicMock,
    ) -> None:
        """Both transports failing is a FetchFailure."""
        mock_session_cls.return_value.get.return_value = _response(503)
        mock_cs.return_value.get.return_value = _response(503)

        fetcher = _StubFetcher("test")
        with self.assertRaises(FetchFailure) as ctx:
            fetcher.fetch("https://example.com/item")
        self.assertEqual(ctx.exception.reason, "Could not fetch page")
        self.assertEqual(ctx.exception.url, "https://example.com/item")

    def test_cloudscraper_fallback_used(
        self, mock_session_cls: MagicMock, mock_cs: MagicMock,
    ) -> None:
        """When curl_cffi gives up, cloudscraper gets one try."""
        mock_session_cls.return_value.get.return_value = _response(500)
        mock_cs.return_value.get.return_value = _response(200, _PAGE)

        fetcher = _StubFetcher("test")
        self.assertEqual(fetcher.fetch("https://example.com/item"), 42.0)
        mock_cs.return_value.get.assert_called_once()

    def test_missing_price_raises(
        self, mock_session_cls: MagicMock, mock_cs: MagicMock,
    ) -> None:
        """A page without a price is a FetchFailure, never zero."""
        mock_session_cls.return_value.get.return_value = _response(200, _PAGE)
        fetcher = _StubFetcher("test")
        fetcher.parse_result = None
        with self.assertRaises(FetchFailure) as ctx:
            fetcher.fetch("https://example.com/item")
        self.assertEqual(ctx.exception.reason, "Could not fetch price")

    def test_parser_crash_raises(
        self, mock_session_cls: MagicMock, mock_cs: MagicMock,
    ) -> None:
        """A parser exception is wrapped, not propagated raw."""
        mock_session_cls.return_value.get.return_value = _response(200, _PAGE)
        fetcher = _StubFetcher("test")
        with patch.object(
            _StubFetcher, "_parse_price", side_effect=AttributeError("boom"),
        ):
            with self.assertRaises(FetchFailure) as ctx:
                fetcher.fetch("https://example.com/item")
        self.assertEqual(ctx.exception.reason, "Unparsable page")

    def test_fetch_details(
        self, mock_session_cls: MagicMock, mock_cs: MagicMock,
    ) -> None:
        """fetch_details returns the subclass's parsed details."""
        mock_session_cls.return_value.get.return_value = _response(200, _PAGE)
        fetcher = _StubFetcher("test")
        details = fetcher.fetch_details("https://example.com/item")
        self.assertEqual(details.title, "Kettle")
        self.assertEqual(details.price, 42.0)


if __name__ == "__main__":
    unittest.main()
