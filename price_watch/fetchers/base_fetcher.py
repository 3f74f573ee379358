# price_watch/fetchers/base_fetcher.py

"""Abstract base class for all marketplace price fetchers."""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests

from price_watch.config.settings import Settings
from price_watch.errors import FetchFailure


@dataclass
class ProductDetails:
    """Title, price and image scraped from a product page."""

    title: str | None
    price: float | None
    image_url: str | None = None


class PriceFetcher(ABC):
    """Capability: turn a product URL into its current price."""

    @abstractmethod
    def fetch(self, url: str, timeout: float | None = None) -> float:
        """Return the current price on *url*.

        Raises:
            FetchFailure: For every outcome that is not a price.
        """
        ...

    @abstractmethod
    def fetch_details(
        self, url: str, timeout: float | None = None,
    ) -> ProductDetails:
        """Return title, price and image for *url*."""
        ...

    @staticmethod
    @abstractmethod
    def extract_catalog_id(url: str) -> str | None:
        """Return the marketplace's catalog id embedded in *url*."""
        ...


class BaseFetcher(PriceFetcher):
    """Shared HTTP transport for marketplace price fetchers.

    Subclasses only parse product pages.  Browser impersonation,
    retries with adaptive backoff, the circuit breaker and the
    cloudscraper fallback all live here.
    """

    # Markers of a Cloudflare interstitial instead of a product page
    _CF_CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "cf_chl_opt",
    ]

    # Product pages are large; only short pages are scanned for
    # CAPTCHA wording so review text cannot trip the check.
    _FULL_PAGE_MIN_CHARS: int = 5000

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(f"price_watch.{source_name}")
        self.settings = Settings()
        self.selectors: dict[str, str] = self._load_selectors()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER,
        )
        self._request_timeout: float = self.settings.REQUEST_TIMEOUT
        self._current_delay: float = self.settings.REQUEST_DELAY
        self._consecutive_failures: int = 0
        self._circuit_open: bool = False
        self._circuit_opened_at: float = 0.0

    def _load_selectors(self) -> dict[str, str]:
        """CSS selectors for this marketplace from selectors.json."""
        with open(self.settings.SELECTORS_PATH, encoding="utf-8") as f:
            by_source: dict[str, Any] = json.load(f)
        selectors: dict[str, str] = by_source.get(self.source_name, {})
        return selectors

    def _validate_response(self, resp: curl_requests.Response) -> bool:
        """False when *resp* is a bot wall rather than a product page."""
        body = resp.text
        lowered = body.lower()

        hit = next(
            (m for m in self._CF_CHALLENGE_MARKERS if m in lowered), None,
        )
        if hit:
            self.logger.warning(
                "[%s] Blocked by Cloudflare challenge (%s)",
                self.source_name,
                hit,
            )
            return False

        if "<body" in lowered and len(body) > self._FULL_PAGE_MIN_CHARS:
            return True
        hit = next(
            (k for k in self.settings.CAPTCHA_KEYWORDS if k in lowered),
            None,
        )
        if hit:
            self.logger.warning(
                "[%s] Bot check page served (%s)", self.source_name, hit,
            )
            return False
        return True

    # ── Circuit breaker ──────────────────────────────────

    def _check_circuit(self) -> bool:
        """True while the breaker is open and requests must be skipped.

        Once ``CIRCUIT_BREAKER_COOLDOWN`` seconds have passed the breaker
        closes again and lets a trial request through; a failed trial
        reopens it immediately because the failure count is kept.
        """
        if not self._circuit_open:
            return False
        open_for = time.time() - self._circuit_opened_at
        if open_for < self.settings.CIRCUIT_BREAKER_COOLDOWN:
            return True
        self.logger.info(
            "[%s] Probing after %.0fs with the circuit open",
            self.source_name,
            open_for,
        )
        self._circuit_open = False
        return False

    def _record_success(self) -> None:
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_opened_at = 0.0
        self._current_delay = self.settings.REQUEST_DELAY

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures < self.settings.CIRCUIT_BREAKER_THRESHOLD:
            return
        self._circuit_open = True
        self._circuit_opened_at = time.time()
        self.logger.error(
            "[%s] %d product pages failed in a row, pausing requests "
            "for %.0fs",
            self.source_name,
            self._consecutive_failures,
            self.settings.CIRCUIT_BREAKER_COOLDOWN,
        )

    def _escalate_delay(self) -> None:
        """Double the backoff, capped at REQUEST_DELAY x MAX_DELAY_MULTIPLIER."""
        ceiling = (
            self.settings.REQUEST_DELAY * self.settings.MAX_DELAY_MULTIPLIER
        )
        self._current_delay = min(self._current_delay * 2, ceiling)
        self.logger.warning(
            "[%s] Throttled, backing off %.1fs",
            self.source_name,
            self._current_delay,
        )

    # ── Transport ────────────────────────────────────────

    def _fetch_get(
        self,
        url: str,
        headers: dict[str, str],
        timeout: float,
    ) -> curl_requests.Response | None:
        """GET *url* with retries; None once every attempt has failed."""
        if self._check_circuit():
            return None
        for attempt in range(1, self.settings.MAX_RETRIES + 1):
            try:
                resp = self.session.get(url, headers=headers, timeout=timeout)
            except Exception as exc:
                self.logger.warning(
                    "[%s] %s attempt %d raised %s",
                    self.source_name,
                    url,
                    attempt,
                    exc,
                    exc_info=True,
                )
                time.sleep(self._current_delay * attempt)
                continue

            status = resp.status_code
            if status == 200 and self._validate_response(resp):
                self._record_success()
                return resp
            if status == 200:
                self._escalate_delay()
                time.sleep(self._current_delay)
                continue

            self.logger.warning(
                "[%s] %s answered HTTP %d (attempt %d)",
                self.source_name,
                url,
                status,
                attempt,
            )
            if status == 404:
                break
            if status in (403, 429, 503):
                self._escalate_delay()
                time.sleep(self._current_delay)

        self._record_failure()
        return None

    def _get_page(
        self, url: str, timeout: float | None = None,
    ) -> BeautifulSoup | None:
        """Download and parse *url*; cloudscraper gets the last word."""
        if self._check_circuit():
            self.logger.info(
                "[%s] Circuit open, not requesting %s",
                self.source_name,
                url,
            )
            return None
        if timeout is None:
            timeout = self._request_timeout
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self._get_homepage(),
        }

        resp = self._fetch_get(url, headers, timeout)
        if resp is not None:
            return BeautifulSoup(resp.text, "lxml")

        self.logger.info(
            "[%s] Retrying %s through cloudscraper",
            self.source_name,
            url,
        )
        try:
            cs_module: Any = cloudscraper
            fallback: Any = cs_module.create_scraper().get(
                url, headers=headers, timeout=timeout,
            )
        except Exception as exc:
            self.logger.error(
                "[%s] cloudscraper could not fetch %s: %s",
                self.source_name,
                url,
                exc,
                exc_info=True,
            )
            return None
        if fallback.status_code != 200:
            return None
        return BeautifulSoup(str(fallback.text), "lxml")

    @staticmethod
    def extract_price(text: str | None) -> float | None:
        """Extract a numeric price from a string like '$1,299.00'.

        Returns ``None`` when no positive number is present.
        """
        if not text:
            return None
        cleaned = text.replace(",", "")
        numbers = re.findall(r"\d+(?:\.\d+)?", cleaned)
        if not numbers:
            return None
        value = float(numbers[0])
        return value if value > 0 else None

    def fetch(self, url: str, timeout: float | None = None) -> float:
        """Return the current price on *url*.

        Raises:
            FetchFailure: For every outcome that is not a price.
        """
        soup = self._get_page(url, timeout)
        if soup is None:
            raise FetchFailure(url, "Could not fetch page")
        try:
            price = self._parse_price(soup)
        except Exception as exc:
            self.logger.warning(
                "[%s] Price parsing crashed for %s: %s",
                self.source_name,
                url,
                exc,
                exc_info=True,
            )
            raise FetchFailure(url, "Unparsable page") from exc
        if price is None:
            raise FetchFailure(url, "Could not fetch price")
        return price

    def fetch_details(
        self, url: str, timeout: float | None = None,
    ) -> ProductDetails:
        """Return title, price and image for *url*.

        Raises:
            FetchFailure: When the page itself cannot be fetched.
        """
        soup = self._get_page(url, timeout)
        if soup is None:
            raise FetchFailure(url, "Could not fetch page")
        return self._parse_details(soup)

    @abstractmethod
    def _get_homepage(self) -> str:
        """Return the homepage URL for the Referer header."""
        ...

    @abstractmethod
    def _parse_price(self, soup: BeautifulSoup) -> float | None:
        """Extract the current price from a product page."""
        ...

    @abstractmethod
    def _parse_details(self, soup: BeautifulSoup) -> ProductDetails:
        """Extract title, price and image from a product page."""
        ...
