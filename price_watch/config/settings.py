# price_watch/config/settings.py

"""Central configuration for the price_watch engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the price_watch engine."""

    # --- Scraping ---
    REQUEST_DELAY: float = 2.0          # Base delay between retries
    REQUEST_TIMEOUT: int = 10           # Seconds before a fetch times out
    MAX_RETRIES: int = 3                # Retry count on transient failures

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 300.0  # Secs before a half-open trial request
    MAX_DELAY_MULTIPLIER: int = 8       # Cap for adaptive backoff
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
        "enter the characters you see below",
    ]

    # --- Check cycle ---
    CHECK_ITEM_DELAY: float = 2.0       # Pause between products in a cycle
    NOTIFY_COOLDOWN_HOURS: int = 24     # Min gap between alert emails

    # --- Notifications ---
    RESEND_API_KEY: str | None = os.getenv("RESEND_API_KEY")
    ALERT_FROM_EMAIL: str = os.getenv(
        "ALERT_FROM_EMAIL",
        "Amazon Price Alert <onboarding@resend.dev>",
    )

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = (
        BASE_DIR / "price_watch" / "config" / "selectors.json"
    )
    DATA_DIR: Path = Path(
        os.getenv("PRICE_WATCH_DATA_DIR", str(BASE_DIR / "data"))
    )
    PRICE_DB_PATH: Path = DATA_DIR / "price_watch.db"
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Fetchers (one per marketplace) ---
    DEFAULT_FETCHER: str = "amazon"
    AVAILABLE_FETCHERS: list[dict[str, str]] = [
        {
            "id": "amazon",
            "label": "Amazon",
            "fetcher": "price_watch.fetchers.amazon_fetcher.AmazonPriceFetcher",
        },
    ]
