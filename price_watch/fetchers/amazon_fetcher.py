# price_watch/fetchers/amazon_fetcher.py

"""Price fetcher for amazon.com product pages."""

import re

from bs4 import BeautifulSoup

from price_watch.fetchers.base_fetcher import BaseFetcher, ProductDetails

_ASIN_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"/dp/([A-Z0-9]{10})"),
    re.compile(r"/gp/product/([A-Z0-9]{10})"),
    re.compile(r"/ASIN/([A-Z0-9]{10})"),
    re.compile(r"/product/([A-Z0-9]{10})"),
]

# Raw-HTML fallbacks, tried in order once the selectors come up empty
_PRICE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r'<span[^>]*class="[^"]*a-price-whole[^"]*"[^>]*>([\d,]+)'),
    re.compile(r'<span[^>]*class="[^"]*a-offscreen[^"]*">\$([\d,]+\.\d{2})'),
    re.compile(r'"price":"\$([\d,]+\.\d{2})"'),
]

_IMAGE_RE = re.compile(r'"large":"([^"]+)"')


class AmazonPriceFetcher(BaseFetcher):
    """Price fetcher for amazon.com product pages."""

    def __init__(self) -> None:
        super().__init__("amazon")

    def _get_homepage(self) -> str:
        """Return the Amazon homepage URL."""
        return "https://www.amazon.com/"

    @staticmethod
    def extract_catalog_id(url: str) -> str | None:
        """Return the 10-character ASIN embedded in *url*, if any."""
        for pattern in _ASIN_PATTERNS:
            match = pattern.search(url)
            if match:
                return match.group(1)
        return None

    def _price_from_selectors(self, soup: BeautifulSoup) -> float | None:
        """Read the buy-box price through the configured selectors."""
        whole_el = soup.select_one(self.selectors["price_whole"])
        if whole_el:
            whole = whole_el.get_text(strip=True).rstrip(".")
            fraction = ""
            parent = whole_el.parent
            fraction_el = (
                parent.select_one(self.selectors["price_fraction"])
                if parent
                else None
            )
            if fraction_el:
                fraction = fraction_el.get_text(strip=True)
            text = f"{whole}.{fraction}" if fraction.isdigit() else whole
            price = self.extract_price(text)
            if price is not None:
                return price

        offscreen_el = soup.select_one(self.selectors["price_offscreen"])
        if offscreen_el:
            return self.extract_price(offscreen_el.get_text())
        return None

    def _parse_price(self, soup: BeautifulSoup) -> float | None:
        """Extract the current price, selectors first, regexes second."""
        price = self._price_from_selectors(soup)
        if price is not None:
            return price

        html = str(soup)
        for pattern in _PRICE_PATTERNS:
            match = pattern.search(html)
            if match:
                self.logger.debug(
                    "[amazon] Price matched fallback pattern %s",
                    pattern.pattern[:40],
                )
                return self.extract_price(match.group(1))
        return None

    def _parse_details(self, soup: BeautifulSoup) -> ProductDetails:
        """Extract title, price and hi-res image from a product page."""
        title_el = soup.select_one(self.selectors["title"])
        title = title_el.get_text(strip=True) if title_el else None

        image_url: str | None = None
        image_match = _IMAGE_RE.search(str(soup))
        if image_match:
            image_url = image_match.group(1)
        elif self.selectors.get("image"):
            image_el = soup.select_one(self.selectors["image"])
            src = image_el.get("src") if image_el else None
            if isinstance(src, str):
                image_url = src

        return ProductDetails(
            title=title or None,
            price=self._parse_price(soup),
            image_url=image_url,
        )
