# tests/test_amazon_fetcher.py

"""Tests for the Amazon fetcher using HTML fixtures."""

import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from bs4 import BeautifulSoup

from price_watch.errors import FetchFailure
from price_watch.fetchers.amazon_fetcher import AmazonPriceFetcher

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _load_fixture(name: str) -> str:
    with open(FIXTURES_DIR / name, encoding="utf-8") as f:
        return f.read()


class TestExtractCatalogId(unittest.TestCase):
    """ASIN extraction from the URL shapes Amazon uses."""

    def test_supported_url_shapes(self) -> None:
        """Every supported path form yields the ASIN."""
        urls = [
            "https://www.amazon.com/Acme-Kettle/dp/B08ZW875PR/ref=sr_1_1",
            "https://www.amazon.com/dp/B08ZW875PR?th=1",
            "https://www.amazon.com/gp/product/B08ZW875PR",
            "https://www.amazon.com/exec/obidos/ASIN/B08ZW875PR",
            "https://www.amazon.com/product/B08ZW875PR",
        ]
        for url in urls:
            with self.subTest(url=url):
                self.assertEqual(
                    AmazonPriceFetcher.extract_catalog_id(url), "B08ZW875PR",
                )

    def test_url_without_asin(self) -> None:
        """Search and malformed URLs have no ASIN."""
        for url in (
            "https://www.amazon.com/s?k=kettle",
            "https://www.amazon.com/dp/short",
            "not a url",
        ):
            with self.subTest(url=url):
                self.assertIsNone(AmazonPriceFetcher.extract_catalog_id(url))


@patch("price_watch.fetchers.base_fetcher.curl_requests.Session")
class TestParsing(unittest.TestCase):
    """Price and details parsing from product pages."""

    def _soup(self, html: str) -> BeautifulSoup:
        return BeautifulSoup(html, "lxml")

    def test_price_from_whole_and_fraction(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """The buy-box whole and fraction parts combine into one price."""
        fetcher = AmazonPriceFetcher()
        soup = self._soup(_load_fixture("amazon_product.html"))
        self.assertEqual(fetcher._parse_price(soup), 1249.99)

    def test_price_from_offscreen_only(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Without the whole part the screen-reader price is used."""
        html = (
            '<html><body><div id="corePrice_feature_div">'
            '<span class="a-price"><span class="a-offscreen">$34.50</span>'
            "</span></div></body></html>"
        )
        fetcher = AmazonPriceFetcher()
        self.assertEqual(fetcher._parse_price(self._soup(html)), 34.5)

    def test_price_from_embedded_json(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Raw-HTML patterns catch prices only present in scripts."""
        html = (
            "<html><body><script>"
            'var state = {"price":"$45.00","currency":"USD"};'
            "</script></body></html>"
        )
        fetcher = AmazonPriceFetcher()
        self.assertEqual(fetcher._parse_price(self._soup(html)), 45.0)

    def test_no_price(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """An unavailable product has no price."""
        fetcher = AmazonPriceFetcher()
        soup = self._soup(_load_fixture("amazon_product_no_price.html"))
        self.assertIsNone(fetcher._parse_price(soup))

    def test_details(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Title, price and hi-res image are extracted."""
        fetcher = AmazonPriceFetcher()
        soup = self._soup(_load_fixture("amazon_product.html"))
        details = fetcher._parse_details(soup)
        self.assertEqual(
            details.title, "Acme Stainless Steel Electric Kettle, 1.7 Liter",
        )
        self.assertEqual(details.price, 1249.99)
        self.assertEqual(
            details.image_url, "https://m.media-amazon.com/images/I/large.jpg",
        )

    def test_details_image_falls_back_to_landing_image(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Without the hi-res blob the landing image src is used."""
        fetcher = AmazonPriceFetcher()
        soup = self._soup(_load_fixture("amazon_product_no_price.html"))
        details = fetcher._parse_details(soup)
        self.assertEqual(details.title, "Discontinued Widget")
        self.assertIsNone(details.price)
        self.assertEqual(
            details.image_url, "https://m.media-amazon.com/images/I/widget.jpg",
        )


@patch("price_watch.fetchers.base_fetcher.curl_requests.Session")
class TestFetchEndToEnd(unittest.TestCase):
    """fetch() against mocked HTTP responses."""

    def test_fetch_returns_price(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """A product page fetched over HTTP yields its price."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_resp = MagicMock()
        mock_resp.status_code = 200
        mock_resp.text = _load_fixture("amazon_product.html")
        mock_session.get.return_value = mock_resp

        fetcher = AmazonPriceFetcher()
        price = fetcher.fetch("https://www.amazon.com/dp/B08ZW875PR", 5)
        self.assertEqual(price, 1249.99)

        _, kwargs = mock_session.get.call_args
        self.assertEqual(kwargs["timeout"], 5)
        self.assertEqual(kwargs["headers"]["Referer"], "https://www.amazon.com/")

    def test_fetch_without_price_raises(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """An unavailable product is a fetch failure."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_resp = MagicMock()
        mock_resp.status_code = 200
        mock_resp.text = _load_fixture("amazon_product_no_price.html")
        mock_session.get.return_value = mock_resp

        fetcher = AmazonPriceFetcher()
        with self.assertRaises(FetchFailure):
            fetcher.fetch("https://www.amazon.com/dp/B08ZW875PR")


if __name__ == "__main__":
    unittest.main()
