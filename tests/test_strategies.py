"""Fetch strategy tests with a fake HTTP session and a fake browser driver."""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import requests
from playwright.async_api import TimeoutError as PlaywrightTimeout

sys.path.insert(0, str(Path(__file__).parent.parent))

from hwtracker.errors import BrowserTimeoutError, FetchError
from hwtracker.items import BrowserDrivenStore, Category, HttpFetchStore
from hwtracker.strategies import (
    BrowserStrategy,
    HttpFetchStrategy,
    StoreScraper,
    build_search_url,
)

HTTP_STORE = HttpFetchStore(
    name="Coolblue",
    base_url="https://www.coolblue.nl",
    search_path="/zoeken",
    search_param="query",
)
BROWSER_STORE = BrowserDrivenStore(name="Megekko", base_url="https://www.megekko.nl")

LISTING_HTML = """
<div class="product-grid__card">
  <a class="product-card__title" href="/p/1">Radeon 7700XT</a>
  <span class="js-sales-price-wrapper">€599,99</span>
</div>
"""


def _response(status_code=200, text=LISTING_HTML):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


class FakePage:
    def __init__(self, html, fail_selector=False, fail_goto=False):
        self.html = html
        self.fail_selector = fail_selector
        self.fail_goto = fail_goto
        self.calls = []

    async def goto(self, url):
        self.calls.append(("goto", url))
        if self.fail_goto:
            raise PlaywrightTimeout("Timeout 30000ms exceeded")

    async def wait_for_selector(self, selector, timeout=None):
        self.calls.append(("wait_for_selector", selector))
        if self.fail_selector:
            raise PlaywrightTimeout("Timeout 10000ms exceeded")

    async def fill(self, selector, value):
        self.calls.append(("fill", value))

    async def press(self, selector, key):
        self.calls.append(("press", key))

    async def wait_for_load_state(self, state):
        self.calls.append(("wait_for_load_state", state))

    async def content(self):
        return self.html


class FakeBrowser:
    def __init__(self, page):
        self.page = page
        self.closed = False

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakePlaywright:
    def __init__(self, browser):
        self.browser = browser
        self.chromium = self
        self.launch_kwargs = None

    async def launch(self, **kwargs):
        self.launch_kwargs = kwargs
        return self.browser

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class TestBuildSearchUrl(unittest.TestCase):
    def test_term_is_url_encoded(self):
        self.assertEqual(
            build_search_url(HTTP_STORE, "GeForce 5070 ti"),
            "https://www.coolblue.nl/zoeken?query=GeForce%205070%20ti",
        )

    def test_unreserved_punctuation_kept(self):
        self.assertEqual(
            build_search_url(HTTP_STORE, "RX 7900 (XTX)!*'~"),
            "https://www.coolblue.nl/zoeken?query=RX%207900%20(XTX)!*'~",
        )
        self.assertTrue(build_search_url(HTTP_STORE, "a/b&c").endswith("query=a%2Fb%26c"))


class TestHttpFetchStrategy(unittest.IsolatedAsyncioTestCase):
    async def test_parses_listing(self):
        session = MagicMock()
        session.get.return_value = _response()
        strategy = HttpFetchStrategy(session=session)

        items = await strategy.search(HTTP_STORE, "Radeon 7700XT")

        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].url, "https://www.coolblue.nl/p/1")
        self.assertEqual(items[0].category, Category.GPU)
        args, kwargs = session.get.call_args
        self.assertEqual(args[0], "https://www.coolblue.nl/zoeken?query=Radeon%207700XT")
        self.assertIn("User-Agent", kwargs["headers"])

    async def test_non_2xx_is_fetch_error(self):
        session = MagicMock()
        session.get.return_value = _response(status_code=503, text="")
        with self.assertRaises(FetchError) as ctx:
            await HttpFetchStrategy(session=session).search(HTTP_STORE, "x")
        self.assertIn("HTTP 503", str(ctx.exception))

    async def test_transport_failure_is_fetch_error(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("boom")
        with self.assertRaises(FetchError):
            await HttpFetchStrategy(session=session).search(HTTP_STORE, "x")


class TestBrowserStrategy(unittest.IsolatedAsyncioTestCase):
    def _strategy(self, page):
        browser = FakeBrowser(page)
        driver = FakePlaywright(browser)
        return BrowserStrategy(headless=True, playwright_factory=lambda: driver), browser, driver

    async def test_types_term_and_extracts(self):
        page = FakePage(LISTING_HTML)
        strategy, browser, driver = self._strategy(page)

        items = await strategy.search(BROWSER_STORE, "Radeon 7700XT")

        self.assertEqual([i.name for i in items], ["Radeon 7700XT"])
        self.assertEqual(items[0].url, "https://www.megekko.nl/p/1")
        self.assertTrue(browser.closed)
        self.assertEqual(driver.launch_kwargs, {"headless": True})
        self.assertEqual(
            page.calls,
            [
                ("goto", "https://www.megekko.nl"),
                ("wait_for_selector", "#searchFieldInputField"),
                ("fill", ""),
                ("fill", "Radeon 7700XT"),
                ("press", "Enter"),
                ("wait_for_load_state", "networkidle"),
            ],
        )

    async def test_selector_timeout_closes_browser(self):
        page = FakePage(LISTING_HTML, fail_selector=True)
        strategy, browser, _ = self._strategy(page)

        with self.assertRaises(BrowserTimeoutError):
            await strategy.search(BROWSER_STORE, "Radeon 7700XT")
        self.assertTrue(browser.closed)

    async def test_navigation_timeout_closes_browser(self):
        page = FakePage(LISTING_HTML, fail_goto=True)
        strategy, browser, _ = self._strategy(page)

        with self.assertRaises(BrowserTimeoutError):
            await strategy.search(BROWSER_STORE, "Radeon 7700XT")
        self.assertTrue(browser.closed)
        self.assertEqual(page.calls, [("goto", "https://www.megekko.nl")])


class TestStoreScraper(unittest.IsolatedAsyncioTestCase):
    async def test_failure_becomes_outcome(self):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("slow")
        scraper = StoreScraper({"http": HttpFetchStrategy(session=session)})

        outcome = await scraper.scrape_store(HTTP_STORE, "x")

        self.assertFalse(outcome.ok)
        self.assertIsInstance(outcome.error, FetchError)
        self.assertEqual(outcome.items, [])

    async def test_missing_strategy(self):
        outcome = await StoreScraper({}).scrape_store(BROWSER_STORE, "x")
        self.assertIsInstance(outcome.error, FetchError)

    def test_from_config_headless_override(self):
        scraper = StoreScraper.from_config({"browser": {"headless": True}}, headless=False)
        self.assertFalse(scraper.strategies["browser"].headless)
        self.assertIn("http", scraper.strategies)


if __name__ == "__main__":
    unittest.main()
