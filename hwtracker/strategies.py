"""Per-store fetch strategies: plain HTTP and headless browser."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests
from loguru import logger
from playwright.async_api import TimeoutError as PlaywrightTimeout, async_playwright

from hwtracker.errors import BrowserTimeoutError, FetchError
from hwtracker.extractor import ExtractorConfig, extract_products
from hwtracker.items import BrowserDrivenStore, HttpFetchStore, Item, StoreConfig

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

# Characters left unescaped by a JavaScript encodeURIComponent.
_URI_COMPONENT_SAFE = "-_.!~*'()"


@dataclass
class StoreOutcome:
    """Result of one store/term attempt: items found, or the error that stopped it."""

    items: List[Item] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_search_url(store: HttpFetchStore, term: str) -> str:
    return f"{store.base_url}{store.search_path}?{store.search_param}={quote(term, safe=_URI_COMPONENT_SAFE)}"


class HttpFetchStrategy:
    """Fetch search results with a GET request and parse the returned HTML."""

    def __init__(
        self,
        extractor_config: Optional[ExtractorConfig] = None,
        session: Optional[requests.Session] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
    ):
        self.extractor_config = extractor_config or ExtractorConfig()
        self.session = session or requests.Session()
        self.user_agent = user_agent
        self.timeout = timeout

    def _get(self, url: str) -> requests.Response:
        return self.session.get(url, headers={"User-Agent": self.user_agent}, timeout=self.timeout)

    async def search(self, store: HttpFetchStore, term: str) -> List[Item]:
        url = build_search_url(store, term)
        logger.info(f"Fetching {url} for {store.name}...")
        try:
            response = await asyncio.to_thread(self._get, url)
        except requests.RequestException as exc:
            raise FetchError(f"Request to {store.name} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise FetchError(f"HTTP {response.status_code} for {store.name}")

        return extract_products(response.text, store.name, store.base_url, self.extractor_config)


class BrowserStrategy:
    """Drive a headless Chromium page through the store's search box.

    A fresh browser is launched per store/term and closed on every exit path.
    """

    def __init__(
        self,
        extractor_config: Optional[ExtractorConfig] = None,
        headless: bool = True,
        selector_timeout_ms: int = 10000,
        playwright_factory: Callable[[], Any] = async_playwright,
    ):
        self.extractor_config = extractor_config or ExtractorConfig()
        self.headless = headless
        self.selector_timeout_ms = selector_timeout_ms
        self.playwright_factory = playwright_factory

    async def search(self, store: BrowserDrivenStore, term: str) -> List[Item]:
        selector = store.search_input_selector
        async with self.playwright_factory() as playwright:
            browser = await playwright.chromium.launch(headless=self.headless)
            try:
                page = await browser.new_page()
                logger.info(f"Opening {store.base_url} for {store.name}...")
                try:
                    await page.goto(store.base_url)
                except PlaywrightTimeout as exc:
                    raise BrowserTimeoutError(f"Navigation to {store.base_url} timed out for {store.name}") from exc
                try:
                    await page.wait_for_selector(selector, timeout=self.selector_timeout_ms)
                except PlaywrightTimeout as exc:
                    raise BrowserTimeoutError(
                        f"Search input '{selector}' not found on {store.name} "
                        f"within {self.selector_timeout_ms}ms"
                    ) from exc

                await page.fill(selector, "")
                await page.fill(selector, term)
                await page.press(selector, "Enter")
                try:
                    await page.wait_for_load_state("networkidle")
                except PlaywrightTimeout as exc:
                    raise BrowserTimeoutError(f"Search results for {store.name} did not settle") from exc

                html = await page.content()
            finally:
                await browser.close()

        return extract_products(html, store.name, store.base_url, self.extractor_config)


class StoreScraper:
    """Dispatch a store to the strategy matching its fetch mode."""

    def __init__(self, strategies: Dict[str, Any]):
        self.strategies = strategies

    @classmethod
    def from_config(cls, scraping_config: Dict[str, Any], headless: Optional[bool] = None) -> "StoreScraper":
        extractor_config = ExtractorConfig.from_config(scraping_config)
        browser_cfg = scraping_config.get("browser", {}) or {}
        if headless is None:
            headless = bool(browser_cfg.get("headless", True))
        return cls(
            {
                HttpFetchStore.kind: HttpFetchStrategy(
                    extractor_config,
                    user_agent=scraping_config.get("user_agent", DEFAULT_USER_AGENT),
                    timeout=float(scraping_config.get("http_timeout", 30)),
                ),
                BrowserDrivenStore.kind: BrowserStrategy(
                    extractor_config,
                    headless=headless,
                    selector_timeout_ms=int(browser_cfg.get("selector_timeout_ms", 10000)),
                ),
            }
        )

    async def scrape_store(self, store: StoreConfig, term: str) -> StoreOutcome:
        """Run one store/term search; failures are returned, never raised."""
        strategy = self.strategies.get(store.kind)
        try:
            if strategy is None:
                raise FetchError(f"No strategy registered for fetch mode '{store.kind}'")
            items = await strategy.search(store, term)
        except Exception as e:
            logger.error(f"Error scraping {store.name} for '{term}': {e}")
            return StoreOutcome(error=e)
        logger.info(f"{store.name}: {len(items)} products for '{term}'")
        return StoreOutcome(items=items)
