"""Multi-store scraping orchestrator."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from hwtracker.config_loader import get_scraping_config
from hwtracker.items import Item, ScrapingResult, StoreConfig
from hwtracker.strategies import StoreScraper


def deduplicate_products(products: Iterable[Item]) -> List[Item]:
    """Keep the first occurrence of each (name, store); later duplicates are dropped."""
    seen = set()
    unique = []
    for product in products:
        if product.identity in seen:
            continue
        seen.add(product.identity)
        unique.append(product)
    return unique


def format_scrape_error(store_name: str, term: str, cause: Any) -> str:
    return f'Failed to scrape {store_name} for "{term}": {cause}'


class ScrapeOrchestrator:
    """Walk stores x search terms sequentially with politeness delays."""

    def __init__(
        self,
        store_scraper: StoreScraper,
        term_delay: float = 1.0,
        store_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store_scraper = store_scraper
        self.term_delay = term_delay
        self.store_delay = store_delay
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: Dict[str, Any], headless: Optional[bool] = None) -> "ScrapeOrchestrator":
        scraping_cfg = get_scraping_config(config)
        return cls(
            StoreScraper.from_config(scraping_cfg, headless=headless),
            term_delay=float(scraping_cfg.get("term_delay", 1.0)),
            store_delay=float(scraping_cfg.get("store_delay", 2.0)),
        )

    async def scrape_all(self, stores: Sequence[StoreConfig], search_terms: Sequence[str]) -> ScrapingResult:
        """Scrape every store for every term.

        Failures are recorded in `errors` and never stop the run.
        """
        products: List[Item] = []
        errors: List[str] = []

        for store in stores:
            logger.info(f"Scraping {store.name}...")

            for term in search_terms:
                outcome = await self.store_scraper.scrape_store(store, term)
                if outcome.ok:
                    products.extend(outcome.items)
                else:
                    error_msg = format_scrape_error(store.name, term, outcome.error)
                    errors.append(error_msg)
                await self._sleep(self.term_delay)

            await self._sleep(self.store_delay)

        unique_products = deduplicate_products(products)
        if len(unique_products) != len(products):
            logger.info(f"Dropped {len(products) - len(unique_products)} duplicate listings")

        return ScrapingResult(products=unique_products, errors=errors)

