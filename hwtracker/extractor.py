"""HTML extraction of product listings using ordered selector fallbacks."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup, Tag
from loguru import logger

from hwtracker.items import Category, Item

GPU_KEYWORDS = [
    "7700xt",
    "7900xt",
    "7900xtx",
    "Radeon",
    "XFX",
    "MSI",
    "Sapphire",
    "PowerColor",
    "Gigabyte",
    "5070 ti",
    "5080",
    "4070 ti super",
    "GeForce",
]

CPU_KEYWORDS = ["ryzen 7", "ryzen 9", "ryzen 5"]

PRODUCT_SELECTORS = [
    ".prdContainer",
    ".product-grid__card",
    ".productBox",
    ".product-item",
]

NAME_SELECTORS = [
    ".prdTitle",
    ".product-card__title",
    ".product-name",
    ".product-item-link",
]

PRICE_SELECTORS = [".prsEuro", ".js-sales-price-wrapper", ".price"]

NO_PRICE = -1.0

_PRICE_CHARS = re.compile(r"[^\d,.]")
_WHITESPACE = re.compile(r"\s+")


def _compact(text: str) -> str:
    return _WHITESPACE.sub("", text or "").lower()


@dataclass
class ExtractorConfig:
    """Selector chains and keyword lists used by the extractor."""

    product_selectors: List[str] = field(default_factory=lambda: list(PRODUCT_SELECTORS))
    name_selectors: List[str] = field(default_factory=lambda: list(NAME_SELECTORS))
    price_selectors: List[str] = field(default_factory=lambda: list(PRICE_SELECTORS))
    gpu_keywords: List[str] = field(default_factory=lambda: list(GPU_KEYWORDS))
    cpu_keywords: List[str] = field(default_factory=lambda: list(CPU_KEYWORDS))

    @classmethod
    def from_config(cls, scraping_config: Dict[str, Any]) -> "ExtractorConfig":
        """Build from the `scraping.extractor` section, keeping defaults for missing keys."""
        section = (scraping_config or {}).get("extractor", {}) or {}
        defaults = cls()
        return cls(
            product_selectors=list(section.get("product_selectors") or defaults.product_selectors),
            name_selectors=list(section.get("name_selectors") or defaults.name_selectors),
            price_selectors=list(section.get("price_selectors") or defaults.price_selectors),
            gpu_keywords=list(section.get("gpu_keywords") or defaults.gpu_keywords),
            cpu_keywords=list(section.get("cpu_keywords") or defaults.cpu_keywords),
        )


def _matches_any(name: str, keywords: Sequence[str]) -> bool:
    compact_name = _compact(name)
    return any(_compact(keyword) in compact_name for keyword in keywords if _compact(keyword))


def is_gpu(name: str, keywords: Sequence[str] = GPU_KEYWORDS) -> bool:
    return _matches_any(name, keywords)


def is_cpu(name: str, keywords: Sequence[str] = CPU_KEYWORDS) -> bool:
    return _matches_any(name, keywords)


def classify(name: str, config: Optional[ExtractorConfig] = None) -> Optional[Category]:
    """Return the category for a product name; GPU keywords win over CPU ones."""
    config = config or ExtractorConfig()
    if is_gpu(name, config.gpu_keywords):
        return Category.GPU
    if is_cpu(name, config.cpu_keywords):
        return Category.CPU
    return None


def extract_name(element: Tag, selectors: Sequence[str] = NAME_SELECTORS) -> str:
    """Return the trimmed text of the first selector with non-empty text, else ''."""
    for selector in selectors:
        found = element.select_one(selector)
        if found is None:
            continue
        text = found.get_text().strip()
        if text:
            return text
    return ""


def parse_price(price_text: Optional[str]) -> float:
    """Parse European price text such as '€1.234,56' into a float.

    Dots are thousands separators, a comma is the decimal mark. Returns
    NO_PRICE when nothing numeric can be read.
    """
    if not price_text:
        return NO_PRICE
    cleaned = _PRICE_CHARS.sub("", price_text).replace(".", "").replace(",", ".", 1).strip()
    if not cleaned:
        return NO_PRICE
    try:
        return float(cleaned)
    except ValueError:
        return NO_PRICE


def extract_price(element: Tag, selectors: Sequence[str] = PRICE_SELECTORS) -> float:
    """Return the first strictly positive price across selectors, else NO_PRICE."""
    for selector in selectors:
        found = element.select_one(selector)
        if found is None:
            continue
        text = found.get_text().strip()
        if not text:
            continue
        price = parse_price(text)
        if price > 0:
            return price
    return NO_PRICE


def extract_url(element: Tag, base_url: str) -> str:
    """Return the product link, made absolute against the store base URL."""
    for anchor in element.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        if href:
            return href if href.startswith("http") else f"{base_url}{href}"
    if element.name == "a":
        href = (element.get("href") or "").strip()
        if href:
            return href
    return ""


def extract_item(
    element: Tag,
    store_name: str,
    base_url: str,
    config: Optional[ExtractorConfig] = None,
) -> Optional[Item]:
    """Turn one product container into an Item, or None if it is not usable."""
    config = config or ExtractorConfig()

    name = extract_name(element, config.name_selectors)
    if not name:
        return None
    price = extract_price(element, config.price_selectors)
    if price <= 0:
        return None
    category = classify(name, config)
    if category is None:
        return None

    return Item(
        name=name,
        price=price,
        url=extract_url(element, base_url),
        store=store_name,
        category=category,
    )


def extract_products(
    document: Any,
    store_name: str,
    base_url: str,
    config: Optional[ExtractorConfig] = None,
) -> List[Item]:
    """Extract GPU/CPU items from a page.

    Only the first container selector that matches anything is used.
    """
    config = config or ExtractorConfig()
    if isinstance(document, str):
        document = BeautifulSoup(document, "html.parser")

    for selector in config.product_selectors:
        containers = document.select(selector)
        if not containers:
            continue
        logger.debug(f"{store_name}: {len(containers)} containers matched '{selector}'")
        items = []
        for container in containers:
            item = extract_item(container, store_name, base_url, config)
            if item:
                items.append(item)
        return items

    logger.debug(f"{store_name}: no product containers found")
    return []
