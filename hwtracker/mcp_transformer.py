"""Conversion of scraping results into the remote storage tool payload."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence, Tuple

from loguru import logger

from hwtracker.items import Category, Item, ScrapingResult

VALID_ITEM_TYPES = {c.value for c in Category}


def _store_ids(products: Sequence[Item]) -> Dict[str, int]:
    """Assign store ids 1..n in first-seen order."""
    ids: Dict[str, int] = {}
    for product in products:
        if product.store not in ids:
            ids[product.store] = len(ids) + 1
    return ids


def build_metadata(result: ScrapingResult) -> Dict[str, Any]:
    products = result.products
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "total_products": len(products),
        "gpu_count": sum(1 for p in products if p.category is Category.GPU),
        "cpu_count": sum(1 for p in products if p.category is Category.CPU),
        "store_count": len({p.store for p in products}),
        "error_count": len(result.errors),
    }


def transform_scraping_result(result: ScrapingResult) -> Dict[str, Any]:
    """Build the `{scrape: {timestamp, items: [...]}}` payload."""
    store_ids = _store_ids(result.products)
    items = [
        {
            "price": product.price,
            "name": product.name,
            "url": product.url,
            "item_type": product.category.value,
            "store": {"id": store_ids[product.store], "name": product.store},
        }
        for product in result.products
    ]
    metadata = build_metadata(result)
    logger.info(
        f"MCP payload: {metadata['total_products']} products, {metadata['gpu_count']} GPUs, "
        f"{metadata['cpu_count']} CPUs from {metadata['store_count']} stores"
    )
    return {"scrape": {"timestamp": metadata["timestamp"], "items": items}}


def validate_mcp_data(data: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Check a payload before it is sent. Returns (is_valid, errors)."""
    errors: List[str] = []

    scrape = data.get("scrape") if isinstance(data, dict) else None
    if not isinstance(scrape, dict):
        return False, ["Missing scrape object"]

    if not scrape.get("timestamp"):
        errors.append("Missing scrape timestamp")

    items = scrape.get("items")
    if not isinstance(items, list):
        errors.append("Scrape items must be an array")
        return False, errors

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            errors.append(f"Item {index}: not an object")
            continue
        name = item.get("name")
        if not name or not isinstance(name, str):
            errors.append(f"Item {index}: missing or invalid name")

        price = item.get("price")
        if isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0:
            errors.append(f"Item {index}: invalid price ({price})")

        url = item.get("url")
        if not url or not isinstance(url, str):
            errors.append(f"Item {index}: missing or invalid URL")

        if item.get("item_type") not in VALID_ITEM_TYPES:
            errors.append(f"Item {index}: invalid item_type ({item.get('item_type')})")

        store = item.get("store")
        if not isinstance(store, dict) or not store.get("name"):
            errors.append(f"Item {index}: missing store information")

    return len(errors) == 0, errors


def create_data_description(result: ScrapingResult) -> str:
    gpus = [p for p in result.products if p.category is Category.GPU]
    cpus = [p for p in result.products if p.category is Category.CPU]
    stores = list(dict.fromkeys(p.store for p in result.products))
    return (
        f"Scraped electronics data containing {len(result.products)} products: "
        f"{len(gpus)} GPUs, {len(cpus)} CPUs from {len(stores)} stores ({', '.join(stores)}). "
        "Data includes product names, prices, URLs, categories, and store information."
    )
