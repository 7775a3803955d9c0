"""One full tracker cycle: scrape, dedup, persist locally, relay remotely."""

import asyncio
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Dict, Optional

from loguru import logger

from hwtracker.ai_agent import AIStorageAgent, generate_fallback_report
from hwtracker.config_loader import (
    get_ai_config,
    get_mcp_config,
    get_search_terms,
    get_storage_config,
    get_stores,
)
from hwtracker.database import Database
from hwtracker.items import ScrapingResult
from hwtracker.mcp_client import McpClient
from hwtracker.relay import McpRelay, save_results_file
from hwtracker.scraper import ScrapeOrchestrator


async def run_pipeline(
    config: Dict[str, Any],
    database: Database,
    headless: Optional[bool] = None,
    relay_enabled: Optional[bool] = None,
    orchestrator: Optional[ScrapeOrchestrator] = None,
    agent: Optional[AIStorageAgent] = None,
    relay: Optional[McpRelay] = None,
) -> Dict[str, Any]:
    """Run a complete scrape cycle.

    Args:
        config: Configuration dictionary
        database: Open database handle
        headless: Override headless browser mode from config
        relay_enabled: Override `mcp.enabled` from config
        orchestrator: Pre-built orchestrator (defaults to one built from config)
        agent: AI collaborator (defaults to one built from config when `ai.enabled`)
        relay: Pre-built relay (defaults to an MCP relay built from config)

    Returns:
        Dictionary with run results. Relay failures are re-raised after the
        local fallback file has been written.
    """
    started = perf_counter()
    started_at = datetime.now(timezone.utc).isoformat()
    storage_cfg = get_storage_config(config)
    ai_cfg = get_ai_config(config)
    mcp_cfg = get_mcp_config(config)
    search_terms = get_search_terms(config)

    orchestrator = orchestrator or ScrapeOrchestrator.from_config(config, headless=headless)
    if agent is None and ai_cfg.get("enabled", False):
        agent = AIStorageAgent.from_config(ai_cfg, search_terms)

    logger.info("Starting hardware price scrape...")
    result = await orchestrator.scrape_all(get_stores(config), search_terms)

    if agent is not None and ai_cfg.get("dedup", True):
        products = await asyncio.to_thread(agent.deduplicate_products, result.products)
        result = ScrapingResult(products=products, errors=result.errors)

    logger.info("\n" + generate_fallback_report(result))

    insights = None
    if agent is not None and ai_cfg.get("insights", False):
        insights = await asyncio.to_thread(agent.generate_insights, result)

    scrape_id = database.save_products(result.products)

    results: Dict[str, Any] = {
        "scrape_id": scrape_id,
        "started_at": started_at,
        "products_scraped": len(result.products),
        "products": [p.to_dict() for p in result.products],
        "errors": list(result.errors),
        "status": "completed" if not result.errors else "partial",
        "insights": insights,
    }

    if storage_cfg.get("export_json", False):
        results["export_path"] = save_results_file(result, storage_cfg.get("fallback_dir", "data/exports"))

    if relay_enabled is None:
        relay_enabled = bool(mcp_cfg.get("enabled", False))
    if relay_enabled:
        relay = relay or McpRelay(McpClient.from_config(mcp_cfg), agent)
        try:
            results["relay_response"] = await relay.relay(result)
        except Exception as e:
            logger.error(f"Relay to remote storage failed, writing local fallback: {e}")
            save_results_file(result, storage_cfg.get("fallback_dir", "data/exports"))
            raise

    results["completed_at"] = datetime.now(timezone.utc).isoformat()
    results["duration_seconds"] = round(perf_counter() - started, 3)
    logger.info(
        f"Scrape {scrape_id} {results['status']}: {results['products_scraped']} products, "
        f"{len(results['errors'])} errors in {results['duration_seconds']}s"
    )
    return results
