"""HTTP API exposing tracker stats, stored products and the scrape trigger."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger

from hwtracker.cli import setup_logging
from hwtracker.config_loader import ensure_directories, load_config
from hwtracker.database import Database
from hwtracker.items import Category
from hwtracker.pipeline import run_pipeline

DEFAULT_LIMIT = 50
MAX_LIMIT = 1000


def _load_api_config():
    try:
        return load_config()
    except FileNotFoundError:
        fallback = Path(__file__).resolve().parents[1] / "config.yaml"
        return load_config(str(fallback))


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = _load_api_config()
    ensure_directories(config)
    setup_logging(config)
    app.state.config = config
    app.state.database = Database.open(config)
    try:
        yield
    finally:
        app.state.database.close()


app = FastAPI(title="Hardware Price Tracker API", version="1.0.0", lifespan=lifespan)


def get_config(request: Request) -> Dict[str, Any]:
    return request.app.state.config


def get_database(request: Request) -> Database:
    return request.app.state.database


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_limit(raw: Optional[str]) -> int:
    """Lenient `?limit=`: anything non-numeric or below 1 means the default."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    if value < 1:
        return DEFAULT_LIMIT
    return min(value, MAX_LIMIT)


def _error(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "timestamp": _timestamp(), **extra},
    )


@app.get("/health")
def health():
    return {"success": True, "status": "ok", "timestamp": _timestamp()}


@app.get("/stats")
def get_stats(database: Database = Depends(get_database)):
    try:
        stats = database.get_product_stats()
    except Exception as e:
        logger.error(f"Stats query failed: {e}")
        return _error(500, str(e))
    return {"success": True, "data": stats, "timestamp": _timestamp()}


@app.get("/products")
def get_products(
    limit: Optional[str] = Query(default=None),
    database: Database = Depends(get_database),
):
    limit = _parse_limit(limit)
    try:
        products = database.get_latest_products(limit)
    except Exception as e:
        logger.error(f"Products query failed: {e}")
        return _error(500, str(e))
    return {
        "success": True,
        "data": [p.to_dict() for p in products],
        "count": len(products),
        "timestamp": _timestamp(),
    }


@app.get("/products/{category}")
def get_products_by_category(
    category: str,
    limit: Optional[str] = Query(default=None),
    database: Database = Depends(get_database),
):
    limit = _parse_limit(limit)
    if category not in {c.value for c in Category}:
        return _error(400, "Invalid category. Must be GPU or CPU")
    try:
        products = database.get_products_by_category(Category(category), limit)
    except Exception as e:
        logger.error(f"Category query failed: {e}")
        return _error(500, str(e))
    return {
        "success": True,
        "data": [p.to_dict() for p in products],
        "count": len(products),
        "category": category,
        "timestamp": _timestamp(),
    }


@app.get("/stores/{store}/products")
def get_products_by_store(
    store: str,
    limit: Optional[str] = Query(default=None),
    database: Database = Depends(get_database),
):
    limit = _parse_limit(limit)
    try:
        products = database.get_products_by_store(store, limit)
    except Exception as e:
        logger.error(f"Store query failed: {e}")
        return _error(500, str(e))
    return {
        "success": True,
        "data": [p.to_dict() for p in products],
        "count": len(products),
        "store": store,
        "timestamp": _timestamp(),
    }


@app.post("/run")
async def run_scrape_job(
    config: Dict[str, Any] = Depends(get_config),
    database: Database = Depends(get_database),
):
    started = perf_counter()
    request_id = uuid.uuid4().hex[:7]
    logger.info(f"[{request_id}] Starting scraping job...")

    try:
        results = await run_pipeline(config, database)
    except Exception as e:
        duration_ms = int((perf_counter() - started) * 1000)
        logger.exception(f"[{request_id}] Scraping failed after {duration_ms}ms")
        return _error(
            500,
            str(e) or type(e).__name__,
            requestId=request_id,
            duration=f"{duration_ms}ms",
            message="Scraping failed",
        )

    duration_ms = int((perf_counter() - started) * 1000)
    logger.info(f"[{request_id}] Scraping completed successfully in {duration_ms}ms")
    return {
        "success": True,
        "requestId": request_id,
        "duration": f"{duration_ms}ms",
        "timestamp": _timestamp(),
        "message": "Scraping completed successfully",
        "data": {
            "scrape_id": results.get("scrape_id"),
            "status": results.get("status"),
            "products_scraped": results.get("products_scraped", 0),
            "errors": results.get("errors", []),
        },
    }
