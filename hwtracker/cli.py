"""Command-line interface for the hardware price tracker."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from hwtracker.config_loader import ensure_directories, get_stores, load_config
from hwtracker.database import Database
from hwtracker.items import Category
from hwtracker.pipeline import run_pipeline


def setup_logging(config: dict):
    """Setup logging configuration."""
    log_config = config.get("logging", {})
    level = log_config.get("level", "INFO")
    log_file = log_config.get("file", "data/logs/tracker.log")

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}",
    )
    logger.add(
        log_file,
        level=level,
        rotation=log_config.get("rotation", "1 week"),
        retention=log_config.get("retention", "1 month"),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name} | {message}",
    )


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """Hardware price tracker - GPU/CPU listings across Dutch web shops."""
    ctx.ensure_object(dict)

    try:
        cfg = load_config(config)
        if verbose:
            cfg.setdefault("logging", {})["level"] = "DEBUG"
        ctx.obj["config"] = cfg
        ctx.obj["config_path"] = config

        ensure_directories(cfg)
        setup_logging(cfg)

        logger.info("Hardware price tracker initialized")

    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


@cli.command("init-db")
@click.option("--backend", type=click.Choice(["sqlite", "postgresql"]), default=None, help="Database backend")
@click.pass_context
def init_db_command(ctx, backend: Optional[str]):
    """Create database tables."""
    with Database.open(ctx.obj["config"], backend):
        click.echo("Database initialized")


@cli.command()
@click.option("--headless/--no-headless", default=None, help="Run browser in headless mode")
@click.option("--backend", type=click.Choice(["sqlite", "postgresql"]), default=None, help="Database backend")
@click.option("--relay/--no-relay", default=None, help="Send results to the remote storage tool")
@click.pass_context
def scrape(ctx, headless: Optional[bool], backend: Optional[str], relay: Optional[bool]):
    """Run one scrape cycle over all configured stores and search terms."""
    config = ctx.obj["config"]
    stores = get_stores(config)
    logger.info(f"Starting scrape: stores={[s.name for s in stores]}, headless={headless}, relay={relay}")

    try:
        with Database.open(config, backend) as database:
            results = asyncio.run(
                run_pipeline(config, database, headless=headless, relay_enabled=relay)
            )
    except Exception as e:
        logger.exception("Scrape failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"\n{'='*70}")
    click.echo("SCRAPE RESULTS")
    click.echo(f"{'='*70}")
    click.echo(f"Status: {results.get('status', 'unknown')}")
    click.echo(f"Scrape ID: {results.get('scrape_id')}")
    click.echo(f"Products scraped: {results.get('products_scraped', 0)}")
    click.echo(f"Duration: {results.get('duration_seconds')}s")

    if results.get("errors"):
        click.echo(f"\nErrors ({len(results['errors'])}):")
        for error in results["errors"][:5]:
            click.echo(f"  - {error}")
    click.echo("=" * 70)


@cli.command()
@click.option("--category", type=click.Choice([c.value for c in Category]), default=None)
@click.option("--store", default=None, help="Only products from this store")
@click.option("--limit", "-n", type=int, default=50, show_default=True)
@click.pass_context
def products(ctx, category: Optional[str], store: Optional[str], limit: int):
    """List the most recently stored products."""
    with Database.open(ctx.obj["config"]) as database:
        if category:
            rows = database.get_products_by_category(Category(category), limit)
        elif store:
            rows = database.get_products_by_store(store, limit)
        else:
            rows = database.get_latest_products(limit)

    if not rows:
        click.echo("No products stored yet.")
        return
    for item in rows:
        click.echo(f"[{item.category.value}] {item.name} | €{item.price:.2f} | {item.store}")
        click.echo(f"    {item.url}")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show product counts per category and known stores."""
    with Database.open(ctx.obj["config"]) as database:
        data = database.get_product_stats()

    click.echo(f"Total items: {data['total']}")
    click.echo(f"GPUs: {data['gpu']}")
    click.echo(f"CPUs: {data['cpu']}")
    click.echo(f"Stores: {', '.join(data['stores']) or '-'}")


@cli.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Bind port")
@click.pass_context
def serve(ctx, host: Optional[str], port: Optional[int]):
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    api_cfg = ctx.obj["config"].get("api", {})
    uvicorn.run(
        "hwtracker.api:app",
        host=host or api_cfg.get("host", "0.0.0.0"),
        port=int(port or api_cfg.get("port", 3000)),
        log_level=str(ctx.obj["config"].get("logging", {}).get("level", "info")).lower(),
    )


if __name__ == "__main__":
    cli()
