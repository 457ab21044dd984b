"""Command-line interface for the community crawler."""

import asyncio
import logging
import logging.config
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from community_crawler.analytics.metrics_engine import MetricsEngine
from community_crawler.config import Config, load_proxies, normalize_media_mode
from community_crawler.crawl import run_crawl
from community_crawler.exceptions import ConfigurationError
from community_crawler.monitoring.metrics import PrometheusExporter
from community_crawler.storage.database import Database
from community_crawler.storage.repository import CrawlRepository

app = typer.Typer(help="Community Crawler - Polite concurrent crawler with snapshot trend metrics")

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO") -> None:
    """
    Set up logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": log_level,
                "formatter": "standard",
                "filename": "logs/crawler.log",
                "maxBytes": 10485760,  # 10 MB
                "backupCount": 5,
                "encoding": "utf8",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console", "file"],
                "level": log_level,
                "propagate": True
            },
            "asyncio": {"level": "WARNING"},
            "playwright": {"level": "WARNING"},
            "aiohttp": {"level": "WARNING"},
        }
    }

    logging.config.dictConfig(log_config)


def database_url_from(db: str) -> str:
    """Accept either a SQLAlchemy URL or a plain file path (SQLite)."""
    if "://" in db:
        return db
    return f"sqlite:///{db}"


@app.command()
def crawl(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    communities: Annotated[Optional[str], typer.Option("--communities", "--excel", help="Community list (.xlsx, .csv or .txt)")] = None,
    db: Annotated[Optional[str], typer.Option("--db", help="Database URL or SQLite file path")] = None,
    max_pages: Annotated[Optional[int], typer.Option("--max-pages", help="Listing pages per community")] = None,
    headless: Annotated[Optional[bool], typer.Option("--headless/--no-headless", help="Run the browser headless")] = None,
    delay: Annotated[Optional[float], typer.Option("--delay", help="Base delay between items in seconds")] = None,
    user_data_dir: Annotated[Optional[str], typer.Option("--user-data-dir", help="Browser profile root (one subdirectory per worker)")] = None,
    workers: Annotated[Optional[int], typer.Option("--workers", "-w", help="Number of concurrent workers")] = None,
    proxies_file: Annotated[Optional[str], typer.Option("--proxies-file", help="File with one proxy per line")] = None,
    rpm: Annotated[Optional[int], typer.Option("--rpm", help="Global requests per minute")] = None,
    attempts: Annotated[Optional[int], typer.Option("--attempts", help="Navigation attempts before giving up")] = None,
    backoff_base: Annotated[Optional[float], typer.Option("--backoff-base", help="Initial retry backoff in seconds")] = None,
    verbose_429: Annotated[bool, typer.Option("--verbose-429", help="Log rate limit retries")] = False,
    images: Annotated[Optional[str], typer.Option("--images", help="Media mode: embed (base64) or skip (none)")] = None,
    max_replies: Annotated[Optional[int], typer.Option("--max-replies", help="Replies kept per item")] = None,
    loglevel: Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")] = "INFO",
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose output")] = False,
) -> None:
    """
    Crawl every community once and record a new scan.

    Command-line options override values from the configuration file.
    """
    log_level = "DEBUG" if verbose else loglevel
    setup_logging(log_level)

    config_obj = Config.from_files(config)
    if communities is not None:
        config_obj.communities_path = communities
        config_obj.communities = []
    if db is not None:
        config_obj.database_url = database_url_from(db)
    if max_pages is not None:
        config_obj.max_pages = max_pages
    if headless is not None:
        config_obj.browser.headless = headless
    if delay is not None:
        config_obj.item_delay_sec = delay
    if user_data_dir is not None:
        config_obj.browser.user_data_dir = user_data_dir
    if workers is not None:
        config_obj.workers = workers
    if proxies_file is not None:
        config_obj.browser.proxies_file = proxies_file
        config_obj.browser.proxies = load_proxies(proxies_file)
    if rpm is not None:
        config_obj.rate_limit.requests_per_minute = rpm
    if attempts is not None:
        config_obj.retry.max_attempts = attempts
    if backoff_base is not None:
        config_obj.retry.initial_backoff_sec = backoff_base
    if verbose_429:
        config_obj.retry.verbose = True
    if images is not None:
        config_obj.media_mode = normalize_media_mode(images)
    if max_replies is not None:
        config_obj.max_replies_per_item = max_replies

    errors = config_obj.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        logger.critical("Invalid configuration, aborting")
        sys.exit(1)

    prometheus_exporter = None
    if config_obj.monitoring.enable_prometheus:
        prometheus_exporter = PrometheusExporter(port=config_obj.monitoring.prometheus_port)
        prometheus_exporter.start_server()

    logger.info(
        f"Starting crawl (workers={config_obj.workers}, rpm={config_obj.rate_limit.requests_per_minute}, "
        f"max_pages={config_obj.max_pages}, media={config_obj.media_mode})"
    )

    try:
        result = asyncio.run(run_crawl(config_obj, prometheus_exporter=prometheus_exporter))
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {str(e)}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return
    except Exception as e:
        logger.critical(f"Unhandled exception: {str(e)}", exc_info=True)
        sys.exit(1)

    if result is not None:
        typer.echo(f"Scan {result.scan_id}: saved {result.saved} items from {result.communities} communities")


@app.command()
def metrics(
    scan_id: Annotated[Optional[int], typer.Option("--scan-id", help="Scan to (re)compute; defaults to the latest")] = None,
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    db: Annotated[Optional[str], typer.Option("--db", help="Database URL or SQLite file path")] = None,
    top: Annotated[int, typer.Option("--top", help="Number of most viral items to print")] = 10,
    loglevel: Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")] = "INFO",
) -> None:
    """Recompute derived metrics for a scan and print the most viral items."""
    setup_logging(loglevel)

    config_obj = Config.from_files(config)
    database_url = database_url_from(db) if db is not None else config_obj.database_url
    database = Database(database_url)
    try:
        database.create_schema()
        if scan_id is None:
            scan_id = CrawlRepository(database).latest_scan_id()
            if scan_id is None:
                logger.error("No scans recorded yet")
                sys.exit(1)

        engine = MetricsEngine(database, config_obj.metrics.include_first_seen)
        summary = engine.compute(scan_id)
        typer.echo(f"Scan {scan_id}: {summary.item_rows} item metrics, {summary.reply_rows} reply metrics")
        for row in engine.top_items(scan_id, limit=top):
            typer.echo(f"{row.item_id}\tvirality={row.virality_score:.2f}\tscore={row.score}")
    finally:
        database.dispose()


@app.command("init-db")
def init_db(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    db: Annotated[Optional[str], typer.Option("--db", help="Database URL or SQLite file path")] = None,
    loglevel: Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")] = "INFO",
) -> None:
    """Create the crawl schema if it does not exist."""
    setup_logging(loglevel)

    config_obj = Config.from_files(config)
    database = Database(database_url_from(db) if db is not None else config_obj.database_url)
    try:
        if not database.ping():
            sys.exit(1)
        database.create_schema()
        typer.echo("Database schema ready")
    finally:
        database.dispose()


if __name__ == "__main__":
    app()
