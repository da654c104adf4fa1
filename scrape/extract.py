"""Extraction boundary: page access + parsing, never raising to the caller."""

from __future__ import annotations

from collections.abc import Callable
from functools import partial

from loguru import logger

from utils import _log_samples
from utils.config import AppConfig

from .browser import fetch_rendered_html
from .models import Degraded, Extracted, ExtractionResult
from .parse_page import parse_schedule_html

PageFetcher = Callable[[], str]


def extract_schedule(fetch_page: PageFetcher) -> ExtractionResult:
    """Fetch the page via `fetch_page` and parse it.

    Any failure (browser start, navigation, timeout, parsing) is converted
    into a Degraded result carrying the scraping-error snapshot.
    """

    logger.info("Starting TV show scraping process")
    try:
        html = fetch_page()
        snapshot = parse_schedule_html(html)
    except Exception as e:
        logger.exception("Error scraping TV shows: {}", e)
        return Degraded(reason=str(e).splitlines()[0] if str(e) else type(e).__name__)

    n_yesterday, n_today, n_tomorrow = snapshot.counts()
    logger.info(
        "Scraped {} shows for yesterday, {} for today and {} for tomorrow",
        n_yesterday,
        n_today,
        n_tomorrow,
    )
    _log_samples("today", snapshot.today)
    if snapshot.featured_image_url:
        logger.info("Featured image URL: {}", snapshot.featured_image_url)
    return Extracted(snapshot)


def browser_fetcher(cfg: AppConfig) -> PageFetcher:
    """Return a page fetcher that renders the source page with Selenium."""

    return partial(fetch_rendered_html, cfg)


def scrape_tv_shows(cfg: AppConfig) -> ExtractionResult:
    return extract_schedule(browser_fetcher(cfg))
