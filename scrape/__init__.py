"""Schedule extraction: browser rendering, HTML parsing and the data model."""

from __future__ import annotations

from .extract import browser_fetcher, extract_schedule, scrape_tv_shows
from .models import (
    DEGRADED_SNAPSHOT,
    Degraded,
    Extracted,
    ExtractionResult,
    ScheduleSnapshot,
    ShowEntry,
)
from .parse_page import parse_schedule_html

__all__ = [
    "DEGRADED_SNAPSHOT",
    "Degraded",
    "Extracted",
    "ExtractionResult",
    "ScheduleSnapshot",
    "ShowEntry",
    "browser_fetcher",
    "extract_schedule",
    "parse_schedule_html",
    "scrape_tv_shows",
]
