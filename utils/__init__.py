"""Small utilities shared across modules."""

from __future__ import annotations

import time
from collections.abc import Iterable
from typing import Any

from loguru import logger


def logged_sleep(
    total_seconds: float,
    *,
    message: str = "Waiting",
    tick_seconds: float = 1.0,
    bar_width: int = 30,
) -> None:
    """Sleep with a simple textual progress bar logged via loguru.

    - Logs a start message with total seconds.
    - Updates a single-line progress bar every `tick_seconds` using a carriage return.
    - Finishes with a newline and a debug message.
    """

    try:
        total = float(total_seconds)
    except (TypeError, ValueError):
        total = 0.0
    if total <= 0:
        return

    logger.debug("{}: {} s", message, int(total))

    start = time.monotonic()
    end = start + total

    while True:
        now = time.monotonic()
        remaining = max(0.0, end - now)
        elapsed = total - remaining
        frac = min(1.0, elapsed / total)
        filled = int(round(bar_width * frac)) if bar_width > 0 else 0
        empty = bar_width - filled
        bar = (
            "[" + ("█" * filled) + (" " * max(0, empty)) + f"] {int(elapsed):02d}/{int(total):02d}s"
        )
        logger.opt(raw=True).debug("\r" + bar)
        if remaining <= 0:
            break
        sleep_dur = tick_seconds if remaining > tick_seconds else remaining
        time.sleep(sleep_dur)

    logger.opt(raw=True).debug("\n")
    logger.debug("Wait finished")


def _log_samples(label: str, entries: Iterable[Any], *, max_items: int = 5) -> None:
    """Log a handful of parsed show entries for quick visibility in debug logs."""

    for sample in list(entries)[:max_items]:
        logger.debug(
            "Sample ({}): {} | {} | {}",
            label,
            getattr(sample, "title", ""),
            getattr(sample, "time", ""),
            getattr(sample, "episode_label", ""),
        )
