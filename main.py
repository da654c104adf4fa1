"""Zero-CLI entrypoint and application orchestration.

Reads configuration from `.env.config` and environment variables, then wires
the digest service (registry load → bot identity), the cron trigger and the
Telegram long-polling loop, and saves the registry on the way out.
"""

from __future__ import annotations

import signal
import sys

from loguru import logger

from notify.scheduler import DigestScheduler
from notify.service import DigestService
from notify.telegram_bot.runtime import TelegramBot, start_bot_background
from utils.config import AppConfig, ConfigError, load_env_config, setup_logging


def _exit_on_sigterm(signum, frame) -> None:  # noqa: ARG001
    raise SystemExit(0)


def run(env_path: str = ".env.config") -> None:
    try:
        cfg: AppConfig = load_env_config(env_path)
    except ConfigError as ce:
        logger.error("Configuration error: {}", ce)
        sys.exit(2)

    setup_logging(level=cfg.log_level, log_file=cfg.log_file, color=cfg.log_color)
    logger.debug(
        "Startup parameters: schedule='{}', tz={}, default_topic={}, storage={}, headless={}",
        cfg.schedule_time,
        cfg.schedule_timezone or "local",
        cfg.default_topic_id,
        "database" if cfg.database_url else cfg.storage_path,
        cfg.headless,
    )

    logger.info("Starting TV Show Telegram Bot...")
    service = DigestService(cfg)
    service.start()

    scheduler = DigestScheduler(service, cfg.schedule_time, timezone=cfg.schedule_timezone)
    bot = TelegramBot(service)
    signal.signal(signal.SIGTERM, _exit_on_sigterm)
    try:
        scheduler.start()
        bot_thread = start_bot_background(bot)
        logger.info("Bot is running. Press Ctrl+C to exit…")
        while bot_thread.is_alive():
            bot_thread.join(timeout=1.0)
    except KeyboardInterrupt:
        logger.info("Stopping on Ctrl+C")
    finally:
        bot.stop()
        scheduler.shutdown()
        service.shutdown()


if __name__ == "__main__":
    run(".env.config")
