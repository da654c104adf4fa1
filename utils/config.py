from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass, field

from apscheduler.triggers.cron import CronTrigger
from dotenv import load_dotenv
from loguru import logger


class ConfigError(Exception):
    pass


BASE_URL = "https://next-episode.net"
DEFAULT_SCHEDULE_TIME = "0 9 * * *"
DEFAULT_SIGNATURE = "@EpiWatch_bot"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


def env_get(key: str, *aliases: str, default: str | None = None) -> str | None:
    """Return the first non-empty value from env among `key` and `aliases`."""

    for k in (key, *aliases):
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v
    return default


def env_get_bool(key: str, *aliases: str, default: bool | None = None) -> bool | None:
    """Parse a boolean value from env for `key`/`aliases` if present."""

    v = env_get(key, *aliases)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_get_int(key: str, *aliases: str, default: int | None = None) -> int | None:
    """Parse an integer from env; malformed values fall back to `default` with a warning."""

    v = env_get(key, *aliases)
    if v is None:
        return default
    try:
        return int(str(v).strip())
    except ValueError:
        logger.warning("Ignoring non-integer value for {}: {!r}", key, v)
        return default


@dataclass
class AppConfig:
    bot_token: str
    schedule_time: str = DEFAULT_SCHEDULE_TIME
    schedule_timezone: str | None = None
    default_topic_id: int | None = None
    base_url: str = BASE_URL
    # Registry persistence
    storage_path: str = "data/groups.json"
    database_url: str | None = None
    # Message
    message_signature: str = DEFAULT_SIGNATURE
    # Browser
    headless: bool = True
    chrome_args: list[str] = field(default_factory=list)
    user_agent: str = DEFAULT_USER_AGENT
    browser_startup_timeout: int = 60
    page_load_timeout: int = 60
    ready_timeout: int = 30
    debug_screenshot_dir: str | None = None
    # Fan-out
    delivery_workers: int = 1
    # Logging
    log_level: str = "INFO"
    log_file: str | None = None
    log_color: bool | None = None


def load_env_config(env_path: str = ".env.config") -> AppConfig:
    """Load configuration from a .env-style file and the environment.

    Raises ConfigError when BOT_TOKEN is missing or SCHEDULE_TIME is not a
    valid crontab expression.
    """

    def _try_load(paths: list[str]) -> bool:
        for p in paths:
            if p and os.path.isfile(p) and load_dotenv(p):
                logger.debug("Loaded config file: {}", p)
                return True
        return False

    candidates: list[str] = []
    if env_path:
        if os.path.isabs(env_path):
            candidates.append(env_path)
        else:
            candidates.append(os.path.join(os.getcwd(), env_path))
    env_file_env = os.getenv("ENV_FILE")
    if env_file_env:
        candidates.insert(0, env_file_env)
    _try_load(candidates)

    bot_token = env_get("BOT_TOKEN", "TELEGRAM_BOT_TOKEN")
    if not bot_token:
        msg = "BOT_TOKEN is not set (environment or .env.config)"
        logger.error(msg)
        raise ConfigError(msg)

    schedule_time = (env_get("SCHEDULE_TIME", default=DEFAULT_SCHEDULE_TIME) or "").strip()
    schedule_timezone = env_get("SCHEDULE_TIMEZONE", "TZ")
    try:
        CronTrigger.from_crontab(schedule_time, timezone=schedule_timezone)
    except (ValueError, KeyError, LookupError) as e:
        raise ConfigError(f"Invalid SCHEDULE_TIME {schedule_time!r}: {e}") from e

    chrome_args_raw = env_get("CHROME_ARGS")
    chrome_args = shlex.split(chrome_args_raw) if chrome_args_raw else []

    # MESSAGE_SIGNATURE may be set to an empty string to drop the footer
    signature = os.getenv("MESSAGE_SIGNATURE")
    if signature is None:
        signature = DEFAULT_SIGNATURE

    workers = env_get_int("DELIVERY_WORKERS", default=1) or 1

    return AppConfig(
        bot_token=bot_token.strip(),
        schedule_time=schedule_time,
        schedule_timezone=schedule_timezone,
        default_topic_id=env_get_int("DEFAULT_TOPIC_ID"),
        storage_path=env_get("STORAGE_PATH", default="data/groups.json") or "data/groups.json",
        database_url=env_get("DATABASE_URL"),
        message_signature=signature.strip(),
        headless=bool(env_get_bool("HEADLESS", default=True)),
        chrome_args=chrome_args,
        user_agent=env_get("USER_AGENT", default=DEFAULT_USER_AGENT) or DEFAULT_USER_AGENT,
        browser_startup_timeout=env_get_int("BROWSER_STARTUP_TIMEOUT", default=60) or 60,
        page_load_timeout=env_get_int("PAGE_LOAD_TIMEOUT", default=60) or 60,
        ready_timeout=env_get_int("READY_TIMEOUT", default=30) or 30,
        debug_screenshot_dir=env_get("DEBUG_SCREENSHOT_DIR"),
        delivery_workers=max(1, workers),
        log_level=(env_get("LOG_LEVEL", default="INFO") or "INFO").upper(),
        log_file=env_get("LOG_FILE"),
        log_color=env_get_bool("LOG_COLOR", default=None),
    )


def setup_logging(
    level: str = "INFO", log_file: str | None = None, color: bool | None = None
) -> None:
    """Configure loguru sinks for console and optional file."""

    logger.remove()
    fmt_color = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    )
    fmt_plain = (
        "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"
    )
    logger.add(
        sys.stderr,
        level=level,
        colorize=(True if color is None else bool(color)),
        backtrace=True,
        diagnose=False,
        format=fmt_color if (color is None or color) else fmt_plain,
    )
    if log_file:
        # Defaults: rotate at 10 MB, keep a week, compress as zip.
        rotation = env_get("LOG_ROTATION", default="10 MB") or "10 MB"
        retention = env_get("LOG_RETENTION", default="7 days") or "7 days"
        compression = env_get("LOG_COMPRESSION", default="zip") or "zip"
        try:
            d = os.path.dirname(log_file)
            if d and not os.path.exists(d):
                os.makedirs(d, exist_ok=True)
        except OSError as e:
            logger.warning("Could not create log directory for '{}': {}", log_file, e)
        logger.add(
            log_file,
            level=level,
            rotation=rotation,
            retention=retention,
            compression=compression,
            enqueue=True,
            backtrace=True,
            diagnose=False,
            format=fmt_plain,
        )
