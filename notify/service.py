"""Digest service: owns the registry, the transport and the bot identity cache.

Command handlers and the scheduled job receive this object instead of reaching
for module-level state.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from functools import partial

from loguru import logger

from scrape import ExtractionResult, scrape_tv_shows
from utils.config import AppConfig

from .telegram_bot.core import TelegramAPI
from .telegram_bot.delivery import DeliveryEngine, DeliveryOutcome, DeliveryReport
from .telegram_bot.formatting import format_shows_message
from .telegram_bot.registry import ChatId, Destination, DestinationRegistry
from .telegram_bot.store import get_storage

Extractor = Callable[[], ExtractionResult]


class DigestService:
    def __init__(
        self,
        cfg: AppConfig,
        *,
        api: TelegramAPI | None = None,
        registry: DestinationRegistry | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        self.cfg = cfg
        self.api = api if api is not None else TelegramAPI(cfg.bot_token)
        if registry is None:
            registry = DestinationRegistry(get_storage(cfg.database_url, cfg.storage_path))
        self.registry = registry
        self.extractor: Extractor = (
            extractor if extractor is not None else partial(scrape_tv_shows, cfg)
        )
        self.engine = DeliveryEngine(
            self.api, max_workers=cfg.delivery_workers, base_url=cfg.base_url
        )
        self._bot_info: dict | None = None
        self._bot_info_lock = threading.Lock()

    # Lifecycle
    def start(self) -> None:
        self.registry.load()
        try:
            info = self.bot_info()
            logger.info("Bot initialized: @{} (ID: {})", info.get("username"), info.get("id"))
        except Exception as e:
            logger.error("Failed to fetch bot info (will retry on demand): {}", e)

    def shutdown(self) -> None:
        logger.info("Saving groups before exit")
        self.registry.save()

    def bot_info(self, *, refresh: bool = False) -> dict:
        """Return the cached `getMe` result, fetching it when missing."""

        with self._bot_info_lock:
            if self._bot_info is None or refresh:
                self._bot_info = self.api.get_me()
            return self._bot_info

    # Digest
    def build_digest(self) -> tuple[ExtractionResult, str]:
        result = self.extractor()
        if result.degraded:
            logger.warning("Extraction degraded: {}", getattr(result, "reason", ""))
        message = format_shows_message(result.snapshot, signature=self.cfg.message_signature)
        return result, message

    def run_scheduled(self) -> DeliveryReport:
        """Scrape once and deliver to every authorized destination."""

        logger.info("Scheduled update triggered")
        result, message = self.build_digest()
        destinations = self.registry.all()
        return self.engine.deliver(result.snapshot, message, destinations)

    def run_manual(self, chat_id: ChatId) -> DeliveryOutcome:
        """Scrape once and deliver to `chat_id` only, routed to its stored topic."""

        dest = Destination(chat_id, self.registry.topic_of(chat_id))
        result, message = self.build_digest()
        return self.engine.deliver_one(result.snapshot, message, dest)
