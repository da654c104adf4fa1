"""Telegram utilities: API, registry, formatter, delivery engine, bot runtime."""

from __future__ import annotations

from .core import TelegramAPI, TelegramAPIError
from .delivery import (
    DeliveryEngine,
    DeliveryOutcome,
    DeliveryReport,
    DeliveryStatus,
    normalize_image_url,
)
from .formatting import NO_SHOWS_MESSAGE, format_shows_message
from .registry import Destination, DestinationRegistry, RegistryUpdate
from .store import FileRegistryStorage, RegistryIOError, SARegistryStorage, get_storage

__all__ = [
    "TelegramAPI",
    "TelegramAPIError",
    "DeliveryEngine",
    "DeliveryOutcome",
    "DeliveryReport",
    "DeliveryStatus",
    "normalize_image_url",
    "NO_SHOWS_MESSAGE",
    "format_shows_message",
    "Destination",
    "DestinationRegistry",
    "RegistryUpdate",
    "FileRegistryStorage",
    "RegistryIOError",
    "SARegistryStorage",
    "get_storage",
]
