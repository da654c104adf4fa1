"""Registry of authorized destinations (chat id -> optional topic id).

On-disk records come in two shapes, decoded once at load time:

- legacy: a bare chat id (``-100123``), meaning "top-level chat, no topic";
- current: ``{"chatId": -100123, "topicId": 42}``.

The shape is detected from the first record. Saving always writes the current
shape, so a legacy file is upgraded on the first save after load.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from .store import BaseRegistryStorage, RegistryIOError

ChatId = int | str


@dataclass(frozen=True)
class Destination:
    chat_id: ChatId
    topic_id: int | None = None


@dataclass(frozen=True)
class LegacyEntry:
    chat_id: ChatId


@dataclass(frozen=True)
class CurrentEntry:
    chat_id: ChatId
    topic_id: int | None


StoredEntry = LegacyEntry | CurrentEntry


class RegistryUpdate(Enum):
    UPDATED = "updated"
    NOT_AUTHORIZED = "not_authorized"


def _is_chat_id(value: Any) -> bool:
    # bool is an int subclass but never a chat id
    return isinstance(value, (int, str)) and not isinstance(value, bool) and value != ""


def _topic_or_none(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def decode_entries(records: Iterable[Any]) -> list[StoredEntry]:
    """Decode raw records, taking the shape from the first one.

    Records that do not match the detected shape are skipped with a warning.
    """

    records = list(records)
    if not records:
        return []
    current = isinstance(records[0], dict)
    out: list[StoredEntry] = []
    for idx, rec in enumerate(records):
        if current:
            if isinstance(rec, dict) and _is_chat_id(rec.get("chatId")):
                out.append(CurrentEntry(rec["chatId"], _topic_or_none(rec.get("topicId"))))
                continue
        elif _is_chat_id(rec):
            out.append(LegacyEntry(rec))
            continue
        logger.warning("Skipping malformed registry record #{}: {!r}", idx, rec)
    return out


def encode_entries(destinations: Iterable[Destination]) -> list[dict[str, Any]]:
    return [{"chatId": d.chat_id, "topicId": d.topic_id} for d in destinations]


class DestinationRegistry:
    """In-memory registry backed by a storage backend.

    Every mutation is persisted immediately; a failed save is logged and the
    in-memory state stays authoritative until the next successful save.
    """

    def __init__(self, storage: BaseRegistryStorage) -> None:
        self.storage = storage
        self._topics: dict[ChatId, int | None] = {}
        self._lock = threading.RLock()

    def load(self) -> DestinationRegistry:
        try:
            raw = self.storage.read()
        except RegistryIOError as e:
            logger.error("Failed to load authorized groups: {}", e)
            raw = None
        if raw is None:
            logger.info("No stored groups found in {!r}, starting empty", self.storage)
            entries: list[StoredEntry] = []
        else:
            entries = decode_entries(raw)

        topics: dict[ChatId, int | None] = {}
        legacy = 0
        for entry in entries:
            if isinstance(entry, LegacyEntry):
                legacy += 1
                topics[entry.chat_id] = None
            else:
                topics[entry.chat_id] = entry.topic_id
        with self._lock:
            self._topics = topics
        if legacy:
            logger.info("Upgraded {} groups from the legacy format (no topic)", legacy)
        logger.info("Loaded {} authorized groups", len(topics))
        return self

    def save(self) -> bool:
        with self._lock:
            records = encode_entries(self._snapshot())
            try:
                self.storage.write(records)
            except RegistryIOError as e:
                logger.error("Failed to save groups: {}", e)
                return False
        logger.info("Saved {} authorized groups to storage", len(records))
        return True

    def authorize(self, chat_id: ChatId, topic_id: int | None = None) -> None:
        """Register `chat_id` (or re-register it) with the given topic; last write wins."""

        with self._lock:
            self._topics[chat_id] = topic_id
            self.save()

    def set_topic(self, chat_id: ChatId, topic_id: int | None) -> RegistryUpdate:
        with self._lock:
            if chat_id not in self._topics:
                return RegistryUpdate.NOT_AUTHORIZED
            self._topics[chat_id] = topic_id
            self.save()
        return RegistryUpdate.UPDATED

    def is_authorized(self, chat_id: ChatId) -> bool:
        with self._lock:
            return chat_id in self._topics

    def topic_of(self, chat_id: ChatId) -> int | None:
        with self._lock:
            return self._topics.get(chat_id)

    def all(self) -> list[Destination]:
        """Return a copy of all destinations, safe to iterate while the registry changes."""

        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> list[Destination]:
        return [Destination(chat_id, topic) for chat_id, topic in self._topics.items()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._topics)

    def __contains__(self, chat_id: object) -> bool:
        with self._lock:
            return chat_id in self._topics
