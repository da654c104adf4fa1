"""Fan-out delivery of a rendered digest to registered destinations.

Each destination is handled on its own: a photo with the digest as caption is
tried first when the snapshot has a featured image, then a text-only message.
A failure on one destination never stops the others.
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from urllib.parse import urljoin, urlparse

from loguru import logger

from scrape.models import ScheduleSnapshot
from utils.config import BASE_URL

from .formatting import PARSE_MODE
from .registry import ChatId, Destination


class Transport(Protocol):
    def send_message(
        self,
        chat_id: ChatId,
        text: str,
        *,
        parse_mode: str | None = ...,
        message_thread_id: int | None = ...,
    ) -> Any: ...

    def send_photo(
        self,
        chat_id: ChatId,
        photo: str,
        *,
        caption: str | None = ...,
        parse_mode: str | None = ...,
        message_thread_id: int | None = ...,
    ) -> Any: ...


class DeliveryStatus(Enum):
    SENT = "sent"
    SENT_DEGRADED = "sent_degraded"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryOutcome:
    chat_id: ChatId
    topic_id: int | None
    status: DeliveryStatus
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not DeliveryStatus.FAILED


@dataclass
class DeliveryReport:
    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, outcome: DeliveryOutcome) -> None:
        with self._lock:
            self.outcomes.append(outcome)

    def counts(self) -> dict[DeliveryStatus, int]:
        with self._lock:
            c = Counter(o.status for o in self.outcomes)
        return {s: c.get(s, 0) for s in DeliveryStatus}

    def outcome_for(self, chat_id: ChatId) -> DeliveryOutcome | None:
        with self._lock:
            return next((o for o in self.outcomes if o.chat_id == chat_id), None)

    def __len__(self) -> int:
        with self._lock:
            return len(self.outcomes)


def normalize_image_url(url: str, *, base_url: str = BASE_URL) -> str:
    """Return an absolute URL: protocol-relative URLs get https, paths are resolved."""

    url = url.strip()
    if url.startswith("//"):
        return "https:" + url
    if urlparse(url).scheme:
        return url
    return urljoin(base_url.rstrip("/") + "/", url)


def _reason(err: Exception) -> str:
    text = str(err).splitlines()[0] if str(err) else ""
    return text or type(err).__name__


def _topic_label(topic_id: int | None) -> str:
    return str(topic_id) if topic_id is not None else "general"


class DeliveryEngine:
    def __init__(
        self,
        transport: Transport,
        *,
        parse_mode: str = PARSE_MODE,
        max_workers: int = 1,
        base_url: str = BASE_URL,
    ) -> None:
        self.transport = transport
        self.parse_mode = parse_mode
        self.max_workers = max(1, int(max_workers))
        self.base_url = base_url

    def _send_text(self, dest: Destination, message: str) -> None:
        self.transport.send_message(
            dest.chat_id,
            message,
            parse_mode=self.parse_mode,
            message_thread_id=dest.topic_id,
        )

    def deliver_one(
        self, snapshot: ScheduleSnapshot, message: str, dest: Destination
    ) -> DeliveryOutcome:
        """Deliver to a single destination: photo+caption first, then text only."""

        topic = _topic_label(dest.topic_id)
        degraded = False
        if snapshot.featured_image_url:
            image_url = normalize_image_url(snapshot.featured_image_url, base_url=self.base_url)
            logger.info("Attempting to send image: {}", image_url)
            try:
                self.transport.send_photo(
                    dest.chat_id,
                    image_url,
                    caption=message,
                    parse_mode=self.parse_mode,
                    message_thread_id=dest.topic_id,
                )
                logger.info("Update with image sent to group {}, topic {}", dest.chat_id, topic)
                return DeliveryOutcome(dest.chat_id, dest.topic_id, DeliveryStatus.SENT)
            except Exception as e:
                logger.error("Error sending image to group {}: {}", dest.chat_id, _reason(e))
                degraded = True

        try:
            self._send_text(dest, message)
        except Exception as e:
            logger.error("Error sending message to group {}: {}", dest.chat_id, _reason(e))
            return DeliveryOutcome(dest.chat_id, dest.topic_id, DeliveryStatus.FAILED, _reason(e))

        if degraded:
            logger.info("Fallback to text-only message for group {}, topic {}", dest.chat_id, topic)
            return DeliveryOutcome(dest.chat_id, dest.topic_id, DeliveryStatus.SENT_DEGRADED)
        logger.info("Update (text only) sent to group {}, topic {}", dest.chat_id, topic)
        return DeliveryOutcome(dest.chat_id, dest.topic_id, DeliveryStatus.SENT)

    def _deliver_into(
        self, report: DeliveryReport, snapshot: ScheduleSnapshot, message: str, dest: Destination
    ) -> None:
        try:
            outcome = self.deliver_one(snapshot, message, dest)
        except Exception as e:
            # deliver_one handles transport errors; this guards the report itself
            logger.exception("Unexpected error delivering to group {}", dest.chat_id)
            outcome = DeliveryOutcome(
                dest.chat_id, dest.topic_id, DeliveryStatus.FAILED, _reason(e)
            )
        report.add(outcome)

    def deliver(
        self,
        snapshot: ScheduleSnapshot,
        message: str,
        destinations: Iterable[Destination],
    ) -> DeliveryReport:
        """Deliver to every destination; the destination list is captured up front."""

        targets = list(destinations)
        report = DeliveryReport()
        if not targets:
            logger.info("No authorized groups; nothing to deliver")
            return report

        if self.max_workers == 1 or len(targets) == 1:
            for dest in targets:
                self._deliver_into(report, snapshot, message, dest)
        else:
            workers = min(self.max_workers, len(targets))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="deliver") as pool:
                for dest in targets:
                    pool.submit(self._deliver_into, report, snapshot, message, dest)

        c = report.counts()
        logger.info(
            "Delivery finished: {} sent, {} sent without image, {} failed",
            c[DeliveryStatus.SENT],
            c[DeliveryStatus.SENT_DEGRADED],
            c[DeliveryStatus.FAILED],
        )
        return report
