from __future__ import annotations

import http.client
import threading

import pytest
from conftest import FakeTransport

from notify.service import DigestService
from notify.telegram_bot.core import TelegramAPIError
from notify.telegram_bot.delivery import DeliveryStatus
from notify.telegram_bot.registry import DestinationRegistry
from notify.telegram_bot.runtime import TelegramBot, parse_command
from notify.telegram_bot.store import FileRegistryStorage
from scrape.models import DEGRADED_SNAPSHOT, Degraded, Extracted, ScheduleSnapshot, ShowEntry
from utils.config import AppConfig

GROUP = {"id": -1001, "type": "supergroup"}
SNAPSHOT = ScheduleSnapshot(
    today=(ShowEntry("The Bear", "S03E01"),), featured_image_url="//cdn.example/bear.jpg"
)


@pytest.fixture
def make_bot(tmp_path, transport):
    def _make(*, default_topic_id=None, extractor=None):
        cfg = AppConfig(bot_token="123:abc", default_topic_id=default_topic_id)
        registry = DestinationRegistry(FileRegistryStorage(str(tmp_path / "groups.json"))).load()
        service = DigestService(
            cfg,
            api=transport,
            registry=registry,
            extractor=extractor or (lambda: Extracted(SNAPSHOT)),
        )
        return TelegramBot(service)

    return _make


def _msg(text, chat=GROUP, thread_id=None):
    m = {"chat": chat, "text": text}
    if thread_id is not None:
        m["message_thread_id"] = thread_id
    return m


def test_parse_command():
    assert parse_command("/settopic 42") == ("settopic", None, "42")
    assert parse_command("/update@EpiWatch_bot") == ("update", "EpiWatch_bot", "")
    assert parse_command("hello /start") is None


def test_start_in_private_chat_does_not_authorize(make_bot, transport):
    bot = make_bot()
    bot.handle_message(_msg("/start", chat={"id": 77, "type": "private"}))
    assert not bot.registry.is_authorized(77)
    assert "add me to a group" in transport.messages[-1]["text"]


def test_start_requires_admin(make_bot, transport):
    bot = make_bot()
    bot.handle_message(_msg("/start"))
    assert not bot.registry.is_authorized(-1001)
    assert "administrator" in transport.messages[-1]["text"]


def test_start_as_admin_uses_thread_then_default_topic(make_bot, transport):
    transport.chat_members[-1001] = "administrator"
    bot = make_bot(default_topic_id=99)

    bot.handle_message(_msg("/start"))
    assert bot.registry.topic_of(-1001) == 99
    assert "default topic (ID: 99)" in transport.messages[-1]["text"]

    bot.handle_message(_msg("/start", thread_id=5))
    assert bot.registry.topic_of(-1001) == 5
    assert transport.messages[-1]["message_thread_id"] == 5


def test_start_reports_permission_check_errors(make_bot, transport):
    def broken(chat_id, user_id):
        raise TelegramAPIError("getChatMember", "Bad Request: chat not found", error_code=400)

    transport.get_chat_member = broken
    bot = make_bot()
    bot.handle_message(_msg("/start"))
    assert not bot.registry.is_authorized(-1001)
    assert "checking permissions" in transport.messages[-1]["text"]


def test_settopic_rejects_unauthorized_chat(make_bot, transport):
    bot = make_bot()
    bot.handle_message(_msg("/settopic 12"))
    assert not bot.registry.is_authorized(-1001)
    assert "not authorized" in transport.messages[-1]["text"]


def test_settopic_explicit_thread_and_general(make_bot, transport):
    bot = make_bot()
    bot.registry.authorize(-1001, None)

    bot.handle_message(_msg("/settopic 12", thread_id=3))
    assert bot.registry.topic_of(-1001) == 12

    bot.handle_message(_msg("/settopic", thread_id=3))
    assert bot.registry.topic_of(-1001) == 3

    bot.handle_message(_msg("/settopic"))
    assert bot.registry.topic_of(-1001) is None
    assert "general section" in transport.messages[-1]["text"]


def test_command_for_another_bot_is_ignored(make_bot, transport):
    bot = make_bot()
    bot.handle_message(_msg("/settopic@OtherBot 12"))
    assert transport.messages == []


def test_update_delivers_to_stored_topic(make_bot, transport):
    bot = make_bot()
    bot.registry.authorize(-1001, 8)

    bot.handle_message(_msg("/update"))
    bot.stop(wait=True)

    assert transport.messages[0]["text"] == "Fetching today's TV shows..."
    assert transport.messages[0]["message_thread_id"] == 8
    assert transport.photos[0]["photo"] == "https://cdn.example/bear.jpg"
    assert transport.photos[0]["message_thread_id"] == 8


def test_update_unauthorized(make_bot, transport):
    calls = []
    bot = make_bot(extractor=lambda: calls.append(1) or Extracted(SNAPSHOT))
    bot.handle_message(_msg("/update"))
    assert calls == []
    assert "not authorized" in transport.messages[-1]["text"]


def test_update_failure_sends_error_notice(tmp_path):
    transport = FakeTransport(fail_photo={-1001})
    cfg = AppConfig(bot_token="123:abc")
    registry = DestinationRegistry(FileRegistryStorage(str(tmp_path / "g.json"))).load()
    registry.authorize(-1001, None)
    service = DigestService(
        cfg, api=transport, registry=registry, extractor=lambda: Extracted(SNAPSHOT)
    )
    # Text sends fail only after the "fetching" notice went out
    real_send = transport.send_message

    def send_message(chat_id, text, **kw):
        if text != "Fetching today's TV shows..." and "error" not in text:
            raise RuntimeError("network down")
        return real_send(chat_id, text, **kw)

    transport.send_message = send_message
    bot = TelegramBot(service)
    bot.handle_message(_msg("/update"))
    bot.stop(wait=True)
    assert "error occurred while fetching" in transport.messages[-1]["text"]


def test_scheduled_run_reaches_every_destination(tmp_path):
    transport = FakeTransport(fail_photo={-2})
    registry = DestinationRegistry(FileRegistryStorage(str(tmp_path / "g.json"))).load()
    for chat_id in (-1, -2, -3):
        registry.authorize(chat_id, None)
    service = DigestService(
        AppConfig(bot_token="t"),
        api=transport,
        registry=registry,
        extractor=lambda: Extracted(SNAPSHOT),
    )

    report = service.run_scheduled()

    assert len(report) == 3
    assert report.outcome_for(-2).status is DeliveryStatus.SENT_DEGRADED
    assert [m["chat_id"] for m in transport.messages] == [-2]


def test_degraded_extraction_still_delivers_sentinel(tmp_path, transport):
    registry = DestinationRegistry(FileRegistryStorage(str(tmp_path / "g.json"))).load()
    registry.authorize(-1, None)
    service = DigestService(
        AppConfig(bot_token="t", message_signature=""),
        api=transport,
        registry=registry,
        extractor=lambda: Degraded(reason="timeout"),
    )

    result, message = service.build_digest()
    assert result.snapshot == DEGRADED_SNAPSHOT
    assert "Scraping Error" in message

    service.run_scheduled()
    assert transport.photos == []
    assert "Scraping Error" in transport.messages[0]["text"]


def test_service_lifecycle_saves_registry(tmp_path, transport):
    path = tmp_path / "g.json"
    path.write_text("[-5]", encoding="utf-8")
    registry = DestinationRegistry(FileRegistryStorage(str(path)))
    service = DigestService(AppConfig(bot_token="t"), api=transport, registry=registry)

    service.start()
    assert registry.is_authorized(-5)
    assert service.bot_info()["username"] == "EpiWatch_bot"

    service.shutdown()
    assert path.read_text(encoding="utf-8").count('"topicId": null') == 1


def test_service_keeps_injected_empty_registry(tmp_path, transport):
    registry = DestinationRegistry(FileRegistryStorage(str(tmp_path / "g.json")))
    assert len(registry) == 0

    service = DigestService(AppConfig(bot_token="t"), api=transport, registry=registry)

    assert service.registry is registry
    assert service.api is transport


def test_settopic_ignores_non_ascii_digits(make_bot, transport):
    bot = make_bot()
    bot.registry.authorize(-1001, None)

    bot.handle_message(_msg("/settopic ²", thread_id=3))

    assert bot.registry.topic_of(-1001) == 3
    assert transport.messages[-1]["text"] == "Bot will now send updates to topic ID: 3"


def test_update_does_not_block_other_commands(make_bot, transport):
    release = threading.Event()

    def slow_extract():
        release.wait(5)
        return Extracted(SNAPSHOT)

    bot = make_bot(extractor=slow_extract)
    bot.registry.authorize(-1001, None)

    bot.handle_message(_msg("/update"))
    bot.handle_message(_msg("/settopic 12"))
    assert bot.registry.topic_of(-1001) == 12
    assert transport.photos == []

    release.set()
    bot.stop(wait=True)
    assert transport.photos[0]["chat_id"] == -1001


def test_polling_survives_errors_and_advances_offset(make_bot, transport):
    bot = make_bot()
    bot.registry.authorize(-1001, None)
    offsets = []

    def get_updates(offset=None, timeout=0, allowed_updates=None):
        offsets.append(offset)
        if len(offsets) == 1:
            raise http.client.IncompleteRead(b"")
        if len(offsets) == 2:
            return [{"update_id": 10, "message": _msg("/settopic 7")}]
        bot.stop()
        return []

    transport.get_updates = get_updates
    bot.poll_forever(long_poll_timeout=0, sleep_on_error=0)

    assert offsets == [None, None, 11]
    assert bot.registry.topic_of(-1001) == 7
