"""Telegram bot runtime: command handling and the long-polling loop."""

from __future__ import annotations

import re
import threading
import urllib.error as _urlerr
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from loguru import logger

from utils import logged_sleep

from .core import TelegramAPIError
from .registry import ChatId, RegistryUpdate

if TYPE_CHECKING:
    from notify.service import DigestService

TOPIC_ID_RE = re.compile(r"\d+", re.ASCII)
MANUAL_UPDATE_WORKERS = 2

COMMAND_RE = re.compile(r"^/(?P<cmd>[A-Za-z0-9_]+)(?:@(?P<bot>\S+))?(?:\s+(?P<args>.*))?$", re.S)

NOT_AUTHORIZED_TEXT = (
    "This group is not authorized. Please use /start to authorize the bot first."
)


def parse_command(text: str) -> tuple[str, str | None, str] | None:
    """Split "/cmd@bot args" into (cmd, bot, args); None if `text` is not a command."""

    m = COMMAND_RE.match((text or "").strip())
    if not m:
        return None
    return m.group("cmd").lower(), m.group("bot"), (m.group("args") or "").strip()


class TelegramBot:
    """Handles /start, /settopic and /update for a DigestService."""

    def __init__(self, service: DigestService) -> None:
        self.service = service
        self.api = service.api
        self.registry = service.registry
        self.default_topic_id = service.cfg.default_topic_id
        self._stop = threading.Event()
        self._manual_pool = ThreadPoolExecutor(
            max_workers=MANUAL_UPDATE_WORKERS, thread_name_prefix="manual-update"
        )

    def _reply(self, chat_id: ChatId, text: str, thread_id: int | None = None) -> None:
        try:
            self.api.send_message(chat_id, text, message_thread_id=thread_id)
        except Exception:
            logger.exception("Could not send a reply to chat {}", chat_id)

    def _addressed_to_someone_else(self, bot: str | None) -> bool:
        if not bot:
            return False
        try:
            username = self.service.bot_info().get("username") or ""
        except Exception:
            return False
        return bool(username) and bot.lower() != username.lower()

    # Commands
    def cmd_start(self, chat: Mapping[str, Any], thread_id: int | None) -> None:
        chat_id = chat["id"]
        if chat.get("type") == "private":
            self._reply(
                chat_id,
                "Please add me to a group and make me an administrator to enable daily updates.",
            )
            return

        try:
            bot_id = self.service.bot_info()["id"]
        except Exception as e:
            logger.error("Failed to get bot info: {}", e)
            self._reply(
                chat_id,
                "An error occurred while initializing the bot. Please try again later.",
                thread_id,
            )
            return

        try:
            logger.info("Checking admin status for group {}", chat_id)
            member = self.api.get_chat_member(chat_id, bot_id)
        except (TelegramAPIError, _urlerr.URLError, OSError) as e:
            logger.error("Error checking admin status in group {}: {}", chat_id, e)
            self._reply(
                chat_id,
                "An error occurred while checking permissions. "
                "Please ensure the bot is an administrator and try again.",
                thread_id,
            )
            return

        status = (member or {}).get("status")
        if status != "administrator":
            logger.warning("Bot is not an admin in group {}. Current status: {}", chat_id, status)
            self._reply(
                chat_id, "Please make me an administrator to enable daily updates.", thread_id
            )
            return

        topic_id = thread_id or self.default_topic_id
        self.registry.authorize(chat_id, topic_id)
        if thread_id:
            where = f"and will send updates to this topic (ID: {thread_id})"
        elif self.default_topic_id:
            where = (
                "and will send updates to the configured default topic "
                f"(ID: {self.default_topic_id})"
            )
        else:
            where = "and will send updates to the general section"
        self._reply(chat_id, f"Bot is now active {where}!", thread_id)
        logger.info("Bot authorized in group {}, topic {}", chat_id, topic_id or "general")

    def cmd_settopic(self, chat: Mapping[str, Any], thread_id: int | None, args: str) -> None:
        chat_id = chat["id"]
        first = args.split()[0] if args else ""
        explicit = int(first) if TOPIC_ID_RE.fullmatch(first) else None
        topic_id = explicit or thread_id or None

        if self.registry.set_topic(chat_id, topic_id) is RegistryUpdate.NOT_AUTHORIZED:
            self._reply(chat_id, NOT_AUTHORIZED_TEXT, thread_id)
            return

        if topic_id:
            text = f"Bot will now send updates to topic ID: {topic_id}"
        else:
            text = "Bot will now send updates to the general section"
        self._reply(chat_id, text, thread_id)
        logger.info("Updated topic for group {} to {}", chat_id, topic_id or "general")

    def cmd_update(self, chat: Mapping[str, Any], thread_id: int | None) -> Future | None:
        """Acknowledge, then scrape and deliver on a worker so polling keeps going."""

        chat_id = chat["id"]
        if not self.registry.is_authorized(chat_id):
            self._reply(chat_id, NOT_AUTHORIZED_TEXT, thread_id)
            return None

        reply_to = thread_id or self.registry.topic_of(chat_id)
        self._reply(chat_id, "Fetching today's TV shows...", reply_to)
        return self._manual_pool.submit(self._run_manual, chat_id, reply_to)

    def _run_manual(self, chat_id: ChatId, reply_to: int | None) -> None:
        try:
            outcome = self.service.run_manual(chat_id)
            reason = outcome.reason
            ok = outcome.ok
        except Exception as e:
            logger.exception("Manual update crashed for group {}", chat_id)
            reason = str(e) or type(e).__name__
            ok = False
        if not ok:
            logger.error("Manual update failed for group {}: {}", chat_id, reason)
            self._reply(
                chat_id,
                "An error occurred while fetching TV shows. Please try again later.",
                reply_to,
            )

    def handle_message(self, message: Mapping[str, Any]) -> None:
        chat = message.get("chat") or {}
        text = message.get("text") or ""
        if not chat.get("id") or not text:
            return
        parsed = parse_command(text)
        if parsed is None:
            return
        cmd, bot, args = parsed
        if self._addressed_to_someone_else(bot):
            return
        thread_id = message.get("message_thread_id")

        if cmd == "start":
            self.cmd_start(chat, thread_id)
        elif cmd == "settopic":
            self.cmd_settopic(chat, thread_id, args)
        elif cmd == "update":
            self.cmd_update(chat, thread_id)

    # Long-polling loop
    def stop(self, *, wait: bool = False) -> None:
        """Stop polling; with `wait`, also let in-flight manual updates finish."""

        self._stop.set()
        self._manual_pool.shutdown(wait=wait)

    def poll_forever(self, *, long_poll_timeout: int = 25, sleep_on_error: int = 3) -> None:
        logger.info("Starting Telegram bot (long polling)…")
        try:
            self.api.call("deleteWebhook", {"drop_pending_updates": False})
        except Exception:
            logger.debug("Could not remove webhook; continuing with long polling")
        offset: int | None = None
        fail_streak = 0
        while not self._stop.is_set():
            try:
                updates = self.api.get_updates(
                    offset=offset, timeout=long_poll_timeout, allowed_updates=["message"]
                )
                for upd in updates:
                    offset = upd.get("update_id", 0) + 1
                    msg = upd.get("message") or {}
                    try:
                        self.handle_message(msg)
                    except Exception:
                        logger.exception("Failed to process update {}", upd.get("update_id"))
                fail_streak = 0
            except (TelegramAPIError, _urlerr.URLError, OSError, ValueError) as e:
                fail_streak += 1
                backoff = min(60, sleep_on_error * (2 ** min(fail_streak, 3)))
                logger.warning(
                    "Long polling failed: {}. Retrying in {} s",
                    str(e).splitlines()[0] if str(e) else type(e).__name__,
                    backoff,
                )
                logged_sleep(backoff, message="Pause after long polling error")
            except Exception as e:
                fail_streak += 1
                backoff = min(60, sleep_on_error * (2 ** min(fail_streak, 3)))
                logger.warning(
                    "Unexpected long polling error: {!r}. Retrying in {} s", e, backoff
                )
                logged_sleep(backoff, message="Pause after long polling error")
        logger.info("Telegram bot stopped")


def start_bot_background(
    bot: TelegramBot,
    *,
    long_poll_timeout: int = 25,
    sleep_on_error: int = 3,
) -> threading.Thread:
    """Run `bot.poll_forever` in a daemon thread and return the thread."""

    t = threading.Thread(
        target=bot.poll_forever,
        kwargs={"long_poll_timeout": long_poll_timeout, "sleep_on_error": sleep_on_error},
        name="telegram-polling",
        daemon=True,
    )
    t.start()
    logger.info("Telegram bot started in background (long polling)…")
    return t
