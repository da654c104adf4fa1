"""Telegram core primitives: Bot API client and JSON persistence helpers."""

from __future__ import annotations

import json
import os
import urllib.error as _urlerr
import urllib.request
from typing import Any

from loguru import logger

# -------------------- API --------------------


class TelegramAPIError(Exception):
    """The Bot API answered with ok=false (or an HTTP error carrying a description)."""

    def __init__(self, method: str, description: str, *, error_code: int | None = None) -> None:
        super().__init__(f"{method}: {description}")
        self.method = method
        self.description = description
        self.error_code = error_code


class TelegramAPI:
    """Thin HTTP wrapper for Telegram Bot API using stdlib only."""

    def __init__(
        self, token: str, *, api_base: str = "https://api.telegram.org", timeout: int = 25
    ) -> None:
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def call(self, method: str, params: dict | None = None, *, timeout: int | None = None) -> Any:
        """Call `method` and return its `result`; raise TelegramAPIError when not ok."""

        url = f"{self.api_base}/bot{self.token}/{method}"
        data = None
        headers = {"Content-Type": "application/json"}
        if params is not None:
            data = json.dumps(params).encode("utf-8")
        req = urllib.request.Request(url, data=data, headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=timeout or self.timeout) as resp:
                payload = json.loads(resp.read())
        except _urlerr.HTTPError as e:
            txt = e.read().decode("utf-8", errors="ignore") if hasattr(e, "read") else ""
            try:
                description = json.loads(txt).get("description") or txt
            except ValueError:
                description = txt or str(e.reason)
            raise TelegramAPIError(method, description, error_code=e.code) from e
        if not payload.get("ok"):
            raise TelegramAPIError(
                method,
                payload.get("description") or "unknown error",
                error_code=payload.get("error_code"),
            )
        return payload.get("result")

    # Convenience wrappers
    def send_message(
        self,
        chat_id: int | str,
        text: str,
        *,
        parse_mode: str | None = None,
        message_thread_id: int | None = None,
        disable_web_page_preview: bool = True,
    ) -> dict:
        params: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": disable_web_page_preview,
        }
        if parse_mode:
            params["parse_mode"] = parse_mode
        if message_thread_id is not None:
            params["message_thread_id"] = message_thread_id
        return self.call("sendMessage", params)

    def send_photo(
        self,
        chat_id: int | str,
        photo: str,
        *,
        caption: str | None = None,
        parse_mode: str | None = None,
        message_thread_id: int | None = None,
    ) -> dict:
        params: dict[str, Any] = {"chat_id": chat_id, "photo": photo}
        if caption:
            params["caption"] = caption
        if parse_mode:
            params["parse_mode"] = parse_mode
        if message_thread_id is not None:
            params["message_thread_id"] = message_thread_id
        return self.call("sendPhoto", params)

    def get_me(self) -> dict:
        return self.call("getMe")

    def get_chat_member(self, chat_id: int | str, user_id: int) -> dict:
        return self.call("getChatMember", {"chat_id": chat_id, "user_id": user_id})

    def get_updates(
        self,
        *,
        offset: int | None = None,
        timeout: int = 25,
        allowed_updates: list[str] | None = None,
    ) -> list[dict]:
        params: dict[str, Any] = {"timeout": timeout}
        if offset is not None:
            params["offset"] = offset
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates
        return self.call("getUpdates", params, timeout=timeout + 5) or []


# -------------------- JSON persistence --------------------


def read_json(path: str, default):
    """Read a JSON file; a missing file returns `default`, other errors propagate."""

    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default


def write_json(path: str, obj) -> None:
    d = os.path.dirname(path)
    if d and not os.path.isdir(d):
        os.makedirs(d, exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)
    logger.debug("Wrote {}", path)
