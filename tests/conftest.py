import os
import sys

import pytest


def _project_root() -> str:
    here = os.path.dirname(__file__)
    return os.path.abspath(os.path.join(here, os.pardir))


# Ensure project root is importable (so `import scrape` works in tests)
root = _project_root()
if root not in sys.path:
    sys.path.insert(0, root)


HOME_PAGE = """
<html><body>
<table>
  <tr><td>
    <h2>Today's Top TV Episodes</h2>
    <span id="home_today_episodes">
      <div class="homeitem">
        <span style="display:inline"><a href="https://next-episode.net/the-bear"><img
          src="//static.next-episode.net/tv-shows-images/big/the-bear.jpg"
          width="99" height="73" align="left"></a></span>
        <a href="//next-episode.net/the-bear" title="Tonnato">The Bear</a><br>S03E01 - 21:00
      </div>
      <div class="homeitem">
        <a href="//next-episode.net/severance" title="Hello, Ms. Cobel">Severance</a><br>S02E04
      </div>
    </span>
  </td></tr>
  <tr><td>
    <h2>Tomorrow's Top TV Episodes</h2>
    <div class="homeitem">
      <a href="//next-episode.net/andor" title="One Day">Andor</a><br>S02E01
    </div>
  </td></tr>
  <tr><td>
    <h2>Yesterday's Top TV Episodes</h2>
    <div class="homeitem">
      <a href="//next-episode.net/the-last-of-us">The Last of Us</a>
    </div>
  </td></tr>
</table>
</body></html>
"""


@pytest.fixture
def home_page() -> str:
    return HOME_PAGE


class FakeTransport:
    """Records Bot API calls; chats listed in `fail_photo`/`fail_text` raise."""

    def __init__(self, *, fail_photo=(), fail_text=()):
        self.fail_photo = set(fail_photo)
        self.fail_text = set(fail_text)
        self.photos: list[dict] = []
        self.messages: list[dict] = []
        self.chat_members: dict = {}
        self.me = {"id": 4242, "username": "EpiWatch_bot"}

    def send_photo(self, chat_id, photo, *, caption=None, parse_mode=None, message_thread_id=None):
        self.photos.append(
            {
                "chat_id": chat_id,
                "photo": photo,
                "caption": caption,
                "parse_mode": parse_mode,
                "message_thread_id": message_thread_id,
            }
        )
        if chat_id in self.fail_photo:
            raise RuntimeError("Bad Request: wrong file identifier/HTTP URL specified")
        return {"message_id": len(self.photos)}

    def send_message(self, chat_id, text, *, parse_mode=None, message_thread_id=None):
        self.messages.append(
            {
                "chat_id": chat_id,
                "text": text,
                "parse_mode": parse_mode,
                "message_thread_id": message_thread_id,
            }
        )
        if chat_id in self.fail_text:
            raise RuntimeError("Forbidden: bot was kicked from the group chat")
        return {"message_id": len(self.messages)}

    def get_me(self):
        return self.me

    def get_chat_member(self, chat_id, user_id):
        return {"status": self.chat_members.get(chat_id, "member")}


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
