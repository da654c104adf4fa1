"""Telegram HTML formatter for the daily TV digest."""

from __future__ import annotations

from collections.abc import Iterable

from scrape.models import ScheduleSnapshot, ShowEntry
from utils.config import DEFAULT_SIGNATURE

PARSE_MODE = "HTML"
NO_SHOWS_MESSAGE = "No TV shows found."


def format_show_line(show: ShowEntry) -> str:
    # Titles go out unescaped; a "<" or "&" in a title can break HTML parse mode
    return f"• <b>{show.title}</b> | {show.time}\n"


def _section(heading: str, shows: Iterable[ShowEntry]) -> str:
    return f"📺 <b>{heading}</b>\n\n" + "".join(format_show_line(s) for s in shows)


def format_shows_message(
    snapshot: ScheduleSnapshot, *, signature: str | None = DEFAULT_SIGNATURE
) -> str:
    """Render the digest: Today, then Tomorrow, then Yesterday.

    Empty Today/Tomorrow sections get a "no shows" line; an empty Yesterday
    section is left out. The signature, when given, is the last line.
    """

    if snapshot.is_empty():
        return NO_SHOWS_MESSAGE

    message = ""
    if snapshot.today:
        message += _section("TV Shows Airing Today:", snapshot.today)
    else:
        message += "📺 <b>No TV shows found for today</b>\n\n"
    message += "\n"

    if snapshot.tomorrow:
        message += _section("TV Shows Airing Tomorrow:", snapshot.tomorrow)
    else:
        message += "📺 <b>No TV shows found for tomorrow</b>\n\n"
    message += "\n"

    if snapshot.yesterday:
        message += _section("TV Shows That Aired Yesterday:", snapshot.yesterday)

    if signature:
        message += f"\n {signature}"
    return message
