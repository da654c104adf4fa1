"""Parse the next-episode.net home page into a ScheduleSnapshot.

Every lookup degrades on its own: a missing section gives an empty bucket and
a missing field gives its fallback value, so partial pages still produce
whatever data they carry.
"""

from __future__ import annotations

from bs4 import BeautifulSoup, NavigableString, Tag

from .models import UNKNOWN_TITLE, ScheduleSnapshot, ShowEntry

TODAY_SECTION = "span#home_today_episodes"
ITEM_SELECTOR = ".homeitem"
TITLE_LINK_SELECTOR = 'a[href^="//next-episode.net/"]'
# Large thumbnail: <span style="display:inline"><a><img width="99" height="73" align="left">
FEATURED_IMAGE_SELECTOR = 'span[style*="display:inline"] a img[align="left"]'
TOMORROW_HEADING = "Tomorrow's Top TV Episodes"
YESTERDAY_HEADING = "Yesterday's Top TV Episodes"
BIG_SEGMENT = "/big/"
HUGE_SEGMENT = "/huge/"

_PARSER = "html.parser"


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", _PARSER)


def _text_after_first_br(item: Tag) -> str:
    br = item.find("br")
    if br is None:
        return ""
    nxt = br.next_sibling
    if nxt is None:
        return ""
    if isinstance(nxt, NavigableString):
        return str(nxt).strip()
    return nxt.get_text().strip()


def parse_item(item: Tag, day_name: str) -> ShowEntry:
    """Build one ShowEntry from a `.homeitem` element."""

    link = item.select_one(TITLE_LINK_SELECTOR)
    title = link.get_text().strip() if link is not None else ""
    label = link.get("title") if link is not None else None
    return ShowEntry(
        title=title or UNKNOWN_TITLE,
        time=_text_after_first_br(item) or day_name,
        episode_label=(label or "").strip() if isinstance(label, str) else "",
    )


def _items_of(section: Tag | None) -> list[Tag]:
    if section is None:
        return []
    return section.select(ITEM_SELECTOR)


def _section_by_heading(soup: BeautifulSoup, heading_text: str) -> Tag | None:
    """Return the table row enclosing the first <h2> that contains `heading_text`."""

    for h in soup.find_all("h2"):
        if heading_text in h.get_text():
            return h.find_parent("tr")
    return None


def _upsize(src: str) -> str:
    return src.replace(BIG_SEGMENT, HUGE_SEGMENT, 1)


def find_featured_image(first_item: Tag) -> str | None:
    """Return the high-resolution thumbnail URL of a show item, if any.

    The fingerprinted thumbnail wins when present (and must be a "big" one);
    only when it is missing are the item's other images scanned.
    """

    img = first_item.select_one(FEATURED_IMAGE_SELECTOR)
    if img is not None:
        src = img.get("src") or ""
        return _upsize(src) if BIG_SEGMENT in src else None

    for candidate in first_item.find_all("img"):
        src = candidate.get("src") or ""
        if BIG_SEGMENT in src:
            return _upsize(src)
    return None


def parse_schedule_html(html: str) -> ScheduleSnapshot:
    soup = parse_html(html)

    today_items = _items_of(soup.select_one(TODAY_SECTION))
    tomorrow_items = _items_of(_section_by_heading(soup, TOMORROW_HEADING))
    yesterday_items = _items_of(_section_by_heading(soup, YESTERDAY_HEADING))

    featured = find_featured_image(today_items[0]) if today_items else None

    return ScheduleSnapshot(
        yesterday=tuple(parse_item(it, "Yesterday") for it in yesterday_items),
        today=tuple(parse_item(it, "Today") for it in today_items),
        tomorrow=tuple(parse_item(it, "Tomorrow") for it in tomorrow_items),
        featured_image_url=featured,
    )
