"""Schedule data model produced by one extraction pass."""

from __future__ import annotations

from dataclasses import dataclass, field

UNKNOWN_TITLE = "Unknown Title"


@dataclass(frozen=True)
class ShowEntry:
    title: str
    time: str
    episode_label: str = ""


@dataclass(frozen=True)
class ScheduleSnapshot:
    """Three day buckets plus the optional featured image of today's first show."""

    yesterday: tuple[ShowEntry, ...] = ()
    today: tuple[ShowEntry, ...] = ()
    tomorrow: tuple[ShowEntry, ...] = ()
    featured_image_url: str | None = None

    def is_empty(self) -> bool:
        return not (self.yesterday or self.today or self.tomorrow)

    def counts(self) -> tuple[int, int, int]:
        return len(self.yesterday), len(self.today), len(self.tomorrow)


SCRAPING_ERROR_ENTRY = ShowEntry(
    title="Scraping Error", time="N/A", episode_label="manual-check-required"
)

DEGRADED_SNAPSHOT = ScheduleSnapshot(today=(SCRAPING_ERROR_ENTRY,))


@dataclass(frozen=True)
class Extracted:
    snapshot: ScheduleSnapshot
    degraded: bool = field(default=False, init=False)


@dataclass(frozen=True)
class Degraded:
    reason: str
    snapshot: ScheduleSnapshot = DEGRADED_SNAPSHOT
    degraded: bool = field(default=True, init=False)


ExtractionResult = Extracted | Degraded
