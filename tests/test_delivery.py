from __future__ import annotations

import pytest
from conftest import FakeTransport

from notify.telegram_bot.delivery import DeliveryEngine, DeliveryStatus, normalize_image_url
from notify.telegram_bot.registry import Destination
from scrape.models import ScheduleSnapshot, ShowEntry

TODAY = (ShowEntry("The Bear", "S03E01"),)
WITH_IMAGE = ScheduleSnapshot(today=TODAY, featured_image_url="//cdn.example/img.jpg")
WITHOUT_IMAGE = ScheduleSnapshot(today=TODAY)
DESTS = [Destination(-1, None), Destination(-2, 15), Destination(-3, None)]


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("//cdn.example/img.jpg", "https://cdn.example/img.jpg"),
        ("https://cdn.example/img.jpg", "https://cdn.example/img.jpg"),
        ("http://cdn.example/img.jpg", "http://cdn.example/img.jpg"),
        ("/images/huge/a.jpg", "https://next-episode.net/images/huge/a.jpg"),
    ],
)
def test_normalize_image_url(url, expected):
    assert normalize_image_url(url) == expected


def test_photo_sent_with_https_url_and_topic_routing(transport):
    report = DeliveryEngine(transport).deliver(WITH_IMAGE, "digest", DESTS)

    assert [p["photo"] for p in transport.photos] == ["https://cdn.example/img.jpg"] * 3
    assert [p["message_thread_id"] for p in transport.photos] == [None, 15, None]
    assert all(p["caption"] == "digest" and p["parse_mode"] == "HTML" for p in transport.photos)
    assert transport.messages == []
    assert [o.status for o in report.outcomes] == [DeliveryStatus.SENT] * 3


def test_photo_failure_falls_back_to_text_for_that_destination_only():
    transport = FakeTransport(fail_photo={-2})
    report = DeliveryEngine(transport).deliver(WITH_IMAGE, "digest", DESTS)

    assert len(report) == 3
    assert transport.messages == [
        {"chat_id": -2, "text": "digest", "parse_mode": "HTML", "message_thread_id": 15}
    ]
    assert report.outcome_for(-1).status is DeliveryStatus.SENT
    assert report.outcome_for(-2).status is DeliveryStatus.SENT_DEGRADED
    assert report.outcome_for(-3).status is DeliveryStatus.SENT


def test_no_image_goes_straight_to_text(transport):
    report = DeliveryEngine(transport).deliver(WITHOUT_IMAGE, "digest", DESTS)
    assert transport.photos == []
    assert [m["chat_id"] for m in transport.messages] == [-1, -2, -3]
    assert report.counts()[DeliveryStatus.SENT] == 3


def test_failed_destination_does_not_abort_batch():
    transport = FakeTransport(fail_photo={-1}, fail_text={-1})
    report = DeliveryEngine(transport).deliver(WITH_IMAGE, "digest", DESTS)

    failed = report.outcome_for(-1)
    assert failed.status is DeliveryStatus.FAILED
    assert not failed.ok
    assert "kicked" in failed.reason
    assert report.outcome_for(-2).ok and report.outcome_for(-3).ok
    assert report.counts() == {
        DeliveryStatus.SENT: 2,
        DeliveryStatus.SENT_DEGRADED: 0,
        DeliveryStatus.FAILED: 1,
    }


def test_text_only_failure_is_failed():
    transport = FakeTransport(fail_text={-3})
    outcome = DeliveryEngine(transport).deliver_one(WITHOUT_IMAGE, "digest", DESTS[2])
    assert outcome.status is DeliveryStatus.FAILED


def test_concurrent_fan_out_reports_every_destination():
    transport = FakeTransport(fail_photo={-2}, fail_text={-3})
    dests = DESTS + [Destination(-4, None), Destination(-5, 2)]
    report = DeliveryEngine(transport, max_workers=4).deliver(WITH_IMAGE, "digest", dests)

    assert len(report) == 5
    assert {o.chat_id for o in report.outcomes} == {-1, -2, -3, -4, -5}
    assert report.outcome_for(-2).status is DeliveryStatus.SENT_DEGRADED
    assert report.outcome_for(-3).status is DeliveryStatus.SENT
    assert report.counts()[DeliveryStatus.FAILED] == 0


def test_empty_destination_list(transport):
    report = DeliveryEngine(transport).deliver(WITH_IMAGE, "digest", [])
    assert len(report) == 0
    assert transport.photos == []
