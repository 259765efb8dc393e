import sqlite3

from pixel_tracker.dedup import DedupCache
from pixel_tracker.tracking import TrackOutcome, TrackingHandler, is_pixel_id

PIXEL = "3f2504e0-4f89-41d3-9a0c-0305e82c3301"


class StubRegistry:
    def __init__(self, known=(), fail=False):
        self.known = set(known)
        self.fail = fail

    def exists(self, pixel_id):
        if self.fail:
            raise sqlite3.OperationalError("locked")
        return pixel_id in self.known


class StubLog:
    def __init__(self, fail=False):
        self.rows = []
        self.fail = fail

    def append(self, pixel_id, timestamp, origin, user_agent):
        if self.fail:
            raise sqlite3.OperationalError("disk full")
        self.rows.append((pixel_id, timestamp, origin, user_agent))
        return len(self.rows)


def make(registry=None, log=None):
    log = log or StubLog()
    handler = TrackingHandler(
        registry or StubRegistry([PIXEL]), log, DedupCache(60, clock=lambda: 0.0), clock=lambda: 42
    )
    return handler, log


def test_is_pixel_id():
    assert is_pixel_id(PIXEL)
    assert is_pixel_id(PIXEL.upper())
    assert not is_pixel_id("")
    assert not is_pixel_id(None)
    assert not is_pixel_id(PIXEL + "0")
    assert not is_pixel_id(PIXEL + "\n")
    assert not is_pixel_id(" " + PIXEL)


def test_records_then_dedupes():
    handler, log = make()

    assert handler.handle(PIXEL, "1.2.3.4", "Thunderbird") is TrackOutcome.RECORDED
    assert handler.handle(PIXEL, "1.2.3.4", "Outlook") is TrackOutcome.DEDUPED
    assert log.rows == [(PIXEL, 42, "1.2.3.4", "Thunderbird")]


def test_missing_user_agent_is_logged_as_unknown():
    handler, log = make()

    handler.handle(PIXEL, "1.2.3.4", None)

    assert log.rows[0][3] == "Unknown"


def test_rejected_and_unknown_write_nothing():
    handler, log = make()

    assert handler.handle("../etc/passwd", "1.2.3.4") is TrackOutcome.REJECTED
    assert handler.handle("3f2504e0-4f89-41d3-9a0c-0305e82c3302", "1.2.3.4") is TrackOutcome.UNKNOWN
    assert log.rows == []


def test_registry_error_counts_as_unknown():
    handler, log = make(registry=StubRegistry(fail=True))

    assert handler.handle(PIXEL, "1.2.3.4") is TrackOutcome.UNKNOWN
    assert log.rows == []


def test_write_failure_releases_dedup_key():
    log = StubLog(fail=True)
    handler, _ = make(log=log)

    assert handler.handle(PIXEL, "1.2.3.4") is TrackOutcome.WRITE_FAILED

    log.fail = False
    assert handler.handle(PIXEL, "1.2.3.4") is TrackOutcome.RECORDED


class BrokenLog(StubLog):
    def append(self, pixel_id, timestamp, origin, user_agent):
        raise RuntimeError("collector unavailable")


class BrokenRegistry(StubRegistry):
    def exists(self, pixel_id):
        raise RuntimeError("registry unavailable")


def test_any_append_error_is_contained_and_releases_key():
    log = StubLog()
    handler, _ = make(log=BrokenLog())

    assert handler.handle(PIXEL, "1.2.3.4") is TrackOutcome.WRITE_FAILED

    handler.event_log = log
    assert handler.handle(PIXEL, "1.2.3.4") is TrackOutcome.RECORDED
    assert len(log.rows) == 1


def test_any_registry_error_counts_as_unknown():
    handler, log = make(registry=BrokenRegistry())

    assert handler.handle(PIXEL, "1.2.3.4") is TrackOutcome.UNKNOWN
    assert log.rows == []
