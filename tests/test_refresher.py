"""Tests for the poll-and-diff refresher."""

from __future__ import annotations

import datetime
import logging
import threading

import pytz

from core.errors import FetchError
from core.refresher import Refresher
from core.registry import Registry


class ScriptedFetch:
    """Returns the queued results in order; exceptions in the queue are raised."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def test_cycle_inserts_and_tombstones(make_item) -> None:
    reg = Registry()
    fetch = ScriptedFetch(
        [make_item(1), make_item(2), make_item(3)],
        [make_item(2), make_item(3, price="99.00"), make_item(4)],
    )
    refresher = Refresher(fetch, reg, 600)

    assert refresher.run_cycle() is True
    assert reg.live_ids() == {1, 2, 3}

    assert refresher.run_cycle() is True
    assert reg.live_ids() == {2, 3, 4}
    assert reg.tombstoned_ids() == {1}
    # first-seen price is kept
    prices = {i.id: i.price for i in reg.snapshot_live()}
    assert prices[3] == "12.50"


def test_fetch_failure_leaves_registry_untouched(make_item, caplog) -> None:
    caplog.set_level(logging.ERROR)
    reg = Registry()
    fetch = ScriptedFetch([make_item(1)], FetchError("connection reset"))
    refresher = Refresher(fetch, reg, 600)

    refresher.run_cycle()
    assert refresher.run_cycle() is False

    assert reg.live_ids() == {1}
    assert reg.tombstoned_ids() == set()
    assert "connection reset" in caplog.text


def test_unexpected_error_does_not_escape(make_item) -> None:
    reg = Registry()
    refresher = Refresher(ScriptedFetch(RuntimeError("boom"), [make_item(1)]), reg, 600)

    assert refresher.run_cycle() is False
    assert refresher.run_cycle() is True
    assert reg.live_ids() == {1}


def test_cycle_logs_fetch_time(make_item, caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="core.refresher")
    refresher = Refresher(ScriptedFetch([make_item(1)]), Registry(), 600)
    when = datetime.datetime(2024, 3, 1, 12, 0, 0, tzinfo=pytz.UTC)

    refresher.run_cycle(when)

    assert "2024-03-01T12:00:00+00:00" in caplog.text
    assert "Found 1 products" in caplog.text


def test_short_interval_only_warns(caplog) -> None:
    caplog.set_level(logging.WARNING)
    refresher = Refresher(ScriptedFetch(), Registry(), 5)
    assert refresher.interval == 5
    assert "500 per hour" in caplog.text


def test_thread_fetches_immediately_and_stops(make_item) -> None:
    called = threading.Event()
    reg = Registry()

    def fetch():
        called.set()
        return [make_item(1)]

    refresher = Refresher(fetch, reg, 600)
    refresher.start()
    try:
        assert called.wait(5)
    finally:
        refresher.stop(timeout=5)

    assert not refresher.running
    assert reg.live_ids() == {1}


def test_bad_fetch_result_is_a_failed_cycle(make_item, caplog) -> None:
    caplog.set_level(logging.ERROR)
    reg = Registry()
    refresher = Refresher(ScriptedFetch([make_item(1)], None, [object()], [make_item(1)]), reg, 600)

    assert refresher.run_cycle() is True
    assert refresher.run_cycle() is False
    assert refresher.run_cycle() is False
    assert reg.live_ids() == {1}
    assert reg.tombstoned_ids() == set()
    assert "expected a list" in caplog.text

    assert refresher.run_cycle() is True


def test_thread_survives_bad_fetch_result(make_item) -> None:
    second_call = threading.Event()
    calls = []
    reg = Registry()

    def fetch():
        calls.append(1)
        if len(calls) == 1:
            return None
        second_call.set()
        return [make_item(1)]

    refresher = Refresher(fetch, reg, 1)
    refresher.start()
    try:
        assert second_call.wait(5)
        assert refresher.running
    finally:
        refresher.stop(timeout=5)

    assert reg.live_ids() == {1}
