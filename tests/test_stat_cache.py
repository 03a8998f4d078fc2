"""Tests for services.stat_cache."""

import asyncio
import unittest

from models.library_item import LibraryItem
from models.stat_bundle import StatBundle
from services.stat_cache import EntryState, StatCache, make_key, normalize_name

KEY = ("10", "portal")
BUNDLE = StatBundle(main=3.0, has_data=True, record_id="7230")


def test_begin_fetch_dedups_until_cleared():
    cache = StatCache()
    assert cache.begin_fetch(KEY) is True
    assert cache.begin_fetch(KEY) is False
    assert cache.get(KEY).state is EntryState.IN_FLIGHT

    cache.complete(KEY, BUNDLE)
    assert cache.begin_fetch(KEY) is False
    assert cache.get(KEY).bundle is BUNDLE

    cache.clear()
    assert cache.get(KEY) is None
    assert cache.begin_fetch(KEY) is True


def test_each_subscriber_receives_bundle_exactly_once():
    cache = StatCache()
    first, second = [], []
    cache.begin_fetch(KEY)
    cache.subscribe(KEY, first.append)
    assert cache.begin_fetch(KEY) is False
    cache.subscribe(KEY, second.append)

    cache.complete(KEY, BUNDLE)
    cache.complete(KEY, BUNDLE)

    assert first == [BUNDLE]
    assert second == [BUNDLE]
    assert cache.listener_count(KEY) == 0


def test_subscribe_to_resolved_key_fires_synchronously():
    cache = StatCache()
    cache.begin_fetch(KEY)
    cache.complete(KEY, BUNDLE)

    received = []
    sub = cache.subscribe(KEY, received.append)
    assert received == [BUNDLE]
    assert not sub.active
    assert cache.listener_count(KEY) == 0


def test_durable_listener_sees_replacements():
    cache = StatCache()
    received = []
    cache.subscribe(KEY, received.append, once=False)
    cache.complete(KEY, BUNDLE)
    replacement = StatBundle(main=4.0, has_data=True)
    cache.complete(KEY, replacement)
    assert received == [BUNDLE, replacement]


def test_cancelled_subscription_is_not_notified():
    cache = StatCache()
    received = []
    sub = cache.subscribe(KEY, received.append)
    sub.cancel()
    sub.cancel()
    cache.complete(KEY, BUNDLE)
    assert received == []


def test_listener_cancelled_by_earlier_listener_is_skipped():
    cache = StatCache()
    received = []
    later = None

    def first(bundle):
        later.cancel()

    cache.subscribe(KEY, first)
    later = cache.subscribe(KEY, received.append)
    cache.complete(KEY, BUNDLE)
    assert received == []


def test_failing_listener_does_not_block_others():
    cache = StatCache()
    received = []

    def boom(bundle):
        raise RuntimeError("listener bug")

    cache.subscribe(KEY, boom)
    cache.subscribe(KEY, received.append)
    cache.complete(KEY, BUNDLE)
    assert received == [BUNDLE]


def test_abandon_only_drops_in_flight_entries():
    cache = StatCache()
    cache.begin_fetch(KEY)
    cache.abandon(KEY)
    assert cache.get(KEY) is None

    cache.begin_fetch(KEY)
    cache.complete(KEY, BUNDLE)
    cache.abandon(KEY)
    assert cache.get(KEY).resolved


def test_key_uses_identity_and_normalized_name():
    item = LibraryItem(identity="620", name="  Portal   2 ")
    assert make_key(item) == ("620", "portal 2")
    assert normalize_name("PORTAL\t2") == "portal 2"
    assert make_key(LibraryItem("620", "Portal 2")) != make_key(LibraryItem("400", "Portal 2"))


class TestStatCacheWait(unittest.IsolatedAsyncioTestCase):
    async def test_wait_returns_bundle_once_completed(self):
        cache = StatCache()
        cache.begin_fetch(KEY)

        asyncio.get_running_loop().call_soon(cache.complete, KEY, BUNDLE)
        self.assertIs(await cache.wait(KEY), BUNDLE)
        self.assertEqual(cache.listener_count(KEY), 0)

    async def test_wait_on_resolved_key_returns_immediately(self):
        cache = StatCache()
        cache.complete(KEY, BUNDLE)
        self.assertIs(await cache.wait(KEY), BUNDLE)
