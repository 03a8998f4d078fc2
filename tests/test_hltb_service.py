"""Tests for services.hltb_service using httpx.MockTransport."""

import json
import unittest

import httpx

from models.stat_bundle import LookupRecord
from services.exceptions import StatLookupError
from services.hltb_service import (
    HowLongToBeatClient,
    format_seconds,
    parse_game_page,
    pick_best_match,
)

GAME_PAGE = """
<html><body>
  <ul>
    <li class="GameStats_short"><h4>Main Story</h4><h5>9 Hours</h5></li>
    <li class="GameStats_short"><h4>Main + Extras</h4><h5>13½ Hours</h5></li>
    <li class="GameStats_short"><h4>Completionist</h4><h5>22 Hours</h5></li>
    <li class="GameStats_short"><h4>All Styles</h4><h5>12 Hours</h5></li>
    <li><a href="/forum">Forum</a></li>
  </ul>
</body></html>
"""

SEARCH_RESULTS = {
    "data": [
        {
            "game_id": 10270,
            "game_name": "Portal 2",
            "game_alias": "",
            "profile_steam": 620,
            "comp_main": 30600,
            "comp_plus": 48600,
            "comp_100": 79200,
            "comp_all": 43200,
        },
        {
            "game_id": 7230,
            "game_name": "Portal",
            "game_alias": "",
            "profile_steam": 400,
            "comp_main": 10800,
            "comp_plus": 0,
            "comp_100": 0,
            "comp_all": 0,
        },
    ]
}


def _client(handler):
    return HowLongToBeatClient(transport=httpx.MockTransport(handler))


def test_parse_game_page_reads_stat_blocks():
    assert parse_game_page(GAME_PAGE) == {
        "main": "9 Hours",
        "main_plus": "13½ Hours",
        "completionist": "22 Hours",
        "all_styles": "12 Hours",
    }


def test_parse_game_page_without_stats_is_empty():
    assert parse_game_page("<html><body><li>nothing</li></body></html>") == {}


def test_pick_best_match_prefers_steam_id():
    best = pick_best_match(SEARCH_RESULTS["data"], 400, "Portal 2")
    assert best["game_id"] == 7230


def test_pick_best_match_by_name_similarity():
    best = pick_best_match(SEARCH_RESULTS["data"], None, "Portal 2™")
    assert best["game_id"] == 10270


def test_pick_best_match_rejects_poor_names():
    assert pick_best_match(SEARCH_RESULTS["data"], None, "Stardew Valley") is None
    assert pick_best_match([], 620, "Portal 2") is None


def test_pick_best_match_uses_aliases():
    results = [{"game_id": 1, "game_name": "Biohazard 4", "game_alias": "Resident Evil 4, RE4"}]
    assert pick_best_match(results, None, "Resident Evil 4")["game_id"] == 1


def test_format_seconds_rounds_to_half_hours():
    assert format_seconds(30600) == "8½ Hours"
    assert format_seconds(10800) == "3 Hours"
    assert format_seconds(1800) == "30 Mins"
    assert format_seconds(0) == "--"
    assert format_seconds(None) == "--"
    assert format_seconds("n/a") == "--"


class TestHowLongToBeatClient(unittest.IsolatedAsyncioTestCase):
    async def test_lookup_searches_then_scrapes_game_page(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.method == "POST" and request.url.path == "/api/search":
                return httpx.Response(200, json=SEARCH_RESULTS)
            if request.url.path == "/game/10270":
                return httpx.Response(200, text=GAME_PAGE)
            return httpx.Response(404)

        async with _client(handler) as client:
            record = await client.lookup(620, "Portal 2")

        self.assertEqual(
            record,
            LookupRecord(
                main="9 Hours",
                main_plus="13½ Hours",
                completionist="22 Hours",
                all_styles="12 Hours",
                record_id="10270",
            ),
        )
        body = json.loads(requests[0].content)
        self.assertEqual(body["searchTerms"], ["Portal", "2"])
        self.assertEqual(body["searchType"], "games")

    async def test_lookup_falls_back_to_search_seconds(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/search":
                return httpx.Response(200, json=SEARCH_RESULTS)
            return httpx.Response(200, text="<html><body></body></html>")

        async with _client(handler) as client:
            record = await client.lookup(400, "Portal")

        self.assertEqual(record.record_id, "7230")
        self.assertEqual(record.main, "3 Hours")
        self.assertEqual(record.main_plus, "--")

    async def test_lookup_without_match_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": []})

        async with _client(handler) as client:
            self.assertIsNone(await client.lookup(1, "Nothing Like It"))

    async def test_http_error_raises_lookup_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async with _client(handler) as client:
            with self.assertRaises(StatLookupError) as ctx:
                await client.lookup(620, "Portal 2")
        self.assertEqual(ctx.exception.name_hint, "Portal 2")

    async def test_network_error_raises_lookup_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("offline", request=request)

        async with _client(handler) as client:
            with self.assertRaises(StatLookupError):
                await client.lookup(620, "Portal 2")

    async def test_malformed_json_raises_lookup_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>blocked</html>")

        async with _client(handler) as client:
            with self.assertRaises(StatLookupError):
                await client.lookup(620, "Portal 2")

    async def test_blank_name_skips_network(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with _client(handler) as client:
            self.assertIsNone(await client.lookup(None, "   "))
