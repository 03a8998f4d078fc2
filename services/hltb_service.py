"""
services/hltb_service.py – HowLongToBeat lookup over httpx.AsyncClient.

Lookup strategy
---------------
1. POST the site's search endpoint with the game name as search terms.
2. Pick the best result: an exact Steam app id match wins, otherwise the
   closest name (difflib ratio) above MIN_SIMILARITY.
3. Fetch the game page and scrape the stat blocks with BeautifulSoup.
4. If the page has no stat blocks, fall back to the second counts carried
   by the search result.

Transport and decoding failures raise StatLookupError.  "No match" is
not an error; lookup() returns None.
"""

import difflib
import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup

from models.stat_bundle import LookupRecord
from services import duration_parser
from services.exceptions import StatLookupError

logger = logging.getLogger(__name__)

# ── Configuration ────────────────────────────────────────────────────────────

BASE_URL: str = "https://howlongtobeat.com"
SEARCH_PATH: str = "/api/search"
GAME_PATH: str = "/game/{record_id}"

USER_AGENT: str = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

# HTTP timeout (seconds)
HTTP_TIMEOUT: float = 20.0

# Minimum difflib ratio for a name-only match to be accepted.
MIN_SIMILARITY: float = 0.6

SEARCH_PAGE_SIZE: int = 20

# Stat block label (lower-cased) -> LookupRecord field.
STAT_LABELS: Dict[str, str] = {
    "main story": "main",
    "single-player": "main",
    "main + extras": "main_plus",
    "main + sides": "main_plus",
    "completionist": "completionist",
    "all styles": "all_styles",
}

# Search result key (seconds) -> LookupRecord field.
SECONDS_FIELDS: Dict[str, str] = {
    "comp_main": "main",
    "comp_plus": "main_plus",
    "comp_100": "completionist",
    "comp_all": "all_styles",
}

_NON_ALNUM: re.Pattern = re.compile(r"[^0-9a-z]+")
_NOISE: re.Pattern = re.compile(r"[™®©]")

# ── Public API ───────────────────────────────────────────────────────────────


class HowLongToBeatClient:
    """
    Lookup capability backed by howlongtobeat.com.

    Parameters
    ----------
    client    : Optional shared httpx.AsyncClient; when omitted the instance
                creates and owns one.
    base_url  : Site root.
    transport : Transport for the owned client (e.g. httpx.MockTransport).
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        base_url: str = BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=HTTP_TIMEOUT,
            follow_redirects=True,
            headers=_default_headers(self._base_url),
            transport=transport,
        )

    async def __aenter__(self) -> "HowLongToBeatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def lookup(
        self, numeric_hint: Optional[int], name_hint: str
    ) -> Optional[LookupRecord]:
        """
        Find completion times for one game.

        Parameters
        ----------
        numeric_hint : Steam app id, used to confirm a result when present.
        name_hint    : Display name of the game.

        Returns
        -------
        LookupRecord for the best match, or None when nothing matches.

        Raises
        ------
        StatLookupError
            On network, HTTP or response-format failure.
        """
        results = await self.search(name_hint)
        best = pick_best_match(results, numeric_hint, name_hint)
        if best is None:
            return None

        record_id = str(best.get("game_id") or "").strip() or None
        fields: Dict[str, str] = {}
        if record_id:
            fields = await self._fetch_game_stats(record_id, name_hint)
        if not fields:
            fields = stats_from_seconds(best)

        logger.debug("Matched %r to HowLongToBeat id %s", name_hint, record_id)
        return LookupRecord(record_id=record_id, **fields)

    async def search(self, name: str) -> List[Dict[str, Any]]:
        """Raw search results for *name*."""
        terms = _clean_title(name).split()
        if not terms:
            return []
        try:
            response = await self._client.post(
                self._base_url + SEARCH_PATH, json=_search_payload(terms)
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise StatLookupError(
                f"Search returned HTTP {exc.response.status_code}.", name
            ) from exc
        except httpx.RequestError as exc:
            raise StatLookupError(f"Network error during search: {exc}", name) from exc
        except ValueError as exc:
            raise StatLookupError(f"Search response was not JSON: {exc}", name) from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise StatLookupError("Search response has no 'data' list.", name)
        return [entry for entry in data if isinstance(entry, dict)]

    # ── Private helpers ──────────────────────────────────────────────────────

    async def _fetch_game_stats(self, record_id: str, name: str) -> Dict[str, str]:
        url = self._base_url + GAME_PATH.format(record_id=record_id)
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StatLookupError(
                f"Game page returned HTTP {exc.response.status_code}.", name
            ) from exc
        except httpx.RequestError as exc:
            raise StatLookupError(f"Network error fetching game page: {exc}", name) from exc
        return parse_game_page(response.text)


def pick_best_match(
    results: List[Dict[str, Any]],
    numeric_hint: Optional[int],
    name_hint: str,
) -> Optional[Dict[str, Any]]:
    """Choose the result that best corresponds to the library item."""
    if not results:
        return None

    if numeric_hint is not None:
        for entry in results:
            if str(entry.get("profile_steam") or "") == str(numeric_hint):
                return entry

    target = _normalize_title(name_hint)
    best: Optional[Dict[str, Any]] = None
    best_score = 0.0
    for entry in results:
        for title in _titles(entry):
            score = difflib.SequenceMatcher(None, target, _normalize_title(title)).ratio()
            if score > best_score:
                best, best_score = entry, score

    if best_score < MIN_SIMILARITY:
        return None
    return best


def parse_game_page(html: str) -> Dict[str, str]:
    """Extract the raw duration strings from a game page."""
    soup = BeautifulSoup(html, "html.parser")
    fields: Dict[str, str] = {}
    for block in soup.find_all("li"):
        label_tag = block.find("h4")
        value_tag = block.find("h5")
        if label_tag is None or value_tag is None:
            continue
        field = STAT_LABELS.get(label_tag.get_text(" ", strip=True).lower())
        if field and field not in fields:
            fields[field] = value_tag.get_text(" ", strip=True) or duration_parser.PLACEHOLDER
    return fields


def stats_from_seconds(entry: Dict[str, Any]) -> Dict[str, str]:
    """Raw duration strings derived from a search result's second counts."""
    fields: Dict[str, str] = {}
    for key, field in SECONDS_FIELDS.items():
        fields[field] = format_seconds(entry.get(key))
    return fields


def format_seconds(seconds: Any) -> str:
    """Render a second count like the site does, to the nearest half hour."""
    try:
        value = float(seconds or 0)
    except (TypeError, ValueError):
        return duration_parser.PLACEHOLDER
    if value <= 0:
        return duration_parser.PLACEHOLDER
    hours = value / 3600.0
    if hours < 1:
        return duration_parser.format_hours(hours)
    return duration_parser.format_hours(round(hours * 2) / 2)


# ── Private helpers ───────────────────────────────────────────────────────────


def _default_headers(base_url: str) -> Dict[str, str]:
    return {
        "User-Agent": USER_AGENT,
        "Referer": base_url + "/",
        "Origin": base_url,
    }


def _search_payload(terms: List[str]) -> Dict[str, Any]:
    return {
        "searchType": "games",
        "searchTerms": terms,
        "searchPage": 1,
        "size": SEARCH_PAGE_SIZE,
        "searchOptions": {
            "games": {
                "userId": 0,
                "platform": "",
                "sortCategory": "popular",
                "rangeCategory": "main",
                "rangeTime": {"min": None, "max": None},
                "gameplay": {"perspective": "", "flow": "", "genre": ""},
                "modifier": "",
            },
            "users": {"sortCategory": "postcount"},
            "filter": "",
            "sort": 0,
            "randomizer": 0,
        },
    }


def _clean_title(name: str) -> str:
    return " ".join(_NOISE.sub("", name or "").split())


def _normalize_title(name: str) -> str:
    return _NON_ALNUM.sub(" ", _clean_title(name).lower()).strip()


def _titles(entry: Dict[str, Any]) -> List[str]:
    titles: List[str] = []
    name = entry.get("game_name")
    if isinstance(name, str) and name.strip():
        titles.append(name)
    # Aliases are comma separated.
    alias = entry.get("game_alias")
    if isinstance(alias, str):
        titles.extend(a for a in alias.split(",") if a.strip())
    return titles
