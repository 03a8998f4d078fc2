"""
services/library_service.py – Read the locally installed Steam library.

Responsibilities
----------------
1. Locate the Steam installation (env override, then platform defaults).
2. Enumerate every library folder listed in libraryfolders.vdf.
3. Parse each appmanifest_*.acf into a LibraryItem.
4. Attach per-game playtime from the users' localconfig.vdf when available.

All filesystem work happens in a worker thread via asyncio.to_thread so the
event loop stays responsive.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from models.library_item import LibraryItem
from services import vdf
from services.exceptions import LibraryLoadError

logger = logging.getLogger(__name__)

# ── Configuration ────────────────────────────────────────────────────────────

STEAM_ROOT_ENV: str = "STEAMBEAT_STEAM_ROOT"

# Candidate install locations, tried in order.
DEFAULT_STEAM_ROOTS: Dict[str, List[str]] = {
    "linux": [
        "~/.steam/steam",
        "~/.local/share/Steam",
        "~/.var/app/com.valvesoftware.Steam/.local/share/Steam",
    ],
    "darwin": ["~/Library/Application Support/Steam"],
    "win32": [
        r"C:\Program Files (x86)\Steam",
        r"C:\Program Files\Steam",
    ],
}

# Runtime / redistributable entries that Steam lists as installed "apps".
EXCLUDED_NAME_PREFIXES = (
    "Proton ",
    "Steam Linux Runtime",
    "Steamworks Common Redistributables",
    "SteamVR",
)
EXCLUDED_APP_IDS = frozenset({"228980", "1070560", "1391110", "1628350"})

# ── Public API ───────────────────────────────────────────────────────────────


async def load_library(steam_root: Optional[Path] = None) -> List[LibraryItem]:
    """
    Return every installed game, sorted by name.

    Raises
    ------
    LibraryLoadError
        When Steam cannot be located or its library cannot be read.
    """
    return await asyncio.to_thread(read_library, steam_root)


def read_library(steam_root: Optional[Path] = None) -> List[LibraryItem]:
    """Blocking implementation of load_library()."""
    root = steam_root or find_steam_root()
    if root is None:
        raise LibraryLoadError(
            f"Steam installation not found. Set {STEAM_ROOT_ENV} to its path."
        )
    steamapps = root / "steamapps"
    if not steamapps.is_dir():
        raise LibraryLoadError(f"No steamapps directory under '{root}'.")

    playtimes = read_playtimes(root)
    items: Dict[str, LibraryItem] = {}
    for library in library_folders(root):
        for manifest in sorted(library.glob("appmanifest_*.acf")):
            item = parse_manifest(manifest, playtimes)
            if item is None or is_excluded(item):
                continue
            items.setdefault(item.identity, item)

    logger.info("Found %d installed games under %s", len(items), root)
    return sorted(items.values(), key=lambda i: i.name.lower())


def find_steam_root() -> Optional[Path]:
    override = os.environ.get(STEAM_ROOT_ENV, "").strip()
    if override:
        path = Path(override).expanduser()
        return path if path.is_dir() else None

    platform = "linux" if sys.platform.startswith("linux") else sys.platform
    for candidate in DEFAULT_STEAM_ROOTS.get(platform, []):
        path = Path(candidate).expanduser()
        if path.is_dir():
            return path
    return None


def library_folders(root: Path) -> List[Path]:
    """All ``steamapps`` directories known to this installation."""
    folders: List[Path] = [root / "steamapps"]
    config = root / "steamapps" / "libraryfolders.vdf"
    if not config.is_file():
        return folders

    try:
        data = vdf.loads(_read_text(config))
    except ValueError as exc:
        logger.warning("Ignoring unreadable %s: %s", config, exc)
        return folders

    section = vdf.find_key(data, "libraryfolders") or {}
    for value in section.values():
        # Older files map index -> path, newer ones index -> {"path": ...}.
        raw = value.get("path") if isinstance(value, dict) else value
        if not isinstance(raw, str) or not raw.strip():
            continue
        candidate = Path(raw) / "steamapps"
        if candidate.is_dir() and candidate not in folders:
            folders.append(candidate)
    return folders


def parse_manifest(
    path: Path, playtimes: Optional[Dict[str, int]] = None
) -> Optional[LibraryItem]:
    """Build a LibraryItem from one appmanifest file; None when unusable."""
    try:
        data = vdf.loads(_read_text(path))
    except (ValueError, LibraryLoadError) as exc:
        logger.warning("Skipping malformed manifest %s: %s", path.name, exc)
        return None

    state = vdf.find_key(data, "AppState")
    if not isinstance(state, dict):
        return None
    appid = str(vdf.find_key(state, "appid") or "").strip()
    name = str(vdf.find_key(state, "name") or "").strip()
    if not appid or not name:
        return None

    installdir = str(vdf.find_key(state, "installdir") or "").strip()
    install_path = str(path.parent / "common" / installdir) if installdir else ""
    return LibraryItem(
        identity=appid,
        name=name,
        install_path=install_path,
        playtime_minutes=(playtimes or {}).get(appid),
    )


def read_playtimes(root: Path) -> Dict[str, int]:
    """Map app id -> minutes played, merged over every local Steam user."""
    playtimes: Dict[str, int] = {}
    for config in sorted((root / "userdata").glob("*/config/localconfig.vdf")):
        try:
            data = vdf.loads(_read_text(config))
        except (ValueError, LibraryLoadError) as exc:
            logger.debug("Skipping %s: %s", config, exc)
            continue
        apps = _walk(data, ("UserLocalConfigStore", "Software", "Valve", "Steam", "apps"))
        if not isinstance(apps, dict):
            continue
        for appid, values in apps.items():
            if not isinstance(values, dict):
                continue
            raw = vdf.find_key(values, "Playtime")
            if isinstance(raw, str) and raw.isdigit():
                playtimes[appid] = max(playtimes.get(appid, 0), int(raw))
    return playtimes


def is_excluded(item: LibraryItem) -> bool:
    return item.identity in EXCLUDED_APP_IDS or item.name.startswith(
        EXCLUDED_NAME_PREFIXES
    )


def format_playtime(minutes: Optional[int]) -> str:
    """Render *minutes* as "3h 25m"."""
    if not minutes:
        return "No playtime"
    hours, mins = divmod(int(minutes), 60)
    return f"{hours}h {mins}m"


# ── Private helpers ───────────────────────────────────────────────────────────


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise LibraryLoadError(f"Cannot read '{path}': {exc}") from exc


def _walk(node: object, keys: Iterable[str]) -> object:
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = vdf.find_key(node, key)
    return node
