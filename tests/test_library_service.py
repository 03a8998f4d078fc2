"""Tests for services.library_service and services.vdf against a fake Steam tree."""

import asyncio
from pathlib import Path

import pytest

from services import library_service, vdf
from services.exceptions import LibraryLoadError


def _manifest(appid: str, name: str, installdir: str) -> str:
    return f"""
"AppState"
{{
	"appid"		"{appid}"
	"Universe"		"1"
	"name"		"{name}"
	"StateFlags"		"4"
	"installdir"		"{installdir}"
}}
"""


@pytest.fixture
def steam_root(tmp_path: Path) -> Path:
    root = tmp_path / "Steam"
    steamapps = root / "steamapps"
    steamapps.mkdir(parents=True)
    extra = tmp_path / "Games" / "steamapps"
    extra.mkdir(parents=True)

    (steamapps / "libraryfolders.vdf").write_text(
        f"""
"libraryfolders"
{{
	"0"
	{{
		"path"		"{root.as_posix()}"
		"apps" {{ "620" "123" }}
	}}
	"1"
	{{
		"path"		"{extra.parent.as_posix()}"
	}}
}}
""",
        encoding="utf-8",
    )
    (steamapps / "appmanifest_620.acf").write_text(
        _manifest("620", "Portal 2", "Portal 2"), encoding="utf-8"
    )
    (steamapps / "appmanifest_1493710.acf").write_text(
        _manifest("1493710", "Proton Experimental", "Proton - Experimental"),
        encoding="utf-8",
    )
    (extra / "appmanifest_400.acf").write_text(
        _manifest("400", "portal", "Portal"), encoding="utf-8"
    )
    (extra / "appmanifest_999.acf").write_text("{ broken", encoding="utf-8")

    config = root / "userdata" / "12345" / "config"
    config.mkdir(parents=True)
    (config / "localconfig.vdf").write_text(
        """
"UserLocalConfigStore"
{
	"Software"
	{
		"Valve"
		{
			"Steam"
			{
				"apps"
				{
					"620"
					{
						"LastPlayed"		"1700000000"
						"Playtime"		"205"
					}
				}
			}
		}
	}
}
""",
        encoding="utf-8",
    )
    return root


def test_read_library_collects_every_folder(steam_root: Path):
    items = library_service.read_library(steam_root)

    assert [i.name for i in items] == ["portal", "Portal 2"]
    portal2 = items[1]
    assert portal2.identity == "620"
    assert portal2.playtime_minutes == 205
    assert portal2.install_path.endswith(str(Path("steamapps") / "common" / "Portal 2"))
    assert items[0].playtime_minutes is None


def test_load_library_runs_off_the_loop(steam_root: Path):
    items = asyncio.run(library_service.load_library(steam_root))
    assert {i.identity for i in items} == {"400", "620"}


def test_missing_steamapps_raises(tmp_path: Path):
    with pytest.raises(LibraryLoadError):
        library_service.read_library(tmp_path)


def test_env_override_that_does_not_exist_means_not_found(monkeypatch, tmp_path: Path):
    monkeypatch.setenv(library_service.STEAM_ROOT_ENV, str(tmp_path / "nope"))
    assert library_service.find_steam_root() is None
    with pytest.raises(LibraryLoadError):
        library_service.read_library()


def test_env_override_is_used(monkeypatch, steam_root: Path):
    monkeypatch.setenv(library_service.STEAM_ROOT_ENV, str(steam_root))
    assert library_service.find_steam_root() == steam_root


@pytest.mark.parametrize(
    "minutes, expected",
    [(None, "No playtime"), (0, "No playtime"), (205, "3h 25m"), (59, "0h 59m")],
)
def test_format_playtime(minutes, expected):
    assert library_service.format_playtime(minutes) == expected


def test_vdf_parses_nesting_comments_and_escapes():
    data = vdf.loads(
        r"""
// header comment
"root"
{
    "quoted"    "say \"hi\""
    bare        value
    "child" { "k" "v" }
}
"""
    )
    assert data == {"root": {"quoted": 'say "hi"', "bare": "value", "child": {"k": "v"}}}
    assert vdf.find_key(data["root"], "CHILD") == {"k": "v"}


@pytest.mark.parametrize("text", ['"a" {', '}', '"a" "b" "c"', '{ "a" "b" }'])
def test_vdf_rejects_malformed_input(text):
    with pytest.raises(ValueError):
        vdf.loads(text)
