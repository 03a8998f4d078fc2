"""
services/exceptions.py – Structured custom exception hierarchy for SteamBeat.

All service-level errors derive from SteamBeatError so callers can catch
broadly or specifically depending on context.
"""


class SteamBeatError(Exception):
    """Base class for all SteamBeat exceptions."""


class LibraryLoadError(SteamBeatError):
    """Raised when the local Steam library cannot be located or read."""


class StatLookupError(SteamBeatError):
    """
    Raised when the completion-time reference source cannot be queried.

    Attributes
    ----------
    name_hint : The game name the lookup was issued for.
    """

    def __init__(self, message: str, name_hint: str = "") -> None:
        self.name_hint = name_hint
        super().__init__(message)
