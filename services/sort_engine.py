"""
services/sort_engine.py – Total ordering of library rows by main-story hours.

Rules
-----
* Rows without an estimate always come after rows with one, in both modes.
* Two rows without an estimate are ordered by name.
* Two known estimates compare numerically with the name as tie-break; the
  descending mode reverses that whole comparison.

Names compare case-sensitively so the order is deterministic.
"""

import enum
from functools import cmp_to_key
from typing import Iterable, List

from models.library_item import SortableItem


class SortMode(enum.Enum):
    ASCENDING = "time-asc"
    DESCENDING = "time-desc"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def from_value(cls, value: str) -> "SortMode":
        """Accept either the enum value ("time-asc") or its label."""
        for mode in cls:
            if value in (mode.value, mode.label):
                return mode
        return cls.ASCENDING


_LABELS = {
    SortMode.ASCENDING: "Shortest First",
    SortMode.DESCENDING: "Longest First",
}

DEFAULT_MODE: SortMode = SortMode.ASCENDING


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def compare(a: SortableItem, b: SortableItem, mode: SortMode) -> int:
    """Three-way comparison of two rows under *mode*."""
    a_known = a.main_hours is not None
    b_known = b.main_hours is not None

    if not a_known and not b_known:
        return _cmp(a.name, b.name)
    if not a_known:
        return 1
    if not b_known:
        return -1

    result = _cmp(a.main_hours, b.main_hours) or _cmp(a.name, b.name)
    return -result if mode is SortMode.DESCENDING else result


def order(items: Iterable[SortableItem], mode: SortMode = DEFAULT_MODE) -> List[SortableItem]:
    """Return a new list with *items* ordered under *mode*; input untouched."""
    return sorted(items, key=cmp_to_key(lambda a, b: compare(a, b, mode)))
