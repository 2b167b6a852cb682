"""
Domain: condition ranks.

Ranks are an ordered grade S > A > B > C > D. The order is used both for
display and as the first allocation tie-break (best condition sells first).
Lots imported from the external service may be unranked; unranked lots sort
after every graded lot.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ConditionRank(str, Enum):
    S = "S"
    A = "A"
    B = "B"
    C = "C"
    D = "D"

    @property
    def sort_order(self) -> int:
        return _ORDER[self]

    @staticmethod
    def parse(value: Any) -> Optional["ConditionRank"]:
        """
        Resolve a rank from stored or user-supplied text.

        Returns None for blank or unknown values (e.g. an unassessed import).
        """

        if isinstance(value, ConditionRank):
            return value
        if value is None:
            return None
        text = str(value).strip().upper()
        try:
            return ConditionRank(text)
        except ValueError:
            return None


_ORDER = {
    ConditionRank.S: 0,
    ConditionRank.A: 1,
    ConditionRank.B: 2,
    ConditionRank.C: 3,
    ConditionRank.D: 4,
}

UNRANKED_SORT_ORDER = len(_ORDER)


def rank_sort_order(rank: Optional[ConditionRank]) -> int:
    """Sort key for an optional rank; unranked sorts last."""

    return rank.sort_order if rank is not None else UNRANKED_SORT_ORDER
