"""
Shared scoring contract.

Every dashboard entity reduces itself to a favorability flag and a 0-100
score so unrelated activities can be ranked on one scale. Scores depend
only on the entity's own fields and the time passed in as `now`.
"""

import math
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Iterable, TypeVar


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def whole_minutes(delta: timedelta) -> int:
    """Whole minutes in `delta`, truncated toward zero."""
    return int(delta.total_seconds() / 60)


def whole_hours(delta: timedelta) -> int:
    """Whole hours in `delta`, truncated toward zero."""
    return int(delta.total_seconds() / 3600)


class Scoreable(ABC):
    """Favorability flag plus a normalized opportunity score."""

    @abstractmethod
    def is_favorable(self, now: datetime | None = None) -> bool:
        """Coarse "worth surfacing now" check, independent of the score."""
        ...

    @abstractmethod
    def get_score(self, now: datetime | None = None) -> int:
        """Opportunity score in [0, 100]."""
        ...


S = TypeVar("S", bound=Scoreable)


def rank_opportunities(
    items: Iterable[S], now: datetime | None = None
) -> list[tuple[S, int]]:
    """Sort by score descending, favorable first on equal scores."""
    now = now or utcnow()
    scored = [(item, item.get_score(now), item.is_favorable(now)) for item in items]
    scored.sort(key=lambda t: (t[1], t[2]), reverse=True)
    return [(item, score) for item, score, _ in scored]
