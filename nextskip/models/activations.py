"""
Portable activation models (Parks on the Air, Summits on the Air).
"""

from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from nextskip.models.scoring import Scoreable, utcnow, whole_minutes


class ActivationType(str, Enum):
    POTA = "POTA"
    SOTA = "SOTA"


class Park(BaseModel):
    """POTA park location."""

    model_config = ConfigDict(frozen=True)

    reference: str
    name: str
    region_code: str | None = None
    country_code: str | None = None
    grid: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class Summit(BaseModel):
    """SOTA summit location."""

    model_config = ConfigDict(frozen=True)

    reference: str
    name: str
    region_code: str | None = None
    association_code: str | None = None


class Activation(BaseModel, Scoreable):
    """A single spotted activation."""

    model_config = ConfigDict(frozen=True)

    spot_id: str
    activator_callsign: str
    type: ActivationType
    frequency: float | None = None  # kHz
    mode: str | None = None
    spotted_at: datetime | None = None
    last_seen_at: datetime | None = None
    qso_count: int | None = None
    source: str
    location: Park | Summit | None = None

    def age_minutes(self, now: datetime | None = None) -> int | None:
        if self.spotted_at is None:
            return None
        return whole_minutes((now or utcnow()) - self.spotted_at)

    def is_favorable(self, now: datetime | None = None) -> bool:
        """Spotted within the last 15 minutes."""
        minutes = self.age_minutes(now)
        return minutes is not None and minutes <= 15

    def get_score(self, now: datetime | None = None) -> int:
        """
        Recency score.

        0-5 min: 100, 5-15 min: 100→80, 15-30 min: 80→20,
        30-60 min: 20→0, older: 0. Future timestamps score 100.
        """
        minutes = self.age_minutes(now)
        if minutes is None:
            return 0
        if minutes < 0:
            return 100
        if minutes <= 5:
            return 100
        if minutes <= 15:
            return int(100 - (minutes - 5) * 2)
        if minutes <= 30:
            return int(80 - (minutes - 15) * 4)
        if minutes <= 60:
            return int(max(0, 20 - (minutes - 30) * 0.67))
        return 0


class ActivationsSummary(BaseModel, Scoreable):
    """Current POTA and SOTA activations."""

    model_config = ConfigDict(frozen=True)

    SCORE_PER_ACTIVATION: ClassVar[int] = 3
    RECENT_BONUS: ClassVar[int] = 10
    FAVORABLE_COUNT: ClassVar[int] = 5

    pota_activations: list[Activation] = Field(default_factory=list)
    sota_activations: list[Activation] = Field(default_factory=list)
    last_updated: datetime | None = None

    @property
    def pota_count(self) -> int:
        return len(self.pota_activations)

    @property
    def sota_count(self) -> int:
        return len(self.sota_activations)

    @property
    def total_count(self) -> int:
        return self.pota_count + self.sota_count

    def is_favorable(self, now: datetime | None = None) -> bool:
        return self.total_count >= self.FAVORABLE_COUNT

    def get_score(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        score = self.total_count * self.SCORE_PER_ACTIVATION
        activations = self.pota_activations + self.sota_activations
        if any(
            a.spotted_at is not None and whole_minutes(now - a.spotted_at) <= 5
            for a in activations
        ):
            score += self.RECENT_BONUS
        return min(100, score)
