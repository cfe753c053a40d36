"""
Live spot stream models and the per-band activity rollup.
"""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from nextskip.models.scoring import Scoreable, clamp, round_half_up


class Spot(BaseModel):
    """One reception report from the spot stream."""

    model_config = ConfigDict(frozen=True)

    source: str
    band: str
    mode: str
    frequency_hz: int | None = None
    snr: int | None = None
    spotted_at: datetime
    spotter_call: str | None = None
    spotter_grid: str | None = None
    spotter_continent: str | None = None
    spotted_call: str | None = None
    spotted_grid: str | None = None
    spotted_continent: str | None = None
    distance_km: int | None = None


class ContinentPath(str, Enum):
    """Notable inter-continental propagation paths."""

    NA_EU = "NA_EU"
    NA_AS = "NA_AS"
    EU_AS = "EU_AS"
    NA_OC = "NA_OC"
    EU_AF = "EU_AF"
    NA_SA = "NA_SA"

    @property
    def continents(self) -> tuple[str, str]:
        first, second = self.value.split("_")
        return first, second

    @property
    def display_name(self) -> str:
        return _PATH_NAMES[self]

    def matches(self, continent_a: str | None, continent_b: str | None) -> bool:
        """True for either direction of the path, ignoring case."""
        if not continent_a or not continent_b:
            return False
        pair = {continent_a.upper(), continent_b.upper()}
        return pair == set(self.continents) and continent_a.upper() != continent_b.upper()

    @classmethod
    def from_continents(
        cls, continent_a: str | None, continent_b: str | None
    ) -> "ContinentPath | None":
        for path in cls:
            if path.matches(continent_a, continent_b):
                return path
        return None


_PATH_NAMES = {
    ContinentPath.NA_EU: "Trans-Atlantic",
    ContinentPath.NA_AS: "Trans-Pacific",
    ContinentPath.EU_AS: "Europe-Asia",
    ContinentPath.NA_OC: "North America-Oceania",
    ContinentPath.EU_AF: "Europe-Africa",
    ContinentPath.NA_SA: "North-South America",
}


class ModeWindow(Enum):
    """Current and baseline windows per mode, in minutes."""

    FT8 = ("FT8", 15, 60)
    FT4 = ("FT4", 15, 60)
    CW = ("CW", 30, 120)
    SSB = ("SSB", 60, 180)
    DEFAULT = ("DEFAULT", 30, 60)

    @property
    def current_window(self) -> timedelta:
        return timedelta(minutes=self.value[1])

    @property
    def baseline_window(self) -> timedelta:
        return timedelta(minutes=self.value[2])

    @property
    def baseline_window_count(self) -> int:
        return self.value[2] // self.value[1]

    @classmethod
    def for_mode(cls, mode: str | None) -> "ModeWindow":
        if not mode:
            return cls.DEFAULT
        mode = mode.strip().upper()
        if mode in ("USB", "LSB"):
            return cls.SSB
        if mode in ("FT8", "FT4", "CW", "SSB"):
            return cls[mode]
        return cls.DEFAULT


class BandActivity(BaseModel, Scoreable):
    """
    Activity rollup for one band and its primary mode over a rolling window.

    Score weights: 40% activity, 30% trend, 20% DX reach, 10% path diversity.
    """

    model_config = ConfigDict(frozen=True)

    band: str
    mode: str
    spot_count: int
    baseline_spot_count: int = 0
    trend_percentage: float = 0.0
    max_dx_km: int | None = None
    max_dx_path: str | None = None
    active_paths: frozenset[ContinentPath] = Field(default_factory=frozenset)
    window_start: datetime
    window_end: datetime
    calculated_at: datetime

    def is_favorable(self, now: datetime | None = None) -> bool:
        return (
            self.spot_count >= 100
            and self.trend_percentage > 0
            and len(self.active_paths) > 0
        )

    def get_score(self, now: datetime | None = None) -> int:
        weighted = (
            0.4 * self.activity_score()
            + 0.3 * self.trend_score()
            + 0.2 * self.dx_score()
            + 0.1 * self.path_score()
        )
        return round_half_up(clamp(weighted))

    def activity_score(self) -> int:
        n = self.spot_count
        if n >= 100:
            return 100
        if n >= 50:
            return 50 + (n - 50)
        if n >= 10:
            return int(20 + (n - 10) / 40 * 30)
        return max(0, n * 2)

    def trend_score(self) -> int:
        t = self.trend_percentage
        if t >= 50:
            return 100
        if t >= 20:
            return int(70 + (t - 20) / 30 * 30)
        if t >= 0:
            return int(50 + t / 20 * 20)
        return int(max(0, 50 + t / 2))

    def dx_score(self) -> int:
        d = self.max_dx_km
        if d is None or d <= 0:
            return 0
        if d >= 10000:
            return 100
        if d >= 5000:
            return int(70 + (d - 5000) / 5000 * 30)
        if d >= 2000:
            return int(40 + (d - 2000) / 3000 * 30)
        return int(d / 2000 * 40)

    def path_score(self) -> int:
        p = len(self.active_paths)
        if p >= 4:
            return 100
        if p >= 2:
            return 50 + (p - 2) * 25
        if p == 1:
            return 30
        return 0
