"""
Propagation models: amateur bands, per-band conditions and solar indices.
"""

from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, field_validator

from nextskip.models.scoring import Scoreable, clamp, round_half_up


class FrequencyBand(str, Enum):
    """Amateur radio bands with their edges in kHz."""

    BAND_160M = "160m"
    BAND_80M = "80m"
    BAND_60M = "60m"
    BAND_40M = "40m"
    BAND_30M = "30m"
    BAND_20M = "20m"
    BAND_17M = "17m"
    BAND_15M = "15m"
    BAND_12M = "12m"
    BAND_10M = "10m"
    BAND_6M = "6m"
    BAND_2M = "2m"

    @property
    def start_khz(self) -> float:
        return _BAND_EDGES[self][0]

    @property
    def end_khz(self) -> float:
        return _BAND_EDGES[self][1]

    def contains(self, frequency_khz: float) -> bool:
        return self.start_khz <= frequency_khz <= self.end_khz

    @classmethod
    def from_string(cls, value: str) -> "FrequencyBand":
        """Parse "20m", "20M" or "BAND_20M"."""
        normalized = value.strip().lower()
        for band in cls:
            if normalized in (band.value, band.name.lower()):
                return band
        raise ValueError(f"Unknown band: {value}")

    @classmethod
    def from_frequency_khz(cls, frequency_khz: float) -> "FrequencyBand | None":
        for band in cls:
            if band.contains(frequency_khz):
                return band
        return None


_BAND_EDGES: dict[FrequencyBand, tuple[float, float]] = {
    FrequencyBand.BAND_160M: (1800, 2000),
    FrequencyBand.BAND_80M: (3500, 4000),
    FrequencyBand.BAND_60M: (5330, 5405),
    FrequencyBand.BAND_40M: (7000, 7300),
    FrequencyBand.BAND_30M: (10100, 10150),
    FrequencyBand.BAND_20M: (14000, 14350),
    FrequencyBand.BAND_17M: (18068, 18168),
    FrequencyBand.BAND_15M: (21000, 21450),
    FrequencyBand.BAND_12M: (24890, 24990),
    FrequencyBand.BAND_10M: (28000, 29700),
    FrequencyBand.BAND_6M: (50000, 54000),
    FrequencyBand.BAND_2M: (144000, 148000),
}


class BandConditionRating(str, Enum):
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_string(cls, value: str | None) -> "BandConditionRating":
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.UNKNOWN


class BandCondition(BaseModel, Scoreable):
    """Propagation rating for one band."""

    model_config = ConfigDict(frozen=True)

    band: FrequencyBand
    rating: BandConditionRating
    confidence: float = 1.0
    notes: str | None = None

    @field_validator("confidence")
    @classmethod
    def _check_confidence(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"confidence must be between 0 and 1, got {value}")
        return value

    def is_favorable(self, now: datetime | None = None) -> bool:
        return self.rating == BandConditionRating.GOOD and self.confidence > 0.5

    def get_score(self, now: datetime | None = None) -> int:
        if self.rating == BandConditionRating.GOOD:
            return int(100 * self.confidence)
        if self.rating == BandConditionRating.FAIR:
            return int(60 * self.confidence)
        if self.rating == BandConditionRating.POOR:
            return int(20 * self.confidence)
        return 0


class SolarIndices(BaseModel, Scoreable):
    """
    Solar and geomagnetic snapshot.

    A field is None when the reporting source does not provide it. NOAA SWPC
    is preferred for the solar flux index and sunspot number, HamQSL for the
    K and A indices.
    """

    model_config = ConfigDict(frozen=True)

    NOAA_SOURCE: ClassVar[str] = "NOAA SWPC"
    HAMQSL_SOURCE: ClassVar[str] = "HamQSL"

    solar_flux_index: float | None = None
    a_index: int | None = None
    k_index: int | None = None
    sunspot_number: int | None = None
    timestamp: datetime
    source: str

    def is_favorable(self, now: datetime | None = None) -> bool:
        """High flux with a quiet geomagnetic field."""
        if self.solar_flux_index is None or self.k_index is None or self.a_index is None:
            return False
        return self.solar_flux_index > 100 and self.k_index < 4 and self.a_index < 20

    def get_score(self, now: datetime | None = None) -> int:
        """Weighted: 60% flux, 30% K index, 10% A index."""
        sfi_score = 0.0
        if self.solar_flux_index is not None:
            sfi_score = clamp((self.solar_flux_index - 50) / 150 * 100)

        k_score = 0.0
        if self.k_index is not None:
            k_score = clamp((9 - self.k_index) / 9 * 100)

        a_score = 0.0
        if self.a_index is not None:
            a_score = clamp((50 - min(self.a_index, 50)) / 50 * 100)

        return round_half_up(clamp(sfi_score * 0.6 + k_score * 0.3 + a_score * 0.1))

    @property
    def geomagnetic_activity(self) -> str | None:
        k = self.k_index
        if k is None:
            return None
        if k <= 2:
            return "Quiet"
        if k <= 4:
            return "Unsettled"
        if k <= 6:
            return "Active"
        if k <= 8:
            return "Storm"
        return "Severe Storm"

    @property
    def solar_flux_level(self) -> str | None:
        sfi = self.solar_flux_index
        if sfi is None:
            return None
        if sfi < 70:
            return "Very Low"
        if sfi < 100:
            return "Low"
        if sfi < 150:
            return "Moderate"
        if sfi < 200:
            return "High"
        return "Very High"


def merge_solar_indices(
    noaa: SolarIndices | None, hamqsl: SolarIndices | None
) -> SolarIndices | None:
    """
    Combine the latest NOAA and HamQSL snapshots field by field.

    Each field comes from its preferred source when present there, otherwise
    from the other source.
    """
    if noaa is None or hamqsl is None:
        return noaa or hamqsl

    def pick(preferred, fallback):
        return preferred if preferred is not None else fallback

    return SolarIndices(
        solar_flux_index=pick(noaa.solar_flux_index, hamqsl.solar_flux_index),
        sunspot_number=pick(noaa.sunspot_number, hamqsl.sunspot_number),
        k_index=pick(hamqsl.k_index, noaa.k_index),
        a_index=pick(hamqsl.a_index, noaa.a_index),
        timestamp=max(noaa.timestamp, hamqsl.timestamp),
        source=f"{SolarIndices.NOAA_SOURCE} + {SolarIndices.HAMQSL_SOURCE}",
    )
