"""
Time-bound events: contests and meteor showers.
"""

import math
from abc import abstractmethod
from datetime import date, datetime, timedelta
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from nextskip.models.scoring import Scoreable, round_half_up, utcnow, whole_hours


class EventStatus(str, Enum):
    UPCOMING = "UPCOMING"
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"


class Event(Scoreable):
    """An event with a start/end window and a status derived from it."""

    @property
    @abstractmethod
    def window_start(self) -> datetime: ...

    @property
    @abstractmethod
    def window_end(self) -> datetime: ...

    def get_status(self, now: datetime | None = None) -> EventStatus:
        now = now or utcnow()
        if now < self.window_start:
            return EventStatus.UPCOMING
        if now > self.window_end:
            return EventStatus.ENDED
        return EventStatus.ACTIVE

    def time_to_start(self, now: datetime | None = None) -> timedelta:
        return self.window_start - (now or utcnow())

    def time_remaining(self, now: datetime | None = None) -> timedelta:
        return self.window_end - (now or utcnow())


class Contest(BaseModel, Event):
    """Amateur radio contest."""

    model_config = ConfigDict(frozen=True)

    name: str
    start_time: datetime
    end_time: datetime
    bands: frozenset[str] = Field(default_factory=frozenset)
    modes: frozenset[str] = Field(default_factory=frozenset)
    sponsor: str | None = None
    calendar_source_url: str | None = None
    official_rules_url: str | None = None

    @property
    def window_start(self) -> datetime:
        return self.start_time

    @property
    def window_end(self) -> datetime:
        return self.end_time

    def is_ending_soon(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        if self.get_status(now) != EventStatus.ACTIVE:
            return False
        return self.time_remaining(now) < timedelta(hours=1)

    def is_favorable(self, now: datetime | None = None) -> bool:
        """Running now, or starting within six hours."""
        now = now or utcnow()
        status = self.get_status(now)
        if status == EventStatus.ACTIVE:
            return True
        if status == EventStatus.UPCOMING:
            return whole_hours(self.time_to_start(now)) <= 6
        return False

    def get_score(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        status = self.get_status(now)
        if status == EventStatus.ACTIVE:
            return 100
        if status == EventStatus.ENDED:
            return 0

        hours = whole_hours(self.time_to_start(now))
        if hours <= 6:
            return int(100 - hours * 3.33)
        if hours <= 24:
            return int(80 - (hours - 6) * 2.22)
        if hours <= 72:
            return int(40 - (hours - 24) * 0.42)
        return 10


class ContestSeries(BaseModel):
    """
    Metadata shared by every occurrence of a contest, keyed by its WA7BNM ref.

    The revision date is the details page's own "Revision Date" and changes
    when the page is edited.
    """

    model_config = ConfigDict(frozen=True)

    ref: str
    name: str | None = None
    bands: frozenset[str] = Field(default_factory=frozenset)
    modes: frozenset[str] = Field(default_factory=frozenset)
    sponsor: str | None = None
    official_rules_url: str | None = None
    exchange: str | None = None
    cabrillo_name: str | None = None
    revision_date: date | None = None


class MeteorShower(BaseModel, Event):
    """
    Annual meteor shower instance with concrete dates.

    Status follows the visibility window; the peak window drives the score.
    """

    model_config = ConfigDict(frozen=True)

    SIGMA_HOURS: ClassVar[float] = 24.0

    name: str
    code: str
    peak_start: datetime
    peak_end: datetime
    visibility_start: datetime
    visibility_end: datetime
    peak_zhr: int = Field(ge=0)
    parent_body: str | None = None
    info_url: str | None = None

    @property
    def window_start(self) -> datetime:
        return self.visibility_start

    @property
    def window_end(self) -> datetime:
        return self.visibility_end

    def is_at_peak(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.peak_start <= now <= self.peak_end

    def time_to_peak(self, now: datetime | None = None) -> timedelta:
        """Positive before the peak, zero during it, negative after it."""
        now = now or utcnow()
        if now < self.peak_start:
            return self.peak_start - now
        if now > self.peak_end:
            return -(now - self.peak_end)
        return timedelta(0)

    def get_current_zhr(self, now: datetime | None = None) -> int:
        """Estimated zenithal hourly rate, Gaussian around the peak midpoint."""
        now = now or utcnow()
        status = self.get_status(now)
        if status == EventStatus.ENDED:
            return 0
        if status == EventStatus.UPCOMING:
            return 1

        midpoint = self.peak_start + (self.peak_end - self.peak_start) / 2
        hours_from_peak = abs(whole_hours(now - midpoint))
        decay = math.exp(-0.5 * (hours_from_peak / self.SIGMA_HOURS) ** 2)
        return max(1, round_half_up(self.peak_zhr * decay))

    def is_ending_soon(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        if self.get_status(now) != EventStatus.ACTIVE:
            return False
        return self.peak_end - timedelta(hours=6) < now < self.peak_end

    def is_favorable(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        status = self.get_status(now)
        if status == EventStatus.ACTIVE:
            if self.is_at_peak(now):
                return True
            hours_to_peak = whole_hours(self.peak_start - now)
            return 0 <= hours_to_peak <= 12
        if status == EventStatus.UPCOMING:
            return whole_hours(self.time_to_start(now)) <= 12
        return False

    def get_score(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        status = self.get_status(now)

        if status == EventStatus.ACTIVE:
            if self.is_at_peak(now):
                return 85 + int(min(15, self.peak_zhr / 10.0))
            if self.peak_zhr <= 0:
                return 40
            ratio = self.get_current_zhr(now) / self.peak_zhr
            return int(40 + ratio * 44)

        if status == EventStatus.UPCOMING:
            hours = whole_hours(self.time_to_start(now))
            if hours <= 24:
                return int(80 - hours * 0.83)
            if hours <= 72:
                return int(60 - (hours - 24) * 0.625)
            return 15

        return 0
