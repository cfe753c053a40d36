"""
Meteor shower almanac.

Annual showers are described once in showers.yaml and expanded into concrete
dated instances for the current and the next year.
"""

from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path

import yaml
from loguru import logger
from pydantic import BaseModel, Field

from nextskip.datasource.base import BaseDataSource
from nextskip.models.events import MeteorShower
from nextskip.services.client import ServiceClient
from nextskip.services.errors import InvalidResponseError

DEFAULT_DATA_FILE = Path(__file__).with_name("showers.yaml")


class MeteorShowerTemplate(BaseModel):
    """年度流星雨模板"""

    code: str
    name: str
    peak_month_day: str
    peak_duration_hours: int = Field(ge=0)
    visibility_start_offset: int
    visibility_end_offset: int
    peak_zhr: int = Field(ge=0)
    radiant_ra: str | None = None
    radiant_dec: str | None = None
    velocity: int | None = None
    parent_body: str | None = None
    info_url: str | None = None

    def for_year(self, year: int) -> MeteorShower:
        month, day = (int(part) for part in self.peak_month_day.split("-"))
        peak_date = date(year, month, day)

        peak_start = datetime.combine(peak_date, time.min, tzinfo=timezone.utc)
        visibility_start = datetime.combine(
            peak_date + timedelta(days=self.visibility_start_offset),
            time.min,
            tzinfo=timezone.utc,
        )
        visibility_end = datetime.combine(
            peak_date + timedelta(days=self.visibility_end_offset),
            time(23, 59, 59),
            tzinfo=timezone.utc,
        )

        return MeteorShower(
            name=f"{self.name} {year}",
            code=self.code,
            peak_start=peak_start,
            peak_end=peak_start + timedelta(hours=self.peak_duration_hours),
            visibility_start=visibility_start,
            visibility_end=visibility_end,
            peak_zhr=self.peak_zhr,
            parent_body=self.parent_body,
            info_url=self.info_url,
        )


def load_templates(path: Path = DEFAULT_DATA_FILE) -> list[MeteorShowerTemplate]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return [MeteorShowerTemplate(**item) for item in data.get("showers", [])]


class MeteorShowerSource(BaseDataSource[list[MeteorShower]]):
    """Dated meteor showers near the current date, from the bundled almanac."""

    SOURCE_NAME = "IMO Meteor Calendar"
    LOOKAHEAD_DAYS = 30
    LOOKBACK_DAYS = 7

    def __init__(
        self,
        client: ServiceClient | None = None,
        data_file: Path | None = None,
    ):
        super().__init__(client)
        self.data_file = data_file or DEFAULT_DATA_FILE
        self._templates: list[MeteorShowerTemplate] | None = None

    @property
    def source_name(self) -> str:
        return self.SOURCE_NAME

    @property
    def cache_name(self) -> str:
        return "meteorAlmanac"

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(hours=6)

    def default_value(self) -> list[MeteorShower]:
        return []

    @property
    def templates(self) -> list[MeteorShowerTemplate]:
        if self._templates is None:
            try:
                self._templates = load_templates(self.data_file)
            except (OSError, yaml.YAMLError, ValueError) as e:
                raise InvalidResponseError(
                    f"Failed to load meteor shower data: {e}",
                    source_name=self.SOURCE_NAME,
                ) from e
            logger.info(f"Loaded {len(self._templates)} meteor shower templates")
        return self._templates

    async def fetch(self) -> list[MeteorShower]:
        showers = self.get_showers()
        logger.info(f"Generated {len(showers)} meteor showers")
        return showers

    def get_showers(
        self, now: datetime | None = None, lookahead_days: int | None = None
    ) -> list[MeteorShower]:
        """Showers whose visibility overlaps [now - 7 days, now + lookahead]."""
        now = now or datetime.now(timezone.utc)
        future = now + timedelta(days=lookahead_days or self.LOOKAHEAD_DAYS)
        past = now - timedelta(days=self.LOOKBACK_DAYS)

        showers = []
        for template in self.templates:
            for year in (now.year, now.year + 1):
                shower = template.for_year(year)
                if shower.visibility_end >= past and shower.visibility_start <= future:
                    showers.append(shower)

        showers.sort(key=lambda s: s.peak_start)
        return showers
