"""
NOAA Space Weather Prediction Center solar cycle indices.

API: https://services.swpc.noaa.gov/json/solar-cycle/observed-solar-cycle-indices.json
Monthly observed values; the last entry is the most recent. K and A indices
are not part of this feed.
"""

from datetime import timedelta
from typing import Any

from loguru import logger

from nextskip.datasource.base import BaseDataSource
from nextskip.datasource.parsing import parse_float, parse_int, parse_timestamp
from nextskip.models.propagation import SolarIndices
from nextskip.services.client import ServiceClient
from nextskip.services.errors import InvalidResponseError


class NoaaSwpcSource(BaseDataSource[SolarIndices]):
    """Observed solar flux and sunspot number from NOAA SWPC."""

    URL = (
        "https://services.swpc.noaa.gov/json/solar-cycle/"
        "observed-solar-cycle-indices.json"
    )
    SOURCE_NAME = "NOAA"

    def __init__(self, client: ServiceClient | None = None, url: str | None = None):
        super().__init__(client)
        self.url = url or self.URL

    @property
    def source_name(self) -> str:
        return self.SOURCE_NAME

    @property
    def cache_name(self) -> str:
        return "noaaSolar"

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(minutes=30)

    async def fetch(self) -> SolarIndices:
        logger.debug("Fetching solar indices from NOAA SWPC")
        data = await self.client.get_json(self.SOURCE_NAME, self.url)
        if not isinstance(data, list) or not data:
            raise InvalidResponseError(
                "Empty response from NOAA API", source_name=self.SOURCE_NAME
            )

        indices = self._parse_entry(data[-1])
        logger.info(
            f"Fetched solar indices from NOAA: SFI={indices.solar_flux_index}, "
            f"Sunspots={indices.sunspot_number}"
        )
        return indices

    def _parse_entry(self, entry: Any) -> SolarIndices:
        if not isinstance(entry, dict):
            raise InvalidResponseError(
                "Unexpected NOAA entry format", source_name=self.SOURCE_NAME
            )

        solar_flux = parse_float(entry.get("f10.7"))
        sunspots = parse_int(entry.get("ssn"))
        time_tag = entry.get("time-tag")

        self._check_range("f10.7 (solar flux)", solar_flux, 0, 1000)
        self._check_range("ssn (sunspot number)", sunspots, 0, 1000)
        if not time_tag:
            raise InvalidResponseError(
                "Missing required field: time-tag", source_name=self.SOURCE_NAME
            )

        # time-tag is often a partial date such as "2025-11"
        return SolarIndices(
            solar_flux_index=solar_flux,
            sunspot_number=sunspots,
            timestamp=parse_timestamp(str(time_tag), self.SOURCE_NAME),
            source=SolarIndices.NOAA_SOURCE,
        )

    def _check_range(
        self, field: str, value: float | None, low: float, high: float
    ) -> None:
        if value is None:
            raise InvalidResponseError(
                f"Missing required field: {field}", source_name=self.SOURCE_NAME
            )
        if not low <= value <= high:
            raise InvalidResponseError(
                f"{field} out of expected range [{low}, {high}]: {value}",
                source_name=self.SOURCE_NAME,
            )
