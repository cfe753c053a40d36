"""
Parks on the Air (POTA) activator spots.

API: https://api.pota.app/spot/activator
Returns a JSON list of current spots, no API key required.
"""

from datetime import timedelta
from typing import Any

from loguru import logger

from nextskip.datasource.base import BaseDataSource
from nextskip.datasource.parsing import (
    parse_country_code,
    parse_float,
    parse_int,
    parse_region_code,
    parse_timestamp,
)
from nextskip.models.activations import Activation, ActivationType, Park
from nextskip.services.client import ServiceClient
from nextskip.services.errors import InvalidResponseError


class PotaSource(BaseDataSource[list[Activation]]):
    """POTA activator spot feed."""

    URL = "https://api.pota.app/spot/activator"
    SOURCE_NAME = "POTA API"
    MAX_RESPONSE_BYTES = 2 * 1024 * 1024

    def __init__(self, client: ServiceClient | None = None, url: str | None = None):
        super().__init__(client)
        self.url = url or self.URL

    @property
    def source_name(self) -> str:
        return self.SOURCE_NAME

    @property
    def cache_name(self) -> str:
        return "potaActivations"

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(minutes=1)

    def default_value(self) -> list[Activation]:
        return []

    async def fetch(self) -> list[Activation]:
        logger.debug("Fetching POTA activations")
        data = await self.client.get_json(
            self.SOURCE_NAME, self.url, max_bytes=self.MAX_RESPONSE_BYTES
        )
        if not isinstance(data, list):
            raise InvalidResponseError(
                "POTA response is not a list", source_name=self.SOURCE_NAME
            )

        activations = [a for a in (self._to_activation(spot) for spot in data) if a]
        logger.info(f"Fetched {len(activations)} POTA activations")
        return activations

    def _to_activation(self, spot: Any) -> Activation | None:
        if not isinstance(spot, dict):
            return None
        try:
            location_desc = spot.get("locationDesc")
            park = Park(
                reference=spot["reference"],
                name=spot.get("name") or "",
                region_code=parse_region_code(location_desc),
                country_code=parse_country_code(location_desc),
                grid=spot.get("grid6"),
                latitude=parse_float(spot.get("latitude")),
                longitude=parse_float(spot.get("longitude")),
            )
            spotted_at = parse_timestamp(spot.get("spotTime"), "POTA")
            return Activation(
                spot_id=str(spot["spotId"]),
                activator_callsign=spot["activator"],
                type=ActivationType.POTA,
                frequency=parse_float(spot.get("frequency")),
                mode=spot.get("mode") or None,
                spotted_at=spotted_at,
                last_seen_at=spotted_at,
                qso_count=parse_int(spot.get("qsos")),
                source=self.SOURCE_NAME,
                location=park,
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Error converting POTA spot to activation: {e}")
            return None
