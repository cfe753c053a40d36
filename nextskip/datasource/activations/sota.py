"""
Summits on the Air (SOTA) spots.

API: https://api2.sota.org.uk/api/spots/50
Returns the latest spots as JSON; only spots from the last 45 minutes are kept.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger

from nextskip.datasource.base import BaseDataSource
from nextskip.datasource.parsing import parse_frequency_mhz_to_khz, parse_timestamp
from nextskip.models.activations import Activation, ActivationType, Summit
from nextskip.services.client import ServiceClient
from nextskip.services.errors import InvalidResponseError

# SOTA association code -> US state
ASSOCIATION_TO_STATE = {
    "W1": "CT",
    "W1/CT": "CT",
    "W1/MA": "MA",
    "W1/ME": "ME",
    "W1/NH": "NH",
    "W1/RI": "RI",
    "W1/VT": "VT",
    "W2": "NY",
    "W2/NJ": "NJ",
    "W2/NY": "NY",
    "W3": "PA",
    "W3/PA": "PA",
    "W3/DE": "DE",
    "W3/MD": "MD",
    "W4A": "AL",
    "W4C": "NC",
    "W4G": "GA",
    "W4K": "KY",
    "W4T": "TN",
    "W4V": "VA",
    "W5A": "AR",
    "W5L": "LA",
    "W5M": "MS",
    "W5N": "NM",
    "W5O": "OK",
    "W5T": "TX",
    "W6": "CA",
    "W7A": "AZ",
    "W7I": "ID",
    "W7M": "MT",
    "W7N": "NV",
    "W7O": "OR",
    "W7U": "UT",
    "W7W": "WA",
    "W7Y": "WY",
    "W8M": "MI",
    "W8O": "OH",
    "W8V": "WV",
    "W9": "IL",
    "W9/IL": "IL",
    "W9/IN": "IN",
    "W9/WI": "WI",
    "W0C": "CO",
    "W0K": "KS",
    "W0M": "MN",
    "W0N": "NE",
    "W0D": "SD",
    "W0S": "SD",
    "W0I": "IA",
    "WØ": "MO",
}


def association_to_state(association_code: str | None) -> str | None:
    if not association_code or not association_code.strip():
        return None
    return ASSOCIATION_TO_STATE.get(association_code.strip().upper())


class SotaSource(BaseDataSource[list[Activation]]):
    """SOTA spot feed."""

    URL = "https://api2.sota.org.uk/api/spots/50"
    SOURCE_NAME = "SOTA API"
    MAX_RESPONSE_BYTES = 2 * 1024 * 1024
    RECENCY_THRESHOLD = timedelta(minutes=45)

    def __init__(self, client: ServiceClient | None = None, url: str | None = None):
        super().__init__(client)
        self.url = url or self.URL

    @property
    def source_name(self) -> str:
        return self.SOURCE_NAME

    @property
    def cache_name(self) -> str:
        return "sotaActivations"

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(minutes=1)

    def default_value(self) -> list[Activation]:
        return []

    async def fetch(self) -> list[Activation]:
        logger.debug("Fetching SOTA activations")
        data = await self.client.get_json(
            self.SOURCE_NAME, self.url, max_bytes=self.MAX_RESPONSE_BYTES
        )
        if not isinstance(data, list):
            raise InvalidResponseError(
                "SOTA response is not a list", source_name=self.SOURCE_NAME
            )

        now = datetime.now(timezone.utc)
        cutoff = now - self.RECENCY_THRESHOLD
        activations = [
            a
            for a in (self._to_activation(spot, now) for spot in data)
            if a is not None and a.spotted_at is not None and a.spotted_at > cutoff
        ]
        logger.info(
            f"Fetched {len(activations)} recent SOTA activations "
            f"(filtered from {len(data)} total spots)"
        )
        return activations

    def _to_activation(self, spot: Any, now: datetime) -> Activation | None:
        if not isinstance(spot, dict):
            return None
        try:
            association = spot.get("associationCode")
            summit = Summit(
                reference=spot["summitCode"],
                name=spot.get("summitDetails") or "",
                region_code=association_to_state(association),
                association_code=association,
            )
            return Activation(
                spot_id=str(spot["id"]),
                activator_callsign=spot["activatorCallsign"],
                type=ActivationType.SOTA,
                frequency=parse_frequency_mhz_to_khz(spot.get("frequency")),
                mode=spot.get("mode") or None,
                spotted_at=parse_timestamp(spot.get("timeStamp"), "SOTA"),
                # When we last saw it in the feed; SOTA does not report QSO counts
                last_seen_at=now,
                qso_count=None,
                source=self.SOURCE_NAME,
                location=summit,
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Error converting SOTA spot to activation: {e}")
            return None
