"""
HamQSL solar XML feed (https://www.hamqsl.com/solarxml.php).

One document carries both the current solar/geomagnetic indices and the
calculated HF band conditions; two sources read it independently so each
gets its own circuit breaker and refresh schedule.
"""

from datetime import datetime, timedelta, timezone

from bs4 import BeautifulSoup, Tag
from loguru import logger

from nextskip.datasource.base import BaseDataSource
from nextskip.datasource.parsing import parse_float, parse_int
from nextskip.models.propagation import (
    BandCondition,
    BandConditionRating,
    FrequencyBand,
    SolarIndices,
)
from nextskip.services.client import ServiceClient
from nextskip.services.errors import InvalidResponseError

HAMQSL_URL = "https://www.hamqsl.com/solarxml.php"

# HamQSL reports paired bands; each pair rates both members
BAND_PAIRS: dict[str, tuple[FrequencyBand, FrequencyBand]] = {
    "80m-40m": (FrequencyBand.BAND_80M, FrequencyBand.BAND_40M),
    "30m-20m": (FrequencyBand.BAND_30M, FrequencyBand.BAND_20M),
    "17m-15m": (FrequencyBand.BAND_17M, FrequencyBand.BAND_15M),
    "12m-10m": (FrequencyBand.BAND_12M, FrequencyBand.BAND_10M),
}


def parse_solardata(xml: str, source_name: str) -> Tag:
    """Return the <solardata> element or raise InvalidResponseError."""
    if not xml or not xml.strip():
        raise InvalidResponseError(
            "Empty response from HamQSL API", source_name=source_name
        )
    soup = BeautifulSoup(xml, "html.parser")
    solardata = soup.find("solardata")
    if solardata is None:
        raise InvalidResponseError(
            "Missing solardata element in XML response", source_name=source_name
        )
    return solardata


def _element_text(parent: Tag, name: str) -> str | None:
    element = parent.find(name)
    if element is None:
        return None
    return element.get_text(strip=True) or None


class HamQslSolarSource(BaseDataSource[SolarIndices]):
    """K index, A index, solar flux and sunspots from HamQSL."""

    SOURCE_NAME = "HamQSL"

    def __init__(self, client: ServiceClient | None = None, url: str | None = None):
        super().__init__(client)
        self.url = url or HAMQSL_URL

    @property
    def source_name(self) -> str:
        return self.SOURCE_NAME

    @property
    def cache_name(self) -> str:
        return "hamqslSolar"

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(minutes=30)

    async def fetch(self) -> SolarIndices:
        logger.debug("Fetching solar data from HamQSL")
        xml = await self.client.get_text(self.SOURCE_NAME, self.url)
        indices = self.parse(xml)
        logger.info(
            f"Fetched solar indices from HamQSL: K={indices.k_index}, A={indices.a_index}"
        )
        return indices

    def parse(self, xml: str) -> SolarIndices:
        solardata = parse_solardata(xml, self.SOURCE_NAME)

        solar_flux = parse_float(_element_text(solardata, "solarflux"))
        a_index = parse_int(_element_text(solardata, "aindex"))
        k_index = parse_int(_element_text(solardata, "kindex"))
        sunspots = parse_int(_element_text(solardata, "sunspots"))

        self._check_range("K-index", k_index, 0, 9)
        self._check_range("A-index", a_index, 0, 500)
        self._check_range("Solar flux", solar_flux, 0, 1000)
        self._check_range("Sunspot number", sunspots, 0, 1000)

        return SolarIndices(
            solar_flux_index=solar_flux,
            a_index=a_index,
            k_index=k_index,
            sunspot_number=sunspots,
            timestamp=datetime.now(timezone.utc),
            source=SolarIndices.HAMQSL_SOURCE,
        )

    def _check_range(
        self, field: str, value: float | None, low: float, high: float
    ) -> None:
        # Missing values are allowed; the merge fills them from NOAA
        if value is not None and not low <= value <= high:
            raise InvalidResponseError(
                f"{field} out of expected range [{low}, {high}]: {value}",
                source_name=self.SOURCE_NAME,
            )


class HamQslBandSource(BaseDataSource[list[BandCondition]]):
    """Calculated daytime HF band conditions from HamQSL."""

    SOURCE_NAME = "HamQSL Band"
    DAY_PERIOD = "day"

    def __init__(self, client: ServiceClient | None = None, url: str | None = None):
        super().__init__(client)
        self.url = url or HAMQSL_URL

    @property
    def source_name(self) -> str:
        return self.SOURCE_NAME

    @property
    def cache_name(self) -> str:
        return "hamqslBand"

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(minutes=30)

    def default_value(self) -> list[BandCondition]:
        return []

    async def fetch(self) -> list[BandCondition]:
        logger.debug("Fetching band conditions from HamQSL")
        xml = await self.client.get_text(self.SOURCE_NAME, self.url)
        conditions = self.parse(xml)
        logger.info(f"Fetched {len(conditions)} band conditions from HamQSL")
        return conditions

    def parse(self, xml: str) -> list[BandCondition]:
        solardata = parse_solardata(xml, self.SOURCE_NAME)
        calculated = solardata.find("calculatedconditions")
        if calculated is None:
            return []

        conditions: list[BandCondition] = []
        for entry in calculated.find_all("band"):
            if entry.get("time") != self.DAY_PERIOD:
                continue
            bands = BAND_PAIRS.get(entry.get("name", ""))
            if bands is None:
                continue
            rating = BandConditionRating.from_string(entry.get_text(strip=True))
            conditions.extend(BandCondition(band=band, rating=rating) for band in bands)
        return conditions
