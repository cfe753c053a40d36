"""
WA7BNM contest series details.

Page: https://www.contestcalendar.com/contestdetails.php?ref=N
One page per contest series. The series refs come from the weekly calendar
feed, so every upcoming contest with a details link gets its bands, modes,
sponsor and rules link filled in.
"""

import asyncio
import re
from datetime import date, datetime, timedelta
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from loguru import logger

from nextskip.datasource.base import BaseDataSource
from nextskip.datasource.contests.calendar import ContestCalendarSource, extract_ref
from nextskip.models.events import Contest, ContestSeries
from nextskip.models.propagation import FrequencyBand
from nextskip.services.client import ServiceClient
from nextskip.services.errors import InvalidResponseError, ServiceError

_REVISION_DATE = re.compile(r"Revision Date:\s*([A-Za-z]+\s+\d{1,2},\s*\d{4})")

# Contest pages say "Any" or "All, except WARC" rather than listing bands
HF_BANDS = (
    FrequencyBand.BAND_160M,
    FrequencyBand.BAND_80M,
    FrequencyBand.BAND_60M,
    FrequencyBand.BAND_40M,
    FrequencyBand.BAND_30M,
    FrequencyBand.BAND_20M,
    FrequencyBand.BAND_17M,
    FrequencyBand.BAND_15M,
    FrequencyBand.BAND_12M,
    FrequencyBand.BAND_10M,
)
WARC_BANDS = frozenset(
    {
        FrequencyBand.BAND_60M,
        FrequencyBand.BAND_30M,
        FrequencyBand.BAND_17M,
        FrequencyBand.BAND_12M,
    }
)

DIGITAL_MARKERS = ("digital", "rtty", "ft8", "ft4", "psk")


def parse_bands(text: str | None) -> frozenset[str]:
    """
    "Any" / "All, except WARC" -> HF bands (minus WARC); otherwise each band
    named as "20m", "20 m" or a bare "20".
    """
    if not text or not text.strip():
        return frozenset()

    normalized = text.lower()
    if "any" in normalized or re.match(r"all\b", normalized.strip()):
        bands = set(HF_BANDS)
        if "warc" in normalized:
            bands -= WARC_BANDS
        return frozenset(b.value for b in bands)

    found = set()
    for band in FrequencyBand:
        number = band.value[:-1]
        if re.search(rf"\b{number}(?:\s*m)?\b", normalized):
            found.add(band.value)
    return frozenset(found)


def parse_modes(text: str | None) -> frozenset[str]:
    if not text or not text.strip():
        return frozenset()

    normalized = text.lower()
    if "any" in normalized:
        return frozenset({"CW", "SSB", "Digital"})

    modes = set()
    if "cw" in normalized:
        modes.add("CW")
    if "ssb" in normalized or "phone" in normalized:
        modes.add("SSB")
    if any(marker in normalized for marker in DIGITAL_MARKERS):
        modes.add("Digital")
    if re.search(r"\bfm\b", normalized):
        modes.add("FM")
    if re.search(r"\bam\b", normalized):
        modes.add("AM")
    return frozenset(modes)


def parse_revision_date(html: str) -> date | None:
    match = _REVISION_DATE.search(html)
    if match is None:
        return None
    value = re.sub(r"\s+", " ", match.group(1))
    try:
        return datetime.strptime(value, "%B %d, %Y").date()
    except ValueError:
        logger.debug(f"Unparseable revision date: {match.group(1)}")
        return None


def _text(element: Tag) -> str:
    return element.get_text(" ", strip=True)


def _leaf_cells(soup: BeautifulSoup) -> list[Tag]:
    # Layout tables wrap the details table; their cells hold every label at once
    return [c for c in soup.find_all(["td", "th"]) if c.find(["td", "th"]) is None]


def find_field_value(soup: BeautifulSoup, label: str) -> str | None:
    """
    Value next to a label such as "Bands:".

    Looked up in a label/value table row first, then a <dt>/<dd> pair, then
    bold label text followed by the value in the same element.
    """
    label = label.lower()

    cells = _leaf_cells(soup)
    for cell, following in zip(cells, cells[1:]):
        if label in _text(cell).lower():
            value = _text(following)
            if value:
                return value

    for term in soup.find_all("dt"):
        if label not in _text(term).lower():
            continue
        definition = term.find_next_sibling()
        if definition is not None and definition.name == "dd" and _text(definition):
            return _text(definition)

    for bold in soup.find_all(["b", "strong"]):
        if label not in _text(bold).lower() or bold.parent is None:
            continue
        _, sep, value = _text(bold.parent).partition(":")
        if sep and value.strip():
            return value.strip()
    return None


def find_rules_url(soup: BeautifulSoup, page_url: str) -> str | None:
    cells = _leaf_cells(soup)
    for cell, following in zip(cells, cells[1:]):
        if "find rules at" not in _text(cell).lower():
            continue
        link = following.find("a", href=True)
        if link is not None and link["href"].strip():
            return urljoin(page_url, link["href"].strip())

    for link in soup.find_all("a", href=True):
        parent = link.parent
        if parent is None:
            continue
        parent_text = _text(parent).lower()
        if "find rules at" in parent_text or "official rules" in parent_text:
            href = link["href"].strip()
            if href:
                return urljoin(page_url, href)
    return None


def parse_contest_name(soup: BeautifulSoup) -> str | None:
    heading = soup.find("h1")
    if heading is not None and _text(heading):
        return _text(heading)
    if soup.title is not None and soup.title.string:
        title = soup.title.string.strip()
        name, sep, _ = title.partition(" - ")
        return name.strip() if sep and name.strip() else title or None
    return None


class ContestSeriesSource(BaseDataSource[list[ContestSeries]]):
    """Series metadata for every contest on the current WA7BNM calendar."""

    BASE_URL = "https://www.contestcalendar.com"
    DETAILS_PATH = "/contestdetails.php"
    SOURCE_NAME = "WA7BNM Contest Series"
    REQUEST_TIMEOUT = 15.0
    MAX_RESPONSE_BYTES = 512 * 1024

    def __init__(
        self,
        client: ServiceClient | None = None,
        calendar: ContestCalendarSource | None = None,
        base_url: str | None = None,
        request_delay: float = 5.0,
    ):
        super().__init__(client)
        self.calendar = calendar or ContestCalendarSource(self.client)
        self.base_url = base_url or self.BASE_URL
        self.request_delay = request_delay

    @property
    def source_name(self) -> str:
        return self.SOURCE_NAME

    @property
    def cache_name(self) -> str:
        return "contestSeries"

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(days=1)

    def default_value(self) -> list[ContestSeries]:
        return []

    @staticmethod
    def series_refs(contests: list[Contest]) -> list[str]:
        """Distinct details-page refs, in calendar order."""
        refs: list[str] = []
        for contest in contests:
            ref = extract_ref(contest.calendar_source_url)
            if ref is not None and ref not in refs:
                refs.append(ref)
        return refs

    async def fetch(self) -> list[ContestSeries]:
        refs = self.series_refs(await self.calendar.fetch())
        logger.debug(f"Fetching details for {len(refs)} contest series")

        series: list[ContestSeries] = []
        last_error: ServiceError | None = None
        for i, ref in enumerate(refs):
            if i and self.request_delay > 0:
                await asyncio.sleep(self.request_delay)
            try:
                series.append(await self.fetch_series(ref))
            except ServiceError as e:
                logger.warning(f"Failed to fetch contest series ref={ref}: {e}")
                last_error = e

        if last_error is not None and not series:
            raise last_error
        logger.info(
            f"Fetched {len(series)} contest series from WA7BNM "
            f"({len(refs) - len(series)} failed)"
        )
        return series

    async def fetch_series(self, ref: str) -> ContestSeries:
        url = f"{self.base_url}{self.DETAILS_PATH}"
        html = await self.client.get_text(
            self.SOURCE_NAME,
            url,
            params={"ref": ref},
            timeout=self.REQUEST_TIMEOUT,
            max_bytes=self.MAX_RESPONSE_BYTES,
        )
        return self.parse(ref, html, f"{url}?ref={ref}")

    def parse(self, ref: str, html: str, page_url: str | None = None) -> ContestSeries:
        if not html or not html.strip():
            raise InvalidResponseError(
                f"Empty details page for ref={ref}", source_name=self.SOURCE_NAME
            )

        soup = BeautifulSoup(html, "html.parser")
        page_url = page_url or f"{self.base_url}{self.DETAILS_PATH}?ref={ref}"
        return ContestSeries(
            ref=ref,
            name=parse_contest_name(soup),
            bands=parse_bands(find_field_value(soup, "Bands:")),
            modes=parse_modes(find_field_value(soup, "Mode:")),
            sponsor=find_field_value(soup, "Sponsor:"),
            official_rules_url=find_rules_url(soup, page_url),
            exchange=find_field_value(soup, "Exchange:"),
            cabrillo_name=find_field_value(soup, "Cabrillo name:"),
            revision_date=parse_revision_date(html),
        )
