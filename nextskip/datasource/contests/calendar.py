"""
WA7BNM contest calendar.

Feed: https://www.contestcalendar.com/weeklycontcustom.php (iCalendar)
Each VEVENT carries SUMMARY, DTSTART, DTEND and a URL to the contest details
page. Malformed events are skipped; a document that is not a calendar at all
is a response error.
"""

import re
from datetime import datetime, timedelta, timezone

from dateutil import parser as date_parser
from loguru import logger

from nextskip.datasource.base import BaseDataSource
from nextskip.models.events import Contest
from nextskip.services.client import ServiceClient
from nextskip.services.errors import InvalidResponseError

_REF_PATTERN = re.compile(r"[?&]ref=(\d+)")


def unfold_lines(text: str) -> list[str]:
    """Join RFC 5545 continuation lines (leading space or tab)."""
    lines: list[str] = []
    for raw in text.splitlines():
        if raw[:1] in (" ", "\t") and lines:
            lines[-1] += raw[1:]
        elif raw.strip():
            lines.append(raw.rstrip("\r"))
    return lines


def _unescape(value: str) -> str:
    return (
        value.replace("\\n", "\n")
        .replace("\\N", "\n")
        .replace("\\,", ",")
        .replace("\\;", ";")
        .replace("\\\\", "\\")
    )


def parse_ical_datetime(value: str) -> datetime:
    """
    Parse DTSTART/DTEND values: "20250115T120000Z", floating
    "20250115T120000" (taken as UTC) or a plain date "20250115".
    """
    parsed = date_parser.parse(value.strip())
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_events(text: str) -> list[dict[str, str]]:
    """Split an iCalendar document into VEVENT property maps."""
    events: list[dict[str, str]] = []
    current: dict[str, str] | None = None
    for line in unfold_lines(text):
        upper = line.upper()
        if upper == "BEGIN:VEVENT":
            current = {}
        elif upper == "END:VEVENT":
            if current is not None:
                events.append(current)
            current = None
        elif current is not None and ":" in line:
            name_and_params, value = line.split(":", 1)
            name = name_and_params.split(";", 1)[0].upper()
            current.setdefault(name, _unescape(value))
    return events


def extract_ref(url: str | None) -> str | None:
    """"https://contestcalendar.com/contestdetails.php?ref=8" -> "8"."""
    if not url:
        return None
    match = _REF_PATTERN.search(url)
    return match.group(1) if match else None


class ContestCalendarSource(BaseDataSource[list[Contest]]):
    """Upcoming contests from the WA7BNM weekly calendar."""

    URL = "https://www.contestcalendar.com/weeklycontcustom.php"
    SOURCE_NAME = "WA7BNM Contest Calendar"
    REQUEST_TIMEOUT = 15.0

    def __init__(self, client: ServiceClient | None = None, url: str | None = None):
        super().__init__(client)
        self.url = url or self.URL

    @property
    def source_name(self) -> str:
        return self.SOURCE_NAME

    @property
    def cache_name(self) -> str:
        return "contestCalendar"

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(hours=6)

    def default_value(self) -> list[Contest]:
        return []

    async def fetch(self) -> list[Contest]:
        logger.debug("Fetching contests from WA7BNM iCal feed")
        text = await self.client.get_text(
            self.SOURCE_NAME, self.url, timeout=self.REQUEST_TIMEOUT
        )
        contests = self.parse(text)
        logger.info(f"Fetched {len(contests)} contests from WA7BNM")
        return contests

    def parse(self, text: str) -> list[Contest]:
        if not text or "BEGIN:VCALENDAR" not in text.upper():
            raise InvalidResponseError(
                "Response is not an iCalendar document", source_name=self.SOURCE_NAME
            )

        contests = []
        for event in parse_events(text):
            try:
                contests.append(self._to_contest(event))
            except (KeyError, ValueError, OverflowError) as e:
                logger.warning(f"Skipping malformed contest event: {e}")
        return contests

    def _to_contest(self, event: dict[str, str]) -> Contest:
        name = event.get("SUMMARY", "").strip()
        if not name:
            raise ValueError("Contest summary (name) is required")
        start = parse_ical_datetime(event["DTSTART"])
        end = parse_ical_datetime(event["DTEND"])
        if end < start:
            raise ValueError(f"Contest '{name}' ends before it starts")

        return Contest(
            name=name,
            start_time=start,
            end_time=end,
            calendar_source_url=event.get("URL") or None,
        )
