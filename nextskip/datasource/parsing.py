"""
Parsing helpers shared by the source adapters.
"""

import math
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser
from loguru import logger


def parse_timestamp(value: str | None, source_name: str) -> datetime:
    """
    Parse an upstream timestamp as UTC.

    Values without an offset are taken as UTC. Missing or unparseable
    values fall back to the current time.
    """
    now = datetime.now(timezone.utc)
    if not value or not value.strip():
        return now
    try:
        parsed = date_parser.isoparse(value.strip())
    except (ValueError, OverflowError):
        logger.warning(f"Unable to parse timestamp from {source_name}: '{value}', using current time")
        return now
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_float(value: Any) -> float | None:
    """Finite float from a number or numeric string; None otherwise."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def parse_int(value: Any) -> int | None:
    number = parse_float(value)
    if number is None:
        return None
    return int(number)


def parse_frequency_mhz_to_khz(value: Any) -> float | None:
    mhz = parse_float(value)
    return mhz * 1000.0 if mhz is not None else None


def parse_region_code(location_desc: str | None) -> str | None:
    """"US-CO" -> "CO"."""
    if not location_desc:
        return None
    country, sep, region = location_desc.partition("-")
    if sep and country and region:
        return region
    return None


def parse_country_code(location_desc: str | None) -> str | None:
    """"US-CO" -> "US"."""
    if not location_desc:
        return None
    country, sep, _ = location_desc.partition("-")
    if sep and country:
        return country
    return None
