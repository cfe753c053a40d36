"""
PSK Reporter spot messages.

Each message is a JSON object with short keys:
    b   band          md  mode         f   frequency (Hz)
    rp  SNR (dB)      t   decode time  t_tx transmit time (epoch seconds)
    sc  sender call   sl  sender grid
    rc  receiver call rl  receiver grid

The sender is the spotted station, the receiver is the spotter.
"""

import json
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from nextskip.datasource.spots.enrichment import continent_from_grid, distance_km
from nextskip.models.spots import Spot

SOURCE = "PSKReporter"
MAX_GRID_LENGTH = 6


def _text(node: dict[str, Any], key: str) -> str | None:
    value = node.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _int(node: dict[str, Any], key: str) -> int | None:
    value = node.get(key)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _grid(value: str | None) -> str | None:
    if value is None:
        return None
    return value[:MAX_GRID_LENGTH]


def parse_message(message: str | bytes | None) -> Spot | None:
    """Parse one message into an enriched Spot, None when unusable."""
    if not message:
        return None
    try:
        node = json.loads(message)
    except ValueError as e:
        logger.debug(f"Failed to parse PSKReporter JSON: {e}")
        return None
    if not isinstance(node, dict):
        return None

    band = _text(node, "b")
    mode = _text(node, "md")
    if band is None or mode is None:
        return None

    timestamp = _int(node, "t")
    if timestamp is None:
        timestamp = _int(node, "t_tx")
    if timestamp is None:
        return None
    try:
        spotted_at = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None

    spotter_grid = _grid(_text(node, "rl"))
    spotted_grid = _grid(_text(node, "sl"))

    return Spot(
        source=SOURCE,
        band=band,
        mode=mode,
        frequency_hz=_int(node, "f"),
        snr=_int(node, "rp"),
        spotted_at=spotted_at,
        spotter_call=_text(node, "rc"),
        spotter_grid=spotter_grid,
        spotter_continent=continent_from_grid(spotter_grid),
        spotted_call=_text(node, "sc"),
        spotted_grid=spotted_grid,
        spotted_continent=continent_from_grid(spotted_grid),
        distance_km=distance_km(spotter_grid, spotted_grid),
    )
