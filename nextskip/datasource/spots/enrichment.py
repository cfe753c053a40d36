"""
Spot enrichment from Maidenhead grid locators: continent and distance.
"""

import math

# First grid field letter -> continent
GRID_FIELD_TO_CONTINENT = {
    "A": "SA",
    "B": "AN",
    "C": "SA",
    "D": "SA",
    "E": "NA",
    "F": "NA",
    "G": "SA",
    "H": "AF",
    "I": "EU",
    "J": "EU",
    "K": "EU",
    "L": "EU",
    "M": "AS",
    "N": "AS",
    "O": "AS",
    "P": "AS",
    "Q": "OC",
    "R": "OC",
}

EARTH_RADIUS_KM = 6371.0


def continent_from_grid(grid: str | None) -> str | None:
    if not grid:
        return None
    return GRID_FIELD_TO_CONTINENT.get(grid[0].upper())


def grid_to_lat_lon(grid: str | None) -> tuple[float, float] | None:
    """Centre of a 4- or 6-character Maidenhead locator."""
    if not grid or len(grid) < 4:
        return None
    grid = grid.strip()
    try:
        field_lon = ord(grid[0].upper()) - ord("A")
        field_lat = ord(grid[1].upper()) - ord("A")
        square_lon = int(grid[2])
        square_lat = int(grid[3])
    except ValueError:
        return None
    if not (0 <= field_lon < 18 and 0 <= field_lat < 18):
        return None

    lon = -180.0 + field_lon * 20 + square_lon * 2
    lat = -90.0 + field_lat * 10 + square_lat * 1

    if len(grid) >= 6:
        sub_lon = ord(grid[4].lower()) - ord("a")
        sub_lat = ord(grid[5].lower()) - ord("a")
        if 0 <= sub_lon < 24 and 0 <= sub_lat < 24:
            lon += sub_lon * (2 / 24) + (1 / 24)
            lat += sub_lat * (1 / 24) + (1 / 48)
            return lat, lon

    return lat + 0.5, lon + 1.0


def distance_km(grid_a: str | None, grid_b: str | None) -> int | None:
    """Great-circle distance between two locators, rounded to whole km."""
    a = grid_to_lat_lon(grid_a)
    b = grid_to_lat_lon(grid_b)
    if a is None or b is None:
        return None
    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    )
    return round(2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h)))
