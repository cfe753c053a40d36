"""
Domain models shared by sources, refresh services and the dashboard.
"""

from nextskip.models.activations import (
    Activation,
    ActivationsSummary,
    ActivationType,
    Park,
    Summit,
)
from nextskip.models.events import Contest, ContestSeries, EventStatus, MeteorShower
from nextskip.models.propagation import (
    BandCondition,
    BandConditionRating,
    FrequencyBand,
    SolarIndices,
    merge_solar_indices,
)
from nextskip.models.scoring import Scoreable, rank_opportunities
from nextskip.models.spots import BandActivity, ContinentPath, ModeWindow, Spot

__all__ = [
    # Scoring
    "Scoreable",
    "rank_opportunities",
    # Activations
    "Activation",
    "ActivationsSummary",
    "ActivationType",
    "Park",
    "Summit",
    # Propagation
    "BandCondition",
    "BandConditionRating",
    "FrequencyBand",
    "SolarIndices",
    "merge_solar_indices",
    # Events
    "Contest",
    "ContestSeries",
    "EventStatus",
    "MeteorShower",
    # Spots
    "BandActivity",
    "ContinentPath",
    "ModeWindow",
    "Spot",
]
