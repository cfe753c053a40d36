"""
Dashboard read service.

Reads go through the cache-aside stores only. A cache that cannot load
serves its empty default, so a degraded upstream never turns into an error
response; per-source freshness is reported next to the data instead.
"""

from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger

from nextskip.models.activations import ActivationsSummary
from nextskip.models.events import Contest, Event, MeteorShower
from nextskip.models.propagation import BandCondition, SolarIndices
from nextskip.models.scoring import Scoreable, rank_opportunities
from nextskip.models.spots import BandActivity
from nextskip.services.cache import CacheRegistry
from nextskip.services.errors import CacheError
from nextskip.services.resilience import ResilientFetchClient

ACTIVATIONS = "activations"
SOLAR_INDICES = "solarIndices"
BAND_CONDITIONS = "bandConditions"
CONTESTS = "contests"
METEOR_SHOWERS = "meteorShowers"
BAND_ACTIVITY = "bandActivity"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def scored(item: Scoreable, now: datetime) -> dict[str, Any]:
    """Serialize a domain object with its score, favorability and status."""
    data = item.model_dump(mode="json")
    data["score"] = item.get_score(now)
    data["favorable"] = item.is_favorable(now)
    if isinstance(item, Event):
        data["status"] = item.get_status(now).value
    return data


def describe(item: Scoreable) -> tuple[str, str]:
    """Opportunity type and title for the ranked list."""
    if isinstance(item, ActivationsSummary):
        return "activations", f"{item.total_count} POTA/SOTA activations on air"
    if isinstance(item, SolarIndices):
        return "solar", "Solar conditions"
    if isinstance(item, BandCondition):
        return "band_condition", f"{item.band.value} propagation"
    if isinstance(item, Contest):
        return "contest", item.name
    if isinstance(item, MeteorShower):
        return "meteor_shower", item.name
    if isinstance(item, BandActivity):
        return "band_activity", f"{item.band} {item.mode} activity"
    return "other", type(item).__name__


class DashboardService:
    """
    Usage:
        service = DashboardService(caches, {"activations": [pota_client, sota_client]})
        payload = await service.get_activations()
    """

    def __init__(
        self,
        caches: CacheRegistry,
        freshness_sources: dict[str, list[ResilientFetchClient[Any]]] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.caches = caches
        self.freshness_sources = freshness_sources or {}
        self._clock = clock

    async def read(self, cache_name: str, default: Any) -> Any:
        try:
            value = await self.caches.get(cache_name).get()
        except CacheError as e:
            logger.warning(f"Serving default for {cache_name}: {e}")
            return default
        return default if value is None else value

    def freshness(self, *data_types: str) -> list[dict[str, Any]]:
        result = []
        for data_type in data_types:
            for client in self.freshness_sources.get(data_type, []):
                last = client.last_successful_refresh
                result.append(
                    {
                        "source": client.source_name,
                        "last_successful_refresh": last.isoformat() if last else None,
                        "is_stale": client.is_stale(),
                        "serving_stale": client.serving_stale,
                    }
                )
        return result

    def _envelope(self, data: Any, *data_types: str) -> dict[str, Any]:
        return {
            "data": data,
            "timestamp": self._clock().isoformat(),
            "freshness": self.freshness(*data_types),
        }

    async def get_activations(self) -> dict[str, Any]:
        now = self._clock()
        summary: ActivationsSummary = await self.read(ACTIVATIONS, ActivationsSummary())
        data = {
            "pota": [scored(a, now) for a in summary.pota_activations],
            "sota": [scored(a, now) for a in summary.sota_activations],
            "total_count": summary.total_count,
            "score": summary.get_score(now),
            "favorable": summary.is_favorable(now),
            "last_updated": (
                summary.last_updated.isoformat() if summary.last_updated else None
            ),
        }
        return self._envelope(data, ACTIVATIONS)

    async def get_propagation(self) -> dict[str, Any]:
        now = self._clock()
        indices: SolarIndices | None = await self.read(SOLAR_INDICES, None)
        conditions: list[BandCondition] = await self.read(BAND_CONDITIONS, [])

        solar = None
        if indices is not None:
            solar = scored(indices, now)
            solar["geomagnetic_activity"] = indices.geomagnetic_activity
            solar["solar_flux_level"] = indices.solar_flux_level

        data = {
            "solar_indices": solar,
            "band_conditions": [scored(c, now) for c in conditions],
        }
        return self._envelope(data, SOLAR_INDICES, BAND_CONDITIONS)

    async def get_contests(self) -> dict[str, Any]:
        now = self._clock()
        contests: list[Contest] = await self.read(CONTESTS, [])
        return self._envelope([scored(c, now) for c in contests], CONTESTS)

    async def get_meteor_showers(self) -> dict[str, Any]:
        now = self._clock()
        showers: list[MeteorShower] = await self.read(METEOR_SHOWERS, [])
        data = []
        for shower in showers:
            item = scored(shower, now)
            item["current_zhr"] = shower.get_current_zhr(now)
            data.append(item)
        return self._envelope(data, METEOR_SHOWERS)

    async def get_band_activity(self) -> dict[str, Any]:
        now = self._clock()
        activity: dict[str, BandActivity] = await self.read(BAND_ACTIVITY, {})
        data = {band: scored(a, now) for band, a in sorted(activity.items())}
        return self._envelope(data, BAND_ACTIVITY)

    async def collect_opportunities(self) -> list[Scoreable]:
        items: list[Scoreable] = []
        summary = await self.read(ACTIVATIONS, ActivationsSummary())
        if summary.total_count:
            items.append(summary)
        indices = await self.read(SOLAR_INDICES, None)
        if indices is not None:
            items.append(indices)
        items.extend(await self.read(BAND_CONDITIONS, []))
        items.extend(await self.read(CONTESTS, []))
        items.extend(await self.read(METEOR_SHOWERS, []))
        items.extend((await self.read(BAND_ACTIVITY, {})).values())
        return items

    async def get_opportunities(self, limit: int | None = None) -> dict[str, Any]:
        """Every scoreable across data types, ranked on one scale."""
        now = self._clock()
        ranked = rank_opportunities(await self.collect_opportunities(), now)
        if limit is not None:
            ranked = ranked[:limit]
        data = [self._opportunity(item, score, now) for item, score in ranked]
        return self._envelope(
            data,
            ACTIVATIONS,
            SOLAR_INDICES,
            BAND_CONDITIONS,
            CONTESTS,
            METEOR_SHOWERS,
            BAND_ACTIVITY,
        )

    @staticmethod
    def _opportunity(item: Scoreable, score: int, now: datetime) -> dict[str, Any]:
        kind, title = describe(item)
        return {
            "type": kind,
            "title": title,
            "score": score,
            "favorable": item.is_favorable(now),
        }
