"""
Application container - builds every component once and wires them together.

    sources -> fetch clients -> refresh services -> coordinators -> scheduler
                                      |
                                      v
                 cache refresh worker -> caches -> dashboard service -> API
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nextskip.dashboard.feed_status import FeedStatusService, SpotStreamStatus
from nextskip.dashboard.loaders import CacheLoaders
from nextskip.dashboard.server import create_dashboard_app
from nextskip.dashboard.service import (
    ACTIVATIONS,
    BAND_ACTIVITY,
    BAND_CONDITIONS,
    CONTESTS,
    METEOR_SHOWERS,
    SOLAR_INDICES,
    DashboardService,
)
from nextskip.datasource.activations import PotaSource, SotaSource
from nextskip.datasource.base import BaseDataSource
from nextskip.datasource.contests import ContestCalendarSource, ContestSeriesSource
from nextskip.datasource.meteors import MeteorShowerSource
from nextskip.datasource.propagation import (
    HamQslBandSource,
    HamQslSolarSource,
    NoaaSwpcSource,
)
from nextskip.datasource.spots.stream import SpotStreamProcessor
from nextskip.models.propagation import SolarIndices
from nextskip.refresh.activations import ActivationRefreshService
from nextskip.refresh.events import (
    ContestRefreshService,
    ContestSeriesRefreshService,
    MeteorRefreshService,
)
from nextskip.refresh.propagation import (
    BandConditionRefreshService,
    SolarIndicesRefreshService,
)
from nextskip.refresh.spots import (
    BandActivityAggregator,
    BandActivityRefreshService,
    SpotCleanupService,
)
from nextskip.scheduler.coordinator import RefreshScheduler, RefreshTaskCoordinator
from nextskip.scheduler.startup import StartupReconciler
from nextskip.services.cache import CacheRegistry, LastGoodValueCache
from nextskip.services.cache_refresh import CacheRefreshWorker
from nextskip.services.circuit_breaker import CircuitBreakerRegistry
from nextskip.services.client import ServiceClient
from nextskip.services.resilience import ResilientFetchClient, build_fetch_client
from nextskip.settings import Settings, global_settings

# Safety-net TTLs; caches are normally refreshed by the refresh services
CACHE_TTLS: dict[str, timedelta] = {
    ACTIVATIONS: timedelta(minutes=10),
    SOLAR_INDICES: timedelta(minutes=15),
    BAND_CONDITIONS: timedelta(minutes=45),
    CONTESTS: timedelta(hours=12),
    METEOR_SHOWERS: timedelta(hours=4),
    BAND_ACTIVITY: timedelta(minutes=5),
}

BAND_ACTIVITY_INTERVAL = timedelta(minutes=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SourceSet:
    """The external sources, one per refresh task."""

    pota: BaseDataSource[Any]
    sota: BaseDataSource[Any]
    noaa: BaseDataSource[Any]
    hamqsl_solar: BaseDataSource[Any]
    hamqsl_band: BaseDataSource[Any]
    contests: BaseDataSource[Any]
    contest_series: BaseDataSource[Any]
    meteors: BaseDataSource[Any]

    @classmethod
    def default(
        cls, client: ServiceClient | None = None, settings: Settings | None = None
    ) -> "SourceSet":
        settings = settings or global_settings
        calendar = ContestCalendarSource(client)
        return cls(
            pota=PotaSource(client),
            sota=SotaSource(client),
            noaa=NoaaSwpcSource(client),
            hamqsl_solar=HamQslSolarSource(client),
            hamqsl_band=HamQslBandSource(client),
            contests=calendar,
            contest_series=ContestSeriesSource(
                client,
                calendar=calendar,
                request_delay=settings.contest_series_request_delay,
            ),
            meteors=MeteorShowerSource(client),
        )


class Application:
    """
    Usage:
        app = Application()
        await app.start()
        ...
        await app.stop()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        sources: SourceSet | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        scheduler: AsyncIOScheduler | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings or global_settings
        self.sources = sources or SourceSet.default(settings=self.settings)
        self._session_factory = session_factory
        self._clock = clock

        self.breakers = CircuitBreakerRegistry(clock=clock)
        self.fallback_cache = LastGoodValueCache(clock=clock)
        self.worker = CacheRefreshWorker()
        self.loaders = CacheLoaders(session_factory, clock)
        self.aggregator = BandActivityAggregator(session_factory, clock)
        self.caches = self._build_caches()

        self.fetch_clients: dict[str, ResilientFetchClient[Any]] = {
            name: build_fetch_client(source, self.breakers, self.fallback_cache, self.settings)
            for name, source in vars(self.sources).items()
        }

        self.scheduler = RefreshScheduler(scheduler, clock=clock)
        self.spot_stream: SpotStreamProcessor | None = None
        if self.settings.spots_enabled:
            self.spot_stream = SpotStreamProcessor(session_factory, clock=clock)
        self._register_refresh_tasks()

        self.reconciler = StartupReconciler(
            self.scheduler,
            enabled=self.settings.eager_load_on_startup,
            stagger=timedelta(seconds=self.settings.startup_stagger_seconds),
        )
        self.dashboard = DashboardService(self.caches, self._freshness_sources(), clock)
        self.feeds = FeedStatusService(
            self.scheduler,
            [SpotStreamStatus(self.spot_stream)] if self.spot_stream else [],
            stale_threshold=timedelta(minutes=self.settings.feed_stale_threshold_minutes),
            clock=clock,
        )
        self.api: FastAPI = create_dashboard_app(
            self.dashboard, self.feeds, self.spot_stream, self.settings.api_title
        )

    def _build_caches(self) -> CacheRegistry:
        loaders = {
            ACTIVATIONS: self.loaders.load_activations,
            SOLAR_INDICES: self.loaders.load_solar_indices,
            BAND_CONDITIONS: self.loaders.load_band_conditions,
            CONTESTS: self.loaders.load_contests,
            METEOR_SHOWERS: self.loaders.load_meteor_showers,
            BAND_ACTIVITY: self.aggregator.aggregate_all_bands,
        }
        registry = CacheRegistry(clock=self._clock)
        for name, loader in loaders.items():
            registry.register(name, loader, self.settings.cache_ttl(name, CACHE_TTLS[name]))
        return registry

    def _freshness_sources(self) -> dict[str, list[ResilientFetchClient[Any]]]:
        c = self.fetch_clients
        return {
            ACTIVATIONS: [c["pota"], c["sota"]],
            SOLAR_INDICES: [c["noaa"], c["hamqsl_solar"]],
            BAND_CONDITIONS: [c["hamqsl_band"]],
            CONTESTS: [c["contests"], c["contest_series"]],
            METEOR_SHOWERS: [c["meteors"]],
        }

    def _register_refresh_tasks(self) -> None:
        c = self.fetch_clients
        common = dict(worker=self.worker, session_factory=self._session_factory, clock=self._clock)
        activations = self.caches.get(ACTIVATIONS)
        solar = self.caches.get(SOLAR_INDICES)

        tasks = [
            (
                "pota",
                "POTA Activations",
                ActivationRefreshService("POTA", c["pota"], activations, **common),
            ),
            (
                "sota",
                "SOTA Activations",
                ActivationRefreshService("SOTA", c["sota"], activations, **common),
            ),
            (
                "noaa",
                "NOAA Solar Indices",
                SolarIndicesRefreshService(
                    "NOAA", SolarIndices.NOAA_SOURCE, c["noaa"], solar, **common
                ),
            ),
            (
                "hamqsl-solar",
                "HamQSL Solar Indices",
                SolarIndicesRefreshService(
                    "HamQSL Solar", SolarIndices.HAMQSL_SOURCE, c["hamqsl_solar"], solar, **common
                ),
            ),
            (
                "hamqsl-band",
                "HamQSL Band Conditions",
                BandConditionRefreshService(
                    c["hamqsl_band"], self.caches.get(BAND_CONDITIONS), **common
                ),
            ),
            (
                "contests",
                "Contest Calendar",
                ContestRefreshService(c["contests"], self.caches.get(CONTESTS), **common),
            ),
            (
                "contest-series",
                "Contest Series",
                ContestSeriesRefreshService(
                    c["contest_series"], self.caches.get(CONTESTS), **common
                ),
            ),
            (
                "meteors",
                "Meteor Showers",
                MeteorRefreshService(
                    c["meteors"], self.caches.get(METEOR_SHOWERS), **common
                ),
            ),
        ]
        for task_name, display_name, service in tasks:
            self.scheduler.register(
                RefreshTaskCoordinator(
                    task_name,
                    display_name,
                    service,
                    service.fetch_client.refresh_interval,
                    clock=self._clock,
                )
            )

        if self.spot_stream is None:
            return

        band_activity = BandActivityRefreshService(
            self.aggregator, self.caches.get(BAND_ACTIVITY), **common
        )
        self.scheduler.register(
            RefreshTaskCoordinator(
                "band-activity",
                "Band Activity",
                band_activity,
                self.settings.refresh_interval("Band Activity", BAND_ACTIVITY_INTERVAL),
                clock=self._clock,
            )
        )

        self.spot_cleanup = SpotCleanupService(
            timedelta(hours=self.settings.spot_retention_hours),
            self._session_factory,
            self._clock,
        )
        self.scheduler.add_interval_job(
            self._spot_cleanup_job,
            "spot-cleanup",
            "Spot Cleanup",
            timedelta(minutes=self.settings.spot_cleanup_interval_minutes),
        )

    async def _spot_cleanup_job(self) -> None:
        try:
            await self.spot_cleanup.execute_cleanup()
        except Exception as e:
            logger.error(f"Spot cleanup failed: {e}")

    async def start(self) -> None:
        logger.info("Starting NextSkip services...")
        self.worker.start()
        if self.spot_stream is not None:
            self.spot_stream.start()
        self.scheduler.start()
        await self.reconciler.reconcile()

    async def stop(self) -> None:
        logger.info("Stopping NextSkip services...")
        self.scheduler.stop()
        if self.spot_stream is not None:
            await self.spot_stream.stop()
        await self.worker.stop()


def build_application(**kwargs: Any) -> Application:
    """Create the application container with the given overrides."""
    return Application(**kwargs)
