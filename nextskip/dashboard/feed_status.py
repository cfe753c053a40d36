"""
Feed health for the admin surface.

Scheduled feeds report on their last successful refresh, circuit breaker
and fallback state; subscription feeds report connection state.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Protocol

from loguru import logger
from pydantic import BaseModel

from nextskip.datasource.spots.stream import SpotStreamProcessor
from nextskip.scheduler.coordinator import RefreshScheduler, RefreshTaskCoordinator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedType(str, Enum):
    SCHEDULED = "SCHEDULED"
    SUBSCRIPTION = "SUBSCRIPTION"


class FeedStatus(BaseModel):
    id: str
    display_name: str
    type: FeedType
    healthy: bool
    last_activity: datetime | None = None
    status_message: str | None = None
    refreshable: bool = False


class SubscriptionStatusProvider(Protocol):
    subscription_id: str
    display_name: str

    def is_connected(self) -> bool: ...

    def last_message_time(self) -> datetime | None: ...


class SpotStreamStatus:
    """Subscription status of the live spot stream."""

    subscription_id = "pskreporter-spots"
    display_name = "PSKReporter Spots"

    def __init__(self, processor: SpotStreamProcessor):
        self.processor = processor

    def is_connected(self) -> bool:
        return self.processor.connected

    def last_message_time(self) -> datetime | None:
        return self.processor.last_message_at

    @property
    def spots_processed(self) -> int:
        return self.processor.spots_processed


def format_duration(duration: timedelta) -> str:
    hours = int(duration.total_seconds() // 3600)
    if hours > 0:
        return f"{hours}h"
    return f"{int(duration.total_seconds() // 60)}m"


class FeedStatusService:
    def __init__(
        self,
        scheduler: RefreshScheduler | None,
        subscriptions: list[SubscriptionStatusProvider] | None = None,
        stale_threshold: timedelta = timedelta(hours=2),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.scheduler = scheduler
        self.subscriptions = list(subscriptions or [])
        self.stale_threshold = stale_threshold
        self._clock = clock

    @property
    def _coordinators(self) -> list[RefreshTaskCoordinator]:
        return self.scheduler.coordinators if self.scheduler else []

    def get_all_feed_statuses(self) -> list[FeedStatus]:
        statuses = [self._scheduled_status(c) for c in self._coordinators]
        statuses.extend(self._subscription_status(p) for p in self.subscriptions)
        statuses.sort(key=lambda s: s.display_name)
        return statuses

    def get_feed_status(self, feed_id: str) -> FeedStatus | None:
        for coordinator in self._coordinators:
            if coordinator.task_name == feed_id:
                return self._scheduled_status(coordinator)
        for provider in self.subscriptions:
            if provider.subscription_id == feed_id:
                return self._subscription_status(provider)
        return None

    def is_scheduled_feed(self, feed_id: str) -> bool:
        return any(c.task_name == feed_id for c in self._coordinators)

    def trigger_refresh(self, feed_id: str) -> bool:
        """Reschedule a scheduled feed to run now. Never raises."""
        if self.scheduler is None:
            logger.warning("Cannot trigger refresh - scheduler is disabled")
            return False
        if not self.is_scheduled_feed(feed_id):
            logger.warning(f"Feed not found or not refreshable: {feed_id}")
            return False
        try:
            self.scheduler.reschedule_now(feed_id)
        except Exception as e:
            logger.error(f"Failed to trigger refresh for feed {feed_id}: {e}")
            return False
        logger.info(f"Triggered manual refresh for feed: {feed_id}")
        return True

    def _scheduled_status(self, coordinator: RefreshTaskCoordinator) -> FeedStatus:
        last_success = coordinator.last_success
        message = self._unhealthy_reason(coordinator)
        return FeedStatus(
            id=coordinator.task_name,
            display_name=coordinator.display_name,
            type=FeedType.SCHEDULED,
            healthy=message is None,
            last_activity=last_success,
            status_message=message,
            refreshable=True,
        )

    def _unhealthy_reason(self, coordinator: RefreshTaskCoordinator) -> str | None:
        if coordinator.last_success is None:
            return "Never executed"

        since = self._clock() - coordinator.last_success
        if since > self.stale_threshold:
            return f"Stale - last run {format_duration(since)} ago"

        client = coordinator.fetch_client
        if client is not None:
            if client.circuit_open:
                return "Circuit breaker open"
            if client.serving_stale:
                return "Serving cached data"
        return None

    @staticmethod
    def _subscription_status(provider: SubscriptionStatusProvider) -> FeedStatus:
        connected = provider.is_connected()
        return FeedStatus(
            id=provider.subscription_id,
            display_name=provider.display_name,
            type=FeedType.SUBSCRIPTION,
            healthy=connected,
            last_activity=provider.last_message_time(),
            status_message="Connected" if connected else "Disconnected",
        )
