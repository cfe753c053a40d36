"""FastAPI server for the NextSkip dashboard."""

import json
from typing import Any

from fastapi import Body, FastAPI, Query
from loguru import logger

from nextskip.dashboard.feed_status import FeedStatus, FeedStatusService
from nextskip.dashboard.service import DashboardService
from nextskip.datasource.spots.stream import SpotStreamProcessor
from nextskip.exceptions import ConflictError, NotFoundError


class DashboardServer:
    """HTTP server exposing cached data, ranked opportunities and feed health."""

    def __init__(
        self,
        dashboard: DashboardService,
        feeds: FeedStatusService,
        spot_stream: SpotStreamProcessor | None = None,
        title: str = "NextSkip Dashboard API",
    ):
        self.dashboard = dashboard
        self.feeds = feeds
        self.spot_stream = spot_stream
        self.app = FastAPI(title=title)

        # Register routes
        self.app.get("/health")(self.health_check)
        self.app.get("/api/activations")(self.get_activations)
        self.app.get("/api/propagation")(self.get_propagation)
        self.app.get("/api/contests")(self.get_contests)
        self.app.get("/api/meteors")(self.get_meteors)
        self.app.get("/api/band-activity")(self.get_band_activity)
        self.app.get("/api/opportunities")(self.get_opportunities)
        self.app.get("/api/feeds", response_model=list[FeedStatus])(self.list_feeds)
        self.app.get("/api/feeds/{feed_id}", response_model=FeedStatus)(self.get_feed)
        self.app.post("/api/feeds/{feed_id}/refresh")(self.refresh_feed)
        self.app.post("/api/spots/ingest")(self.ingest_spots)

    async def health_check(self):
        """Health check endpoint."""
        return {"status": "ok", "service": "nextskip-dashboard"}

    async def get_activations(self) -> dict[str, Any]:
        return await self.dashboard.get_activations()

    async def get_propagation(self) -> dict[str, Any]:
        return await self.dashboard.get_propagation()

    async def get_contests(self) -> dict[str, Any]:
        return await self.dashboard.get_contests()

    async def get_meteors(self) -> dict[str, Any]:
        return await self.dashboard.get_meteor_showers()

    async def get_band_activity(self) -> dict[str, Any]:
        return await self.dashboard.get_band_activity()

    async def get_opportunities(
        self, limit: int | None = Query(default=None, ge=1, le=500)
    ) -> dict[str, Any]:
        return await self.dashboard.get_opportunities(limit)

    async def list_feeds(self) -> list[FeedStatus]:
        return self.feeds.get_all_feed_statuses()

    async def get_feed(self, feed_id: str) -> FeedStatus:
        status = self.feeds.get_feed_status(feed_id)
        if status is None:
            raise NotFoundError(f"Feed not found: {feed_id}")
        return status

    async def refresh_feed(self, feed_id: str) -> dict[str, Any]:
        """Reschedule a scheduled feed to run immediately.

        Returns:
            Confirmation dict

        Raises:
            NotFoundError: Unknown feed
            ConflictError: Feed is not schedule-driven, or the reschedule failed
        """
        if self.feeds.get_feed_status(feed_id) is None:
            raise NotFoundError(f"Feed not found: {feed_id}")
        if not self.feeds.is_scheduled_feed(feed_id):
            raise ConflictError(f"Feed does not support manual refresh: {feed_id}")
        if not self.feeds.trigger_refresh(feed_id):
            raise ConflictError(f"Failed to trigger refresh for feed: {feed_id}")
        return {"success": True, "feed_id": feed_id, "message": "Refresh scheduled"}

    async def ingest_spots(
        self, messages: list[dict[str, Any]] = Body(...)
    ) -> dict[str, Any]:
        """Accept relayed PSKReporter messages for the spot stream.

        Returns:
            Number of messages accepted and dropped
        """
        if self.spot_stream is None or not self.spot_stream.connected:
            raise ConflictError("Spot stream is not running")

        accepted = dropped = 0
        for message in messages:
            if self.spot_stream.offer(json.dumps(message)):
                accepted += 1
            else:
                dropped += 1
        if dropped:
            logger.warning(f"Spot buffer full, {dropped} older messages dropped")
        return {"accepted": accepted, "dropped": dropped}


def create_dashboard_app(
    dashboard: DashboardService,
    feeds: FeedStatusService,
    spot_stream: SpotStreamProcessor | None = None,
    title: str = "NextSkip Dashboard API",
) -> FastAPI:
    """Create FastAPI app for the dashboard.

    Args:
        dashboard: Read service over the caches
        feeds: Feed health service
        spot_stream: Live spot processor, if enabled

    Returns:
        FastAPI app
    """
    server = DashboardServer(dashboard, feeds, spot_stream, title)
    return server.app
