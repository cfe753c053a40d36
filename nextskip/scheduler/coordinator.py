"""
Refresh scheduler - one interval job per refresh service.

Jobs run with max_instances=1 and coalesce=True so a refresh never overlaps
itself and a backlog of missed runs collapses into one.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from nextskip.services.resilience import ResilientFetchClient


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Refreshable(Protocol):
    fetch_client: ResilientFetchClient[Any] | None

    async def execute_refresh(self) -> Any: ...

    async def needs_initial_load(self) -> bool: ...


class RefreshTaskCoordinator:
    """
    Binds a refresh service to its scheduled task.

    `run` is the job body: it executes one refresh and records the outcome,
    so a failing refresh is logged and retried on the next tick instead of
    propagating into the scheduler.
    """

    def __init__(
        self,
        task_name: str,
        display_name: str,
        refresh_service: Refreshable,
        interval: timedelta,
        needs_initial_load: Callable[[], Awaitable[bool]] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.task_name = task_name
        self.display_name = display_name
        self.refresh_service = refresh_service
        self.interval = interval
        self._needs_initial_load = needs_initial_load or refresh_service.needs_initial_load
        self._clock = clock

        self.last_success: datetime | None = None
        self.last_failure: datetime | None = None
        self.last_error: str | None = None
        self.run_count = 0

    @property
    def fetch_client(self) -> ResilientFetchClient[Any] | None:
        return getattr(self.refresh_service, "fetch_client", None)

    async def needs_initial_load(self) -> bool:
        return await self._needs_initial_load()

    async def run(self) -> None:
        self.run_count += 1
        try:
            await self.refresh_service.execute_refresh()
        except Exception as e:
            self.last_failure = self._clock()
            self.last_error = str(e)
            logger.error(f"{self.display_name} refresh failed: {e}")
            return
        self.last_success = self._clock()
        self.last_error = None


class RefreshScheduler:
    """
    Owns the AsyncIOScheduler and the registered coordinators.

    Usage:
        scheduler = RefreshScheduler()
        scheduler.register(coordinator)
        scheduler.start()
        scheduler.reschedule_now("pota")
    """

    def __init__(
        self,
        scheduler: AsyncIOScheduler | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._coordinators: dict[str, RefreshTaskCoordinator] = {}
        self._clock = clock
        self._is_running = False

    @property
    def coordinators(self) -> list[RefreshTaskCoordinator]:
        return list(self._coordinators.values())

    def get_coordinator(self, task_name: str) -> RefreshTaskCoordinator | None:
        return self._coordinators.get(task_name)

    def register(self, coordinator: RefreshTaskCoordinator) -> None:
        self._coordinators[coordinator.task_name] = coordinator
        self.add_interval_job(
            coordinator.run,
            coordinator.task_name,
            coordinator.display_name,
            coordinator.interval,
        )

    def add_interval_job(
        self,
        func: Callable[[], Awaitable[Any]],
        job_id: str,
        name: str,
        interval: timedelta,
    ) -> None:
        self.scheduler.add_job(
            func,
            trigger="interval",
            seconds=interval.total_seconds(),
            id=job_id,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"{name} job: every {interval}")

    def start(self, paused: bool = False) -> None:
        """Start the scheduler."""
        if self._is_running:
            logger.warning("RefreshScheduler is already running")
            return
        self.scheduler.start(paused=paused)
        self._is_running = True
        logger.info(f"RefreshScheduler started with {len(self._coordinators)} refresh tasks")

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self._is_running:
            return
        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("RefreshScheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def reschedule_now(self, task_name: str, delay: timedelta = timedelta(0)) -> datetime:
        """
        Move the next run of `task_name` to now plus `delay`.

        Raises:
            apscheduler.jobstores.base.JobLookupError: If no such job exists
        """
        run_at = self._clock() + delay
        self.scheduler.modify_job(task_name, next_run_time=run_at)
        logger.debug(f"Rescheduled {task_name} to run at {run_at.isoformat()}")
        return run_at

    def next_run_time(self, task_name: str) -> datetime | None:
        job = self.scheduler.get_job(task_name)
        # Jobs added before start have no next_run_time yet
        return getattr(job, "next_run_time", None) if job else None

    def get_status(self) -> dict[str, Any]:
        """Get scheduler status."""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run": next_run.isoformat() if next_run else None,
                }
            )
        return {"running": self._is_running, "jobs": jobs}
