"""Tests for refresh coordinators, the scheduler and startup reconciliation."""

from datetime import timedelta

import pytest
from apscheduler.jobstores.base import JobLookupError

from nextskip.scheduler.coordinator import RefreshTaskCoordinator
from nextskip.scheduler.startup import StartupReconciler
from nextskip.services.errors import DataRefreshError
from tests.conftest import NOW, FakeRefreshService


def coordinator(name: str, service: FakeRefreshService, clock) -> RefreshTaskCoordinator:
    return RefreshTaskCoordinator(name, name.upper(), service, timedelta(hours=1), clock=clock)



class TestRefreshTaskCoordinator:
    async def test_records_success(self, clock):
        service = FakeRefreshService()
        task = coordinator("pota", service, clock)

        await task.run()

        assert service.refreshes == 1
        assert task.last_success == NOW
        assert task.last_failure is None
        assert task.run_count == 1

    async def test_failure_is_recorded_not_raised(self, clock):
        service = FakeRefreshService(error=DataRefreshError("POTA", "database locked"))
        task = coordinator("pota", service, clock)

        await task.run()

        assert task.last_failure == NOW
        assert task.last_error == "POTA refresh failed: database locked"
        assert task.last_success is None

    async def test_success_clears_previous_error(self, clock):
        service = FakeRefreshService(error=RuntimeError("boom"))
        task = coordinator("pota", service, clock)
        await task.run()

        service.error = None
        clock.advance(minutes=1)
        await task.run()

        assert task.last_error is None
        assert task.last_success == clock.now

    async def test_custom_initial_load_check(self, clock):
        async def always():
            return True

        task = RefreshTaskCoordinator(
            "pota", "POTA", FakeRefreshService(cold=False), timedelta(minutes=1),
            needs_initial_load=always, clock=clock,
        )
        assert await task.needs_initial_load()


class TestRefreshScheduler:
    async def test_register_adds_interval_job(self, scheduler, clock):
        scheduler.register(coordinator("pota", FakeRefreshService(), clock))

        job = scheduler.scheduler.get_job("pota")
        assert job.name == "POTA"
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.trigger.interval == timedelta(hours=1)
        assert scheduler.get_coordinator("pota").display_name == "POTA"

    async def test_reschedule_now_moves_next_run(self, scheduler, clock):
        scheduler.register(coordinator("pota", FakeRefreshService(), clock))
        scheduler.start(paused=True)

        run_at = scheduler.reschedule_now("pota", delay=timedelta(seconds=20))

        assert run_at == NOW + timedelta(seconds=20)
        assert scheduler.next_run_time("pota") == run_at

    async def test_reschedule_unknown_task(self, scheduler):
        scheduler.start(paused=True)
        with pytest.raises(JobLookupError):
            scheduler.reschedule_now("missing")

    async def test_status(self, scheduler, clock):
        scheduler.register(coordinator("pota", FakeRefreshService(), clock))
        scheduler.start(paused=True)

        status = scheduler.get_status()

        assert status["running"] is True
        assert [job["id"] for job in status["jobs"]] == ["pota"]


class TestStartupReconciler:
    async def test_cold_tasks_run_now_and_are_staggered(self, scheduler, clock):
        scheduler.register(coordinator("pota", FakeRefreshService(cold=True), clock))
        scheduler.register(coordinator("contests", FakeRefreshService(cold=False), clock))
        scheduler.register(coordinator("meteors", FakeRefreshService(cold=True), clock))
        scheduler.start(paused=True)
        untouched = scheduler.next_run_time("contests")

        scheduled = await StartupReconciler(scheduler, stagger=timedelta(seconds=10)).reconcile()

        assert scheduled == 2
        assert scheduler.next_run_time("pota") == NOW
        assert scheduler.next_run_time("meteors") == NOW + timedelta(seconds=10)
        assert scheduler.next_run_time("contests") == untouched

    async def test_failed_check_does_not_block_others(self, scheduler, clock):
        broken = FakeRefreshService(check_error=RuntimeError("no such table"))
        scheduler.register(coordinator("noaa", broken, clock))
        scheduler.register(coordinator("pota", FakeRefreshService(cold=True), clock))
        scheduler.start(paused=True)

        scheduled = await StartupReconciler(scheduler).reconcile()

        assert scheduled == 1
        assert scheduler.next_run_time("pota") == NOW

    async def test_disabled(self, scheduler, clock):
        scheduler.register(coordinator("pota", FakeRefreshService(cold=True), clock))
        scheduler.start(paused=True)

        assert await StartupReconciler(scheduler, enabled=False).reconcile() == 0
