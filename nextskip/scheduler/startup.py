"""
Startup reconciliation.

On a cold store the affected tasks are pulled forward to run now instead of
waiting a full interval. The task itself still runs through the scheduler.
"""

from datetime import timedelta

from loguru import logger

from nextskip.scheduler.coordinator import RefreshScheduler


class StartupReconciler:
    def __init__(
        self,
        scheduler: RefreshScheduler,
        enabled: bool = True,
        stagger: timedelta = timedelta(seconds=10),
    ):
        self.scheduler = scheduler
        self.enabled = enabled
        self.stagger = stagger

    async def reconcile(self) -> int:
        """
        Reschedule every task whose store is cold.

        Returns:
            Number of tasks rescheduled
        """
        if not self.enabled:
            logger.info("Eager loading disabled - skipping startup data refresh checks")
            return 0

        logger.info("Checking for required startup data refreshes...")
        coordinators = self.scheduler.coordinators
        scheduled = 0
        for coordinator in coordinators:
            try:
                if not await coordinator.needs_initial_load():
                    logger.debug(f"{coordinator.display_name} has recent data")
                    continue
                self.scheduler.reschedule_now(
                    coordinator.task_name, delay=self.stagger * scheduled
                )
            except Exception as e:
                logger.warning(
                    f"Could not schedule initial load for {coordinator.display_name}: {e}"
                )
                continue
            scheduled += 1
            logger.info(f"Scheduled immediate refresh for {coordinator.display_name}")

        if scheduled:
            logger.info(f"Scheduled {scheduled} of {len(coordinators)} tasks for initial load")
        else:
            logger.info("All data sources have recent data - no initial load needed")
        return scheduled
