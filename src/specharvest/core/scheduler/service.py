"""
APScheduler v4 integration for SpecHarvest.

Runs the harvest on a crontab schedule. Overlap on one namespace is
prevented by the run lock taken inside run_harvest, so a tick that fires
while a previous harvest is still going is skipped.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any

from apscheduler import AsyncScheduler, ConflictPolicy
from apscheduler.triggers.cron import CronTrigger

from specharvest.core.config.loader import load_app_config
from specharvest.core.config.models import ScheduleConfig
from specharvest.core.logging import get_logger
from specharvest.core.orchestrator.runner import run_harvest
from specharvest.core.scheduler.locks import RunLockedError

logger = get_logger("scheduler")


HARVEST_SCHEDULE_ID = "harvest"


async def execute_scheduled_harvest(config_path: str | None = None) -> dict[str, Any] | None:
    """Run one scheduled harvest.

    Returns:
        The run report as a dict, or None if the run was skipped
    """
    app_config = load_app_config(Path(config_path) if config_path else None)

    try:
        report = await run_harvest(app_config, run_type="scheduled")
    except RunLockedError as e:
        logger.info(f"Skipping scheduled harvest: {e}")
        return None

    logger.info(
        f"Scheduled harvest finished: {report.stats.items_saved} saved, "
        f"{report.stats.items_failed} failed, aborted={report.aborted}"
    )
    return report.to_dict()


def build_trigger(schedule: ScheduleConfig) -> CronTrigger:
    """Convert the schedule settings to an APScheduler trigger.

    Raises:
        ValueError: If the crontab expression is invalid
    """
    return CronTrigger.from_crontab(schedule.cron_expression, timezone=schedule.timezone)


class SchedulerService:
    """Foreground scheduler running the harvest periodically."""

    def __init__(self, schedule: ScheduleConfig, config_path: Path | None = None) -> None:
        self.schedule = schedule
        self.config_path = config_path
        self._scheduler: AsyncScheduler | None = None

    async def start(self) -> None:
        """Start scheduler in foreground mode (blocking)."""
        trigger = build_trigger(self.schedule)
        max_jitter = None
        if self.schedule.jitter_minutes > 0:
            max_jitter = timedelta(minutes=self.schedule.jitter_minutes)

        async with AsyncScheduler() as scheduler:
            self._scheduler = scheduler
            await scheduler.add_schedule(
                execute_scheduled_harvest,
                trigger,
                id=HARVEST_SCHEDULE_ID,
                args=[str(self.config_path) if self.config_path else None],
                conflict_policy=ConflictPolicy.replace,
                max_jitter=max_jitter,
            )
            logger.info(
                f"Harvest scheduled with '{self.schedule.cron_expression}' ({self.schedule.timezone})"
            )
            await scheduler.run_until_stopped()

    async def stop(self) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()
