"""
Scheduled funnel refreshes.

Every funnel with a refresh_cron gets an APScheduler cron job that
enqueues a refresh_funnel job on the runner.
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from prospector.core.models import JobType
from prospector.funnel.database import FunnelModel
from prospector.jobs.runner import JobRunner

logger = logging.getLogger(__name__)


def _job_id(funnel_id: int) -> str:
    return f"refresh_funnel_{funnel_id}"


class RefreshScheduler:
    def __init__(
        self,
        runner: JobRunner,
        session_factory: Optional[async_sessionmaker] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.runner = runner
        self.session_factory = session_factory or runner.session_factory
        self.scheduler = scheduler or AsyncIOScheduler()

    async def enqueue_refresh(self, funnel_id: int, client_id: int) -> int:
        logger.info(f"Running scheduled refresh for funnel {funnel_id}")
        return await self.runner.submit(JobType.REFRESH_FUNNEL, {"funnel_id": funnel_id}, client_id)

    def schedule_funnel(self, funnel: FunnelModel) -> bool:
        """Register or replace the cron job for one funnel. Returns False when it has no valid cron."""
        if not funnel.refresh_cron:
            self.unschedule_funnel(funnel.id)
            return False
        try:
            trigger = CronTrigger.from_crontab(funnel.refresh_cron)
        except ValueError as e:
            logger.warning(f"Funnel {funnel.id} has an invalid refresh_cron {funnel.refresh_cron!r}: {e}")
            return False
        self.scheduler.add_job(
            self.enqueue_refresh,
            trigger,
            args=[funnel.id, funnel.client_id],
            id=_job_id(funnel.id),
            replace_existing=True,
        )
        return True

    def unschedule_funnel(self, funnel_id: int) -> None:
        if self.scheduler.get_job(_job_id(funnel_id)):
            self.scheduler.remove_job(_job_id(funnel_id))

    async def load(self) -> int:
        """Schedule every funnel that has a refresh_cron."""
        async with self.session_factory() as session:
            result = await session.execute(select(FunnelModel).where(FunnelModel.refresh_cron.is_not(None)))
            funnels = list(result.scalars().all())
        scheduled = sum(1 for f in funnels if self.schedule_funnel(f))
        logger.info(f"Scheduled refresh for {scheduled} funnels")
        return scheduled

    async def start(self) -> None:
        await self.load()
        self.scheduler.start()
        logger.info("APScheduler started for funnel refreshes")

    def stop(self) -> None:
        logger.info("Stopping APScheduler...")
        self.scheduler.shutdown(wait=False)
