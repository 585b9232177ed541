"""
Background job execution.

submit() persists a pending job and enqueues its id; a fixed pool of
asyncio worker tasks pulls ids off the queue and runs the handler for the
job type inside its own session. Handlers report progress and check for
cancellation through a JobContext. Work committed before a failure or a
cancellation is kept; the pipeline is safe to re-run.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from prospector.core.config import settings
from prospector.core.errors import JobCancelledError, NotFoundError
from prospector.core.models import JobStatus, JobType
from prospector.jobs.database import JobModel

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, Dict[str, Any], "JobContext"], Awaitable[Dict[str, Any]]]


class JobContext:
    """
    Handed to a running handler.

    progress() writes counters every `progress_every` items and commits the
    work session with them, so a poller sees counters that match persisted
    work. checkpoint() raises JobCancelledError once cancellation was requested.
    """

    def __init__(self, job_id: int, session: AsyncSession, runner: "JobRunner", progress_every: int = 10):
        self.job_id = job_id
        self.session = session
        self.runner = runner
        self.progress_every = max(1, progress_every)
        self.processed = 0
        self.total = 0
        self._last_written: Optional[int] = None

    async def progress(self, processed: int, total: Optional[int] = None, force: bool = False) -> None:
        self.processed = processed
        if total is not None:
            self.total = total
        due = (
            force
            or self._last_written is None
            or processed == self.total
            or processed - self._last_written >= self.progress_every
        )
        if not due:
            return
        await self.session.execute(
            update(JobModel)
            .where(JobModel.id == self.job_id)
            .values(processed_items=processed, total_items=self.total, updated_at=datetime.utcnow())
        )
        await self.session.commit()
        self._last_written = processed
        # Cancellation may come from another process through the jobs table
        if await self.session.scalar(select(JobModel.cancel_requested).where(JobModel.id == self.job_id)):
            self.runner.mark_cancelled(self.job_id)

    async def checkpoint(self) -> None:
        if self.runner.is_cancel_requested(self.job_id):
            raise JobCancelledError(f"Job {self.job_id} was cancelled")


class JobRunner:
    def __init__(
        self,
        handlers: Dict[JobType, Handler],
        session_factory: Optional[async_sessionmaker] = None,
        workers: Optional[int] = None,
        progress_every: Optional[int] = None,
    ):
        if session_factory is None:
            from prospector.core.database import async_session_factory
            session_factory = async_session_factory
        self.handlers = handlers
        self.session_factory = session_factory
        self.workers = workers or settings.job_workers
        self.progress_every = progress_every or settings.job_progress_every
        self.queue: asyncio.Queue = asyncio.Queue()
        self._tasks: List[asyncio.Task] = []
        self._cancelled: Set[int] = set()

    # ──── Lifecycle ────

    async def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [asyncio.create_task(self._worker(i), name=f"job-worker-{i}") for i in range(self.workers)]
        logger.info(f"Job runner started with {self.workers} workers")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Job runner stopped")

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self.queue.join()

    async def _worker(self, index: int) -> None:
        while True:
            job_id = await self.queue.get()
            try:
                await self.run_job(job_id)
            except Exception as e:
                logger.error(f"Worker {index} crashed on job {job_id}: {e}", exc_info=True)
            finally:
                self.queue.task_done()

    # ──── Submission ────

    async def submit(
        self, job_type: JobType, payload: Dict[str, Any], client_id: int, enqueue: bool = True
    ) -> int:
        """Persist a pending job and enqueue it. Returns the job id immediately."""
        if job_type not in self.handlers:
            raise ValueError(f"No handler registered for job type {job_type.value}")
        async with self.session_factory() as session:
            job = JobModel(client_id=client_id, type=job_type, status=JobStatus.PENDING, input=payload or {})
            session.add(job)
            await session.commit()
            job_id = job.id
        if enqueue:
            await self.queue.put(job_id)
        logger.info(f"Queued {job_type.value} job {job_id} for client {client_id}")
        return job_id

    async def cancel(self, job_id: int) -> bool:
        """
        Request cancellation. A pending job is cancelled outright; a running
        one stops at its next checkpoint. Returns False for finished jobs.
        """
        async with self.session_factory() as session:
            job = await session.get(JobModel, job_id)
            if job is None:
                raise NotFoundError("Job", job_id)
            if JobStatus(job.status).is_terminal:
                return False
            job.cancel_requested = True
            if job.status == JobStatus.PENDING:
                job.status = JobStatus.CANCELLED
                job.completed_at = datetime.utcnow()
            await session.commit()
        self._cancelled.add(job_id)
        logger.info(f"Cancellation requested for job {job_id}")
        return True

    def mark_cancelled(self, job_id: int) -> None:
        self._cancelled.add(job_id)

    def is_cancel_requested(self, job_id: int) -> bool:
        return job_id in self._cancelled

    async def get_job(self, job_id: int) -> JobModel:
        async with self.session_factory() as session:
            job = await session.get(JobModel, job_id)
            if job is None:
                raise NotFoundError("Job", job_id)
            return job

    # ──── Execution ────

    async def run_job(self, job_id: int) -> JobStatus:
        """Run one job to a terminal status. Handler errors mark the job failed."""
        async with self.session_factory() as session:
            job = await session.get(JobModel, job_id)
            if job is None:
                raise NotFoundError("Job", job_id)
            if job.status != JobStatus.PENDING:
                logger.info(f"Job {job_id} is {JobStatus(job.status).value}; not running it")
                return JobStatus(job.status)
            if job.cancel_requested:
                self._cancelled.add(job_id)
            job.status = JobStatus.RUNNING
            job.started_at = datetime.utcnow()
            await session.commit()
            job_type, payload = JobType(job.type), dict(job.input or {})

        handler = self.handlers[job_type]
        logger.info(f"Running {job_type.value} job {job_id}")

        status, output, error = JobStatus.COMPLETED, None, None
        async with self.session_factory() as work:
            context = JobContext(job_id, work, self, self.progress_every)
            try:
                await context.checkpoint()
                output = await handler(work, payload, context)
                await work.commit()
            except JobCancelledError:
                # Everything before the checkpoint is consistent; keep it
                await work.commit()
                status = JobStatus.CANCELLED
                logger.info(f"Job {job_id} cancelled after {context.processed}/{context.total} items")
            except Exception as e:
                await work.rollback()
                status, error = JobStatus.FAILED, f"{type(e).__name__}: {e}"
                logger.error(f"Job {job_id} ({job_type.value}) failed: {e}", exc_info=True)

        await self._finish(job_id, status, output, error)
        self._cancelled.discard(job_id)
        return status

    async def _finish(
        self, job_id: int, status: JobStatus, output: Optional[Dict[str, Any]], error: Optional[str]
    ) -> None:
        async with self.session_factory() as session:
            job = await session.get(JobModel, job_id)
            job.status = status
            job.completed_at = datetime.utcnow()
            if output is not None:
                job.output = output
            if error is not None:
                job.error = error
            await session.commit()
        logger.info(f"Job {job_id} finished: {status.value}")
