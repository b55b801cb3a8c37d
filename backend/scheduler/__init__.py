"""
Queue Scheduler - promotes the oldest waiting job when nothing is running

One tick:
    queueing enabled? -> any job running? -> queue head -> job still startable?
    -> dequeue -> trigger the job runner -> record failure on the job

Ticks never overlap. The timer fires every `interval` seconds; a tick that
finds the previous one still in flight returns without touching the store.

Known limitation: nothing locks the gap between "no job running" and the
start trigger, so a job started by hand in that window can run alongside
the promoted one. With a 5 second poll this is accepted.
"""
import asyncio
from typing import Optional
from loguru import logger

from config import settings
from models.job import JobStatus, STARTABLE_STATUSES
from services.job_runner import StartResult


class QueueScheduler:
    """Single-instance poller that sequences queued jobs"""

    def __init__(
        self,
        store,
        settings_service,
        runner,
        interval: float = None,
        notifier=None,
    ):
        self.store = store
        self.settings_service = settings_service
        self.runner = runner
        self.interval = settings.QUEUE_POLL_INTERVAL_SECONDS if interval is None else interval
        self.notifier = notifier

        self._ticking = False
        self._timer: Optional[asyncio.Task] = None
        self._current_tick: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        """Timer is alive"""
        return self._timer is not None and not self._timer.done()

    @property
    def is_ticking(self) -> bool:
        """A tick is in flight"""
        return self._ticking

    @property
    def current_tick(self) -> Optional[asyncio.Task]:
        """Handle of the most recently fired tick"""
        return self._current_tick

    def start(self) -> None:
        """Start the repeating timer on the running event loop"""
        if self.is_running:
            return
        self._timer = asyncio.create_task(self._timer_loop(), name="queue-scheduler")
        logger.info(f"Queue scheduler started with interval: {self.interval}s")

    async def stop(self) -> None:
        """Cancel the timer and wait for an in-flight tick to finish"""
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        tick = self._current_tick
        if tick is not None and not tick.done():
            await tick
        logger.info("Queue scheduler stopped")

    async def _timer_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.fire()

    def fire(self) -> Optional[asyncio.Task]:
        """
        Launch a tick as its own task without waiting for it.

        While a tick is in flight this is a no-op and current_tick keeps
        pointing at the in-flight one.
        """
        if self._current_tick is not None and not self._current_tick.done():
            logger.debug("Previous queue tick still running, skipping")
            return self._current_tick
        self._current_tick = asyncio.create_task(self.run_tick())
        return self._current_tick

    async def run_tick(self) -> bool:
        """
        Run one decision cycle.

        Returns False if skipped because another tick is in flight. Never
        raises: failures are recorded on the job or logged.
        """
        if self._ticking:
            return False

        self._ticking = True
        try:
            await self._promote_next()
        except Exception as e:
            logger.exception(f"Error in queue scheduler tick: {e}")
        finally:
            self._ticking = False
        return True

    async def _promote_next(self) -> None:
        if not await self.settings_service.get_job_queueing():
            return

        running = await self.store.find_running_jobs()
        if running:
            return

        entry = await self.store.find_oldest_waiting_queue_entry()
        if entry is None:
            return

        job = await self.store.get_job(entry.job_id)
        if job is None:
            logger.info(f"Dropping queue entry {entry.id}: job {entry.job_id} no longer exists")
            await self.store.delete_queue_entry(entry.id)
            await self._notify_queue(entry.job_id, "dropped")
            return

        if job.status not in STARTABLE_STATUSES:
            logger.info(
                f"Dropping queue entry {entry.id}: job {job.name} is '{job.status.value}', not startable"
            )
            await self.store.delete_queue_entry(entry.id)
            await self._notify_queue(job.id, "dropped")
            return

        await self.store.delete_queue_entry(entry.id)
        await self._notify_queue(job.id, "dequeued")

        logger.info(f"Starting queued job: {job.name} ({job.id})")
        try:
            result = await self.runner.start_job(job.id)
        except Exception as e:
            result = StartResult(accepted=False, error=str(e) or e.__class__.__name__)
        if result.accepted:
            return

        if result.responded:
            info = f"Failed to start queued job: {result.error}"
        else:
            info = f"Error starting queued job: {result.error}"
        logger.error(f"Could not start queued job {job.id}: {result.error}")

        await self.store.update_job_status(job.id, JobStatus.ERROR, info)
        await self._notify_job(job.id, JobStatus.ERROR.value, info)

    async def _notify_queue(self, job_id: str, action: str) -> None:
        if self.notifier is not None:
            await self.notifier.broadcast_queue_update(job_id, action)

    async def _notify_job(self, job_id: str, status: str, info: str) -> None:
        if self.notifier is not None:
            await self.notifier.broadcast_job_update(job_id, status, info)
