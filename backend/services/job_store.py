"""
Job Store - async repository over the jobs, queue and settings tables.

Every call opens its own short-lived session, so callers never hold rows
across awaits. There is no transaction spanning jobs and queue; the queue
scheduler is written to tolerate that.
"""
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from loguru import logger

from models.job import Job, JobStatus
from models.queue import Queue, QueueStatus
from models.setting import Setting
from exceptions import SettingsError


class JobStore:
    """Read/write operations on jobs, queue entries and settings rows"""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    # ----- jobs -----

    async def get_job(self, job_id: str) -> Optional[Job]:
        async with self._session_factory() as session:
            return await session.get(Job, job_id)

    async def get_job_by_name(self, name: str) -> Optional[Job]:
        async with self._session_factory() as session:
            result = await session.execute(select(Job).where(Job.name == name))
            return result.scalars().first()

    async def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 100) -> List[Job]:
        async with self._session_factory() as session:
            query = select(Job).order_by(Job.created_at.desc()).limit(limit)
            if status:
                query = query.where(Job.status == status)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def find_running_jobs(self) -> List[Job]:
        """Jobs currently marked running, as committed at call time"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Job).where(Job.status == JobStatus.RUNNING)
            )
            return list(result.scalars().all())

    async def create_job(self, job: Job) -> Job:
        async with self._session_factory() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)
            return job

    async def update_job_status(self, job_id: str, status: JobStatus, info: Optional[str] = None) -> bool:
        """
        Set a job's status (and info text).

        Returns False without raising when the job was deleted in the meantime.
        """
        async with self._session_factory() as session:
            job = await session.get(Job, job_id)
            if job is None:
                logger.warning(f"Job {job_id} disappeared before status update to '{status.value}'")
                return False
            job.status = status
            if info is not None:
                job.info = info
            job.updated_at = datetime.utcnow()
            await session.commit()
            return True

    async def mark_started(self, job_id: str) -> bool:
        """Flip a job to running with its stop flag cleared"""
        async with self._session_factory() as session:
            job = await session.get(Job, job_id)
            if job is None:
                return False
            job.status = JobStatus.RUNNING
            job.stop = False
            job.info = "Starting job..."
            job.updated_at = datetime.utcnow()
            await session.commit()
            return True

    async def delete_job(self, job_id: str) -> Optional[Job]:
        """Delete a job and every queue entry pointing at it"""
        async with self._session_factory() as session:
            job = await session.get(Job, job_id)
            if job is None:
                return None
            await session.execute(delete(Queue).where(Queue.job_id == job_id))
            await session.delete(job)
            await session.commit()
            return job

    # ----- queue -----

    async def find_oldest_waiting_queue_entry(self) -> Optional[Queue]:
        """Head of the queue: oldest waiting entry, insertion order on ties"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Queue)
                .where(Queue.status == QueueStatus.WAITING)
                .order_by(Queue.created_at.asc(), Queue.id.asc())
                .limit(1)
            )
            return result.scalars().first()

    async def list_queue(self) -> List[Queue]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Queue)
                .where(Queue.status == QueueStatus.WAITING)
                .order_by(Queue.created_at.asc(), Queue.id.asc())
            )
            return list(result.scalars().all())

    async def is_waiting(self, job_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Queue.id)
                .where(Queue.job_id == job_id)
                .where(Queue.status == QueueStatus.WAITING)
                .limit(1)
            )
            return result.first() is not None

    async def enqueue_job(self, job_id: str) -> Optional[Queue]:
        """Mark the job queued and append a waiting entry for it"""
        async with self._session_factory() as session:
            job = await session.get(Job, job_id)
            if job is None:
                return None
            job.status = JobStatus.QUEUED
            job.info = "Waiting in queue"
            job.updated_at = datetime.utcnow()
            entry = Queue(job_id=job_id, status=QueueStatus.WAITING)
            session.add(entry)
            await session.commit()
            await session.refresh(entry)
            return entry

    async def delete_queue_entry(self, entry_id: int) -> None:
        """Idempotent: deleting a missing entry is a no-op"""
        async with self._session_factory() as session:
            await session.execute(delete(Queue).where(Queue.id == entry_id))
            await session.commit()

    async def delete_queue_entries_for_job(self, job_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(delete(Queue).where(Queue.job_id == job_id))
            await session.commit()
            return result.rowcount or 0

    # ----- settings -----

    async def get_setting(self, key: str) -> Optional[str]:
        """Raw stored value, or None when no row exists"""
        async with self._session_factory() as session:
            row = await session.get(Setting, key)
            return row.value if row else None

    async def list_settings(self) -> Dict[str, str]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Setting))
                return {row.key: row.value for row in result.scalars().all()}
        except SQLAlchemyError as e:
            raise SettingsError("Failed to read settings", details=str(e))

    async def upsert_settings(self, values: Dict[str, str]) -> None:
        """Insert or update several settings in one commit"""
        try:
            async with self._session_factory() as session:
                for key, value in values.items():
                    row = await session.get(Setting, key)
                    if row is None:
                        session.add(Setting(key=key, value=value))
                    else:
                        row.value = value
                await session.commit()
        except SQLAlchemyError as e:
            raise SettingsError("Failed to save settings", details=str(e))
