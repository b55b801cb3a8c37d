"""
Shared fixtures: a fresh in-memory database per test plus the services
built on top of it.
"""
import asyncio
from datetime import datetime, timedelta

import httpx
import pytest
import pytest_asyncio

from database import build_engine, build_sessionmaker, create_tables
from models.job import Job, JobStatus
from models.queue import Queue, QueueStatus
from services import JobStore, SettingsCache, SettingsService, StartResult


@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def store(session_factory):
    return JobStore(session_factory)


@pytest.fixture
def cache():
    return SettingsCache()


@pytest.fixture
def settings_service(store, cache):
    return SettingsService(store, cache)


async def make_job(store: JobStore, name: str, status: JobStatus = JobStatus.QUEUED) -> Job:
    return await store.create_job(Job(name=name, job_config='{"job": "extension"}', status=status))


async def add_queue_entry(session_factory, job_id: str, created_at: datetime = None) -> Queue:
    async with session_factory() as session:
        entry = Queue(
            job_id=job_id,
            status=QueueStatus.WAITING,
            created_at=created_at or datetime.utcnow(),
        )
        session.add(entry)
        await session.commit()
        await session.refresh(entry)
        return entry


def at(seconds: int) -> datetime:
    """Fixed timestamps for ordering tests"""
    return datetime(2024, 1, 1) + timedelta(seconds=seconds)


class FakeRunner:
    """
    Stand-in for the job runner trigger.

    By default every start is accepted. `results` can queue up specific
    outcomes, `on_start` simulates the runner's own status transition, and
    `gate` blocks the call until the test releases it.
    """

    def __init__(self, results=None, on_start=None, gate: asyncio.Event = None):
        self.calls = []
        self.results = list(results or [])
        self.on_start = on_start
        self.gate = gate
        self.entered = asyncio.Event()

    async def start_job(self, job_id: str) -> StartResult:
        self.calls.append(job_id)
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.on_start is not None:
            await self.on_start(job_id)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return StartResult(accepted=True, status_code=200)

    async def aclose(self):
        pass


class FakeLauncher:
    """Records launches instead of spawning run.py"""

    def __init__(self, error: Exception = None):
        self.launched = []
        self.error = error

    def launch(self, job, context):
        if self.error is not None:
            raise self.error
        self.launched.append((job.id, context))
        return 4242


class FakeNotifier:
    def __init__(self):
        self.events = []

    async def broadcast_job_update(self, job_id, status, info=None):
        self.events.append(("job", job_id, status, info))

    async def broadcast_queue_update(self, job_id, action):
        self.events.append(("queue", job_id, action))


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def app(store, settings_service, launcher, notifier):
    from main import app
    from services import get_job_store, get_settings_service, get_job_launcher, get_ws_manager

    app.dependency_overrides[get_job_store] = lambda: store
    app.dependency_overrides[get_settings_service] = lambda: settings_service
    app.dependency_overrides[get_job_launcher] = lambda: launcher
    app.dependency_overrides[get_ws_manager] = lambda: notifier
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
