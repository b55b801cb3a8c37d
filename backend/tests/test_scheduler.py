import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import FakeRunner, make_job, add_queue_entry, at
from models.job import JobStatus
from scheduler import QueueScheduler
from services import StartResult


async def enable_queueing(store, value="true"):
    await store.upsert_settings({"JOB_QUEUEING": value})


def make_scheduler(store, settings_service, runner, notifier=None):
    return QueueScheduler(store, settings_service, runner, interval=0.01, notifier=notifier)


def mark_running(store):
    async def on_start(job_id):
        await store.mark_started(job_id)
    return on_start


async def test_promotes_oldest_waiting_job(store, settings_service):
    await enable_queueing(store)
    job = await make_job(store, "lora-a")
    await add_queue_entry(store._session_factory, job.id)
    runner = FakeRunner()

    assert await make_scheduler(store, settings_service, runner).run_tick() is True

    assert runner.calls == [job.id]
    assert await store.list_queue() == []


@pytest.mark.parametrize("value", [None, "false", "", "TRUE"])
async def test_disabled_queueing_consumes_nothing(store, settings_service, value):
    if value is not None:
        await enable_queueing(store, value)
    job = await make_job(store, "lora-a")
    await add_queue_entry(store._session_factory, job.id)
    runner = FakeRunner()
    scheduler = make_scheduler(store, settings_service, runner)

    for _ in range(3):
        await scheduler.run_tick()

    assert runner.calls == []
    assert len(await store.list_queue()) == 1


async def test_no_promotion_while_a_job_is_running(store, settings_service):
    await enable_queueing(store)
    await make_job(store, "busy", status=JobStatus.RUNNING)
    waiting = await make_job(store, "lora-b")
    await add_queue_entry(store._session_factory, waiting.id)
    runner = FakeRunner()
    scheduler = make_scheduler(store, settings_service, runner)

    await scheduler.run_tick()
    await scheduler.run_tick()

    assert runner.calls == []
    assert [e.job_id for e in await store.list_queue()] == [waiting.id]


async def test_two_job_scenario(store, settings_service):
    await enable_queueing(store)
    job_a = await make_job(store, "job-a")
    job_b = await make_job(store, "job-b")
    await add_queue_entry(store._session_factory, job_a.id, at(1))
    await add_queue_entry(store._session_factory, job_b.id, at(2))
    runner = FakeRunner(on_start=mark_running(store))
    scheduler = make_scheduler(store, settings_service, runner)

    await scheduler.run_tick()
    assert runner.calls == [job_a.id]
    assert [e.job_id for e in await store.list_queue()] == [job_b.id]

    # job A is running now, so B stays put
    await scheduler.run_tick()
    assert runner.calls == [job_a.id]
    assert [e.job_id for e in await store.list_queue()] == [job_b.id]


async def test_fifo_across_ticks(store, settings_service):
    await enable_queueing(store)
    jobs = [await make_job(store, f"job-{i}") for i in range(3)]
    # inserted out of order on purpose
    await add_queue_entry(store._session_factory, jobs[2].id, at(3))
    await add_queue_entry(store._session_factory, jobs[0].id, at(1))
    await add_queue_entry(store._session_factory, jobs[1].id, at(2))
    runner = FakeRunner()
    scheduler = make_scheduler(store, settings_service, runner)

    for _ in range(4):
        await scheduler.run_tick()

    assert runner.calls == [jobs[0].id, jobs[1].id, jobs[2].id]


async def test_equal_timestamps_use_insertion_order(store, settings_service):
    await enable_queueing(store)
    first = await make_job(store, "first")
    second = await make_job(store, "second")
    await add_queue_entry(store._session_factory, first.id, at(5))
    await add_queue_entry(store._session_factory, second.id, at(5))
    runner = FakeRunner()
    scheduler = make_scheduler(store, settings_service, runner)

    await scheduler.run_tick()
    await scheduler.run_tick()

    assert runner.calls == [first.id, second.id]


async def test_orphaned_entry_is_removed_once(store, settings_service, notifier):
    await enable_queueing(store)
    await add_queue_entry(store._session_factory, "deleted-job-id")
    runner = FakeRunner()
    scheduler = make_scheduler(store, settings_service, runner, notifier)

    await scheduler.run_tick()
    assert await store.list_queue() == []
    assert runner.calls == []

    await scheduler.run_tick()
    assert runner.calls == []
    assert notifier.events == [("queue", "deleted-job-id", "dropped")]


async def test_stale_entry_is_removed_without_starting(store, settings_service):
    await enable_queueing(store)
    job = await make_job(store, "done", status=JobStatus.COMPLETED)
    await add_queue_entry(store._session_factory, job.id)
    runner = FakeRunner()

    await make_scheduler(store, settings_service, runner).run_tick()

    assert runner.calls == []
    assert await store.list_queue() == []
    assert (await store.get_job(job.id)).status == JobStatus.COMPLETED


@pytest.mark.parametrize("status", [JobStatus.QUEUED, JobStatus.STOPPED, JobStatus.ERROR])
async def test_startable_statuses(store, settings_service, status):
    await enable_queueing(store)
    job = await make_job(store, "retry-me", status=status)
    await add_queue_entry(store._session_factory, job.id)
    runner = FakeRunner()

    await make_scheduler(store, settings_service, runner).run_tick()

    assert runner.calls == [job.id]


async def test_rejected_start_marks_job_error(store, settings_service, notifier):
    await enable_queueing(store)
    job = await make_job(store, "broken")
    await add_queue_entry(store._session_factory, job.id)
    runner = FakeRunner(results=[StartResult(accepted=False, error="Internal Server Error", status_code=500)])

    await make_scheduler(store, settings_service, runner, notifier).run_tick()

    refreshed = await store.get_job(job.id)
    assert refreshed.status == JobStatus.ERROR
    assert refreshed.info == "Failed to start queued job: Internal Server Error"
    assert await store.list_queue() == []
    assert ("job", job.id, "error", refreshed.info) in notifier.events


async def test_unreachable_runner_marks_job_error(store, settings_service):
    await enable_queueing(store)
    job = await make_job(store, "offline")
    await add_queue_entry(store._session_factory, job.id)
    runner = FakeRunner(results=[StartResult(accepted=False, error="All connection attempts failed")])

    await make_scheduler(store, settings_service, runner).run_tick()

    refreshed = await store.get_job(job.id)
    assert refreshed.status == JobStatus.ERROR
    assert refreshed.info.startswith("Error starting queued job: ")
    assert "connection attempts failed" in refreshed.info


async def test_runner_exception_is_recorded_on_job(store, settings_service):
    await enable_queueing(store)
    job = await make_job(store, "explodes")
    await add_queue_entry(store._session_factory, job.id)
    runner = FakeRunner(results=[RuntimeError("boom")])

    assert await make_scheduler(store, settings_service, runner).run_tick() is True

    refreshed = await store.get_job(job.id)
    assert refreshed.status == JobStatus.ERROR
    assert refreshed.info == "Error starting queued job: boom"


async def test_failed_job_is_not_retried(store, settings_service):
    await enable_queueing(store)
    job = await make_job(store, "once")
    await add_queue_entry(store._session_factory, job.id)
    runner = FakeRunner(results=[StartResult(accepted=False, error="Bad Gateway", status_code=502)])
    scheduler = make_scheduler(store, settings_service, runner)

    await scheduler.run_tick()
    await scheduler.run_tick()

    assert runner.calls == [job.id]


async def test_store_failure_is_contained(store, settings_service):
    broken = AsyncMock()
    broken.get_job_queueing.side_effect = RuntimeError("database is locked")
    scheduler = make_scheduler(store, broken, FakeRunner())

    assert await scheduler.run_tick() is True
    assert scheduler.is_ticking is False

    # guard was cleared, the next tick runs normally
    scheduler.settings_service = settings_service
    assert await scheduler.run_tick() is True


async def test_overlapping_tick_touches_nothing(store, settings_service):
    await enable_queueing(store)
    job = await make_job(store, "slow")
    await add_queue_entry(store._session_factory, job.id)
    gate = asyncio.Event()
    runner = FakeRunner(gate=gate)
    scheduler = make_scheduler(store, settings_service, runner)

    first = asyncio.create_task(scheduler.run_tick())
    await runner.entered.wait()
    assert scheduler.is_ticking

    spy_store, spy_settings = AsyncMock(), AsyncMock()
    scheduler.store, scheduler.settings_service = spy_store, spy_settings
    assert await scheduler.run_tick() is False
    assert spy_store.mock_calls == []
    assert spy_settings.mock_calls == []

    scheduler.store, scheduler.settings_service = store, settings_service
    gate.set()
    assert await first is True
    assert not scheduler.is_ticking


async def test_settings_change_visible_after_invalidate(store, settings_service):
    job = await make_job(store, "later")
    await add_queue_entry(store._session_factory, job.id)
    runner = FakeRunner()
    scheduler = make_scheduler(store, settings_service, runner)

    await scheduler.run_tick()  # caches JOB_QUEUEING=False
    await enable_queueing(store)
    await scheduler.run_tick()
    assert runner.calls == []

    settings_service.invalidate()
    await scheduler.run_tick()
    assert runner.calls == [job.id]


async def test_timer_runs_ticks_until_stopped(store, settings_service):
    await enable_queueing(store)
    job = await make_job(store, "timed")
    await add_queue_entry(store._session_factory, job.id)
    runner = FakeRunner()
    scheduler = make_scheduler(store, settings_service, runner)

    scheduler.start()
    assert scheduler.is_running
    await asyncio.wait_for(runner.entered.wait(), timeout=2)
    await scheduler.stop()

    assert not scheduler.is_running
    assert runner.calls == [job.id]


async def test_stop_waits_for_in_flight_tick(store, settings_service):
    await enable_queueing(store)
    job = await make_job(store, "long-start")
    await add_queue_entry(store._session_factory, job.id)
    gate = asyncio.Event()
    runner = FakeRunner(gate=gate)
    scheduler = make_scheduler(store, settings_service, runner)

    scheduler.start()
    await asyncio.wait_for(runner.entered.wait(), timeout=2)
    in_flight = scheduler.current_tick

    stopping = asyncio.create_task(scheduler.stop())
    await asyncio.sleep(0.05)
    assert not stopping.done()

    gate.set()
    await asyncio.wait_for(stopping, timeout=2)
    assert in_flight.done()
    assert in_flight.result() is True


async def test_fire_twice_keeps_first_tick_and_stop_waits(store, settings_service):
    await enable_queueing(store)
    job = await make_job(store, "double-fire")
    await add_queue_entry(store._session_factory, job.id)
    gate = asyncio.Event()
    runner = FakeRunner(gate=gate)
    scheduler = make_scheduler(store, settings_service, runner)

    first = scheduler.fire()
    second = scheduler.fire()
    assert second is first
    assert scheduler.current_tick is first

    await runner.entered.wait()
    stopping = asyncio.create_task(scheduler.stop())
    await asyncio.sleep(0.05)
    assert not stopping.done()

    gate.set()
    await asyncio.wait_for(stopping, timeout=2)
    assert first.done()
    assert runner.calls == [job.id]


def test_explicit_zero_interval_is_kept(store, settings_service):
    assert make_scheduler(store, settings_service, FakeRunner()).interval == 0.01
    assert QueueScheduler(store, settings_service, FakeRunner(), interval=0).interval == 0
