from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from app.translation.scheduler import AdmissionScheduler, HealthThresholds, SchedulerDroppedError, SchedulerSettings, SchedulerTimeoutError


def _settings(**overrides) -> SchedulerSettings:
  base = {"max_concurrent": 1, "min_time": 0, "reservoir": None, "reservoir_refresh_interval": None, "reservoir_refresh_amount": None, "high_water": None, "timeout": 5.0}
  base.update(overrides)
  return SchedulerSettings(**base)


async def _until(predicate: Callable[[], bool]) -> None:
  for _ in range(400):
    if predicate():
      return
    await asyncio.sleep(0.005)
  raise AssertionError("condition not reached")


@pytest.fixture
async def make_scheduler():
  created: list[AdmissionScheduler] = []

  def factory(settings: SchedulerSettings, health: HealthThresholds | None = None) -> AdmissionScheduler:
    scheduler = AdmissionScheduler(settings, health=health)
    created.append(scheduler)
    return scheduler

  yield factory
  for scheduler in created:
    await scheduler.shutdown()


@pytest.mark.anyio
async def test_concurrency_limit_is_respected(make_scheduler) -> None:
  scheduler = make_scheduler(_settings(max_concurrent=2))
  active = 0
  peak = 0

  async def work(value: int) -> int:
    nonlocal active, peak
    active += 1
    peak = max(peak, active)
    await asyncio.sleep(0.01)
    active -= 1
    return value * 2

  results = await asyncio.gather(*(scheduler.schedule(lambda value=value: work(value)) for value in range(6)))

  assert results == [0, 2, 4, 6, 8, 10]
  assert peak == 2
  assert scheduler.counts().done == 6


@pytest.mark.anyio
async def test_lower_priority_number_runs_first(make_scheduler) -> None:
  scheduler = make_scheduler(_settings())
  release = asyncio.Event()
  order: list[int] = []

  blocker = asyncio.create_task(scheduler.schedule(release.wait))
  await _until(lambda: scheduler.counts().running == 1)

  async def record(priority: int) -> None:
    order.append(priority)

  waiting = [asyncio.create_task(scheduler.schedule(lambda priority=priority: record(priority), priority=priority)) for priority in (9, 0, 5)]
  await _until(lambda: scheduler.counts().queued == 3)
  release.set()
  await asyncio.gather(blocker, *waiting)

  assert order == [0, 5, 9]


@pytest.mark.anyio
async def test_expired_admission_is_dropped(make_scheduler) -> None:
  scheduler = make_scheduler(_settings())
  release = asyncio.Event()
  blocker = asyncio.create_task(scheduler.schedule(release.wait))
  await _until(lambda: scheduler.counts().running == 1)

  with pytest.raises(SchedulerDroppedError):
    await scheduler.schedule(lambda: asyncio.sleep(0), expiration=0.02)

  release.set()
  await blocker


@pytest.mark.anyio
async def test_task_timeout_raises_timeout_error(make_scheduler) -> None:
  scheduler = make_scheduler(_settings(timeout=0.02))

  with pytest.raises(SchedulerTimeoutError):
    await scheduler.schedule(lambda: asyncio.sleep(1))

  assert scheduler.counts().running == 0


@pytest.mark.anyio
async def test_high_water_leaks_oldest_lowest_priority_entry(make_scheduler) -> None:
  scheduler = make_scheduler(_settings(high_water=1))
  release = asyncio.Event()
  blocker = asyncio.create_task(scheduler.schedule(release.wait))
  await _until(lambda: scheduler.counts().running == 1)

  oldest = asyncio.create_task(scheduler.schedule(lambda: asyncio.sleep(0, "oldest"), priority=5))
  await _until(lambda: scheduler.counts().queued == 1)
  newest = asyncio.create_task(scheduler.schedule(lambda: asyncio.sleep(0, "newest"), priority=5))

  with pytest.raises(SchedulerDroppedError):
    await oldest
  # Less urgent work than everything queued is refused outright.
  with pytest.raises(SchedulerDroppedError):
    await scheduler.schedule(lambda: asyncio.sleep(0), priority=9)

  release.set()
  await blocker
  assert await newest == "newest"


@pytest.mark.anyio
async def test_empty_reservoir_holds_work_until_refilled(make_scheduler) -> None:
  scheduler = make_scheduler(_settings(max_concurrent=5, reservoir=2, reservoir_refresh_interval=60.0, reservoir_refresh_amount=2))

  tasks = [asyncio.create_task(scheduler.schedule(lambda index=index: asyncio.sleep(0, index))) for index in range(3)]
  await _until(lambda: scheduler.counts().done == 2)
  await asyncio.sleep(0.02)
  assert scheduler.counts().queued == 1

  scheduler.update_settings(reservoir=1)
  assert await asyncio.gather(*tasks) == [0, 1, 2]


@pytest.mark.anyio
async def test_health_check_throttles_a_long_queue(make_scheduler) -> None:
  health = HealthThresholds(queue_high_water=2, throttled_concurrency=1, throttle_duration=0.05)
  scheduler = make_scheduler(_settings(max_concurrent=2), health)
  release = asyncio.Event()
  blockers = [asyncio.create_task(scheduler.schedule(release.wait)) for _ in range(2)]
  await _until(lambda: scheduler.counts().running == 2)
  queued = [asyncio.create_task(scheduler.schedule(lambda: asyncio.sleep(0))) for _ in range(3)]
  await _until(lambda: scheduler.counts().queued == 3)

  assert await scheduler.check_health() == "throttled"
  assert scheduler.settings.max_concurrent == 1

  await asyncio.sleep(0.1)
  assert scheduler.settings.max_concurrent == 2
  release.set()
  await asyncio.gather(*blockers, *queued)


@pytest.mark.anyio
async def test_health_check_resets_a_stalled_scheduler(make_scheduler) -> None:
  health = HealthThresholds(stall_running=0, stall_done_ratio=1.0, stall_received=0)
  scheduler = make_scheduler(_settings(), health)
  release = asyncio.Event()
  blocker = asyncio.create_task(scheduler.schedule(release.wait))
  await _until(lambda: scheduler.counts().running == 1)

  check = asyncio.create_task(scheduler.check_health())
  await asyncio.sleep(0.01)
  assert not check.done()
  release.set()

  assert await check == "reset"
  await blocker
  counts = scheduler.counts()
  assert (counts.received, counts.done, counts.queued, counts.running) == (0, 0, 0, 0)


@pytest.mark.anyio
async def test_idle_scheduler_is_healthy(make_scheduler) -> None:
  scheduler = make_scheduler(_settings())
  assert await scheduler.check_health() == "ok"


@pytest.mark.anyio
async def test_reset_completes_under_steady_load(make_scheduler) -> None:
  scheduler = make_scheduler(_settings(max_concurrent=2))
  stop = asyncio.Event()
  submitted: list[asyncio.Task] = []

  async def produce() -> None:
    while not stop.is_set():
      submitted.append(asyncio.create_task(scheduler.schedule(lambda: asyncio.sleep(0.01))))
      await asyncio.sleep(0.004)

  producer = asyncio.create_task(produce())
  await asyncio.sleep(0.1)
  await asyncio.wait_for(scheduler.reset(), 2)
  stop.set()
  await producer

  await asyncio.wait_for(asyncio.gather(*submitted), 5)
  assert all(task.done() and task.exception() is None for task in submitted)


@pytest.mark.anyio
async def test_work_scheduled_during_reset_runs_after_it(make_scheduler) -> None:
  scheduler = make_scheduler(_settings())
  release = asyncio.Event()
  order: list[str] = []

  async def blocking() -> None:
    await release.wait()
    order.append("drained")

  async def late() -> str:
    order.append("late")
    return "late"

  blocker = asyncio.create_task(scheduler.schedule(blocking))
  await _until(lambda: scheduler.counts().running == 1)
  reset = asyncio.create_task(scheduler.reset())
  await asyncio.sleep(0.01)
  held = asyncio.create_task(scheduler.schedule(late))
  await asyncio.sleep(0.01)
  assert scheduler.counts().queued == 1
  assert order == []

  release.set()
  await asyncio.wait_for(reset, 1)
  assert await asyncio.wait_for(held, 1) == "late"
  await blocker
  assert order == ["drained", "late"]
  assert scheduler.counts().received == 1
