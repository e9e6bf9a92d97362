from __future__ import annotations

import asyncio

import pytest

from app.translation.batch import BatchTranslator
from app.translation.scheduler import AdmissionScheduler, SchedulerSettings


@pytest.mark.anyio
async def test_outcomes_are_counted_once_per_item(scheduler) -> None:
  translator = BatchTranslator(scheduler, chunk_pause=0)

  async def process(item: int) -> bool:
    if item == 3:
      raise RuntimeError("external service failed")
    return item % 2 == 0

  result = await translator.process_batch(list(range(7)), process, batch_size=3)

  assert (result.success, result.failure, result.dropped) == (4, 3, 0)
  assert result.total == 7


@pytest.mark.anyio
async def test_back_pressure_is_counted_as_dropped() -> None:
  scheduler = AdmissionScheduler(SchedulerSettings(max_concurrent=1, min_time=0, reservoir=None, reservoir_refresh_interval=None, reservoir_refresh_amount=None, high_water=None, timeout=5.0))
  translator = BatchTranslator(scheduler, admission_timeout=0.02, chunk_pause=0)

  async def slow(item: int) -> bool:
    await asyncio.sleep(0.1)
    return True

  try:
    result = await translator.process_batch([1, 2, 3], slow, concurrency_limit=3)
  finally:
    await scheduler.shutdown()

  assert (result.success, result.failure, result.dropped) == (1, 0, 2)


@pytest.mark.anyio
async def test_chunks_run_strictly_in_order(scheduler) -> None:
  translator = BatchTranslator(scheduler, chunk_pause=0)
  finished: set[int] = set()

  async def process(item: int) -> bool:
    chunk_start = item - item % 2
    assert all(earlier in finished for earlier in range(chunk_start))
    await asyncio.sleep(0.005 * (2 - item % 2))
    finished.add(item)
    return True

  result = await translator.process_batch(list(range(5)), process, batch_size=2)

  assert result.success == 5
  assert finished == set(range(5))


@pytest.mark.anyio
async def test_per_call_concurrency_limit(scheduler) -> None:
  translator = BatchTranslator(scheduler, chunk_pause=0)
  active = 0
  peak = 0

  async def process(item: int) -> bool:
    nonlocal active, peak
    active += 1
    peak = max(peak, active)
    await asyncio.sleep(0.005)
    active -= 1
    return True

  result = await translator.process_batch(list(range(6)), process, batch_size=6, concurrency_limit=2)

  assert result.success == 6
  assert peak == 2


@pytest.mark.anyio
async def test_empty_batch(scheduler) -> None:
  result = await BatchTranslator(scheduler).process_batch([], lambda item: asyncio.sleep(0, True))
  assert result.total == 0
