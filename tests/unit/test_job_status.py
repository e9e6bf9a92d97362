from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from app.jobs.models import JobStatusUpdate, StatusEvent
from app.jobs.status import CONNECTING_MESSAGE, JobStatusManager


async def _open_stream(manager: JobStatusManager, job_id: int) -> tuple[AsyncIterator[StatusEvent], StatusEvent, asyncio.Task]:
  """Subscribe and wait until the subscriber queue is attached."""
  channel = manager.channels.get(job_id)
  before = channel.subscriber_count if channel is not None and not channel.closed else 0
  stream = manager.subscribe_status(job_id)
  ack = await anext(stream)
  pending = asyncio.create_task(anext(stream))
  for _ in range(20):
    channel = manager.channels.get(job_id)
    if channel is not None and channel.subscriber_count > before:
      break
    await asyncio.sleep(0)
  return stream, ack, pending


@pytest.mark.anyio
async def test_update_clamps_percentage_and_truncates_progress(job_status, jobs_repo) -> None:
  job = await job_status.create_publish_job(7, "user-1")

  await job_status.update_job_status(job.id, JobStatusUpdate(status="In Progress", progress="x" * 400, percentage=150))
  stored = await jobs_repo.get_publish_job(job.id)
  assert stored.percentage == 100
  assert len(stored.progress) == 255

  await job_status.update_job_status(job.id, JobStatusUpdate(status="In Progress", progress="", percentage=-5))
  stored = await jobs_repo.get_publish_job(job.id)
  assert stored.percentage == 0
  assert stored.progress == "Status update"


@pytest.mark.anyio
async def test_update_without_percentage_keeps_last_value(job_status, jobs_repo) -> None:
  job = await job_status.create_publish_job(7, "user-1")
  await job_status.update_job_status(job.id, JobStatusUpdate(status="In Progress", progress="Halfway", percentage=50))
  await job_status.update_job_status(job.id, JobStatusUpdate(status="In Progress", progress="Translating variant"))

  stored = await jobs_repo.get_publish_job(job.id)
  assert stored.percentage == 50
  assert stored.progress == "Translating variant"


@pytest.mark.anyio
async def test_update_never_raises_when_store_keeps_failing(job_status, jobs_repo) -> None:
  job = await job_status.create_publish_job(3, "user-1")
  stream, _, pending = await _open_stream(job_status, job.id)
  jobs_repo.failures_remaining = 10

  await job_status.update_job_status(job.id, JobStatusUpdate(status="In Progress", progress="Still going", percentage=40))

  assert jobs_repo.write_attempts == 3
  event = await asyncio.wait_for(pending, 1)
  assert event.type == "update"
  assert event.data["progress"] == "Still going"
  assert event.data["percentage"] == 40
  assert event.data["done"] is False
  await stream.aclose()


@pytest.mark.anyio
async def test_transient_store_failure_is_retried(job_status, jobs_repo) -> None:
  job = await job_status.create_publish_job(3, "user-1")
  jobs_repo.failures_remaining = 1

  await job_status.update_job_status(job.id, JobStatusUpdate(status="In Progress", progress="Retried", percentage=10))

  stored = await jobs_repo.get_publish_job(job.id)
  assert stored.progress == "Retried"
  assert jobs_repo.write_attempts == 2


@pytest.mark.anyio
async def test_terminal_update_emits_summary_and_closes_stream(job_status) -> None:
  job = await job_status.create_publish_job(3, "user-1")
  stream, ack, pending = await _open_stream(job_status, job.id)
  assert ack.data == {"message": CONNECTING_MESSAGE}

  await job_status.update_job_status(job.id, JobStatusUpdate(status="Completed", progress="Done", percentage=100, result=[{"id": 1}]))

  finalize = await asyncio.wait_for(pending, 1)
  summary = await anext(stream)
  close = await anext(stream)
  assert finalize.type == "finalize"
  assert finalize.data["done"] is True
  assert finalize.data["result"] == '[{"id":1}]'
  assert summary.type == "summary"
  assert summary.data == {"message": "Job completed", "finalStatus": "Completed"}
  assert close.type == "close"
  with pytest.raises(StopAsyncIteration):
    await anext(stream)

  await asyncio.sleep(0.05)
  assert job.id not in job_status.channels


@pytest.mark.anyio
async def test_failed_update_emits_error_event(job_status) -> None:
  job = await job_status.create_publish_job(3, "user-1")
  stream, _, pending = await _open_stream(job_status, job.id)

  await job_status.update_job_status(job.id, JobStatusUpdate(status="Failed", progress="Error: boom"))

  event = await asyncio.wait_for(pending, 1)
  assert event.type == "error"
  assert event.data["status"] == "Failed"
  summary = await anext(stream)
  assert summary.data == {"message": "Job failed", "finalStatus": "Failed"}
  await stream.aclose()


@pytest.mark.anyio
async def test_subscribing_to_finished_job_yields_only_acknowledgement(job_status) -> None:
  job = await job_status.create_publish_job(3, "user-1")
  await job_status.update_job_status(job.id, JobStatusUpdate(status="Completed", progress="Done", percentage=100))

  events = [event async for event in job_status.subscribe_status(job.id)]

  assert [event.data for event in events] == [{"message": CONNECTING_MESSAGE}]
  assert job.id not in job_status.channels


@pytest.mark.anyio
async def test_one_subscriber_leaving_keeps_stream_for_others(job_status) -> None:
  job = await job_status.create_publish_job(3, "user-1")
  first, _, first_pending = await _open_stream(job_status, job.id)
  second, _, second_pending = await _open_stream(job_status, job.id)
  assert job_status.channels.get(job.id).subscriber_count == 2

  first_pending.cancel()
  with pytest.raises(asyncio.CancelledError):
    await first_pending
  await first.aclose()
  assert job.id in job_status.channels

  await job_status.update_job_status(job.id, JobStatusUpdate(status="In Progress", progress="Working", percentage=30))
  event = await asyncio.wait_for(second_pending, 1)
  assert event.data["progress"] == "Working"

  await second.aclose()
  assert job.id not in job_status.channels


@pytest.mark.anyio
async def test_publish_jobs_win_id_collisions(job_status) -> None:
  generic = await job_status.create_job(9, "user-1")
  publish = await job_status.create_publish_job(9, "user-1")
  assert generic.id == publish.id

  record = await job_status.get_job_status(publish.id)

  assert record.kind == "publish"
  assert record.percentage == 0


@pytest.mark.anyio
async def test_generic_job_updates_go_to_generic_table(jobs_repo) -> None:
  manager = JobStatusManager(jobs_repo=jobs_repo, write_backoff_ms=0)
  job = await manager.create_job(4, "user-2")
  assert job.status == "Pending"

  await manager.update_job_status(job.id, JobStatusUpdate(status="Completed", progress="Finished", percentage=100, result={"ok": True}))

  stored = await jobs_repo.get_job(job.id)
  assert stored.status == "Completed"
  assert stored.result == '{"ok":true}'
  assert stored.percentage is None


@pytest.mark.anyio
async def test_terminal_update_during_subscriber_lookup_still_reaches_subscriber(job_status, jobs_repo, monkeypatch) -> None:
  job = await job_status.create_publish_job(3, "user-1")
  snapshot = await jobs_repo.get_publish_job(job.id)
  lookup_started = asyncio.Event()
  release_lookup = asyncio.Event()

  async def slow_lookup(job_id: int):
    lookup_started.set()
    await release_lookup.wait()
    return snapshot

  monkeypatch.setattr(jobs_repo, "get_publish_job", slow_lookup)
  stream = job_status.subscribe_status(job.id)
  await anext(stream)
  pending = asyncio.create_task(anext(stream))
  await asyncio.wait_for(lookup_started.wait(), 1)

  await job_status.update_job_status(job.id, JobStatusUpdate(status="Completed", progress="Done", percentage=100))
  release_lookup.set()

  finalize = await asyncio.wait_for(pending, 2)
  summary = await asyncio.wait_for(anext(stream), 2)
  close = await asyncio.wait_for(anext(stream), 2)
  assert [finalize.type, summary.type, close.type] == ["finalize", "summary", "close"]
  with pytest.raises(StopAsyncIteration):
    await asyncio.wait_for(anext(stream), 2)


@pytest.mark.anyio
async def test_lookup_failure_while_subscribing_ends_stream_with_error(job_status, jobs_repo, monkeypatch) -> None:
  job = await job_status.create_publish_job(3, "user-1")

  async def broken_lookup(job_id: int):
    raise ConnectionError("database unavailable")

  monkeypatch.setattr(jobs_repo, "get_publish_job", broken_lookup)
  events = [event async for event in job_status.subscribe_status(job.id)]

  assert [event.type for event in events] == ["update", "error"]
  assert events[1].data == {"error": "database unavailable", "done": True}
  assert job.id not in job_status.channels


@pytest.mark.anyio
async def test_job_kind_lookup_failure_emits_in_progress_error_and_keeps_stream(job_status, jobs_repo, monkeypatch) -> None:
  job = await job_status.create_publish_job(3, "user-1")
  stream, _, pending = await _open_stream(job_status, job.id)

  async def broken_exists(job_id: int) -> bool:
    raise ConnectionError("pool exhausted")

  monkeypatch.setattr(jobs_repo, "publish_job_exists", broken_exists)
  await job_status.update_job_status(job.id, JobStatusUpdate(status="Failed", progress="Error: boom"))

  event = await asyncio.wait_for(pending, 1)
  assert event.type == "update"
  assert event.data["status"] == "In Progress"
  assert event.data["progress"].startswith("Update error: pool exhausted")
  assert event.data["done"] is False
  channel = job_status.channels.get(job.id)
  assert channel is not None
  assert not channel.closed
  stored = await jobs_repo.get_publish_job(job.id)
  assert stored.status == "In Progress"
  await stream.aclose()
