"""Job creation, status updates and live status subscriptions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from functools import partial
from typing import Any

from app.core.json import dumps
from app.jobs.channel import LiveStatusChannel, LiveStatusChannelRegistry
from app.jobs.models import MAX_PROGRESS_CHARS, JobRecord, JobStatus, JobStatusUpdate, StatusEvent, StatusEventType
from app.storage.jobs_repo import JobsRepository
from app.utils.db_retry import execute_with_retry, retry_any_failure

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS = "Status update"
CONNECTING_MESSAGE = "Connecting to job status stream..."


def sanitize_progress(progress: str | None) -> str:
  return (progress or DEFAULT_PROGRESS)[:MAX_PROGRESS_CHARS]


def clamp_percentage(percentage: float | None) -> int | None:
  if percentage is None:
    return None
  return max(0, min(100, int(percentage)))


def serialize_result(result: Any) -> str | None:
  if result is None:
    return None
  if isinstance(result, str):
    return result
  return dumps(result)


def event_type_for(status: JobStatus) -> StatusEventType:
  if status == "Completed":
    return "finalize"
  if status == "Failed":
    return "error"
  return "update"


class JobStatusManager:
  """Single entry point for job progress reporting.

  Persistence is best effort: writes are retried and then tolerated so a
  degraded store never blocks live status delivery.
  """

  def __init__(self, *, jobs_repo: JobsRepository, channels: LiveStatusChannelRegistry | None = None, write_attempts: int = 3, write_backoff_ms: int = 100, cleanup_delay_seconds: float = 1.0) -> None:
    self._jobs_repo = jobs_repo
    self._channels = channels or LiveStatusChannelRegistry()
    self._write_attempts = write_attempts
    self._write_backoff_ms = write_backoff_ms
    self._cleanup_delay_seconds = cleanup_delay_seconds

  @property
  def channels(self) -> LiveStatusChannelRegistry:
    return self._channels

  async def create_job(self, assignment_id: int, user_id: str) -> JobRecord:
    record = await self._jobs_repo.create_job(kind="generic", assignment_id=assignment_id, user_id=user_id, status="Pending", progress="Job created")
    logger.info("Created job %s for assignment %s", record.id, assignment_id)
    return record

  async def create_publish_job(self, assignment_id: int, user_id: str) -> JobRecord:
    record = await self._jobs_repo.create_job(kind="publish", assignment_id=assignment_id, user_id=user_id, status="In Progress", progress="Initializing assignment publishing...", percentage=0)
    logger.info("Created publish job %s for assignment %s", record.id, assignment_id)
    return record

  async def get_job_status(self, job_id: int) -> JobRecord | None:
    # Publish jobs win when both id sequences collide.
    record = await self._jobs_repo.get_publish_job(job_id)
    if record is not None:
      return record
    return await self._jobs_repo.get_job(job_id)

  async def update_job_status(self, job_id: int, update: JobStatusUpdate) -> None:
    """Persist and broadcast a status change. Never raises."""
    percentage: int | None = None
    try:
      percentage = clamp_percentage(update.percentage)
      progress = sanitize_progress(update.progress)
      result = serialize_result(update.result)
      logger.info("Job %s -> %s (%s%%): %s", job_id, update.status, percentage if percentage is not None else "-", progress)

      is_publish = await self._jobs_repo.publish_job_exists(job_id)
      await self._persist(job_id, is_publish=is_publish, status=update.status, progress=progress, percentage=percentage, result=result)
      self._emit(job_id, status=update.status, progress=progress, percentage=percentage, result=result)
    except Exception as exc:
      logger.error("Failed to update status for job %s: %s", job_id, exc, exc_info=True)
      # Infrastructure trouble never marks the job Failed.
      self._emit(job_id, status="In Progress", progress=f"Update error: {str(exc)[:100]}... (continuing)", percentage=percentage, result=None)

  async def _persist(self, job_id: int, *, is_publish: bool, status: JobStatus, progress: str, percentage: int | None, result: str | None) -> None:
    if is_publish:
      operation_name = "update_publish_job"

      async def _write() -> Any:
        return await self._jobs_repo.update_publish_job(job_id, status=status, progress=progress, percentage=percentage, result=result)

    else:
      operation_name = "update_job"

      async def _write() -> Any:
        return await self._jobs_repo.update_job(job_id, status=status, progress=progress, result=result)

    try:
      await execute_with_retry(operation_name=operation_name, func=_write, max_attempts=self._write_attempts, initial_backoff_ms=self._write_backoff_ms, jitter=False, retry_on=retry_any_failure)
    except Exception:
      logger.error("Giving up persisting status for job %s after %d attempts; continuing with live update only", job_id, self._write_attempts)

  def _emit(self, job_id: int, *, status: JobStatus, progress: str, percentage: int | None, result: str | None) -> None:
    try:
      channel = self._channels.get(job_id)
      if channel is None or channel.closed:
        return

      done = status in {"Completed", "Failed"}
      data: dict[str, Any] = {"timestamp": datetime.now(UTC).isoformat(), "status": status, "progress": progress, "percentage": percentage, "done": done}
      if result is not None:
        data["result"] = result
      channel.publish(StatusEvent(type=event_type_for(status), data=data))

      if done:
        channel.publish(StatusEvent(type="summary", data={"message": f"Job {status.lower()}", "finalStatus": status}))
        channel.publish(StatusEvent(type="close", data={"message": "Stream completed"}))
        channel.close()
        self._schedule_cleanup(job_id, channel)
    except Exception:
      logger.error("Failed to emit status event for job %s", job_id, exc_info=True)

  def _schedule_cleanup(self, job_id: int, channel: LiveStatusChannel) -> None:
    loop = asyncio.get_running_loop()
    loop.call_later(self._cleanup_delay_seconds, partial(self._channels.remove, job_id, channel=channel))

  async def subscribe_status(self, job_id: int) -> AsyncIterator[StatusEvent]:
    """Yield a connection acknowledgement and then live events until the stream closes.

    Jobs already in a terminal state yield only the acknowledgement; history
    is never replayed. Lookup failures end the stream with an error event.
    """
    yield StatusEvent(type="update", data={"message": CONNECTING_MESSAGE})

    # Attach before the lookup so a terminal update landing mid-lookup is queued, not lost.
    channel = self._channels.get_or_create(job_id)
    queue = channel.attach()
    try:
      try:
        record = await self.get_job_status(job_id)
      except Exception as exc:
        logger.error("Status stream for job %s failed: %s", job_id, exc, exc_info=True)
        yield StatusEvent(type="error", data={"error": str(exc), "done": True})
        return
      if record is None or record.is_terminal:
        return

      while True:
        event = await queue.get()
        if event is None:
          break
        yield event
    finally:
      self._release(job_id, channel, queue)

  def _release(self, job_id: int, channel: LiveStatusChannel, queue: asyncio.Queue[StatusEvent | None]) -> None:
    if channel.detach(queue) == 0:
      self._channels.remove(job_id, channel=channel)

  def cleanup_stream(self, job_id: int) -> None:
    if self._channels.remove(job_id):
      logger.debug("Cleaned up status stream for job %s", job_id)
