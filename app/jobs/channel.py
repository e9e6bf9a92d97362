"""In-process multicast channels carrying live job status events."""

from __future__ import annotations

import asyncio
import logging

from app.jobs.models import StatusEvent

logger = logging.getLogger(__name__)


class LiveStatusChannel:
  """Fan out status events for one job to every attached subscriber.

  Each subscriber owns an unbounded queue so a slow reader never blocks the
  publisher. Closing the channel enqueues a ``None`` sentinel after the last
  event; nothing can be published afterwards.
  """

  def __init__(self, job_id: int) -> None:
    self.job_id = job_id
    self._subscribers: list[asyncio.Queue[StatusEvent | None]] = []
    self._closed = False

  @property
  def closed(self) -> bool:
    return self._closed

  @property
  def subscriber_count(self) -> int:
    return len(self._subscribers)

  def attach(self) -> asyncio.Queue[StatusEvent | None]:
    if self._closed:
      raise RuntimeError(f"Status channel for job {self.job_id} is closed")
    queue: asyncio.Queue[StatusEvent | None] = asyncio.Queue()
    self._subscribers.append(queue)
    return queue

  def detach(self, queue: asyncio.Queue[StatusEvent | None]) -> int:
    """Remove a subscriber queue and return how many remain."""
    if queue in self._subscribers:
      self._subscribers.remove(queue)
    return len(self._subscribers)

  def publish(self, event: StatusEvent) -> bool:
    if self._closed:
      return False
    for queue in self._subscribers:
      queue.put_nowait(event)
    return True

  def close(self) -> None:
    if self._closed:
      return
    self._closed = True
    for queue in self._subscribers:
      queue.put_nowait(None)


class LiveStatusChannelRegistry:
  """Job id -> channel map shared by one event loop."""

  def __init__(self) -> None:
    self._channels: dict[int, LiveStatusChannel] = {}

  def get(self, job_id: int) -> LiveStatusChannel | None:
    return self._channels.get(job_id)

  def get_or_create(self, job_id: int) -> LiveStatusChannel:
    channel = self._channels.get(job_id)
    # A closed channel belongs to a finished stream; late observers get a fresh one.
    if channel is None or channel.closed:
      channel = LiveStatusChannel(job_id)
      self._channels[job_id] = channel
    return channel

  def remove(self, job_id: int, *, channel: LiveStatusChannel | None = None) -> bool:
    """Close and drop the channel for ``job_id``.

    When ``channel`` is given, only that exact instance is removed.
    """
    current = self._channels.get(job_id)
    if current is None or (channel is not None and current is not channel):
      return False
    current.close()
    del self._channels[job_id]
    logger.debug("Removed status channel for job %s", job_id)
    return True

  def __contains__(self, job_id: object) -> bool:
    return job_id in self._channels

  def __len__(self) -> int:
    return len(self._channels)
