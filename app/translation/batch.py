"""Chunked fan-out of translation work through the shared scheduler."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from functools import partial
from typing import Literal, TypeVar

from app.translation.scheduler import DEFAULT_PRIORITY, AdmissionScheduler, SchedulerDroppedError

logger = logging.getLogger(__name__)

T = TypeVar("T")
ItemOutcome = Literal["success", "failure", "dropped"]

CHUNK_PAUSE_SECONDS = 0.1


@dataclass
class BatchProcessResult:
  success: int = 0
  failure: int = 0
  dropped: int = 0

  @property
  def total(self) -> int:
    return self.success + self.failure + self.dropped

  def record(self, outcome: ItemOutcome) -> None:
    setattr(self, outcome, getattr(self, outcome) + 1)


class BatchTranslator:
  """Run one async operation per item, chunk by chunk.

  Chunks run strictly in order. Items inside a chunk run concurrently,
  bounded by a per-call concurrency limit and by the shared scheduler's
  concurrency and reservoir. Item failures never abort the batch.
  """

  def __init__(self, scheduler: AdmissionScheduler, *, batch_size: int = 25, concurrency_limit: int = 20, admission_timeout: float | None = 15.0, priority: int = DEFAULT_PRIORITY, chunk_pause: float = CHUNK_PAUSE_SECONDS) -> None:
    self._scheduler = scheduler
    self._batch_size = batch_size
    self._concurrency_limit = concurrency_limit
    self._admission_timeout = admission_timeout
    self._priority = priority
    self._chunk_pause = chunk_pause

  @property
  def scheduler(self) -> AdmissionScheduler:
    return self._scheduler

  async def process_batch(self, items: Sequence[T], item_processor: Callable[[T], Awaitable[bool]], batch_size: int | None = None, concurrency_limit: int | None = None) -> BatchProcessResult:
    size = max(1, batch_size or self._batch_size)
    limit = asyncio.Semaphore(max(1, concurrency_limit or self._concurrency_limit))
    result = BatchProcessResult()
    chunks = [items[index : index + size] for index in range(0, len(items), size)]

    for chunk_index, chunk in enumerate(chunks):
      outcomes = await asyncio.gather(*(self._run_item(item, item_processor, limit) for item in chunk))
      for outcome in outcomes:
        result.record(outcome)

      if chunk_index < len(chunks) - 1:
        await asyncio.sleep(self._chunk_pause)

    logger.debug("Batch finished: %d succeeded, %d failed, %d dropped", result.success, result.failure, result.dropped)
    return result

  async def _run_item(self, item: T, item_processor: Callable[[T], Awaitable[bool]], limit: asyncio.Semaphore) -> ItemOutcome:
    async with limit:
      try:
        succeeded = await self._scheduler.schedule(partial(item_processor, item), priority=self._priority, expiration=self._admission_timeout)
      except SchedulerDroppedError as exc:
        logger.warning("Batch item %r dropped: %s", item, exc)
        return "dropped"
      except Exception as exc:
        logger.error("Batch item %r failed: %s", item, exc)
        return "failure"
    return "success" if succeeded is True else "failure"
