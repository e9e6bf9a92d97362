"""Retry logic for calls to the external text service."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

MAX_JITTER_MS = 200


async def retry_with_backoff(operation_name: str, func: Callable[[], Awaitable[T]], *, max_attempts: int = 2, delay_base_ms: int = 200) -> T:
  """
  Call ``func`` up to ``max_attempts`` times.

  After the n-th failure sleeps ``delay_base_ms * n`` plus up to 200ms of
  jitter. Only the final failure is logged, then re-raised.
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      return await func()
    except Exception as exc:
      if attempt >= max_attempts:
        logger.error("Failed %s after %d attempts: %s", operation_name, attempt, exc)
        raise
      delay_ms = delay_base_ms * attempt + random.uniform(0, MAX_JITTER_MS)
      await asyncio.sleep(delay_ms / 1000.0)
