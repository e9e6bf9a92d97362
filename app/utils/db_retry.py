"""Store write retries with transient vs permanent failure classification."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE -> (retryable, category, reason)
_SQLSTATE_RULES: dict[str, tuple[bool, str, str]] = {
  "40001": (True, "serialization_conflict", "Serialization failure - transaction conflict"),
  "40P01": (True, "deadlock", "Deadlock detected"),
  "55P03": (False, "lock_timeout", "Lock not available (NOWAIT)"),
  "57014": (False, "query_timeout", "Query canceled (timeout)"),
}
_SQLSTATE_CLASS_RULES: dict[str, tuple[str, str]] = {
  "23": ("integrity_error", "Integrity violation"),
  "42": ("schema_error", "Schema/SQL error (undefined table/column, syntax error)"),
  "28": ("permission_error", "Authentication/permission error"),
}
_CONNECTIVITY_MARKERS = ("connection", "timeout", "reset", "network", "broken pipe")


@dataclass(frozen=True)
class DBFailureClassification:
  """Classification result for a store failure."""

  retryable: bool
  reason: str
  sqlstate: str | None
  category: str


def _extract_sqlstate(exc: Exception) -> str | None:
  if not isinstance(exc, DBAPIError):
    return None
  orig = getattr(exc, "orig", None)
  # asyncpg exposes sqlstate, psycopg exposes pgcode.
  for attribute in ("sqlstate", "pgcode"):
    value = getattr(orig, attribute, None)
    if value:
      return str(value)
  return None


def classify_db_failure(exc: Exception) -> DBFailureClassification:
  """
  Classify a store failure as retryable or not.

  SQLSTATE is the primary signal. Serialization failures, deadlocks and
  dropped connections are transient; integrity, schema and permission
  errors are permanent. Anything unrecognized is treated as permanent.
  """
  sqlstate = _extract_sqlstate(exc)

  if sqlstate in _SQLSTATE_RULES:
    retryable, category, reason = _SQLSTATE_RULES[sqlstate]
    return DBFailureClassification(retryable=retryable, reason=reason, sqlstate=sqlstate, category=category)

  if sqlstate and sqlstate[:2] in _SQLSTATE_CLASS_RULES:
    category, reason = _SQLSTATE_CLASS_RULES[sqlstate[:2]]
    return DBFailureClassification(retryable=False, reason=reason, sqlstate=sqlstate, category=category)

  if isinstance(exc, IntegrityError):
    return DBFailureClassification(retryable=False, reason="Integrity constraint violation", sqlstate=sqlstate, category="integrity_error")

  if isinstance(exc, AttributeError | TypeError | ValueError | KeyError | IndexError):
    return DBFailureClassification(retryable=False, reason=f"Programming error: {type(exc).__name__}", sqlstate=sqlstate, category="programming_error")

  if isinstance(exc, OperationalError):
    message = str(exc).lower()
    if any(marker in message for marker in _CONNECTIVITY_MARKERS):
      return DBFailureClassification(retryable=True, reason="Transient connection/network error", sqlstate=sqlstate, category="connectivity_error")
    return DBFailureClassification(retryable=False, reason="Operational error (unknown cause)", sqlstate=sqlstate, category="operational_error_unknown")

  return DBFailureClassification(retryable=False, reason=f"Unknown error type: {type(exc).__name__}", sqlstate=sqlstate, category="unknown_error")


def retry_any_failure(exc: Exception) -> bool:
  """Retry policy that treats every failure as transient."""
  return True


async def execute_with_retry(
  *,
  operation_name: str,
  func: Callable[[], Awaitable[T]],
  max_attempts: int = 2,
  initial_backoff_ms: int = 100,
  max_backoff_ms: int = 2000,
  jitter: bool = True,
  retry_on: Callable[[Exception], bool] | None = None,
) -> T:
  """
  Execute a store operation, retrying transient failures with exponential backoff.

  Args:
    operation_name: Human-readable name for logging (e.g., "update_publish_job")
    func: Async callable to execute (should be idempotent)
    max_attempts: Total attempts including the first one
    initial_backoff_ms: Delay after the first failure; doubles after every further failure
    max_backoff_ms: Upper bound for a single delay
    jitter: Spread delays by +/-25%
    retry_on: Optional policy overriding SQLSTATE classification

  Raises:
    The last exception when it is not retryable or attempts are exhausted.
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      result = await func()
    except Exception as exc:
      if retry_on is not None:
        retryable, category = retry_on(exc), "policy"
      else:
        classification = classify_db_failure(exc)
        retryable, category = classification.retryable, classification.category

      logger.warning("Store operation failed: operation=%s, attempt=%d/%d, category=%s, retryable=%s, error=%s", operation_name, attempt, max_attempts, category, retryable, exc)

      if not retryable or attempt >= max_attempts:
        logger.error("Store operation giving up: operation=%s, attempts=%d, category=%s", operation_name, attempt, category)
        raise

      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      if jitter:
        spread = backoff_ms * 0.25
        backoff_ms += random.uniform(-spread, spread)

      await asyncio.sleep(backoff_ms / 1000.0)
      continue

    if attempt > 1:
      logger.info("Store operation succeeded after retry: operation=%s, attempt=%d/%d", operation_name, attempt, max_attempts)
    return result
