"""Process-wide admission scheduler for calls to the external text service.

The scheduler bounds in-flight work (``max_concurrent``), spaces task starts
(``min_time``), and draws every start from a token reservoir that is refilled
on a timer. Waiting work is ordered by priority (0 runs first) and then by
arrival. When the waiting queue reaches ``high_water`` the oldest entry of the
lowest priority is dropped. Entries that wait longer than their expiration are
dropped as well.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any, Literal, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PRIORITY = 5
HealthAction = Literal["ok", "reset", "throttled"]


class SchedulerDroppedError(Exception):
  """Raised for work the scheduler discarded before it started."""


class SchedulerTimeoutError(Exception):
  """Raised when scheduled work exceeds the task timeout."""


@dataclass(frozen=True)
class SchedulerSettings:
  max_concurrent: int = 25
  min_time: float = 0.010
  reservoir: int | None = 100
  reservoir_refresh_interval: float | None = 10.0
  reservoir_refresh_amount: int | None = 100
  high_water: int | None = 2000
  timeout: float | None = 30.0


@dataclass(frozen=True)
class HealthThresholds:
  stall_running: int = 10
  stall_done_ratio: float = 0.2
  stall_received: int = 50
  queue_high_water: int = 500
  throttled_concurrency: int = 5
  throttle_duration: float = 30.0


@dataclass(frozen=True)
class SchedulerCounts:
  """Snapshot of scheduler counters.

  ``received`` and ``done`` are cumulative since the last reset; ``queued``
  and ``running`` are current.
  """

  received: int
  queued: int
  running: int
  done: int


@dataclass(order=True)
class _Entry:
  priority: int
  sequence: int
  func: Callable[[], Awaitable[Any]] = field(compare=False)
  future: asyncio.Future = field(compare=False)
  expires_at: float | None = field(compare=False, default=None)


class AdmissionScheduler:
  def __init__(self, settings: SchedulerSettings | None = None, *, health: HealthThresholds | None = None, clock: Callable[[], float] = time.monotonic) -> None:
    self._base_settings = settings or SchedulerSettings()
    self._settings = self._base_settings
    self._health = health or HealthThresholds()
    self._clock = clock
    self._queue: list[_Entry] = []
    self._sequence = itertools.count()
    self._reservoir = self._settings.reservoir
    self._next_refill: float | None = None
    self._last_start: float | None = None
    self._received = 0
    self._running = 0
    self._done = 0
    self._loop: asyncio.AbstractEventLoop | None = None
    self._wakeup: asyncio.Event | None = None
    self._idle: asyncio.Event | None = None
    self._dispatcher: asyncio.Task | None = None
    self._tasks: set[asyncio.Task] = set()
    self._throttle_handle: asyncio.TimerHandle | None = None
    # Arrivals parked while a reset drains; None when no reset is in progress.
    self._held: list[_Entry] | None = None
    self._resumed: asyncio.Event | None = None

  @property
  def settings(self) -> SchedulerSettings:
    return self._settings

  def counts(self) -> SchedulerCounts:
    queued = len(self._queue) + len(self._held or ())
    return SchedulerCounts(received=self._received, queued=queued, running=self._running, done=self._done)

  async def schedule(self, func: Callable[[], Awaitable[T]], *, priority: int = DEFAULT_PRIORITY, expiration: float | None = None) -> T:
    """Run ``func`` once admitted and return its result.

    Raises SchedulerDroppedError when the entry expires or is leaked at high
    water, and SchedulerTimeoutError when execution exceeds the task timeout.
    """
    self._bind_loop()
    assert self._loop is not None
    priority = max(0, min(9, priority))
    expires_at = self._clock() + expiration if expiration is not None else None
    entry = _Entry(priority=priority, sequence=next(self._sequence), func=func, future=self._loop.create_future(), expires_at=expires_at)
    if self._held is not None:
      self._held.append(entry)
      return await entry.future
    self._received += 1

    high_water = self._settings.high_water
    if high_water is not None and len(self._queue) >= high_water:
      victim = self._leak_candidate()
      if victim is None or victim.priority < entry.priority:
        self._done += 1
        raise SchedulerDroppedError("Job dropped by scheduler: queue is at high water")
      self._queue.remove(victim)
      heapq.heapify(self._queue)
      self._drop(victim, "Job dropped by scheduler: queue is at high water")

    heapq.heappush(self._queue, entry)
    self._notify()
    return await entry.future

  def update_settings(self, **changes: Any) -> SchedulerSettings:
    self._settings = replace(self._settings, **changes)
    if "reservoir" in changes:
      self._reservoir = changes["reservoir"]
    if "reservoir_refresh_interval" in changes:
      self._next_refill = None
    self._notify()
    return self._settings

  async def reset(self) -> None:
    """Let queued and running work finish, then restore the original settings.

    Work scheduled while the reset drains is held back and admitted once the
    reset completes. Concurrent callers wait for the reset already underway.
    """
    self._bind_loop()
    assert self._idle is not None
    if self._held is not None:
      assert self._resumed is not None
      await self._resumed.wait()
      return

    logger.warning("Resetting admission scheduler; draining %d queued and %d running tasks", len(self._queue), self._running)
    self._held = []
    self._resumed = asyncio.Event()
    try:
      while self._queue or self._running:
        self._idle.clear()
        await self._idle.wait()

      self._cancel_throttle()
      self._settings = self._base_settings
      self._reservoir = self._settings.reservoir
      self._next_refill = None
      self._received = 0
      self._done = 0
      logger.info("Admission scheduler has been reset")
    finally:
      self._release_held()

  def _release_held(self) -> None:
    held, self._held = self._held or [], None
    for entry in held:
      if entry.future.done():
        continue
      self._received += 1
      heapq.heappush(self._queue, entry)
    if self._resumed is not None:
      self._resumed.set()
      self._resumed = None
    if held:
      logger.info("Admitting %d tasks held during reset", len(held))
    self._notify()

  async def check_health(self) -> HealthAction:
    counts = self.counts()
    health = self._health
    if counts.running > health.stall_running and counts.done < counts.received * health.stall_done_ratio and counts.received > health.stall_received:
      logger.warning("Potential scheduler stall: %d running, %d done, %d received", counts.running, counts.done, counts.received)
      await self.reset()
      return "reset"

    if counts.queued > health.queue_high_water:
      logger.warning("High queue load: %d tasks queued; lowering concurrency to %d", counts.queued, health.throttled_concurrency)
      self.throttle(health.throttled_concurrency, health.throttle_duration)
      return "throttled"

    return "ok"

  def throttle(self, max_concurrent: int, duration: float) -> None:
    """Lower concurrency and restore the original limit after ``duration`` seconds."""
    self._bind_loop()
    assert self._loop is not None
    self._cancel_throttle()
    self.update_settings(max_concurrent=max_concurrent)
    self._throttle_handle = self._loop.call_later(duration, self._restore_concurrency)

  def _restore_concurrency(self) -> None:
    self._throttle_handle = None
    self.update_settings(max_concurrent=self._base_settings.max_concurrent)
    logger.info("Restored normal concurrency limit of %d", self._base_settings.max_concurrent)

  def _cancel_throttle(self) -> None:
    if self._throttle_handle is not None:
      self._throttle_handle.cancel()
      self._throttle_handle = None

  async def run_health_checks(self, interval: float) -> None:
    """Check scheduler health every ``interval`` seconds until cancelled."""
    while True:
      await asyncio.sleep(interval)
      try:
        await self.check_health()
      except Exception:
        logger.error("Error checking scheduler health", exc_info=True)

  async def shutdown(self) -> None:
    """Stop dispatching and drop everything still waiting."""
    self._cancel_throttle()
    for entry in self._held or ():
      self._drop(entry, "Job dropped by scheduler: shutting down")
    if self._held is not None:
      self._held.clear()
    while self._queue:
      self._drop(heapq.heappop(self._queue), "Job dropped by scheduler: shutting down")
    if self._dispatcher is not None:
      self._dispatcher.cancel()
      try:
        await self._dispatcher
      except asyncio.CancelledError:
        pass
      self._dispatcher = None

  def _bind_loop(self) -> None:
    loop = asyncio.get_running_loop()
    if self._loop is not loop:
      self._loop = loop
      self._wakeup = asyncio.Event()
      self._idle = asyncio.Event()
      self._dispatcher = None
    if self._dispatcher is None or self._dispatcher.done():
      self._dispatcher = loop.create_task(self._dispatch())

  def _notify(self) -> None:
    if self._wakeup is not None:
      self._wakeup.set()

  def _leak_candidate(self) -> _Entry | None:
    if not self._queue:
      return None
    lowest = max(entry.priority for entry in self._queue)
    return min((entry for entry in self._queue if entry.priority == lowest), key=lambda entry: entry.sequence)

  def _drop(self, entry: _Entry, reason: str) -> None:
    self._done += 1
    if not entry.future.done():
      entry.future.set_exception(SchedulerDroppedError(reason))
    self._check_idle()

  def _expire_waiting(self, now: float) -> None:
    expired = [entry for entry in self._queue if entry.expires_at is not None and entry.expires_at <= now]
    if not expired:
      return
    for entry in expired:
      self._queue.remove(entry)
      self._drop(entry, "Job dropped by scheduler: admission expired")
    heapq.heapify(self._queue)

  def _refill(self, now: float) -> None:
    interval = self._settings.reservoir_refresh_interval
    if interval is None or self._settings.reservoir_refresh_amount is None:
      return
    if self._next_refill is None:
      self._next_refill = now + interval
    elif now >= self._next_refill:
      self._reservoir = self._settings.reservoir_refresh_amount
      self._next_refill = now + interval

  def _next_deadline(self, now: float) -> float | None:
    deadlines = [entry.expires_at for entry in self._queue if entry.expires_at is not None]
    if self._next_refill is not None and self._reservoir is not None and self._reservoir <= 0:
      deadlines.append(self._next_refill)
    if not deadlines:
      return None
    return max(0.0, min(deadlines) - now)

  async def _dispatch(self) -> None:
    assert self._wakeup is not None
    while True:
      self._wakeup.clear()
      now = self._clock()
      self._refill(now)
      self._expire_waiting(now)
      # Skip entries whose callers already went away.
      while self._queue and self._queue[0].future.done():
        heapq.heappop(self._queue)
      self._check_idle()

      blocked = not self._queue or self._running >= self._settings.max_concurrent or (self._reservoir is not None and self._reservoir <= 0)
      if blocked:
        await self._sleep_until_woken(self._next_deadline(now))
        continue

      if self._last_start is not None and self._settings.min_time > 0:
        gap = self._last_start + self._settings.min_time - now
        if gap > 0:
          await asyncio.sleep(gap)
          continue

      self._start(heapq.heappop(self._queue))

  async def _sleep_until_woken(self, timeout: float | None) -> None:
    assert self._wakeup is not None
    try:
      await asyncio.wait_for(self._wakeup.wait(), timeout)
    except TimeoutError:
      pass

  def _start(self, entry: _Entry) -> None:
    assert self._loop is not None
    self._running += 1
    if self._reservoir is not None:
      self._reservoir -= 1
    self._last_start = self._clock()
    task = self._loop.create_task(self._execute(entry))
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)

  async def _execute(self, entry: _Entry) -> None:
    try:
      timeout = self._settings.timeout
      if timeout is None:
        result = await entry.func()
      else:
        result = await asyncio.wait_for(entry.func(), timeout)
    except TimeoutError:
      if not entry.future.done():
        entry.future.set_exception(SchedulerTimeoutError(f"Task exceeded the {self._settings.timeout}s timeout"))
    except Exception as exc:
      if not entry.future.done():
        entry.future.set_exception(exc)
    else:
      if not entry.future.done():
        entry.future.set_result(result)
    finally:
      self._running -= 1
      self._done += 1
      self._check_idle()
      self._notify()

  def _check_idle(self) -> None:
    if self._idle is not None and not self._queue and self._running == 0:
      self._idle.set()


def build_scheduler(settings: Any) -> AdmissionScheduler:
  """Create the scheduler from application ``Settings``."""
  return AdmissionScheduler(
    SchedulerSettings(
      max_concurrent=settings.scheduler_max_concurrent,
      min_time=settings.scheduler_min_time_ms / 1000.0,
      reservoir=settings.scheduler_reservoir,
      reservoir_refresh_interval=settings.scheduler_reservoir_refresh_seconds,
      reservoir_refresh_amount=settings.scheduler_reservoir,
      high_water=settings.scheduler_high_water,
      timeout=settings.scheduler_task_timeout_seconds,
    )
  )
