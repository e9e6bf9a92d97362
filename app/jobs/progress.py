"""Percentage tracking for translation fan-out inside a job's progress window."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from app.jobs.models import JobStatusUpdate

if TYPE_CHECKING:
  from app.jobs.status import JobStatusManager

logger = logging.getLogger(__name__)

LANGUAGE_WEIGHT = 0.3
ITEM_WEIGHT = 0.7


class TranslationProgressTracker:
  """Maps completed languages and items onto ``[start_percentage, end_percentage]``.

  Reports are throttled to every ``status_interval`` completed items; the
  last item always reports. Without a job id nothing is reported.
  """

  def __init__(
    self,
    job_status: JobStatusManager | None,
    job_id: int | None,
    *,
    start_percentage: float,
    end_percentage: float,
    stage: str,
    total_items: int,
    language_total: int,
    status_interval: int = 5,
  ) -> None:
    self._job_status = job_status
    self._job_id = job_id
    self.start_percentage = start_percentage
    self.end_percentage = end_percentage
    self.stage = stage
    self.total_items = max(0, total_items)
    self.language_total = max(0, language_total)
    self.status_interval = max(1, status_interval)
    self.completed_items = 0
    self.language_completed = 0
    self.current_item_index = 0
    self.current_language: str | None = None

  @property
  def percentage(self) -> int:
    language_ratio = self.language_completed / self.language_total if self.language_total else 1.0
    item_ratio = self.completed_items / self.total_items if self.total_items else 1.0
    span = self.end_percentage - self.start_percentage
    return math.floor(self.start_percentage + span * (LANGUAGE_WEIGHT * language_ratio + ITEM_WEIGHT * item_ratio))

  @property
  def finished(self) -> bool:
    return self.completed_items >= self.total_items

  def start_item(self, language: str) -> None:
    self.current_language = language
    self.current_item_index += 1

  def should_report(self) -> bool:
    return self.finished or self.completed_items % self.status_interval == 0

  async def complete_item(self, language: str, *, language_done: bool = True, info: str | None = None) -> None:
    self.completed_items = min(self.total_items, self.completed_items + 1)
    if language_done:
      self.language_completed = min(self.language_total, self.language_completed + 1)
    self.current_language = language
    if self.should_report():
      await self.report(info)

  def message(self, info: str | None = None) -> str:
    message = f"{self.stage}: {self.current_language}" if self.current_language else self.stage
    if info:
      message += f" - {info}"
    return message

  async def report(self, info: str | None = None) -> None:
    if self._job_status is None or self._job_id is None:
      return
    await self._job_status.update_job_status(self._job_id, JobStatusUpdate(status="In Progress", progress=self.message(info), percentage=self.percentage))
