"""Publish flow for an assignment, run as a background job."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from app.core.exceptions import AssignmentNotFoundError
from app.jobs.models import JobStatusUpdate
from app.jobs.status import JobStatusManager
from app.publishing.changes import have_question_contents_changed, have_translatable_assignment_fields_changed
from app.publishing.models import PublishPayload
from app.publishing.questions import QuestionPublisher
from app.storage.assignments_repo import AssignmentsRepository
from app.translation.service import TranslationService

logger = logging.getLogger(__name__)


class PublishStage(Enum):
  """Publish states and the percentage reported on entering each."""

  UPDATING_SETTINGS = ("UpdatingSettings", 10)
  CHECKING_QUESTION_CHANGES = ("CheckingQuestionChanges", 15)
  PROCESSING_QUESTIONS = ("ProcessingQuestions", 20)
  UPDATING_QUESTION_METADATA = ("UpdatingQuestionMetadata", 30)
  TRANSLATING_ASSIGNMENT = ("TranslatingAssignment", 60)
  SKIPPING_TRANSLATION = ("SkippingTranslation", 80)
  FINALIZING = ("FinalizingGradingContext", 90)
  COMPLETED = ("Completed", 100)

  def __init__(self, label: str, percentage: int) -> None:
    self.label = label
    self.percentage = percentage


@dataclass(frozen=True)
class PublishStarted:
  job_id: int
  message: str = "Publishing started"


class PublishingOrchestrator:
  def __init__(self, *, assignments_repo: AssignmentsRepository, job_status: JobStatusManager, questions: QuestionPublisher, translation_service: TranslationService) -> None:
    self._repo = assignments_repo
    self._job_status = job_status
    self._questions = questions
    self._translation = translation_service
    self._tasks: set[asyncio.Task] = set()

  async def publish_assignment(self, assignment_id: int, payload: PublishPayload, user_id: str) -> PublishStarted:
    """Create a publish job and run it in the background."""
    job = await self._job_status.create_publish_job(assignment_id, user_id)
    task = asyncio.create_task(self.run_publish(job.id, assignment_id, payload), name=f"publish-{job.id}")
    self._tasks.add(task)
    task.add_done_callback(self._on_publish_done)
    return PublishStarted(job_id=job.id)

  def _on_publish_done(self, task: asyncio.Task) -> None:
    self._tasks.discard(task)
    if task.cancelled():
      logger.warning("Publish task %s was cancelled", task.get_name())
      return
    exc = task.exception()
    if exc is not None:
      logger.error("Publish task %s failed: %s", task.get_name(), exc, exc_info=exc)

  async def wait_for_pending(self) -> None:
    """Wait until every background publish started so far has finished."""
    if self._tasks:
      await asyncio.gather(*list(self._tasks), return_exceptions=True)

  async def _enter(self, job_id: int, stage: PublishStage, progress: str) -> None:
    logger.debug("Publish job %s entering %s", job_id, stage.label)
    await self._job_status.update_job_status(job_id, JobStatusUpdate(status="In Progress", progress=progress, percentage=stage.percentage))

  async def run_publish(self, job_id: int, assignment_id: int, payload: PublishPayload) -> list[dict]:
    """Run every publish stage in order; marks the job Failed and re-raises on error."""
    try:
      await self._enter(job_id, PublishStage.UPDATING_SETTINGS, "Updating assignment settings")
      existing = await self._repo.get_assignment(assignment_id)
      if existing is None:
        raise AssignmentNotFoundError(assignment_id)
      assignment_changed = have_translatable_assignment_fields_changed(existing, payload)
      settings = payload.settings_changes()
      if settings:
        await self._repo.update_assignment(assignment_id, **settings)

      questions_changed = False
      question_order = list(existing.question_order or [])
      if payload.questions:
        await self._enter(job_id, PublishStage.CHECKING_QUESTION_CHANGES, "Checking for question content changes")
        stored_questions = await self._repo.get_questions_by_assignment(assignment_id)
        questions_changed = have_question_contents_changed(stored_questions, payload.questions)

        if questions_changed:
          await self._enter(job_id, PublishStage.PROCESSING_QUESTIONS, f"Processing {len(payload.questions)} questions with content changes")
          question_order = await self._questions.process_questions_for_publishing(assignment_id, payload.questions, job_id)
        else:
          await self._enter(job_id, PublishStage.UPDATING_QUESTION_METADATA, "Question structure unchanged, only updating metadata")
          question_order = await self._questions.process_questions_for_publishing(assignment_id, payload.questions)

      content_changed = assignment_changed or questions_changed
      if content_changed:
        await self._enter(job_id, PublishStage.TRANSLATING_ASSIGNMENT, "Content changes detected, translating assignment information")
        await self._translation.translate_assignment(assignment_id, job_id)
      else:
        await self._enter(job_id, PublishStage.SKIPPING_TRANSLATION, "No content changes detected, skipping translation")

      await self._enter(job_id, PublishStage.FINALIZING, "Finalizing publishing")
      # Question order must be stored before grading context reads it.
      await self._repo.update_assignment(assignment_id, question_order=question_order)
      if content_changed or not existing.published:
        await self._questions.update_question_grading_context(assignment_id)
      await self._repo.update_assignment(assignment_id, published=True)

      updated_questions = await self._repo.get_questions_by_assignment(assignment_id)
      result = [question.to_dict() for question in updated_questions]
      message = "Publishing completed successfully with content updates!" if content_changed else "Publishing completed successfully (configuration updates only)"
      await self._job_status.update_job_status(job_id, JobStatusUpdate(status="Completed", progress=message, percentage=PublishStage.COMPLETED.percentage, result=result))
      logger.info("Published assignment %s (job %s, content changed: %s)", assignment_id, job_id, content_changed)
      return result
    except Exception as exc:
      await self._job_status.update_job_status(job_id, JobStatusUpdate(status="Failed", progress=f"Error: {exc}"))
      raise
