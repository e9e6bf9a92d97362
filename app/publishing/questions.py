"""Question and variant upserts during publishing."""

from __future__ import annotations

import logging
import math
from dataclasses import replace

from app.ai.text_service import TextService
from app.core.exceptions import AssignmentNotFoundError, ContentGuardrailError
from app.core.json import dumps
from app.jobs.models import JobStatusUpdate
from app.jobs.status import JobStatusManager
from app.publishing.changes import are_choices_equal, has_question_changed, have_variant_sets_changed, safe_string_compare
from app.publishing.models import QuestionRecord, VariantRecord
from app.storage.assignments_repo import AssignmentsRepository
from app.translation.service import TranslationService

logger = logging.getLogger(__name__)

QUESTIONS_START = 25
QUESTIONS_END = 60


def match_variants(stored: list[VariantRecord], incoming: list[VariantRecord]) -> dict[int, VariantRecord]:
  """Pair incoming variants (by position) with stored ones.

  An incoming id that belongs to a stored variant wins. Otherwise the first
  unclaimed stored variant with the same stripped, non-empty content is used.
  """
  matches: dict[int, VariantRecord] = {}
  claimed: set[int] = set()
  stored_by_id = {variant.id: variant for variant in stored if variant.id is not None}

  for index, variant in enumerate(incoming):
    candidate = stored_by_id.get(variant.id) if variant.id is not None else None
    if candidate is not None and candidate.id not in claimed:
      matches[index] = candidate
      claimed.add(candidate.id)

  for index, variant in enumerate(incoming):
    if index in matches:
      continue
    content = (variant.variant_content or "").strip()
    if not content:
      continue
    for candidate in stored:
      if candidate.id is not None and candidate.id not in claimed and (candidate.variant_content or "").strip() == content:
        matches[index] = candidate
        claimed.add(candidate.id)
        break

  return matches


class QuestionPublisher:
  def __init__(self, *, assignments_repo: AssignmentsRepository, text_service: TextService, translation_service: TranslationService, job_status: JobStatusManager) -> None:
    self._repo = assignments_repo
    self._text_service = text_service
    self._translation = translation_service
    self._job_status = job_status

  async def _report(self, job_id: int | None, progress: str, percentage: float | None = None) -> None:
    if job_id is None:
      return
    await self._job_status.update_job_status(job_id, JobStatusUpdate(status="In Progress", progress=progress, percentage=math.floor(percentage) if percentage is not None else None))

  async def process_questions_for_publishing(self, assignment_id: int, questions: list[QuestionRecord], job_id: int | None = None, force_translation: bool = False) -> list[int]:
    """Upsert ``questions`` for an assignment and return their stored ids in order.

    Without a job id nothing is translated and no progress is reported.
    """
    await self._report(job_id, "Retrieving existing questions", 21)
    existing = await self._repo.get_questions_by_assignment(assignment_id)
    existing_by_id = {question.id: question for question in existing}

    await self._report(job_id, "Analyzing question changes", 22)
    incoming_ids = {question.id for question in questions if question.id is not None}
    removed = [question.id for question in existing if question.id not in incoming_ids]
    if removed:
      await self._report(job_id, f"Removing {len(removed)} questions", 24)
      await self._repo.mark_questions_deleted(removed)
      logger.info("Assignment %s: soft-deleted questions %s", assignment_id, removed)

    total = len(questions)
    await self._validate_changed_questions(questions, existing_by_id, job_id)
    await self._report(job_id, f"Processing {total} questions", QUESTIONS_START)

    slice_size = (QUESTIONS_END - QUESTIONS_START) / total if total else 0
    backend_ids: list[int] = []
    for index, question in enumerate(questions):
      position = index + 1
      current = QUESTIONS_START + index * slice_size
      await self._report(job_id, f"Processing question {position} of {total}", current)

      stored = existing_by_id.get(question.id)
      content_changed = force_translation or has_question_changed(stored, question)
      saved = await self._repo.upsert_question(replace(question, id=stored.id if stored is not None else None, assignment_id=assignment_id, is_deleted=False, variants=[]))
      assert saved.id is not None
      backend_ids.append(saved.id)
      if question.id is not None and question.id != saved.id:
        logger.debug("Question %s stored as #%s", question.id, saved.id)

      if job_id is not None and content_changed:
        translation_start = current + slice_size * 0.5
        await self._report(job_id, f"Translating question {position}", translation_start)
        await self._translation.translate_question(assignment_id, saved.id, saved, job_id, window=(translation_start, current + slice_size * 0.7))
      elif job_id is not None:
        await self._report(job_id, f"Question {position} content unchanged, skipping translation", current + slice_size * 0.5)

      if question.variants:
        variants_changed = have_variant_sets_changed(stored.variants if stored is not None else [], question.variants)
        detail = "content changes detected" if variants_changed else "metadata only"
        await self._report(job_id, f"Processing {len(question.variants)} variants for question {position} - {detail}", current + slice_size * 0.7)
      await self.process_variants(assignment_id, saved.id, stored.variants if stored is not None else [], question.variants, job_id, force_translation)

    await self._report(job_id, "Question processing completed", QUESTIONS_END)
    return backend_ids

  async def _validate_changed_questions(self, questions: list[QuestionRecord], existing_by_id: dict[int | None, QuestionRecord], job_id: int | None) -> None:
    for index, question in enumerate(questions):
      stored = existing_by_id.get(question.id)
      if stored is None or safe_string_compare(stored.question, question.question):
        continue
      await self._report(job_id, f"Validating question {index + 1} content")
      passed = await self._text_service.apply_content_guardrail(dumps(question.to_dict()))
      if not passed:
        logger.warning("Question %s failed content validation", question.id)
        raise ContentGuardrailError(question.id)

  async def process_variants(self, assignment_id: int, question_id: int, stored: list[VariantRecord], incoming: list[VariantRecord], job_id: int | None = None, force_translation: bool = False) -> list[int]:
    matches = match_variants(stored, incoming)
    claimed = {variant.id for variant in matches.values()}
    removed = [variant.id for variant in stored if variant.id is not None and variant.id not in claimed]
    if removed:
      await self._report(job_id, f"Removing {len(removed)} variants of question #{question_id}")
      await self._repo.mark_variants_deleted(removed)

    variant_ids: list[int] = []
    for index, variant in enumerate(incoming):
      previous = matches.get(index)
      saved = await self._repo.upsert_variant(replace(variant, id=previous.id if previous is not None else None, question_id=question_id, is_deleted=False))
      assert saved.id is not None
      variant_ids.append(saved.id)

      changed = previous is None or force_translation or not safe_string_compare(previous.variant_content, variant.variant_content) or not are_choices_equal(previous.choices, variant.choices)
      if job_id is not None and changed:
        await self._report(job_id, f"Translating variant {index + 1} of question #{question_id}")
        await self._translation.translate_variant(assignment_id, question_id, saved.id, saved, job_id)

    return variant_ids

  async def update_question_grading_context(self, assignment_id: int) -> None:
    assignment = await self._repo.get_assignment(assignment_id)
    if assignment is None:
      raise AssignmentNotFoundError(assignment_id)

    questions = await self._repo.get_questions_by_assignment(assignment_id)
    order = {question_id: position for position, question_id in enumerate(assignment.question_order or [])}
    ordered = sorted((question for question in questions if not question.is_deleted), key=lambda question: order.get(question.id, len(order)))

    context = await self._text_service.compute_grading_context([{"id": question.id, "questionText": question.question} for question in ordered], assignment_id)
    for question in ordered:
      assert question.id is not None
      await self._repo.update_question_grading_context(question.id, context.get(question.id, []))
    logger.info("Updated grading context for %d questions of assignment %s", len(ordered), assignment_id)
