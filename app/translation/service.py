"""Translation of assignments, questions and variants into every supported language."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any, TypeVar

from app.ai.backoff import retry_with_backoff
from app.ai.text_service import TextService
from app.core.exceptions import AssignmentNotFoundError
from app.jobs.models import JobStatusUpdate
from app.jobs.progress import TranslationProgressTracker
from app.jobs.status import JobStatusManager
from app.publishing.models import TRANSLATABLE_ASSIGNMENT_FIELDS, AssignmentRecord, AssignmentTranslationRecord, Choice, QuestionRecord, TranslationRecord, VariantRecord
from app.storage.assignments_repo import AssignmentsRepository
from app.translation.batch import BatchProcessResult, BatchTranslator
from app.translation.languages import LanguageCatalog

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LANGUAGE = "en"
ASSIGNMENT_PREPARE_PERCENTAGE = 62
ASSIGNMENT_WINDOW = (63, 88)
ASSIGNMENT_SUMMARY_PERCENTAGE = 89
SKIPPED_PERCENTAGE = 85

Window = tuple[float, float]
_FlightKey = tuple[str, str, str]


def content_key(text: str, choices: list[Choice] | None, language_code: str) -> _FlightKey:
  """Content address of one translation: normalized text, normalized choices and target language."""
  return (text.strip(), json.dumps(choices or [], sort_keys=True), language_code)


class TranslationService:
  """Fans translation work out over all supported languages through the batch translator.

  Identical (text, choices, language) requests share one external call while
  it is in flight; later requests reuse the stored translation.
  """

  def __init__(
    self,
    *,
    assignments_repo: AssignmentsRepository,
    text_service: TextService,
    job_status: JobStatusManager,
    batch_translator: BatchTranslator,
    languages: LanguageCatalog | None = None,
    enabled: bool = True,
    max_retry_attempts: int = 2,
    retry_delay_ms: int = 200,
    status_interval: int = 5,
  ) -> None:
    self._repo = assignments_repo
    self._text_service = text_service
    self._job_status = job_status
    self._batch = batch_translator
    self._languages = languages or LanguageCatalog()
    self._enabled = enabled
    self._max_retry_attempts = max_retry_attempts
    self._retry_delay_ms = retry_delay_ms
    self._status_interval = status_interval
    self._in_flight: dict[_FlightKey, asyncio.Task[tuple[TranslationRecord, bool]]] = {}

  @property
  def enabled(self) -> bool:
    return self._enabled

  async def _report(self, job_id: int | None, progress: str, percentage: float | None = None) -> None:
    if job_id is None:
      return
    await self._job_status.update_job_status(job_id, JobStatusUpdate(status="In Progress", progress=progress, percentage=percentage))

  async def _retry(self, operation_name: str, func: Callable[[], Awaitable[T]]) -> T:
    return await retry_with_backoff(operation_name, func, max_attempts=self._max_retry_attempts, delay_base_ms=self._retry_delay_ms)

  async def detect_language(self, text: str) -> str:
    if not text or not text.strip():
      return DEFAULT_LANGUAGE
    try:
      detected = await self._text_service.detect_language(text)
    except Exception as exc:
      logger.warning("Language detection failed, assuming %s: %s", DEFAULT_LANGUAGE, exc)
      return DEFAULT_LANGUAGE
    if not detected or detected == "unknown":
      return DEFAULT_LANGUAGE
    return detected

  # Assignment-level translation

  async def translate_assignment(self, assignment_id: int, job_id: int | None = None) -> BatchProcessResult | None:
    if not self._enabled:
      await self._report(job_id, "Translation skipped (disabled)", SKIPPED_PERCENTAGE)
      return None

    assignment = await self._repo.get_assignment(assignment_id)
    if assignment is None:
      if job_id is not None:
        await self._job_status.update_job_status(job_id, JobStatusUpdate(status="Failed", progress=f"Assignment {assignment_id} not found", percentage=0))
      raise AssignmentNotFoundError(assignment_id)

    await self._report(job_id, "Preparing assignment translation", ASSIGNMENT_PREPARE_PERCENTAGE)
    source_language = await self.detect_language(assignment.introduction or assignment.name or "")
    language_codes = self._languages.get_supported_language_codes()
    tracker = TranslationProgressTracker(
      self._job_status,
      job_id,
      start_percentage=ASSIGNMENT_WINDOW[0],
      end_percentage=ASSIGNMENT_WINDOW[1],
      stage="Translating assignment",
      total_items=len(language_codes),
      language_total=len(language_codes),
      status_interval=self._status_interval,
    )
    retried: set[str] = set()

    async def translate_language(language_code: str) -> bool:
      tracker.start_item(language_code)
      attempts = 0

      async def attempt() -> None:
        nonlocal attempts
        attempts += 1
        await self._translate_assignment_language(assignment, source_language, language_code)

      try:
        await self._retry(f"translate assignment {assignment_id} to {language_code}", attempt)
        return True
      except Exception:
        return False
      finally:
        if attempts > 1:
          retried.add(language_code)
        await tracker.complete_item(language_code)

    result = await self._batch.process_batch(language_codes, translate_language)
    failed = result.failure + result.dropped
    logger.info("Assignment %s translated to %d languages (%d failed, %d dropped, %d retried)", assignment_id, result.success, result.failure, result.dropped, len(retried))
    await self._report(job_id, f"Assignment translated to {result.success} languages ({failed} failed, {len(retried)} retried)", ASSIGNMENT_SUMMARY_PERCENTAGE)
    return result

  async def _translate_assignment_language(self, assignment: AssignmentRecord, source_language: str, language_code: str) -> None:
    existing = await self._repo.get_assignment_translation(assignment.id, language_code)
    if existing is not None:
      await self._update_assignment_translation(assignment, existing, source_language, language_code)
      return

    sources = {field: getattr(assignment, field) or "" for field in TRANSLATABLE_ASSIGNMENT_FIELDS}
    translated = await asyncio.gather(*(self._translate_field_or_source(assignment.id, text, source_language, language_code) for text in sources.values()))
    values: dict[str, str] = dict(sources)
    for field, text in zip(sources, translated, strict=True):
      values[f"translated_{field}"] = text
    await self._repo.create_assignment_translation(AssignmentTranslationRecord(assignment_id=assignment.id, language_code=language_code, **values))

  async def _update_assignment_translation(self, assignment: AssignmentRecord, existing: AssignmentTranslationRecord, source_language: str, language_code: str) -> None:
    pending = [field for field in TRANSLATABLE_ASSIGNMENT_FIELDS if getattr(assignment, field) and getattr(assignment, field) != getattr(existing, field)]
    if not pending:
      return

    outcomes = await asyncio.gather(*(self._translate_field(assignment.id, getattr(assignment, field), source_language, language_code) for field in pending), return_exceptions=True)
    changes: dict[str, str] = {}
    for field, outcome in zip(pending, outcomes, strict=True):
      if isinstance(outcome, BaseException):
        logger.warning("Keeping stored %s translation of assignment %s (%s): %s", field, assignment.id, language_code, outcome)
        continue
      changes[field] = getattr(assignment, field)
      changes[f"translated_{field}"] = outcome

    if changes and existing.id is not None:
      await self._repo.update_assignment_translation(existing.id, **changes)

  async def _translate_field(self, assignment_id: int, text: str, source_language: str, language_code: str) -> str:
    if source_language == language_code:
      return text
    return await self._retry(f"translate assignment {assignment_id} field to {language_code}", lambda: self._text_service.translate_text(text, language_code, assignment_id))

  async def _translate_field_or_source(self, assignment_id: int, text: str, source_language: str, language_code: str) -> str:
    if not text:
      return ""
    try:
      return await self._translate_field(assignment_id, text, source_language, language_code)
    except Exception:
      return text

  # Question and variant translation

  async def translate_question(self, assignment_id: int, question_id: int, question: QuestionRecord, job_id: int | None = None, *, window: Window | None = None) -> BatchProcessResult | None:
    return await self._translate_content(assignment_id, question_id, None, question.question, question.choices, job_id, window=window, stage=f"Translating question #{question_id}")

  async def translate_variant(self, assignment_id: int, question_id: int, variant_id: int, variant: VariantRecord, job_id: int | None = None, *, window: Window | None = None) -> BatchProcessResult | None:
    return await self._translate_content(assignment_id, question_id, variant_id, variant.variant_content, variant.choices, job_id, window=window, stage=f"Translating variant #{variant_id}")

  async def _translate_content(self, assignment_id: int, question_id: int, variant_id: int | None, text: str, choices: list[Choice] | None, job_id: int | None, *, window: Window | None, stage: str) -> BatchProcessResult | None:
    start, end = window if window is not None else (None, None)
    if not self._enabled:
      await self._report(job_id, f"{stage}: skipped (translation disabled)", start)
      return None

    source_language = await self.detect_language(text)
    language_codes = self._languages.get_supported_language_codes()
    tracker: TranslationProgressTracker | None = None
    if start is not None and end is not None:
      tracker = TranslationProgressTracker(self._job_status, job_id, start_percentage=start, end_percentage=end, stage=stage, total_items=len(language_codes), language_total=len(language_codes), status_interval=self._status_interval)

    async def translate_language(language_code: str) -> bool:
      if tracker is not None:
        tracker.start_item(language_code)
      try:
        return await self._translate_item(assignment_id, question_id, variant_id, text, choices, source_language, language_code)
      finally:
        if tracker is not None:
          await tracker.complete_item(language_code)

    result = await self._batch.process_batch(language_codes, translate_language)
    if result.failure or result.dropped:
      logger.warning("%s for assignment %s: %d succeeded, %d failed, %d dropped", stage, assignment_id, result.success, result.failure, result.dropped)
    return result

  async def _translate_item(self, assignment_id: int, question_id: int, variant_id: int | None, text: str, choices: list[Choice] | None, source_language: str, language_code: str) -> bool:
    if source_language == language_code:
      return True

    # Register before the first await so concurrent identical requests find the task.
    key = content_key(text, choices, language_code)
    task = self._in_flight.get(key)
    if task is not None:
      record, _ = await asyncio.shield(task)
      await self._link(record, question_id, variant_id, language_code)
      return True

    task = asyncio.create_task(self._find_or_generate(assignment_id, question_id, variant_id, text, choices, language_code))
    self._in_flight[key] = task
    task.add_done_callback(lambda done, key=key: self._forget(key, done))
    record, generated = await asyncio.shield(task)
    if not generated:
      await self._link(record, question_id, variant_id, language_code)
    return True

  def _forget(self, key: _FlightKey, task: asyncio.Task[tuple[TranslationRecord, bool]]) -> None:
    if self._in_flight.get(key) is task:
      del self._in_flight[key]
    if not task.cancelled() and task.exception() is not None:
      logger.debug("In-flight translation for %s failed: %s", key[2], task.exception())

  async def _find_or_generate(self, assignment_id: int, question_id: int, variant_id: int | None, text: str, choices: list[Choice] | None, language_code: str) -> tuple[TranslationRecord, bool]:
    """Return a stored translation, or a freshly generated one, and whether it was generated."""
    existing = await self._find_existing(text, choices, language_code)
    if existing is not None:
      return existing, False
    return await self._generate(assignment_id, question_id, variant_id, text, choices, language_code), True

  async def _find_existing(self, text: str, choices: list[Choice] | None, language_code: str) -> TranslationRecord | None:
    try:
      return await self._repo.find_translation(text, choices, language_code)
    except Exception as exc:
      logger.warning("Translation lookup failed for %s, generating a new one: %s", language_code, exc)
      return None

  async def _link(self, existing: TranslationRecord, question_id: int, variant_id: int | None, language_code: str) -> None:
    count = await self._repo.count_translations(question_id=question_id, variant_id=variant_id, language_code=language_code, untranslated_text=existing.untranslated_text)
    if count:
      return
    await self._repo.create_translation(
      TranslationRecord(
        question_id=question_id,
        variant_id=variant_id,
        language_code=language_code,
        untranslated_text=existing.untranslated_text,
        untranslated_choices=existing.untranslated_choices,
        translated_text=existing.translated_text,
        translated_choices=existing.translated_choices,
      )
    )

  async def _generate(self, assignment_id: int, question_id: int, variant_id: int | None, text: str, choices: list[Choice] | None, language_code: str) -> TranslationRecord:
    async def translate_choices() -> list[Choice] | None:
      if not choices:
        return choices
      return await self._with_fallback(f"translate choices to {language_code}", lambda: self._text_service.translate_choices(choices, assignment_id, language_code), choices)

    translated_text, translated_choices = await asyncio.gather(
      self._with_fallback(f"translate text to {language_code}", lambda: self._text_service.translate_text(text, language_code, assignment_id), text),
      translate_choices(),
    )
    record = TranslationRecord(
      question_id=question_id,
      variant_id=variant_id,
      language_code=language_code,
      untranslated_text=text,
      untranslated_choices=choices,
      translated_text=translated_text,
      translated_choices=translated_choices,
    )
    return await self._repo.create_translation(record)

  async def _with_fallback(self, operation_name: str, func: Callable[[], Awaitable[T]], fallback: T) -> T:
    try:
      return await self._retry(operation_name, func)
    except Exception:
      return fallback

  # Read side

  async def get_available_languages(self, assignment_id: int) -> list[str]:
    languages = await self._repo.list_assignment_translation_languages(assignment_id)
    return sorted(set(languages) | {DEFAULT_LANGUAGE})

  async def apply_translations_to_assignment(self, assignment: AssignmentRecord, language_code: str) -> AssignmentRecord:
    source_language = await self.detect_language(assignment.introduction or DEFAULT_LANGUAGE)
    if source_language == language_code:
      return assignment

    translation = await self._repo.get_assignment_translation(assignment.id, language_code)
    if translation is None:
      return assignment

    changes: dict[str, Any] = {}
    for field in TRANSLATABLE_ASSIGNMENT_FIELDS:
      translated = getattr(translation, f"translated_{field}")
      if translated:
        changes[field] = translated
    return replace(assignment, **changes)
