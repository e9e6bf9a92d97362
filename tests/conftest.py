"""Shared fakes and fixtures for the publishing service tests."""

from __future__ import annotations

import os
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

# Ensure required settings are available before importing the app.
os.environ.setdefault("MARK_ALLOWED_ORIGINS", "http://localhost")
os.environ.setdefault("MARK_LOG_DIR", "/tmp/mark-test-logs")

import pytest  # noqa: E402

from app.jobs.models import JobKind, JobRecord, JobStatus  # noqa: E402
from app.jobs.status import JobStatusManager  # noqa: E402
from app.publishing.models import AssignmentRecord, AssignmentTranslationRecord, Choice, QuestionRecord, TranslationRecord, VariantRecord  # noqa: E402
from app.publishing.orchestrator import PublishingOrchestrator  # noqa: E402
from app.publishing.questions import QuestionPublisher  # noqa: E402
from app.translation.batch import BatchTranslator  # noqa: E402
from app.translation.languages import LanguageCatalog  # noqa: E402
from app.translation.scheduler import AdmissionScheduler, SchedulerSettings  # noqa: E402
from app.translation.service import TranslationService  # noqa: E402

TEST_LANGUAGES = {"en": "English", "fr": "Français", "de": "Deutsch"}


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture(autouse=True)
def _no_retry_jitter(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr("app.ai.backoff.MAX_JITTER_MS", 0)


class InMemoryJobsRepo:
  """Jobs repository with separate id sequences per job kind."""

  def __init__(self) -> None:
    self._jobs: dict[JobKind, dict[int, JobRecord]] = {"generic": {}, "publish": {}}
    self._next_id: dict[JobKind, int] = {"generic": 1, "publish": 1}
    self.failures_remaining = 0
    self.write_attempts = 0

  async def create_job(self, *, kind: JobKind, assignment_id: int, user_id: str, status: JobStatus, progress: str, percentage: int | None = None) -> JobRecord:
    job_id = self._next_id[kind]
    self._next_id[kind] += 1
    now = datetime.now(UTC)
    record = JobRecord(id=job_id, kind=kind, assignment_id=assignment_id, user_id=user_id, status=status, progress=progress, created_at=now, updated_at=now, percentage=percentage)
    self._jobs[kind][job_id] = record
    return record

  async def get_job(self, job_id: int) -> JobRecord | None:
    return self._jobs["generic"].get(job_id)

  async def get_publish_job(self, job_id: int) -> JobRecord | None:
    return self._jobs["publish"].get(job_id)

  async def publish_job_exists(self, job_id: int) -> bool:
    return job_id in self._jobs["publish"]

  def _write(self, kind: JobKind, job_id: int, **changes: Any) -> JobRecord | None:
    self.write_attempts += 1
    if self.failures_remaining > 0:
      self.failures_remaining -= 1
      raise ConnectionError("connection reset by peer")
    record = self._jobs[kind].get(job_id)
    if record is None:
      return None
    updated = replace(record, updated_at=datetime.now(UTC), **{key: value for key, value in changes.items() if value is not None})
    self._jobs[kind][job_id] = updated
    return updated

  async def update_job(self, job_id: int, *, status: JobStatus, progress: str, result: str | None = None) -> JobRecord | None:
    return self._write("generic", job_id, status=status, progress=progress, result=result)

  async def update_publish_job(self, job_id: int, *, status: JobStatus, progress: str, percentage: int | None = None, result: str | None = None) -> JobRecord | None:
    return self._write("publish", job_id, status=status, progress=progress, percentage=percentage, result=result)


class InMemoryAssignmentsRepo:
  """Assignments repository keeping every record in dictionaries."""

  def __init__(self) -> None:
    self.assignments: dict[int, AssignmentRecord] = {}
    self.questions: dict[int, QuestionRecord] = {}
    self.variants: dict[int, VariantRecord] = {}
    self.translations: list[TranslationRecord] = []
    self.assignment_translations: dict[tuple[int, str], AssignmentTranslationRecord] = {}
    self.grading_context: dict[int, list[int]] = {}
    self.upserted_questions: list[QuestionRecord] = []
    self._ids = {"question": 100, "variant": 500, "translation": 1, "assignment_translation": 1}

  def _next(self, kind: str) -> int:
    self._ids[kind] += 1
    return self._ids[kind]

  def add_assignment(self, assignment: AssignmentRecord) -> AssignmentRecord:
    self.assignments[assignment.id] = assignment
    return assignment

  def add_question(self, question: QuestionRecord) -> QuestionRecord:
    assert question.id is not None
    self._ids["question"] = max(self._ids["question"], question.id)
    for variant in question.variants:
      assert variant.id is not None
      self._ids["variant"] = max(self._ids["variant"], variant.id)
      self.variants[variant.id] = replace(variant, question_id=question.id)
    self.questions[question.id] = replace(question, variants=[])
    return question

  async def get_assignment(self, assignment_id: int) -> AssignmentRecord | None:
    return self.assignments.get(assignment_id)

  async def update_assignment(self, assignment_id: int, **fields: Any) -> AssignmentRecord:
    updated = replace(self.assignments[assignment_id], **fields)
    self.assignments[assignment_id] = updated
    return updated

  async def get_questions_by_assignment(self, assignment_id: int) -> list[QuestionRecord]:
    questions = [question for question in self.questions.values() if question.assignment_id == assignment_id and not question.is_deleted]
    return [replace(question, variants=[variant for variant in self.variants.values() if variant.question_id == question.id and not variant.is_deleted]) for question in sorted(questions, key=lambda question: question.id or 0)]

  async def upsert_question(self, question: QuestionRecord) -> QuestionRecord:
    question_id = question.id if question.id in self.questions else self._next("question")
    stored = replace(question, id=question_id, variants=[])
    self.questions[question_id] = stored
    self.upserted_questions.append(stored)
    return stored

  async def mark_questions_deleted(self, question_ids: list[int]) -> None:
    for question_id in question_ids:
      self.questions[question_id] = replace(self.questions[question_id], is_deleted=True)

  async def upsert_variant(self, variant: VariantRecord) -> VariantRecord:
    variant_id = variant.id if variant.id in self.variants else self._next("variant")
    stored = replace(variant, id=variant_id)
    self.variants[variant_id] = stored
    return stored

  async def mark_variants_deleted(self, variant_ids: list[int]) -> None:
    for variant_id in variant_ids:
      self.variants[variant_id] = replace(self.variants[variant_id], is_deleted=True)

  async def find_translation(self, text: str, choices: list[Choice] | None, language_code: str) -> TranslationRecord | None:
    for record in self.translations:
      if record.untranslated_text == text and (record.untranslated_choices or None) == (choices or None) and record.language_code == language_code:
        return record
    return None

  async def create_translation(self, record: TranslationRecord) -> TranslationRecord:
    self.translations = [existing for existing in self.translations if (existing.question_id, existing.variant_id, existing.language_code) != (record.question_id, record.variant_id, record.language_code)]
    stored = replace(record, id=self._next("translation"))
    self.translations.append(stored)
    return stored

  async def count_translations(self, *, question_id: int, variant_id: int | None, language_code: str, untranslated_text: str | None = None) -> int:
    return sum(
      1
      for record in self.translations
      if record.question_id == question_id and record.variant_id == variant_id and record.language_code == language_code and (untranslated_text is None or record.untranslated_text == untranslated_text)
    )

  async def get_assignment_translation(self, assignment_id: int, language_code: str) -> AssignmentTranslationRecord | None:
    return self.assignment_translations.get((assignment_id, language_code))

  async def create_assignment_translation(self, record: AssignmentTranslationRecord) -> AssignmentTranslationRecord:
    stored = replace(record, id=self._next("assignment_translation"))
    self.assignment_translations[(record.assignment_id, record.language_code)] = stored
    return stored

  async def update_assignment_translation(self, translation_id: int, **fields: Any) -> AssignmentTranslationRecord:
    for key, record in self.assignment_translations.items():
      if record.id == translation_id:
        updated = replace(record, **fields)
        self.assignment_translations[key] = updated
        return updated
    raise KeyError(translation_id)

  async def list_assignment_translation_languages(self, assignment_id: int) -> list[str]:
    return [language for (stored_id, language) in self.assignment_translations if stored_id == assignment_id]

  async def update_question_grading_context(self, question_id: int, context_question_ids: list[int]) -> None:
    self.grading_context[question_id] = list(context_question_ids)
    self.questions[question_id] = replace(self.questions[question_id], grading_context_question_ids=list(context_question_ids))


class FakeTextService:
  """Deterministic stand-in for the external text service."""

  def __init__(self) -> None:
    self.source_language = "en"
    self.guardrail_result = True
    self.failing_languages: set[str] = set()
    self.text_calls: list[tuple[str, str]] = []
    self.choice_calls: list[str] = []
    self.guardrail_calls: list[str] = []
    self.grading_calls: list[list[dict[str, Any]]] = []
    self.detect_calls = 0

  async def detect_language(self, text: str) -> str:
    self.detect_calls += 1
    return self.source_language

  async def translate_text(self, text: str, target_language: str, assignment_id: int) -> str:
    self.text_calls.append((text, target_language))
    if target_language in self.failing_languages:
      raise RuntimeError(f"translation to {target_language} unavailable")
    return f"[{target_language}] {text}"

  async def translate_choices(self, choices: list[dict[str, Any]], assignment_id: int, target_language: str) -> list[dict[str, Any]]:
    self.choice_calls.append(target_language)
    return [{**choice, "choice": f"[{target_language}] {choice.get('choice', '')}"} for choice in choices]

  async def apply_content_guardrail(self, serialized_question: str) -> bool:
    self.guardrail_calls.append(serialized_question)
    return self.guardrail_result

  async def compute_grading_context(self, questions: list[dict[str, Any]], assignment_id: int) -> dict[int, list[int]]:
    self.grading_calls.append(questions)
    ids = [question["id"] for question in questions]
    return {question_id: ids[:index] for index, question_id in enumerate(ids)}


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepo:
  return InMemoryJobsRepo()


@pytest.fixture
def assignments_repo() -> InMemoryAssignmentsRepo:
  return InMemoryAssignmentsRepo()


@pytest.fixture
def text_service() -> FakeTextService:
  return FakeTextService()


@pytest.fixture
def job_status(jobs_repo: InMemoryJobsRepo) -> JobStatusManager:
  return JobStatusManager(jobs_repo=jobs_repo, write_attempts=3, write_backoff_ms=0, cleanup_delay_seconds=0.01)


@pytest.fixture
async def scheduler():
  instance = AdmissionScheduler(SchedulerSettings(max_concurrent=10, min_time=0, reservoir=None, reservoir_refresh_interval=None, reservoir_refresh_amount=None, high_water=None, timeout=5.0))
  yield instance
  await instance.shutdown()


@pytest.fixture
def translation_service(assignments_repo: InMemoryAssignmentsRepo, text_service: FakeTextService, job_status: JobStatusManager, scheduler: AdmissionScheduler) -> TranslationService:
  return TranslationService(
    assignments_repo=assignments_repo,
    text_service=text_service,
    job_status=job_status,
    batch_translator=BatchTranslator(scheduler, admission_timeout=None, chunk_pause=0),
    languages=LanguageCatalog(TEST_LANGUAGES),
    retry_delay_ms=0,
    status_interval=1,
  )


@pytest.fixture
def question_publisher(assignments_repo: InMemoryAssignmentsRepo, text_service: FakeTextService, translation_service: TranslationService, job_status: JobStatusManager) -> QuestionPublisher:
  return QuestionPublisher(assignments_repo=assignments_repo, text_service=text_service, translation_service=translation_service, job_status=job_status)


@pytest.fixture
def orchestrator(assignments_repo: InMemoryAssignmentsRepo, job_status: JobStatusManager, question_publisher: QuestionPublisher, translation_service: TranslationService) -> PublishingOrchestrator:
  return PublishingOrchestrator(assignments_repo=assignments_repo, job_status=job_status, questions=question_publisher, translation_service=translation_service)
