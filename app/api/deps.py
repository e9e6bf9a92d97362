"""Process-wide service singletons exposed as FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from app.ai.providers.gemini import GeminiTextService
from app.ai.text_service import TextService
from app.config import get_settings
from app.jobs.status import JobStatusManager
from app.publishing.orchestrator import PublishingOrchestrator
from app.publishing.questions import QuestionPublisher
from app.storage.assignments_repo import AssignmentsRepository
from app.storage.factory import _get_assignments_repo, _get_jobs_repo
from app.translation.batch import BatchTranslator
from app.translation.languages import LanguageCatalog
from app.translation.scheduler import AdmissionScheduler, build_scheduler
from app.translation.service import TranslationService


@lru_cache(maxsize=1)
def get_scheduler() -> AdmissionScheduler:
  return build_scheduler(get_settings())


def get_assignments_repo() -> AssignmentsRepository:
  return _get_assignments_repo()


@lru_cache(maxsize=1)
def get_text_service() -> TextService:
  settings = get_settings()
  return GeminiTextService(settings.gemini_api_key, settings.text_model)


@lru_cache(maxsize=1)
def get_job_status_manager() -> JobStatusManager:
  settings = get_settings()
  return JobStatusManager(jobs_repo=_get_jobs_repo(), write_attempts=settings.job_update_attempts, write_backoff_ms=settings.job_update_backoff_ms, cleanup_delay_seconds=settings.job_stream_cleanup_delay_seconds)


@lru_cache(maxsize=1)
def get_translation_service() -> TranslationService:
  settings = get_settings()
  batch_translator = BatchTranslator(get_scheduler(), batch_size=settings.translation_batch_size, concurrency_limit=settings.translation_concurrency_limit, admission_timeout=settings.scheduler_admission_timeout_seconds)
  return TranslationService(
    assignments_repo=get_assignments_repo(),
    text_service=get_text_service(),
    job_status=get_job_status_manager(),
    batch_translator=batch_translator,
    languages=LanguageCatalog(),
    enabled=settings.translation_enabled,
    max_retry_attempts=settings.translation_max_retry_attempts,
    retry_delay_ms=settings.translation_retry_delay_ms,
    status_interval=settings.translation_status_interval,
  )


@lru_cache(maxsize=1)
def get_publishing_orchestrator() -> PublishingOrchestrator:
  questions = QuestionPublisher(assignments_repo=get_assignments_repo(), text_service=get_text_service(), translation_service=get_translation_service(), job_status=get_job_status_manager())
  return PublishingOrchestrator(assignments_repo=get_assignments_repo(), job_status=get_job_status_manager(), questions=questions, translation_service=get_translation_service())
