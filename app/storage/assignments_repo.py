"""Storage interfaces for assignments, questions, variants and translations."""

from __future__ import annotations

from typing import Any, Protocol

from app.publishing.models import AssignmentRecord, AssignmentTranslationRecord, Choice, QuestionRecord, TranslationRecord, VariantRecord


class AssignmentsRepository(Protocol):
  """Repository contract for authored content used by publishing and translation."""

  async def get_assignment(self, assignment_id: int) -> AssignmentRecord | None:
    """Fetch an assignment by identifier."""

  async def update_assignment(self, assignment_id: int, **fields: Any) -> AssignmentRecord:
    """Apply partial updates to an assignment."""

  async def get_questions_by_assignment(self, assignment_id: int) -> list[QuestionRecord]:
    """Return non-deleted questions with their non-deleted variants."""

  async def upsert_question(self, question: QuestionRecord) -> QuestionRecord:
    """Update the question with ``question.id`` or create it when id is None."""

  async def mark_questions_deleted(self, question_ids: list[int]) -> None:
    """Soft-delete questions."""

  async def upsert_variant(self, variant: VariantRecord) -> VariantRecord:
    """Update the variant with ``variant.id`` or create it when id is None."""

  async def mark_variants_deleted(self, variant_ids: list[int]) -> None:
    """Soft-delete variants."""

  async def find_translation(self, text: str, choices: list[Choice] | None, language_code: str) -> TranslationRecord | None:
    """Find any stored translation of exactly this text and choices."""

  async def create_translation(self, record: TranslationRecord) -> TranslationRecord:
    """Persist a question or variant translation, replacing the stored one for the same (question, variant, language)."""

  async def count_translations(self, *, question_id: int, variant_id: int | None, language_code: str, untranslated_text: str | None = None) -> int:
    """Count translations stored for one (question, variant, language), optionally of one source text."""

  async def get_assignment_translation(self, assignment_id: int, language_code: str) -> AssignmentTranslationRecord | None:
    """Fetch the assignment-level translation for one language."""

  async def create_assignment_translation(self, record: AssignmentTranslationRecord) -> AssignmentTranslationRecord:
    """Persist an assignment-level translation."""

  async def update_assignment_translation(self, translation_id: int, **fields: Any) -> AssignmentTranslationRecord:
    """Apply partial updates to an assignment-level translation."""

  async def list_assignment_translation_languages(self, assignment_id: int) -> list[str]:
    """Return language codes with an assignment-level translation."""

  async def update_question_grading_context(self, question_id: int, context_question_ids: list[int]) -> None:
    """Store the ids of questions this question depends on."""
