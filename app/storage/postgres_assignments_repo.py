"""Postgres-backed repository for assignments, questions and translations."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select, text, update
from sqlalchemy.dialects.postgresql import insert

from app.core.database import require_session_factory
from app.core.exceptions import AssignmentNotFoundError, PublishingError
from app.publishing.models import AssignmentRecord, AssignmentTranslationRecord, Choice, QuestionRecord, TranslationRecord, VariantRecord
from app.schema.assignments import Assignment, AssignmentTranslation, Question, QuestionVariant, Translation
from app.storage.assignments_repo import AssignmentsRepository

_ASSIGNMENT_COLUMNS = frozenset(column.key for column in Assignment.__table__.columns) - {"id", "updated_at"}
_QUESTION_COLUMNS = ("question", "type", "total_points", "answer", "choices", "scoring", "max_words", "max_characters", "response_type", "randomized_choices", "is_deleted")
_VARIANT_COLUMNS = ("variant_content", "choices", "scoring", "max_words", "max_characters", "randomized_choices", "variant_type", "is_deleted")
_ASSIGNMENT_TRANSLATION_COLUMNS = frozenset(column.key for column in AssignmentTranslation.__table__.columns) - {"id", "assignment_id", "language_code"}


class PostgresAssignmentsRepository(AssignmentsRepository):
  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def get_assignment(self, assignment_id: int) -> AssignmentRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Assignment, assignment_id)
      return _assignment_to_record(row) if row is not None else None

  async def update_assignment(self, assignment_id: int, **fields: Any) -> AssignmentRecord:
    unknown = set(fields) - _ASSIGNMENT_COLUMNS
    if unknown:
      raise ValueError(f"Unknown assignment fields: {sorted(unknown)}")
    async with self._session_factory() as session:
      row = await session.get(Assignment, assignment_id)
      if row is None:
        raise AssignmentNotFoundError(assignment_id)
      for name, value in fields.items():
        setattr(row, name, value)
      await session.commit()
      await session.refresh(row)
      return _assignment_to_record(row)

  async def get_questions_by_assignment(self, assignment_id: int) -> list[QuestionRecord]:
    async with self._session_factory() as session:
      question_stmt = select(Question).where(Question.assignment_id == assignment_id, Question.is_deleted.is_(False)).order_by(Question.id)
      questions = list((await session.execute(question_stmt)).scalars())
      if not questions:
        return []
      variant_stmt = select(QuestionVariant).where(QuestionVariant.question_id.in_([row.id for row in questions]), QuestionVariant.is_deleted.is_(False)).order_by(QuestionVariant.id)
      variants: dict[int, list[VariantRecord]] = {}
      for row in (await session.execute(variant_stmt)).scalars():
        variants.setdefault(row.question_id, []).append(_variant_to_record(row))
      return [_question_to_record(row, variants.get(row.id, [])) for row in questions]

  async def upsert_question(self, question: QuestionRecord) -> QuestionRecord:
    if question.assignment_id is None:
      raise PublishingError("Questions must belong to an assignment")
    async with self._session_factory() as session:
      row = await session.get(Question, question.id) if question.id is not None else None
      if row is None:
        row = Question(assignment_id=question.assignment_id)
        session.add(row)
      for name in _QUESTION_COLUMNS:
        setattr(row, name, getattr(question, name))
      await session.commit()
      await session.refresh(row)
      return _question_to_record(row, [])

  async def mark_questions_deleted(self, question_ids: list[int]) -> None:
    if not question_ids:
      return
    async with self._session_factory() as session:
      await session.execute(update(Question).where(Question.id.in_(question_ids)).values(is_deleted=True))
      await session.commit()

  async def upsert_variant(self, variant: VariantRecord) -> VariantRecord:
    if variant.question_id is None:
      raise PublishingError("Variants must belong to a question")
    async with self._session_factory() as session:
      row = await session.get(QuestionVariant, variant.id) if variant.id is not None else None
      if row is None:
        row = QuestionVariant(question_id=variant.question_id)
        session.add(row)
      for name in _VARIANT_COLUMNS:
        setattr(row, name, getattr(variant, name))
      await session.commit()
      await session.refresh(row)
      return _variant_to_record(row)

  async def mark_variants_deleted(self, variant_ids: list[int]) -> None:
    if not variant_ids:
      return
    async with self._session_factory() as session:
      await session.execute(update(QuestionVariant).where(QuestionVariant.id.in_(variant_ids)).values(is_deleted=True))
      await session.commit()

  async def find_translation(self, text: str, choices: list[Choice] | None, language_code: str) -> TranslationRecord | None:
    stmt = select(Translation).where(Translation.untranslated_text == text, Translation.language_code == language_code)
    if choices:
      stmt = stmt.where(Translation.untranslated_choices == choices)
    else:
      stmt = stmt.where(Translation.untranslated_choices.is_(None))
    async with self._session_factory() as session:
      row = (await session.execute(stmt.order_by(Translation.id).limit(1))).scalar_one_or_none()
      return _translation_to_record(row) if row is not None else None

  async def create_translation(self, record: TranslationRecord) -> TranslationRecord:
    values = {
      "question_id": record.question_id,
      "variant_id": record.variant_id,
      "language_code": record.language_code,
      "untranslated_text": record.untranslated_text,
      "untranslated_choices": record.untranslated_choices or None,
      "translated_text": record.translated_text,
      "translated_choices": record.translated_choices or None,
    }
    stmt = insert(Translation).values(**values)
    if record.variant_id is None:
      conflict: dict[str, Any] = {"index_elements": ["question_id", "language_code"], "index_where": text("variant_id IS NULL")}
    else:
      conflict = {"index_elements": ["question_id", "variant_id", "language_code"], "index_where": text("variant_id IS NOT NULL")}
    stmt = stmt.on_conflict_do_update(
      **conflict,
      set_={
        "untranslated_text": stmt.excluded.untranslated_text,
        "untranslated_choices": stmt.excluded.untranslated_choices,
        "translated_text": stmt.excluded.translated_text,
        "translated_choices": stmt.excluded.translated_choices,
      },
    ).returning(Translation)
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one()
      await session.commit()
      return _translation_to_record(row)

  async def count_translations(self, *, question_id: int, variant_id: int | None, language_code: str, untranslated_text: str | None = None) -> int:
    stmt = select(func.count()).select_from(Translation).where(Translation.question_id == question_id, Translation.language_code == language_code)
    stmt = stmt.where(Translation.variant_id.is_(None) if variant_id is None else Translation.variant_id == variant_id)
    if untranslated_text is not None:
      stmt = stmt.where(Translation.untranslated_text == untranslated_text)
    async with self._session_factory() as session:
      return int((await session.execute(stmt)).scalar_one())

  async def get_assignment_translation(self, assignment_id: int, language_code: str) -> AssignmentTranslationRecord | None:
    stmt = select(AssignmentTranslation).where(AssignmentTranslation.assignment_id == assignment_id, AssignmentTranslation.language_code == language_code)
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      return _assignment_translation_to_record(row) if row is not None else None

  async def create_assignment_translation(self, record: AssignmentTranslationRecord) -> AssignmentTranslationRecord:
    async with self._session_factory() as session:
      row = AssignmentTranslation(assignment_id=record.assignment_id, language_code=record.language_code, **{name: getattr(record, name) for name in _ASSIGNMENT_TRANSLATION_COLUMNS})
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return _assignment_translation_to_record(row)

  async def update_assignment_translation(self, translation_id: int, **fields: Any) -> AssignmentTranslationRecord:
    unknown = set(fields) - _ASSIGNMENT_TRANSLATION_COLUMNS
    if unknown:
      raise ValueError(f"Unknown assignment translation fields: {sorted(unknown)}")
    async with self._session_factory() as session:
      row = await session.get(AssignmentTranslation, translation_id)
      if row is None:
        raise PublishingError(f"Assignment translation {translation_id} not found")
      for name, value in fields.items():
        setattr(row, name, value)
      await session.commit()
      await session.refresh(row)
      return _assignment_translation_to_record(row)

  async def list_assignment_translation_languages(self, assignment_id: int) -> list[str]:
    stmt = select(AssignmentTranslation.language_code).where(AssignmentTranslation.assignment_id == assignment_id).distinct()
    async with self._session_factory() as session:
      return list((await session.execute(stmt)).scalars())

  async def update_question_grading_context(self, question_id: int, context_question_ids: list[int]) -> None:
    async with self._session_factory() as session:
      await session.execute(update(Question).where(Question.id == question_id).values(grading_context_question_ids=list(context_question_ids)))
      await session.commit()


def _assignment_to_record(row: Assignment) -> AssignmentRecord:
  return AssignmentRecord(
    id=row.id,
    name=row.name,
    introduction=row.introduction,
    instructions=row.instructions,
    grading_criteria_overview=row.grading_criteria_overview,
    published=bool(row.published),
    question_order=list(row.question_order or []),
    graded=row.graded,
    num_attempts=row.num_attempts,
    passing_grade=row.passing_grade,
    display_order=row.display_order,
    question_display=row.question_display,
    alloted_time_minutes=row.alloted_time_minutes,
    show_assignment_score=row.show_assignment_score,
    show_question_score=row.show_question_score,
    show_submission_feedback=row.show_submission_feedback,
    time_estimate_minutes=row.time_estimate_minutes,
    updated_at=row.updated_at,
  )


def _question_to_record(row: Question, variants: list[VariantRecord]) -> QuestionRecord:
  return QuestionRecord(
    id=row.id,
    question=row.question,
    type=row.type,
    assignment_id=row.assignment_id,
    total_points=row.total_points,
    answer=row.answer,
    choices=row.choices,
    scoring=row.scoring,
    max_words=row.max_words,
    max_characters=row.max_characters,
    response_type=row.response_type,
    randomized_choices=row.randomized_choices,
    grading_context_question_ids=list(row.grading_context_question_ids or []),
    is_deleted=row.is_deleted,
    variants=variants,
  )


def _variant_to_record(row: QuestionVariant) -> VariantRecord:
  return VariantRecord(
    id=row.id,
    question_id=row.question_id,
    variant_content=row.variant_content,
    choices=row.choices,
    scoring=row.scoring,
    max_words=row.max_words,
    max_characters=row.max_characters,
    randomized_choices=row.randomized_choices,
    variant_type=row.variant_type,
    is_deleted=row.is_deleted,
  )


def _translation_to_record(row: Translation) -> TranslationRecord:
  return TranslationRecord(
    id=row.id,
    question_id=row.question_id,
    variant_id=row.variant_id,
    language_code=row.language_code,
    untranslated_text=row.untranslated_text,
    untranslated_choices=row.untranslated_choices,
    translated_text=row.translated_text,
    translated_choices=row.translated_choices,
  )


def _assignment_translation_to_record(row: AssignmentTranslation) -> AssignmentTranslationRecord:
  return AssignmentTranslationRecord(id=row.id, assignment_id=row.assignment_id, language_code=row.language_code, **{name: getattr(row, name) or "" for name in _ASSIGNMENT_TRANSLATION_COLUMNS})
