from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Assignment(Base):
  __tablename__ = "assignments"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  name: Mapped[str | None] = mapped_column(String, nullable=True)
  introduction: Mapped[str | None] = mapped_column(Text, nullable=True)
  instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
  grading_criteria_overview: Mapped[str | None] = mapped_column(Text, nullable=True)
  published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
  question_order: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default=text("'[]'::jsonb"))
  graded: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  num_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)
  passing_grade: Mapped[int | None] = mapped_column(Integer, nullable=True)
  display_order: Mapped[str | None] = mapped_column(String, nullable=True)
  question_display: Mapped[str | None] = mapped_column(String, nullable=True)
  alloted_time_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
  show_assignment_score: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  show_question_score: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  show_submission_feedback: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  time_estimate_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class Question(Base):
  __tablename__ = "questions"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  assignment_id: Mapped[int] = mapped_column(ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
  question: Mapped[str] = mapped_column(Text, nullable=False)
  type: Mapped[str] = mapped_column(String, nullable=False)
  total_points: Mapped[float] = mapped_column(Float, nullable=False, default=0)
  answer: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  choices: Mapped[list | None] = mapped_column(JSONB(none_as_null=True), nullable=True)
  scoring: Mapped[dict | None] = mapped_column(JSONB(none_as_null=True), nullable=True)
  max_words: Mapped[int | None] = mapped_column(Integer, nullable=True)
  max_characters: Mapped[int | None] = mapped_column(Integer, nullable=True)
  response_type: Mapped[str | None] = mapped_column(String, nullable=True)
  randomized_choices: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  grading_context_question_ids: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default=text("'[]'::jsonb"))
  is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


class QuestionVariant(Base):
  __tablename__ = "question_variants"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  question_id: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
  variant_content: Mapped[str] = mapped_column(Text, nullable=False)
  choices: Mapped[list | None] = mapped_column(JSONB(none_as_null=True), nullable=True)
  scoring: Mapped[dict | None] = mapped_column(JSONB(none_as_null=True), nullable=True)
  max_words: Mapped[int | None] = mapped_column(Integer, nullable=True)
  max_characters: Mapped[int | None] = mapped_column(Integer, nullable=True)
  randomized_choices: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  variant_type: Mapped[str | None] = mapped_column(String, nullable=True)
  is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


class Translation(Base):
  __tablename__ = "translations"
  __table_args__ = (
    Index("ux_translations_variant_language", "question_id", "variant_id", "language_code", unique=True, postgresql_where=text("variant_id IS NOT NULL")),
    Index("ux_translations_question_language", "question_id", "language_code", unique=True, postgresql_where=text("variant_id IS NULL")),
    Index("ix_translations_lookup", "language_code", "untranslated_text"),
  )

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  question_id: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
  variant_id: Mapped[int | None] = mapped_column(ForeignKey("question_variants.id", ondelete="CASCADE"), nullable=True, index=True)
  language_code: Mapped[str] = mapped_column(String, nullable=False)
  untranslated_text: Mapped[str] = mapped_column(Text, nullable=False)
  untranslated_choices: Mapped[list | None] = mapped_column(JSONB(none_as_null=True), nullable=True)
  translated_text: Mapped[str] = mapped_column(Text, nullable=False)
  translated_choices: Mapped[list | None] = mapped_column(JSONB(none_as_null=True), nullable=True)


class AssignmentTranslation(Base):
  __tablename__ = "assignment_translations"
  __table_args__ = (UniqueConstraint("assignment_id", "language_code", name="ux_assignment_translations_assignment_language"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  assignment_id: Mapped[int] = mapped_column(ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
  language_code: Mapped[str] = mapped_column(String, nullable=False)
  name: Mapped[str] = mapped_column(Text, nullable=False, default="")
  introduction: Mapped[str] = mapped_column(Text, nullable=False, default="")
  instructions: Mapped[str] = mapped_column(Text, nullable=False, default="")
  grading_criteria_overview: Mapped[str] = mapped_column(Text, nullable=False, default="")
  translated_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
  translated_introduction: Mapped[str] = mapped_column(Text, nullable=False, default="")
  translated_instructions: Mapped[str] = mapped_column(Text, nullable=False, default="")
  translated_grading_criteria_overview: Mapped[str] = mapped_column(Text, nullable=False, default="")
