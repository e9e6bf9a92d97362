"""Create job, assignment, question and translation tables.

Revision ID: 4f1a2c9d7e10
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from app.core.migration_guards import guarded_create_index, guarded_create_table, guarded_drop_index, guarded_drop_table
from sqlalchemy.dialects import postgresql

revision = "4f1a2c9d7e10"
down_revision = None
branch_labels = None
depends_on = None


def _job_columns() -> list[sa.Column]:
  return [
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("assignment_id", sa.Integer(), nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("progress", sa.String(length=255), nullable=False),
    sa.Column("result", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
  ]


def upgrade() -> None:
  """Upgrade schema."""
  guarded_create_table("jobs", *_job_columns(), sa.PrimaryKeyConstraint("id"))
  guarded_create_table("publish_jobs", *_job_columns(), sa.Column("percentage", sa.Integer(), nullable=True), sa.PrimaryKeyConstraint("id"))
  for table in ("jobs", "publish_jobs"):
    guarded_create_index(op.f(f"ix_{table}_assignment_id"), table, ["assignment_id"], unique=False)
    guarded_create_index(op.f(f"ix_{table}_user_id"), table, ["user_id"], unique=False)

  guarded_create_table(
    "assignments",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("name", sa.String(), nullable=True),
    sa.Column("introduction", sa.Text(), nullable=True),
    sa.Column("instructions", sa.Text(), nullable=True),
    sa.Column("grading_criteria_overview", sa.Text(), nullable=True),
    sa.Column("published", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.Column("question_order", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
    sa.Column("graded", sa.Boolean(), nullable=True),
    sa.Column("num_attempts", sa.Integer(), nullable=True),
    sa.Column("passing_grade", sa.Integer(), nullable=True),
    sa.Column("display_order", sa.String(), nullable=True),
    sa.Column("question_display", sa.String(), nullable=True),
    sa.Column("alloted_time_minutes", sa.Integer(), nullable=True),
    sa.Column("show_assignment_score", sa.Boolean(), nullable=True),
    sa.Column("show_question_score", sa.Boolean(), nullable=True),
    sa.Column("show_submission_feedback", sa.Boolean(), nullable=True),
    sa.Column("time_estimate_minutes", sa.Integer(), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )

  guarded_create_table(
    "questions",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("assignment_id", sa.Integer(), nullable=False),
    sa.Column("question", sa.Text(), nullable=False),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("total_points", sa.Float(), nullable=False),
    sa.Column("answer", sa.Boolean(), nullable=True),
    sa.Column("choices", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("scoring", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("max_words", sa.Integer(), nullable=True),
    sa.Column("max_characters", sa.Integer(), nullable=True),
    sa.Column("response_type", sa.String(), nullable=True),
    sa.Column("randomized_choices", sa.Boolean(), nullable=True),
    sa.Column("grading_context_question_ids", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
    sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.ForeignKeyConstraint(["assignment_id"], ["assignments.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  guarded_create_index(op.f("ix_questions_assignment_id"), "questions", ["assignment_id"], unique=False)

  guarded_create_table(
    "question_variants",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("question_id", sa.Integer(), nullable=False),
    sa.Column("variant_content", sa.Text(), nullable=False),
    sa.Column("choices", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("scoring", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("max_words", sa.Integer(), nullable=True),
    sa.Column("max_characters", sa.Integer(), nullable=True),
    sa.Column("randomized_choices", sa.Boolean(), nullable=True),
    sa.Column("variant_type", sa.String(), nullable=True),
    sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.ForeignKeyConstraint(["question_id"], ["questions.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  guarded_create_index(op.f("ix_question_variants_question_id"), "question_variants", ["question_id"], unique=False)

  guarded_create_table(
    "translations",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("question_id", sa.Integer(), nullable=False),
    sa.Column("variant_id", sa.Integer(), nullable=True),
    sa.Column("language_code", sa.String(), nullable=False),
    sa.Column("untranslated_text", sa.Text(), nullable=False),
    sa.Column("untranslated_choices", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("translated_text", sa.Text(), nullable=False),
    sa.Column("translated_choices", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.ForeignKeyConstraint(["question_id"], ["questions.id"], ondelete="CASCADE"),
    sa.ForeignKeyConstraint(["variant_id"], ["question_variants.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  guarded_create_index(op.f("ix_translations_question_id"), "translations", ["question_id"], unique=False)
  guarded_create_index(op.f("ix_translations_variant_id"), "translations", ["variant_id"], unique=False)
  guarded_create_index("ix_translations_lookup", "translations", ["language_code", "untranslated_text"], unique=False)
  guarded_create_index("ux_translations_variant_language", "translations", ["question_id", "variant_id", "language_code"], unique=True, postgresql_where=sa.text("variant_id IS NOT NULL"))
  guarded_create_index("ux_translations_question_language", "translations", ["question_id", "language_code"], unique=True, postgresql_where=sa.text("variant_id IS NULL"))

  guarded_create_table(
    "assignment_translations",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("assignment_id", sa.Integer(), nullable=False),
    sa.Column("language_code", sa.String(), nullable=False),
    *[sa.Column(name, sa.Text(), nullable=False) for name in ("name", "introduction", "instructions", "grading_criteria_overview")],
    *[sa.Column(f"translated_{name}", sa.Text(), nullable=False) for name in ("name", "introduction", "instructions", "grading_criteria_overview")],
    sa.ForeignKeyConstraint(["assignment_id"], ["assignments.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("assignment_id", "language_code", name="ux_assignment_translations_assignment_language"),
  )
  guarded_create_index(op.f("ix_assignment_translations_assignment_id"), "assignment_translations", ["assignment_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  guarded_drop_index(op.f("ix_assignment_translations_assignment_id"), table_name="assignment_translations")
  guarded_drop_table("assignment_translations")
  for index_name in ("ux_translations_question_language", "ux_translations_variant_language", "ix_translations_lookup", op.f("ix_translations_variant_id"), op.f("ix_translations_question_id")):
    guarded_drop_index(index_name, table_name="translations")
  guarded_drop_table("translations")
  guarded_drop_index(op.f("ix_question_variants_question_id"), table_name="question_variants")
  guarded_drop_table("question_variants")
  guarded_drop_index(op.f("ix_questions_assignment_id"), table_name="questions")
  guarded_drop_table("questions")
  guarded_drop_table("assignments")
  for table in ("publish_jobs", "jobs"):
    guarded_drop_index(op.f(f"ix_{table}_user_id"), table_name=table)
    guarded_drop_index(op.f(f"ix_{table}_assignment_id"), table_name=table)
    guarded_drop_table(table)
