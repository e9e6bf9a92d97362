"""Domain records for assignments, questions, variants and their translations."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

Choice = dict[str, Any]

TRANSLATABLE_ASSIGNMENT_FIELDS: tuple[str, ...] = ("name", "instructions", "introduction", "grading_criteria_overview")

# Settings written during the settings stage of a publish, in addition to ``name``.
ASSIGNMENT_SETTINGS_FIELDS: tuple[str, ...] = (
  "introduction",
  "instructions",
  "grading_criteria_overview",
  "num_attempts",
  "passing_grade",
  "display_order",
  "graded",
  "question_display",
  "alloted_time_minutes",
  "published",
  "show_assignment_score",
  "show_question_score",
  "show_submission_feedback",
  "time_estimate_minutes",
)


@dataclass
class AssignmentRecord:
  id: int
  name: str | None = None
  introduction: str | None = None
  instructions: str | None = None
  grading_criteria_overview: str | None = None
  published: bool = False
  question_order: list[int] = field(default_factory=list)
  graded: bool | None = None
  num_attempts: int | None = None
  passing_grade: int | None = None
  display_order: str | None = None
  question_display: str | None = None
  alloted_time_minutes: int | None = None
  show_assignment_score: bool | None = None
  show_question_score: bool | None = None
  show_submission_feedback: bool | None = None
  time_estimate_minutes: int | None = None
  updated_at: datetime | None = None

  def to_dict(self) -> dict[str, Any]:
    return asdict(self)


@dataclass
class VariantRecord:
  """A question variant; ``id`` is None until the variant is stored."""

  variant_content: str
  id: int | None = None
  question_id: int | None = None
  choices: list[Choice] | None = None
  scoring: dict[str, Any] | None = None
  max_words: int | None = None
  max_characters: int | None = None
  randomized_choices: bool | None = None
  variant_type: str | None = None
  is_deleted: bool = False


@dataclass
class QuestionRecord:
  """A stored question, or an incoming one keyed by its client id."""

  id: int | None
  question: str
  type: str
  assignment_id: int | None = None
  total_points: float = 0
  answer: bool | None = None
  choices: list[Choice] | None = None
  scoring: dict[str, Any] | None = None
  max_words: int | None = None
  max_characters: int | None = None
  response_type: str | None = None
  randomized_choices: bool | None = None
  grading_context_question_ids: list[int] = field(default_factory=list)
  is_deleted: bool = False
  variants: list[VariantRecord] = field(default_factory=list)

  def to_dict(self) -> dict[str, Any]:
    return asdict(self)


@dataclass
class TranslationRecord:
  """Translated text and choices of one question or variant in one language."""

  question_id: int
  language_code: str
  untranslated_text: str
  translated_text: str
  variant_id: int | None = None
  untranslated_choices: list[Choice] | None = None
  translated_choices: list[Choice] | None = None
  id: int | None = None


@dataclass
class AssignmentTranslationRecord:
  assignment_id: int
  language_code: str
  name: str = ""
  instructions: str = ""
  introduction: str = ""
  grading_criteria_overview: str = ""
  translated_name: str = ""
  translated_instructions: str = ""
  translated_introduction: str = ""
  translated_grading_criteria_overview: str = ""
  id: int | None = None


@dataclass
class PublishPayload:
  """Everything a caller submits when publishing an assignment."""

  questions: list[QuestionRecord] | None = None
  name: str | None = None
  introduction: str | None = None
  instructions: str | None = None
  grading_criteria_overview: str | None = None
  num_attempts: int | None = None
  passing_grade: int | None = None
  display_order: str | None = None
  graded: bool | None = None
  question_display: str | None = None
  alloted_time_minutes: int | None = None
  published: bool | None = None
  show_assignment_score: bool | None = None
  show_question_score: bool | None = None
  show_submission_feedback: bool | None = None
  time_estimate_minutes: int | None = None

  def settings_changes(self) -> dict[str, Any]:
    """Return provided assignment settings; None means "leave unchanged"."""
    fields = ("name",) + ASSIGNMENT_SETTINGS_FIELDS
    return {name: getattr(self, name) for name in fields if getattr(self, name) is not None}
