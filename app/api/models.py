from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from app.jobs.models import JobKind, JobRecord, JobStatus
from app.publishing.models import AssignmentRecord, PublishPayload, QuestionRecord, VariantRecord


class ChoicePayload(BaseModel):
  """One answer option; unknown keys are kept and stored as-is."""

  id: int | None = None
  choice: str = ""
  isCorrect: bool = False
  points: float | None = None
  feedback: str | None = None
  model_config = ConfigDict(extra="allow")


def _dump_choices(choices: list[ChoicePayload] | None) -> list[dict[str, Any]] | None:
  if choices is None:
    return None
  return [choice.model_dump(exclude_none=True) for choice in choices]


class VariantPayload(BaseModel):
  id: int | None = None
  variant_content: StrictStr
  choices: list[ChoicePayload] | None = None
  scoring: dict[str, Any] | None = None
  max_words: int | None = Field(default=None, ge=0)
  max_characters: int | None = Field(default=None, ge=0)
  randomized_choices: bool | None = None
  variant_type: str | None = None
  model_config = ConfigDict(extra="forbid")

  def to_record(self) -> VariantRecord:
    return VariantRecord(
      id=self.id,
      variant_content=self.variant_content,
      choices=_dump_choices(self.choices),
      scoring=self.scoring,
      max_words=self.max_words,
      max_characters=self.max_characters,
      randomized_choices=self.randomized_choices,
      variant_type=self.variant_type,
    )


class QuestionPayload(BaseModel):
  """A question as edited by the author; ``id`` may be a client-side id for new questions."""

  id: int | None = None
  question: StrictStr
  type: StrictStr = Field(min_length=1)
  total_points: float = Field(default=0, ge=0)
  answer: bool | None = None
  choices: list[ChoicePayload] | None = None
  scoring: dict[str, Any] | None = None
  max_words: int | None = Field(default=None, ge=0)
  max_characters: int | None = Field(default=None, ge=0)
  response_type: str | None = None
  randomized_choices: bool | None = None
  variants: list[VariantPayload] = Field(default_factory=list)
  model_config = ConfigDict(extra="forbid")

  def to_record(self) -> QuestionRecord:
    return QuestionRecord(
      id=self.id,
      question=self.question,
      type=self.type,
      total_points=self.total_points,
      answer=self.answer,
      choices=_dump_choices(self.choices),
      scoring=self.scoring,
      max_words=self.max_words,
      max_characters=self.max_characters,
      response_type=self.response_type,
      randomized_choices=self.randomized_choices,
      variants=[variant.to_record() for variant in self.variants],
    )


class PublishAssignmentRequest(BaseModel):
  """Assignment settings and questions submitted for publishing. Omitted fields are left unchanged."""

  questions: list[QuestionPayload] | None = None
  name: StrictStr | None = None
  introduction: StrictStr | None = None
  instructions: StrictStr | None = None
  grading_criteria_overview: StrictStr | None = None
  num_attempts: int | None = None
  passing_grade: int | None = Field(default=None, ge=0, le=100)
  display_order: StrictStr | None = None
  graded: bool | None = None
  question_display: StrictStr | None = None
  alloted_time_minutes: int | None = Field(default=None, ge=0)
  published: bool | None = None
  show_assignment_score: bool | None = None
  show_question_score: bool | None = None
  show_submission_feedback: bool | None = None
  time_estimate_minutes: int | None = Field(default=None, ge=0)
  model_config = ConfigDict(extra="forbid")

  def to_payload(self) -> PublishPayload:
    settings = self.model_dump(exclude={"questions"})
    questions = [question.to_record() for question in self.questions] if self.questions is not None else None
    return PublishPayload(questions=questions, **settings)


class PublishJobResponse(BaseModel):
  job_id: int
  message: str


class JobStatusResponse(BaseModel):
  id: int
  kind: JobKind
  assignment_id: int
  status: JobStatus
  progress: str
  percentage: int | None = None
  result: str | None = None
  created_at: datetime
  updated_at: datetime

  @classmethod
  def from_record(cls, record: JobRecord) -> JobStatusResponse:
    return cls(
      id=record.id,
      kind=record.kind,
      assignment_id=record.assignment_id,
      status=record.status,
      progress=record.progress,
      percentage=record.percentage,
      result=record.result,
      created_at=record.created_at,
      updated_at=record.updated_at,
    )


class LanguagesResponse(BaseModel):
  languages: list[str]


class AssignmentResponse(BaseModel):
  id: int
  name: str | None = None
  introduction: str | None = None
  instructions: str | None = None
  grading_criteria_overview: str | None = None
  published: bool
  question_order: list[int]
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

  @classmethod
  def from_record(cls, record: AssignmentRecord) -> AssignmentResponse:
    data = record.to_dict()
    data.pop("updated_at", None)
    return cls(**data)
