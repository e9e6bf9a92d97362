from __future__ import annotations

from dataclasses import replace

from app.publishing.changes import (
  are_choices_equal,
  has_question_changed,
  have_question_contents_changed,
  have_translatable_assignment_fields_changed,
  have_variant_sets_changed,
  have_variants_changed,
  safe_string_compare,
)
from app.publishing.models import AssignmentRecord, PublishPayload, QuestionRecord, VariantRecord

CHOICES = [{"id": 1, "choice": "Paris", "isCorrect": True, "feedback": "Yes"}, {"id": 2, "choice": "Rome", "isCorrect": False}]


def _question(**overrides) -> QuestionRecord:
  base = QuestionRecord(id=1, question="Capital of France?", type="SINGLE_CORRECT", total_points=5, choices=[dict(choice) for choice in CHOICES], variants=[VariantRecord(id=10, variant_content="Which city is France's capital?")])
  return replace(base, **overrides)


def test_safe_string_compare_treats_none_as_empty() -> None:
  assert safe_string_compare(None, "")
  assert safe_string_compare("", None)
  assert safe_string_compare(None, None)
  assert not safe_string_compare("a", None)


def test_choice_comparison_ignores_order_and_missing_flags() -> None:
  reordered = list(reversed(CHOICES))
  assert are_choices_equal(CHOICES, reordered)
  assert are_choices_equal(None, [])
  assert are_choices_equal([{"id": 1, "choice": "A"}], [{"id": 1, "choice": "A", "isCorrect": False, "feedback": None}])


def test_choice_comparison_detects_text_feedback_and_correctness() -> None:
  assert not are_choices_equal(CHOICES, CHOICES[:1])
  assert not are_choices_equal(CHOICES, [{**CHOICES[0], "choice": "Lyon"}, CHOICES[1]])
  assert not are_choices_equal(CHOICES, [{**CHOICES[0], "feedback": "Correct!"}, CHOICES[1]])
  assert not are_choices_equal(CHOICES, [{**CHOICES[0], "isCorrect": False}, CHOICES[1]])
  assert not are_choices_equal(CHOICES, None)


def test_variant_comparison() -> None:
  first = [VariantRecord(id=2, variant_content="B"), VariantRecord(id=1, variant_content="A")]
  second = [VariantRecord(id=1, variant_content="A"), VariantRecord(id=2, variant_content="B")]
  assert not have_variants_changed(first, second)
  assert not have_variants_changed(None, [])
  assert have_variants_changed(first, second[:1])
  assert have_variants_changed(first, [VariantRecord(id=1, variant_content="A"), VariantRecord(id=2, variant_content="C")])


def test_metadata_only_changes_are_not_content_changes() -> None:
  stored = [_question()]
  incoming = [_question(total_points=10, max_words=200, randomized_choices=True)]

  assert not have_question_contents_changed(stored, incoming)


def test_question_content_changes_are_detected() -> None:
  stored = [_question()]

  assert have_question_contents_changed(stored, [_question(question="Capital of Spain?")])
  assert have_question_contents_changed(stored, [_question(type="MULTIPLE_CORRECT")])
  assert have_question_contents_changed(stored, [_question(choices=CHOICES[:1])])
  assert have_question_contents_changed(stored, [_question(variants=[])])
  assert have_question_contents_changed(stored, [_question(id=99)])
  assert have_question_contents_changed(stored, [_question(), _question(id=2)])


def test_assignment_fields_only_count_when_provided() -> None:
  assignment = AssignmentRecord(id=1, name="Quiz", introduction=None, instructions="Read carefully")

  assert not have_translatable_assignment_fields_changed(assignment, PublishPayload())
  assert not have_translatable_assignment_fields_changed(assignment, PublishPayload(name="Quiz", introduction=""))
  assert have_translatable_assignment_fields_changed(assignment, PublishPayload(instructions="Read twice"))


def test_per_question_change_check() -> None:
  stored = _question()

  assert has_question_changed(None, stored)
  assert not has_question_changed(stored, _question(total_points=1))
  assert has_question_changed(stored, _question(question="Other"))
  assert has_question_changed(stored, _question(choices=[]))


def test_variant_set_change_check_is_keyed_by_id() -> None:
  stored = [VariantRecord(id=1, variant_content="A"), VariantRecord(id=2, variant_content="B")]

  assert not have_variant_sets_changed(stored, list(reversed(stored)))
  assert have_variant_sets_changed(stored, [VariantRecord(id=1, variant_content="A"), VariantRecord(id=None, variant_content="B")])
  assert have_variant_sets_changed(stored, stored[:1])
