"""Change detection between stored and incoming assignment content.

Every comparison treats None and the empty string as the same value, so a
field cleared to "" is indistinguishable from one that was never set.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from app.publishing.models import TRANSLATABLE_ASSIGNMENT_FIELDS, AssignmentRecord, Choice, PublishPayload, QuestionRecord, VariantRecord

logger = logging.getLogger(__name__)


def safe_string_compare(first: Any, second: Any) -> bool:
  """Return True when both values are equal after mapping None to ""."""
  normalized_first = "" if first is None else str(first)
  normalized_second = "" if second is None else str(second)
  return normalized_first == normalized_second


def _by_id(items: Sequence[Any], key: Any) -> list[Any]:
  return sorted(items, key=lambda item: key(item) or 0)


def are_choices_equal(first: Sequence[Choice] | None, second: Sequence[Choice] | None) -> bool:
  """Compare choice lists by id order: text, feedback and correctness must match."""
  if not first and not second:
    return True
  if not first or not second or len(first) != len(second):
    return False

  for left, right in zip(_by_id(first, lambda choice: choice.get("id")), _by_id(second, lambda choice: choice.get("id")), strict=True):
    if not safe_string_compare(left.get("choice"), right.get("choice")):
      return False
    if not safe_string_compare(left.get("feedback"), right.get("feedback")):
      return False
    if bool(left.get("isCorrect")) != bool(right.get("isCorrect")):
      return False
  return True


def have_variants_changed(existing: Sequence[VariantRecord] | None, incoming: Sequence[VariantRecord] | None, question_id: int | None = None) -> bool:
  """Compare two variant lists positionally after sorting by id."""
  prefix = f"Question #{question_id} variants" if question_id is not None else "Variants"
  if not existing and not incoming:
    return False
  if not existing or not incoming or len(existing) != len(incoming):
    logger.debug("%s: count changed %d -> %d", prefix, len(existing or []), len(incoming or []))
    return True

  for index, (left, right) in enumerate(zip(_by_id(existing, lambda variant: variant.id), _by_id(incoming, lambda variant: variant.id), strict=True)):
    if not safe_string_compare(left.variant_content, right.variant_content):
      logger.debug("%s: variant %d content changed", prefix, index + 1)
      return True
    if not are_choices_equal(left.choices, right.choices):
      logger.debug("%s: variant %d choices changed", prefix, index + 1)
      return True
  return False


def have_question_contents_changed(existing: Sequence[QuestionRecord], incoming: Sequence[QuestionRecord]) -> bool:
  """Return True when any translatable question content differs.

  Points, word limits and other metadata never count as content.
  """
  if len(existing) != len(incoming):
    logger.debug("Question count changed: %d -> %d", len(existing), len(incoming))
    return True

  existing_by_id = {question.id: question for question in existing}
  for question in incoming:
    stored = existing_by_id.get(question.id)
    if stored is None:
      logger.debug("New question detected: %s", question.id)
      return True
    if not safe_string_compare(question.question, stored.question):
      logger.debug("Question #%s text changed", question.id)
      return True
    if question.type != stored.type:
      logger.debug("Question #%s type changed: %s -> %s", question.id, stored.type, question.type)
      return True
    if not are_choices_equal(question.choices, stored.choices):
      logger.debug("Question #%s choices changed", question.id)
      return True
    if have_variants_changed(stored.variants, question.variants, question.id):
      return True

  logger.debug("No content changes detected in %d questions", len(incoming))
  return False


def have_translatable_assignment_fields_changed(existing: AssignmentRecord, payload: PublishPayload) -> bool:
  changed = [name for name in TRANSLATABLE_ASSIGNMENT_FIELDS if getattr(payload, name) is not None and not safe_string_compare(getattr(existing, name), getattr(payload, name))]
  if changed:
    logger.debug("Translatable assignment fields changed: %s", ", ".join(changed))
  return bool(changed)


def has_question_changed(stored: QuestionRecord | None, incoming: QuestionRecord) -> bool:
  """Per-question check deciding whether the question needs translation."""
  if stored is None:
    return True
  return not safe_string_compare(stored.question, incoming.question) or not are_choices_equal(stored.choices, incoming.choices)


def have_variant_sets_changed(existing: Sequence[VariantRecord], incoming: Sequence[VariantRecord]) -> bool:
  """Per-question variant check keyed by variant id."""
  if len(existing) != len(incoming):
    return True
  existing_by_id = {variant.id: variant for variant in existing if variant.id is not None}
  for variant in incoming:
    stored = existing_by_id.get(variant.id) if variant.id is not None else None
    if stored is None:
      return True
    if not safe_string_compare(stored.variant_content, variant.variant_content) or not are_choices_equal(stored.choices, variant.choices):
      return True
  return False
