"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from app.core.exceptions import _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Validation errors stay JSON-serializable and never echo the submitted questions."""
  errors = [{"type": "value_error", "loc": ("body", "questions", 0), "msg": "Value error, Unknown question type 'ESSAY'.", "input": {"question": "Secret"}, "ctx": {"error": ValueError("Unknown question type 'ESSAY'."), "input": {"question": "Secret"}}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["ctx"]["error"] == "ValueError: Unknown question type 'ESSAY'."
  assert "input" not in sanitized[0]["ctx"]
