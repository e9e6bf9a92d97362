"""Contract for the external language detection, translation and generation service."""

from __future__ import annotations

from typing import Any, Protocol


class TextService(Protocol):
  async def detect_language(self, text: str) -> str:
    """Return an ISO language code for ``text`` ("unknown" when undetectable)."""

  async def translate_text(self, text: str, target_language: str, assignment_id: int) -> str:
    """Translate free text into ``target_language``."""

  async def translate_choices(self, choices: list[dict[str, Any]], assignment_id: int, target_language: str) -> list[dict[str, Any]]:
    """Translate the text of each choice, keeping ids, scores and correctness."""

  async def apply_content_guardrail(self, serialized_question: str) -> bool:
    """Return True when question content passes the content-safety check."""

  async def compute_grading_context(self, questions: list[dict[str, Any]], assignment_id: int) -> dict[int, list[int]]:
    """Map each question id to the ids of questions it depends on contextually."""
