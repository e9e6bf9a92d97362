"""Gemini implementation of the text service using the google-genai SDK."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Final

from google import genai

from app.ai import prompts
from app.ai.json_parser import parse_json_with_fallback

logger = logging.getLogger(__name__)

_JSON_CONFIG: Final[dict[str, Any]] = {"response_mime_type": "application/json", "temperature": 0.2}


class GeminiTextService:
  """Language detection, translation, moderation and grading-context generation backed by Gemini."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.0-flash"

  def __init__(self, api_key: str | None, model: str | None = None) -> None:
    if not api_key:
      raise ValueError("GEMINI_API_KEY environment variable is required")
    self.model = model or self._DEFAULT_MODEL
    self._client = genai.Client(api_key=api_key)

  async def _generate_json(self, prompt: str) -> Any:
    # Use the async client to avoid blocking the asyncio event loop.
    response = await _with_backoff(self._client.aio.models.generate_content, model=self.model, contents=prompt, config=_JSON_CONFIG)
    text = response.text or ""
    logger.debug("Gemini response (%s): %s", self.model, text)
    try:
      return parse_json_with_fallback(text)
    except json.JSONDecodeError as exc:
      raise RuntimeError(f"Gemini returned invalid JSON: {exc}") from exc

  async def detect_language(self, text: str) -> str:
    payload = await self._generate_json(prompts.LANGUAGE_DETECTION.format(text=text[:2000]))
    code = payload.get("languageCode") if isinstance(payload, dict) else None
    return str(code).strip() if code else "unknown"

  async def translate_text(self, text: str, target_language: str, assignment_id: int) -> str:
    payload = await self._generate_json(prompts.TRANSLATE_TEXT.format(text=text, target_language=target_language))
    translated = payload.get("translatedText") if isinstance(payload, dict) else None
    if not translated:
      raise RuntimeError(f"Empty translation for assignment {assignment_id} into {target_language}")
    return str(translated)

  async def translate_choices(self, choices: list[dict[str, Any]], assignment_id: int, target_language: str) -> list[dict[str, Any]]:
    if not choices:
      return choices

    async def _translate_one(choice: dict[str, Any]) -> dict[str, Any]:
      translated = dict(choice)
      text = choice.get("choice")
      if not text:
        return translated
      try:
        translated["choice"] = await self.translate_text(text, target_language, assignment_id)
      except Exception as exc:
        # Untranslated choice text is kept.
        logger.error("Failed to translate choice text for assignment %s: %s", assignment_id, exc)
      return translated

    return list(await asyncio.gather(*(_translate_one(choice) for choice in choices)))

  async def apply_content_guardrail(self, serialized_question: str) -> bool:
    payload = await self._generate_json(prompts.GUARDRAIL.format(question=serialized_question))
    acceptable = isinstance(payload, dict) and payload.get("acceptable") is True
    if not acceptable:
      logger.warning("Guardrail rejected question content: %s", payload.get("reason") if isinstance(payload, dict) else payload)
    return acceptable

  async def compute_grading_context(self, questions: list[dict[str, Any]], assignment_id: int) -> dict[int, list[int]]:
    if not questions:
      return {}
    payload = await self._generate_json(prompts.GRADING_CONTEXT.format(questions=json.dumps(questions, ensure_ascii=False, indent=2)))
    if not isinstance(payload, list):
      raise RuntimeError(f"Unexpected grading context payload for assignment {assignment_id}")

    known_ids = {question["id"] for question in questions}
    context: dict[int, list[int]] = {}
    for item in payload:
      question_id = item.get("questionId")
      if question_id not in known_ids:
        continue
      context[question_id] = [dependency for dependency in item.get("contextQuestions") or [] if dependency in known_ids and dependency != question_id]
    return context


async def _with_backoff(func, *args, **kwargs):
  retries = 3
  base_delay = 1
  for attempt in range(retries):
    try:
      return await func(*args, **kwargs)
    except Exception as exc:
      rate_limited = "429" in str(exc) or "Too Many Requests" in str(exc) or "RESOURCE_EXHAUSTED" in str(exc)
      if not rate_limited or attempt == retries - 1:
        raise
      await asyncio.sleep(base_delay * (2**attempt) + random.uniform(0, 1))
  raise RuntimeError("unreachable")
