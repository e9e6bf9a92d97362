"""Text service provider implementations."""

from app.ai.providers.gemini import GeminiTextService

__all__ = ["GeminiTextService"]
