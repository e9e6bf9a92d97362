"""Supported translation languages."""

from __future__ import annotations

from collections.abc import Iterable

SUPPORTED_LANGUAGES: dict[str, str] = {
  "en": "English",
  "id": "Bahasa Indonesia",
  "de": "Deutsch",
  "es": "Español",
  "fr": "Français",
  "it": "Italiano",
  "hu": "Magyar",
  "nl": "Nederlands",
  "pl": "Polski",
  "pt": "Português",
  "sv": "Svenska",
  "tr": "Türkçe",
  "el": "Ελληνικά",
  "kk": "Қазақ тілі",
  "ru": "Русский",
  "uk-UA": "Українська",
  "ar": "العربية",
  "hi": "हिन्दी",
  "th": "ไทย",
  "ko": "한국어",
  "zh-CN": "简体中文",
  "zh-TW": "繁體中文",
  "ja": "日本語",
}


class LanguageCatalog:
  """Lookup of target language codes and their display names."""

  def __init__(self, languages: dict[str, str] | Iterable[tuple[str, str]] | None = None) -> None:
    self._languages = dict(languages if languages is not None else SUPPORTED_LANGUAGES)

  def get_supported_language_codes(self) -> list[str]:
    return list(self._languages) or ["en"]

  def get_language_name(self, code: str) -> str | None:
    lowered = code.lower()
    for known, name in self._languages.items():
      if known.lower() == lowered:
        return name
    return None

  def display_name(self, code: str) -> str:
    return self.get_language_name(code) or code
