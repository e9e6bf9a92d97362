"""Minimal .env support so local runs pick up MARK_* settings."""

from __future__ import annotations

import os
from pathlib import Path


def default_env_path() -> Path:
  """Return the .env path next to pyproject.toml."""

  return Path(__file__).resolve().parents[2] / ".env"


def _strip_quotes(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    return value[1:-1]
  return value


def load_env_file(path: Path, *, override: bool = False) -> dict[str, str]:
  """Load key=value pairs from a .env file into the process environment.

  Returns the pairs that were actually applied.
  """

  applied: dict[str, str] = {}
  if not path.is_file():
    return applied

  for raw_line in path.read_text(encoding="utf-8").splitlines():
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
      continue
    if not override and key in os.environ:
      continue
    os.environ[key] = _strip_quotes(value.strip())
    applied[key] = os.environ[key]

  return applied
