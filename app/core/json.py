"""Custom JSON handling."""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi.responses import JSONResponse


class PublishingJSONEncoder(json.JSONEncoder):
  """Encode Postgres NUMERIC and timestamp values returned by the ORM."""

  def default(self, obj: Any) -> Any:
    if isinstance(obj, Decimal):
      return int(obj) if obj % 1 == 0 else float(obj)
    if isinstance(obj, datetime | date):
      return obj.isoformat()
    return super().default(obj)


def dumps(content: Any) -> str:
  return json.dumps(content, ensure_ascii=False, allow_nan=False, separators=(",", ":"), cls=PublishingJSONEncoder)


class PublishingJSONResponse(JSONResponse):
  """JSONResponse that understands Decimal and datetime values."""

  def render(self, content: Any) -> bytes:
    return dumps(content).encode("utf-8")
