"""Domain models for publish and generic background jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

JobStatus = Literal["Pending", "In Progress", "Completed", "Failed"]
JobKind = Literal["generic", "publish"]
StatusEventType = Literal["update", "finalize", "error", "summary", "close"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"Completed", "Failed"})
MAX_PROGRESS_CHARS = 255


@dataclass
class JobRecord:
  """A tracked unit of asynchronous work."""

  id: int
  kind: JobKind
  assignment_id: int
  user_id: str
  status: JobStatus
  progress: str
  created_at: datetime
  updated_at: datetime
  percentage: int | None = None
  result: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class JobStatusUpdate:
  """Requested status change for a job."""

  status: JobStatus
  progress: str
  percentage: float | None = None
  result: Any = None


@dataclass(frozen=True)
class StatusEvent:
  """One message delivered on a job's live status channel."""

  type: StatusEventType
  data: dict[str, Any] = field(default_factory=dict)

  def as_dict(self) -> dict[str, Any]:
    return {"type": self.type, "data": self.data}
