"""Storage interfaces for generic and publish jobs."""

from __future__ import annotations

from typing import Protocol

from app.jobs.models import JobKind, JobRecord, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence.

  Generic jobs and publish jobs live in separate tables with separate id
  sequences. Only publish jobs carry a percentage.
  """

  async def create_job(self, *, kind: JobKind, assignment_id: int, user_id: str, status: JobStatus, progress: str, percentage: int | None = None) -> JobRecord:
    """Persist a new job and return it with its assigned id."""

  async def get_job(self, job_id: int) -> JobRecord | None:
    """Fetch a generic job by identifier."""

  async def get_publish_job(self, job_id: int) -> JobRecord | None:
    """Fetch a publish job by identifier."""

  async def publish_job_exists(self, job_id: int) -> bool:
    """Return True when a publish job with this id exists."""

  async def update_job(self, job_id: int, *, status: JobStatus, progress: str, result: str | None = None) -> JobRecord | None:
    """Apply a status update to a generic job."""

  async def update_publish_job(self, job_id: int, *, status: JobStatus, progress: str, percentage: int | None = None, result: str | None = None) -> JobRecord | None:
    """Apply a status update to a publish job."""
