"""Postgres-backed repository for generic and publish jobs using SQLAlchemy."""

from __future__ import annotations

from sqlalchemy import select

from app.core.database import require_session_factory
from app.jobs.models import JobKind, JobRecord, JobStatus
from app.schema.jobs import Job, PublishJob
from app.storage.jobs_repo import JobsRepository


class PostgresJobsRepository(JobsRepository):
  """Persist jobs to the ``jobs`` and ``publish_jobs`` tables."""

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def create_job(self, *, kind: JobKind, assignment_id: int, user_id: str, status: JobStatus, progress: str, percentage: int | None = None) -> JobRecord:
    async with self._session_factory() as session:
      if kind == "publish":
        row: Job | PublishJob = PublishJob(assignment_id=assignment_id, user_id=user_id, status=status, progress=progress, percentage=percentage)
      else:
        row = Job(assignment_id=assignment_id, user_id=user_id, status=status, progress=progress)
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def get_job(self, job_id: int) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Job, job_id)
      return self._model_to_record(row) if row is not None else None

  async def get_publish_job(self, job_id: int) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(PublishJob, job_id)
      return self._model_to_record(row) if row is not None else None

  async def publish_job_exists(self, job_id: int) -> bool:
    async with self._session_factory() as session:
      stmt = select(PublishJob.id).where(PublishJob.id == job_id)
      result = await session.execute(stmt)
      return result.scalar_one_or_none() is not None

  async def update_job(self, job_id: int, *, status: JobStatus, progress: str, result: str | None = None) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Job, job_id)
      if row is None:
        return None
      row.status = status
      row.progress = progress
      if result is not None:
        row.result = result
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def update_publish_job(self, job_id: int, *, status: JobStatus, progress: str, percentage: int | None = None, result: str | None = None) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(PublishJob, job_id)
      if row is None:
        return None
      row.status = status
      row.progress = progress
      # Updates without a percentage keep the last reported one.
      if percentage is not None:
        row.percentage = percentage
      if result is not None:
        row.result = result
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  @staticmethod
  def _model_to_record(row: Job | PublishJob) -> JobRecord:
    kind: JobKind = "publish" if isinstance(row, PublishJob) else "generic"
    return JobRecord(
      id=row.id,
      kind=kind,
      assignment_id=row.assignment_id,
      user_id=row.user_id,
      status=row.status,  # type: ignore[arg-type]
      progress=row.progress,
      created_at=row.created_at,
      updated_at=row.updated_at,
      percentage=row.percentage if isinstance(row, PublishJob) else None,
      result=row.result,
    )
