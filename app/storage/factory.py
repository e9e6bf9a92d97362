"""Repository construction for the configured store."""

from __future__ import annotations

from functools import lru_cache

from app.storage.assignments_repo import AssignmentsRepository
from app.storage.jobs_repo import JobsRepository


@lru_cache(maxsize=1)
def _get_jobs_repo() -> JobsRepository:
  # Import lazily so tests can run without a configured database.
  from app.storage.postgres_jobs_repo import PostgresJobsRepository

  return PostgresJobsRepository()


@lru_cache(maxsize=1)
def _get_assignments_repo() -> AssignmentsRepository:
  from app.storage.postgres_assignments_repo import PostgresAssignmentsRepository

  return PostgresAssignmentsRepository()
