from . import assignments, jobs

__all__ = ["assignments", "jobs"]
