import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from app.core.database import dispose_engine
from app.core.logging import _initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and the scheduler health monitor; tear both down on shutdown."""
  from app.api.deps import get_scheduler
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  scheduler = get_scheduler()
  health_task = asyncio.create_task(scheduler.run_health_checks(settings.scheduler_health_interval_seconds), name="scheduler-health")
  logger.info("Scheduler health checks every %.0fs (max_concurrent=%d, reservoir=%d)", settings.scheduler_health_interval_seconds, settings.scheduler_max_concurrent, settings.scheduler_reservoir)

  try:
    yield
  finally:
    health_task.cancel()
    with suppress(asyncio.CancelledError):
      await health_task
    await scheduler.shutdown()
    await dispose_engine()
    logger.info("Shutdown complete.")
