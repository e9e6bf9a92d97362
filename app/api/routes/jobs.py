import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.api.deps import get_job_status_manager
from app.api.models import JobStatusResponse
from app.core.exceptions import JobNotFoundError
from app.core.json import dumps
from app.jobs.status import JobStatusManager

router = APIRouter()
logger = logging.getLogger("app.api.routes.jobs")


@router.get("/{job_id}/status", response_model=JobStatusResponse)
async def get_job_status(  # noqa: B008
  job_id: int,
  job_status: JobStatusManager = Depends(get_job_status_manager),  # noqa: B008
) -> JobStatusResponse:
  """Fetch the stored status of a publish or generic job."""
  record = await job_status.get_job_status(job_id)
  if record is None:
    raise JobNotFoundError(job_id)
  return JobStatusResponse.from_record(record)


@router.get("/{job_id}/status-stream")
async def stream_job_status(  # noqa: B008
  job_id: int,
  job_status: JobStatusManager = Depends(get_job_status_manager),  # noqa: B008
) -> StreamingResponse:
  """Stream live status events as server-sent events until the job finishes."""
  if await job_status.get_job_status(job_id) is None:
    raise JobNotFoundError(job_id)

  async def event_source() -> AsyncIterator[str]:
    async for event in job_status.subscribe_status(job_id):
      yield f"event: {event.type}\ndata: {dumps(event.data)}\n\n"
    logger.debug("Status stream for job %s ended", job_id)

  return StreamingResponse(event_source(), media_type="text/event-stream", headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})
