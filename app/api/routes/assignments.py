import logging

from fastapi import APIRouter, Depends, Header

from app.api.deps import get_assignments_repo, get_publishing_orchestrator, get_translation_service
from app.api.models import AssignmentResponse, LanguagesResponse, PublishAssignmentRequest, PublishJobResponse
from app.core.exceptions import AssignmentNotFoundError
from app.publishing.orchestrator import PublishingOrchestrator
from app.storage.assignments_repo import AssignmentsRepository
from app.translation.service import TranslationService

router = APIRouter()
logger = logging.getLogger("app.api.routes.assignments")


@router.put("/{assignment_id}/publish", response_model=PublishJobResponse)
async def publish_assignment(  # noqa: B008
  assignment_id: int,
  request: PublishAssignmentRequest,
  user_id: str = Header(default="anonymous", alias="x-user-id"),
  orchestrator: PublishingOrchestrator = Depends(get_publishing_orchestrator),  # noqa: B008
) -> PublishJobResponse:
  """Start publishing an assignment; progress is reported on the returned job."""
  started = await orchestrator.publish_assignment(assignment_id, request.to_payload(), user_id)
  logger.info("Publish of assignment %s accepted as job %s", assignment_id, started.job_id)
  return PublishJobResponse(job_id=started.job_id, message=started.message)


@router.get("/{assignment_id}/languages", response_model=LanguagesResponse)
async def get_available_languages(  # noqa: B008
  assignment_id: int,
  translation: TranslationService = Depends(get_translation_service),  # noqa: B008
) -> LanguagesResponse:
  return LanguagesResponse(languages=await translation.get_available_languages(assignment_id))


@router.get("/{assignment_id}", response_model=AssignmentResponse)
async def get_assignment(  # noqa: B008
  assignment_id: int,
  language_code: str | None = None,
  repo: AssignmentsRepository = Depends(get_assignments_repo),  # noqa: B008
  translation: TranslationService = Depends(get_translation_service),  # noqa: B008
) -> AssignmentResponse:
  """Fetch an assignment, translated when ``language_code`` is given."""
  assignment = await repo.get_assignment(assignment_id)
  if assignment is None:
    raise AssignmentNotFoundError(assignment_id)
  if language_code:
    assignment = await translation.apply_translations_to_assignment(assignment, language_code)
  return AssignmentResponse.from_record(assignment)
