import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError

from app.core.json import PublishingJSONResponse


class PublishingError(Exception):
  """Base class for failures raised by the publishing pipeline."""


class AssignmentNotFoundError(PublishingError):
  """Raised when an assignment id does not resolve to a stored assignment."""

  def __init__(self, assignment_id: int) -> None:
    super().__init__(f"Assignment with ID {assignment_id} not found")
    self.assignment_id = assignment_id


class JobNotFoundError(PublishingError):
  """Raised when a job id is unknown to both job tables."""

  def __init__(self, job_id: int) -> None:
    super().__init__(f"Job with ID {job_id} not found")
    self.job_id = job_id


class ContentGuardrailError(PublishingError):
  """Raised when question content fails the content-safety check."""

  def __init__(self, question_id: int | None = None) -> None:
    super().__init__("Question validation failed due to inappropriate or unacceptable content")
    self.question_id = question_id


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  payload: dict[str, Any] = {"detail": detail}
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


async def global_exception_handler(request: Request, exc: Exception) -> PublishingJSONResponse:
  """Catch unhandled errors without leaking internals to callers."""
  logger = logging.getLogger("uvicorn.error")
  request_id = getattr(request.state, "request_id", None)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return PublishingJSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> PublishingJSONResponse:
  """Log request validation errors without leaking payloads."""
  request_id = getattr(request.state, "request_id", None)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return PublishingJSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> PublishingJSONResponse:
  """Preserve 4xx details and hide 5xx diagnostics."""
  request_id = getattr(request.state, "request_id", None)
  if exc.status_code >= 500:
    logger = logging.getLogger("uvicorn.error")
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return PublishingJSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  return PublishingJSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id))


async def not_found_exception_handler(request: Request, exc: PublishingError) -> PublishingJSONResponse:
  """Map missing assignments and jobs to 404 responses."""
  request_id = getattr(request.state, "request_id", None)
  return PublishingJSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_payload(str(exc), request_id=request_id))
