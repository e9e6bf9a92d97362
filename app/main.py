from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import assignments, jobs
from app.config import get_settings
from app.core.exceptions import AssignmentNotFoundError, JobNotFoundError, global_exception_handler, http_exception_handler, not_found_exception_handler, request_validation_exception_handler
from app.core.json import PublishingJSONResponse
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

settings = get_settings()

app = FastAPI(default_response_class=PublishingJSONResponse, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "PUT", "OPTIONS"], allow_headers=["content-type", "authorization", "x-user-id"], expose_headers=["content-length"])


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(AssignmentNotFoundError, not_found_exception_handler)
app.add_exception_handler(JobNotFoundError, not_found_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok"}


app.include_router(jobs.router, prefix="/v2/assignments/jobs", tags=["jobs"])
app.include_router(assignments.router, prefix="/v2/assignments", tags=["assignments"])
