from __future__ import annotations

from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gameforge import __version__
from gameforge.api.deps import get_services
from gameforge.api.models import HealthResponse, ServiceCheckView
from gameforge.api.routes import assets, cache, cron, download, generate, queue
from gameforge.config import get_settings
from gameforge.core.errors import RateLimitError, StoreUnavailableError, ValidationError
from gameforge.core.exceptions import (
  global_exception_handler,
  http_exception_handler,
  rate_limit_error_handler,
  request_validation_exception_handler,
  store_unavailable_handler,
  validation_error_handler,
)
from gameforge.core.lifespan import lifespan
from gameforge.core.middleware import RequestLoggingMiddleware
from gameforge.services.container import Services

settings = get_settings()

app = FastAPI(title="GameForge", version=__version__, lifespan=lifespan)

app.add_middleware(
  CORSMiddleware,
  allow_origins=list(settings.allowed_origins),
  allow_credentials=True,
  allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
  allow_headers=["content-type", "authorization"],
  expose_headers=["content-length", "x-request-id", "x-ratelimit-remaining", "x-ratelimit-reset"],
)

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(ValidationError, validation_error_handler)
app.add_exception_handler(RateLimitError, rate_limit_error_handler)
app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)

app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check(services: Annotated[Services, Depends(get_services)]) -> JSONResponse:
  """Report per-dependency health; an unhealthy store or database answers 503."""
  report = await services.health.check()
  body = HealthResponse(
    status=report.status,
    version=__version__,
    timestamp=report.timestamp,
    checks=[ServiceCheckView(service=check.service, status=check.status, message=check.message, latency_ms=check.latency_ms) for check in report.checks],
  )
  status_code = 503 if report.status == "unhealthy" else 200
  return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True, exclude_none=True), headers={"cache-control": "no-store"})


app.include_router(queue.router, prefix="/api/queue", tags=["queue"])
app.include_router(generate.router, prefix="/api/generate", tags=["generate"])
app.include_router(assets.router, prefix="/api/assets", tags=["assets"])
app.include_router(cron.router, prefix="/api/cron", tags=["cron"])
app.include_router(cache.router, prefix="/api/cache", tags=["cache"])
app.include_router(download.router, prefix="/api/download", tags=["download"])
