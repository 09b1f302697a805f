import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gameforge.config import get_settings
from gameforge.core.errors import RateLimitError, StoreUnavailableError, ValidationError

logger = logging.getLogger("uvicorn.error")


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


def error_payload(message: str, *, code: str | None = None, details: Any = None, request_id: str | None = None) -> dict[str, Any]:
  """Build the failure envelope shared by every route."""
  error: dict[str, Any] = {"message": message}
  if code:
    error["code"] = code
  if details is not None:
    error["details"] = _coerce_json_safe(details)
  payload: dict[str, Any] = {"success": False, "error": error}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key not in {"input", "url"}}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx
    sanitized.append(_coerce_json_safe(scrubbed))
  return sanitized


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Catch unhandled errors; the traceback is logged and never returned."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error_payload("Internal Server Error", code="INTERNAL_ERROR", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Render schema failures as 400s without echoing request payloads."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_payload("Invalid request body.", code="VALIDATION_ERROR", details=sanitized_errors, request_id=request_id))


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
  request_id = _request_id(request)
  if get_settings().log_http_4xx:
    logger.warning("Validation error request_id=%s path=%s errors=%s", request_id, request.url.path, exc.errors)
  return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_payload(str(exc), code="VALIDATION_ERROR", details=exc.errors, request_id=request_id))


async def rate_limit_error_handler(request: Request, exc: RateLimitError) -> JSONResponse:
  request_id = _request_id(request)
  reset = exc.reset_at.isoformat()
  logger.info("Rate limit exceeded request_id=%s path=%s reset=%s", request_id, request.url.path, reset)
  return JSONResponse(
    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    content=error_payload(str(exc), code="RATE_LIMIT_EXCEEDED", details={"reset": reset, "remaining": 0}, request_id=request_id),
    headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": reset},
  )


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
  request_id = _request_id(request)
  logger.error("Backing store unavailable request_id=%s path=%s error=%s", request_id, request.url.path, exc)
  return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=error_payload("Service temporarily unavailable.", code="STORE_UNAVAILABLE", request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle HTTPExceptions while avoiding leaking internal diagnostics."""
  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=error_payload("Internal Server Error", request_id=request_id), headers=exc.headers)

  if get_settings().log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
  message = exc.detail if isinstance(exc.detail, str) else "Request failed."
  details = None if isinstance(exc.detail, str) else exc.detail
  return JSONResponse(status_code=exc.status_code, content=error_payload(message, details=details, request_id=request_id), headers=exc.headers)
