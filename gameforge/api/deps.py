from __future__ import annotations

from fastapi import Request, Response

from gameforge.cache.rate_limit import RateLimitDecision
from gameforge.core.errors import RateLimitError
from gameforge.services.container import Services


def get_services(request: Request) -> Services:
  """Return the service graph built by the lifespan handler."""
  return request.app.state.services


def client_identity(request: Request, user_id: str | None) -> str:
  """Rate-limit identity: the user id, else the first forwarded address, else the peer address."""
  if user_id:
    return f"user:{user_id}"
  forwarded = request.headers.get("x-forwarded-for")
  if forwarded:
    first = forwarded.split(",")[0].strip()
    if first:
      return f"ip:{first}"
  real_ip = request.headers.get("x-real-ip")
  if real_ip:
    return f"ip:{real_ip.strip()}"
  if request.client is not None:
    return f"ip:{request.client.host}"
  return "ip:unknown"


async def enforce_rate_limit(request: Request, response: Response, services: Services, user_id: str | None) -> tuple[str, RateLimitDecision]:
  """Consume one request from the caller's window, set the rate-limit headers, and raise when blocked."""
  identity = client_identity(request, user_id)
  decision = await services.rate_limiter.check_and_consume(identity, services.settings.rate_limit_per_window)
  response.headers["x-ratelimit-remaining"] = str(decision.remaining)
  response.headers["x-ratelimit-reset"] = decision.reset_at.isoformat()
  if not decision.allowed:
    raise RateLimitError(f"Rate limit exceeded. Try again after {decision.reset_at.isoformat()}", reset_at=decision.reset_at)
  return identity, decision
