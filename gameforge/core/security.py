from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from gameforge.config import Settings, get_settings

logger = logging.getLogger(__name__)


async def verify_cron_secret(settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None)) -> None:
  """Require ``Authorization: Bearer <cron secret>`` on privileged routes."""
  # Secure-by-default: without a configured secret nothing is authorized.
  if not settings.cron_secret:
    logger.warning("Privileged route called but no cron secret is configured")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
  expected = f"Bearer {settings.cron_secret}"
  if not secrets.compare_digest((authorization or "").encode("utf-8"), expected.encode("utf-8")):
    logger.warning("Unauthorized access attempt to a privileged route")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
