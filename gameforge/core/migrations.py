"""Alembic configuration shared by env.py and the migration runner."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from alembic import command
from alembic.config import Config
from sqlalchemy import MetaData
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine

from gameforge.core.database import dispose_engine, get_db_engine

logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"
SCRIPT_LOCATION = ALEMBIC_INI.parent / "alembic"


def build_migration_context_options(*, target_metadata: MetaData) -> dict[str, Any]:
  """Centralize Alembic options so autogenerate and upgrades compare the same way."""
  return {
    "compare_type": True,
    "compare_server_default": True,
    "transaction_per_migration": True,
    "target_metadata": target_metadata,
  }


def alembic_config(connection: Connection | None = None) -> Config:
  config = Config(str(ALEMBIC_INI))
  config.set_main_option("script_location", str(SCRIPT_LOCATION))
  # env.py reuses this connection instead of opening its own engine.
  if connection is not None:
    config.attributes["connection"] = connection
  return config


def _upgrade_sync(connection: Connection, revision: str) -> None:
  command.upgrade(alembic_config(connection), revision)


async def upgrade_database(engine: AsyncEngine | None = None, *, revision: str = "head") -> None:
  """Apply Alembic migrations up to ``revision`` on the configured database."""
  db_engine = engine or get_db_engine()
  if db_engine is None:
    raise RuntimeError("Database connection is not configured (GAMEFORGE_PG_DSN is missing).")

  logger.info("Running alembic upgrade %s", revision)
  async with db_engine.begin() as connection:
    await connection.run_sync(_upgrade_sync, revision)
  logger.info("Database schema is at %s", revision)


async def _main() -> None:
  try:
    await upgrade_database()
  finally:
    await dispose_engine()


def main() -> None:
  """Run migrations from the command line: ``python -m gameforge.core.migrations``."""
  logging.basicConfig(level=logging.INFO)
  asyncio.run(_main())


if __name__ == "__main__":
  main()
