from __future__ import annotations

from datetime import UTC, datetime

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gameforge.core.migrations import upgrade_database
from gameforge.jobs.models import JobRecord, JobStatus, TemplateKind
from gameforge.storage.postgres_jobs_repo import PostgresJobsRepository


def _describe(connection) -> dict:
  inspector = sa.inspect(connection)
  return {
    "tables": set(inspector.get_table_names()),
    "columns": {column["name"] for column in inspector.get_columns("generation_jobs")},
    "indexes": {index["name"] for index in inspector.get_indexes("generation_jobs")},
    "version": connection.execute(sa.text("SELECT version_num FROM alembic_version")).scalar_one(),
  }


@pytest.mark.anyio
async def test_upgrade_creates_the_ledger_and_is_repeatable(tmp_path) -> None:
  engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
  try:
    await upgrade_database(engine)
    await upgrade_database(engine)

    async with engine.connect() as connection:
      schema = await connection.run_sync(_describe)

    assert {"generation_jobs", "alembic_version"} <= schema["tables"]
    assert {"id", "prompt", "template", "priority", "config_json", "status", "result_ref", "result_json", "error_message", "created_at", "started_at", "completed_at"} <= schema["columns"]
    assert "ix_generation_jobs_status_started" in schema["indexes"]
    assert schema["version"] == "7c1e2a9f4b10"

    repo = PostgresJobsRepository(async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession))
    now = datetime(2024, 1, 1, tzinfo=UTC)
    await repo.create_job(JobRecord(id="job-1", prompt="a ninja platformer", template=TemplateKind.PLATFORMER, priority=5, status=JobStatus.PENDING, created_at=now))
    assert (await repo.claim_job("job-1", started_at=now)).status == JobStatus.PROCESSING
  finally:
    await engine.dispose()
