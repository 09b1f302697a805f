from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from gameforge.core.database import Base

_JSON_DOCUMENT = JSONB().with_variant(JSON(), "sqlite")


class GenerationJob(Base):
  __tablename__ = "generation_jobs"
  __table_args__ = (Index("ix_generation_jobs_status_started", "status", "started_at"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  prompt: Mapped[str] = mapped_column(Text, nullable=False)
  template: Mapped[str] = mapped_column(String, nullable=False)
  user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  priority: Mapped[int] = mapped_column(Integer, nullable=False)
  config_json: Mapped[dict] = mapped_column(_JSON_DOCUMENT, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  result_ref: Mapped[str | None] = mapped_column(String, nullable=True)
  result_json: Mapped[dict | None] = mapped_column(_JSON_DOCUMENT, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
  started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
