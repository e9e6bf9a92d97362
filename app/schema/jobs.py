from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Job(Base):
  __tablename__ = "jobs"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  assignment_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  progress: Mapped[str] = mapped_column(String(255), nullable=False)
  result: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class PublishJob(Base):
  __tablename__ = "publish_jobs"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  assignment_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  progress: Mapped[str] = mapped_column(String(255), nullable=False)
  percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
  result: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
