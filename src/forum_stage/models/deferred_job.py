"""SQLAlchemy model for jobs scheduled to run later."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, VARCHAR, DateTime, Index, Integer, SmallInteger, Text
from sqlalchemy.orm import Mapped, mapped_column

from forum_stage.db.session import Base
from forum_stage.db.time import utcnow

JOB_STATUS_PENDING = "pending"
JOB_STATUS_DONE = "done"
JOB_STATUS_FAILED = "failed"


class DeferredJob(Base):
    """Outbox row picked up by the job runner once ``run_at`` has passed."""

    __tablename__ = "deferred_jobs"
    __table_args__ = (Index("ix_deferred_jobs_status_run_at", "status", "run_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_name: Mapped[str] = mapped_column(Text, nullable=False)  # e.g. 'send_system_message'
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        VARCHAR(20), nullable=False, default=JOB_STATUS_PENDING
    )  # 'pending', 'done', 'failed'
    attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
