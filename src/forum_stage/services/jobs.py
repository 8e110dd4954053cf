"""Deferred jobs stored in the ``deferred_jobs`` outbox table."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from forum_stage.db.time import utcnow
from forum_stage.models import DeferredJob, Topic, User
from forum_stage.models.deferred_job import (
    JOB_STATUS_DONE,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
)
from forum_stage.services.content import ContentService

logger = logging.getLogger(__name__)

JobHandler = Callable[[Session, dict[str, Any]], None]

# Jobs are retried until they fail this many times.
MAX_ATTEMPTS = 5


class JobScheduler:
    """Schedules work to run after a delay and executes due jobs."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def enqueue_in(self, delay: timedelta | int, job_name: str, **payload: Any) -> DeferredJob:
        """Schedule ``job_name`` to run after ``delay`` (seconds or timedelta)."""
        if isinstance(delay, int):
            delay = timedelta(seconds=delay)
        return self.enqueue_at(utcnow() + delay, job_name, **payload)

    def enqueue_at(self, run_at: datetime, job_name: str, **payload: Any) -> DeferredJob:
        job = DeferredJob(job_name=job_name, payload=payload, run_at=run_at)
        self.db.add(job)
        self.db.flush()
        logger.debug("Scheduled %s at %s", job_name, run_at.isoformat())
        return job

    def pending(self, job_name: str | None = None) -> list[DeferredJob]:
        query = self.db.query(DeferredJob).filter(DeferredJob.status == JOB_STATUS_PENDING)
        if job_name is not None:
            query = query.filter(DeferredJob.job_name == job_name)
        return query.order_by(DeferredJob.run_at, DeferredJob.id).all()

    def run_due(self, handlers: dict[str, JobHandler], now: datetime | None = None) -> int:
        """Execute pending jobs whose ``run_at`` has passed; returns how many succeeded."""
        now = now or utcnow()
        due = (
            self.db.query(DeferredJob)
            .filter(DeferredJob.status == JOB_STATUS_PENDING, DeferredJob.run_at <= now)
            .order_by(DeferredJob.run_at, DeferredJob.id)
            .all()
        )
        succeeded = 0
        for job in due:
            handler = handlers.get(job.job_name)
            if handler is None:
                logger.warning("No handler registered for job %s", job.job_name)
                continue
            try:
                handler(self.db, dict(job.payload or {}))
            except Exception:
                self.db.rollback()
                job.attempts += 1
                if job.attempts >= MAX_ATTEMPTS:
                    job.status = JOB_STATUS_FAILED
                logger.exception("Job %s (%s) failed", job.id, job.job_name)
            else:
                job.status = JOB_STATUS_DONE
                succeeded += 1
            self.db.commit()
        return succeeded


def open_topic(db: Session, payload: dict[str, Any]) -> None:
    """Reopen a topic that was closed automatically."""
    topic = db.get(Topic, payload["topic_id"])
    if topic is None or not topic.closed:
        return
    topic.closed = False
    topic.auto_open_at = None
    logger.info("Reopened topic %s after flag cool-down", topic.id)


def send_system_message(db: Session, payload: dict[str, Any]) -> None:
    """Deliver a delayed system message such as the hidden-post notice."""
    recipient = db.get(User, payload["user_id"])
    if recipient is None:
        logger.warning("Skipping system message for missing user %s", payload["user_id"])
        return
    ContentService(db).send_system_message(
        recipient, payload["message_type"], payload.get("message_options") or {}
    )


DEFAULT_HANDLERS: dict[str, JobHandler] = {
    "open_topic": open_topic,
    "send_system_message": send_system_message,
}
