"""Durable intake queue for webhook payloads and the worker that drains it."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy import or_, text
from sqlalchemy.orm import Session

from chatdesk.database import dialect_name
from chatdesk.logging_config import get_logger
from chatdesk.models import WebhookJob
from chatdesk.services.alert_service import alert_error

logger = get_logger("webhook_queue")


@dataclass(frozen=True)
class ClaimedJob:
    id: uuid.UUID
    payload_json: dict[str, Any]
    attempts: int


def enqueue_webhook_job(db: Session, *, payload_json: dict[str, Any], phone_number_id: Optional[str]) -> WebhookJob:
    now = datetime.now(timezone.utc)
    job = WebhookJob(
        id=uuid.uuid4(),
        phone_number_id=phone_number_id,
        payload_json=payload_json,
        status="PENDING",
        attempts=0,
        next_attempt_at=now,
        created_at=now,
        updated_at=now,
    )
    db.add(job)
    db.flush()
    return job


def _claim_pending_postgres(db: Session, limit: int) -> list[ClaimedJob]:
    rows = (
        db.execute(
            text(
                """
                WITH cte AS (
                    SELECT id
                    FROM webhook_jobs
                    WHERE status = 'PENDING'
                      AND (next_attempt_at IS NULL OR next_attempt_at <= NOW())
                    ORDER BY created_at
                    LIMIT :limit
                    FOR UPDATE SKIP LOCKED
                )
                UPDATE webhook_jobs
                SET status = 'PROCESSING',
                    attempts = attempts + 1,
                    updated_at = NOW()
                FROM cte
                WHERE webhook_jobs.id = cte.id
                RETURNING webhook_jobs.id,
                          webhook_jobs.payload_json,
                          webhook_jobs.attempts
                """
            ),
            {"limit": limit},
        )
        .mappings()
        .all()
    )
    return [ClaimedJob(id=row["id"], payload_json=row["payload_json"], attempts=row["attempts"]) for row in rows]


def _claim_pending_generic(db: Session, limit: int) -> list[ClaimedJob]:
    now = datetime.now(timezone.utc)
    jobs = (
        db.query(WebhookJob)
        .filter(
            WebhookJob.status == "PENDING",
            or_(WebhookJob.next_attempt_at.is_(None), WebhookJob.next_attempt_at <= now),
        )
        .order_by(WebhookJob.created_at.asc())
        .limit(limit)
        .all()
    )
    claimed = []
    for job in jobs:
        job.status = "PROCESSING"
        job.attempts = (job.attempts or 0) + 1
        job.updated_at = now
        claimed.append(ClaimedJob(id=job.id, payload_json=job.payload_json, attempts=job.attempts))
    db.flush()
    return claimed


def claim_pending_jobs(db: Session, *, limit: int = 10) -> list[ClaimedJob]:
    """Move due PENDING jobs to PROCESSING and return them."""
    if dialect_name(db) == "postgresql":
        claimed = _claim_pending_postgres(db, limit)
    else:
        claimed = _claim_pending_generic(db, limit)
    db.commit()
    return claimed


def mark_job_done(db: Session, job_id) -> None:
    db.query(WebhookJob).filter(WebhookJob.id == job_id).update(
        {"status": "DONE", "last_error": None, "updated_at": datetime.now(timezone.utc)},
        synchronize_session=False,
    )


def mark_job_failed(
    db: Session,
    job_id,
    *,
    error: str,
    attempts: int,
    max_attempts: int,
    retry_backoff_seconds: float,
) -> str:
    now = datetime.now(timezone.utc)
    if attempts >= max_attempts:
        status = "FAILED"
        next_attempt_at = None
    else:
        status = "PENDING"
        next_attempt_at = now + timedelta(seconds=retry_backoff_seconds * attempts)
    db.query(WebhookJob).filter(WebhookJob.id == job_id).update(
        {
            "status": status,
            "last_error": error[:2000],
            "next_attempt_at": next_attempt_at,
            "updated_at": now,
        },
        synchronize_session=False,
    )
    return status


def release_stale_processing(db: Session, *, older_than_seconds: int = 300) -> int:
    """Return jobs stuck in PROCESSING (worker crash) to the queue."""
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=older_than_seconds)
    count = (
        db.query(WebhookJob)
        .filter(WebhookJob.status == "PROCESSING", WebhookJob.updated_at < cutoff)
        .update({"status": "PENDING", "updated_at": datetime.now(timezone.utc)}, synchronize_session=False)
    )
    db.commit()
    return count


class WebhookWorker:
    """Drains webhook_jobs with a bounded pool of worker threads.

    Each job runs in its own thread with its own session. A semaphore caps how
    many run at once, so one tenant's burst queues behind the cap instead of
    monopolizing the process.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        pipeline,
        *,
        concurrency: int = 10,
        interval_seconds: float = 1.0,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 5.0,
    ):
        self.session_factory = session_factory
        self.pipeline = pipeline
        self.concurrency = max(concurrency, 1)
        self.interval_seconds = max(interval_seconds, 0.05)
        self.max_attempts = max(max_attempts, 1)
        self.retry_backoff_seconds = retry_backoff_seconds
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._wakeup: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        if self.is_running:
            return False
        self._stop_event = asyncio.Event()
        self._wakeup = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info("Webhook worker started", extra={"context": {"concurrency": self.concurrency}})
        return True

    def notify(self) -> None:
        """Wake the loop after a new job is enqueued."""
        if self._wakeup is not None:
            self._wakeup.set()

    async def stop(self, timeout: float = 30.0) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self.notify()
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
        logger.info("Webhook worker stopped")

    async def _loop(self) -> None:
        db = self.session_factory()
        try:
            released = release_stale_processing(db)
            if released:
                logger.warning("Released stale webhook jobs", extra={"context": {"count": released}})
        except Exception as exc:
            logger.error("Stale job release failed", extra={"context": {"error": str(exc)}})
        finally:
            db.close()

        while not self._stop_event.is_set():
            try:
                results = await self.run_once()
                if results["claimed"]:
                    logger.info("Webhook worker processed", extra={"context": results})
                    continue
            except Exception as exc:
                logger.error("Webhook worker loop failed", extra={"context": {"error": str(exc)}})
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()

    async def run_once(self) -> dict[str, int]:
        db = self.session_factory()
        try:
            jobs = claim_pending_jobs(db, limit=self.concurrency * 2)
        finally:
            db.close()

        results = {"claimed": len(jobs), "done": 0, "retry": 0, "failed": 0}
        if not jobs:
            return results

        statuses = await asyncio.gather(*(self._run_job(job) for job in jobs))
        for status in statuses:
            if status == "DONE":
                results["done"] += 1
            elif status == "PENDING":
                results["retry"] += 1
            else:
                results["failed"] += 1
        return results

    async def _run_job(self, job: ClaimedJob) -> str:
        async with self._semaphore:
            return await asyncio.to_thread(self.process_job, job)

    def process_job(self, job: ClaimedJob) -> str:
        db = self.session_factory()
        try:
            try:
                self.pipeline.process_payload(db, job.payload_json)
                mark_job_done(db, job.id)
                db.commit()
                return "DONE"
            except Exception as exc:
                db.rollback()
                status = mark_job_failed(
                    db,
                    job.id,
                    error=str(exc) or exc.__class__.__name__,
                    attempts=job.attempts,
                    max_attempts=self.max_attempts,
                    retry_backoff_seconds=self.retry_backoff_seconds,
                )
                db.commit()
                logger.error(
                    "Webhook job failed",
                    extra={"context": {"job_id": str(job.id), "attempts": job.attempts, "status": status}},
                )
                if status == "FAILED":
                    alert_error("Webhook job exhausted retries", {"job_id": str(job.id), "error": str(exc)})
                return status
        finally:
            db.close()
