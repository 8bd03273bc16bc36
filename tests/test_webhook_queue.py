import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

from chatdesk.models import WebhookJob
from chatdesk.services.webhook_queue import (
    WebhookWorker,
    claim_pending_jobs,
    enqueue_webhook_job,
    mark_job_failed,
    release_stale_processing,
)


def _enqueue(db, payload=None):
    job = enqueue_webhook_job(db, payload_json=payload or {"object": "whatsapp_business_account"}, phone_number_id="PNID-1")
    db.commit()
    return job.id


class TestQueue:
    def test_claim_moves_to_processing(self, db):
        job_id = _enqueue(db)

        claimed = claim_pending_jobs(db, limit=5)

        assert [job.id for job in claimed] == [job_id]
        assert claimed[0].attempts == 1
        db.expire_all()
        assert db.get(WebhookJob, job_id).status == "PROCESSING"

    def test_claimed_job_is_not_claimed_twice(self, db):
        _enqueue(db)
        assert len(claim_pending_jobs(db)) == 1
        assert claim_pending_jobs(db) == []

    def test_future_jobs_wait(self, db):
        job_id = _enqueue(db)
        db.query(WebhookJob).filter(WebhookJob.id == job_id).update(
            {"next_attempt_at": datetime.now(timezone.utc) + timedelta(minutes=5)}
        )
        db.commit()
        assert claim_pending_jobs(db) == []

    def test_failure_reschedules_with_linear_backoff(self, db):
        job_id = _enqueue(db)
        before = datetime.now(timezone.utc)

        status = mark_job_failed(db, job_id, error="boom", attempts=2, max_attempts=3, retry_backoff_seconds=5)
        db.commit()

        assert status == "PENDING"
        db.expire_all()
        job = db.get(WebhookJob, job_id)
        assert job.last_error == "boom"
        next_attempt = job.next_attempt_at.replace(tzinfo=timezone.utc)
        assert next_attempt >= before + timedelta(seconds=9)

    def test_failure_after_max_attempts(self, db):
        job_id = _enqueue(db)
        status = mark_job_failed(db, job_id, error="boom", attempts=3, max_attempts=3, retry_backoff_seconds=5)
        db.commit()
        assert status == "FAILED"

    def test_release_stale_processing(self, db):
        job_id = _enqueue(db)
        claim_pending_jobs(db)
        db.query(WebhookJob).filter(WebhookJob.id == job_id).update(
            {"updated_at": datetime.now(timezone.utc) - timedelta(minutes=10)}
        )
        db.commit()

        assert release_stale_processing(db, older_than_seconds=300) == 1
        db.expire_all()
        assert db.get(WebhookJob, job_id).status == "PENDING"


class TestWebhookWorker:
    def test_processes_job_with_pipeline(self, db, session_factory):
        payload = {"object": "whatsapp_business_account", "entry": []}
        job_id = _enqueue(db, payload)
        pipeline = Mock()
        pipeline.process_payload.return_value = {}

        worker = WebhookWorker(session_factory, pipeline, concurrency=1)
        results = asyncio.run(worker.run_once())

        assert results == {"claimed": 1, "done": 1, "retry": 0, "failed": 0}
        assert pipeline.process_payload.call_args[0][1] == payload
        db.expire_all()
        assert db.get(WebhookJob, job_id).status == "DONE"

    def test_failing_job_is_retried(self, db, session_factory):
        job_id = _enqueue(db)
        pipeline = Mock()
        pipeline.process_payload.side_effect = RuntimeError("database went away")

        worker = WebhookWorker(session_factory, pipeline, concurrency=1, max_attempts=3)
        results = asyncio.run(worker.run_once())

        assert results["retry"] == 1
        db.expire_all()
        job = db.get(WebhookJob, job_id)
        assert job.status == "PENDING"
        assert job.attempts == 1
        assert job.last_error == "database went away"

    @patch("chatdesk.services.webhook_queue.alert_error")
    def test_exhausted_job_fails_and_alerts(self, mock_alert, db, session_factory):
        job_id = _enqueue(db)
        pipeline = Mock()
        pipeline.process_payload.side_effect = RuntimeError("still broken")

        worker = WebhookWorker(session_factory, pipeline, concurrency=1, max_attempts=1)
        results = asyncio.run(worker.run_once())

        assert results["failed"] == 1
        db.expire_all()
        assert db.get(WebhookJob, job_id).status == "FAILED"
        mock_alert.assert_called_once()

    def test_start_notify_stop(self, db, session_factory):
        pipeline = Mock()
        pipeline.process_payload.return_value = {}

        async def scenario():
            worker = WebhookWorker(session_factory, pipeline, concurrency=1, interval_seconds=5)
            assert worker.start() is True
            await asyncio.sleep(0.05)
            _enqueue(db)
            worker.notify()
            for _ in range(50):
                if pipeline.process_payload.called:
                    break
                await asyncio.sleep(0.02)
            await worker.stop()
            return worker

        worker = asyncio.run(scenario())

        assert pipeline.process_payload.called
        assert worker.is_running is False
