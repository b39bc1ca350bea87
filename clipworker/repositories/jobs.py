"""
Job queue backed by the shared ``jobs`` table.

A lease is a deadline (``timeout_at``) plus a per-claim ``lease_token`` written
into the row by a conditional UPDATE. The row's own atomic update is the only
concurrency control: at most one worker's ``status = 'pending'`` guarded
update can succeed per pending period, and every later write from the lease
holder is guarded by its token so a run whose lease was recovered cannot
overwrite the row after the fact.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from clipworker.domain.jobs import Job, JobStatus, JobType, decode_payload
from clipworker.models.common import utcnow
from clipworker.models.job import JobModel

logger = structlog.get_logger(__name__)

TIMEOUT_ERROR = "Job timed out"


class JobQueue:
    """Claim, lease, recover, and settle jobs for one worker process."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        transcribe_lease_seconds: int = 600,
        clip_lease_seconds: int = 300,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._leases = {
            JobType.TRANSCRIBE.value: timedelta(seconds=transcribe_lease_seconds),
            JobType.GENERATE_CLIP.value: timedelta(seconds=clip_lease_seconds),
        }
        self._default_lease = timedelta(seconds=clip_lease_seconds)
        self._clock = clock or utcnow

    def lease_duration(self, job_type: str) -> timedelta:
        return self._leases.get(job_type, self._default_lease)

    def enqueue(
        self,
        job_type: JobType | str,
        payload: dict[str, Any],
        *,
        max_attempts: int = 3,
    ) -> Job:
        """Insert a pending job; the payload must decode for the given type."""

        type_value = JobType(job_type).value
        decoded = decode_payload(type_value, payload)
        now = self._clock()
        with self._session_factory() as session:
            model = JobModel(
                type=type_value,
                payload=decoded.model_dump(mode="json", exclude={"type"}),
                status=JobStatus.PENDING.value,
                attempts=0,
                max_attempts=max_attempts,
                created_at=now,
                updated_at=now,
            )
            session.add(model)
            session.commit()
            logger.info("queue.enqueued", job_id=str(model.id), job_type=type_value)
            return Job.model_validate(model)

    def get(self, job_id: UUID) -> Optional[Job]:
        with self._session_factory() as session:
            model = session.get(JobModel, job_id)
            return Job.model_validate(model) if model else None

    def next_pending(self) -> Optional[tuple[UUID, str]]:
        """Return (id, type) of the oldest pending job, if any."""

        with self._session_factory() as session:
            row = session.execute(
                select(JobModel.id, JobModel.type)
                .where(JobModel.status == JobStatus.PENDING.value)
                .order_by(JobModel.created_at.asc(), JobModel.id.asc())
                .limit(1)
            ).first()
        if row is None:
            return None
        return row.id, row.type

    def try_claim(self, job_id: UUID, job_type: str) -> Optional[Job]:
        """Move one pending job to processing; None when another worker won the race."""

        now = self._clock()
        token = uuid4().hex
        with self._session_factory() as session:
            result = session.execute(
                update(JobModel)
                .where(
                    JobModel.id == job_id,
                    JobModel.status == JobStatus.PENDING.value,
                )
                .values(
                    status=JobStatus.PROCESSING.value,
                    attempts=JobModel.attempts + 1,
                    timeout_at=now + self.lease_duration(job_type),
                    lease_token=token,
                    processing_progress={"stage": "starting"},
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                logger.debug("queue.claim_miss", job_id=str(job_id))
                return None
            session.commit()
            model = session.get(JobModel, job_id)
            job = Job.model_validate(model)

        logger.info(
            "queue.claimed",
            job_id=str(job.id),
            job_type=job.type,
            attempt=job.attempts,
            max_attempts=job.max_attempts,
            timeout_at=job.timeout_at.isoformat() if job.timeout_at else None,
        )
        return job

    def claim_next(self) -> Optional[Job]:
        candidate = self.next_pending()
        if candidate is None:
            return None
        job_id, job_type = candidate
        return self.try_claim(job_id, job_type)

    def recover_timed_out(self) -> list[Job]:
        """
        Return expired leases to the queue, or fail them when attempts are spent.

        Attempts are not incremented here; the claim already counted this
        attempt. Only the jobs this call actually transitioned are returned.
        """

        now = self._clock()
        recovered: list[Job] = []
        with self._session_factory() as session:
            expired = session.execute(
                select(JobModel).where(
                    JobModel.status == JobStatus.PROCESSING.value,
                    JobModel.timeout_at.is_not(None),
                    JobModel.timeout_at < now,
                )
            ).scalars().all()

            for model in expired:
                snapshot = Job.model_validate(model)
                new_status = JobStatus.PENDING if snapshot.retries_left else JobStatus.FAILED
                result = session.execute(
                    update(JobModel)
                    .where(
                        JobModel.id == snapshot.id,
                        JobModel.status == JobStatus.PROCESSING.value,
                        JobModel.timeout_at < now,
                    )
                    .values(
                        status=new_status.value,
                        error=TIMEOUT_ERROR,
                        result=None,
                        processing_progress={"stage": "timeout"},
                        timeout_at=None,
                        lease_token=None,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                session.commit()
                if result.rowcount != 1:
                    continue

                logger.warning(
                    "queue.lease_expired",
                    job_id=str(snapshot.id),
                    job_type=snapshot.type,
                    attempts=snapshot.attempts,
                    max_attempts=snapshot.max_attempts,
                    new_status=new_status.value,
                )
                recovered.append(
                    snapshot.model_copy(
                        update={
                            "status": new_status,
                            "error": TIMEOUT_ERROR,
                            "processing_progress": {"stage": "timeout"},
                            "timeout_at": None,
                            "lease_token": None,
                            "updated_at": now,
                        }
                    )
                )
        return recovered

    def _settle(self, job: Job, values: dict[str, Any]) -> bool:
        now = self._clock()
        with self._session_factory() as session:
            result = session.execute(
                update(JobModel)
                .where(
                    JobModel.id == job.id,
                    JobModel.status == JobStatus.PROCESSING.value,
                    JobModel.lease_token == job.lease_token,
                )
                .values(timeout_at=None, lease_token=None, updated_at=now, **values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        if result.rowcount != 1:
            logger.warning("queue.lease_lost", job_id=str(job.id), job_type=job.type, attempt=job.attempts)
            return False
        return True

    def complete(self, job: Job, result: dict[str, Any]) -> bool:
        """Record success. False when the lease was already recovered elsewhere."""

        settled = self._settle(
            job,
            {
                "status": JobStatus.COMPLETED.value,
                "result": result,
                "error": None,
                "processing_progress": {"stage": "done"},
            },
        )
        if settled:
            logger.info("queue.completed", job_id=str(job.id), job_type=job.type)
        return settled

    def fail(self, job: Job, error: str) -> Optional[JobStatus]:
        """
        Record a failed attempt.

        Returns ``pending`` when the job will be retried, ``failed`` when its
        attempts are exhausted, or None when the lease was lost.
        """

        new_status = JobStatus.PENDING if job.retries_left else JobStatus.FAILED
        settled = self._settle(
            job,
            {
                "status": new_status.value,
                "result": None,
                "error": error,
                "processing_progress": {"stage": "error", "message": error[:500]},
            },
        )
        if not settled:
            return None
        logger.info(
            "queue.failed",
            job_id=str(job.id),
            job_type=job.type,
            attempt=job.attempts,
            max_attempts=job.max_attempts,
            new_status=new_status.value,
        )
        return new_status

    def record_progress(self, job: Job, stage: str, percent: Optional[float] = None) -> None:
        progress: dict[str, Any] = {"stage": stage}
        if percent is not None:
            progress["percent"] = percent
        with self._session_factory() as session:
            result = session.execute(
                update(JobModel)
                .where(
                    JobModel.id == job.id,
                    JobModel.status == JobStatus.PROCESSING.value,
                    JobModel.lease_token == job.lease_token,
                )
                .values(processing_progress=progress, updated_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            session.commit()
        if result.rowcount != 1:
            logger.debug("queue.progress_dropped", job_id=str(job.id), stage=stage)
