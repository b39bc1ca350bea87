import signal
import sys
import threading
import time
import traceback
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from clipworker.core.config import ConfigurationError, Settings, get_settings
from clipworker.core.logging import configure_logging
from clipworker.db.session import build_engine, build_session_factory
from clipworker.domain.jobs import (
    ClipStatus,
    GenerateClipPayload,
    Job,
    JobStatus,
    JobType,
    TranscribePayload,
    VideoStatus,
    decode_payload,
)
from clipworker.models import Clip, Video
from clipworker.repositories.jobs import JobQueue
from clipworker.services import telemetry
from clipworker.services.storage import build_storage_service
from clipworker.services.transcription import build_transcription_client
from clipworker.worker.context import WorkerContext
from clipworker.worker.generate_clip import process_clip_generation
from clipworker.worker.transcribe import process_transcription

logger = structlog.get_logger(__name__)

Handler = Callable[[WorkerContext, Job, Any], dict]

IDLE_LOG_EVERY = 20


class Worker:
    """Poll the shared queue and run one job at a time."""

    def __init__(self, ctx: WorkerContext, handlers: Optional[dict[str, Handler]] = None) -> None:
        self.ctx = ctx
        self.handlers: dict[str, Handler] = handlers or {
            JobType.TRANSCRIBE.value: process_transcription,
            JobType.GENERATE_CLIP.value: process_clip_generation,
        }
        self._stop = threading.Event()
        self._idle_ticks = 0

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def recover(self) -> list[Job]:
        recovered = self.ctx.queue.recover_timed_out()
        for job in recovered:
            telemetry.JOBS_RECOVERED.labels(job_type=job.type, outcome=job.status.value).inc()
            if job.status != JobStatus.FAILED:
                continue
            try:
                self._mark_dependent_error(job)
            except Exception as exc:
                # The job row is already failed; later scans will not see it again.
                logger.error(
                    "worker.dependent_error_failed",
                    job_id=str(job.id),
                    job_type=job.type,
                    error=str(exc),
                    traceback=traceback.format_exc(),
                )
        return recovered

    def run_once(self) -> bool:
        """One loop iteration. Returns True when a job was claimed and processed."""
        self.recover()
        job = self.ctx.queue.claim_next()
        if job is None:
            return False
        self._process(job)
        return True

    def _process(self, job: Job) -> None:
        telemetry.JOBS_CLAIMED.labels(job_type=job.type).inc()
        log = logger.bind(job_id=str(job.id), job_type=job.type, attempt=job.attempts)
        log.info("worker.job_start")
        started = time.monotonic()
        try:
            handler = self.handlers.get(job.type)
            if handler is None:
                raise ValueError(f"Unknown job type: {job.type}")
            payload = decode_payload(job.type, job.payload)
            result = handler(self.ctx, job, payload)
        except Exception as exc:
            log.error("worker.job_error", error=str(exc), traceback=traceback.format_exc())
            new_status = self.ctx.queue.fail(job, str(exc))
            if new_status is None:
                outcome = "lease_lost"
            elif new_status == JobStatus.FAILED:
                outcome = "failed"
                self._mark_dependent_error(job)
            else:
                outcome = "retry"
        else:
            outcome = "completed" if self.ctx.queue.complete(job, result) else "lease_lost"
        finally:
            telemetry.JOB_DURATION.labels(job_type=job.type).observe(time.monotonic() - started)

        telemetry.JOBS_FINISHED.labels(job_type=job.type, outcome=outcome).inc()
        log.info("worker.job_done", outcome=outcome, elapsed_sec=round(time.monotonic() - started, 2))

    def _mark_dependent_error(self, job: Job) -> None:
        """Surface a terminal failure on the Video or Clip the job was working on."""
        try:
            payload = decode_payload(job.type, job.payload)
        except ValidationError as exc:
            logger.warning("worker.dependent_unknown", job_id=str(job.id), job_type=job.type, error=str(exc))
            return

        with self.ctx.session_factory() as db:
            if isinstance(payload, TranscribePayload):
                entity = db.get(Video, payload.video_id)
                status = VideoStatus.ERROR.value
            elif isinstance(payload, GenerateClipPayload):
                entity = db.get(Clip, payload.clip_id)
                status = ClipStatus.ERROR.value
            else:
                return
            if entity is None:
                logger.warning("worker.dependent_missing", job_id=str(job.id), job_type=job.type)
                return
            entity.status = status
            db.commit()
        logger.info("worker.dependent_error", job_id=str(job.id), job_type=job.type, entity_id=str(entity.id))

    def run_forever(self) -> None:
        settings = self.ctx.settings
        logger.info(
            "worker.start",
            app=settings.app_name,
            env=settings.app_env,
            poll_interval=settings.poll_interval_seconds,
            busy_sleep=settings.busy_sleep_seconds,
        )
        while not self._stop.is_set():
            try:
                busy = self.run_once()
            except Exception as exc:
                logger.error("worker.loop_error", error=str(exc), traceback=traceback.format_exc())
                self._stop.wait(settings.poll_interval_seconds)
                continue

            if busy:
                self._idle_ticks = 0
                self._stop.wait(settings.busy_sleep_seconds)
            else:
                self._idle_ticks += 1
                if self._idle_ticks % IDLE_LOG_EVERY == 0:
                    logger.info("worker.idle", msg="no pending jobs found")
                self._stop.wait(settings.poll_interval_seconds)
        logger.info("worker.stopped")


def build_worker(settings: Settings) -> Worker:
    engine = build_engine(settings.database_url)
    session_factory = build_session_factory(engine)
    queue = JobQueue(
        session_factory,
        transcribe_lease_seconds=settings.transcribe_lease_seconds,
        clip_lease_seconds=settings.clip_lease_seconds,
    )
    ctx = WorkerContext(
        settings=settings,
        session_factory=session_factory,
        storage=build_storage_service(settings),
        transcriber=build_transcription_client(settings),
        queue=queue,
    )
    return Worker(ctx)


def _handle_signal(signum, frame):
    # Leave immediately; the lease expires and another worker recovers the job.
    logger.info("worker.signal", signal=signal.Signals(signum).name)
    raise SystemExit(0)


def main() -> None:
    configure_logging()
    try:
        settings = get_settings()
    except (ConfigurationError, ValidationError) as exc:
        logger.error("worker.config_invalid", error=str(exc))
        sys.exit(1)

    configure_logging(settings.log_level, settings.log_json)
    telemetry.start_metrics_server(settings)
    worker = build_worker(settings)

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    worker.run_forever()


if __name__ == "__main__":
    main()
