"""
Progress Tracker for pipeline jobs.

Publishes a stage tag plus a weighted overall percentage onto the job row's
``processing_progress``. Purely observational: nothing in the queue protocol
reads it back.
"""
from dataclasses import dataclass
from typing import Callable, Optional
import time

import structlog

logger = structlog.get_logger(__name__)

ProgressReporter = Callable[[str, Optional[float]], None]


@dataclass
class ProgressStep:
    """Defines a step in the processing pipeline."""
    name: str
    description: str
    weight: float  # Relative weight of this step in overall progress


class ProgressTracker:
    """
    Tracks the current stage of one job invocation.

    Usage:
        tracker = ProgressTracker(report, job_id, [
            ProgressStep("downloading_video", "Downloading video", 0.2),
            ProgressStep("transcribing", "Transcribing audio", 0.8),
        ])
        tracker.start_step("downloading_video")
        tracker.start_step("transcribing")
    """

    def __init__(self, report: ProgressReporter, job_id: object, steps: list[ProgressStep]):
        self.report = report
        self.job_id = job_id
        self.steps = steps
        self.current_step_idx = -1
        self.step_start_time: Optional[float] = None

        total_weight = sum(s.weight for s in steps) or 1.0
        self.normalized_weights = [s.weight / total_weight for s in steps]
        self.cumulative_weights = []
        cumsum = 0.0
        for w in self.normalized_weights:
            self.cumulative_weights.append(cumsum)
            cumsum += w

    @property
    def current_step(self) -> Optional[ProgressStep]:
        if self.current_step_idx < 0:
            return None
        return self.steps[self.current_step_idx]

    def start_step(self, step_name: str) -> None:
        """Close the running step (if any) and publish the new stage."""
        for i, step in enumerate(self.steps):
            if step.name == step_name:
                break
        else:
            logger.warning("progress.unknown_step", step_name=step_name, job_id=str(self.job_id))
            return

        if self.current_step_idx >= 0:
            self._log_step_complete()
        self.current_step_idx = i
        self.step_start_time = time.monotonic()

        percent = round(self.cumulative_weights[i] * 100, 1)
        self.report(step_name, percent)
        logger.info(
            "progress.step_start",
            job_id=str(self.job_id),
            step=step_name,
            step_num=i + 1,
            total_steps=len(self.steps),
            progress=percent,
        )

    def finish(self) -> None:
        if self.current_step_idx >= 0:
            self._log_step_complete()
            self.current_step_idx = -1

    def _log_step_complete(self) -> None:
        step = self.steps[self.current_step_idx]
        elapsed = time.monotonic() - self.step_start_time if self.step_start_time else 0
        logger.info(
            "progress.step_complete",
            job_id=str(self.job_id),
            step=step.name,
            elapsed_sec=round(elapsed, 1),
        )


def create_transcription_tracker(report: ProgressReporter, job_id: object) -> ProgressTracker:
    return ProgressTracker(report, job_id, [
        ProgressStep("downloading_video", "Downloading video", 0.15),
        ProgressStep("extracting_audio", "Extracting audio", 0.15),
        ProgressStep("transcribing", "Transcribing audio", 0.60),
        ProgressStep("saving_transcript", "Saving transcript", 0.10),
    ])


def create_clip_generation_tracker(report: ProgressReporter, job_id: object) -> ProgressTracker:
    return ProgressTracker(report, job_id, [
        ProgressStep("downloading_video", "Downloading video", 0.25),
        ProgressStep("generating_clip", "Generating clip", 0.60),
        ProgressStep("uploading", "Uploading clip", 0.15),
    ])
