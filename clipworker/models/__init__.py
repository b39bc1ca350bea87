from clipworker.models.job import JobModel
from clipworker.models.video import Video, Transcript
from clipworker.models.clip import Clip

__all__ = [
    "JobModel",
    "Video",
    "Transcript",
    "Clip",
]
