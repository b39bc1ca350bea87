from .jobs import TIMEOUT_ERROR, JobQueue

__all__ = ["JobQueue", "TIMEOUT_ERROR"]
