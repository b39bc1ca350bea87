"""Background worker that turns uploaded videos into captioned vertical clips."""

__version__ = "0.1.0"
