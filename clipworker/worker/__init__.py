"""Background worker: queue polling loop and pipeline jobs."""
