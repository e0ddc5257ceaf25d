"""Build worker: the polling scheduler that drains the job queue."""
