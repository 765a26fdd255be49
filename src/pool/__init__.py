"""Persistent worker pool for verification jobs."""

from .scheduler import Job, JobResult, WorkerPoolScheduler
from .worker import listen_main, serve_jobs

__all__ = ["Job", "JobResult", "WorkerPoolScheduler", "listen_main", "serve_jobs"]
