"""Run verification jobs on a fixed pool of persistent worker processes.

Each worker is started once in listening mode and then serves a stream of
jobs over its stdin/stdout, one JSON line per job in each direction. All
bookkeeping happens on a single asyncio event loop in this process, so the
pending-job table needs no locking even though many processes take part.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from common.errors import ProcessSetupError
from common.logging_utils import extra_context, is_debug_enabled, Timer
from constants import Constants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Job:
    """One package to verify. ``path`` is relative to the worker's cwd."""
    path: str
    strict: bool = True

    def to_wire(self) -> dict:
        return {"path": self.path, "strict": self.strict}


@dataclass(frozen=True)
class JobResult:
    """Outcome of a job: the success token or diagnostic text."""
    job: Job
    status: str

    @property
    def path(self) -> str:
        return self.job.path

    @property
    def ok(self) -> bool:
        return self.status == Constants.SUCCESS_STATUS


ResultCallback = Callable[[JobResult], None]


class _Worker:
    """A single listening worker process."""

    def __init__(self, slot: int, proc: asyncio.subprocess.Process):
        self.slot = slot
        self.proc = proc
        self._stderr: Deque[str] = deque(maxlen=Constants.STDERR_TAIL_LINES)
        self._stderr_task = asyncio.ensure_future(self._drain_stderr())

    @classmethod
    async def start(
        cls,
        slot: int,
        command: Sequence[str],
        cwd: str,
        env: Optional[Dict[str, str]],
    ) -> "_Worker":
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
                limit=Constants.WORKER_STREAM_LIMIT,
            )
        except OSError as e:
            raise ProcessSetupError(f"Could not start worker {' '.join(command)} in {cwd}: {e}") from e
        logger.debug("Started worker %d (pid %s)", slot, proc.pid)
        return cls(slot, proc)

    async def _drain_stderr(self) -> None:
        assert self.proc.stderr is not None
        while True:
            line = await self.proc.stderr.readline()
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            self._stderr.append(text)
            logger.debug("worker %d stderr: %s", self.slot, text)

    async def send(self, job: Job) -> None:
        assert self.proc.stdin is not None
        self.proc.stdin.write((json.dumps(job.to_wire()) + "\n").encode("utf-8"))
        await self.proc.stdin.drain()

    async def receive(self) -> Optional[dict]:
        """Next result message, or None once the worker's stdout closes."""
        assert self.proc.stdout is not None
        while True:
            line = await self.proc.stdout.readline()
            if not line:
                return None
            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                logger.debug("worker %d stdout: %s", self.slot, text)
                continue
            if isinstance(message, dict) and "path" in message and "status" in message:
                return message
            logger.debug("worker %d sent an unrecognized message: %s", self.slot, text)

    @property
    def exited(self) -> bool:
        """True once the process has exited or closed its stdout."""
        if self.proc.returncode is not None:
            return True
        return self.proc.stdout is not None and self.proc.stdout.at_eof()

    async def wait_exit(self) -> int:
        """Reap the process after its stdout closed and return its exit code."""
        try:
            returncode = await asyncio.wait_for(self.proc.wait(), Constants.WORKER_SHUTDOWN_GRACE_SEC)
        except asyncio.TimeoutError:
            self.kill()
            returncode = await self.proc.wait()
        await asyncio.gather(self._stderr_task, return_exceptions=True)
        return returncode

    def crash_diagnostic(self, job: Job, returncode: int) -> str:
        lines = [f"Worker exited with code {returncode} while testing {job.path}."]
        if self._stderr:
            lines.append("stderr (last lines):")
            lines.extend(self._stderr)
        return "\n".join(lines)

    def kill(self) -> None:
        if self.proc.returncode is None:
            try:
                self.proc.kill()
            except ProcessLookupError:
                pass

    async def abort(self) -> None:
        """Kill immediately and reap."""
        self.kill()
        await self.proc.wait()
        await asyncio.gather(self._stderr_task, return_exceptions=True)

    async def close(self) -> None:
        """Close stdin so the worker exits, killing it after a grace period."""
        if self.proc.stdin is not None and not self.proc.stdin.is_closing():
            self.proc.stdin.close()
        try:
            await asyncio.wait_for(self.proc.wait(), Constants.WORKER_SHUTDOWN_GRACE_SEC)
        except asyncio.TimeoutError:
            logger.warning("Worker %d did not exit after stdin closed; killing it.", self.slot)
            self.kill()
            await self.proc.wait()
        await asyncio.gather(self._stderr_task, return_exceptions=True)


class WorkerPoolScheduler:
    """Dispatches jobs to at most ``n_processes`` persistent workers.

    Dispatch is work-stealing: every slot pulls the next unclaimed job from
    a shared queue as soon as its worker is free. A worker that dies
    mid-job fails that job only; the slot starts a replacement worker for
    its next job and the failed job is not retried. A worker that exits
    with code 0 instead of answering never started the job, so the job is
    queued again once.
    """

    def __init__(
        self,
        command: Sequence[str],
        cwd: str,
        n_processes: int,
        job_timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        if n_processes < 1:
            raise ValueError("n_processes must be at least 1")
        self.command = [*command, Constants.LISTEN_FLAG]
        self.cwd = cwd
        self.n_processes = n_processes
        self.job_timeout = job_timeout
        self.env = {**os.environ, **env} if env else None
        self._queue: Deque[Job] = deque()
        self._pending: Dict[str, Job] = {}
        self._results: Dict[str, JobResult] = {}
        self._requeued: Set[str] = set()
        self._stopping = False

    def stop(self) -> None:
        """Finish in-flight jobs, then shut down without taking new ones."""
        self._stopping = True

    @property
    def unfinished(self) -> List[Job]:
        """Jobs that were submitted but never produced a result."""
        return sorted([*self._pending.values(), *self._queue], key=lambda j: j.path)

    async def run(self, jobs: Iterable[Job], on_result: Optional[ResultCallback] = None) -> List[JobResult]:
        """Run every job and return the results sorted by path.

        Raises:
            ProcessSetupError: a worker could not be started. Every other
                worker is killed and remaining jobs are abandoned.
        """
        jobs = list(jobs)
        seen: Set[str] = set()
        for job in jobs:
            if job.path in seen:
                raise ValueError(f"Duplicate job path: {job.path}")
            seen.add(job.path)

        self._queue = deque(jobs)
        self._pending = {}
        self._results = {}
        self._requeued = set()
        self._stopping = False
        n_slots = min(self.n_processes, len(jobs))
        if n_slots == 0:
            return []

        logger.info("Running %d jobs with %d worker processes.", len(jobs), n_slots)
        with Timer() as t:
            tasks = [asyncio.ensure_future(self._slot(i, on_result)) for i in range(n_slots)]
            try:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
                for task in done:
                    if task.exception() is not None:
                        raise task.exception()
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

        if is_debug_enabled(logger):
            logger.debug(
                "Worker pool finished",
                extra=extra_context(
                    event="function_exit",
                    component="scheduler",
                    action="run",
                    count=len(self._results),
                    duration_ms=t.duration_ms(),
                    outcome="stopped" if self._stopping else "completed",
                )
            )
        return sorted(self._results.values(), key=lambda r: r.path)

    def run_sync(self, jobs: Iterable[Job], on_result: Optional[ResultCallback] = None) -> List[JobResult]:
        return asyncio.run(self.run(jobs, on_result))

    async def _slot(self, slot: int, on_result: Optional[ResultCallback]) -> None:
        worker: Optional[_Worker] = None
        finished = False
        try:
            while self._queue and not self._stopping:
                if worker is not None and worker.exited:
                    logger.info("Worker %d exited between jobs; starting a replacement.", slot)
                    await worker.abort()
                    worker = None
                if worker is None:
                    worker = await _Worker.start(slot, self.command, self.cwd, self.env)
                job = self._queue.popleft()
                self._pending[job.path] = job
                result, healthy = await self._run_job(worker, job)
                del self._pending[job.path]
                if result is None:
                    self._queue.appendleft(job)
                else:
                    self._record(result, on_result)
                if not healthy:
                    await worker.abort()
                    worker = None
            finished = True
        finally:
            if worker is not None:
                if finished:
                    await worker.close()
                else:
                    await worker.abort()

    async def _run_job(self, worker: _Worker, job: Job) -> Tuple[Optional[JobResult], bool]:
        """Returns the result and whether the worker can take another job.

        The result is None when the worker shut down cleanly without
        answering; the job goes back to the queue once.
        """
        try:
            await worker.send(job)
            reply = await asyncio.wait_for(worker.receive(), self.job_timeout)
        except (BrokenPipeError, ConnectionResetError):
            reply = None
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %ss; killing worker %d.", job.path, self.job_timeout, worker.slot)
            return JobResult(job, f"Timed out after {self.job_timeout} seconds."), False
        except ValueError as e:
            # StreamReader raises ValueError when a line exceeds the limit.
            return JobResult(job, f"Unreadable worker output while testing {job.path}: {e}"), False

        if reply is None:
            returncode = await worker.wait_exit()
            if returncode == 0 and job.path not in self._requeued:
                self._requeued.add(job.path)
                logger.info("Worker %d exited cleanly before answering %s; requeueing it.", worker.slot, job.path)
                return None, False
            return JobResult(job, worker.crash_diagnostic(job, returncode)), False
        if reply["path"] != job.path:
            return JobResult(
                job, f"Worker reported a result for {reply['path']!r} while testing {job.path!r}."
            ), False
        status = reply["status"]
        if not isinstance(status, str):
            status = json.dumps(status)
        return JobResult(job, status), True

    def _record(self, result: JobResult, on_result: Optional[ResultCallback]) -> None:
        self._results[result.path] = result
        if is_debug_enabled(logger):
            logger.debug(
                "Job finished",
                extra=extra_context(
                    event="job_result",
                    component="scheduler",
                    action="record",
                    path=result.path,
                    outcome="ok" if result.ok else "failed",
                    count=len(self._results),
                )
            )
        if on_result is not None:
            on_result(result)
