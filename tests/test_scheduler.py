"""Tests for WorkerPoolScheduler against real listening worker processes."""

import asyncio
import sys
from pathlib import Path

import pytest

from common.errors import ProcessSetupError
from pool.scheduler import Job, JobResult, WorkerPoolScheduler

ROOT = Path(__file__).resolve().parent.parent
CHECKER = [sys.executable, str(ROOT / "tests" / "fixtures" / "fake_checker.py")]
ONE_SHOT_CHECKER = [sys.executable, str(ROOT / "tests" / "fixtures" / "one_shot_checker.py")]
ENV = {"PYTHONPATH": str(ROOT / "src")}


def _scheduler(n_processes, **kwargs):
    return WorkerPoolScheduler(CHECKER, str(ROOT), n_processes, env=ENV, **kwargs)


def _outcomes(results):
    return [(r.path, r.ok) for r in results]


class TestWorkerPoolScheduler:
    def test_all_jobs_pass(self):
        jobs = [Job(f"pkg{i}") for i in range(5, 0, -1)]
        results = _scheduler(2).run_sync(jobs)
        assert _outcomes(results) == [(f"pkg{i}", True) for i in range(1, 6)]
        assert all(r.status == "OK" for r in results)

    def test_crash_fails_only_that_job(self):
        jobs = [Job("job1"), Job("job2-crash"), Job("job3")]
        results = _scheduler(2).run_sync(jobs)
        assert _outcomes(results) == [("job1", True), ("job2-crash", False), ("job3", True)]
        crash = results[1]
        assert "exited with code 3" in crash.status
        assert "checker exploding on job2-crash" in crash.status

    def test_replacement_worker_after_crash(self):
        jobs = [Job("a-crash"), Job("b"), Job("c-crash"), Job("d")]
        results = _scheduler(1).run_sync(jobs)
        assert _outcomes(results) == [("a-crash", False), ("b", True), ("c-crash", False), ("d", True)]

    def test_same_outcomes_for_any_pool_size(self):
        jobs = [Job(name) for name in ["a", "b-fail", "c", "d-crash", "e", "f-fail", "g", "h", "i-slow"]]
        one = _scheduler(1).run_sync(jobs)
        eight = _scheduler(8).run_sync(jobs)
        assert _outcomes(one) == _outcomes(eight)
        assert [r.status for r in one if "fail" in r.path] == [r.status for r in eight if "fail" in r.path]
        assert len(one) == len(jobs)

    def test_strict_flag_reaches_worker(self):
        results = _scheduler(1).run_sync([Job("x-fail", strict=False), Job("y-fail", strict=True)])
        assert results[0].status == "x-fail: error TS2322 (strict=False)"
        assert results[1].status == "y-fail: error TS2322 (strict=True)"

    def test_non_protocol_output_ignored(self):
        results = _scheduler(1).run_sync([Job("noisy"), Job("quiet")])
        assert _outcomes(results) == [("noisy", True), ("quiet", True)]

    def test_job_timeout_kills_worker(self):
        results = _scheduler(1, job_timeout=1.0).run_sync([Job("a-hang"), Job("b")])
        assert _outcomes(results) == [("a-hang", False), ("b", True)]
        assert "Timed out" in results[0].status

    def test_worker_exiting_between_jobs_is_replaced(self):
        scheduler = WorkerPoolScheduler(ONE_SHOT_CHECKER, str(ROOT), 1, env=ENV)
        results = scheduler.run_sync([Job("a"), Job("b"), Job("c")])
        assert [(r.path, r.status) for r in results] == [("a", "OK"), ("b", "OK"), ("c", "OK")]
        assert scheduler.unfinished == []

    def test_on_result_called_once_per_job(self):
        seen = []
        jobs = [Job(f"p{i}") for i in range(6)]
        _scheduler(3).run_sync(jobs, on_result=seen.append)
        assert sorted(r.path for r in seen) == sorted(j.path for j in jobs)

    def test_stop_leaves_queued_jobs_unfinished(self):
        scheduler = _scheduler(1)

        def stop_after_first(result):
            scheduler.stop()

        results = scheduler.run_sync([Job("a"), Job("b"), Job("c")], on_result=stop_after_first)
        assert _outcomes(results) == [("a", True)]
        assert [j.path for j in scheduler.unfinished] == ["b", "c"]

    def test_missing_executable(self, tmp_path):
        scheduler = WorkerPoolScheduler([str(tmp_path / "no-such-checker")], str(tmp_path), 2)
        with pytest.raises(ProcessSetupError):
            scheduler.run_sync([Job("a"), Job("b")])

    def test_missing_cwd(self, tmp_path):
        scheduler = WorkerPoolScheduler(CHECKER, str(tmp_path / "missing"), 1, env=ENV)
        with pytest.raises(ProcessSetupError):
            scheduler.run_sync([Job("a")])

    def test_duplicate_paths_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            _scheduler(1).run_sync([Job("a"), Job("a", strict=False)])

    def test_no_jobs(self):
        assert _scheduler(4).run_sync([]) == []

    def test_invalid_pool_size(self):
        with pytest.raises(ValueError):
            WorkerPoolScheduler(CHECKER, str(ROOT), 0)

    def test_run_inside_event_loop(self):
        async def _go():
            return await _scheduler(2).run([Job("a"), Job("b-fail")])

        results = asyncio.run(_go())
        assert _outcomes(results) == [("a", True), ("b-fail", False)]


class TestJobResult:
    def test_ok_only_for_success_token(self):
        assert JobResult(Job("a"), "OK").ok
        assert not JobResult(Job("a"), "ok").ok
        assert not JobResult(Job("a"), "").ok
        assert Job("a").to_wire() == {"path": "a", "strict": True}
