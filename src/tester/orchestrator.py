"""Sequence a test run: diff, removal checks, affected set, install, run, report.

A run moves through ``RunState`` in order and never re-enters a state. Any
fatal error moves the run to FAILED and propagates to the caller, so
nothing is installed or run once validation or resolution has failed.
"""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from affected.removals import validate_removals
from affected.resolver import Affected, ReverseDependencyIndex, all_dependencies, get_affected_packages
from catalog.packages import PackageCatalog
from changes.classifier import ChangeSet, git_changes
from changes.git_diff import GitDiffSource
from common.logging_utils import extra_context, is_debug_enabled, Timer
from constants import Selection
from pool.scheduler import Job, JobResult, WorkerPoolScheduler
from registry.npm.client import CachedNpmInfoClient, NpmInfoClient
from tester.config import TesterConfig
from tester.install import DependencyInstaller

logger = logging.getLogger(__name__)

NOT_RUN_STATUS = "Not run: the worker pool was stopped before this job started."


class RunState(Enum):
    """States of a test run, in order."""
    IDLE = "idle"
    RESOLVING_DIFF = "resolving_diff"
    VALIDATING_REMOVALS = "validating_removals"
    RESOLVING_AFFECTED = "resolving_affected"
    INSTALLING = "installing"
    RUNNING = "running"
    REPORTING = "reporting"
    SUCCESS = "success"
    FAILED = "failed"


_ORDER = list(RunState)


@dataclass
class RunReport:
    """Outcome of a run. Failures are ordered by job path."""
    state: RunState
    affected: Affected
    results: List[JobResult] = field(default_factory=list)
    unfinished: List[Job] = field(default_factory=list)

    @property
    def failures(self) -> List[JobResult]:
        failed = [r for r in self.results if not r.ok]
        failed.extend(JobResult(job, NOT_RUN_STATUS) for job in self.unfinished)
        return sorted(failed, key=lambda r: r.path)

    @property
    def ok(self) -> bool:
        return not self.failures

    def format_failures(self) -> str:
        if self.ok:
            return ""
        lines = ["", "", "=== ERRORS ===", ""]
        for failure in self.failures:
            lines.append("")
            lines.append(f"Error in {failure.path}")
            lines.append(failure.status)
        lines.append("")
        lines.append("The following packages had errors: " + ", ".join(f.path for f in self.failures))
        return "\n".join(lines)


def _describe(affected: Affected) -> None:
    changed = affected.changed_packages
    dependent = affected.dependent_packages
    logger.info("Testing %d changed packages: %s", len(changed), ", ".join(r.desc for r in changed))
    logger.info("Testing %d dependent packages: %s", len(dependent), ", ".join(r.desc for r in dependent))


class TestOrchestrator:
    """Runs one test pass over the packages a change affects.

    Collaborators default to the real implementations built from the
    config and can be injected for tests.
    """

    __test__ = False

    def __init__(
        self,
        config: TesterConfig,
        catalog: Optional[PackageCatalog] = None,
        diff_source=None,
        npm_client=None,
        installer: Optional[DependencyInstaller] = None,
        scheduler_factory: Optional[Callable[[TesterConfig], WorkerPoolScheduler]] = None,
    ):
        self.config = config
        self._catalog = catalog
        self._diff_source = diff_source
        self._npm_client = npm_client
        self._installer = installer
        self._scheduler_factory = scheduler_factory or _default_scheduler
        self._scheduler: Optional[WorkerPoolScheduler] = None
        self._state = RunState.IDLE

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def catalog(self) -> PackageCatalog:
        if self._catalog is None:
            self._catalog = PackageCatalog.read(self.config.types_data_file, self.config.not_needed_file)
        return self._catalog

    def stop(self) -> None:
        """Let in-flight jobs finish and leave the rest unrun."""
        if self._scheduler is not None:
            self._scheduler.stop()

    def _transition(self, new_state: RunState) -> None:
        if new_state is not RunState.FAILED and _ORDER.index(new_state) <= _ORDER.index(self._state):
            raise RuntimeError(f"Cannot move from {self._state.value} to {new_state.value}")
        if is_debug_enabled(logger):
            logger.debug(
                "Run state change",
                extra=extra_context(
                    event="state_change",
                    component="orchestrator",
                    action="transition",
                    state=new_state.value,
                    previous=self._state.value,
                )
            )
        self._state = new_state

    def _uses_diff(self) -> bool:
        return self.config.pattern is None and self.config.selection is not Selection.ALL

    def _resolve_diff(self) -> ChangeSet:
        source = self._diff_source or GitDiffSource(self.config.definitely_typed_path, self.config.base_branch)
        return git_changes(source.diff())

    def _validate_removals(self, change_set: ChangeSet) -> None:
        if not change_set.deleted:
            return
        if self.config.skip_registry_check:
            validate_removals(self.catalog, change_set.deleted, None)
            return
        with ExitStack() as stack:
            client = self._npm_client
            if client is None:
                client = stack.enter_context(
                    CachedNpmInfoClient(NpmInfoClient(self.config.registry_url), self.config.npm_cache_file)
                )
            validate_removals(self.catalog, change_set.deleted, client)

    def _resolve_affected(self, change_set: Optional[ChangeSet]) -> Affected:
        catalog = self.catalog
        if self.config.pattern is not None:
            regex = re.compile(self.config.pattern)
            return Affected([r for r in catalog.all_records() if regex.search(r.name)], [])
        if self.config.selection is Selection.ALL:
            return Affected(catalog.all_records(), [])
        if change_set is None:
            raise ValueError("Selecting affected packages needs the diff's change set")
        affected = get_affected_packages(catalog, change_set.changed, ReverseDependencyIndex(catalog))
        if self.config.selection is Selection.CHANGED:
            return Affected(affected.changed_packages, [])
        return affected

    def affected_only(self) -> Affected:
        """Compute the affected sets without installing or running anything."""
        change_set = self._resolve_diff() if self._uses_diff() else None
        affected = self._resolve_affected(change_set)
        logger.info(
            "changed packages: %s; dependents: %d",
            ", ".join(r.desc for r in affected.changed_packages),
            len(affected.dependent_packages),
        )
        return affected

    def run(self) -> RunReport:
        return asyncio.run(self.run_async())

    async def run_async(self) -> RunReport:
        """Run every stage and return the report.

        Raises:
            TesterError: a fatal condition; the state is FAILED.
        """
        try:
            with Timer() as t:
                report = await self._run_stages()
        except Exception:
            self._transition(RunState.FAILED)
            raise
        if is_debug_enabled(logger):
            logger.debug(
                "Run finished",
                extra=extra_context(
                    event="function_exit",
                    component="orchestrator",
                    action="run",
                    outcome=report.state.value,
                    count=len(report.results),
                    duration_ms=t.duration_ms(),
                )
            )
        return report

    async def _run_stages(self) -> RunReport:
        self._transition(RunState.RESOLVING_DIFF)
        change_set = self._resolve_diff() if self._uses_diff() else None

        self._transition(RunState.VALIDATING_REMOVALS)
        if change_set is not None:
            self._validate_removals(change_set)

        self._transition(RunState.RESOLVING_AFFECTED)
        affected = self._resolve_affected(change_set)
        _describe(affected)

        self._transition(RunState.INSTALLING)
        if affected.all_packages() and not self.config.skip_install:
            installer = self._installer or DependencyInstaller(
                self.config.types_path,
                concurrency=self.config.install_concurrency,
                npm_command=self.config.npm_command,
                install_flags=self.config.npm_install_flags,
                post_install_command=self.config.post_install_command,
            )
            await installer.install(all_dependencies(self.catalog, affected.all_packages()))

        self._transition(RunState.RUNNING)
        jobs = [Job(r.sub_directory_path, strict=True) for r in affected.changed_packages]
        jobs.extend(Job(r.sub_directory_path, strict=False) for r in affected.dependent_packages)
        results: List[JobResult] = []
        unfinished: List[Job] = []
        if jobs:
            logger.info("Running with %d processes.", self.config.n_processes)
            logger.info("Testing...")
            self._scheduler = self._scheduler_factory(self.config)
            results = await self._scheduler.run(jobs, on_result=_log_result)
            unfinished = self._scheduler.unfinished

        self._transition(RunState.REPORTING)
        report = RunReport(RunState.REPORTING, affected, results, unfinished)
        final = RunState.SUCCESS if report.ok else RunState.FAILED
        self._transition(final)
        report.state = final
        return report


def _default_scheduler(config: TesterConfig) -> WorkerPoolScheduler:
    return WorkerPoolScheduler(
        config.worker_command,
        config.types_path,
        config.n_processes,
        job_timeout=config.job_timeout,
    )


def _log_result(result: JobResult) -> None:
    if result.ok:
        logger.info("%s OK", result.path)
    else:
        logger.error("%s failing:\n%s", result.path, result.status)
