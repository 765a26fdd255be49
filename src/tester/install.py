"""Install npm dependencies for the packages under test."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Iterable, List, Optional, Sequence

from catalog.models import PackageRecord
from common.errors import ProcessSetupError
from common.logging_utils import extra_context, is_debug_enabled, Timer
from constants import Constants

logger = logging.getLogger(__name__)


class DependencyInstaller:
    """Runs ``npm install`` in each package directory that has a package.json.

    At most ``concurrency`` installs run at once. A command that cannot be
    started or exits non-zero aborts the run with ProcessSetupError.
    """

    def __init__(
        self,
        types_path: str,
        concurrency: int = Constants.DEFAULT_INSTALL_CONCURRENCY,
        npm_command: str = Constants.NPM_COMMAND,
        install_flags: Sequence[str] = tuple(Constants.NPM_INSTALL_FLAGS),
        post_install_command: Optional[Sequence[str]] = None,
    ):
        self.types_path = types_path
        self.concurrency = max(1, concurrency)
        self.npm_command = npm_command
        self.install_flags = list(install_flags)
        self.post_install_command = list(post_install_command) if post_install_command else None

    def directory_of(self, record: PackageRecord) -> str:
        return os.path.join(self.types_path, record.sub_directory_path)

    def install_command(self) -> List[str]:
        return [self.npm_command, "install", *self.install_flags]

    async def install(self, packages: Iterable[PackageRecord]) -> List[PackageRecord]:
        """Install every package with a package.json; return the ones installed."""
        targets = [p for p in packages if os.path.isfile(os.path.join(self.directory_of(p), Constants.PACKAGE_JSON_FILE))]
        logger.info("Installing NPM dependencies for %d packages...", len(targets))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _one(record: PackageRecord) -> None:
            async with semaphore:
                await self._run(self.install_command(), self.directory_of(record))

        with Timer() as t:
            tasks = [asyncio.ensure_future(_one(p)) for p in targets]
            try:
                await asyncio.gather(*tasks)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
            if self.post_install_command:
                await self._run(self.post_install_command, self.types_path)

        if is_debug_enabled(logger):
            logger.debug(
                "Dependency installation finished",
                extra=extra_context(
                    event="function_exit",
                    component="installer",
                    action="install",
                    count=len(targets),
                    duration_ms=t.duration_ms(),
                    outcome="completed",
                )
            )
        return targets

    def install_sync(self, packages: Iterable[PackageRecord]) -> List[PackageRecord]:
        return asyncio.run(self.install(packages))

    async def _run(self, command: List[str], cwd: str) -> None:
        logger.info("  %s: %s", cwd, " ".join(command))
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ProcessSetupError(f"Could not run {' '.join(command)} in {cwd}: {e}") from e
        try:
            stdout, _ = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise
        output = stdout.decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            raise ProcessSetupError(
                f"{' '.join(command)} failed in {cwd} with exit code {proc.returncode}:\n{output}"
            )
        if output:
            # Installs run in parallel, so name the directory.
            logger.info(" from %s: %s", cwd, output)
