"""Produce the name-status diff of the working tree against the base branch.

CI systems often use a shallow clone, e.g.:

    git clone --depth=50 <repo> DefinitelyTyped
    git fetch origin +refs/pull/123/merge
    git checkout -qf FETCH_HEAD

so the base branch may not exist locally. When editing this module, check
both full and shallow clones.
"""

from __future__ import annotations

import logging
import subprocess
from typing import List, Sequence

from common.errors import DiffSourceError, TransientIOError
from common.logging_utils import extra_context, is_debug_enabled, Timer
from constants import Constants

from .classifier import GitDiff, parse_name_status

logger = logging.getLogger(__name__)


class GitCommandError(Exception):
    """A git invocation exited non-zero."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{' '.join(args)} exited with {returncode}: {stderr.strip()}")


class GitDiffSource:
    """Runs git in ``repo_path`` to list files changed since ``base_branch``."""

    def __init__(self, repo_path: str, base_branch: str = Constants.SOURCE_BRANCH, git: str = "git"):
        self.repo_path = repo_path
        self.base_branch = base_branch
        self.git = git

    def _run(self, *args: str) -> str:
        cmd = [self.git, *args]
        logger.info("Running: %s", " ".join(cmd))
        with Timer() as t:
            try:
                result = subprocess.run(
                    cmd,
                    cwd=self.repo_path,
                    capture_output=True,
                    text=True,
                    check=False,
                )
            except OSError as e:
                raise DiffSourceError(f"Could not run {' '.join(cmd)}: {e}") from e
        if is_debug_enabled(logger):
            logger.debug(
                "git finished",
                extra=extra_context(
                    event="subprocess",
                    component="git_diff",
                    action=args[0],
                    outcome="success" if result.returncode == 0 else "failure",
                    duration_ms=t.duration_ms(),
                )
            )
        if result.returncode != 0:
            raise GitCommandError(cmd, result.returncode, result.stderr or "")
        return result.stdout

    def ensure_base_branch(self) -> None:
        """Make the base branch resolvable, fetching it for shallow clones."""
        try:
            self._run("rev-parse", "--verify", self.base_branch)
            return
        except GitCommandError:
            logger.info("%s is not available locally; assuming a shallow clone.", self.base_branch)
        try:
            self._run("fetch", "origin", self.base_branch)
        except GitCommandError as e:
            raise TransientIOError(f"Could not fetch {self.base_branch}: {e}") from e
        try:
            self._run("branch", self.base_branch, "FETCH_HEAD")
        except GitCommandError as e:
            raise DiffSourceError(f"Could not create branch {self.base_branch}: {e}") from e

    def name_status(self) -> str:
        """Raw name-status output against the base, or its parent when empty.

        Renames are reported as a deletion plus an addition.
        """
        self.ensure_base_branch()
        try:
            diff = self._run("diff", self.base_branch, "--name-status", "--no-renames").strip()
            if diff == "":
                # Probably already on the base branch, so compare to the last commit.
                diff = self._run("diff", f"{self.base_branch}~1", "--name-status", "--no-renames").strip()
        except GitCommandError as e:
            raise DiffSourceError(str(e)) from e
        return diff

    def diff(self) -> List[GitDiff]:
        diffs = parse_name_status(self.name_status())
        logger.info("Found %d changed files relative to %s.", len(diffs), self.base_branch)
        return diffs
