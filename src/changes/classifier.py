"""Classify `git diff --name-status` output into changed package ids."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

from catalog.models import LATEST, PackageId
from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants, DiffStatus

logger = logging.getLogger(__name__)

_MAJOR_DIR_RE = re.compile(Constants.MAJOR_VERSION_DIR_PATTERN)


@dataclass(frozen=True)
class GitDiff:
    """One line of name-status diff output."""
    status: DiffStatus
    path: str


@dataclass
class ChangeSet:
    """Package ids touched by a diff, split by kind of change."""
    changed: Set[PackageId] = field(default_factory=set)
    deleted: Set[str] = field(default_factory=set)


def parse_name_status(text: str) -> List[GitDiff]:
    """Parse ``<status><whitespace><path>`` lines, preserving order."""
    diffs = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        parts = line.split(None, 1)
        if len(parts) != 2:
            logger.warning("Ignoring malformed diff line: %s", line)
            continue
        status_char, path = parts[0].strip(), parts[1].strip()
        try:
            status = DiffStatus(status_char)
        except ValueError:
            logger.warning("Ignoring diff line with unsupported status %s: %s", status_char, path)
            continue
        diffs.append(GitDiff(status=status, path=path))
    return diffs


def parse_major_version_from_directory_name(directory_name: str) -> Optional[int]:
    """Return 3 for "v3", None for anything that is not a version directory."""
    match = _MAJOR_DIR_RE.match(directory_name)
    return int(match.group(1)) if match else None


def get_dependency_from_file(path: str) -> Optional[PackageId]:
    """Map a repository path to the package it belongs to.

    For "types/a/b/c", returns PackageId("a", "*").
    For "types/a/v3/c", returns PackageId("a", 3).
    For "x" or "types/a", returns None.
    """
    parts = path.split("/")
    if len(parts) <= 2:
        return None
    types_dir, name, sub_dir = parts[0], parts[1], parts[2]
    if types_dir != Constants.TYPES_DIRECTORY_NAME or not name:
        return None
    major = parse_major_version_from_directory_name(sub_dir)
    if major is not None:
        return PackageId(name, major)
    return PackageId(name, LATEST)


def git_changes(diffs: Iterable[GitDiff]) -> ChangeSet:
    """Collect distinct package ids from diff entries.

    Added and modified files contribute to ``changed``; deleted files
    contribute their package name to ``deleted``. Different major versions
    of one package stay separate ids. A package that lost some files but
    also has added or modified ones, as after a rename, is a change rather
    than a removal.
    """
    changes = ChangeSet()
    deleted: Set[str] = set()
    ignored = 0
    for diff in diffs:
        dep = get_dependency_from_file(diff.path)
        if dep is None:
            ignored += 1
            continue
        if diff.status is DiffStatus.DELETED:
            deleted.add(dep.name)
        else:
            changes.changed.add(dep)
    surviving = {dep.name for dep in changes.changed}
    for name in sorted(deleted & surviving):
        logger.info("Files were deleted from %s but it still has changes; treating it as changed.", name)
    changes.deleted = deleted - surviving
    if is_debug_enabled(logger):
        logger.debug(
            "Classified diff",
            extra=extra_context(
                event="decision",
                component="classifier",
                action="git_changes",
                count=len(changes.changed),
                deleted=len(changes.deleted),
                ignored=ignored,
            )
        )
    return changes
