"""Turn version-control diffs into changed package identities."""

from .classifier import ChangeSet, GitDiff, get_dependency_from_file, git_changes, parse_name_status
from .git_diff import GitDiffSource

__all__ = [
    "ChangeSet",
    "GitDiff",
    "GitDiffSource",
    "get_dependency_from_file",
    "git_changes",
    "parse_name_status",
]
