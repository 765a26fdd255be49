"""Affected-set resolution and removal validation."""

from .removals import check_not_needed_package, get_not_needed_packages, validate_removals
from .resolver import Affected, ReverseDependencyIndex, all_dependencies, get_affected_packages

__all__ = [
    "Affected",
    "ReverseDependencyIndex",
    "all_dependencies",
    "check_not_needed_package",
    "get_affected_packages",
    "get_not_needed_packages",
    "validate_removals",
]
