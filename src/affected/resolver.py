"""Compute which packages must be re-tested for a set of changed ids."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from catalog.models import PackageId, PackageRecord
from catalog.packages import PackageCatalog
from common.logging_utils import extra_context, is_debug_enabled, Timer

logger = logging.getLogger(__name__)


@dataclass
class Affected:
    """Changed packages and the packages that depend on them, disjoint."""
    changed_packages: List[PackageRecord] = field(default_factory=list)
    dependent_packages: List[PackageRecord] = field(default_factory=list)

    def all_packages(self) -> List[PackageRecord]:
        return [*self.changed_packages, *self.dependent_packages]


class ReverseDependencyIndex:
    """Reverse dependency graph over every catalog record.

    Records live in an arena (a list) and are referred to by integer index;
    ``_dependents[i]`` lists the indexes of records that declare a
    dependency on record ``i``. Build once per run.
    """

    def __init__(self, catalog: PackageCatalog):
        self.records: List[PackageRecord] = catalog.all_records()
        self._index: Dict[Tuple[str, int], int] = {
            r.sort_key: i for i, r in enumerate(self.records)
        }
        self._dependents: List[List[int]] = [[] for _ in self.records]
        edges = 0
        with Timer() as t:
            for i, record in enumerate(self.records):
                for dep in catalog.dependency_records(record):
                    j = self._index[dep.sort_key]
                    if j != i:
                        self._dependents[j].append(i)
                        edges += 1
        if is_debug_enabled(logger):
            logger.debug(
                "Built reverse dependency index",
                extra=extra_context(
                    event="index_built",
                    component="affected",
                    action="reverse_index",
                    count=len(self.records),
                    edges=edges,
                    duration_ms=t.duration_ms(),
                )
            )

    def index_of(self, record: PackageRecord) -> int:
        return self._index[record.sort_key]

    def transitive_dependents(self, roots: Iterable[PackageRecord]) -> Set[int]:
        """Indexes reachable from ``roots`` by one or more reverse edges."""
        seen: Set[int] = set()
        queue = deque(self.index_of(r) for r in roots)
        while queue:
            i = queue.popleft()
            for j in self._dependents[i]:
                if j not in seen:
                    seen.add(j)
                    queue.append(j)
        return seen


def get_affected_packages(
    catalog: PackageCatalog,
    changed_ids: Iterable[PackageId],
    index: Optional[ReverseDependencyIndex] = None,
) -> Affected:
    """Resolve changed ids and find every transitive dependent.

    Raises:
        ResolutionError: a changed id names no catalog package.
    """
    if index is None:
        index = ReverseDependencyIndex(catalog)
    changed: Dict[Tuple[str, int], PackageRecord] = {}
    for pid in changed_ids:
        record = catalog.get(pid)
        changed[record.sort_key] = record
    reached = index.transitive_dependents(changed.values())
    dependents = [index.records[i] for i in reached if index.records[i].sort_key not in changed]
    return Affected(
        changed_packages=sorted(changed.values(), key=lambda r: r.sort_key),
        dependent_packages=sorted(dependents, key=lambda r: r.sort_key),
    )


def all_dependencies(catalog: PackageCatalog, packages: Iterable[PackageRecord]) -> List[PackageRecord]:
    """The given packages plus everything they transitively depend on."""
    seen: Dict[Tuple[str, int], PackageRecord] = {}
    stack = list(packages)
    while stack:
        record = stack.pop()
        if record.sort_key in seen:
            continue
        seen[record.sort_key] = record
        stack.extend(catalog.dependency_records(record))
    return sorted(seen.values(), key=lambda r: r.sort_key)
