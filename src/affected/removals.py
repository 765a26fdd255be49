"""Validation for packages deleted in favor of upstream-provided types.

A removal is valid when:
1. every file of the package was deleted (no live versions remain);
2. the package has exactly one entry in the not-needed file;
3. the entry's library exists on npm;
4. the entry's version is newer than `@types/<name>@latest` on npm;
5. `<library>@<version>` exists on npm.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import semantic_version

from catalog.models import NotNeededPackage
from catalog.packages import PackageCatalog
from common.errors import ConsistencyError
from constants import Constants
from registry.npm.client import NpmInfo

logger = logging.getLogger(__name__)


def get_not_needed_packages(catalog: PackageCatalog, deleted_names: Iterable[str]) -> List[NotNeededPackage]:
    """Return the not-needed entries for every deleted package name."""
    out = []
    for name in sorted(set(deleted_names)):
        if catalog.has_name(name):
            raise ConsistencyError(
                f"Please delete all files in {name} when adding it to {Constants.NOT_NEEDED_FILE}."
            )
        entry = catalog.not_needed(name)
        if entry is None:
            raise ConsistencyError(f"Deleted package {name} is not in {Constants.NOT_NEEDED_FILE}.")
        out.append(entry)
    return out


def is_newer_than_latest(candidate: semantic_version.Version, latest: semantic_version.Version) -> bool:
    """Strictly-greater comparison used for replacement versions."""
    return candidate > latest


def check_not_needed_package(
    unneeded: NotNeededPackage,
    source: Optional[NpmInfo],
    typings: Optional[NpmInfo],
) -> None:
    """Check a not-needed entry against registry metadata.

    Args:
        unneeded: The entry being added.
        source: Registry info for the replacement library, None if unpublished.
        typings: Registry info for the `@types` package being replaced.
    """
    if source is None:
        raise ConsistencyError(
            f'The entry for {unneeded.full_npm_name} in {Constants.NOT_NEEDED_FILE} has '
            f'"libraryName": "{unneeded.library_name}", but there is no npm package with this name. '
            "Unneeded packages have to be replaced with a package on npm."
        )
    if typings is None:
        raise ConsistencyError(f"Unexpected error: @types package not found for {unneeded.full_npm_name}")
    latest_tag = typings.dist_tags.get("latest")
    if not latest_tag:
        raise ConsistencyError(f'Unexpected error: {unneeded.full_npm_name} is missing the "latest" tag.')
    try:
        latest = semantic_version.Version(latest_tag)
    except ValueError as e:
        raise ConsistencyError(f"Unexpected error: {unneeded.full_npm_name}@latest is {latest_tag!r}: {e}") from e
    if not is_newer_than_latest(unneeded.version, latest):
        raise ConsistencyError(
            f"The specified version {unneeded.version} of {unneeded.library_name} must be newer than the version "
            f"it is supposed to replace, {latest} of {unneeded.full_npm_name}."
        )
    if not source.has_version(str(unneeded.version)):
        raise ConsistencyError(
            f"The specified version {unneeded.version} of {unneeded.library_name} is not on npm."
        )


def validate_removals(catalog: PackageCatalog, deleted_names: Iterable[str], npm_client=None) -> List[NotNeededPackage]:
    """Run every removal check; registry checks are skipped without a client.

    Args:
        npm_client: A ``CachedNpmInfoClient``. The replacement library may
            come from its cache; the ``@types`` package is always fetched.
    """
    entries = get_not_needed_packages(catalog, deleted_names)
    if not entries:
        return entries
    if npm_client is None:
        logger.warning("Skipping registry checks for %d removed packages.", len(entries))
        return entries
    for entry in entries:
        logger.info("Checking removal of %s (replaced by %s@%s)", entry.name, entry.library_name, entry.version)
        source = npm_client.get_npm_info_with_version(entry.library_name, str(entry.version))
        typings = npm_client.fetch_and_cache_npm_info(entry.full_npm_name)
        check_not_needed_package(entry, source, typings)
    return entries
