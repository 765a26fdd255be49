"""Data models for package identities and catalog records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Tuple, Union

import semantic_version

from common.errors import ConsistencyError
from constants import Constants

# A major version number, or "*" for whichever major is latest.
DependencyVersion = Union[int, str]
LATEST = "*"


@dataclass(frozen=True)
class PackageId:
    """Identifies one version line of a package."""
    name: str
    major_version: DependencyVersion

    def __str__(self) -> str:
        return f"{self.name}@{self.major_version}"


def full_npm_name(package_name: str) -> str:
    """'@types/foo' for a package 'foo'."""
    return f"@{Constants.SCOPE_NAME}/{package_name}"


@dataclass(frozen=True)
class PackageRecord:
    """One major version of a package, as recorded in the types data file."""
    name: str
    library_name: str
    major: int
    minor: int
    dependencies: FrozenSet[PackageId]
    content_hash: str
    is_latest: bool
    has_package_json: bool = False
    source_repo_url: str = ""
    files: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_raw(cls, raw: Mapping, is_latest: bool) -> "PackageRecord":
        """Build a record from one ``{major: {...}}`` entry of the data file."""
        deps = frozenset(
            PackageId(name, _parse_dependency_version(name, version))
            for name, version in (raw.get("dependencies") or {}).items()
        )
        try:
            return cls(
                name=raw["typingsPackageName"],
                library_name=raw.get("libraryName", raw["typingsPackageName"]),
                major=int(raw["libraryMajorVersion"]),
                minor=int(raw.get("libraryMinorVersion", 0)),
                dependencies=deps,
                content_hash=raw.get("contentHash", ""),
                is_latest=is_latest,
                has_package_json=bool(raw.get("hasPackageJson", False)),
                source_repo_url=raw.get("sourceRepoURL", ""),
                files=tuple(raw.get("files") or ()),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConsistencyError(f"Malformed typings entry {raw!r}: {e}") from e

    @property
    def id(self) -> PackageId:
        return PackageId(self.name, self.major)

    @property
    def sort_key(self) -> Tuple[str, int]:
        return self.name, self.major

    @property
    def desc(self) -> str:
        """Short description for log output."""
        return self.name if self.is_latest else f"{self.name} v{self.major}"

    @property
    def sub_directory_path(self) -> str:
        """Path to this package relative to the types directory."""
        return self.name if self.is_latest else f"{self.name}/v{self.major}"

    @property
    def full_npm_name(self) -> str:
        return full_npm_name(self.name)


def _parse_dependency_version(name: str, version) -> DependencyVersion:
    if version == LATEST:
        return LATEST
    try:
        return int(version)
    except (TypeError, ValueError) as e:
        raise ConsistencyError(f"Bad major version {version!r} for dependency {name}") from e


_NOT_NEEDED_KEYS = ("libraryName", "typingsPackageName", "sourceRepoURL", "asOfVersion")


@dataclass(frozen=True)
class NotNeededPackage:
    """A package removed because the library now ships its own types."""
    name: str
    library_name: str
    source_repo_url: str
    version: semantic_version.Version

    @classmethod
    def from_raw(cls, raw: Mapping) -> "NotNeededPackage":
        for key in raw:
            if key not in _NOT_NEEDED_KEYS:
                raise ConsistencyError(f"Unexpected key in not-needed package: {key}")
        missing = [k for k in _NOT_NEEDED_KEYS if not raw.get(k)]
        if missing:
            raise ConsistencyError(
                f"Not-needed package {raw.get('typingsPackageName', raw)!r} is missing {', '.join(missing)}"
            )
        try:
            # Must be "major.minor.patch"; partial versions are not accepted.
            version = semantic_version.Version(raw["asOfVersion"])
        except ValueError as e:
            raise ConsistencyError(
                f"Invalid asOfVersion {raw['asOfVersion']!r} for {raw['typingsPackageName']}: {e}"
            ) from e
        return cls(
            name=raw["typingsPackageName"],
            library_name=raw["libraryName"],
            source_repo_url=raw["sourceRepoURL"],
            version=version,
        )

    @property
    def major(self) -> int:
        return self.version.major

    @property
    def full_npm_name(self) -> str:
        return full_npm_name(self.name)
