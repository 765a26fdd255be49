"""In-memory catalog of every typings package and its versions."""

from __future__ import annotations

import json
import logging
import os
from typing import Dict, Iterable, List, Mapping, Optional

from common.errors import ConsistencyError, PackageNotFoundError, ResolutionError
from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants

from .models import LATEST, NotNeededPackage, PackageId, PackageRecord

logger = logging.getLogger(__name__)


class TypingsVersions:
    """All major versions of a single package."""

    def __init__(self, name: str, raw: Mapping[str, Mapping]):
        if not raw:
            raise ConsistencyError(f"Package {name} has no versions.")
        try:
            majors = sorted(int(v) for v in raw)
        except ValueError as e:
            raise ConsistencyError(f"Package {name} has a non-numeric major version: {e}") from e
        self.name = name
        self.latest = majors[-1]
        self._map: Dict[int, PackageRecord] = {}
        for major in majors:
            record = PackageRecord.from_raw(raw[str(major)], is_latest=major == self.latest)
            if record.name != name or record.major != major:
                raise ConsistencyError(
                    f"Entry {name}/{major} describes {record.name} v{record.major}."
                )
            self._map[major] = record

    def get_all(self) -> List[PackageRecord]:
        return list(self._map.values())

    def get(self, major_version) -> PackageRecord:
        return self.get_latest() if major_version == LATEST else self._get_exact(major_version)

    def try_get(self, major_version) -> Optional[PackageRecord]:
        if major_version == LATEST:
            return self.get_latest()
        return self._map.get(major_version)

    def get_latest(self) -> PackageRecord:
        return self._get_exact(self.latest)

    def _get_exact(self, major_version: int) -> PackageRecord:
        record = self._map.get(major_version)
        if record is None:
            raise PackageNotFoundError(
                PackageId(self.name, major_version),
                f"Could not find version {major_version} of {self.name}",
            )
        return record


class PackageCatalog:
    """Read-only registry of typings packages and not-needed packages.

    Built once per run; nothing mutates it afterwards. ``"*"`` references
    are resolved on every lookup against the current latest major.
    """

    def __init__(self, data: Dict[str, TypingsVersions], not_needed: Iterable[NotNeededPackage]):
        self._data = data
        self._not_needed: Dict[str, NotNeededPackage] = {}
        for pkg in not_needed:
            if pkg.name in self._not_needed:
                raise ConsistencyError(f"Package {pkg.name} appears twice in {Constants.NOT_NEEDED_FILE}.")
            if pkg.name in data:
                raise ConsistencyError(
                    f"Package {pkg.name} is in {Constants.NOT_NEEDED_FILE} but still has typings."
                )
            self._not_needed[pkg.name] = pkg

    @classmethod
    def from_raw(cls, types_raw: Mapping[str, Mapping], not_needed_raw: Iterable[Mapping] = ()) -> "PackageCatalog":
        """Build a catalog from already-decoded data file contents."""
        data = {name: TypingsVersions(name, versions) for name, versions in types_raw.items()}
        not_needed = [NotNeededPackage.from_raw(raw) for raw in not_needed_raw]
        return cls(data, not_needed)

    @classmethod
    def read(cls, data_path: str, not_needed_path: Optional[str] = None) -> "PackageCatalog":
        """Load the types data file and, if present, the not-needed file."""
        types_raw = _read_json(data_path)
        not_needed_raw: List[Mapping] = []
        if not_needed_path and os.path.isfile(not_needed_path):
            not_needed_raw = (_read_json(not_needed_path) or {}).get("packages", [])
        catalog = cls.from_raw(types_raw, not_needed_raw)
        logger.info(
            "Loaded %d typings packages and %d not-needed packages.",
            len(catalog._data),
            len(catalog._not_needed),
        )
        return catalog

    def get(self, package_id: PackageId) -> PackageRecord:
        versions = self._data.get(package_id.name)
        if versions is None:
            raise PackageNotFoundError(package_id, f"No such package {package_id.name}.")
        return versions.get(package_id.major_version)

    def try_get(self, package_id: PackageId) -> Optional[PackageRecord]:
        versions = self._data.get(package_id.name)
        if versions is None:
            return None
        return versions.try_get(package_id.major_version)

    def has_typings_for(self, package_id: PackageId) -> bool:
        return self.try_get(package_id) is not None

    def has_name(self, name: str) -> bool:
        return name in self._data

    def get_latest(self, name: str) -> PackageRecord:
        versions = self._data.get(name)
        if versions is None:
            raise PackageNotFoundError(PackageId(name, LATEST), f"No such package {name}.")
        return versions.get_latest()

    def all_records(self) -> List[PackageRecord]:
        records = [r for versions in self._data.values() for r in versions.get_all()]
        return sorted(records, key=lambda r: r.sort_key)

    def dependencies_of(self, record: PackageRecord) -> frozenset:
        """Declared dependencies, unresolved."""
        return record.dependencies

    def dependency_records(self, record: PackageRecord) -> List[PackageRecord]:
        """Dependencies that have typings in this catalog, resolved.

        Dependencies on names outside the catalog are external packages and
        are skipped. A catalog name with an unknown major is an error.
        """
        out = []
        for dep in sorted(record.dependencies, key=lambda d: (d.name, str(d.major_version))):
            versions = self._data.get(dep.name)
            if versions is None:
                if is_debug_enabled(logger):
                    logger.debug(
                        "Skipping external dependency",
                        extra=extra_context(
                            event="decision",
                            component="catalog",
                            action="dependency_records",
                            package=record.desc,
                            target=dep.name,
                        )
                    )
                continue
            try:
                out.append(versions.get(dep.major_version))
            except PackageNotFoundError as e:
                raise ResolutionError(
                    f"{record.desc} depends on {dep.name} v{dep.major_version}, which does not exist."
                ) from e
        return out

    def not_needed(self, name: str) -> Optional[NotNeededPackage]:
        return self._not_needed.get(name)

    def all_not_needed(self) -> List[NotNeededPackage]:
        return [self._not_needed[name] for name in sorted(self._not_needed)]


def _read_json(path: str):
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as e:
        raise ConsistencyError(f"Data file not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConsistencyError(f"Could not read data file {path}: {e}") from e
