"""Shared fixtures for building small catalogs."""

import pytest

from catalog.packages import PackageCatalog


def typings_entry(name, major=1, deps=None, has_package_json=False):
    return {
        "typingsPackageName": name,
        "libraryName": f"{name} library",
        "libraryMajorVersion": major,
        "libraryMinorVersion": 0,
        "dependencies": deps or {},
        "contentHash": f"hash-{name}-{major}",
        "hasPackageJson": has_package_json,
        "sourceRepoURL": "https://github.com/DefinitelyTyped/DefinitelyTyped",
        "files": ["index.d.ts"],
    }


def not_needed_entry(name, library=None, version="2.0.0"):
    return {
        "libraryName": library or name,
        "typingsPackageName": name,
        "sourceRepoURL": f"https://github.com/example/{name}",
        "asOfVersion": version,
    }


@pytest.fixture
def make_catalog():
    """Build a catalog from ``{name: {major: {dep_name: dep_major}}}``."""

    def _make(packages, not_needed=()):
        raw = {}
        for name, versions in packages.items():
            raw[name] = {
                str(major): typings_entry(name, major, deps) for major, deps in versions.items()
            }
        return PackageCatalog.from_raw(raw, list(not_needed))

    return _make


@pytest.fixture
def chain_catalog(make_catalog):
    """alpha <- beta <- gamma, plus an unrelated delta."""
    return make_catalog({
        "alpha": {1: {}},
        "beta": {1: {"alpha": "*"}},
        "gamma": {1: {"beta": "*"}},
        "delta": {1: {}},
    })
