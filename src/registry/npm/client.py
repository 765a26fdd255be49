"""NPM registry client: dist-tags and published versions of a package."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from common.errors import TransientIOError
from common.http_client import get_json
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from constants import Constants

logger = logging.getLogger(__name__)

_ACCEPT = "application/json"


@dataclass(frozen=True)
class NpmInfo:
    """Processed registry metadata. Kept small so it can be cached to disk."""
    dist_tags: Dict[str, str] = field(default_factory=dict)
    versions: Dict[str, Dict[str, str]] = field(default_factory=dict)
    time: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, raw: dict) -> "NpmInfo":
        versions = {}
        for version, meta in (raw.get("versions") or {}).items():
            meta = meta or {}
            # Keep only the fields this tool reads.
            versions[version] = {
                k: meta[k] for k in ("typesPublisherContentHash", "deprecated") if k in meta
            }
        return cls(
            dist_tags=dict(raw.get("dist-tags") or {}),
            versions=versions,
            time=dict(raw.get("time") or {}),
        )

    def to_json(self) -> dict:
        return {"dist-tags": self.dist_tags, "versions": self.versions, "time": self.time}

    def has_version(self, version: str) -> bool:
        return version in self.versions


def escape_package_name(package_name: str) -> str:
    """Scoped names need their slash escaped in registry URLs."""
    return package_name.replace("/", "%2f")


class NpmInfoClient:
    """Fetches package metadata straight from the registry."""

    def __init__(self, registry_url: str = Constants.REGISTRY_URL_NPM):
        self.registry_url = registry_url if registry_url.endswith("/") else registry_url + "/"

    def fetch_npm_info(self, package_name: str) -> Optional[NpmInfo]:
        """Return metadata for ``package_name``, or None if it is not published.

        Raises:
            TransientIOError: the registry could not be reached after retries.
        """
        url = self.registry_url + escape_package_name(package_name)
        status_code, _, data = get_json(url, headers={"Accept": _ACCEPT})
        if is_debug_enabled(logger):
            logger.debug(
                "Registry lookup",
                extra=extra_context(
                    event="http_response",
                    component="npm_client",
                    action="fetch_npm_info",
                    status_code=status_code,
                    target=safe_url(url),
                    package=package_name,
                )
            )
        if status_code == 404:
            return None
        if status_code == 0 or status_code >= 500:
            raise TransientIOError(f"Could not fetch npm info for {package_name} (status {status_code}).")
        if status_code != 200 or not isinstance(data, dict):
            raise TransientIOError(f"Unexpected npm response for {package_name} (status {status_code}).")
        if "error" in data:
            if data["error"] == "Not found":
                return None
            raise TransientIOError(f"Error getting npm info for {package_name}: {data['error']}")
        if not data.get("dist-tags") and not data.get("versions"):
            # Unpublished
            return None
        return NpmInfo.from_json(data)


class CachedNpmInfoClient:
    """Wraps NpmInfoClient with an optional JSON cache file.

    Use as a context manager; the cache is written back on a clean exit.
    """

    def __init__(self, client: Optional[NpmInfoClient] = None, cache_file: Optional[str] = None):
        self._client = client or NpmInfoClient()
        self._cache_file = cache_file
        self._cache: Dict[str, NpmInfo] = {}

    def __enter__(self) -> "CachedNpmInfoClient":
        self._cache = self._read_cache()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self._write_cache()

    def get_npm_info_from_cache(self, package_name: str) -> Optional[NpmInfo]:
        """May return old info; callers check that it looks up to date."""
        return self._cache.get(package_name)

    def fetch_and_cache_npm_info(self, package_name: str) -> Optional[NpmInfo]:
        info = self._client.fetch_npm_info(package_name)
        if info is not None:
            self._cache[package_name] = info
        return info

    def get_npm_info_with_version(self, package_name: str, version: str) -> Optional[NpmInfo]:
        """Cached info if it already lists ``version``, otherwise fresh registry info.

        A cached version proves the release exists; dist-tags always need
        ``fetch_and_cache_npm_info``.
        """
        cached = self.get_npm_info_from_cache(package_name)
        if cached is not None and cached.has_version(version):
            logger.debug("Using cached npm info for %s@%s", package_name, version)
            return cached
        return self.fetch_and_cache_npm_info(package_name)

    def _read_cache(self) -> Dict[str, NpmInfo]:
        if not self._cache_file or not os.path.isfile(self._cache_file):
            logger.info("npm info cache file doesn't exist, using empty map.")
            return {}
        logger.info("Reading npm info cache file %s", self._cache_file)
        try:
            with open(self._cache_file, "r", encoding="utf-8") as fh:
                raw = json.load(fh) or {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable npm info cache %s: %s", self._cache_file, e)
            return {}
        return {name: NpmInfo.from_json(info) for name, info in raw.items()}

    def _write_cache(self) -> None:
        if not self._cache_file:
            return
        directory = os.path.dirname(self._cache_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        try:
            with open(self._cache_file, "w", encoding="utf-8") as fh:
                json.dump({k: v.to_json() for k, v in sorted(self._cache.items())}, fh, indent=4)
        except OSError as e:
            logger.warning("npm info cache couldn't be written to disk: %s", e)
