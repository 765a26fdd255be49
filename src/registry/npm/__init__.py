"""NPM registry access."""

from .client import CachedNpmInfoClient, NpmInfo, NpmInfoClient

__all__ = ["CachedNpmInfoClient", "NpmInfo", "NpmInfoClient"]
