"""Error taxonomy for resolution and download.

Only ``ConfigError`` is fatal. The others are raised at the edges (registry
client, version helpers, downloader) and turned into log records or per-item
results by the resolver and the download engine.
"""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for all DepSync errors."""


class ConfigError(SyncError):
    """Invalid configuration detected before any network activity."""


class RegistryError(SyncError):
    """Registry transport failure or unexpected HTTP status."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class PackumentFetchError(RegistryError):
    """Metadata for a package name could not be fetched."""

    def __init__(self, name: str, reason: str, status: Optional[int] = None):
        super().__init__(f"Failed to fetch packument for {name}: {reason}", status)
        self.name = name


class VersionResolutionError(SyncError):
    """No version in a packument satisfies a range or tag."""

    def __init__(self, name: str, version_range: str):
        super().__init__(f"No version of {name} satisfies '{version_range}'")
        self.name = name
        self.version_range = version_range


class DownloadError(SyncError):
    """A tarball could not be fetched or was empty."""

    def __init__(self, spec: str, reason: str):
        super().__init__(f"Failed to download {spec}: {reason}")
        self.spec = spec
