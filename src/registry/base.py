"""Registry client capability interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from sync.models import Packument


def parse_package_spec(spec: str) -> Tuple[str, Optional[str]]:
    """Split ``name@range`` into (name, range or None).

    Scoped names keep their leading ``@``: ``@scope/pkg@^1`` gives
    ``("@scope/pkg", "^1")``.
    """
    spec = spec.strip()
    at_index = spec.rfind("@")
    if at_index > 0:
        return spec[:at_index], spec[at_index + 1:] or None
    return spec, None


def tarball_basename(name: str) -> str:
    """File stem used by npm registries for a package's tarballs."""
    return name.rsplit("/", 1)[-1]


class RegistryClient(ABC):
    """Source of packuments, manifests and tarballs."""

    @abstractmethod
    async def fetch_packument(self, name: str) -> Packument:
        """Fetch all-versions metadata for ``name``, trimmed.

        Raises:
            PackumentFetchError: on transport failure or non-200 status.
        """

    @abstractmethod
    async def fetch_manifest(self, spec: str) -> Dict[str, Any]:
        """Fetch the full manifest for ``name@range``.

        Raises:
            RegistryError: when the manifest cannot be fetched or resolved.
        """

    @abstractmethod
    def fetch_tarball(self, spec: str) -> AsyncIterator[bytes]:
        """Stream the tarball for ``name@version`` in chunks.

        Raises:
            RegistryError: on transport failure or non-200 status.
        """

    async def start(self) -> None:
        """Acquire network resources; no-op by default."""

    async def stop(self) -> None:
        """Release network resources; no-op by default."""

    async def __aenter__(self) -> "RegistryClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
