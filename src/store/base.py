"""Local package store capability interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from sync.models import CachedPackage


class LocalPackageStore(ABC):
    """What is cached locally, and where new tarballs go."""

    @abstractmethod
    def list_cached(self) -> List[CachedPackage]:
        """Snapshot every cached package name with its versions."""

    @abstractmethod
    def has_version(self, name: str, version: str) -> bool:
        """True when the tarball for ``name@version`` is present."""

    @abstractmethod
    def write(self, name: str, version: str, payload: bytes) -> str:
        """Persist a tarball and return its location.

        Writing the same ``name@version`` twice targets the same location.

        Raises:
            OSError: when the payload cannot be written.
        """
