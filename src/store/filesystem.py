"""Verdaccio-style storage directory as a local package store.

Layout::

    <storage>/lodash/lodash-4.17.21.tgz
    <storage>/lodash/package.json
    <storage>/@babel/core/core-7.24.0.tgz
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from typing import List, Optional

from sync.models import CachedPackage

from .base import LocalPackageStore

logger = logging.getLogger(__name__)

_VERSION_SUFFIX = re.compile(r"-(\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)$")


class FileSystemPackageStore(LocalPackageStore):
    """Local store rooted at a storage directory."""

    def __init__(self, storage_path: str):
        self._root = os.path.abspath(storage_path)
        logger.debug("Package store rooted at %s", self._root)

    @property
    def root(self) -> str:
        return self._root

    def package_dir(self, name: str) -> str:
        """Directory for a package; scoped names nest under their scope."""
        return os.path.join(self._root, *name.split("/"))

    @staticmethod
    def tarball_name(name: str, version: str) -> str:
        """Tarball file name: unscoped base name plus version."""
        return f"{name.rsplit('/', 1)[-1]}-{version}.tgz"

    def tarball_path(self, name: str, version: str) -> str:
        return os.path.join(self.package_dir(name), self.tarball_name(name, version))

    @staticmethod
    def version_from_filename(filename: str) -> Optional[str]:
        """Extract the version from ``<base>-<version>.tgz``; None if absent."""
        if not filename.endswith(".tgz"):
            return None
        match = _VERSION_SUFFIX.search(filename[:-len(".tgz")])
        return match.group(1) if match else None

    def list_cached(self) -> List[CachedPackage]:
        packages: List[CachedPackage] = []
        try:
            entries = sorted(os.scandir(self._root), key=lambda e: e.name)
        except FileNotFoundError:
            logger.warning("Storage directory does not exist: %s", self._root)
            return packages

        for entry in entries:
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            if entry.name.startswith("@"):
                packages.extend(self._scan_scope(entry.name))
                continue
            pkg = self._scan_package(entry.name)
            if pkg:
                packages.append(pkg)

        logger.info("Scanned %d cached packages", len(packages))
        return packages

    def _scan_scope(self, scope: str) -> List[CachedPackage]:
        found: List[CachedPackage] = []
        scope_path = os.path.join(self._root, scope)
        try:
            entries = sorted(os.scandir(scope_path), key=lambda e: e.name)
        except OSError as exc:
            logger.warning("Failed to scan scoped packages in %s: %s", scope, exc)
            return found
        for entry in entries:
            if not entry.is_dir():
                continue
            pkg = self._scan_package(f"{scope}/{entry.name}")
            if pkg:
                found.append(pkg)
            else:
                logger.debug("Package %s/%s has no tarballs, skipping", scope, entry.name)
        return found

    def _scan_package(self, name: str) -> Optional[CachedPackage]:
        package_dir = self.package_dir(name)
        try:
            files = os.listdir(package_dir)
        except OSError as exc:
            logger.warning("Failed to scan package %s: %s", name, exc)
            return None

        versions = set()
        for filename in files:
            version = self.version_from_filename(filename)
            if version:
                versions.add(version)
            elif filename.endswith(".tgz"):
                logger.debug("Could not extract version from %s for %s", filename, name)
        if not versions:
            return None
        return CachedPackage.of(name, versions, self._read_latest(package_dir))

    @staticmethod
    def _read_latest(package_dir: str) -> Optional[str]:
        """``dist-tags.latest`` from the stored package.json, when present."""
        metadata_path = os.path.join(package_dir, "package.json")
        try:
            with open(metadata_path, encoding="utf-8") as fh:
                metadata = json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            logger.debug("Unreadable metadata %s: %s", metadata_path, exc)
            return None
        latest = (metadata.get("dist-tags") or {}).get("latest") if isinstance(metadata, dict) else None
        return latest if isinstance(latest, str) else None

    def has_version(self, name: str, version: str) -> bool:
        return os.path.isfile(self.tarball_path(name, version))

    def write(self, name: str, version: str, payload: bytes) -> str:
        package_dir = self.package_dir(name)
        os.makedirs(package_dir, exist_ok=True)
        destination = self.tarball_path(name, version)
        fd, tmp_path = tempfile.mkstemp(dir=package_dir, prefix=".tmp-", suffix=".tgz")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
            os.replace(tmp_path, destination)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return destination
