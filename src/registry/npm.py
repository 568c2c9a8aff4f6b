"""npm registry client over aiohttp."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from sync.errors import PackumentFetchError, RegistryError
from sync.models import Packument
from versioning.npm import parse_version, resolve_version

from .base import RegistryClient, parse_package_spec, tarball_basename

logger = logging.getLogger(__name__)


class NpmRegistryClient(RegistryClient):
    """Fetches packuments, manifests and tarballs from an npm registry."""

    # Full documents: abbreviated metadata omits devDependencies and libc.
    METADATA_HEADERS = {"Accept": "application/json"}

    def __init__(
        self,
        registry_url: str = Constants.REGISTRY_URL_NPM,
        timeout: int = Constants.REQUEST_TIMEOUT,
        chunk_size: int = Constants.TARBALL_CHUNK_SIZE,
    ):
        """Initialize the registry client.

        Args:
            registry_url: Registry base URL.
            timeout: Request timeout in seconds.
            chunk_size: Read size for tarball streaming.
        """
        self._base = registry_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        # Tarballs may legitimately take longer than one total timeout.
        self._tarball_timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=timeout, sock_read=timeout
        )
        self._chunk_size = chunk_size
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def registry_url(self) -> str:
        return self._base

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=100)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
                headers={"User-Agent": Constants.USER_AGENT},
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            await self.start()
        assert self._session is not None
        return self._session

    def package_url(self, name: str) -> str:
        """Metadata URL; scoped names are sent as ``@scope%2fname``."""
        return f"{self._base}/{name.replace('/', '%2f')}"

    def tarball_url(self, name: str, version: str) -> str:
        """Conventional tarball location: ``{registry}/{name}/-/{base}-{version}.tgz``."""
        return f"{self._base}/{name}/-/{tarball_basename(name)}-{version}.tgz"

    async def _get_json(self, url: str, context: str) -> Any:
        """GET a JSON document, raising RegistryError on any failure."""
        session = await self._ensure_session()
        target = safe_url(url)
        with Timer() as timer:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="npm_client",
                        action="GET",
                        target=target,
                        context=context,
                    ),
                )
            try:
                async with session.get(url, headers=self.METADATA_HEADERS) as response:
                    if response.status != 200:
                        raise RegistryError(
                            f"{context}: HTTP {response.status} from {target}",
                            response.status,
                        )
                    text = await response.text()
            except asyncio.TimeoutError as exc:
                raise RegistryError(f"{context}: request timed out ({target})") from exc
            except aiohttp.ClientError as exc:
                raise RegistryError(f"{context}: connection error: {exc}") from exc

            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response ok",
                    extra=extra_context(
                        event="http_response",
                        component="npm_client",
                        action="GET",
                        outcome="success",
                        status_code=200,
                        duration_ms=timer.duration_ms(),
                        target=target,
                        context=context,
                    ),
                )
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise RegistryError(f"{context}: invalid JSON from {target}") from exc

    async def _get_document(self, name: str) -> Dict[str, Any]:
        doc = await self._get_json(self.package_url(name), context=f"packument {name}")
        if not isinstance(doc, dict):
            raise RegistryError(f"packument {name}: unexpected document type")
        return doc

    async def fetch_packument(self, name: str) -> Packument:
        try:
            doc = await self._get_document(name)
        except RegistryError as exc:
            raise PackumentFetchError(name, str(exc), exc.status) from exc
        return Packument.from_document(doc, name)

    async def fetch_manifest(self, spec: str) -> Dict[str, Any]:
        """Fetch the full manifest for ``name@version|tag|range``.

        Concrete versions and tags use the registry's per-version endpoint;
        ranges are resolved against the full document.
        """
        name, version_range = parse_package_spec(spec)
        version_range = version_range or "latest"
        if parse_version(version_range) is not None or version_range.isidentifier():
            url = f"{self.package_url(name)}/{version_range}"
            manifest = await self._get_json(url, context=f"manifest {spec}")
            if not isinstance(manifest, dict):
                raise RegistryError(f"manifest {spec}: unexpected document type")
            return manifest

        doc = await self._get_document(name)
        resolved = resolve_version(Packument.from_document(doc, name), version_range)
        if resolved is None:
            raise RegistryError(f"manifest {spec}: no matching version", 404)
        return doc["versions"][resolved]

    async def fetch_tarball(self, spec: str) -> AsyncIterator[bytes]:
        name, version = parse_package_spec(spec)
        if version is None or parse_version(version) is None:
            manifest = await self.fetch_manifest(spec)
            version = str(manifest.get("version"))
        url = self.tarball_url(name, version)
        session = await self._ensure_session()
        target = safe_url(url)
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="npm_client",
                    action="GET",
                    target=target,
                    context="tarball",
                ),
            )
        try:
            async with session.get(url, timeout=self._tarball_timeout) as response:
                if response.status != 200:
                    raise RegistryError(
                        f"tarball {spec}: HTTP {response.status} from {target}",
                        response.status,
                    )
                async for chunk in response.content.iter_chunked(self._chunk_size):
                    yield chunk
        except asyncio.TimeoutError as exc:
            raise RegistryError(f"tarball {spec}: request timed out") from exc
        except aiohttp.ClientError as exc:
            raise RegistryError(f"tarball {spec}: connection error: {exc}") from exc

    async def __aenter__(self) -> "NpmRegistryClient":
        await self.start()
        return self
