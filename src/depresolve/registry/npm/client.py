"""npm registry client: package metadata and concrete version manifests.

Every failure leaves this module as a classified ``ResolutionError`` so the
resolver can pass it through untouched.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.parse
from typing import Any, Dict, Optional

import aiohttp

from ...common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from ...constants import Constants
from ...errors import (
    BadStatusError,
    MalformedPayloadError,
    PackageNotFoundError,
    RegistryTimeoutError,
    RegistryUnreachableError,
)
from ...versioning.models import Manifest, PackageMetadata

logger = logging.getLogger(__name__)

# Abbreviated packument: versions with their dependency maps, nothing else
METADATA_ACCEPT = "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8, */*"
MANIFEST_ACCEPT = "application/json"


def escape_package_name(name: str) -> str:
    """Escape a package name for use as a single path segment.

    Scoped names keep their ``@`` and have the slash encoded: ``@scope%2Fpkg``.
    """
    return urllib.parse.quote(name, safe="@")


class NpmRegistryClient:
    """Async client for an npm-compatible registry.

    One ``aiohttp.ClientSession`` is shared by every caller; the client is safe
    to use from many concurrent tasks.
    """

    def __init__(
        self,
        base_url: str = Constants.REGISTRY_URL_NPM,
        timeout: float = Constants.REQUEST_TIMEOUT,
        connection_limit: int = Constants.CONNECTION_LIMIT,
    ):
        """Initialize the registry client.

        Args:
            base_url: Registry root, e.g. ``https://registry.npmjs.org``.
            timeout: Total per-request timeout in seconds.
            connection_limit: Connector pool size; 0 means unlimited.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._connection_limit = connection_limit
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=self._connection_limit)
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

    def metadata_url(self, name: str) -> str:
        return f"{self._base_url}/{escape_package_name(name)}"

    def manifest_url(self, name: str, version: str) -> str:
        return (
            f"{self._base_url}/{escape_package_name(name)}/"
            f"{urllib.parse.quote(version, safe='')}"
        )

    async def fetch_metadata(self, name: str) -> PackageMetadata:
        """Fetch the list of published versions of ``name``.

        Raises:
            ResolutionError: classified as Timeout, Unreachable, NotFound,
                BadStatus or MalformedPayload.
        """
        payload = await self._get_json(self.metadata_url(name), name, METADATA_ACCEPT)
        try:
            return PackageMetadata.from_payload(name, payload)
        except ValueError as exc:
            raise MalformedPayloadError(
                f"unable to parse package metadata {name}: {exc}"
            ) from exc

    async def fetch_manifest(self, name: str, version: str) -> Manifest:
        """Fetch the manifest of ``name`` at exactly ``version``.

        Raises:
            ResolutionError: classified as Timeout, Unreachable, NotFound,
                BadStatus or MalformedPayload.
        """
        label = f"{name}@{version}"
        payload = await self._get_json(self.manifest_url(name, version), label, MANIFEST_ACCEPT)
        try:
            return Manifest.from_payload(payload)
        except ValueError as exc:
            raise MalformedPayloadError(
                f"unable to parse package metadata {label}: {exc}"
            ) from exc

    async def _get_json(self, url: str, label: str, accept: str) -> Any:
        """GET ``url`` and decode its JSON body, classifying every failure."""
        if self._session is None:
            await self.start()
        assert self._session is not None

        safe_target = safe_url(url)
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="registry_client",
                    action="GET",
                    target=safe_target,
                ),
            )

        headers: Dict[str, str] = {"Accept": accept}
        with Timer() as timer:
            try:
                async with self._session.get(url, headers=headers) as response:
                    status = response.status
                    if status == 404:
                        raise PackageNotFoundError(f"unable to find package {label}")
                    if status < 200 or status >= 300:
                        raise BadStatusError(
                            f"received unexpected status {status} for package {label}",
                            status_code=status,
                        )
                    body = await response.read()
            except asyncio.TimeoutError as exc:
                logger.warning(
                    "Registry request timed out",
                    extra=extra_context(
                        event="http_exception",
                        component="registry_client",
                        outcome="timeout",
                        target=safe_target,
                    ),
                )
                raise RegistryTimeoutError(
                    f"request timed out for package {label}: {exc!r}"
                ) from exc
            except aiohttp.ClientError as exc:
                logger.warning(
                    "Registry request failed: %s",
                    exc,
                    extra=extra_context(
                        event="http_exception",
                        component="registry_client",
                        outcome="request_exception",
                        target=safe_target,
                    ),
                )
                raise RegistryUnreachableError(
                    f"bad gateway while fetching package {label}: {exc}"
                ) from exc

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response ok",
                extra=extra_context(
                    event="http_response",
                    component="registry_client",
                    action="GET",
                    outcome="success",
                    status_code=status,
                    duration_ms=timer.duration_ms(),
                    target=safe_target,
                ),
            )

        try:
            return json.loads(body)
        except ValueError as exc:
            raise MalformedPayloadError(
                f"unable to parse package metadata {label}: {exc}"
            ) from exc

    async def __aenter__(self) -> "NpmRegistryClient":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()
