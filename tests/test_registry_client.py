"""Tests for the npm registry client against an in-process fake registry."""

import asyncio

import pytest

aiohttp_mod = pytest.importorskip("aiohttp")

from aiohttp import test_utils

from depresolve.errors import (
    BadStatusError,
    ErrorKind,
    MalformedPayloadError,
    PackageNotFoundError,
    RegistryTimeoutError,
    RegistryUnreachableError,
)
from depresolve.registry.npm.client import NpmRegistryClient, escape_package_name

from registry_fakes import REACT_PACKAGES, build_registry_app


def _run(coro_factory, timeout=5.0, **app_kwargs):
    """Start a fake registry, hand a connected client to ``coro_factory``."""

    async def _inner():
        app = build_registry_app(REACT_PACKAGES, **app_kwargs)
        async with test_utils.TestServer(app) as ts:
            async with NpmRegistryClient(str(ts.make_url("")), timeout=timeout) as client:
                return await coro_factory(client)

    return asyncio.run(_inner())


class TestUrlBuilding:
    """Package names and versions become single path segments."""

    def test_plain_name(self):
        client = NpmRegistryClient("https://registry.example/")
        assert client.metadata_url("react") == "https://registry.example/react"
        assert client.manifest_url("react", "16.13.0") == "https://registry.example/react/16.13.0"

    def test_scoped_name(self):
        assert escape_package_name("@babel/core") == "@babel%2Fcore"
        client = NpmRegistryClient("https://registry.example")
        assert client.metadata_url("@babel/core") == "https://registry.example/@babel%2Fcore"

    def test_build_metadata_in_version(self):
        client = NpmRegistryClient("https://registry.example")
        assert client.manifest_url("pkg", "1.0.0+build.1") == "https://registry.example/pkg/1.0.0%2Bbuild.1"


class TestFetchSuccess:
    """Successful fetches."""

    def test_fetch_metadata(self):
        metadata = _run(lambda client: client.fetch_metadata("react"))
        assert metadata.name == "react"
        assert sorted(metadata.version_strings()) == ["16.12.0", "16.13.0", "16.13.1"]

    def test_fetch_manifest(self):
        manifest = _run(lambda client: client.fetch_manifest("loose-envify", "1.4.0"))
        assert manifest.name == "loose-envify"
        assert manifest.version == "1.4.0"
        assert manifest.dependencies == {"js-tokens": "^3.0.0 || ^4.0.0"}

    def test_null_dependencies(self):
        manifest = _run(
            lambda client: client.fetch_manifest("react", "16.13.0"),
            bodies={"react/16.13.0": {"name": "react", "version": "16.13.0", "dependencies": None}},
        )
        assert manifest.dependencies == {}

    def test_scoped_package_round_trip(self):
        async def _inner():
            app = build_registry_app({"@scope/pkg": {"1.0.0": {}}})
            async with test_utils.TestServer(app) as ts:
                async with NpmRegistryClient(str(ts.make_url(""))) as client:
                    return await client.fetch_metadata("@scope/pkg")

        metadata = asyncio.run(_inner())
        assert metadata.version_strings() == ["1.0.0"]

    def test_concurrent_use(self):
        async def _many(client):
            return await asyncio.gather(*(client.fetch_metadata("js-tokens") for _ in range(20)))

        results = _run(_many)
        assert len(results) == 20
        assert all(len(m.versions) == 3 for m in results)


class TestFetchFailures:
    """Each transport or payload problem gets its own kind."""

    def test_not_found(self):
        with pytest.raises(PackageNotFoundError) as excinfo:
            _run(lambda client: client.fetch_metadata("bogusreact"))
        assert excinfo.value.kind is ErrorKind.NOT_FOUND
        assert excinfo.value.status_code == 404
        assert excinfo.value.message == "unable to find package bogusreact"

    def test_version_not_found(self):
        with pytest.raises(PackageNotFoundError) as excinfo:
            _run(lambda client: client.fetch_manifest("react", "0.0.1"))
        assert "react@0.0.1" in excinfo.value.message

    @pytest.mark.parametrize("status", [500, 503, 401])
    def test_bad_status_keeps_upstream_code(self, status):
        with pytest.raises(BadStatusError) as excinfo:
            _run(lambda client: client.fetch_metadata("react"), statuses={"react": status})
        assert excinfo.value.kind is ErrorKind.BAD_STATUS
        assert excinfo.value.status_code == status

    def test_invalid_json(self):
        with pytest.raises(MalformedPayloadError) as excinfo:
            _run(lambda client: client.fetch_metadata("react"), bodies={"react": "{not json"})
        assert excinfo.value.status_code == 500

    def test_unexpected_shape(self):
        with pytest.raises(MalformedPayloadError):
            _run(lambda client: client.fetch_metadata("react"), bodies={"react": ["1.0.0"]})

    def test_versions_not_an_object(self):
        with pytest.raises(MalformedPayloadError):
            _run(lambda client: client.fetch_metadata("react"), bodies={"react": {"versions": "1.0.0"}})

    def test_manifest_missing_version(self):
        with pytest.raises(MalformedPayloadError):
            _run(
                lambda client: client.fetch_manifest("react", "16.13.0"),
                bodies={"react/16.13.0": {"name": "react"}},
            )

    def test_timeout(self):
        with pytest.raises(RegistryTimeoutError) as excinfo:
            _run(
                lambda client: client.fetch_metadata("react"),
                timeout=0.1,
                delays={"react": 1.0},
            )
        assert excinfo.value.status_code == 408

    def test_unreachable(self):
        async def _inner():
            async with test_utils.TestServer(build_registry_app({})) as ts:
                base_url = str(ts.make_url(""))
            async with NpmRegistryClient(base_url, timeout=2) as client:
                await client.fetch_metadata("react")

        with pytest.raises(RegistryUnreachableError) as excinfo:
            asyncio.run(_inner())
        assert excinfo.value.status_code == 502


class TestSessionLifecycle:
    """start/stop management of the shared session."""

    def test_lazy_start_and_stop(self):
        async def _inner():
            async with test_utils.TestServer(build_registry_app(REACT_PACKAGES)) as ts:
                client = NpmRegistryClient(str(ts.make_url("")))
                assert client._session is None
                await client.fetch_metadata("react")
                assert client._session is not None
                await client.stop()
                assert client._session is None

        asyncio.run(_inner())
