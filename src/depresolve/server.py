"""HTTP surface for the resolver using aiohttp.

``GET /package/{name}/{constraint}`` answers with the resolved tree as nested
``{name, version, dependencies}`` objects, or with a
``{"status_code": ..., "message": ...}`` envelope on failure.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from typing import Optional

from aiohttp import web

from .common.logging_utils import extra_context
from .config import ResolverConfig
from .errors import InternalError, ResolutionError, as_resolution_error
from .registry.npm.client import NpmRegistryClient
from .resolver.engine import DependencyResolver

logger = logging.getLogger(__name__)

# Plain or scoped (@scope/pkg) package name
PACKAGE_ROUTE = "/package/{name:(?:@[^/]+/)?[^/]+}/{constraint}"


def error_response(error: ResolutionError) -> web.Response:
    """Serialize a classified error into the wire envelope."""
    return web.Response(
        status=error.status_code,
        content_type="application/json",
        text=json.dumps(error.to_dict()),
    )


class ResolverServer:
    """HTTP server exposing dependency tree resolution."""

    def __init__(
        self,
        config: ResolverConfig,
        client: Optional[NpmRegistryClient] = None,
    ):
        """Initialize the server.

        Args:
            config: Server and resolver configuration.
            client: Registry client override; built from ``config`` when None.
        """
        self._config = config
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None

        self._client = client or NpmRegistryClient(
            base_url=config.registry_url,
            timeout=config.timeout,
            connection_limit=config.connection_limit,
        )
        self._resolver = DependencyResolver(
            self._client,
            max_concurrency=config.max_concurrency,
            detect_cycles=config.detect_cycles,
        )

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()
        app.router.add_get("/_health", self._health_check)
        app.router.add_get(PACKAGE_ROUTE, self._handle_package)
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def _health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "ok",
            "registry": self._client.base_url,
            "max_concurrency": self._config.max_concurrency,
        })

    async def _on_startup(self, app: web.Application) -> None:
        await self._client.start()
        logger.info("Resolver server starting on %s:%s", self._config.host, self._config.port)

    async def _on_cleanup(self, app: web.Application) -> None:
        await self._client.stop()
        logger.info("Resolver server stopped")

    async def _handle_package(self, request: web.Request) -> web.Response:
        """Resolve the requested package and render the tree.

        Args:
            request: Incoming HTTP request.

        Returns:
            HTTP response.
        """
        name = request.match_info["name"]
        constraint = request.match_info["constraint"]
        logger.info("Request: %s %s@%s", request.method, name, constraint)

        try:
            tree = await self._resolver.resolve_tree(name, constraint)
        except ResolutionError as exc:
            logger.warning(
                "Resolution of %s@%s failed: %s",
                name,
                constraint,
                exc,
                extra=extra_context(
                    event="resolve_tree",
                    component="server",
                    outcome=exc.kind.value,
                    package=name,
                ),
            )
            return error_response(exc)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.exception("Unclassified failure resolving %s@%s", name, constraint)
            return error_response(as_resolution_error(exc))

        try:
            body = json.dumps(tree.to_dict(), indent=2)
        except (TypeError, ValueError) as exc:
            logger.error("Failed to serialize tree for %s: %s", name, exc)
            return error_response(InternalError("failed to marshal JSON"))

        return web.Response(status=200, content_type="application/json", text=body)

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

        logger.info(
            "depresolve listening on http://%s:%s",
            self._config.host, self._config.port,
        )
        logger.info("Registry: %s", self._config.registry_url)
        logger.info(
            "Max concurrency: %s",
            self._config.max_concurrency if self._config.max_concurrency else "unbounded",
        )

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None


def run_server_sync(config: ResolverConfig) -> None:
    """Run the server until SIGTERM or SIGINT.

    Args:
        config: Server configuration.
    """
    server = ResolverServer(config)
    loop = asyncio.new_event_loop()

    async def run():
        await server.start()
        stop_event = asyncio.Event()
        running_loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            running_loop.add_signal_handler(sig, stop_event.set)
        await stop_event.wait()
        logger.info("Shutdown signal received, stopping...")
        await server.stop()

    try:
        loop.run_until_complete(run())
    except KeyboardInterrupt:
        # Signal handlers are unavailable on Windows
        loop.run_until_complete(server.stop())
    finally:
        loop.close()
        logger.info("Server shutdown complete")
