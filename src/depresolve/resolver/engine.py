"""Resolution engine: build the pinned dependency tree of a package.

Each node resolves in three steps (metadata, version selection, manifest) and
then resolves every declared dependency as its own asyncio task. The parent
joins on all of its children, inserts the successful ones into its own
mapping, and reports the first failure it observes. Which failure is "first"
depends on completion order, so repeated runs against a registry with several
failing branches may report different errors.

Failed children do not cancel their siblings; their results are dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncContextManager, Optional, Protocol, Tuple

from ..common.logging_utils import Timer, extra_context, is_debug_enabled
from ..config import ResolverConfig
from ..errors import CyclicDependencyError
from ..registry.npm.client import NpmRegistryClient
from ..versioning.models import Manifest, PackageMetadata, ResolvedPackage
from ..versioning.selector import parse_constraint, select_highest

logger = logging.getLogger(__name__)

# (name, version) pairs from the root down to the current node
Chain = Tuple[Tuple[str, str], ...]

# Guards registry fetches: a semaphore, or a no-op when fan-out is unbounded
FetchSlots = AsyncContextManager[object]


class RegistryClient(Protocol):
    """What the engine needs from a registry client."""

    async def fetch_metadata(self, name: str) -> PackageMetadata:
        ...

    async def fetch_manifest(self, name: str, version: str) -> Manifest:
        ...


class DependencyResolver:
    """Resolve package trees against a registry client.

    Args:
        client: Registry client shared by every resolution task.
        max_concurrency: Upper bound on registry fetches in flight. None
            leaves fan-out unbounded.
        detect_cycles: Fail with ``CyclicDependencyError`` when a
            ``name@version`` reappears among its own ancestors. When False a
            cycle recurses forever.
    """

    def __init__(
        self,
        client: RegistryClient,
        max_concurrency: Optional[int] = None,
        detect_cycles: bool = True,
    ):
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be a positive integer or None")
        self._client = client
        self._max_concurrency = max_concurrency
        self._detect_cycles = detect_cycles

    def _new_fetch_slots(self) -> FetchSlots:
        # One per top-level call; a semaphore binds to the loop it first waits on
        if self._max_concurrency is None:
            return contextlib.nullcontext()
        return asyncio.Semaphore(self._max_concurrency)

    async def resolve_tree(self, name: str, constraint: str) -> ResolvedPackage:
        """Resolve ``name`` against ``constraint`` and return the root node.

        Raises:
            ResolutionError: the first failure recorded anywhere in the tree.
        """
        root = ResolvedPackage(name=name)
        with Timer() as timer:
            await self.resolve(root, constraint)
        logger.info(
            "Resolved %s@%s (%d packages) in %.0f ms",
            root.name,
            root.version,
            root.count(),
            timer.duration_ms(),
            extra=extra_context(
                event="resolve_tree",
                component="resolver",
                outcome="success",
                package=name,
                constraint=constraint,
            ),
        )
        return root

    async def resolve(
        self,
        node: ResolvedPackage,
        constraint: str,
        chain: Chain = (),
        fetch_slots: Optional[FetchSlots] = None,
    ) -> None:
        """Resolve ``node`` in place.

        On failure ``node`` may be partially populated and must be discarded.
        ``fetch_slots`` is shared by every node of one tree; a fresh one is
        created when omitted.

        Raises:
            ResolutionError: classified where it happened, passed through as is.
        """
        if fetch_slots is None:
            fetch_slots = self._new_fetch_slots()

        # A malformed constraint fails before any registry traffic
        spec = parse_constraint(constraint)

        async with fetch_slots:
            metadata = await self._client.fetch_metadata(node.name)

        node.version = select_highest(constraint, metadata.version_strings(), spec)

        link = (node.name, node.version)
        if self._detect_cycles and link in chain:
            raise CyclicDependencyError(chain[chain.index(link):] + (link,))
        chain = chain + (link,)

        async with fetch_slots:
            manifest = await self._client.fetch_manifest(node.name, node.version)

        if is_debug_enabled(logger):
            logger.debug(
                "Selected %s@%s for %s; %d dependencies",
                node.name,
                node.version,
                constraint,
                len(manifest.dependencies),
                extra=extra_context(
                    event="node_selected",
                    component="resolver",
                    package=node.name,
                    depth=len(chain) - 1,
                ),
            )

        if not manifest.dependencies:
            return

        children = [
            asyncio.ensure_future(
                self._resolve_child(dep_name, dep_constraint, chain, fetch_slots)
            )
            for dep_name, dep_constraint in manifest.dependencies.items()
        ]

        first_error: Optional[BaseException] = None
        for finished in asyncio.as_completed(children):
            try:
                child = await finished
            except Exception as exc:  # pylint: disable=broad-exception-caught
                if first_error is None:
                    first_error = exc
                else:
                    logger.debug("Dropping later failure under %s: %s", node.name, exc)
                continue
            if first_error is None:
                node.dependencies[child.name] = child

        if first_error is not None:
            raise first_error

    async def _resolve_child(
        self, name: str, constraint: str, chain: Chain, fetch_slots: FetchSlots
    ) -> ResolvedPackage:
        child = ResolvedPackage(name=name)
        await self.resolve(child, constraint, chain, fetch_slots)
        return child


async def resolve_with_config(
    name: str, constraint: str, config: ResolverConfig
) -> ResolvedPackage:
    """Open a registry client from ``config`` and resolve one tree."""
    async with NpmRegistryClient(
        base_url=config.registry_url,
        timeout=config.timeout,
        connection_limit=config.connection_limit,
    ) as client:
        resolver = DependencyResolver(
            client,
            max_concurrency=config.max_concurrency,
            detect_cycles=config.detect_cycles,
        )
        return await resolver.resolve_tree(name, constraint)


def resolve_sync(
    name: str, constraint: str, config: Optional[ResolverConfig] = None
) -> ResolvedPackage:
    """Blocking wrapper around ``resolve_with_config``."""
    return asyncio.run(resolve_with_config(name, constraint, config or ResolverConfig()))
