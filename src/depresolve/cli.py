"""Command line entry point: ``depresolve serve`` and ``depresolve resolve``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, List, Optional

from .common.logging_utils import add_file_handler, configure_logging
from .config import ConfigError, ResolverConfig
from .constants import ExitCodes
from .errors import ErrorKind, ResolutionError, as_resolution_error
from .resolver.engine import resolve_sync

logger = logging.getLogger(__name__)

CONNECTION_KINDS = (ErrorKind.TIMEOUT, ErrorKind.UNREACHABLE)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="YAML config file",
                        action="store",
                        type=str)
    parser.add_argument("--registry",
                        dest="REGISTRY",
                        help="Registry base URL (default: https://registry.npmjs.org)",
                        action="store",
                        type=str)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help="Per-request registry timeout in seconds",
                        action="store",
                        type=float)
    parser.add_argument("--max-concurrency",
                        dest="MAX_CONCURRENCY",
                        help="Limit registry fetches in flight (default: unbounded)",
                        action="store",
                        type=int)
    parser.add_argument("--connection-limit",
                        dest="CONNECTION_LIMIT",
                        help="HTTP connection pool size, 0 for unlimited",
                        action="store",
                        type=int)
    parser.add_argument("--no-cycle-detection",
                        dest="NO_CYCLE_DETECTION",
                        help="Do not fail on dependency cycles (a cycle then never terminates)",
                        action="store_true")
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="depresolve",
        description="Resolve the full dependency tree of an npm package",
    )
    subparsers = parser.add_subparsers(dest="COMMAND", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP resolver service")
    serve.add_argument("--host",
                       dest="HOST",
                       help="Bind address (default: 127.0.0.1)",
                       action="store",
                       type=str)
    serve.add_argument("--port",
                       dest="PORT",
                       help="Bind port (default: 8080)",
                       action="store",
                       type=int)
    _add_common_arguments(serve)

    resolve = subparsers.add_parser("resolve", help="Resolve one package and print its tree")
    resolve.add_argument("package", help="Package name, e.g. react or @babel/core")
    resolve.add_argument("constraint", help="Version constraint, e.g. ^16.13.0")
    resolve.add_argument("-o", "--output",
                         dest="OUTPUT",
                         help="Write the JSON tree to this file instead of stdout",
                         action="store",
                         type=str)
    _add_common_arguments(resolve)

    return parser.parse_args(argv)


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments.

    Args:
        args: Parsed CLI arguments.
    """
    configure_logging(getattr(args, "LOG_LEVEL", None))
    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        add_file_handler(log_file)
        logger.info("Logging to file: %s", log_file)


def run_resolve(args: Any, config: ResolverConfig) -> int:
    """Resolve once and print the tree; returns the exit code."""
    try:
        tree = resolve_sync(args.package, args.constraint, config)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        error = as_resolution_error(exc)
        if not isinstance(exc, ResolutionError):
            logger.exception("Unclassified failure resolving %s", args.package)
        logger.error("%s: %s", error.kind.value, error.message)
        sys.stderr.write(json.dumps(error.to_dict()) + "\n")
        if error.kind in CONNECTION_KINDS:
            return ExitCodes.CONNECTION_ERROR.value
        return ExitCodes.RESOLUTION_ERROR.value

    rendered = json.dumps(tree.to_dict(), indent=2)
    output = getattr(args, "OUTPUT", None)
    if output:
        try:
            with open(output, "w", encoding="utf-8") as file:
                file.write(rendered + "\n")
        except OSError as exc:
            logger.error("Unable to write %s: %s", output, exc)
            return ExitCodes.FILE_ERROR.value
        logger.info("Wrote %d packages to %s", tree.count(), output)
    else:
        sys.stdout.write(rendered + "\n")
    return ExitCodes.SUCCESS.value


def run_serve(config: ResolverConfig) -> int:
    # Lazy import keeps `resolve` from loading aiohttp.web
    from .server import run_server_sync  # pylint: disable=import-outside-toplevel

    run_server_sync(config)
    return ExitCodes.SUCCESS.value


def main(argv: Optional[List[str]] = None) -> int:
    """Program entry point."""
    args = parse_args(argv)
    _setup_logging(args)

    try:
        config = ResolverConfig.from_args(args)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return ExitCodes.CONFIG_ERROR.value

    if args.COMMAND == "serve":
        return run_serve(config)
    return run_resolve(args, config)


if __name__ == "__main__":
    sys.exit(main())
