"""Runtime configuration: defaults, YAML file, environment, CLI flags.

Precedence, lowest to highest: ``Constants`` defaults, the YAML config file,
environment variables, explicit CLI flags.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

import yaml

from .constants import Constants

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """The configuration file or a setting is invalid."""


@dataclass
class ResolverConfig:
    """Configuration for the resolver and its HTTP server."""

    host: str = Constants.DEFAULT_HOST
    port: int = Constants.DEFAULT_PORT
    registry_url: str = Constants.REGISTRY_URL_NPM
    timeout: float = Constants.REQUEST_TIMEOUT
    max_concurrency: Optional[int] = None
    connection_limit: int = Constants.CONNECTION_LIMIT
    detect_cycles: bool = True

    def __post_init__(self):
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")
        if self.max_concurrency is not None and self.max_concurrency < 1:
            raise ConfigError("max_concurrency must be at least 1")
        if self.connection_limit < 0:
            raise ConfigError("connection_limit must not be negative")

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "ResolverConfig":
        """Create config from a mapping, ignoring unknown keys with a warning."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
        try:
            return cls(**{key: value for key, value in data.items() if key in known})
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc

    @classmethod
    def from_args(cls, args: Any) -> "ResolverConfig":
        """Create config from CLI arguments.

        Args:
            args: Parsed CLI arguments namespace.

        Returns:
            ResolverConfig instance.
        """
        settings: Dict[str, Any] = {}
        config_path = getattr(args, "CONFIG", None)
        if config_path:
            settings.update(load_config_file(config_path))
        settings.update(_env_overrides())

        overrides = {
            "host": getattr(args, "HOST", None),
            "port": getattr(args, "PORT", None),
            "registry_url": getattr(args, "REGISTRY", None),
            "timeout": getattr(args, "TIMEOUT", None),
            "max_concurrency": getattr(args, "MAX_CONCURRENCY", None),
            "connection_limit": getattr(args, "CONNECTION_LIMIT", None),
        }
        settings.update({key: value for key, value in overrides.items() if value is not None})
        if getattr(args, "NO_CYCLE_DETECTION", False):
            settings["detect_cycles"] = False

        return cls.from_mapping(settings)


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    registry = os.environ.get(Constants.ENV_REGISTRY_URL)
    if registry:
        overrides["registry_url"] = registry
    timeout = os.environ.get(Constants.ENV_TIMEOUT)
    if timeout:
        try:
            overrides["timeout"] = float(timeout)
        except ValueError as exc:
            raise ConfigError(f"{Constants.ENV_TIMEOUT} is not a number: {timeout}") from exc
    return overrides


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load settings from a YAML file.

    Settings may sit at the top level or under a ``resolver:`` section.

    Raises:
        ConfigError: the file is missing, unreadable, or not a mapping.
    """
    if not os.path.isfile(config_path):
        raise ConfigError(f"config file not found: {config_path}")
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed to load config {config_path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config {config_path} must be a mapping")
    section = data.get("resolver", data)
    if not isinstance(section, dict):
        raise ConfigError(f"'resolver' section of {config_path} must be a mapping")
    logger.info("Loaded config from: %s", config_path)
    return section
