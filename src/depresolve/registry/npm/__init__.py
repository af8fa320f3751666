"""npm registry client."""

from .client import NpmRegistryClient

__all__ = ["NpmRegistryClient"]
