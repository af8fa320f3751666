"""Recursive concurrent dependency resolution."""

from .engine import DependencyResolver, RegistryClient, resolve_sync

__all__ = ["DependencyResolver", "RegistryClient", "resolve_sync"]
