"""depresolve - transitive dependency tree resolver for npm-style registries."""

from .errors import ErrorKind, ResolutionError
from .resolver.engine import DependencyResolver, resolve_sync
from .versioning.models import ResolvedPackage

__version__ = "0.1.0"

__all__ = [
    "DependencyResolver",
    "ErrorKind",
    "ResolutionError",
    "ResolvedPackage",
    "resolve_sync",
]
