"""Error taxonomy shared by the selector, registry client, engine and server.

Every failure is classified where it happens and the same exception object
travels up through the engine unchanged. Only the HTTP boundary falls back to
``InternalError`` for exceptions that were never classified.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Classified failure kinds and their default HTTP status."""

    INVALID_CONSTRAINT = "InvalidConstraint"
    NO_COMPATIBLE_VERSION = "NoCompatibleVersion"
    TIMEOUT = "Timeout"
    UNREACHABLE = "Unreachable"
    NOT_FOUND = "NotFound"
    BAD_STATUS = "BadStatus"
    MALFORMED_PAYLOAD = "MalformedPayload"
    CYCLIC_DEPENDENCY = "CyclicDependency"
    INTERNAL = "Internal"


_DEFAULT_STATUS = {
    ErrorKind.INVALID_CONSTRAINT: 404,
    ErrorKind.NO_COMPATIBLE_VERSION: 404,
    ErrorKind.TIMEOUT: 408,
    ErrorKind.UNREACHABLE: 502,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.BAD_STATUS: 502,
    ErrorKind.MALFORMED_PAYLOAD: 500,
    ErrorKind.CYCLIC_DEPENDENCY: 508,
    ErrorKind.INTERNAL: 500,
}


class ResolutionError(Exception):
    """Base class for every classified resolution failure."""

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code if status_code is not None else _DEFAULT_STATUS[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        """Render the wire error envelope."""
        return {"status_code": self.status_code, "message": self.message}

    def __str__(self) -> str:
        return f"status {self.status_code}: {self.message}"


class InvalidConstraintError(ResolutionError):
    """The constraint string is not a valid semver range expression."""

    kind = ErrorKind.INVALID_CONSTRAINT

    def __init__(self, constraint: str, reason: str):
        super().__init__(f"unable to determine version constraint {constraint}: {reason}")
        self.constraint = constraint


class NoCompatibleVersionError(ResolutionError):
    """Published versions exist but none satisfies the constraint."""

    kind = ErrorKind.NO_COMPATIBLE_VERSION

    def __init__(self, constraint: str, summary: str):
        super().__init__(f"no compatible versions [{summary}] for constraint {constraint}")
        self.constraint = constraint
        self.summary = summary


class RegistryTimeoutError(ResolutionError):
    """The registry did not answer within the transport timeout."""

    kind = ErrorKind.TIMEOUT


class RegistryUnreachableError(ResolutionError):
    """Transport-level failure (DNS, refused connection, reset)."""

    kind = ErrorKind.UNREACHABLE


class PackageNotFoundError(ResolutionError):
    """The registry answered 404 for the package or version."""

    kind = ErrorKind.NOT_FOUND


class BadStatusError(ResolutionError):
    """The registry answered with an unexpected non-2xx status."""

    kind = ErrorKind.BAD_STATUS

    def __init__(self, message: str, status_code: int):
        super().__init__(message, status_code=status_code)


class MalformedPayloadError(ResolutionError):
    """The registry body was not the expected JSON structure."""

    kind = ErrorKind.MALFORMED_PAYLOAD


class CyclicDependencyError(ResolutionError):
    """A package version depends on itself through its own subtree."""

    kind = ErrorKind.CYCLIC_DEPENDENCY

    def __init__(self, chain):
        path = " -> ".join(f"{name}@{version}" for name, version in chain)
        super().__init__(f"dependency cycle detected: {path}")
        self.chain = list(chain)


class InternalError(ResolutionError):
    """Anything not otherwise classified."""

    kind = ErrorKind.INTERNAL


def as_resolution_error(exc: BaseException) -> ResolutionError:
    """Return ``exc`` when classified, else wrap it as an ``InternalError``."""
    if isinstance(exc, ResolutionError):
        return exc
    return InternalError("internal server error")
