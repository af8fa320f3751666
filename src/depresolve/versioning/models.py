"""Data models for registry payloads and the resolved dependency tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List


@dataclass
class ResolvedPackage:
    """A node of the resolved tree.

    Created with only ``name`` set. ``version`` is filled in once a concrete
    version is selected and ``dependencies`` receives one child per declared
    dependency. A node whose resolution failed may be partially populated and
    must not be used.
    """
    name: str
    version: str = ""
    dependencies: Dict[str, "ResolvedPackage"] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Render the nested ``{name, version, dependencies}`` wire shape."""
        return {
            "name": self.name,
            "version": self.version,
            "dependencies": {
                dep_name: child.to_dict() for dep_name, child in self.dependencies.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolvedPackage":
        return cls(
            name=data["name"],
            version=data.get("version", ""),
            dependencies={
                dep_name: cls.from_dict(child)
                for dep_name, child in (data.get("dependencies") or {}).items()
            },
        )

    def walk(self) -> Iterator["ResolvedPackage"]:
        """Yield this node and every descendant, depth first."""
        yield self
        for child in self.dependencies.values():
            yield from child.walk()

    def count(self) -> int:
        return sum(1 for _ in self.walk())


@dataclass
class Manifest:
    """A concrete published version and its declared dependency constraints."""
    name: str
    version: str
    dependencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "Manifest":
        """Build from a registry version document.

        Raises:
            ValueError: when the document does not have the expected shape.
        """
        if not isinstance(payload, dict):
            raise ValueError("manifest is not a JSON object")
        name = payload.get("name")
        version = payload.get("version")
        if not isinstance(name, str) or not isinstance(version, str):
            raise ValueError("manifest is missing name or version")
        deps = payload.get("dependencies") or {}
        if not isinstance(deps, dict):
            raise ValueError("manifest dependencies is not an object")
        for dep_name, constraint in deps.items():
            if not isinstance(constraint, str):
                raise ValueError(f"constraint for {dep_name} is not a string")
        return cls(name=name, version=version, dependencies=dict(deps))


@dataclass
class PackageMetadata:
    """Packument summary: every published version string and its manifest."""
    name: str
    versions: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, name: str, payload: Any) -> "PackageMetadata":
        """Build from a registry packument.

        Raises:
            ValueError: when the document does not have the expected shape.
        """
        if not isinstance(payload, dict):
            raise ValueError("package metadata is not a JSON object")
        versions = payload.get("versions")
        if versions is None:
            versions = {}
        if not isinstance(versions, dict):
            raise ValueError("package metadata versions is not an object")
        return cls(name=payload.get("name") or name, versions=versions)

    def version_strings(self) -> List[str]:
        return list(self.versions.keys())
