"""Version selection and the resolution data model."""

from .models import Manifest, PackageMetadata, ResolvedPackage
from .selector import parse_constraint, select_highest, summarize_versions

__all__ = [
    "Manifest",
    "PackageMetadata",
    "ResolvedPackage",
    "parse_constraint",
    "select_highest",
    "summarize_versions",
]
