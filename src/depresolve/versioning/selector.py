"""Select the highest published version satisfying a semver constraint."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Tuple, Union

import semantic_version

from ..common.logging_utils import extra_context, is_debug_enabled
from ..constants import Constants
from ..errors import InvalidConstraintError, NoCompatibleVersionError

logger = logging.getLogger(__name__)

Constraint = Union[semantic_version.NpmSpec, semantic_version.SimpleSpec]


def _normalize_spec(spec_str: str) -> str:
    """Normalize comma separated comparators into SimpleSpec form.

    npm grammar has no comma: ">= 1.0.0, < 2.0.0" => ">=1.0.0,<2.0.0"
    """
    return ",".join(re.sub(r"\s+", "", part) for part in spec_str.strip().split(","))


def parse_constraint(constraint: str) -> Constraint:
    """Parse a range expression.

    npm grammar (``^``, ``~``, x-ranges, hyphen ranges, ``||``) is tried first;
    comma separated comparator lists fall back to ``SimpleSpec``.

    Raises:
        InvalidConstraintError: if neither grammar accepts the string.
    """
    try:
        return semantic_version.NpmSpec(constraint)
    except ValueError as npm_exc:
        try:
            return semantic_version.SimpleSpec(_normalize_spec(constraint))
        except ValueError:
            raise InvalidConstraintError(constraint, str(npm_exc)) from npm_exc


def _matches(spec: Constraint, version: semantic_version.Version) -> bool:
    if isinstance(spec, semantic_version.NpmSpec):
        return spec.match(version)
    return version in spec


def compatible_versions(
    spec: Constraint, available_versions: Iterable[str]
) -> List[Tuple[semantic_version.Version, str]]:
    """Return ``(parsed, original)`` pairs of the versions satisfying ``spec``.

    Entries that are not valid semantic versions are skipped.
    """
    compatible = []
    for raw in available_versions:
        try:
            parsed = semantic_version.Version(raw)
        except ValueError:
            continue
        if _matches(spec, parsed):
            compatible.append((parsed, raw))
    return compatible


def summarize_versions(
    available_versions: Iterable[str], limit: Optional[int] = None
) -> str:
    """Comma separated, lexically sorted, bounded list of version strings."""
    limit = Constants.VERSION_SUMMARY_LIMIT if limit is None else limit
    return ", ".join(sorted(available_versions)[:limit])


def select_highest(
    constraint: str,
    available_versions: Iterable[str],
    spec: Optional[Constraint] = None,
) -> str:
    """Return the highest version in ``available_versions`` satisfying ``constraint``.

    The returned string is the registry's own spelling of that version. Callers
    that already parsed ``constraint`` pass the result as ``spec``.

    Raises:
        InvalidConstraintError: the constraint cannot be parsed.
        NoCompatibleVersionError: no valid version satisfies the constraint.
    """
    available = list(available_versions)
    if spec is None:
        spec = parse_constraint(constraint)
    compatible = compatible_versions(spec, available)

    if not compatible:
        raise NoCompatibleVersionError(constraint, summarize_versions(available))

    compatible.sort()
    selected = compatible[-1][1]
    if is_debug_enabled(logger):
        logger.debug(
            "Selected %s for constraint %s",
            selected,
            constraint,
            extra=extra_context(
                event="version_selected",
                component="selector",
                outcome="success",
                candidate_count=len(available),
                match_count=len(compatible),
            ),
        )
    return selected
