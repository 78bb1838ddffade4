"""Semantic version ordering for package index versions.

Index versions are semver rather than PEP 440
(``7.3.0-atmel3.6.1-arduino7``, ``1.8.6``, ``2.0.0-rc1``), so they are
parsed with ``semver``. Missing minor and patch parts count as 0, a
leading ``v`` is accepted and ``+build`` metadata doesn't affect ordering.

Strings that aren't semver sort before every valid version and among
themselves lexically.
"""

from typing import List, Optional, Tuple

import semver


def parse_version(version: str) -> Optional[semver.Version]:
    """Parse a version string, returning None when it isn't semver."""
    text = version.strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    try:
        return semver.Version.parse(text, optional_minor_and_patch=True)
    except (ValueError, TypeError):
        return None


def _order_key(version: str) -> Tuple:
    parsed = parse_version(version)
    if parsed is None:
        return (0, version)
    return (1, parsed)


def version_key(version: str) -> Tuple:
    """
    Build a sort key for a version string.

    Versions that compare equal (``1.8.6`` and ``1.8.6+build5``) are told
    apart by the larger string, so sorting and ``max`` are deterministic.
    """
    return _order_key(version) + (version,)


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as version ``a`` sorts before, equal to or after ``b``."""
    ka, kb = _order_key(a), _order_key(b)
    if ka < kb:
        return -1
    if ka > kb:
        return 1
    return 0


def max_version(versions: List[str]) -> Optional[str]:
    """Return the highest version of the list, or None if it is empty."""
    if not versions:
        return None
    return max(versions, key=version_key)
