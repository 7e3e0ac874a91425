"""
HOMESERVER App Packaging Helpers
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

"""
Version comparison for app packages.

Package versions look like "1.2.3~ynh4": the upstream version of the app,
then the revision of the package itself.
"""

import re
from typing import List, Tuple
from packaging import version
from .index import log_message

PACKAGE_SEPARATOR = "~ynh"

COMPARISONS = ("lt", "le", "eq", "ne", "ge", "gt")


def split_app_version(version_str: str) -> Tuple[str, str]:
    """
    Split a package version into its upstream and package parts.

    Returns:
        Tuple[str, str]: (upstream, package); package is "0" without a ~ynh suffix
    """
    upstream, sep, package = version_str.strip().partition(PACKAGE_SEPARATOR)
    return upstream, (package if sep and package else "0")


def _parse_segments(version_str: str) -> List[int]:
    parts = [int(part) for part in re.findall(r"\d+", version_str)]
    return parts or [0]


def _compare_segments(version1: str, version2: str) -> int:
    v1_parts = _parse_segments(version1)
    v2_parts = _parse_segments(version2)

    # Pad to same length
    max_len = max(len(v1_parts), len(v2_parts))
    v1_parts.extend([0] * (max_len - len(v1_parts)))
    v2_parts.extend([0] * (max_len - len(v2_parts)))

    for left, right in zip(v1_parts, v2_parts):
        if left < right:
            return -1
        if left > right:
            return 1
    return 0


def compare_upstream_versions(version1: str, version2: str) -> int:
    """Compare two upstream versions, falling back to numeric segments for non PEP 440 strings."""
    try:
        parsed1 = version.parse(version1)
        parsed2 = version.parse(version2)
    except version.InvalidVersion:
        log_message(f"Comparing '{version1}' and '{version2}' by numeric segments", "DEBUG")
        return _compare_segments(version1, version2)
    return (parsed1 > parsed2) - (parsed1 < parsed2)


def compare_versions(version1: str, version2: str) -> int:
    """
    Compare two package version strings.

    Args:
        version1: First version string (e.g., "1.0.0~ynh1")
        version2: Second version string (e.g., "1.1.0~ynh2")

    Returns:
        int: -1 if version1 < version2, 0 if equal, 1 if version1 > version2
    """
    upstream1, package1 = split_app_version(version1)
    upstream2, package2 = split_app_version(version2)

    result = compare_upstream_versions(upstream1, upstream2)
    if result == 0:
        result = _compare_segments(package1, package2)

    log_message(f"Compared versions: '{version1}' vs '{version2}' -> {result}", "DEBUG")
    return result


def version_compare(version1: str, comparison: str, version2: str) -> bool:
    """Evaluate 'version1 <comparison> version2' for one of lt, le, eq, ne, ge, gt."""
    if comparison not in COMPARISONS:
        raise ValueError(f"Invalid comparison '{comparison}', expected one of: {', '.join(COMPARISONS)}")

    result = compare_versions(version1, version2)
    return {
        "lt": result < 0,
        "le": result <= 0,
        "eq": result == 0,
        "ne": result != 0,
        "ge": result >= 0,
        "gt": result > 0,
    }[comparison]


def version_gt(version1: str, version2: str) -> bool:
    return version_compare(version1, "gt", version2)


def version_ge(version1: str, version2: str) -> bool:
    return version_compare(version1, "ge", version2)


def version_lt(version1: str, version2: str) -> bool:
    return version_compare(version1, "lt", version2)


def version_le(version1: str, version2: str) -> bool:
    return version_compare(version1, "le", version2)
