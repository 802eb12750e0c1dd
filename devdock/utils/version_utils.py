"""
Dotted version string helpers
"""

import re
from typing import List

_LEADING_DIGITS = re.compile(r"^\d+")


def _component_value(component: str) -> int:
    # A component like "3" counts, "3rc1" or "beta" does not
    component = component.strip()
    return int(component) if component.isdigit() else 0


def parse_version(version: str) -> List[int]:
    """Split a version like ``v1.10.0`` into integer components"""
    text = (version or "").strip()
    if text[:1] in ("v", "V") and _LEADING_DIGITS.match(text[1:]):
        text = text[1:]
    if not text:
        return [0]
    return [_component_value(part) for part in text.split(".")]


def compare_versions(left: str, right: str) -> int:
    """
    Compare two dotted version strings component by component.

    Missing trailing components and non-numeric components count as 0, so
    ``1.2`` equals ``1.2.0`` and ``1.9.0`` sorts before ``1.10.0``.

    Returns:
        -1, 0 or 1
    """
    left_parts = parse_version(left)
    right_parts = parse_version(right)
    length = max(len(left_parts), len(right_parts))
    left_parts += [0] * (length - len(left_parts))
    right_parts += [0] * (length - len(right_parts))

    for left_value, right_value in zip(left_parts, right_parts):
        if left_value < right_value:
            return -1
        if left_value > right_value:
            return 1
    return 0


def is_newer(candidate: str, current: str) -> bool:
    return compare_versions(candidate, current) > 0
