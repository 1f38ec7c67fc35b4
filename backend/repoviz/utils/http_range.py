"""HTTP byte-range helpers (RFC 9110 single-range subset)."""

from __future__ import annotations

import re
from typing import Optional, Tuple

from repoviz.services.exceptions import RangeNotSatisfiableError

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)
_CONTENT_RANGE_TOTAL_RE = re.compile(r"/\s*(\d+)\s*$")


def parse_range(header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """
    Resolve a ``Range`` header against a payload of ``size`` bytes.

    Returns:
        Inclusive ``(start, end)`` offsets, or None when the header is absent,
        malformed, or asks for several ranges (the full payload is served then).

    Raises:
        RangeNotSatisfiableError: if the range is well-formed but lies outside the payload
    """
    if not header:
        return None

    match = _RANGE_RE.match(header)
    if not match:
        return None

    first, last = match.group(1), match.group(2)
    if not first and not last:
        return None

    if not first:
        # Suffix range: the last N bytes
        suffix = int(last)
        if suffix == 0 or size == 0:
            raise RangeNotSatisfiableError(f"Range {header!r} not satisfiable", size)
        return max(0, size - suffix), size - 1

    start = int(first)
    if last and int(last) < start:
        return None
    if start >= size:
        raise RangeNotSatisfiableError(f"Range {header!r} not satisfiable", size)
    end = int(last) if last else size - 1
    return start, min(end, size - 1)


def content_range(start: int, end: int, size: int) -> str:
    return f"bytes {start}-{end}/{size}"


def total_from_content_range(value: Optional[str]) -> Optional[int]:
    """Extract the complete length from a ``Content-Range`` value, if known."""
    if not value:
        return None
    match = _CONTENT_RANGE_TOTAL_RE.search(value)
    return int(match.group(1)) if match else None
