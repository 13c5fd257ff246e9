"""
    Asset code normalization.

    Organizations write the same code in many ways (``HMSI/ELK/001``,
    ``hmsi-elk-1``, ``HMSI_ELK_01``). Codes are compared by their
    normalized key: lower-cased, split on ``\\ / - _``, numeric segments
    stripped of leading zeros, other segments trimmed, rejoined with ``/``.
"""

import re

SEPARATORS = re.compile(r'[\\/\-_]')

# Lower-casing may lengthen a code ('İ' becomes two code points).
KEY_LENGTH = 100


def _normalize_segment(segment: str) -> str:
    segment = segment.strip()
    if segment.isascii() and segment.isdigit():
        return str(int(segment))
    return segment


def normalize(code: str) -> str:
    if not code:
        return ""
    return "/".join(
        _normalize_segment(segment)
        for segment in SEPARATORS.split(code.lower())
    )


def is_duplicate(a: str, b: str) -> bool:
    return normalize(a) == normalize(b)
