"""
Faultgate - Duplicate trace suppression.

Repeated faults are all logged, but only the first occurrence at a given
site carries a trace.
"""

from __future__ import annotations

import hashlib

from .core import MaskLike, SeverityMask


def fingerprint(category: int, file: str, line: int, message: str) -> bytes:
    """
    Stable fingerprint of a fault site and message.

    Returns:
        16-byte md5 digest
    """
    data = f"{int(category)}/{line}/{file}\x00{message}"
    return hashlib.md5(data.encode("utf-8", "surrogatepass")).digest()


class DedupCache:
    """
    Set of fingerprints whose trace has already been logged.

    Keys are never evicted: the set grows with distinct fault sites,
    not with fault volume.
    """

    def __init__(self):
        self._seen: set[bytes] = set()

    def should_capture_trace(
        self,
        key: bytes,
        category: MaskLike,
        traced: MaskLike,
        will_log: bool,
    ) -> bool:
        """
        Check whether a trace should be captured for this occurrence.

        Only a fault that is actually logged marks the key. A fault that
        merely screams leaves it untouched, so the first real log for that
        site still gets its trace.
        """
        if category not in SeverityMask(traced):
            return False
        if key in self._seen:
            return False
        if will_log:
            self._seen.add(key)
        return True

    def __contains__(self, key: bytes) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def clear(self):
        """Forget every recorded fingerprint."""
        self._seen.clear()
