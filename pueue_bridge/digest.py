"""Rolling hash used to fingerprint status snapshots.

The digest only exists so the web UI can skip re-rendering when nothing
changed. It is a djb2-style ``hash * 33 ^ byte`` over 64-bit unsigned
integers and must never be used for anything security related.
"""

from __future__ import annotations

from .constants import DIGEST_SEED

_MASK = (1 << 64) - 1


class DigestHasher:
    """Feed strings in a fixed order, then read ``digest(count)``."""

    def __init__(self, seed: int = DIGEST_SEED):
        self.value = seed

    def update(self, text: str) -> None:
        value = self.value
        for byte in text.encode("utf-8"):
            value = ((value * 33) & _MASK) ^ byte
        self.value = value

    def digest(self, count: int) -> str:
        return f"{self.value}:{count}"
