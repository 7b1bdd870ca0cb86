"""Content digests and the fixed empty layer blob."""

from __future__ import annotations

import hashlib
import re
from typing import Union

CANONICAL_ALGORITHM = "sha256"

DIGEST_PATTERN = re.compile(r"^[a-z0-9]+:[a-f0-9]+$")

# gzip-compressed empty tar archive (1024 zero bytes). The header carries a
# non-zero timestamp; these bytes are the ones registries already hold, so
# they must not change.
GZIPPED_EMPTY_LAYER = bytes(
    [
        31, 139, 8, 0, 0, 9, 110, 136, 0, 255, 98, 24, 5, 163, 96, 20, 140, 88,
        0, 8, 0, 0, 255, 255, 46, 175, 181, 239, 0, 4, 0, 0,
    ]
)


def canonical_digest(data: Union[bytes, bytearray]) -> str:
    """Digest of ``data`` with the canonical algorithm, as ``sha256:<hex>``."""
    if not isinstance(data, (bytes, bytearray)):
        raise ValueError("Data must be bytes or bytearray")
    return f"{CANONICAL_ALGORITHM}:{hashlib.sha256(data).hexdigest()}"


def validate_digest(digest: str) -> bool:
    if not isinstance(digest, str) or not DIGEST_PATTERN.match(digest):
        return False
    algorithm, _ = digest.split(":", 1)
    return algorithm in hashlib.algorithms_available



def verify_digest(data: Union[bytes, bytearray], digest: str) -> bool:
    """Whether ``data`` read back from somewhere still has the ``digest`` recorded for it."""
    return validate_digest(digest) and canonical_digest(data) == digest
