"""
Integrity Gate v1.0.0
=====================
Content hashing and preimage checks for patch batches.
"""

import hashlib
from typing import List, Sequence

from config_logging import StalePreimageError
from .models import Patch


def content_hash(text: str) -> str:
    """SHA-256 hex digest of document text."""
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


def stale_patches(text: str, patches: Sequence[Patch]) -> List[int]:
    """Indexes of patches whose preimage hash does not match ``text``."""
    current = content_hash(text)
    return [i for i, patch in enumerate(patches) if patch.preimage_hash != current]


def verify_preimages(text: str, patches: Sequence[Patch]) -> str:
    """
    Reject the whole batch if any patch was computed against other content.

    Returns:
        The live content hash.

    Raises:
        StalePreimageError: at least one patch is stale or carries no hash.
    """
    current = content_hash(text)
    stale = stale_patches(text, patches)
    if stale:
        raise StalePreimageError(
            f"Document changed since {len(stale)} of {len(patches)} patch(es) were generated",
            stale_patches=stale,
            current_hash=current,
        )
    return current
