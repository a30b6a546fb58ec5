"""
Patch Application Module v1.0.0
===============================
Hash-gated remediation of API specification documents.

Features:
- Pointer engine with escape-aware segments and ``-`` semantics
- Structural patches (add/remove/replace/move/copy)
- Fail-closed textual fallback for restricted unified diffs
- Preimage hash gate that rejects stale batches before any mutation

File-level application (backup, dry run, atomic write) lives in
``patching.applier``.
"""

from .models import (
    Patch,
    PatchOperation,
    PatchApplicationResult,
    TextPatchResult,
    STRUCTURAL,
    TEXTUAL,
)
from .pointer import NOT_FOUND, resolve, set_value, remove, parse_pointer, build_pointer
from .structural import apply_operations
from .textual import apply_text_patch
from .integrity import content_hash, verify_preimages

__version__ = "1.0.0"
__all__ = [
    'Patch',
    'PatchOperation',
    'PatchApplicationResult',
    'TextPatchResult',
    'STRUCTURAL',
    'TEXTUAL',
    'NOT_FOUND',
    'resolve',
    'set_value',
    'remove',
    'parse_pointer',
    'build_pointer',
    'apply_operations',
    'apply_text_patch',
    'content_hash',
    'verify_preimages',
]
