"""
Patch Applier v1.0.0
====================
Applies a batch of patches to a spec document held in memory or on disk.

Order of work for a batch:
1. Hash the live text and reject the batch if any patch is stale.
2. Apply each patch in turn to the working text. Structural patches parse
   the current text (JSON or YAML), apply their operations and serialize
   it back in the same format; textual patches go through the fail-closed
   fallback patcher. A patch that cannot take effect is recorded as
   skipped and leaves the working text as it was.
3. When writing for real and the text changed, back up the original and
   replace the file atomically.
"""

import shutil
from pathlib import Path
from typing import List, Optional, Sequence, Union, Dict, Any

from config_logging import get_logger, get_config, StructuredLogger
from file_parsers import try_parse, serialize_document, detect_format, read_spec_file
from .models import Patch, PatchApplicationResult
from .integrity import content_hash, verify_preimages
from .structural import apply_operations
from .textual import apply_text_patch

_logger = get_logger('patch_applier')


def coerce_patches(patches: Sequence[Union[Patch, Dict[str, Any]]]) -> List[Patch]:
    """Accept Patch objects or their wire dicts."""
    return [p if isinstance(p, Patch) else Patch.from_dict(p) for p in patches]


def _apply_structural(text: str, patch: Patch, fmt: Optional[str],
                      allow_test_noop: Optional[bool]):
    """Returns (new_text, skip_reason)."""
    document, used_fmt = try_parse(text, fmt)
    if document is None:
        return text, 'document is not structured data'

    patched = apply_operations(document, patch.operations, allow_test_noop)
    if patched == document:
        return text, None
    return serialize_document(patched, used_fmt, text.endswith('\n')), None


def apply_patches_to_text(text: str, patches: Sequence[Union[Patch, Dict[str, Any]]],
                          fmt: Optional[str] = None,
                          allow_test_noop: Optional[bool] = None) -> PatchApplicationResult:
    """
    Apply patches to document text without touching any file.

    Raises:
        StalePreimageError: a patch does not match ``text``; nothing applied.
        UnsupportedPatchOperationError: a structural patch contains ``test``.
    """
    batch = coerce_patches(patches)
    original_hash = verify_preimages(text, batch)

    working = text
    applied = 0
    skipped = []
    for index, patch in enumerate(batch):
        if patch.is_structural:
            updated, reason = _apply_structural(working, patch, fmt, allow_test_noop)
        else:
            outcome = apply_text_patch(working, patch.diff)
            updated = outcome.content
            reason = None if outcome.applied else outcome.reason

        if reason:
            skipped.append({'index': index, 'kind': patch.kind, 'reason': reason})
            _logger.info("patch skipped", index=index, kind=patch.kind, reason=reason)
            continue
        applied += 1
        working = updated

    return PatchApplicationResult(
        applied=applied,
        dry_run=True,
        changed=working != text,
        skipped=skipped,
        content=working,
        original_hash=original_hash,
        new_hash=content_hash(working),
    )


def _write_atomic(path: Path, text: str):
    temp_path = path.with_name(path.name + '.tmp')
    with open(temp_path, 'w', encoding='utf-8', newline='') as f:
        f.write(text)
    shutil.move(str(temp_path), str(path))


def _create_backup(path: Path, suffix: str) -> Path:
    backup_path = path.with_name(path.name + suffix)
    shutil.copy2(path, backup_path)
    return backup_path


def apply_patches(filepath: Union[str, Path], patches: Sequence[Union[Patch, Dict[str, Any]]],
                  dry_run: bool = True, backup: bool = True,
                  allow_test_noop: Optional[bool] = None) -> PatchApplicationResult:
    """
    Apply a patch batch to a spec file.

    Args:
        filepath: Spec file to patch
        patches: Patches generated against the file's current content
        dry_run: Compute the result without writing anything
        backup: Copy the original next to it (``<file>.bak``) before writing
        allow_test_noop: See patching.structural.apply_operations

    Returns:
        PatchApplicationResult; ``content`` holds the would-be text.
    """
    path = Path(filepath)
    correlation_id = StructuredLogger.new_correlation_id()

    with _logger.log_operation('apply_patches', target=str(path), patch_count=len(patches),
                               dry_run=dry_run):
        text = read_spec_file(path)
        result = apply_patches_to_text(text, patches, detect_format(text, path), allow_test_noop)
        result.dry_run = dry_run

        if dry_run or not result.changed:
            return result

        if backup:
            result.backup_path = str(_create_backup(path, get_config().backup_suffix))
        _write_atomic(path, result.content)
        _logger.info("patches written", target=str(path), applied=result.applied,
                     backup=result.backup_path, run=correlation_id)
        return result

