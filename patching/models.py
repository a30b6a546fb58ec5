"""
Patch Models v1.0.0
===================
Data classes for patches, patch operations and application results.
"""

import json
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any

from config_logging import ValidationError

STRUCTURAL = 'structural'
TEXTUAL = 'textual'

# Wire names used by fix generators and stored patch files
KIND_ALIASES = {
    'structural': STRUCTURAL,
    'json-patch': STRUCTURAL,
    'textual': TEXTUAL,
    'unified-diff': TEXTUAL,
}

SUPPORTED_OPS = ('add', 'remove', 'replace', 'move', 'copy', 'test')


class _Absent:
    """Marks an operation that carries no value."""

    def __repr__(self):
        return 'ABSENT'

    def __bool__(self):
        return False


ABSENT = _Absent()


@dataclass
class PatchOperation:
    """
    One structural operation.

    Attributes:
        op: One of add, remove, replace, move, copy, test
        path: Target pointer
        from_path: Source pointer for move and copy
        value: Payload for add, replace and test (ABSENT when not given)
    """
    op: str
    path: str
    from_path: Optional[str] = None
    value: Any = ABSENT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PatchOperation':
        if not isinstance(data, dict):
            raise ValidationError("Patch operation must be an object", field='operations')
        op = data.get('op')
        if op not in SUPPORTED_OPS:
            raise ValidationError(f"Unknown patch operation: {op!r}", field='op')
        path = data.get('path')
        if not isinstance(path, str):
            raise ValidationError(f"Operation '{op}' requires a string path", field='path')
        from_path = data.get('from')
        if op in ('move', 'copy') and not isinstance(from_path, str):
            raise ValidationError(f"Operation '{op}' requires a string 'from'", field='from')
        if op in ('add', 'replace', 'test') and 'value' not in data:
            raise ValidationError(f"Operation '{op}' requires a value", field='value')
        return cls(op=op, path=path, from_path=from_path, value=data.get('value', ABSENT))

    def to_dict(self) -> Dict[str, Any]:
        result = {'op': self.op, 'path': self.path}
        if self.from_path is not None:
            result['from'] = self.from_path
        if self.value is not ABSENT:
            result['value'] = self.value
        return result


@dataclass
class Patch:
    """
    A remediation patch bound to the document version it was computed against.

    Attributes:
        kind: 'structural' or 'textual'
        preimage_hash: SHA-256 of the document text the patch expects
        operations: Ordered operations (structural patches)
        diff: Restricted unified diff body (textual patches)
        description: Optional human-readable summary
    """
    kind: str
    preimage_hash: str
    operations: List[PatchOperation] = field(default_factory=list)
    diff: str = ""
    description: str = ""

    @property
    def is_structural(self) -> bool:
        return self.kind == STRUCTURAL

    @classmethod
    def structural(cls, preimage_hash: str, operations: List[Dict[str, Any]],
                   description: str = "") -> 'Patch':
        return cls(kind=STRUCTURAL, preimage_hash=preimage_hash,
                   operations=[PatchOperation.from_dict(o) for o in operations],
                   description=description)

    @classmethod
    def textual(cls, preimage_hash: str, diff: str, description: str = "") -> 'Patch':
        return cls(kind=TEXTUAL, preimage_hash=preimage_hash, diff=diff, description=description)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Patch':
        """
        Build a patch from its wire form.

        Accepts either ``kind`` or ``type`` (``json-patch`` / ``unified-diff``),
        ``preimage_hash`` or ``preimageHash``, and a body given as
        ``operations`` (list), ``diff`` (str) or ``body`` (JSON string or
        list for structural patches, diff text for textual ones).
        """
        if not isinstance(data, dict):
            raise ValidationError("Patch must be an object", field='patches')

        raw_kind = data.get('kind') or data.get('type')
        kind = KIND_ALIASES.get(raw_kind)
        if kind is None:
            raise ValidationError(f"Unknown patch kind: {raw_kind!r}", field='kind')

        preimage_hash = data.get('preimage_hash', data.get('preimageHash')) or ""
        description = data.get('description', '')

        if kind == STRUCTURAL:
            operations = data.get('operations', data.get('body'))
            if isinstance(operations, str):
                try:
                    operations = json.loads(operations)
                except json.JSONDecodeError as e:
                    raise ValidationError(f"Structural patch body is not valid JSON: {e}",
                                          field='body')
            if not isinstance(operations, list):
                raise ValidationError("Structural patch requires a list of operations",
                                      field='operations')
            return cls.structural(preimage_hash, operations, description)

        diff = data.get('diff', data.get('body'))
        if not isinstance(diff, str):
            raise ValidationError("Textual patch requires a diff string", field='diff')
        return cls.textual(preimage_hash, diff, description)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'kind': self.kind,
            'preimage_hash': self.preimage_hash,
            'description': self.description,
        }
        if self.is_structural:
            result['operations'] = [op.to_dict() for op in self.operations]
        else:
            result['diff'] = self.diff
        return result


@dataclass
class TextPatchResult:
    """Outcome of the textual fallback patcher."""
    applied: bool
    content: str
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {'applied': self.applied, 'reason': self.reason}


@dataclass
class PatchApplicationResult:
    """
    Outcome of applying a batch of patches.

    Attributes:
        applied: Number of patches that took effect on the working copy
        dry_run: True when nothing was written
        changed: Whether the resulting text differs from the input
        skipped: One entry per patch that did not apply, with its reason
        backup_path: Backup written before the real write, if any
        content: Resulting document text
        original_hash: Hash of the input text
        new_hash: Hash of the resulting text
    """
    applied: int
    dry_run: bool
    changed: bool
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    backup_path: Optional[str] = None
    content: str = ""
    original_hash: str = ""
    new_hash: str = ""

    def to_dict(self, include_content: bool = False) -> Dict[str, Any]:
        result = {
            'applied': self.applied,
            'dry_run': self.dry_run,
            'changed': self.changed,
            'skipped': self.skipped,
            'backup_path': self.backup_path,
            'original_hash': self.original_hash,
            'new_hash': self.new_hash,
        }
        if include_content:
            result['content'] = self.content
        return result
