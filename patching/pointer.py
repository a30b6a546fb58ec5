"""
Pointer Engine v1.0.0
=====================
Resolve, set and remove values in a JSON/YAML document tree using
``/``-delimited pointers.

Segment escapes ``~1`` (``/``) and ``~0`` (``~``) are decoded before the
container type is inspected. The literal segment ``-`` addresses the
position one past the end of a list and is only meaningful for ``set``
(append) and ``remove`` (last element).

Mutations are permissive: a pointer that cannot be reached is a no-op,
never an exception.
"""

from typing import Any, List


class _NotFound:
    """Result of resolving a pointer that addresses nothing."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return 'NOT_FOUND'

    def __bool__(self):
        return False


NOT_FOUND = _NotFound()

APPEND_SEGMENT = '-'


def unescape_segment(segment: str) -> str:
    return segment.replace('~1', '/').replace('~0', '~')


def escape_segment(segment: str) -> str:
    return str(segment).replace('~', '~0').replace('/', '~1')


def parse_pointer(pointer: str) -> List[str]:
    """Split a pointer into unescaped segments. ``''`` and ``'/'`` are the root."""
    if pointer in ('', '/'):
        return []
    if pointer.startswith('/'):
        pointer = pointer[1:]
    return [unescape_segment(part) for part in pointer.split('/')]


def build_pointer(segments: List[Any]) -> str:
    """Inverse of parse_pointer."""
    if not segments:
        return ''
    return '/' + '/'.join(escape_segment(s) for s in segments)


def is_found(value: Any) -> bool:
    return value is not NOT_FOUND


def _list_index(segment: str, length: int, allow_end: bool = False):
    """Numeric list index for a segment, or None when it is not usable."""
    if not segment.isdigit():
        return None
    index = int(segment)
    limit = length + 1 if allow_end else length
    return index if index < limit else None


def resolve(document: Any, pointer: str) -> Any:
    """
    Look up the value a pointer addresses.

    Returns:
        The addressed value, or NOT_FOUND when any segment is missing,
        out of range, or traverses a scalar.
    """
    current = document
    for segment in parse_pointer(pointer):
        if segment == '':
            continue
        if isinstance(current, dict):
            if segment not in current:
                return NOT_FOUND
            current = current[segment]
        elif isinstance(current, list):
            index = _list_index(segment, len(current))
            if index is None:
                return NOT_FOUND
            current = current[index]
        else:
            return NOT_FOUND
    return current


def _walk_creating(document: Any, segments: List[str]) -> Any:
    """Walk to the parent container, creating missing objects. None if unreachable."""
    current = document
    for segment in segments:
        if isinstance(current, dict):
            if segment not in current:
                current[segment] = {}
            current = current[segment]
        elif isinstance(current, list):
            index = _list_index(segment, len(current))
            if index is None:
                return None
            current = current[index]
        else:
            return None
    if not isinstance(current, (dict, list)):
        return None
    return current


def _walk_existing(document: Any, segments: List[str]) -> Any:
    parent = resolve(document, build_pointer(segments))
    if parent is NOT_FOUND or not isinstance(parent, (dict, list)):
        return None
    return parent


def set_value(document: Any, pointer: str, value: Any) -> Any:
    """
    Write ``value`` at ``pointer``.

    Missing intermediate segments become empty objects; lists are never
    created implicitly. At a list, ``-`` appends and a numeric segment
    indexes directly (the index equal to the length appends).

    Returns:
        The document root, which is ``value`` itself for the root pointer.
    """
    segments = parse_pointer(pointer)
    if not segments:
        return value

    parent = _walk_creating(document, segments[:-1])
    if parent is None:
        return document

    last = segments[-1]
    if isinstance(parent, dict):
        parent[last] = value
    elif last == APPEND_SEGMENT:
        parent.append(value)
    else:
        index = _list_index(last, len(parent), allow_end=True)
        if index is None:
            return document
        if index == len(parent):
            parent.append(value)
        else:
            parent[index] = value
    return document


def remove(document: Any, pointer: str) -> Any:
    """
    Delete the value at ``pointer``.

    At a list ``-`` removes the last element. Removing something that does
    not exist is a no-op, so repeated removal of a key is idempotent. The
    root pointer is never removed.

    Returns:
        The document root.
    """
    segments = parse_pointer(pointer)
    if not segments:
        return document

    parent = _walk_existing(document, segments[:-1])
    if parent is None:
        return document

    last = segments[-1]
    if isinstance(parent, dict):
        parent.pop(last, None)
    elif last == APPEND_SEGMENT:
        if parent:
            parent.pop()
    else:
        index = _list_index(last, len(parent))
        if index is not None:
            del parent[index]
    return document
