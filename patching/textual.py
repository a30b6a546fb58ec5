"""
Textual Fallback Patcher v1.0.0
===============================
Best-effort application of a restricted unified diff: removed lines are
paired with added lines by position and each pair is a single textual
substitution.

The patcher fails closed. Unless every pair can be located, the original
text is returned untouched with ``applied=False``.
"""

import re
from typing import List, Tuple

from config_logging import get_logger
from .models import TextPatchResult

_logger = get_logger('textual_patch')

_REMOVED_LINE = re.compile(r'^-[ \t]?(.*?)\r?$', re.MULTILINE)
_ADDED_LINE = re.compile(r'^\+[ \t]?(.*?)\r?$', re.MULTILINE)
_FILE_HEADER = re.compile(r'^(---|\+\+\+)( |$)')


def _diff_body(diff: str) -> str:
    lines = [
        line for line in diff.splitlines()
        if not _FILE_HEADER.match(line) and not line.startswith('@@')
    ]
    return '\n'.join(lines)


def extract_line_pairs(diff: str) -> Tuple[List[str], List[str]]:
    """Return (removed, added) line texts in diff order."""
    body = _diff_body(diff)
    return _REMOVED_LINE.findall(body), _ADDED_LINE.findall(body)


def _anchored_pattern(removed: str):
    return re.compile(
        r'^([ \t]*)' + re.escape(removed.strip()) + r'[ \t]*$',
        re.MULTILINE,
    )


def _substitute(content: str, removed: str, added: str):
    """Replace one removed line. Returns the new content or None."""
    if removed in content:
        return content.replace(removed, added, 1)

    match = _anchored_pattern(removed).search(content)
    if match is None:
        return None
    replacement = match.group(1) + added.lstrip()
    return content[:match.start()] + replacement + content[match.end():]


def apply_text_patch(content: str, diff: str) -> TextPatchResult:
    """
    Apply a restricted diff to ``content``.

    Pairs where both sides are blank are skipped. A blank removed line
    paired with a non-blank added line has nothing to anchor on and fails
    the batch.
    """
    removed_lines, added_lines = extract_line_pairs(diff)

    if not removed_lines:
        return TextPatchResult(False, content, 'diff has no removed lines')
    if len(removed_lines) != len(added_lines):
        return TextPatchResult(
            False, content,
            f'removed/added line count mismatch ({len(removed_lines)} vs {len(added_lines)})'
        )

    working = content
    for index, (removed, added) in enumerate(zip(removed_lines, added_lines)):
        if not removed.strip():
            if not added.strip():
                continue
            return TextPatchResult(False, content, f'line pair {index} has no removable text')

        updated = _substitute(working, removed, added)
        if updated is None:
            _logger.debug("textual patch line not found", pair=index, removed=removed)
            return TextPatchResult(False, content, f'line pair {index} not found: {removed!r}')
        working = updated

    return TextPatchResult(True, working)
