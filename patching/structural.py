"""
Structural Patch Executor v1.0.0
================================
Applies ordered add/remove/replace/move/copy operations to a private copy
of a document through the pointer engine.

``test`` is refused by default: a batch containing it raises
UnsupportedPatchOperationError before any operation runs. Callers that need
the legacy behaviour can pass ``allow_test_noop=True``.
"""

import copy
from typing import Any, List, Optional

from config_logging import get_logger, UnsupportedPatchOperationError, get_config
from .models import PatchOperation
from .pointer import NOT_FOUND, parse_pointer, resolve, set_value, remove

_logger = get_logger('structural_patch')


def _check_supported(operations: List[PatchOperation], allow_test_noop: bool):
    for operation in operations:
        if operation.op == 'test' and not allow_test_noop:
            raise UnsupportedPatchOperationError('test', path=operation.path)


def apply_operation(document: Any, operation: PatchOperation) -> Any:
    """Apply one operation in place and return the (possibly new) root."""
    op = operation.op

    if op in ('add', 'replace'):
        return set_value(document, operation.path, operation.value)

    if op == 'remove':
        return remove(document, operation.path)

    if op == 'copy':
        value = resolve(document, operation.from_path)
        if value is NOT_FOUND:
            _logger.debug("copy source not found", source=operation.from_path)
            return document
        return set_value(document, operation.path, copy.deepcopy(value))

    if op == 'move':
        if not parse_pointer(operation.from_path):
            _logger.debug("move from document root ignored", target=operation.path)
            return document
        value = resolve(document, operation.from_path)
        if value is NOT_FOUND:
            _logger.debug("move source not found", source=operation.from_path)
            return document
        document = remove(document, operation.from_path)
        return set_value(document, operation.path, value)

    # test, only reachable in no-op compatibility mode
    _logger.debug("test operation ignored", target=operation.path)
    return document


def apply_operations(document: Any, operations: List[PatchOperation],
                     allow_test_noop: Optional[bool] = None) -> Any:
    """
    Apply operations in order to a deep copy of ``document``.

    Args:
        document: Parsed document tree, left untouched
        operations: Operations in caller order
        allow_test_noop: Treat ``test`` as a no-op instead of refusing the
            batch. Defaults to the APIG_TEST_OP_NOOP setting.

    Returns:
        The patched copy.

    Raises:
        UnsupportedPatchOperationError: the batch contains ``test`` and
            no-op compatibility is off.
    """
    if allow_test_noop is None:
        allow_test_noop = get_config().allow_test_noop
    _check_supported(operations, allow_test_noop)

    working = copy.deepcopy(document)
    for operation in operations:
        working = apply_operation(working, operation)
    return working
