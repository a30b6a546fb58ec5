#!/usr/bin/env python3
"""
API Identifier Utilities
========================
Generates and validates the ``info.x-api-id`` identifiers that tie grading
history to one API across revisions.

Format: ``{prefix}_{13-digit millisecond timestamp}_{16 hex chars}``
e.g. ``inventory_1718035200000_9f3c2a7b41d0e6f8``.
"""

import re
import secrets
import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any

API_ID_PATTERN = re.compile(r'[a-z0-9]+_\d{13}_[a-f0-9]{16}')
DEFAULT_PREFIX = 'api'


def normalize_prefix(name: str) -> str:
    """Lowercase alphanumerics only; falls back to 'api'."""
    prefix = re.sub(r'[^a-z0-9]', '', (name or '').lower())
    return prefix[:24] or DEFAULT_PREFIX


def generate_api_id(prefix: str = DEFAULT_PREFIX, timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{normalize_prefix(prefix)}_{timestamp_ms:013d}_{secrets.token_hex(8)}"


def is_valid_api_id(value: Any) -> bool:
    return isinstance(value, str) and bool(API_ID_PATTERN.fullmatch(value))


def parse_api_id(value: str) -> Optional[Dict[str, Any]]:
    """Split a valid identifier into its parts, or None."""
    if not is_valid_api_id(value):
        return None
    prefix, timestamp, suffix = value.split('_')
    created = datetime.fromtimestamp(int(timestamp) / 1000, tz=timezone.utc)
    return {
        'prefix': prefix,
        'timestamp_ms': int(timestamp),
        'created_at': created.isoformat().replace('+00:00', 'Z'),
        'random': suffix,
    }
