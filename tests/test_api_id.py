"""
Tests for x-api-id generation and parsing.
"""

import pytest

from api_id import generate_api_id, is_valid_api_id, parse_api_id, normalize_prefix


class TestGenerate:

    def test_format(self):
        api_id = generate_api_id('Inventory Service', timestamp_ms=1718035200000)
        prefix, timestamp, suffix = api_id.split('_')
        assert prefix == 'inventoryservice'
        assert timestamp == '1718035200000'
        assert len(suffix) == 16
        assert is_valid_api_id(api_id)

    def test_ids_are_unique(self):
        assert generate_api_id('a', 1) != generate_api_id('a', 1)

    def test_timestamp_is_zero_padded(self):
        assert generate_api_id('a', 42).split('_')[1] == '0000000000042'

    @pytest.mark.parametrize('name,prefix', [
        ('', 'api'),
        ('!!!', 'api'),
        ('Billing-v2', 'billingv2'),
        ('x' * 40, 'x' * 24),
    ])
    def test_normalize_prefix(self, name, prefix):
        assert normalize_prefix(name) == prefix


class TestValidate:

    @pytest.mark.parametrize('value', [
        None,
        42,
        'inventory',
        'Inventory_1718035200000_9f3c2a7b41d0e6f8',
        'inventory_171803520000_9f3c2a7b41d0e6f8',
        'inventory_1718035200000_9F3C2A7B41D0E6F8',
        'inventory_1718035200000_9f3c2a7b41d0e6f8\n',
    ])
    def test_rejects(self, value):
        assert not is_valid_api_id(value)
        if isinstance(value, str):
            assert parse_api_id(value) is None

    def test_parse(self):
        parts = parse_api_id('inventory_1718035200000_9f3c2a7b41d0e6f8')
        assert parts['prefix'] == 'inventory'
        assert parts['created_at'] == '2024-06-10T16:00:00Z'
        assert parts['random'] == '9f3c2a7b41d0e6f8'
