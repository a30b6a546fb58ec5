"""
Tests for spec parsing, hashing and line mapping.
"""

import pytest

from config_logging import ValidationError, FileError
from file_parsers import (
    detect_format, parse_spec_text, try_parse, serialize_document, compute_text_hash,
    compute_file_hash, load_spec_file, build_line_map, line_for_pointer,
)


class TestDetectFormat:

    def test_extension_wins(self):
        assert detect_format('{"a": 1}', 'spec.yaml') == 'yaml'

    def test_sniffs_content(self):
        assert detect_format('  {"a": 1}') == 'json'
        assert detect_format('openapi: 3.0.3') == 'yaml'


class TestParse:

    def test_yaml_keys_are_strings(self):
        document, fmt = parse_spec_text("responses:\n  200:\n    description: OK\n")
        assert fmt == 'yaml'
        assert document == {'responses': {'200': {'description': 'OK'}}}

    def test_dates_stay_strings(self):
        document, _ = parse_spec_text("released: 2024-06-10\n")
        assert document['released'] == '2024-06-10'

    @pytest.mark.parametrize('text', ['', '   \n', '{"a": ', '[1, 2]', 'a: [b'])
    def test_rejects(self, text):
        with pytest.raises(ValidationError):
            parse_spec_text(text)

    def test_try_parse_does_not_raise(self):
        assert try_parse('{"a": ') == (None, 'json')

    def test_serialize_keeps_key_order(self):
        text = serialize_document({'openapi': '3.0.3', 'info': {'title': 'T'}}, 'yaml')
        assert text == "openapi: 3.0.3\ninfo:\n  title: T\n"


class TestFiles:

    def test_hashes_agree(self, tmp_path, rest_spec):
        path = tmp_path / 'spec.yaml'
        path.write_bytes(rest_spec.encode('utf-8'))
        assert compute_file_hash(path) == compute_text_hash(rest_spec)

    def test_load(self, tmp_path, minimal_spec):
        path = tmp_path / 'spec.json'
        path.write_text(minimal_spec, encoding='utf-8')
        text, document, fmt = load_spec_file(path)
        assert text == minimal_spec
        assert fmt == 'json'
        assert document['info']['title'] == 'Thing'

    def test_missing(self, tmp_path):
        with pytest.raises(FileError):
            load_spec_file(tmp_path / 'nope.yaml')


class TestLineMap:

    def test_yaml_lines(self, rest_spec):
        line_map = build_line_map(rest_spec)
        assert line_map['/info/x-api-id'] == 5
        assert line_map['/paths/~1api~1v1~1products/get'] == 22
        assert line_map['/paths/~1api~1v1~1products/get/parameters/1'] == 29

    def test_nearest_ancestor(self, rest_spec):
        line_map = build_line_map(rest_spec)
        assert line_for_pointer(line_map, '/paths/~1api~1v1~1products/get/security') == 22
        assert line_for_pointer({}, '/anything') is None

    def test_unparseable_text(self):
        assert build_line_map('a: [b') == {}
