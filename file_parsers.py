"""
Spec file parsers for JSON and YAML API descriptions, plus hashing and
pointer-to-line mapping used to annotate findings.
"""
import json
import hashlib
from pathlib import Path
from typing import Dict, Any, Tuple, Optional, Union

import yaml

from config_logging import get_logger, handle_errors, ValidationError
from patching.pointer import build_pointer

_logger = get_logger('file_parsers')

FORMAT_JSON = 'json'
FORMAT_YAML = 'yaml'

SPEC_EXTENSIONS = {
    '.json': FORMAT_JSON,
    '.yaml': FORMAT_YAML,
    '.yml': FORMAT_YAML,
}


class SpecLoader(yaml.SafeLoader):
    """SafeLoader that leaves dates and timestamps as plain strings."""


SpecLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != 'tag:yaml.org,2002:timestamp']
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def compute_text_hash(text: str) -> str:
    """SHA-256 of document text, identical to the patch preimage hash."""
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


def compute_file_hash(filepath: Union[str, Path]) -> str:
    """SHA-256 of a file's bytes."""
    hash_sha = hashlib.sha256()
    with open(filepath, 'rb') as f:
        for chunk in iter(lambda: f.read(8192), b''):
            hash_sha.update(chunk)
    return hash_sha.hexdigest()


def detect_format(text: str, path: Optional[Union[str, Path]] = None) -> str:
    """Guess JSON or YAML from the extension, then from the first character."""
    if path is not None:
        fmt = SPEC_EXTENSIONS.get(Path(path).suffix.lower())
        if fmt:
            return fmt
    stripped = text.lstrip()
    if stripped.startswith('{') or stripped.startswith('['):
        return FORMAT_JSON
    return FORMAT_YAML


def _stringify_keys(node: Any) -> Any:
    # YAML turns `200:` into an int key; pointers address strings
    if isinstance(node, dict):
        return {str(k): _stringify_keys(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_stringify_keys(item) for item in node]
    return node


def parse_json(text: str) -> Any:
    return json.loads(text)


def parse_yaml(text: str) -> Any:
    return _stringify_keys(yaml.load(text, Loader=SpecLoader))


def try_parse(text: str, fmt: Optional[str] = None) -> Tuple[Optional[Any], str]:
    """
    Parse without raising.

    Returns:
        (document or None, format used)
    """
    fmt = fmt or detect_format(text)
    try:
        if fmt == FORMAT_JSON:
            return parse_json(text), fmt
        return parse_yaml(text), fmt
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        _logger.debug("document is not structured data", fmt=fmt, error=str(e))
        return None, fmt


def parse_spec_text(text: str, fmt: Optional[str] = None) -> Tuple[Dict[str, Any], str]:
    """
    Parse an API description that must be a mapping at the root.

    Raises:
        ValidationError: empty text, invalid syntax, or a non-object root.
    """
    if not text or not text.strip():
        raise ValidationError("Specification is empty", field='content')

    fmt = fmt or detect_format(text)
    try:
        document = parse_json(text) if fmt == FORMAT_JSON else parse_yaml(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON at line {e.lineno}: {e.msg}", field='content') from e
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML: {e}", field='content') from e

    if not isinstance(document, dict):
        raise ValidationError("Specification root must be an object", field='content',
                              found=type(document).__name__)
    return document, fmt


def serialize_document(document: Any, fmt: str, trailing_newline: bool = True) -> str:
    """Render a document back to text in its original format."""
    if fmt == FORMAT_JSON:
        text = json.dumps(document, indent=2, ensure_ascii=False)
    else:
        text = yaml.safe_dump(document, sort_keys=False, allow_unicode=True, width=1000)
        text = text.rstrip('\n')
    return text + '\n' if trailing_newline else text


@handle_errors()
def read_spec_file(filepath: Union[str, Path]) -> str:
    """Read a spec file as UTF-8 text, keeping its line endings."""
    path = Path(filepath)
    if not path.is_file():
        raise FileNotFoundError(2, 'No such file', str(path))
    with open(path, 'r', encoding='utf-8', newline='') as f:
        return f.read()


def load_spec_file(filepath: Union[str, Path]) -> Tuple[str, Dict[str, Any], str]:
    """
    Read and parse a spec file.

    Returns:
        (raw text, parsed document, format)
    """
    text = read_spec_file(filepath)
    document, fmt = parse_spec_text(text, detect_format(text, filepath))
    return text, document, fmt


def build_line_map(text: str) -> Dict[str, int]:
    """
    Map every pointer in the document to its 1-based source line.

    Mapping entries point at the key's line. Unparseable text yields an
    empty map.
    """
    try:
        root = yaml.compose(text, Loader=SpecLoader)
    except yaml.YAMLError:
        return {}
    if root is None:
        return {}

    lines: Dict[str, int] = {'': root.start_mark.line + 1}
    stack = [(root, [])]
    while stack:
        node, segments = stack.pop()
        if isinstance(node, yaml.MappingNode):
            for key_node, value_node in node.value:
                child = segments + [str(key_node.value)]
                lines[build_pointer(child)] = key_node.start_mark.line + 1
                stack.append((value_node, child))
        elif isinstance(node, yaml.SequenceNode):
            for index, item in enumerate(node.value):
                child = segments + [index]
                lines[build_pointer(child)] = item.start_mark.line + 1
                stack.append((item, child))
    return lines


def line_for_pointer(line_map: Dict[str, int], pointer: str) -> Optional[int]:
    """Line of the pointer, or of its nearest mapped ancestor."""
    candidate = pointer
    while True:
        if candidate in line_map:
            return line_map[candidate]
        if not candidate:
            return None
        candidate = candidate.rsplit('/', 1)[0]
