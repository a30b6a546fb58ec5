#!/usr/bin/env python3
"""
API Spec Grader HTTP API
========================
JSON endpoints for grading, profile detection, fix generation and patch
application.
Version: reads from version.json

Features:
- Grade a spec body against a detected or chosen profile
- Profile catalog and detection reasoning
- Fix generation with preimage-bound patches
- Patch application to posted content (dry run by default)
- Grade history per API identifier

Every response uses the envelope ``{success, data}`` or
``{success: false, error: {code, message, details, correlation_id}}``.
"""

from functools import wraps
from typing import Dict, Any, Optional, Tuple

from flask import Blueprint, request, jsonify

from config_logging import (
    get_logger, get_config, GraderError, ValidationError, StructuredLogger, VERSION,
)
from core import GradingEngine
from file_parsers import parse_spec_text, compute_text_hash
from fix_assistant_api import build_fix_response, FIX_BUILDERS
from patching.applier import apply_patches_to_text
from profiles import detect_profile, get_profile_manager
from spec_rules import get_rule_registry

logger = get_logger('api_ext')

__version__ = VERSION

# Create blueprint
api_ext = Blueprint('api_ext', __name__, url_prefix='/api')


@api_ext.before_request
def assign_correlation_id():
    """Tag every request's log lines with a fresh correlation id."""
    StructuredLogger.new_correlation_id()


# =============================================================================
# DECORATORS
# =============================================================================

def handle_errors(f):
    """Decorator for consistent error handling."""
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except GraderError as e:
            logger.warning(f"{f.__name__} failed: {e.message}", code=e.code)
            body = e.to_dict()
            body['error']['correlation_id'] = StructuredLogger.get_correlation_id()
            return jsonify(body), e.status_code
        except Exception as e:
            logger.exception(f"Unexpected error in {f.__name__}: {e}")
            return jsonify({
                'success': False,
                'error': {
                    'code': 'INTERNAL_ERROR',
                    'message': 'An internal error occurred',
                    'correlation_id': StructuredLogger.get_correlation_id()
                }
            }), 500
    return decorated


# =============================================================================
# REQUEST HELPERS
# =============================================================================

def _request_payload() -> Dict[str, Any]:
    """JSON body, or the form fields of a multipart upload."""
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return data
    return request.form.to_dict()


def _spec_content(data: Dict[str, Any]) -> Tuple[str, Optional[str]]:
    """Spec text from ``content`` or an uploaded ``file``, with its source name."""
    upload = request.files.get('file')
    if upload is not None:
        try:
            return upload.read().decode('utf-8'), upload.filename
        except UnicodeDecodeError as e:
            raise ValidationError(f"Uploaded file is not UTF-8 text: {e}", field='file') from e

    content = data.get('content')
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Spec content is required", field='content')
    return content, data.get('source')


def _flag(data: Dict[str, Any], name: str, default: bool) -> bool:
    value = data.get(name, default)
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


# =============================================================================
# CAPABILITY CHECK ENDPOINT
# =============================================================================

@api_ext.route('/capabilities', methods=['GET'])
def get_capabilities():
    """Return available capabilities.

    Schema: { success: bool, data: { version: str, capabilities: {...} } }
    """
    config = get_config()
    capabilities = {
        'formats': ['json', 'yaml'],
        'profiles': [p.type for p in get_profile_manager().list_profiles()],
        'rules': get_rule_registry().rule_ids(),
        'fixable_rules': sorted(FIX_BUILDERS),
        'patch_kinds': ['structural', 'textual'],
        'test_operation': 'noop' if config.allow_test_noop else 'rejected',
        'history': config.record_history,
    }
    return jsonify({
        'success': True,
        'data': {
            'version': __version__,
            'capabilities': capabilities
        }
    })


# =============================================================================
# PROFILE ENDPOINTS
# =============================================================================

@api_ext.route('/profiles', methods=['GET'])
@handle_errors
def list_profiles():
    """Registered profiles with their prerequisites and rule weights."""
    manager = get_profile_manager()
    return jsonify({
        'success': True,
        'data': {
            'default': manager.default_type,
            'profiles': [p.to_dict() for p in manager.list_profiles()]
        }
    })


@api_ext.route('/detect', methods=['POST'])
@handle_errors
def detect():
    """Detect the profile a spec looks like."""
    data = _request_payload()
    text, _ = _spec_content(data)
    document, _ = parse_spec_text(text, data.get('format'))
    detection = detect_profile(document)
    selection = get_profile_manager().select_profile(detection, data.get('profile') or None)
    return jsonify({
        'success': True,
        'data': {
            'detection': detection.to_dict(),
            'selection': selection.to_dict()
        }
    })


# =============================================================================
# GRADING ENDPOINTS
# =============================================================================

@api_ext.route('/grade', methods=['POST'])
@handle_errors
def grade():
    """Grade a spec body.

    Body: { content: str, profile?: str, format?: str, source?: str, record?: bool }
    """
    data = _request_payload()
    text, source = _spec_content(data)
    record = _flag(data, 'record', get_config().record_history)
    result = GradingEngine().grade_text(text, profile_override=data.get('profile') or None,
                                        source=source, fmt=data.get('format'), record=record)
    return jsonify({
        'success': True,
        'data': result.to_dict()
    })


@api_ext.route('/fixes', methods=['POST'])
@handle_errors
def fixes():
    """Grade a spec body and propose patches for its findings.

    Body: { content: str, profile?: str, preserve_formatting?: bool }
    """
    data = _request_payload()
    text, source = _spec_content(data)
    result = GradingEngine(record_history=False).grade_text(
        text, profile_override=data.get('profile') or None, source=source, fmt=data.get('format'))
    document, fmt = parse_spec_text(text, data.get('format'))
    response = build_fix_response(result.findings, text, document,
                                  preserve_formatting=_flag(data, 'preserve_formatting', False),
                                  fmt=fmt)
    response['grade'] = result.report.to_dict()
    return jsonify({
        'success': True,
        'data': response
    })


@api_ext.route('/patches/apply', methods=['POST'])
@handle_errors
def apply_patches():
    """Apply a patch batch to posted content.

    Nothing is written server-side; the patched text comes back in
    ``data.content``. A stale patch fails the whole batch with 409.
    """
    data = _request_payload()
    text, _ = _spec_content(data)
    patches = data.get('patches')
    if not isinstance(patches, list) or not patches:
        raise ValidationError("A non-empty list of patches is required", field='patches')

    result = apply_patches_to_text(text, patches, data.get('format'))
    return jsonify({
        'success': True,
        'data': result.to_dict(include_content=True)
    })


# =============================================================================
# HISTORY ENDPOINTS
# =============================================================================

def _history_db():
    from scan_history import get_grade_history_db
    return get_grade_history_db()


@api_ext.route('/history/<api_id>', methods=['GET'])
@handle_errors
def get_api_history(api_id: str):
    """Grading runs for one API, newest first."""
    limit = request.args.get('limit', 50, type=int)
    since = request.args.get('since')
    return jsonify({
        'success': True,
        'data': {
            'api_id': api_id,
            'runs': _history_db().get_history(api_id, limit=limit, since=since)
        }
    })


@api_ext.route('/history/runs/<run_id>', methods=['GET'])
@handle_errors
def get_history_run(run_id: str):
    """One stored run with findings and checkpoints."""
    run = _history_db().get_run(run_id)
    if run is None:
        raise GraderError(f"Run not found: {run_id}", code='NOT_FOUND', status_code=404)
    return jsonify({
        'success': True,
        'data': run
    })


@api_ext.route('/history/compare', methods=['POST'])
@handle_errors
def compare_runs():
    """Compare two stored runs."""
    data = _request_payload()
    baseline = data.get('baseline_run_id')
    current = data.get('current_run_id')
    if not baseline or not current:
        raise ValidationError("Two run IDs required for comparison")

    comparison = _history_db().compare_runs(baseline, current)
    if comparison is None:
        raise GraderError("One or both runs were not found", code='NOT_FOUND', status_code=404)
    return jsonify({
        'success': True,
        'data': comparison
    })


@api_ext.route('/grades/<spec_hash>', methods=['GET'])
@handle_errors
def get_existing_grade(spec_hash: str):
    """Most recent stored grade of identical spec content."""
    return jsonify({
        'success': True,
        'data': _history_db().get_existing_grade(spec_hash, request.args.get('profile'))
    })


@api_ext.route('/hash', methods=['POST'])
@handle_errors
def hash_content():
    """Preimage hash of a spec body, as patches expect it."""
    text, _ = _spec_content(_request_payload())
    return jsonify({
        'success': True,
        'data': {'hash': compute_text_hash(text)}
    })


# =============================================================================
# REGISTER BLUEPRINT FUNCTION
# =============================================================================

def register_api_extensions(app):
    """Register API extensions blueprint with Flask app."""
    app.register_blueprint(api_ext)
    logger.info("API extensions registered",
                profiles=len(get_profile_manager().list_profiles()),
                rules=len(get_rule_registry()))
