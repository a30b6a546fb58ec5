#!/usr/bin/env python3
"""
API Spec Grader Test Suite v1.0.0
=================================
Validates the HTTP API, error envelopes, and version consistency.

Run with: python -m pytest tests.py -v
Or standalone: python tests.py

Module-level tests live in tests/.
"""

import json
import tempfile
import unittest
from io import BytesIO
from pathlib import Path

import yaml

from app import create_app
from config_logging import AppConfig, VERSION, set_config, reset_config
from profiles import reset_profile_manager
from scan_history import reset_grade_history_db


SPEC = {
    'openapi': '3.0.3',
    'info': {'title': 'Orders', 'version': '1.0.0',
             'x-api-id': 'orders_1718035200000_1a2b3c4d5e6f7a8b'},
    'security': [{'bearerAuth': []}],
    'components': {'securitySchemes': {'bearerAuth': {'type': 'http', 'scheme': 'bearer'}}},
    'paths': {
        '/api/v1/orders': {
            'get': {
                'operationId': 'listOrders',
                'parameters': [{'name': 'cursor', 'in': 'query', 'schema': {'type': 'string'}}],
                'responses': {'200': {'description': 'OK'}},
            },
            'post': {
                'summary': 'Place an order',
                'requestBody': {'content': {'application/json': {'schema': {'type': 'object'}}}},
                'responses': {'201': {'description': 'Created'}},
            },
        },
        '/api/v1/orders/{orderId}': {
            'get': {
                'summary': 'Fetch one order',
                'responses': {'200': {'description': 'OK'}},
            },
            'delete': {
                'summary': 'Cancel an order',
                'responses': {'204': {'description': 'Cancelled'}},
            },
        },
    },
}
SPEC_TEXT = yaml.safe_dump(SPEC, sort_keys=False)


class GraderTestCase(unittest.TestCase):
    """Fresh app, configuration and history database per test."""

    def setUp(self):
        """Set up test client."""
        self.tmp = tempfile.TemporaryDirectory()
        self.config = AppConfig(history_db_path=Path(self.tmp.name) / 'history.db',
                                log_to_console=False)
        set_config(self.config)
        reset_profile_manager()
        reset_grade_history_db()
        self.app = create_app(self.config)
        self.app.config['TESTING'] = True
        self.client = self.app.test_client()

    def tearDown(self):
        """Clean up."""
        reset_config()
        reset_profile_manager()
        reset_grade_history_db()
        self.tmp.cleanup()

    def post(self, url, payload):
        response = self.client.post(url, json=payload)
        return response, json.loads(response.data)


class TestAPIEndpoints(GraderTestCase):
    """Test basic endpoints."""

    def test_health_endpoint(self):
        """
        Test health check endpoint.

        Expects: 200 response with status 'ok' and the package version.
        """
        response = self.client.get('/health')
        self.assertEqual(response.status_code, 200)
        data = json.loads(response.data)
        self.assertEqual(data['status'], 'ok')
        self.assertEqual(data['version'], VERSION)

    def test_capabilities_endpoint(self):
        response = self.client.get('/api/capabilities')
        data = json.loads(response.data)['data']
        self.assertEqual(data['version'], VERSION)
        self.assertIn('SEC-001', data['capabilities']['rules'])
        self.assertEqual(data['capabilities']['test_operation'], 'rejected')

    def test_profiles_endpoint(self):
        response = self.client.get('/api/profiles')
        data = json.loads(response.data)['data']
        self.assertEqual(data['default'], 'Custom')
        types = [p['type'] for p in data['profiles']]
        self.assertIn('Microservice', types)

    def test_hash_endpoint(self):
        _, body = self.post('/api/hash', {'content': 'openapi: 3.0.3\n'})
        self.assertEqual(len(body['data']['hash']), 64)


class TestGradingEndpoints(GraderTestCase):
    """Grading, detection and history over HTTP."""

    def test_grade_json_body(self):
        """
        Test grading a posted spec.

        Expects: REST detected, 95 points (one undocumented operation).
        """
        response, body = self.post('/api/grade', {'content': SPEC_TEXT})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(body['success'])
        grade = body['data']['grade']
        self.assertEqual(grade['profile_type'], 'REST')
        self.assertEqual(grade['total'], 95)
        self.assertEqual(body['data']['by_rule']['DOC-001'], 1)

    def test_grade_file_upload(self):
        response = self.client.post('/api/grade', data={
            'file': (BytesIO(SPEC_TEXT.encode('utf-8')), 'orders.yaml'),
        }, content_type='multipart/form-data')
        data = json.loads(response.data)['data']
        self.assertEqual(data['source'], 'orders.yaml')
        self.assertEqual(data['spec_format'], 'yaml')

    def test_grade_with_override(self):
        _, body = self.post('/api/grade', {'content': SPEC_TEXT, 'profile': 'SaaS'})
        grade = body['data']['grade']
        self.assertTrue(grade['blocked_by_prerequisites'])
        self.assertEqual(grade['letter'], 'F')

    def test_detect_endpoint(self):
        _, body = self.post('/api/detect', {'content': SPEC_TEXT})
        self.assertEqual(body['data']['detection']['detected_profile'], 'REST')
        self.assertEqual(body['data']['selection']['reason'], 'detected')

    def test_recorded_grade_is_retrievable(self):
        _, body = self.post('/api/grade', {'content': SPEC_TEXT, 'record': True})
        run_id = body['data']['run_id']

        history = json.loads(self.client.get(f"/api/history/{SPEC['info']['x-api-id']}").data)
        self.assertEqual([r['run_id'] for r in history['data']['runs']], [run_id])

        run = json.loads(self.client.get(f'/api/history/runs/{run_id}').data)
        self.assertEqual(run['data']['total'], 95)

        existing = json.loads(self.client.get(f"/api/grades/{body['data']['spec_hash']}").data)
        self.assertEqual(existing['data']['run_id'], run_id)

    def test_compare_requires_two_runs(self):
        response, body = self.post('/api/history/compare', {'baseline_run_id': 'a'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(body['error']['code'], 'VALIDATION_ERROR')


class TestFixAndPatchEndpoints(GraderTestCase):
    """Fix generation and hash-gated patch application."""

    def test_fix_round_trip(self):
        """
        Test fixes applied through the API raise the grade.

        Expects: the DOC-001 summary fix lifts the document to 100.
        """
        _, fixes = self.post('/api/fixes', {'content': SPEC_TEXT})
        data = fixes['data']
        self.assertEqual(data['grade']['total'], 95)
        self.assertEqual(data['fixes'][0]['rule_id'], 'DOC-001')

        _, applied = self.post('/api/patches/apply', {
            'content': SPEC_TEXT,
            'patches': [f['patch'] for f in data['fixes']],
        })
        self.assertEqual(applied['data']['applied'], 1)
        self.assertIn('summary: List orders', applied['data']['content'])

        _, regraded = self.post('/api/grade', {'content': applied['data']['content']})
        self.assertEqual(regraded['data']['grade']['total'], 100)

    def test_stale_patch_rejected(self):
        _, fixes = self.post('/api/fixes', {'content': SPEC_TEXT})
        response, body = self.post('/api/patches/apply', {
            'content': SPEC_TEXT + '\n# edited',
            'patches': [f['patch'] for f in fixes['data']['fixes']],
        })
        self.assertEqual(response.status_code, 409)
        self.assertEqual(body['error']['code'], 'STALE_PRECONDITION')
        self.assertEqual(body['error']['details']['stale_patches'], [0])

    def test_test_operation_rejected(self):
        _, hashed = self.post('/api/hash', {'content': SPEC_TEXT})
        response, body = self.post('/api/patches/apply', {
            'content': SPEC_TEXT,
            'patches': [{'kind': 'structural', 'preimage_hash': hashed['data']['hash'],
                         'operations': [{'op': 'test', 'path': '/openapi', 'value': '3.0.3'}]}],
        })
        self.assertEqual(response.status_code, 422)
        self.assertEqual(body['error']['code'], 'UNSUPPORTED_OPERATION')

    def test_empty_patch_list(self):
        response, _ = self.post('/api/patches/apply', {'content': SPEC_TEXT, 'patches': []})
        self.assertEqual(response.status_code, 400)


class TestErrorHandling(GraderTestCase):
    """Test error handling."""

    def test_404_returns_json(self):
        """
        Test that 404 errors return JSON.

        Expects: 404 response with the error envelope.
        """
        response = self.client.get('/api/nonexistent-endpoint-xyz')
        self.assertEqual(response.status_code, 404)
        data = json.loads(response.data)
        self.assertFalse(data['success'])
        self.assertEqual(data['error']['code'], 'NOT_FOUND')

    def test_missing_content(self):
        response, body = self.post('/api/grade', {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(body['error']['details']['field'], 'content')
        self.assertIn('correlation_id', body['error'])

    def test_invalid_yaml(self):
        response, body = self.post('/api/grade', {'content': 'paths: [unclosed'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('Invalid YAML', body['error']['message'])

    def test_unknown_profile(self):
        response, body = self.post('/api/grade', {'content': SPEC_TEXT, 'profile': 'Nope'})
        self.assertEqual(response.status_code, 400)

    def test_unknown_run(self):
        response = self.client.get('/api/history/runs/missing')
        self.assertEqual(response.status_code, 404)


class TestVersionConsistency(unittest.TestCase):
    """Test version consistency across modules."""

    def test_version_string_format(self):
        parts = VERSION.split('.')
        self.assertEqual(len(parts), 3)
        self.assertTrue(all(p.isdigit() for p in parts))

    def test_version_matches_json(self):
        version_file = Path(__file__).parent / 'version.json'
        with open(version_file, 'r', encoding='utf-8') as f:
            self.assertEqual(json.load(f)['version'], VERSION)

    def test_core_version_matches(self):
        from core import MODULE_VERSION
        self.assertEqual(MODULE_VERSION, VERSION)


class TestCodeQuality(unittest.TestCase):
    """Static checks over the source tree."""

    def test_no_bare_except(self):
        root = Path(__file__).parent
        sources = list(root.glob('*.py')) + [p for d in ('patching', 'profiles', 'scoring')
                                             for p in (root / d).glob('*.py')]
        for source in sources:
            for number, line in enumerate(source.read_text(encoding='utf-8').splitlines(), 1):
                self.assertNotEqual(line.strip(), 'except:', f"{source.name}:{number}")


if __name__ == '__main__':
    unittest.main(verbosity=2)
