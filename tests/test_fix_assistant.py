"""
Tests for the Fix Assistant
===========================
Fixes are generated from real grading runs, applied with the patch
applier, and the document re-graded.
"""

import pytest

from base_checker import Finding, SEVERITY_ERROR, SEVERITY_INFO
from core import GradingEngine
from file_parsers import parse_spec_text, compute_text_hash, compute_file_hash, load_spec_file
from fix_assistant_api import (
    generate_fixes, group_similar_fixes, compute_fix_statistics, build_fix_response,
    ORG_HEADER_REF, RISK_HIGH, RISK_LOW,
)
from patching.applier import apply_patches, apply_patches_to_text
from patching.models import TEXTUAL, STRUCTURAL


RENAME_SPEC = """openapi: 3.0.3
info:
  title: Renames
  version: 1.0.0
paths:
  # keep this comment
  /api/v1/productItems:
    get:
      summary: List product items
      responses:
        '200':
          description: OK
"""


@pytest.fixture
def engine():
    return GradingEngine(record_history=False)


def fixes_for(engine, text, **kwargs):
    result = engine.grade_text(text, **kwargs)
    document, fmt = parse_spec_text(text)
    return result, generate_fixes(result.findings, text, document, fmt=fmt)


class TestGenerateFixes:
    """Tests for per-rule fix generation."""

    def test_summary_fix_from_operation_id(self, engine, minimal_spec):
        result, fixes = fixes_for(engine, minimal_spec)

        doc_fix = next(f for f in fixes if f.rule_id == 'DOC-001')
        assert doc_fix.risk == RISK_LOW
        assert doc_fix.pointer_path == '/paths/~1things/get'
        assert doc_fix.patch.operations[0].value == 'List things'
        assert doc_fix.patch.preimage_hash == compute_text_hash(minimal_spec)

        applied = apply_patches_to_text(minimal_spec, [doc_fix.patch])
        assert applied.applied == 1
        regraded = engine.grade_text(applied.content)
        assert 'DOC-001' not in {f.rule_id for f in regraded.findings}
        assert regraded.report.total == 95

    def test_org_header_fix_clears_auto_fail(self, engine, saas_spec):
        result, fixes = fixes_for(engine, saas_spec)
        assert result.report.auto_fail_triggered

        header_fix = next(f for f in fixes if f.rule_id == 'SEC-001')
        assert header_fix.pointer_path == '/paths/~1billing~1invoices/get'
        assert header_fix.patch.operations[-1].to_dict() == {
            'op': 'add',
            'path': '/paths/~1billing~1invoices/get/parameters/-',
            'value': {'$ref': ORG_HEADER_REF},
        }

        applied = apply_patches_to_text(saas_spec, [header_fix.patch])
        regraded = engine.grade_text(applied.content)
        assert not regraded.report.auto_fail_triggered
        assert regraded.report.total == 100
        assert regraded.report.letter == 'A+'

    def test_info_findings_are_not_fixed(self, minimal_spec):
        document, _ = parse_spec_text(minimal_spec)
        findings = [Finding('DOC-001', SEVERITY_INFO, 'skipped', '/paths/~1things/get')]
        assert generate_fixes(findings, minimal_spec, document) == []

    def test_findings_accepted_as_dicts(self, minimal_spec):
        document, _ = parse_spec_text(minimal_spec)
        findings = [{'rule_id': 'DOC-001', 'severity': 'error', 'message': 'x',
                     'pointer_path': '/paths/~1things/get'}]
        assert [f.rule_id for f in generate_fixes(findings, minimal_spec, document)] == ['DOC-001']

    def test_missing_api_id(self, minimal_spec):
        document, _ = parse_spec_text(minimal_spec)
        findings = [Finding('PREREQ-API-ID', SEVERITY_ERROR, 'info.x-api-id is missing', '/info')]
        fix = generate_fixes(findings, minimal_spec, document)[0]
        assert fix.pointer_path == '/info/x-api-id'
        assert fix.patch.operations[0].value.startswith('thing_')

    def test_fix_ids_are_sequential(self, engine, minimal_spec):
        _, fixes = fixes_for(engine, minimal_spec)
        assert [f.fix_id for f in fixes] == [f"fix_{i}" for i in range(len(fixes))]

    def test_crlf_file_fixes_apply_cleanly(self, engine, tmp_path, minimal_spec):
        """Test fixes generated from a CRLF file pass the preimage check on that file."""
        path = tmp_path / 'things.json'
        path.write_bytes(minimal_spec.replace('\n', '\r\n').encode('utf-8'))

        result = engine.grade_file(path)
        assert result.spec_hash == compute_file_hash(path)

        text, document, fmt = load_spec_file(path)
        assert '\r\n' in text
        fixes = generate_fixes(result.findings, text, document, fmt=fmt)
        applied = apply_patches(path, [f.patch for f in fixes], dry_run=True)
        assert applied.applied == len(fixes)
        assert applied.changed


class TestPathRenames:
    """CONS-001 renames, structural or textual."""

    def findings(self):
        return [Finding('CONS-001', SEVERITY_ERROR, 'bad path', '/paths/~1api~1v1~1productItems')]

    def test_structural_move(self):
        document, _ = parse_spec_text(RENAME_SPEC)
        fix = generate_fixes(self.findings(), RENAME_SPEC, document)[0]
        assert fix.risk == RISK_HIGH
        assert fix.patch.kind == STRUCTURAL
        assert fix.patch.operations[0].op == 'move'
        assert fix.patch.operations[0].path == '/paths/~1api~1v1~1product-items'

    def test_preserve_formatting_emits_textual_diff(self):
        document, _ = parse_spec_text(RENAME_SPEC)
        fix = generate_fixes(self.findings(), RENAME_SPEC, document, preserve_formatting=True)[0]
        assert fix.patch.kind == TEXTUAL
        assert fix.line == 7

        applied = apply_patches_to_text(RENAME_SPEC, [fix.patch])
        assert '  /api/v1/product-items:\n' in applied.content
        assert '# keep this comment' in applied.content


class TestGroupsAndStatistics:
    """Tests for grouping and statistics."""

    def test_header_fixes_group(self, saas_spec):
        document, _ = parse_spec_text(saas_spec)
        del document['paths']['/audit/entries']['get']['parameters'][0]
        findings = [
            Finding('SEC-001', SEVERITY_ERROR, 'x', '/paths/~1billing~1invoices/get'),
            Finding('SEC-001', SEVERITY_ERROR, 'x', '/paths/~1audit~1entries/get'),
        ]

        fixes = generate_fixes(findings, saas_spec, document)
        groups = group_similar_fixes(fixes)

        assert len(fixes) == 2
        assert len(groups) == 1
        assert groups[0]['fix_ids'] == ['fix_0', 'fix_1']
        assert groups[0]['pattern'] == 'add-org-header'
        assert len(groups[0]['patch']['operations']) == 2

    def test_single_fixes_do_not_group(self, engine, minimal_spec):
        _, fixes = fixes_for(engine, minimal_spec)
        assert group_similar_fixes(fixes) == []

    def test_statistics(self, engine, minimal_spec):
        result, fixes = fixes_for(engine, minimal_spec)
        stats = compute_fix_statistics(result.findings, fixes, [])

        assert stats['total_findings'] == len(result.findings)
        assert stats['fixable_rules'] == ['DOC-001']
        assert 'PERF-001' in stats['unfixable_rules']
        assert stats['by_kind'] == {STRUCTURAL: 1}
        assert stats['estimated_review_seconds'] == 1

    def test_build_fix_response(self, engine, saas_spec):
        result = engine.grade_text(saas_spec)
        document, fmt = parse_spec_text(saas_spec)
        response = build_fix_response(result.findings, saas_spec, document, fmt=fmt)

        assert response['preimage_hash'] == result.spec_hash
        assert response['fixes'][0]['rule_id'] == 'SEC-001'
        assert response['statistics']['total_fixes'] == len(response['fixes'])
