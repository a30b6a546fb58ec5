"""
Tests for the Grading Engine
============================
End-to-end grading of the sample documents.
"""

import json

import pytest

from config_logging import ValidationError, FileError
from core import GradingEngine, grade_spec
from scan_history import GradeHistoryDB


@pytest.fixture
def engine():
    return GradingEngine(record_history=False)


class TestGradeText:
    """Tests for GradingEngine.grade_text."""

    def test_clean_rest_spec_scores_full_marks(self, engine, rest_spec):
        result = engine.grade_text(rest_spec)

        assert result.selection.profile.type == 'REST'
        assert result.selection.reason == 'detected'
        assert result.findings == []
        assert result.report.total == 100
        assert result.report.letter == 'A+'
        assert result.report.per_category['security'] == {'score': 25, 'max': 25, 'errors': 0}
        assert all(c.scored_points == c.max_points for c in result.checkpoints)

    def test_saas_tenant_leak_auto_fails(self, engine, saas_spec):
        result = engine.grade_text(saas_spec)
        report = result.report

        assert report.profile_type == 'SaaS'
        assert report.letter == 'F'
        assert report.auto_fail_triggered
        assert not report.blocked_by_prerequisites
        assert report.total == 95
        assert report.critical_issues == 1
        assert report.auto_fail_reasons[0].startswith('SEC-001')

    def test_low_confidence_uses_custom_profile(self, engine, minimal_spec):
        result = engine.grade_text(minimal_spec)

        assert result.detection.detected_profile == 'Unknown'
        assert result.selection.reason == 'low_confidence'
        assert result.report.profile_type == 'Custom'
        assert result.report.total == 90
        assert result.report.letter == 'A-'
        assert result.rule_status['SEC-002'] == 'skipped'
        skipped = {s['rule_id'] for s in result.prerequisites.skipped}
        assert skipped == {'PREREQ-002', 'PREREQ-003', 'PREREQ-API-ID'}

    def test_override(self, engine, minimal_spec):
        result = engine.grade_text(minimal_spec, profile_override='REST')
        assert result.selection.reason == 'override'
        assert result.report.blocked_by_prerequisites
        assert {f.rule_id for f in result.findings} == {'PREREQ-002', 'PREREQ-API-ID'}

    def test_findings_carry_source_lines(self, engine, minimal_spec):
        result = engine.grade_text(minimal_spec)
        doc_finding = next(f for f in result.findings if f.rule_id == 'DOC-001')
        assert doc_finding.pointer_path == '/paths/~1things/get'
        assert doc_finding.line == 6

    def test_api_id_and_hash(self, engine, rest_spec):
        result = engine.grade_text(rest_spec)
        assert result.api_id == 'catalog_1718035200000_9f3c2a7b41d0e6f8'
        assert len(result.spec_hash) == 64
        assert result.run_id

    def test_invalid_text(self, engine):
        with pytest.raises(ValidationError):
            engine.grade_text('openapi: [unclosed')

    def test_non_object_root(self, engine):
        with pytest.raises(ValidationError):
            engine.grade_text('- just\n- a list\n')

    def test_to_dict_is_json_ready(self, engine, saas_spec):
        payload = json.loads(json.dumps(engine.grade_text(saas_spec).to_dict()))
        assert payload['grade']['letter'] == 'F'
        assert payload['by_severity']['error'] == 1
        assert payload['by_rule']['SEC-001'] == 1


class TestGradeFile:
    """Tests for grading files on disk."""

    def test_grade_file(self, engine, tmp_path, rest_spec):
        path = tmp_path / 'catalog.yaml'
        path.write_text(rest_spec, encoding='utf-8')
        result = engine.grade_file(path)
        assert result.source == str(path)
        assert result.spec_format == 'yaml'

    def test_missing_file(self, engine, tmp_path):
        with pytest.raises(FileError):
            engine.grade_file(tmp_path / 'absent.yaml')


class TestHistoryRecording:
    """Grading runs are stored when recording is on."""

    def test_records_run(self, tmp_path, rest_spec):
        db = GradeHistoryDB(tmp_path / 'runs.db')
        engine = GradingEngine(history_db=db, record_history=True)

        result = engine.grade_text(rest_spec)

        runs = db.get_history(result.api_id)
        assert [r['run_id'] for r in runs] == [result.run_id]
        assert runs[0]['letter'] == 'A+'

    def test_record_flag_overrides_default(self, tmp_path, rest_spec):
        db = GradeHistoryDB(tmp_path / 'runs.db')
        engine = GradingEngine(history_db=db, record_history=True)
        result = engine.grade_text(rest_spec, record=False)
        assert db.get_history(result.api_id) == []


def test_grade_spec_wrapper(rest_spec):
    assert grade_spec(rest_spec)['grade']['letter'] == 'A+'
