"""
Tests for the Grade History Database
====================================
"""

import sqlite3
from dataclasses import replace

import pytest

from core import GradingEngine
from scan_history import GradeHistoryDB, history_key, get_grade_history_db


@pytest.fixture
def db(tmp_path):
    return GradeHistoryDB(tmp_path / 'runs.db')


@pytest.fixture
def engine(db):
    return GradingEngine(history_db=db, record_history=True)


def test_history_key():
    assert history_key('inv_1718035200000_9f3c2a7b41d0e6f8', 'Inventory') == 'inv_1718035200000_9f3c2a7b41d0e6f8'
    assert history_key(None, 'Thing API') == 'untracked:thingapi'


class TestRecordRun:

    def test_run_with_findings_and_checkpoints(self, db, engine, saas_spec):
        result = engine.grade_text(saas_spec)

        run = db.get_run(result.run_id)

        assert run['api_id'] == result.api_id
        assert run['letter'] == 'F'
        assert run['auto_fail_triggered'] is True
        assert run['grade']['total'] == 95
        assert run['selection']['reason'] == 'detected'
        assert [f['rule_id'] for f in run['findings'] if f['severity'] == 'error'] == ['SEC-001']
        assert len(run['checkpoints']) == len(result.checkpoints)

    def test_untracked_api(self, db, engine, minimal_spec):
        result = engine.grade_text(minimal_spec)
        assert db.get_history('untracked:thing')[0]['run_id'] == result.run_id

    def test_failed_insert_leaves_nothing_behind(self, db, engine, rest_spec):
        result = engine.grade_text(rest_spec)
        with pytest.raises(sqlite3.IntegrityError):
            db.record_run(result)
        assert len(db.get_history(result.api_id)) == 1

    def test_blocked_run(self, db, engine, minimal_spec):
        result = engine.grade_text(minimal_spec, profile_override='REST')
        run = db.get_run(result.run_id)
        assert run['blocked_by_prerequisites'] is True
        assert run['checkpoints'] == []
        assert {s['rule_id'] for s in run['skipped_prerequisites']} == {'PREREQ-003'}


class TestQueries:

    def test_history_order_and_trend(self, db, engine, rest_spec):
        first = engine.grade_text(rest_spec)
        second = engine.grade_text(rest_spec)
        # graded_at has sub-second precision but may still collide
        db.delete_run(second.run_id)
        db.record_run(replace(second, graded_at='2999-01-01T00:00:00Z'))

        history = db.get_history(first.api_id)
        assert [r['run_id'] for r in history] == [second.run_id, first.run_id]
        assert [t['graded_at'] for t in db.get_score_trend(first.api_id)][-1] == '2999-01-01T00:00:00Z'
        assert db.get_history(first.api_id, since='2999-01-01') == history[:1]

    def test_existing_grade_by_hash(self, db, engine, rest_spec):
        result = engine.grade_text(rest_spec)
        assert db.get_existing_grade(result.spec_hash)['run_id'] == result.run_id
        assert db.get_existing_grade(result.spec_hash, 'SaaS') is None
        assert db.get_existing_grade('0' * 64) is None

    def test_compare_runs(self, db, engine, minimal_spec):
        before = engine.grade_text(minimal_spec)
        after = engine.grade_text(minimal_spec.replace('"operationId"', '"summary": "List things", "operationId"'))

        comparison = db.compare_runs(before.run_id, after.run_id)

        assert comparison['score_delta'] == 5
        assert [f['rule_id'] for f in comparison['fixed_findings']] == ['DOC-001']
        assert comparison['new_findings'] == []

    def test_compare_unknown_run(self, db):
        assert db.compare_runs('nope', 'nada') is None

    def test_delete_run(self, db, engine, rest_spec):
        result = engine.grade_text(rest_spec)
        assert db.delete_run(result.run_id)
        assert db.get_run(result.run_id) is None
        assert not db.delete_run(result.run_id)


def test_singleton_uses_configured_path(tmp_path):
    db = get_grade_history_db()
    assert db.db_path == str(tmp_path / 'history.db')
    assert get_grade_history_db() is db
