#!/usr/bin/env python3
"""
Grade History System v1.0
=========================
Records grading runs so an API's compliance can be tracked across
revisions.

Features:
- One record per grading run, keyed by the run's correlation id
- Findings and per-rule checkpoint scores stored alongside each run
- Lookup of an existing grade by spec content hash
- Score trends and run-to-run comparison

Author: API Spec Grader
"""

import json
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Dict, List, Optional, Any, Union

from config_logging import VERSION, get_logger, get_config
from api_id import normalize_prefix
from base_checker import Finding
from scoring import GradeReport, compare_grades

__version__ = VERSION
_logger = get_logger('scan_history')


def _log(msg: str, level: str = 'info', **kwargs):
    getattr(_logger, level)(msg, **kwargs)


def history_key(api_id: Optional[str], api_title: str = "") -> str:
    """Runs of APIs without x-api-id are grouped by their title."""
    if api_id:
        return api_id
    return f"untracked:{normalize_prefix(api_title)}"


class GradeHistoryDB:
    """Database of grading runs, findings and checkpoint scores."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        """Initialize the database."""
        if db_path is None:
            db_path = get_config().history_db_path
        self.db_path = str(db_path)
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute('PRAGMA foreign_keys = ON')
        return conn

    def _init_database(self):
        """Initialize database tables."""
        with closing(self._connect()) as conn:
            cursor = conn.cursor()

            # One row per tracked API
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS api (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    last_graded TIMESTAMP,
                    run_count INTEGER DEFAULT 0
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS run (
                    id TEXT PRIMARY KEY,
                    api_id TEXT NOT NULL REFERENCES api(id),
                    graded_at TEXT NOT NULL,
                    engine_version TEXT,
                    source TEXT,
                    spec_hash TEXT NOT NULL,
                    profile_type TEXT,
                    detection_confidence REAL,
                    total_score INTEGER,
                    letter_grade TEXT,
                    compliance_pct REAL,
                    auto_fail INTEGER,
                    blocked INTEGER,
                    critical_issues INTEGER,
                    findings_count INTEGER,
                    report_json TEXT
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS finding (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL REFERENCES run(id) ON DELETE CASCADE,
                    rule_id TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    category TEXT,
                    pointer TEXT,
                    line INTEGER,
                    message TEXT
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS checkpoint_score (
                    run_id TEXT NOT NULL REFERENCES run(id) ON DELETE CASCADE,
                    checkpoint_id TEXT NOT NULL,
                    category TEXT,
                    max_points INTEGER,
                    scored_points INTEGER,
                    PRIMARY KEY (run_id, checkpoint_id)
                )
            ''')

            cursor.execute('CREATE INDEX IF NOT EXISTS idx_run_api ON run(api_id, graded_at)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_run_hash ON run(spec_hash)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_finding_run ON finding(run_id)')
            conn.commit()

    def record_run(self, result) -> Dict[str, Any]:
        """
        Store a GradingResult in a single transaction.

        Returns:
            Dict with run_id and api_id
        """
        api_key = history_key(result.api_id, result.api_title)
        report: GradeReport = result.report
        record = {
            'grade': report.to_dict(),
            'detection': result.detection.to_dict(),
            'selection': result.selection.to_dict(),
            'skipped_prerequisites': result.prerequisites.skipped,
        }

        with closing(self._connect()) as conn:
            with conn:
                cursor = conn.cursor()
                cursor.execute('''
                    INSERT INTO api (id, name, last_graded, run_count) VALUES (?, ?, ?, 1)
                    ON CONFLICT(id) DO UPDATE SET
                        name = excluded.name,
                        last_graded = excluded.last_graded,
                        run_count = run_count + 1
                ''', (api_key, result.api_title, result.graded_at))

                cursor.execute('''
                    INSERT INTO run (id, api_id, graded_at, engine_version, source, spec_hash,
                                     profile_type, detection_confidence, total_score, letter_grade,
                                     compliance_pct, auto_fail, blocked, critical_issues,
                                     findings_count, report_json)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', (result.run_id, api_key, result.graded_at, VERSION, result.source,
                      result.spec_hash, report.profile_type, report.detection_confidence,
                      report.total, report.letter, report.compliance_pct,
                      int(report.auto_fail_triggered), int(report.blocked_by_prerequisites),
                      report.critical_issues, len(result.findings), json.dumps(record)))

                cursor.executemany('''
                    INSERT INTO finding (run_id, rule_id, severity, category, pointer, line, message)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                ''', [(result.run_id, f.rule_id, f.severity, f.category, f.pointer_path, f.line, f.message)
                      for f in result.findings])

                cursor.executemany('''
                    INSERT INTO checkpoint_score (run_id, checkpoint_id, category, max_points, scored_points)
                    VALUES (?, ?, ?, ?, ?)
                ''', [(result.run_id, c.checkpoint_id, c.category, c.max_points, c.scored_points)
                      for c in result.checkpoints])

        _log("Recorded grading run", run=result.run_id, api=api_key, letter=report.letter)
        return {'run_id': result.run_id, 'api_id': api_key}

    @staticmethod
    def _run_row(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            'run_id': row['id'],
            'api_id': row['api_id'],
            'graded_at': row['graded_at'],
            'engine_version': row['engine_version'],
            'source': row['source'],
            'spec_hash': row['spec_hash'],
            'profile_type': row['profile_type'],
            'detection_confidence': row['detection_confidence'],
            'total': row['total_score'],
            'letter': row['letter_grade'],
            'compliance_pct': row['compliance_pct'],
            'auto_fail_triggered': bool(row['auto_fail']),
            'blocked_by_prerequisites': bool(row['blocked']),
            'critical_issues': row['critical_issues'],
            'findings_count': row['findings_count'],
        }

    def _query(self, sql: str, params: tuple) -> List[sqlite3.Row]:
        with closing(self._connect()) as conn:
            conn.row_factory = sqlite3.Row
            return conn.execute(sql, params).fetchall()

    def get_history(self, api_id: str, limit: int = 50, since: Optional[str] = None) -> List[Dict]:
        """Runs for one API, newest first, optionally only those graded at or after ``since``."""
        if since:
            rows = self._query('''
                SELECT * FROM run WHERE api_id = ? AND graded_at >= ?
                ORDER BY graded_at DESC LIMIT ?
            ''', (api_id, since, limit))
        else:
            rows = self._query('''
                SELECT * FROM run WHERE api_id = ?
                ORDER BY graded_at DESC LIMIT ?
            ''', (api_id, limit))
        return [self._run_row(row) for row in rows]

    def get_score_trend(self, api_id: str, limit: int = 10) -> List[Dict]:
        """Score history ordered oldest to newest."""
        return [
            {'graded_at': r['graded_at'], 'total': r['total'], 'letter': r['letter'],
             'critical_issues': r['critical_issues']}
            for r in reversed(self.get_history(api_id, limit))
        ]

    def get_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        """One run with its stored report, findings and checkpoints."""
        rows = self._query('SELECT * FROM run WHERE id = ?', (run_id,))
        if not rows:
            return None
        run = self._run_row(rows[0])
        run.update(json.loads(rows[0]['report_json'] or '{}'))

        run['findings'] = [
            {'rule_id': r['rule_id'], 'severity': r['severity'], 'category': r['category'],
             'pointer_path': r['pointer'], 'line': r['line'], 'message': r['message']}
            for r in self._query('SELECT * FROM finding WHERE run_id = ? ORDER BY id', (run_id,))
        ]
        run['checkpoints'] = [
            {'checkpoint_id': r['checkpoint_id'], 'category': r['category'],
             'max_points': r['max_points'], 'scored_points': r['scored_points']}
            for r in self._query('SELECT * FROM checkpoint_score WHERE run_id = ? ORDER BY checkpoint_id',
                                 (run_id,))
        ]
        return run

    def get_existing_grade(self, spec_hash: str, profile_type: Optional[str] = None) -> Optional[Dict]:
        """Most recent run for identical spec content, if any."""
        if profile_type:
            rows = self._query('''
                SELECT * FROM run WHERE spec_hash = ? AND profile_type = ?
                ORDER BY graded_at DESC LIMIT 1
            ''', (spec_hash, profile_type))
        else:
            rows = self._query('''
                SELECT * FROM run WHERE spec_hash = ? ORDER BY graded_at DESC LIMIT 1
            ''', (spec_hash,))
        return self._run_row(rows[0]) if rows else None

    def compare_runs(self, baseline_run_id: str, current_run_id: str) -> Optional[Dict[str, Any]]:
        """Score delta and fixed/new findings between two stored runs."""
        baseline = self.get_run(baseline_run_id)
        current = self.get_run(current_run_id)
        if baseline is None or current is None:
            return None
        comparison = compare_grades(
            GradeReport.from_dict(baseline['grade']),
            GradeReport.from_dict(current['grade']),
            [Finding.from_dict(f) for f in baseline['findings']],
            [Finding.from_dict(f) for f in current['findings']],
        )
        comparison['baseline_run_id'] = baseline_run_id
        comparison['current_run_id'] = current_run_id
        return comparison

    def delete_run(self, run_id: str) -> bool:
        with closing(self._connect()) as conn:
            with conn:
                row = conn.execute('SELECT api_id FROM run WHERE id = ?', (run_id,)).fetchone()
                if row is None:
                    return False
                conn.execute('DELETE FROM run WHERE id = ?', (run_id,))
                conn.execute('UPDATE api SET run_count = run_count - 1 WHERE id = ?', (row[0],))
        _log("Deleted grading run", run=run_id)
        return True


_db_instance = None

def get_grade_history_db() -> GradeHistoryDB:
    """Get singleton instance of the grade history database."""
    global _db_instance
    if _db_instance is None:
        _db_instance = GradeHistoryDB()
    return _db_instance


def reset_grade_history_db():
    """Drop the singleton so the next call reopens the configured path."""
    global _db_instance
    _db_instance = None
