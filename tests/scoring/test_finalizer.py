"""
Tests for the Grade Finalizer
=============================
"""

import pytest

from base_checker import Finding, SEVERITY_ERROR, SEVERITY_WARN
from profiles import Profile, ProfileRule
from scoring import (
    letter_grade, build_report, build_blocked_report, generate_grade_summary, compare_grades,
    GradeReport, PrerequisiteOutcome, ScoringResult, CategoryScore,
)


PROFILE = Profile(name='Tiny', type='Tiny', rules=(ProfileRule('SEC-1', 10, 'security'),),
                  priority_config={'security': 10})


def scoring_result(percentage, findings=(), auto_fail=()):
    return ScoringResult(
        findings=list(findings),
        category_scores=[CategoryScore('security', percentage / 10, 10)],
        percentage=percentage,
        auto_fail_reasons=list(auto_fail),
    )


class TestLetterGrade:
    """Breakpoints are inclusive lower bounds."""

    @pytest.mark.parametrize('percentage,letter', [
        (100, 'A+'), (97, 'A+'), (96.99, 'A'), (93, 'A'), (90, 'A-'), (87, 'B+'),
        (83, 'B'), (80, 'B-'), (79.9, 'C'), (70, 'C'), (60, 'D'), (59.99, 'F'), (0, 'F'),
    ])
    def test_breakpoints(self, percentage, letter):
        """Test letter grade breakpoints."""
        assert letter_grade(percentage) == letter


class TestBuildReport:
    """Tests for report assembly."""

    def test_regular_report(self):
        """Test a regular report."""
        findings = [Finding('SEC-1', SEVERITY_ERROR, 'bad'), Finding('SEC-1', SEVERITY_WARN, 'meh')]
        report = build_report(scoring_result(50.0, findings), PROFILE, 0.9)
        assert report.total == 50
        assert report.letter == 'F'
        assert report.compliance_pct == 0.5
        assert report.critical_issues == 1
        assert not report.auto_fail_triggered
        assert report.per_category == {'security': {'score': 5.0, 'max': 10, 'errors': 0}}
        assert report.detection_confidence == 0.9

    def test_auto_fail_forces_f_but_keeps_total(self):
        """Test auto-fail forces F but keeps the total."""
        report = build_report(scoring_result(95.0, auto_fail=['SEC-001: tenant leak']), PROFILE)
        assert report.total == 95
        assert report.letter == 'F'
        assert report.auto_fail_triggered
        assert report.auto_fail_reasons == ('SEC-001: tenant leak',)

    def test_blocked_report(self):
        """Test a report blocked by prerequisites."""
        outcome = PrerequisiteOutcome(passed=False, findings=[
            Finding('PREREQ-002', SEVERITY_ERROR, 'No security schemes defined'),
        ])
        report = build_blocked_report(outcome, PROFILE)
        assert report.total == 0
        assert report.letter == 'F'
        assert report.compliance_pct == 0.0
        assert report.auto_fail_triggered
        assert report.blocked_by_prerequisites
        assert report.auto_fail_reasons == ('No security schemes defined',)

    def test_report_is_immutable(self):
        """Test reports are immutable."""
        report = build_report(scoring_result(100.0), PROFILE)
        with pytest.raises(AttributeError):
            report.total = 0

    def test_dict_round_trip(self):
        """Test report serialization."""
        report = build_report(scoring_result(88.0), PROFILE, 1.0)
        assert GradeReport.from_dict(report.to_dict()) == report


class TestSummary:
    """Tests for generate_grade_summary."""

    def test_blocked_summary_lists_reasons(self):
        """Test the blocked summary lists its reasons."""
        outcome = PrerequisiteOutcome(passed=False, findings=[
            Finding('PREREQ-API-ID', SEVERITY_ERROR, 'info.x-api-id is missing'),
        ])
        summary = generate_grade_summary(build_blocked_report(outcome, PROFILE))
        assert 'blocked by 1 failed prerequisite' in summary
        assert 'info.x-api-id is missing' in summary

    def test_scored_summary(self):
        """Test the summary of a scored report."""
        summary = generate_grade_summary(build_report(scoring_result(90.0), PROFILE))
        assert summary.startswith('Grade A- (90/100)')
        assert 'security: 9.0/10' in summary


class TestCompareGrades:
    """Tests for report comparison."""

    def test_fixed_and_new_findings(self):
        """Test comparing two reports."""
        before = build_report(scoring_result(80.0), PROFILE)
        after = build_report(scoring_result(90.0), PROFILE)
        old = [Finding('SEC-1', SEVERITY_ERROR, 'a', '/paths/~1a/get'),
               Finding('DOC-1', SEVERITY_ERROR, 'b', '/paths/~1b/get')]
        new = [Finding('DOC-1', SEVERITY_ERROR, 'b', '/paths/~1b/get'),
               Finding('DOC-1', SEVERITY_ERROR, 'c', '/paths/~1c/get')]

        comparison = compare_grades(before, after, old, new)

        assert comparison['score_delta'] == 10
        assert comparison['letter_change'] == 'B- -> A-'
        assert comparison['improved']
        assert [f['pointer_path'] for f in comparison['fixed_findings']] == ['/paths/~1a/get']
        assert [f['pointer_path'] for f in comparison['new_findings']] == ['/paths/~1c/get']
        assert comparison['category_delta'] == {'security': 1.0}
