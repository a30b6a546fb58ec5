"""
Grade Finalizer v1.0.0
======================
Turns a scoring result or a failed prerequisite gate into a GradeReport,
and summarizes or compares reports.
"""

from typing import List, Dict, Any, Optional, Iterable

from base_checker import Finding, SEVERITY_ERROR
from profiles.models import Profile
from .models import GradeReport, ScoringResult, PrerequisiteOutcome

GRADE_BREAKPOINTS = (
    (97, 'A+'),
    (93, 'A'),
    (90, 'A-'),
    (87, 'B+'),
    (83, 'B'),
    (80, 'B-'),
    (70, 'C'),
    (60, 'D'),
)
FAILING_GRADE = 'F'


def letter_grade(percentage: float) -> str:
    """Convert a 0-100 percentage to a letter grade."""
    for threshold, letter in GRADE_BREAKPOINTS:
        if percentage >= threshold:
            return letter
    return FAILING_GRADE


def count_critical(findings: Iterable[Finding]) -> int:
    return sum(1 for f in findings if f.severity == SEVERITY_ERROR)


def build_report(scoring: ScoringResult, profile: Profile,
                 detection_confidence: Optional[float] = None) -> GradeReport:
    """
    Assemble the report for a document that passed its prerequisites.

    Auto-fail reasons force the letter to F; the numeric total is kept.
    """
    percentage = scoring.percentage
    auto_fail = bool(scoring.auto_fail_reasons)
    return GradeReport(
        total=int(round(percentage)),
        letter=FAILING_GRADE if auto_fail else letter_grade(percentage),
        compliance_pct=round(percentage / 100, 4),
        auto_fail_triggered=auto_fail,
        critical_issues=count_critical(scoring.findings),
        per_category={c.category: c.to_dict() for c in scoring.category_scores},
        auto_fail_reasons=tuple(scoring.auto_fail_reasons),
        blocked_by_prerequisites=False,
        profile=profile.name,
        profile_type=profile.type,
        detection_confidence=detection_confidence,
        checker_scores=dict(scoring.checker_scores),
    )


def build_blocked_report(outcome: PrerequisiteOutcome, profile: Profile,
                         detection_confidence: Optional[float] = None) -> GradeReport:
    """Terminal report for a document that failed the prerequisite gate."""
    return GradeReport(
        total=0,
        letter=FAILING_GRADE,
        compliance_pct=0.0,
        auto_fail_triggered=True,
        critical_issues=count_critical(outcome.findings),
        per_category={},
        auto_fail_reasons=tuple(outcome.failure_messages),
        blocked_by_prerequisites=True,
        profile=profile.name,
        profile_type=profile.type,
        detection_confidence=detection_confidence,
    )


def generate_grade_summary(report: GradeReport) -> str:
    """Short human-readable description of a report."""
    if report.blocked_by_prerequisites:
        lines = [f"Grade F: blocked by {len(report.auto_fail_reasons)} failed prerequisite(s) "
                 f"under the {report.profile} profile."]
        lines.extend(f"  - {reason}" for reason in report.auto_fail_reasons)
        return '\n'.join(lines)

    lines = [f"Grade {report.letter} ({report.total}/100) under the {report.profile} profile, "
             f"{report.critical_issues} critical issue(s)."]
    if report.auto_fail_triggered:
        lines.append("Auto-fail triggered:")
        lines.extend(f"  - {reason}" for reason in report.auto_fail_reasons)
    for category, detail in report.per_category.items():
        lines.append(f"  {category}: {detail['score']}/{detail['max']}")
    return '\n'.join(lines)


def _finding_keys(findings: Iterable[Any]) -> Dict[tuple, Dict[str, Any]]:
    keyed = {}
    for finding in findings:
        data = finding.to_dict() if isinstance(finding, Finding) else dict(finding)
        keyed[(data.get('rule_id'), data.get('pointer_path'))] = data
    return keyed


def compare_grades(baseline: GradeReport, current: GradeReport,
                   baseline_findings: Iterable[Any] = (),
                   current_findings: Iterable[Any] = ()) -> Dict[str, Any]:
    """
    Compare two reports of the same API.

    Findings are matched on (rule_id, pointer_path).
    """
    before = _finding_keys(baseline_findings)
    after = _finding_keys(current_findings)
    fixed: List[Dict[str, Any]] = [before[k] for k in before if k not in after]
    new: List[Dict[str, Any]] = [after[k] for k in after if k not in before]

    category_delta = {}
    for category in set(baseline.per_category) | set(current.per_category):
        old = baseline.per_category.get(category, {}).get('score', 0)
        now = current.per_category.get(category, {}).get('score', 0)
        category_delta[category] = now - old

    return {
        'score_delta': current.total - baseline.total,
        'letter_change': f"{baseline.letter} -> {current.letter}",
        'improved': current.total > baseline.total,
        'critical_delta': current.critical_issues - baseline.critical_issues,
        'category_delta': category_delta,
        'fixed_findings': fixed,
        'new_findings': new,
    }
