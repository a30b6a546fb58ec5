"""
Scoring Models v1.0.0
=====================
Data classes for category scores, checkpoints, prerequisite outcomes and
the final grade report.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any

from base_checker import Finding


@dataclass(frozen=True)
class CategoryScore:
    """Points earned in one scoring category."""
    category: str
    score: float
    max_points: int
    error_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'score': self.score,
            'max': self.max_points,
            'errors': self.error_count,
        }


@dataclass(frozen=True)
class Checkpoint:
    """One profile rule's contribution to its category."""
    checkpoint_id: str
    category: str
    max_points: int
    scored_points: int
    status: str = 'passed'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'checkpoint_id': self.checkpoint_id,
            'category': self.category,
            'max_points': self.max_points,
            'scored_points': self.scored_points,
            'status': self.status,
        }


@dataclass
class PrerequisiteOutcome:
    """
    Result of the prerequisite gate.

    Attributes:
        passed: Every required prerequisite held
        findings: One error finding per failed prerequisite
        checked: Prerequisite rule ids that were evaluated
        skipped: Prerequisites the profile does not require, with reasons
    """
    passed: bool
    findings: List[Finding] = field(default_factory=list)
    checked: List[str] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)

    @property
    def failure_messages(self) -> List[str]:
        return [f.message for f in self.findings]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'passed': self.passed,
            'findings': [f.to_dict() for f in self.findings],
            'checked': self.checked,
            'skipped': self.skipped,
        }


@dataclass
class ScoringResult:
    """Everything the scoring engine computed for one document."""
    findings: List[Finding]
    category_scores: List[CategoryScore]
    percentage: float
    auto_fail_reasons: List[str] = field(default_factory=list)
    checkpoints: List[Checkpoint] = field(default_factory=list)
    checker_scores: Dict[str, float] = field(default_factory=dict)
    rule_status: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    checker_invocations: int = 0


@dataclass(frozen=True)
class GradeReport:
    """
    Final, immutable grade for one document.

    Attributes:
        total: Percentage rounded to an integer (0-100)
        letter: Letter grade (A+ .. F)
        compliance_pct: Unrounded percentage as a fraction (0-1)
        auto_fail_triggered: A prerequisite or auto-fail rule failed
        critical_issues: Number of error findings
        per_category: category -> {score, max, errors}
        auto_fail_reasons: Why the grade was forced to F
        blocked_by_prerequisites: Scoring never ran
    """
    total: int
    letter: str
    compliance_pct: float
    auto_fail_triggered: bool
    critical_issues: int
    per_category: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    auto_fail_reasons: tuple = ()
    blocked_by_prerequisites: bool = False
    profile: str = ""
    profile_type: str = ""
    detection_confidence: Optional[float] = None
    checker_scores: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'letter': self.letter,
            'compliance_pct': self.compliance_pct,
            'auto_fail_triggered': self.auto_fail_triggered,
            'critical_issues': self.critical_issues,
            'per_category': self.per_category,
            'auto_fail_reasons': list(self.auto_fail_reasons),
            'blocked_by_prerequisites': self.blocked_by_prerequisites,
            'profile': self.profile,
            'profile_type': self.profile_type,
            'detection_confidence': self.detection_confidence,
            'checker_scores': self.checker_scores,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GradeReport':
        return cls(
            total=int(data.get('total', 0)),
            letter=data.get('letter', 'F'),
            compliance_pct=float(data.get('compliance_pct', 0.0)),
            auto_fail_triggered=bool(data.get('auto_fail_triggered', False)),
            critical_issues=int(data.get('critical_issues', 0)),
            per_category=data.get('per_category', {}),
            auto_fail_reasons=tuple(data.get('auto_fail_reasons', ())),
            blocked_by_prerequisites=bool(data.get('blocked_by_prerequisites', False)),
            profile=data.get('profile', ''),
            profile_type=data.get('profile_type', ''),
            detection_confidence=data.get('detection_confidence'),
            checker_scores=data.get('checker_scores', {}),
        )
