"""
Scoring Module v1.0.0
=====================
Prerequisite gate, weighted category scoring and grade finalization.

Features:
- Profile-driven prerequisite gate with skipped-check explanations
- Category scores with a fixed penalty per error finding
- Auto-fail propagation from rule checkers
- Letter grades, summaries and report comparison
"""

from .models import (
    CategoryScore,
    Checkpoint,
    PrerequisiteOutcome,
    ScoringResult,
    GradeReport,
)
from .prerequisites import evaluate_prerequisites
from .engine import score_document, compute_category_scores, finding_category, run_checkers
from .finalizer import (
    letter_grade,
    build_report,
    build_blocked_report,
    generate_grade_summary,
    compare_grades,
)

__version__ = "1.0.0"
__all__ = [
    'CategoryScore',
    'Checkpoint',
    'PrerequisiteOutcome',
    'ScoringResult',
    'GradeReport',
    'evaluate_prerequisites',
    'score_document',
    'compute_category_scores',
    'finding_category',
    'run_checkers',
    'letter_grade',
    'build_report',
    'build_blocked_report',
    'generate_grade_summary',
    'compare_grades',
]
