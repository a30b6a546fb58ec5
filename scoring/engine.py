"""
Scoring Engine v1.0.0
=====================
Runs rule checkers against a document and turns their findings into
category scores weighted by the selected profile.

Per category: ``score = max(0, max_points - 5 * error_findings)``.
Overall percentage: sum of scores over sum of maximums.
"""

from typing import List, Dict, Any, Callable, Iterable, Optional, Tuple

from config_logging import get_logger
from base_checker import Finding, CheckerOutput, SEVERITY_ERROR
from profiles.models import Profile, category_from_prefix
from .models import CategoryScore, Checkpoint, ScoringResult

_logger = get_logger('scoring_engine')

ERROR_PENALTY = 5

RuleChecker = Callable[[Dict[str, Any], Profile], CheckerOutput]


def finding_category(finding: Finding, profile: Profile) -> Optional[str]:
    """
    Category a finding counts against.

    The matching profile rule's category wins, then the finding's own
    category, then the rule-id prefix heuristic.
    """
    rule = profile.rule_for(finding.rule_id)
    if rule is not None and rule.category:
        return rule.category
    if finding.category:
        return finding.category
    return category_from_prefix(finding.rule_id, profile.priority_config)


def compute_category_scores(findings: Iterable[Finding], profile: Profile) -> List[CategoryScore]:
    errors: Dict[str, int] = {}
    for finding in findings:
        if finding.severity != SEVERITY_ERROR:
            continue
        category = finding_category(finding, profile)
        if category is not None:
            errors[category] = errors.get(category, 0) + 1

    return [
        CategoryScore(category, max(0, max_points - ERROR_PENALTY * errors.get(category, 0)),
                      max_points, errors.get(category, 0))
        for category, max_points in profile.priority_config.items()
    ]


def compute_percentage(category_scores: List[CategoryScore]) -> float:
    total_max = sum(c.max_points for c in category_scores)
    if total_max <= 0:
        return 0.0
    return sum(c.score for c in category_scores) / total_max * 100


def compute_checkpoints(findings: Iterable[Finding], profile: Profile,
                        rule_status: Dict[str, str]) -> List[Checkpoint]:
    """A checkpoint earns its rule's weight unless the rule produced an error or never ran."""
    failing = {f.rule_id for f in findings if f.severity == SEVERITY_ERROR}
    checkpoints = []
    for rule in profile.enabled_rules:
        status = 'failed' if rule.rule_id in failing else rule_status.get(rule.rule_id, 'passed')
        earned = rule.weight if status in ('passed', 'failed') and rule.rule_id not in failing else 0
        checkpoints.append(Checkpoint(rule.rule_id, rule.category, rule.weight, earned, status))
    return checkpoints


def run_checkers(document: Dict[str, Any], profile: Profile,
                 checkers: Iterable[RuleChecker]) -> Tuple[CheckerOutput, int]:
    """
    Invoke each checker once and merge their outputs.

    A checker that raises is logged and reported in ``errors``; the
    others still run.

    Returns:
        (merged output, number of checkers invoked)
    """
    merged = CheckerOutput()
    invocations = 0
    for checker in checkers:
        name = getattr(checker, 'name', getattr(checker, '__name__', type(checker).__name__))
        invocations += 1
        try:
            output = checker(document, profile)
        except Exception as e:
            _logger.exception(f"rule checker failed: {e}", checker=name)
            merged.errors.append(f"{name}: {type(e).__name__}: {e}")
            continue
        merged.extend(output)
    return merged, invocations


def score_document(document: Dict[str, Any], profile: Profile,
                   checkers: Iterable[RuleChecker]) -> ScoringResult:
    """
    Run the checkers and score their findings against ``profile``.

    Findings whose rule is not in the profile are kept in the result but
    only count toward a category through their own category or prefix.
    """
    output, invocations = run_checkers(document, profile, checkers)
    category_scores = compute_category_scores(output.findings, profile)

    unweighted = sorted({f.rule_id for f in output.findings if profile.rule_for(f.rule_id) is None})
    if unweighted:
        _logger.debug("findings without profile weight", rules=unweighted)

    return ScoringResult(
        findings=list(output.findings),
        category_scores=category_scores,
        percentage=compute_percentage(category_scores),
        auto_fail_reasons=list(output.auto_fail_reasons),
        checkpoints=compute_checkpoints(output.findings, profile, output.rule_status),
        checker_scores=dict(output.category_scores),
        rule_status=dict(output.rule_status),
        errors=list(output.errors),
        checker_invocations=invocations,
    )
