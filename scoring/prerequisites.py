"""
Prerequisite Gate v1.0.0
========================
Checks the invariants a profile requires before any rule is scored.

Only prerequisites the profile requires are evaluated; the others are
reported as skipped with an explanation, never as passed. Any failure
blocks scoring entirely.
"""

from typing import Dict, Any, List, Optional

from config_logging import get_logger
from base_checker import Finding, RuleRegistry, SEVERITY_ERROR
from profiles.models import Profile
from .models import PrerequisiteOutcome

_logger = get_logger('prerequisites')

PREREQ_CATEGORY = 'prerequisites'
MAX_LISTED_VIOLATIONS = 3

# (profile flag, rule id, label used in skip explanations)
BUILTIN_PREREQUISITES = (
    ('requires_valid_structure', 'PREREQ-001', 'structural validation'),
    ('requires_authentication', 'PREREQ-002', 'authentication'),
    ('requires_multi_tenant_headers', 'PREREQ-003', 'multi-tenant headers'),
    ('requires_api_id', 'PREREQ-API-ID', 'an API identifier'),
)


def _collapse(rule_id: str, description: str, findings: List[Finding]) -> Finding:
    """One finding per failed prerequisite, listing the first violations."""
    if len(findings) == 1:
        only = findings[0]
        return Finding(rule_id, SEVERITY_ERROR, only.message, only.pointer_path,
                       PREREQ_CATEGORY, fix_hint=only.fix_hint)
    listed = '; '.join(f.message for f in findings[:MAX_LISTED_VIOLATIONS])
    more = len(findings) - MAX_LISTED_VIOLATIONS
    if more > 0:
        listed += f"; and {more} more"
    return Finding(rule_id, SEVERITY_ERROR,
                   f"{description}: {len(findings)} violations ({listed})",
                   findings[0].pointer_path, PREREQ_CATEGORY, fix_hint=findings[0].fix_hint)


def _evaluate(rule_id: str, document: Dict[str, Any], registry: RuleRegistry) -> Optional[Finding]:
    rule = registry.get(rule_id)
    if rule is None:
        return Finding(rule_id, SEVERITY_ERROR, f"Prerequisite {rule_id} is not registered",
                       category=PREREQ_CATEGORY)
    findings, error = rule.safe_check(document, PREREQ_CATEGORY)
    if findings is None:
        _logger.error("prerequisite crashed", rule=rule_id, error=error)
        return Finding(rule_id, SEVERITY_ERROR,
                       f"Prerequisite {rule_id} could not be evaluated: {error}",
                       category=PREREQ_CATEGORY)
    if not findings:
        return None
    return _collapse(rule_id, rule.DESCRIPTION, findings)


def evaluate_prerequisites(document: Dict[str, Any], profile: Profile,
                           registry: RuleRegistry) -> PrerequisiteOutcome:
    """
    Run the prerequisites ``profile`` requires against ``document``.

    Returns:
        PrerequisiteOutcome with one error finding per failed prerequisite.
    """
    required = profile.prerequisites
    outcome = PrerequisiteOutcome(passed=True)

    to_check = []
    for flag, rule_id, label in BUILTIN_PREREQUISITES:
        if getattr(required, flag):
            to_check.append(rule_id)
        else:
            outcome.skipped.append({
                'rule_id': rule_id,
                'reason': f"{label} is not required by the {profile.name} profile",
            })
    to_check.extend(r for r in required.custom if r not in to_check)

    for rule_id in to_check:
        outcome.checked.append(rule_id)
        finding = _evaluate(rule_id, document, registry)
        if finding is not None:
            outcome.findings.append(finding)

    outcome.passed = not outcome.findings
    if not outcome.passed:
        _logger.info("prerequisites failed", profile=profile.type,
                     failed=[f.rule_id for f in outcome.findings])
    return outcome
