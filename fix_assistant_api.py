"""
Fix Assistant Module

Turns grading findings into remediation patches bound to the exact spec
text they were computed against.

Functions:
    - generate_fixes: Build FixItems (with structural or textual patches) for findings
    - group_similar_fixes: Group fixes of the same rule and shape for batch application
    - compute_fix_statistics: Pre-compute remediation statistics
    - build_fix_response: Assemble the full API/CLI response
"""

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Iterable, Callable

from config_logging import get_logger
from api_id import generate_api_id
from base_checker import Finding, SEVERITY_ERROR, SEVERITY_WARN
from file_parsers import compute_text_hash, detect_format, build_line_map
from patching.models import Patch, STRUCTURAL
from patching.pointer import parse_pointer, build_pointer, resolve, NOT_FOUND
from spec_rules import get_rule_registry, suggest_path_name

_logger = get_logger('fix_assistant')

ORG_HEADER_POINTER = '/components/parameters/OrganizationHeader'
ORG_HEADER_REF = '#' + ORG_HEADER_POINTER
ORG_HEADER_PARAMETER = {
    'name': 'X-Organization-ID',
    'in': 'header',
    'required': True,
    'description': 'Tenant the request acts on',
    'schema': {'type': 'string'},
}
DEFAULT_OPENAPI_VERSION = '3.0.3'

RISK_LOW = 'low'
RISK_MEDIUM = 'medium'
RISK_HIGH = 'high'

# Seconds a reviewer typically spends confirming one fix of each risk tier
REVIEW_SECONDS = {RISK_LOW: 1, RISK_MEDIUM: 4, RISK_HIGH: 8}


@dataclass
class FixItem:
    """
    One proposed remediation.

    Attributes:
        fix_id: Stable id within one response (fix_0, fix_1, ...)
        rule_id: Rule the fix addresses
        pointer_path: Location of the violation
        description: What the patch changes
        rationale: Why the rule cares
        risk: low (additive), medium (changes values), high (renames or moves)
        patch: Patch carrying the preimage hash of the analysed text
        line: Source line of the violation, when known
    """
    fix_id: str
    rule_id: str
    pointer_path: str
    description: str
    rationale: str
    risk: str
    patch: Patch
    line: Optional[int] = None
    shape: str = field(default='', repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fix_id': self.fix_id,
            'rule_id': self.rule_id,
            'pointer_path': self.pointer_path,
            'line': self.line,
            'description': self.description,
            'rationale': self.rationale,
            'risk': self.risk,
            'patch': self.patch.to_dict(),
        }


@dataclass
class _FixContext:
    text: str
    document: Dict[str, Any]
    preimage_hash: str
    fmt: str
    preserve_formatting: bool
    line_map: Dict[str, int]


# =============================================================================
# PER-RULE FIX BUILDERS
# =============================================================================
# Each builder receives the pointers of the rule's violations and returns
# (pointer, description, risk, shape, operations-or-diff) tuples.

def _fix_structure(ctx: _FixContext, pointers: List[str]) -> List[tuple]:
    fixes = []
    version = ctx.document.get('openapi')
    if version is None or not str(version).startswith('3.'):
        fixes.append(('/openapi', f"Set openapi to {DEFAULT_OPENAPI_VERSION}", RISK_MEDIUM,
                      'set-openapi',
                      [{'op': 'add', 'path': '/openapi', 'value': DEFAULT_OPENAPI_VERSION}]))
    if not isinstance(ctx.document.get('info'), dict):
        fixes.append(('/info', 'Add a minimal info object', RISK_LOW, 'add-info',
                      [{'op': 'add', 'path': '/info',
                        'value': {'title': 'Untitled API', 'version': '1.0.0'}}]))
    return fixes


def _fix_api_id(ctx: _FixContext, pointers: List[str]) -> List[tuple]:
    info = ctx.document.get('info') if isinstance(ctx.document.get('info'), dict) else {}
    api_id = generate_api_id(str(info.get('title', '')))
    if info.get('x-api-id') in (None, ''):
        description, risk = f"Add generated info.x-api-id ({api_id})", RISK_LOW
    else:
        description, risk = f"Replace malformed info.x-api-id with {api_id}", RISK_MEDIUM
    return [('/info/x-api-id', description, risk, 'set-api-id',
             [{'op': 'add', 'path': '/info/x-api-id', 'value': api_id}])]


def _fix_org_header(ctx: _FixContext, pointers: List[str]) -> List[tuple]:
    fixes = []
    define_component = resolve(ctx.document, ORG_HEADER_POINTER) is NOT_FOUND
    for pointer in pointers:
        operation = resolve(ctx.document, pointer)
        if not isinstance(operation, dict):
            continue
        segments = parse_pointer(pointer)
        label = f"{str(segments[-1]).upper()} {segments[-2]}" if len(segments) >= 3 else pointer

        ops = []
        if define_component:
            ops.append({'op': 'add', 'path': ORG_HEADER_POINTER, 'value': dict(ORG_HEADER_PARAMETER)})
        if isinstance(operation.get('parameters'), list):
            ops.append({'op': 'add', 'path': f"{pointer}/parameters/-", 'value': {'$ref': ORG_HEADER_REF}})
        else:
            ops.append({'op': 'add', 'path': f"{pointer}/parameters", 'value': [{'$ref': ORG_HEADER_REF}]})
        fixes.append((pointer, f"Require the X-Organization-ID header on {label}", RISK_LOW,
                      'add-org-header', ops))
    return fixes


def _summary_for(operation: Dict[str, Any], method: str, path: str) -> str:
    """Sentence-case the operationId, else fall back to 'METHOD /path'."""
    operation_id = str(operation.get('operationId', '')).strip()
    if operation_id:
        phrase = re.sub(r'([a-z0-9])([A-Z])', r'\1 \2', operation_id)
        phrase = ' '.join(re.split(r'[_\-\s]+', phrase)).strip().lower()
        return phrase[:1].upper() + phrase[1:]
    return f"{method.upper()} {path}"


def _fix_summary(ctx: _FixContext, pointers: List[str]) -> List[tuple]:
    fixes = []
    for pointer in pointers:
        operation = resolve(ctx.document, pointer)
        segments = parse_pointer(pointer)
        if not isinstance(operation, dict) or len(segments) < 3:
            continue
        summary = _summary_for(operation, str(segments[-1]), str(segments[-2]))
        fixes.append((pointer, f"Add summary '{summary}'", RISK_LOW, 'add-summary',
                      [{'op': 'add', 'path': f"{pointer}/summary", 'value': summary}]))
    return fixes


def _rename_diff(ctx: _FixContext, pointer: str, old: str, new: str) -> Optional[str]:
    """One-line diff renaming a YAML path key, or None if the key line can't be found."""
    line_no = ctx.line_map.get(pointer)
    if not line_no:
        return None
    lines = ctx.text.splitlines()
    if line_no > len(lines) or old not in lines[line_no - 1]:
        return None
    before = lines[line_no - 1]
    after = before.replace(old, new, 1)
    return f"-{before}\n+{after}"


def _fix_path_names(ctx: _FixContext, pointers: List[str]) -> List[tuple]:
    fixes = []
    paths = ctx.document.get('paths') if isinstance(ctx.document.get('paths'), dict) else {}
    for pointer in pointers:
        segments = parse_pointer(pointer)
        if len(segments) != 2:
            continue
        old = str(segments[1])
        new = suggest_path_name(old)
        if new == old or new in paths:
            _logger.debug("path rename skipped", path=old, suggested=new)
            continue
        description = f"Rename path {old} to {new}"
        if ctx.preserve_formatting and ctx.fmt == 'yaml':
            diff = _rename_diff(ctx, pointer, old, new)
            if diff is not None:
                fixes.append((pointer, description, RISK_HIGH, 'rename-path', diff))
                continue
        fixes.append((pointer, description, RISK_HIGH, 'rename-path',
                      [{'op': 'move', 'from': pointer, 'path': build_pointer(['paths', new])}]))
    return fixes


FIX_BUILDERS: Dict[str, Callable[[_FixContext, List[str]], List[tuple]]] = {
    'PREREQ-001': _fix_structure,
    'PREREQ-API-ID': _fix_api_id,
    'PREREQ-003': _fix_org_header,
    'SEC-001': _fix_org_header,
    'DOC-001': _fix_summary,
    'CONS-001': _fix_path_names,
}


def _violation_pointers(rule_id: str, findings: List[Finding], document: Dict[str, Any]) -> List[str]:
    """
    Pointers of every violation of ``rule_id``.

    Prerequisite findings are collapsed to one per rule, so the rule is
    re-run to recover each location.
    """
    rule = get_rule_registry().get(rule_id)
    if rule is not None:
        try:
            return [f.pointer_path for f in rule.check(document)]
        except Exception as e:
            _logger.warning(f"could not re-run rule for fixes: {e}", rule=rule_id)
    seen = []
    for finding in findings:
        if finding.pointer_path not in seen:
            seen.append(finding.pointer_path)
    return seen


def generate_fixes(findings: Iterable[Any], spec_text: str, document: Dict[str, Any],
                   preserve_formatting: bool = False, fmt: Optional[str] = None) -> List[FixItem]:
    """
    Propose patches for the fixable findings.

    Args:
        findings: Finding objects or their dict form
        spec_text: Exact text the findings were produced from
        document: Parsed form of ``spec_text``
        preserve_formatting: Emit textual diffs where possible (YAML path
            renames) so comments and layout survive
        fmt: 'json' or 'yaml'; guessed from the text when omitted

    Returns:
        List of FixItem, in rule order of first appearance
    """
    by_rule: Dict[str, List[Finding]] = {}
    for item in findings:
        finding = item if isinstance(item, Finding) else Finding.from_dict(item)
        if finding.severity not in (SEVERITY_ERROR, SEVERITY_WARN):
            continue
        if finding.rule_id in FIX_BUILDERS:
            by_rule.setdefault(finding.rule_id, []).append(finding)

    ctx = _FixContext(
        text=spec_text,
        document=document,
        preimage_hash=compute_text_hash(spec_text),
        fmt=fmt or detect_format(spec_text),
        preserve_formatting=preserve_formatting,
        line_map=build_line_map(spec_text),
    )

    registry = get_rule_registry()

    fixes: List[FixItem] = []
    claimed = set()
    for rule_id, rule_findings in by_rule.items():
        rule = registry.get(rule_id)
        rationale = (rule.RATIONALE or rule.DESCRIPTION) if rule else ''
        pointers = _violation_pointers(rule_id, rule_findings, document)
        for pointer, description, risk, shape, body in FIX_BUILDERS[rule_id](ctx, pointers):
            # PREREQ-003 and SEC-001 share a fix; one per location is enough
            if (shape, pointer) in claimed:
                continue
            claimed.add((shape, pointer))
            if isinstance(body, str):
                patch = Patch.textual(ctx.preimage_hash, body, description)
            else:
                patch = Patch.structural(ctx.preimage_hash, body, description)
            fixes.append(FixItem(
                fix_id=f"fix_{len(fixes)}",
                rule_id=rule_id,
                pointer_path=pointer,
                description=description,
                rationale=rationale,
                risk=risk,
                patch=patch,
                line=ctx.line_map.get(pointer),
                shape=shape,
            ))

    _logger.info("Generated fixes", fixes=len(fixes), rules=list(by_rule))
    return fixes


def group_similar_fixes(fixes: List[FixItem]) -> List[Dict[str, Any]]:
    """
    Group fixes that make the same kind of change for batch operations.

    Only structural fixes group, and only groups with count >= 2 are
    returned. Each group carries one combined patch holding every member's
    operations in order.

    Returns:
        List of group dictionaries, most frequent first:
            {
                "group_id": str,
                "rule_id": str,
                "pattern": str,
                "fix_ids": List[str],
                "count": int,
                "risk": str,
                "patch": dict
            }
    """
    if not fixes:
        return []

    groups: Dict[tuple, List[FixItem]] = defaultdict(list)
    for fix in fixes:
        if fix.patch.kind != STRUCTURAL:
            continue
        groups[(fix.rule_id, fix.shape)].append(fix)

    result: List[Dict[str, Any]] = []
    for (rule_id, shape), members in groups.items():
        if len(members) < 2:
            continue
        operations = []
        for member in members:
            operations.extend(op.to_dict() for op in member.patch.operations)
        combined = Patch.structural(members[0].patch.preimage_hash, operations,
                                    f"{shape} x{len(members)}")
        result.append({
            "group_id": f"grp_{len(result)}",
            "rule_id": rule_id,
            "pattern": shape,
            "fix_ids": [m.fix_id for m in members],
            "count": len(members),
            "risk": members[0].risk,
            "patch": combined.to_dict(),
        })

    result.sort(key=lambda g: g['count'], reverse=True)
    return result


def compute_fix_statistics(findings: Iterable[Any], fixes: List[FixItem],
                           fix_groups: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Remediation statistics for a set of findings.

    Returns:
        Dictionary containing:
            - total_findings: int
            - total_fixes: int
            - fixable_rules / unfixable_rules: List[str]
            - by_rule: Dict[str, int] (fixes per rule)
            - by_risk: Dict[str, int]
            - by_kind: Dict[str, int] (structural / textual)
            - group_count: int
            - grouped_fix_count: int
            - estimated_review_seconds: int
    """
    finding_rules = []
    total_findings = 0
    for item in findings:
        total_findings += 1
        rule_id = item.rule_id if isinstance(item, Finding) else item.get('rule_id', '')
        if rule_id not in finding_rules:
            finding_rules.append(rule_id)

    by_rule: Dict[str, int] = defaultdict(int)
    by_risk: Dict[str, int] = defaultdict(int)
    by_kind: Dict[str, int] = defaultdict(int)
    for fix in fixes:
        by_rule[fix.rule_id] += 1
        by_risk[fix.risk] += 1
        by_kind[fix.patch.kind] += 1

    return {
        "total_findings": total_findings,
        "total_fixes": len(fixes),
        "fixable_rules": [r for r in finding_rules if r in by_rule],
        "unfixable_rules": [r for r in finding_rules if r not in by_rule],
        "by_rule": dict(by_rule),
        "by_risk": dict(by_risk),
        "by_kind": dict(by_kind),
        "group_count": len(fix_groups),
        "grouped_fix_count": sum(g.get('count', 0) for g in fix_groups),
        "estimated_review_seconds": sum(REVIEW_SECONDS.get(risk, 4) * n for risk, n in by_risk.items()),
    }


def build_fix_response(findings: List[Any], spec_text: str, document: Dict[str, Any],
                       preserve_formatting: bool = False, fmt: Optional[str] = None) -> Dict[str, Any]:
    """Fixes, groups and statistics in one JSON-ready dict."""
    findings = list(findings)
    fixes = generate_fixes(findings, spec_text, document, preserve_formatting, fmt)
    groups = group_similar_fixes(fixes)
    return {
        'preimage_hash': compute_text_hash(spec_text),
        'fixes': [f.to_dict() for f in fixes],
        'fix_groups': groups,
        'statistics': compute_fix_statistics(findings, fixes, groups),
    }
