#!/usr/bin/env python3
"""
Base Rule Contract v1.0.0
=========================
Defines the interface every grading rule and rule checker implements.

A rule finds the parts of a document it cares about (``detect``) and
judges each of them (``validate``). A rule checker is any callable
``(document, profile) -> CheckerOutput``; RuleRegistry holds the rules a
checker draws on.
"""

from types import MappingProxyType
from typing import List, Dict, Any, Optional, Iterable, Mapping, Tuple
from dataclasses import dataclass, field

from config_logging import ProfileConfigurationError

__version__ = "1.0.0"

SEVERITY_ERROR = 'error'
SEVERITY_WARN = 'warn'
SEVERITY_INFO = 'info'
SEVERITIES = (SEVERITY_ERROR, SEVERITY_WARN, SEVERITY_INFO)


@dataclass(frozen=True)
class Finding:
    """A single rule violation located in the document."""
    rule_id: str
    severity: str  # error, warn, info
    message: str
    pointer_path: str = ""
    category: str = ""
    line: Optional[int] = None
    fix_hint: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rule_id': self.rule_id,
            'severity': self.severity,
            'message': self.message,
            'pointer_path': self.pointer_path,
            'category': self.category,
            'line': self.line,
            'fix_hint': self.fix_hint,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Finding':
        return cls(
            rule_id=data.get('rule_id', data.get('ruleId', '')),
            severity=data.get('severity', SEVERITY_INFO),
            message=data.get('message', ''),
            pointer_path=data.get('pointer_path', data.get('pointerPath', '')),
            category=data.get('category', ''),
            line=data.get('line'),
            fix_hint=data.get('fix_hint', data.get('fixHint', '')),
        )


@dataclass
class Target:
    """Something a rule inspects: an operation, a path, a schema..."""
    pointer: str
    kind: str = "document"
    value: Any = None
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationResult:
    passed: bool
    message: str = ""
    fix_hint: str = ""
    confidence: float = 1.0


@dataclass
class CheckerOutput:
    """
    What a rule checker hands to the scoring engine.

    Attributes:
        findings: Violations found
        category_scores: Partial scores the checker computed itself
        auto_fail_reasons: Violations severe enough to fail the grade
        rule_status: rule id -> 'passed' | 'failed' | 'skipped'
        errors: Rules that crashed, with the error text
    """
    findings: List[Finding] = field(default_factory=list)
    category_scores: Dict[str, float] = field(default_factory=dict)
    auto_fail_reasons: List[str] = field(default_factory=list)
    rule_status: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def extend(self, other: 'CheckerOutput'):
        self.findings.extend(other.findings)
        self.category_scores.update(other.category_scores)
        self.auto_fail_reasons.extend(other.auto_fail_reasons)
        self.rule_status.update(other.rule_status)
        self.errors.extend(other.errors)


class BaseRule:
    """
    Base class for all grading rules.

    Subclasses set the class attributes and implement ``detect`` and
    ``validate``.
    """

    RULE_ID = "BASE"
    CATEGORY = ""
    SEVERITY = SEVERITY_ERROR
    DESCRIPTION = ""
    RATIONALE = ""
    DEPENDS_ON: tuple = ()
    AUTO_FAIL = False

    def detect(self, document: Dict[str, Any]) -> List[Target]:
        """Return the parts of the document this rule judges."""
        raise NotImplementedError("Subclasses must implement detect()")

    def validate(self, target: Target, document: Dict[str, Any]) -> ValidationResult:
        """Judge one target."""
        raise NotImplementedError("Subclasses must implement validate()")

    def check(self, document: Dict[str, Any], category: Optional[str] = None) -> List[Finding]:
        """Run detect and validate, returning a Finding per failed target."""
        findings = []
        for target in self.detect(document):
            result = self.validate(target, document)
            if not result.passed:
                findings.append(self.create_finding(
                    result.message or self.DESCRIPTION,
                    pointer_path=target.pointer,
                    category=category,
                    fix_hint=result.fix_hint,
                ))
        return findings

    def safe_check(self, document: Dict[str, Any],
                   category: Optional[str] = None) -> Tuple[Optional[List[Finding]], Optional[str]]:
        """
        Run check without letting a crash escape.

        Returns:
            (findings, None) on success, (None, error text) if the rule crashed.
            The rule instance keeps no per-call state.
        """
        try:
            return self.check(document, category), None
        except Exception as e:
            return None, f"{self.RULE_ID} error: {type(e).__name__}: {e}"

    def create_finding(self, message: str, pointer_path: str = "",
                       category: Optional[str] = None, severity: Optional[str] = None,
                       fix_hint: str = "") -> Finding:
        return Finding(
            rule_id=self.RULE_ID,
            severity=severity or self.SEVERITY,
            message=message,
            pointer_path=pointer_path,
            category=category or self.CATEGORY,
            fix_hint=fix_hint,
        )

    def describe(self) -> Dict[str, Any]:
        return {
            'rule_id': self.RULE_ID,
            'category': self.CATEGORY,
            'severity': self.SEVERITY,
            'description': self.DESCRIPTION,
            'rationale': self.RATIONALE,
            'depends_on': list(self.DEPENDS_ON),
            'auto_fail': self.AUTO_FAIL,
        }


class RuleRegistry:
    """
    Read-only lookup of rule id -> rule instance.

    Built once; duplicate ids, unknown dependencies and dependency cycles
    are rejected at construction.
    """

    def __init__(self, rules: Iterable[BaseRule]):
        table: Dict[str, BaseRule] = {}
        for rule in rules:
            if rule.RULE_ID in table:
                raise ProfileConfigurationError(f"Duplicate rule id: {rule.RULE_ID}")
            table[rule.RULE_ID] = rule
        for rule in table.values():
            for dependency in rule.DEPENDS_ON:
                if dependency not in table:
                    raise ProfileConfigurationError(
                        f"Rule {rule.RULE_ID} depends on unregistered rule {dependency}")
        self._rules: Mapping[str, BaseRule] = MappingProxyType(table)
        self.evaluation_order(table)

    @property
    def rules(self) -> Mapping[str, BaseRule]:
        return self._rules

    def get(self, rule_id: str) -> Optional[BaseRule]:
        return self._rules.get(rule_id)

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def rule_ids(self) -> List[str]:
        return list(self._rules)

    def with_dependencies(self, rule_ids: Iterable[str]) -> List[str]:
        """The given ids plus everything they transitively depend on."""
        closure: List[str] = []

        def add(rule_id: str):
            if rule_id in closure or rule_id not in self._rules:
                return
            closure.append(rule_id)
            for dependency in self._rules[rule_id].DEPENDS_ON:
                add(dependency)

        for rule_id in rule_ids:
            add(rule_id)
        return closure

    def evaluation_order(self, rule_ids: Optional[Iterable[str]] = None) -> List[str]:
        """
        Topologically sort rule ids so dependencies come first.

        Ties keep the order the ids were given in.

        Raises:
            ProfileConfigurationError: the dependencies form a cycle.
        """
        ids = list(rule_ids) if rule_ids is not None else list(self._rules)
        wanted = set(ids)
        ordered: List[str] = []
        state: Dict[str, str] = {}

        def visit(rule_id: str, trail: List[str]):
            if state.get(rule_id) == 'done':
                return
            if state.get(rule_id) == 'visiting':
                cycle = ' -> '.join(trail + [rule_id])
                raise ProfileConfigurationError(f"Rule dependency cycle: {cycle}")
            state[rule_id] = 'visiting'
            rule = self._rules.get(rule_id)
            for dependency in (rule.DEPENDS_ON if rule else ()):
                if dependency in wanted:
                    visit(dependency, trail + [rule_id])
            state[rule_id] = 'done'
            ordered.append(rule_id)

        for rule_id in ids:
            visit(rule_id, [])
        return ordered
