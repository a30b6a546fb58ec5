"""
Profile Models v1.0.0
=====================
Data classes for grading profiles and detection results.

Profile records may arrive from YAML with camelCase keys
(``priorityConfig``, ``requiresAuthentication``); ``from_dict`` accepts
both spellings.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any

from config_logging import ValidationError

SCORING_CATEGORIES = ('security', 'performance', 'documentation', 'consistency', 'best_practices')

REQUIRED = 'required'
OPTIONAL = 'optional'
DISABLED = 'disabled'
REQUIREMENT_LEVELS = (REQUIRED, OPTIONAL, DISABLED)


def category_from_prefix(rule_id: str, categories) -> Optional[str]:
    """
    Fallback category lookup: the first category whose first three letters,
    uppercased, start the rule id (SEC-001 -> security).
    """
    for category in categories:
        if rule_id.upper().startswith(category.upper()[:3]):
            return category
    return None


def _pick(data: Dict[str, Any], snake: str, camel: str, default=None):
    if snake in data:
        return data[snake]
    return data.get(camel, default)


@dataclass(frozen=True)
class Prerequisites:
    """
    Invariants a document must satisfy before it is scored.

    Attributes:
        requires_authentication: At least one security scheme is defined
        requires_multi_tenant_headers: Write operations carry X-Organization-ID
        requires_api_id: info.x-api-id is present and well formed
        requires_valid_structure: openapi 3.x, info object and paths exist
        custom: Extra registered rule ids evaluated as prerequisites
    """
    requires_authentication: bool = False
    requires_multi_tenant_headers: bool = False
    requires_api_id: bool = False
    requires_valid_structure: bool = True
    custom: tuple = ()

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Prerequisites':
        data = data or {}
        return cls(
            requires_authentication=bool(_pick(data, 'requires_authentication', 'requiresAuthentication', False)),
            requires_multi_tenant_headers=bool(_pick(
                data, 'requires_multi_tenant_headers', 'requiresMultiTenantHeaders', False)),
            requires_api_id=bool(_pick(data, 'requires_api_id', 'requiresApiId', False)),
            requires_valid_structure=bool(_pick(
                data, 'requires_valid_structure', 'requiresValidStructure', True)),
            custom=tuple(_pick(data, 'custom', 'customPrerequisites', ()) or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'requires_authentication': self.requires_authentication,
            'requires_multi_tenant_headers': self.requires_multi_tenant_headers,
            'requires_api_id': self.requires_api_id,
            'requires_valid_structure': self.requires_valid_structure,
            'custom': list(self.custom),
        }


@dataclass(frozen=True)
class ProfileRule:
    """A rule's weight and scoring category within one profile."""
    rule_id: str
    weight: int
    category: str
    requirement: str = REQUIRED

    @property
    def enabled(self) -> bool:
        return self.requirement != DISABLED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProfileRule':
        rule_id = _pick(data, 'rule_id', 'ruleId')
        if not rule_id:
            raise ValidationError("Profile rule requires a rule id", field='rule_id')
        requirement = data.get('requirement', REQUIRED)
        if requirement not in REQUIREMENT_LEVELS:
            raise ValidationError(f"Invalid requirement '{requirement}' for {rule_id}",
                                  field='requirement')
        return cls(
            rule_id=str(rule_id),
            weight=int(data.get('weight', 0)),
            category=str(data.get('category', '')),
            requirement=requirement,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rule_id': self.rule_id,
            'weight': self.weight,
            'category': self.category,
            'requirement': self.requirement,
        }


@dataclass(frozen=True)
class Profile:
    """
    A named configuration of prerequisites, rule weights and category budgets.

    Attributes:
        name: Display name
        type: Catalog key (SaaS, REST, GraphQL, Microservice, Custom, ...)
        description: What kind of API the profile targets
        prerequisites: Gate configuration
        rules: Weighted rules, in evaluation order
        priority_config: Maximum points per scoring category
    """
    name: str
    type: str
    description: str = ""
    prerequisites: Prerequisites = field(default_factory=Prerequisites)
    rules: tuple = ()
    priority_config: Dict[str, int] = field(default_factory=dict)

    def rule_for(self, rule_id: str) -> Optional[ProfileRule]:
        for rule in self.rules:
            if rule.rule_id == rule_id:
                return rule
        return None

    @property
    def enabled_rules(self) -> List[ProfileRule]:
        return [rule for rule in self.rules if rule.enabled]

    @property
    def max_points(self) -> int:
        return sum(self.priority_config.values())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Profile':
        if not isinstance(data, dict):
            raise ValidationError("Profile must be an object", field='profiles')
        name = data.get('name')
        profile_type = data.get('type')
        if not name or not profile_type:
            raise ValidationError("Profile requires 'name' and 'type'", field='type')
        priority = _pick(data, 'priority_config', 'priorityConfig', {}) or {}
        return cls(
            name=str(name),
            type=str(profile_type),
            description=str(data.get('description', '')),
            prerequisites=Prerequisites.from_dict(data.get('prerequisites')),
            rules=tuple(ProfileRule.from_dict(r) for r in data.get('rules', []) or []),
            priority_config={str(k): int(v) for k, v in priority.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.type,
            'description': self.description,
            'prerequisites': self.prerequisites.to_dict(),
            'rules': [rule.to_dict() for rule in self.rules],
            'priority_config': dict(self.priority_config),
        }


@dataclass
class DetectionResult:
    """
    Outcome of profile detection.

    Attributes:
        detected_profile: Winning signature's profile type, or 'Unknown'
        confidence: The winner's normalized score in [0, 1]
        reasoning: matched_patterns, missing_indicators, signal_strength
        alternatives: Runner-up signatures with their scores
    """
    detected_profile: str
    confidence: float
    reasoning: Dict[str, Any] = field(default_factory=dict)
    alternatives: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'detected_profile': self.detected_profile,
            'confidence': self.confidence,
            'reasoning': self.reasoning,
            'alternatives': self.alternatives,
        }
