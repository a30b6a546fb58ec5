"""
Profile Manager v1.0.0
======================
Catalog of grading profiles and the policy that picks one for a document.

Selection policy:
- An explicit override always wins.
- Detection below the confidence threshold falls back to the default
  (most permissive) profile.
- Otherwise the detected profile is used, or the default when that type
  is not registered.

Profiles are validated when registered. Problems are logged, or raised as
ProfileConfigurationError when strict mode is on.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Dict, Optional, Any, Iterable, Union

import yaml

from config_logging import get_logger, get_config, ProfileConfigurationError, ValidationError
from .models import (
    Profile, Prerequisites, ProfileRule, DetectionResult, category_from_prefix, OPTIONAL,
)

_logger = get_logger('profile_manager')

SELECTED_BY_OVERRIDE = 'override'
SELECTED_BY_DETECTION = 'detected'
SELECTED_LOW_CONFIDENCE = 'low_confidence'
SELECTED_UNREGISTERED = 'unregistered'


def _rules(*entries) -> tuple:
    return tuple(ProfileRule(rule_id, weight, category, *rest) for rule_id, weight, category, *rest in entries)


BUILTIN_PROFILES = (
    Profile(
        name='Enterprise SaaS API',
        type='SaaS',
        description='Multi-tenant SaaS APIs with tenant isolation, RBAC and billing surfaces',
        prerequisites=Prerequisites(
            requires_authentication=True,
            requires_multi_tenant_headers=True,
            requires_api_id=True,
        ),
        rules=_rules(
            ('SEC-001', 25, 'security'),
            ('SEC-002', 20, 'security'),
            ('SEC-003', 10, 'security'),
            ('PERF-001', 10, 'performance'),
            ('PERF-002', 10, 'performance'),
            ('DOC-001', 10, 'documentation'),
            ('CONS-001', 10, 'consistency'),
            ('CONS-002', 10, 'consistency'),
            ('BEST-001', 10, 'best_practices'),
            ('BEST-002', 5, 'best_practices'),
        ),
        priority_config={'security': 35, 'performance': 20, 'documentation': 10,
                         'consistency': 20, 'best_practices': 15},
    ),
    Profile(
        name='RESTful API',
        type='REST',
        description='Resource-oriented HTTP APIs without tenant isolation requirements',
        prerequisites=Prerequisites(requires_authentication=True, requires_api_id=True),
        rules=_rules(
            ('SEC-002', 20, 'security'),
            ('SEC-003', 10, 'security'),
            ('PERF-001', 15, 'performance'),
            ('PERF-002', 5, 'performance'),
            ('DOC-001', 15, 'documentation'),
            ('DOC-002', 5, 'documentation'),
            ('CONS-001', 10, 'consistency'),
            ('CONS-002', 10, 'consistency'),
            ('BEST-001', 10, 'best_practices'),
            ('BEST-002', 5, 'best_practices'),
        ),
        priority_config={'security': 25, 'performance': 20, 'documentation': 20,
                         'consistency': 20, 'best_practices': 15},
    ),
    Profile(
        name='GraphQL API',
        type='GraphQL',
        description='Single-endpoint GraphQL APIs described through OpenAPI',
        prerequisites=Prerequisites(requires_authentication=True),
        rules=_rules(
            ('SEC-002', 20, 'security'),
            ('SEC-003', 10, 'security'),
            ('PERF-002', 10, 'performance'),
            ('DOC-001', 10, 'documentation'),
            ('DOC-002', 10, 'documentation'),
            ('CONS-002', 10, 'consistency'),
            ('BEST-001', 10, 'best_practices'),
        ),
        priority_config={'security': 30, 'performance': 30, 'documentation': 10,
                         'consistency': 15, 'best_practices': 15},
    ),
    Profile(
        name='Microservice API',
        type='Microservice',
        description='Internal service-to-service APIs with tracing and health probes',
        prerequisites=Prerequisites(requires_authentication=True),
        rules=_rules(
            ('SEC-002', 15, 'security'),
            ('PERF-001', 10, 'performance'),
            ('PERF-002', 15, 'performance'),
            ('DOC-001', 10, 'documentation'),
            ('CONS-001', 10, 'consistency'),
            ('TRACE-001', 15, 'consistency'),
            ('MICRO-001', 20, 'best_practices'),
            ('BEST-001', 10, 'best_practices'),
        ),
        priority_config={'security': 20, 'performance': 25, 'documentation': 10,
                         'consistency': 15, 'best_practices': 30},
    ),
    Profile(
        name='Internal Tool API',
        type='Custom',
        description='Relaxed rules for internal tools; used when detection is not confident',
        prerequisites=Prerequisites(),
        rules=_rules(
            ('SEC-002', 10, 'security', OPTIONAL),
            ('PERF-001', 10, 'performance'),
            ('DOC-001', 20, 'documentation'),
            ('DOC-002', 10, 'documentation'),
            ('CONS-001', 10, 'consistency'),
            ('CONS-002', 10, 'consistency'),
            ('BEST-001', 10, 'best_practices'),
        ),
        priority_config={'security': 10, 'performance': 20, 'documentation': 30,
                         'consistency': 20, 'best_practices': 20},
    ),
)


def validate_profile(profile: Profile, known_rules: Optional[Iterable[str]] = None) -> List[str]:
    """
    Check a profile for configuration mistakes.

    Returns:
        Human-readable problems; empty when the profile is consistent.
    """
    problems = []
    known = set(known_rules) if known_rules is not None else None

    if not profile.priority_config:
        problems.append("priority_config defines no categories")
    for category, points in profile.priority_config.items():
        if points < 0:
            problems.append(f"category '{category}' has negative max points ({points})")

    seen = set()
    for rule in profile.rules:
        if rule.rule_id in seen:
            problems.append(f"rule {rule.rule_id} is listed more than once")
        seen.add(rule.rule_id)

        if rule.category not in profile.priority_config:
            problems.append(f"rule {rule.rule_id} uses unknown category '{rule.category}'")
        inferred = category_from_prefix(rule.rule_id, profile.priority_config)
        if inferred and rule.category and inferred != rule.category:
            problems.append(
                f"rule {rule.rule_id} is declared '{rule.category}' but its prefix suggests '{inferred}'"
            )
        if rule.enabled and rule.weight <= 0:
            problems.append(f"rule {rule.rule_id} has non-positive weight ({rule.weight})")
        if known is not None and rule.rule_id not in known:
            problems.append(f"rule {rule.rule_id} is not registered")

    if known is not None:
        for rule_id in profile.prerequisites.custom:
            if rule_id not in known:
                problems.append(f"custom prerequisite {rule_id} is not registered")

    return problems


@dataclass
class ProfileSelection:
    """Which profile grades a document, and why."""
    profile: Profile
    reason: str
    detection: Optional[DetectionResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'profile': self.profile.name,
            'profile_type': self.profile.type,
            'reason': self.reason,
        }


class ProfileManager:
    """Registry of profiles keyed by type."""

    def __init__(self, profiles: Optional[Iterable[Profile]] = None,
                 default_type: Optional[str] = None,
                 known_rules: Optional[Iterable[str]] = None,
                 strict: Optional[bool] = None):
        config = get_config()
        self.default_type = default_type or config.default_profile
        self.strict = config.strict_profiles if strict is None else strict
        self.known_rules = set(known_rules) if known_rules is not None else None
        self._profiles: Dict[str, Profile] = {}
        for profile in (BUILTIN_PROFILES if profiles is None else profiles):
            self.register(profile)

    def register(self, profile: Profile) -> List[str]:
        """Add or replace a profile. Returns the validation problems found."""
        problems = validate_profile(profile, self.known_rules)
        if problems:
            if self.strict:
                raise ProfileConfigurationError(
                    f"Profile '{profile.type}' is misconfigured", profile=profile.type,
                    problems=problems)
            for problem in problems:
                _logger.warning("profile configuration problem", profile=profile.type, problem=problem)
        if profile.type in self._profiles:
            _logger.info("profile replaced", profile=profile.type)
        self._profiles[profile.type] = profile
        return problems

    def load_file(self, filepath: Union[str, Path]) -> int:
        """
        Register profiles from a YAML file.

        The file holds a list of profile records or a mapping with a
        ``profiles`` list.
        """
        path = Path(filepath)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                payload = yaml.safe_load(f) or []
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid profile file {path}: {e}", field='profiles_path') from e

        records = payload.get('profiles', []) if isinstance(payload, dict) else payload
        if not isinstance(records, list):
            raise ValidationError(f"Profile file {path} must contain a list of profiles",
                                  field='profiles_path')
        for record in records:
            self.register(Profile.from_dict(record))
        _logger.info("profiles loaded", source=str(path), count=len(records))
        return len(records)

    def get_by_type(self, profile_type: str) -> Optional[Profile]:
        return self._profiles.get(profile_type)

    def get_default(self) -> Profile:
        profile = self._profiles.get(self.default_type)
        if profile is None:
            raise ProfileConfigurationError(
                f"Default profile '{self.default_type}' is not registered",
                profile=self.default_type)
        return profile

    def list_profiles(self) -> List[Profile]:
        return list(self._profiles.values())

    def select_profile(self, detection: Optional[DetectionResult],
                       override: Optional[str] = None,
                       threshold: Optional[float] = None) -> ProfileSelection:
        """
        Pick the grading profile.

        Raises:
            ValidationError: ``override`` names an unregistered profile type.
        """
        if override:
            profile = self.get_by_type(override)
            if profile is None:
                raise ValidationError(f"Unknown profile type: {override}", field='profile',
                                      available=sorted(self._profiles))
            return ProfileSelection(profile, SELECTED_BY_OVERRIDE, detection)

        if threshold is None:
            threshold = get_config().confidence_threshold

        if detection is None or detection.confidence < threshold:
            return ProfileSelection(self.get_default(), SELECTED_LOW_CONFIDENCE, detection)

        profile = self.get_by_type(detection.detected_profile)
        if profile is None:
            _logger.info("detected profile not registered, using default",
                         detected=detection.detected_profile)
            return ProfileSelection(self.get_default(), SELECTED_UNREGISTERED, detection)
        return ProfileSelection(profile, SELECTED_BY_DETECTION, detection)


# Global instance
_profile_manager: Optional[ProfileManager] = None


def get_profile_manager() -> ProfileManager:
    """Get or create the process-wide profile manager."""
    global _profile_manager
    if _profile_manager is None:
        from spec_rules import get_rule_registry
        manager = ProfileManager(known_rules=get_rule_registry().rule_ids())
        profiles_path = get_config().profiles_path
        if profiles_path:
            manager.load_file(profiles_path)
        _profile_manager = manager
    return _profile_manager


def reset_profile_manager():
    """Drop the global manager (for testing)."""
    global _profile_manager
    _profile_manager = None
