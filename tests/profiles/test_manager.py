"""
Tests for the Profile Manager
=============================
"""

import pytest

from config_logging import ProfileConfigurationError, ValidationError
from profiles import (
    ProfileManager, Profile, ProfileRule, Prerequisites, DetectionResult, BUILTIN_PROFILES,
    validate_profile, get_profile_manager,
)
from profiles.models import OPTIONAL, category_from_prefix
from spec_rules import get_rule_registry


def detection(profile_type, confidence):
    return DetectionResult(profile_type, confidence)


@pytest.fixture
def manager():
    return ProfileManager(known_rules=get_rule_registry().rule_ids())


class TestBuiltinProfiles:
    """Built-in catalog must be internally consistent."""

    @pytest.mark.parametrize('profile', BUILTIN_PROFILES, ids=lambda p: p.type)
    def test_validates_cleanly(self, profile):
        assert validate_profile(profile, get_rule_registry().rule_ids()) == []

    def test_custom_is_most_permissive(self):
        custom = next(p for p in BUILTIN_PROFILES if p.type == 'Custom')
        assert custom.prerequisites == Prerequisites()
        assert custom.rule_for('SEC-002').requirement == OPTIONAL


class TestSelectProfile:
    """Tests for select_profile."""

    def test_override_wins(self, manager):
        selection = manager.select_profile(detection('SaaS', 1.0), override='REST')
        assert selection.profile.type == 'REST'
        assert selection.reason == 'override'

    def test_unknown_override_raises(self, manager):
        with pytest.raises(ValidationError):
            manager.select_profile(detection('REST', 1.0), override='Nope')

    def test_confident_detection(self, manager):
        selection = manager.select_profile(detection('Microservice', 0.9))
        assert selection.profile.type == 'Microservice'
        assert selection.reason == 'detected'

    def test_threshold_is_inclusive(self, manager):
        assert manager.select_profile(detection('REST', 0.85)).profile.type == 'REST'

    def test_low_confidence_falls_back(self, manager):
        selection = manager.select_profile(detection('REST', 0.84))
        assert selection.profile.type == 'Custom'
        assert selection.reason == 'low_confidence'

    def test_unregistered_detection_falls_back(self, manager):
        selection = manager.select_profile(detection('gRPC', 1.0))
        assert selection.profile.type == 'Custom'
        assert selection.reason == 'unregistered'

    def test_missing_default_is_configuration_error(self):
        manager = ProfileManager(profiles=[], default_type='Custom')
        with pytest.raises(ProfileConfigurationError):
            manager.select_profile(detection('Unknown', 0.0))


class TestValidateProfile:
    """Tests for profile validation."""

    def test_reports_problems(self):
        profile = Profile(
            name='Broken', type='Broken',
            rules=(
                ProfileRule('SEC-002', 10, 'documentation'),
                ProfileRule('SEC-002', 0, 'security'),
                ProfileRule('ZZZ-001', 5, 'nowhere'),
            ),
            priority_config={'security': 10, 'documentation': -1},
        )
        problems = validate_profile(profile, ['SEC-002'])
        text = '\n'.join(problems)
        assert 'negative max points' in text
        assert 'more than once' in text
        assert "prefix suggests 'security'" in text
        assert 'non-positive weight' in text
        assert "unknown category 'nowhere'" in text
        assert 'ZZZ-001 is not registered' in text

    def test_strict_mode_raises(self):
        broken = Profile(name='Broken', type='Broken', priority_config={})
        manager = ProfileManager(strict=True)
        with pytest.raises(ProfileConfigurationError) as excinfo:
            manager.register(broken)
        assert excinfo.value.problems

    def test_lenient_mode_registers(self):
        broken = Profile(name='Broken', type='Broken', priority_config={})
        manager = ProfileManager(strict=False)
        assert manager.register(broken)
        assert manager.get_by_type('Broken') is broken

    def test_prefix_heuristic(self):
        categories = ('security', 'best_practices')
        assert category_from_prefix('SEC-009', categories) == 'security'
        assert category_from_prefix('BEST-001', categories) == 'best_practices'
        assert category_from_prefix('TRACE-001', categories) is None


class TestLoadFile:
    """Tests for YAML profile files."""

    def test_load_camel_case_profiles(self, tmp_path, manager):
        path = tmp_path / 'profiles.yaml'
        path.write_text(
            "profiles:\n"
            "  - name: Partner API\n"
            "    type: Partner\n"
            "    prerequisites:\n"
            "      requiresAuthentication: true\n"
            "    priorityConfig:\n"
            "      security: 50\n"
            "      documentation: 50\n"
            "    rules:\n"
            "      - ruleId: SEC-002\n"
            "        weight: 50\n"
            "        category: security\n"
            "      - ruleId: DOC-001\n"
            "        weight: 50\n"
            "        category: documentation\n",
            encoding='utf-8')

        assert manager.load_file(path) == 1
        partner = manager.get_by_type('Partner')
        assert partner.prerequisites.requires_authentication
        assert partner.max_points == 100
        assert [r.rule_id for r in partner.rules] == ['SEC-002', 'DOC-001']

    def test_invalid_yaml(self, tmp_path, manager):
        path = tmp_path / 'bad.yaml'
        path.write_text("profiles: [\n", encoding='utf-8')
        with pytest.raises(ValidationError):
            manager.load_file(path)

    def test_global_manager_reads_configured_file(self, tmp_path):
        from config_logging import get_config

        path = tmp_path / 'extra.yaml'
        path.write_text(
            "- name: Replacement Custom\n"
            "  type: Custom\n"
            "  priority_config: {documentation: 10}\n"
            "  rules:\n"
            "    - {rule_id: DOC-001, weight: 10, category: documentation}\n",
            encoding='utf-8')
        get_config().profiles_path = path

        assert get_profile_manager().get_default().name == 'Replacement Custom'
