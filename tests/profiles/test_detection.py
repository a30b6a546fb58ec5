"""
Tests for Profile Detection
===========================
"""

import yaml

from profiles.detection import (
    detect_profile, extract_features, score_signature, ProfileSignature, Signal,
    SIGNATURES, UNKNOWN_PROFILE,
)


def load(text):
    return yaml.safe_load(text)


def graphql_document():
    return {
        'openapi': '3.0.3',
        'info': {'title': 'Graph', 'description': 'Run a query or mutation against the schema'},
        'paths': {'/graphql': {'post': {'summary': 'Execute', 'responses': {'200': {}}}}},
    }


class TestExtractFeatures:
    """Tests for feature extraction."""

    def test_collects_headers_from_components(self, saas_spec):
        features = extract_features(load(saas_spec))
        assert 'X-Organization-ID' in features.header_names

    def test_collects_oauth_scopes(self, saas_spec):
        features = extract_features(load(saas_spec))
        assert 'admin:users' in features.scopes

    def test_text_includes_summaries(self, rest_spec):
        features = extract_features(load(rest_spec))
        assert 'List products' in features.text

    def test_tolerates_missing_paths(self):
        features = extract_features({'openapi': '3.0.3'})
        assert features.paths == []
        assert features.operations == []


class TestDetectProfile:
    """Tests for detect_profile."""

    def test_rest(self, rest_spec):
        result = detect_profile(load(rest_spec))
        assert result.detected_profile == 'REST'
        assert result.confidence == 1.0

    def test_saas(self, saas_spec):
        result = detect_profile(load(saas_spec))
        assert result.detected_profile == 'SaaS'
        assert result.confidence == 1.0
        assert any(p.startswith('multi_tenant_headers') for p in result.reasoning['matched_patterns'])

    def test_graphql(self):
        result = detect_profile(graphql_document())
        assert result.detected_profile == 'GraphQL'
        assert result.confidence == 1.0

    def test_below_floor_is_unknown(self, minimal_spec):
        result = detect_profile(load(minimal_spec))
        assert result.detected_profile == UNKNOWN_PROFILE
        assert result.confidence == 0.0

    def test_empty_document_is_unknown(self):
        result = detect_profile({})
        assert result.detected_profile == UNKNOWN_PROFILE
        assert result.confidence == 0.0

    def test_signal_strength_lists_every_signature(self, rest_spec):
        result = detect_profile(load(rest_spec))
        assert set(result.reasoning['signal_strength']) == {s.profile_type for s in SIGNATURES}

    def test_alternatives_exclude_winner(self, rest_spec):
        result = detect_profile(load(rest_spec))
        assert len(result.alternatives) == 2
        assert all(a['profile'] != 'REST' for a in result.alternatives)

    def test_is_deterministic(self, saas_spec):
        document = load(saas_spec)
        assert detect_profile(document).to_dict() == detect_profile(document).to_dict()

    def test_floor_is_exclusive(self):
        always = Signal('always', 3, lambda features: 'yes')
        never = Signal('never', 7, lambda features: None)
        signatures = (ProfileSignature('Half', (always, never)),)
        assert detect_profile({}, floor=0.3, signatures=signatures).detected_profile == UNKNOWN_PROFILE
        assert detect_profile({}, floor=0.29, signatures=signatures).confidence == 0.3

    def test_ties_go_to_first_declared(self):
        always = Signal('always', 10, lambda features: 'yes')
        signatures = (
            ProfileSignature('First', (always,)),
            ProfileSignature('Second', (always,)),
        )
        assert detect_profile({}, signatures=signatures).detected_profile == 'First'


class TestScoreSignature:
    """Tests for per-signature scoring."""

    def test_heavy_missing_signals_reported(self, minimal_spec):
        rest = next(s for s in SIGNATURES if s.profile_type == 'REST')
        entry = score_signature(rest, extract_features(load(minimal_spec)))
        assert entry['score'] == 0.25
        assert 'standard_verbs' in entry['missing']
        assert 'resource_paths' not in entry['missing']
