"""
Profile Detection Engine v1.0.0
===============================
Classifies an API description into a profile type from weighted signals:
path shapes, header parameter names, security scopes, HTTP verbs and
terms used in descriptions.

Each signature's score is the weight of its matched signals divided by
its total weight. The best score above the detection floor wins and
becomes the confidence; ties go to the signature declared first.
Detection is a pure function of the document.
"""

import re
from dataclasses import dataclass
from typing import List, Dict, Any, Callable, Optional, Tuple

from config_logging import get_config
from .models import DetectionResult

UNKNOWN_PROFILE = 'Unknown'
HTTP_METHODS = ('get', 'put', 'post', 'delete', 'options', 'head', 'patch', 'trace')
STANDARD_VERBS = ('get', 'post', 'put', 'patch', 'delete')
HEAVY_SIGNAL_WEIGHT = 20

MULTI_TENANT_HEADERS = ('x-organization-id', 'x-tenant-id', 'x-company-id')
TRACING_HEADER = re.compile(r'^(x-b3-|x-request-id$|x-correlation-id$)', re.IGNORECASE)


# =============================================================================
# DOCUMENT FEATURES
# =============================================================================

@dataclass
class SpecFeatures:
    """Everything the signals look at, extracted once per document."""
    paths: List[str]
    operations: List[Tuple[str, str]]
    header_names: List[str]
    scopes: List[str]
    text: str


def _operations(document: Dict[str, Any]):
    paths = document.get('paths')
    if not isinstance(paths, dict):
        return
    for path, item in paths.items():
        if not isinstance(item, dict):
            continue
        for method, operation in item.items():
            if method in HTTP_METHODS and isinstance(operation, dict):
                yield path, method, operation


def _header_params(params) -> List[str]:
    names = []
    for param in params or []:
        if isinstance(param, dict) and param.get('in') == 'header' and param.get('name'):
            names.append(str(param['name']))
    return names


def extract_features(document: Dict[str, Any]) -> SpecFeatures:
    paths_obj = document.get('paths') if isinstance(document.get('paths'), dict) else {}
    components = document.get('components') if isinstance(document.get('components'), dict) else {}

    header_names = []
    texts = []
    info = document.get('info')
    if isinstance(info, dict):
        texts.append(str(info.get('description', '')))
        texts.append(str(info.get('title', '')))

    for item in paths_obj.values():
        if isinstance(item, dict):
            header_names.extend(_header_params(item.get('parameters')))

    operations = []
    for path, method, operation in _operations(document):
        operations.append((path, method))
        header_names.extend(_header_params(operation.get('parameters')))
        texts.append(str(operation.get('summary', '')))
        texts.append(str(operation.get('description', '')))

    shared_params = components.get('parameters')
    if isinstance(shared_params, dict):
        header_names.extend(_header_params(shared_params.values()))

    scopes = []
    schemes = components.get('securitySchemes')
    if isinstance(schemes, dict):
        for scheme in schemes.values():
            flows = scheme.get('flows') if isinstance(scheme, dict) else None
            if isinstance(flows, dict):
                for flow in flows.values():
                    if isinstance(flow, dict) and isinstance(flow.get('scopes'), dict):
                        scopes.extend(str(s) for s in flow['scopes'])
    for _, _, operation in _operations(document):
        for requirement in operation.get('security') or []:
            if isinstance(requirement, dict):
                for values in requirement.values():
                    scopes.extend(str(s) for s in values or [])

    return SpecFeatures(
        paths=[str(p) for p in paths_obj],
        operations=operations,
        header_names=header_names,
        scopes=scopes,
        text=' '.join(t for t in texts if t),
    )


# =============================================================================
# SIGNALS
# =============================================================================

@dataclass(frozen=True)
class Signal:
    name: str
    weight: int
    matcher: Callable[[SpecFeatures], Optional[str]]


@dataclass(frozen=True)
class ProfileSignature:
    profile_type: str
    signals: tuple

    @property
    def total_weight(self) -> int:
        return sum(signal.weight for signal in self.signals)


def _path_match(pattern: str) -> Callable[[SpecFeatures], Optional[str]]:
    regex = re.compile(pattern, re.IGNORECASE)

    def matcher(features: SpecFeatures) -> Optional[str]:
        for path in features.paths:
            if regex.search(path):
                return path
        return None
    return matcher


def _text_match(pattern: str) -> Callable[[SpecFeatures], Optional[str]]:
    regex = re.compile(pattern, re.IGNORECASE)

    def matcher(features: SpecFeatures) -> Optional[str]:
        found = regex.search(features.text)
        return found.group(0) if found else None
    return matcher


def _multi_tenant_header(features: SpecFeatures) -> Optional[str]:
    for name in features.header_names:
        if name.lower() in MULTI_TENANT_HEADERS:
            return name
    return None


def _no_multi_tenant_header(features: SpecFeatures) -> Optional[str]:
    return None if _multi_tenant_header(features) else 'no tenant headers'


def _rbac_scope(features: SpecFeatures) -> Optional[str]:
    for scope in features.scopes:
        if re.match(r'^(admin|write|delete):', scope):
            return scope
    return None


def _standard_verbs(features: SpecFeatures) -> Optional[str]:
    used = sorted({method for _, method in features.operations if method in STANDARD_VERBS})
    return ','.join(used) if len(used) >= 3 else None


def _single_post_endpoint(features: SpecFeatures) -> Optional[str]:
    if len(features.paths) == 1 and [m for _, m in features.operations] == ['post']:
        return f"POST {features.paths[0]}"
    return None


def _tracing_header(features: SpecFeatures) -> Optional[str]:
    for name in features.header_names:
        if TRACING_HEADER.match(name):
            return name
    return None


SIGNATURES = (
    ProfileSignature('SaaS', (
        Signal('multi_tenant_headers', 30, _multi_tenant_header),
        Signal('admin_paths', 20, _path_match(r'/admin(/|$)')),
        Signal('rbac_scopes', 20, _rbac_scope),
        Signal('billing_paths', 15, _path_match(r'billing|subscription|invoice|payment')),
        Signal('audit_paths', 15, _path_match(r'audit|history|changelog')),
    )),
    ProfileSignature('REST', (
        Signal('versioned_api_paths', 25, _path_match(r'^/api/v?\d*/')),
        Signal('standard_verbs', 30, _standard_verbs),
        Signal('no_multi_tenant_headers', 25, _no_multi_tenant_header),
        Signal('resource_paths', 20, _path_match(r'/\w+/\{\w+\}')),
    )),
    ProfileSignature('GraphQL', (
        Signal('graphql_endpoint', 40, _path_match(r'/(graphql|gql)\b')),
        Signal('single_post_endpoint', 30, _single_post_endpoint),
        Signal('graphql_terms', 20, _text_match(r'\b(query|mutation|subscription|resolver)\b')),
        Signal('schema_terms', 10, _text_match(r'\b(schema|type|field|argument)\b')),
    )),
    ProfileSignature('Microservice', (
        Signal('tracing_headers', 25, _tracing_header),
        Signal('health_paths', 25, _path_match(r'health|ready|alive|metrics')),
        Signal('service_prefixed_paths', 20, _path_match(r'^/[a-z-]+/')),
        Signal('resilience_terms', 15, _text_match(r'retry|circuit breaker|fallback|timeout')),
        Signal('event_paths', 15, _path_match(r'events|messages|publish|subscribe')),
    )),
    ProfileSignature('gRPC', (
        Signal('method_suffix_paths', 35, _path_match(r':\w+$')),
        Signal('crud_method_suffix', 30, _path_match(r':(get|list|create|update|delete|custom)')),
        Signal('proto_terms', 20, _text_match(r'proto|protobuf|grpc')),
        Signal('streaming_terms', 15, _text_match(r'stream|server-sent|bidirectional')),
    )),
)


# =============================================================================
# DETECTION
# =============================================================================

def score_signature(signature: ProfileSignature, features: SpecFeatures) -> Dict[str, Any]:
    matched = []
    missing = []
    matched_weight = 0
    for signal in signature.signals:
        evidence = signal.matcher(features)
        if evidence:
            matched_weight += signal.weight
            matched.append(f"{signal.name}: {evidence}")
        elif signal.weight > HEAVY_SIGNAL_WEIGHT:
            missing.append(signal.name)
    total = signature.total_weight
    return {
        'profile': signature.profile_type,
        'score': round(matched_weight / total, 4) if total else 0.0,
        'matched': matched,
        'missing': missing,
    }


def detect_profile(document: Dict[str, Any], floor: Optional[float] = None,
                   signatures: tuple = SIGNATURES) -> DetectionResult:
    """
    Classify ``document`` into a profile type.

    Args:
        document: Parsed API description
        floor: Minimum score a signature needs to win (config default)
        signatures: Ordered signature table

    Returns:
        DetectionResult. When nothing clears the floor the detected profile
        is 'Unknown' with confidence 0.0.
    """
    if floor is None:
        floor = get_config().detection_floor

    features = extract_features(document)
    scored = [score_signature(signature, features) for signature in signatures]

    best = None
    for entry in scored:
        if best is None or entry['score'] > best['score']:
            best = entry

    ranked = sorted(scored, key=lambda e: -e['score'])
    alternatives = [
        {'profile': e['profile'], 'score': e['score']}
        for e in ranked if best is None or e['profile'] != best['profile']
    ][:2]

    reasoning = {
        'matched_patterns': best['matched'] if best else [],
        'missing_indicators': best['missing'] if best else [],
        'signal_strength': {e['profile']: e['score'] for e in scored},
    }

    if best is None or best['score'] <= floor:
        return DetectionResult(UNKNOWN_PROFILE, 0.0, reasoning, alternatives)
    return DetectionResult(best['profile'], best['score'], reasoning, alternatives)
