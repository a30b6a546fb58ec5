#!/usr/bin/env python3
"""
API Spec Rules v1.0.0
=====================
Built-in grading rules for OpenAPI 3.x documents and the registry-backed
rule checker used by the scoring engine.

Rule families:
- PREREQ-*  foundational invariants evaluated by the prerequisite gate
- SEC-*     tenant isolation, operation security, request validation
- PERF-*    pagination and caching
- DOC-*     operation summaries and schema examples
- CONS-*    path naming and error response format
- BEST-*    status codes and versioning
- MICRO-*, TRACE-*  service health probes and request tracing
"""

import re
from dataclasses import replace
from typing import List, Dict, Any, Optional, Iterator, Tuple

from config_logging import get_logger
from base_checker import (
    BaseRule, Target, ValidationResult, CheckerOutput, RuleRegistry,
    SEVERITY_ERROR, SEVERITY_WARN, SEVERITY_INFO,
)
from api_id import is_valid_api_id, API_ID_PATTERN
from patching.pointer import build_pointer, resolve, NOT_FOUND
from profiles.models import Profile, OPTIONAL

__version__ = "1.0.0"

_logger = get_logger('spec_rules')

HTTP_METHODS = ('get', 'put', 'post', 'delete', 'options', 'head', 'patch', 'trace')
WRITE_METHODS = ('post', 'put', 'patch', 'delete')
ORG_HEADER = 'X-Organization-ID'
TRACE_HEADERS = ('x-request-id', 'x-correlation-id', 'traceparent')
PROBE_PATH = re.compile(r'(health|healthz|ready|readyz|live|livez|alive|metrics)$', re.IGNORECASE)
OPENAPI_3 = re.compile(r'^3\.\d+(\.\d+)?$')
KEBAB_SEGMENT = re.compile(r'^[a-z0-9]+(-[a-z0-9]+)*(:[a-zA-Z]+)?$')
PARAM_SEGMENT = re.compile(r'^\{[^{}]+\}(:[a-zA-Z]+)?$')


# =============================================================================
# DOCUMENT HELPERS
# =============================================================================

def iter_operations(document: Dict[str, Any]) -> Iterator[Tuple[str, str, Dict[str, Any], str]]:
    """Yield (path, method, operation, pointer) for every operation."""
    paths = document.get('paths')
    if not isinstance(paths, dict):
        return
    for path, item in paths.items():
        if not isinstance(item, dict):
            continue
        for method, operation in item.items():
            if method in HTTP_METHODS and isinstance(operation, dict):
                yield path, method, operation, build_pointer(['paths', path, method])


def resolve_ref(node: Any, document: Dict[str, Any]) -> Any:
    """Follow a local ``$ref`` (one hop at a time, up to 10)."""
    for _ in range(10):
        if not isinstance(node, dict) or not isinstance(node.get('$ref'), str):
            return node
        ref = node['$ref']
        if not ref.startswith('#'):
            return node
        target = resolve(document, ref[1:])
        if target is NOT_FOUND:
            return node
        node = target
    return node


def operation_parameters(document: Dict[str, Any], path: str,
                         operation: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Path-level plus operation-level parameters, unresolved."""
    params = []
    path_item = document.get('paths', {}).get(path, {})
    for source in (path_item.get('parameters'), operation.get('parameters')):
        if isinstance(source, list):
            params.extend(p for p in source if isinstance(p, dict))
    return params


def has_header(document: Dict[str, Any], path: str, operation: Dict[str, Any],
               names: Tuple[str, ...]) -> bool:
    wanted = {n.lower() for n in names}
    for param in operation_parameters(document, path, operation):
        ref = param.get('$ref')
        if isinstance(ref, str) and any(ref.lower().endswith('/' + n) for n in wanted):
            return True
        resolved = resolve_ref(param, document)
        if (isinstance(resolved, dict) and resolved.get('in') == 'header'
                and str(resolved.get('name', '')).lower() in wanted):
            return True
    return False


def parameter_names(document: Dict[str, Any], path: str, operation: Dict[str, Any]) -> List[str]:
    names = []
    for param in operation_parameters(document, path, operation):
        resolved = resolve_ref(param, document)
        if isinstance(resolved, dict) and resolved.get('name'):
            names.append(str(resolved['name']))
    return names


def is_collection_path(path: str) -> bool:
    last = path.rstrip('/').rsplit('/', 1)[-1]
    return bool(last) and not last.startswith('{') and not PROBE_PATH.search(last)


def _operation_targets(document, methods=HTTP_METHODS) -> List[Target]:
    return [
        Target(pointer, 'operation', operation, {'path': path, 'method': method})
        for path, method, operation, pointer in iter_operations(document)
        if method in methods
    ]


def _label(target: Target) -> str:
    return f"{target.context['method'].upper()} {target.context['path']}"


# =============================================================================
# PREREQUISITE RULES
# =============================================================================

class OpenApiStructureRule(BaseRule):
    RULE_ID = 'PREREQ-001'
    CATEGORY = 'prerequisites'
    DESCRIPTION = 'Document is an OpenAPI 3.x description with info and paths'
    RATIONALE = 'Every other rule assumes the OpenAPI 3 object model.'

    def detect(self, document):
        return [Target('', 'document', document)]

    def validate(self, target, document):
        problems = []
        version = document.get('openapi')
        if version is None:
            problems.append("missing 'openapi' version field")
        elif not OPENAPI_3.match(str(version)):
            problems.append(f"unsupported OpenAPI version '{version}' (expected 3.x)")
        if not isinstance(document.get('info'), dict):
            problems.append("missing 'info' object")
        paths = document.get('paths')
        if not isinstance(paths, dict) or not paths:
            problems.append('document defines no paths')
        if problems:
            return ValidationResult(False, 'Invalid structure: ' + '; '.join(problems),
                                    fix_hint="Declare 'openapi: 3.0.3', an info object and at least one path")
        return ValidationResult(True)


class AuthenticationDefinedRule(BaseRule):
    RULE_ID = 'PREREQ-002'
    CATEGORY = 'prerequisites'
    DESCRIPTION = 'At least one security scheme is defined'

    def detect(self, document):
        return [Target('/components/securitySchemes', 'component')]

    def validate(self, target, document):
        schemes = resolve(document, target.pointer)
        if isinstance(schemes, dict) and schemes:
            return ValidationResult(True)
        return ValidationResult(False, 'No security schemes defined in components.securitySchemes',
                                fix_hint='Add an OAuth2 or bearer security scheme')


class MultiTenantWriteHeaderRule(BaseRule):
    RULE_ID = 'PREREQ-003'
    CATEGORY = 'prerequisites'
    DESCRIPTION = f'Write operations require the {ORG_HEADER} header'
    RATIONALE = 'Tenant isolation must hold for every mutation.'

    def detect(self, document):
        return _operation_targets(document, WRITE_METHODS)

    def validate(self, target, document):
        if has_header(document, target.context['path'], target.value, (ORG_HEADER,)):
            return ValidationResult(True)
        return ValidationResult(False, f"{_label(target)} is missing the {ORG_HEADER} header",
                                fix_hint='Reference #/components/parameters/OrganizationHeader')


class ApiIdentifierRule(BaseRule):
    RULE_ID = 'PREREQ-API-ID'
    CATEGORY = 'prerequisites'
    DESCRIPTION = 'info.x-api-id is present and well formed'

    def detect(self, document):
        return [Target('/info/x-api-id', 'field')]

    def validate(self, target, document):
        value = resolve(document, target.pointer)
        if value is NOT_FOUND or value in (None, ''):
            return ValidationResult(False, 'info.x-api-id is missing',
                                    fix_hint='Generate one with `api-grader generate-id`')
        if not is_valid_api_id(value):
            return ValidationResult(
                False, f"info.x-api-id '{value}' does not match {API_ID_PATTERN.pattern}",
                fix_hint='Use {prefix}_{13-digit ms timestamp}_{16 hex chars}')
        return ValidationResult(True)


# =============================================================================
# SCORING RULES
# =============================================================================

class MultiTenantReadHeaderRule(BaseRule):
    RULE_ID = 'SEC-001'
    CATEGORY = 'security'
    DESCRIPTION = f'Read operations require the {ORG_HEADER} header'
    DEPENDS_ON = ('PREREQ-003',)
    AUTO_FAIL = True

    def detect(self, document):
        return _operation_targets(document, ('get', 'head'))

    def validate(self, target, document):
        if has_header(document, target.context['path'], target.value, (ORG_HEADER,)):
            return ValidationResult(True)
        return ValidationResult(False, f"{_label(target)} reads tenant data without {ORG_HEADER}",
                                fix_hint='Reference #/components/parameters/OrganizationHeader')


class OperationSecurityRule(BaseRule):
    RULE_ID = 'SEC-002'
    CATEGORY = 'security'
    DESCRIPTION = 'Every operation is covered by a security requirement'
    DEPENDS_ON = ('PREREQ-002',)

    def detect(self, document):
        return _operation_targets(document)

    def validate(self, target, document):
        security = target.value.get('security', document.get('security'))
        if isinstance(security, list) and any(security):
            return ValidationResult(True)
        return ValidationResult(False, f"{_label(target)} has no security requirement",
                                fix_hint='Add a top-level or operation-level security requirement')


class RequestBodySchemaRule(BaseRule):
    RULE_ID = 'SEC-003'
    CATEGORY = 'security'
    DESCRIPTION = 'Request bodies declare a schema for every media type'

    def detect(self, document):
        return [t for t in _operation_targets(document) if 'requestBody' in t.value]

    def validate(self, target, document):
        body = resolve_ref(target.value.get('requestBody'), document)
        content = body.get('content') if isinstance(body, dict) else None
        if not isinstance(content, dict) or not content:
            return ValidationResult(False, f"{_label(target)} request body declares no content")
        missing = [media for media, spec in content.items()
                   if not isinstance(spec, dict) or 'schema' not in spec]
        if missing:
            return ValidationResult(False, f"{_label(target)} request body has no schema for "
                                    + ', '.join(missing))
        return ValidationResult(True)


class PaginationRule(BaseRule):
    RULE_ID = 'PERF-001'
    CATEGORY = 'performance'
    DESCRIPTION = 'Collection endpoints use cursor pagination'
    RATIONALE = 'Offset pagination degrades on large tables and skips rows under concurrent writes.'

    OFFSET_PARAMS = ('offset', 'page', 'skip')
    CURSOR_PARAMS = ('cursor', 'after', 'before', 'limit', 'page_size', 'pagesize', 'page_token')

    def detect(self, document):
        return [t for t in _operation_targets(document, ('get',))
                if is_collection_path(t.context['path'])]

    def validate(self, target, document):
        names = [n.lower() for n in parameter_names(document, target.context['path'], target.value)]
        offset = [n for n in names if n in self.OFFSET_PARAMS]
        if offset:
            return ValidationResult(False, f"{_label(target)} uses offset pagination ({', '.join(offset)})",
                                    fix_hint="Replace offset/page with 'cursor' and 'limit'")
        if not any(n in self.CURSOR_PARAMS for n in names):
            return ValidationResult(False, f"{_label(target)} has no pagination parameters",
                                    fix_hint="Add 'cursor' and 'limit' query parameters")
        return ValidationResult(True)


class CachingHeadersRule(BaseRule):
    RULE_ID = 'PERF-002'
    CATEGORY = 'performance'
    SEVERITY = SEVERITY_WARN
    DESCRIPTION = 'Successful GET responses declare caching headers'

    CACHE_HEADERS = ('etag', 'cache-control', 'last-modified')

    def detect(self, document):
        return _operation_targets(document, ('get',))

    def validate(self, target, document):
        responses = target.value.get('responses') or {}
        response = resolve_ref(responses.get('200'), document)
        if not isinstance(response, dict):
            return ValidationResult(True)
        headers = response.get('headers') or {}
        if any(str(h).lower() in self.CACHE_HEADERS for h in headers):
            return ValidationResult(True)
        return ValidationResult(False, f"{_label(target)} 200 response has no ETag or Cache-Control header")


class OperationSummaryRule(BaseRule):
    RULE_ID = 'DOC-001'
    CATEGORY = 'documentation'
    DESCRIPTION = 'Operations have a summary or description'

    def detect(self, document):
        return _operation_targets(document)

    def validate(self, target, document):
        if str(target.value.get('summary', '')).strip() or str(target.value.get('description', '')).strip():
            return ValidationResult(True)
        return ValidationResult(False, f"{_label(target)} has no summary or description",
                                fix_hint='Add a one-line summary')


class SchemaExamplesRule(BaseRule):
    RULE_ID = 'DOC-002'
    CATEGORY = 'documentation'
    SEVERITY = SEVERITY_WARN
    DESCRIPTION = 'Component schemas carry examples'

    def detect(self, document):
        schemas = resolve(document, '/components/schemas')
        if not isinstance(schemas, dict):
            return []
        return [Target(build_pointer(['components', 'schemas', name]), 'schema', schema, {'name': name})
                for name, schema in schemas.items() if isinstance(schema, dict)]

    def validate(self, target, document):
        if 'example' in target.value or 'examples' in target.value:
            return ValidationResult(True)
        return ValidationResult(False, f"Schema {target.context['name']} has no example")


class PathNamingRule(BaseRule):
    RULE_ID = 'CONS-001'
    CATEGORY = 'consistency'
    DESCRIPTION = 'Path segments are lowercase kebab-case without trailing slashes'

    def detect(self, document):
        paths = document.get('paths')
        if not isinstance(paths, dict):
            return []
        return [Target(build_pointer(['paths', path]), 'path', path, {'path': path}) for path in paths]

    def validate(self, target, document):
        path = str(target.value)
        if path != '/' and path.endswith('/'):
            return ValidationResult(False, f"Path {path} has a trailing slash",
                                    fix_hint=f"Rename to {path.rstrip('/')}")
        bad = [s for s in path.strip('/').split('/')
               if s and not KEBAB_SEGMENT.match(s) and not PARAM_SEGMENT.match(s)]
        if bad:
            return ValidationResult(False, f"Path {path} has non kebab-case segments: {', '.join(bad)}",
                                    fix_hint=f"Rename to {suggest_path_name(path)}")
        return ValidationResult(True)


def suggest_path_name(path: str) -> str:
    """Kebab-case every static segment and drop a trailing slash."""
    segments = []
    for segment in path.strip('/').split('/'):
        if PARAM_SEGMENT.match(segment) or not segment:
            segments.append(segment)
            continue
        segment = re.sub(r'([a-z0-9])([A-Z])', r'\1-\2', segment)
        segment = re.sub(r'[^A-Za-z0-9:]+', '-', segment).strip('-').lower()
        segments.append(segment)
    return '/' + '/'.join(s for s in segments if s)


class ErrorResponseRule(BaseRule):
    RULE_ID = 'CONS-002'
    CATEGORY = 'consistency'
    SEVERITY = SEVERITY_WARN
    DESCRIPTION = 'Error responses use application/problem+json'

    def detect(self, document):
        targets = []
        for path, method, operation, pointer in iter_operations(document):
            responses = operation.get('responses')
            if not isinstance(responses, dict):
                continue
            for code, response in responses.items():
                code = str(code)
                if code[:1] in ('4', '5') or code == 'default':
                    targets.append(Target(build_pointer(['paths', path, method, 'responses', code]),
                                          'response', response,
                                          {'path': path, 'method': method, 'code': code}))
        return targets

    def validate(self, target, document):
        response = resolve_ref(target.value, document)
        content = response.get('content') if isinstance(response, dict) else None
        if not content or 'application/problem+json' in content:
            return ValidationResult(True)
        return ValidationResult(
            False, f"{_label(target)} {target.context['code']} response is not application/problem+json")


class StatusCodesRule(BaseRule):
    RULE_ID = 'BEST-001'
    CATEGORY = 'best_practices'
    DESCRIPTION = 'Operations declare the success status codes their method implies'

    EXPECTED = {
        'post': ('200', '201', '202'),
        'delete': ('200', '202', '204'),
    }

    def detect(self, document):
        return _operation_targets(document)

    def validate(self, target, document):
        responses = target.value.get('responses')
        if not isinstance(responses, dict) or not responses:
            return ValidationResult(False, f"{_label(target)} declares no responses")
        codes = {str(c) for c in responses}
        if not any(c.startswith('2') for c in codes) and '2XX' not in codes:
            return ValidationResult(False, f"{_label(target)} declares no 2xx response")
        expected = self.EXPECTED.get(target.context['method'])
        if expected and not codes.intersection(expected):
            return ValidationResult(False, f"{_label(target)} should return one of {', '.join(expected)}")
        return ValidationResult(True)


class VersioningRule(BaseRule):
    RULE_ID = 'BEST-002'
    CATEGORY = 'best_practices'
    SEVERITY = SEVERITY_WARN
    DESCRIPTION = 'The API is versioned in its paths or server URLs'

    VERSION = re.compile(r'/v\d+(/|$)')

    def detect(self, document):
        return [Target('/paths', 'document')]

    def validate(self, target, document):
        paths = document.get('paths') or {}
        if paths and all(self.VERSION.search(str(p)) for p in paths):
            return ValidationResult(True)
        for server in document.get('servers') or []:
            if isinstance(server, dict) and self.VERSION.search(str(server.get('url', ''))):
                return ValidationResult(True)
        return ValidationResult(False, 'No version segment in paths or server URLs',
                                fix_hint="Prefix paths with /v1 or add it to the server URL")


class HealthEndpointRule(BaseRule):
    RULE_ID = 'MICRO-001'
    CATEGORY = 'best_practices'
    DESCRIPTION = 'The service exposes a health or readiness probe'

    def detect(self, document):
        return [Target('/paths', 'document')]

    def validate(self, target, document):
        for path in document.get('paths') or {}:
            if PROBE_PATH.search(str(path).rstrip('/')):
                return ValidationResult(True)
        return ValidationResult(False, 'No /health or /ready endpoint is defined')


class TracingHeaderRule(BaseRule):
    RULE_ID = 'TRACE-001'
    CATEGORY = 'consistency'
    SEVERITY = SEVERITY_WARN
    DESCRIPTION = 'Operations accept a request tracing header'

    def detect(self, document):
        return _operation_targets(document)

    def validate(self, target, document):
        if has_header(document, target.context['path'], target.value, TRACE_HEADERS):
            return ValidationResult(True)
        return ValidationResult(False, f"{_label(target)} accepts no X-Request-ID or traceparent header")


PREREQUISITE_RULES = (
    OpenApiStructureRule,
    AuthenticationDefinedRule,
    MultiTenantWriteHeaderRule,
    ApiIdentifierRule,
)

SCORING_RULES = (
    MultiTenantReadHeaderRule,
    OperationSecurityRule,
    RequestBodySchemaRule,
    PaginationRule,
    CachingHeadersRule,
    OperationSummaryRule,
    SchemaExamplesRule,
    PathNamingRule,
    ErrorResponseRule,
    StatusCodesRule,
    VersioningRule,
    HealthEndpointRule,
    TracingHeaderRule,
)


# =============================================================================
# RULE CHECKER
# =============================================================================

class RegistryRuleChecker:
    """
    Runs a profile's enabled rules from a registry, dependencies first.

    Dependencies outside the profile are evaluated silently so their
    outcome can gate the rules that need them. A rule whose dependency
    failed is skipped and reported with an info finding.
    """

    name = 'registry'

    def __init__(self, registry: RuleRegistry):
        self.registry = registry

    def __call__(self, document: Dict[str, Any], profile: Profile) -> CheckerOutput:
        output = CheckerOutput()
        profile_rules = {}
        for rule in profile.enabled_rules:
            if rule.rule_id in self.registry:
                profile_rules[rule.rule_id] = rule
            else:
                output.rule_status[rule.rule_id] = 'unregistered'
                _logger.warning("profile references unregistered rule",
                                profile=profile.type, rule=rule.rule_id)

        order = self.registry.evaluation_order(self.registry.with_dependencies(list(profile_rules)))
        status: Dict[str, str] = {}
        earned: Dict[str, float] = {}

        for rule_id in order:
            rule = self.registry.get(rule_id)
            profile_rule = profile_rules.get(rule_id)
            failed_deps = [d for d in rule.DEPENDS_ON if status.get(d) != 'passed']
            if failed_deps:
                status[rule_id] = 'skipped'
                if profile_rule:
                    output.findings.append(rule.create_finding(
                        f"{rule_id} skipped: depends on {', '.join(failed_deps)}",
                        category=profile_rule.category, severity=SEVERITY_INFO))
                continue

            category = profile_rule.category if profile_rule else rule.CATEGORY
            findings, error = rule.safe_check(document, category)
            if findings is None:
                status[rule_id] = 'error'
                output.errors.append(error)
                _logger.error("rule crashed", rule=rule_id)
                continue

            status[rule_id] = 'failed' if findings else 'passed'
            if not profile_rule:
                continue

            if profile_rule.requirement == OPTIONAL:
                findings = [replace(f, severity=SEVERITY_WARN) if f.severity == SEVERITY_ERROR else f
                            for f in findings]
            output.findings.extend(findings)

            if not findings:
                earned[category] = earned.get(category, 0) + profile_rule.weight
            elif rule.AUTO_FAIL and profile_rule.requirement != OPTIONAL:
                output.auto_fail_reasons.append(
                    f"{rule_id}: {rule.DESCRIPTION} ({len(findings)} violation(s))")

        output.rule_status.update({k: v for k, v in status.items() if k in profile_rules})
        output.category_scores = earned
        return output


# Global registry
_registry: Optional[RuleRegistry] = None


def build_default_registry() -> RuleRegistry:
    return RuleRegistry(rule_class() for rule_class in PREREQUISITE_RULES + SCORING_RULES)


def get_rule_registry() -> RuleRegistry:
    """Get or create the process-wide rule registry."""
    global _registry
    if _registry is None:
        _registry = build_default_registry()
    return _registry


def get_default_checkers() -> List[RegistryRuleChecker]:
    return [RegistryRuleChecker(get_rule_registry())]
