#!/usr/bin/env python3
"""
API Spec Grader Core Engine
===========================
Grades OpenAPI documents against profile-specific rule sets.

Pipeline for one document:
1. Parse the JSON or YAML text
2. Detect the API profile and select the grading profile
3. Run the prerequisite gate (a failure ends grading with an F)
4. Run rule checkers and score findings per category
5. Finalize the grade, attach source lines, optionally record history

Version is read from version.json via config_logging module.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Dict, Any, Optional, Union

from config_logging import VERSION as __version__, get_logger, get_config, StructuredLogger
from base_checker import Finding, RuleRegistry, SEVERITY_ERROR, SEVERITY_WARN, SEVERITY_INFO
from file_parsers import parse_spec_text, read_spec_file, detect_format, compute_text_hash, \
    build_line_map, line_for_pointer
from profiles import detect_profile, DetectionResult, ProfileManager, ProfileSelection, \
    get_profile_manager
from scoring import (
    GradeReport, PrerequisiteOutcome, Checkpoint, evaluate_prerequisites, score_document,
    build_report, build_blocked_report, generate_grade_summary,
)
from spec_rules import get_rule_registry, get_default_checkers

MODULE_VERSION = __version__

_logger = get_logger('core')


def _log(message: str, level: str = 'debug', **kwargs):
    """Internal logging helper."""
    getattr(_logger, level)(message, **kwargs)


@dataclass
class GradingResult:
    """
    Everything produced by grading one document.

    Attributes:
        report: Final grade
        findings: All findings, with source lines where known
        detection: Profile detection outcome
        selection: Which profile graded the document and why
        prerequisites: Gate outcome, including skipped prerequisites
        checkpoints: Per-rule points (empty when blocked)
        spec_hash: SHA-256 of the graded text
        api_id: info.x-api-id, if any
        run_id: Correlation id of this grading run
    """
    report: GradeReport
    findings: List[Finding]
    detection: DetectionResult
    selection: ProfileSelection
    prerequisites: PrerequisiteOutcome
    checkpoints: List[Checkpoint] = field(default_factory=list)
    spec_hash: str = ""
    api_id: Optional[str] = None
    api_title: str = ""
    run_id: str = ""
    graded_at: str = ""
    source: Optional[str] = None
    spec_format: str = ""
    rule_status: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        return generate_grade_summary(self.report)

    def _count_by_severity(self) -> Dict[str, int]:
        counts = {SEVERITY_ERROR: 0, SEVERITY_WARN: 0, SEVERITY_INFO: 0}
        for finding in self.findings:
            counts[finding.severity] = counts.get(finding.severity, 0) + 1
        return counts

    def _count_by_rule(self) -> Dict[str, int]:
        counts = {}
        for finding in self.findings:
            counts[finding.rule_id] = counts.get(finding.rule_id, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'run_id': self.run_id,
            'graded_at': self.graded_at,
            'engine_version': MODULE_VERSION,
            'source': self.source,
            'spec_format': self.spec_format,
            'spec_hash': self.spec_hash,
            'api_id': self.api_id,
            'api_title': self.api_title,
            'grade': self.report.to_dict(),
            'summary': self.summary,
            'detection': self.detection.to_dict(),
            'selection': self.selection.to_dict(),
            'prerequisites': {
                'passed': self.prerequisites.passed,
                'checked': self.prerequisites.checked,
                'skipped': self.prerequisites.skipped,
            },
            'findings': [f.to_dict() for f in self.findings],
            'by_severity': self._count_by_severity(),
            'by_rule': self._count_by_rule(),
            'checkpoints': [c.to_dict() for c in self.checkpoints],
            'rule_status': self.rule_status,
            'errors': self.errors,
        }


class GradingEngine:
    """
    Orchestrates detection, profile selection, the prerequisite gate,
    scoring and finalization for API specification documents.
    """

    def __init__(self, profile_manager: Optional[ProfileManager] = None,
                 registry: Optional[RuleRegistry] = None,
                 checkers: Optional[list] = None,
                 history_db=None,
                 record_history: Optional[bool] = None):
        self.profile_manager = profile_manager or get_profile_manager()
        self.registry = registry or get_rule_registry()
        self.checkers = checkers if checkers is not None else get_default_checkers()
        self._history_db = history_db
        self.record_history = get_config().record_history if record_history is None else record_history

    @property
    def history_db(self):
        if self._history_db is None:
            from scan_history import get_grade_history_db
            self._history_db = get_grade_history_db()
        return self._history_db

    def detect(self, text: str, fmt: Optional[str] = None) -> DetectionResult:
        document, _ = parse_spec_text(text, fmt)
        return detect_profile(document)

    def grade_file(self, filepath: Union[str, Path], profile_override: Optional[str] = None,
                   record: Optional[bool] = None) -> GradingResult:
        """Grade a spec file on disk."""
        text = read_spec_file(filepath)
        return self.grade_text(text, profile_override=profile_override, source=str(filepath),
                               fmt=detect_format(text, filepath), record=record)

    def grade_text(self, text: str, profile_override: Optional[str] = None,
                   source: Optional[str] = None, fmt: Optional[str] = None,
                   record: Optional[bool] = None) -> GradingResult:
        """
        Grade a spec document.

        Args:
            text: JSON or YAML OpenAPI document
            profile_override: Profile type to use regardless of detection
            source: Where the text came from, for reports and history
            fmt: 'json' or 'yaml'; guessed when omitted
            record: Store the run in grade history (config default)

        Returns:
            GradingResult

        Raises:
            ValidationError: the text is not a JSON/YAML object, or the
                override names an unknown profile.
        """
        run_id = StructuredLogger.new_correlation_id()
        with _logger.log_operation('grade', source=source or '<text>'):
            document, spec_format = parse_spec_text(text, fmt)
            spec_hash = compute_text_hash(text)

            detection = detect_profile(document)
            selection = self.profile_manager.select_profile(detection, profile_override)
            profile = selection.profile
            _log(f"Grading with profile {profile.type}", level='info', reason=selection.reason,
                 detected=detection.detected_profile, confidence=detection.confidence)

            prerequisites = evaluate_prerequisites(document, profile, self.registry)
            checkpoints: List[Checkpoint] = []
            rule_status: Dict[str, str] = {}
            errors: List[str] = []
            if not prerequisites.passed:
                report = build_blocked_report(prerequisites, profile, detection.confidence)
                findings = list(prerequisites.findings)
            else:
                scoring = score_document(document, profile, self.checkers)
                report = build_report(scoring, profile, detection.confidence)
                findings = scoring.findings
                checkpoints = scoring.checkpoints
                rule_status = scoring.rule_status
                errors = scoring.errors

            info = document.get('info') if isinstance(document.get('info'), dict) else {}
            result = GradingResult(
                report=report,
                findings=self._annotate_lines(findings, text),
                detection=detection,
                selection=selection,
                prerequisites=prerequisites,
                checkpoints=checkpoints,
                spec_hash=spec_hash,
                api_id=info.get('x-api-id') if isinstance(info.get('x-api-id'), str) else None,
                api_title=str(info.get('title', '')),
                run_id=run_id,
                graded_at=datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
                source=source,
                spec_format=spec_format,
                rule_status=rule_status,
                errors=errors,
            )

            if self.record_history if record is None else record:
                self.history_db.record_run(result)

            _log(f"Grade {report.letter} ({report.total})", level='info',
                 profile=profile.type, critical=report.critical_issues,
                 blocked=report.blocked_by_prerequisites)
            return result

    @staticmethod
    def _annotate_lines(findings: List[Finding], text: str) -> List[Finding]:
        if not findings:
            return []
        line_map = build_line_map(text)
        if not line_map:
            return list(findings)
        return [
            f if f.line is not None else replace(f, line=line_for_pointer(line_map, f.pointer_path))
            for f in findings
        ]


def grade_spec(text: str, profile_override: Optional[str] = None) -> Dict[str, Any]:
    """Convenience wrapper returning the result as a dict."""
    return GradingEngine().grade_text(text, profile_override=profile_override).to_dict()
