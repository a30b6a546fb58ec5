"""
Tests for configuration, structured logging and the error hierarchy.
"""

import json
import logging
from pathlib import Path

import pytest

from config_logging import (
    AppConfig, JsonFormatter, StructuredLogger, GraderError, ValidationError, FileError,
    ProcessingError, StalePreimageError, UnsupportedPatchOperationError, ProfileConfigurationError,
    handle_errors, get_config, set_config,
)


class TestAppConfig:

    def test_defaults(self):
        config = AppConfig()
        assert config.confidence_threshold == 0.85
        assert config.detection_floor == 0.3
        assert config.default_profile == 'Custom'
        assert config.history_db_path == config.base_dir / 'grade_history.db'
        assert config.validate() == (True, [])

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv('APIG_PORT', '7000')
        monkeypatch.setenv('APIG_RECORD_HISTORY', 'yes')
        monkeypatch.setenv('APIG_CONFIDENCE_THRESHOLD', '0.9')
        monkeypatch.setenv('APIG_HISTORY_DB', str(tmp_path / 'h.db'))
        monkeypatch.setenv('APIG_TEST_OP_NOOP', '1')

        config = AppConfig.from_env()

        assert config.port == 7000
        assert config.record_history is True
        assert config.confidence_threshold == 0.9
        assert config.history_db_path == Path(tmp_path / 'h.db')
        assert config.allow_test_noop is True

    def test_production_forces_quiet(self, monkeypatch):
        monkeypatch.setenv('APIG_ENV', 'production')
        config = AppConfig(debug=True)
        assert config.debug is False
        assert config.log_level == 'WARNING'

    def test_validate_reports_every_problem(self):
        config = AppConfig(confidence_threshold=1.5, detection_floor=-1, backup_suffix='',
                           log_format='xml')
        valid, errors = config.validate()
        assert not valid
        assert len(errors) == 4

    def test_set_config(self):
        config = AppConfig(port=1234)
        set_config(config)
        assert get_config() is config


class TestStructuredLogger:

    def test_correlation_ids(self):
        first = StructuredLogger.new_correlation_id()
        assert StructuredLogger.get_correlation_id() == first
        assert StructuredLogger.new_correlation_id() != first

    def test_log_operation_reraises(self):
        logger = StructuredLogger('test_ops', AppConfig(log_to_console=False))
        with pytest.raises(RuntimeError):
            with logger.log_operation('explode'):
                raise RuntimeError('boom')

    def test_json_formatter_carries_fields(self):
        logger = StructuredLogger('test_json', AppConfig(log_format='json', log_to_console=False))
        records = []

        class Collect(logging.Handler):
            def emit(self, record):
                records.append(record)

        logger.logger.addHandler(Collect())
        logger.info('graded', letter='A', name='shadowed')

        data = json.loads(JsonFormatter().format(records[0]))
        assert data['message'] == 'graded'
        assert data['letter'] == 'A'
        assert data['ctx_name'] == 'shadowed'
        assert data['correlation_id'] == StructuredLogger.get_correlation_id()


class TestErrors:

    @pytest.mark.parametrize('error,code,status', [
        (ValidationError('bad', field='content'), 'VALIDATION_ERROR', 400),
        (FileError('gone', path='/x'), 'FILE_ERROR', 400),
        (ProcessingError('oops'), 'PROCESSING_ERROR', 500),
        (StalePreimageError('stale', stale_patches=[1]), 'STALE_PRECONDITION', 409),
        (UnsupportedPatchOperationError('test'), 'UNSUPPORTED_OPERATION', 422),
        (ProfileConfigurationError('broken', problems=['x']), 'PROFILE_CONFIG_ERROR', 500),
    ])
    def test_codes(self, error, code, status):
        assert isinstance(error, GraderError)
        assert error.status_code == status
        payload = error.to_dict()
        assert payload['success'] is False
        assert payload['error']['code'] == code

    def test_handle_errors_maps_builtin_exceptions(self):
        @handle_errors()
        def not_found():
            raise FileNotFoundError(2, 'No such file', 'spec.yaml')

        @handle_errors()
        def bad_value():
            raise ValueError('nope')

        @handle_errors()
        def crash():
            raise KeyError('k')

        with pytest.raises(FileError) as exc:
            not_found()
        assert exc.value.details['path'] == 'spec.yaml'
        with pytest.raises(ValidationError):
            bad_value()
        with pytest.raises(ProcessingError) as exc:
            crash()
        assert exc.value.details['stage'] == 'crash'

    def test_handle_errors_passes_grader_errors_through(self):
        original = StalePreimageError('stale')

        @handle_errors()
        def stale():
            raise original

        with pytest.raises(StalePreimageError) as exc:
            stale()
        assert exc.value is original
