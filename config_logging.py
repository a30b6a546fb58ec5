#!/usr/bin/env python3
"""
API Spec Grader Configuration & Logging Module
==============================================
Centralized configuration, structured logging, and the error hierarchy
shared by the grading engine, the patch subsystem and the HTTP surface.

Version: reads from version.json (module v1.0)
"""

import os
import sys
import json
import logging
import uuid
import time
import functools
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Callable, List
from pathlib import Path
from dataclasses import dataclass, field
from contextlib import contextmanager
import threading

# =============================================================================
# CONFIGURATION CONSTANTS
# =============================================================================
DEFAULT_MAX_UPLOAD_MB = 10           # Largest spec body accepted over HTTP
MAX_SAFE_UPLOAD_MB = 100
DEFAULT_CONFIDENCE_THRESHOLD = 0.85  # Detection confidence needed to trust a profile
DEFAULT_DETECTION_FLOOR = 0.3        # Signature scores below this never win
DEFAULT_PROFILE_TYPE = "Custom"      # Most permissive built-in profile
DEFAULT_BACKUP_SUFFIX = ".bak"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5

DEFAULT_MAX_UPLOAD_BYTES = DEFAULT_MAX_UPLOAD_MB * 1024 * 1024
MAX_SAFE_UPLOAD_BYTES = MAX_SAFE_UPLOAD_MB * 1024 * 1024

# LogRecord attributes that structured fields must never shadow
_RESERVED_LOG_KEYS = frozenset((
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'stack_info', 'thread', 'threadName',
    'exc_info', 'exc_text', 'message', 'asctime', 'taskName',
))

# =============================================================================
# VERSION - Read from version.json (Single Source of Truth)
# =============================================================================
def _load_version():
    """Load version from version.json file."""
    version_file = Path(__file__).parent / 'version.json'
    try:
        with open(version_file, 'r', encoding='utf-8') as f:
            return json.load(f).get('version', '1.0.0')
    except (OSError, ValueError):
        return '1.0.0'

__version__ = _load_version()
VERSION = __version__
APP_NAME = "APISpecGrader"


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

@dataclass
class AppConfig:
    """Application configuration with safe defaults."""

    # Server settings
    host: str = "127.0.0.1"
    port: int = 5060
    debug: bool = False
    max_content_length: int = DEFAULT_MAX_UPLOAD_BYTES

    # Paths
    base_dir: Path = field(default_factory=lambda: Path(__file__).parent)
    log_dir: Path = field(default_factory=lambda: Path(__file__).parent / 'logs')
    history_db_path: Optional[Path] = None
    profiles_path: Optional[Path] = None

    # Grading
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    detection_floor: float = DEFAULT_DETECTION_FLOOR
    default_profile: str = DEFAULT_PROFILE_TYPE
    strict_profiles: bool = False
    record_history: bool = False

    # Patching
    backup_suffix: str = DEFAULT_BACKUP_SUFFIX
    allow_test_noop: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # Options: json, text
    log_to_file: bool = False
    log_to_console: bool = True

    def __post_init__(self):
        if self.history_db_path is None:
            self.history_db_path = self.base_dir / 'grade_history.db'
        if self.log_to_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        if os.environ.get('APIG_ENV', 'development').lower() == 'production':
            self.debug = False
            self.log_level = "WARNING"

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Load configuration from environment variables."""
        profiles_path = os.environ.get('APIG_PROFILES_PATH')
        history_db = os.environ.get('APIG_HISTORY_DB')
        kwargs = dict(
            host=os.environ.get('APIG_HOST', '127.0.0.1'),
            port=int(os.environ.get('APIG_PORT', '5060')),
            debug=_env_bool('APIG_DEBUG', 'false'),
            max_content_length=int(os.environ.get('APIG_MAX_UPLOAD', str(DEFAULT_MAX_UPLOAD_BYTES))),
            profiles_path=Path(profiles_path) if profiles_path else None,
            history_db_path=Path(history_db) if history_db else None,
            confidence_threshold=float(os.environ.get(
                'APIG_CONFIDENCE_THRESHOLD', str(DEFAULT_CONFIDENCE_THRESHOLD))),
            detection_floor=float(os.environ.get('APIG_DETECTION_FLOOR', str(DEFAULT_DETECTION_FLOOR))),
            default_profile=os.environ.get('APIG_DEFAULT_PROFILE', DEFAULT_PROFILE_TYPE),
            strict_profiles=_env_bool('APIG_STRICT_PROFILES', 'false'),
            record_history=_env_bool('APIG_RECORD_HISTORY', 'false'),
            backup_suffix=os.environ.get('APIG_BACKUP_SUFFIX', DEFAULT_BACKUP_SUFFIX),
            allow_test_noop=_env_bool('APIG_TEST_OP_NOOP', 'false'),
            log_level=os.environ.get('APIG_LOG_LEVEL', 'INFO'),
            log_format=os.environ.get('APIG_LOG_FORMAT', 'text'),
            log_to_file=_env_bool('APIG_LOG_TO_FILE', 'false'),
            log_to_console=_env_bool('APIG_LOG_TO_CONSOLE', 'true'),
        )
        log_dir = os.environ.get('APIG_LOG_DIR')
        if log_dir:
            kwargs['log_dir'] = Path(log_dir)
        return cls(**kwargs)

    def validate(self) -> tuple:
        """Validate configuration and return (is_valid, errors)."""
        errors = []

        if self.debug and os.environ.get('APIG_ENV') == 'production':
            errors.append("Debug mode cannot be enabled in production")

        if not 0.0 <= self.confidence_threshold <= 1.0:
            errors.append(f"Confidence threshold must be within [0, 1], got {self.confidence_threshold}")

        if not 0.0 <= self.detection_floor <= 1.0:
            errors.append(f"Detection floor must be within [0, 1], got {self.detection_floor}")

        if self.max_content_length > MAX_SAFE_UPLOAD_BYTES:
            errors.append(f"Max content length exceeds safe limit ({MAX_SAFE_UPLOAD_MB}MB)")

        if not self.backup_suffix:
            errors.append("Backup suffix must not be empty")

        if self.log_format not in ('json', 'text'):
            errors.append(f"Invalid log_format: {self.log_format}. Must be 'json' or 'text'")

        return (len(errors) == 0, errors)


# Global config instance
_config: Optional[AppConfig] = None

def get_config() -> AppConfig:
    """Get or create the global configuration."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig):
    """Install an explicit configuration (CLI flags, tests)."""
    global _config
    _config = config


def reset_config():
    """Reset the global configuration (for testing)."""
    global _config
    _config = None


# =============================================================================
# STRUCTURED LOGGING
# =============================================================================

class StructuredLogger:
    """Thread-safe structured logger with correlation IDs."""

    _local = threading.local()

    def __init__(self, name: str, config: Optional[AppConfig] = None):
        self.name = name
        self.config = config or get_config()
        self._setup_logger()

    def _setup_logger(self):
        """Configure the underlying Python logger."""
        self.logger = logging.getLogger(self.name)
        self.logger.setLevel(getattr(logging, self.config.log_level.upper(), logging.INFO))
        self.logger.handlers.clear()
        self.logger.propagate = False

        if self.config.log_format == 'json':
            formatter = JsonFormatter()
        else:
            formatter = logging.Formatter(
                '%(asctime)s [%(levelname)s] %(name)s - %(message)s'
            )

        if self.config.log_to_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        if self.config.log_to_file:
            from logging.handlers import RotatingFileHandler
            log_file = self.config.log_dir / f"{self.name.lower()}.log"
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        if not self.logger.handlers:
            self.logger.addHandler(logging.NullHandler())

    @classmethod
    def set_correlation_id(cls, correlation_id: str):
        """Set correlation ID for current thread."""
        cls._local.correlation_id = correlation_id

    @classmethod
    def get_correlation_id(cls) -> str:
        """Get correlation ID for current thread."""
        return getattr(cls._local, 'correlation_id', None) or 'none'

    @classmethod
    def new_correlation_id(cls) -> str:
        """Generate and set a new correlation ID."""
        correlation_id = str(uuid.uuid4())[:12]
        cls.set_correlation_id(correlation_id)
        return correlation_id

    def _extra(self, kwargs: Dict[str, Any]) -> Dict[str, Any]:
        extra = {
            (f"ctx_{key}" if key in _RESERVED_LOG_KEYS else key): value
            for key, value in kwargs.items()
        }
        extra['correlation_id'] = self.get_correlation_id()
        return extra

    def _format(self, message: str, kwargs: Dict[str, Any]) -> str:
        # JSON output carries the fields separately
        if self.config.log_format == 'json' or not kwargs:
            return message
        context = ' '.join(f"{k}={v}" for k, v in kwargs.items())
        return f"{message} [{context}]"

    def debug(self, message: str, **kwargs):
        """Log debug message."""
        self.logger.debug(self._format(message, kwargs), extra=self._extra(kwargs))

    def info(self, message: str, **kwargs):
        """Log info message."""
        self.logger.info(self._format(message, kwargs), extra=self._extra(kwargs))

    def warning(self, message: str, **kwargs):
        """Log warning message."""
        self.logger.warning(self._format(message, kwargs), extra=self._extra(kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs):
        """Log error message with optional exception info."""
        self.logger.error(self._format(message, kwargs), exc_info=exc_info, extra=self._extra(kwargs))

    def exception(self, message: str, **kwargs):
        """Log exception with full traceback."""
        self.error(message, exc_info=True, **kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message."""
        self.logger.critical(self._format(message, kwargs), extra=self._extra(kwargs))

    @contextmanager
    def log_operation(self, operation: str, **context):
        """Context manager for logging operation start/end with timing."""
        start_time = time.time()
        self.debug(f"{operation} started", operation=operation, status='started', **context)
        try:
            yield
            duration_ms = (time.time() - start_time) * 1000
            self.info(f"{operation} completed", operation=operation, status='completed',
                      duration_ms=round(duration_ms, 2), **context)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self.error(f"{operation} failed: {e}", operation=operation, status='failed',
                       duration_ms=round(duration_ms, 2), exc_info=True, **context)
            raise


class JsonFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_data['traceback'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_LOG_KEYS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name, get_config())


# =============================================================================
# ERROR HANDLING UTILITIES
# =============================================================================

class GraderError(Exception):
    """Base exception for the API spec grader."""

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR",
                 status_code: int = 500, details: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response dict."""
        return {
            'success': False,
            'error': {
                'code': self.code,
                'message': self.message,
                'details': self.details
            }
        }


class ValidationError(GraderError):
    """Input validation error."""
    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, code="VALIDATION_ERROR", status_code=400,
                         details={'field': field, **kwargs})


class FileError(GraderError):
    """File handling error."""
    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        super().__init__(message, code="FILE_ERROR", status_code=400,
                         details={'path': path, **kwargs})


class ProcessingError(GraderError):
    """Grading pipeline error."""
    def __init__(self, message: str, stage: Optional[str] = None, **kwargs):
        super().__init__(message, code="PROCESSING_ERROR", status_code=500,
                         details={'stage': stage, **kwargs})


class StalePreimageError(GraderError):
    """A patch was computed against a different version of the document."""
    def __init__(self, message: str, stale_patches: Optional[List[int]] = None,
                 current_hash: Optional[str] = None, **kwargs):
        super().__init__(message, code="STALE_PRECONDITION", status_code=409,
                         details={'stale_patches': stale_patches or [],
                                  'current_hash': current_hash, **kwargs})
        self.stale_patches = stale_patches or []
        self.current_hash = current_hash


class UnsupportedPatchOperationError(GraderError):
    """A structural patch used an operation this executor refuses to run."""
    def __init__(self, op: str, path: Optional[str] = None, **kwargs):
        super().__init__(f"Unsupported patch operation: {op}", code="UNSUPPORTED_OPERATION",
                         status_code=422, details={'op': op, 'path': path, **kwargs})
        self.op = op


class ProfileConfigurationError(GraderError):
    """Profile catalog or rule registry is inconsistent."""
    def __init__(self, message: str, profile: Optional[str] = None,
                 problems: Optional[List[str]] = None, **kwargs):
        super().__init__(message, code="PROFILE_CONFIG_ERROR", status_code=500,
                         details={'profile': profile, 'problems': problems or [], **kwargs})
        self.problems = problems or []


def handle_errors(logger: Optional[StructuredLogger] = None):
    """Decorator for standardized error handling."""
    def decorator(func: Callable):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            _logger = logger or get_logger(func.__module__)
            try:
                return func(*args, **kwargs)
            except GraderError:
                raise
            except FileNotFoundError as e:
                _logger.error(f"File not found: {e}")
                raise FileError(f"File not found: {e.filename or e}", path=e.filename) from e
            except PermissionError as e:
                _logger.error(f"Permission denied: {e}")
                raise FileError(f"Permission denied: {e.filename or e}", path=e.filename) from e
            except ValueError as e:
                _logger.error(f"Validation error: {e}")
                raise ValidationError(str(e)) from e
            except Exception as e:
                _logger.exception(f"Unexpected error in {func.__name__}: {e}")
                raise ProcessingError(f"An unexpected error occurred: {type(e).__name__}",
                                      stage=func.__name__) from e
        return wrapper
    return decorator
