"""
Structured logging and error tracking for the portfolio service.
"""
import json
import logging
import logging.handlers
import sys
import threading
import traceback
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class LogEntry:
    """Structured log entry for JSON logging."""
    timestamp: str
    level: str
    logger_name: str
    message: str
    module: str
    function: str
    line_number: int
    process_id: int
    extra_data: Optional[Dict[str, Any]] = None
    exception_info: Optional[Dict[str, Any]] = None


@dataclass
class ErrorMetric:
    """A tracked error occurrence."""
    error_type: str
    error_message: str
    timestamp: str
    stack_trace: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None


class JSONFormatter(logging.Formatter):
    """Formats records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created).isoformat(),
            level=record.levelname,
            logger_name=record.name,
            message=record.getMessage(),
            module=record.module,
            function=record.funcName,
            line_number=record.lineno,
            process_id=record.process,
            extra_data=getattr(record, 'extra_data', None)
        )

        if record.exc_info:
            log_entry.exception_info = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': traceback.format_exception(*record.exc_info)
            }

        return json.dumps(asdict(log_entry), default=str)


class ErrorTracker:
    """Keeps recent errors in memory for health reporting."""

    def __init__(self):
        self.errors: List[ErrorMetric] = []
        self.lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def track_error(self, error: Exception, extra_data: Optional[Dict[str, Any]] = None):
        stack_trace = None
        if error.__traceback__ is not None:
            stack_trace = ''.join(traceback.format_exception(type(error), error, error.__traceback__))

        error_metric = ErrorMetric(
            error_type=type(error).__name__,
            error_message=str(error),
            timestamp=datetime.now().isoformat(),
            stack_trace=stack_trace,
            extra_data=extra_data
        )

        with self.lock:
            self.errors.append(error_metric)

        self.logger.debug(
            f"Error tracked: {error_metric.error_type}",
            extra={'extra_data': {'error_type': error_metric.error_type, **(extra_data or {})}}
        )

    def get_errors(self, since: Optional[datetime] = None) -> List[ErrorMetric]:
        with self.lock:
            errors = self.errors.copy()

        if since:
            since_iso = since.isoformat()
            errors = [e for e in errors if e.timestamp >= since_iso]

        return errors

    def get_error_summary(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        """Count tracked errors by type."""
        errors = self.get_errors(since=since)

        if not errors:
            return {'total_errors': 0, 'error_types': {}}

        error_types: Dict[str, int] = {}
        for error in errors:
            error_types[error.error_type] = error_types.get(error.error_type, 0) + 1

        return {
            'total_errors': len(errors),
            'error_types': error_types,
            'most_common_error': max(error_types.items(), key=lambda x: x[1])[0]
        }


class LoggingService:
    """Configures root logging and tracks errors."""

    def __init__(self, config, configure_handlers: bool = True):
        """
        Initialize logging service with configuration.

        Args:
            config: Object with ``log_level`` and ``log_file_path``
            configure_handlers: Replace the root logger's handlers
        """
        self.config = config
        self.error_tracker = ErrorTracker()
        if configure_handlers:
            self._setup_logging()
        self.logger = logging.getLogger(__name__)
        self.logger.info("Logging service initialized")

    def _setup_logging(self):
        log_path = Path(self.config.log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        root_logger.setLevel(log_level)

        json_formatter = JSONFormatter()

        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(json_formatter)
        file_handler.setLevel(log_level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console_handler.setLevel(log_level)

        error_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path.with_suffix('.errors.log')),
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setFormatter(json_formatter)
        error_handler.setLevel(logging.ERROR)

        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)
        root_logger.addHandler(error_handler)

    def set_level(self, level: str):
        log_level = getattr(logging, level.upper(), logging.INFO)
        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        for handler in root_logger.handlers:
            if handler.level != logging.ERROR:
                handler.setLevel(log_level)

    def log_with_context(self, level: str, message: str, **context):
        """Log message with additional structured context."""
        logger = logging.getLogger('portfolio_service')
        log_method = getattr(logger, level.lower(), logger.info)
        log_method(message, extra={'extra_data': context})

    def track_error(self, error: Exception, extra_data: Optional[Dict[str, Any]] = None):
        self.error_tracker.track_error(error, extra_data)

    def get_error_summary(self, since_hours: int = 24) -> Dict[str, Any]:
        since = datetime.now() - timedelta(hours=since_hours)
        return self.error_tracker.get_error_summary(since=since)

    def get_health_status(self) -> Dict[str, Any]:
        """Report whether logging works and how many errors were seen recently."""
        try:
            logging.getLogger('health_check').debug("Health check test log entry")
            error_summary = self.get_error_summary(since_hours=1)

            return {
                'status': 'healthy',
                'recent_errors': error_summary.get('total_errors', 0),
                'timestamp': datetime.now().isoformat()
            }
        except Exception as e:
            return {
                'status': 'unhealthy',
                'error': str(e),
                'timestamp': datetime.now().isoformat()
            }
