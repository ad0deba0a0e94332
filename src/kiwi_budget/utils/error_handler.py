"""Error types, row-issue tracking and logging setup for the ingestion pipeline."""

import json
import logging
import sys
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Any


logger = logging.getLogger(__name__)


class KiwiBudgetError(Exception):
    """Base class for pipeline errors"""


class RowParseError(KiwiBudgetError, ValueError):
    """A single row could not be turned into a transaction"""

    def __init__(self, message: str, field_name: Optional[str] = None,
                 raw_value: Optional[str] = None):
        super().__init__(message)
        self.field_name = field_name
        self.raw_value = raw_value


class AmbiguousAmountError(RowParseError):
    """A row carries both a debit and a credit value"""


class ConfigurationError(KiwiBudgetError):
    """Invalid configuration file or bank format definition"""


class PersistenceError(KiwiBudgetError):
    """Stored transaction state could not be read or written"""


class ErrorSeverity(Enum):
    """Error severity levels"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ErrorCategory(Enum):
    """Error categories for classification"""
    FILE_FORMAT = "file_format"
    DATA_PARSING = "data_parsing"
    DATA_VALIDATION = "data_validation"
    CONFIGURATION = "configuration"
    COLLABORATOR = "collaborator"


@dataclass
class ErrorDetail:
    """Detailed information about one recorded issue"""
    timestamp: str
    severity: str
    category: str
    message: str
    source: Optional[str] = None
    row_number: Optional[int] = None
    field_name: Optional[str] = None
    raw_value: Optional[str] = None
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return asdict(self)

    def render(self) -> str:
        """Human readable one-line warning"""
        parts = []
        if self.row_number is not None:
            parts.append(f"Row {self.row_number}")
        if self.field_name:
            parts.append(f"[{self.field_name}]")
        prefix = " ".join(parts)
        text = f"{prefix}: {self.message}" if prefix else self.message
        if self.raw_value:
            text += f" (value: {self.raw_value!r})"
        return text


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines"""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add extra fields if present
        if hasattr(record, 'category'):
            log_entry['category'] = record.category
        if hasattr(record, 'source'):
            log_entry['source'] = record.source
        if hasattr(record, 'context'):
            log_entry['context'] = record.context

        return json.dumps(log_entry, default=str)


class IssueLog:
    """Collects non-fatal issues raised while processing one file.

    Every issue is logged immediately and kept so the caller can turn the
    collection into the warning strings of a parse result.
    """

    def __init__(self, source: Optional[str] = None):
        self.source = source
        self.errors: List[ErrorDetail] = []
        self.warnings: List[ErrorDetail] = []
        self.details: List[ErrorDetail] = []

    def _record(self, severity: ErrorSeverity, message: str,
                category: ErrorCategory, row_number: Optional[int],
                field_name: Optional[str], raw_value: Optional[str],
                context: Optional[Dict[str, Any]]) -> ErrorDetail:
        detail = ErrorDetail(
            timestamp=datetime.now().isoformat(),
            severity=severity.value,
            category=category.value,
            message=message,
            source=self.source,
            row_number=row_number,
            field_name=field_name,
            raw_value=raw_value,
            context=context or {}
        )
        self.details.append(detail)
        extra = {'category': category.value, 'source': self.source,
                 'context': context or {}}
        if severity == ErrorSeverity.ERROR:
            self.errors.append(detail)
            logger.error(f"{self.source or '<input>'}: {detail.render()}", extra=extra)
        else:
            self.warnings.append(detail)
            logger.warning(f"{self.source or '<input>'}: {detail.render()}", extra=extra)
        return detail

    def warn(self, message: str,
             category: ErrorCategory = ErrorCategory.DATA_PARSING,
             row_number: Optional[int] = None,
             field_name: Optional[str] = None,
             raw_value: Optional[str] = None,
             context: Optional[Dict[str, Any]] = None) -> ErrorDetail:
        """Record a warning"""
        return self._record(ErrorSeverity.WARNING, message, category,
                            row_number, field_name, raw_value, context)

    def error(self, message: str,
              category: ErrorCategory = ErrorCategory.DATA_PARSING,
              row_number: Optional[int] = None,
              field_name: Optional[str] = None,
              raw_value: Optional[str] = None,
              context: Optional[Dict[str, Any]] = None) -> ErrorDetail:
        """Record an error affecting a single row"""
        return self._record(ErrorSeverity.ERROR, message, category,
                            row_number, field_name, raw_value, context)

    def row_failed(self, row_number: int, exc: RowParseError) -> ErrorDetail:
        """Record a row skipped because of a parse error"""
        record = self.error if isinstance(exc, AmbiguousAmountError) else self.warn
        return record(str(exc), row_number=row_number,
                      field_name=exc.field_name, raw_value=exc.raw_value)

    def extend(self, other: 'IssueLog'):
        """Merge issues recorded by another log without re-logging them"""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.details.extend(other.details)

    def has_issues(self) -> bool:
        return bool(self.errors or self.warnings)

    def messages(self) -> List[str]:
        """All issues rendered in the order they were recorded"""
        return [d.render() for d in self.details]

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of recorded issues"""
        categories: Dict[str, int] = {}
        for detail in self.errors + self.warnings:
            categories[detail.category] = categories.get(detail.category, 0) + 1
        return {
            'total_errors': len(self.errors),
            'total_warnings': len(self.warnings),
            'categories': categories,
        }


def setup_logging(verbose: bool = False, log_directory: Optional[str] = None):
    """Configure console logging and, optionally, JSON-lines file logging.

    Args:
        verbose: Log at DEBUG instead of INFO
        log_directory: Directory for a daily ``kiwi_budget_YYYYMMDD.jsonl`` file
    """
    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger('kiwi_budget')
    root.setLevel(level)
    root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    root.addHandler(console_handler)

    if log_directory:
        log_path = Path(log_directory)
        log_path.mkdir(parents=True, exist_ok=True)
        log_file = log_path / f"kiwi_budget_{datetime.now().strftime('%Y%m%d')}.jsonl"
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    return root
