"""Bank statement parsers and format detection"""

from .base import (
    ParseContext, ParsingStrategy, RowParser, clean_description, extract_field,
    looks_like_amount, looks_like_date, normalize_date, parse_amount,
)
from .bank_configs import (
    DEFAULT_BANK_CONFIGS, BankFormatDetector, BankFormatRegistry, DetectionResult,
)
from .config_parser import ConfigStrategy
from .intelligent_parser import ColumnMapping, IntelligentStrategy, build_column_mapping
from .fallback_parser import PositionalStrategy
from .unified_parser import UnifiedParser, normalize_rows
from .file_reader import StatementReadError, read_statement

__all__ = [
    'ParseContext', 'ParsingStrategy', 'RowParser', 'clean_description', 'extract_field',
    'looks_like_amount', 'looks_like_date', 'normalize_date', 'parse_amount',
    'DEFAULT_BANK_CONFIGS', 'BankFormatDetector', 'BankFormatRegistry', 'DetectionResult',
    'ConfigStrategy', 'ColumnMapping', 'IntelligentStrategy', 'build_column_mapping',
    'PositionalStrategy', 'UnifiedParser', 'normalize_rows', 'StatementReadError', 'read_statement',
]
