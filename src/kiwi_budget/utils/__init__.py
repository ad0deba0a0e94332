"""Utility functions and helpers"""

from .error_handler import (
    AmbiguousAmountError, ConfigurationError, ErrorCategory, ErrorSeverity, IssueLog,
    KiwiBudgetError, PersistenceError, RowParseError, setup_logging,
)
from .similarity import is_similar, similarity_ratio
from .duplicate_detector import DuplicateDetector, transaction_signature
from .config_manager import ConfigManager, get_default_config_manager
from .csv_writer import CSVWriter
from .persistence import InMemoryPersistence, JsonFilePersistence, PersistenceProvider
from .categorizer import Categorizer, KeywordCategorizer
from .budget_aggregator import BudgetAggregator
from .recommendations import RecommendationEngine, suggest_category_limits

__all__ = [
    'AmbiguousAmountError',
    'ConfigurationError',
    'ErrorCategory',
    'ErrorSeverity',
    'IssueLog',
    'KiwiBudgetError',
    'PersistenceError',
    'RowParseError',
    'setup_logging',
    'is_similar',
    'similarity_ratio',
    'DuplicateDetector',
    'transaction_signature',
    'ConfigManager',
    'get_default_config_manager',
    'CSVWriter',
    'InMemoryPersistence',
    'JsonFilePersistence',
    'PersistenceProvider',
    'Categorizer',
    'KeywordCategorizer',
    'BudgetAggregator',
    'RecommendationEngine',
    'suggest_category_limits',
]
