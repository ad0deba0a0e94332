"""Pipeline facade: parse, classify, deduplicate, aggregate and recommend."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .models.core import (
    BankConfig, BudgetRecommendations, ClassifiedTransaction, IngestResult, MonthlyBudget,
    NormalizedTransaction, ParseResult, PipelineConfig, ReversalPair, SmartGoal,
)
from .parsers.bank_configs import BankFormatRegistry
from .parsers.unified_parser import RowInput, UnifiedParser
from .utils.budget_aggregator import BudgetAggregator
from .utils.categorizer import Categorizer, KeywordCategorizer
from .utils.classifier import TransactionClassifier
from .utils.config_manager import ConfigManager, validate_bank_configs
from .utils.duplicate_detector import DuplicateDetector
from .utils.persistence import PersistenceProvider
from .utils.recommendations import RecommendationEngine

logger = logging.getLogger(__name__)


class Pipeline:
    """Wires the pipeline stages together around one bank format registry.

    Args:
        registry: Bank formats used for detection; defaults to the built-in NZ banks
        config: Pipeline configuration
        persistence: Optional store of previously accepted transactions
        categorizer: Optional collaborator for low-confidence classifications
        max_workers: Parallel file parses during ``ingest``
    """

    def __init__(self, registry: Optional[BankFormatRegistry] = None,
                 config: Optional[PipelineConfig] = None,
                 persistence: Optional[PersistenceProvider] = None,
                 categorizer: Optional[Categorizer] = None,
                 max_workers: int = 4):
        self.config = config or PipelineConfig()
        self.registry = registry if registry is not None else BankFormatRegistry()
        self.persistence = persistence
        self.parser = UnifiedParser(self.registry, self.config)
        self.classifier = TransactionClassifier(self.config, categorizer)
        self.duplicate_detector = DuplicateDetector(self.config.normalize_signature_case)
        self.aggregator = BudgetAggregator()
        self.recommendation_engine = RecommendationEngine()
        self.max_workers = max(1, max_workers)
        self._user_locks: Dict[str, Tuple[threading.Lock, int]] = {}
        self._user_locks_guard = threading.Lock()

    @classmethod
    def from_config_manager(cls, config_manager: ConfigManager,
                            persistence: Optional[PersistenceProvider] = None) -> 'Pipeline':
        """Build a pipeline from loaded configuration, registering configured bank formats"""
        config = config_manager.load_config()
        categorizer = KeywordCategorizer(config.categorizer_rules) if config.categorizer_rules else None
        pipeline = cls(config=config, persistence=persistence, categorizer=categorizer)
        for bank_config in config_manager.get_bank_configs():
            pipeline.register_bank_config(bank_config)
        return pipeline

    def parse(self, filename: str, rows: Iterable[RowInput],
              headers: Optional[Sequence[str]] = None) -> ParseResult:
        return self.parser.parse(filename, rows, headers)

    def classify(self, transactions: Sequence[NormalizedTransaction]) -> List[ClassifiedTransaction]:
        return self.classifier.classify(transactions)

    def deduplicate(self, candidates: Iterable[NormalizedTransaction],
                    existing_signatures: Optional[Set[str]] = None) -> List[NormalizedTransaction]:
        return self.duplicate_detector.deduplicate(candidates, existing_signatures)

    def aggregate(self, transactions: Sequence[ClassifiedTransaction], month: str) -> MonthlyBudget:
        return self.aggregator.aggregate(transactions, month)

    def recommend(self, budgets: Sequence[MonthlyBudget],
                  disposable_income: Optional[Decimal] = None) -> List[SmartGoal]:
        return self.recommendation_engine.recommend(budgets, disposable_income)

    def budget_recommendations(self, budgets: Sequence[MonthlyBudget]) -> BudgetRecommendations:
        return self.recommendation_engine.generate_budget_recommendations(budgets)

    def register_bank_config(self, config: Union[BankConfig, Mapping[str, Any]]) -> None:
        """Add or replace a bank format by name

        Args:
            config: BankConfig, or a mapping in the config-file layout

        Raises:
            ConfigurationError: If a mapping is malformed
        """
        if not isinstance(config, BankConfig):
            validate_bank_configs([dict(config)])
            config = BankConfig.from_dict(dict(config))
        self.registry.register(config)

    def ingest(self, user_id: str, files: Mapping[str, Iterable[RowInput]]) -> IngestResult:
        """Parse, classify and deduplicate a batch of files for one user

        Files are parsed in parallel. Classification, duplicate detection and
        saving run under a per-user lock so concurrent batches for the same
        user never interleave accept/skip decisions.

        Args:
            user_id: Owner of the transactions
            files: Filename to rows, in upload order

        Returns:
            IngestResult with per-file parse results and the accepted transactions

        Raises:
            PersistenceError: If stored transactions cannot be read or saved
        """
        names = list(files)
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self.parse, name, files[name]) for name in names]
            parse_results = {name: future.result() for name, future in zip(names, futures)}

        candidates: List[NormalizedTransaction] = []
        warnings: List[str] = []
        for name in names:
            result = parse_results[name]
            candidates.extend(result.transactions)
            warnings.extend(f"{name}: {warning}" for warning in result.warnings)

        with self._user_lock(user_id):
            classified, pairs = self.classifier.classify_batch(candidates)

            existing: Set[str] = set()
            date_range = self.duplicate_detector.date_range(classified)
            if self.persistence is not None and date_range:
                existing = self.persistence.existing_signatures(user_id, *date_range)

            accepted, stats = self.duplicate_detector.deduplicate_transactions(classified, existing)
            skipped = stats['existing_duplicates'] + stats['batch_duplicates']
            if self.persistence is not None and accepted:
                self.persistence.save(user_id, accepted)

        logger.info(f"Ingested {len(names)} files for {user_id}: {len(accepted)} accepted, "
                    f"{skipped} duplicates skipped")
        return IngestResult(
            parse_results=parse_results,
            accepted=accepted,
            duplicates_skipped=skipped,
            reversal_pairs=pairs,
            warnings=warnings,
        )

    @contextmanager
    def _user_lock(self, user_id: str):
        """Hold the lock for ``user_id``; the entry is dropped once no caller holds or waits on it"""
        with self._user_locks_guard:
            lock, holders = self._user_locks.get(user_id, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._user_locks[user_id] = (lock, holders + 1)
        try:
            with lock:
                yield
        finally:
            with self._user_locks_guard:
                lock, holders = self._user_locks[user_id]
                if holders == 1:
                    del self._user_locks[user_id]
                else:
                    self._user_locks[user_id] = (lock, holders - 1)


_default_pipeline: Optional[Pipeline] = None
_default_pipeline_lock = threading.Lock()


def get_default_pipeline() -> Pipeline:
    """Process-wide pipeline with the built-in bank formats and default config"""
    global _default_pipeline
    with _default_pipeline_lock:
        if _default_pipeline is None:
            _default_pipeline = Pipeline()
        return _default_pipeline


def parse(filename: str, rows: Iterable[RowInput], headers: Optional[Sequence[str]] = None) -> ParseResult:
    return get_default_pipeline().parse(filename, rows, headers)


def classify(transactions: Sequence[NormalizedTransaction]) -> List[ClassifiedTransaction]:
    return get_default_pipeline().classify(transactions)


def classify_batch(transactions: Sequence[NormalizedTransaction]) -> Tuple[List[ClassifiedTransaction], List[ReversalPair]]:
    """Classify and return ``(classified, reversal_pairs)``"""
    return get_default_pipeline().classifier.classify_batch(transactions)


def deduplicate(candidates: Iterable[NormalizedTransaction],
                existing_signatures: Optional[Set[str]] = None) -> List[NormalizedTransaction]:
    return get_default_pipeline().deduplicate(candidates, existing_signatures)


def aggregate(transactions: Sequence[ClassifiedTransaction], month: str) -> MonthlyBudget:
    return get_default_pipeline().aggregate(transactions, month)


def recommend(budgets: Sequence[MonthlyBudget],
              disposable_income: Optional[Decimal] = None) -> List[SmartGoal]:
    return get_default_pipeline().recommend(budgets, disposable_income)


def register_bank_config(config: Union[BankConfig, Mapping[str, Any]]) -> None:
    get_default_pipeline().register_bank_config(config)


__all__ = [
    'Pipeline', 'get_default_pipeline', 'parse', 'classify', 'classify_batch',
    'deduplicate', 'aggregate', 'recommend', 'register_bank_config',
]
