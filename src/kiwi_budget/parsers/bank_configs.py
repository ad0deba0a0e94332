"""Registry of known bank export formats and format detection."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from ..models.core import BankConfig

logger = logging.getLogger(__name__)


DEFAULT_BANK_CONFIGS: Tuple[BankConfig, ...] = (
    BankConfig(
        name="ANZ",
        file_patterns=("anz", "anzbank"),
        header_patterns=("anz", "account", "balance"),
        content_patterns=("anz bank", "anz new zealand"),
        date=("Date", "Transaction Date", "Trans Date"),
        description=("Details", "Transaction Details", "Description"),
        amount=("Amount", "Transaction Amount"),
        balance=("Balance", "Account Balance"),
        reference=("Reference",),
    ),
    BankConfig(
        name="ASB",
        file_patterns=("asb", "asbbank"),
        header_patterns=("asb", "particulars", "analysis"),
        content_patterns=("asb bank", "auckland savings bank"),
        date=("Date", "Transaction Date", "Processed Date"),
        description=("Particulars", "Details", "Other Party"),
        amount=("Amount",),
        reference=("Reference", "Analysis Code", "Code"),
        merchant=("Other Party", "Payee"),
    ),
    BankConfig(
        name="Westpac",
        file_patterns=("westpac", "westpacbank"),
        header_patterns=("westpac", "transaction details"),
        content_patterns=("westpac", "westpac new zealand"),
        date=("Date", "Transaction Date"),
        description=("Transaction Details", "Description", "Narrative"),
        amount=("Amount", "Credit/Debit Amount"),
        balance=("Balance", "Running Balance"),
    ),
    BankConfig(
        name="Kiwibank",
        file_patterns=("kiwibank", "kiwi"),
        header_patterns=("kiwibank", "payee", "memo"),
        content_patterns=("kiwibank", "kiwibank limited"),
        date=("Date", "Transaction Date", "Date Processed"),
        description=("Payee", "Description", "Memo", "Transaction Type"),
        amount=("Amount",),
        debit=("Debit", "Money Out"),
        credit=("Credit", "Money In"),
        merchant=("Payee",),
    ),
    BankConfig(
        name="BNZ",
        file_patterns=("bnz", "bnzbank"),
        header_patterns=("bnz", "particulars", "code", "reference"),
        content_patterns=("bnz", "bank of new zealand"),
        date=("Date", "Transaction Date", "Process Date"),
        description=("Particulars", "Transaction Type", "Description"),
        amount=("Amount", "Value"),
        reference=("Reference", "Other Party", "Code"),
        merchant=("Payee", "Other Party"),
    ),
    BankConfig(
        name="TSB",
        file_patterns=("tsb", "tsbbank"),
        header_patterns=("tsb", "transaction", "narrative"),
        content_patterns=("tsb bank", "taranaki savings bank"),
        date=("Date", "Transaction Date", "Value Date"),
        description=("Description", "Narrative", "Details"),
        amount=("Amount", "Transaction Amount"),
        debit=("Debit Amount", "DR"),
        credit=("Credit Amount", "CR"),
    ),
    BankConfig(
        name="Rabobank",
        file_patterns=("rabobank", "rabo"),
        header_patterns=("rabobank", "description", "debit/credit"),
        content_patterns=("rabobank",),
        date=("Date", "Transaction Date", "Booking Date"),
        description=("Description", "Narrative", "Transaction Details"),
        amount=("Amount",),
        debit=("Debit",),
        credit=("Credit",),
        balance=("Balance",),
    ),
    BankConfig(
        name="Co-operative Bank",
        file_patterns=("cooperative", "co-op", "coop"),
        header_patterns=("co-operative", "narrative", "transaction"),
        content_patterns=("co-operative bank", "the co-operative bank"),
        date=("Date", "Transaction Date"),
        description=("Narrative", "Description", "Transaction Details"),
        debit=("Debit", "Withdrawals"),
        credit=("Credit", "Deposits"),
        balance=("Balance",),
    ),
    BankConfig(
        name="SBS Bank",
        file_patterns=("sbs", "sbsbank"),
        header_patterns=("sbs", "transaction", "description"),
        content_patterns=("sbs bank", "southland building society"),
        date=("Date", "Trans Date", "Transaction Date"),
        description=("Description", "Transaction", "Details"),
        amount=("Amount", "Transaction Amount"),
        balance=("Balance", "Running Balance"),
    ),
    BankConfig(
        name="Heartland Bank",
        file_patterns=("heartland", "heartlandbank"),
        header_patterns=("heartland", "description", "value"),
        content_patterns=("heartland bank", "heartland"),
        date=("Date", "Transaction Date", "Posted Date"),
        description=("Description", "Transaction Details", "Merchant"),
        amount=("Amount", "Value"),
        debit=("Debit", "DR Amount"),
        credit=("Credit", "CR Amount"),
        merchant=("Merchant",),
    ),
)


class BankFormatRegistry:
    """Thread-safe, ordered collection of bank formats.

    Reads return snapshots so detection never observes a half-applied
    update. Registering a config whose name already exists (case-insensitive)
    replaces it in place, keeping its original position.
    """

    def __init__(self, configs: Optional[Iterable[BankConfig]] = None):
        self._lock = threading.RLock()
        self._configs: List[BankConfig] = []
        for config in (DEFAULT_BANK_CONFIGS if configs is None else configs):
            self.register(config)

    def register(self, config: BankConfig) -> None:
        """Add a bank format, or replace the one with the same name"""
        if not config.name or not config.name.strip():
            raise ValueError("Bank config name cannot be empty")
        key = config.name.strip().lower()
        with self._lock:
            for index, existing in enumerate(self._configs):
                if existing.name.strip().lower() == key:
                    self._configs[index] = config
                    logger.info(f"Replaced bank format: {config.name}")
                    return
            self._configs.append(config)
            logger.debug(f"Registered bank format: {config.name}")

    def get(self, name: str) -> Optional[BankConfig]:
        key = name.strip().lower()
        for config in self.snapshot():
            if config.name.lower() == key:
                return config
        return None

    def snapshot(self) -> Tuple[BankConfig, ...]:
        """Immutable copy of the configs in registration order"""
        with self._lock:
            return tuple(self._configs)

    def names(self) -> List[str]:
        return [config.name for config in self.snapshot()]

    def __len__(self) -> int:
        return len(self.snapshot())

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of matching a file against the registry"""
    config: Optional[BankConfig]
    matched_by: Optional[str] = None
    candidates: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = field(default=())

    @property
    def matched(self) -> bool:
        return self.config is not None


class BankFormatDetector:
    """Matches a file to a bank format by filename, then headers, then content.

    Each check runs as a separate pass over every registered config. Within a
    pass the config matching the most patterns wins; equal scores go to the
    earliest registered config and are reported as an ambiguity warning.
    """

    def __init__(self, registry: BankFormatRegistry):
        self.registry = registry

    def detect(self, filename: str, headers: Sequence[str],
               sample_rows: Sequence[Mapping[str, str]] = ()) -> DetectionResult:
        configs = self.registry.snapshot()

        haystacks = (
            ('filename', (filename or '').lower(), lambda c: c.file_patterns),
            ('headers', ' '.join(str(h) for h in headers).lower(), lambda c: c.header_patterns),
            ('content', self._first_row_text(sample_rows), lambda c: c.content_patterns),
        )

        for pass_name, text, patterns_of in haystacks:
            if not text:
                continue
            scored = []
            for config in configs:
                score = sum(1 for pattern in patterns_of(config) if pattern and pattern.lower() in text)
                if score:
                    scored.append((score, config))
            if not scored:
                continue

            best_score = max(score for score, _ in scored)
            best = [config for score, config in scored if score == best_score]
            winner = best[0]
            warnings: Tuple[str, ...] = ()
            if len(best) > 1:
                names = ', '.join(c.name for c in best)
                message = (f"Ambiguous bank format: {pass_name} match {names}; "
                           f"using {winner.name}")
                logger.warning(f"{filename}: {message}")
                warnings = (message,)

            logger.info(f"Detected bank format {winner.name} for {filename} by {pass_name}")
            return DetectionResult(
                config=winner,
                matched_by=pass_name,
                candidates=tuple(c.name for c in best),
                warnings=warnings,
            )

        logger.info(f"No bank format matched {filename}")
        return DetectionResult(config=None)

    @staticmethod
    def _first_row_text(sample_rows: Sequence[Mapping[str, str]]) -> str:
        if not sample_rows:
            return ''
        first = sample_rows[0]
        return ' '.join(str(v) for v in first.values() if v is not None).lower()
