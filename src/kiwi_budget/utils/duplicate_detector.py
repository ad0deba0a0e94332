"""Transaction duplicate detection against stored and in-batch signatures."""

import logging
from collections.abc import Set as AbstractSet
from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple, TypeVar

from ..models.core import NormalizedTransaction

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=NormalizedTransaction)


def transaction_signature(transaction: NormalizedTransaction, normalize_case: bool = True) -> str:
    """Build the ``date|description|amount`` signature of a transaction.

    Args:
        transaction: Transaction to sign
        normalize_case: Lowercase and whitespace-collapse the description

    Returns:
        Signature string, e.g. ``2024-05-15|uber eats|22.40``
    """
    description = transaction.description or ''
    if normalize_case:
        description = ' '.join(description.split()).lower()
    return f"{transaction.date.isoformat()}|{description}|{transaction.amount:.2f}"


class DuplicateDetector:
    """Filters out transactions already accepted, in storage or in the batch.

    Matching is exact on signatures; fuzzy matching is left to reversal
    pairing, which has different semantics.
    """

    def __init__(self, normalize_case: bool = True):
        """
        Initialize duplicate detector

        Args:
            normalize_case: Lowercase descriptions when building signatures
        """
        self.normalize_case = normalize_case

    def signature(self, transaction: NormalizedTransaction) -> str:
        return transaction_signature(transaction, self.normalize_case)

    def signatures(self, transactions: Iterable[NormalizedTransaction]) -> Set[str]:
        return {self.signature(t) for t in transactions}

    def deduplicate(self, candidates: Iterable[T], existing_signatures: Optional[AbstractSet] = None) -> List[T]:
        """Return candidates whose signature is neither stored nor seen earlier in the batch"""
        unique, _ = self.deduplicate_transactions(candidates, existing_signatures)
        return unique

    def deduplicate_transactions(self, candidates: Iterable[T],
                                 existing_signatures: Optional[AbstractSet] = None) -> Tuple[List[T], Dict[str, int]]:
        """
        Remove duplicates, keeping the first occurrence in batch order

        Args:
            candidates: Transactions to check, in batch order
            existing_signatures: Signatures of already-persisted transactions

        Returns:
            Tuple of (unique transactions, statistics dictionary)
        """
        existing = existing_signatures if existing_signatures is not None else frozenset()
        seen: Set[str] = set()
        unique: List[T] = []
        stats = {
            'total_candidates': 0,
            'existing_duplicates': 0,
            'batch_duplicates': 0,
            'unique_transactions': 0,
        }

        for transaction in candidates:
            stats['total_candidates'] += 1
            signature = self.signature(transaction)
            if signature in existing:
                stats['existing_duplicates'] += 1
                continue
            if signature in seen:
                stats['batch_duplicates'] += 1
                continue
            seen.add(signature)
            unique.append(transaction)

        stats['unique_transactions'] = len(unique)
        logger.info(f"Deduplicated {stats['total_candidates']} transactions: "
                    f"{stats['existing_duplicates']} already stored, "
                    f"{stats['batch_duplicates']} repeated in batch, "
                    f"{stats['unique_transactions']} unique")
        return unique, stats

    def find_duplicate_groups(self, transactions: Iterable[T]) -> Dict[str, List[T]]:
        """Group transactions sharing a signature, keeping only groups of two or more"""
        groups: Dict[str, List[T]] = {}
        for transaction in transactions:
            groups.setdefault(self.signature(transaction), []).append(transaction)
        return {sig: txns for sig, txns in groups.items() if len(txns) > 1}

    @staticmethod
    def date_range(transactions: Iterable[NormalizedTransaction]) -> Optional[Tuple[date, date]]:
        """Earliest and latest date in a batch, used to scope stored-signature lookups"""
        dates = [t.date for t in transactions]
        if not dates:
            return None
        return min(dates), max(dates)
