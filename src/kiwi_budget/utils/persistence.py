"""Persistence providers for accepted transactions and their signatures."""

import json
import logging
import re
import threading
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set

from ..models.core import ClassifiedTransaction
from .duplicate_detector import transaction_signature
from .error_handler import PersistenceError

logger = logging.getLogger(__name__)


def transaction_to_record(transaction: ClassifiedTransaction, signature: str) -> Dict[str, Any]:
    """Convert to a JSON-serializable dictionary"""
    return {
        'signature': signature,
        'date': transaction.date.isoformat(),
        'description': transaction.description,
        'amount': str(transaction.amount),
        'is_income': transaction.is_income,
        'merchant': transaction.merchant,
        'source_bank': transaction.source_bank,
        'tags': list(transaction.tags),
        'category': transaction.category,
        'subcategory': transaction.subcategory,
        'is_transfer': transaction.is_transfer,
        'is_reversal': transaction.is_reversal,
        'is_credit': transaction.is_credit,
        'confidence': transaction.confidence,
        'paired_with': transaction.paired_with,
    }


def record_to_transaction(record: Dict[str, Any]) -> ClassifiedTransaction:
    return ClassifiedTransaction(
        date=date.fromisoformat(record['date']),
        description=record['description'],
        amount=Decimal(record['amount']),
        is_income=bool(record['is_income']),
        merchant=record.get('merchant'),
        source_bank=record.get('source_bank', 'Unknown'),
        tags=tuple(record.get('tags') or ()),
        category=record['category'],
        subcategory=record.get('subcategory'),
        is_transfer=bool(record.get('is_transfer', False)),
        is_reversal=bool(record.get('is_reversal', False)),
        is_credit=bool(record.get('is_credit', record['is_income'])),
        confidence=float(record.get('confidence', 0.0)),
        paired_with=record.get('paired_with'),
    )


class PersistenceProvider(ABC):
    """Supplies stored signatures and accepts newly classified transactions"""

    def __init__(self, normalize_case: bool = True):
        self.normalize_case = normalize_case

    def signature(self, transaction: ClassifiedTransaction) -> str:
        return transaction_signature(transaction, self.normalize_case)

    @abstractmethod
    def existing_signatures(self, user_id: str, start: Optional[date] = None,
                            end: Optional[date] = None) -> Set[str]:
        """Signatures of stored transactions dated within [start, end]"""
        pass

    @abstractmethod
    def save(self, user_id: str, transactions: Sequence[ClassifiedTransaction]) -> None:
        pass

    @abstractmethod
    def load(self, user_id: str) -> List[ClassifiedTransaction]:
        pass


class InMemoryPersistence(PersistenceProvider):
    """Process-local store, mainly for tests and one-off runs"""

    def __init__(self, normalize_case: bool = True):
        super().__init__(normalize_case)
        self._lock = threading.Lock()
        self._records: Dict[str, List[Dict[str, Any]]] = {}

    def existing_signatures(self, user_id: str, start: Optional[date] = None,
                            end: Optional[date] = None) -> Set[str]:
        with self._lock:
            records = list(self._records.get(user_id, []))
        return _signatures_in_range(records, start, end)

    def save(self, user_id: str, transactions: Sequence[ClassifiedTransaction]) -> None:
        records = [transaction_to_record(t, self.signature(t)) for t in transactions]
        with self._lock:
            self._records.setdefault(user_id, []).extend(records)
        logger.debug(f"Stored {len(records)} transactions for {user_id}")

    def load(self, user_id: str) -> List[ClassifiedTransaction]:
        with self._lock:
            records = list(self._records.get(user_id, []))
        return [record_to_transaction(r) for r in records]


class JsonFilePersistence(PersistenceProvider):
    """Stores each user's transactions in a JSON file under the state directory.

    Args:
        state_directory: Directory holding ``transactions_<user>.json`` files
        normalize_case: Lowercase descriptions when building signatures
    """

    def __init__(self, state_directory: str = ".kiwi_budget_state", normalize_case: bool = True):
        super().__init__(normalize_case)
        self.state_directory = Path(state_directory)
        self._lock = threading.Lock()

    def _state_file(self, user_id: str) -> Path:
        safe = re.sub(r'[^A-Za-z0-9_.-]', '_', user_id) or 'default'
        return self.state_directory / f"transactions_{safe}.json"

    def _read(self, user_id: str) -> List[Dict[str, Any]]:
        state_file = self._state_file(user_id)
        if not state_file.exists():
            return []
        try:
            with open(state_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return list(data.get('transactions', []))
        except (OSError, ValueError, AttributeError) as e:
            raise PersistenceError(f"Failed to load transaction state {state_file}: {e}") from e

    def existing_signatures(self, user_id: str, start: Optional[date] = None,
                            end: Optional[date] = None) -> Set[str]:
        with self._lock:
            records = self._read(user_id)
        return _signatures_in_range(records, start, end)

    def save(self, user_id: str, transactions: Sequence[ClassifiedTransaction]) -> None:
        if not transactions:
            return
        with self._lock:
            records = self._read(user_id)
            records.extend(transaction_to_record(t, self.signature(t)) for t in transactions)
            state_data = {
                'last_updated': datetime.now().isoformat(),
                'transactions': records,
            }
            try:
                self.state_directory.mkdir(parents=True, exist_ok=True)
                with open(self._state_file(user_id), 'w', encoding='utf-8') as f:
                    json.dump(state_data, f, indent=2)
            except OSError as e:
                raise PersistenceError(f"Failed to save transaction state: {e}") from e
        logger.info(f"Saved {len(transactions)} transactions for {user_id} "
                    f"to {self._state_file(user_id)}")

    def load(self, user_id: str) -> List[ClassifiedTransaction]:
        with self._lock:
            records = self._read(user_id)
        try:
            return [record_to_transaction(r) for r in records]
        except (KeyError, ValueError, InvalidOperation) as e:
            raise PersistenceError(f"Corrupt transaction record for {user_id}: {e}") from e


def _signatures_in_range(records: List[Dict[str, Any]], start: Optional[date],
                         end: Optional[date]) -> Set[str]:
    signatures = set()
    for record in records:
        if start or end:
            record_date = date.fromisoformat(record['date'])
            if start and record_date < start:
                continue
            if end and record_date > end:
                continue
        signatures.add(record['signature'])
    return signatures
