"""Infer column roles from header names when no bank format matches."""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from ..models.core import ConfidenceTier, NormalizedTransaction, ParseResult
from ..utils.error_handler import IssueLog, RowParseError
from .base import (
    ParseContext, RawRow, RowParser, looks_like_amount, looks_like_date,
    normalize_date, parse_amount,
)

logger = logging.getLogger(__name__)


def normalize_header(header: str) -> str:
    """Lowercase and keep only letters and digits"""
    return re.sub(r'[^a-z0-9]', '', str(header).lower())


# Keyword families for header classification
COLUMN_PATTERNS: Dict[str, List[str]] = {
    'date': [
        'date', 'transaction date', 'trans date', 'posting date', 'processed date',
        'value date', 'txn date', 'transaction_date', 'trans_date', 'datetime',
    ],
    'description': [
        'description', 'details', 'particulars', 'transaction details', 'memo',
        'narrative', 'merchant', 'payee', 'transaction', 'trans details',
        'payment details', 'transaction_description', 'desc', 'trans_desc',
    ],
    'amount': [
        'amount', 'value', 'transaction amount', 'trans amount', 'txn amount',
        'payment', 'sum', 'total', 'transaction_amount', 'trans_amt',
    ],
    'debit': [
        'debit', 'withdrawal', 'money out', 'outgoing', 'expense', 'payment out',
        'debit_amount', 'debit_amt', 'withdrawals', 'debits',
    ],
    'credit': [
        'credit', 'deposit', 'money in', 'incoming', 'income', 'payment in',
        'credit_amount', 'credit_amt', 'deposits', 'credits',
    ],
    'balance': [
        'balance', 'running balance', 'closing balance', 'available balance',
        'current balance', 'account balance', 'bal', 'running_balance',
    ],
    'reference': [
        'reference', 'ref', 'transaction ref', 'reference number', 'ref no',
        'transaction_ref', 'trans_ref', 'code', 'analysis code',
    ],
}

# Description is the catch-all family, so it loses ties
FAMILY_PRIORITY = ('date', 'amount', 'debit', 'credit', 'balance', 'reference', 'description')

MERCHANT_HEADERS = ('merchant', 'payee', 'otherparty', 'merchantname')

_NORMALIZED_PATTERNS = {
    family: [normalize_header(keyword) for keyword in keywords]
    for family, keywords in COLUMN_PATTERNS.items()
}


@dataclass
class ColumnMapping:
    """Header names assigned to each column role"""
    date: List[str] = field(default_factory=list)
    description: List[str] = field(default_factory=list)
    amount: List[str] = field(default_factory=list)
    debit: List[str] = field(default_factory=list)
    credit: List[str] = field(default_factory=list)
    balance: List[str] = field(default_factory=list)
    reference: List[str] = field(default_factory=list)
    merchant: List[str] = field(default_factory=list)

    def assigned(self) -> List[str]:
        return (self.date + self.description + self.amount + self.debit
                + self.credit + self.balance + self.reference)


def score_header(header: str, keyword: str) -> int:
    """Score how well a normalized header matches a normalized keyword"""
    if not header or not keyword:
        return 0
    if header == keyword:
        return 1000
    if keyword in header:
        return len(keyword)
    if len(header) >= 3 and header in keyword:
        return len(header)
    return 0


def build_column_mapping(headers: List[str]) -> ColumnMapping:
    """Assign each header to the keyword family it matches best.

    Families left empty after scoring get positional defaults: column 0 for
    the date, 1 for the description and 2 for the amount, provided that
    column is still unassigned.
    """
    mapping = ColumnMapping()

    for header in headers:
        norm = normalize_header(header)
        best_family, best_score = None, 0
        for family in FAMILY_PRIORITY:
            score = max((score_header(norm, kw) for kw in _NORMALIZED_PATTERNS[family]), default=0)
            if score > best_score:
                best_family, best_score = family, score
        if best_family:
            getattr(mapping, best_family).append(header)
            logger.debug(f"Column {header!r} mapped to {best_family} (score {best_score})")
        if norm in MERCHANT_HEADERS:
            mapping.merchant.append(header)

    taken = set(mapping.assigned())
    positional = (('date', 0), ('description', 1), ('amount', 2))
    for family, index in positional:
        if getattr(mapping, family) or index >= len(headers):
            continue
        if family == 'amount' and (mapping.debit or mapping.credit):
            continue
        header = headers[index]
        if header in taken:
            continue
        getattr(mapping, family).append(header)
        taken.add(header)
        logger.debug(f"Column {header!r} mapped to {family} by position")

    return mapping


class IntelligentStrategy(RowParser):
    """Parses rows through a column mapping inferred from header keywords.

    Confidence is ``medium`` when a bank format was detected but could not
    parse the file, otherwise ``low``.
    """

    name = "intelligent"

    def attempt(self, rows: List[RawRow], context: ParseContext) -> Optional[ParseResult]:
        context.column_mapping = build_column_mapping(context.headers)
        transactions, issues = self.parse_rows(rows, context)
        if not transactions:
            return None

        confidence = ConfidenceTier.MEDIUM if context.bank_config else ConfidenceTier.LOW
        return ParseResult(
            transactions=tuple(transactions),
            detected_bank=context.bank_config.name if context.bank_config else "Unknown",
            confidence=confidence,
            warnings=tuple(context.warnings + issues.messages()),
        )

    def parse_row(self, row: RawRow, context: ParseContext, row_number: int,
                  issues: IssueLog) -> NormalizedTransaction:
        mapping = context.column_mapping

        raw_date = self._first_value(row, mapping.date)
        if not raw_date or normalize_date(raw_date) is None:
            raw_date = next((str(v).strip() for v in row.values() if looks_like_date(v)), raw_date)
        txn_date = self.resolve_date(raw_date, context, row_number, issues)

        amount = self._extract_amount(row, mapping, context)
        description = self._extract_description(row, mapping)
        merchant = self._first_value(row, mapping.merchant) or None
        if not description:
            description = merchant or ''
        if not description:
            raise RowParseError("Missing description", field_name='description')

        return self.build_transaction(amount, txn_date, description, context, row,
                                      merchant=merchant)

    def _extract_description(self, row: RawRow, mapping: ColumnMapping) -> str:
        parts = self._values(row, mapping.description)
        if not parts:
            parts = self._values(row, mapping.reference)
        if not parts:
            parts = [
                str(v).strip() for v in row.values()
                if v is not None and str(v).strip()
                and not looks_like_amount(v) and not looks_like_date(v)
            ]
        return ' '.join(parts)

    def _extract_amount(self, row: RawRow, mapping: ColumnMapping, context: ParseContext) -> Decimal:
        for column in mapping.amount:
            amount = parse_amount(row.get(column))
            if amount:
                return amount

        if mapping.debit or mapping.credit:
            amount = self.resolve_debit_credit(
                self._first_value(row, mapping.debit),
                self._first_value(row, mapping.credit),
            )
            if amount:
                return amount

        ceiling = Decimal(str(context.config.amount_sanity_ceiling))
        skip = set(mapping.balance) | set(mapping.date)
        for column, value in row.items():
            if column in skip or looks_like_date(value) or not looks_like_amount(value):
                continue
            amount = parse_amount(value)
            if amount and abs(amount) < ceiling:
                return amount

        raise RowParseError("No amount found", field_name='amount')

    @staticmethod
    def _values(row: RawRow, columns: List[str]) -> List[str]:
        return [str(row[c]).strip() for c in columns
                if row.get(c) is not None and str(row[c]).strip()]

    @classmethod
    def _first_value(cls, row: RawRow, columns: List[str]) -> str:
        values = cls._values(row, columns)
        return values[0] if values else ''
