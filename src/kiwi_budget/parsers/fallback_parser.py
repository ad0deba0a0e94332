"""Last-resort parser that guesses each cell's role from its shape."""

import logging
from decimal import Decimal
from typing import List, Optional

from ..models.core import ConfidenceTier, NormalizedTransaction, ParseResult
from ..utils.error_handler import IssueLog, RowParseError
from .base import (
    ParseContext, RawRow, RowParser, looks_like_amount, looks_like_date, parse_amount,
)

logger = logging.getLogger(__name__)

FALLBACK_WARNING = "Used basic fallback parser - results may be incomplete"


class PositionalStrategy(RowParser):
    """Scans each row left to right: first date-like cell is the date, first
    non-zero numeric cell is the amount, remaining text is the description."""

    name = "positional"

    def attempt(self, rows: List[RawRow], context: ParseContext) -> Optional[ParseResult]:
        transactions, issues = self.parse_rows(rows, context)
        warnings = context.warnings + [FALLBACK_WARNING] + issues.messages()
        logger.warning(f"{context.filename}: {FALLBACK_WARNING}")
        return ParseResult(
            transactions=tuple(transactions),
            detected_bank=context.bank_config.name if context.bank_config else "Unknown",
            confidence=ConfidenceTier.LOW,
            warnings=tuple(warnings),
        )

    def parse_row(self, row: RawRow, context: ParseContext, row_number: int,
                  issues: IssueLog) -> NormalizedTransaction:
        ceiling = Decimal(str(context.config.amount_sanity_ceiling))
        raw_date = ''
        amount = Decimal('0')
        text_parts = []

        for value in row.values():
            if value is None or not str(value).strip():
                continue
            cell = str(value).strip()
            if not raw_date and looks_like_date(cell):
                raw_date = cell
            elif looks_like_amount(cell):
                candidate = parse_amount(cell)
                if not amount and candidate and abs(candidate) < ceiling:
                    amount = candidate
            else:
                text_parts.append(cell)

        txn_date = self.resolve_date(raw_date, context, row_number, issues)
        if not text_parts:
            raise RowParseError("Missing description", field_name='description')
        return self.build_transaction(amount, txn_date, ' '.join(text_parts), context, row)
