"""Parse rows using the column aliases of a detected bank format."""

import logging
from typing import List, Optional

from ..models.core import ConfidenceTier, NormalizedTransaction, ParseResult
from ..utils.error_handler import IssueLog, RowParseError
from .base import ParseContext, RawRow, RowParser, extract_field, parse_amount

logger = logging.getLogger(__name__)


class ConfigStrategy(RowParser):
    """Extracts fields through a bank config's column aliases.

    Applies only when detection found a config. The description is the
    description column joined with the reference column by `` - ``.
    """

    name = "config"

    def attempt(self, rows: List[RawRow], context: ParseContext) -> Optional[ParseResult]:
        if context.bank_config is None:
            return None

        transactions, issues = self.parse_rows(rows, context)
        if not transactions:
            logger.info(f"Bank format {context.bank_config.name} produced no transactions "
                        f"for {context.filename}")
            return None

        return ParseResult(
            transactions=tuple(transactions),
            detected_bank=context.bank_config.name,
            confidence=ConfidenceTier.HIGH,
            warnings=tuple(context.warnings + issues.messages()),
        )

    def parse_row(self, row: RawRow, context: ParseContext, row_number: int,
                  issues: IssueLog) -> NormalizedTransaction:
        config = context.bank_config

        description = extract_field(row, config.description)
        if not description:
            raise RowParseError("Missing description", field_name='description')
        reference = extract_field(row, config.reference)
        if reference and reference != description:
            description = f"{description} - {reference}"

        txn_date = self.resolve_date(extract_field(row, config.date), context, row_number, issues)

        # "Amount" would otherwise match "DR Amount" or "Debit Amount" by substring
        split_columns = bool(config.debit or config.credit)
        amount = parse_amount(extract_field(row, config.amount, partial=not split_columns))
        if not amount:
            amount = self.resolve_debit_credit(
                extract_field(row, config.debit),
                extract_field(row, config.credit),
            )

        merchant = extract_field(row, config.merchant) or None
        return self.build_transaction(amount, txn_date, description, context, row,
                                      merchant=merchant, source_bank=config.name)
