"""Shared field extraction and value normalization for statement parsers."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..models.core import BankConfig, NormalizedTransaction, ParseResult, PipelineConfig
from ..utils.error_handler import AmbiguousAmountError, IssueLog, RowParseError

logger = logging.getLogger(__name__)

RawRow = Dict[str, str]

MONTHS = r'(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)'

# Shapes used to spot date cells when the column role is unknown
DATE_SHAPES = (
    re.compile(r'^\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}$'),
    re.compile(r'^\d{4}[/\-.]\d{1,2}[/\-.]\d{1,2}([T ]\d{1,2}:\d{2}(:\d{2})?.*)?$'),
    re.compile(r'^\d{1,2}(st|nd|rd|th)?\s+' + MONTHS, re.IGNORECASE),
    re.compile(r'^' + MONTHS + r'[a-z]*\.?\s+\d{1,2}', re.IGNORECASE),
)

NUMERIC_SHAPE = re.compile(
    r'^\(?\s*[-+]?\s*(?:nzd\s*|nz)?[$£€¥₹]?\s*\(?\d[\d,.]*\)?\s*-?\s*(?:dr|cr)?\.?$',
    re.IGNORECASE
)

NAMED_MONTH_FORMATS = (
    "%d %B %Y", "%d %b %Y", "%d-%b-%Y", "%d %b %y", "%d-%b-%y",
    "%B %d, %Y", "%b %d, %Y", "%B %d %Y", "%b %d %Y",
)

_CENT = Decimal('0.01')

# Bounds for the year of a compact YYYYMMDD or DDMMYYYY date
MIN_YEAR = 1900
MAX_YEAR = 2100


def _has_value(value) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and value != value:  # NaN from pandas
        return False
    return str(value).strip() != ''


def extract_field(row: Mapping[str, str], aliases: Sequence[str], partial: bool = True) -> str:
    """Return the first non-empty value whose column matches one of ``aliases``.

    Matching runs in three passes over the aliases, in preference order:
    exact key, case-insensitive key, then substring containment in either
    direction. Substring matches ignore strings shorter than three
    characters so short codes such as ``DR`` do not match unrelated columns.

    Args:
        row: Mapping of column header to raw cell value
        aliases: Candidate column names, most preferred first
        partial: Whether to run the substring pass

    Returns:
        The stripped cell value, or an empty string when nothing matches
    """
    if not row or not aliases:
        return ""

    for alias in aliases:
        value = row.get(alias)
        if _has_value(value):
            return str(value).strip()

    lowered: Dict[str, object] = {}
    for key, value in row.items():
        norm = str(key).strip().lower()
        if norm not in lowered or not _has_value(lowered[norm]):
            lowered[norm] = value

    for alias in aliases:
        value = lowered.get(alias.strip().lower())
        if _has_value(value):
            return str(value).strip()

    if not partial:
        return ""

    for alias in aliases:
        needle = alias.strip().lower()
        for key, value in lowered.items():
            if not key or not _has_value(value):
                continue
            if (len(needle) >= 3 and needle in key) or (len(key) >= 3 and key in needle):
                return str(value).strip()

    return ""


def parse_amount(raw) -> Decimal:
    """Convert a raw amount cell into a signed Decimal rounded to cents.

    Handles currency symbols, thousands separators (US and European),
    accounting parentheses, leading or trailing minus signs and trailing
    ``DR``/``CR`` markers. Anything unparseable yields ``Decimal('0')``.
    """
    if not _has_value(raw):
        return Decimal('0')

    text = str(raw).strip()
    is_negative = False

    marker = re.search(r'\s*(DR|CR)\.?$', text, re.IGNORECASE)
    if marker:
        is_negative = marker.group(1).upper() == 'DR'
        text = text[:marker.start()].strip()

    # Remove common currency symbols, codes and whitespace
    cleaned = re.sub(r'(?i)nzd|nz', '', text)
    cleaned = re.sub(r'[\$£€¥₹\s]', '', cleaned)

    if cleaned.startswith('-(') and cleaned.endswith(')'):
        cleaned = cleaned[2:-1]
        is_negative = True
    elif cleaned.startswith('(') and cleaned.endswith(')'):
        cleaned = cleaned[1:-1]
        is_negative = True

    if cleaned.startswith('-'):
        is_negative = True
        cleaned = cleaned[1:]
    elif cleaned.endswith('-'):
        is_negative = True
        cleaned = cleaned[:-1]
    if cleaned.startswith('+'):
        cleaned = cleaned[1:]

    # European format: 1.234,56 -> 1234.56
    if re.match(r'^\d{1,3}(\.\d{3})+,\d{1,2}$', cleaned):
        cleaned = cleaned.replace('.', '').replace(',', '.')
    elif ',' in cleaned and '.' in cleaned:
        if cleaned.rfind(',') < cleaned.rfind('.'):
            cleaned = cleaned.replace(',', '')
    elif ',' in cleaned:
        # A lone comma followed by two digits is a decimal separator
        if re.match(r'^\d+,\d{2}$', cleaned):
            cleaned = cleaned.replace(',', '.')
        else:
            cleaned = cleaned.replace(',', '')

    if not re.match(r'^\d*\.?\d+$|^\d+\.$', cleaned):
        logger.debug(f"Unparseable amount {raw!r}")
        return Decimal('0')

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        logger.debug(f"Unparseable amount {raw!r}")
        return Decimal('0')

    if is_negative:
        amount = -amount
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def looks_like_amount(raw) -> bool:
    """True when a cell has the shape of a monetary value"""
    return _has_value(raw) and bool(NUMERIC_SHAPE.match(str(raw).strip()))


def looks_like_date(raw) -> bool:
    """True when a cell has the shape of a date"""
    if not _has_value(raw):
        return False
    text = str(raw).strip()
    return any(shape.match(text) for shape in DATE_SHAPES)


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    # date() rejects impossible days such as 31 February
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _expand_year(year: int) -> int:
    if year < 100:
        return 1900 + year if year > 50 else 2000 + year
    return year


def _plausible_year(year: int) -> bool:
    return MIN_YEAR <= year <= MAX_YEAR


def normalize_date(raw) -> Optional[date]:
    """Convert a raw date cell into a calendar date.

    Tries ISO (``YYYY-MM-DD``, optionally with a time part), ``DD/MM/YYYY``,
    ``MM/DD/YYYY`` when the first number cannot be a month, two-digit year
    variants, compact ``YYYYMMDD``/``DDMMYYYY`` and named-month forms.

    Returns:
        The parsed date, or None when the value is not a valid date
    """
    if not _has_value(raw):
        return None

    text = str(raw).strip()

    iso = re.match(r'^(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})(?:[T ].*)?$', text)
    if iso:
        return _build_date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))

    numeric = re.match(r'^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2}|\d{4})(?:\s+\d{1,2}:\d{2}.*)?$', text)
    if numeric:
        first, second = int(numeric.group(1)), int(numeric.group(2))
        year = _expand_year(int(numeric.group(3)))
        parsed = _build_date(year, second, first)
        if parsed is None and first <= 12:
            parsed = _build_date(year, first, second)
        return parsed

    if re.match(r'^\d{8}$', text):
        parsed = None
        if _plausible_year(int(text[:4])):
            parsed = _build_date(int(text[:4]), int(text[4:6]), int(text[6:]))
        if parsed is None and _plausible_year(int(text[4:])):
            parsed = _build_date(int(text[4:]), int(text[2:4]), int(text[:2]))
        return parsed

    cleaned = re.sub(r'(\d+)(st|nd|rd|th)\b', r'\1', text, flags=re.IGNORECASE)
    cleaned = ' '.join(cleaned.replace('.', ' ').split()).replace(' ,', ',')
    for fmt in NAMED_MONTH_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue

    logger.debug(f"Unparseable date {raw!r}")
    return None


def clean_description(description: str, max_length: int = 255) -> str:
    """Collapse whitespace and truncate a description"""
    if not description:
        return ""
    cleaned = ' '.join(str(description).split())
    return cleaned[:max_length].rstrip()


@dataclass
class ParseContext:
    """State shared by the strategies while parsing one file"""
    filename: str
    headers: List[str]
    config: PipelineConfig
    bank_config: Optional[BankConfig] = None
    column_mapping: Optional[Any] = None
    warnings: List[str] = field(default_factory=list)


class ParsingStrategy(ABC):
    """One step of the parsing fallback chain"""

    name = "strategy"

    @abstractmethod
    def attempt(self, rows: List[RawRow], context: ParseContext) -> Optional[ParseResult]:
        """Parse rows, returning None when the strategy does not apply"""
        pass


class RowParser(ParsingStrategy):
    """Strategy that converts rows one at a time, skipping rows that fail.

    Subclasses implement ``parse_row``; a row that raises ``RowParseError`` is
    skipped and recorded, so a bad row never aborts the file.
    """

    @abstractmethod
    def parse_row(self, row: RawRow, context: ParseContext, row_number: int,
                  issues: IssueLog) -> NormalizedTransaction:
        pass

    def parse_rows(self, rows: List[RawRow], context: ParseContext) -> Tuple[List[NormalizedTransaction], IssueLog]:
        issues = IssueLog(context.filename)
        transactions = []
        for index, row in enumerate(rows, start=1):
            try:
                transactions.append(self.parse_row(row, context, index, issues))
            except RowParseError as e:
                issues.row_failed(index, e)
        logger.debug(f"{self.name}: {len(transactions)} of {len(rows)} rows parsed from {context.filename}")
        return transactions, issues

    def resolve_date(self, raw: str, context: ParseContext, row_number: int,
                     issues: IssueLog) -> date:
        """Parse a date or, when allowed, fall back to today with a warning"""
        parsed = normalize_date(raw)
        if parsed is not None:
            return parsed
        if context.config.allow_date_fallback:
            issues.warn("Unparseable date, using today's date", row_number=row_number,
                        field_name='date', raw_value=raw or None)
            return date.today()
        raise RowParseError("Missing or invalid date", field_name='date', raw_value=raw or None)

    @staticmethod
    def resolve_debit_credit(debit_raw: str, credit_raw: str) -> Decimal:
        """Signed amount from separate debit and credit cells"""
        debit = abs(parse_amount(debit_raw))
        credit = abs(parse_amount(credit_raw))
        if debit and credit:
            raise AmbiguousAmountError(
                "Both debit and credit values present",
                field_name='amount', raw_value=f"debit={debit_raw}, credit={credit_raw}"
            )
        if debit:
            return -debit
        return credit

    @staticmethod
    def build_transaction(signed_amount: Decimal, txn_date: date, description: str,
                          context: ParseContext, row: RawRow,
                          merchant: Optional[str] = None,
                          source_bank: Optional[str] = None) -> NormalizedTransaction:
        """Create a transaction, moving the sign into ``is_income``"""
        if not signed_amount:
            raise RowParseError("Missing or zero amount", field_name='amount')
        return NormalizedTransaction(
            date=txn_date,
            description=clean_description(description, context.config.max_description_length),
            amount=abs(signed_amount),
            is_income=signed_amount > 0,
            merchant=clean_description(merchant) or None if merchant else None,
            source_bank=source_bank or (context.bank_config.name if context.bank_config else "Unknown"),
            raw_data={str(k): ('' if v is None else str(v)) for k, v in row.items()},
        )
