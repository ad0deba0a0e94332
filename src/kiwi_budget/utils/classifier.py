"""Rule-based transaction classification and reversal-pair detection.

Each transaction is checked against ordered pattern families and the first
match wins:

1. reversal keywords (refund, chargeback, ...)
2. transfer keywords, NZ account numbers and bank metadata
3. income families for money in, expense families for money out

Reversal pairs (a charge and its refund within a few days) are found across
the whole batch before per-transaction classification, and both members are
marked as reversals so they drop out of budget totals.
"""

import logging
import re
from dataclasses import dataclass, fields
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from ..models.core import (
    CategorySuggestion, ClassifiedTransaction, ExpenseType, IncomeType,
    NormalizedTransaction, PipelineConfig, ReversalPair, TransactionCategory,
)
from ..parsers.base import extract_field
from .duplicate_detector import transaction_signature
from .similarity import is_similar

logger = logging.getLogger(__name__)


def _compile(patterns: Sequence[str]) -> List[Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


NZ_ACCOUNT_NUMBER = re.compile(r'\d{2}-\d{4}-\d{7}-\d{2,3}')

REVERSAL_PATTERNS = _compile([
    r'\breversal\b', r'\breverse\b', r'\brefund\b', r'\bcorrection\b',
    r'\bcancelled\b', r'\bfailed.*payment\b', r'\breturned.*payment\b',
    r'\bvoid\b', r'\bdispute\b', r'\bchargeback\b', r'\bauth.*reversal',
    r'\bwrongly.*charged',
])

TRANSFER_PATTERNS = _compile([
    r'\btransfer\b', r'\btrf\b', r'\bxfer\b',
    r'internal.*transfer', r'between.*accounts', r'\bown\s+accounts?\b',
    r'account.*to.*account', r'savings.*transfer', r'from.*savings.*to',
    r'to.*savings.*from', r'loan.*advance', r'balance.*transfer',
    r'automatic.*payment.*internal', r'\bap\s+\d+.*transfer',
    r'internet.*banking.*transfer', r'online.*transfer',
    r'move.*money', r'funds.*transfer', r'account.*movement',
])

# Only count as a transfer when the amount is large and round
WEAK_TRANSFER_PATTERNS = _compile([
    r'\bsavings\b', r'\bkiwisaver\b', r'\bto\s+account\b', r'\bfrom\s+account\b',
    r'\bautomatic\s+payment\b', r'\bap\s*#?\d+',
])

INCOME_PATTERNS: Dict[IncomeType, List[Pattern]] = {
    IncomeType.SALARY: _compile([
        r'\bsalary\b', r'\bwages?\b', r'\bpayroll\b', r'\bemployer\b',
        r'\bpay.*period\b', r'\bnet.*pay\b', r'\bgross.*pay\b',
        r'\bfortnightly.*pay\b', r'\bweekly.*pay\b', r'\bmonthly.*salary\b',
    ]),
    IncomeType.GOVERNMENT: _compile([
        r'\bird\b', r'working.*for.*families', r'accommodation.*supplement',
        r'\bbenefit\b', r'tax.*credit', r'\bwinz\b', r'\bmsd\b', r'\bstudylink\b',
        r'government.*payment', r'\bpension\b', r'superannuation',
        r'disability.*allowance', r'child.*support.*payment',
    ]),
    IncomeType.INVESTMENT: _compile([
        r'\bdividend\b', r'interest.*received', r'\bcredit\s+interest\b',
        r'\bcapital.*gain\b', r'investment.*return', r'\bsharesies\b',
        r'\bbond.*interest\b', r'\bterm.*deposit.*interest\b', r'\bmutual.*fund\b',
    ]),
    IncomeType.BUSINESS: _compile([
        r'\binvoice\b', r'payment.*received', r'\bfreelance\b',
        r'\bcontractor\b', r'client.*payment', r'trade.*income',
        r'\bbusiness.*income\b', r'\bconsulting\b', r'\bcommission\b',
    ]),
    IncomeType.RENTAL: _compile([
        r'rental.*income', r'rent.*received', r'property.*income',
        r'tenant.*payment', r'\bletting\b',
    ]),
    IncomeType.OTHER_INCOME: _compile([
        r'\bgift.*received\b', r'\blottery\b', r'\bcash.*back\b',
        r'\bbonus\b', r'\bprize\b', r'\binsurance.*payout\b', r'\btax.*refund\b',
        r'\brebate\b',
    ]),
}

EXPENSE_PATTERNS: Dict[ExpenseType, List[Pattern]] = {
    ExpenseType.RENT: _compile([r'\brent\b', r'rental.*payment', r'\bproperty\s+manage']),
    ExpenseType.MORTGAGE: _compile([r'\bmortgage\b', r'home.*loan', r'loan.*payment']),
    ExpenseType.RATES: _compile([r'\brates\b', r'\bcouncil\b']),
    ExpenseType.POWER: _compile([
        r'\bpowershop\b', r'\bmeridian\b', r'contact.*energy', r'\bgenesis\b',
        r'\belectric', r'\bmercury\b', r'\bwatercare\b',
    ]),
    ExpenseType.INSURANCE: _compile([
        r'\bvero\b', r'partners.*life', r'\baa\s+insurance', r'state.*insurance',
        r'\binsurance\b', r'\btower\b', r'\bsouthern\s+cross\b',
    ]),
    ExpenseType.INTERNET: _compile([
        r'\bspark\b', r'\bvodafone\b', r'\bone\s*nz\b', r'\b2degrees\b',
        r'\binternet\b', r'\bbroadband\b', r'\bfibre\b',
    ]),
    ExpenseType.CHILDCARE: _compile([
        r'grow.*active', r'\bdaycare\b', r'\bkindergarten\b', r'\bkindy\b',
        r'\bchildcare\b', r'\bbabysitter\b',
    ]),
    ExpenseType.EDUCATION: _compile([r'\bschool\b', r'\buniversity\b', r'course.*fees', r'\btuition\b']),
    ExpenseType.KIDS_ACTIVITIES: _compile([r'\bswimming\b', r'sports.*club', r'music.*lessons', r'\bballet\b']),
    ExpenseType.GROCERIES: _compile([
        r'new\s*world', r'\bcountdown\b', r'pak\s*n\s*save', r'\bwoolworths\b',
        r'four\s*square', r'\bsupermarket\b', r'\bfresh\s*choice\b', r'\bsuperette\b',
    ]),
    ExpenseType.FUEL: _compile([
        r'\bbp\b', r'\bmobil\b', r'\bz\s*energy\b', r'\bcaltex\b', r'\bgull\b',
        r'\bpetrol\b', r'gas.*station', r'\bfuel\b', r'\bwaitomo\b',
    ]),
    ExpenseType.PHONE: _compile([r'\bmobile\b', r'phone.*bill', r'\bskinny\b', r'\bwarehouse\s+mobile\b']),
    ExpenseType.HEALTHCARE: _compile([
        r'\bchemist\b', r'\bpharmacy\b', r'\bdoctor\b', r'\bmedical\b',
        r'\bhospital\b', r'\bdental\b', r'\bdentist\b', r'\bphysio',
    ]),
    ExpenseType.DINING: _compile([
        r'\bkfc\b', r"\bmcdonald'?s\b", r'\bsubway\b', r'uber\s*eats', r'\bdelivereasy\b',
        r'\brestaurant\b', r'\bcafe\b', r'\btakeaways?\b', r'\bpizza\b', r'\bburger\b',
    ]),
    ExpenseType.ENTERTAINMENT: _compile([
        r'\bspotify\b', r'\bnetflix\b', r'\bsky\b', r'\bneon\b', r'\bdisney\b',
        r'\byoutube\b', r'\bmovies?\b', r'\bcinemas?\b', r'\bsteam\b',
    ]),
    ExpenseType.FITNESS: _compile([r'\bgym\b', r'\bfitness\b', r'\baquagym\b', r'\byoga\b', r'\bpilates\b']),
    ExpenseType.SHOPPING: _compile([
        r'\bwarehouse\b', r'\bkmart\b', r'\bfarmers\b', r'\bclothing\b',
        r'\bamazon\b', r'\btrade\s*me\b', r'\bbriscoes\b', r'\bbunnings\b',
        r'mitre\s*10', r'\bnoel\s+leeming\b', r'\bjb\s+hi-?fi\b',
    ]),
    ExpenseType.TRAVEL: _compile([
        r'singapore.*airlines', r'\bjetstar\b', r'air\s*new\s*zealand', r'\bair\s*nz\b',
        r'\bhotel\b', r'\bairbnb\b', r'\bbooking\.com\b',
    ]),
    ExpenseType.BANK_FEES: _compile([
        r'monthly.*fee', r'\boverdraft\b', r'bank.*fee', r'transaction.*fee',
        r'account.*fee', r'\bdebit\s+interest\b',
    ]),
    ExpenseType.CREDIT_CARD: _compile([r'credit.*card.*payment', r'\bvisa\b', r'\bmastercard\b', r'\bamex\b']),
}

# Columns where banks put transaction type and transfer codes
METADATA_TYPE_COLUMNS = ("Type", "Transaction Type", "Tran Type")
METADATA_CODE_COLUMNS = ("Code", "Analysis Code", "Tran Code")
METADATA_PARTICULARS_COLUMNS = ("Particulars",)


@dataclass(frozen=True)
class Classification:
    """Verdict for a single transaction"""
    category: str
    subcategory: Optional[str]
    is_income: bool
    is_transfer: bool
    is_reversal: bool
    confidence: float

    @property
    def is_expense(self) -> bool:
        return not self.is_income and not self.is_transfer and not self.is_reversal


class TransactionClassifier:
    """Classifies normalized transactions as income, expense, transfer or reversal.

    Args:
        config: Pipeline configuration (reversal window, similarity threshold,
            categorizer confidence threshold)
        categorizer: Optional collaborator consulted when heuristic confidence
            is below the configured threshold
    """

    REVERSAL_CONFIDENCE = 0.95
    TRANSFER_CONFIDENCE = 0.9
    PATTERN_CONFIDENCE = 0.85
    FALLBACK_CONFIDENCE = 0.5
    ROUND_TRANSFER_MINIMUM = Decimal('500')

    def __init__(self, config: Optional[PipelineConfig] = None, categorizer=None):
        self.config = config or PipelineConfig()
        self.categorizer = categorizer

    def classify(self, transactions: Sequence[NormalizedTransaction]) -> List[ClassifiedTransaction]:
        """Classify a batch, returning results in input order"""
        classified, _ = self.classify_batch(transactions)
        return classified

    def classify_batch(self, transactions: Sequence[NormalizedTransaction]) -> Tuple[List[ClassifiedTransaction], List[ReversalPair]]:
        """Classify a batch and report reversal pairs separately.

        Returns:
            Tuple of (classified transactions in input order, reversal pairs)
        """
        pairs, partners = self.detect_reversal_pairs(transactions)

        classified = []
        for index, transaction in enumerate(transactions):
            if index in partners:
                classified.append(self._as_paired_reversal(transaction, transactions[partners[index]]))
            else:
                classified.append(self.classify_transaction(transaction))

        counts: Dict[str, int] = {}
        for item in classified:
            counts[item.category] = counts.get(item.category, 0) + 1
        logger.info(f"Classified {len(classified)} transactions: {counts}; "
                    f"{len(pairs)} reversal pairs")
        return classified, pairs

    def classify_transaction(self, transaction: NormalizedTransaction) -> ClassifiedTransaction:
        verdict = self.evaluate(
            transaction.description,
            transaction.signed_amount,
            transaction.merchant,
            transaction.raw_data,
        )
        if verdict.confidence < self.config.categorizer_confidence_threshold and not (
                verdict.is_transfer or verdict.is_reversal):
            verdict = self._consult_categorizer(transaction, verdict)
        return self._build(transaction, verdict)

    def evaluate(self, description: str, amount: Decimal, merchant: Optional[str] = None,
                 bank_metadata: Optional[Dict[str, str]] = None) -> Classification:
        """Classify from raw inputs.

        Args:
            description: Transaction description
            amount: Signed amount (money out negative)
            merchant: Optional merchant name
            bank_metadata: Original row, checked for transfer type codes

        Returns:
            Classification for the transaction
        """
        text = f"{description or ''} {merchant or ''}".lower()

        if self._matches(REVERSAL_PATTERNS, text):
            return Classification(TransactionCategory.REVERSAL.value, None, False, False, True,
                                  self.REVERSAL_CONFIDENCE)

        if self.is_transfer(text, amount, bank_metadata):
            return Classification(TransactionCategory.TRANSFER.value, None, False, True, False,
                                  self.TRANSFER_CONFIDENCE)

        if amount > 0:
            for income_type, patterns in INCOME_PATTERNS.items():
                if self._matches(patterns, text):
                    return Classification(TransactionCategory.INCOME.value, income_type.value,
                                          True, False, False, self.PATTERN_CONFIDENCE)
            return Classification(TransactionCategory.INCOME.value, IncomeType.OTHER.value,
                                  True, False, False, self.FALLBACK_CONFIDENCE)

        for expense_type, patterns in EXPENSE_PATTERNS.items():
            if self._matches(patterns, text):
                return Classification(TransactionCategory.EXPENSE.value, expense_type.value,
                                      False, False, False, self.PATTERN_CONFIDENCE)
        return Classification(TransactionCategory.EXPENSE.value, ExpenseType.OTHER.value,
                              False, False, False, self.FALLBACK_CONFIDENCE)

    def is_transfer(self, text: str, amount: Decimal,
                    bank_metadata: Optional[Dict[str, str]] = None) -> bool:
        if self._matches(TRANSFER_PATTERNS, text) or NZ_ACCOUNT_NUMBER.search(text):
            return True
        if bank_metadata and self._metadata_says_transfer(bank_metadata):
            return True
        magnitude = abs(amount)
        if magnitude > self.ROUND_TRANSFER_MINIMUM and magnitude % 100 == 0:
            return self._matches(WEAK_TRANSFER_PATTERNS, text)
        return False

    def detect_reversal_pairs(self, transactions: Sequence[NormalizedTransaction]) -> Tuple[List[ReversalPair], Dict[int, int]]:
        """Find charge/refund pairs within the reversal window.

        Walks the batch in date order; for each unpaired transaction the first
        later unpaired transaction with equal magnitude, opposite direction and
        a similar description (or merchant) forms a pair.

        Returns:
            Tuple of (pairs, mapping of input index to partner input index)
        """
        window = timedelta(days=self.config.reversal_window_days)
        tolerance = Decimal(str(self.config.amount_tolerance))
        threshold = self.config.similarity_threshold
        order = sorted(range(len(transactions)), key=lambda i: transactions[i].date)

        pairs: List[ReversalPair] = []
        partners: Dict[int, int] = {}
        for position, i in enumerate(order):
            if i in partners:
                continue
            first = transactions[i]
            for j in order[position + 1:]:
                if j in partners:
                    continue
                second = transactions[j]
                if second.date - first.date > window:
                    break
                if first.is_income == second.is_income:
                    continue
                if abs(first.amount - second.amount) >= tolerance:
                    continue
                description_match = is_similar(first.description, second.description, threshold)
                merchant_match = bool(first.merchant and second.merchant
                                      and is_similar(first.merchant, second.merchant, threshold))
                if description_match or merchant_match:
                    partners[i], partners[j] = j, i
                    debit, credit = (second, first) if first.is_income else (first, second)
                    pairs.append(ReversalPair(debit=debit, credit=credit))
                    logger.debug(f"Reversal pair: {debit.description!r} / {credit.description!r}")
                    break

        return pairs, partners

    def _consult_categorizer(self, transaction: NormalizedTransaction,
                             verdict: Classification) -> Classification:
        if self.categorizer is None:
            return verdict
        try:
            suggestion: Optional[CategorySuggestion] = self.categorizer.categorize(
                transaction, verdict.is_income)
        except Exception as e:
            logger.warning(f"Categorizer failed for {transaction.description!r}: {e}")
            return verdict
        if suggestion is None:
            return verdict

        known = self._known_subcategory(suggestion.subcategory, verdict.is_income)
        if known is None:
            logger.debug(f"Ignoring unknown categorizer suggestion {suggestion.subcategory!r}")
            return verdict
        confidence = min(max(float(suggestion.confidence), 0.0), 1.0)
        if confidence <= verdict.confidence:
            return verdict
        return Classification(verdict.category, known, verdict.is_income,
                              False, False, confidence)

    @staticmethod
    def _known_subcategory(name: Optional[str], is_income: bool) -> Optional[str]:
        if not name:
            return None
        key = name.strip().lower().replace('_', ' ')
        members = IncomeType if is_income else ExpenseType
        for member in members:
            if member.name.lower().replace('_', ' ') == key or member.value.lower() == key:
                if member in (IncomeType.OTHER, ExpenseType.OTHER):
                    return None
                return member.value
        return None

    @staticmethod
    def _metadata_says_transfer(row: Dict[str, str]) -> bool:
        tran_type = extract_field(row, METADATA_TYPE_COLUMNS).lower()
        code = extract_field(row, METADATA_CODE_COLUMNS).upper()
        particulars = extract_field(row, METADATA_PARTICULARS_COLUMNS).lower()
        return 'transfer' in tran_type or 'TRF' in code or 'transfer' in particulars

    @staticmethod
    def _matches(patterns: List[Pattern], text: str) -> bool:
        return any(p.search(text) for p in patterns)

    @staticmethod
    def _copy_fields(transaction: NormalizedTransaction) -> Dict:
        return {f.name: getattr(transaction, f.name) for f in fields(NormalizedTransaction)}

    def _build(self, transaction: NormalizedTransaction, verdict: Classification) -> ClassifiedTransaction:
        values = self._copy_fields(transaction)
        values['is_income'] = verdict.is_income
        return ClassifiedTransaction(
            **values,
            category=verdict.category,
            subcategory=verdict.subcategory,
            is_transfer=verdict.is_transfer,
            is_reversal=verdict.is_reversal,
            is_credit=transaction.is_income,
            confidence=verdict.confidence,
        )

    def _as_paired_reversal(self, transaction: NormalizedTransaction,
                            partner: NormalizedTransaction) -> ClassifiedTransaction:
        values = self._copy_fields(transaction)
        values['is_income'] = False
        return ClassifiedTransaction(
            **values,
            category=TransactionCategory.REVERSAL.value,
            subcategory=None,
            is_transfer=False,
            is_reversal=True,
            is_credit=transaction.is_income,
            confidence=self.REVERSAL_CONFIDENCE,
            paired_with=transaction_signature(partner, self.config.normalize_signature_case),
        )
