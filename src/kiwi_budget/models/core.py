"""Core data models for the statement ingestion pipeline."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ConfidenceTier(str, Enum):
    """Which parsing strategy produced a result"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TransactionCategory(str, Enum):
    """Top-level treatment of a classified transaction"""
    INCOME = "Income"
    EXPENSE = "Expense"
    TRANSFER = "Transfer"
    REVERSAL = "Reversal"


class IncomeType(str, Enum):
    """Income subcategories, most specific first"""
    SALARY = "Salary"
    GOVERNMENT = "Government"
    INVESTMENT = "Investment"
    BUSINESS = "Business"
    RENTAL = "Rental"
    OTHER_INCOME = "Other Income Sources"
    OTHER = "Other Income"


class ExpenseType(str, Enum):
    """Expense subcategories, most specific first"""
    RENT = "Rent"
    MORTGAGE = "Mortgage"
    RATES = "Rates"
    POWER = "Power"
    INSURANCE = "Insurance"
    INTERNET = "Internet"
    CHILDCARE = "Childcare"
    EDUCATION = "Education"
    KIDS_ACTIVITIES = "Kids Activities"
    GROCERIES = "Groceries"
    FUEL = "Fuel"
    PHONE = "Phone"
    HEALTHCARE = "Healthcare"
    DINING = "Dining"
    ENTERTAINMENT = "Entertainment"
    FITNESS = "Fitness"
    SHOPPING = "Shopping"
    TRAVEL = "Travel"
    BANK_FEES = "Bank Fees"
    CREDIT_CARD = "Credit Card"
    OTHER = "Other Expenses"


class BudgetGroup(str, Enum):
    """50/30/20 budget group"""
    NEEDS = "needs"
    WANTS = "wants"
    SAVINGS = "savings"


class Achievability(str, Enum):
    """How realistic a goal is given disposable income"""
    EASY = "Easy"
    MODERATE = "Moderate"
    CHALLENGING = "Challenging"
    UNREALISTIC = "Unrealistic"


class RiskLevel(str, Enum):
    """Overall financial health assessment"""
    HEALTHY = "healthy"
    MODERATE = "moderate"
    CONCERNING = "concerning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class NormalizedTransaction:
    """Canonical transaction produced by the parsers.

    The amount is always a non-negative magnitude; direction lives only in
    ``is_income``.

    Attributes:
        date: Calendar date of the transaction
        description: Cleaned description (at most 255 characters)
        amount: Non-negative magnitude
        is_income: True for money in, False for money out
        merchant: Optional payee / merchant name
        source_bank: Detected bank name or "Unknown"
        raw_data: Original row, kept for debugging
        tags: Optional user tags (e.g. budget group)
    """
    date: date
    description: str
    amount: Decimal
    is_income: bool
    merchant: Optional[str] = None
    source_bank: str = "Unknown"
    raw_data: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)
    tags: Tuple[str, ...] = ()

    @property
    def signed_amount(self) -> Decimal:
        """Amount with bank sign convention (money out negative)"""
        return self.amount if self.is_income else -self.amount

    @property
    def month_year(self) -> str:
        return self.date.strftime("%Y-%m")


@dataclass(frozen=True)
class ClassifiedTransaction(NormalizedTransaction):
    """Transaction with classification applied.

    ``is_income`` here is the classification verdict (False for transfers and
    reversals); the direction of the original row is kept in ``is_credit``.
    """
    category: str = TransactionCategory.EXPENSE.value
    subcategory: Optional[str] = None
    is_transfer: bool = False
    is_reversal: bool = False
    is_credit: bool = False
    confidence: float = 0.0
    paired_with: Optional[str] = None

    @property
    def is_ignored(self) -> bool:
        return self.is_transfer or self.is_reversal

    @property
    def is_expense(self) -> bool:
        return not self.is_income and not self.is_ignored

    @property
    def category_label(self) -> str:
        """Name used for per-category budget statistics"""
        return self.subcategory or self.category


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing one uploaded file"""
    transactions: Tuple[NormalizedTransaction, ...]
    detected_bank: str
    confidence: ConfidenceTier
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BankConfig:
    """Column aliases and identifying patterns for one bank's export format.

    Attributes:
        name: Bank name, also the registry key (case-insensitive)
        file_patterns: Substrings looked for in the lowercased filename
        header_patterns: Keywords looked for in the joined, lowercased headers
        content_patterns: Keywords looked for in the first data row
        date/description/...: Column-name aliases, ordered by preference
    """
    name: str
    file_patterns: Tuple[str, ...] = ()
    header_patterns: Tuple[str, ...] = ()
    content_patterns: Tuple[str, ...] = ()
    date: Tuple[str, ...] = ()
    description: Tuple[str, ...] = ()
    amount: Tuple[str, ...] = ()
    debit: Tuple[str, ...] = ()
    credit: Tuple[str, ...] = ()
    balance: Tuple[str, ...] = ()
    reference: Tuple[str, ...] = ()
    merchant: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BankConfig':
        """Build a config from the nested mapping used in config files"""
        identifiers = data.get('identifiers', {})
        columns = data.get('columns', {})

        def _tuple(values) -> Tuple[str, ...]:
            if values is None:
                return ()
            if isinstance(values, str):
                return (values,)
            return tuple(str(v) for v in values)

        return cls(
            name=str(data['name']),
            file_patterns=_tuple(identifiers.get('file_patterns')),
            header_patterns=_tuple(identifiers.get('header_patterns')),
            content_patterns=_tuple(identifiers.get('content_patterns')),
            date=_tuple(columns.get('date')),
            description=_tuple(columns.get('description')),
            amount=_tuple(columns.get('amount')),
            debit=_tuple(columns.get('debit')),
            credit=_tuple(columns.get('credit')),
            balance=_tuple(columns.get('balance')),
            reference=_tuple(columns.get('reference')),
            merchant=_tuple(columns.get('merchant')),
        )


@dataclass(frozen=True)
class ReversalPair:
    """A charge and the credit that cancels it"""
    debit: NormalizedTransaction
    credit: NormalizedTransaction


@dataclass(frozen=True)
class CategorySuggestion:
    """Answer from an external categorizer"""
    subcategory: str
    confidence: float


@dataclass
class CategoryStats:
    """Per-category totals for one month"""
    amount: Decimal
    budget_group: BudgetGroup
    transaction_count: int
    average_per_transaction: Decimal
    is_income: bool


@dataclass(frozen=True)
class CategoryShare:
    name: str
    amount: Decimal
    percentage: float


@dataclass(frozen=True)
class MonthOverMonthChange:
    """Percentage change versus the previous month"""
    income_change: float
    expense_change: float
    savings_change: float


@dataclass
class BudgetInsights:
    top_expense_categories: List[CategoryShare]
    expenses_by_budget_group: Dict[BudgetGroup, Decimal]
    month_over_month_change: Optional[MonthOverMonthChange] = None


@dataclass
class MonthlyBudget:
    """Aggregated view of one month of classified transactions"""
    month: str
    total_income: Decimal
    total_expenses: Decimal
    savings: Decimal
    savings_rate: float
    categories: Dict[str, CategoryStats]
    insights: BudgetInsights
    transaction_count: int = 0
    ignored_count: int = 0


@dataclass(frozen=True)
class SmartGoal:
    """Derived SMART goal proposal"""
    category: str
    description: str
    target_amount: Decimal
    timeframe_months: int
    achievability: Achievability
    rationale: str
    priority: int = 1


@dataclass(frozen=True)
class CategoryLimit:
    """Suggested spending ceiling for one category"""
    category: str
    current_spending: Decimal
    recommended_limit: Decimal
    rationale: str
    priority: str = "low"


@dataclass
class BudgetRecommendations:
    """Rule-based budget advice over recent months"""
    emergency_fund_target: Decimal
    allocation: Dict[BudgetGroup, Decimal]
    category_limits: List[CategoryLimit]
    risk_level: RiskLevel
    actionable_steps: List[str]


@dataclass
class PipelineConfig:
    """Configuration for pipeline behaviour"""
    reversal_window_days: int = 7
    similarity_threshold: float = 0.8
    amount_tolerance: float = 0.01
    amount_sanity_ceiling: float = 1_000_000
    categorizer_confidence_threshold: float = 0.6
    normalize_signature_case: bool = True
    allow_date_fallback: bool = False
    max_description_length: int = 255
    state_directory: str = ".kiwi_budget_state"
    output_directory: str = "data"
    bank_configs: Optional[List[Dict[str, Any]]] = None
    categorizer_rules: Optional[Dict[str, str]] = None

    def __post_init__(self):
        if self.bank_configs is None:
            self.bank_configs = []
        if self.categorizer_rules is None:
            self.categorizer_rules = {}


@dataclass
class IngestResult:
    """Result of ingesting a batch of files for one user"""
    parse_results: Dict[str, ParseResult]
    accepted: List[ClassifiedTransaction]
    duplicates_skipped: int
    reversal_pairs: List[ReversalPair]
    warnings: List[str] = field(default_factory=list)
