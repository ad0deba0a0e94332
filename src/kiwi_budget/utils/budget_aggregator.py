"""Monthly budget aggregation of classified transactions."""

import logging
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence

from ..models.core import (
    BudgetGroup, BudgetInsights, CategoryShare, CategoryStats, ClassifiedTransaction,
    MonthlyBudget, MonthOverMonthChange,
)

logger = logging.getLogger(__name__)

_CENT = Decimal('0.01')
MONTH_FORMAT = re.compile(r'^\d{4}-(0[1-9]|1[0-2])$')
TOP_CATEGORY_COUNT = 5


def previous_month(month: str) -> str:
    """``YYYY-MM`` of the calendar month before ``month``"""
    year, number = int(month[:4]), int(month[5:7])
    if number == 1:
        return f"{year - 1}-12"
    return f"{year}-{number - 1:02d}"


def percentage_change(current: Decimal, previous: Decimal) -> float:
    """Percent change from ``previous`` to ``current``.

    A zero baseline gives 0.0 when nothing changed and +/-100.0 otherwise.
    """
    if previous == 0:
        if current == 0:
            return 0.0
        return 100.0 if current > 0 else -100.0
    return round(float((current - previous) / abs(previous) * 100), 2)


def budget_group_for(transaction: ClassifiedTransaction) -> BudgetGroup:
    """Budget group from the first tag, defaulting to savings for income and
    wants for expenses."""
    if transaction.tags:
        tag = str(transaction.tags[0]).strip().lower()
        for group in BudgetGroup:
            if group.value == tag:
                return group
    if transaction.is_income:
        return BudgetGroup.SAVINGS
    return BudgetGroup.WANTS


class BudgetAggregator:
    """Builds MonthlyBudget views from classified transactions.

    Transfers and reversals are counted as ignored and never reach the
    income or expense totals.
    """

    def aggregate(self, transactions: Sequence[ClassifiedTransaction], month: str) -> MonthlyBudget:
        """Aggregate one month.

        Args:
            transactions: Classified transactions, any months
            month: Target month as ``YYYY-MM``

        Returns:
            MonthlyBudget for the month; month-over-month change is filled in
            when the previous month has counted transactions in the input
        """
        if not MONTH_FORMAT.match(month or ''):
            raise ValueError(f"Month must be in YYYY-MM format: {month!r}")

        budget = self._summarize(transactions, month)

        prior_month = previous_month(month)
        prior_txns = [t for t in transactions if t.month_year == prior_month and not t.is_ignored]
        if prior_txns:
            prior = self._summarize(prior_txns, prior_month)
            budget.insights.month_over_month_change = MonthOverMonthChange(
                income_change=percentage_change(budget.total_income, prior.total_income),
                expense_change=percentage_change(budget.total_expenses, prior.total_expenses),
                savings_change=percentage_change(budget.savings, prior.savings),
            )

        logger.info(f"Budget {month}: income {budget.total_income}, expenses "
                    f"{budget.total_expenses}, savings rate {budget.savings_rate:.1f}%")
        return budget

    def aggregate_all(self, transactions: Sequence[ClassifiedTransaction]) -> List[MonthlyBudget]:
        """Aggregate every month present in the input, oldest first"""
        months = sorted({t.month_year for t in transactions})
        return [self.aggregate(transactions, month) for month in months]

    def _summarize(self, transactions: Iterable[ClassifiedTransaction], month: str) -> MonthlyBudget:
        categories: Dict[str, CategoryStats] = {}
        total_income = Decimal('0')
        total_expenses = Decimal('0')
        counted = 0
        ignored = 0

        for transaction in transactions:
            if transaction.month_year != month:
                continue
            if transaction.is_ignored:
                ignored += 1
                continue

            counted += 1
            if transaction.is_income:
                total_income += transaction.amount
            else:
                total_expenses += transaction.amount

            name = transaction.category_label
            stats = categories.get(name)
            if stats is None:
                stats = CategoryStats(
                    amount=Decimal('0'),
                    budget_group=budget_group_for(transaction),
                    transaction_count=0,
                    average_per_transaction=Decimal('0'),
                    is_income=transaction.is_income,
                )
                categories[name] = stats
            stats.amount += transaction.amount
            stats.transaction_count += 1
            stats.average_per_transaction = (stats.amount / stats.transaction_count).quantize(
                _CENT, rounding=ROUND_HALF_UP)

        savings = total_income - total_expenses
        savings_rate = float(savings / total_income * 100) if total_income > 0 else 0.0

        return MonthlyBudget(
            month=month,
            total_income=total_income,
            total_expenses=total_expenses,
            savings=savings,
            savings_rate=savings_rate,
            categories=categories,
            insights=self._insights(categories, total_expenses),
            transaction_count=counted,
            ignored_count=ignored,
        )

    @staticmethod
    def _insights(categories: Dict[str, CategoryStats], total_expenses: Decimal) -> BudgetInsights:
        expenses = sorted(
            ((name, stats) for name, stats in categories.items() if not stats.is_income),
            key=lambda item: item[1].amount,
            reverse=True,
        )
        top = [
            CategoryShare(
                name=name,
                amount=stats.amount,
                percentage=round(float(stats.amount / total_expenses * 100), 2) if total_expenses > 0 else 0.0,
            )
            for name, stats in expenses[:TOP_CATEGORY_COUNT]
        ]

        by_group = {group: Decimal('0') for group in BudgetGroup}
        for _, stats in expenses:
            by_group[stats.budget_group] += stats.amount

        return BudgetInsights(top_expense_categories=top, expenses_by_budget_group=by_group)


def savings_rate(total_income: Decimal, total_expenses: Decimal) -> float:
    """Savings as a percentage of income; 0 when there is no income"""
    income = Decimal(str(total_income))
    if income <= 0:
        return 0.0
    return float((income - Decimal(str(total_expenses))) / income * 100)


def latest(budgets: Sequence[MonthlyBudget], count: int = 3) -> List[MonthlyBudget]:
    """The most recent ``count`` budgets, newest first"""
    return sorted(budgets, key=lambda b: b.month, reverse=True)[:count]


def find_budget(budgets: Sequence[MonthlyBudget], month: str) -> Optional[MonthlyBudget]:
    return next((b for b in budgets if b.month == month), None)
