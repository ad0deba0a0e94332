"""SMART goal proposals and budget advice derived from monthly budgets."""

import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

from ..models.core import (
    Achievability, BudgetGroup, BudgetRecommendations, CategoryLimit, MonthlyBudget,
    RiskLevel, SmartGoal,
)
from .budget_aggregator import latest

logger = logging.getLogger(__name__)

_CENT = Decimal('0.01')
_DOLLAR = Decimal('1')

ADVISORY_CATEGORY = "Budget Analysis"

PRIORITY_ORDER = {'high': 3, 'medium': 2, 'low': 1}


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def _whole(value: Decimal) -> str:
    return f"${Decimal(value).quantize(_DOLLAR, rounding=ROUND_HALF_UP):,}"


def achievability_for(monthly_required: Decimal, monthly_disposable: Decimal) -> Achievability:
    """Rate a monthly contribution against disposable income"""
    if monthly_disposable <= 0:
        return Achievability.UNREALISTIC
    ratio = monthly_required / monthly_disposable
    if ratio <= Decimal('0.2'):
        return Achievability.EASY
    if ratio <= Decimal('0.4'):
        return Achievability.MODERATE
    if ratio <= Decimal('0.7'):
        return Achievability.CHALLENGING
    return Achievability.UNREALISTIC


def savings_gap_achievability(monthly_gap: Decimal, monthly_expenses: Decimal) -> Achievability:
    """Rate the extra monthly saving needed relative to current spending"""
    if monthly_gap <= 0 or monthly_expenses <= 0:
        return Achievability.EASY
    ratio = monthly_gap / monthly_expenses
    if ratio <= Decimal('0.05'):
        return Achievability.EASY
    if ratio <= Decimal('0.10'):
        return Achievability.MODERATE
    if ratio <= Decimal('0.20'):
        return Achievability.CHALLENGING
    return Achievability.UNREALISTIC


class RecommendationEngine:
    """Threshold-based goal and budget recommendations.

    Works on up to the three most recent months; all rules are pure
    functions of the budgets passed in.
    """

    RECENT_MONTHS = 3
    MAX_GOALS = 3

    EMERGENCY_FUND_MONTHS = 3
    EMERGENCY_CONTRIBUTION_SHARE = Decimal('0.3')
    EMERGENCY_MIN_MONTHS = 6
    EMERGENCY_MAX_MONTHS = 24

    TARGET_SAVINGS_RATE = 20.0
    SAVINGS_HORIZON_MONTHS = 12

    REDUCTION_THRESHOLD = Decimal('200')
    REDUCTION_SHARE = Decimal('0.15')
    REDUCTION_HORIZON_MONTHS = 3

    EMERGENCY_PRIORITY = 5
    SAVINGS_PRIORITY = 3
    REDUCTION_PRIORITY = 2

    def recommend(self, budgets: Sequence[MonthlyBudget],
                  disposable_income: Optional[Decimal] = None,
                  existing_emergency_fund: Decimal = Decimal('0')) -> List[SmartGoal]:
        """Propose up to three SMART goals, highest priority first.

        Args:
            budgets: One or more monthly budgets; only the latest three are used
            disposable_income: Average monthly disposable income; derived from
                the budgets when omitted
            existing_emergency_fund: Savings already set aside; no emergency
                fund goal is proposed once it covers the target

        Returns:
            List of goals. When disposable income is not positive, a single
            advisory goal with no numeric target.
        """
        recent = latest(budgets, self.RECENT_MONTHS)
        avg_income = self._average([b.total_income for b in recent])
        avg_expenses = self._average([b.total_expenses for b in recent])
        disposable = (Decimal(str(disposable_income)) if disposable_income is not None
                      else avg_income - avg_expenses)

        if disposable <= 0:
            logger.info(f"No disposable income ({disposable}); returning advisory goal only")
            return [self._advisory_goal(avg_income, avg_expenses)]

        goals = []
        emergency = self._emergency_fund_goal(avg_expenses, disposable,
                                              Decimal(str(existing_emergency_fund)))
        if emergency:
            goals.append(emergency)

        avg_rate = sum(b.savings_rate for b in recent) / len(recent) if recent else 0.0
        savings = self._savings_rate_goal(avg_income, avg_expenses, avg_rate)
        if savings:
            goals.append(savings)

        reduction = self._expense_reduction_goal(recent)
        if reduction:
            goals.append(reduction)

        goals.sort(key=lambda g: g.priority, reverse=True)
        logger.info(f"Proposed {len(goals[:self.MAX_GOALS])} goals from {len(recent)} months")
        return goals[:self.MAX_GOALS]

    def _advisory_goal(self, avg_income: Decimal, avg_expenses: Decimal) -> SmartGoal:
        return SmartGoal(
            category=ADVISORY_CATEGORY,
            description=("Based on current budget, no surplus is available for goal saving. "
                         "Focus on reducing expenses or increasing income first."),
            target_amount=Decimal('0'),
            timeframe_months=0,
            achievability=Achievability.UNREALISTIC,
            rationale=(f"Current analysis shows expenses ({_whole(avg_expenses)}) exceed or equal "
                       f"income ({_whole(avg_income)}). Priority should be achieving positive "
                       f"cash flow."),
            priority=0,
        )

    def _emergency_fund_goal(self, avg_expenses: Decimal, disposable: Decimal,
                             existing: Decimal) -> Optional[SmartGoal]:
        target = _money(avg_expenses * self.EMERGENCY_FUND_MONTHS)
        remaining = target - existing
        if target <= 0 or remaining <= 0:
            return None

        contribution = disposable * self.EMERGENCY_CONTRIBUTION_SHARE
        months = math.ceil(remaining / contribution)
        months = max(self.EMERGENCY_MIN_MONTHS, min(self.EMERGENCY_MAX_MONTHS, months))
        monthly_required = remaining / months

        return SmartGoal(
            category="Emergency Fund",
            description=(f"Build an emergency fund covering {self.EMERGENCY_FUND_MONTHS} months "
                         f"of expenses ({_whole(target)}) over {months} months."),
            target_amount=target,
            timeframe_months=months,
            achievability=achievability_for(monthly_required, disposable),
            rationale=(f"With monthly disposable income of {_whole(disposable)}, setting aside "
                       f"{_whole(monthly_required)} a month builds a buffer against lost income "
                       f"or unexpected bills."),
            priority=self.EMERGENCY_PRIORITY,
        )

    def _savings_rate_goal(self, avg_income: Decimal, avg_expenses: Decimal,
                           avg_rate: float) -> Optional[SmartGoal]:
        if avg_income <= 0 or avg_rate >= self.TARGET_SAVINGS_RATE:
            return None

        target_monthly = _money(avg_income * Decimal(str(self.TARGET_SAVINGS_RATE)) / 100)
        current_monthly = avg_income - avg_expenses
        gap = target_monthly - current_monthly

        return SmartGoal(
            category="Savings Rate",
            description=(f"Raise monthly savings to {self.TARGET_SAVINGS_RATE:.0f}% of income "
                         f"({_whole(target_monthly)} a month) over the next "
                         f"{self.SAVINGS_HORIZON_MONTHS} months."),
            target_amount=_money(target_monthly * self.SAVINGS_HORIZON_MONTHS),
            timeframe_months=self.SAVINGS_HORIZON_MONTHS,
            achievability=savings_gap_achievability(gap, avg_expenses),
            rationale=(f"Your average savings rate is {avg_rate:.1f}%. Closing the "
                       f"{_whole(max(gap, Decimal('0')))} monthly gap follows the 50/30/20 "
                       f"budgeting principle."),
            priority=self.SAVINGS_PRIORITY,
        )

    def _expense_reduction_goal(self, recent: Sequence[MonthlyBudget]) -> Optional[SmartGoal]:
        if not recent:
            return None
        totals: Dict[str, Decimal] = {}
        for budget in recent:
            for name, stats in budget.categories.items():
                if not stats.is_income:
                    totals[name] = totals.get(name, Decimal('0')) + stats.amount
        if not totals:
            return None

        category, total = max(totals.items(), key=lambda item: item[1])
        monthly = total / len(recent)
        if monthly <= self.REDUCTION_THRESHOLD:
            return None

        reduction = _money(monthly * self.REDUCTION_SHARE)
        return SmartGoal(
            category=f"Reduce {category}",
            description=(f"Reduce {category} spending by 15% ({_whole(reduction)} a month) "
                         f"over the next {self.REDUCTION_HORIZON_MONTHS} months."),
            target_amount=reduction,
            timeframe_months=self.REDUCTION_HORIZON_MONTHS,
            achievability=Achievability.MODERATE,
            rationale=(f"{category} is your largest expense category at {_whole(monthly)} a "
                       f"month. A 15% cut frees up money for other goals."),
            priority=self.REDUCTION_PRIORITY,
        )

    def generate_budget_recommendations(self, budgets: Sequence[MonthlyBudget]) -> BudgetRecommendations:
        """50/30/20 allocation, category limits, risk level and next steps.

        Raises:
            ValueError: If no budgets are given
        """
        if not budgets:
            raise ValueError("No monthly budget data available for recommendations")

        recent = latest(budgets, self.RECENT_MONTHS)
        avg_income = self._average([b.total_income for b in recent])
        avg_expenses = self._average([b.total_expenses for b in recent])
        avg_rate = sum(b.savings_rate for b in recent) / len(recent)
        by_group = {
            group: self._average([b.insights.expenses_by_budget_group.get(group, Decimal('0'))
                                  for b in recent])
            for group in BudgetGroup
        }

        risk = self.assess_risk(avg_income, avg_expenses, avg_rate, by_group)
        logger.info(f"Budget risk level {risk.value} over {len(recent)} months")

        return BudgetRecommendations(
            emergency_fund_target=_money(avg_expenses * 4),
            allocation={
                BudgetGroup.NEEDS: _money(avg_income * Decimal('0.5')),
                BudgetGroup.WANTS: _money(avg_income * Decimal('0.3')),
                BudgetGroup.SAVINGS: _money(avg_income * Decimal('0.2')),
            },
            category_limits=self._category_limits(recent, avg_income),
            risk_level=risk,
            actionable_steps=self._actionable_steps(risk, avg_rate, by_group, avg_income),
        )

    @staticmethod
    def assess_risk(avg_income: Decimal, avg_expenses: Decimal, avg_rate: float,
                    by_group: Dict[BudgetGroup, Decimal]) -> RiskLevel:
        if avg_expenses > avg_income:
            return RiskLevel.CRITICAL
        wants_share = by_group[BudgetGroup.WANTS] / avg_income if avg_income > 0 else Decimal('0')
        needs_share = by_group[BudgetGroup.NEEDS] / avg_income if avg_income > 0 else Decimal('0')
        if avg_rate < 5 or wants_share > Decimal('0.4'):
            return RiskLevel.CONCERNING
        if avg_rate < 15 or needs_share > Decimal('0.6'):
            return RiskLevel.MODERATE
        return RiskLevel.HEALTHY

    def _category_limits(self, recent: Sequence[MonthlyBudget], avg_income: Decimal) -> List[CategoryLimit]:
        totals: Dict[str, Dict] = {}
        for budget in recent:
            for name, stats in budget.categories.items():
                if stats.is_income:
                    continue
                entry = totals.setdefault(name, {'total': Decimal('0'), 'count': 0,
                                                 'group': stats.budget_group})
                entry['total'] += stats.amount
                entry['count'] += 1

        top = sorted(totals.items(), key=lambda item: item[1]['total'], reverse=True)[:8]
        limits = []
        for name, data in top:
            average = data['total'] / data['count']
            share = float(average / avg_income * 100) if avg_income > 0 else 0.0
            lowered = name.lower()

            limit, priority = average, 'low'
            rationale = "Maintain current spending level"
            if 'dining' in lowered or 'food' in lowered:
                if share > 15:
                    limit, priority = average * Decimal('0.8'), 'high'
                    rationale = ("Dining is above the recommended 10-15% of income. "
                                 "Try cooking more meals at home.")
            elif 'entertainment' in lowered:
                if share > 10:
                    limit, priority = average * Decimal('0.75'), 'medium'
                    rationale = ("Entertainment exceeds 10% of income. Look for free "
                                 "activities and limit subscriptions.")
            elif 'shopping' in lowered:
                if share > 8:
                    limit, priority = average * Decimal('0.7'), 'medium'
                    rationale = ("Shopping is high. Wait 24 hours before non-essential "
                                 "purchases.")
            elif data['group'] == BudgetGroup.WANTS and share > 12:
                limit, priority = average * Decimal('0.85'), 'medium'
                rationale = ("This discretionary category takes a large share of income. "
                             "Consider reducing it by 15%.")

            limits.append(CategoryLimit(
                category=name,
                current_spending=_money(average),
                recommended_limit=limit.quantize(_DOLLAR, rounding=ROUND_HALF_UP),
                rationale=rationale,
                priority=priority,
            ))

        limits.sort(key=lambda c: PRIORITY_ORDER[c.priority], reverse=True)
        return limits

    @staticmethod
    def _actionable_steps(risk: RiskLevel, avg_rate: float,
                          by_group: Dict[BudgetGroup, Decimal], avg_income: Decimal) -> List[str]:
        steps = {
            RiskLevel.CRITICAL: [
                "You are spending more than you earn. Review and cut non-essential expenses now.",
                "Look for ways to increase income, such as extra hours or a pay review.",
                "Review housing costs if rent or mortgage exceeds 30% of income.",
            ],
            RiskLevel.CONCERNING: [
                "Build an emergency fund of at least $1,000 before other financial goals.",
                "Cancel unused subscriptions and memberships.",
                "Halve dining out and cook more meals at home.",
            ],
            RiskLevel.MODERATE: [
                "Increase your savings rate to at least 15% of income.",
                "Set up an automatic payment into a savings account on payday.",
                "Look for ways to reduce power, phone and other recurring bills.",
            ],
            RiskLevel.HEALTHY: [
                "Your finances are in good shape.",
                "Consider increasing KiwiSaver or other investment contributions.",
                "Set specific goals such as a house deposit or a holiday fund.",
            ],
        }[risk]

        if avg_income > 0:
            wants_pct = float(by_group[BudgetGroup.WANTS] / avg_income * 100)
            if wants_pct > 35:
                steps.append(f"Discretionary spending is {wants_pct:.0f}% of income. "
                             f"Aim for 30% or less.")
        if avg_rate < 10:
            steps.append("Pay yourself first: move money to savings as soon as income arrives.")
        return steps

    @staticmethod
    def _average(values: List[Decimal]) -> Decimal:
        if not values:
            return Decimal('0')
        return sum(values, Decimal('0')) / len(values)


def suggest_category_limits(budget: MonthlyBudget) -> List[CategoryLimit]:
    """Spending ceilings for one month's expense categories.

    Dining above $800 is cut to 80%, entertainment above $400 to 85% and
    shopping averaging more than $200 a transaction to 90%; every other
    category keeps its current spending.
    """
    limits = []
    for name, stats in budget.categories.items():
        if stats.is_income:
            continue
        lowered = name.lower()
        limit = stats.amount
        rationale = "Maintain current spending level"
        priority = 'low'
        if ('dining' in lowered or 'food' in lowered) and stats.amount > 800:
            limit = stats.amount * Decimal('0.8')
            rationale = "High dining spend. Aim to cut it by 20% by eating at home more often."
            priority = 'high'
        elif 'entertainment' in lowered and stats.amount > 400:
            limit = stats.amount * Decimal('0.85')
            rationale = "Entertainment spend is high. Review subscriptions and paid outings."
            priority = 'medium'
        elif 'shopping' in lowered and stats.average_per_transaction > 200:
            limit = stats.amount * Decimal('0.9')
            rationale = "Large individual purchases. Plan big-ticket items ahead."
            priority = 'medium'
        limits.append(CategoryLimit(
            category=name,
            current_spending=_money(stats.amount),
            recommended_limit=_money(limit),
            rationale=rationale,
            priority=priority,
        ))
    limits.sort(key=lambda c: (PRIORITY_ORDER[c.priority], c.current_spending), reverse=True)
    return limits
