"""Tests for SMART goal and budget recommendations."""

from datetime import date
from decimal import Decimal

import pytest

from kiwi_budget.models.core import (
    Achievability, BudgetGroup, ClassifiedTransaction, RiskLevel, TransactionCategory,
)
from kiwi_budget.utils.budget_aggregator import BudgetAggregator
from kiwi_budget.utils.recommendations import (
    ADVISORY_CATEGORY, RecommendationEngine, achievability_for, savings_gap_achievability,
    suggest_category_limits,
)


class BudgetFixtures:
    """Builds monthly budgets from simple income and expense figures"""

    def make_budget(self, income, expenses, month="2024-05", needs=()):
        year, number = int(month[:4]), int(month[5:])
        transactions = []
        if income:
            transactions.append(ClassifiedTransaction(
                date=date(year, number, 1), description="Salary", amount=Decimal(str(income)),
                is_income=True, category=TransactionCategory.INCOME.value,
                subcategory="Salary", is_credit=True, confidence=0.85,
            ))
        for day, (name, amount) in enumerate(expenses.items(), start=2):
            amounts = amount if isinstance(amount, list) else [amount]
            for value in amounts:
                transactions.append(ClassifiedTransaction(
                    date=date(year, number, day), description=name, amount=Decimal(str(value)),
                    is_income=False, category=TransactionCategory.EXPENSE.value,
                    subcategory=name, confidence=0.85,
                    tags=("needs",) if name in needs else (),
                ))
        return BudgetAggregator().aggregate(transactions, month)


class TestRecommend(BudgetFixtures):
    """Test cases for RecommendationEngine.recommend"""

    def setup_method(self):
        """Set up test fixtures"""
        self.engine = RecommendationEngine()

    def test_no_disposable_income_gives_single_advisory_goal(self):
        budget = self.make_budget(3000, {'Rent': 2000, 'Groceries': 1500})
        goals = self.engine.recommend([budget])

        assert len(goals) == 1
        goal = goals[0]
        assert goal.category == ADVISORY_CATEGORY
        assert goal.target_amount == Decimal('0')
        assert goal.timeframe_months == 0
        assert goal.achievability == Achievability.UNREALISTIC
        assert "$3,500" in goal.rationale

    def test_explicit_disposable_income_overrides(self):
        budget = self.make_budget(10000, {'Rent': 2000})
        for disposable in [Decimal('0'), Decimal('-50')]:
            goals = self.engine.recommend([budget], disposable_income=disposable)
            assert len(goals) == 1, f"Expected advisory only for {disposable}"
            assert goals[0].category == ADVISORY_CATEGORY

    def test_tight_budget_goals(self):
        budget = self.make_budget(5000, {'Rent': 2500, 'Dining': 600, 'Groceries': 1400})
        goals = self.engine.recommend([budget])

        assert [g.priority for g in goals] == [5, 3, 2]

        emergency, savings, reduction = goals
        assert emergency.category == "Emergency Fund"
        assert emergency.target_amount == Decimal('13500.00')
        assert emergency.timeframe_months == 24
        assert emergency.achievability == Achievability.UNREALISTIC

        assert savings.category == "Savings Rate"
        assert savings.target_amount == Decimal('12000.00')
        assert savings.achievability == Achievability.CHALLENGING

        assert reduction.category == "Reduce Rent"
        assert reduction.target_amount == Decimal('375.00')
        assert reduction.timeframe_months == 3

    def test_comfortable_budget_goals(self):
        budget = self.make_budget(10000, {'Rent': 2000})
        goals = self.engine.recommend([budget])

        assert [g.category for g in goals] == ["Emergency Fund", "Reduce Rent"]
        emergency = goals[0]
        assert emergency.target_amount == Decimal('6000.00')
        assert emergency.timeframe_months == 6
        assert emergency.achievability == Achievability.EASY
        assert goals[1].target_amount == Decimal('300.00')

    def test_existing_emergency_fund_skips_goal(self):
        budget = self.make_budget(10000, {'Rent': 2000})
        goals = self.engine.recommend([budget], existing_emergency_fund=Decimal('6000'))
        assert [g.category for g in goals] == ["Reduce Rent"]

    def test_small_categories_get_no_reduction_goal(self):
        budget = self.make_budget(10000, {'Groceries': 150})
        goals = self.engine.recommend([budget])
        assert all(not g.category.startswith("Reduce") for g in goals)

    def test_uses_three_latest_months(self):
        budgets = [
            self.make_budget(1000, {'Rent': 5000}, month="2024-01"),
            self.make_budget(10000, {'Rent': 2000}, month="2024-02"),
            self.make_budget(10000, {'Rent': 2000}, month="2024-03"),
            self.make_budget(10000, {'Rent': 2000}, month="2024-04"),
        ]
        goals = self.engine.recommend(budgets)
        assert goals[0].target_amount == Decimal('6000.00')

    def test_goal_count_is_capped(self):
        budget = self.make_budget(5000, {'Rent': 2500, 'Dining': 600, 'Groceries': 1400})
        assert len(self.engine.recommend([budget] * 3)) <= RecommendationEngine.MAX_GOALS


class TestAchievability:
    """Test cases for achievability thresholds"""

    def test_achievability_for(self):
        cases = {
            Decimal('100'): Achievability.EASY,
            Decimal('300'): Achievability.MODERATE,
            Decimal('500'): Achievability.CHALLENGING,
            Decimal('800'): Achievability.UNREALISTIC,
        }
        for required, expected in cases.items():
            assert achievability_for(required, Decimal('1000')) == expected, f"Wrong rating for {required}"
        assert achievability_for(Decimal('1'), Decimal('0')) == Achievability.UNREALISTIC

    def test_savings_gap_achievability(self):
        assert savings_gap_achievability(Decimal('0'), Decimal('1000')) == Achievability.EASY
        assert savings_gap_achievability(Decimal('50'), Decimal('1000')) == Achievability.EASY
        assert savings_gap_achievability(Decimal('100'), Decimal('1000')) == Achievability.MODERATE
        assert savings_gap_achievability(Decimal('200'), Decimal('1000')) == Achievability.CHALLENGING
        assert savings_gap_achievability(Decimal('300'), Decimal('1000')) == Achievability.UNREALISTIC


class TestBudgetRecommendations(BudgetFixtures):
    """Test cases for generate_budget_recommendations and category limits"""

    def setup_method(self):
        """Set up test fixtures"""
        self.engine = RecommendationEngine()

    def test_requires_budgets(self):
        with pytest.raises(ValueError):
            self.engine.generate_budget_recommendations([])

    def test_healthy_budget(self):
        budget = self.make_budget(5000, {'Rent': 2500, 'Dining': 1000}, needs=('Rent',))
        advice = self.engine.generate_budget_recommendations([budget])

        assert advice.risk_level == RiskLevel.HEALTHY
        assert advice.emergency_fund_target == Decimal('14000.00')
        assert advice.allocation == {
            BudgetGroup.NEEDS: Decimal('2500.00'),
            BudgetGroup.WANTS: Decimal('1500.00'),
            BudgetGroup.SAVINGS: Decimal('1000.00'),
        }
        assert len(advice.actionable_steps) == 3

        dining, rent = advice.category_limits
        assert dining.category == "Dining"
        assert dining.priority == 'high'
        assert dining.recommended_limit == Decimal('800')
        assert rent.priority == 'low'
        assert rent.recommended_limit == Decimal('2500')

    def test_overspending_is_critical(self):
        budget = self.make_budget(3000, {'Rent': 2500, 'Groceries': 1000})
        advice = self.engine.generate_budget_recommendations([budget])

        assert advice.risk_level == RiskLevel.CRITICAL
        assert any(step.startswith("Pay yourself first") for step in advice.actionable_steps)

    def test_low_savings_rate_is_concerning(self):
        budget = self.make_budget(5000, {'Rent': 2500, 'Groceries': 2300}, needs=('Rent',))
        advice = self.engine.generate_budget_recommendations([budget])
        assert advice.risk_level == RiskLevel.CONCERNING

    def test_suggest_category_limits(self):
        budget = self.make_budget(8000, {
            'Dining': 900, 'Entertainment': 500, 'Shopping': 450, 'Groceries': 300,
        })
        limits = suggest_category_limits(budget)

        assert [limit.category for limit in limits] == ['Dining', 'Entertainment', 'Shopping', 'Groceries']
        assert [limit.priority for limit in limits] == ['high', 'medium', 'medium', 'low']
        assert limits[0].recommended_limit == Decimal('720.00')
        assert limits[1].recommended_limit == Decimal('425.00')
        assert limits[2].recommended_limit == Decimal('405.00')
        assert limits[3].recommended_limit == Decimal('300.00')

    def test_income_categories_have_no_limits(self):
        budget = self.make_budget(8000, {'Groceries': 300})
        assert [limit.category for limit in suggest_category_limits(budget)] == ['Groceries']
