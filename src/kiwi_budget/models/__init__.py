"""Data models and structures"""

from .core import (
    Achievability,
    BankConfig,
    BudgetGroup,
    BudgetInsights,
    BudgetRecommendations,
    CategoryLimit,
    CategoryShare,
    CategoryStats,
    CategorySuggestion,
    ClassifiedTransaction,
    ConfidenceTier,
    ExpenseType,
    IncomeType,
    IngestResult,
    MonthlyBudget,
    MonthOverMonthChange,
    NormalizedTransaction,
    ParseResult,
    PipelineConfig,
    ReversalPair,
    RiskLevel,
    SmartGoal,
    TransactionCategory,
)

__all__ = [
    'Achievability',
    'BankConfig',
    'BudgetGroup',
    'BudgetInsights',
    'BudgetRecommendations',
    'CategoryLimit',
    'CategoryShare',
    'CategoryStats',
    'CategorySuggestion',
    'ClassifiedTransaction',
    'ConfidenceTier',
    'ExpenseType',
    'IncomeType',
    'IngestResult',
    'MonthlyBudget',
    'MonthOverMonthChange',
    'NormalizedTransaction',
    'ParseResult',
    'PipelineConfig',
    'ReversalPair',
    'RiskLevel',
    'SmartGoal',
    'TransactionCategory',
]
