"""
Budget vs actual reconciliation for the Track screen.

BudgetReconciler resolves every category limit once, from the user's explicit
limits or from the income-share fallback table, and then compares category
totals against them.
"""

from typing import Dict, Iterable, List, Mapping, Optional

from .categories import category_names, fallback_factor
from .models import BudgetLine, CategorySummary


def resolve_limits(
    limits: Optional[Mapping[str, float]],
    income: float,
    categories: Iterable[str] = (),
) -> Dict[str, float]:
    """
    Resolve a limit for every known category plus any extra categories.

    Args:
        limits: User-set limits, possibly partial or empty
        income: Monthly income used for fallback budgets
        categories: Extra (e.g. goal) categories that also need a limit

    Returns:
        Mapping of category name to its resolved limit
    """
    limits = limits or {}
    resolved: Dict[str, float] = {}
    for name in list(category_names()) + list(categories):
        if name in resolved:
            continue
        explicit = limits.get(name)
        if explicit is not None and explicit > 0:
            resolved[name] = float(explicit)
        else:
            resolved[name] = round(max(income, 0) * fallback_factor(name), 2)
    return resolved


class BudgetReconciler:
    """
    Compares category totals against resolved limits.

    The reconciler is initialized with the limits and income so that limit
    resolution happens once per summary refresh.
    """

    def __init__(self, limits: Optional[Mapping[str, float]], income: float):
        self.income = income
        self.explicit_limits = dict(limits or {})
        self.limits = resolve_limits(self.explicit_limits, income)

    def budget_for(self, category: str) -> float:
        if category not in self.limits:
            self.limits.update(
                resolve_limits(self.explicit_limits, self.income, [category])
            )
        return self.limits[category]

    def reconcile(self, summary: Iterable[CategorySummary]) -> List[BudgetLine]:
        """One line per summary category, in order of first appearance."""
        actuals: Dict[str, float] = {}
        for item in summary:
            actuals[item.category] = actuals.get(item.category, 0.0) + item.total_amount
        return [
            BudgetLine(category=name, budget=self.budget_for(name), actual=actual)
            for name, actual in actuals.items()
        ]

    def exceeds_limit(self, category: str, amount: float, running_total: float) -> bool:
        """
        Check whether recording `amount` pushes the category past its limit.

        Advisory only: callers record the expense regardless of the answer.
        """
        return running_total + amount > self.budget_for(category)

    def over_limit_lines(self, summary: Iterable[CategorySummary]) -> List[BudgetLine]:
        return [line for line in self.reconcile(summary) if line.actual > line.budget]


def reconcile_budget(
    summary: Iterable[CategorySummary],
    limits: Optional[Mapping[str, float]],
    income: float,
) -> List[BudgetLine]:
    return BudgetReconciler(limits, income).reconcile(summary)


def running_total(summary: Iterable[CategorySummary], category: str) -> float:
    return sum(item.total_amount for item in summary if item.category == category)
