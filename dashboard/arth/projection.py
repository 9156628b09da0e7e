"""
Corpus growth projection for the Goals screen.

The upstream planner owns the authoritative plan; these functions produce the
chart data locally while that plan is loading or when it fails.
"""

from datetime import date
from typing import List, Optional

from .models import FinancialProfile, GoalPlan, ProjectionPoint

DEFAULT_ANNUAL_RATE = 0.12
DEFAULT_TARGET_CORPUS = 50_000_000  # 5 crore


def _monthly_rate(annual_rate: float) -> float:
    if annual_rate < 0:
        raise ValueError(f"Annual rate must be non-negative, got {annual_rate}")
    return annual_rate / 12


def future_value(
    present: float, monthly_contribution: float, annual_rate: float, years: int
) -> float:
    """
    Value after `years` of monthly compounding with a contribution at the end
    of every month.
    """
    rate = _monthly_rate(annual_rate)
    months = max(years, 0) * 12
    if rate == 0:
        return present + monthly_contribution * months
    growth = (1 + rate) ** months
    return present * growth + monthly_contribution * (growth - 1) / rate


def project_corpus(
    profile: FinancialProfile,
    annual_rate: float = DEFAULT_ANNUAL_RATE,
    step_years: int = 1,
    start_year: Optional[int] = None,
) -> List[ProjectionPoint]:
    """
    Project the corpus year by year from current age to retirement age.

    Args:
        profile: Ages, savings and monthly contribution to project
        annual_rate: Assumed nominal annual return (0.12 = 12%)
        step_years: Emit every Nth year; the retirement year is always emitted
        start_year: Calendar year of the first point (defaults to this year)

    Returns:
        Chronological points; the first one holds current savings unchanged
    """
    if step_years < 1:
        raise ValueError(f"step_years must be at least 1, got {step_years}")
    rate = _monthly_rate(annual_rate)
    if start_year is None:
        start_year = date.today().year

    points = [
        ProjectionPoint(
            year=start_year, age=profile.current_age, corpus=profile.current_savings
        )
    ]
    horizon = profile.retirement_age - profile.current_age
    if horizon <= 0:
        return points

    corpus = profile.current_savings
    for n in range(1, horizon + 1):
        for _ in range(12):
            corpus = corpus * (1 + rate) + profile.monthly_contribution
        if n % step_years == 0 or n == horizon:
            points.append(
                ProjectionPoint(
                    year=start_year + n,
                    age=profile.current_age + n,
                    corpus=round(corpus, 2),
                )
            )
    return points


def required_monthly_contribution(
    profile: FinancialProfile,
    target_corpus: float,
    annual_rate: float = DEFAULT_ANNUAL_RATE,
) -> float:
    """Monthly SIP that reaches target_corpus at retirement (never negative)."""
    years = profile.retirement_age - profile.current_age
    if years <= 0:
        return max(target_corpus - profile.current_savings, 0.0)

    rate = _monthly_rate(annual_rate)
    months = years * 12
    shortfall = target_corpus - future_value(profile.current_savings, 0, annual_rate, years)
    if shortfall <= 0:
        return 0.0
    if rate == 0:
        return round(shortfall / months, 2)
    growth = (1 + rate) ** months
    return round(shortfall * rate / (growth - 1), 2)


def plan_goal(
    profile: FinancialProfile,
    target_corpus: Optional[float] = None,
    annual_rate: float = DEFAULT_ANNUAL_RATE,
    start_year: Optional[int] = None,
) -> GoalPlan:
    target = target_corpus or DEFAULT_TARGET_CORPUS
    needed = required_monthly_contribution(profile, target, annual_rate)
    return GoalPlan(
        needed_corpus=target,
        monthly_sip_needed=needed,
        sip_gap=round(max(needed - profile.monthly_contribution, 0.0), 2),
        year_by_year_projection=project_corpus(
            profile, annual_rate=annual_rate, start_year=start_year
        ),
        source="local",
    )
