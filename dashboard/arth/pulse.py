"""
Local estimate of the Pulse health report.

The upstream pulse model is authoritative. derive_pulse() gives the screen a
best-effort report from income and expense totals while that report is
missing, loading or unreachable. The scoring here only reproduces the shape
the screens rely on (monotonic score, SAFE/WARNING/DANGER thresholds), not the
upstream model's exact numbers.
"""

import math
from typing import List, Optional

from .models import Priority, Prescription, PulseAnalysis, PulseStatus, PulseTrend

SAVINGS_WEIGHT = 60
EMI_WEIGHT = 40
FULL_SAVINGS_RATE = 40.0
MAX_EMI_RATIO = 50.0
TARGET_SAVINGS_RATE = 20.0
TARGET_EMI_RATIO = 30.0
TREND_THRESHOLD = 5

STATUS_LABELS = {
    PulseStatus.SAFE: "Healthy",
    PulseStatus.WARNING: "Needs Attention",
    PulseStatus.DANGER: "Critical",
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def savings_rate(income: float, expenses: float) -> int:
    """Percent of income left after expenses, rounded half up (12.5 -> 13)."""
    if income <= 0:
        return 0
    rate = (income - expenses) / income * 100
    return round_half_up(min(max(rate, 0.0), 100.0))


def emi_ratio(income: float, emi_total: Optional[float]) -> float:
    if not emi_total or emi_total <= 0:
        return 0.0
    if income <= 0:
        return 100.0
    return round(emi_total / income * 100, 1)


def health_score(rate: float, ratio: float, income: float) -> int:
    """Score 0-100: 60 points for savings, 40 for a light EMI burden."""
    if income <= 0:
        return 0
    savings_points = SAVINGS_WEIGHT * min(max(rate, 0.0), FULL_SAVINGS_RATE) / FULL_SAVINGS_RATE
    emi_points = EMI_WEIGHT * (1 - min(max(ratio, 0.0), MAX_EMI_RATIO) / MAX_EMI_RATIO)
    return min(max(round_half_up(savings_points + emi_points), 0), 100)


def status_for(score: int) -> PulseStatus:
    if score > 70:
        return PulseStatus.SAFE
    if score > 40:
        return PulseStatus.WARNING
    return PulseStatus.DANGER


def trend_for(score: int, previous: Optional[PulseAnalysis]) -> PulseTrend:
    if previous is None or previous.health_score is None:
        return PulseTrend.STABLE
    delta = score - previous.health_score
    if delta >= TREND_THRESHOLD:
        return PulseTrend.IMPROVING
    if delta <= -TREND_THRESHOLD:
        return PulseTrend.DETERIORATING
    return PulseTrend.STABLE


def score_color(score: int) -> str:
    if score > 70:
        return "#10B981"
    if score > 40:
        return "#F59E0B"
    return "#EF4444"


def health_trend(score: int) -> List[dict]:
    """Four-point history series shown under the score card."""
    return [
        {"month": "3M ago", "score": max(10, score - 12)},
        {"month": "2M ago", "score": max(10, score - 6)},
        {"month": "Last Mo", "score": max(10, score - 2)},
        {"month": "Now", "score": score},
    ]


def _prescribe(
    income: float, expenses: float, rate: int, ratio: float, emi_total: Optional[float]
) -> List[Prescription]:
    steps = []
    if income > 0 and rate < TARGET_SAVINGS_RATE:
        gap = income * TARGET_SAVINGS_RATE / 100 - (income - expenses)
        steps.append(
            Prescription(
                action="Trim discretionary spending to save 20% of income",
                priority=Priority.HIGH if rate < 10 else Priority.MEDIUM,
                monthly_saving=round(max(gap, 0.0), 2),
            )
        )
    if emi_total and ratio > TARGET_EMI_RATIO:
        excess = emi_total - max(income, 0) * TARGET_EMI_RATIO / 100
        steps.append(
            Prescription(
                action="Prepay or consolidate your costliest loan",
                priority=Priority.HIGH if ratio > 40 else Priority.MEDIUM,
                monthly_saving=round(max(excess, 0.0), 2),
            )
        )
    return steps


def derive_pulse(
    income: float,
    expenses: Optional[float],
    cached: Optional[PulseAnalysis] = None,
    emi_total: Optional[float] = None,
) -> PulseAnalysis:
    """
    Estimate a pulse report from local totals.

    Args:
        income: Total monthly income
        expenses: Total monthly expenses, or None when they are unknown
        cached: Last report seen, used for the trend and when expenses are unknown
        emi_total: Monthly EMI outgo if known

    Returns:
        A PulseAnalysis flagged as estimated
    """
    ratio = emi_ratio(income, emi_total)

    if expenses is None:
        if cached is not None:
            return cached.model_copy(update={"estimated": True})
        return PulseAnalysis(
            emi_to_income_ratio=ratio if emi_total is not None else None,
            estimated=True,
        )

    rate = savings_rate(income, expenses)
    score = health_score(rate, ratio, income)
    status = status_for(score)
    scenario = None
    if status != PulseStatus.SAFE:
        scenario = (
            f"At a {rate}% savings rate, one unplanned expense could push you into debt."
        )
    return PulseAnalysis(
        health_score=score,
        status=status,
        emi_to_income_ratio=ratio if emi_total is not None else None,
        savings_rate=rate,
        trend=trend_for(score, cached),
        debt_trap_days=None,
        prescription=_prescribe(income, expenses, rate, ratio, emi_total),
        scenario_if_no_action=scenario,
        estimated=True,
    )
