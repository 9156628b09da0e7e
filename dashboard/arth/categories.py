"""
Shared category configuration for every dashboard screen.

Budget fallback factors and display colors/icons live here once instead of
being repeated per screen.
"""

from enum import Enum
from typing import Dict, List


class Category(str, Enum):
    FOOD = "Food"
    TRANSPORT = "Transport"
    EMI = "EMI"
    HEALTH = "Health"
    FUN = "Fun"
    OTHER = "Other"


# Share of monthly income used as a budget when the user has not set a limit
FALLBACK_FACTORS: Dict[Category, float] = {
    Category.EMI: 0.35,
    Category.FOOD: 0.15,
    Category.TRANSPORT: 0.05,
}
DEFAULT_FACTOR = 0.10

CATEGORY_COLORS: Dict[Category, str] = {
    Category.FOOD: "#3B82F6",
    Category.TRANSPORT: "#10B981",
    Category.EMI: "#F59E0B",
    Category.HEALTH: "#EF4444",
    Category.FUN: "#8B5CF6",
    Category.OTHER: "#6B7280",
}

CATEGORY_ICONS: Dict[Category, str] = {
    Category.FOOD: "coffee",
    Category.TRANSPORT: "car",
    Category.EMI: "credit-card",
    Category.HEALTH: "activity",
    Category.FUN: "sparkles",
    Category.OTHER: "wallet",
}


def is_known_category(name: str) -> bool:
    return name in Category._value2member_map_


def as_category(name: str) -> Category:
    """Map a category string onto the closed set; goal categories become Other."""
    if is_known_category(name):
        return Category(name)
    return Category.OTHER


def fallback_factor(category: str) -> float:
    if not is_known_category(category):
        return DEFAULT_FACTOR
    return FALLBACK_FACTORS.get(Category(category), DEFAULT_FACTOR)


def color_for(category: str) -> str:
    return CATEGORY_COLORS[as_category(category)]


def icon_for(category: str) -> str:
    return CATEGORY_ICONS[as_category(category)]


def category_names() -> List[str]:
    return [c.value for c in Category]
