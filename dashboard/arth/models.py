# Data models for the Arth dashboard
import datetime as dt
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RiskAppetite(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class PulseStatus(str, Enum):
    SAFE = "SAFE"
    WARNING = "WARNING"
    DANGER = "DANGER"


class PulseTrend(str, Enum):
    IMPROVING = "IMPROVING"
    STABLE = "STABLE"
    DETERIORATING = "DETERIORATING"


class Priority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


class FinancialProfile(BaseModel):
    current_age: int = Field(28, ge=0)
    retirement_age: int = Field(55, ge=0)
    monthly_contribution: float = Field(15000, ge=0)
    current_savings: float = Field(500000, ge=0)
    monthly_income: float = Field(50000, ge=0)
    risk_appetite: RiskAppetite = RiskAppetite.MODERATE


class ProjectionPoint(BaseModel):
    year: int
    age: int
    corpus: float


class GoalPlan(BaseModel):
    needed_corpus: float
    monthly_sip_needed: float
    sip_gap: float = 0.0
    year_by_year_projection: List[ProjectionPoint]
    source: str = "local"


class GoalPlanRequest(BaseModel):
    profile: FinancialProfile
    target_corpus: Optional[float] = Field(None, gt=0)


class CategorySummary(BaseModel):
    category: str
    total_amount: float


class BudgetLine(BaseModel):
    category: str
    budget: float
    actual: float


class BudgetView(BaseModel):
    income: float
    lines: List[BudgetLine]
    limits: Dict[str, float]
    over_limit: List[str]


class Prescription(BaseModel):
    action: str
    priority: Priority = Priority.MEDIUM
    monthly_saving: float = 0.0


class PulseAnalysis(BaseModel):
    health_score: Optional[int] = Field(None, ge=0, le=100)
    status: Optional[PulseStatus] = None
    emi_to_income_ratio: Optional[float] = None
    savings_rate: Optional[float] = None
    trend: Optional[PulseTrend] = None
    debt_trap_days: Optional[int] = None
    prescription: List[Prescription] = []
    scenario_if_no_action: Optional[str] = None
    estimated: bool = False


class ExpenseRecord(BaseModel):
    id: Any = None
    amount: float
    category: str = "Other"
    description: str = ""
    date: Optional[str] = None


class ExpenseCreate(BaseModel):
    amount: Optional[float] = None
    category: str = "Food"
    description: str = ""


class IncomeRecord(BaseModel):
    id: Any = None
    amount: float
    source: str = ""


class UserProfile(BaseModel):
    id: Any = None
    email: str = ""
    name: str = ""
    monthly_income: float = 0.0
    age: Optional[int] = None


class Festival(BaseModel):
    name: str
    date: Optional[dt.date] = None
    days_remaining: Optional[int] = None


class Notification(BaseModel):
    title: str
    description: str = ""
    variant: str = "default"


class DashboardStats(BaseModel):
    income: float
    expenses: float
    savings: float
    source: str = "fallback"


class DashboardState(BaseModel):
    """View state of the dashboard screen, filled in stages by the loader."""

    loading: bool = False
    generation: int = 0
    authoritative_generation: int = 0
    stats: Optional[DashboardStats] = None
    recent_expenses: List[ExpenseRecord] = []
    summary: List[CategorySummary] = []
    pulse: Optional[PulseAnalysis] = None
    festivals: List[Festival] = []
    supplemental_income: float = 0.0
    failed_sources: List[str] = []


class ExpenseResult(BaseModel):
    ok: bool
    expense: Optional[ExpenseRecord] = None
    notifications: List[Notification] = []
    state: Optional[DashboardState] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str = ""
    monthly_income: float = 0.0
    age: Optional[int] = None


class LimitsRequest(BaseModel):
    limits: Dict[str, float]


class ScoreRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    monthly_income: float = Field(..., gt=0)
    current_emis: float = Field(0, ge=0)
    credit_score: int = Field(750, ge=300, le=900)
    loan_amount: Optional[float] = Field(None, gt=0)
    employment_type: Optional[str] = None


class ScoreResult(BaseModel):
    approval_probability: float
    verdict: str
    recommended_loan_amount: Optional[float] = None
    improvement_tips: List[str] = []
    suggested_banks: List[Any] = []


class ShieldFlag(BaseModel):
    issue: str
    severity: str
    clause_text: str = ""
    regulation_violated: Optional[str] = None
    suggested_fix: Optional[str] = None


class ShieldResult(BaseModel):
    risk_score: float
    risk_level: str
    summary: str = ""
    flags: List[ShieldFlag] = []
    missing_clauses: List[str] = []


class FestivalPlanRequest(BaseModel):
    name: str = ""
    date: str = ""


class FestivalAnalysis(BaseModel):
    detected_spike_pattern: Any = None
    estimated_extra_spending: Optional[float] = None
    debt_warning: Any = None
    savings_plan: Any = None
    actionable_tips: List[Any] = []
