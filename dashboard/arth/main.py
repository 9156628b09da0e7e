import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from . import config
from .api_client import ArthApiClient, ArthApiError
from .categories import Category, color_for, fallback_factor, icon_for
from .logging_setup import configure_logging
from .models import (
    BudgetView,
    DashboardState,
    ExpenseCreate,
    ExpenseResult,
    Festival,
    FestivalAnalysis,
    FestivalPlanRequest,
    FinancialProfile,
    GoalPlan,
    GoalPlanRequest,
    LimitsRequest,
    LoginRequest,
    Notification,
    ProjectionPoint,
    RegisterRequest,
    ScoreRequest,
    ScoreResult,
    ShieldResult,
    UserProfile,
)
from .orchestrator import BudgetLoader, DashboardLoader, InvalidExpense, Liveness, days_until
from .projection import plan_goal, project_corpus
from .pulse import STATUS_LABELS, health_trend, score_color
from .session import SessionStore

logger = logging.getLogger(__name__)


class AppContext:
    """Everything one dashboard session needs, passed to endpoints explicitly."""

    def __init__(self, api: ArthApiClient, session: SessionStore):
        self.api = api
        self.session = session
        self.loader = DashboardLoader(
            api,
            session,
            timeout=config.ARTH_LOAD_TIMEOUT,
            default_income=config.DEFAULT_MONTHLY_INCOME,
        )
        self.budget = BudgetLoader(api, session, default_income=config.DEFAULT_MONTHLY_INCOME)
        self.state = DashboardState()
        self.liveness = Liveness()

    def reset_view(self):
        # Late results for the old view must not land in the new one
        self.liveness.kill()
        self.liveness = Liveness()
        self.state = DashboardState()

    def logout(self):
        self.reset_view()
        self.session.logout()


def build_context() -> AppContext:
    session = SessionStore(config.SESSION_FILE)
    api = ArthApiClient(
        config.ARTH_API_BASE_URL,
        token_provider=lambda: session.token,
        timeout=config.ARTH_API_TIMEOUT,
    )
    return AppContext(api, session)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(config.LOG_LEVEL)
    logger.info("Arth dashboard using upstream %s", config.ARTH_API_BASE_URL)
    yield
    context = getattr(app.state, "context", None)
    if context is not None:
        await context.api.close()


app = FastAPI(title="Arth Dashboard API", lifespan=lifespan)

# CORS middleware for the web frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_context(request: Request) -> AppContext:
    context = getattr(request.app.state, "context", None)
    if context is None:
        context = build_context()
        request.app.state.context = context
    return context


def upstream_failure(error: ArthApiError, message: str) -> HTTPException:
    """Translate an upstream error into the response the screen shows."""
    status_code = error.status_code if error.status_code and error.status_code < 500 else 502
    return HTTPException(status_code=status_code, detail=error.detail or message)


@app.get("/")
def read_root():
    return {"message": "Arth Dashboard API"}


@app.get("/categories")
def get_categories():
    """Get the expense categories with their display settings"""
    return {
        "categories": [
            {
                "name": c.value,
                "color": color_for(c.value),
                "icon": icon_for(c.value),
                "fallback_factor": fallback_factor(c.value),
            }
            for c in Category
        ]
    }


# Session


@app.get("/session")
def get_session(ctx: AppContext = Depends(get_context)):
    return {"authenticated": ctx.session.is_authenticated(), "user": ctx.session.user}


@app.post("/session/login")
async def login(request: LoginRequest, ctx: AppContext = Depends(get_context)):
    """Log in upstream and start a fresh dashboard session"""
    if not request.email.strip() or not request.password:
        raise HTTPException(status_code=400, detail="Email and password are required")
    try:
        token = await ctx.api.login(request.email, request.password)
        ctx.session.login(token)
        user = await ctx.api.get_me()
    except ArthApiError as e:
        ctx.session.logout()
        raise upstream_failure(e, "Authentication failed")
    ctx.session.set_user(user)
    ctx.reset_view()
    return {
        "user": user,
        "notifications": [
            Notification(title="Login Successful", description=f"Welcome back, {user.name}!")
        ],
    }


@app.post("/session/register")
async def register(request: RegisterRequest, ctx: AppContext = Depends(get_context)):
    if not request.email.strip() or not request.password:
        raise HTTPException(status_code=400, detail="Email and password are required")
    try:
        token = await ctx.api.register(request.model_dump())
        ctx.session.login(token)
        user = await ctx.api.get_me()
    except ArthApiError as e:
        ctx.session.logout()
        raise upstream_failure(e, "Registration failed")
    ctx.session.set_user(user)
    ctx.reset_view()
    return {
        "user": user,
        "notifications": [
            Notification(title="Registration Successful", description="Your account has been created.")
        ],
    }


@app.post("/session/logout")
def logout(ctx: AppContext = Depends(get_context)):
    ctx.logout()
    return {"message": "Session cleared"}


@app.put("/profile")
async def update_profile(profile: UserProfile, ctx: AppContext = Depends(get_context)):
    try:
        user = await ctx.api.update_profile(
            profile.model_dump(exclude={"id"}, exclude_unset=True)
        )
    except ArthApiError as e:
        raise upstream_failure(e, "Failed to update profile")
    ctx.session.set_user(user)
    return {
        "user": user,
        "notifications": [
            Notification(title="Profile Updated", description="Your changes have been saved successfully.")
        ],
    }


# Dashboard and expenses


@app.get("/dashboard", response_model=DashboardState)
async def get_dashboard(ctx: AppContext = Depends(get_context)):
    """Load the dashboard in stages; may return a partial view after the timeout"""
    return await ctx.loader.load(ctx.state, ctx.liveness)


@app.post("/expenses", response_model=ExpenseResult)
async def add_expense(request: ExpenseCreate, ctx: AppContext = Depends(get_context)):
    """Record an expense, then reload the dashboard"""
    try:
        return await ctx.loader.record_expense(ctx.state, ctx.liveness, request)
    except InvalidExpense as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/expenses/{expense_id}", response_model=ExpenseResult)
async def delete_expense(expense_id: str, ctx: AppContext = Depends(get_context)):
    try:
        await ctx.api.delete_expense(expense_id)
    except ArthApiError as e:
        logger.warning("Expense delete failed: %s", e)
        return ExpenseResult(
            ok=False,
            notifications=[
                Notification(title="Error", description="Failed to delete expense.", variant="destructive")
            ],
            state=ctx.state,
        )
    await ctx.loader.load(ctx.state, ctx.liveness)
    return ExpenseResult(
        ok=True,
        notifications=[Notification(title="Expense Deleted", description="The expense has been removed.")],
        state=ctx.state,
    )


@app.get("/budget", response_model=BudgetView)
async def get_budget(ctx: AppContext = Depends(get_context)):
    return await ctx.budget.load()


@app.put("/limits", response_model=BudgetView)
async def set_limits(request: LimitsRequest, ctx: AppContext = Depends(get_context)):
    negative = [name for name, value in request.limits.items() if value < 0]
    if negative:
        raise HTTPException(
            status_code=400,
            detail=f"Limits must not be negative: {', '.join(sorted(negative))}",
        )
    try:
        await ctx.api.set_limits(request.limits)
    except ArthApiError as e:
        raise upstream_failure(e, "Failed to save limits")
    return await ctx.budget.load()


# Analysis screens


@app.get("/pulse")
async def get_pulse(ctx: AppContext = Depends(get_context)):
    """Latest pulse report, falling back to the cached or estimated one"""
    analysis, source = await ctx.loader.refresh_pulse(ctx.state)
    score = analysis.health_score or 0
    status = analysis.status
    return {
        "analysis": analysis,
        "source": source,
        "label": STATUS_LABELS.get(status) if status else None,
        "color": score_color(score),
        "trend_series": health_trend(score),
    }


@app.post("/pulse/scenario")
async def pulse_scenario(scenario: Dict[str, Any], ctx: AppContext = Depends(get_context)):
    """What-if analysis, e.g. a new EMI or a salary change"""
    if not scenario:
        raise HTTPException(status_code=400, detail="Describe the scenario to simulate")
    try:
        return await ctx.api.pulse_scenario(scenario)
    except ArthApiError as e:
        raise upstream_failure(e, "Scenario simulation failed")


@app.get("/goals")
async def get_goals(ctx: AppContext = Depends(get_context)):
    try:
        return await ctx.api.get_goals()
    except ArthApiError as e:
        logger.warning("Goal list unavailable: %s", e)
        return []


@app.post("/advisor/strategy")
async def advisor_strategy(inputs: Dict[str, Any], ctx: AppContext = Depends(get_context)):
    try:
        return await ctx.api.advisor_strategy(inputs)
    except ArthApiError as e:
        raise upstream_failure(e, "Failed to generate strategy.")


@app.post("/goals/plan", response_model=GoalPlan)
async def goals_plan(request: GoalPlanRequest, ctx: AppContext = Depends(get_context)):
    """Upstream goal plan, or the local projection when it is unavailable"""
    payload = request.profile.model_dump(mode="json")
    if request.target_corpus:
        payload["target_corpus"] = request.target_corpus
    try:
        data = await ctx.api.goals_plan(payload)
        return GoalPlan(**{**data, "source": "upstream"})
    except (ArthApiError, ValidationError, TypeError) as e:
        logger.warning("Goal plan unavailable, projecting locally: %s", e)
    return plan_goal(request.profile, request.target_corpus, annual_rate=config.ANNUAL_RATE)


@app.post("/projection", response_model=List[ProjectionPoint])
def projection(profile: FinancialProfile, step_years: int = 1):
    if step_years < 1:
        raise HTTPException(status_code=400, detail="step_years must be at least 1")
    return project_corpus(profile, annual_rate=config.ANNUAL_RATE, step_years=step_years)


@app.post("/score/predict", response_model=ScoreResult)
async def score_predict(request: ScoreRequest, ctx: AppContext = Depends(get_context)):
    try:
        data = await ctx.api.score_predict(request.model_dump())
    except ArthApiError as e:
        raise upstream_failure(e, "Failed to predict loan approval")
    return ScoreResult(**data)


@app.post("/shield/analyze", response_model=ShieldResult)
async def shield_analyze(
    text: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
):
    """Analyze agreement text or an uploaded agreement file"""
    content = None
    if file is not None and file.filename:
        content = await file.read()
        if not content:
            raise HTTPException(status_code=400, detail="File is empty")
    if not (text and text.strip()) and content is None:
        raise HTTPException(status_code=400, detail="Provide agreement text or a file")

    try:
        data = await ctx.api.shield_analyze(
            text=text,
            file_name=file.filename if content is not None else None,
            file_content=content,
            content_type=(file.content_type if content is not None else None)
            or "application/octet-stream",
        )
    except ArthApiError as e:
        raise upstream_failure(e, "Failed to analyze agreement")
    return ShieldResult(**data)


@app.get("/shield/history")
async def shield_history(ctx: AppContext = Depends(get_context)):
    try:
        return await ctx.api.shield_history()
    except ArthApiError as e:
        logger.warning("Shield history unavailable: %s", e)
        return []


@app.post("/festival/plan", response_model=FestivalAnalysis)
async def festival_plan(request: FestivalPlanRequest, ctx: AppContext = Depends(get_context)):
    if not request.name.strip() or not request.date.strip():
        raise HTTPException(status_code=400, detail="Please enter festival details.")
    try:
        date.fromisoformat(request.date)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid festival date: {request.date}")
    try:
        data = await ctx.api.festival_plan(request.name, request.date)
    except ArthApiError as e:
        raise upstream_failure(e, "Failed to generate strategy.")
    return FestivalAnalysis(**((data or {}).get("analysis") or {}))


@app.get("/festivals", response_model=List[Festival])
async def get_festivals(ctx: AppContext = Depends(get_context)):
    try:
        festivals = await ctx.api.get_festivals()
    except (ArthApiError, ValidationError) as e:
        logger.warning("Festival list unavailable: %s", e)
        return []
    today = date.today()
    return [
        f.model_copy(update={"days_remaining": days_until(f.date, today)}) for f in festivals
    ]
