"""
Staged loading of dashboard data from several independent upstream sources.

The expense list is fetched first so the screen can show totals early. The
summary, pulse, festival and income sources then run concurrently; each one
is settled on its own so a failing source never blocks or aborts its
siblings. A timeout clears the loading flag without cancelling anything:
results that arrive later are still applied while the consumer is alive and
no newer load has started.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    TypeVar,
)

from .api_client import ArthApiClient, ArthApiError
from .budget import BudgetReconciler, running_total
from .categories import Category
from .models import (
    BudgetView,
    CategorySummary,
    DashboardState,
    DashboardStats,
    ExpenseCreate,
    ExpenseRecord,
    ExpenseResult,
    Festival,
    IncomeRecord,
    Notification,
    PulseAnalysis,
)
from .pulse import derive_pulse
from .session import SessionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

FULFILLED = "fulfilled"
REJECTED = "rejected"
RECENT_EXPENSES = 4


class InvalidExpense(ValueError):
    """Expense rejected locally before any upstream call."""


@dataclass
class FetchResult(Generic[T]):
    """Outcome of one settled fetch: either a value or the failure reason."""

    status: str
    value: Optional[T] = None
    reason: Optional[BaseException] = None

    @property
    def fulfilled(self) -> bool:
        return self.status == FULFILLED

    @classmethod
    def ok(cls, value: T) -> "FetchResult[T]":
        return cls(status=FULFILLED, value=value)

    @classmethod
    def failed(cls, reason: BaseException) -> "FetchResult[T]":
        return cls(status=REJECTED, reason=reason)


async def settle(awaitable: Awaitable[T]) -> FetchResult[T]:
    """Await and capture any failure as a rejected result."""
    try:
        return FetchResult.ok(await awaitable)
    except Exception as e:
        return FetchResult.failed(e)


async def settle_all(awaitables: Mapping[str, Awaitable[Any]]) -> Dict[str, FetchResult]:
    names = list(awaitables)
    results = await asyncio.gather(*(settle(awaitables[name]) for name in names))
    return dict(zip(names, results))


class Liveness:
    """Tells late results whether anyone still wants them."""

    def __init__(self):
        self.alive = True

    def kill(self):
        self.alive = False


def profile_income(session: SessionStore, default_income: float) -> float:
    """Monthly income that fallback budget limits are derived from."""
    return session.monthly_income(default_income)


def days_until(target: Optional[date], today: Optional[date] = None) -> Optional[int]:
    if target is None:
        return None
    today = today or date.today()
    return (target - today).days


class DashboardLoader:
    """
    Fills a DashboardState from the upstream API in stages.

    Args:
        api: Upstream API client
        session: Session store providing income and the cached pulse snapshot
        timeout: Seconds after which `loading` is cleared regardless
        default_income: Income used when the profile has none
    """

    def __init__(
        self,
        api: ArthApiClient,
        session: SessionStore,
        timeout: float = 3.0,
        default_income: float = 50000.0,
    ):
        self.api = api
        self.session = session
        self.timeout = timeout
        self.default_income = default_income
        self._pending: Set[asyncio.Task] = set()

    def base_income(self) -> float:
        return profile_income(self.session, self.default_income)

    async def load(self, state: DashboardState, liveness: Liveness) -> DashboardState:
        """
        Run one staged load against `state`.

        Returns once every source has settled or the timeout has elapsed,
        whichever comes first. Sources still in flight keep running.
        """
        state.generation += 1
        generation = state.generation
        state.loading = True
        state.failed_sources = []

        def is_current() -> bool:
            return liveness.alive and state.generation == generation

        if state.pulse is None:
            state.pulse = self.session.load_pulse_snapshot()

        task = asyncio.ensure_future(self._run(state, generation, is_current))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Dashboard load %d still pending after %.1fs, showing partial view",
                generation,
                self.timeout,
            )
            if is_current() and state.pulse is None:
                state.pulse = self.estimate_pulse(state)
        finally:
            if state.generation == generation:
                state.loading = False
        return state

    async def wait_pending(self):
        """Wait for loads that outlived their timeout."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _run(self, state: DashboardState, generation: int, is_current: Callable[[], bool]):
        expenses = await settle(self.api.get_expenses())
        if not is_current():
            return
        if expenses.fulfilled:
            self._apply_expenses(state, expenses.value, generation)
        else:
            logger.warning("Expense list unavailable: %s", expenses.reason)
            state.failed_sources.append("expenses")
            if state.stats is None:
                self._set_totals(state, generation, 0.0, "fallback", authoritative=False)
        if state.pulse is None:
            # Shown until the live report lands
            state.pulse = self.estimate_pulse(state)

        sources: List[Tuple[str, Callable[[], Awaitable[Any]], Callable]] = [
            ("summary", self.api.get_expense_summary, self._apply_summary),
            ("pulse", self.api.pulse_analyze, self._apply_pulse),
            ("festivals", self.api.get_festivals, self._apply_festivals),
            ("income", self.api.get_income, self._apply_income),
        ]
        outcomes = await asyncio.gather(
            *(
                self._settle_and_apply(name, fetch(), apply, state, generation, is_current)
                for name, fetch, apply in sources
            )
        )
        results = {name: outcome for (name, _, _), outcome in zip(sources, outcomes)}
        if is_current():
            self._fill_pulse(state, results["pulse"])
            logger.info(
                "Dashboard load %d settled, failed sources: %s",
                generation,
                state.failed_sources or "none",
            )

    async def _settle_and_apply(
        self,
        name: str,
        awaitable: Awaitable[Any],
        apply: Callable,
        state: DashboardState,
        generation: int,
        is_current: Callable[[], bool],
    ) -> FetchResult:
        result = await settle(awaitable)
        if not is_current():
            logger.debug("Dropping %s result for superseded load %d", name, generation)
            return result
        if result.fulfilled:
            apply(state, result.value, generation)
            logger.debug("Applied %s", name)
        else:
            logger.warning("Dashboard source %s failed: %s", name, result.reason)
            state.failed_sources.append(name)
        return result

    def _set_totals(
        self,
        state: DashboardState,
        generation: int,
        expenses: float,
        source: str,
        authoritative: bool,
    ):
        # Summary totals win over totals derived from the expense list
        if not authoritative and state.authoritative_generation == generation:
            return
        income = self.base_income() + state.supplemental_income
        state.stats = DashboardStats(
            income=income, expenses=expenses, savings=income - expenses, source=source
        )
        if authoritative:
            state.authoritative_generation = generation

    def _apply_expenses(self, state: DashboardState, expenses: List[ExpenseRecord], generation: int):
        state.recent_expenses = expenses[:RECENT_EXPENSES]
        total = sum(e.amount or 0 for e in expenses)
        self._set_totals(state, generation, total, "expenses", authoritative=False)

    def _apply_summary(self, state: DashboardState, summary: List[CategorySummary], generation: int):
        state.summary = summary
        total = sum(item.total_amount for item in summary)
        self._set_totals(state, generation, total, "summary", authoritative=True)
        if state.pulse is not None and state.pulse.estimated:
            state.pulse = self.estimate_pulse(state)

    def _apply_pulse(self, state: DashboardState, pulse: PulseAnalysis, generation: int):
        state.pulse = pulse
        self.session.save_pulse_snapshot(pulse)

    def _apply_festivals(self, state: DashboardState, festivals: List[Festival], generation: int):
        today = date.today()
        state.festivals = [
            f.model_copy(update={"days_remaining": days_until(f.date, today)})
            for f in festivals
        ]

    def _apply_income(self, state: DashboardState, income: List[IncomeRecord], generation: int):
        state.supplemental_income = sum(r.amount for r in income)
        if state.stats is not None:
            total = self.base_income() + state.supplemental_income
            state.stats = state.stats.model_copy(
                update={"income": total, "savings": total - state.stats.expenses}
            )

    def _fill_pulse(self, state: DashboardState, result: FetchResult):
        if result.fulfilled:
            return
        if state.pulse is not None and not state.pulse.estimated:
            return
        state.pulse = self.estimate_pulse(state)

    def estimate_pulse(self, state: DashboardState) -> PulseAnalysis:
        stats = state.stats
        income = stats.income if stats else self.base_income()
        expenses = stats.expenses if stats and stats.source != "fallback" else None
        emi_total = running_total(state.summary, Category.EMI.value) if state.summary else None
        return derive_pulse(
            income,
            expenses,
            cached=self.session.load_pulse_snapshot(),
            emi_total=emi_total,
        )

    async def refresh_pulse(self, state: DashboardState) -> Tuple[PulseAnalysis, str]:
        """
        Revalidate the pulse report for the Pulse screen.

        Returns:
            The report and where it came from: "live", "cached" or "estimated"
        """
        result = await settle(self.api.pulse_analyze())
        if result.fulfilled:
            self._apply_pulse(state, result.value, state.generation)
            return result.value, "live"
        logger.warning("Pulse scan failed: %s", result.reason)
        cached = self.session.load_pulse_snapshot()
        if cached is not None:
            return cached, "cached"
        return self.estimate_pulse(state), "estimated"

    async def record_expense(
        self, state: DashboardState, liveness: Liveness, payload: ExpenseCreate
    ) -> ExpenseResult:
        """
        Record an expense, warn if it breaks the category limit, then reload.

        The limit check runs after the write has been submitted and only adds
        a notification. Without a loaded summary the running total is
        fetched before the write, so it never includes the new expense. The
        dashboard is re-fetched instead of patching the state with the write
        response.
        """
        if payload.amount is None or payload.amount <= 0:
            raise InvalidExpense("Amount is required")
        if not payload.category:
            raise InvalidExpense("Category is required")

        summary = state.summary
        if not summary:
            fetched = await settle(self.api.get_expense_summary())
            summary = fetched.value if fetched.fulfilled else []
        spent = running_total(summary, payload.category)
        try:
            expense = await self.api.create_expense(
                payload.amount, payload.category, payload.description
            )
        except ArthApiError as e:
            logger.warning("Expense write failed: %s", e)
            return ExpenseResult(
                ok=False,
                notifications=[
                    Notification(
                        title="Error",
                        description="Failed to add expense.",
                        variant="destructive",
                    )
                ],
                state=state,
            )

        notifications = [
            Notification(title="Expense Added", description="Your expense has been logged.")
        ]
        limits = await settle(self.api.get_limits())
        reconciler = BudgetReconciler(limits.value if limits.fulfilled else {}, self.base_income())
        if reconciler.exceeds_limit(payload.category, payload.amount, spent):
            budget = reconciler.budget_for(payload.category)
            notifications.append(
                Notification(
                    title="Budget Alert",
                    description=f"{payload.category} spending is over its ₹{budget:,.0f} limit this month.",
                    variant="warning",
                )
            )

        await self.load(state, liveness)
        return ExpenseResult(ok=True, expense=expense, notifications=notifications, state=state)


class BudgetLoader:
    """Fetches summary and limits together and reconciles them."""

    def __init__(self, api: ArthApiClient, session: SessionStore, default_income: float = 50000.0):
        self.api = api
        self.session = session
        self.default_income = default_income

    async def load(self) -> BudgetView:
        results = await settle_all(
            {"summary": self.api.get_expense_summary(), "limits": self.api.get_limits()}
        )
        for name, result in results.items():
            if not result.fulfilled:
                logger.warning("Budget source %s failed: %s", name, result.reason)

        summary = results["summary"].value if results["summary"].fulfilled else []
        limits = results["limits"].value if results["limits"].fulfilled else {}
        income = profile_income(self.session, self.default_income)
        reconciler = BudgetReconciler(limits, income)
        lines = reconciler.reconcile(summary)
        return BudgetView(
            income=income,
            lines=lines,
            limits=reconciler.limits,
            over_limit=[line.category for line in reconciler.over_limit_lines(summary)],
        )
