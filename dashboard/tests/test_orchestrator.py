"""Tests for the staged dashboard loader."""
import asyncio

import pytest

from arth.api_client import ArthApiError
from arth.models import (
    CategorySummary,
    DashboardState,
    ExpenseCreate,
    ExpenseRecord,
    Festival,
    IncomeRecord,
    PulseAnalysis,
    PulseStatus,
)
from arth.orchestrator import (
    BudgetLoader,
    DashboardLoader,
    InvalidExpense,
    Liveness,
    settle,
    settle_all,
)


class StubApi:
    """Upstream stand-in whose answers can be held back with events."""

    def __init__(self, **responses):
        self.responses = responses
        self.gates = {}
        self.calls = []

    async def _answer(self, name):
        self.calls.append(name)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        value = self.responses.get(name, [])
        if isinstance(value, Exception):
            raise value
        return value

    async def get_expenses(self):
        return await self._answer("expenses")

    async def get_expense_summary(self):
        return await self._answer("summary")

    async def pulse_analyze(self):
        return await self._answer("pulse")

    async def get_festivals(self):
        return await self._answer("festivals")

    async def get_income(self):
        return await self._answer("income")

    async def get_limits(self):
        return await self._answer("limits")

    async def create_expense(self, amount, category, description=""):
        self.calls.append("create")
        value = self.responses.get("create")
        if isinstance(value, Exception):
            raise value
        return ExpenseRecord(id=99, amount=amount, category=category, description=description)


@pytest.fixture
def expenses(sample_expenses):
    return [ExpenseRecord(**row) for row in sample_expenses]


@pytest.fixture
def summary(sample_summary):
    return [CategorySummary(**row) for row in sample_summary]


@pytest.fixture
def pulse(sample_pulse):
    return PulseAnalysis(**sample_pulse)


@pytest.fixture
def stub(expenses, summary, pulse):
    return StubApi(
        expenses=expenses,
        summary=summary,
        pulse=pulse,
        festivals=[Festival(name="Diwali")],
        income=[],
        limits={},
    )


@pytest.mark.asyncio
async def test_settle_captures_failure():
    async def boom():
        raise ArthApiError("down")

    result = await settle(boom())
    assert not result.fulfilled
    assert isinstance(result.reason, ArthApiError)


@pytest.mark.asyncio
async def test_settle_all_keeps_siblings():
    async def value(v):
        return v

    async def boom():
        raise RuntimeError("nope")

    results = await settle_all({"a": value(1), "b": boom(), "c": value(3)})
    assert results["a"].value == 1
    assert results["b"].status == "rejected"
    assert results["c"].value == 3


@pytest.mark.asyncio
async def test_failed_festivals_do_not_block_others(stub, session):
    stub.responses["festivals"] = ArthApiError("festival service down")
    loader = DashboardLoader(stub, session, timeout=1.0)
    state = await loader.load(DashboardState(), Liveness())

    assert state.loading is False
    assert state.festivals == []
    assert state.failed_sources == ["festivals"]
    assert state.stats.source == "summary"
    assert state.stats.expenses == 28400
    assert state.stats.savings == 50000 - 28400
    assert len(state.recent_expenses) == 4


@pytest.mark.asyncio
async def test_primary_stage_shows_before_slow_sources(stub, session):
    """Timeout clears loading with derived totals; the summary lands later."""
    stub.gates["summary"] = asyncio.Event()
    loader = DashboardLoader(stub, session, timeout=0.05)
    state = DashboardState()

    await loader.load(state, Liveness())
    assert state.loading is False
    assert state.stats.source == "expenses"
    assert state.stats.expenses == 15250
    assert state.pulse.health_score == 82

    stub.gates["summary"].set()
    await loader.wait_pending()
    assert state.stats.source == "summary"
    assert state.stats.expenses == 28400


@pytest.mark.asyncio
async def test_late_results_dropped_when_consumer_gone(stub, session):
    stub.gates["summary"] = asyncio.Event()
    loader = DashboardLoader(stub, session, timeout=0.05)
    state = DashboardState()
    liveness = Liveness()

    await loader.load(state, liveness)
    liveness.kill()
    stub.gates["summary"].set()
    await loader.wait_pending()

    assert state.stats.source == "expenses"
    assert state.summary == []


@pytest.mark.asyncio
async def test_superseded_load_results_dropped(stub, session, summary):
    stub.gates["summary"] = asyncio.Event()
    loader = DashboardLoader(stub, session, timeout=0.05)
    state = DashboardState()
    liveness = Liveness()

    await loader.load(state, liveness)
    first_gate = stub.gates.pop("summary")
    stub.responses["summary"] = summary[:1]
    await loader.load(state, liveness)
    assert state.stats.expenses == 8500

    stub.responses["summary"] = summary
    first_gate.set()
    await loader.wait_pending()
    assert state.generation == 2
    assert state.stats.expenses == 8500


@pytest.mark.asyncio
async def test_expense_failure_uses_fallback_stats(stub, session):
    stub.responses["expenses"] = ArthApiError("down")
    stub.responses["summary"] = ArthApiError("down")
    loader = DashboardLoader(stub, session, timeout=1.0)
    state = await loader.load(DashboardState(), Liveness())

    assert state.stats.source == "fallback"
    assert state.stats.income == 50000
    assert state.stats.expenses == 0
    assert state.recent_expenses == []
    assert set(state.failed_sources) == {"expenses", "summary"}


@pytest.mark.asyncio
async def test_supplemental_income_added(stub, session):
    stub.responses["income"] = [IncomeRecord(amount=5000), IncomeRecord(amount=2500)]
    loader = DashboardLoader(stub, session, timeout=1.0)
    state = await loader.load(DashboardState(), Liveness())

    assert state.supplemental_income == 7500
    assert state.stats.income == 57500
    assert state.stats.savings == 57500 - 28400


@pytest.mark.asyncio
async def test_live_pulse_is_cached(stub, session, pulse):
    loader = DashboardLoader(stub, session, timeout=1.0)
    state = await loader.load(DashboardState(), Liveness())

    assert state.pulse == pulse
    assert session.load_pulse_snapshot() == pulse


@pytest.mark.asyncio
async def test_pulse_failure_uses_cached_snapshot(stub, session, pulse):
    session.save_pulse_snapshot(pulse)
    stub.responses["pulse"] = ArthApiError("model offline")
    loader = DashboardLoader(stub, session, timeout=1.0)
    state = await loader.load(DashboardState(), Liveness())

    assert state.pulse.health_score == 82
    assert state.pulse.estimated is False


@pytest.mark.asyncio
async def test_pulse_failure_without_cache_is_estimated(stub, session):
    stub.responses["pulse"] = ArthApiError("model offline")
    loader = DashboardLoader(stub, session, timeout=1.0)
    state = await loader.load(DashboardState(), Liveness())

    assert state.pulse.estimated is True
    assert state.pulse.savings_rate == round((50000 - 28400) / 50000 * 100)
    assert state.pulse.emi_to_income_ratio == 25.0
    assert state.pulse.status is not None


@pytest.mark.asyncio
async def test_refresh_pulse_sources(stub, session, pulse):
    loader = DashboardLoader(stub, session, timeout=1.0)
    state = DashboardState()

    analysis, source = await loader.refresh_pulse(state)
    assert source == "live"
    assert analysis == pulse

    stub.responses["pulse"] = ArthApiError("down")
    analysis, source = await loader.refresh_pulse(state)
    assert source == "cached"

    session.logout()
    analysis, source = await loader.refresh_pulse(state)
    assert source == "estimated"
    assert analysis.estimated is True


@pytest.mark.asyncio
async def test_record_expense_warns_over_limit(stub, session):
    loader = DashboardLoader(stub, session, timeout=1.0)
    state = await loader.load(DashboardState(), Liveness())

    result = await loader.record_expense(
        state, Liveness(), ExpenseCreate(amount=100, category="Food", description="Tea")
    )

    assert result.ok is True
    assert result.expense.amount == 100
    titles = [n.title for n in result.notifications]
    assert titles == ["Expense Added", "Budget Alert"]
    assert result.notifications[1].variant == "warning"
    assert "create" in stub.calls
    # Re-fetched rather than patched with the write response
    assert state.generation == 2
    assert stub.calls.count("expenses") == 2


@pytest.mark.asyncio
async def test_record_expense_within_limit(stub, session):
    stub.responses["limits"] = {"Health": 10000}
    loader = DashboardLoader(stub, session, timeout=1.0)
    state = await loader.load(DashboardState(), Liveness())

    result = await loader.record_expense(
        state, Liveness(), ExpenseCreate(amount=500, category="Health")
    )
    assert [n.title for n in result.notifications] == ["Expense Added"]


@pytest.mark.asyncio
async def test_record_expense_rejects_missing_amount(stub, session):
    loader = DashboardLoader(stub, session, timeout=1.0)
    with pytest.raises(InvalidExpense):
        await loader.record_expense(DashboardState(), Liveness(), ExpenseCreate(category="Food"))
    assert stub.calls == []


@pytest.mark.asyncio
async def test_record_expense_write_failure(stub, session):
    stub.responses["create"] = ArthApiError("down", status_code=503)
    loader = DashboardLoader(stub, session, timeout=1.0)
    state = DashboardState()

    result = await loader.record_expense(state, Liveness(), ExpenseCreate(amount=250, category="Fun"))
    assert result.ok is False
    assert result.notifications[0].variant == "destructive"
    assert state.generation == 0


@pytest.mark.asyncio
async def test_budget_loader_falls_back_on_limits_failure(stub, session):
    stub.responses["limits"] = ArthApiError("down")
    view = await BudgetLoader(stub, session).load()

    food = next(line for line in view.lines if line.category == "Food")
    assert food.budget == 7500
    assert "Food" in view.over_limit
    assert view.limits["EMI"] == 17500


@pytest.mark.asyncio
async def test_budget_loader_without_summary(stub, session):
    stub.responses["summary"] = ArthApiError("down")
    view = await BudgetLoader(stub, session).load()
    assert view.lines == []
    assert view.over_limit == []


@pytest.mark.asyncio
async def test_pulse_estimated_while_live_report_pending(stub, session):
    stub.gates["pulse"] = asyncio.Event()
    loader = DashboardLoader(stub, session, timeout=0.05)
    state = await loader.load(DashboardState(), Liveness())

    assert state.loading is False
    assert state.stats.source == "summary"
    assert state.pulse.estimated is True
    assert state.pulse.savings_rate == 43

    stub.gates["pulse"].set()
    await loader.wait_pending()
    assert state.pulse.estimated is False
    assert state.pulse.health_score == 82


@pytest.mark.asyncio
async def test_budget_alert_matches_budget_screen_limit(stub, session):
    stub.responses["income"] = [IncomeRecord(amount=10000)]
    stub.responses["summary"] = [CategorySummary(category="Food", total_amount=7000)]
    loader = DashboardLoader(stub, session, timeout=1.0)
    state = await loader.load(DashboardState(), Liveness())
    view = await BudgetLoader(stub, session).load()

    result = await loader.record_expense(
        state, Liveness(), ExpenseCreate(amount=1000, category="Food")
    )

    assert view.limits["Food"] == 7500
    assert [n.title for n in result.notifications] == ["Expense Added", "Budget Alert"]
    assert f"₹{view.limits['Food']:,.0f}" in result.notifications[1].description


@pytest.mark.asyncio
async def test_record_expense_fetches_summary_when_none_loaded(stub, session):
    loader = DashboardLoader(stub, session, timeout=1.0)
    result = await loader.record_expense(
        DashboardState(), Liveness(), ExpenseCreate(amount=100, category="Food")
    )

    assert stub.calls.index("summary") < stub.calls.index("create")
    assert [n.title for n in result.notifications] == ["Expense Added", "Budget Alert"]
