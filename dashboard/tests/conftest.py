"""Pytest configuration and fixtures for testing the Arth dashboard."""
import json
import shutil
import tempfile
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from arth.api_client import ArthApiClient
from arth.main import AppContext, app, get_context
from arth.session import SessionStore

UPSTREAM = "http://upstream.test/api"


class FakeUpstream:
    """
    Canned upstream Arth API for httpx.MockTransport.

    Routes map (method, path) to (status, body); paths are relative to /api.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def set(self, method, path, body=None, status=200):
        self.routes[(method, path)] = (status, body)

    def fail(self, method, path, status=500, detail="upstream error"):
        self.routes[(method, path)] = (status, {"detail": detail})

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == "/api" + path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len("/api"):]
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"detail": f"No route for {request.method} {path}"})
        status, body = route
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, content=json.dumps(body), headers={"content-type": "application/json"})


@pytest.fixture
def temp_session_dir():
    """Create a temporary directory for the session file during testing."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def session(temp_session_dir):
    return SessionStore(temp_session_dir / "arth_session.json")


@pytest.fixture
def sample_expenses():
    return [
        {"id": 1, "amount": 450.0, "category": "Food", "description": "Lunch", "date": "2026-10-01"},
        {"id": 2, "amount": 12500.0, "category": "EMI", "description": "Car loan", "date": "2026-10-02"},
        {"id": 3, "amount": 800.0, "category": "Transport", "description": "Metro card", "date": "2026-10-03"},
        {"id": 4, "amount": 1200.0, "category": "Fun", "description": "Movie night", "date": "2026-10-04"},
        {"id": 5, "amount": 300.0, "category": "Food", "description": "Snacks", "date": "2026-10-05"},
    ]


@pytest.fixture
def sample_summary():
    return [
        {"category": "Food", "total_amount": 8500.0},
        {"category": "Transport", "total_amount": 4200.0},
        {"category": "EMI", "total_amount": 12500.0},
        {"category": "Health", "total_amount": 3200.0},
    ]


@pytest.fixture
def sample_pulse():
    return {
        "health_score": 82,
        "status": "SAFE",
        "emi_to_income_ratio": 25.0,
        "savings_rate": 37.0,
        "trend": "IMPROVING",
        "debt_trap_days": None,
        "prescription": [
            {"action": "Start a ₹5,000 SIP", "priority": "MEDIUM", "monthly_saving": 5000}
        ],
    }


@pytest.fixture
def upstream(sample_expenses, sample_summary, sample_pulse):
    fake = FakeUpstream()
    fake.set("GET", "/expenses", sample_expenses)
    fake.set("GET", "/expenses/summary", sample_summary)
    fake.set("GET", "/pulse/analyze", sample_pulse)
    fake.set("GET", "/festival", [{"name": "Diwali", "date": "2099-11-08"}])
    fake.set("GET", "/income", [{"id": 1, "amount": 5000.0, "source": "Freelance"}])
    fake.set("GET", "/limits", {})
    return fake


@pytest.fixture
def api(upstream, session):
    return ArthApiClient(
        UPSTREAM, token_provider=lambda: session.token, transport=httpx.MockTransport(upstream)
    )


@pytest.fixture
def context(api, session):
    return AppContext(api, session)


@pytest.fixture
def client(context):
    """Create a test client wired to the fake upstream API."""
    app.dependency_overrides[get_context] = lambda: context
    yield TestClient(app)
    app.dependency_overrides.clear()
