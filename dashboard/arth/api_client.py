import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx
from pydantic import ValidationError

from .models import (
    CategorySummary,
    ExpenseRecord,
    Festival,
    IncomeRecord,
    PulseAnalysis,
    UserProfile,
)

logger = logging.getLogger(__name__)


class ArthApiError(Exception):
    """Upstream Arth API call failed (transport error or HTTP status >= 400)."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class ArthApiClient:
    """HTTP client for the upstream Arth API."""

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = 10,
        transport: Optional[Any] = None,
    ) -> None:
        self.base_url = base_url
        self.token_provider = token_provider
        self.client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "ArthApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _headers(self) -> Dict[str, str]:
        token = self.token_provider() if self.token_provider else None
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ArthApiError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except (ValueError, AttributeError):
                detail = response.text
            logger.warning("%s %s returned HTTP %s", method, path, response.status_code)
            raise ArthApiError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                detail=detail,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning("%s %s returned a non-JSON body", method, path)
            raise ArthApiError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
            ) from e

    # Auth

    async def login(self, email: str, password: str) -> str:
        data = await self._request("POST", "/auth/login", json={"email": email, "password": password})
        return data["access_token"]

    async def register(self, payload: Mapping[str, Any]) -> str:
        data = await self._request("POST", "/auth/register", json=dict(payload))
        return data["access_token"]

    async def get_me(self) -> UserProfile:
        return UserProfile(**await self._request("GET", "/auth/me"))

    async def update_profile(self, payload: Mapping[str, Any]) -> UserProfile:
        return UserProfile(**await self._request("PUT", "/auth/profile", json=dict(payload)))

    # Income and expenses

    async def get_income(self) -> List[IncomeRecord]:
        return [IncomeRecord(**row) for row in await self._request("GET", "/income")]

    async def get_expenses(self) -> List[ExpenseRecord]:
        return [ExpenseRecord(**row) for row in await self._request("GET", "/expenses")]

    async def create_expense(
        self, amount: float, category: str, description: str = ""
    ) -> Optional[ExpenseRecord]:
        """
        Submit an expense.

        The write is trusted once upstream accepts it. The echoed record is
        informational only, so an empty or malformed body gives None.
        """
        try:
            data = await self._request(
                "POST",
                "/expenses",
                json={"amount": amount, "category": category, "description": description},
            )
        except ArthApiError as e:
            if e.status_code is not None and e.status_code < 400:
                return None
            raise
        if not isinstance(data, dict):
            return None
        try:
            return ExpenseRecord(**data)
        except ValidationError as e:
            logger.warning("Unreadable expense write response: %s", e)
            return None

    async def delete_expense(self, expense_id: Any) -> None:
        await self._request("DELETE", f"/expenses/{expense_id}")

    async def get_expense_summary(self) -> List[CategorySummary]:
        return [CategorySummary(**row) for row in await self._request("GET", "/expenses/summary")]

    async def get_limits(self) -> Dict[str, float]:
        data = await self._request("GET", "/limits") or {}
        # The API wraps limits the same way it accepts them
        if isinstance(data.get("limits"), dict):
            data = data["limits"]
        return {str(k): float(v) for k, v in data.items()}

    async def set_limits(self, limits: Mapping[str, float]) -> Any:
        return await self._request("POST", "/limits", json={"limits": dict(limits)})

    # Analysis

    async def pulse_analyze(self) -> PulseAnalysis:
        return PulseAnalysis(**await self._request("GET", "/pulse/analyze"))

    async def pulse_scenario(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/pulse/scenario", json=dict(payload))

    async def get_goals(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/goals")

    async def goals_plan(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/goals/plan", json=dict(payload))

    async def score_predict(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/score/predict", json=dict(payload))

    async def shield_analyze(
        self,
        text: Optional[str] = None,
        file_name: Optional[str] = None,
        file_content: Optional[bytes] = None,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, Any]:
        data = {"text": text} if text else None
        files = None
        if file_content is not None:
            files = {"file": (file_name or "agreement", file_content, content_type)}
        return await self._request("POST", "/shield/analyze", data=data, files=files)

    async def shield_history(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/shield/history")

    async def festival_plan(self, name: str, date: str) -> Dict[str, Any]:
        return await self._request("POST", "/festival/plan", json={"name": name, "date": date})

    async def get_festivals(self) -> List[Festival]:
        return [Festival(**row) for row in await self._request("GET", "/festival")]

    async def advisor_strategy(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/advisor/strategy", json=dict(payload))

    async def close(self) -> None:
        await self.client.aclose()
