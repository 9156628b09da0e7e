# Session persistence for the Arth dashboard
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .models import PulseAnalysis, UserProfile

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Token, user profile and last pulse snapshot, kept in one JSON file.

    One store is created at app start and passed to whoever needs it; logout
    tears the stored session down.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        """Load session data from file"""
        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.warning("Session file %s is corrupt, starting empty", self.path)
                return {}
            return data if isinstance(data, dict) else {}
        return {}

    def save(self, data: Dict[str, Any]):
        """Save session data to file"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def _update(self, **values):
        data = self.load()
        for key, value in values.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        self.save(data)

    @property
    def token(self) -> Optional[str]:
        return self.load().get("token")

    @property
    def user(self) -> Optional[UserProfile]:
        raw = self.load().get("user")
        return UserProfile(**raw) if raw else None

    def is_authenticated(self) -> bool:
        return self.token is not None

    def login(self, token: str, user: Optional[UserProfile] = None):
        self._update(token=token, user=user.model_dump() if user else None)
        logger.info("Session started for %s", user.email if user else "unknown user")

    def set_user(self, user: Optional[UserProfile]):
        self._update(user=user.model_dump() if user else None)

    def logout(self):
        if self.path.exists():
            self.path.unlink()
        logger.info("Session cleared")

    def save_pulse_snapshot(self, pulse: PulseAnalysis):
        self._update(pulse_snapshot=pulse.model_dump(mode="json"))

    def load_pulse_snapshot(self) -> Optional[PulseAnalysis]:
        raw = self.load().get("pulse_snapshot")
        return PulseAnalysis(**raw) if raw else None

    def monthly_income(self, default: float) -> float:
        user = self.user
        if user and user.monthly_income:
            return user.monthly_income
        return default
