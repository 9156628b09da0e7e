import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


ARTH_API_BASE_URL = os.getenv("ARTH_API_BASE_URL", "http://localhost:8000/api")
ARTH_API_TIMEOUT = _env_float("ARTH_API_TIMEOUT", 10.0)

# Safety valve for the dashboard loader's loading indicator
ARTH_LOAD_TIMEOUT = _env_float("ARTH_LOAD_TIMEOUT", 3.0)

SESSION_DIR = Path(__file__).parent.parent.parent / "progress"
SESSION_FILE = Path(os.getenv("ARTH_SESSION_FILE", str(SESSION_DIR / "arth_session.json")))

DEFAULT_MONTHLY_INCOME = _env_float("ARTH_DEFAULT_INCOME", 50000.0)
ANNUAL_RATE = _env_float("ARTH_ANNUAL_RATE", 0.12)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ARTH_CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
LOG_LEVEL = os.getenv("ARTH_LOG_LEVEL", "INFO")
