import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_hours: int,
        reminder_poll_minutes: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.reminder_poll_minutes = reminder_poll_minutes


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "household_budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "UTC")
    session_secret = os.getenv(
        "BUDGET_SESSION_SECRET",
        "5b0c6f3d9e1a4c7f8e2d6a9b3c1f0e7d4a8b2c6e9f1d3a5b7c9e0f2a4c6d8e1b",
    )
    session_max_age_hours = int(os.getenv("BUDGET_SESSION_MAX_AGE_HOURS", "12"))
    reminder_poll_minutes = int(os.getenv("BUDGET_REMINDER_POLL_MINUTES", "15"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        reminder_poll_minutes=reminder_poll_minutes,
    )
