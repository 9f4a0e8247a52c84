import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        min_balance_cents: Optional[int],
        generation_day: int,
        generation_hour: int,
        generation_minute: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.min_balance_cents = min_balance_cents
        self.generation_day = generation_day
        self.generation_hour = generation_hour
        self.generation_minute = generation_minute
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("OBLIGATIONS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    return int(raw)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "obligations.db"
    database_url = os.getenv("OBLIGATIONS_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("OBLIGATIONS_TIMEZONE", "America/Argentina/Buenos_Aires")
    min_balance_cents = _optional_int("OBLIGATIONS_MIN_BALANCE_CENTS")
    generation_day = int(os.getenv("OBLIGATIONS_GENERATION_DAY", "1"))
    generation_hour = int(os.getenv("OBLIGATIONS_GENERATION_HOUR", "0"))
    generation_minute = int(os.getenv("OBLIGATIONS_GENERATION_MINUTE", "1"))
    log_level = os.getenv("OBLIGATIONS_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        min_balance_cents=min_balance_cents,
        generation_day=generation_day,
        generation_hour=generation_hour,
        generation_minute=generation_minute,
        log_level=log_level,
    )
