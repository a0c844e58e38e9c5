import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        token_max_age_hours: int,
        rate_limit_max: int,
        rate_limit_window_secs: int,
        purge_interval_minutes: int,
        trust_proxy: bool,
        log_level: str,
        cors_origins: list[str],
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.token_max_age_hours = token_max_age_hours
        self.rate_limit_max = rate_limit_max
        self.rate_limit_window_secs = rate_limit_window_secs
        self.purge_interval_minutes = purge_interval_minutes
        self.trust_proxy = trust_proxy
        self.log_level = log_level
        self.cors_origins = cors_origins


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "Europe/Berlin")
    secret_key = os.getenv(
        "BUDGET_SECRET_KEY",
        "3f9c1be0d7a54e8c9b2f6a1d4e7c0b3a8f5d2e9c6b1a4f7e0d3c6b9a2f5e8d1c",
    )
    token_max_age_hours = int(os.getenv("BUDGET_TOKEN_MAX_AGE_HOURS", "720"))
    rate_limit_max = int(os.getenv("BUDGET_RATE_LIMIT_MAX", "100"))
    rate_limit_window_secs = int(os.getenv("BUDGET_RATE_LIMIT_WINDOW_SECS", "900"))
    purge_interval_minutes = int(os.getenv("BUDGET_PURGE_INTERVAL_MINUTES", "60"))
    trust_proxy = os.getenv("BUDGET_TRUST_PROXY", "false").lower() in {"1", "true", "yes"}
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    cors_raw = os.getenv(
        "BUDGET_CORS_ORIGINS", "http://localhost:5173,http://localhost:4173"
    )
    cors_origins = [o.strip() for o in cors_raw.split(",") if o.strip()]
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        token_max_age_hours=token_max_age_hours,
        rate_limit_max=rate_limit_max,
        rate_limit_window_secs=rate_limit_window_secs,
        purge_interval_minutes=purge_interval_minutes,
        trust_proxy=trust_proxy,
        log_level=log_level,
        cors_origins=cors_origins,
    )
