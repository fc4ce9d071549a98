from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment with defaults.

    Environment variable mapping follows pydantic's rules (e.g., APP_NAME, DEBUG,
    DATA_DIR, DB_FILENAME, SESSION_IDLE_TIMEOUT_SECONDS).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Basic app metadata
    app_name: str = "Smart Expense Tracker"
    debug: bool = True
    version: str = "0.1.0"

    # Data & persistence (local backend)
    data_dir: Path = Path("data")
    db_filename: str = "app.sqlite3"
    db_path: Optional[Path] = None  # derived if not provided

    # Backend collaborator
    backend_provider: str = "local"
    expenses_collection: str = "expenses"
    password_min_length: int = 6
    password_hash_iterations: int = 390_000

    # Client session
    session_idle_timeout_seconds: float = 15 * 60
    session_cookie_name: str = "expense_session"

    # Analytics
    chart_top_categories: int = 8

    def init_post_load(self) -> None:
        """Finalize derived fields and ensure directories exist."""
        if self.db_path is None:
            self.db_path = self.data_dir / self.db_filename
        self.data_dir.mkdir(parents=True, exist_ok=True)
        allowed = {"local"}
        if self.backend_provider not in allowed:
            raise ValueError(
                f"Unsupported backend_provider '{self.backend_provider}'. Allowed: {allowed}"
            )
        if self.session_idle_timeout_seconds <= 0:
            raise ValueError("session_idle_timeout_seconds must be positive")
        if self.chart_top_categories <= 0:
            raise ValueError("chart_top_categories must be positive")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.init_post_load()
    return settings
