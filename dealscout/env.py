import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_DB_PATH = "data/dealscout.db"
DEFAULT_SYNC_TIMEOUT = 10.0


def load_env() -> None:
    """Load .env from the working directory if present.

    Variables already set in the environment win over the file.
    """
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)


@dataclass
class Settings:
    db_path: Path
    api_base: Optional[str]
    api_key: Optional[str]
    sync_timeout: float
    log_level: str


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise SystemExit(f"{name} must be a number, got {raw!r}")


def get_settings() -> Settings:
    """Read DEALSCOUT_* variables (call load_env() first to honour .env)."""
    return Settings(
        db_path=Path(os.getenv("DEALSCOUT_DB_PATH", DEFAULT_DB_PATH)),
        api_base=os.getenv("DEALSCOUT_API_BASE") or None,
        api_key=os.getenv("DEALSCOUT_API_KEY") or None,
        sync_timeout=_float_env("DEALSCOUT_SYNC_TIMEOUT", DEFAULT_SYNC_TIMEOUT),
        log_level=os.getenv("DEALSCOUT_LOG_LEVEL", "INFO"),
    )
