from dataclasses import dataclass
import os
from typing import Optional
from dotenv import load_dotenv


load_dotenv()


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    endpoint: str = os.getenv("CLASSDESK_ENDPOINT", "")
    db_path: str = os.getenv("CLASSDESK_DB_PATH", "classdesk.db")

    timeout_seconds: int = _int_env("CLASSDESK_TIMEOUT_SECONDS", 10)
    max_attempts: int = _int_env("CLASSDESK_MAX_ATTEMPTS", 3)
    drain_interval_seconds: int = _int_env("CLASSDESK_DRAIN_INTERVAL_SECONDS", 120)
    probe_interval_seconds: int = _int_env("CLASSDESK_PROBE_INTERVAL_SECONDS", 30)

    store_key: str = os.getenv("CLASSDESK_STORE_KEY", "wany_data_backup")
    queue_key: str = os.getenv("CLASSDESK_QUEUE_KEY", "sync_queue")
    session_key: str = os.getenv("CLASSDESK_SESSION_KEY", "wany_admin_session")

    log_level: str = os.getenv("CLASSDESK_LOG_LEVEL", "INFO")
    log_file: Optional[str] = os.getenv("CLASSDESK_LOG_FILE") or None


settings = Settings()
