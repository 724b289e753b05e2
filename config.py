import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        cookie_secure: bool,
        bcrypt_rounds: int,
        gemini_api_key: str,
        gemini_model: str,
        chat_timeout_secs: float,
        google_client_id: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.cookie_secure = cookie_secure
        self.bcrypt_rounds = bcrypt_rounds
        self.gemini_api_key = gemini_api_key
        self.gemini_model = gemini_model
        self.chat_timeout_secs = chat_timeout_secs
        self.google_client_id = google_client_id


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    session_secret = os.getenv("FINANCE_SESSION_SECRET", "").strip()
    if not session_secret:
        raise RuntimeError("FINANCE_SESSION_SECRET must be set")

    database_url = os.getenv("FINANCE_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "finance.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("FINANCE_TIMEZONE", "UTC")
    cookie_secure = _env_flag("FINANCE_COOKIE_SECURE")
    bcrypt_rounds = int(os.getenv("FINANCE_BCRYPT_ROUNDS", "10"))
    gemini_api_key = os.getenv("FINANCE_GEMINI_API_KEY", "").strip()
    gemini_model = os.getenv("FINANCE_GEMINI_MODEL", "gemini-2.5-flash")
    chat_timeout_secs = float(os.getenv("FINANCE_CHAT_TIMEOUT_SECS", "15"))
    google_client_id = os.getenv("FINANCE_GOOGLE_CLIENT_ID", "").strip()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        cookie_secure=cookie_secure,
        bcrypt_rounds=bcrypt_rounds,
        gemini_api_key=gemini_api_key,
        gemini_model=gemini_model,
        chat_timeout_secs=chat_timeout_secs,
        google_client_id=google_client_id,
    )
