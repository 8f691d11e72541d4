import os
from dotenv import load_dotenv


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def _as_list(val: str | None) -> list[str]:
    return [o.strip() for o in (val or "").split(",") if o.strip()]


class Settings:
    def __init__(self) -> None:
        # Load variables from .env into environment
        load_dotenv()
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "changeme")
        self.MONGODB_URI: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
        self.MONGODB_DB_NAME: str = os.getenv("MONGODB_DB_NAME", "claimflow")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Token lifetimes
        self.ACCESS_TOKEN_MINUTES: int = int(os.getenv("ACCESS_TOKEN_MINUTES", "15"))
        self.REFRESH_TOKEN_DAYS: int = int(os.getenv("REFRESH_TOKEN_DAYS", "30"))
        self.COOKIE_SECURE: bool = _as_bool(os.getenv("COOKIE_SECURE"), False)

        # Frontend base URL (used in CORS and building links)
        self.FRONTEND_BASE_URL: str = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")
        # Optional comma-separated list of additional allowed origins for CORS
        self.ALLOWED_ORIGINS: list[str] = _as_list(os.getenv("ALLOWED_ORIGINS"))

        # Executives give final claim approval and approve leaves; matched by email
        self.EXECUTIVE_EMAILS: list[str] = [
            e.lower() for e in _as_list(os.getenv("EXECUTIVE_EMAILS", "ceo@claimflow.io,cto@claimflow.io"))
        ]

        # Currency conversion (exchangerate.host)
        self.EXCHANGERATE_API_KEY: str = os.getenv("EXCHANGERATE_API_KEY", "")
        self.EXCHANGERATE_BASE_URL: str = os.getenv("EXCHANGERATE_BASE_URL", "https://api.exchangerate.host")
        self.FX_CACHE_SECONDS: int = int(os.getenv("FX_CACHE_SECONDS", "300"))

        # Attachments are written below this directory
        self.UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "./uploads")

        self.EMAIL_NOTIFICATIONS: bool = _as_bool(os.getenv("EMAIL_NOTIFICATIONS"), False)


settings = Settings()
