from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    telegram_token: Optional[str]
    db_backend: str
    db_path: str
    postgres_params: dict
    reset_token_ttl: timedelta
    lock_timeout_seconds: float
    sendgrid_api_key: Optional[str]
    mail_from_email: Optional[str]
    log_level: str

    @property
    def email_configured(self) -> bool:
        return bool(self.sendgrid_api_key and self.mail_from_email)


def load_settings() -> Settings:
    """Read settings from the environment, after loading any `.env` file."""

    load_dotenv()

    backend = os.environ.get("DB_BACKEND", "sqlite").lower()
    if backend not in ("sqlite", "postgres"):
        raise RuntimeError(f"DB_BACKEND must be 'sqlite' or 'postgres', got {backend!r}.")

    return Settings(
        telegram_token=os.environ.get("TELEGRAM_TOKEN"),
        db_backend=backend,
        db_path=os.environ.get("DB_PATH", "parkeasy.db"),
        postgres_params={
            "host": os.environ.get("PGHOST", "localhost"),
            "port": int(os.environ.get("PGPORT", "5432")),
            "dbname": os.environ.get("PGDATABASE", "parkeasy"),
            "user": os.environ.get("PGUSER", "postgres"),
            "password": os.environ.get("PGPASSWORD", ""),
        },
        reset_token_ttl=timedelta(minutes=int(os.environ.get("RESET_TOKEN_TTL_MINUTES", "30"))),
        lock_timeout_seconds=float(os.environ.get("LOCK_TIMEOUT_SECONDS", "5")),
        sendgrid_api_key=os.environ.get("SENDGRID_API_KEY"),
        mail_from_email=os.environ.get("MAIL_FROM_EMAIL"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
