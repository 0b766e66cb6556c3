"""Runtime settings read from the environment (and a local ``.env``)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .notify import DEFAULT_SUBJECT


def _env_flag(name: str, default: str = "false") -> bool:
    value = os.getenv(name, default)
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    mongodb_uri: Optional[str] = None
    mongodb_db: str = "eujobs"

    # Resend credentials for contact notifications
    resend_api_key: Optional[str] = None
    email_from: str = "onboarding@resend.dev"
    notify_contacts: bool = False
    notification_subject: str = DEFAULT_SUBJECT

    # Storyblok CDN token for the Jobsin source
    storyblok_token: Optional[str] = None

    http_timeout_s: float = 30.0
    http_max_retries: int = 3
    http_backoff_s: float = 2.0

    log_level: str = "INFO"


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build ``Settings`` from environment variables, loading ``.env`` first."""
    load_dotenv(env_file)
    return Settings(
        mongodb_uri=os.getenv("MONGODB_URI"),
        mongodb_db=os.getenv("MONGODB_DB", "eujobs"),
        resend_api_key=os.getenv("RESEND_API_KEY"),
        email_from=os.getenv("EMAIL_FROM", "onboarding@resend.dev"),
        notify_contacts=_env_flag("NOTIFY_CONTACTS", "false"),
        notification_subject=os.getenv("NOTIFICATION_SUBJECT", DEFAULT_SUBJECT),
        storyblok_token=os.getenv("STORYBLOK_TOKEN"),
        http_timeout_s=float(os.getenv("HTTP_TIMEOUT_S", "30")),
        http_max_retries=int(os.getenv("HTTP_MAX_RETRIES", "3")),
        http_backoff_s=float(os.getenv("HTTP_BACKOFF_S", "2.0")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
