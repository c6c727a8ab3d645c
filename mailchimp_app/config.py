# mailchimp_app/config.py
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load local .env for development
load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")


class Settings(BaseSettings):
    # ─── Mailchimp API ─────────────────────────────────────────────────────────
    # Keys look like "<secret>-us21"; the suffix is the datacenter.
    MAILCHIMP_API_KEY: str = ""
    MAILCHIMP_API_ENDPOINT: Optional[str] = None
    MAILCHIMP_TIMEOUT: int = 10
    MAILCHIMP_VERIFY_SSL: bool = True

    # ─── Webhooks ──────────────────────────────────────────────────────────────
    # Optional shared secret passed as ?secret=... on the webhook URL
    MAILCHIMP_WEBHOOK_SECRET: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
