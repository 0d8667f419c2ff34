"""
Application settings.

Values come from the process environment, with a `.env` file at the project
root loaded first (python-dotenv). Nothing here performs network I/O.

Environment variables:
- SUPPLIER_ENVIRONMENT: "production" or "sandbox" (default: sandbox)
- SUPPLIER_CLIENT_ID / SUPPLIER_CLIENT_SECRET: OAuth client credentials
- SUPPLIER_POLL_BASE_SECONDS, SUPPLIER_POLL_CAP_SECONDS,
  SUPPLIER_POLL_DEADLINE_SECONDS, SUPPLIER_POLL_MAX_ATTEMPTS: poll overrides
- RESEND_API_KEY / EMAIL_FROM: notification delivery
- LOG_LEVEL: root log level for the API process
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

SANDBOX = "sandbox"
PRODUCTION = "production"

GIFTCARDS_API_VERSION = "application/com.reloadly.giftcards-v1+json"


@dataclass(frozen=True, slots=True)
class PollingPolicy:
    """
    Backoff policy for the completion poller.

    wait(attempt) = min(base_seconds * multiplier ** attempt, cap_seconds)
    Total polling time is bounded by deadline_seconds regardless of attempts.
    """

    base_seconds: float
    cap_seconds: float
    deadline_seconds: float
    max_attempts: int = 15
    multiplier: float = 1.5

    def wait_for(self, attempt: int) -> float:
        return min(self.base_seconds * (self.multiplier ** attempt), self.cap_seconds)

    @classmethod
    def for_environment(cls, environment: str) -> "PollingPolicy":
        # Sandbox orders take noticeably longer to settle.
        if environment == PRODUCTION:
            return cls(base_seconds=2.0, cap_seconds=8.0, deadline_seconds=60.0)
        return cls(base_seconds=8.0, cap_seconds=15.0, deadline_seconds=120.0)


@dataclass(frozen=True, slots=True)
class SupplierSettings:
    environment: str
    client_id: Optional[str]
    client_secret: Optional[str]
    base_url: str
    auth_url: str = "https://auth.reloadly.com/oauth/token"
    api_version: str = GIFTCARDS_API_VERSION
    request_timeout_seconds: float = 10.0

    @property
    def is_sandbox(self) -> bool:
        return self.environment != PRODUCTION

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True, slots=True)
class EmailSettings:
    api_key: Optional[str]
    sender: str
    api_url: str = "https://api.resend.com/emails"

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True, slots=True)
class Settings:
    supplier: SupplierSettings
    polling: PollingPolicy
    email: EmailSettings
    log_level: str = "INFO"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"Invalid value for {name}: {raw!r} (expected a number)") from None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Invalid value for {name}: {raw!r} (expected an integer)") from None


def build_settings() -> Settings:
    """Build settings from the current environment (uncached)."""

    environment = (os.getenv("SUPPLIER_ENVIRONMENT") or SANDBOX).strip().lower()
    if environment not in (SANDBOX, PRODUCTION):
        raise RuntimeError(
            f"Invalid SUPPLIER_ENVIRONMENT: {environment!r}. Use 'sandbox' or 'production'."
        )

    base_url = (
        "https://giftcards.reloadly.com"
        if environment == PRODUCTION
        else "https://giftcards-sandbox.reloadly.com"
    )

    defaults = PollingPolicy.for_environment(environment)
    polling = PollingPolicy(
        base_seconds=_env_float("SUPPLIER_POLL_BASE_SECONDS", defaults.base_seconds),
        cap_seconds=_env_float("SUPPLIER_POLL_CAP_SECONDS", defaults.cap_seconds),
        deadline_seconds=_env_float("SUPPLIER_POLL_DEADLINE_SECONDS", defaults.deadline_seconds),
        max_attempts=_env_int("SUPPLIER_POLL_MAX_ATTEMPTS", defaults.max_attempts),
    )

    return Settings(
        supplier=SupplierSettings(
            environment=environment,
            client_id=os.getenv("SUPPLIER_CLIENT_ID"),
            client_secret=os.getenv("SUPPLIER_CLIENT_SECRET"),
            base_url=base_url,
        ),
        polling=polling,
        email=EmailSettings(
            api_key=os.getenv("RESEND_API_KEY"),
            sender=os.getenv("EMAIL_FROM") or "orders@smartcards.store",
        ),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, built on first use."""

    return build_settings()


__all__ = [
    "SANDBOX",
    "PRODUCTION",
    "PollingPolicy",
    "SupplierSettings",
    "EmailSettings",
    "Settings",
    "build_settings",
    "get_settings",
]
