"""
Supabase client initialization.

This module contains *only* the database connection setup. Repository
modules call `get_client()` to obtain the shared client; it is created on
first use so that importing a repository never requires credentials.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from supabase import Client, create_client  # type: ignore[import-not-found]

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

_client: Optional[Any] = None
_lock = threading.Lock()


def _create_client() -> Client:
    supabase_url: str | None = os.getenv("SUPABASE_URL")
    supabase_key: str | None = os.getenv("SUPABASE_KEY")

    if not supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(supabase_url, supabase_key)


def get_client() -> Client:
    """Return the shared Supabase client, creating it on first use."""

    global _client
    if _client is None:
        with _lock:
            if _client is None:
                _client = _create_client()
    return _client


def set_client(client: Optional[Any]) -> None:
    """Replace the shared client (None resets to lazy creation)."""

    global _client
    with _lock:
        _client = client


def check_response(response: Any, action: str) -> list[dict[str, Any]]:
    """Raise RuntimeError if a Supabase response carries an error; return its rows."""

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return list(getattr(response, "data", None) or [])


__all__ = ["get_client", "set_client", "check_response"]
