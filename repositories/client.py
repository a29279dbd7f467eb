"""
Supabase client initialization.

This module contains *only* the database connection setup. Repository modules call
`get_supabase()` for the shared client; it is created on first use so importing the
repositories never requires credentials.

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

# Load environment variables from the .env file in the project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

_client: Optional[Any] = None
_client_lock = threading.Lock()


def _create_from_environment() -> Client:
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


def get_supabase() -> Client:
    """Return the shared Supabase client, creating it from the environment if needed."""

    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = _create_from_environment()
    return _client


def use_supabase(client: Any) -> None:
    """
    Install an already-configured client (scripts pointing at another project, tests).

    Passing None drops the current client so the next call rebuilds it from the environment.
    """

    global _client
    with _client_lock:
        _client = client


__all__ = ["get_supabase", "use_supabase"]
