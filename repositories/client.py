"""
Supabase client initialization.

This module contains *only* the database connection setup. The client is
created on first use rather than at import time so the in-memory backend and
the test suite never need credentials.

Settings required for the supabase backend:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

from functools import lru_cache

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

from repositories.config import EngineSettings


def create_supabase_client(settings: EngineSettings) -> Client:
    """
    Create a Supabase client from settings.

    Raises:
        RuntimeError: If SUPABASE_URL or SUPABASE_KEY is not configured.
    """

    if not settings.supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not settings.supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(settings.supabase_url, settings.supabase_key)


@lru_cache(maxsize=1)
def get_supabase_client(settings: EngineSettings) -> Client:
    """Process-wide Supabase client for the given settings."""

    return create_supabase_client(settings)


__all__ = ["create_supabase_client", "get_supabase_client"]
