"""
Supabase client for the performance repository
"""
import os
from typing import Optional

from dotenv import load_dotenv
from supabase import Client, create_client

from adaptive_tutor.errors import ConfigurationError

_supabase_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create the Supabase client singleton"""
    global _supabase_client

    if _supabase_client is None:
        load_dotenv()
        url = os.getenv("SUPABASE_URL")
        # Service role key: the engine writes performance rows on behalf of students
        key = os.getenv("SUPABASE_SERVICE_KEY")

        if not url or not key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment")

        _supabase_client = create_client(url, key)

    return _supabase_client


def reset_supabase_client() -> None:
    """Drop the cached client (used when credentials change, and in tests)."""
    global _supabase_client
    _supabase_client = None
