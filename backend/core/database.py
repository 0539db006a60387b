# backend/core/database.py
from contextlib import contextmanager
from functools import lru_cache

from postgrest.exceptions import APIError
from supabase import Client, create_client

from core.config import get_settings
from core.exceptions import DatabaseError
from core.logger import get_logger

logger = get_logger(__name__)


@lru_cache
def get_supabase() -> Client:
    """Shared Supabase client, created on first use."""
    settings = get_settings()
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)


@contextmanager
def database_errors(operation: str):
    """Re-raise PostgREST failures as DatabaseError."""
    try:
        yield
    except APIError as e:
        logger.error("Database error during %s: %s", operation, e.message)
        raise DatabaseError(
            f"Database request failed during {operation}",
            operation=operation,
            db_code=e.code,
            db_message=e.message,
        ) from e
