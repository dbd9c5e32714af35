"""
Database connection management.

Provides the Supabase client singletons used for table queries
and for the Storage API that keeps uploaded spreadsheets.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class DatabaseConnectionError(Exception):
    """Failed to connect to Supabase."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.

    Returns:
        Client: Supabase client

    Raises:
        DatabaseConnectionError: If connection fails
    """
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(
            settings.supabase_url,
            settings.supabase_key
        )

        logger.info("supabase_connected", status="success")
        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseConnectionError(f"Failed to connect to Supabase: {e}") from e


@lru_cache()
def get_storage_client() -> Client:
    """
    Get the client used for object storage.

    Storage writes need the service role key when bucket policies are
    restrictive; falls back to the regular client when it is not set.
    """
    if not settings.supabase_service_key:
        logger.debug("storage_using_anon_client")
        return get_supabase_client()

    try:
        return create_client(
            settings.supabase_url,
            settings.supabase_service_key
        )
    except Exception as e:
        logger.error("storage_client_failed", error=str(e))
        raise DatabaseConnectionError(f"Failed to create storage client: {e}") from e


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection() -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with details
    """
    try:
        client = get_supabase_client()

        sessions = client.table("import_sessions").select("id", count="exact").limit(1).execute()
        templates = client.table("mapping_templates").select("id", count="exact").limit(1).execute()

        return {
            "status": "healthy",
            "import_sessions_count": sessions.count,
            "mapping_templates_count": templates.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }


def reset_connection():
    """
    Reset the cached database connections.

    Call this if connection becomes stale or after config changes.
    """
    get_supabase_client.cache_clear()
    get_storage_client.cache_clear()
    logger.info("database_connection_reset")
