"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Function to get settings (for dependency injection)
    get_supabase_client: Cached Supabase client
    get_storage_client: Client used for the Storage API
    check_connection: Health check function
    get_field_catalog: Target field catalog for imports
"""

from config.settings import settings, get_settings, Settings
from config.database import (
    get_supabase_client,
    get_storage_client,
    check_connection,
    reset_connection,
    DatabaseConnectionError,
)
from config.field_catalog import (
    FieldCatalog,
    FieldType,
    ProcessingFunction,
    TargetField,
    build_field_catalog,
    get_field_catalog,
)

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",

    # Database
    "get_supabase_client",
    "get_storage_client",
    "check_connection",
    "reset_connection",
    "DatabaseConnectionError",

    # Field catalog
    "FieldCatalog",
    "FieldType",
    "ProcessingFunction",
    "TargetField",
    "build_field_catalog",
    "get_field_catalog",
]
