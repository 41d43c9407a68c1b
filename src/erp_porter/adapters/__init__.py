"""DataStore adapters package.

Provides the ``DataStore`` / ``AuthProvider`` Protocols and concrete async
adapter implementations for Supabase and PostgreSQL.

Usage:
    from erp_porter.adapters import DataStore, AsyncSupabaseAdapter
"""

from erp_porter.adapters.base import AuthProvider, DataStore, Identity
from erp_porter.adapters.postgres import AsyncPostgresAdapter
from erp_porter.adapters.supabase import AsyncSupabaseAdapter

__all__ = [
    "AuthProvider",
    "DataStore",
    "Identity",
    "AsyncPostgresAdapter",
    "AsyncSupabaseAdapter",
]
