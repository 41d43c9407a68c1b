"""erp-porter: client-side backup, restore and CSV import for an ERP data store.

Provides snapshot export/restore with foreign-key remapping, CSV import of
transactions and sales orders, and the account hierarchy rules both share.

Usage:
    from erp_porter import ERP_SCHEMA, backup_database, restore_database
    from erp_porter import TransactionImporter, SalesOrderImporter
    from erp_porter import AccountTree, load_config, create_datastore
"""

__version__ = "0.1.0"

# Accounts
from erp_porter.accounts import AccountTree

# Adapters
from erp_porter.adapters.base import AuthProvider, DataStore, Identity
from erp_porter.adapters.postgres import AsyncPostgresAdapter
from erp_porter.adapters.supabase import AsyncSupabaseAdapter

# Backup
from erp_porter.backup import (
    ERP_SCHEMA,
    BackupSchema,
    CollectionDef,
    ForeignKey,
    RestoreSummary,
    Snapshot,
    backup_database,
    load_snapshot,
    restore_database,
    validate_snapshot,
    write_snapshot,
)

# Config
from erp_porter.config import AppConfig, DataStoreProfile, load_config

# Factory
from erp_porter.factory import create_datastore, get_active_profile, resolve_url

# Guard
from erp_porter.guard import BusyGuard

# Import
from erp_porter.importing import ImportPreview, SalesOrderImporter, TransactionImporter

__all__ = [
    # Accounts
    "AccountTree",
    # Adapters
    "AuthProvider",
    "DataStore",
    "Identity",
    "AsyncPostgresAdapter",
    "AsyncSupabaseAdapter",
    # Backup
    "ERP_SCHEMA",
    "BackupSchema",
    "CollectionDef",
    "ForeignKey",
    "RestoreSummary",
    "Snapshot",
    "backup_database",
    "load_snapshot",
    "restore_database",
    "validate_snapshot",
    "write_snapshot",
    # Config
    "AppConfig",
    "DataStoreProfile",
    "load_config",
    # Factory
    "create_datastore",
    "get_active_profile",
    "resolve_url",
    # Guard
    "BusyGuard",
    # Import
    "ImportPreview",
    "SalesOrderImporter",
    "TransactionImporter",
]
