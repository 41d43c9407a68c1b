"""Snapshot backup and restore with declarative collection classification.

Usage:
    from erp_porter.backup import ERP_SCHEMA, backup_database, restore_database
    from erp_porter.backup import BackupSchema, CollectionDef, ForeignKey
"""

from erp_porter.backup.backup_restore import (
    backup_database,
    load_snapshot,
    parse_snapshot,
    restore_database,
    snapshot_filename,
    validate_snapshot,
    write_snapshot,
)
from erp_porter.backup.id_map import IdMap
from erp_porter.backup.models import (
    BackupSchema,
    CollectionDef,
    CollectionResult,
    ForeignKey,
    RestoreSummary,
    Snapshot,
    ValidationReport,
)
from erp_porter.backup.schema import ERP_SCHEMA

__all__ = [
    "ERP_SCHEMA",
    "BackupSchema",
    "CollectionDef",
    "CollectionResult",
    "ForeignKey",
    "IdMap",
    "RestoreSummary",
    "Snapshot",
    "ValidationReport",
    "backup_database",
    "load_snapshot",
    "parse_snapshot",
    "restore_database",
    "snapshot_filename",
    "validate_snapshot",
    "write_snapshot",
]
