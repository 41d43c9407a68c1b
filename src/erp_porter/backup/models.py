"""Backup schema and snapshot models.

Collections declare which fields are stripped, which references are
remapped (optionally or mandatorily) and which natural key decides
insert-vs-update.  The restore engine handles ID remapping from that
declaration alone.

Usage:
    from erp_porter.backup.models import BackupSchema, CollectionDef, ForeignKey

    schema = BackupSchema(collections=[
        CollectionDef(name="vendors", stripped_fields=["created_by"], unique_key="code"),
        CollectionDef(
            name="purchase_orders",
            stripped_fields=["created_by"],
            required_refs=[ForeignKey(table="vendors", field="vendor_id")],
            unique_key="order_number",
        ),
    ])
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

SNAPSHOT_VERSION = "1.0"


class ForeignKey(BaseModel):
    """Reference from a field to another collection."""

    table: str          # referenced collection
    field: str          # referencing field in this collection


class CollectionDef(BaseModel):
    """Definition of a collection for backup/restore operations."""

    name: str
    stripped_fields: list[str] = Field(default_factory=list)     # always removed
    optional_refs: list[ForeignKey] = Field(default_factory=list)  # null if unresolved
    required_refs: list[ForeignKey] = Field(default_factory=list)  # reject if unresolved
    unique_key: str | None = None                                  # natural key for upsert

    @property
    def references(self) -> set[str]:
        """Collections this one may reference."""
        return {ref.table for ref in [*self.optional_refs, *self.required_refs]}


class BackupSchema(BaseModel):
    """Ordered collection list.  The order is the restore order (leaves first)."""

    collections: list[CollectionDef]

    @model_validator(mode="after")
    def _check_dependency_order(self) -> "BackupSchema":
        seen: set[str] = set()
        for collection in self.collections:
            if collection.name in seen:
                raise ValueError(f"Duplicate collection: {collection.name}")
            for ref in collection.references:
                # Self references are allowed (e.g. account hierarchy)
                if ref != collection.name and ref not in seen:
                    raise ValueError(
                        f"{collection.name} references {ref}, which must come "
                        f"earlier in the restore order"
                    )
            seen.add(collection.name)
        return self

    @property
    def names(self) -> list[str]:
        return [c.name for c in self.collections]

    def get(self, name: str) -> CollectionDef | None:
        """Find a CollectionDef by name."""
        for c in self.collections:
            if c.name == name:
                return c
        return None

    def dependency_graph(self) -> dict[str, set[str]]:
        """Map each collection to the set of collections it may reference."""
        return {c.name: c.references for c in self.collections}


class Snapshot(BaseModel):
    """Portable export document."""

    version: str = SNAPSHOT_VERSION
    created_at: str | None = None
    created_by: str | None = None
    created_by_email: str | None = None
    data: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)

    @property
    def total_records(self) -> int:
        return sum(len(records) for records in self.data.values())


# ============================================================================
# Restore results
# ============================================================================


class CollectionResult(BaseModel):
    """Per-collection restore counts."""

    restored: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class RestoreSummary(BaseModel):
    """End-of-run restore summary."""

    status: Literal["success", "partial", "failed", "cancelled"] = "success"
    collections: dict[str, CollectionResult] = Field(default_factory=dict)
    message: str = ""

    @property
    def total_restored(self) -> int:
        return sum(r.restored for r in self.collections.values())

    @property
    def total_failed(self) -> int:
        return sum(r.failed for r in self.collections.values())

    @property
    def failed_collections(self) -> dict[str, int]:
        """Collections that reported errors, with their failure counts."""
        return {name: r.failed for name, r in self.collections.items() if r.failed}

    @property
    def needs_reload(self) -> bool:
        """Dependent views should refresh after a fully successful restore."""
        return self.status == "success"


class ValidationReport(BaseModel):
    """Result of offline snapshot validation."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
