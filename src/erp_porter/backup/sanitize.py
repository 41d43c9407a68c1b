"""Per-record payload preparation for restore.

Turns a snapshot record into an insert/update payload for the current
store: platform-assigned fields and stripped fields are dropped, and
references are rewritten through the run's ``IdMap``.
"""

from typing import Any

from pydantic import BaseModel, Field

from erp_porter.backup.id_map import IdMap
from erp_porter.backup.models import CollectionDef
from erp_porter.errors import UnresolvedReferenceError

# Regenerated by the store on write
PLATFORM_FIELDS = ("id", "created_at", "updated_at")


class SanitizedRecord(BaseModel):
    """A payload ready to write, plus the id it had in the snapshot."""

    old_id: Any = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.payload


def sanitize_record(
    record: dict[str, Any],
    collection_def: CollectionDef,
    id_map: IdMap,
) -> SanitizedRecord:
    """Build the write payload for one snapshot record.

    Args:
        record: Record as stored in the snapshot.
        collection_def: Field classification for the record's collection.
        id_map: ID map of the current restore run.

    Returns:
        ``SanitizedRecord`` with the original id and the remapped payload.

    Raises:
        UnresolvedReferenceError: If a required reference is missing or
            points at a record that was not restored.

    Example:
        >>> id_map = IdMap()
        >>> id_map.record("vendors", "v-old", "v-new")
        >>> sanitize_record(
        ...     {"id": "p1", "sku": "A1", "supplier_id": "v-old", "category_id": "c9"},
        ...     ERP_SCHEMA.get("products"),
        ...     id_map,
        ... ).payload
        {'sku': 'A1', 'supplier_id': 'v-new', 'category_id': None}
    """
    payload = {
        k: v for k, v in record.items()
        if k not in PLATFORM_FIELDS and k not in collection_def.stripped_fields
    }

    for ref in collection_def.optional_refs:
        old_ref = payload.get(ref.field)
        if old_ref is not None:
            payload[ref.field] = id_map.resolve(ref.table, old_ref)

    for ref in collection_def.required_refs:
        old_ref = payload.get(ref.field)
        new_ref = id_map.resolve(ref.table, old_ref) if old_ref is not None else None
        if new_ref is None:
            raise UnresolvedReferenceError(collection_def.name, ref.field, old_ref)
        payload[ref.field] = new_ref

    return SanitizedRecord(old_id=record.get("id"), payload=payload)
