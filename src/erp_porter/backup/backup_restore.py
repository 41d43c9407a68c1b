"""Snapshot export and restore driven by a BackupSchema.

Exports every collection of the schema, in order, into one JSON snapshot,
and restores a snapshot into a store whose primary keys will differ from
the exported ones.  References are remapped through a run-scoped ``IdMap``
and natural keys decide between insert and update.

Restore is best-effort: every record is an independent unit of work.
A failing record is counted against its collection and the run moves on;
nothing already written is rolled back.  Only precondition failures (no
identity, malformed snapshot) abort a run, and they do so before any
write.

Usage:
    from erp_porter.backup.backup_restore import (
        backup_database,
        load_snapshot,
        restore_database,
        validate_snapshot,
        write_snapshot,
    )

    # Export
    snapshot = await backup_database(store, auth)
    path = write_snapshot(snapshot, output_dir="backups", product="naqel-erp")

    # Restore
    summary = await restore_database(store, auth, load_snapshot(path))
    print(summary.message)

    # Validate (sync -- local file read only)
    report = validate_snapshot(path)
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from erp_porter.adapters.base import AuthProvider, DataStore, Identity
from erp_porter.backup.id_map import IdMap, is_mappable_id
from erp_porter.backup.models import (
    SNAPSHOT_VERSION,
    BackupSchema,
    CollectionDef,
    CollectionResult,
    RestoreSummary,
    Snapshot,
    ValidationReport,
)
from erp_porter.backup.sanitize import sanitize_record
from erp_porter.backup.schema import ERP_SCHEMA
from erp_porter.errors import (
    AuthenticationError,
    ConstraintViolation,
    DataStoreError,
    InvalidSnapshotError,
    UnresolvedReferenceError,
)
from erp_porter.guard import BusyGuard, guarded

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


# ============================================================================
# Helpers
# ============================================================================


def iso_timestamp(moment: datetime | None = None) -> str:
    """Format a UTC timestamp as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def snapshot_filename(product: str, created_at: str) -> str:
    """Build the download filename for a snapshot.

    Example:
        >>> snapshot_filename("naqel-erp", "2026-01-15T10:20:30.123Z")
        'naqel-erp-backup-2026-01-15T10-20-30-123Z.json'
    """
    stamp = created_at.replace(":", "-").replace(".", "-")
    return f"{product}-backup-{stamp}.json"


async def _require_identity(auth: AuthProvider, action: str) -> Identity:
    identity = await auth.current_identity()
    if identity is None:
        raise AuthenticationError(f"You must be authenticated to {action}")
    return identity


# ============================================================================
# Export
# ============================================================================


async def backup_database(
    datastore: DataStore,
    auth: AuthProvider,
    schema: BackupSchema = ERP_SCHEMA,
    guard: BusyGuard | None = None,
) -> Snapshot:
    """Export every collection of ``schema`` into a ``Snapshot``.

    Collections are read in schema order, each ordered by ``created_at``
    ascending.  A collection that fails to load is logged and exported as
    an empty list; the export itself never fails for that reason.  The
    store is only read.

    Args:
        datastore: Store implementing ``DataStore``.
        auth: Identity source; the exporting actor is recorded in the
            snapshot metadata.
        schema: Collections to export, in restore order.
        guard: Optional busy flag preventing concurrent backups.

    Returns:
        The snapshot.

    Raises:
        AuthenticationError: If nobody is signed in.
        OperationInProgressError: If ``guard`` is already held.
    """
    async with guarded(guard):
        identity = await _require_identity(auth, "create a backup")

        data: dict[str, list[dict]] = {}
        for collection in schema.names:
            try:
                data[collection] = await datastore.fetch_all(
                    collection, order_by="created_at"
                )
            except DataStoreError as e:
                logger.warning(f"Error fetching {collection}: {e}")
                data[collection] = []

        snapshot = Snapshot(
            version=SNAPSHOT_VERSION,
            created_at=iso_timestamp(),
            created_by=identity.id,
            created_by_email=identity.email,
            data=data,
        )
        logger.info(f"Backup created: {snapshot.total_records} records exported")
        return snapshot


def write_snapshot(
    snapshot: Snapshot,
    output_dir: str | Path | None = None,
    product: str = "erp",
    output_path: str | Path | None = None,
) -> str:
    """Serialize a snapshot to a JSON file.

    Args:
        snapshot: Snapshot to write.
        output_dir: Directory for the generated filename (default
            ``./backups``).  Ignored when ``output_path`` is given.
        product: Product name used as filename prefix.
        output_path: Explicit file path.

    Returns:
        Path of the written file.
    """
    if output_path is None:
        directory = Path(output_dir) if output_dir is not None else Path.cwd() / "backups"
        created_at = snapshot.created_at or iso_timestamp()
        output_path = directory / snapshot_filename(product, created_at)

    output_path_obj = Path(output_path)
    output_path_obj.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path_obj, "w", encoding="utf-8") as f:
        json.dump(snapshot.model_dump(), f, indent=2, default=str)

    return str(output_path_obj)


# ============================================================================
# Parsing
# ============================================================================


def parse_snapshot(document: str | dict) -> Snapshot:
    """Parse a snapshot from JSON text or an already decoded mapping.

    Collections whose value is not a list, and records that are not
    objects, are dropped with a warning.

    Raises:
        InvalidSnapshotError: If the text is not JSON, is not an object, or
            its ``data`` key is absent or not an object, or its metadata
            fields have the wrong type.
    """
    if isinstance(document, str):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise InvalidSnapshotError(f"Invalid JSON: {e}") from e

    if not isinstance(document, dict):
        raise InvalidSnapshotError("Invalid backup format")
    raw_data = document.get("data")
    if not isinstance(raw_data, dict):
        raise InvalidSnapshotError("Invalid backup format")

    data: dict[str, list[dict]] = {}
    for collection, records in raw_data.items():
        if not isinstance(records, list):
            logger.warning(f"Ignoring {collection}: expected a list of records")
            continue
        kept = [r for r in records if isinstance(r, dict)]
        if len(kept) != len(records):
            logger.warning(
                f"Ignoring {len(records) - len(kept)} malformed record(s) in {collection}"
            )
        data[collection] = kept

    try:
        return Snapshot(
            version=str(document.get("version") or SNAPSHOT_VERSION),
            created_at=document.get("created_at"),
            created_by=document.get("created_by"),
            created_by_email=document.get("created_by_email"),
            data=data,
        )
    except ValidationError as e:
        raise InvalidSnapshotError(f"Invalid backup metadata: {e}") from e


def load_snapshot(path: str | Path) -> Snapshot:
    """Read and parse a snapshot file."""
    with open(path, "r", encoding="utf-8") as f:
        return parse_snapshot(f.read())


# ============================================================================
# Restore
# ============================================================================


async def restore_database(
    datastore: DataStore,
    auth: AuthProvider,
    snapshot: Snapshot | dict,
    schema: BackupSchema = ERP_SCHEMA,
    confirm: Callable[[Snapshot], bool] | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    guard: BusyGuard | None = None,
) -> RestoreSummary:
    """Restore a snapshot into ``datastore``.

    Walks ``schema`` in order.  Within a collection, records are written
    one at a time in snapshot order, since a later record may reference an
    id minted by an earlier write in the same run.

    Args:
        datastore: Store implementing ``DataStore``.
        auth: Identity source; restore requires a signed-in identity.
        snapshot: Parsed snapshot, or a raw decoded JSON mapping.
        schema: Collection order and field classification.
        confirm: Called with the snapshot before any write.  Returning
            ``False`` cancels the run.
        batch_size: Records per progress group.
        guard: Optional busy flag preventing concurrent restores.

    Returns:
        ``RestoreSummary`` with per-collection counts and an end-of-run
        message.

    Raises:
        AuthenticationError: If nobody is signed in.
        InvalidSnapshotError: If a raw mapping is structurally invalid.
        OperationInProgressError: If ``guard`` is already held.

    Example:
        summary = await restore_database(
            store,
            auth,
            load_snapshot("backups/naqel-erp-backup-2026-01-15T10-20-30-123Z.json"),
            confirm=lambda s: True,
        )
        if summary.needs_reload:
            refresh_views()
    """
    async with guarded(guard):
        await _require_identity(auth, "restore a backup")

        if not isinstance(snapshot, Snapshot):
            snapshot = parse_snapshot(snapshot)

        if confirm is not None and not confirm(snapshot):
            logger.info("Restore cancelled by user")
            return RestoreSummary(status="cancelled", message="Restore cancelled.")

        summary = RestoreSummary()
        id_map = IdMap()

        for collection_def in schema.collections:
            records = snapshot.data.get(collection_def.name)
            if not records:
                continue
            result = CollectionResult()
            summary.collections[collection_def.name] = result
            await _restore_collection(
                datastore=datastore,
                collection_def=collection_def,
                records=records,
                id_map=id_map,
                result=result,
                batch_size=batch_size,
            )
            if result.restored:
                logger.info(f"Restored {result.restored} records to {collection_def.name}")

        _finish_summary(summary)
        return summary


async def _restore_collection(
    datastore: DataStore,
    collection_def: CollectionDef,
    records: list[dict],
    id_map: IdMap,
    result: CollectionResult,
    batch_size: int,
) -> None:
    """Restore one collection's records in order.

    Args:
        datastore: Store to write into.
        collection_def: Field classification for the collection.
        records: Snapshot records, oldest first.
        id_map: ID map of the current run (mutated in place).
        result: Counters for this collection (mutated in place).
        batch_size: Records per progress group.
    """
    name = collection_def.name
    batch_size = max(1, batch_size)

    for start in range(0, len(records), batch_size):
        batch = records[start:start + batch_size]
        batch_failed = 0

        for record in batch:
            try:
                sanitized = sanitize_record(record, collection_def, id_map)
            except UnresolvedReferenceError as e:
                logger.warning(f"Skipping {name} record {record.get('id')}: {e}")
                result.failed += 1
                batch_failed += 1
                continue
            except Exception as e:
                logger.warning(
                    f"Malformed {name} record {record.get('id')!r}: {type(e).__name__}: {e}"
                )
                result.failed += 1
                batch_failed += 1
                continue

            if sanitized.is_empty:
                result.skipped += 1
                continue

            try:
                new_id, action = await _write_record(
                    datastore, collection_def, sanitized.payload
                )
            except Exception as e:
                logger.warning(
                    f"Error restoring record {sanitized.old_id} in {name}: "
                    f"{type(e).__name__}: {e}"
                )
                result.failed += 1
                batch_failed += 1
                continue

            if action == "updated":
                result.updated += 1
            else:
                result.inserted += 1
            result.restored += 1

            if sanitized.old_id is not None:
                id_map.record(name, sanitized.old_id, new_id)

        if batch_failed == len(batch):
            result.errors.append(f"All {len(batch)} records failed to restore")
        elif batch_failed:
            result.errors.append(
                f"{batch_failed} of {len(batch)} records failed to restore"
            )


async def _write_record(
    datastore: DataStore,
    collection_def: CollectionDef,
    payload: dict,
) -> tuple[str, str]:
    """Insert or update one payload.

    With a natural key value, an existing record holding that key is
    updated in place.  Otherwise the payload is inserted; a unique-key
    violation on insert (a row created since the lookup) is retried once as
    find-then-update.  Any other error propagates to the caller.

    Returns:
        ``(record_id, "inserted" | "updated")``.
    """
    name = collection_def.name
    key = collection_def.unique_key
    key_value = payload.get(key) if key else None

    if not key or not key_value:
        inserted = await datastore.insert(name, payload)
        return inserted["id"], "inserted"

    try:
        existing = await datastore.find_one(name, key, key_value)
    except DataStoreError as e:
        logger.debug(f"Lookup of {name}.{key}={key_value!r} failed, inserting: {e}")
        existing = None

    if existing is not None:
        await datastore.update(name, existing["id"], payload)
        return existing["id"], "updated"

    try:
        inserted = await datastore.insert(name, payload)
    except ConstraintViolation as e:
        if not e.is_unique_violation:
            raise
        existing = await datastore.find_one(name, key, key_value)
        if existing is None:
            raise
        await datastore.update(name, existing["id"], payload)
        return existing["id"], "updated"

    return inserted["id"], "inserted"


def _finish_summary(summary: RestoreSummary) -> None:
    """Set the summary's status and end-of-run message."""
    restored = summary.total_restored
    failed = summary.failed_collections

    if not failed:
        summary.status = "success"
        summary.message = f"Restore completed successfully. {restored} records restored."
        return

    total_errors = sum(failed.values())
    details = ", ".join(f"{name} ({count} failed)" for name, count in failed.items())
    summary.status = "partial" if restored else "failed"
    lead = "Restore completed with some errors." if restored else "Restore failed."
    summary.message = (
        f"{lead} {restored} records restored. {total_errors} error(s) in "
        f"{len(failed)} collection(s): {details}."
    )
    logger.warning(summary.message)


# ============================================================================
# Validation
# ============================================================================


def validate_snapshot(
    source: Snapshot | str | Path,
    schema: BackupSchema = ERP_SCHEMA,
) -> ValidationReport:
    """Validate a snapshot without touching any store.

    Errors are structural problems that would make restore refuse the
    document.  Warnings flag data restore will drop or degrade: unknown
    collections, records without ``id``, and records whose required
    references point at ids missing from the snapshot.

    Args:
        source: Parsed snapshot or path to a snapshot file.
        schema: Schema to validate against.

    Returns:
        ``ValidationReport``.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if isinstance(source, Snapshot):
        snapshot = source
    else:
        try:
            snapshot = load_snapshot(source)
        except FileNotFoundError:
            errors.append(f"Backup file not found: {source}")
            return ValidationReport(valid=False, errors=errors)
        except InvalidSnapshotError as e:
            errors.append(str(e))
            return ValidationReport(valid=False, errors=errors)

    if snapshot.version != SNAPSHOT_VERSION:
        errors.append(
            f"Unsupported backup version '{snapshot.version}' "
            f"(expected '{SNAPSHOT_VERSION}')"
        )

    for field in ("created_at", "created_by", "created_by_email"):
        if getattr(snapshot, field) is None:
            warnings.append(f"Missing metadata field: {field}")

    known = set(schema.names)
    for collection in snapshot.data:
        if collection not in known:
            warnings.append(f"Unknown collection will be ignored: {collection}")

    ids: dict[str, set] = {
        name: {r["id"] for r in records if is_mappable_id(r.get("id"))}
        for name, records in snapshot.data.items()
    }

    for collection_def in schema.collections:
        records = snapshot.data.get(collection_def.name, [])
        missing_id = sum(1 for r in records if r.get("id") is None)
        if missing_id:
            warnings.append(
                f"{missing_id} {collection_def.name} record(s) have no 'id'; "
                f"references to them cannot be remapped"
            )
        for ref in collection_def.required_refs:
            orphans = sum(
                1 for r in records
                if not is_mappable_id(r.get(ref.field))
                or r.get(ref.field) not in ids.get(ref.table, set())
            )
            if orphans:
                warnings.append(
                    f"{orphans} {collection_def.name} record(s) reference "
                    f"{ref.table} via {ref.field} not in backup; they will be skipped"
                )

    return ValidationReport(valid=not errors, errors=errors, warnings=warnings)
