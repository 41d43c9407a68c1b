"""Tests for snapshot export, restore and validation."""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from erp_porter.adapters.base import Identity
from erp_porter.backup.backup_restore import (
    backup_database,
    iso_timestamp,
    load_snapshot,
    parse_snapshot,
    restore_database,
    snapshot_filename,
    validate_snapshot,
    write_snapshot,
)
from erp_porter.backup.models import BackupSchema, CollectionDef, ForeignKey, Snapshot
from erp_porter.errors import (
    AuthenticationError,
    ConstraintKind,
    ConstraintViolation,
    InvalidSnapshotError,
    OperationInProgressError,
    QueryError,
)
from erp_porter.guard import BusyGuard


def _snapshot(**data) -> Snapshot:
    return Snapshot(
        created_at="2026-01-15T10:20:30.123Z",
        created_by="user-0",
        created_by_email="old@example.com",
        data=data,
    )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


class TestHelpers:
    def test_iso_timestamp_millisecond_precision(self):
        moment = datetime(2026, 1, 15, 10, 20, 30, 123456, tzinfo=timezone.utc)
        assert iso_timestamp(moment) == "2026-01-15T10:20:30.123Z"

    def test_snapshot_filename(self):
        name = snapshot_filename("naqel-erp", "2026-01-15T10:20:30.123Z")
        assert name == "naqel-erp-backup-2026-01-15T10-20-30-123Z.json"


# ------------------------------------------------------------------
# Export
# ------------------------------------------------------------------


class TestBackupDatabase:
    """Test backup_database reads every collection in schema order."""

    async def test_exports_every_collection(self, store):
        store.seed("accounts", [{"id": "a1", "code": "100", "created_at": "2026-01-02"}])
        store.seed("customers", [{"id": "c1", "code": "C1", "created_at": "2026-01-01"}])

        snapshot = await backup_database(store, store)

        assert snapshot.version == "1.0"
        assert snapshot.created_by == "user-1"
        assert snapshot.created_by_email == "admin@example.com"
        assert snapshot.data["accounts"][0]["code"] == "100"
        assert snapshot.data["transactions"] == []
        assert len(snapshot.data) == 14

    async def test_reads_in_schema_order_by_created_at(self):
        datastore = AsyncMock()
        fetched = []

        async def _fetch_all(collection, order_by=None):
            fetched.append((collection, order_by))
            return []

        datastore.fetch_all = AsyncMock(side_effect=_fetch_all)
        auth = AsyncMock()
        auth.current_identity = AsyncMock(return_value=Identity(id="u"))
        schema = BackupSchema(collections=[CollectionDef(name="b"), CollectionDef(name="a")])

        await backup_database(datastore, auth, schema=schema)

        assert fetched == [("b", "created_at"), ("a", "created_at")]

    async def test_failed_collection_exported_empty(self, store):
        store.seed("customers", [{"id": "c1", "code": "C1"}])
        store.fail = lambda op, c, p: QueryError("boom") if c == "accounts" else None

        snapshot = await backup_database(store, store)

        assert snapshot.data["accounts"] == []
        assert len(snapshot.data["customers"]) == 1

    async def test_requires_identity(self, store):
        store.identity = None
        with pytest.raises(AuthenticationError):
            await backup_database(store, store)
        assert store.calls == []

    async def test_write_and_load_round_trip(self, store, tmp_path):
        store.seed("accounts", [{"id": "a1", "code": "100"}])
        snapshot = await backup_database(store, store)

        path = write_snapshot(snapshot, output_dir=tmp_path, product="naqel-erp")

        assert path.endswith(".json")
        assert "naqel-erp-backup-" in path
        document = json.loads(Path(path).read_text())
        assert set(document) == {"version", "created_at", "created_by", "created_by_email", "data"}
        assert load_snapshot(path) == snapshot

    async def test_explicit_output_path(self, tmp_path):
        target = tmp_path / "nested" / "out.json"
        assert write_snapshot(_snapshot(), output_path=target) == str(target)
        assert target.exists()


# ------------------------------------------------------------------
# Parsing
# ------------------------------------------------------------------


class TestParseSnapshot:
    def test_missing_data_rejected(self):
        with pytest.raises(InvalidSnapshotError, match="Invalid backup format"):
            parse_snapshot({"version": "1.0"})

    def test_data_not_mapping_rejected(self):
        with pytest.raises(InvalidSnapshotError, match="Invalid backup format"):
            parse_snapshot('{"data": []}')

    def test_invalid_json_rejected(self):
        with pytest.raises(InvalidSnapshotError, match="Invalid JSON"):
            parse_snapshot("{not json")

    def test_wrong_metadata_type_rejected(self):
        with pytest.raises(InvalidSnapshotError, match="Invalid backup metadata"):
            parse_snapshot({"created_at": 1736936430, "data": {}})

    def test_malformed_collections_dropped(self):
        snapshot = parse_snapshot({"data": {"accounts": "nope", "customers": [{"id": 1}, 5]}})
        assert "accounts" not in snapshot.data
        assert snapshot.data["customers"] == [{"id": 1}]


# ------------------------------------------------------------------
# Restore
# ------------------------------------------------------------------


class TestRestoreDatabase:
    """Restore remaps references and decides insert vs update per record."""

    async def test_optional_reference_dropped_when_target_absent(self, store):
        snapshot = _snapshot(
            accounts=[{"id": "a1", "code": "100", "name": "Cash"}],
            products=[{"id": "p1", "category_id": "c1", "sku": "SKU1"}],
        )

        summary = await restore_database(store, store, snapshot)

        assert summary.status == "success"
        assert [a["code"] for a in store.rows("accounts")] == ["100"]
        product = store.rows("products")[0]
        assert product["sku"] == "SKU1"
        assert product["category_id"] is None

    async def test_unresolved_required_reference_skipped(self, store):
        snapshot = _snapshot(stock_movements=[{"id": "m1", "product_id": "pOLD"}])

        summary = await restore_database(store, store, snapshot)

        assert store.rows("stock_movements") == []
        assert summary.collections["stock_movements"].failed == 1
        assert summary.status == "failed"
        assert "stock_movements (1 failed)" in summary.message

    async def test_existing_natural_key_updated(self, store):
        store.seed("accounts", [{"id": "existing", "code": "100", "name": "Old"}])
        snapshot = _snapshot(
            accounts=[{"id": "a1", "code": "100", "name": "Cash"}],
            transactions=[{"id": "t1", "account_from": "a1", "description": "Float"}],
        )

        summary = await restore_database(store, store, snapshot)

        accounts = store.rows("accounts")
        assert len(accounts) == 1
        assert accounts[0]["id"] == "existing"
        assert accounts[0]["name"] == "Cash"
        assert summary.collections["accounts"].updated == 1
        # References to a1 now point at the record that was updated
        assert store.rows("transactions")[0]["account_from"] == "existing"

    async def test_restore_twice_never_duplicates_keyed_rows(self, store):
        snapshot = _snapshot(
            customers=[{"id": "c1", "code": "C1"}, {"id": "c2", "code": "C2"}],
            sales_orders=[{"id": "s1", "order_number": "SO-1", "customer_id": "c1"}],
        )

        await restore_database(store, store, snapshot)
        second = await restore_database(store, store, snapshot)

        assert len(store.rows("customers")) == 2
        assert len(store.rows("sales_orders")) == 1
        assert second.collections["customers"].updated == 2
        assert second.collections["customers"].inserted == 0

    async def test_references_remapped_to_new_ids(self, store):
        snapshot = _snapshot(
            customers=[{"id": "c1", "code": "C1"}],
            products=[{"id": "p1", "sku": "SKU1"}],
            sales_orders=[{"id": "s1", "order_number": "SO-1", "customer_id": "c1"}],
            sales_line_items=[{"id": "l1", "sale_id": "s1", "product_id": "p1", "quantity": 2}],
        )

        summary = await restore_database(store, store, snapshot)

        order = store.rows("sales_orders")[0]
        item = store.rows("sales_line_items")[0]
        assert order["customer_id"] == store.rows("customers")[0]["id"]
        assert item["sale_id"] == order["id"]
        assert item["product_id"] == store.rows("products")[0]["id"]
        assert summary.total_restored == 4
        assert summary.needs_reload

    async def test_record_count_matches_snapshot_minus_dropped(self, store):
        source = type(store)()
        source.seed("customers", [{"id": "c1", "code": "C1"}, {"id": "c2", "code": "C2"}])
        source.seed("sales_orders", [
            {"id": "s1", "order_number": "SO-1", "customer_id": "c1"},
            {"id": "s2", "order_number": "SO-2", "customer_id": "c-missing"},
        ])
        snapshot = await backup_database(source, source)

        await restore_database(store, store, snapshot)

        assert len(store.rows("customers")) == 2
        assert len(store.rows("sales_orders")) == 1

    async def test_unique_violation_retried_as_update(self, store):
        # Lookup misses, insert collides: the row appeared after the lookup
        store.seed("customers", [{"id": "existing", "code": "C1"}])
        lookups = []
        original_find = store.find_one

        async def _find_one(collection, field, value):
            lookups.append(value)
            if len(lookups) == 1:
                return None
            return await original_find(collection, field, value)

        store.find_one = _find_one
        summary = await restore_database(store, store, _snapshot(customers=[{"id": "c1", "code": "C1", "name": "New"}]))

        assert summary.collections["customers"].updated == 1
        assert store.rows("customers") == [{"id": "existing", "code": "C1", "name": "New"}]

    async def test_other_constraint_violation_counted_as_failure(self, store):
        def _fail(op, collection, payload):
            if op == "insert" and payload.get("code") == "BAD":
                return ConstraintViolation("check failed", kind=ConstraintKind.CHECK)
            return None

        store.fail = _fail
        snapshot = _snapshot(customers=[{"id": "c1", "code": "BAD"}, {"id": "c2", "code": "OK"}])

        summary = await restore_database(store, store, snapshot)

        result = summary.collections["customers"]
        assert (result.inserted, result.failed) == (1, 1)
        assert result.errors == ["1 of 2 records failed to restore"]
        assert summary.status == "partial"
        assert summary.message.startswith("Restore completed with some errors. 1 records restored.")

    async def test_whole_batch_failure_message(self, store):
        store.fail = lambda op, c, p: QueryError("down") if op == "insert" else None
        snapshot = _snapshot(transactions=[
            {"id": "t1", "description": "Rent"},
            {"id": "t2", "description": "Fuel"},
        ])

        summary = await restore_database(store, store, snapshot)

        assert summary.collections["transactions"].errors == ["All 2 records failed to restore"]

    async def test_batches_group_progress_messages(self, store):
        store.fail = lambda op, c, p: QueryError("down") if op == "insert" else None
        snapshot = _snapshot(
            transactions=[{"id": f"t{i}", "description": f"Entry {i}"} for i in range(5)]
        )

        summary = await restore_database(store, store, snapshot, batch_size=2)

        assert summary.collections["transactions"].errors == [
            "All 2 records failed to restore",
            "All 2 records failed to restore",
            "All 1 records failed to restore",
        ]

    async def test_sibling_records_continue_after_failure(self, store):
        snapshot = _snapshot(
            products=[{"id": "p1", "sku": "SKU1"}],
            stock_movements=[
                {"id": "m1", "product_id": "gone"},
                {"id": "m2", "product_id": "p1"},
            ],
        )

        summary = await restore_database(store, store, snapshot)

        assert len(store.rows("stock_movements")) == 1
        assert summary.collections["stock_movements"].failed == 1

    async def test_malformed_reference_fails_only_its_record(self, store):
        snapshot = _snapshot(
            products=[{"id": "p1", "sku": "SKU1"}],
            stock_movements=[
                {"id": "m1", "product_id": {"bad": 1}},
                {"id": "m2", "product_id": "p1"},
            ],
            activity_logs=[{"id": "l1", "action": "restore"}],
        )

        summary = await restore_database(store, store, snapshot)

        assert summary.collections["stock_movements"].failed == 1
        assert len(store.rows("stock_movements")) == 1
        assert len(store.rows("activity_logs")) == 1
        assert summary.status == "partial"

    async def test_unhashable_old_id_still_restored(self, store):
        snapshot = _snapshot(customers=[{"id": ["c1"], "code": "C1"}])

        summary = await restore_database(store, store, snapshot)

        assert summary.collections["customers"].inserted == 1
        assert summary.status == "success"

    async def test_empty_payload_skipped(self, store):
        summary = await restore_database(store, store, _snapshot(customers=[{"id": "c1", "created_by": "u"}]))
        assert summary.collections["customers"].skipped == 1
        assert summary.status == "success"

    async def test_confirm_declined_writes_nothing(self, store):
        seen = []

        def _confirm(snapshot):
            seen.append(snapshot.created_by_email)
            return False

        summary = await restore_database(
            store, store, _snapshot(customers=[{"id": "c1", "code": "C1"}]), confirm=_confirm
        )

        assert summary.status == "cancelled"
        assert seen == ["old@example.com"]
        assert store.rows("customers") == []

    async def test_requires_identity(self, store):
        store.identity = None
        with pytest.raises(AuthenticationError):
            await restore_database(store, store, _snapshot(customers=[{"id": "c1"}]))
        assert store.calls == []

    async def test_invalid_raw_snapshot_aborts_before_writes(self, store):
        with pytest.raises(InvalidSnapshotError):
            await restore_database(store, store, {"version": "1.0"})
        assert store.calls == []

    async def test_custom_schema(self, store):
        schema = BackupSchema(collections=[
            CollectionDef(name="authors", unique_key="code"),
            CollectionDef(
                name="books",
                required_refs=[ForeignKey(table="authors", field="author_id")],
            ),
        ])
        snapshot = _snapshot(
            authors=[{"id": 1, "code": "A"}],
            books=[{"id": 10, "author_id": 1}],
            customers=[{"id": "c1", "code": "C1"}],
        )

        await restore_database(store, store, snapshot, schema=schema)

        assert store.rows("books")[0]["author_id"] == store.rows("authors")[0]["id"]
        assert store.rows("customers") == []

    async def test_busy_guard_rejects_concurrent_restore(self, store):
        guard = BusyGuard("restore")
        started = asyncio.Event()
        release = asyncio.Event()

        async def _slow_identity():
            started.set()
            await release.wait()
            return store.identity

        auth = AsyncMock()
        auth.current_identity = AsyncMock(side_effect=_slow_identity)

        first = asyncio.create_task(restore_database(store, auth, _snapshot(), guard=guard))
        await started.wait()
        assert guard.busy
        with pytest.raises(OperationInProgressError, match="restore is already in progress"):
            await restore_database(store, auth, _snapshot(), guard=guard)
        release.set()
        await first
        assert not guard.busy


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


class TestValidateSnapshot:
    def test_valid_snapshot(self):
        report = validate_snapshot(_snapshot(customers=[{"id": "c1", "code": "C1"}]))
        assert report.valid
        assert report.warnings == []

    def test_missing_file(self, tmp_path):
        report = validate_snapshot(tmp_path / "nope.json")
        assert not report.valid
        assert "not found" in report.errors[0]

    def test_invalid_structure(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('{"version": "1.0"}')
        report = validate_snapshot(path)
        assert report.errors == ["Invalid backup format"]

    def test_unsupported_version(self):
        snapshot = _snapshot()
        snapshot.version = "9.9"
        assert not validate_snapshot(snapshot).valid

    def test_warnings(self):
        snapshot = Snapshot(data={
            "widgets": [],
            "customers": [{"code": "C1"}],
            "sales_orders": [{"id": "s1", "customer_id": "c404"}],
        })

        warnings = validate_snapshot(snapshot).warnings

        assert "Missing metadata field: created_at" in warnings
        assert "Unknown collection will be ignored: widgets" in warnings
        assert any("have no 'id'" in w for w in warnings)
        assert any("sales_orders record(s) reference customers" in w for w in warnings)

    def test_unhashable_ids_reported_as_orphans(self):
        snapshot = _snapshot(
            products=[{"id": {"bad": 1}, "sku": "A"}],
            stock_movements=[{"id": "m1", "product_id": {"bad": 1}}],
        )

        report = validate_snapshot(snapshot)

        assert report.valid
        assert any("stock_movements record(s) reference products" in w for w in report.warnings)
