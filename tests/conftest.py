"""Shared fixtures: an in-memory DataStore/AuthProvider fake."""

import itertools
from collections.abc import Callable

import pytest

from erp_porter.adapters.base import Identity
from erp_porter.errors import ConstraintKind, ConstraintViolation, NotFound

# Natural keys enforced as unique by the fake, mirroring the ERP tables
UNIQUE_KEYS = {
    "accounts": "code",
    "customers": "code",
    "vendors": "code",
    "product_categories": "name",
    "products": "sku",
    "employees": "employee_number",
    "sales_orders": "order_number",
    "purchase_orders": "order_number",
}


class InMemoryDataStore:
    """Dict-backed store implementing ``DataStore`` and ``AuthProvider``.

    New ids are minted as ``<collection>-<n>`` so they never collide with
    ids from a snapshot.  ``fail`` may return an exception to raise for a
    given ``(operation, collection, payload)``.
    """

    def __init__(
        self,
        identity: Identity | None = Identity(id="user-1", email="admin@example.com"),
        unique_keys: dict[str, str] | None = None,
    ) -> None:
        self.identity = identity
        self.unique_keys = UNIQUE_KEYS if unique_keys is None else unique_keys
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail: Callable[[str, str, dict | None], Exception | None] | None = None
        self._ids = itertools.count(1)

    def seed(self, collection: str, records: list[dict]) -> None:
        self.tables.setdefault(collection, []).extend(dict(r) for r in records)

    def rows(self, collection: str) -> list[dict]:
        return self.tables.get(collection, [])

    def _check_fail(self, op: str, collection: str, payload: dict | None = None) -> None:
        self.calls.append((op, collection))
        if self.fail is not None:
            error = self.fail(op, collection, payload)
            if error is not None:
                raise error

    async def fetch_all(self, collection: str, order_by: str | None = None) -> list[dict]:
        self._check_fail("fetch_all", collection)
        rows = [dict(r) for r in self.rows(collection)]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by) or ""))
        return rows

    async def find_one(self, collection: str, field: str, value) -> dict | None:
        self._check_fail("find_one", collection)
        for row in self.rows(collection):
            if row.get(field) == value:
                return dict(row)
        return None

    async def insert(self, collection: str, payload: dict) -> dict:
        self._check_fail("insert", collection, payload)
        return self._insert_row(collection, payload)

    def _insert_row(self, collection: str, payload: dict) -> dict:
        key = self.unique_keys.get(collection)
        if key and payload.get(key) is not None:
            if any(r.get(key) == payload[key] for r in self.rows(collection)):
                raise ConstraintViolation(
                    f'duplicate key value violates unique constraint "{collection}_{key}_key"',
                    kind=ConstraintKind.UNIQUE,
                    code="23505",
                )
        row = dict(payload)
        row["id"] = f"{collection}-{next(self._ids)}"
        self.tables.setdefault(collection, []).append(row)
        return dict(row)

    async def update(self, collection: str, record_id: str, payload: dict) -> None:
        self._check_fail("update", collection, payload)
        for row in self.rows(collection):
            if row["id"] == record_id:
                row.update(payload)
                return
        raise NotFound(f"{collection} record {record_id} not found")

    async def batch_insert(self, collection: str, payloads: list[dict]) -> list[dict]:
        self._check_fail("batch_insert", collection)
        snapshot = {name: list(rows) for name, rows in self.tables.items()}
        inserted = []
        try:
            for payload in payloads:
                inserted.append(self._insert_row(collection, payload))
        except Exception:
            self.tables = snapshot
            raise
        return inserted

    async def close(self) -> None:
        self.calls.append(("close", ""))

    async def current_identity(self) -> Identity | None:
        return self.identity


@pytest.fixture
def store() -> InMemoryDataStore:
    return InMemoryDataStore()


@pytest.fixture
def chart_of_accounts() -> list[dict]:
    """Two-level chart: "Assets" (1000) is a parent of Cash and Bank."""
    return [
        {"id": "a-assets", "code": "1000", "name": "Assets", "account_type": "asset", "parent_id": None, "status": "active"},
        {"id": "a-cash", "code": "1010", "name": "Cash Account", "account_type": "asset", "parent_id": "a-assets", "status": "active"},
        {"id": "a-bank", "code": "1020", "name": "Bank", "account_type": "asset", "parent_id": "a-assets", "status": "active"},
        {"id": "a-revenue", "code": "4000", "name": "Revenue Account", "account_type": "revenue", "parent_id": None, "status": "active"},
        {"id": "a-rent", "code": "5100", "name": "Rent", "account_type": "expense", "parent_id": None, "status": "inactive"},
    ]
