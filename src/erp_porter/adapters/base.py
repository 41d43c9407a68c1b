"""DataStore and AuthProvider protocol definitions.

Defines the ``DataStore`` Protocol that every backend adapter implements and
the ``AuthProvider`` Protocol used to look up the acting identity.  All
methods are ``async def`` -- the library is async-first.

Adapters translate native errors into the ``erp_porter.errors`` taxonomy so
callers can branch on error *kind* (e.g. ``ConstraintViolation.kind``)
instead of matching message text.

Usage:
    from erp_porter.adapters.base import AuthProvider, DataStore

    async def do_work(store: DataStore, auth: AuthProvider) -> None:
        identity = await auth.current_identity()
        rows = await store.fetch_all("accounts", order_by="created_at")
        await store.insert("accounts", {"code": "100", "name": "Cash"})
        await store.close()
"""

from typing import Any, Protocol

from pydantic import BaseModel


class Identity(BaseModel):
    """The authenticated actor performing an operation."""

    id: str
    email: str | None = None


class DataStore(Protocol):
    """Record store interface that all adapters must implement.

    Records are plain dicts.  Every stored record carries an opaque string
    ``id`` assigned by the store.
    """

    async def fetch_all(
        self,
        collection: str,
        order_by: str | None = None,
    ) -> list[dict]:
        """Fetch every record in a collection.

        Args:
            collection: Collection (table) name.
            order_by: Optional field to sort ascending by.

        Returns:
            List of record dicts.  Empty list if the collection is empty.

        Raises:
            ConnectivityError: If the store cannot be reached.
            QueryError: If the store rejects the query.
        """
        ...

    async def find_one(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> dict | None:
        """Return the first record whose ``field`` equals ``value``, or ``None``."""
        ...

    async def insert(self, collection: str, payload: dict) -> dict:
        """Insert a record and return it (including the generated ``id``).

        Raises:
            ConstraintViolation: If an integrity constraint is violated.
                ``kind`` tells unique-key clashes apart from other violations.
            ValidationError: If the payload is rejected.
        """
        ...

    async def update(self, collection: str, record_id: str, payload: dict) -> None:
        """Update the record with ``record_id`` in place.

        Raises:
            NotFound: If no record has that id.
            ValidationError: If the payload is rejected.
        """
        ...

    async def batch_insert(self, collection: str, payloads: list[dict]) -> list[dict]:
        """Insert several records in one all-or-nothing call.

        Returns:
            The inserted records, in the same order as ``payloads``.
        """
        ...

    async def close(self) -> None:
        """Release connections held by the adapter."""
        ...


class AuthProvider(Protocol):
    """Source of the currently authenticated identity."""

    async def current_identity(self) -> Identity | None:
        """Return the signed-in identity, or ``None`` when nobody is signed in."""
        ...
