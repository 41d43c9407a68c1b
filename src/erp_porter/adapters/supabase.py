"""Async Supabase DataStore adapter.

Provides ``AsyncSupabaseAdapter``, an async implementation of both the
``DataStore`` and ``AuthProvider`` protocols using the supabase-py async
client.  Row-level authorization is enforced by Supabase itself; this
adapter only issues requests and translates errors.

The client is initialized lazily on first use with an ``asyncio.Lock``
to ensure it is created exactly once.  When ``email``/``password`` are
given, the adapter signs in right after creating the client so that
``current_identity()`` and row-level policies see that user.

Usage:
    from erp_porter.adapters.supabase import AsyncSupabaseAdapter

    adapter = AsyncSupabaseAdapter(
        url="https://xyzproject.supabase.co",
        key="eyJ...",
        email="admin@example.com",
        password="...",
    )

    rows = await adapter.fetch_all("accounts", order_by="created_at")
    await adapter.close()
"""

import asyncio
import logging
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from erp_porter.adapters.base import Identity
from erp_porter.errors import (
    ConnectivityError,
    ConstraintKind,
    ConstraintViolation,
    DataStoreError,
    NotFound,
    QueryError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes surfaced by PostgREST
_CONSTRAINT_CODES: dict[str, ConstraintKind] = {
    "23505": ConstraintKind.UNIQUE,
    "23503": ConstraintKind.FOREIGN_KEY,
    "23502": ConstraintKind.NOT_NULL,
    "23514": ConstraintKind.CHECK,
}


def translate_api_error(error: APIError) -> DataStoreError:
    """Map a PostgREST ``APIError`` onto the erp-porter error taxonomy.

    Args:
        error: Error raised by the postgrest client.

    Returns:
        The matching ``DataStoreError`` subclass instance.

    Example:
        >>> err = translate_api_error(APIError({"code": "23505", "message": "dup"}))
        >>> err.kind
        <ConstraintKind.UNIQUE: 'unique'>
    """
    code = error.code or ""
    message = error.message or str(error)

    if code in _CONSTRAINT_CODES:
        return ConstraintViolation(message, kind=_CONSTRAINT_CODES[code], code=code)
    if code.startswith("23"):
        return ConstraintViolation(message, kind=ConstraintKind.OTHER, code=code)
    if code.startswith("22"):
        return ValidationError(message, code=code)
    if code == "PGRST116":
        return NotFound(message, code=code)
    return QueryError(message, code=code or None)


class AsyncSupabaseAdapter:
    """Async Supabase implementation of ``DataStore`` and ``AuthProvider``.

    Args:
        url: Supabase project URL.
        key: Supabase API key (anon or service key).
        email: Optional email to sign in with.
        password: Password for ``email``.

    Example:
        adapter = AsyncSupabaseAdapter(
            url="https://xyzproject.supabase.co",
            key="eyJhbGciOiJIUzI1NiIs...",
        )
        identity = await adapter.current_identity()
    """

    def __init__(
        self,
        url: str,
        key: str,
        email: str | None = None,
        password: str | None = None,
    ) -> None:
        self._url: str = url
        self._key: str = key
        self._email: str | None = email
        self._password: str | None = password
        self._client: AsyncClient | None = None
        self._lock: asyncio.Lock = asyncio.Lock()

    async def _get_client(self) -> AsyncClient:
        """Get or create the async Supabase client.

        Uses an ``asyncio.Lock`` to ensure the client is created (and the
        optional sign-in performed) exactly once.
        """
        if self._client is None:
            async with self._lock:
                # Double-check after acquiring lock
                if self._client is None:
                    try:
                        client = await acreate_client(self._url, self._key)
                        if self._email and self._password:
                            await client.auth.sign_in_with_password(
                                {"email": self._email, "password": self._password}
                            )
                            logger.debug(f"Signed in to Supabase as {self._email}")
                    except httpx.HTTPError as e:
                        raise ConnectivityError(str(e)) from e
                    self._client = client
        return self._client

    async def _execute(self, query: Any) -> Any:
        """Run a postgrest query, translating errors."""
        try:
            return await query.execute()
        except APIError as e:
            raise translate_api_error(e) from e
        except httpx.HTTPError as e:
            raise ConnectivityError(str(e)) from e

    # ------------------------------------------------------------------
    # DataStore
    # ------------------------------------------------------------------

    async def fetch_all(
        self,
        collection: str,
        order_by: str | None = None,
    ) -> list[dict]:
        """Select every row of a table, optionally ordered ascending."""
        client = await self._get_client()
        query = client.table(collection).select("*")
        if order_by:
            query = query.order(order_by, desc=False)
        result = await self._execute(query)
        return result.data or []

    async def find_one(self, collection: str, field: str, value: Any) -> dict | None:
        """Return the first row where ``field == value``."""
        client = await self._get_client()
        query = client.table(collection).select("*").eq(field, value).limit(1)
        result = await self._execute(query)
        return result.data[0] if result.data else None

    async def insert(self, collection: str, payload: dict) -> dict:
        """Insert a row and return the created row."""
        client = await self._get_client()
        result = await self._execute(client.table(collection).insert(payload))
        if not result.data:
            raise QueryError(f"Insert into {collection} returned no row")
        return result.data[0]

    async def update(self, collection: str, record_id: str, payload: dict) -> None:
        """Update the row with ``id == record_id``."""
        client = await self._get_client()
        query = client.table(collection).update(payload).eq("id", record_id)
        result = await self._execute(query)
        if not result.data:
            raise NotFound(f"{collection} record '{record_id}' not found")

    async def batch_insert(self, collection: str, payloads: list[dict]) -> list[dict]:
        """Insert all rows in a single request (atomic on the server)."""
        if not payloads:
            return []
        client = await self._get_client()
        result = await self._execute(client.table(collection).insert(payloads))
        return result.data or []

    async def close(self) -> None:
        """Sign out (if signed in) and close the Supabase async client.

        If the client was never initialized this is a no-op.
        """
        if self._client is not None:
            if self._email:
                await self._client.auth.sign_out()
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # AuthProvider
    # ------------------------------------------------------------------

    async def current_identity(self) -> Identity | None:
        """Return the signed-in Supabase user, or ``None``."""
        client = await self._get_client()
        try:
            response = await client.auth.get_user()
        except httpx.HTTPError as e:
            raise ConnectivityError(str(e)) from e
        if response is None or response.user is None:
            logger.warning("No authenticated Supabase user found")
            return None
        return Identity(id=response.user.id, email=response.user.email)
