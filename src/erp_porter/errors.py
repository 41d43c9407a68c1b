"""Exception hierarchy for erp-porter.

Errors fall into four groups:

- ``DataStoreError`` and subclasses -- raised by adapters, translated from
  the backend's native error codes so callers never match on message text.
- Fatal preconditions -- ``AuthenticationError``, ``InvalidSnapshotError``.
  These abort a run before any mutation.
- Per-record / per-row problems -- ``UnresolvedReferenceError``,
  ``ParentAccountError``.  Counted or collected, never fatal on their own.
- Flow control -- ``OperationInProgressError``, ``ImportBlockedError``,
  ``ImportFormatError``, ``ProfileNotFoundError``.

Usage:
    from erp_porter.errors import ConstraintViolation, ConstraintKind

    try:
        await store.insert("accounts", payload)
    except ConstraintViolation as e:
        if e.kind is ConstraintKind.UNIQUE:
            ...
"""

from enum import Enum


class ErpPorterError(Exception):
    """Base class for all erp-porter errors."""

    pass


# ============================================================================
# DataStore errors
# ============================================================================


class DataStoreError(ErpPorterError):
    """Base class for errors raised by a DataStore adapter.

    Args:
        message: Human readable error text (usually the backend's own).
        code: Backend error code when one is available (SQLSTATE or
            PostgREST code).
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConnectivityError(DataStoreError):
    """The DataStore could not be reached."""

    pass


class QueryError(DataStoreError):
    """The DataStore rejected a read or returned an unexpected response."""

    pass


class ConstraintKind(str, Enum):
    """Which integrity constraint a write violated."""

    UNIQUE = "unique"
    FOREIGN_KEY = "foreign_key"
    NOT_NULL = "not_null"
    CHECK = "check"
    OTHER = "other"


class ConstraintViolation(DataStoreError):
    """A write violated an integrity constraint.

    ``kind`` distinguishes unique-key clashes (which restore retries as an
    update) from every other violation (which is terminal for the record).
    """

    def __init__(
        self,
        message: str,
        kind: ConstraintKind = ConstraintKind.OTHER,
        code: str | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.kind = kind

    @property
    def is_unique_violation(self) -> bool:
        return self.kind is ConstraintKind.UNIQUE


class ValidationError(DataStoreError):
    """The DataStore rejected a payload (bad type, bad format)."""

    pass


class NotFound(DataStoreError):
    """The record addressed by an update does not exist."""

    pass


# ============================================================================
# Fatal preconditions
# ============================================================================


class AuthenticationError(ErpPorterError):
    """Raised when no authenticated identity is available."""

    pass


class InvalidSnapshotError(ErpPorterError):
    """Raised when a snapshot document is structurally invalid."""

    pass


# ============================================================================
# Per-record / per-row errors
# ============================================================================


class UnresolvedReferenceError(ErpPorterError):
    """A required reference could not be remapped to a restored record."""

    def __init__(self, collection: str, field: str, old_id: object) -> None:
        if old_id is None:
            message = f"{collection}.{field} is required but missing"
        else:
            message = (
                f"{collection}.{field} references '{old_id}' which was not restored"
            )
        super().__init__(message)
        self.collection = collection
        self.field = field
        self.old_id = old_id


class ParentAccountError(ErpPorterError):
    """A non-leaf account was used where only leaf accounts are allowed."""

    def __init__(self, label: str) -> None:
        super().__init__(f'Account "{label}" is a parent account and cannot be used')
        self.label = label


# ============================================================================
# Flow control
# ============================================================================


class OperationInProgressError(ErpPorterError):
    """Raised when an operation is started while the same one is running."""

    pass


class ImportFormatError(ErpPorterError):
    """Raised when an import document cannot be parsed at all."""

    pass


class ImportBlockedError(ErpPorterError):
    """Raised when an import batch is not eligible for commit."""

    pass


class ProfileNotFoundError(ErpPorterError):
    """Raised when no DataStore profile is configured."""

    pass
