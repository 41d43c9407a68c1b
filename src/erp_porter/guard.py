"""Re-entrancy gate for user-initiated operations.

A restore, backup or import must not be started again while one is in
flight.  ``BusyGuard`` refuses instead of queueing: entering a held guard
raises ``OperationInProgressError`` immediately.

Usage:
    from erp_porter.guard import BusyGuard

    restore_guard = BusyGuard("restore")

    async with restore_guard:
        ...
"""

import asyncio
import contextlib
from typing import Any

from erp_porter.errors import OperationInProgressError


class BusyGuard:
    """Non-blocking async busy flag.

    Args:
        name: Operation name used in the error message.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        """True while an operation holds the guard."""
        return self._lock.locked()

    async def __aenter__(self) -> "BusyGuard":
        if self._lock.locked():
            raise OperationInProgressError(f"A {self.name} is already in progress")
        await self._lock.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._lock.release()


def guarded(guard: BusyGuard | None) -> Any:
    """Return ``guard`` itself, or a no-op async context when it is ``None``."""
    return guard if guard is not None else contextlib.nullcontext()
