"""Run-scoped old-id -> new-id translation table.

Restore creates one ``IdMap`` per invocation and passes it into every
collection step.  Nothing here is module state; the map dies with the run.

Only scalar ids can be mapped.  A snapshot value such as an object or list
in an id or reference field never resolves and is never recorded.
"""

from collections.abc import Hashable
from typing import Any


def is_mappable_id(value: Any) -> bool:
    """True for values usable as an id key (strings, numbers)."""
    return value is not None and isinstance(value, Hashable)


class IdMap:
    """Mapping of ``(collection, old_id) -> new_id``."""

    def __init__(self) -> None:
        self._maps: dict[str, dict[Any, str]] = {}

    def record(self, collection: str, old_id: Any, new_id: str) -> None:
        """Remember that ``old_id`` in ``collection`` now lives at ``new_id``.

        Unmappable ids are ignored.
        """
        if not is_mappable_id(old_id):
            return
        self._maps.setdefault(collection, {})[old_id] = new_id

    def resolve(self, collection: str, old_id: Any) -> str | None:
        """Return the new id for ``old_id``, or ``None`` if it was not restored."""
        if not is_mappable_id(old_id):
            return None
        return self._maps.get(collection, {}).get(old_id)

    def __contains__(self, key: tuple[str, Any]) -> bool:
        collection, old_id = key
        return is_mappable_id(old_id) and old_id in self._maps.get(collection, {})

    def count(self, collection: str) -> int:
        return len(self._maps.get(collection, {}))

    def __len__(self) -> int:
        return sum(len(m) for m in self._maps.values())
