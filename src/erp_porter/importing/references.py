"""Name/code lookup over already loaded reference records."""

from collections.abc import Iterable


class ReferenceIndex:
    """Case-insensitive index of records by name, then by a secondary code.

    Built once per import session from the records currently loaded
    (accounts, customers, products).  A name match wins over a code match.

    Args:
        records: Reference records.
        name_field: Primary lookup field.
        code_field: Secondary lookup field (``None`` to disable).

    Example:
        >>> products = ReferenceIndex(rows, code_field="sku")
        >>> products.lookup("widget")["id"]
        'p1'
    """

    def __init__(
        self,
        records: Iterable[dict],
        name_field: str = "name",
        code_field: str | None = "code",
    ) -> None:
        self._by_name: dict[str, dict] = {}
        self._by_code: dict[str, dict] = {}
        for record in records:
            name = record.get(name_field)
            if name:
                self._by_name.setdefault(str(name).strip().lower(), record)
            code = record.get(code_field) if code_field else None
            if code:
                self._by_code.setdefault(str(code).strip().lower(), record)

    def lookup(self, text: str) -> dict | None:
        key = text.strip().lower()
        if not key:
            return None
        return self._by_name.get(key) or self._by_code.get(key)
