"""Chart-of-accounts hierarchy.

Builds a tree from the flat ``accounts`` collection (each record carries an
optional ``parent_id``) and answers the questions ledger entry needs:
which accounts are leaves, what are an account's children, and in what
order should the chart be shown.

Only leaf accounts may be used as ledger operands.  ``require_leaf`` is the
single check every entry point goes through; a parent account is an error,
never silently replaced by one of its children.

Usage:
    from erp_porter.accounts import AccountTree

    tree = AccountTree(accounts)
    for account, level in tree.walk():
        print("  " * level, account["code"], account["name"])
    tree.require_leaf(account_id, label="Cash")
"""

from collections.abc import Iterable, Iterator

from pydantic import BaseModel, Field

from erp_porter.errors import ParentAccountError

# Display order of account types in the chart
ACCOUNT_TYPE_ORDER = ("Assets", "Liabilities", "Equity", "Revenue", "Expenses")

# Stored ``account_type`` enum -> display type
STORED_ACCOUNT_TYPES = {
    "asset": "Assets",
    "liability": "Liabilities",
    "equity": "Equity",
    "revenue": "Revenue",
    "expense": "Expenses",
}


class AccountSearch(BaseModel):
    """Accounts matching a search, plus the ancestors to expand to show them."""

    matches: set[str] = Field(default_factory=set)
    expanded: set[str] = Field(default_factory=set)

    @property
    def visible(self) -> set[str]:
        return self.matches | self.expanded


def _code_key(account: dict) -> str:
    return str(account.get("code") or "")


def account_type_of(account: dict) -> str:
    """Display type of an account record.

    Reads the stored ``account_type`` enum; a record already carrying a
    display ``type`` is used as is.
    """
    stored = account.get("account_type")
    if stored in STORED_ACCOUNT_TYPES:
        return STORED_ACCOUNT_TYPES[stored]
    return str(account.get("type") or stored or "")


def _type_key(account_type: str) -> tuple[int, str]:
    if account_type in ACCOUNT_TYPE_ORDER:
        return ACCOUNT_TYPE_ORDER.index(account_type), ""
    return len(ACCOUNT_TYPE_ORDER), account_type


class AccountTree:
    """Parent/child index over a flat list of account records.

    Args:
        accounts: Account dicts with ``id``, ``code``, ``name``,
            ``account_type`` (or a display ``type``), ``parent_id`` and
            ``status``.
        active_only: Ignore accounts whose ``status`` is not ``"active"``.

    An account whose ``parent_id`` points outside the list is treated as a
    root.
    """

    def __init__(self, accounts: Iterable[dict], active_only: bool = False) -> None:
        if active_only:
            accounts = [a for a in accounts if a.get("status", "active") == "active"]
        self._by_id: dict[str, dict] = {a["id"]: a for a in accounts}
        self._children: dict[str, list[dict]] = {}

        for account in self._by_id.values():
            parent_id = account.get("parent_id")
            if parent_id and parent_id in self._by_id:
                self._children.setdefault(parent_id, []).append(account)
        for children in self._children.values():
            children.sort(key=_code_key)

        self._leaf_ids = frozenset(i for i in self._by_id if i not in self._children)

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, account_id: str) -> dict | None:
        return self._by_id.get(account_id)

    def children(self, account_id: str) -> list[dict]:
        """Direct children of an account, ordered by code."""
        return list(self._children.get(account_id, []))

    @property
    def leaves(self) -> list[dict]:
        """Accounts without children."""
        return [self._by_id[i] for i in self._by_id if i in self._leaf_ids]

    def is_leaf(self, account_id: str) -> bool:
        return account_id in self._leaf_ids

    def require_leaf(self, account_id: str, label: str | None = None) -> None:
        """Raise ``ParentAccountError`` unless ``account_id`` is a leaf."""
        if not self.is_leaf(account_id):
            account = self._by_id.get(account_id, {})
            raise ParentAccountError(label or account.get("name") or account_id)

    def ancestors(self, account_id: str) -> list[str]:
        """Ids from the direct parent up to the root."""
        chain: list[str] = []
        account = self._by_id.get(account_id)
        while account is not None:
            parent_id = account.get("parent_id")
            if (
                not parent_id
                or parent_id not in self._by_id
                or parent_id == account_id
                or parent_id in chain
            ):
                break
            chain.append(parent_id)
            account = self._by_id[parent_id]
        return chain

    def roots(self) -> list[dict]:
        """Top-level accounts ordered by type, then code."""
        roots = [
            a for a in self._by_id.values()
            if not a.get("parent_id") or a["parent_id"] not in self._by_id
        ]
        return sorted(roots, key=lambda a: (_type_key(account_type_of(a)), _code_key(a)))

    def walk(self, include: set[str] | None = None) -> Iterator[tuple[dict, int]]:
        """Depth-first traversal yielding ``(account, level)``.

        Roots are grouped by account type in chart order and sorted by code;
        children follow their parent, sorted by code.  Each call starts a
        fresh traversal.

        Args:
            include: When given, only accounts whose id is in this set are
                yielded (their subtrees are still searched).
        """
        visited: set[str] = set()
        stack: list[tuple[dict, int]] = [(a, 0) for a in reversed(self.roots())]
        while stack:
            account, level = stack.pop()
            if account["id"] in visited:
                continue
            visited.add(account["id"])
            if include is None or account["id"] in include:
                yield account, level
            for child in reversed(self._children.get(account["id"], [])):
                stack.append((child, level + 1))

    def search(self, query: str) -> AccountSearch:
        """Find accounts whose code or name contains ``query`` (case-insensitive).

        Returns the matching ids and every ancestor that must be expanded to
        reveal them.  A blank query matches nothing.
        """
        result = AccountSearch()
        needle = query.strip().lower()
        if not needle:
            return result
        for account_id, account in self._by_id.items():
            code = str(account.get("code") or "").lower()
            name = str(account.get("name") or "").lower()
            if needle in code or needle in name:
                result.matches.add(account_id)
                result.expanded.update(self.ancestors(account_id))
        return result
