"""Ledger transaction import."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from erp_porter.accounts import AccountTree
from erp_porter.adapters.base import Identity
from erp_porter.errors import ParentAccountError
from erp_porter.importing.csv_reader import CsvRow
from erp_porter.importing.engine import Importer, ParsedRow, RowBuilder
from erp_porter.importing.fields import (
    MAX_AMOUNT,
    FieldSpec,
    Requirement,
    check_length,
    parse_amount,
    parse_choice,
    parse_date,
)
from erp_porter.importing.references import ReferenceIndex

TRANSACTION_TYPES = ("sale", "purchase", "payment", "expense", "transfer")
TRANSACTION_STATUSES = ("pending", "posted", "reconciled", "void")

DATE = FieldSpec(name="date", aliases=("date",), requirement=Requirement.REQUIRED)
TYPE = FieldSpec(
    name="type",
    aliases=("type",),
    requirement=Requirement.ENUMERATED,
    allowed_values=TRANSACTION_TYPES,
)
DESCRIPTION = FieldSpec(
    name="description",
    aliases=("description", "desc"),
    requirement=Requirement.REQUIRED,
)
ACCOUNT_FROM = FieldSpec(
    name="account_from",
    aliases=("accountfrom", "account_from", "fromaccount", "from_account"),
    label="accountFrom",
)
ACCOUNT_TO = FieldSpec(
    name="account_to",
    aliases=("accountto", "account_to", "toaccount", "to_account"),
    label="accountTo",
)
AMOUNT = FieldSpec(name="amount", aliases=("amount",), requirement=Requirement.REQUIRED)
STATUS = FieldSpec(
    name="status",
    aliases=("status",),
    requirement=Requirement.ENUMERATED,
    allowed_values=TRANSACTION_STATUSES,
    default="pending",
)
REFERENCE = FieldSpec(name="reference", aliases=("reference", "ref"))
NOTES = FieldSpec(name="notes", aliases=("notes", "note"))

TRANSACTION_FIELDS = (
    DATE,
    TYPE,
    DESCRIPTION,
    ACCOUNT_FROM,
    ACCOUNT_TO,
    AMOUNT,
    STATUS,
    REFERENCE,
    NOTES,
)


class TransactionCandidate(BaseModel):
    """Schema a parsed transaction row must satisfy before commit."""

    date: str
    type: Literal["sale", "purchase", "payment", "expense", "transfer"]
    description: str = Field(min_length=3, max_length=500)
    amount: float = Field(gt=0, le=MAX_AMOUNT)
    status: Literal["pending", "posted", "reconciled", "void"] = "pending"
    reference: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=1000)
    account_from: str | None = None
    account_to: str | None = None


class TransactionImporter(Importer):
    """Imports ledger transactions against the current chart of accounts.

    Accounts are matched by name, then code.  Only leaf accounts may be
    referenced; a parent account is reported as an error, never replaced by
    one of its children.

    Args:
        accounts: Account records currently in the store.

    Example:
        >>> importer = TransactionImporter(await store.fetch_all("accounts"))
        >>> preview = importer.parse(text)
        >>> [e for r in preview.invalid_rows for e in r.errors]
        ['Account "Assets" is a parent account and cannot be used']
    """

    entity = "transactions"
    collection = "transactions"
    fields = TRANSACTION_FIELDS
    example_row = (
        "2024-01-15",
        "sale",
        "Product sale to customer",
        "Cash Account",
        "Revenue Account",
        "1000.00",
        "pending",
        "INV-001",
        "Monthly sale",
    )

    def __init__(self, accounts: list[dict]) -> None:
        self.tree = AccountTree(accounts)
        self.accounts = ReferenceIndex(accounts)

    def parse_row(self, row: CsvRow) -> ParsedRow:
        b = RowBuilder(row)

        date_value = b.raw(DATE)
        if date_value:
            b.apply("date", parse_date, date_value)
        else:
            b.error("date", "Date is required")

        type_value = b.raw(TYPE)
        if type_value:
            b.apply("type", parse_choice, type_value, TYPE)
        else:
            b.error("type", "Type is required")

        description = b.raw(DESCRIPTION)
        if len(description) < 3:
            b.error("description", "Description must be at least 3 characters")
        else:
            b.data["description"] = description

        for spec in (ACCOUNT_FROM, ACCOUNT_TO):
            self._resolve_account(b, spec)

        if b.data.get("type") == "transfer":
            self._check_transfer(b)

        amount_value = b.raw(AMOUNT)
        if amount_value:
            b.apply("amount", parse_amount, amount_value)
        else:
            b.error("amount", "Amount is required and must be greater than zero")

        status_value = b.raw(STATUS)
        if status_value:
            b.apply("status", parse_choice, status_value, STATUS)
        else:
            b.data["status"] = STATUS.default

        reference = b.raw(REFERENCE)
        b.data["reference"] = None
        if reference:
            b.apply("reference", check_length, reference, "Reference", 100)

        notes = b.raw(NOTES)
        b.data["notes"] = None
        if notes:
            b.apply("notes", check_length, notes, "Notes", 1000)

        b.validate(TransactionCandidate)
        return b.build()

    def _resolve_account(self, b: RowBuilder, spec: FieldSpec) -> None:
        text = b.raw(spec)
        b.data[spec.name] = None
        if not text:
            return
        b.data[f"{spec.name}_name"] = text

        account = self.accounts.lookup(text)
        if account is None:
            b.error(spec.name, f'Account "{text}" not found')
            return
        try:
            self.tree.require_leaf(account["id"], text)
        except ParentAccountError as e:
            b.error(spec.name, str(e))
            return
        b.data[spec.name] = account["id"]

    def _check_transfer(self, b: RowBuilder) -> None:
        if not b.raw(ACCOUNT_FROM):
            b.error("account_from", "From Account is required for transfer transactions")
        if not b.raw(ACCOUNT_TO):
            b.error("account_to", "To Account is required for transfer transactions")
        source, target = b.data.get("account_from"), b.data.get("account_to")
        if source and target and source == target:
            b.error(
                "account_to",
                "From and To accounts must be different for transfer transactions",
            )

    def build_payload(self, data: dict[str, Any], identity: Identity) -> dict[str, Any]:
        """Insert payload for one valid row; re-checks the leaf rule.

        Raises:
            ParentAccountError: If a referenced account gained children
                since parsing.
        """
        for field in ("account_from", "account_to"):
            account_id = data.get(field)
            if account_id:
                self.tree.require_leaf(account_id, data.get(f"{field}_name"))

        return {
            "date": data["date"],
            "type": data["type"],
            "description": data["description"],
            "amount": data["amount"],
            "status": data.get("status") or STATUS.default,
            "reference": data.get("reference"),
            "notes": data.get("notes"),
            "account_from": data.get("account_from"),
            "account_to": data.get("account_to"),
            "created_by": identity.id,
        }
