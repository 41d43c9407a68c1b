"""Sales order import with nested line items.

The ``lineItems`` column packs several line items into one cell::

    Product A|2|100.00|0.00;Product B|1|50.00|5.00

``;`` separates line items and ``|`` separates the positional fields
``product|quantity|unit_price|discount`` (discount is optional).  Each line
item is checked on its own and reported as ``Line item <n>: ...``.
"""

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

from erp_porter.adapters.base import DataStore, Identity
from erp_porter.importing.csv_reader import CsvRow
from erp_porter.importing.engine import ImportPreview, Importer, ParsedRow, RowBuilder
from erp_porter.importing.fields import (
    MAX_AMOUNT,
    FieldError,
    FieldSpec,
    Requirement,
    check_length,
    parse_amount,
    parse_choice,
    parse_date,
    parse_number,
    parse_positive_int,
)
from erp_porter.importing.references import ReferenceIndex

logger = logging.getLogger(__name__)

SALES_STATUSES = ("draft", "confirmed", "invoiced", "paid", "cancelled")

ORDER_NUMBER = FieldSpec(
    name="order_number",
    aliases=("ordernumber", "order_number", "orderno"),
    requirement=Requirement.REQUIRED,
    label="orderNumber",
)
CUSTOMER = FieldSpec(
    name="customer",
    aliases=("customername", "customer_name", "customer"),
    requirement=Requirement.REQUIRED,
    label="customerName",
)
ORDER_DATE = FieldSpec(
    name="date",
    aliases=("date", "orderdate", "order_date"),
    requirement=Requirement.REQUIRED,
)
DUE_DATE = FieldSpec(name="due_date", aliases=("duedate", "due_date"), label="dueDate")
STATUS = FieldSpec(
    name="status",
    aliases=("status",),
    requirement=Requirement.ENUMERATED,
    allowed_values=SALES_STATUSES,
    default="draft",
)
LINE_ITEMS = FieldSpec(
    name="line_items",
    aliases=("lineitems", "line_items", "items"),
    requirement=Requirement.REQUIRED,
    label="lineItems",
)
NOTES = FieldSpec(name="notes", aliases=("notes", "note"))

SALES_ORDER_FIELDS = (ORDER_NUMBER, CUSTOMER, ORDER_DATE, DUE_DATE, STATUS, LINE_ITEMS, NOTES)


class LineItemCandidate(BaseModel):
    product_id: str
    product_name: str
    quantity: int = Field(gt=0)
    unit_price: float = Field(gt=0, le=MAX_AMOUNT)
    discount: float = Field(default=0, ge=0)
    tax: float = 0
    total: float = Field(ge=0)


class SalesOrderCandidate(BaseModel):
    """Schema a parsed sales order row must satisfy before commit."""

    order_number: str = Field(min_length=1, max_length=50)
    customer_id: str
    date: str
    due_date: str
    status: Literal["draft", "confirmed", "invoiced", "paid", "cancelled"] = "draft"
    line_items: list[LineItemCandidate] = Field(min_length=1)
    subtotal: float = Field(ge=0)
    discount_amount: float = Field(ge=0)
    tax_amount: float = 0
    total: float = Field(ge=0)
    paid_amount: float = 0
    balance: float
    notes: str | None = Field(default=None, max_length=1000)


def parse_line_items(text: str, products: ReferenceIndex) -> tuple[list[dict], list[str]]:
    """Parse a packed line item cell.

    Returns:
        Tuple of (valid line items, error messages).  Totals elsewhere are
        computed from the valid items only.
    """
    if not text.strip():
        return [], ["At least one line item is required"]

    items: list[dict] = []
    errors: list[str] = []
    chunks = [c for c in text.split(";") if c.strip()]
    for n, chunk in enumerate(chunks, start=1):
        try:
            items.append(_parse_line_item(chunk, products))
        except FieldError as e:
            errors.append(f"Line item {n}: {e}")
    return items, errors


def _parse_line_item(chunk: str, products: ReferenceIndex) -> dict:
    parts = [p.strip() for p in chunk.split("|")]
    if len(parts) < 3:
        raise FieldError(
            "Invalid format. Expected: productName|quantity|unitPrice|discount"
        )
    name, quantity_text, price_text = parts[:3]
    discount_text = parts[3] if len(parts) > 3 and parts[3] else "0"

    if not name:
        raise FieldError("Product name is required")
    product = products.lookup(name)
    if product is None:
        raise FieldError(f'Product "{name}" not found')

    quantity = parse_positive_int(quantity_text)
    unit_price = parse_amount(price_text, label="Unit price")
    try:
        discount = parse_number(discount_text)
    except FieldError:
        discount = 0.0
    if discount < 0:
        raise FieldError("Discount cannot be negative")

    return {
        "product_id": product["id"],
        "product_name": product.get("name") or name,
        "quantity": quantity,
        "unit_price": unit_price,
        "discount": discount,
        "tax": 0,
        "total": max(0.0, quantity * unit_price - discount),
    }


def order_totals(items: list[dict]) -> dict[str, float]:
    """Aggregate monetary fields of an order from its line items."""
    subtotal = sum(i["quantity"] * i["unit_price"] for i in items)
    discount_amount = sum(i["discount"] for i in items)
    total = sum(i["total"] for i in items)
    return {
        "subtotal": round(subtotal, 2),
        "discount_amount": round(discount_amount, 2),
        "tax_amount": 0,
        "total": round(total, 2),
        "paid_amount": 0,
        "balance": round(total, 2),
    }


class SalesOrderImporter(Importer):
    """Imports sales orders and their line items.

    Customers are matched by name, then code; products by name, then SKU.
    Commit inserts the orders in one batch, then all line items in a second
    batch linked to the orders by position.

    Args:
        customers: Customer records currently in the store.
        products: Product records currently in the store.
    """

    entity = "sales orders"
    collection = "sales_orders"
    line_item_collection = "sales_line_items"
    fields = SALES_ORDER_FIELDS
    example_row = (
        "SO-001",
        "Customer ABC",
        "2024-01-15",
        "2024-02-15",
        "draft",
        "Product A|2|100.00|0.00;Product B|1|50.00|5.00",
        "Monthly order",
    )

    def __init__(self, customers: list[dict], products: list[dict]) -> None:
        self.customers = ReferenceIndex(customers)
        self.products = ReferenceIndex(products, code_field="sku")

    def parse_row(self, row: CsvRow) -> ParsedRow:
        b = RowBuilder(row)

        order_number = b.raw(ORDER_NUMBER)
        if order_number:
            b.data["order_number"] = order_number
        else:
            b.error("order_number", "Order number is required")

        customer_name = b.raw(CUSTOMER)
        if customer_name:
            b.data["customer_name"] = customer_name
            customer = self.customers.lookup(customer_name)
            if customer is None:
                b.error("customer_id", f'Customer "{customer_name}" not found')
            else:
                b.data["customer_id"] = customer["id"]
        else:
            b.error("customer_id", "Customer is required")

        order_date = None
        date_text = b.raw(ORDER_DATE)
        if date_text:
            order_date = b.apply("date", parse_date, date_text)
        else:
            b.error("date", "Order date is required")

        due_text = b.raw(DUE_DATE)
        if due_text:
            due_date = b.apply("due_date", parse_date, due_text, "due date")
            if due_date and order_date and due_date < order_date:
                b.error("due_date", "Due date must be on or after the order date")
        elif order_date:
            b.data["due_date"] = order_date
        else:
            b.suppress("due_date")

        status_text = b.raw(STATUS)
        if status_text:
            b.apply("status", parse_choice, status_text, STATUS)
        else:
            b.data["status"] = STATUS.default

        items, item_errors = parse_line_items(b.raw(LINE_ITEMS), self.products)
        for message in item_errors:
            b.error("line_items", message)
        b.data["line_items"] = items
        if items:
            b.data.update(order_totals(items))
        else:
            if not item_errors:
                b.error("line_items", "At least one line item is required")
            b.suppress("subtotal", "discount_amount", "total", "balance")

        notes = b.raw(NOTES)
        b.data["notes"] = None
        if notes:
            b.apply("notes", check_length, notes, "Notes", 1000)

        b.validate(SalesOrderCandidate)
        return b.build()

    def build_payload(self, data: dict[str, Any], identity: Identity) -> dict[str, Any]:
        return {
            "order_number": data["order_number"],
            "customer_id": data["customer_id"],
            "date": data["date"],
            "due_date": data["due_date"],
            "status": data.get("status") or STATUS.default,
            "subtotal": data["subtotal"],
            "discount_amount": data["discount_amount"],
            "tax_amount": data["tax_amount"],
            "total": data["total"],
            "paid_amount": data["paid_amount"],
            "balance": data["balance"],
            "notes": data.get("notes"),
            "created_by": identity.id,
        }

    async def _insert(
        self,
        datastore: DataStore,
        preview: ImportPreview,
        payloads: list[dict[str, Any]],
    ) -> list[dict]:
        orders = await datastore.batch_insert(self.collection, payloads)

        line_items: list[dict] = []
        for order, parsed in zip(orders, preview.rows):
            for item in parsed.data["line_items"]:
                line_items.append(
                    {
                        "sale_id": order["id"],
                        "product_id": item["product_id"],
                        "quantity": item["quantity"],
                        "unit_price": item["unit_price"],
                        "discount": item["discount"],
                        "tax": item["tax"],
                        "total": item["total"],
                    }
                )

        try:
            await datastore.batch_insert(self.line_item_collection, line_items)
        except Exception:
            numbers = ", ".join(str(o.get("order_number", o.get("id"))) for o in orders)
            logger.error(
                f"Line items failed after {len(orders)} sales orders were inserted: {numbers}"
            )
            raise
        logger.debug(f"Inserted {len(line_items)} line items")
        return orders
