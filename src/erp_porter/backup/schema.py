"""The ERP's fixed backup schema.

Collections are listed leaves first; restore walks them in this order, so
every referenced collection is restored before the ones pointing at it.

Actor/owner references (``created_by``, ``user_id``) and references to
collections outside the snapshot (``department_id``) are stripped.
"""

from erp_porter.backup.models import BackupSchema, CollectionDef, ForeignKey

ERP_SCHEMA = BackupSchema(collections=[
    CollectionDef(
        name="accounts",
        stripped_fields=["created_by"],
        optional_refs=[ForeignKey(table="accounts", field="parent_id")],
        unique_key="code",
    ),
    CollectionDef(name="customers", stripped_fields=["created_by"], unique_key="code"),
    CollectionDef(name="vendors", stripped_fields=["created_by"], unique_key="code"),
    CollectionDef(
        name="product_categories",
        stripped_fields=["created_by"],
        optional_refs=[ForeignKey(table="product_categories", field="parent_id")],
        unique_key="name",
    ),
    CollectionDef(
        name="products",
        stripped_fields=["created_by"],
        optional_refs=[
            ForeignKey(table="product_categories", field="category_id"),
            ForeignKey(table="vendors", field="supplier_id"),
        ],
        unique_key="sku",
    ),
    CollectionDef(
        name="employees",
        stripped_fields=["created_by", "department_id"],
        unique_key="employee_number",
    ),
    CollectionDef(
        name="sales_orders",
        stripped_fields=["created_by"],
        required_refs=[ForeignKey(table="customers", field="customer_id")],
        unique_key="order_number",
    ),
    CollectionDef(
        name="sales_line_items",
        required_refs=[
            ForeignKey(table="sales_orders", field="sale_id"),
            ForeignKey(table="products", field="product_id"),
        ],
    ),
    CollectionDef(
        name="purchase_orders",
        stripped_fields=["created_by"],
        required_refs=[ForeignKey(table="vendors", field="vendor_id")],
        unique_key="order_number",
    ),
    CollectionDef(
        name="purchase_line_items",
        required_refs=[
            ForeignKey(table="purchase_orders", field="purchase_order_id"),
            ForeignKey(table="products", field="product_id"),
        ],
    ),
    CollectionDef(
        name="transactions",
        stripped_fields=["created_by"],
        optional_refs=[
            ForeignKey(table="accounts", field="account_from"),
            ForeignKey(table="accounts", field="account_to"),
        ],
    ),
    CollectionDef(
        name="stock_movements",
        stripped_fields=["created_by"],
        required_refs=[ForeignKey(table="products", field="product_id")],
    ),
    CollectionDef(
        name="payroll",
        stripped_fields=["created_by"],
        required_refs=[ForeignKey(table="employees", field="employee_id")],
    ),
    CollectionDef(name="activity_logs", stripped_fields=["user_id"]),
])
