"""CSV import of transactions and sales orders."""

from erp_porter.importing.csv_reader import CsvDocument, CsvRow, read_csv, write_csv
from erp_porter.importing.engine import ImportPreview, Importer, ParsedRow, RowBuilder
from erp_porter.importing.fields import (
    FieldError,
    FieldSpec,
    Requirement,
    fields_by_requirement,
)
from erp_porter.importing.references import ReferenceIndex
from erp_porter.importing.sales_orders import SalesOrderImporter, parse_line_items
from erp_porter.importing.transactions import TransactionImporter

__all__ = [
    "CsvDocument",
    "CsvRow",
    "FieldError",
    "FieldSpec",
    "ImportPreview",
    "Importer",
    "ParsedRow",
    "ReferenceIndex",
    "Requirement",
    "RowBuilder",
    "SalesOrderImporter",
    "TransactionImporter",
    "fields_by_requirement",
    "parse_line_items",
    "read_csv",
    "write_csv",
]
