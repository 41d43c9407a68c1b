"""CSV tokenizer for import documents.

Reads UTF-8 text with a header line, comma separated, double-quote
escaped values.  Header names are trimmed and lowercased so column
matching is case-insensitive; values are trimmed.  Blank lines are
ignored anywhere in the document.
"""

import csv
import io
from collections.abc import Iterable

from pydantic import BaseModel, Field

from erp_porter.errors import ImportFormatError


class CsvRow(BaseModel):
    """One data line: its 1-based line number (header = 1) and its values."""

    row: int
    values: dict[str, str] = Field(default_factory=dict)

    def get(self, aliases: Iterable[str]) -> str:
        """Value of the first header matching one of ``aliases`` ('' if none)."""
        for alias in aliases:
            if alias in self.values:
                return self.values[alias]
        return ""


class CsvDocument(BaseModel):
    headers: list[str]
    rows: list[CsvRow]


def read_csv(text: str) -> CsvDocument:
    """Tokenize an import document.

    Args:
        text: Whole document (a leading BOM is ignored).

    Returns:
        ``CsvDocument`` with normalized headers and one ``CsvRow`` per
        non-blank data line.  When a header repeats, its first column wins.

    Raises:
        ImportFormatError: If the document is not valid CSV or has no data
            row.

    Example:
        >>> doc = read_csv('Date,Amount\\n2024-01-15,"1,000.00"\\n')
        >>> doc.rows[0].get(["amount"])
        '1,000.00'
    """
    text = text.lstrip("﻿")
    try:
        reader = csv.reader(io.StringIO(text), skipinitialspace=True)
        records = [r for r in reader if any(v.strip() for v in r)]
    except csv.Error as e:
        raise ImportFormatError(f"Error processing CSV file: {e}") from e

    if len(records) < 2:
        raise ImportFormatError(
            "CSV file must have at least a header row and one data row"
        )

    headers = [h.strip().lower() for h in records[0]]
    rows: list[CsvRow] = []
    for number, values in enumerate(records[1:], start=2):
        mapped: dict[str, str] = {}
        for header, value in zip(headers, values):
            mapped.setdefault(header, value.strip())
        rows.append(CsvRow(row=number, values=mapped))

    return CsvDocument(headers=headers, rows=rows)


def write_csv(headers: list[str], rows: Iterable[list[str]]) -> str:
    """Render rows as CSV text (used for import templates)."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()
