"""CSV import framework: parse, preview, then commit all-or-nothing.

An ``Importer`` turns CSV text into an ``ImportPreview``: one ``ParsedRow``
per data line, each with the values it could resolve and every error found
on that line.  Parsing never touches a DataStore; it only uses reference
data captured when the importer was built, so parsing the same text twice
gives the same preview.

``commit`` writes nothing unless every row is valid.

Usage:
    from erp_porter.importing import TransactionImporter

    importer = TransactionImporter(accounts)
    preview = importer.parse(csv_text)
    print(preview.summary())
    if preview.can_commit:
        await importer.commit(store, auth, preview)
"""

import logging
from typing import Any, ClassVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from erp_porter.adapters.base import AuthProvider, DataStore, Identity
from erp_porter.errors import AuthenticationError, ImportBlockedError
from erp_porter.guard import BusyGuard, guarded
from erp_porter.importing.csv_reader import CsvRow, read_csv, write_csv
from erp_porter.importing.fields import FieldError, FieldSpec

logger = logging.getLogger(__name__)


class ParsedRow(BaseModel):
    row: int
    data: dict[str, Any] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


class ImportPreview(BaseModel):
    """Parsed rows awaiting the user's go-ahead."""

    entity: str
    rows: list[ParsedRow] = Field(default_factory=list)

    @property
    def valid_rows(self) -> list[ParsedRow]:
        return [r for r in self.rows if r.valid]

    @property
    def invalid_rows(self) -> list[ParsedRow]:
        return [r for r in self.rows if not r.valid]

    @property
    def can_commit(self) -> bool:
        """True only when there is at least one row and none has errors."""
        return bool(self.rows) and not self.invalid_rows

    def summary(self) -> str:
        return (
            f"{len(self.rows)} {self.entity} parsed: "
            f"{len(self.valid_rows)} valid, {len(self.invalid_rows)} with errors"
        )


class RowBuilder:
    """Accumulates values and errors for one CSV row.

    Field rules record their error against a field name; schema
    re-validation later skips fields that already carry such an error so
    a bad value is reported once.
    """

    def __init__(self, row: CsvRow) -> None:
        self.row = row
        self.data: dict[str, Any] = {}
        self.errors: list[str] = []
        self._flagged: set[str] = set()

    def raw(self, spec: FieldSpec) -> str:
        return self.row.get(spec.aliases)

    def error(self, field: str, message: str) -> None:
        self.errors.append(message)
        self._flagged.add(field)

    def flagged(self, field: str) -> bool:
        return field in self._flagged

    def suppress(self, *fields: str) -> None:
        """Skip schema errors for fields already explained by another error."""
        self._flagged.update(fields)

    def apply(self, field: str, rule, value: str, *args: Any) -> Any:
        """Run a parsing rule, storing its result or recording its error."""
        try:
            result = rule(value, *args)
        except FieldError as e:
            self.error(field, str(e))
            return None
        self.data[field] = result
        return result

    def validate(self, model: type[BaseModel]) -> None:
        """Re-check the accumulated values against the entity schema."""
        try:
            model.model_validate(self.data)
        except SchemaError as e:
            for issue in e.errors():
                loc = ".".join(str(part) for part in issue["loc"])
                field = str(issue["loc"][0]) if issue["loc"] else ""
                if field and self.flagged(field):
                    continue
                self.errors.append(f"{loc}: {issue['msg']}")

    def build(self) -> ParsedRow:
        return ParsedRow(row=self.row.row, data=self.data, errors=self.errors)


class Importer:
    """Base class for entity importers.

    Subclasses declare ``entity``, ``collection``, ``fields`` and
    ``example_row``, and implement ``parse_row`` and ``build_payload``.
    """

    entity: ClassVar[str] = "records"
    collection: ClassVar[str] = ""
    fields: ClassVar[tuple[FieldSpec, ...]] = ()
    example_row: ClassVar[tuple[str, ...]] = ()

    def parse(self, text: str) -> ImportPreview:
        """Parse CSV text into a preview.

        Raises:
            ImportFormatError: If the text has no header and data row.
        """
        document = read_csv(text)
        rows = [self.parse_row(row) for row in document.rows]
        preview = ImportPreview(entity=self.entity, rows=rows)
        logger.info(f"Parsed {self.entity}: {preview.summary()}")
        return preview

    def parse_row(self, row: CsvRow) -> ParsedRow:
        raise NotImplementedError

    def build_payload(self, data: dict[str, Any], identity: Identity) -> dict[str, Any]:
        raise NotImplementedError

    def template(self) -> str:
        """CSV template: header line plus one example row."""
        return write_csv(
            [spec.header for spec in self.fields], [list(self.example_row)]
        )

    async def commit(
        self,
        datastore: DataStore,
        auth: AuthProvider,
        preview: ImportPreview,
        guard: BusyGuard | None = None,
    ) -> list[dict]:
        """Insert every row of ``preview`` in a single batch.

        Args:
            datastore: Target store.
            auth: Identity source; imported rows are stamped ``created_by``.
            preview: Result of ``parse``.
            guard: Optional busy guard shared with other imports.

        Returns:
            Inserted records as returned by the store.

        Raises:
            AuthenticationError: If no identity is available.
            ImportBlockedError: If the preview is empty or any row is
                invalid; the store is not touched.
            DataStoreError: If the store rejects the batch.
        """
        async with guarded(guard):
            identity = await auth.current_identity()
            if identity is None:
                raise AuthenticationError("You must be authenticated to import data")
            if not preview.valid_rows:
                raise ImportBlockedError(f"No valid {self.entity} to import")
            if preview.invalid_rows:
                raise ImportBlockedError(
                    "Please fix all errors before importing. All rows must be valid."
                )

            payloads = [self.build_payload(r.data, identity) for r in preview.rows]
            inserted = await self._insert(datastore, preview, payloads)
            logger.info(f"Imported {len(inserted)} {self.entity}")
            return inserted

    async def _insert(
        self,
        datastore: DataStore,
        preview: ImportPreview,
        payloads: list[dict[str, Any]],
    ) -> list[dict]:
        return await datastore.batch_insert(self.collection, payloads)
