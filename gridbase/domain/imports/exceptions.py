"""
Errors raised by the import pipeline.

Every fatal condition derives from DataImportError and carries enough
context (table, column, field, available fields) for the caller to render an
actionable message. Row-level outcomes such as duplicate keys are never
raised; they are reported through ImportSummary.skipped_details.
"""

from typing import Any, List, Optional


class DataImportError(Exception):
    """Base class for fatal errors that abort an import."""

    def __init__(
        self,
        message: str,
        table_id: Optional[str] = None,
        column: Optional[str] = None,
        field_name: Optional[str] = None,
    ):
        self.message = message
        self.table_id = table_id
        self.column = column
        self.field_name = field_name
        super().__init__(self.message)


class SourceFileError(DataImportError):
    """The uploaded file could not be turned into columns and rows."""


class SchemaValidationError(DataImportError):
    """The planned schema changes or mapping cannot be applied."""


class FieldCreationError(DataImportError):
    """A new field could not be created in the schema service."""


class FieldConflictError(Exception):
    """Raised by a schema service when a field with the same name already exists."""

    def __init__(self, table_id: str, field_name: str, message: str = None):
        self.table_id = table_id
        self.field_name = field_name
        self.message = message or f"Field '{field_name}' already exists in table '{table_id}'."
        super().__init__(self.message)


class BatchWriteError(DataImportError):
    """A batch insert failed; earlier batches remain committed."""

    def __init__(
        self,
        message: str,
        *,
        table_id: Optional[str] = None,
        category: str = "generic",
        imported_rows: int = 0,
        attempted_rows: int = 0,
        batch_number: int = 0,
        total_batches: int = 0,
        column: Optional[str] = None,
        available_fields: Optional[List[str]] = None,
        detail: Optional[str] = None,
    ):
        self.category = category
        self.imported_rows = imported_rows
        self.attempted_rows = attempted_rows
        self.batch_number = batch_number
        self.total_batches = total_batches
        self.available_fields = list(available_fields or [])
        self.detail = detail
        super().__init__(message, table_id=table_id, column=column)


class NoImportableRowsError(DataImportError):
    """Nothing is left to write after mapping and duplicate filtering."""

    def __init__(self, message: str, summary: Any, table_id: Optional[str] = None):
        self.summary = summary
        super().__init__(message, table_id=table_id)


class ImportCancelledError(Exception):
    """
    The import was cancelled between two suspend points.

    Not a DataImportError: an aborted import is not a failure, and callers
    render it separately.
    """

    def __init__(self, table_id: str, stage: str, imported_rows: int = 0):
        self.table_id = table_id
        self.stage = stage
        self.imported_rows = imported_rows
        self.message = (
            f"Import into table '{table_id}' was cancelled during {stage}. "
            f"{imported_rows} rows had already been imported."
        )
        super().__init__(self.message)
