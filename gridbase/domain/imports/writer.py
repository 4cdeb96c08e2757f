"""
Batched writes of accepted rows to the row store.

Batches are written sequentially with no retry and no rollback: when a batch
fails, every earlier batch stays committed and the error reports how many
rows made it in.
"""

from typing import List, Optional, Sequence, Tuple
import logging
import re

from gridbase.domain.imports.context import ImportContext
from gridbase.domain.imports.exceptions import BatchWriteError
from gridbase.domain.imports.models import CandidateRow, InsertResult
from gridbase.domain.imports.services import RowStore

logger = logging.getLogger(__name__)

UNKNOWN_COLUMN = "unknown_column"
NOT_NULL = "not_null"
FOREIGN_KEY = "foreign_key"
INVALID_UUID = "invalid_uuid"
GENERIC = "generic"

_ERROR_CODES = {
    "42703": UNKNOWN_COLUMN,
    "PGRST204": UNKNOWN_COLUMN,
    "23502": NOT_NULL,
    "23503": FOREIGN_KEY,
    "22P02": INVALID_UUID,
}

_COLUMN_PATTERNS = (
    re.compile(r'column "?(\w+)"? (?:of relation "?\w+"? )?does not exist', re.IGNORECASE),
    re.compile(r'has no column named "?(\w+)"?', re.IGNORECASE),
    re.compile(r"could not find the '(\w+)' column", re.IGNORECASE),
    re.compile(r'null value in column "?(\w+)"?', re.IGNORECASE),
    re.compile(r'NOT NULL constraint failed: \w+\.(\w+)', re.IGNORECASE),
)


def classify_store_error(message: str, code: Optional[str] = None) -> Tuple[str, Optional[str]]:
    """Map a row store error to a category and, where known, the offending column."""
    lowered = (message or "").lower()
    category = _ERROR_CODES.get(code or "")
    if category is None:
        if ("column" in lowered and "does not exist" in lowered) or "has no column named" in lowered \
                or "could not find the" in lowered:
            category = UNKNOWN_COLUMN
        elif "null value" in lowered or "not null constraint" in lowered:
            category = NOT_NULL
        elif "foreign key" in lowered:
            category = FOREIGN_KEY
        elif "invalid input syntax for type uuid" in lowered:
            category = INVALID_UUID
        else:
            category = GENERIC

    column = None
    for pattern in _COLUMN_PATTERNS:
        match = pattern.search(message or "")
        if match:
            column = match.group(1)
            break
    return category, column


def _describe(category: str, column: Optional[str], detail: str, available_fields: Sequence[str]) -> str:
    if category == UNKNOWN_COLUMN:
        return (
            f"Field '{column or 'unknown'}' does not exist in the table. "
            f"Available fields: {', '.join(available_fields) or 'none'}."
        )
    if category == NOT_NULL:
        return f"Field '{column or 'unknown'}' requires a value but some rows leave it empty."
    if category == FOREIGN_KEY:
        return "A linked record referenced by the file does not exist."
    if category == INVALID_UUID:
        return "A linked record value is not a valid record id."
    return f"The row store rejected the batch: {detail}"


def chunk_rows(rows: Sequence[CandidateRow], batch_size: int) -> List[Sequence[CandidateRow]]:
    size = max(1, batch_size)
    return [rows[i:i + size] for i in range(0, len(rows), size)]


async def write_batches(
    rows: Sequence[CandidateRow],
    row_store: RowStore,
    context: ImportContext,
    available_fields: Sequence[str] = (),
) -> int:
    """
    Insert rows in fixed-size batches, in order.

    Returns:
        The number of rows the store acknowledged.

    Raises:
        BatchWriteError: on the first failing batch, with the count of rows
            committed by earlier batches.
    """
    batches = chunk_rows(rows, context.settings.import_batch_size)
    total_rows = len(rows)
    imported = 0

    for number, batch in enumerate(batches, start=1):
        context.checkpoint("batch insert", imported)
        payload = [row.payload() for row in batch]
        result: InsertResult = await row_store.insert_batch(context.table_id, payload)

        if not result.ok:
            category, column = classify_store_error(result.error, result.error_code)
            message = (
                f"Batch {number} of {len(batches)} failed. "
                f"{_describe(category, column, result.error, available_fields)} "
                f"{imported} of {total_rows} rows were imported before the failure."
            )
            logger.error(
                f"Import into table '{context.table_id}' stopped at batch {number}/{len(batches)} "
                f"({category}): {result.error}"
            )
            raise BatchWriteError(
                message,
                table_id=context.table_id,
                category=category,
                imported_rows=imported,
                attempted_rows=len(batch),
                batch_number=number,
                total_batches=len(batches),
                column=column,
                available_fields=list(available_fields),
                detail=result.error,
            )

        imported += result.inserted_count
        logger.info(f"Batch {number}/{len(batches)} committed: {imported}/{total_rows} rows")
        context.report_progress(imported, total_rows)

    return imported
