import pytest

from gridbase.domain.fields import FieldKind
from gridbase.domain.imports.context import ImportContext
from gridbase.domain.imports.exceptions import BatchWriteError
from gridbase.domain.imports.models import CandidateRow, InsertResult, TypedValue
from gridbase.domain.imports.writer import chunk_rows, classify_store_error, write_batches


def _rows(count):
    return [
        CandidateRow(source_index=i, values={"code": TypedValue(FieldKind.TEXT, f"c{i}")})
        for i in range(count)
    ]


@pytest.mark.parametrize(
    "message, code, category, column",
    [
        ('column "amount" of relation "t_1" does not exist', "42703", "unknown_column", "amount"),
        ("table t_1 has no column named amount", None, "unknown_column", "amount"),
        ('null value in column "code" violates not-null constraint', "23502", "not_null", "code"),
        ("NOT NULL constraint failed: t_1.code", None, "not_null", "code"),
        ("insert violates foreign key constraint", "23503", "foreign_key", None),
        ('invalid input syntax for type uuid: "Alice"', "22P02", "invalid_uuid", None),
        ("connection reset by peer", None, "generic", None),
    ],
)
def test_classify_store_error(message, code, category, column):
    assert classify_store_error(message, code) == (category, column)


def test_chunk_rows_keeps_order():
    chunks = chunk_rows(_rows(5), 2)

    assert [[r.source_index for r in c] for c in chunks] == [[0, 1], [2, 3], [4]]


@pytest.mark.asyncio
async def test_write_batches_reports_progress_after_each_batch(row_store, fast_settings):
    fast_settings.import_batch_size = 2
    progress = []
    context = ImportContext(
        table_id="tbl-1",
        settings=fast_settings,
        on_progress=lambda done, total: progress.append((done, total)),
    )

    imported = await write_batches(_rows(5), row_store, context)

    assert imported == 5
    assert [len(b) for b in row_store.batches] == [2, 2, 1]
    assert progress == [(2, 5), (4, 5), (5, 5)]


@pytest.mark.asyncio
async def test_failed_batch_keeps_earlier_batches_and_reports_partial_count(row_store, fast_settings):
    fast_settings.import_batch_size = 2
    row_store.failures[2] = ("table t_1 has no column named amount", None)
    context = ImportContext(table_id="tbl-1", settings=fast_settings)

    with pytest.raises(BatchWriteError) as exc_info:
        await write_batches(_rows(5), row_store, context, available_fields=["code"])

    error = exc_info.value
    assert error.imported_rows == 2
    assert error.batch_number == 2
    assert error.total_batches == 3
    assert error.category == "unknown_column"
    assert error.column == "amount"
    assert "2 of 5 rows were imported before the failure" in error.message
    assert "Available fields: code" in error.message
    assert len(row_store.stored("tbl-1")) == 2
    # No retry and no further batches
    assert len(row_store.batches) == 2


class PartiallyAcknowledgingStore:
    """Store that reports some rows of a failing batch as inserted."""

    def __init__(self, failing_batch, acknowledged):
        self.failing_batch = failing_batch
        self.acknowledged = acknowledged
        self.calls = 0

    async def insert_batch(self, table_id, rows):
        self.calls += 1
        if self.calls == self.failing_batch:
            return InsertResult(inserted_count=self.acknowledged, error="boom")
        return InsertResult(inserted_count=len(rows))


@pytest.mark.asyncio
async def test_failed_batch_counts_only_earlier_batches(fast_settings):
    fast_settings.import_batch_size = 2
    store = PartiallyAcknowledgingStore(failing_batch=2, acknowledged=1)
    context = ImportContext(table_id="tbl-1", settings=fast_settings)

    with pytest.raises(BatchWriteError) as exc_info:
        await write_batches(_rows(5), store, context)

    assert exc_info.value.imported_rows == 2
    assert exc_info.value.category == "generic"
    assert "2 of 5 rows were imported before the failure" in exc_info.value.message
