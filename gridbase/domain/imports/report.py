from typing import Iterable, List, Optional, Sequence
import logging

import pandas as pd

from gridbase.domain.imports.models import (
    CandidateRow,
    DuplicateVerdict,
    ImportSummary,
    SkippedRow,
    SkipReason,
)

logger = logging.getLogger(__name__)


def skipped_row(row: CandidateRow, reason: SkipReason, value=None) -> SkippedRow:
    """Skip entry carrying the original CSV row; row numbers are 1-based data rows."""
    return SkippedRow(
        row=dict(row.source),
        reason=reason.value,
        value=value,
        row_number=row.source_index + 1,
    )


def collect_skipped(
    rows: Sequence[CandidateRow],
    verdicts: Iterable[DuplicateVerdict],
    empty_rows: Iterable[CandidateRow] = (),
) -> List[SkippedRow]:
    empty_rows = list(empty_rows)
    by_index = {row.source_index: row for row in rows}
    for row in empty_rows:
        by_index[row.source_index] = row

    skipped = [skipped_row(row, SkipReason.EMPTY_ROW) for row in empty_rows]
    for verdict in verdicts:
        if verdict.should_import:
            continue
        skipped.append(skipped_row(by_index[verdict.source_index], verdict.skip_reason, verdict.value))

    skipped.sort(key=lambda detail: detail.row_number or 0)
    return skipped


def build_summary(
    *,
    total_source_rows: int,
    imported_rows: int,
    primary_key_field: Optional[str],
    skipped: Sequence[SkippedRow],
    created_fields: Sequence[str] = (),
) -> ImportSummary:
    summary = ImportSummary(
        total_source_rows=total_source_rows,
        imported_rows=imported_rows,
        skipped_rows=len(skipped),
        primary_key_field=primary_key_field,
        skipped_details=tuple(skipped),
        created_fields=tuple(created_fields),
    )
    logger.info(
        f"Import summary: {summary.imported_rows} imported, {summary.skipped_rows} skipped "
        f"of {summary.total_source_rows} rows (key field '{primary_key_field}')"
    )
    return summary


def skipped_rows_to_csv(summary: ImportSummary) -> str:
    """
    Render skipped rows as CSV: the original columns plus _skip_reason and
    _skip_value, so the file can be fixed and re-imported.
    """
    records = []
    for detail in summary.skipped_details:
        record = dict(detail.row)
        record["_skip_reason"] = detail.reason
        record["_skip_value"] = detail.value
        records.append(record)

    if not records:
        return pd.DataFrame(columns=["_skip_reason", "_skip_value"]).to_csv(index=False)
    return pd.DataFrame.from_records(records).to_csv(index=False)
