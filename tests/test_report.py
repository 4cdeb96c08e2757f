import io

import pandas as pd

from gridbase.domain.fields import FieldKind
from gridbase.domain.imports.models import CandidateRow, DuplicateVerdict, SkipReason, TypedValue
from gridbase.domain.imports.report import build_summary, collect_skipped, skipped_rows_to_csv


def _row(index, code):
    return CandidateRow(
        source_index=index,
        values={"code": TypedValue(FieldKind.TEXT, code)},
        source={"Code": code, "Name": f"n{index}"},
    )


def test_summary_counts_and_skip_details_in_row_order():
    rows = [_row(0, "a"), _row(1, "b"), _row(3, None)]
    empty = [_row(2, "")]
    verdicts = [
        DuplicateVerdict.import_row(0),
        DuplicateVerdict.skip(1, SkipReason.DUPLICATE, "b"),
        DuplicateVerdict.skip(3, SkipReason.EMPTY_KEY),
    ]

    skipped = collect_skipped(rows, verdicts, empty)
    summary = build_summary(
        total_source_rows=4,
        imported_rows=1,
        primary_key_field="code",
        skipped=skipped,
        created_fields=["code"],
    )

    assert summary.skipped_rows == 3
    assert summary.imported_rows + summary.skipped_rows == summary.total_source_rows
    assert [d.row_number for d in summary.skipped_details] == [2, 3, 4]
    assert [d.reason for d in summary.skipped_details] == [
        "duplicate of existing record",
        "empty row",
        "empty key",
    ]
    assert summary.skipped_details[0].row == {"Code": "b", "Name": "n1"}

    payload = summary.as_dict()
    assert payload["primary_key_field"] == "code"
    assert payload["created_fields"] == ["code"]
    assert payload["skipped_details"][0]["value"] == "b"


def test_skipped_rows_to_csv_includes_reason_columns():
    skipped = collect_skipped([_row(0, "a")], [DuplicateVerdict.skip(0, SkipReason.DUPLICATE, "a")])
    summary = build_summary(total_source_rows=1, imported_rows=0, primary_key_field="code", skipped=skipped)

    frame = pd.read_csv(io.StringIO(skipped_rows_to_csv(summary)))

    assert list(frame.columns) == ["Code", "Name", "_skip_reason", "_skip_value"]
    assert frame.iloc[0]["_skip_reason"] == "duplicate of existing record"


def test_skipped_rows_to_csv_without_skips_has_only_header():
    summary = build_summary(total_source_rows=1, imported_rows=1, primary_key_field="code", skipped=[])

    assert skipped_rows_to_csv(summary).strip() == "_skip_reason,_skip_value"
