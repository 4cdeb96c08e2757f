import pytest

from gridbase.domain.imports.exceptions import SourceFileError
from gridbase.domain.imports.processors.csv_processor import parse_csv_bytes, parse_csv_text


def test_parse_csv_text_trims_headers_and_keeps_raw_values():
    table = parse_csv_text(" Name , Email \nAda , ada@example.com\nGrace,grace@example.com\n")

    assert table.column_names == ("Name", "Email")
    assert table.rows[0] == ("Ada ", " ada@example.com")
    assert len(table.rows) == 2


def test_parse_csv_text_handles_quoted_commas_and_newlines():
    table = parse_csv_text('id,notes\n1,"a, b"\n2,"line one\nline two"\n')

    assert table.column("notes").raw_values == ("a, b", "line one\nline two")


def test_blank_lines_are_skipped_and_short_rows_padded():
    table = parse_csv_text("a,b,c\n\n1,2\n,,\n4,5,6,7\n")

    assert table.rows == (("1", "2", ""), ("4", "5", "6"))


def test_duplicate_headers_stay_addressable():
    table = parse_csv_text("Name,Name,Name\nx,y,z\n")

    assert table.column_names == ("Name", "Name (2)", "Name (3)")
    assert table.row_dict(0) == {"Name": "x", "Name (2)": "y", "Name (3)": "z"}


def test_suffixed_headers_do_not_collide_with_existing_headers():
    table = parse_csv_text("Name,Name,Name (2)\nx,y,z\n")

    assert table.column_names == ("Name", "Name (3)", "Name (2)")
    assert [c.raw_values for c in table.columns] == [("x",), ("y",), ("z",)]


def test_empty_file_is_rejected():
    with pytest.raises(SourceFileError, match="no columns"):
        parse_csv_text("\n\n")


def test_header_only_file_is_rejected():
    with pytest.raises(SourceFileError, match="no data rows"):
        parse_csv_text("id,name\n")


def test_too_many_columns_is_rejected():
    header = ",".join(f"c{i}" for i in range(6))
    with pytest.raises(SourceFileError) as exc_info:
        parse_csv_text(f"{header}\n" + ",".join("1" * 6) + "\n", max_columns=5)

    assert "6 columns" in exc_info.value.message
    assert "Maximum allowed is 5" in exc_info.value.message


def test_parse_csv_bytes_strips_utf8_bom():
    table = parse_csv_bytes("\ufeffid,name\n1,Zoë\n".encode("utf-8"))

    assert table.column_names == ("id", "name")
    assert table.rows[0] == ("1", "Zoë")


def test_parse_csv_bytes_rejects_undecodable_content():
    with pytest.raises(SourceFileError, match="not valid utf-8"):
        parse_csv_bytes(b"id\n\xff\xfe\xfa\n")
