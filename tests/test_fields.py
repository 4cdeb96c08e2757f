import pytest

from gridbase.domain.fields import FieldKind, SchemaField, collapse_whitespace, sanitize_field_name


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Customer Name", "customer_name"),
        ("Notes/Detail", "notes_detail"),
        ("  Order  ", "order_field"),
        ("ID", "id_field"),
        ("###", "untitled"),
        ("__Total__Amount__", "total_amount"),
        ("Prix (€)", "prix"),
    ],
)
def test_sanitize_field_name(raw, expected):
    assert sanitize_field_name(raw) == expected


def test_sanitize_field_name_truncates_long_names():
    assert len(sanitize_field_name("x" * 100)) == 63


def test_collapse_whitespace():
    assert collapse_whitespace("  First \t  Name ") == "First Name"


def test_field_kind_wire_values_and_properties():
    assert FieldKind("single_select") is FieldKind.SINGLE_CHOICE
    assert FieldKind.MULTI_CHOICE.is_choice
    assert FieldKind.CURRENCY.is_numeric
    assert FieldKind.LOOKUP.is_virtual
    assert not FieldKind.TEXT.is_virtual


def test_schema_field_option_accessors():
    schema_field = SchemaField(
        name="owner",
        kind=FieldKind.LINK_TO_TABLE,
        options={"linked_table_id": "tbl-9", "choices": ["a"]},
    )

    assert schema_field.linked_table_id == "tbl-9"
    assert schema_field.choices == ["a"]
