import pytest

from gridbase.domain.fields import FieldKind, SchemaField
from gridbase.domain.imports.exceptions import SchemaValidationError
from gridbase.domain.imports.models import Column, MappingState
from gridbase.domain.imports.schema_mapper import (
    find_matching_field,
    names_match,
    reconcile_columns,
    resolve_identity_field,
)

EXISTING = [
    SchemaField(name="customer_name", kind=FieldKind.TEXT, label="Customer Name"),
    SchemaField(name="email", kind=FieldKind.EMAIL),
    SchemaField(name="Status", kind=FieldKind.SINGLE_CHOICE, options={"choices": ["Open"]}),
]


def _columns(*names, values=("x", "y", "z")):
    return [Column(name=name, raw_values=tuple(values)) for name in names]


def test_names_match_raw_or_sanitized_case_insensitive():
    assert names_match("Customer Name", "customer_name")
    assert names_match("EMAIL", "email")
    assert names_match("  customer   name ", "Customer Name")
    assert not names_match("Customer", "customer_name")


def test_find_matching_field_prefers_exact_raw_match():
    fields = [
        SchemaField(name="order_id", kind=FieldKind.TEXT),
        SchemaField(name="Order ID", kind=FieldKind.TEXT),
    ]

    assert find_matching_field("order id", fields).name == "Order ID"
    assert find_matching_field("Order-ID", fields).name == "order_id"


def test_columns_matching_existing_fields_are_mapped():
    mappings = reconcile_columns(_columns("Customer Name", "Email", "status"), EXISTING)

    assert [m.state for m in mappings] == [MappingState.MAPPED] * 3
    assert [m.target_name for m in mappings] == ["customer_name", "email", "Status"]
    assert mappings[2].kind is FieldKind.SINGLE_CHOICE


def test_unmatched_columns_become_fields_to_create_with_inferred_kind():
    columns = [
        Column(name="Customer Name", raw_values=("a", "b", "c")),
        Column(name="Signup Date", raw_values=("2024-01-01", "2024-02-01", "2024-03-01")),
    ]

    mappings = reconcile_columns(columns, EXISTING)

    assert mappings[1].state is MappingState.TO_CREATE
    assert mappings[1].name == "signup_date"
    assert mappings[1].kind is FieldKind.DATE


def test_user_type_override_wins_over_inference():
    columns = [Column(name="Code", raw_values=("1", "2", "3"))]

    mappings = reconcile_columns(columns, [], type_overrides={"Code": FieldKind.TEXT})

    assert mappings[0].kind is FieldKind.TEXT


def test_type_override_is_ignored_for_existing_fields():
    mappings = reconcile_columns(_columns("Email"), EXISTING, type_overrides={"Email": FieldKind.TEXT})

    assert mappings[0].is_mapped
    assert mappings[0].kind is FieldKind.EMAIL


def test_link_columns_carry_the_target_table():
    mappings = reconcile_columns(
        _columns("Owner"),
        [],
        type_overrides={"Owner": FieldKind.LINK_TO_TABLE},
        linked_tables={"Owner": "tbl-people"},
    )

    assert mappings[0].options["linked_table_id"] == "tbl-people"


def test_column_override_maps_to_named_field_or_skips():
    mappings = reconcile_columns(
        _columns("Full Name", "Internal Notes"),
        EXISTING,
        column_overrides={"Full Name": "customer_name", "Internal Notes": None},
    )

    assert mappings[0].is_mapped and mappings[0].target_name == "customer_name"
    assert mappings[1].is_skipped


def test_override_naming_unknown_field_lists_available_fields():
    with pytest.raises(SchemaValidationError) as exc_info:
        reconcile_columns(_columns("Phone"), EXISTING, table_id="tbl-1", column_overrides={"Phone": "phone"})

    assert "customer_name, email, Status" in exc_info.value.message
    assert exc_info.value.column == "Phone"


def test_new_field_names_are_unique_within_a_plan():
    mappings = reconcile_columns(_columns("Total Amount", "Total-Amount", "total amount!"), [])

    assert [m.name for m in mappings] == ["total_amount", "total_amount_2", "total_amount_3"]


def test_identity_field_is_the_target_of_the_first_column():
    mappings = reconcile_columns(_columns("Email", "Notes"), EXISTING)

    assert resolve_identity_field(mappings) == "email"


def test_skipped_identity_column_is_fatal():
    mappings = reconcile_columns(_columns("Email", "Notes"), EXISTING, column_overrides={"Email": ""})

    with pytest.raises(SchemaValidationError, match="first CSV column 'Email'"):
        resolve_identity_field(mappings, "tbl-1")
