"""
Column-to-field reconciliation for CSV imports.

This module decides, for every source column, whether it feeds an existing
field, needs a new field, or is ignored. Field names stored by the schema
service are already sanitized while CSV headers are not, so a column matches
a field when either its raw or sanitized name equals the field's raw or
sanitized name (case-insensitive).
"""

from typing import Dict, List, Mapping, Optional, Sequence
import logging

from gridbase.domain.fields import FieldKind, SchemaField, collapse_whitespace, sanitize_field_name
from gridbase.domain.imports.exceptions import SchemaValidationError
from gridbase.domain.imports.models import Column, ColumnMapping
from gridbase.domain.imports.type_inference import infer_column_kind

logger = logging.getLogger(__name__)


def _name_variants(name: str) -> set:
    raw = collapse_whitespace(name).lower()
    return {raw, sanitize_field_name(name)}


def names_match(column_name: str, field_name: str) -> bool:
    """True when a column header and a field name refer to the same field."""
    return bool(_name_variants(column_name) & _name_variants(field_name))


def find_matching_field(column_name: str, fields: Sequence[SchemaField]) -> Optional[SchemaField]:
    """
    Find the field a column header refers to.

    An exact case-insensitive match on the raw name wins over a match that
    only holds after sanitization.
    """
    wanted = collapse_whitespace(column_name).lower()
    for schema_field in fields:
        if collapse_whitespace(schema_field.name).lower() == wanted:
            return schema_field
    for schema_field in fields:
        if names_match(column_name, schema_field.name):
            return schema_field
        if schema_field.label and names_match(column_name, schema_field.label):
            return schema_field
    return None


def _unique_name(name: str, taken: set) -> str:
    candidate = name
    counter = 2
    while candidate in taken:
        candidate = f"{name}_{counter}"
        counter += 1
    return candidate


def reconcile_columns(
    columns: Sequence[Column],
    existing_fields: Sequence[SchemaField],
    *,
    table_id: Optional[str] = None,
    column_overrides: Optional[Mapping[str, Optional[str]]] = None,
    type_overrides: Optional[Mapping[str, FieldKind]] = None,
    linked_tables: Optional[Mapping[str, str]] = None,
    threshold: Optional[float] = None,
) -> List[ColumnMapping]:
    """
    Build one ColumnMapping per column.

    Args:
        columns: Parsed source columns, in file order
        existing_fields: Current schema snapshot of the target table
        column_overrides: User choices, column -> field name, or None/"" to skip
        type_overrides: User-selected kinds for columns that become new fields
        linked_tables: Target table ids for link_to_table columns
        threshold: Type inference threshold override

    Returns:
        Mappings in column order; unmatched columns become ToCreate with an
        inferred (or overridden) kind.

    Raises:
        SchemaValidationError: if an override names a field that does not exist.
    """
    column_overrides = column_overrides or {}
    type_overrides = type_overrides or {}
    linked_tables = linked_tables or {}

    mappings: List[ColumnMapping] = []
    planned_names: set = {sanitize_field_name(f.name) for f in existing_fields}

    for column in columns:
        if column.name in column_overrides:
            target = column_overrides[column.name]
            if not target:
                logger.info(f"Column '{column.name}' skipped by user mapping")
                mappings.append(ColumnMapping.skipped(column.name))
                continue
            existing = find_matching_field(target, existing_fields)
            if existing is None:
                available = ", ".join(f.name for f in existing_fields) or "none"
                raise SchemaValidationError(
                    f"Column '{column.name}' is mapped to field '{target}', which does not exist "
                    f"in table '{table_id}'. Available fields: {available}.",
                    table_id=table_id,
                    column=column.name,
                    field_name=target,
                )
            mappings.append(ColumnMapping.mapped(column.name, existing))
            continue

        existing = find_matching_field(column.name, existing_fields)
        if existing is not None:
            if column.name in type_overrides and FieldKind(type_overrides[column.name]) is not existing.kind:
                logger.info(
                    f"Ignoring type override for column '{column.name}': "
                    f"it maps to existing field '{existing.name}' ({existing.kind.value})"
                )
            logger.debug(f"Column '{column.name}' -> existing field '{existing.name}'")
            mappings.append(ColumnMapping.mapped(column.name, existing))
            continue

        if column.name in type_overrides:
            kind = FieldKind(type_overrides[column.name])
        else:
            kind = infer_column_kind(column.raw_values, threshold=threshold)

        options: Dict[str, object] = {}
        if kind is FieldKind.LINK_TO_TABLE and linked_tables.get(column.name):
            options["linked_table_id"] = linked_tables[column.name]

        name = _unique_name(sanitize_field_name(column.name), planned_names)
        planned_names.add(name)
        logger.info(f"Column '{column.name}' will be created as field '{name}' ({kind.value})")
        mappings.append(ColumnMapping.to_create(column.name, name, kind, options))

    return mappings


def resolve_identity_field(mappings: Sequence[ColumnMapping], table_id: Optional[str] = None) -> str:
    """
    Return the field name the identity (first) column maps to.

    Raises:
        SchemaValidationError: if the first column is skipped.
    """
    if not mappings:
        raise SchemaValidationError("CSV file has no columns", table_id=table_id)
    identity = mappings[0]
    if identity.is_skipped or not identity.target_name:
        raise SchemaValidationError(
            f"The first CSV column '{identity.column}' identifies records for duplicate detection "
            f"and must be mapped to a field. Map it to an existing field or create a new one.",
            table_id=table_id,
            column=identity.column,
        )
    return identity.target_name
