"""
Data structures passed between import pipeline stages.

All of them are scoped to a single import invocation and are immutable: a
stage that needs to change something returns a new instance.
"""

from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from gridbase.domain.fields import FieldKind, SchemaField, collapse_whitespace


@dataclass(frozen=True)
class Column:
    """One source column: its header and the raw cell values in row order."""
    name: str
    raw_values: Tuple[Optional[str], ...] = ()

    @property
    def key(self) -> str:
        """Identity used when comparing column names."""
        return collapse_whitespace(self.name)


@dataclass(frozen=True)
class ParsedTable:
    """Parser output: column headers plus rows of unparsed string values."""
    column_names: Tuple[str, ...]
    rows: Tuple[Tuple[Optional[str], ...], ...]

    @property
    def columns(self) -> List[Column]:
        return [self.column(name) for name in self.column_names]

    def column(self, name: str) -> Column:
        index = self.column_names.index(name)
        return Column(name=name, raw_values=tuple(row[index] for row in self.rows))

    def row_dict(self, index: int) -> Dict[str, Optional[str]]:
        return dict(zip(self.column_names, self.rows[index]))


class MappingState(str, Enum):
    MAPPED = "mapped"
    TO_CREATE = "to_create"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ColumnMapping:
    """
    Where a source column goes: an existing field, a field to create, or
    nowhere.
    """
    column: str
    state: MappingState
    field: Optional[SchemaField] = None
    name: Optional[str] = None
    kind: Optional[FieldKind] = None
    options: Mapping[str, Any] = dataclass_field(default_factory=dict)

    @classmethod
    def mapped(cls, column: str, schema_field: SchemaField) -> "ColumnMapping":
        return cls(
            column=column,
            state=MappingState.MAPPED,
            field=schema_field,
            name=schema_field.name,
            kind=schema_field.kind,
            options=dict(schema_field.options),
        )

    @classmethod
    def to_create(
        cls,
        column: str,
        name: str,
        kind: FieldKind,
        options: Optional[Mapping[str, Any]] = None,
    ) -> "ColumnMapping":
        return cls(
            column=column,
            state=MappingState.TO_CREATE,
            name=name,
            kind=kind,
            options=dict(options or {}),
        )

    @classmethod
    def skipped(cls, column: str) -> "ColumnMapping":
        return cls(column=column, state=MappingState.SKIPPED)

    @property
    def is_mapped(self) -> bool:
        return self.state is MappingState.MAPPED

    @property
    def is_to_create(self) -> bool:
        return self.state is MappingState.TO_CREATE

    @property
    def is_skipped(self) -> bool:
        return self.state is MappingState.SKIPPED

    @property
    def target_name(self) -> Optional[str]:
        if self.field is not None:
            return self.field.name
        return self.name


@dataclass(frozen=True)
class TypedValue:
    """A cell value after coercion, tagged with the kind of its target field."""
    kind: FieldKind
    value: Any = None

    @property
    def is_null(self) -> bool:
        return self.value is None


@dataclass(frozen=True)
class CandidateRow:
    """A source row translated to target field names and typed values."""
    source_index: int
    values: Mapping[str, TypedValue]
    source: Mapping[str, Optional[str]] = dataclass_field(default_factory=dict)

    def payload(self) -> Dict[str, Any]:
        """Plain values ready for the row store, in field order."""
        return {name: typed.value for name, typed in self.values.items()}

    def has_data(self) -> bool:
        return any(not typed.is_null for typed in self.values.values())


class SkipReason(str, Enum):
    EMPTY_KEY = "empty key"
    DUPLICATE = "duplicate of existing record"
    DUPLICATE_IN_FILE = "duplicate within file"
    EMPTY_ROW = "empty row"


@dataclass(frozen=True)
class DuplicateVerdict:
    """Import, or skip with a reason and the offending key value."""
    source_index: int
    skip_reason: Optional[SkipReason] = None
    value: Any = None

    @classmethod
    def import_row(cls, source_index: int) -> "DuplicateVerdict":
        return cls(source_index=source_index)

    @classmethod
    def skip(cls, source_index: int, reason: SkipReason, value: Any = None) -> "DuplicateVerdict":
        return cls(source_index=source_index, skip_reason=reason, value=value)

    @property
    def should_import(self) -> bool:
        return self.skip_reason is None


@dataclass(frozen=True)
class SkippedRow:
    row: Mapping[str, Any]
    reason: str
    value: Any = None
    row_number: Optional[int] = None


@dataclass(frozen=True)
class ImportSummary:
    total_source_rows: int
    imported_rows: int
    skipped_rows: int
    primary_key_field: Optional[str]
    skipped_details: Tuple[SkippedRow, ...] = ()
    created_fields: Tuple[str, ...] = ()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_source_rows": self.total_source_rows,
            "imported_rows": self.imported_rows,
            "skipped_rows": self.skipped_rows,
            "primary_key_field": self.primary_key_field,
            "created_fields": list(self.created_fields),
            "skipped_details": [
                {
                    "row_number": detail.row_number,
                    "row": dict(detail.row),
                    "reason": detail.reason,
                    "value": detail.value,
                }
                for detail in self.skipped_details
            ],
        }


@dataclass(frozen=True)
class InsertResult:
    """What a row store reports back for one batch insert."""
    inserted_count: int
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
