from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from gridbase.domain.fields import FieldKind


class CreateTableRequest(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Table name must not be empty")
        return normalized


class TableResponse(BaseModel):
    id: str
    name: str


class FieldResponse(BaseModel):
    id: Optional[str] = None
    name: str
    label: Optional[str] = None
    kind: FieldKind
    options: Dict[str, Any] = Field(default_factory=dict)


class FieldListResponse(BaseModel):
    table_id: str
    fields: List[FieldResponse]


class ImportOptions(BaseModel):
    """Mapping decisions sent as the options_json form field."""
    column_mappings: Dict[str, Optional[str]] = Field(default_factory=dict)
    field_types: Dict[str, FieldKind] = Field(default_factory=dict)
    linked_tables: Dict[str, str] = Field(default_factory=dict)


class ColumnPreviewResponse(BaseModel):
    name: str
    sanitized_name: str
    inferred_kind: FieldKind
    samples: List[str]
    mapped_field: Optional[str] = None


class ImportPreviewResponse(BaseModel):
    table_id: str
    total_rows: int
    columns: List[ColumnPreviewResponse]


class SkippedRowResponse(BaseModel):
    row_number: Optional[int] = None
    row: Dict[str, Any]
    reason: str
    value: Optional[Any] = None


class ImportSummaryResponse(BaseModel):
    success: bool
    message: str
    total_source_rows: int
    imported_rows: int
    skipped_rows: int
    primary_key_field: Optional[str] = None
    created_fields: List[str] = Field(default_factory=list)
    skipped_details: List[SkippedRowResponse] = Field(default_factory=list)
