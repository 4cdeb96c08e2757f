"""
Field kinds and schema field model shared by the import pipeline and the
SQL-backed schema service.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import re


class FieldKind(str, Enum):
    """Semantic type of a table field."""
    TEXT = "text"
    LONG_TEXT = "long_text"
    NUMBER = "number"
    PERCENT = "percent"
    CURRENCY = "currency"
    CHECKBOX = "checkbox"
    DATE = "date"
    EMAIL = "email"
    URL = "url"
    JSON = "json"
    SINGLE_CHOICE = "single_select"
    MULTI_CHOICE = "multi_select"
    LINK_TO_TABLE = "link_to_table"
    LOOKUP = "lookup"

    @property
    def is_choice(self) -> bool:
        return self in (FieldKind.SINGLE_CHOICE, FieldKind.MULTI_CHOICE)

    @property
    def is_numeric(self) -> bool:
        return self in (FieldKind.NUMBER, FieldKind.PERCENT, FieldKind.CURRENCY)

    @property
    def is_virtual(self) -> bool:
        """Virtual kinds are derived and have no physical column."""
        return self is FieldKind.LOOKUP


RESERVED_WORDS = (
    'id', 'created_at', 'updated_at', 'created_by', 'updated_by',
    'select', 'insert', 'update', 'delete', 'from', 'where', 'order', 'group', 'by',
    'table', 'view', 'field', 'column', 'row', 'data',
)

MAX_FIELD_NAME_LENGTH = 63  # PostgreSQL identifier limit


def sanitize_field_name(name: str) -> str:
    """
    Turn an arbitrary column header into a field name usable as a column.

    Examples:
        "Notes/Detail" -> "notes_detail"
        "  Order  "    -> "order_field"
        "###"          -> "untitled"
    """
    sanitized = str(name or "").lower().strip()
    sanitized = re.sub(r'[^a-z0-9_]', '_', sanitized)
    sanitized = re.sub(r'_+', '_', sanitized)
    sanitized = sanitized.strip('_')[:MAX_FIELD_NAME_LENGTH]

    if not sanitized:
        return "untitled"
    if sanitized in RESERVED_WORDS:
        sanitized = f"{sanitized}_field"
    return sanitized


def collapse_whitespace(value: str) -> str:
    """Trim and collapse internal runs of whitespace to a single space."""
    return " ".join(str(value).split())


@dataclass(frozen=True)
class SchemaField:
    """A field as stored by the schema service."""
    name: str
    kind: FieldKind
    options: Dict[str, Any] = field(default_factory=dict)
    label: Optional[str] = None
    id: Optional[str] = None

    @property
    def choices(self) -> list:
        return list(self.options.get("choices") or [])

    @property
    def linked_table_id(self) -> Optional[str]:
        return self.options.get("linked_table_id")
