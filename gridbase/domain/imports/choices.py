"""
Choice domain extraction for select fields created by an import.
"""

from dataclasses import replace
from typing import List, Optional, Sequence
import logging
import re

from gridbase.core.config import settings
from gridbase.domain.fields import FieldKind
from gridbase.domain.imports.models import ColumnMapping, ParsedTable

logger = logging.getLogger(__name__)

CHOICE_SEPARATOR_RE = re.compile(r'[,;]')


def split_multi_value(value: str) -> List[str]:
    """Split a multi-select cell on commas/semicolons, dropping empty parts."""
    return [part.strip() for part in CHOICE_SEPARATOR_RE.split(value) if part.strip()]


def extract_choices(values: Sequence[Optional[str]], kind: FieldKind, limit: Optional[int] = None) -> List[str]:
    """
    Collect the distinct choices found in a full column.

    Multi-select cells are split on commas and semicolons. Matching is case
    sensitive. The result is sorted and capped at ``limit`` entries; values
    beyond the cap are simply left out of the domain.
    """
    cap = settings.import_choice_limit if limit is None else limit
    unique: set = set()

    for raw in values:
        if raw is None:
            continue
        text = str(raw).strip()
        if not text:
            continue
        if kind is FieldKind.MULTI_CHOICE:
            unique.update(split_multi_value(text))
        else:
            unique.add(text)

    choices = sorted(unique)
    if len(choices) > cap:
        logger.info(f"Choice domain truncated from {len(choices)} to {cap} values")
    return choices[:cap]


def attach_choice_domains(
    mappings: Sequence[ColumnMapping],
    table: ParsedTable,
    limit: Optional[int] = None,
) -> List[ColumnMapping]:
    """Fill options["choices"] for every select field that is about to be created."""
    result = []
    for mapping in mappings:
        if mapping.is_to_create and mapping.kind is not None and mapping.kind.is_choice:
            choices = extract_choices(table.column(mapping.column).raw_values, mapping.kind, limit)
            options = dict(mapping.options)
            options["choices"] = choices
            mapping = replace(mapping, options=options)
            logger.info(f"Extracted {len(choices)} choices for new field '{mapping.name}'")
        result.append(mapping)
    return result
