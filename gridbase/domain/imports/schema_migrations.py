"""
Field materialization for CSV imports.

Creates the fields planned by the reconciler, one at a time, against a schema
service that may be modified concurrently and that may lag behind its own
writes. Materialization is not transactional across fields: fields created
before a failure stay in the schema.

Each planned field moves through a small state machine:

    PLANNED -> CHECKING -> CREATING -> CREATED
    CHECKING -> REUSED            (the field already exists)
    CREATING -> CONFLICT -> REUSED | CREATING | FAILED

A name conflict is resolved by re-reading the schema and mapping the column
to the field that now exists. If the field still cannot be found, creation is
retried once; a second conflict is fatal.
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import List, Optional, Sequence, Tuple
import asyncio
import logging

from gridbase.domain.fields import FieldKind, SchemaField
from gridbase.domain.imports.context import ImportContext
from gridbase.domain.imports.exceptions import (
    FieldConflictError,
    FieldCreationError,
    SchemaValidationError,
)
from gridbase.domain.imports.models import ColumnMapping
from gridbase.domain.imports.services import SchemaService

logger = logging.getLogger(__name__)

MAX_CONFLICT_RETRIES = 1


class CreationState(str, Enum):
    PLANNED = "planned"
    CHECKING = "checking"
    CREATING = "creating"
    CREATED = "created"
    REUSED = "reused"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass
class FieldCreationAttempt:
    """Tracks one planned field while it is being materialized."""
    column: str
    name: str
    kind: FieldKind
    options: dict
    state: CreationState = CreationState.PLANNED
    conflicts: int = 0
    result: Optional[SchemaField] = None
    history: List[CreationState] = dataclass_field(default_factory=list)

    def transition(self, state: CreationState, detail: str = "") -> None:
        logger.debug(
            f"Field '{self.name}' (column '{self.column}'): "
            f"{self.state.value} -> {state.value}{' ' + detail if detail else ''}"
        )
        self.history.append(self.state)
        self.state = state

    def reuse(self, existing: SchemaField) -> None:
        self.result = existing
        self.transition(CreationState.REUSED, f"as existing field '{existing.name}'")

    def created(self, schema_field: SchemaField) -> None:
        self.result = schema_field
        self.transition(CreationState.CREATED)


@dataclass(frozen=True)
class MaterializedSchema:
    mappings: Tuple[ColumnMapping, ...]
    fields: Tuple[SchemaField, ...]
    created_fields: Tuple[str, ...] = ()


def validate_creation_plan(mappings: Sequence[ColumnMapping], table_id: Optional[str] = None) -> None:
    """
    Reject plans that can never be materialized, before anything is created.

    Raises:
        SchemaValidationError: for lookup fields, link fields without a
            target table and select fields with an empty choice domain.
    """
    for mapping in mappings:
        if not mapping.is_to_create:
            continue
        kind = mapping.kind
        if kind is FieldKind.LOOKUP:
            raise SchemaValidationError(
                f"Column '{mapping.column}' cannot be imported as a lookup field. "
                f"Lookup fields are derived from linked records; map the column to "
                f"another field type or skip it.",
                table_id=table_id,
                column=mapping.column,
                field_name=mapping.name,
            )
        if kind is FieldKind.LINK_TO_TABLE and not mapping.options.get("linked_table_id"):
            raise SchemaValidationError(
                f"Column '{mapping.column}' is imported as a link_to_table field but no "
                f"linked table was selected.",
                table_id=table_id,
                column=mapping.column,
                field_name=mapping.name,
            )
        if kind is not None and kind.is_choice and not mapping.options.get("choices"):
            raise SchemaValidationError(
                f"Column '{mapping.column}' is imported as a {kind.value} field but has "
                f"no values to build choices from.",
                table_id=table_id,
                column=mapping.column,
                field_name=mapping.name,
            )


def _find_existing(attempt: FieldCreationAttempt, fields: Sequence[SchemaField]) -> Optional[SchemaField]:
    # Planned names only: sibling columns like "First Name" and "First-Name" plan
    # "first_name" and "first_name_2".
    for schema_field in fields:
        if schema_field.name == attempt.name:
            return schema_field
    return None


async def _materialize_one(
    attempt: FieldCreationAttempt,
    schema_service: SchemaService,
    context: ImportContext,
) -> SchemaField:
    table_id = context.table_id

    context.checkpoint("field creation")
    attempt.transition(CreationState.CHECKING)
    existing = _find_existing(attempt, await schema_service.list_fields(table_id))
    if existing is not None:
        logger.info(f"Field '{attempt.name}' appeared concurrently; reusing it for column '{attempt.column}'")
        attempt.reuse(existing)
        return existing

    while True:
        context.checkpoint("field creation")
        attempt.transition(CreationState.CREATING)
        try:
            created = await schema_service.create_field(table_id, attempt.name, attempt.kind, attempt.options)
        except FieldConflictError as exc:
            attempt.conflicts += 1
            attempt.transition(CreationState.CONFLICT, exc.message)
            logger.warning(
                f"Conflict creating field '{attempt.name}' in table '{table_id}' "
                f"(attempt {attempt.conflicts}); re-reading schema"
            )
            context.checkpoint("field creation")
            existing = _find_existing(attempt, await schema_service.list_fields(table_id))
            if existing is not None:
                attempt.reuse(existing)
                return existing
            if attempt.conflicts > MAX_CONFLICT_RETRIES:
                attempt.transition(CreationState.FAILED)
                raise FieldCreationError(
                    f"Field '{attempt.name}' for column '{attempt.column}' conflicts with an "
                    f"existing field in table '{table_id}', but that field could not be found "
                    f"after {attempt.conflicts} attempts.",
                    table_id=table_id,
                    column=attempt.column,
                    field_name=attempt.name,
                ) from exc
            continue
        except (FieldCreationError, SchemaValidationError):
            attempt.transition(CreationState.FAILED)
            raise
        except Exception as exc:
            attempt.transition(CreationState.FAILED, str(exc))
            raise FieldCreationError(
                f"Failed to create field '{attempt.name}' for column '{attempt.column}' "
                f"in table '{table_id}': {exc}",
                table_id=table_id,
                column=attempt.column,
                field_name=attempt.name,
            ) from exc

        logger.info(f"Created field '{created.name}' ({created.kind.value}) in table '{table_id}'")
        attempt.created(created)
        return created


async def wait_for_fields(
    field_names: Sequence[str],
    schema_service: SchemaService,
    context: ImportContext,
) -> Optional[List[SchemaField]]:
    """
    Poll the schema until every named field is visible.

    Returns the last snapshot that contained all of them, or None when they
    did not all show up within the configured number of attempts.
    """
    config = context.settings
    wanted = set(field_names)
    attempts = max(1, config.field_visibility_attempts)

    for attempt in range(attempts):
        context.checkpoint("schema refresh")
        fields = await schema_service.list_fields(context.table_id)
        missing = wanted - {f.name for f in fields}
        if not missing:
            if attempt:
                logger.info(f"New fields became visible after {attempt + 1} schema reads")
            return fields
        if attempt + 1 < attempts:
            delay = config.field_visibility_base_delay_seconds + attempt * config.field_visibility_step_seconds
            logger.debug(f"Fields not visible yet: {sorted(missing)}; retrying in {delay:.2f}s")
            await asyncio.sleep(delay)

    logger.warning(
        f"Created fields {sorted(missing)} are still not visible in table '{context.table_id}' "
        f"after {attempts} reads; continuing with the field definitions returned on creation"
    )
    return None


async def materialize_fields(
    mappings: Sequence[ColumnMapping],
    existing_fields: Sequence[SchemaField],
    schema_service: SchemaService,
    context: ImportContext,
) -> MaterializedSchema:
    """
    Create every ToCreate field, then turn the plan into plain mappings.

    Returns:
        The resolved mappings (no ToCreate left), the freshest field list and
        the names of fields this import actually created.

    Raises:
        SchemaValidationError: if the plan contains a field that cannot be created.
        FieldCreationError: if a field could not be created or resolved.
    """
    table_id = context.table_id
    validate_creation_plan(mappings, table_id)

    planned = [m for m in mappings if m.is_to_create]
    if not planned:
        return MaterializedSchema(mappings=tuple(mappings), fields=tuple(existing_fields))

    logger.info(f"Creating {len(planned)} new fields in table '{table_id}'")
    resolved: dict = {}
    created_names: List[str] = []
    for mapping in planned:
        attempt = FieldCreationAttempt(
            column=mapping.column,
            name=mapping.name,
            kind=mapping.kind,
            options=dict(mapping.options),
        )
        resolved[mapping.column] = await _materialize_one(attempt, schema_service, context)
        if attempt.state is CreationState.CREATED:
            created_names.append(resolved[mapping.column].name)

    fields = await wait_for_fields(created_names, schema_service, context) if created_names else None
    if fields is None:
        context.checkpoint("schema refresh")
        fields = list(await schema_service.list_fields(table_id))
        known = {f.name for f in fields}
        for schema_field in resolved.values():
            if schema_field.name not in known:
                known.add(schema_field.name)
                fields.append(schema_field)

    by_name = {f.name: f for f in fields}
    result = []
    for mapping in mappings:
        if mapping.is_to_create:
            schema_field = resolved[mapping.column]
            mapping = ColumnMapping.mapped(mapping.column, by_name.get(schema_field.name, schema_field))
        result.append(mapping)

    return MaterializedSchema(
        mappings=tuple(result),
        fields=tuple(fields),
        created_fields=tuple(created_names),
    )
