"""
Unified import orchestration layer.

Runs one CSV import end to end:

    parse -> reconcile columns -> extract choices -> materialize fields
          -> coerce rows -> detect duplicates -> write batches -> summary

Every call to the schema service or the row store is a suspend point. A
cancellation between two of them stops the import; rows and fields written
before that point are kept.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional
import asyncio
import logging

from gridbase.core.config import Settings, settings as default_settings
from gridbase.domain.fields import FieldKind
from gridbase.domain.imports.choices import attach_choice_domains
from gridbase.domain.imports.context import ImportContext, ProgressCallback
from gridbase.domain.imports.duplicates import detect_duplicates
from gridbase.domain.imports.exceptions import NoImportableRowsError, SchemaValidationError
from gridbase.domain.imports.mapper import build_candidate_rows
from gridbase.domain.imports.models import ImportSummary, ParsedTable
from gridbase.domain.imports.processors.csv_processor import parse_csv_text
from gridbase.domain.imports.report import build_summary, collect_skipped
from gridbase.domain.imports.schema_mapper import reconcile_columns, resolve_identity_field
from gridbase.domain.imports.schema_migrations import materialize_fields
from gridbase.domain.imports.services import RowStore, SchemaService
from gridbase.domain.imports.writer import write_batches

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportRequest:
    """
    Everything the caller decided for one import.

    column_mappings: column -> existing field name, or None/"" to skip it
    field_types: column -> kind for columns that become new fields
    linked_tables: column -> target table id for link_to_table columns
    """
    table_id: str
    table: ParsedTable
    column_mappings: Mapping[str, Optional[str]] = field(default_factory=dict)
    field_types: Mapping[str, FieldKind] = field(default_factory=dict)
    linked_tables: Mapping[str, str] = field(default_factory=dict)


async def _run_pipeline(
    request: ImportRequest,
    schema_service: SchemaService,
    row_store: RowStore,
    context: ImportContext,
) -> ImportSummary:
    table_id = request.table_id
    table = request.table

    context.checkpoint("schema load")
    if not await schema_service.table_exists(table_id):
        raise SchemaValidationError(f"Table '{table_id}' not found", table_id=table_id)

    context.checkpoint("schema load")
    existing_fields = await schema_service.list_fields(table_id)

    mappings = reconcile_columns(
        table.columns,
        existing_fields,
        table_id=table_id,
        column_overrides=request.column_mappings,
        type_overrides=request.field_types,
        linked_tables=request.linked_tables,
        threshold=context.settings.import_type_threshold,
    )
    resolve_identity_field(mappings, table_id)
    mappings = attach_choice_domains(mappings, table, context.settings.import_choice_limit)

    schema = await materialize_fields(mappings, existing_fields, schema_service, context)
    key_field = resolve_identity_field(schema.mappings, table_id)

    candidates = build_candidate_rows(table, schema.mappings)
    empty_rows = [row for row in candidates if not row.has_data()]
    rows = [row for row in candidates if row.has_data()]

    verdicts = await detect_duplicates(rows, key_field, row_store, context)
    accepted_indexes = {v.source_index for v in verdicts if v.should_import}
    accepted = [row for row in rows if row.source_index in accepted_indexes]
    skipped = collect_skipped(rows, verdicts, empty_rows)

    if not accepted:
        summary = build_summary(
            total_source_rows=len(table.rows),
            imported_rows=0,
            primary_key_field=key_field,
            skipped=skipped,
            created_fields=schema.created_fields,
        )
        raise NoImportableRowsError(
            f"No rows to import into table '{table_id}': all {len(table.rows)} rows were "
            f"skipped as empty or duplicates of existing records on '{key_field}'.",
            summary=summary,
            table_id=table_id,
        )

    imported = await write_batches(
        accepted,
        row_store,
        context,
        available_fields=[f.name for f in schema.fields],
    )

    return build_summary(
        total_source_rows=len(table.rows),
        imported_rows=imported,
        primary_key_field=key_field,
        skipped=skipped,
        created_fields=schema.created_fields,
    )


async def run_import(
    request: ImportRequest,
    schema_service: SchemaService,
    row_store: RowStore,
    *,
    settings: Optional[Settings] = None,
    cancel_event: Optional[asyncio.Event] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ImportSummary:
    """
    Import a parsed CSV table into an existing table.

    Args:
        request: Source data plus the caller's mapping decisions
        schema_service: Reads and extends the target table's schema
        row_store: Looks up existing keys and inserts rows
        settings: Pipeline settings; the application settings by default
        cancel_event: Set it to stop the import at the next suspend point
        on_progress: Called as on_progress(imported_so_far, total) after each batch

    Returns:
        ImportSummary of the completed import.

    Raises:
        DataImportError subclasses for fatal errors, ImportCancelledError
        when cancel_event was set.
    """
    context = ImportContext(
        table_id=request.table_id,
        settings=settings or default_settings,
        cancel_event=cancel_event,
        on_progress=on_progress,
    )
    logger.info(
        f"Starting import into table '{request.table_id}': "
        f"{len(request.table.rows)} rows, {len(request.table.column_names)} columns"
    )
    try:
        summary = await _run_pipeline(request, schema_service, row_store, context)
    except asyncio.CancelledError:
        logger.info(f"Import into table '{request.table_id}' was cancelled")
        raise

    logger.info(f"Import into table '{request.table_id}' completed: {summary.imported_rows} rows imported")
    return summary


async def import_csv_text(
    text_content: str,
    table_id: str,
    schema_service: SchemaService,
    row_store: RowStore,
    *,
    column_mappings: Optional[Dict[str, Optional[str]]] = None,
    field_types: Optional[Dict[str, FieldKind]] = None,
    linked_tables: Optional[Dict[str, str]] = None,
    settings: Optional[Settings] = None,
    cancel_event: Optional[asyncio.Event] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ImportSummary:
    """Parse CSV text and import it in one call."""
    config = settings or default_settings
    table = parse_csv_text(text_content, max_columns=config.import_max_columns)
    request = ImportRequest(
        table_id=table_id,
        table=table,
        column_mappings=column_mappings or {},
        field_types=field_types or {},
        linked_tables=linked_tables or {},
    )
    return await run_import(
        request,
        schema_service,
        row_store,
        settings=config,
        cancel_event=cancel_event,
        on_progress=on_progress,
    )
