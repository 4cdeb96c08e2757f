"""
CSV import endpoints: preview how a file would be imported, then import it.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from gridbase.api.dependencies import ensure_csv_upload, get_row_store, get_schema_service
from gridbase.api.schemas.shared import (
    ColumnPreviewResponse, ImportOptions, ImportPreviewResponse, ImportSummaryResponse,
)
from gridbase.core.config import settings
from gridbase.domain.imports.exceptions import (
    BatchWriteError,
    FieldCreationError,
    ImportCancelledError,
    NoImportableRowsError,
    SchemaValidationError,
    SourceFileError,
)
from gridbase.domain.imports.orchestrator import ImportRequest, run_import
from gridbase.domain.imports.preview import preview_columns
from gridbase.domain.imports.processors.csv_processor import parse_csv_bytes
from gridbase.domain.imports.services import RowStore, SchemaService

router = APIRouter(prefix="/tables", tags=["imports"])

logger = logging.getLogger(__name__)

# Client Closed Request; an aborted import is not a server error
ABORTED_STATUS_CODE = 499


def _parse_options(options_json: Optional[str]) -> ImportOptions:
    if not options_json:
        return ImportOptions()
    try:
        return ImportOptions(**json.loads(options_json))
    except (ValueError, TypeError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid options_json: {e}")


@router.post("/{table_id}/import/preview", response_model=ImportPreviewResponse)
async def preview_import(
    table_id: str,
    file: UploadFile = File(...),
    schema_service: SchemaService = Depends(get_schema_service),
):
    """
    Show how each CSV column would be imported, without changing anything.

    Returns:
    - One entry per column: sanitized name, inferred kind, sample values and
      the existing field it would map to
    """
    ensure_csv_upload(file.filename)
    if not await schema_service.table_exists(table_id):
        raise HTTPException(status_code=404, detail=f"Table '{table_id}' not found")

    try:
        table = parse_csv_bytes(await file.read(), max_columns=settings.import_max_columns)
    except SourceFileError as e:
        raise HTTPException(status_code=400, detail=e.message)

    previews = preview_columns(table, await schema_service.list_fields(table_id))
    return ImportPreviewResponse(
        table_id=table_id,
        total_rows=len(table.rows),
        columns=[
            ColumnPreviewResponse(
                name=p.name,
                sanitized_name=p.sanitized_name,
                inferred_kind=p.inferred_kind,
                samples=list(p.samples),
                mapped_field=p.mapped_field,
            )
            for p in previews
        ],
    )


@router.post("/{table_id}/import", response_model=ImportSummaryResponse)
async def import_csv(
    table_id: str,
    file: UploadFile = File(...),
    options_json: Optional[str] = Form(None),
    schema_service: SchemaService = Depends(get_schema_service),
    row_store: RowStore = Depends(get_row_store),
):
    """
    Import an uploaded CSV file into an existing table.

    Parameters:
    - file: The CSV file to import
    - options_json: Optional JSON with column_mappings, field_types and linked_tables

    Returns:
    - Row totals, skipped rows with reasons and the identity field used for
      duplicate detection
    """
    ensure_csv_upload(file.filename)
    options = _parse_options(options_json)
    logger.info("Received import request for table '%s' (file '%s')", table_id, file.filename)

    try:
        table = parse_csv_bytes(await file.read(), max_columns=settings.import_max_columns)
        request = ImportRequest(
            table_id=table_id,
            table=table,
            column_mappings=options.column_mappings,
            field_types=options.field_types,
            linked_tables=options.linked_tables,
        )
        summary = await run_import(request, schema_service, row_store)

    except (SourceFileError, SchemaValidationError) as e:
        logger.warning("Import rejected: %s", e)
        raise HTTPException(status_code=400, detail=e.message)
    except FieldCreationError as e:
        logger.warning("Field creation failed: %s", e)
        raise HTTPException(status_code=409, detail=e.message)
    except NoImportableRowsError as e:
        logger.info("Nothing to import: %s", e)
        return JSONResponse(
            status_code=422,
            content={"detail": e.message, "summary": e.summary.as_dict()},
        )
    except BatchWriteError as e:
        return JSONResponse(
            status_code=500,
            content={
                "detail": e.message,
                "category": e.category,
                "imported_rows": e.imported_rows,
                "batch_number": e.batch_number,
                "total_batches": e.total_batches,
            },
        )
    except ImportCancelledError as e:
        return JSONResponse(
            status_code=ABORTED_STATUS_CODE,
            content={"aborted": True, "detail": e.message, "imported_rows": e.imported_rows},
        )

    return ImportSummaryResponse(
        success=True,
        message=f"Imported {summary.imported_rows} of {summary.total_source_rows} rows",
        **summary.as_dict(),
    )
