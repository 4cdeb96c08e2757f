"""
Table management endpoints: create tables and inspect their fields.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from gridbase.api.dependencies import get_schema_service
from gridbase.api.schemas.shared import (
    CreateTableRequest, FieldListResponse, FieldResponse, TableResponse,
)
from gridbase.db.metadata import SqlSchemaService

router = APIRouter(prefix="/tables", tags=["tables"])

logger = logging.getLogger(__name__)


@router.post("", response_model=TableResponse, status_code=201)
def create_table(
    request: CreateTableRequest,
    schema_service: SqlSchemaService = Depends(get_schema_service),
):
    """
    Create an empty table.

    Returns:
    - The new table id and name
    """
    try:
        table = schema_service.create_table(request.name)
    except Exception as e:
        logger.exception("Failed to create table '%s': %s", request.name, e)
        raise HTTPException(status_code=500, detail=str(e))
    return TableResponse(id=table["id"], name=table["name"])


@router.get("/{table_id}/fields", response_model=FieldListResponse)
async def list_fields(
    table_id: str,
    schema_service: SqlSchemaService = Depends(get_schema_service),
):
    """List the fields of a table in display order."""
    if not await schema_service.table_exists(table_id):
        raise HTTPException(status_code=404, detail=f"Table '{table_id}' not found")

    fields = await schema_service.list_fields(table_id)
    return FieldListResponse(
        table_id=table_id,
        fields=[
            FieldResponse(id=f.id, name=f.name, label=f.label, kind=f.kind, options=f.options)
            for f in fields
        ],
    )
