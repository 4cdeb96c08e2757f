"""
Shared dependencies for the API routers.
"""
from fastapi import HTTPException

from gridbase.db.metadata import SqlSchemaService
from gridbase.db.models import SqlRowStore


def get_schema_service() -> SqlSchemaService:
    return SqlSchemaService()


def get_row_store() -> SqlRowStore:
    return SqlRowStore()


def ensure_csv_upload(filename: str) -> None:
    """
    Reject uploads that are not CSV files.

    Raises:
    - HTTPException: If the file type is not supported
    """
    if not (filename or "").lower().endswith('.csv'):
        raise HTTPException(status_code=400, detail="Unsupported file type; only .csv files can be imported")
