import json

import pytest
from fastapi.testclient import TestClient

from gridbase import __version__
from gridbase.api.dependencies import get_row_store, get_schema_service
from gridbase.domain.fields import FieldKind, SchemaField
from gridbase.main import app

CSV_BYTES = b"Code,Status,Amount\nA-1,Open,10\nA-2,Open,20\nA-3,Closed,30\n"


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sql_client(client, sql_schema_service, sql_row_store):
    app.dependency_overrides[get_schema_service] = lambda: sql_schema_service
    app.dependency_overrides[get_row_store] = lambda: sql_row_store
    return client


@pytest.fixture
def fake_client(client, schema_service, row_store):
    app.dependency_overrides[get_schema_service] = lambda: schema_service
    app.dependency_overrides[get_row_store] = lambda: row_store
    return client


def _upload(client, table_id, content=CSV_BYTES, filename="data.csv", options=None):
    data = {"options_json": json.dumps(options)} if options is not None else {}
    return client.post(
        f"/tables/{table_id}/import",
        files={"file": (filename, content, "text/csv")},
        data=data,
    )


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"message": "Gridbase API", "version": __version__}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_table_and_list_fields(sql_client):
    response = sql_client.post("/tables", json={"name": "  Orders "})

    assert response.status_code == 201
    table = response.json()
    assert table["name"] == "Orders"

    fields = sql_client.get(f"/tables/{table['id']}/fields")
    assert fields.status_code == 200
    assert fields.json() == {"table_id": table["id"], "fields": []}


def test_create_table_requires_a_name(sql_client):
    response = sql_client.post("/tables", json={"name": "   "})

    assert response.status_code == 422


def test_fields_of_unknown_table_is_404(sql_client):
    assert sql_client.get("/tables/missing/fields").status_code == 404


def test_preview_reports_inferred_kinds_and_matches(fake_client, schema_service):
    schema_service.add_table("tbl-1", [SchemaField(name="code", kind=FieldKind.TEXT)])

    response = fake_client.post(
        "/tables/tbl-1/import/preview",
        files={"file": ("data.csv", CSV_BYTES, "text/csv")},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["total_rows"] == 3
    columns = {c["name"]: c for c in payload["columns"]}
    assert columns["Code"]["mapped_field"] == "code"
    assert columns["Status"]["inferred_kind"] == "single_select"
    assert columns["Amount"]["inferred_kind"] == "number"
    assert columns["Amount"]["samples"] == ["10", "20", "30"]
    assert schema_service.create_calls == []


def test_import_into_sql_table(sql_client, sql_schema_service):
    table = sql_schema_service.create_table("Orders")

    response = _upload(sql_client, table["id"], options={"field_types": {"Amount": "currency"}})

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["message"] == "Imported 3 of 3 rows"
    assert payload["primary_key_field"] == "code"
    kinds = {f.name: f.kind for f in sql_schema_service.get_fields(table["id"])}
    assert kinds["amount"] is FieldKind.CURRENCY


def test_reimport_skips_existing_records(sql_client, sql_schema_service):
    table = sql_schema_service.create_table("Orders")
    _upload(sql_client, table["id"])

    response = _upload(sql_client, table["id"], content=CSV_BYTES + b"A-4,Open,40\n")

    assert response.status_code == 200
    payload = response.json()
    assert payload["imported_rows"] == 1
    assert payload["skipped_rows"] == 3
    assert payload["skipped_details"][0]["reason"] == "duplicate of existing record"
    assert payload["skipped_details"][0]["row"] == {"Code": "A-1", "Status": "Open", "Amount": "10"}


def test_non_csv_upload_is_rejected(fake_client):
    response = _upload(fake_client, "tbl-1", filename="data.xlsx")

    assert response.status_code == 400


def test_invalid_options_json_is_rejected(fake_client):
    response = fake_client.post(
        "/tables/tbl-1/import",
        files={"file": ("data.csv", CSV_BYTES, "text/csv")},
        data={"options_json": "{not json"},
    )

    assert response.status_code == 400
    assert "options_json" in response.json()["detail"]


def test_unknown_field_kind_in_options_is_rejected(fake_client):
    response = _upload(fake_client, "tbl-1", options={"field_types": {"Amount": "money"}})

    assert response.status_code == 400


def test_empty_file_is_rejected(fake_client):
    response = _upload(fake_client, "tbl-1", content=b"")

    assert response.status_code == 400


def test_unknown_table_is_rejected(fake_client):
    response = _upload(fake_client, "missing")

    assert response.status_code == 400
    assert "not found" in response.json()["detail"]


def test_mapping_to_unknown_field_is_rejected(fake_client, schema_service):
    response = _upload(fake_client, "tbl-1", options={"column_mappings": {"Status": "state"}})

    assert response.status_code == 400
    assert "Available fields" in response.json()["detail"]
    assert schema_service.create_calls == []


def test_field_creation_failure_is_409(fake_client, schema_service):
    schema_service.failing_fields.add("amount")

    response = _upload(fake_client, "tbl-1")

    assert response.status_code == 409
    assert "amount" in response.json()["detail"]


def test_all_rows_skipped_returns_summary(fake_client, schema_service, row_store):
    schema_service.add_table("tbl-1", [SchemaField(name="code", kind=FieldKind.TEXT)])
    row_store.seed("tbl-1", [{"code": "a-1"}, {"code": "a-2"}, {"code": "a-3"}])

    response = _upload(fake_client, "tbl-1")

    assert response.status_code == 422
    payload = response.json()
    assert payload["summary"]["imported_rows"] == 0
    assert payload["summary"]["skipped_rows"] == 3


def test_batch_failure_returns_partial_progress(fake_client, row_store):
    row_store.failures[1] = ('null value in column "code" violates not-null constraint', "23502")

    response = _upload(fake_client, "tbl-1")

    assert response.status_code == 500
    payload = response.json()
    assert payload["category"] == "not_null"
    assert payload["imported_rows"] == 0
    assert payload["batch_number"] == 1
