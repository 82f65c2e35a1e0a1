from pathlib import Path

import pytest

from import_hub.models import db
from import_hub.models.importer.schema import FileUpload, ImportSession, ImportSessionStatus

from importer_helpers import CUSTOMER_MAPPING_PAYLOADS, upload_file


@pytest.fixture(autouse=True)
def _pipeline(pipeline_context):
    return pipeline_context


def test_upload_requires_tenant_headers(client):
    response = upload_file(client, {})

    assert response.status_code == 401
    assert response.get_json() == {"error": "Authentication required."}


def test_upload_stores_file_under_pending_folder(client, tenant_headers, pipeline_context):
    response = upload_file(client, tenant_headers)

    assert response.status_code == 201
    body = response.get_json()
    assert body["headers"] == ["Full Name", "PAN", "Email", "Mobile"]
    assert body["total_rows"] == 3
    assert body["import_type"] == "CustomerData"

    upload = db.session.get(FileUpload, body["id"])
    stored = Path(upload.file_path)
    assert stored.exists()
    assert stored.parent == pipeline_context.upload_dir / "customers" / "pending"
    assert stored.name.startswith(f"{upload.id}_")
    assert stored.suffix == ".csv"
    assert upload.tenant_id == 1
    assert upload.uploaded_by_user_id == 7
    assert upload.file_size == stored.stat().st_size


def test_upload_rejects_unsupported_extension(client, tenant_headers):
    response = upload_file(client, tenant_headers, filename="customers.txt")

    assert response.status_code == 400
    assert response.get_json()["error"].startswith("Unsupported file type.")


def test_upload_rejects_unknown_import_type(client, tenant_headers):
    response = upload_file(client, tenant_headers, import_type="Invoices")

    assert response.status_code == 400
    assert response.get_json()["error"] == "Unsupported import type 'Invoices'."


def test_upload_rejects_oversized_file(monkeypatch, app, client, tenant_headers):
    monkeypatch.setitem(app.config, "IMPORTER_MAX_UPLOAD_MB", 1)
    content = b"Full Name\n" + b"x" * (1024 * 1024)

    response = upload_file(client, tenant_headers, content=content)

    assert response.status_code == 413
    assert db.session.query(FileUpload).count() == 0


def test_upload_of_unreadable_workbook_is_cleaned_up(client, tenant_headers, pipeline_context):
    response = upload_file(client, tenant_headers, content=b"not a workbook", filename="customers.xlsx")

    assert response.status_code == 400
    assert db.session.query(FileUpload).count() == 0
    assert list((pipeline_context.upload_dir / "customers" / "pending").iterdir()) == []


def test_headers_preview(client, tenant_headers):
    file_id = upload_file(client, tenant_headers).get_json()["id"]

    response = client.get(f"/importer/uploads/{file_id}/headers", headers=tenant_headers)

    assert response.status_code == 200
    body = response.get_json()
    assert body["headers"] == ["Full Name", "PAN", "Email", "Mobile"]
    assert body["preview_rows"][0]["Full Name"] == "Asha Rao"
    assert body["original_filename"] == "customers.csv"
    assert body["required_fields"] == ["name"]
    assert "email" in body["supported_fields"]


def test_headers_are_tenant_scoped(client, tenant_headers):
    file_id = upload_file(client, tenant_headers).get_json()["id"]

    response = client.get(
        f"/importer/uploads/{file_id}/headers", headers={"X-Tenant-ID": "2", "X-User-ID": "9"}
    )

    assert response.status_code == 404
    assert response.get_json()["error"] == f"Uploaded file {file_id} not found."


def test_headers_fall_back_to_pending_folder(client, tenant_headers, pipeline_context):
    pending = pipeline_context.upload_dir / "customers" / "pending"
    pending.mkdir(parents=True, exist_ok=True)
    (pending / "55_dropped.csv").write_text("Full Name,Email\nAsha,a@example.com\n", encoding="utf-8")

    response = client.get("/importer/uploads/55/headers", headers=tenant_headers)

    assert response.status_code == 200
    assert response.get_json()["headers"] == ["Full Name", "Email"]
    assert response.get_json()["original_filename"] == "dropped.csv"


def test_delete_upload_refuses_while_session_active(client, tenant_headers):
    file_id = upload_file(client, tenant_headers).get_json()["id"]
    created = client.post(
        "/importer/sessions",
        json={"fileId": file_id, "mappings": CUSTOMER_MAPPING_PAYLOADS},
        headers=tenant_headers,
    )
    assert created.status_code == 201
    stored = Path(db.session.get(FileUpload, file_id).file_path)

    blocked = client.delete(f"/importer/uploads/{file_id}", headers=tenant_headers)
    assert blocked.status_code == 409

    import_session = db.session.get(ImportSession, created.get_json()["id"])
    import_session.status = ImportSessionStatus.CANCELLED
    db.session.commit()

    deleted = client.delete(f"/importer/uploads/{file_id}", headers=tenant_headers)
    assert deleted.status_code == 200
    assert deleted.get_json() == {"deleted": True, "id": file_id}
    assert not stored.exists()
    db.session.expire_all()
    assert db.session.get(ImportSession, import_session.id).file_upload_id is None


def test_delete_unknown_upload(client, tenant_headers):
    response = client.delete("/importer/uploads/404", headers=tenant_headers)

    assert response.status_code == 404


def test_validate_mappings_against_file_headers(client, tenant_headers):
    file_id = upload_file(client, tenant_headers).get_json()["id"]

    valid = client.post(
        "/importer/mappings/validate",
        json={"fileId": file_id, "mappings": CUSTOMER_MAPPING_PAYLOADS},
        headers=tenant_headers,
    )
    invalid = client.post(
        "/importer/mappings/validate",
        json={
            "fileId": file_id,
            "mappings": [{"sourceField": "Phone", "targetField": "mobile"}, {"sourceField": "Email", "targetField": "email"}],
        },
        headers=tenant_headers,
    )

    assert valid.get_json() == {
        "valid": True,
        "errors": [],
        "import_type": "CustomerData",
        "required_fields": ["name"],
    }
    errors = invalid.get_json()["errors"]
    assert invalid.get_json()["valid"] is False
    assert "Source field 'Phone' not found in file headers." in errors
    assert "Required field 'name' is not mapped." in errors


def test_validate_mappings_without_file_needs_import_type(client, tenant_headers):
    response = client.post(
        "/importer/mappings/validate",
        json={"mappings": [{"sourceField": "Name", "targetField": "name"}]},
        headers=tenant_headers,
    )

    assert response.get_json()["errors"] == ["importType is required."]


def test_validate_mappings_rejects_mismatched_import_type(client, tenant_headers):
    file_id = upload_file(client, tenant_headers).get_json()["id"]

    response = client.post(
        "/importer/mappings/validate",
        json={"fileId": file_id, "importType": "SchemeData", "mappings": CUSTOMER_MAPPING_PAYLOADS},
        headers=tenant_headers,
    )

    errors = response.get_json()["errors"]
    assert f"Uploaded file {file_id} was uploaded as CustomerData, not SchemeData." in errors


def test_disabled_importer_returns_not_found(monkeypatch, app, client, tenant_headers):
    monkeypatch.setitem(app.config, "IMPORTER_ENABLED", False)

    response = client.get("/importer/health", headers=tenant_headers)

    assert response.status_code == 404
    assert response.get_json() == {"error": "Importer is disabled."}
