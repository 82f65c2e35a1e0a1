from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from import_hub.importer import PipelineContext, init_importer
from import_hub.importer.files import build_file_locator
from import_hub.importer.mapping import FieldMapping
from import_hub.importer.utils import resolve_upload_directory
from import_hub.importer.workflow_client import WorkflowClient, WorkflowSettings
from import_hub.models import db
from import_hub.models.importer.schema import (
    ImportSession,
    ImportSessionStatus,
    ImportType,
    StagingRecord,
    StagingRecordStatus,
)

from importer_helpers import CUSTOMER_CSV, CUSTOMER_MAPPING_PAYLOADS, TENANT_HEADERS, FakeHttpSession


@pytest.fixture
def workflow_http():
    return FakeHttpSession()


@pytest.fixture
def sleep_calls():
    return []


@pytest.fixture
def workflow_settings(app):
    return dataclasses.replace(WorkflowSettings.from_config(app.config), retry_base_delay=0.5)


@pytest.fixture
def workflow_client(workflow_settings, workflow_http, sleep_calls):
    return WorkflowClient(workflow_settings, http_session=workflow_http, sleep_fn=sleep_calls.append)


@pytest.fixture
def pipeline_context(app, workflow_client):
    upload_dir = resolve_upload_directory(app)
    context = PipelineContext(
        workflow_client=workflow_client,
        file_locator=build_file_locator("filesystem", upload_dir=upload_dir),
        upload_dir=upload_dir,
        batch_size=50,
        staging_flush_size=2,
    )
    init_importer(app, context=context)
    yield context


@pytest.fixture
def tenant_headers():
    return dict(TENANT_HEADERS)


@pytest.fixture
def customer_mappings():
    return [FieldMapping.from_payload(payload) for payload in CUSTOMER_MAPPING_PAYLOADS]


@pytest.fixture
def write_csv(tmp_path):
    def _write(content: str = CUSTOMER_CSV, name: str = "customers.csv") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def session_factory(customer_mappings):
    """Create committed sessions with ``rows`` pending staging records."""

    def _factory(
        *,
        rows: int = 0,
        status: ImportSessionStatus = ImportSessionStatus.PENDING,
        tenant_id: int = 1,
        is_live: bool = False,
        import_type: ImportType = ImportType.CUSTOMER_DATA,
        session_name: str = "Customer import",
        source_file: str | None = None,
        execution_id: str | None = None,
    ) -> ImportSession:
        import_session = ImportSession(
            tenant_id=tenant_id,
            is_live=is_live,
            session_name=session_name,
            import_type=import_type,
            status=status,
            mapping_json=[mapping.as_dict() for mapping in customer_mappings],
            processing_metadata={"source_file": source_file},
            total_records=rows,
            workflow_execution_id=execution_id,
        )
        if status is ImportSessionStatus.PROCESSING:
            import_session.processing_started_at = datetime.now(timezone.utc) - timedelta(seconds=30)
            import_session.batch_size = 50
        db.session.add(import_session)
        db.session.flush()
        for row_number in range(1, rows + 1):
            db.session.add(
                StagingRecord(
                    session_id=import_session.id,
                    row_number=row_number,
                    raw_data={"Full Name": f"Customer {row_number}", "Email": f"c{row_number}@example.com"},
                    mapped_data={"name": f"Customer {row_number}", "email": f"c{row_number}@example.com"},
                    processing_status=StagingRecordStatus.PENDING,
                    error_messages=[],
                    warnings=[],
                )
            )
        db.session.commit()
        return import_session

    return _factory
