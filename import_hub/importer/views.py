"""
Importer blueprint endpoints: uploads, sessions, dispatch, progress, and the
workflow engine callback.
"""

from __future__ import annotations

import os
import time
from http import HTTPStatus
from pathlib import Path
from uuid import uuid4

from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask import Blueprint, Response, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import select
from sqlalchemy.exc import NoResultFound

from config.monitoring import ImporterMonitoring
from import_hub.middleware.tenant_context import get_import_scope
from import_hub.models import db
from import_hub.models.importer.schema import (
    FileUpload,
    ImportSession,
    ImportSessionStatus,
    ImportType,
    StagingRecordStatus,
)
from import_hub.utils.importer import is_importer_enabled

from .celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from .context import PipelineContext, get_pipeline_context
from .contracts import get_required_fields, get_supported_fields
from .errors import (
    CallbackValidationError,
    DispatchError,
    FileLookupError,
    FileParseError,
    ImporterError,
    InvalidTransitionError,
    StagingError,
)
from .mapping import FieldMapping, parse_mappings, validate_mapping_set
from .metrics import record_callback
from .parser import parse_file
from .pipeline import (
    CallbackMessage,
    ImportScope,
    SessionFilters,
    serialize_session,
    serialize_staging_record,
)
from .utils import allowed_file, cleanup_upload, persist_upload

importer_blueprint = Blueprint("importer", __name__, url_prefix="/importer")

ACTIVE_SESSION_STATUSES = (
    ImportSessionStatus.PENDING,
    ImportSessionStatus.STAGED,
    ImportSessionStatus.PROCESSING,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _json_error(message: str, status: HTTPStatus, *, details=None, **extra):
    payload = {"error": message}
    if details:
        payload["details"] = list(details)
    payload.update(extra)
    return jsonify(payload), status


def _importer_error_response(exc: ImporterError, **extra):
    if isinstance(exc, InvalidTransitionError):
        status = HTTPStatus.CONFLICT
    elif isinstance(exc, FileLookupError):
        status = HTTPStatus.NOT_FOUND
    elif isinstance(exc, DispatchError):
        status = HTTPStatus.BAD_GATEWAY
    elif isinstance(exc, StagingError):
        status = HTTPStatus.UNPROCESSABLE_ENTITY
    else:
        status = HTTPStatus.BAD_REQUEST
    return _json_error(exc.message, status, details=exc.details, **extra)


def _require_scope():
    """Return ``(scope, None)`` for authenticated callers, else ``(None, error_response)``."""
    if not current_user.is_authenticated:
        return None, _json_error("Authentication required.", HTTPStatus.UNAUTHORIZED)
    scope = get_import_scope()
    if scope is None:
        return None, _json_error("Tenant context missing.", HTTPStatus.UNAUTHORIZED)
    return scope, None


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _split_csv(value: str | None):
    if not value:
        return ()
    return tuple(token.strip() for token in value.split(",") if token.strip())


def _current_user_id():
    return getattr(current_user, "user_id", None)


def _context() -> PipelineContext:
    return get_pipeline_context(current_app)


def _session_not_found(session_id: int):
    return _json_error(f"Import session {session_id} not found.", HTTPStatus.NOT_FOUND)


def _session_mappings(import_session: ImportSession) -> list[FieldMapping]:
    mappings, errors = parse_mappings(import_session.mapping_json or [])
    if errors:
        raise ImporterError("Stored field mappings are invalid.", details=errors)
    return mappings


def _resolve_session_file(context: PipelineContext, import_session: ImportSession, scope: ImportScope) -> Path:
    source_file = (import_session.processing_metadata or {}).get("source_file")
    if source_file and Path(source_file).exists():
        return Path(source_file)
    if import_session.file_upload_id is None:
        raise FileLookupError(f"Source file for import session {import_session.id} is not available.")
    located = context.file_locator.locate(import_session.file_upload_id, scope, import_session.import_type)
    return located.path


def _refreshed(import_session: ImportSession) -> ImportSession:
    db.session.expire(import_session)
    return import_session


@importer_blueprint.before_request
def _ensure_importer_enabled():
    if not is_importer_enabled(current_app):
        return _json_error("Importer is disabled.", HTTPStatus.NOT_FOUND)
    return None


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@importer_blueprint.get("/health")
def importer_healthcheck():
    """
    Lightweight health endpoint proving the importer blueprint mounted correctly.
    """
    importer_state = current_app.extensions.get("importer", {})
    settings = _context().workflow_client.settings
    return (
        jsonify(
            {
                "status": "ok",
                "enabled": importer_state.get("enabled", False),
                "worker_enabled": importer_state.get("worker_enabled", False),
                "workflow": {
                    "base_url": settings.base_url,
                    "webhook_url": settings.webhook_url,
                    "callback_url": settings.resolved_callback_url,
                    "api_key_configured": bool(settings.api_key),
                },
            }
        ),
        HTTPStatus.OK,
    )


@importer_blueprint.get("/worker_health")
def importer_worker_health():
    """
    Validate importer worker availability via the heartbeat task.
    """
    importer_state = current_app.extensions.get("importer", {})
    worker_enabled = importer_state.get("worker_enabled", False)
    timeout_seconds = float(request.args.get("timeout", 5))

    payload = {
        "importer_enabled": importer_state.get("enabled", False),
        "worker_enabled": worker_enabled,
        "queue": DEFAULT_QUEUE_NAME,
        "timeout_seconds": timeout_seconds,
    }
    if not worker_enabled:
        payload["status"] = "disabled"
        payload["message"] = "Worker flag disabled; dispatch runs inline. Set IMPORTER_WORKER_ENABLED=true."
        return jsonify(payload), HTTPStatus.OK

    celery_app = get_celery_app(current_app)
    task = celery_app.tasks.get("importer.healthcheck") if celery_app is not None else None
    if task is None:
        payload["status"] = "error"
        payload["error"] = "heartbeat_task_missing"
        return jsonify(payload), HTTPStatus.INTERNAL_SERVER_ERROR

    result = task.apply_async()
    try:
        payload["heartbeat"] = result.get(timeout=timeout_seconds)
        payload["status"] = "ok"
        return jsonify(payload), HTTPStatus.OK
    except CeleryTimeoutError:
        payload["status"] = "timeout"
        return jsonify(payload), HTTPStatus.GATEWAY_TIMEOUT
    except Exception as exc:  # pragma: no cover - surfaced to the caller
        current_app.logger.exception("Importer worker health check failed.")
        payload["status"] = "error"
        payload["error"] = str(exc)
        return jsonify(payload), HTTPStatus.INTERNAL_SERVER_ERROR


@importer_blueprint.get("/workflow/health")
def importer_workflow_health():
    client = _context().workflow_client
    check = client.test_connection()
    errors, warnings = client.validate_configuration()
    if not check.success:
        errors.append(f"Workflow connectivity test failed: {check.message}")
    healthy = not errors
    payload = {
        "status": "ok" if healthy else "error",
        "connection": check.as_dict(),
        "configuration": {"is_valid": healthy, "errors": errors, "warnings": warnings},
    }
    return jsonify(payload), HTTPStatus.OK if healthy else HTTPStatus.SERVICE_UNAVAILABLE


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


def _stream_size(file_storage) -> int:
    stream = file_storage.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


@importer_blueprint.post("/uploads")
def importer_upload_file():
    scope, error = _require_scope()
    if error:
        return error

    file_storage = request.files.get("file")
    if file_storage is None or not file_storage.filename:
        return _json_error("A file is required.", HTTPStatus.BAD_REQUEST)

    allowed_extensions = current_app.config.get("IMPORTER_ALLOWED_EXTENSIONS", ("csv", "xlsx"))
    if not allowed_file(file_storage.filename, allowed_extensions):
        return _json_error(
            f"Unsupported file type. Allowed: {', '.join(allowed_extensions)}.", HTTPStatus.BAD_REQUEST
        )

    try:
        import_type = ImportType.coerce(request.form.get("importType") or request.form.get("import_type"))
    except ValueError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)

    max_bytes = int(current_app.config.get("IMPORTER_MAX_UPLOAD_MB", 10)) * 1024 * 1024
    if _stream_size(file_storage) > max_bytes:
        return _json_error(
            f"File exceeds the {current_app.config.get('IMPORTER_MAX_UPLOAD_MB', 10)} MB limit.",
            HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
        )

    upload = FileUpload(
        tenant_id=scope.tenant_id,
        is_live=scope.is_live,
        import_type=import_type,
        original_filename=file_storage.filename,
        stored_filename=f"pending-{uuid4().hex}",
        file_path="",
        mime_type=file_storage.mimetype,
        uploaded_by_user_id=_current_user_id(),
    )
    db.session.add(upload)
    db.session.flush()

    stored = persist_upload(file_storage, current_app, import_type=import_type, prefix=str(upload.id))
    try:
        parsed = parse_file(stored.path, max_rows=int(current_app.config.get("IMPORTER_PREVIEW_ROWS", 10)))
    except FileParseError as exc:
        db.session.rollback()
        cleanup_upload(stored.path)
        return _json_error(exc.message, HTTPStatus.BAD_REQUEST)

    upload.stored_filename = stored.stored_filename
    upload.file_path = str(stored.path)
    upload.file_size = stored.size
    db.session.commit()

    current_app.logger.info(
        "Import file uploaded",
        extra={
            "importer_file_id": upload.id,
            "importer_tenant_id": scope.tenant_id,
            "importer_import_type": import_type.value,
            "importer_file_size": stored.size,
        },
    )
    return (
        jsonify(
            {
                "id": upload.id,
                "original_filename": upload.original_filename,
                "stored_filename": upload.stored_filename,
                "import_type": import_type.value,
                "file_size": upload.file_size,
                "headers": parsed.headers,
                "total_rows": parsed.total_rows,
            }
        ),
        HTTPStatus.CREATED,
    )


@importer_blueprint.get("/uploads/<int:file_id>/headers")
def importer_upload_headers(file_id: int):
    scope, error = _require_scope()
    if error:
        return error

    try:
        located = _context().file_locator.locate(file_id, scope)
        parsed = parse_file(located.path, max_rows=int(current_app.config.get("IMPORTER_PREVIEW_ROWS", 10)))
    except ImporterError as exc:
        return _importer_error_response(exc)

    import_type = located.import_type
    return (
        jsonify(
            {
                "file_id": file_id,
                "original_filename": located.original_filename,
                "import_type": import_type.value if import_type else None,
                "headers": parsed.headers,
                "preview_rows": parsed.rows,
                "total_rows": parsed.total_rows,
                "required_fields": list(get_required_fields(import_type)) if import_type else [],
                "supported_fields": list(get_supported_fields(import_type)) if import_type else [],
            }
        ),
        HTTPStatus.OK,
    )


@importer_blueprint.delete("/uploads/<int:file_id>")
def importer_delete_upload(file_id: int):
    scope, error = _require_scope()
    if error:
        return error

    upload = db.session.execute(
        select(FileUpload).where(
            FileUpload.id == file_id,
            FileUpload.tenant_id == scope.tenant_id,
            FileUpload.is_live == scope.is_live,
        )
    ).scalar_one_or_none()
    if upload is None:
        return _json_error(f"Uploaded file {file_id} not found.", HTTPStatus.NOT_FOUND)

    in_use = db.session.execute(
        select(ImportSession.id).where(
            ImportSession.file_upload_id == upload.id,
            ImportSession.status.in_(ACTIVE_SESSION_STATUSES),
        )
    ).first()
    if in_use is not None:
        return _json_error(
            f"Uploaded file {file_id} is used by active import session {in_use[0]}.", HTTPStatus.CONFLICT
        )

    file_path = Path(upload.file_path) if upload.file_path else None
    db.session.delete(upload)
    db.session.commit()
    if file_path is not None:
        cleanup_upload(file_path)
    current_app.logger.info("Import file deleted", extra={"importer_file_id": file_id})
    return jsonify({"deleted": True, "id": file_id}), HTTPStatus.OK


# ---------------------------------------------------------------------------
# Mappings and sessions
# ---------------------------------------------------------------------------


def _mapping_context(payload: dict, scope: ImportScope):
    """
    Resolve ``(import_type, mappings, headers, located_file, errors)`` from a
    request body shared by mapping validation, session creation and /process.
    """
    context = _context()
    mappings, errors = parse_mappings(payload.get("mappings"))
    located = None
    headers = None
    file_id = payload.get("fileId", payload.get("file_id"))
    raw_type = payload.get("importType", payload.get("import_type"))
    import_type = None
    if raw_type:
        try:
            import_type = ImportType.coerce(raw_type)
        except ValueError as exc:
            errors.append(str(exc))

    if file_id is not None:
        try:
            file_id = int(file_id)
        except (TypeError, ValueError):
            raise FileLookupError(f"Uploaded file {file_id} not found.") from None
        located = context.file_locator.locate(file_id, scope, import_type)
        headers = parse_file(located.path, max_rows=0).headers
        if import_type is None:
            import_type = located.import_type
        elif located.import_type is not None and located.import_type is not import_type:
            errors.append(
                f"Uploaded file {file_id} was uploaded as {located.import_type.value}, not {import_type.value}."
            )

    if import_type is None and not any("import type" in message for message in errors):
        errors.append("importType is required.")
    if import_type is not None:
        errors.extend(validate_mapping_set(mappings, import_type, headers))
    return import_type, mappings, located, errors


@importer_blueprint.post("/mappings/validate")
def importer_validate_mappings():
    scope, error = _require_scope()
    if error:
        return error
    try:
        import_type, _mappings, _located, errors = _mapping_context(_json_body(), scope)
    except ImporterError as exc:
        return _importer_error_response(exc)
    return (
        jsonify(
            {
                "valid": not errors,
                "errors": errors,
                "import_type": import_type.value if import_type else None,
                "required_fields": list(get_required_fields(import_type)) if import_type else [],
            }
        ),
        HTTPStatus.OK,
    )


def _create_session_from_payload(payload: dict, scope: ImportScope) -> ImportSession:
    import_type, mappings, located, errors = _mapping_context(payload, scope)
    if errors:
        raise ImporterError("Field mapping validation failed.", details=errors)
    if located is None:
        raise ImporterError("fileId is required.")

    file_upload = db.session.get(FileUpload, located.file_upload_id) if located.file_upload_id else None
    session_name = str(payload.get("sessionName") or payload.get("session_name") or located.original_filename)
    import_session = _context().session_service().create_session(
        scope=scope,
        session_name=session_name,
        import_type=import_type,
        mappings=mappings,
        file_upload=file_upload,
        created_by_user_id=_current_user_id(),
        source_file=str(located.path),
    )
    db.session.commit()
    return import_session


@importer_blueprint.post("/sessions")
def importer_create_session():
    scope, error = _require_scope()
    if error:
        return error
    try:
        import_session = _create_session_from_payload(_json_body(), scope)
    except ImporterError as exc:
        db.session.rollback()
        return _importer_error_response(exc)
    return jsonify(serialize_session(import_session)), HTTPStatus.CREATED


@importer_blueprint.get("/sessions")
def importer_sessions_list():
    scope, error = _require_scope()
    if error:
        return error

    page_sizes = current_app.config.get("IMPORTER_SESSIONS_PAGE_SIZES", (20, 50, 100))
    try:
        filters = SessionFilters.coerce(
            page=request.args.get("page"),
            page_size=request.args.get("page_size") or request.args.get("per_page"),
            statuses=_split_csv(request.args.get("status")),
            import_types=_split_csv(request.args.get("import_type")),
            max_page_size=max(page_sizes),
            default_page_size=current_app.config.get("IMPORTER_SESSIONS_PAGE_SIZE_DEFAULT", 20),
        )
    except ValueError as exc:
        ImporterMonitoring.record_sessions_list(duration_seconds=0.0, status="invalid_request")
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)

    start_time = time.perf_counter()
    result = _context().reporter().list_sessions(scope, filters)
    ImporterMonitoring.record_sessions_list(duration_seconds=time.perf_counter() - start_time, status="success")
    return (
        jsonify(
            {
                "sessions": [serialize_session(item) for item in result.items],
                "total": result.total,
                "page": result.page,
                "page_size": result.page_size,
                "total_pages": result.total_pages,
                "filters": {
                    "statuses": [status.value for status in filters.statuses],
                    "import_types": [import_type.value for import_type in filters.import_types],
                },
            }
        ),
        HTTPStatus.OK,
    )


@importer_blueprint.post("/sessions/<int:session_id>/stage")
def importer_stage_session(session_id: int):
    scope, error = _require_scope()
    if error:
        return error

    context = _context()
    try:
        import_session = context.session_service().get_session(session_id, scope)
        file_path = _resolve_session_file(context, import_session, scope)
        summary = context.populator().populate(import_session, file_path, _session_mappings(import_session))
    except NoResultFound:
        return _session_not_found(session_id)
    except ImporterError as exc:
        return _importer_error_response(exc, session_id=session_id)
    return jsonify({"session": serialize_session(import_session), "staging": summary.as_dict()}), HTTPStatus.OK


@importer_blueprint.post("/sessions/<int:session_id>/dispatch")
def importer_dispatch_session(session_id: int):
    scope, error = _require_scope()
    if error:
        return error

    context = _context()
    try:
        import_session = context.session_service().get_session(session_id, scope)
        if context.worker_enabled and import_session.status is not ImportSessionStatus.STAGED:
            raise InvalidTransitionError(
                session_id, import_session.status.value, ImportSessionStatus.PROCESSING.value
            )
        outcome = context.submit_dispatch(import_session, scope=scope)
    except NoResultFound:
        return _session_not_found(session_id)
    except ImporterError as exc:
        return _importer_error_response(exc, session_id=session_id)

    status = HTTPStatus.ACCEPTED if outcome["queued"] else HTTPStatus.OK
    return jsonify({"session": serialize_session(_refreshed(import_session)), **outcome}), status


@importer_blueprint.post("/process")
def importer_process():
    """Create, stage and dispatch a session in one call."""
    scope, error = _require_scope()
    if error:
        return error

    context = _context()
    try:
        import_session = _create_session_from_payload(_json_body(), scope)
    except ImporterError as exc:
        db.session.rollback()
        return _importer_error_response(exc)

    session_id = import_session.id
    try:
        file_path = Path(import_session.processing_metadata["source_file"])
        summary = context.populator().populate(import_session, file_path, _session_mappings(import_session))
        outcome = context.submit_dispatch(import_session, scope=scope)
    except ImporterError as exc:
        return _importer_error_response(exc, session_id=session_id)

    status = HTTPStatus.ACCEPTED if outcome["queued"] else HTTPStatus.OK
    return (
        jsonify(
            {
                "session": serialize_session(_refreshed(import_session)),
                "staging": summary.as_dict(),
                **outcome,
            }
        ),
        status,
    )


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


@importer_blueprint.get("/sessions/<int:session_id>/status")
def importer_session_status(session_id: int):
    scope, error = _require_scope()
    if error:
        return error

    start_time = time.perf_counter()
    context = _context()
    try:
        import_session = context.session_service().get_session(session_id, scope)
    except NoResultFound:
        ImporterMonitoring.record_session_status(
            duration_seconds=time.perf_counter() - start_time, status="not_found"
        )
        return _session_not_found(session_id)

    payload = context.reporter().status(import_session).as_dict()
    if request.args.get("include_workflow", "").lower() in {"1", "true", "yes"} and (
        import_session.workflow_execution_id
    ):
        payload["workflow"] = context.workflow_client.get_execution_status(import_session.workflow_execution_id)
    ImporterMonitoring.record_session_status(duration_seconds=time.perf_counter() - start_time, status="success")
    return jsonify(payload), HTTPStatus.OK


@importer_blueprint.get("/sessions/<int:session_id>/records")
def importer_session_records(session_id: int):
    scope, error = _require_scope()
    if error:
        return error

    context = _context()
    try:
        import_session = context.session_service().get_session(session_id, scope)
    except NoResultFound:
        return _session_not_found(session_id)

    statuses = _split_csv(request.args.get("status"))
    try:
        status_filter = [StagingRecordStatus(value.lower()) for value in statuses]
    except ValueError:
        return _json_error(f"Unsupported status filter '{request.args.get('status')}'.", HTTPStatus.BAD_REQUEST)

    filters = SessionFilters.coerce(
        page=request.args.get("page"),
        page_size=request.args.get("page_size"),
        default_page_size=50,
        max_page_size=500,
    )
    result = context.reporter().records(
        import_session, page=filters.page, page_size=filters.page_size, status_filter=status_filter
    )
    return (
        jsonify(
            {
                "session_id": session_id,
                "records": [serialize_staging_record(item) for item in result.items],
                "total": result.total,
                "page": result.page,
                "page_size": result.page_size,
                "total_pages": result.total_pages,
                "status_counts": result.status_counts,
            }
        ),
        HTTPStatus.OK,
    )


@importer_blueprint.get("/sessions/<int:session_id>/export-errors")
def importer_export_errors(session_id: int):
    scope, error = _require_scope()
    if error:
        return error

    context = _context()
    try:
        import_session = context.session_service().get_session(session_id, scope)
    except NoResultFound:
        ImporterMonitoring.record_errors_export(status="not_found", row_count=0)
        return _session_not_found(session_id)

    csv_text, row_count = context.reporter().export_errors_csv(import_session)
    if row_count == 0:
        ImporterMonitoring.record_errors_export(status="empty", row_count=0)
        return _json_error("No failed records to export.", HTTPStatus.NOT_FOUND)

    ImporterMonitoring.record_errors_export(status="success", row_count=row_count)
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename=import_errors_{session_id}.csv"},
    )


# ---------------------------------------------------------------------------
# Operator actions
# ---------------------------------------------------------------------------


@importer_blueprint.post("/sessions/<int:session_id>/cancel")
def importer_cancel_session(session_id: int):
    scope, error = _require_scope()
    if error:
        return error

    context = _context()
    reason = _json_body().get("reason")
    try:
        import_session = context.session_service().get_session(session_id, scope)
        stopped = context.dispatcher().cancel(import_session, reason=reason, scope=scope)
    except NoResultFound:
        return _session_not_found(session_id)
    except ImporterError as exc:
        db.session.rollback()
        return _importer_error_response(exc, session_id=session_id)

    return (
        jsonify({"session": serialize_session(import_session), "execution_stopped": stopped}),
        HTTPStatus.OK,
    )


@importer_blueprint.post("/sessions/<int:session_id>/reprocess")
def importer_reprocess_session(session_id: int):
    scope, error = _require_scope()
    if error:
        return error

    context = _context()
    try:
        reset_ids = context.reconciler().reset_failed_records(session_id, scope)
        import_session = context.session_service().get_session(session_id, scope)
        outcome = context.submit_dispatch(import_session, reprocess_row_ids=reset_ids, scope=scope)
    except NoResultFound:
        return _session_not_found(session_id)
    except ImporterError as exc:
        return _importer_error_response(exc, session_id=session_id)

    status = HTTPStatus.ACCEPTED if outcome["queued"] else HTTPStatus.OK
    return (
        jsonify(
            {
                "session": serialize_session(_refreshed(import_session)),
                "reset_record_ids": reset_ids,
                **outcome,
            }
        ),
        status,
    )


# ---------------------------------------------------------------------------
# Workflow callback
# ---------------------------------------------------------------------------


@importer_blueprint.post("/callback")
def importer_workflow_callback():
    """Per-batch results from the workflow engine; unauthenticated by contract."""
    try:
        message = CallbackMessage.from_payload(request.get_json(silent=True))
    except CallbackValidationError as exc:
        record_callback(outcome="invalid")
        return _json_error(exc.message, HTTPStatus.BAD_REQUEST)

    try:
        outcome = _context().reconciler().reconcile(message)
    except NoResultFound:
        return _session_not_found(message.session_id)
    except Exception:
        return _json_error("Callback processing failed.", HTTPStatus.INTERNAL_SERVER_ERROR)
    return jsonify({"success": True, **outcome.as_dict()}), HTTPStatus.OK
