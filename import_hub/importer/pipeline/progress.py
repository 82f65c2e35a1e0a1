"""
Read-only projections of import session state for polling clients.

Nothing in this module writes. Speed and ETA are derived from the persisted
counters and the wall clock on every call and are never stored.
"""

from __future__ import annotations

import csv
import io
import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from import_hub.models import db
from import_hub.models.importer.schema import (
    ImportSession,
    ImportSessionStatus,
    StagingRecord,
    StagingRecordStatus,
)

from .session_service import ImportScope, ImportSessionService, SessionFilters

ERROR_EXPORT_HEADER = ("Row Number", "Original Data", "Errors", "Warnings", "Processed At")
MESSAGE_SEPARATOR = "; "


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; they were written as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _isoformat(value: datetime | None) -> str | None:
    value = _as_utc(value)
    return value.isoformat() if value else None


def _total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total else 0


@dataclass(slots=True)
class StatusSnapshot:
    session_id: int
    session_name: str
    import_type: str
    status: ImportSessionStatus
    total_records: int
    processed_records: int
    successful_records: int
    failed_records: int
    duplicate_records: int
    skipped_records: int
    pending_records: int
    current_batch: int
    last_processed_row: int
    completion_percentage: float
    records_per_second: float | None
    eta_seconds: int | None
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    error_summary: str | None = None
    workflow_execution_id: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "session_name": self.session_name,
            "import_type": self.import_type,
            "status": self.status.value,
            "is_terminal": self.status.is_terminal,
            "totals": {
                "total": self.total_records,
                "processed": self.processed_records,
                "successful": self.successful_records,
                "failed": self.failed_records,
                "duplicate": self.duplicate_records,
                "skipped": self.skipped_records,
                "pending": self.pending_records,
            },
            "current_batch": self.current_batch,
            "last_processed_row": self.last_processed_row,
            "completion_percentage": self.completion_percentage,
            "records_per_second": self.records_per_second,
            "eta_seconds": self.eta_seconds,
            "processing_started_at": _isoformat(self.processing_started_at),
            "processing_completed_at": _isoformat(self.processing_completed_at),
            "error_summary": self.error_summary,
            "workflow_execution_id": self.workflow_execution_id,
        }


@dataclass(slots=True)
class RecordListResult:
    items: list[StagingRecord]
    total: int
    page: int
    page_size: int
    total_pages: int
    status_counts: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class SessionListResult:
    items: list[ImportSession]
    total: int
    page: int
    page_size: int
    total_pages: int


def serialize_session(import_session: ImportSession) -> dict[str, Any]:
    """Summary view of a session used by list and create responses."""

    return {
        "id": import_session.id,
        "session_name": import_session.session_name,
        "import_type": import_session.import_type.value,
        "status": import_session.status.value,
        "environment": "live" if import_session.is_live else "test",
        "file_upload_id": import_session.file_upload_id,
        "total_records": import_session.total_records,
        "processed_records": import_session.processed_records,
        "successful_records": import_session.successful_records,
        "failed_records": import_session.failed_records,
        "duplicate_records": import_session.duplicate_records,
        "skipped_records": import_session.skipped_records,
        "workflow_execution_id": import_session.workflow_execution_id,
        "error_summary": import_session.error_summary,
        "created_at": _isoformat(import_session.created_at),
        "processing_started_at": _isoformat(import_session.processing_started_at),
        "processing_completed_at": _isoformat(import_session.processing_completed_at),
    }


def serialize_staging_record(record: StagingRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "row_number": record.row_number,
        "processing_status": record.processing_status.value,
        "raw_data": record.raw_data,
        "mapped_data": record.mapped_data,
        "error_messages": list(record.error_messages or []),
        "warnings": list(record.warnings or []),
        "created_record_id": record.created_record_id,
        "created_record_type": record.created_record_type,
        "processed_at": _isoformat(record.processed_at),
    }


class ProgressReporter:
    """Build status snapshots, record pages and error exports."""

    def __init__(
        self,
        session: Session | None = None,
        *,
        session_service: ImportSessionService | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.session: Session = session or db.session
        self.sessions = session_service or ImportSessionService(self.session)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self, import_session: ImportSession) -> StatusSnapshot:
        total = import_session.total_records or 0
        processed = import_session.processed_records or 0
        pending = max(total - processed, 0)
        percentage = round(processed / total * 100, 2) if total else 0.0

        speed = self._records_per_second(import_session, processed)
        eta: int | None = None
        if import_session.status is ImportSessionStatus.PROCESSING and speed:
            eta = int(math.ceil(pending / speed))
        elif import_session.status.is_terminal:
            eta = 0

        return StatusSnapshot(
            session_id=import_session.id,
            session_name=import_session.session_name,
            import_type=import_session.import_type.value,
            status=import_session.status,
            total_records=total,
            processed_records=processed,
            successful_records=import_session.successful_records or 0,
            failed_records=import_session.failed_records or 0,
            duplicate_records=import_session.duplicate_records or 0,
            skipped_records=import_session.skipped_records or 0,
            pending_records=pending,
            current_batch=import_session.current_batch or 0,
            last_processed_row=import_session.last_processed_row or 0,
            completion_percentage=percentage,
            records_per_second=speed,
            eta_seconds=eta,
            processing_started_at=import_session.processing_started_at,
            processing_completed_at=import_session.processing_completed_at,
            error_summary=import_session.error_summary,
            workflow_execution_id=import_session.workflow_execution_id,
        )

    def _records_per_second(self, import_session: ImportSession, processed: int) -> float | None:
        started = _as_utc(import_session.processing_started_at)
        if started is None or processed <= 0:
            return None
        finished = _as_utc(import_session.processing_completed_at)
        end = finished if import_session.status.is_terminal and finished else self._clock()
        elapsed = (end - started).total_seconds()
        if elapsed <= 0:
            return None
        return round(processed / elapsed, 2)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def records(
        self,
        import_session: ImportSession,
        *,
        page: int = 1,
        page_size: int = 50,
        status_filter: Iterable[StagingRecordStatus | str] | None = None,
    ) -> RecordListResult:
        page = max(1, int(page))
        page_size = max(1, int(page_size))
        statuses = [StagingRecordStatus(value) for value in (status_filter or ()) if value]

        statement = select(StagingRecord).where(StagingRecord.session_id == import_session.id)
        if statuses:
            statement = statement.where(StagingRecord.processing_status.in_(statuses))

        total = self.session.execute(select(func.count()).select_from(statement.subquery())).scalar_one()
        items = (
            self.session.execute(
                statement.order_by(StagingRecord.row_number)
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            .scalars()
            .all()
        )
        counts = self.sessions.count_records(import_session.id)
        return RecordListResult(
            items=list(items),
            total=int(total),
            page=page,
            page_size=page_size,
            total_pages=_total_pages(int(total), page_size),
            status_counts={
                StagingRecordStatus.PENDING.value: counts.pending,
                StagingRecordStatus.SUCCESS.value: counts.success,
                StagingRecordStatus.FAILED.value: counts.failed,
                StagingRecordStatus.DUPLICATE.value: counts.duplicate,
                StagingRecordStatus.SKIPPED.value: counts.skipped,
            },
        )

    def export_errors_csv(self, import_session: ImportSession) -> tuple[str, int]:
        """
        Render the session's failed rows as CSV.

        Returns ``(csv_text, row_count)``; callers treat ``row_count == 0`` as
        nothing to export.
        """

        failed = (
            self.session.execute(
                select(StagingRecord)
                .where(
                    StagingRecord.session_id == import_session.id,
                    StagingRecord.processing_status == StagingRecordStatus.FAILED,
                )
                .order_by(StagingRecord.row_number)
            )
            .scalars()
            .all()
        )
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(ERROR_EXPORT_HEADER)
        for record in failed:
            writer.writerow(
                [
                    record.row_number,
                    json.dumps(record.raw_data or {}, ensure_ascii=False, default=str),
                    MESSAGE_SEPARATOR.join(record.error_messages or []),
                    MESSAGE_SEPARATOR.join(record.warnings or []),
                    _isoformat(record.processed_at) or "",
                ]
            )
        return buffer.getvalue(), len(failed)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def list_sessions(self, scope: ImportScope, filters: SessionFilters) -> SessionListResult:
        items, total = self.sessions.list_sessions(scope, filters)
        return SessionListResult(
            items=items,
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            total_pages=_total_pages(total, filters.page_size),
        )
