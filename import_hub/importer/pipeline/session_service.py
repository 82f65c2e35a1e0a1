"""
Import session lifecycle: lookups, status transitions, and aggregate counters.

Every status write in the pipeline goes through ``ImportSessionService`` so the
lifecycle stays monotonic::

    pending -> staged -> processing -> completed | completed_with_errors
                                       | failed | cancelled

``failed`` is reachable from any non-terminal state and ``cancelled`` from
``pending``, ``staged`` or ``processing``. The single sanctioned re-entry is
``completed_with_errors -> processing`` when failed rows are reprocessed.
Lookups are scoped by tenant and environment; a session belonging to another
tenant is reported as not found.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Session

from import_hub.models import db
from import_hub.models.importer.schema import (
    FileUpload,
    ImportSession,
    ImportSessionStatus,
    ImportType,
    StagingRecord,
    StagingRecordStatus,
)

from ..errors import InvalidTransitionError
from ..mapping import FieldMapping, compute_mapping_checksum

ALLOWED_TRANSITIONS: Mapping[ImportSessionStatus, frozenset[ImportSessionStatus]] = {
    ImportSessionStatus.PENDING: frozenset(
        {ImportSessionStatus.STAGED, ImportSessionStatus.FAILED, ImportSessionStatus.CANCELLED}
    ),
    ImportSessionStatus.STAGED: frozenset(
        {ImportSessionStatus.PROCESSING, ImportSessionStatus.FAILED, ImportSessionStatus.CANCELLED}
    ),
    ImportSessionStatus.PROCESSING: frozenset(
        {
            ImportSessionStatus.COMPLETED,
            ImportSessionStatus.COMPLETED_WITH_ERRORS,
            ImportSessionStatus.FAILED,
            ImportSessionStatus.CANCELLED,
        }
    ),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ImportScope:
    """Tenant and environment every session lookup is restricted to."""

    tenant_id: int
    is_live: bool = False

    @property
    def environment(self) -> str:
        return "live" if self.is_live else "test"


@dataclass(frozen=True)
class RecordCounts:
    """Staging row tallies recomputed from the authoritative row set."""

    success: int = 0
    failed: int = 0
    duplicate: int = 0
    skipped: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.success + self.failed + self.duplicate + self.skipped + self.pending

    @property
    def processed(self) -> int:
        return self.total - self.pending

    @classmethod
    def from_rows(cls, rows: Iterable[tuple[StagingRecordStatus, int]]) -> "RecordCounts":
        tallies = {status: 0 for status in StagingRecordStatus}
        for status, count in rows:
            tallies[StagingRecordStatus(status)] += int(count)
        return cls(
            success=tallies[StagingRecordStatus.SUCCESS],
            failed=tallies[StagingRecordStatus.FAILED],
            duplicate=tallies[StagingRecordStatus.DUPLICATE],
            skipped=tallies[StagingRecordStatus.SKIPPED],
            pending=tallies[StagingRecordStatus.PENDING],
        )


@dataclass(frozen=True)
class SessionFilters:
    """Filter options for listing sessions."""

    page: int = 1
    page_size: int = 20
    statuses: tuple[ImportSessionStatus, ...] = field(default_factory=tuple)
    import_types: tuple[ImportType, ...] = field(default_factory=tuple)

    @classmethod
    def coerce(
        cls,
        *,
        page: int | str | None = None,
        page_size: int | str | None = None,
        statuses: Iterable[str] | None = None,
        import_types: Iterable[str] | None = None,
        max_page_size: int = 100,
        default_page_size: int = 20,
    ) -> "SessionFilters":
        """
        Coerce query-string input into validated filters; raises ``ValueError``.
        """

        resolved_page = _coerce_positive_int(page, fallback=1)
        resolved_size = min(_coerce_positive_int(page_size, fallback=default_page_size), max_page_size)
        resolved_statuses = []
        for value in statuses or ():
            if not value:
                continue
            try:
                resolved_statuses.append(ImportSessionStatus(str(value).strip().lower()))
            except ValueError as exc:
                raise ValueError(f"Unsupported status filter '{value}'.") from exc
        resolved_types = tuple(ImportType.coerce(value) for value in (import_types or ()) if value)
        return cls(
            page=resolved_page,
            page_size=resolved_size,
            statuses=tuple(resolved_statuses),
            import_types=resolved_types,
        )


def _coerce_positive_int(value: int | str | None, *, fallback: int) -> int:
    if value is None or value == "":
        return fallback
    try:
        number = int(value)
    except (TypeError, ValueError):
        return fallback
    return number if number > 0 else fallback


class ImportSessionService:
    """Owner of import session state; callers decide when to commit."""

    def __init__(self, session: Session | None = None) -> None:
        self.session: Session = session or db.session

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _scoped_select(self, session_id: int, scope: ImportScope | None):
        statement = select(ImportSession).where(ImportSession.id == session_id)
        if scope is not None:
            statement = statement.where(
                ImportSession.tenant_id == scope.tenant_id,
                ImportSession.is_live == scope.is_live,
            )
        return statement

    def get_session(self, session_id: int, scope: ImportScope | None = None) -> ImportSession:
        """
        Fetch a session, restricted to ``scope`` when given.

        ``scope=None`` is reserved for the workflow callback path, which is
        addressed by session id alone.
        """

        import_session = self.session.execute(self._scoped_select(session_id, scope)).scalar_one_or_none()
        if import_session is None:
            raise NoResultFound(f"Import session {session_id} not found.")
        return import_session

    def lock_session(self, session_id: int, scope: ImportScope | None = None) -> ImportSession:
        """Fetch a session holding a row lock until the transaction ends."""

        # populate_existing: another transaction may have advanced the row before we took the lock
        statement = (
            self._scoped_select(session_id, scope).with_for_update().execution_options(populate_existing=True)
        )
        import_session = self.session.execute(statement).scalar_one_or_none()
        if import_session is None:
            raise NoResultFound(f"Import session {session_id} not found.")
        return import_session

    def count_records(self, session_id: int) -> RecordCounts:
        rows = self.session.execute(
            select(StagingRecord.processing_status, func.count(StagingRecord.id))
            .where(StagingRecord.session_id == session_id)
            .group_by(StagingRecord.processing_status)
        ).all()
        return RecordCounts.from_rows(rows)

    def list_sessions(self, scope: ImportScope, filters: SessionFilters) -> tuple[list[ImportSession], int]:
        statement = select(ImportSession).where(
            ImportSession.tenant_id == scope.tenant_id,
            ImportSession.is_live == scope.is_live,
        )
        if filters.statuses:
            statement = statement.where(ImportSession.status.in_(filters.statuses))
        if filters.import_types:
            statement = statement.where(ImportSession.import_type.in_(filters.import_types))

        total = self.session.execute(select(func.count()).select_from(statement.subquery())).scalar_one()
        items = (
            self.session.execute(
                statement.order_by(ImportSession.created_at.desc(), ImportSession.id.desc())
                .offset((filters.page - 1) * filters.page_size)
                .limit(filters.page_size)
            )
            .scalars()
            .all()
        )
        return list(items), int(total)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_session(
        self,
        *,
        scope: ImportScope,
        session_name: str,
        import_type: ImportType | str,
        mappings: Sequence[FieldMapping],
        file_upload: FileUpload | None = None,
        created_by_user_id: int | None = None,
        source_file: str | None = None,
    ) -> ImportSession:
        """Create a ``pending`` session carrying a snapshot of its mapping set."""

        import_session = ImportSession(
            tenant_id=scope.tenant_id,
            is_live=scope.is_live,
            session_name=session_name.strip() or "Untitled import",
            import_type=ImportType.coerce(import_type),
            status=ImportSessionStatus.PENDING,
            file_upload=file_upload,
            created_by_user_id=created_by_user_id,
            mapping_json=[mapping.as_dict() for mapping in mappings],
            processing_metadata={
                "mapping_checksum": compute_mapping_checksum(mappings),
                "source_file": source_file or (file_upload.file_path if file_upload else None),
            },
        )
        self.session.add(import_session)
        self.session.flush()
        current_app.logger.info(
            "Import session created",
            extra={
                "importer_session_id": import_session.id,
                "importer_tenant_id": scope.tenant_id,
                "importer_import_type": import_session.import_type.value,
            },
        )
        return import_session

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        import_session: ImportSession,
        target: ImportSessionStatus,
        *,
        error_summary: str | None = None,
    ) -> ImportSession:
        """Apply one lifecycle step, raising ``InvalidTransitionError`` when illegal."""

        current = import_session.status
        if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
            raise InvalidTransitionError(import_session.id, current.value, target.value)

        import_session.status = target
        if error_summary is not None:
            import_session.error_summary = error_summary
        if target.is_terminal:
            import_session.processing_completed_at = utcnow()

        current_app.logger.info(
            "Import session status changed",
            extra={
                "importer_session_id": import_session.id,
                "importer_status_from": current.value,
                "importer_status_to": target.value,
            },
        )
        return import_session

    def mark_staged(self, import_session: ImportSession, *, total_rows: int) -> ImportSession:
        self.transition(import_session, ImportSessionStatus.STAGED)
        now = utcnow()
        import_session.total_records = total_rows
        import_session.staging_total_rows = total_rows
        import_session.staging_completed_at = now
        self.apply_counts(import_session, RecordCounts(pending=total_rows))
        return import_session

    def mark_processing(self, import_session: ImportSession, *, batch_size: int) -> ImportSession:
        self.transition(import_session, ImportSessionStatus.PROCESSING)
        import_session.processing_started_at = utcnow()
        import_session.processing_completed_at = None
        import_session.batch_size = batch_size
        return import_session

    def mark_failed(self, import_session: ImportSession, error_summary: str) -> bool:
        """
        Move a non-terminal session to ``failed``.

        Returns False (and leaves the session untouched) when it is already
        terminal, so a late failure cannot overwrite ``cancelled`` or a
        completed result.
        """

        if import_session.status.is_terminal:
            current_app.logger.warning(
                "Ignoring failure for terminal import session",
                extra={
                    "importer_session_id": import_session.id,
                    "importer_status": import_session.status.value,
                    "importer_error": error_summary,
                },
            )
            return False
        self.transition(import_session, ImportSessionStatus.FAILED, error_summary=error_summary)
        return True

    def cancel(self, import_session: ImportSession, *, reason: str | None = None) -> ImportSession:
        self.transition(import_session, ImportSessionStatus.CANCELLED)
        self.merge_metadata(
            import_session,
            cancelled_at=utcnow().isoformat(),
            cancel_reason=reason,
        )
        return import_session

    def apply_counts(self, import_session: ImportSession, counts: RecordCounts) -> None:
        import_session.successful_records = counts.success
        import_session.failed_records = counts.failed
        import_session.duplicate_records = counts.duplicate
        import_session.skipped_records = counts.skipped
        import_session.processed_records = counts.processed
        import_session.total_records = counts.total

    def complete_if_drained(
        self,
        import_session: ImportSession,
        counts: RecordCounts,
        *,
        batch_failed: bool = False,
        error: str | None = None,
    ) -> ImportSessionStatus:
        """
        Decide the post-callback status from freshly recomputed counts.

        Terminal sessions keep their status. Otherwise a drained session
        completes (with errors when any row failed); a batch-level failure with
        rows still pending fails the session; anything else keeps processing.
        """

        self.apply_counts(import_session, counts)
        current = import_session.status
        if current.is_terminal or current is not ImportSessionStatus.PROCESSING:
            return current

        if counts.pending == 0:
            target = (
                ImportSessionStatus.COMPLETED_WITH_ERRORS if counts.failed > 0 else ImportSessionStatus.COMPLETED
            )
            self.transition(import_session, target)
        elif batch_failed:
            self.transition(
                import_session,
                ImportSessionStatus.FAILED,
                error_summary=error or "Workflow reported the batch as failed.",
            )
        return import_session.status

    def reopen_for_reprocess(self, import_session: ImportSession, *, reset_row_ids: Sequence[int]) -> ImportSession:
        """Re-enter ``processing`` from ``completed_with_errors`` for a reprocess run."""

        current = import_session.status
        if current is not ImportSessionStatus.COMPLETED_WITH_ERRORS:
            raise InvalidTransitionError(import_session.id, current.value, ImportSessionStatus.PROCESSING.value)

        history = list((import_session.processing_metadata or {}).get("reprocess_history", []))
        history.append({"reopened_at": utcnow().isoformat(), "rows_reset": len(reset_row_ids)})
        import_session.status = ImportSessionStatus.PROCESSING
        import_session.processing_completed_at = None
        import_session.error_summary = None
        self.merge_metadata(
            import_session,
            reprocess_history=history,
            reprocess={"staging_record_ids": list(reset_row_ids)},
        )
        current_app.logger.info(
            "Import session reopened for reprocessing",
            extra={"importer_session_id": import_session.id, "importer_rows_reset": len(reset_row_ids)},
        )
        return import_session

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def merge_metadata(import_session: ImportSession, **updates: Any) -> dict[str, Any]:
        """Merge ``updates`` into ``processing_metadata`` (reassigned so the JSON change is tracked)."""

        metadata = dict(import_session.processing_metadata or {})
        metadata.update(updates)
        import_session.processing_metadata = metadata
        return metadata
