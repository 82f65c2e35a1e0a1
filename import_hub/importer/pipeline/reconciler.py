"""
Callback reconciliation: apply per-record workflow results to staging rows.

Each callback is applied in one transaction that locks the session row,
updates only the session's still-``pending`` staging rows, recomputes the
counters from the full row set and decides the next status last. Replaying a
callback therefore leaves state unchanged, and a terminal session (for example
``cancelled``) absorbs late results without changing status.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Session

from import_hub.models import db
from import_hub.models.importer.schema import (
    ImportSession,
    ImportSessionStatus,
    StagingRecord,
    StagingRecordStatus,
)

from ..errors import CallbackValidationError, ImporterError, InvalidTransitionError
from ..metrics import record_callback
from .session_service import ImportScope, ImportSessionService, RecordCounts, utcnow

CALLBACK_STATUSES = frozenset({"processing", "completed", "failed"})
RESULT_STATUSES = frozenset(status.value for status in StagingRecordStatus if status.is_terminal)


def _as_int(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise CallbackValidationError(f"{label} must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise CallbackValidationError(f"{label} must be an integer.") from exc


def _as_messages(value: Any, label: str) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise CallbackValidationError(f"{label} must be a list of strings.")
    return [str(item) for item in value]


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


@dataclass(frozen=True)
class CallbackResult:
    """One per-record outcome reported by the workflow engine."""

    staging_record_id: int
    status: StagingRecordStatus
    error_messages: list[str] | None = None
    warnings: list[str] | None = None
    created_record_id: str | None = None
    created_record_type: str | None = None

    @classmethod
    def from_payload(cls, payload: Any, index: int) -> "CallbackResult":
        label = f"results[{index}]"
        if not isinstance(payload, Mapping):
            raise CallbackValidationError(f"{label} must be an object.")
        record_id = _pick(payload, "stagingRecordId", "staging_record_id")
        if record_id is None:
            raise CallbackValidationError(f"{label}.stagingRecordId is required.")
        status = str(payload.get("status") or "").strip().lower()
        if status not in RESULT_STATUSES:
            raise CallbackValidationError(
                f"{label}.status must be one of {', '.join(sorted(RESULT_STATUSES))}."
            )
        created_id = _pick(payload, "createdRecordId", "created_record_id")
        return cls(
            staging_record_id=_as_int(record_id, f"{label}.stagingRecordId"),
            status=StagingRecordStatus(status),
            error_messages=_as_messages(
                _pick(payload, "errorMessages", "error_messages", "errors"), f"{label}.errorMessages"
            ),
            warnings=_as_messages(payload.get("warnings"), f"{label}.warnings"),
            created_record_id=str(created_id) if created_id is not None else None,
            created_record_type=_pick(payload, "createdRecordType", "created_record_type"),
        )


@dataclass(frozen=True)
class CallbackMessage:
    """A validated workflow callback for one processed batch."""

    session_id: int
    status: str
    results: tuple[CallbackResult, ...] = ()
    batch_number: int | None = None
    error: str | None = None
    summary: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "CallbackMessage":
        """Validate a raw callback body; raises ``CallbackValidationError``."""

        if not isinstance(payload, Mapping):
            raise CallbackValidationError("Callback payload must be a JSON object.")
        session_id = _pick(payload, "sessionId", "session_id")
        if session_id is None:
            raise CallbackValidationError("sessionId is required.")
        status = str(payload.get("status") or "").strip().lower()
        if status not in CALLBACK_STATUSES:
            raise CallbackValidationError(
                f"status must be one of {', '.join(sorted(CALLBACK_STATUSES))}."
            )
        raw_results = payload.get("results")
        if raw_results is None:
            raise CallbackValidationError("results is required.")
        if not isinstance(raw_results, list):
            raise CallbackValidationError("results must be a list.")
        batch_number = _pick(payload, "batchNumber", "batch_number")
        summary = payload.get("summary") or {}
        if not isinstance(summary, Mapping):
            raise CallbackValidationError("summary must be an object.")
        error = payload.get("error")
        return cls(
            session_id=_as_int(session_id, "sessionId"),
            status=status,
            results=tuple(CallbackResult.from_payload(item, index) for index, item in enumerate(raw_results)),
            batch_number=_as_int(batch_number, "batchNumber") if batch_number is not None else None,
            error=str(error) if error else None,
            summary=dict(summary),
        )


@dataclass(slots=True)
class ReconcileOutcome:
    session_id: int
    status: ImportSessionStatus
    counts: RecordCounts
    applied: int = 0
    already_processed: int = 0
    ignored: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "applied": self.applied,
            "already_processed": self.already_processed,
            "ignored": self.ignored,
            "total_records": self.counts.total,
            "processed_records": self.counts.processed,
            "successful_records": self.counts.success,
            "failed_records": self.counts.failed,
            "duplicate_records": self.counts.duplicate,
            "skipped_records": self.counts.skipped,
            "pending_records": self.counts.pending,
        }


class CallbackReconciler:
    """Apply callbacks and failed-row resets to staging state."""

    def __init__(
        self,
        session: Session | None = None,
        *,
        session_service: ImportSessionService | None = None,
    ) -> None:
        self.session: Session = session or db.session
        self.sessions = session_service or ImportSessionService(self.session)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def reconcile(self, message: CallbackMessage) -> ReconcileOutcome:
        """
        Apply ``message`` atomically.

        Unknown sessions raise ``NoResultFound`` without writing anything. Any
        other failure rolls back, marks the session ``failed`` in a separate
        best-effort write, and re-raises so the engine retries.
        """

        started = time.perf_counter()
        try:
            import_session = self.sessions.lock_session(message.session_id)
        except NoResultFound:
            self.session.rollback()
            record_callback(outcome="not_found")
            raise

        try:
            outcome = self._apply(import_session, message)
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            self._fail_session(message.session_id, f"Callback processing failed: {exc}")
            record_callback(outcome="error", duration_seconds=time.perf_counter() - started)
            current_app.logger.exception(
                "Workflow callback reconciliation failed",
                extra={"importer_session_id": message.session_id, "importer_batch": message.batch_number},
            )
            raise

        record_callback(
            outcome="applied",
            duration_seconds=time.perf_counter() - started,
            result_statuses=dict(Counter(result.status.value for result in message.results)),
        )
        current_app.logger.info(
            "Workflow callback applied",
            extra={
                "importer_session_id": outcome.session_id,
                "importer_batch": message.batch_number,
                "importer_status": outcome.status.value,
                "importer_results_applied": outcome.applied,
                "importer_results_ignored": outcome.ignored,
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # Reprocessing
    # ------------------------------------------------------------------

    def reset_failed_records(
        self,
        session_id: int,
        scope: ImportScope | None = None,
    ) -> list[int]:
        """
        Reset the session's ``failed`` rows to ``pending`` and reopen it.

        Only ``completed_with_errors`` sessions qualify. Success, duplicate and
        skipped rows are left untouched. Returns the ids of the reset rows,
        which the dispatcher passes to the engine.
        """

        import_session = self.sessions.lock_session(session_id, scope)
        if import_session.status is not ImportSessionStatus.COMPLETED_WITH_ERRORS:
            self.session.rollback()
            raise InvalidTransitionError(
                session_id, import_session.status.value, ImportSessionStatus.PROCESSING.value
            )

        failed_rows = (
            self.session.execute(
                select(StagingRecord)
                .where(
                    StagingRecord.session_id == session_id,
                    StagingRecord.processing_status == StagingRecordStatus.FAILED,
                )
                .order_by(StagingRecord.row_number)
            )
            .scalars()
            .all()
        )
        if not failed_rows:
            self.session.rollback()
            raise ImporterError(f"Import session {session_id} has no failed records to reprocess.")

        for row in failed_rows:
            row.processing_status = StagingRecordStatus.PENDING
            row.error_messages = []
            row.warnings = []
            row.processed_at = None
            row.created_record_id = None
            row.created_record_type = None
        self.session.flush()

        reset_ids = [row.id for row in failed_rows]
        self.sessions.apply_counts(import_session, self.sessions.count_records(session_id))
        self.sessions.reopen_for_reprocess(import_session, reset_row_ids=reset_ids)
        self.session.commit()
        return reset_ids

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(self, import_session: ImportSession, message: CallbackMessage) -> ReconcileOutcome:
        rows = self._rows_by_id(import_session.id, [result.staging_record_id for result in message.results])
        now = utcnow()
        applied = 0
        already_processed = 0
        ignored = 0
        touched_rows: list[int] = []
        for result in message.results:
            row = rows.get(result.staging_record_id)
            if row is None:
                ignored += 1
                continue
            touched_rows.append(row.row_number)
            # Terminal row statuses are final
            if row.processing_status is not StagingRecordStatus.PENDING:
                already_processed += 1
                continue
            row.processing_status = result.status
            row.error_messages = list(result.error_messages or [])
            if result.warnings is not None:
                row.warnings = list(result.warnings)
            row.created_record_id = result.created_record_id
            row.created_record_type = result.created_record_type
            row.processed_at = now
            applied += 1
        self.session.flush()

        counts = self.sessions.count_records(import_session.id)
        if message.batch_number is not None:
            import_session.current_batch = message.batch_number
        if touched_rows:
            import_session.last_processed_row = max(touched_rows)
        self.sessions.merge_metadata(
            import_session,
            last_batch=message.batch_number,
            last_callback_status=message.status,
            callback_summary=message.summary,
            ignored_results=ignored,
        )
        status = self.sessions.complete_if_drained(
            import_session,
            counts,
            batch_failed=message.status == "failed",
            error=message.error,
        )
        return ReconcileOutcome(
            session_id=import_session.id,
            status=status,
            counts=counts,
            applied=applied,
            already_processed=already_processed,
            ignored=ignored,
        )

    def _rows_by_id(self, session_id: int, record_ids: Sequence[int]) -> dict[int, StagingRecord]:
        if not record_ids:
            return {}
        rows = self.session.execute(
            select(StagingRecord).where(
                StagingRecord.session_id == session_id,
                StagingRecord.id.in_(set(record_ids)),
            )
        ).scalars()
        return {row.id: row for row in rows}

    def _fail_session(self, session_id: int, message: str) -> None:
        try:
            import_session = self.sessions.get_session(session_id)
            if self.sessions.mark_failed(import_session, message):
                self.session.commit()
        except Exception:  # pragma: no cover - best effort after a failed transaction
            self.session.rollback()
            current_app.logger.exception(
                "Unable to mark import session failed after callback error",
                extra={"importer_session_id": session_id},
            )
