"""
Staging population: one ``StagingRecord`` per source row, all or nothing.

Rows are validated against the session's mapping set and always staged at
``pending``; preliminary validation problems travel with the row as warnings
so the workflow engine (and operators) can see them. The whole population runs
in one transaction together with the ``staged`` transition, so the session's
``total_records`` and its staged row count cannot diverge.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from flask import current_app
from sqlalchemy.orm import Session

from import_hub.models import db
from import_hub.models.importer.schema import ImportSession, ImportSessionStatus, StagingRecord, StagingRecordStatus

from ..errors import InvalidTransitionError, StagingError
from ..mapping import FieldMapping
from ..metrics import record_staging_result
from ..parser import parse_file
from .session_service import ImportSessionService
from .validator import RowValidator

DEFAULT_FLUSH_SIZE = 500
VALIDATION_WARNING_PREFIX = "validation: "


@dataclass(slots=True)
class StagingSummary:
    """Outcome of staging one session."""

    session_id: int
    total_rows: int
    rows_with_errors: int
    headers: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "total_rows": self.total_rows,
            "rows_with_errors": self.rows_with_errors,
            "headers": list(self.headers),
        }


class StagingPopulator:
    """Populate the staging table for one session at a time."""

    def __init__(
        self,
        session: Session | None = None,
        *,
        flush_size: int = DEFAULT_FLUSH_SIZE,
        session_service: ImportSessionService | None = None,
    ) -> None:
        self.session: Session = session or db.session
        self.flush_size = max(1, flush_size)
        self.sessions = session_service or ImportSessionService(self.session)

    def populate(
        self,
        import_session: ImportSession,
        file_path: str | Path,
        mappings: Sequence[FieldMapping],
    ) -> StagingSummary:
        """
        Stage every row of ``file_path`` for ``import_session``.

        On any failure the transaction is rolled back, the session is marked
        ``failed`` in a follow-up write, and ``StagingError`` is raised.
        """

        if import_session.status is not ImportSessionStatus.PENDING:
            raise InvalidTransitionError(
                import_session.id, import_session.status.value, ImportSessionStatus.STAGED.value
            )

        session_id = import_session.id
        try:
            summary = self._stage_rows(import_session, Path(file_path), mappings)
            self.sessions.mark_staged(import_session, total_rows=summary.total_rows)
            self.sessions.merge_metadata(
                import_session,
                staging={"rows_with_errors": summary.rows_with_errors, "headers": summary.headers},
            )
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            message = f"Staging failed: {exc}"
            self._fail_session(session_id, message)
            record_staging_result(status="failure", row_count=0)
            current_app.logger.exception(
                "Import session staging failed",
                extra={"importer_session_id": session_id},
            )
            raise StagingError(message) from exc

        record_staging_result(status="success", row_count=summary.total_rows)
        current_app.logger.info(
            "Import session staged",
            extra={
                "importer_session_id": session_id,
                "importer_rows_staged": summary.total_rows,
                "importer_rows_with_errors": summary.rows_with_errors,
            },
        )
        return summary

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _stage_rows(
        self,
        import_session: ImportSession,
        file_path: Path,
        mappings: Sequence[FieldMapping],
    ) -> StagingSummary:
        parsed = parse_file(file_path)
        if parsed.total_rows == 0:
            raise StagingError(f"{file_path.name} contains no data rows.")

        validator = RowValidator(mappings, import_session.import_type)
        buffer: list[StagingRecord] = []
        rows_with_errors = 0
        row_number = 0
        for row_number, raw_row in enumerate(parsed.rows, start=1):
            result = validator.validate(raw_row)
            if not result.ok:
                rows_with_errors += 1
            buffer.append(
                StagingRecord(
                    session_id=import_session.id,
                    row_number=row_number,
                    raw_data=dict(raw_row),
                    mapped_data=result.record,
                    processing_status=StagingRecordStatus.PENDING,
                    error_messages=[],
                    warnings=[f"{VALIDATION_WARNING_PREFIX}{error}" for error in result.errors],
                )
            )
            if len(buffer) >= self.flush_size:
                self._flush_batch(buffer)

        if buffer:
            self._flush_batch(buffer)

        return StagingSummary(
            session_id=import_session.id,
            total_rows=row_number,
            rows_with_errors=rows_with_errors,
            headers=list(parsed.headers),
        )

    def _flush_batch(self, buffer: list[StagingRecord]) -> None:
        # Flush only; the commit happens once with the staged transition
        self.session.add_all(buffer)
        self.session.flush()
        buffer.clear()

    def _fail_session(self, session_id: int, message: str) -> None:
        try:
            import_session = self.sessions.get_session(session_id)
            if self.sessions.mark_failed(import_session, message):
                self.session.commit()
        except Exception:  # pragma: no cover - best effort after a failed transaction
            self.session.rollback()
            current_app.logger.exception(
                "Unable to mark import session failed after staging error",
                extra={"importer_session_id": session_id},
            )
