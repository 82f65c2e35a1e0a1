"""
SQLAlchemy models for import sessions, staged rows, and uploaded source files.

Sessions and staging rows are keyed by ``(tenant_id, is_live, id)`` so every
lookup can be scoped to the caller's tenant and environment.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import BaseModel, db


class ImportType(str, enum.Enum):
    """Kinds of tabular data the pipeline can ingest."""

    CUSTOMER_DATA = "CustomerData"
    TRANSACTION_DATA = "TransactionData"
    SCHEME_DATA = "SchemeData"

    @property
    def folder(self) -> str:
        return _IMPORT_TYPE_FOLDERS[self]

    @classmethod
    def coerce(cls, value: "ImportType | str") -> "ImportType":
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip()
        for member in cls:
            if normalized.lower() in (member.value.lower(), member.folder):
                return member
        raise ValueError(f"Unsupported import type '{value}'.")


_IMPORT_TYPE_FOLDERS = {
    ImportType.CUSTOMER_DATA: "customers",
    ImportType.TRANSACTION_DATA: "transactions",
    ImportType.SCHEME_DATA: "schemes",
}


class ImportSessionStatus(str, enum.Enum):
    """Lifecycle states for an import session."""

    PENDING = "pending"
    STAGED = "staged"
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_SESSION_STATUSES

    @property
    def is_active(self) -> bool:
        return self in (ImportSessionStatus.STAGED, ImportSessionStatus.PROCESSING)


TERMINAL_SESSION_STATUSES = frozenset(
    {
        ImportSessionStatus.COMPLETED,
        ImportSessionStatus.COMPLETED_WITH_ERRORS,
        ImportSessionStatus.FAILED,
        ImportSessionStatus.CANCELLED,
    }
)


class StagingRecordStatus(str, enum.Enum):
    """Per-row processing state reported by the workflow engine."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self is not StagingRecordStatus.PENDING


class FileUpload(BaseModel):
    """Uploaded source file awaiting (or used by) an import session."""

    __tablename__ = "file_uploads"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(db.Integer, nullable=False, index=True)
    is_live: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    import_type: Mapped[ImportType] = mapped_column(
        Enum(ImportType, name="import_type_enum", values_callable=lambda members: [m.value for m in members]),
        nullable=False,
    )
    original_filename: Mapped[str] = mapped_column(db.String(255), nullable=False)
    stored_filename: Mapped[str] = mapped_column(db.String(255), nullable=False, unique=True)
    file_path: Mapped[str] = mapped_column(db.String(1024), nullable=False)
    file_size: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    uploaded_by_user_id: Mapped[int | None] = mapped_column(db.Integer, nullable=True)

    sessions = relationship("ImportSession", back_populates="file_upload")

    __table_args__ = (Index("idx_file_uploads_scope", "tenant_id", "is_live"),)

    def __repr__(self) -> str:
        return f"<FileUpload id={self.id} name={self.original_filename!r}>"


class ImportSession(BaseModel):
    """One end-to-end import attempt for one file and one mapping set."""

    __tablename__ = "import_sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(db.Integer, nullable=False, index=True)
    is_live: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    session_name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    import_type: Mapped[ImportType] = mapped_column(
        Enum(ImportType, name="import_type_enum", values_callable=lambda members: [m.value for m in members]),
        nullable=False,
    )
    status: Mapped[ImportSessionStatus] = mapped_column(
        Enum(ImportSessionStatus, name="import_session_status_enum"),
        nullable=False,
        default=ImportSessionStatus.PENDING,
        index=True,
    )
    file_upload_id: Mapped[int | None] = mapped_column(
        ForeignKey("file_uploads.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_user_id: Mapped[int | None] = mapped_column(db.Integer, nullable=True)

    total_records: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    processed_records: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    successful_records: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    failed_records: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    duplicate_records: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    skipped_records: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    current_batch: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    last_processed_row: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    batch_size: Mapped[int | None] = mapped_column(db.Integer, nullable=True)

    staging_total_rows: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    staging_completed_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    processing_started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    processing_completed_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))

    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    workflow_execution_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    workflow_webhook_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    mapping_json: Mapped[list | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="Snapshot of the field mappings used to stage this session.",
    )
    processing_metadata: Mapped[dict | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="Batch bookkeeping merged from dispatch and callback payloads.",
    )

    file_upload = relationship("FileUpload", back_populates="sessions")
    staging_records = relationship(
        "StagingRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="dynamic",
    )

    __table_args__ = (Index("idx_import_sessions_scope_status", "tenant_id", "is_live", "status"),)

    @property
    def pending_records(self) -> int:
        return max(self.total_records - self.processed_records, 0)

    def __repr__(self) -> str:
        return f"<ImportSession id={self.id} status={self.status.value if self.status else None}>"


class StagingRecord(BaseModel):
    """
    One source row held until the workflow engine creates the target record.

    Rows land at ``pending``; only callback reconciliation moves them to a
    terminal status.
    """

    __tablename__ = "staging_records"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("import_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    row_number: Mapped[int] = mapped_column(db.Integer, nullable=False)
    raw_data: Mapped[dict] = mapped_column(db.JSON, nullable=False)
    mapped_data: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    processing_status: Mapped[StagingRecordStatus] = mapped_column(
        Enum(StagingRecordStatus, name="staging_record_status_enum"),
        nullable=False,
        default=StagingRecordStatus.PENDING,
        index=True,
    )
    error_messages: Mapped[list | None] = mapped_column(db.JSON, nullable=True)
    warnings: Mapped[list | None] = mapped_column(db.JSON, nullable=True)
    created_record_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    created_record_type: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))

    session = relationship("ImportSession", back_populates="staging_records")

    __table_args__ = (
        UniqueConstraint("session_id", "row_number", name="uq_staging_records_session_row"),
        Index("idx_staging_records_session_status", "session_id", "processing_status"),
    )

    def __repr__(self) -> str:
        return f"<StagingRecord session={self.session_id} row={self.row_number}>"
