"""
Importer-specific SQLAlchemy models: sessions, staged rows, and uploads.
"""

from .schema import (
    TERMINAL_SESSION_STATUSES,
    FileUpload,
    ImportSession,
    ImportSessionStatus,
    ImportType,
    StagingRecord,
    StagingRecordStatus,
)

__all__ = [
    "FileUpload",
    "ImportSession",
    "ImportSessionStatus",
    "ImportType",
    "StagingRecord",
    "StagingRecordStatus",
    "TERMINAL_SESSION_STATUSES",
]
