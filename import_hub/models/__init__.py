# import_hub/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .importer import (
    FileUpload,
    ImportSession,
    ImportSessionStatus,
    ImportType,
    StagingRecord,
    StagingRecordStatus,
    TERMINAL_SESSION_STATUSES,
)

__all__ = [
    "db",
    "BaseModel",
    "FileUpload",
    "ImportSession",
    "ImportSessionStatus",
    "ImportType",
    "StagingRecord",
    "StagingRecordStatus",
    "TERMINAL_SESSION_STATUSES",
]
