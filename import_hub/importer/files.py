"""
Locating uploaded source files.

The database is the primary source of truth for uploads. Files dropped into
``<upload dir>/<type folder>/pending`` outside the upload API can still be
found by the filesystem locator when the fallback policy allows it; the policy
is chosen once (``IMPORTER_FILE_LOOKUP_FALLBACK``) when the pipeline context is
built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from import_hub.models import db
from import_hub.models.importer.schema import FileUpload, ImportType

from .errors import FileLookupError
from .pipeline.session_service import ImportScope
from .utils import PENDING_SUBDIR

FALLBACK_FILESYSTEM = "filesystem"
FALLBACK_NONE = "none"
FALLBACK_POLICIES = (FALLBACK_FILESYSTEM, FALLBACK_NONE)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocatedFile:
    path: Path
    import_type: ImportType | None
    original_filename: str
    source: str
    file_upload_id: int | None = None


class FileLocator(Protocol):
    def locate(
        self,
        file_id: int,
        scope: ImportScope,
        import_type: ImportType | None = None,
    ) -> LocatedFile:
        """Return the file for ``file_id`` or raise ``FileLookupError``."""


class DatabaseFileLocator:
    """Look uploads up through their ``FileUpload`` row, scoped to the tenant."""

    source = "database"

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session or db.session

    def locate(
        self,
        file_id: int,
        scope: ImportScope,
        import_type: ImportType | None = None,
    ) -> LocatedFile:
        upload = self.session.execute(
            select(FileUpload).where(
                FileUpload.id == file_id,
                FileUpload.tenant_id == scope.tenant_id,
                FileUpload.is_live == scope.is_live,
            )
        ).scalar_one_or_none()
        if upload is None:
            raise FileLookupError(f"Uploaded file {file_id} not found.")
        path = Path(upload.file_path)
        if not path.exists():
            raise FileLookupError(f"Uploaded file {file_id} is missing from storage.")
        return LocatedFile(
            path=path,
            import_type=upload.import_type,
            original_filename=upload.original_filename,
            source=self.source,
            file_upload_id=upload.id,
        )


class FilesystemFileLocator:
    """Scan the pending folders for a stored file named ``<id>_...``."""

    source = "filesystem"

    def __init__(self, upload_dir: str | Path) -> None:
        self.upload_dir = Path(upload_dir)

    def locate(
        self,
        file_id: int,
        scope: ImportScope,
        import_type: ImportType | None = None,
    ) -> LocatedFile:
        candidates = [import_type] if import_type is not None else list(ImportType)
        prefix = f"{file_id}_"
        for candidate in candidates:
            pending_dir = self.upload_dir / candidate.folder / PENDING_SUBDIR
            if not pending_dir.is_dir():
                continue
            for path in sorted(pending_dir.iterdir()):
                if path.is_file() and path.name.startswith(prefix):
                    return LocatedFile(
                        path=path,
                        import_type=candidate,
                        original_filename=path.name[len(prefix):] or path.name,
                        source=self.source,
                    )
        raise FileLookupError(f"Uploaded file {file_id} not found.")


class FallbackFileLocator:
    """Try ``primary`` first and ``fallback`` only when the primary misses."""

    def __init__(self, primary: FileLocator, fallback: FileLocator) -> None:
        self.primary = primary
        self.fallback = fallback

    def locate(
        self,
        file_id: int,
        scope: ImportScope,
        import_type: ImportType | None = None,
    ) -> LocatedFile:
        try:
            return self.primary.locate(file_id, scope, import_type)
        except FileLookupError as primary_error:
            try:
                located = self.fallback.locate(file_id, scope, import_type)
            except FileLookupError:
                raise primary_error from None
            logger.warning(
                "Uploaded file %s resolved through fallback locator",
                file_id,
                extra={"importer_file_id": file_id, "importer_file_source": located.source},
            )
            return located


def build_file_locator(
    policy: str | None,
    *,
    upload_dir: str | Path,
    session: Session | None = None,
) -> FileLocator:
    """Build the locator for ``policy`` (``filesystem`` or ``none``)."""

    normalized = (policy or FALLBACK_FILESYSTEM).strip().lower()
    if normalized not in FALLBACK_POLICIES:
        raise ValueError(
            f"Unsupported IMPORTER_FILE_LOOKUP_FALLBACK '{policy}'. Use one of: {', '.join(FALLBACK_POLICIES)}."
        )
    primary = DatabaseFileLocator(session)
    if normalized == FALLBACK_NONE:
        return primary
    return FallbackFileLocator(primary, FilesystemFileLocator(upload_dir))
