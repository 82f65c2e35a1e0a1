"""
Importer-specific utilities for handling uploaded files and cleanup.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable
from uuid import uuid4

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from import_hub.models.importer.schema import ImportType

DEFAULT_UPLOAD_SUBDIR = "import_uploads"
DEFAULT_ALLOWED_EXTENSIONS: tuple[str, ...] = ("csv", "xlsx")
PENDING_SUBDIR = "pending"


@dataclass(frozen=True)
class StoredUpload:
    """Where an accepted upload landed on disk."""

    path: Path
    stored_filename: str
    original_filename: str
    size: int


def _normalize_upload_dir(configured_path: str | None, instance_path: str) -> Path:
    if not configured_path:
        return Path(instance_path) / DEFAULT_UPLOAD_SUBDIR

    candidate = Path(configured_path)
    if candidate.is_absolute():
        return candidate

    return Path(instance_path) / candidate


def resolve_upload_directory(app) -> Path:
    """
    Determine and create (if necessary) the importer upload directory.
    """

    upload_dir = _normalize_upload_dir(app.config.get("IMPORTER_UPLOAD_DIR"), app.instance_path)
    upload_dir.mkdir(parents=True, exist_ok=True)
    return upload_dir


def resolve_pending_directory(app, import_type: ImportType | str) -> Path:
    """Return ``<upload dir>/<type folder>/pending``, creating it on demand."""

    folder = ImportType.coerce(import_type).folder
    pending_dir = resolve_upload_directory(app) / folder / PENDING_SUBDIR
    pending_dir.mkdir(parents=True, exist_ok=True)
    return pending_dir


def allowed_file(filename: str, allowed_extensions: Iterable[str] = DEFAULT_ALLOWED_EXTENSIONS) -> bool:
    """
    Validate the uploaded filename extension against the allowed set.
    """

    if not filename or "." not in filename:
        return False
    extension = filename.rsplit(".", 1)[1].lower()
    return extension in {ext.lower().lstrip(".") for ext in allowed_extensions}


def persist_upload(
    file_storage: FileStorage,
    app,
    *,
    import_type: ImportType | str,
    prefix: str | None = None,
) -> StoredUpload:
    """
    Persist the uploaded file under the import type's pending folder.

    Stored names are ``<prefix>_<uuid><ext>`` so the filesystem locator can
    find a file by the id it was stored under. The original extension is kept.
    """

    pending_dir = resolve_pending_directory(app, import_type)
    original_name = file_storage.filename or ""
    extension = Path(secure_filename(original_name)).suffix.lower() or ".csv"
    stem = uuid4().hex
    stored_filename = f"{prefix}_{stem}{extension}" if prefix else f"{stem}{extension}"

    target_path = pending_dir / stored_filename
    file_storage.save(target_path)
    current_app.logger.debug("Importer upload persisted to %s", target_path)
    return StoredUpload(
        path=target_path,
        stored_filename=stored_filename,
        original_filename=original_name,
        size=target_path.stat().st_size,
    )


def cleanup_upload(path: Path) -> None:
    """
    Remove a stored upload, logging but ignoring filesystem errors.
    """

    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        current_app.logger.warning("Failed to remove importer upload %s: %s", path, exc)


def ensure_json_serializable(value: Any) -> Any:
    """
    Best-effort conversion of values to JSON-serializable representations.
    """

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Mapping):
        return {str(key): ensure_json_serializable(inner) for key, inner in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [ensure_json_serializable(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    return str(value)
