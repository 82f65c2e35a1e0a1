"""Field mapping sets: parsing, validation, and YAML loading."""

from __future__ import annotations

import hashlib
import json
from collections import defaultdict
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import yaml

from import_hub.models.importer.schema import ImportType

from ..contracts import get_required_fields, get_supported_fields
from ..errors import MappingValidationError, TransformError
from .transforms import Transformation, apply_transformation

__all__ = [
    "FieldMapping",
    "MappingLoadError",
    "MappingSet",
    "Transformation",
    "apply_transformation",
    "compute_mapping_checksum",
    "ensure_valid_mapping_set",
    "load_mapping_file",
    "parse_mappings",
    "validate_mapping_set",
]


class MappingLoadError(RuntimeError):
    """Raised when a mapping file cannot be loaded or parsed."""


def _first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _coerce_flag(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class FieldMapping:
    """Maps one source column onto one target field."""

    source_field: str
    target_field: str
    is_required: bool = False
    transformation: Transformation = Transformation.NONE
    is_active: bool = True

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "FieldMapping":
        """
        Build a mapping from an API or YAML payload.

        Both the wizard's camelCase keys (``sourceField``) and snake_case keys
        (``source_field``) are accepted. Unknown transformations raise
        ``TransformError`` so callers can report them per mapping.
        """

        source = _first_present(payload, "sourceField", "source_field", "source")
        target = _first_present(payload, "targetField", "target_field", "target")
        return cls(
            source_field=str(source).strip() if source is not None else "",
            target_field=str(target).strip() if target is not None else "",
            is_required=_coerce_flag(_first_present(payload, "isRequired", "is_required", "required"), default=False),
            transformation=Transformation.coerce(_first_present(payload, "transformation", "transform")),
            is_active=_coerce_flag(_first_present(payload, "isActive", "is_active", "active"), default=True),
        )

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["transformation"] = self.transformation.value
        return payload


MappingSet = Sequence[FieldMapping]


def parse_mappings(payloads: Iterable[Mapping[str, Any]] | None) -> tuple[list[FieldMapping], list[str]]:
    """
    Parse raw mapping payloads, collecting per-entry problems instead of raising.

    Returns:
        tuple[list[FieldMapping], list[str]]: parsed mappings and error messages.
    """

    mappings: list[FieldMapping] = []
    errors: list[str] = []
    if payloads is None:
        return mappings, ["Field mappings are required."]
    for index, payload in enumerate(payloads, start=1):
        if not isinstance(payload, Mapping):
            errors.append(f"Mapping #{index} must be an object, got {type(payload).__name__}.")
            continue
        try:
            mappings.append(FieldMapping.from_payload(payload))
        except TransformError as exc:
            errors.append(f"Mapping #{index}: {exc}.")
    return mappings, errors


def validate_mapping_set(
    mappings: Sequence[FieldMapping],
    import_type: ImportType | str,
    headers: Sequence[str] | None = None,
) -> list[str]:
    """
    Return every problem with ``mappings`` for ``import_type``; empty when valid.

    Checks run over active mappings only: each needs a source and a target, the
    target must belong to the import type, the source must exist in ``headers``
    when headers are known, no target may be fed by two sources, and every
    required target (contract-required or flagged ``is_required``) must be
    mapped.
    """

    errors: list[str] = []
    supported = set(get_supported_fields(import_type))
    header_set = {header.strip() for header in headers} if headers is not None else None
    active = [mapping for mapping in mappings if mapping.is_active]

    if not active:
        errors.append("At least one active field mapping is required.")

    sources_by_target: dict[str, list[str]] = defaultdict(list)
    for mapping in active:
        if not mapping.source_field:
            errors.append(f"Mapping for target '{mapping.target_field or '?'}' is missing a source field.")
        if not mapping.target_field:
            errors.append(f"Mapping for source '{mapping.source_field or '?'}' is missing a target field.")
            continue
        if mapping.target_field not in supported:
            errors.append(f"Unknown target field '{mapping.target_field}' for {ImportType.coerce(import_type).value}.")
        if header_set is not None and mapping.source_field and mapping.source_field not in header_set:
            errors.append(f"Source field '{mapping.source_field}' not found in file headers.")
        sources_by_target[mapping.target_field].append(mapping.source_field)

    for target, sources in sources_by_target.items():
        if len(sources) > 1:
            joined = ", ".join(f"'{source}'" for source in sources)
            errors.append(f"Duplicate target '{target}' mapped from {joined}.")

    required_targets = list(get_required_fields(import_type))
    for mapping in active:
        if mapping.is_required and mapping.target_field and mapping.target_field not in required_targets:
            required_targets.append(mapping.target_field)
    for target in required_targets:
        if target not in sources_by_target:
            errors.append(f"Required field '{target}' is not mapped.")

    return errors


def ensure_valid_mapping_set(
    mappings: Sequence[FieldMapping],
    import_type: ImportType | str,
    headers: Sequence[str] | None = None,
) -> None:
    """Raise ``MappingValidationError`` when ``validate_mapping_set`` reports problems."""

    errors = validate_mapping_set(mappings, import_type, headers)
    if errors:
        raise MappingValidationError(errors)


def compute_mapping_checksum(mappings: Sequence[FieldMapping]) -> str:
    payload = [mapping.as_dict() for mapping in mappings]
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def load_mapping_file(path: str | Path) -> tuple[ImportType, list[FieldMapping]]:
    """
    Load a YAML mapping set of the form::

        import_type: CustomerData
        fields:
          - source: Full Name
            target: name
            transformation: trim
    """

    path = Path(path)
    if not path.exists():
        raise MappingLoadError(f"Mapping file not found at {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - YAML parser errors
        raise MappingLoadError(f"Failed to parse mapping YAML at {path}: {exc}") from exc

    if not isinstance(raw, Mapping):
        raise MappingLoadError(f"Mapping file {path} must contain a mapping at the top level.")

    try:
        import_type = ImportType.coerce(raw["import_type"])
        fields_payload = raw["fields"]
    except KeyError as exc:
        raise MappingLoadError(f"Missing required mapping attribute: {exc}") from exc
    except ValueError as exc:
        raise MappingLoadError(str(exc)) from exc

    if not isinstance(fields_payload, list):
        raise MappingLoadError("Mapping 'fields' must be a list.")

    mappings, errors = parse_mappings(fields_payload)
    if errors:
        raise MappingLoadError("; ".join(errors))
    return import_type, mappings
