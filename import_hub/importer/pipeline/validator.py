"""
Row validation and transformation for staged import rows.

Applies a mapping set to one raw row and returns the normalized record along
with any field-level errors. Problems never raise: a row with errors is still
returned so the populator can stage it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from import_hub.models.importer.schema import ImportType

from ..contracts import get_field_spec_map, get_required_fields
from ..errors import TransformError
from ..mapping import FieldMapping, apply_transformation


@dataclass(slots=True)
class RowResult:
    """Outcome of validating one row."""

    record: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _clean_source_value(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class RowValidator:
    """Validate raw rows against one session's mapping set."""

    def __init__(self, mappings: Sequence[FieldMapping], import_type: ImportType | str) -> None:
        self.import_type = ImportType.coerce(import_type)
        self.mappings = tuple(mapping for mapping in mappings if mapping.is_active and mapping.target_field)
        self._specs = get_field_spec_map(self.import_type)
        required = list(get_required_fields(self.import_type))
        for mapping in self.mappings:
            if mapping.is_required and mapping.target_field not in required:
                required.append(mapping.target_field)
        self._required = tuple(required)

    def validate(self, raw_row: Mapping[str, Any]) -> RowResult:
        result = RowResult()
        sources: dict[str, str] = {}
        invalid: set[str] = set()

        for mapping in self.mappings:
            target = mapping.target_field
            sources[target] = mapping.source_field
            value = _clean_source_value(raw_row.get(mapping.source_field))
            if value is None:
                result.record[target] = None
                continue
            try:
                result.record[target] = self._transform(target, value, mapping)
            except TransformError as exc:
                result.record[target] = None
                invalid.add(target)
                result.errors.append(f"{target}: {exc} (column '{mapping.source_field}')")

        for name, spec in self._specs.items():
            if spec.default is not None and name not in invalid and result.record.get(name) is None:
                result.record[name] = spec.default

        for target in self._required:
            if target in invalid or result.record.get(target) is not None:
                continue
            source = sources.get(target)
            if source:
                result.errors.append(f"{target}: required value missing (column '{source}')")
            else:
                result.errors.append(f"{target}: required field is not mapped")

        return result

    def _transform(self, target: str, value: str, mapping: FieldMapping) -> Any:
        transformed = apply_transformation(value, mapping.transformation)
        spec = self._specs.get(target)
        if spec is not None and spec.normalizer is not None:
            return spec.normalizer(transformed)
        return transformed
