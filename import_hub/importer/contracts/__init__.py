"""Target-field contracts for each supported import type."""

from __future__ import annotations

from typing import Mapping, Tuple

from import_hub.models.importer.schema import ImportType

from .customer import CUSTOMER_FIELDS
from .fields import FieldSpec
from .scheme import SCHEME_FIELDS
from .transaction import TRANSACTION_FIELDS

_CONTRACTS: Mapping[ImportType, Tuple[FieldSpec, ...]] = {
    ImportType.CUSTOMER_DATA: CUSTOMER_FIELDS,
    ImportType.TRANSACTION_DATA: TRANSACTION_FIELDS,
    ImportType.SCHEME_DATA: SCHEME_FIELDS,
}

__all__ = [
    "FieldSpec",
    "get_field_specs",
    "get_field_spec_map",
    "get_required_fields",
    "get_supported_fields",
]


def get_field_specs(import_type: ImportType | str) -> Tuple[FieldSpec, ...]:
    """Return the target field specifications for ``import_type``."""

    return _CONTRACTS[ImportType.coerce(import_type)]


def get_field_spec_map(import_type: ImportType | str) -> dict[str, FieldSpec]:
    return {spec.name: spec for spec in get_field_specs(import_type)}


def get_required_fields(import_type: ImportType | str) -> Tuple[str, ...]:
    """Target fields every mapping set for ``import_type`` must cover."""

    return tuple(spec.name for spec in get_field_specs(import_type) if spec.required)


def get_supported_fields(import_type: ImportType | str) -> Tuple[str, ...]:
    return tuple(spec.name for spec in get_field_specs(import_type))
