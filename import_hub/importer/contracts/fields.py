"""Field definition shared by the import-type contracts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

Normalizer = Callable[[str], Any]


@dataclass(frozen=True)
class FieldSpec:
    """Metadata describing one target field of an import type."""

    name: str
    description: str
    required: bool = False
    normalizer: Normalizer | None = None
    default: Any | None = None
