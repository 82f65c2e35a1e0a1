"""Operator-selectable value transformations applied before field normalizers."""

from __future__ import annotations

import enum
from typing import Callable, Mapping

from ..contracts import normalizers
from ..errors import TransformError


class Transformation(str, enum.Enum):
    """Normalization operations an operator can attach to a field mapping."""

    NONE = "none"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    TRIM = "trim"
    FORMAT_DATE = "format_date"
    NORMALIZE_PHONE = "normalize_phone"

    @classmethod
    def coerce(cls, value: "Transformation | str | None") -> "Transformation":
        """Accept ``format-date``, ``formatDate`` or ``FORMAT_DATE`` style spellings."""

        if isinstance(value, cls):
            return value
        if value is None or str(value).strip() == "":
            return cls.NONE
        token = str(value).strip()
        if any(char.islower() for char in token):
            # camelCase from the UI wizard
            token = "".join(f"_{char}" if char.isupper() else char for char in token)
        snake = token.replace("-", "_").replace(" ", "_").lower()
        snake = "_".join(part for part in snake.split("_") if part)
        try:
            return cls(snake)
        except ValueError as exc:
            raise TransformError(f"unknown transformation '{value}'") from exc


def _identity(value: str) -> str:
    return value


_TRANSFORMS: Mapping[Transformation, Callable[[str], str]] = {
    Transformation.NONE: _identity,
    Transformation.TRIM: str.strip,
    Transformation.UPPERCASE: normalizers.uppercase,
    Transformation.LOWERCASE: normalizers.lowercase,
    Transformation.FORMAT_DATE: normalizers.parse_date,
    Transformation.NORMALIZE_PHONE: normalizers.digits_only,
}


def apply_transformation(value: str, transformation: Transformation | str | None) -> str:
    """
    Apply one transformation to a trimmed, non-empty source value.

    Raises ``TransformError`` when the value cannot be transformed, for example
    an unparseable date.
    """

    transform = _TRANSFORMS[Transformation.coerce(transformation)]
    result = transform(value)
    if result == "":
        raise TransformError(f"transformation produced an empty value from '{value}'")
    return result
