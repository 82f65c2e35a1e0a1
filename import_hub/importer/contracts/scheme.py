"""Target fields for mutual fund scheme master imports."""

from __future__ import annotations

from typing import Tuple

from . import normalizers
from .fields import FieldSpec

SCHEME_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(name="amc_name", description="Asset management company.", required=True),
    FieldSpec(
        name="scheme_code",
        description="AMC scheme code (upper-case).",
        required=True,
        normalizer=normalizers.uppercase,
    ),
    FieldSpec(name="scheme_name", description="Scheme display name.", required=True),
    FieldSpec(
        name="scheme_type",
        description="OpenEnded or ClosedEnded.",
        normalizer=normalizers.normalize_scheme_type,
    ),
    FieldSpec(name="scheme_category", description="SEBI scheme category."),
    FieldSpec(name="scheme_nav_name", description="Name used in NAV feeds."),
    FieldSpec(
        name="scheme_minimum_amount",
        description="Minimum investment amount; 0 when blank.",
        normalizer=normalizers.parse_amount,
        default="0",
    ),
    FieldSpec(
        name="launch_date",
        description="NFO launch date (ISO-8601 after normalization).",
        normalizer=normalizers.parse_date,
    ),
    FieldSpec(
        name="closure_date",
        description="Closure date for closed-ended schemes.",
        normalizer=normalizers.parse_date,
    ),
    FieldSpec(
        name="isin_div_payout",
        description="ISIN of the dividend payout option.",
        normalizer=normalizers.normalize_isin,
    ),
    FieldSpec(
        name="isin_growth",
        description="ISIN of the growth option.",
        normalizer=normalizers.normalize_isin,
    ),
    FieldSpec(
        name="isin_div_reinvestment",
        description="ISIN of the dividend reinvestment option.",
        normalizer=normalizers.normalize_isin,
    ),
)
