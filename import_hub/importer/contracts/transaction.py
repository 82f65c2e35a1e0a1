"""Target fields for mutual fund transaction imports."""

from __future__ import annotations

from typing import Tuple

from . import normalizers
from .fields import FieldSpec

TRANSACTION_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(
        name="iwell_code",
        description="Back-office code of the investing customer.",
        required=True,
        normalizer=normalizers.uppercase,
    ),
    FieldSpec(
        name="scheme_code",
        description="Scheme the transaction belongs to.",
        required=True,
        normalizer=normalizers.uppercase,
    ),
    FieldSpec(
        name="txn_date",
        description="Transaction date (ISO-8601 after normalization).",
        required=True,
        normalizer=normalizers.parse_date,
    ),
    FieldSpec(
        name="total_amount",
        description="Gross transaction amount.",
        required=True,
        normalizer=normalizers.parse_amount,
    ),
    FieldSpec(name="customer_id", description="Existing customer identifier, when known."),
    FieldSpec(name="scheme_name", description="Scheme display name."),
    FieldSpec(name="folio_no", description="Folio number.", normalizer=normalizers.uppercase),
    FieldSpec(name="txn_type", description="Purchase, redemption, SIP, switch, etc."),
    FieldSpec(name="units", description="Units allotted or redeemed.", normalizer=normalizers.parse_amount),
    FieldSpec(name="nav", description="NAV applied to the transaction.", normalizer=normalizers.parse_amount),
    FieldSpec(name="stamp_duty", description="Stamp duty charged.", normalizer=normalizers.parse_amount),
    FieldSpec(
        name="sip_regd_date",
        description="SIP registration date, for SIP instalments.",
        normalizer=normalizers.parse_date,
    ),
)
