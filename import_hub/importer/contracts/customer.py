"""Target fields for customer (investor) imports."""

from __future__ import annotations

from typing import Tuple

from . import normalizers
from .fields import FieldSpec

CUSTOMER_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(
        name="prefix",
        description="Salutation; defaults to 'Sri' when the source is blank.",
        default="Sri",
    ),
    FieldSpec(name="name", description="Customer full name.", required=True),
    FieldSpec(
        name="pan",
        description="Permanent Account Number (AAAAA9999A).",
        normalizer=normalizers.normalize_pan,
    ),
    FieldSpec(
        name="iwell_code",
        description="Back-office customer code.",
        normalizer=normalizers.uppercase,
    ),
    FieldSpec(
        name="date_of_birth",
        description="Date of birth (ISO-8601 after normalization).",
        normalizer=normalizers.parse_date,
    ),
    FieldSpec(
        name="anniversary_date",
        description="Wedding anniversary (ISO-8601 after normalization).",
        normalizer=normalizers.parse_date,
    ),
    FieldSpec(name="family_head_name", description="Name of the family head."),
    FieldSpec(
        name="family_head_iwell_code",
        description="Back-office code of the family head.",
        normalizer=normalizers.uppercase,
    ),
    FieldSpec(name="survival_status", description="Alive/deceased marker."),
    FieldSpec(
        name="date_of_death",
        description="Date of death (ISO-8601 after normalization).",
        normalizer=normalizers.parse_date,
    ),
    FieldSpec(name="referred_by_name", description="Referrer name."),
    FieldSpec(
        name="email",
        description="Primary email address (lower-case).",
        normalizer=normalizers.normalize_email,
    ),
    FieldSpec(
        name="mobile",
        description="Mobile number formatted as +91XXXXXXXXXX.",
        normalizer=normalizers.format_mobile,
    ),
    FieldSpec(
        name="whatsapp",
        description="WhatsApp number formatted as +91XXXXXXXXXX.",
        normalizer=normalizers.format_mobile,
    ),
    FieldSpec(name="address_line1", description="First address line."),
    FieldSpec(name="address_line2", description="Second address line."),
    FieldSpec(name="city", description="City."),
    FieldSpec(name="state", description="State."),
    FieldSpec(name="country", description="Country."),
    FieldSpec(
        name="pincode",
        description="Six digit postal code.",
        normalizer=normalizers.normalize_pincode,
    ),
    FieldSpec(name="address_type", description="Residential, office, etc."),
)
