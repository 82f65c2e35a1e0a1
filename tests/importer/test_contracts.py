import pytest

from import_hub.importer.contracts import (
    get_field_spec_map,
    get_required_fields,
    get_supported_fields,
)
from import_hub.importer.contracts import normalizers
from import_hub.importer.errors import TransformError
from import_hub.models.importer.schema import ImportType


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-01-15", "2024-01-15"),
        ("2024-01-15T10:30:00Z", "2024-01-15"),
        ("2024/01/15", "2024-01-15"),
        ("15-01-2024", "2024-01-15"),
        ("15/01/2024", "2024-01-15"),
        ("15.01.2024", "2024-01-15"),
        ("15/01/24", "2024-01-15"),
        ("01-02-75", "1975-02-01"),
    ],
)
def test_parse_date_accepts_broker_layouts(raw, expected):
    assert normalizers.parse_date(raw) == expected


@pytest.mark.parametrize("raw", ["31/02/2024", "yesterday", "2024-13-01"])
def test_parse_date_rejects_invalid_dates(raw):
    with pytest.raises(TransformError):
        normalizers.parse_date(raw)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("9876543210", "+919876543210"),
        ("98765 43210", "+919876543210"),
        ("919876543210", "+919876543210"),
        ("09876543210", "+919876543210"),
        ("+44 20 7946 0958", "+44 20 7946 0958"),
    ],
)
def test_format_mobile(raw, expected):
    assert normalizers.format_mobile(raw) == expected


def test_format_mobile_rejects_short_numbers():
    with pytest.raises(TransformError, match="invalid phone number"):
        normalizers.format_mobile("12345")


def test_identifier_normalizers():
    assert normalizers.normalize_pan("abcde 1234f") == "ABCDE1234F"
    assert normalizers.normalize_pincode("560 001") == "560001"
    assert normalizers.normalize_isin("inf209k01yn0") == "INF209K01YN0"
    assert normalizers.normalize_email("Asha@Example.COM") == "asha@example.com"

    with pytest.raises(TransformError):
        normalizers.normalize_pan("ABCD1234F")
    with pytest.raises(TransformError):
        normalizers.normalize_pincode("5600")
    with pytest.raises(TransformError):
        normalizers.normalize_email("asha.example.com")


def test_amount_and_scheme_type():
    assert normalizers.parse_amount("1,234.50") == "1234.50"
    assert normalizers.parse_amount("12 500") == "12500"
    assert normalizers.normalize_scheme_type("open-ended") == "OpenEnded"
    assert normalizers.normalize_scheme_type("Close Ended") == "ClosedEnded"
    assert normalizers.normalize_scheme_type("Interval") == "Interval"

    with pytest.raises(TransformError):
        normalizers.parse_amount("twelve")


def test_required_fields_per_import_type():
    assert get_required_fields(ImportType.CUSTOMER_DATA) == ("name",)
    assert get_required_fields("TransactionData") == ("iwell_code", "scheme_code", "txn_date", "total_amount")
    assert get_required_fields("schemes") == ("amc_name", "scheme_code", "scheme_name")


def test_supported_fields_include_optional_targets():
    supported = get_supported_fields(ImportType.CUSTOMER_DATA)
    assert "email" in supported and "pincode" in supported
    assert get_field_spec_map(ImportType.CUSTOMER_DATA)["prefix"].default == "Sri"


def test_import_type_coerce_accepts_folder_names():
    assert ImportType.coerce("customers") is ImportType.CUSTOMER_DATA
    assert ImportType.coerce("transactiondata") is ImportType.TRANSACTION_DATA
    assert ImportType.SCHEME_DATA.folder == "schemes"
    with pytest.raises(ValueError):
        ImportType.coerce("Holdings")


@pytest.mark.parametrize("value", ["NaN", "nan", "inf", "-Infinity", "sNaN", "1.2.3"])
def test_amount_rejects_non_finite_values(value):
    with pytest.raises(TransformError):
        normalizers.parse_amount(value)
