from import_hub.importer.mapping import FieldMapping, Transformation
from import_hub.importer.pipeline import RowValidator
from import_hub.models.importer.schema import ImportType


def _customer_validator(**overrides):
    mappings = [
        FieldMapping("Full Name", "name", transformation=Transformation.TRIM),
        FieldMapping("PAN", "pan"),
        FieldMapping("Email", "email"),
        FieldMapping("Mobile", "mobile"),
        FieldMapping("DOB", "date_of_birth"),
    ]
    mappings.extend(overrides.get("extra", []))
    return RowValidator(mappings, ImportType.CUSTOMER_DATA)


def test_valid_row_is_normalized():
    result = _customer_validator().validate(
        {
            "Full Name": "  Asha Rao ",
            "PAN": "abcde1234f",
            "Email": "Asha@Example.com",
            "Mobile": "98765 43210",
            "DOB": "15/01/1990",
        }
    )

    assert result.ok
    assert result.record == {
        "name": "Asha Rao",
        "pan": "ABCDE1234F",
        "email": "asha@example.com",
        "mobile": "+919876543210",
        "date_of_birth": "1990-01-15",
        "prefix": "Sri",
    }


def test_invalid_values_are_reported_per_field():
    result = _customer_validator().validate(
        {"Full Name": "Vikram", "PAN": "123", "Email": "not-an-email", "Mobile": "", "DOB": "someday"}
    )

    assert not result.ok
    assert result.record["pan"] is None
    assert result.record["email"] is None
    assert result.record["mobile"] is None
    assert "pan: invalid PAN '123' (column 'PAN')" in result.errors
    assert "email: invalid email address 'not-an-email' (column 'Email')" in result.errors
    assert "date_of_birth: unrecognised date 'someday' (column 'DOB')" in result.errors
    assert len(result.errors) == 3


def test_missing_required_value():
    result = _customer_validator().validate({"Full Name": "   ", "Email": "meera@example.com"})

    assert result.errors == ["name: required value missing (column 'Full Name')"]


def test_required_field_without_mapping():
    validator = RowValidator([FieldMapping("Email", "email")], ImportType.CUSTOMER_DATA)

    result = validator.validate({"Email": "meera@example.com"})

    assert result.errors == ["name: required field is not mapped"]


def test_mapping_flagged_required_is_enforced():
    validator = _customer_validator(extra=[FieldMapping("City", "city", is_required=True)])

    result = validator.validate({"Full Name": "Asha"})

    assert result.errors == ["city: required value missing (column 'City')"]


def test_inactive_mappings_are_ignored():
    validator = RowValidator(
        [FieldMapping("Full Name", "name"), FieldMapping("Email", "email", is_active=False)],
        ImportType.CUSTOMER_DATA,
    )

    result = validator.validate({"Full Name": "Asha", "Email": "broken"})

    assert result.ok
    assert "email" not in result.record


def test_scheme_defaults_apply_to_blank_amounts():
    validator = RowValidator(
        [
            FieldMapping("AMC", "amc_name"),
            FieldMapping("Code", "scheme_code"),
            FieldMapping("Scheme", "scheme_name"),
            FieldMapping("Min Amount", "scheme_minimum_amount"),
            FieldMapping("Type", "scheme_type"),
        ],
        ImportType.SCHEME_DATA,
    )

    result = validator.validate(
        {"AMC": "Axis", "Code": "ax-01", "Scheme": "Axis Bluechip", "Min Amount": "", "Type": "open ended"}
    )

    assert result.ok
    assert result.record["scheme_code"] == "AX-01"
    assert result.record["scheme_minimum_amount"] == "0"
    assert result.record["scheme_type"] == "OpenEnded"


def test_transaction_amounts_are_exact_decimals():
    validator = RowValidator(
        [
            FieldMapping("Code", "iwell_code"),
            FieldMapping("Scheme", "scheme_code"),
            FieldMapping("Date", "txn_date"),
            FieldMapping("Amount", "total_amount"),
            FieldMapping("Units", "units"),
        ],
        ImportType.TRANSACTION_DATA,
    )
    row = {"Code": "iw-9", "Scheme": "ax-01", "Date": "05/03/2024", "Units": "12.3456"}

    valid = validator.validate({**row, "Amount": "1,00,000.10"})
    not_a_number = validator.validate({**row, "Amount": "NaN"})

    assert valid.ok
    assert valid.record["total_amount"] == "100000.10"
    assert valid.record["units"] == "12.3456"
    assert not not_a_number.ok
    assert not_a_number.record["total_amount"] is None
    assert not_a_number.errors == ["total_amount: not a number 'NaN' (column 'Amount')"]
