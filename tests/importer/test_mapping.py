import pytest

from import_hub.importer.errors import MappingValidationError, TransformError
from import_hub.importer.mapping import (
    FieldMapping,
    MappingLoadError,
    Transformation,
    apply_transformation,
    compute_mapping_checksum,
    ensure_valid_mapping_set,
    load_mapping_file,
    parse_mappings,
    validate_mapping_set,
)
from import_hub.models.importer.schema import ImportType

HEADERS = ["Full Name", "PAN", "Email", "Alt Email", "Mobile"]


def _mapping(source, target, **kwargs):
    return FieldMapping(source_field=source, target_field=target, **kwargs)


def test_field_mapping_accepts_camel_and_snake_case_payloads():
    camel = FieldMapping.from_payload(
        {"sourceField": " Full Name ", "targetField": "name", "isRequired": "yes", "transformation": "formatDate"}
    )
    snake = FieldMapping.from_payload({"source_field": "Full Name", "target_field": "name", "is_active": "false"})

    assert camel.source_field == "Full Name"
    assert camel.is_required is True
    assert camel.transformation is Transformation.FORMAT_DATE
    assert snake.is_active is False
    assert snake.transformation is Transformation.NONE


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("format-date", Transformation.FORMAT_DATE),
        ("FORMAT_DATE", Transformation.FORMAT_DATE),
        ("normalizePhone", Transformation.NORMALIZE_PHONE),
        ("Upper Case", None),
        ("", Transformation.NONE),
        (None, Transformation.NONE),
    ],
)
def test_transformation_coerce(raw, expected):
    if expected is None:
        with pytest.raises(TransformError):
            Transformation.coerce(raw)
    else:
        assert Transformation.coerce(raw) is expected


def test_apply_transformation():
    assert apply_transformation("asha rao", "uppercase") == "ASHA RAO"
    assert apply_transformation("15/01/2024", Transformation.FORMAT_DATE) == "2024-01-15"
    assert apply_transformation("+91 98765-43210", "normalize_phone") == "919876543210"
    with pytest.raises(TransformError):
        apply_transformation("n/a", "normalize_phone")


def test_parse_mappings_collects_entry_errors():
    mappings, errors = parse_mappings(
        [
            {"sourceField": "Full Name", "targetField": "name"},
            "Email",
            {"sourceField": "PAN", "targetField": "pan", "transformation": "reverse"},
        ]
    )

    assert [mapping.target_field for mapping in mappings] == ["name"]
    assert errors[0] == "Mapping #2 must be an object, got str."
    assert errors[1].startswith("Mapping #3: unknown transformation 'reverse'")


def test_parse_mappings_requires_payload():
    assert parse_mappings(None) == ([], ["Field mappings are required."])


def test_valid_mapping_set_has_no_errors():
    mappings = [_mapping("Full Name", "name"), _mapping("Email", "email")]
    assert validate_mapping_set(mappings, ImportType.CUSTOMER_DATA, HEADERS) == []


def test_duplicate_target_is_rejected():
    mappings = [
        _mapping("Full Name", "name"),
        _mapping("Email", "email"),
        _mapping("Alt Email", "email"),
    ]

    errors = validate_mapping_set(mappings, ImportType.CUSTOMER_DATA, HEADERS)

    assert errors == ["Duplicate target 'email' mapped from 'Email', 'Alt Email'."]


def test_inactive_mappings_do_not_count_as_duplicates():
    mappings = [
        _mapping("Full Name", "name"),
        _mapping("Email", "email"),
        _mapping("Alt Email", "email", is_active=False),
    ]
    assert validate_mapping_set(mappings, ImportType.CUSTOMER_DATA, HEADERS) == []


def test_mapping_set_reports_every_problem():
    mappings = [
        _mapping("Email", "email"),
        _mapping("Branch", "branch_code"),
        _mapping("", "pan"),
    ]

    errors = validate_mapping_set(mappings, ImportType.CUSTOMER_DATA, HEADERS)

    assert "Unknown target field 'branch_code' for CustomerData." in errors
    assert "Source field 'Branch' not found in file headers." in errors
    assert "Mapping for target 'pan' is missing a source field." in errors
    assert "Required field 'name' is not mapped." in errors


def test_flagged_required_mapping_must_exist_when_targets_are_checked():
    mappings = [_mapping("Full Name", "name"), _mapping("Email", "email", is_required=True)]
    assert validate_mapping_set(mappings, ImportType.CUSTOMER_DATA) == []


def test_empty_mapping_set():
    errors = validate_mapping_set([], ImportType.SCHEME_DATA)
    assert errors[0] == "At least one active field mapping is required."
    assert "Required field 'amc_name' is not mapped." in errors


def test_ensure_valid_mapping_set_raises_with_details():
    with pytest.raises(MappingValidationError) as excinfo:
        ensure_valid_mapping_set([_mapping("Email", "email")], ImportType.CUSTOMER_DATA)
    assert excinfo.value.details == ["Required field 'name' is not mapped."]


def test_checksum_tracks_mapping_content():
    first = [_mapping("Full Name", "name"), _mapping("Email", "email")]
    same = [_mapping("Full Name", "name"), _mapping("Email", "email")]
    changed = [_mapping("Full Name", "name"), _mapping("Email", "email", transformation=Transformation.LOWERCASE)]

    assert compute_mapping_checksum(first) == compute_mapping_checksum(same)
    assert compute_mapping_checksum(first) != compute_mapping_checksum(changed)


def test_load_mapping_file(tmp_path):
    path = tmp_path / "customers.yaml"
    path.write_text(
        "import_type: customers\n"
        "fields:\n"
        "  - source: Full Name\n"
        "    target: name\n"
        "    transformation: trim\n"
        "  - source: Email\n"
        "    target: email\n",
        encoding="utf-8",
    )

    import_type, mappings = load_mapping_file(path)

    assert import_type is ImportType.CUSTOMER_DATA
    assert [(m.source_field, m.target_field) for m in mappings] == [("Full Name", "name"), ("Email", "email")]
    assert mappings[0].transformation is Transformation.TRIM


def test_load_mapping_file_errors(tmp_path):
    with pytest.raises(MappingLoadError, match="not found"):
        load_mapping_file(tmp_path / "missing.yaml")

    missing_fields = tmp_path / "no_fields.yaml"
    missing_fields.write_text("import_type: CustomerData\n", encoding="utf-8")
    with pytest.raises(MappingLoadError, match="Missing required mapping attribute"):
        load_mapping_file(missing_fields)

    bad_type = tmp_path / "bad_type.yaml"
    bad_type.write_text("import_type: Holdings\nfields: []\n", encoding="utf-8")
    with pytest.raises(MappingLoadError, match="Unsupported import type"):
        load_mapping_file(bad_type)
