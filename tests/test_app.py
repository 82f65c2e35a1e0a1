import json
import logging

from config.validation import validate_environment
from import_hub.middleware.tenant_context import get_import_scope
from import_hub.utils.logging_config import JsonFormatter


def test_unknown_route_returns_json_404(client):
    response = client.get("/does-not-exist")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Not found."}


def test_scope_resolved_from_forwarded_headers(app):
    with app.test_request_context("/", headers={"X-Tenant-ID": "12", "X-User-ID": "3", "X-Environment": "live"}):
        app.preprocess_request()
        scope = get_import_scope()

    assert scope.tenant_id == 12
    assert scope.is_live is True
    assert scope.environment == "live"


def test_scope_defaults_to_test_environment(app):
    with app.test_request_context("/?is_live=false", headers={"X-Tenant-ID": "12"}):
        app.preprocess_request()
        scope = get_import_scope()

    assert scope.is_live is False


def test_invalid_tenant_header_is_anonymous(app):
    with app.test_request_context("/", headers={"X-Tenant-ID": "abc"}):
        app.preprocess_request()
        assert get_import_scope() is None


def test_each_request_resolves_its_own_caller(client):
    first = client.get("/importer/sessions", headers={"X-Tenant-ID": "1"})
    second = client.get("/importer/sessions")

    assert first.status_code == 200
    assert second.status_code == 401


def test_json_formatter_includes_extra_fields():
    formatter = JsonFormatter(app_name="import-hub")
    record = logging.LogRecord("import_hub.importer", logging.INFO, __file__, 10, "Session %s staged", (4,), None)
    record.importer_session_id = 4

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "Session 4 staged"
    assert payload["level"] == "INFO"
    assert payload["app"] == "import-hub"
    assert payload["importer_session_id"] == 4
    assert "msg" not in payload


def test_validate_environment_only_checks_production(monkeypatch):
    for name in ("SECRET_KEY", "DATABASE_URL", "WORKFLOW_BASE_URL", "WORKFLOW_API_KEY", "API_BASE_URL"):
        monkeypatch.delenv(name, raising=False)

    assert validate_environment("development") == (True, [])

    is_valid, errors = validate_environment("production")
    assert is_valid is False
    assert any(error.startswith("WORKFLOW_BASE_URL is required") for error in errors)
    assert any(error.startswith("API_BASE_URL must be set") for error in errors)


def test_validate_environment_accepts_complete_production(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "a" * 64)
    monkeypatch.setenv("DATABASE_URL", "postgresql://hub@db/import_hub")
    monkeypatch.setenv("WORKFLOW_BASE_URL", "https://engine.example.com")
    monkeypatch.setenv("WORKFLOW_API_KEY", "key")
    monkeypatch.setenv("API_BASE_URL", "https://hub.example.com")
    monkeypatch.setenv("IMPORTER_WORKER_ENABLED", "false")

    assert validate_environment("production") == (True, [])

