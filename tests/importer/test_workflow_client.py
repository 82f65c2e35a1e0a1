import pytest
import requests

from import_hub.importer.errors import DispatchError
from import_hub.importer.workflow_client import WorkflowClient, WorkflowSettings

from importer_helpers import FakeHttpSession, FakeResponse


def _client(http, sleeps=None, **overrides):
    settings = WorkflowSettings(
        base_url="http://workflow.test",
        api_key=overrides.pop("api_key", "secret"),
        retry_base_delay=overrides.pop("retry_base_delay", 1.0),
        **overrides,
    )
    return WorkflowClient(settings, http_session=http, sleep_fn=(sleeps if sleeps is not None else []).append)


def test_settings_from_config():
    settings = WorkflowSettings.from_config(
        {
            "WORKFLOW_BASE_URL": "https://engine.example.com/",
            "WORKFLOW_WEBHOOK_PATH": "/imports/",
            "WORKFLOW_MAX_ATTEMPTS": 0,
            "API_BASE_URL": "https://hub.example.com/",
        }
    )

    assert settings.webhook_url == "https://engine.example.com/webhook/imports"
    assert settings.max_attempts == 1
    assert settings.api_key is None
    assert settings.resolved_callback_url == "https://hub.example.com/importer/callback"
    assert settings.execution_url("42") == "https://engine.example.com/api/v1/executions/42"


def test_trigger_posts_json_with_bearer_token():
    http = FakeHttpSession()
    client = _client(http, timeout_seconds=12.0)

    body, attempts = client.trigger({"sessionId": 5})

    assert body == {"executionId": "exec-123", "webhookId": "hook-1"}
    assert attempts == 1
    call = http.post_calls[0]
    assert call["url"] == "http://workflow.test/webhook/master-import-processor"
    assert call["json"] == {"sessionId": 5}
    assert call["timeout"] == 12.0
    assert call["headers"]["Authorization"] == "Bearer secret"
    assert call["headers"]["Content-Type"] == "application/json"


def test_trigger_retries_with_exponential_backoff():
    http = FakeHttpSession()
    http.queue(
        requests.ConnectionError("refused"),
        FakeResponse(502, text="bad gateway"),
        FakeResponse(200, {"executionId": "exec-9"}),
    )
    sleeps = []

    body, attempts = _client(http, sleeps).trigger({"sessionId": 5})

    assert body["executionId"] == "exec-9"
    assert attempts == 3
    assert sleeps == [1.0, 2.0]


def test_trigger_gives_up_after_max_attempts_without_final_sleep():
    http = FakeHttpSession()
    http.queue(*(FakeResponse(500, text="boom") for _ in range(4)))
    sleeps = []

    with pytest.raises(DispatchError) as excinfo:
        _client(http, sleeps, max_attempts=4, retry_base_delay=0.25).trigger({"sessionId": 5})

    assert excinfo.value.attempts == 4
    assert "failed after 4 attempts: HTTP 500: boom" in excinfo.value.message
    assert len(http.post_calls) == 4
    assert sleeps == [0.25, 0.5, 1.0]
    assert all(later > earlier for earlier, later in zip(sleeps, sleeps[1:]))


def test_trigger_without_json_body_returns_empty_dict():
    http = FakeHttpSession()
    http.queue(FakeResponse(200, None, text="Workflow was started"))

    body, attempts = _client(http).trigger({"sessionId": 1})

    assert body == {}
    assert attempts == 1


@pytest.mark.parametrize("status_code, expected", [(200, True), (404, True), (409, False)])
def test_cancel_execution(status_code, expected):
    http = FakeHttpSession()
    http.queue(FakeResponse(status_code, {}))

    assert _client(http).cancel_execution("exec-1") is expected
    assert http.post_calls[0]["url"] == "http://workflow.test/api/v1/executions/exec-1/stop"


def test_cancel_execution_without_api_key_does_not_call_engine():
    http = FakeHttpSession()

    assert _client(http, api_key=None).cancel_execution("exec-1") is False
    assert http.post_calls == []


def test_cancel_execution_transport_error():
    http = FakeHttpSession()
    http.queue(requests.Timeout("slow"))

    assert _client(http).cancel_execution("exec-1") is False


@pytest.mark.parametrize(
    "payload, expected_status",
    [
        ({"id": "e1", "finished": True, "mode": "webhook"}, "success"),
        ({"id": "e1", "finished": True, "mode": "error"}, "error"),
        ({"id": "e1", "finished": False, "stoppedAt": "2024-01-01T00:00:00Z"}, "error"),
        ({"id": "e1", "finished": False, "startedAt": "2024-01-01T00:00:00Z"}, "running"),
        ({}, "unknown"),
    ],
)
def test_get_execution_status(payload, expected_status):
    http = FakeHttpSession()
    http.queue(FakeResponse(200, payload))

    status = _client(http).get_execution_status("e1")

    assert status["status"] == expected_status
    assert status["id"] == "e1"


def test_get_execution_status_unavailable():
    http = FakeHttpSession()
    http.queue(FakeResponse(500, {}))

    assert _client(http).get_execution_status("e1") is None
    assert _client(FakeHttpSession(), api_key=None).get_execution_status("e1") is None


def test_test_connection():
    http = FakeHttpSession()
    http.queue(FakeResponse(200, {"status": "ok"}), FakeResponse(503, {}), requests.Timeout("slow"))
    client = _client(http, health_timeout_seconds=2.0)

    ok = client.test_connection()
    unhealthy = client.test_connection()
    timed_out = client.test_connection()

    assert ok.success is True
    assert ok.message.startswith("Connected to workflow engine")
    assert http.get_calls[0]["url"] == "http://workflow.test/healthz"
    assert http.get_calls[0]["timeout"] == 2.0
    assert unhealthy.success is False
    assert "HTTP 503" in unhealthy.message
    assert timed_out.success is False
    assert "timed out after 2s" in timed_out.message


def test_validate_configuration():
    settings = WorkflowSettings(base_url="", api_key=None)
    errors, warnings = WorkflowClient(settings, http_session=FakeHttpSession()).validate_configuration()

    assert errors == ["WORKFLOW_BASE_URL is not configured."]
    assert any("WORKFLOW_API_KEY" in warning for warning in warnings)
    assert any("localhost" in warning for warning in warnings)

    http = FakeHttpSession()
    http.queue(requests.ConnectionError("refused"))
    errors, _ = _client(http).validate_configuration(check_connection=True)
    assert errors and errors[0].startswith("Workflow connectivity test failed")
