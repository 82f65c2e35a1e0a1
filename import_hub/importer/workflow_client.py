"""
HTTP client for the external workflow engine.

The engine exposes a webhook that accepts dispatch payloads and a small REST
API for execution status and cancellation. Dispatch requests are retried with
exponential backoff; status and cancellation calls are best effort.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import requests

from .errors import DispatchError
from .metrics import record_dispatch_attempt

EXECUTION_STATUS_RUNNING = "running"
EXECUTION_STATUS_SUCCESS = "success"
EXECUTION_STATUS_ERROR = "error"
EXECUTION_STATUS_UNKNOWN = "unknown"


@dataclass(frozen=True)
class WorkflowSettings:
    """Connection settings for the workflow engine, resolved from app config."""

    base_url: str
    api_key: str | None = None
    webhook_path: str = "master-import-processor"
    timeout_seconds: float = 30.0
    max_attempts: int = 3
    retry_base_delay: float = 1.0
    health_timeout_seconds: float = 5.0
    api_base_url: str = "http://localhost:5000"
    callback_url: str | None = None
    environment: str = "development"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "WorkflowSettings":
        return cls(
            base_url=str(config.get("WORKFLOW_BASE_URL") or "").rstrip("/"),
            api_key=config.get("WORKFLOW_API_KEY") or None,
            webhook_path=str(config.get("WORKFLOW_WEBHOOK_PATH") or "master-import-processor").strip("/"),
            timeout_seconds=float(config.get("WORKFLOW_TIMEOUT_SECONDS", 30.0)),
            max_attempts=max(1, int(config.get("WORKFLOW_MAX_ATTEMPTS", 3))),
            retry_base_delay=max(0.0, float(config.get("WORKFLOW_RETRY_BASE_DELAY", 1.0))),
            health_timeout_seconds=float(config.get("WORKFLOW_HEALTH_TIMEOUT_SECONDS", 5.0)),
            api_base_url=str(config.get("API_BASE_URL") or "http://localhost:5000").rstrip("/"),
            callback_url=config.get("WORKFLOW_CALLBACK_URL") or None,
            environment=str(config.get("ENV") or config.get("FLASK_ENV") or "development"),
        )

    @property
    def webhook_url(self) -> str:
        return f"{self.base_url}/webhook/{self.webhook_path}"

    @property
    def resolved_callback_url(self) -> str:
        return self.callback_url or f"{self.api_base_url}/importer/callback"

    def execution_url(self, execution_id: str) -> str:
        return f"{self.base_url}/api/v1/executions/{execution_id}"


@dataclass(frozen=True)
class ConnectionCheck:
    success: bool
    message: str
    latency_ms: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message, "latency_ms": self.latency_ms}


def _response_excerpt(response: Any, limit: int = 200) -> str:
    text = getattr(response, "text", "") or ""
    return text[:limit]


class WorkflowClient:
    """Thin wrapper around a ``requests.Session`` talking to the workflow engine."""

    def __init__(
        self,
        settings: WorkflowSettings,
        *,
        http_session: requests.Session | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.http = http_session or requests.Session()
        self.sleep = sleep_fn
        self.logger = logger or logging.getLogger(__name__)

    # Public API -----------------------------------------------------------------

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after ``attempt`` (1-based): base, 2*base, 4*base..."""

        return self.settings.retry_base_delay * (2 ** (attempt - 1))

    def trigger(self, payload: Mapping[str, Any]) -> tuple[Any, int]:
        """
        POST ``payload`` to the dispatch webhook, retrying on failure.

        Returns the decoded response body (``{}`` when the body is not JSON)
        and the number of attempts used. Raises ``DispatchError`` once
        ``max_attempts`` attempts have failed; there is no sleep after the
        final attempt.
        """

        max_attempts = self.settings.max_attempts
        last_error = "no attempt made"
        for attempt in range(1, max_attempts + 1):
            try:
                response = self.http.post(
                    self.settings.webhook_url,
                    json=dict(payload),
                    headers=self._headers(),
                    timeout=self.settings.timeout_seconds,
                )
            except requests.RequestException as exc:
                record_dispatch_attempt("transport_error")
                last_error = f"transport error: {exc}"
            else:
                if 200 <= response.status_code < 300:
                    record_dispatch_attempt("success")
                    return self._decode(response), attempt
                record_dispatch_attempt("http_error")
                last_error = f"HTTP {response.status_code}: {_response_excerpt(response)}".rstrip(": ")

            self.logger.warning(
                "Workflow dispatch attempt %s/%s failed: %s",
                attempt,
                max_attempts,
                last_error,
                extra={"importer_dispatch_attempt": attempt, "importer_session_id": payload.get("sessionId")},
            )
            if attempt < max_attempts:
                self.sleep(self.backoff_delay(attempt))

        raise DispatchError(
            f"Workflow trigger failed after {max_attempts} attempts: {last_error}",
            attempts=max_attempts,
        )

    def cancel_execution(self, execution_id: str) -> bool:
        """
        Ask the engine to stop ``execution_id``.

        A 404 means the execution already finished and counts as success.
        Without an API key the engine cannot be asked, so this returns False.
        """

        if not self.settings.api_key:
            self.logger.warning("Workflow API key not configured; cannot cancel execution %s", execution_id)
            return False
        try:
            response = self.http.post(
                f"{self.settings.execution_url(execution_id)}/stop",
                headers=self._headers(),
                timeout=self.settings.timeout_seconds,
            )
        except requests.RequestException as exc:
            self.logger.warning("Workflow cancellation for %s failed: %s", execution_id, exc)
            return False
        if 200 <= response.status_code < 300 or response.status_code == 404:
            return True
        self.logger.warning(
            "Workflow cancellation for %s returned HTTP %s", execution_id, response.status_code
        )
        return False

    def get_execution_status(self, execution_id: str) -> dict[str, Any] | None:
        """Fetch an execution summary, or None when unavailable."""

        if not self.settings.api_key:
            return None
        try:
            response = self.http.get(
                self.settings.execution_url(execution_id),
                headers=self._headers(),
                timeout=self.settings.timeout_seconds,
            )
        except requests.RequestException as exc:
            self.logger.warning("Workflow status lookup for %s failed: %s", execution_id, exc)
            return None
        if not 200 <= response.status_code < 300:
            self.logger.warning("Workflow status lookup for %s returned HTTP %s", execution_id, response.status_code)
            return None

        execution = self._decode(response)
        if not isinstance(execution, Mapping):
            return None
        if execution.get("finished"):
            status = EXECUTION_STATUS_ERROR if execution.get("mode") == "error" else EXECUTION_STATUS_SUCCESS
        elif execution.get("stoppedAt"):
            status = EXECUTION_STATUS_ERROR
        elif execution:
            status = EXECUTION_STATUS_RUNNING
        else:
            status = EXECUTION_STATUS_UNKNOWN
        return {
            "id": execution.get("id", execution_id),
            "workflow_id": execution.get("workflowId"),
            "status": status,
            "started_at": execution.get("startedAt"),
            "stopped_at": execution.get("stoppedAt"),
        }

    def test_connection(self) -> ConnectionCheck:
        started = time.monotonic()
        try:
            response = self.http.get(
                f"{self.settings.base_url}/healthz",
                timeout=self.settings.health_timeout_seconds,
            )
        except requests.Timeout:
            latency = int((time.monotonic() - started) * 1000)
            return ConnectionCheck(
                False, f"Workflow engine timed out after {self.settings.health_timeout_seconds:g}s", latency
            )
        except requests.RequestException as exc:
            latency = int((time.monotonic() - started) * 1000)
            return ConnectionCheck(False, f"Workflow engine unreachable: {exc}", latency)

        latency = int((time.monotonic() - started) * 1000)
        if response.status_code == 200:
            return ConnectionCheck(True, f"Connected to workflow engine ({latency}ms)", latency)
        return ConnectionCheck(False, f"Workflow health check failed: HTTP {response.status_code}", latency)

    def validate_configuration(self, *, check_connection: bool = False) -> tuple[list[str], list[str]]:
        """Return ``(errors, warnings)`` describing the configured settings."""

        errors: list[str] = []
        warnings: list[str] = []
        base_url = self.settings.base_url
        if not base_url:
            errors.append("WORKFLOW_BASE_URL is not configured.")
        elif not base_url.startswith(("http://", "https://")):
            errors.append("WORKFLOW_BASE_URL must start with http:// or https://.")

        if not self.settings.api_key:
            warnings.append("WORKFLOW_API_KEY is not configured; cancellation and status checks are disabled.")
        if "localhost" in self.settings.api_base_url and self.settings.callback_url is None:
            warnings.append("API_BASE_URL points at localhost; the workflow engine may not reach the callback.")

        if check_connection and not errors:
            check = self.test_connection()
            if not check.success:
                errors.append(f"Workflow connectivity test failed: {check.message}")
        return errors, warnings

    def close(self) -> None:
        self.http.close()

    # Internal helpers -----------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        return headers

    @staticmethod
    def _decode(response: Any) -> Any:
        try:
            return response.json()
        except ValueError:
            return {}
