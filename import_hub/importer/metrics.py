"""Prometheus metrics helpers for the import pipeline."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

_staging_runs = Counter(
    "importer_staging_runs_total",
    "Staging populations by outcome.",
    ["status"],
)
_staged_rows = Counter(
    "importer_staged_rows_total",
    "Rows written to the staging table.",
)
_dispatch_attempts = Counter(
    "importer_dispatch_attempts_total",
    "Workflow dispatch HTTP attempts by outcome.",
    ["outcome"],
)
_dispatch_results = Counter(
    "importer_dispatch_results_total",
    "Workflow dispatch results after retries.",
    ["status"],
)
_callbacks = Counter(
    "importer_callbacks_total",
    "Workflow callbacks received by outcome.",
    ["outcome"],
)
_callback_results = Counter(
    "importer_callback_results_total",
    "Per-record results applied from workflow callbacks.",
    ["status"],
)
_reconcile_duration = Histogram(
    "importer_reconcile_duration_seconds",
    "Duration of callback reconciliation transactions in seconds.",
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)


def record_staging_result(*, status: Literal["success", "failure"], row_count: int) -> None:
    _staging_runs.labels(status=status).inc()
    if row_count > 0:
        _staged_rows.inc(row_count)


def record_dispatch_attempt(outcome: Literal["success", "http_error", "transport_error"]) -> None:
    _dispatch_attempts.labels(outcome=outcome).inc()


def record_dispatch_result(status: Literal["success", "failure"]) -> None:
    _dispatch_results.labels(status=status).inc()


def record_callback(
    *,
    outcome: Literal["applied", "invalid", "not_found", "error"],
    duration_seconds: float | None = None,
    result_statuses: dict[str, int] | None = None,
) -> None:
    """Capture metrics for one callback reconciliation."""

    _callbacks.labels(outcome=outcome).inc()
    if duration_seconds is not None:
        _reconcile_duration.observe(max(duration_seconds, 0.0))
    for status, count in (result_statuses or {}).items():
        if count:
            _callback_results.labels(status=status).inc(count)
