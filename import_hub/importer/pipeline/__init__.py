"""Import session pipeline: validate, stage, dispatch, reconcile, report."""

from __future__ import annotations

from .dispatcher import (
    DispatchReceipt,
    DispatchRequest,
    WorkflowDispatcher,
    extract_execution_handle,
    placeholder_execution_id,
)
from .progress import (
    ProgressReporter,
    RecordListResult,
    SessionListResult,
    StatusSnapshot,
    serialize_session,
    serialize_staging_record,
)
from .reconciler import CallbackMessage, CallbackReconciler, CallbackResult, ReconcileOutcome
from .session_service import ImportScope, ImportSessionService, RecordCounts, SessionFilters
from .staging import StagingPopulator, StagingSummary
from .validator import RowResult, RowValidator

__all__ = [
    "CallbackMessage",
    "CallbackReconciler",
    "CallbackResult",
    "DispatchReceipt",
    "DispatchRequest",
    "ImportScope",
    "ImportSessionService",
    "ProgressReporter",
    "RecordCounts",
    "RecordListResult",
    "ReconcileOutcome",
    "RowResult",
    "RowValidator",
    "SessionFilters",
    "SessionListResult",
    "StagingPopulator",
    "StagingSummary",
    "StatusSnapshot",
    "WorkflowDispatcher",
    "extract_execution_handle",
    "placeholder_execution_id",
    "serialize_session",
    "serialize_staging_record",
]
