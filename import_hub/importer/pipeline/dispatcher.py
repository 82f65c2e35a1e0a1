"""
Workflow dispatch: hand a staged session to the external workflow engine.

Dispatch is the first half of a two-phase protocol. ``WorkflowDispatcher``
moves the session to ``processing``, POSTs a ``DispatchRequest`` payload via
``WorkflowClient`` (which owns retries and backoff) and persists the execution
handle from the ``DispatchReceipt``. Per-record results come back later as a
``CallbackMessage`` handled by ``CallbackReconciler``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence
from uuid import uuid4

from flask import current_app
from sqlalchemy.orm import Session

from import_hub.models import db
from import_hub.models.importer.schema import ImportSession, ImportSessionStatus

from ..errors import DispatchError, InvalidTransitionError
from ..metrics import record_dispatch_result
from ..workflow_client import WorkflowClient
from .session_service import ImportScope, ImportSessionService

DEFAULT_BATCH_SIZE = 100


@dataclass(frozen=True)
class DispatchRequest:
    """Everything the workflow engine needs to pull one session's staged rows."""

    session_id: int
    import_type: str
    tenant_id: int
    is_live: bool
    batch_size: int
    callback_url: str
    api_base_url: str
    session_name: str
    total_records: int
    environment: str
    trigger_time: str
    reprocess_row_ids: tuple[int, ...] = ()

    @property
    def is_reprocess(self) -> bool:
        return bool(self.reprocess_row_ids)

    def to_payload(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "triggerTime": self.trigger_time,
            "environment": self.environment,
            "sessionName": self.session_name,
            "totalRecords": self.total_records,
            "reprocess": self.is_reprocess,
        }
        if self.is_reprocess:
            metadata["stagingRecordIds"] = list(self.reprocess_row_ids)
        return {
            "sessionId": self.session_id,
            "importType": self.import_type,
            "tenantId": self.tenant_id,
            "isLive": self.is_live,
            "batchSize": self.batch_size,
            "callbackUrl": self.callback_url,
            "apiBaseUrl": self.api_base_url,
            "metadata": metadata,
        }


@dataclass(slots=True)
class DispatchReceipt:
    session_id: int
    execution_id: str
    webhook_id: str | None = None
    attempts: int = 1
    placeholder: bool = False
    response: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "execution_id": self.execution_id,
            "webhook_id": self.webhook_id,
            "attempts": self.attempts,
            "placeholder": self.placeholder,
        }


def placeholder_execution_id(session_id: int, *, now_ms: int | None = None) -> str:
    """Synthesize an execution handle when the engine does not return one."""

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"wf_{now_ms}_{session_id}_{uuid4().hex[:9]}"


def extract_execution_handle(body: Any) -> tuple[str | None, str | None]:
    """Pull ``(execution_id, webhook_id)`` out of a webhook response body."""

    if isinstance(body, list) and body:
        body = body[0]
    if not isinstance(body, Mapping):
        return None, None
    data = body.get("data")
    nested = data.get("executionId") if isinstance(data, Mapping) else None
    execution_id = body.get("executionId") or body.get("id") or nested
    webhook_id = body.get("webhookId")
    return (
        str(execution_id) if execution_id else None,
        str(webhook_id) if webhook_id else None,
    )


class WorkflowDispatcher:
    """Drive the ``staged -> processing`` handoff and record its outcome."""

    def __init__(
        self,
        client: WorkflowClient,
        *,
        session: Session | None = None,
        session_service: ImportSessionService | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.session: Session = session or db.session
        self.sessions = session_service or ImportSessionService(self.session)
        self.batch_size = max(1, int(batch_size))
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # Public API -----------------------------------------------------------------

    def build_request(
        self,
        import_session: ImportSession,
        *,
        reprocess_row_ids: Sequence[int] | None = None,
    ) -> DispatchRequest:
        settings = self.client.settings
        return DispatchRequest(
            session_id=import_session.id,
            import_type=import_session.import_type.value,
            tenant_id=import_session.tenant_id,
            is_live=bool(import_session.is_live),
            batch_size=import_session.batch_size or self.batch_size,
            callback_url=settings.resolved_callback_url,
            api_base_url=settings.api_base_url,
            session_name=import_session.session_name,
            total_records=import_session.total_records,
            environment=settings.environment,
            trigger_time=self._clock().isoformat(),
            reprocess_row_ids=tuple(reprocess_row_ids or ()),
        )

    def dispatch(
        self,
        import_session: ImportSession,
        *,
        reprocess_row_ids: Sequence[int] | None = None,
        scope: ImportScope | None = None,
    ) -> DispatchReceipt:
        """
        Trigger the workflow for ``import_session``.

        A first dispatch requires ``staged`` and moves the session to
        ``processing`` before any HTTP call. A reprocess dispatch requires the
        session to have been reopened (``processing``). When every attempt
        fails the session is marked ``failed`` and ``DispatchError`` is raised;
        staged rows are left in place.
        """

        session_id = import_session.id
        # Status is checked under the row lock; concurrent dispatches serialize here
        import_session = self.sessions.lock_session(session_id, scope)
        try:
            if reprocess_row_ids:
                if import_session.status is not ImportSessionStatus.PROCESSING:
                    raise InvalidTransitionError(
                        session_id, import_session.status.value, ImportSessionStatus.PROCESSING.value
                    )
            else:
                self.sessions.mark_processing(import_session, batch_size=self.batch_size)
        except InvalidTransitionError:
            self.session.rollback()
            raise
        self.session.commit()

        request = self.build_request(import_session, reprocess_row_ids=reprocess_row_ids)
        try:
            body, attempts = self.client.trigger(request.to_payload())
        except DispatchError as exc:
            self._fail_session(session_id, f"Workflow trigger failed: {exc.message}")
            record_dispatch_result("failure")
            current_app.logger.error(
                "Workflow dispatch failed",
                extra={
                    "importer_session_id": session_id,
                    "importer_dispatch_attempts": exc.attempts,
                    "importer_error": exc.message,
                },
            )
            raise

        execution_id, webhook_id = extract_execution_handle(body)
        placeholder = execution_id is None
        if placeholder:
            execution_id = placeholder_execution_id(session_id)
            current_app.logger.warning(
                "Workflow response carried no execution id; using placeholder",
                extra={"importer_session_id": session_id, "importer_execution_id": execution_id},
            )

        import_session = self.sessions.get_session(session_id)
        import_session.workflow_execution_id = execution_id
        import_session.workflow_webhook_id = webhook_id
        self.sessions.merge_metadata(
            import_session,
            dispatch={
                "triggered_at": request.trigger_time,
                "attempts": attempts,
                "webhook_url": self.client.settings.webhook_url,
                "placeholder_execution_id": placeholder,
                "reprocess": request.is_reprocess,
            },
        )
        self.session.commit()
        record_dispatch_result("success")

        current_app.logger.info(
            "Workflow dispatched",
            extra={
                "importer_session_id": session_id,
                "importer_execution_id": execution_id,
                "importer_dispatch_attempts": attempts,
                "importer_reprocess": request.is_reprocess,
            },
        )
        return DispatchReceipt(
            session_id=session_id,
            execution_id=execution_id,
            webhook_id=webhook_id,
            attempts=attempts,
            placeholder=placeholder,
            response=dict(body) if isinstance(body, Mapping) else {},
        )

    def cancel(
        self,
        import_session: ImportSession,
        *,
        reason: str | None = None,
        scope: ImportScope | None = None,
    ) -> bool | None:
        """
        Cancel the session, then ask the engine to stop its execution.

        Returns whether the engine acknowledged the stop, or None when there
        was no real execution to stop. The session stays ``cancelled`` either
        way.
        """

        import_session = self.sessions.lock_session(import_session.id, scope)
        try:
            self.sessions.cancel(import_session, reason=reason)
        except InvalidTransitionError:
            self.session.rollback()
            raise
        self.session.commit()

        execution_id = import_session.workflow_execution_id
        metadata = import_session.processing_metadata or {}
        if not execution_id or (metadata.get("dispatch") or {}).get("placeholder_execution_id"):
            return None

        stopped = self.client.cancel_execution(execution_id)
        self.sessions.merge_metadata(import_session, execution_stop_acknowledged=stopped)
        self.session.commit()
        current_app.logger.info(
            "Import session cancelled",
            extra={
                "importer_session_id": import_session.id,
                "importer_execution_id": execution_id,
                "importer_execution_stopped": stopped,
            },
        )
        return stopped

    # Internal helpers -----------------------------------------------------------

    def _fail_session(self, session_id: int, message: str) -> None:
        self.session.rollback()
        import_session = self.sessions.get_session(session_id)
        if self.sessions.mark_failed(import_session, message):
            self.session.commit()
