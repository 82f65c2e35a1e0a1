"""
Importer Celery tasks.

Tasks run inside the Flask app context (see ``FlaskContextTask``) and reuse the
same pipeline services as the HTTP views, so inline and queued dispatch behave
identically.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from celery import shared_task
from flask import current_app

from import_hub.importer.context import get_pipeline_context
from import_hub.importer.errors import DispatchError


@shared_task(name="importer.healthcheck", bind=True)
def importer_healthcheck(self) -> dict[str, Any]:
    """
    Simple heartbeat task used by worker health checks.
    """
    now = datetime.now(timezone.utc)
    return {
        "status": "ok",
        "timestamp": now.isoformat(),
        "worker_hostname": self.request.hostname,
    }


@shared_task(name="importer.pipeline.dispatch_session", bind=True)
def dispatch_session(self, *, session_id: int, reprocess_row_ids: list[int] | None = None) -> dict[str, Any]:
    """
    Dispatch a staged (or reopened) session to the workflow engine.

    A dispatch that exhausts its retries has already marked the session
    ``failed``; the task reports that outcome instead of raising so Celery does
    not redeliver it.
    """

    context = get_pipeline_context()
    import_session = context.session_service().get_session(session_id)
    try:
        receipt = context.dispatcher().dispatch(import_session, reprocess_row_ids=reprocess_row_ids or None)
    except DispatchError as exc:
        current_app.logger.warning(
            "Queued workflow dispatch failed",
            extra={"importer_session_id": session_id, "importer_task_id": self.request.id},
        )
        return {"session_id": session_id, "status": "failed", "error": exc.message, "attempts": exc.attempts}

    return {"status": "dispatched", **receipt.as_dict()}
