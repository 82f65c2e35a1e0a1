"""
Per-application pipeline wiring.

``init_importer`` builds one ``PipelineContext`` per Flask app and stores it on
``app.extensions["importer"]``. Request handlers, CLI commands and Celery tasks
fetch it with ``get_pipeline_context()`` and ask it for pipeline services bound
to the current database session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from flask import Flask, current_app
from sqlalchemy.orm import Session

from import_hub.models.importer.schema import ImportSession

from .celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from .files import FileLocator, build_file_locator
from .pipeline.dispatcher import DispatchReceipt, WorkflowDispatcher
from .pipeline.progress import ProgressReporter
from .pipeline.reconciler import CallbackReconciler
from .pipeline.session_service import ImportScope, ImportSessionService
from .pipeline.staging import StagingPopulator
from .utils import resolve_upload_directory
from .workflow_client import WorkflowClient, WorkflowSettings

IMPORTER_EXTENSION_KEY = "importer"
DISPATCH_TASK_NAME = "importer.pipeline.dispatch_session"


@dataclass
class PipelineContext:
    """Long-lived collaborators shared by every pipeline entry point."""

    workflow_client: WorkflowClient
    file_locator: FileLocator
    upload_dir: Path
    batch_size: int = 100
    staging_flush_size: int = 500
    worker_enabled: bool = False
    closed: bool = field(default=False, init=False)

    @classmethod
    def from_app(cls, app: Flask, *, workflow_client: WorkflowClient | None = None) -> "PipelineContext":
        upload_dir = resolve_upload_directory(app)
        client = workflow_client or WorkflowClient(
            WorkflowSettings.from_config(app.config),
            logger=logging.getLogger("import_hub.importer.workflow"),
        )
        return cls(
            workflow_client=client,
            file_locator=build_file_locator(
                app.config.get("IMPORTER_FILE_LOOKUP_FALLBACK"),
                upload_dir=upload_dir,
            ),
            upload_dir=upload_dir,
            batch_size=int(app.config.get("IMPORTER_BATCH_SIZE", 100)),
            staging_flush_size=int(app.config.get("IMPORTER_STAGING_FLUSH_SIZE", 500)),
            worker_enabled=bool(app.config.get("IMPORTER_WORKER_ENABLED", False)),
        )

    # Service factories ----------------------------------------------------------

    def session_service(self, session: Session | None = None) -> ImportSessionService:
        return ImportSessionService(session)

    def populator(self, session: Session | None = None) -> StagingPopulator:
        return StagingPopulator(session, flush_size=self.staging_flush_size)

    def dispatcher(self, session: Session | None = None) -> WorkflowDispatcher:
        return WorkflowDispatcher(self.workflow_client, session=session, batch_size=self.batch_size)

    def reconciler(self, session: Session | None = None) -> CallbackReconciler:
        return CallbackReconciler(session)

    def reporter(self, session: Session | None = None) -> ProgressReporter:
        return ProgressReporter(session)

    # Dispatch routing -----------------------------------------------------------

    def submit_dispatch(
        self,
        import_session: ImportSession,
        *,
        reprocess_row_ids: Sequence[int] | None = None,
        scope: ImportScope | None = None,
    ) -> dict[str, Any]:
        """
        Dispatch inline, or enqueue on the worker when it is enabled.

        Returns a response fragment describing what happened. Inline dispatch
        failures propagate as ``DispatchError``.
        """

        if self.worker_enabled:
            celery_app = get_celery_app(current_app)
            task = celery_app.tasks.get(DISPATCH_TASK_NAME) if celery_app is not None else None
            if task is None:
                raise RuntimeError(f"Celery task '{DISPATCH_TASK_NAME}' is not registered.")
            async_result = task.apply_async(
                kwargs={
                    "session_id": import_session.id,
                    "reprocess_row_ids": list(reprocess_row_ids or ()),
                },
                queue=DEFAULT_QUEUE_NAME,
            )
            current_app.logger.info(
                "Workflow dispatch queued",
                extra={"importer_session_id": import_session.id, "importer_task_id": async_result.id},
            )
            return {"queued": True, "task_id": async_result.id}

        receipt: DispatchReceipt = self.dispatcher().dispatch(
            import_session, reprocess_row_ids=reprocess_row_ids, scope=scope
        )
        return {"queued": False, "dispatch": receipt.as_dict()}

    def close(self) -> None:
        if self.closed:
            return
        self.workflow_client.close()
        self.closed = True


def get_pipeline_context(app: Flask | None = None) -> PipelineContext:
    app = app or current_app._get_current_object()  # type: ignore[attr-defined]
    state = app.extensions.get(IMPORTER_EXTENSION_KEY) or {}
    context = state.get("context")
    if context is None:
        raise RuntimeError("Importer pipeline is not initialised; call init_importer(app) first.")
    return context
