"""
Import session pipeline package.

``init_importer`` builds the pipeline context, Celery wiring, blueprint and
CLI for an app, recording state inside ``app.extensions['importer']``.
"""

from __future__ import annotations

import atexit
from typing import Any

from flask import Flask

from import_hub.utils.importer import is_importer_enabled, is_worker_enabled

from .celery_app import ensure_celery_app, get_celery_app
from .cli import get_disabled_importer_group, importer_cli
from .context import IMPORTER_EXTENSION_KEY, PipelineContext, get_pipeline_context
from .views import importer_blueprint

__all__ = [
    "IMPORTER_EXTENSION_KEY",
    "PipelineContext",
    "get_celery_app",
    "get_pipeline_context",
    "init_importer",
]


def _ensure_extension_state(app: Flask) -> dict[str, Any]:
    return app.extensions.setdefault(
        IMPORTER_EXTENSION_KEY,
        {
            "enabled": False,
            "worker_enabled": False,
            "celery_app": None,
            "context": None,
        },
    )


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    # Avoid duplicate registrations when running tests
    if importer_cli.name in app.cli.commands:
        app.cli.commands.pop(importer_cli.name)

    if enabled:
        app.cli.add_command(importer_cli)
    else:
        app.cli.add_command(get_disabled_importer_group())


def init_importer(app: Flask, *, context: PipelineContext | None = None) -> PipelineContext | None:
    """
    Conditionally mount the importer blueprint, CLI and worker wiring.

    ``context`` lets tests inject a pipeline context (for example one whose
    workflow client talks to a fake HTTP session). Calling this again replaces
    the previous context and closes it.
    """
    enabled = is_importer_enabled(app)
    state = _ensure_extension_state(app)
    state.update({"enabled": enabled, "worker_enabled": is_worker_enabled(app)})

    if not enabled:
        _set_cli(app, enabled=False)
        app.logger.info("Importer disabled via IMPORTER_ENABLED flag; skipping registration.")
        return None

    previous: PipelineContext | None = state.get("context")
    pipeline_context = context or PipelineContext.from_app(app)
    state["context"] = pipeline_context
    if previous is not None and previous is not pipeline_context:
        previous.close()
    atexit.register(pipeline_context.close)

    ensure_celery_app(app, state)

    if importer_blueprint.name not in app.blueprints and not getattr(app, "_got_first_request", False):
        app.register_blueprint(importer_blueprint)
    elif importer_blueprint.name not in app.blueprints:
        app.logger.warning(
            "Importer blueprint registration skipped because the app has already handled its first request."
        )
    _set_cli(app, enabled=True)

    app.logger.info(
        "Importer enabled",
        extra={
            "importer_worker_enabled": state["worker_enabled"],
            "importer_workflow_url": pipeline_context.workflow_client.settings.webhook_url,
            "importer_file_lookup_fallback": app.config.get("IMPORTER_FILE_LOOKUP_FALLBACK"),
        },
    )
    return pipeline_context
