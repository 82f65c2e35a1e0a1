"""
Operator commands for import sessions, the workflow engine, and the worker.

Mounted as ``flask importer`` by ``init_importer``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask import current_app
from flask.cli import AppGroup, ScriptInfo
from sqlalchemy.exc import NoResultFound

from import_hub.importer.celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from import_hub.importer.context import get_pipeline_context
from import_hub.importer.errors import ImporterError
from import_hub.importer.mapping import MappingLoadError, load_mapping_file, validate_mapping_set
from import_hub.importer.parser import parse_file
from import_hub.importer.pipeline import ImportScope, SessionFilters, serialize_session
from import_hub.models import db
from import_hub.models.importer.schema import ImportType
from import_hub.utils.importer import is_importer_enabled


@click.group(name="importer", cls=AppGroup, invoke_without_command=True)
@click.pass_context
def importer_cli(ctx):
    """Import session management commands."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_importer_enabled(app):
        raise click.ClickException(
            "Importer is disabled via IMPORTER_ENABLED=false. Enable it to run importer CLI commands."
        )
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def get_disabled_importer_group() -> click.Group:
    """
    Return a minimal command group that informs the operator the importer is disabled.
    """

    @click.group(name="importer", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Importer commands are unavailable because IMPORTER_ENABLED=false.")

    return disabled_group


def _resolve_celery(app) -> Celery:
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise click.ClickException(
            "Importer Celery app is unavailable. Ensure IMPORTER_ENABLED=true and the "
            "importer package initialises before running worker commands."
        )
    return celery_app


def _load_session(session_id: int):
    try:
        return get_pipeline_context().session_service().get_session(session_id)
    except NoResultFound as exc:
        raise click.ClickException(f"Import session {session_id} not found.") from exc


def _format_session_line(payload: dict) -> str:
    return (
        f"{payload['id']:>6}  {payload['status']:<22} {payload['import_type']:<16} "
        f"{payload['processed_records']}/{payload['total_records']:<8} {payload['session_name']}"
    )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@importer_cli.group(name="sessions")
def sessions_group():
    """Inspect and act on import sessions."""


@sessions_group.command("list")
@click.option("--tenant", "tenant_id", type=int, required=True, help="Tenant id to list sessions for.")
@click.option("--live", is_flag=True, help="List live-environment sessions instead of test ones.")
@click.option("--status", "statuses", multiple=True, help="Filter by status (repeatable).")
@click.option("--type", "import_types", multiple=True, help="Filter by import type (repeatable).")
@click.option("--page", default=1, show_default=True, type=int)
@click.option("--page-size", default=20, show_default=True, type=int)
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of a table.")
def sessions_list(tenant_id, live, statuses, import_types, page, page_size, as_json):
    """List import sessions for one tenant."""
    try:
        filters = SessionFilters.coerce(
            page=page, page_size=page_size, statuses=statuses, import_types=import_types, max_page_size=500
        )
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    result = get_pipeline_context().reporter().list_sessions(ImportScope(tenant_id, live), filters)
    payloads = [serialize_session(item) for item in result.items]
    if as_json:
        click.echo(json.dumps({"sessions": payloads, "total": result.total, "page": result.page}, indent=2))
        return
    if not payloads:
        click.echo("No import sessions found.")
        return
    for payload in payloads:
        click.echo(_format_session_line(payload))
    click.echo(f"Page {result.page}/{max(result.total_pages, 1)} ({result.total} sessions)")


@sessions_group.command("status")
@click.argument("session_id", type=int)
def sessions_status(session_id: int):
    """Print the progress snapshot for a session."""
    import_session = _load_session(session_id)
    snapshot = get_pipeline_context().reporter().status(import_session)
    click.echo(json.dumps(snapshot.as_dict(), indent=2))


@sessions_group.command("cancel")
@click.argument("session_id", type=int)
@click.option("--reason", default=None, help="Reason recorded on the session.")
def sessions_cancel(session_id: int, reason: Optional[str]):
    """Cancel a session and ask the workflow engine to stop it."""
    import_session = _load_session(session_id)
    try:
        stopped = get_pipeline_context().dispatcher().cancel(import_session, reason=reason or "Cancelled via CLI")
    except ImporterError as exc:
        db.session.rollback()
        raise click.ClickException(exc.message) from exc
    stop_note = {True: "execution stopped", False: "execution stop not acknowledged", None: "no execution to stop"}
    click.echo(f"Import session {session_id} cancelled ({stop_note[stopped]}).")


@sessions_group.command("reprocess")
@click.argument("session_id", type=int)
def sessions_reprocess(session_id: int):
    """Reset failed rows and dispatch them again."""
    context = get_pipeline_context()
    try:
        reset_ids = context.reconciler().reset_failed_records(session_id)
        import_session = context.session_service().get_session(session_id)
        outcome = context.submit_dispatch(import_session, reprocess_row_ids=reset_ids)
    except NoResultFound as exc:
        raise click.ClickException(f"Import session {session_id} not found.") from exc
    except ImporterError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(json.dumps({"session_id": session_id, "reset_record_ids": reset_ids, **outcome}, indent=2))


# ---------------------------------------------------------------------------
# Staging
# ---------------------------------------------------------------------------


@importer_cli.command("stage")
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="CSV or XLSX file to stage.",
)
@click.option(
    "--mapping",
    "mapping_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="YAML mapping set (import_type + fields).",
)
@click.option("--type", "import_type", default=None, help="Import type; defaults to the mapping file's.")
@click.option("--tenant", "tenant_id", required=True, type=int)
@click.option("--live", is_flag=True, help="Stage into the live environment.")
@click.option("--name", "session_name", default=None, help="Session name; defaults to the file name.")
@click.option("--dispatch", "dispatch_after", is_flag=True, help="Dispatch to the workflow engine after staging.")
def stage_command(file_path, mapping_path, import_type, tenant_id, live, session_name, dispatch_after):
    """Create a session from a local file and stage it."""
    try:
        mapping_type, mappings = load_mapping_file(mapping_path)
    except MappingLoadError as exc:
        raise click.ClickException(str(exc)) from exc

    if import_type:
        try:
            resolved_type = ImportType.coerce(import_type)
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
        if resolved_type is not mapping_type:
            raise click.ClickException(
                f"Mapping file is for {mapping_type.value}, but --type is {resolved_type.value}."
            )
    else:
        resolved_type = mapping_type

    try:
        headers = parse_file(file_path, max_rows=0).headers
    except ImporterError as exc:
        raise click.ClickException(exc.message) from exc
    errors = validate_mapping_set(mappings, resolved_type, headers)
    if errors:
        raise click.ClickException("Field mapping validation failed:\n  - " + "\n  - ".join(errors))

    context = get_pipeline_context()
    import_session = context.session_service().create_session(
        scope=ImportScope(tenant_id, live),
        session_name=session_name or file_path.name,
        import_type=resolved_type,
        mappings=mappings,
        source_file=str(file_path.resolve()),
    )
    db.session.commit()
    session_id = import_session.id

    try:
        summary = context.populator().populate(import_session, file_path, mappings)
    except ImporterError as exc:
        raise click.ClickException(f"Import session {session_id}: {exc.message}") from exc

    click.echo(
        f"Import session {session_id} staged: {summary.total_rows} rows "
        f"({summary.rows_with_errors} with validation warnings)."
    )
    if dispatch_after:
        try:
            outcome = context.submit_dispatch(import_session)
        except ImporterError as exc:
            raise click.ClickException(f"Import session {session_id}: {exc.message}") from exc
        click.echo(json.dumps({"session_id": session_id, **outcome}, indent=2))


# ---------------------------------------------------------------------------
# Workflow engine
# ---------------------------------------------------------------------------


@importer_cli.group(name="workflow")
def workflow_group():
    """Workflow engine connectivity."""


@workflow_group.command("check")
@click.option("--skip-connection", is_flag=True, help="Only validate configuration; do not call the engine.")
def workflow_check(skip_connection: bool):
    """Validate workflow configuration and connectivity."""
    client = get_pipeline_context().workflow_client
    errors, warnings = client.validate_configuration(check_connection=not skip_connection)
    for warning in warnings:
        click.echo(f"warning: {warning}", err=True)
    if errors:
        raise click.ClickException("Workflow configuration invalid:\n  - " + "\n  - ".join(errors))
    click.echo(f"Workflow configuration OK ({client.settings.webhook_url}).")


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------


@importer_cli.group(name="worker")
def worker_group():
    """Manage the importer background worker."""


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option("--pool", type=str, help="Celery pool implementation (e.g., 'prefork', 'solo', 'threads').")
@click.option("--queues", default=DEFAULT_QUEUE_NAME, show_default=True, help="Comma-separated queue list.")
def worker_run(loglevel: str, concurrency: Optional[int], pool: Optional[str], queues: str):
    """
    Start the Celery worker in the current process.
    """
    app = current_app._get_current_object()
    if not app.config.get("IMPORTER_WORKER_ENABLED"):
        click.echo("Warning: IMPORTER_WORKER_ENABLED is false; the API will keep dispatching inline.", err=True)
    celery_app = _resolve_celery(app)

    argv = ["worker", "--loglevel", loglevel, "-Q", queues]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])

    click.echo(f"Starting importer worker (queues: {queues}, loglevel: {loglevel})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
def worker_ping(timeout: float):
    """
    Validate worker connectivity by executing the heartbeat task.
    """
    celery_app = _resolve_celery(current_app._get_current_object())
    task = celery_app.tasks.get("importer.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'importer.healthcheck' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc

    click.echo(json.dumps(payload, indent=2))
