"""Explsync CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from explsync import __version__

if TYPE_CHECKING:
    from explsync.infrastructure.config import SyncConfig

_project_option = click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root holding the manifest (default: current directory).",
)
_database_option = click.option(
    "--database",
    default=None,
    help="SQLite database path or sqlite:/// URL (default: config or $DATABASE_URL).",
)
_link_mode_option = click.option(
    "--link-mode",
    type=click.Choice(["auto", "single", "ordered"]),
    default=None,
    help="Link variant (default: from config, 'auto' follows the manifest shape).",
)


@click.group()
@click.version_option(version=__version__, prog_name="explsync")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """Explsync - sync explanations and question links from a manifest."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", force=True)


def _load_config(project: Path | None, **overrides: str | None) -> SyncConfig:
    from explsync.infrastructure.config import ConfigError, load_config

    try:
        return load_config(project or Path.cwd(), **overrides)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@main.command()
@_project_option
@_database_option
def init(*, project: Path | None, database: str | None) -> None:
    """Create the explanation/question schema in the database."""
    from explsync.infrastructure.config import ConfigError
    from explsync.infrastructure.db import create_schema, open_db

    config = _load_config(project, database=database)
    try:
        db_path = config.database_path
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = open_db(db_path)
    create_schema(conn)
    conn.close()
    click.echo(f"Schema ready: {db_path}")


@main.command()
@_project_option
@_database_option
@_link_mode_option
@click.option(
    "--full",
    is_flag=True,
    default=False,
    help="Replay the whole manifest instead of diffing against the previous revision.",
)
@click.option("--since", default=None, help="Git ref of the previous manifest (default: HEAD~1).")
@click.option("--dry-run", is_flag=True, help="Plan only; do not touch the database.")
@click.option("--json", "as_json", is_flag=True, help="Output the report as JSON.")
def sync(
    *,
    project: Path | None,
    database: str | None,
    link_mode: str | None,
    full: bool,
    since: str | None,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Reconcile the database with the manifest.

    By default, applies only what changed since the previous manifest
    revision.  Use --full to replay every manifest entry.
    """
    from explsync.infrastructure.config import ConfigError
    from explsync.infrastructure.db import create_schema, open_db
    from explsync.infrastructure.store import SqliteStore
    from explsync.manifest.loader import ManifestError
    from explsync.reconcile.applier import ApplyError
    from explsync.reconcile.engine import run_sync
    from explsync.reconcile.report import render_report, report_to_dict

    config = _load_config(project, database=database, link_mode=link_mode)
    try:
        db_path = config.database_path
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    if not db_path.exists():
        click.echo("Error: database not found. Run `explsync init` first.", err=True)
        sys.exit(1)

    conn = open_db(db_path)
    try:
        create_schema(conn)
        report = run_sync(
            config,
            SqliteStore(conn),
            full=full,
            since=since,
            dry_run=dry_run,
            conn=conn,
        )
    except (ConfigError, ManifestError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    except ApplyError as exc:
        click.echo(f"Error: {exc}", err=True)
        click.echo(
            f"Applied {exc.report.operations_applied} of {exc.report.operations_planned} "
            "operations before the failure; re-run to converge.",
            err=True,
        )
        sys.exit(1)
    finally:
        conn.close()

    if as_json:
        click.echo(json.dumps(report_to_dict(report), ensure_ascii=False, indent=2))
    else:
        from rich.console import Console

        render_report(report, Console())


@main.command()
@_project_option
@_link_mode_option
@click.option("--full", is_flag=True, default=False, help="Plan a full rebuild.")
@click.option("--since", default=None, help="Git ref of the previous manifest (default: HEAD~1).")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def plan(
    *,
    project: Path | None,
    link_mode: str | None,
    full: bool,
    since: str | None,
    as_json: bool,
) -> None:
    """Show the operations a sync would apply.

    Exit code 0 = nothing to do, 1 = operations pending.
    """
    from explsync.infrastructure.config import ConfigError
    from explsync.manifest.loader import ManifestError
    from explsync.reconcile.engine import prepare_sync
    from explsync.reconcile.planner import plan_to_dict, render_plan

    config = _load_config(project, link_mode=link_mode)
    try:
        prepared = prepare_sync(config, full=full, since=since)
    except (ConfigError, ManifestError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(plan_to_dict(prepared.plan), ensure_ascii=False, indent=2))
    else:
        from rich.console import Console

        render_plan(prepared.plan, Console())

    if prepared.plan.operations:
        sys.exit(1)


@main.command()
@_project_option
@_database_option
def status(*, project: Path | None, database: str | None) -> None:
    """Show row counts and the last sync."""
    from explsync.infrastructure.config import ConfigError
    from explsync.infrastructure.db import get_meta, open_db, table_counts

    config = _load_config(project, database=database)
    try:
        db_path = config.database_path
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    if not db_path.exists():
        click.echo("Error: database not found. Run `explsync init` first.", err=True)
        sys.exit(1)

    conn = open_db(db_path)
    try:
        counts = table_counts(conn)
        last_at = get_meta(conn, "last_sync_at")
        last_mode = get_meta(conn, "last_sync_mode")
        last_rev = get_meta(conn, "last_sync_revision")
    finally:
        conn.close()

    click.echo(f"Explanations:     {counts['explanation']}")
    click.echo(f"Questions:        {counts['question']}")
    click.echo(f"Linked questions: {counts['linked_questions']}")
    click.echo(f"Ordered links:    {counts['question_to_explanation']}")
    if last_at:
        click.echo(f"Last sync:        {last_at} ({last_mode})")
        if last_rev:
            click.echo(f"Revision:         {last_rev}")
    else:
        click.echo("Last sync:        never")
