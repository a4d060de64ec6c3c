"""Sync orchestrator: full rebuild and incremental reconciliation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from explsync import __version__
from explsync.infrastructure.config import check_sources
from explsync.infrastructure.db import set_meta
from explsync.manifest.content import ContentSource
from explsync.manifest.loader import Manifest, load_manifest
from explsync.manifest.revision import head_revision, load_previous_snapshot
from explsync.reconcile.applier import apply_plan
from explsync.reconcile.diff import compute_diff, full_diff, resolve_link_mode
from explsync.reconcile.planner import SyncPlan, plan_sync
from explsync.reconcile.report import SyncReport

if TYPE_CHECKING:
    import sqlite3

    from explsync.infrastructure.config import SyncConfig
    from explsync.infrastructure.store import ExplanationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedSync:
    """Everything validated and planned, before any store mutation."""

    plan: SyncPlan
    mode: str
    since: str | None
    current: Manifest
    undeclared_files: tuple[str, ...] = ()


def prepare_sync(
    config: SyncConfig,
    *,
    full: bool = False,
    since: str | None = None,
) -> PreparedSync:
    """Load and validate both manifests, diff them and build the plan.

    Pure with respect to the store: nothing is written.

    Raises:
        ConfigError: If the manifest or content directory is missing.
        ManifestError: If either manifest revision is malformed.
        ValueError: If the git ref is invalid.
    """
    check_sources(config)
    current = load_manifest(config.manifest_path)
    link_mode = resolve_link_mode(config.link_mode, current)
    logger.info(
        "Loaded %d manifest entries (%s shape, %s links)",
        len(current.entries),
        current.shape,
        link_mode,
    )

    if full:
        diff = full_diff(current, link_mode=link_mode)
        ref = None
    else:
        ref = since or config.since
        previous = load_previous_snapshot(
            config.project_root, config.manifest, config.content_dir, ref
        )
        diff = compute_diff(
            previous.manifest, current, previous.changed_paths, link_mode=link_mode
        )

    plan = plan_sync(diff)
    logger.info("Planned %d operations", len(plan.operations))

    content = ContentSource(config.content_path, svg_base_url=config.svg_base_url)
    undeclared = tuple(p for p in content.scan() if p not in current.paths)
    return PreparedSync(
        plan=plan,
        mode="full" if full else "incremental",
        since=ref,
        current=current,
        undeclared_files=undeclared,
    )


def _new_report(prepared: PreparedSync, *, dry_run: bool) -> SyncReport:
    return SyncReport(
        mode=prepared.mode,
        link_mode=prepared.plan.link_mode,
        since=prepared.since,
        dry_run=dry_run,
        undeclared_files=list(prepared.undeclared_files),
        warnings=list(prepared.current.warnings),
    )


def _record_meta(conn: sqlite3.Connection, config: SyncConfig, mode: str) -> None:
    now = datetime.now(tz=timezone.utc).isoformat()
    set_meta(conn, "last_sync_at", now)
    set_meta(conn, "last_sync_mode", mode)
    set_meta(conn, "explsync_version", __version__)
    revision = head_revision(config.project_root)
    if revision:
        set_meta(conn, "last_sync_revision", revision)


def run_sync(
    config: SyncConfig,
    store: ExplanationStore,
    *,
    full: bool = False,
    since: str | None = None,
    dry_run: bool = False,
    conn: sqlite3.Connection | None = None,
) -> SyncReport:
    """Run one reconciliation against *store*.

    Parameters
    ----------
    config:
        Resolved project configuration.
    store:
        Store collaborator receiving the mutations.
    full:
        Replay the whole manifest instead of diffing against *since*.
    since:
        Git ref of the previous manifest revision (default from config).
    dry_run:
        Plan only; the store is not touched.
    conn:
        When given, sync metadata is recorded in its ``meta`` table.

    Returns
    -------
    SyncReport
        Counts and unresolved references.

    Raises
    ------
    ApplyError
        If a store mutation fails part-way through.
    """
    prepared = prepare_sync(config, full=full, since=since)
    report = _new_report(prepared, dry_run=dry_run)

    if dry_run:
        report.diff_counts = prepared.plan.diff.counts()
        report.operations_planned = len(prepared.plan.operations)
        return report

    content = ContentSource(config.content_path, svg_base_url=config.svg_base_url)
    apply_plan(prepared.plan, store, content, report=report)

    if conn is not None:
        _record_meta(conn, config, prepared.mode)
    logger.info(
        "Sync done: %d upserted, %d deleted, %d links created, %d links removed",
        report.explanations_upserted,
        report.explanations_deleted,
        report.links_created,
        report.links_removed,
    )
    return report
