"""Reconcile domain — identity, diff, planner, applier, report.

Note: ``explsync.reconcile.engine`` is not re-exported here; it is the
orchestrator that pulls in the manifest and infrastructure domains.  Import
it directly::

    from explsync.reconcile.engine import prepare_sync, run_sync
"""

from explsync.reconcile.applier import ApplyError, apply_plan
from explsync.reconcile.diff import (
    LINK_ORDERED,
    LINK_SINGLE,
    EntryChange,
    ManifestDiff,
    compute_diff,
    diff_to_dict,
    full_diff,
    resolve_link_mode,
)
from explsync.reconcile.identity import derive_explanation_id
from explsync.reconcile.planner import (
    GROUPS,
    DeleteExplanation,
    LinkQuestion,
    Operation,
    ReplaceOrderedLinks,
    SyncPlan,
    UnlinkQuestion,
    UpsertExplanation,
    plan_sync,
    plan_to_dict,
    render_plan,
)
from explsync.reconcile.report import SyncReport, render_report, report_to_dict

__all__ = [
    "GROUPS",
    "LINK_ORDERED",
    "LINK_SINGLE",
    "ApplyError",
    "DeleteExplanation",
    "EntryChange",
    "LinkQuestion",
    "ManifestDiff",
    "Operation",
    "ReplaceOrderedLinks",
    "SyncPlan",
    "SyncReport",
    "UnlinkQuestion",
    "UpsertExplanation",
    "apply_plan",
    "compute_diff",
    "derive_explanation_id",
    "diff_to_dict",
    "full_diff",
    "plan_sync",
    "plan_to_dict",
    "render_plan",
    "render_report",
    "resolve_link_mode",
]
