"""Mutation planner: turn a manifest diff into an ordered list of store operations."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Union

from rich.markup import escape

from explsync.reconcile.diff import LINK_ORDERED, ManifestDiff
from explsync.reconcile.identity import derive_explanation_id

if TYPE_CHECKING:
    from rich.console import Console

GROUP_REMOVED = "removed"
GROUP_ADDED = "added"
GROUP_LINKS_MODIFIED = "links_modified"
GROUP_CONTENT_ONLY = "content_only"

# Application order.
GROUPS = (GROUP_REMOVED, GROUP_ADDED, GROUP_LINKS_MODIFIED, GROUP_CONTENT_ONLY)


@dataclass(frozen=True)
class UpsertExplanation:
    """Insert or update the explanation row with freshly read content."""

    group: str
    path: str
    explanation_id: str
    kind: str = field(default="upsert", init=False)


@dataclass(frozen=True)
class DeleteExplanation:
    """Best-effort delete of the explanation row."""

    group: str
    path: str
    explanation_id: str
    kind: str = field(default="delete", init=False)


@dataclass(frozen=True)
class LinkQuestion:
    """Point the question's single link at the explanation."""

    group: str
    question_id: str
    path: str
    explanation_id: str
    kind: str = field(default="link", init=False)


@dataclass(frozen=True)
class UnlinkQuestion:
    """Clear the question's link only if it still points at the explanation."""

    group: str
    question_id: str
    path: str
    explanation_id: str
    kind: str = field(default="unlink", init=False)


@dataclass(frozen=True)
class ReplaceOrderedLinks:
    """Rewrite a question's ordered links to match the manifest."""

    group: str
    question_id: str
    paths: tuple[str, ...]
    explanation_ids: tuple[str, ...]
    kind: str = field(default="replace_links", init=False)


Operation = Union[
    UpsertExplanation, DeleteExplanation, LinkQuestion, UnlinkQuestion, ReplaceOrderedLinks
]


@dataclass(frozen=True)
class SyncPlan:
    """Operations in application order, plus the diff they came from."""

    diff: ManifestDiff
    operations: tuple[Operation, ...] = ()

    @property
    def link_mode(self) -> str:
        return self.diff.link_mode

    def by_group(self) -> dict[str, list[Operation]]:
        grouped: dict[str, list[Operation]] = {g: [] for g in GROUPS}
        for op in self.operations:
            grouped[op.group].append(op)
        return grouped

    def kind_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for op in self.operations:
            counts[op.kind] = counts.get(op.kind, 0) + 1
        return counts


def _ordered_relinks(diff: ManifestDiff) -> list[ReplaceOrderedLinks]:
    """One replace per question touched by a removed, added or modified entry."""
    affected: set[str] = set()
    for entry in diff.removed:
        affected.update(entry.questions)
    for entry in diff.added:
        affected.update(entry.questions)
    for change in diff.links_modified:
        affected.update(change.old_questions)
        affected.update(change.new_questions)

    ops: list[ReplaceOrderedLinks] = []
    for qid in sorted(affected):
        paths = diff.new.orders.get(qid, ())
        ops.append(
            ReplaceOrderedLinks(
                group=GROUP_LINKS_MODIFIED,
                question_id=qid,
                paths=paths,
                explanation_ids=tuple(derive_explanation_id(p) for p in paths),
            )
        )
    return ops


def plan_sync(diff: ManifestDiff) -> SyncPlan:
    """Build the operation list for *diff*.

    Groups are emitted in :data:`GROUPS` order so removals land before
    additions.  In single-link mode a modified entry unlinks dropped
    questions (scoped) before linking new ones; questions kept on the entry
    are left alone.  In ordered mode links are rewritten per affected
    question at the end of the ``links_modified`` group, after every
    explanation row they may reference has been upserted.
    """
    ordered = diff.link_mode == LINK_ORDERED
    ops: list[Operation] = []

    for entry in diff.removed:
        eid = derive_explanation_id(entry.path)
        if not ordered:
            for qid in entry.questions:
                ops.append(UnlinkQuestion(GROUP_REMOVED, qid, entry.path, eid))
        ops.append(DeleteExplanation(GROUP_REMOVED, entry.path, eid))

    for entry in diff.added:
        eid = derive_explanation_id(entry.path)
        ops.append(UpsertExplanation(GROUP_ADDED, entry.path, eid))
        if not ordered:
            for qid in entry.questions:
                ops.append(LinkQuestion(GROUP_ADDED, qid, entry.path, eid))

    for change in diff.links_modified:
        eid = derive_explanation_id(change.path)
        if change.content_changed:
            ops.append(UpsertExplanation(GROUP_LINKS_MODIFIED, change.path, eid))
        if not ordered:
            for qid in change.unlinked:
                ops.append(UnlinkQuestion(GROUP_LINKS_MODIFIED, qid, change.path, eid))
            for qid in change.linked:
                ops.append(LinkQuestion(GROUP_LINKS_MODIFIED, qid, change.path, eid))

    if ordered:
        ops.extend(_ordered_relinks(diff))

    for entry in diff.content_only:
        ops.append(
            UpsertExplanation(GROUP_CONTENT_ONLY, entry.path, derive_explanation_id(entry.path))
        )

    return SyncPlan(diff=diff, operations=tuple(ops))


def _describe(op: Operation) -> str:
    if isinstance(op, UpsertExplanation):
        return f"[green]+ upsert[/green] {escape(op.path)} [dim]({op.explanation_id})[/dim]"
    if isinstance(op, DeleteExplanation):
        return f"[red]- delete[/red] {escape(op.path)} [dim]({op.explanation_id})[/dim]"
    if isinstance(op, LinkQuestion):
        return f"[cyan]~ link[/cyan]   {escape(op.question_id)} → {escape(op.path)}"
    if isinstance(op, UnlinkQuestion):
        target = f"{escape(op.question_id)} ✕ {escape(op.path)}"
        return f"[yellow]~ unlink[/yellow] {target} (if still linked)"
    order = escape(", ".join(op.paths) or "(none)")
    return f"[cyan]~ order[/cyan]  {escape(op.question_id)} → \\[{order}]"


def render_plan(plan: SyncPlan, console: Console) -> None:
    """Render a SyncPlan using Rich console output."""
    counts = plan.diff.counts()
    if not plan.operations:
        console.print(f"Nothing to sync ({counts['unchanged']} entries unchanged).")
        return

    console.print(f"[bold]Sync plan ({plan.link_mode} links):[/bold]")
    console.print()
    for group, ops in plan.by_group().items():
        if not ops:
            continue
        console.print(f"[bold]{group.replace('_', ' ').capitalize()}:[/bold]")
        for op in ops:
            console.print(f"  {_describe(op)}")
        console.print()

    console.print(
        f"{counts['added']} added, {counts['removed']} removed, "
        f"{counts['links_modified']} links modified, {counts['content_only']} content only, "
        f"{counts['unchanged']} unchanged; {len(plan.operations)} operations"
    )


def plan_to_dict(plan: SyncPlan) -> dict[str, object]:
    """Serialize a SyncPlan to a JSON-compatible dict."""
    return {
        "link_mode": plan.link_mode,
        "counts": plan.diff.counts(),
        "operations": [asdict(op) for op in plan.operations],
    }
