"""Reconciliation report: counts and unresolved references for operators."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from rich.markup import escape

if TYPE_CHECKING:
    from rich.console import Console


@dataclass
class SyncReport:
    """Summary of a sync run."""

    mode: str = "incremental"
    link_mode: str = "single"
    since: str | None = None
    dry_run: bool = False
    diff_counts: dict[str, int] = field(default_factory=dict)
    operations_planned: int = 0
    operations_applied: int = 0
    explanations_upserted: int = 0
    explanations_deleted: int = 0
    links_created: int = 0
    links_removed: int = 0
    questions_not_found: list[str] = field(default_factory=list)
    files_not_found: list[str] = field(default_factory=list)
    undeclared_files: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def nothing_changed(self) -> bool:
        return self.operations_planned == 0

    def question_not_found(self, external_id: str) -> None:
        if external_id not in self.questions_not_found:
            self.questions_not_found.append(external_id)

    def file_not_found(self, path: str) -> None:
        if path not in self.files_not_found:
            self.files_not_found.append(path)


def render_report(report: SyncReport, console: Console) -> None:
    """Render a SyncReport using Rich console output."""
    title = "Full rebuild" if report.mode == "full" else "Incremental sync"
    if report.since and report.mode != "full":
        title += f" (since {report.since})"
    if report.dry_run:
        title += " [dim](dry run)[/dim]"
    console.print(f"[bold]{title}[/bold]")

    if report.nothing_changed:
        console.print("No changes detected. Store is up to date.")
    else:
        counts = report.diff_counts
        console.print(
            f"Entries: {counts.get('added', 0)} added, {counts.get('removed', 0)} removed, "
            f"{counts.get('links_modified', 0)} links modified, "
            f"{counts.get('content_only', 0)} content only, "
            f"{counts.get('unchanged', 0)} unchanged"
        )
        console.print(f"Explanations upserted: {report.explanations_upserted}")
        console.print(f"Explanations deleted:  {report.explanations_deleted}")
        console.print(f"Links created:         {report.links_created}")
        console.print(f"Links removed:         {report.links_removed}")

    if report.questions_not_found:
        console.print()
        console.print(f"[yellow]Questions not found ({len(report.questions_not_found)}):[/yellow]")
        for qid in report.questions_not_found:
            console.print(f"  - {escape(qid)}")
    if report.files_not_found:
        console.print()
        console.print(f"[yellow]Files not found ({len(report.files_not_found)}):[/yellow]")
        for path in report.files_not_found:
            console.print(f"  - {escape(path)}")
    if report.undeclared_files:
        console.print()
        console.print(f"[dim]Files not in manifest ({len(report.undeclared_files)}):[/dim]")
        for path in report.undeclared_files:
            console.print(f"  [dim]- {escape(path)}[/dim]")
    if report.warnings:
        console.print()
        for warn in report.warnings:
            console.print(f"  [warn] {warn}", markup=False)


def report_to_dict(report: SyncReport) -> dict[str, object]:
    """Serialize a SyncReport to a JSON-compatible dict."""
    data: dict[str, object] = asdict(report)
    data["nothing_changed"] = report.nothing_changed
    return data
