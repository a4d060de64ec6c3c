"""Mutation applier: execute a sync plan against the store, one call at a time."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from explsync.infrastructure.store import StoreError
from explsync.reconcile.diff import LINK_ORDERED
from explsync.reconcile.identity import derive_explanation_id
from explsync.reconcile.planner import (
    GROUP_ADDED,
    GROUP_LINKS_MODIFIED,
    DeleteExplanation,
    LinkQuestion,
    Operation,
    ReplaceOrderedLinks,
    SyncPlan,
    UnlinkQuestion,
    UpsertExplanation,
)
from explsync.reconcile.report import SyncReport

if TYPE_CHECKING:
    from explsync.infrastructure.store import ExplanationStore, QuestionRef
    from explsync.manifest.content import ContentSource

logger = logging.getLogger(__name__)


class ApplyError(Exception):
    """A store mutation failed; the remaining plan was not applied."""

    def __init__(self, operation: Operation, report: SyncReport, cause: Exception) -> None:
        self.operation = operation
        self.report = report
        super().__init__(f"{operation.kind} failed for {_target(operation)}: {cause}")


def _target(op: Operation) -> str:
    if isinstance(op, (UpsertExplanation, DeleteExplanation)):
        return f"'{op.path}'"
    return f"question '{op.question_id}'"


class _Applier:
    def __init__(
        self,
        plan: SyncPlan,
        store: ExplanationStore,
        content: ContentSource,
        report: SyncReport,
    ) -> None:
        self.store = store
        self.content = content
        self.report = report
        self.ordered = plan.link_mode == LINK_ORDERED
        self.orders = plan.diff.new.orders
        self.entries = plan.diff.new.by_path()
        self._questions: dict[str, QuestionRef | None] = {}
        # Row presence per explanation id, as known during this run.
        self._present: dict[str, bool] = {}
        self._linked: set[tuple[str, str]] = set()
        self._replaced: dict[str, list[str]] = {}

    def _question(self, external_id: str) -> QuestionRef | None:
        if external_id in self._questions:
            return self._questions[external_id]
        question = self.store.find_question(external_id)
        if question is None:
            logger.warning("Question not found: %s", external_id)
            self.report.question_not_found(external_id)
        self._questions[external_id] = question
        return question

    def _read(self, path: str) -> str | None:
        body = self.content.read(path)
        if body is None and path not in self.report.files_not_found:
            logger.warning("File not found: %s", path)
            self.report.file_not_found(path)
        return body

    def _ensure_row(self, path: str, explanation_id: str) -> bool:
        """Make sure a link target exists, creating it from disk when possible."""
        if explanation_id in self._present:
            return self._present[explanation_id]
        if self.store.explanation_exists(explanation_id):
            self._present[explanation_id] = True
            return True
        body = self._read(path)
        if body is None:
            self._present[explanation_id] = False
            return False
        self._present[explanation_id] = True
        self.store.upsert_explanation(explanation_id, body)
        self.report.explanations_upserted += 1
        logger.info("Created missing explanation row for %s", path)
        self._backfill(path, explanation_id, GROUP_LINKS_MODIFIED)
        return True

    def _backfill(self, path: str, explanation_id: str, group: str) -> None:
        """Issue every link of *path* in the current manifest (its row is new)."""
        entry = self.entries.get(path)
        if entry is None:
            return
        for qid in entry.questions:
            if self.ordered:
                paths = self.orders.get(qid, ())
                ids = tuple(derive_explanation_id(p) for p in paths)
                self.replace(ReplaceOrderedLinks(group, qid, paths, ids))
            else:
                self.link(LinkQuestion(group, qid, path, explanation_id))

    def upsert(self, op: UpsertExplanation) -> None:
        body = self._read(op.path)
        if body is None:
            return
        created = self.store.upsert_explanation(op.explanation_id, body)
        self._present[op.explanation_id] = True
        self.report.explanations_upserted += 1
        logger.debug("Upserted %s -> %s", op.path, op.explanation_id)
        if created and op.group != GROUP_ADDED:
            self._backfill(op.path, op.explanation_id, op.group)

    def delete(self, op: DeleteExplanation) -> None:
        self.store.delete_explanation(op.explanation_id)
        self._present[op.explanation_id] = False
        self.report.explanations_deleted += 1
        logger.debug("Deleted %s (%s)", op.path, op.explanation_id)

    def link(self, op: LinkQuestion) -> None:
        key = (op.question_id, op.explanation_id)
        if key in self._linked:
            return
        if not self._ensure_row(op.path, op.explanation_id):
            logger.debug("Skipping link %s -> %s: no content", op.question_id, op.path)
            return
        # Creating the row may already have linked it.
        if key in self._linked:
            return
        question = self._question(op.question_id)
        if question is None:
            return
        self.store.set_question_link(question, op.explanation_id)
        self._linked.add(key)
        self.report.links_created += 1
        logger.debug("Linked %s -> %s", op.question_id, op.path)

    def unlink(self, op: UnlinkQuestion) -> None:
        question = self._question(op.question_id)
        if question is None:
            return
        if self.store.unlink_if_matches(question, op.explanation_id):
            self.report.links_removed += 1
            logger.debug("Unlinked %s from %s", op.question_id, op.path)
        else:
            logger.debug("Kept %s: no longer linked to %s", op.question_id, op.path)

    def replace(self, op: ReplaceOrderedLinks) -> None:
        question = self._question(op.question_id)
        if question is None:
            return
        ids = [
            eid
            for path, eid in zip(op.paths, op.explanation_ids)
            if self._ensure_row(path, eid)
        ]
        if self._replaced.get(op.question_id) == ids:
            return
        removed, created = self.store.replace_ordered_links(question, ids)
        self._replaced[op.question_id] = ids
        self.report.links_removed += removed
        self.report.links_created += created
        logger.debug("Linked %s to %d explanations in order", op.question_id, created)

    def apply(self, op: Operation) -> None:
        if isinstance(op, UpsertExplanation):
            self.upsert(op)
        elif isinstance(op, DeleteExplanation):
            self.delete(op)
        elif isinstance(op, LinkQuestion):
            self.link(op)
        elif isinstance(op, UnlinkQuestion):
            self.unlink(op)
        else:
            self.replace(op)


def apply_plan(
    plan: SyncPlan,
    store: ExplanationStore,
    content: ContentSource,
    *,
    report: SyncReport | None = None,
) -> SyncReport:
    """Apply *plan* sequentially and return the filled-in report.

    Missing content files and unknown questions are skipped with a warning
    and recorded on the report.  A link target whose row is absent from the
    store is created from disk first; when that row is new, every link the
    current manifest declares for it is issued too, so an entry whose file
    was missing in an earlier run converges once the file appears.

    Any :class:`StoreError` aborts the run with :class:`ApplyError`;
    nothing is retried.
    """
    if report is None:
        report = SyncReport(link_mode=plan.link_mode)
    report.diff_counts = plan.diff.counts()
    report.operations_planned = len(plan.operations)

    applier = _Applier(plan, store, content, report)
    for op in plan.operations:
        try:
            applier.apply(op)
        except StoreError as exc:
            logger.error("Store operation failed: %s", exc)
            raise ApplyError(op, report, exc) from exc
        report.operations_applied += 1
    return report
